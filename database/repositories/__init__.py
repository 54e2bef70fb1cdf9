from .base import AlertStore, NotificationSink
from .price_alert_repo import PriceAlertRepository
from .notification_repo import NotificationRepository
from .memory import InMemoryPriceAlertRepository, InMemoryNotificationRepository

__all__ = [
    "AlertStore",
    "NotificationSink",
    "PriceAlertRepository",
    "NotificationRepository",
    "InMemoryPriceAlertRepository",
    "InMemoryNotificationRepository",
]

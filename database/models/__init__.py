from .price_alert import PriceAlert, AlertCondition
from .notification import Notification

__all__ = [
    "PriceAlert",
    "AlertCondition",
    "Notification",
]

"""
Store contracts consumed by the alert services.

Both the asyncpg repositories and the in-memory ones satisfy these
protocols, so services never depend on a concrete backend.
"""

from datetime import datetime
from typing import Awaitable, Callable, List, Optional, Protocol

from database.models import PriceAlert, AlertCondition, Notification

# Called with (event, alert_id); event is INSERT, UPDATE or DELETE
ChangeCallback = Callable[[str, str], Awaitable[None]]
Unsubscribe = Callable[[], Awaitable[None]]


class AlertStore(Protocol):
    """Persistence interface for price alerts."""

    async def create(
        self,
        user_id: str,
        coin_id: str,
        coin_name: str,
        symbol: str,
        target_price: float,
        condition: AlertCondition,
    ) -> PriceAlert:
        ...

    async def get_by_id(self, alert_id: str) -> Optional[PriceAlert]:
        ...

    async def get_active_alerts(self, user_id: str) -> List[PriceAlert]:
        """Alerts that are active and have never triggered."""
        ...

    async def get_alerts_by_coin(
        self,
        user_id: str,
        coin_id: str,
        active_only: bool = True,
    ) -> List[PriceAlert]:
        ...

    async def delete(self, user_id: str, alert_id: str) -> bool:
        ...

    async def deactivate(self, user_id: str, alert_id: str) -> bool:
        ...

    async def count_active(self, user_id: str) -> int:
        ...

    async def mark_triggered(
        self,
        alert_id: str,
        triggered_at: datetime,
    ) -> Optional[PriceAlert]:
        """
        Flip a pending alert to triggered.

        Only rows that are still active and untriggered are updated.
        Returns the updated alert, or None if no row matched.
        """
        ...

    async def subscribe(self, user_id: str, callback: ChangeCallback) -> Unsubscribe:
        ...


class NotificationSink(Protocol):
    """Persistence interface for user notifications."""

    async def create(
        self,
        user_id: str,
        type: str,
        coin: str,
        message: str,
        price: float,
        quantity: Optional[float] = None,
    ) -> Notification:
        ...

    async def get_user_notifications(
        self,
        user_id: str,
        limit: int = 50,
        unread_only: bool = False,
    ) -> List[Notification]:
        ...

    async def count_unread(self, user_id: str) -> int:
        ...

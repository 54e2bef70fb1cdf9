"""
In-process stores for local runs and tests.

Same contracts as the PostgreSQL repositories. Each mutating method
finishes without awaiting, so under asyncio every check-and-set is atomic.
"""

import logging
import uuid
from dataclasses import replace
from datetime import datetime, timezone
from typing import Dict, List, Optional

from database.models import PriceAlert, AlertCondition, Notification
from database.repositories.base import ChangeCallback, Unsubscribe

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryPriceAlertRepository:
    """Dictionary-backed alert store."""

    def __init__(self):
        self._alerts: Dict[str, PriceAlert] = {}
        self._listeners: Dict[str, List[ChangeCallback]] = {}

    async def create(
        self,
        user_id: str,
        coin_id: str,
        coin_name: str,
        symbol: str,
        target_price: float,
        condition: AlertCondition,
    ) -> PriceAlert:
        """Create a new price alert."""
        alert = PriceAlert(
            id=str(uuid.uuid4()),
            user_id=user_id,
            coin_id=coin_id,
            coin_name=coin_name,
            symbol=symbol,
            target_price=float(target_price),
            condition=AlertCondition(condition),
            is_active=True,
            triggered_at=None,
            created_at=_utcnow(),
        )
        self._alerts[alert.id] = alert
        await self._notify(user_id, "INSERT", alert.id)
        return alert

    async def get_by_id(self, alert_id: str) -> Optional[PriceAlert]:
        """Get an alert by ID."""
        return self._alerts.get(alert_id)

    async def get_active_alerts(self, user_id: str) -> List[PriceAlert]:
        """Get pending alerts for a user."""
        alerts = [
            a for a in self._alerts.values()
            if a.user_id == user_id and a.is_pending
        ]
        return sorted(alerts, key=lambda a: a.created_at, reverse=True)

    async def get_alerts_by_coin(
        self,
        user_id: str,
        coin_id: str,
        active_only: bool = True,
    ) -> List[PriceAlert]:
        """Get a user's alerts on one coin."""
        alerts = [
            a for a in self._alerts.values()
            if a.user_id == user_id and a.coin_id == coin_id
        ]
        if active_only:
            alerts = [a for a in alerts if a.is_active]
        return sorted(alerts, key=lambda a: a.created_at, reverse=True)

    async def delete(self, user_id: str, alert_id: str) -> bool:
        """Delete an alert owned by the user."""
        alert = self._alerts.get(alert_id)
        if alert is None or alert.user_id != user_id:
            return False
        del self._alerts[alert_id]
        await self._notify(user_id, "DELETE", alert_id)
        return True

    async def deactivate(self, user_id: str, alert_id: str) -> bool:
        """Deactivate an alert without marking it triggered."""
        alert = self._alerts.get(alert_id)
        if alert is None or alert.user_id != user_id:
            return False
        self._alerts[alert_id] = replace(alert, is_active=False)
        await self._notify(user_id, "UPDATE", alert_id)
        return True

    async def count_active(self, user_id: str) -> int:
        """Count pending alerts for a user."""
        return len(await self.get_active_alerts(user_id))

    async def mark_triggered(
        self,
        alert_id: str,
        triggered_at: datetime,
    ) -> Optional[PriceAlert]:
        """Flip a pending alert to triggered; None if it is not pending."""
        alert = self._alerts.get(alert_id)
        if alert is None or not alert.is_pending:
            return None
        updated = alert.mark_triggered(triggered_at)
        self._alerts[alert_id] = updated
        await self._notify(updated.user_id, "UPDATE", alert_id)
        return updated

    async def subscribe(self, user_id: str, callback: ChangeCallback) -> Unsubscribe:
        """Register a change listener for a user's alerts."""
        self._listeners.setdefault(user_id, []).append(callback)

        async def unsubscribe() -> None:
            listeners = self._listeners.get(user_id, [])
            if callback in listeners:
                listeners.remove(callback)

        return unsubscribe

    async def _notify(self, user_id: str, event: str, alert_id: str) -> None:
        """Call listeners after the state change is complete."""
        for callback in list(self._listeners.get(user_id, [])):
            try:
                await callback(event, alert_id)
            except Exception as e:
                logger.error(f"Alert change listener failed for {alert_id}: {e}")


class InMemoryNotificationRepository:
    """List-backed notification store."""

    def __init__(self):
        self._notifications: List[Notification] = []

    async def create(
        self,
        user_id: str,
        type: str,
        coin: str,
        message: str,
        price: float,
        quantity: Optional[float] = None,
    ) -> Notification:
        """Insert a new unread notification."""
        notification = Notification(
            id=str(uuid.uuid4()),
            user_id=user_id,
            type=type,
            coin=coin,
            message=message,
            price=float(price),
            quantity=quantity,
            read=False,
            created_at=_utcnow(),
        )
        self._notifications.append(notification)
        return notification

    async def get_user_notifications(
        self,
        user_id: str,
        limit: int = 50,
        unread_only: bool = False,
    ) -> List[Notification]:
        """Get a user's notifications, newest first."""
        results = [n for n in self._notifications if n.user_id == user_id]
        if unread_only:
            results = [n for n in results if not n.read]
        results.reverse()
        return results[:limit]

    async def count_unread(self, user_id: str) -> int:
        """Count unread notifications for a user."""
        return sum(1 for n in self._notifications if n.user_id == user_id and not n.read)

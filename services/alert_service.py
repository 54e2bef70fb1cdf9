"""Price alert service: validated CRUD and the trigger transaction."""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, List, Optional, Tuple

from config.constants import NOTIFICATION_TYPE_PRICE_ALERT
from database.models import PriceAlert, Notification
from database.repositories.base import AlertStore, NotificationSink
from services.alert_evaluator import should_trigger
from utils.formatters import format_price, format_symbol
from utils.validators import validate_coin_id, validate_condition, validate_target_price

logger = logging.getLogger(__name__)


class TriggerOutcome(str, Enum):
    """Result of running an alert through the trigger transaction."""
    TRIGGERED = "triggered"  # This call flipped the alert
    ALREADY_TRIGGERED = "already_triggered"  # Guard matched no row
    NOT_MET = "not_met"  # Condition false at this price
    STORE_ERROR = "store_error"  # Conditional update raised; alert still pending


@dataclass
class TriggerResult:
    """Outcome of one trigger attempt."""

    outcome: TriggerOutcome
    alert: PriceAlert
    current_price: float
    notification: Optional[Notification] = None
    error: Optional[str] = None

    @property
    def triggered(self) -> bool:
        return self.outcome == TriggerOutcome.TRIGGERED


def build_alert_message(alert: PriceAlert, current_price: float) -> str:
    """Build the notification text for a fired alert."""
    return (
        f"{alert.coin_name} ({format_symbol(alert.symbol)}) has {alert.condition_text} "
        f"${format_price(alert.target_price)}! Current price: ${format_price(current_price)}"
    )


class AlertService:
    """Service for price alert operations."""

    def __init__(
        self,
        alert_repo: AlertStore,
        notification_repo: NotificationSink,
    ):
        self.alert_repo = alert_repo
        self.notification_repo = notification_repo

    async def create_alert(
        self,
        user_id: str,
        coin_id: str,
        coin_name: str,
        symbol: str,
        target_price: Any,
        condition: Any,
    ) -> PriceAlert:
        """
        Validate and persist a new alert.

        Raises:
            ValueError: any field is missing or invalid
        """
        if not user_id:
            raise ValueError("User ID required for creating alerts")

        missing = [
            name for name, value in (
                ("coin_id", coin_id),
                ("coin_name", coin_name),
                ("symbol", symbol),
                ("target_price", target_price),
                ("condition", condition),
            )
            if value is None or (isinstance(value, str) and not value.strip())
        ]
        if missing:
            raise ValueError(f"Missing required alert data: {', '.join(missing)}")

        for name, value in (("coin_name", coin_name), ("symbol", symbol)):
            if not isinstance(value, str):
                raise ValueError(f"{name} must be text, got {type(value).__name__}")

        valid_coin_id = validate_coin_id(coin_id)
        if valid_coin_id is None:
            raise ValueError(f"Invalid coin ID: {coin_id!r}")

        valid_condition = validate_condition(condition)
        if valid_condition is None:
            raise ValueError('Invalid condition. Must be "above" or "below"')

        valid_price = validate_target_price(target_price)
        if valid_price is None:
            raise ValueError("Target price must be a number greater than 0")

        alert = await self.alert_repo.create(
            user_id=user_id,
            coin_id=valid_coin_id,
            coin_name=coin_name.strip(),
            symbol=format_symbol(symbol),
            target_price=valid_price,
            condition=valid_condition,
        )
        logger.info(
            f"Created alert {alert.short_id} for user {user_id}: "
            f"{alert.symbol} {alert.condition.value} {format_price(alert.target_price)}"
        )
        return alert

    async def delete_alert(self, user_id: str, alert_id: str) -> bool:
        """Delete an alert in any state. Returns False if the user has no such alert."""
        if not user_id or not alert_id:
            raise ValueError("User ID and Alert ID required")

        deleted = await self.alert_repo.delete(user_id, alert_id)
        if deleted:
            logger.info(f"Deleted alert {alert_id[:8]} for user {user_id}")
        return deleted

    async def deactivate_alert(self, user_id: str, alert_id: str) -> bool:
        """Switch an alert off without marking it triggered."""
        if not user_id or not alert_id:
            raise ValueError("User ID and Alert ID required")
        return await self.alert_repo.deactivate(user_id, alert_id)

    async def get_active_alerts(self, user_id: str) -> List[PriceAlert]:
        """Get pending alerts for a user."""
        if not user_id:
            return []
        return await self.alert_repo.get_active_alerts(user_id)

    async def get_alerts_by_coin(self, user_id: str, coin_id: str) -> List[PriceAlert]:
        """Get a user's active alerts on one coin."""
        if not user_id or not coin_id:
            return []
        return await self.alert_repo.get_alerts_by_coin(user_id, coin_id)

    async def get_active_alerts_count(self, user_id: str) -> int:
        if not user_id:
            return 0
        return await self.alert_repo.count_active(user_id)

    async def trigger_alert(
        self,
        alert: PriceAlert,
        current_price: float,
        triggered_at: Optional[datetime] = None,
    ) -> TriggerResult:
        """
        Fire an alert: conditional store update, then a notification.

        Every checking path goes through here. The store's guarded update
        decides who wins when several checkers fire the same alert; losers
        get ALREADY_TRIGGERED. A failed notification insert does not undo
        the trigger.
        """
        triggered_at = triggered_at or datetime.now(timezone.utc)

        try:
            updated = await self.alert_repo.mark_triggered(alert.id, triggered_at)
        except Exception as e:
            logger.error(f"Failed to update alert {alert.short_id}: {e}")
            return TriggerResult(
                outcome=TriggerOutcome.STORE_ERROR,
                alert=alert,
                current_price=current_price,
                error=str(e),
            )

        if updated is None:
            logger.info(f"Alert {alert.short_id} was already triggered or removed, skipping")
            return TriggerResult(
                outcome=TriggerOutcome.ALREADY_TRIGGERED,
                alert=alert,
                current_price=current_price,
            )

        logger.info(f"Alert {alert.short_id} marked as triggered at {triggered_at.isoformat()}")

        message = build_alert_message(updated, current_price)
        notification = None
        error = None
        try:
            notification = await self.notification_repo.create(
                user_id=updated.user_id,
                type=NOTIFICATION_TYPE_PRICE_ALERT,
                coin=updated.symbol,
                message=message,
                price=current_price,
                quantity=updated.target_price,
            )
            logger.info(f"Notification created for alert {alert.short_id}: {message}")
        except Exception as e:
            error = str(e)
            logger.error(f"Alert {alert.short_id} triggered but notification failed: {e}")

        return TriggerResult(
            outcome=TriggerOutcome.TRIGGERED,
            alert=updated,
            current_price=current_price,
            notification=notification,
            error=error,
        )

    async def evaluate_immediately(
        self,
        alert: PriceAlert,
        current_price: float,
    ) -> TriggerResult:
        """
        Check a just-created alert against the price known at creation.

        Catches alerts whose threshold is already crossed, without waiting
        for the next engine tick.
        """
        if not should_trigger(alert.condition, current_price, alert.target_price):
            return TriggerResult(
                outcome=TriggerOutcome.NOT_MET,
                alert=alert,
                current_price=current_price,
            )

        logger.info(f"Alert {alert.short_id} already past its threshold at creation")
        return await self.trigger_alert(alert, current_price)

    async def create_and_evaluate(
        self,
        user_id: str,
        coin_id: str,
        coin_name: str,
        symbol: str,
        target_price: Any,
        condition: Any,
        current_price: Optional[float] = None,
    ) -> Tuple[PriceAlert, Optional[TriggerResult]]:
        """Create an alert and, when a current price is known, evaluate it at once."""
        alert = await self.create_alert(
            user_id=user_id,
            coin_id=coin_id,
            coin_name=coin_name,
            symbol=symbol,
            target_price=target_price,
            condition=condition,
        )
        if current_price is None:
            return alert, None

        result = await self.evaluate_immediately(alert, current_price)
        return (result.alert if result.triggered else alert), result

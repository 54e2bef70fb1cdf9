"""Price alert model."""

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Optional
from enum import Enum


class AlertCondition(str, Enum):
    """Direction of the threshold crossing."""
    ABOVE = "above"  # Trigger when price is at or above target
    BELOW = "below"  # Trigger when price is at or below target


@dataclass
class PriceAlert:
    """Price alert data model."""

    id: str
    user_id: str
    coin_id: str
    coin_name: str
    symbol: str
    target_price: float
    condition: AlertCondition
    is_active: bool
    triggered_at: Optional[datetime]
    created_at: datetime

    @classmethod
    def from_row(cls, row) -> "PriceAlert":
        """Create PriceAlert from database row."""
        return cls(
            id=str(row["id"]),
            user_id=str(row["user_id"]),
            coin_id=row["coin_id"],
            coin_name=row["coin_name"],
            symbol=row["symbol"],
            target_price=float(row["target_price"]),
            condition=AlertCondition(row["condition"]),
            is_active=bool(row["is_active"]),
            triggered_at=row["triggered_at"],
            created_at=row["created_at"],
        )

    @property
    def is_pending(self) -> bool:
        """An alert can still fire only while active and never triggered."""
        return self.is_active and self.triggered_at is None

    @property
    def condition_text(self) -> str:
        """Get human-readable condition text."""
        return "risen above" if self.condition == AlertCondition.ABOVE else "fallen below"

    @property
    def short_id(self) -> str:
        """First 8 characters of the id, for log lines."""
        return self.id[:8]

    def mark_triggered(self, triggered_at: datetime) -> "PriceAlert":
        """Return a copy in the triggered state."""
        return replace(self, is_active=False, triggered_at=triggered_at)

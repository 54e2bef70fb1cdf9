"""User notification model."""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass
class Notification:
    """Notification shown to the user after an alert fires."""

    id: str
    user_id: str
    type: str
    coin: str
    message: str
    price: float
    quantity: Optional[float]  # Target price for price alerts
    read: bool
    created_at: datetime

    @classmethod
    def from_row(cls, row) -> "Notification":
        """Create Notification from database row."""
        quantity = row["quantity"]
        return cls(
            id=str(row["id"]),
            user_id=str(row["user_id"]),
            type=row["type"],
            coin=row["coin"],
            message=row["message"],
            price=float(row["price"]),
            quantity=float(quantity) if quantity is not None else None,
            read=bool(row["read"]),
            created_at=row["created_at"],
        )

"""Notification repository for database operations."""

from typing import Optional, List

from database.connection import Database
from database.models import Notification


class NotificationRepository:
    """Repository for user notification operations."""

    def __init__(self, db: Database):
        self.db = db

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
        conn = await self.db.get_connection()
        try:
            row = await conn.fetchrow(
                """
                INSERT INTO notifications (user_id, type, coin, message, price, quantity)
                VALUES ($1, $2, $3, $4, $5, $6)
                RETURNING *
                """,
                user_id, type, coin, message, price, quantity,
            )
            return Notification.from_row(row)
        finally:
            await self.db.release_connection(conn)

    async def get_user_notifications(
        self,
        user_id: str,
        limit: int = 50,
        unread_only: bool = False,
    ) -> List[Notification]:
        """Get a user's notifications, newest first."""
        conn = await self.db.get_connection()
        try:
            if unread_only:
                rows = await conn.fetch(
                    """
                    SELECT * FROM notifications
                    WHERE user_id = $1 AND read = FALSE
                    ORDER BY created_at DESC
                    LIMIT $2
                    """,
                    user_id, limit,
                )
            else:
                rows = await conn.fetch(
                    """
                    SELECT * FROM notifications
                    WHERE user_id = $1
                    ORDER BY created_at DESC
                    LIMIT $2
                    """,
                    user_id, limit,
                )

            return [Notification.from_row(row) for row in rows]
        finally:
            await self.db.release_connection(conn)

    async def count_unread(self, user_id: str) -> int:
        """Count unread notifications for a user."""
        conn = await self.db.get_connection()
        try:
            count = await conn.fetchval(
                "SELECT COUNT(*) FROM notifications WHERE user_id = $1 AND read = FALSE",
                user_id,
            )
            return count if count else 0
        finally:
            await self.db.release_connection(conn)

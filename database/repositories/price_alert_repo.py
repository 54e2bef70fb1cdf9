"""Price alert repository for database operations."""

import asyncio
import json
import logging
from typing import Optional, List, Set
from datetime import datetime

from config.constants import PRICE_ALERT_CHANNEL
from database.connection import Database
from database.models import PriceAlert, AlertCondition
from database.repositories.base import ChangeCallback, Unsubscribe

logger = logging.getLogger(__name__)


def _rowcount(result: str) -> int:
    """Parse a command status like "DELETE 1" into its row count."""
    return int(result.split()[-1]) if result else 0


class PriceAlertRepository:
    """Repository for price alert operations."""

    def __init__(self, db: Database):
        self.db = db
        self._callback_tasks: Set[asyncio.Task] = set()

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
        conn = await self.db.get_connection()
        try:
            row = await conn.fetchrow(
                """
                INSERT INTO price_alerts (
                    user_id, coin_id, coin_name, symbol, target_price, condition
                )
                VALUES ($1, $2, $3, $4, $5, $6)
                RETURNING *
                """,
                user_id, coin_id, coin_name, symbol, target_price, condition.value,
            )
            return PriceAlert.from_row(row)
        finally:
            await self.db.release_connection(conn)

    async def get_by_id(self, alert_id: str) -> Optional[PriceAlert]:
        """Get price alert by ID."""
        conn = await self.db.get_connection()
        try:
            row = await conn.fetchrow(
                "SELECT * FROM price_alerts WHERE id = $1",
                alert_id,
            )
            if row:
                return PriceAlert.from_row(row)
            return None
        finally:
            await self.db.release_connection(conn)

    async def get_active_alerts(self, user_id: str) -> List[PriceAlert]:
        """Get pending alerts for a user."""
        conn = await self.db.get_connection()
        try:
            rows = await conn.fetch(
                """
                SELECT * FROM price_alerts
                WHERE user_id = $1 AND is_active = TRUE AND triggered_at IS NULL
                ORDER BY created_at DESC
                """,
                user_id,
            )
            return [PriceAlert.from_row(row) for row in rows]
        finally:
            await self.db.release_connection(conn)

    async def get_alerts_by_coin(
        self,
        user_id: str,
        coin_id: str,
        active_only: bool = True,
    ) -> List[PriceAlert]:
        """Get a user's alerts on one coin, newest first."""
        conn = await self.db.get_connection()
        try:
            if active_only:
                rows = await conn.fetch(
                    """
                    SELECT * FROM price_alerts
                    WHERE user_id = $1 AND coin_id = $2 AND is_active = TRUE
                    ORDER BY created_at DESC
                    """,
                    user_id, coin_id,
                )
            else:
                rows = await conn.fetch(
                    """
                    SELECT * FROM price_alerts
                    WHERE user_id = $1 AND coin_id = $2
                    ORDER BY created_at DESC
                    """,
                    user_id, coin_id,
                )

            return [PriceAlert.from_row(row) for row in rows]
        finally:
            await self.db.release_connection(conn)

    async def delete(self, user_id: str, alert_id: str) -> bool:
        """Delete a price alert owned by the user."""
        conn = await self.db.get_connection()
        try:
            result = await conn.execute(
                "DELETE FROM price_alerts WHERE id = $1 AND user_id = $2",
                alert_id, user_id,
            )
            return _rowcount(result) > 0
        finally:
            await self.db.release_connection(conn)

    async def deactivate(self, user_id: str, alert_id: str) -> bool:
        """Deactivate a price alert without marking it triggered."""
        conn = await self.db.get_connection()
        try:
            result = await conn.execute(
                "UPDATE price_alerts SET is_active = FALSE WHERE id = $1 AND user_id = $2",
                alert_id, user_id,
            )
            return _rowcount(result) > 0
        finally:
            await self.db.release_connection(conn)

    async def count_active(self, user_id: str) -> int:
        """Count pending alerts for a user."""
        conn = await self.db.get_connection()
        try:
            count = await conn.fetchval(
                """
                SELECT COUNT(*) FROM price_alerts
                WHERE user_id = $1 AND is_active = TRUE AND triggered_at IS NULL
                """,
                user_id,
            )
            return count if count else 0
        finally:
            await self.db.release_connection(conn)

    async def mark_triggered(
        self,
        alert_id: str,
        triggered_at: datetime,
    ) -> Optional[PriceAlert]:
        """
        Mark alert as triggered if it is still pending.

        The WHERE clause is the compare-and-set guard: concurrent checkers
        racing on the same alert see exactly one RETURNING row between them.
        Deleted or already triggered alerts yield None.
        """
        conn = await self.db.get_connection()
        try:
            row = await conn.fetchrow(
                """
                UPDATE price_alerts
                SET is_active = FALSE, triggered_at = $1
                WHERE id = $2 AND is_active = TRUE AND triggered_at IS NULL
                RETURNING *
                """,
                triggered_at, alert_id,
            )
            if row:
                return PriceAlert.from_row(row)
            return None
        finally:
            await self.db.release_connection(conn)

    async def subscribe(self, user_id: str, callback: ChangeCallback) -> Unsubscribe:
        """
        Listen for changes to a user's alerts.

        Args:
            user_id: Owner whose rows are watched
            callback: Async function called with (event, alert_id)

        Returns:
            Coroutine function that removes the listener
        """
        def _on_notify(connection, pid, channel, payload):
            try:
                data = json.loads(payload)
            except (json.JSONDecodeError, TypeError):
                logger.warning(f"Ignoring malformed notification payload: {payload!r}")
                return

            if data.get("user_id") != user_id:
                return

            task = asyncio.ensure_future(callback(data.get("op", ""), data.get("id", "")))
            self._callback_tasks.add(task)
            task.add_done_callback(self._callback_tasks.discard)

        await self.db.add_listener(PRICE_ALERT_CHANNEL, _on_notify)

        async def unsubscribe() -> None:
            await self.db.remove_listener(PRICE_ALERT_CHANNEL, _on_notify)

        return unsubscribe

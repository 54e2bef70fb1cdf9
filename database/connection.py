"""PostgreSQL database connection and initialization using asyncpg."""

import asyncpg
from typing import Callable, Optional
import logging

from config.constants import PRICE_ALERT_CHANNEL

logger = logging.getLogger(__name__)


class Database:
    """Async PostgreSQL database manager using connection pool."""

    def __init__(self, database_url: str):
        self.database_url = database_url
        self._pool: Optional[asyncpg.Pool] = None
        self._listen_conn: Optional[asyncpg.Connection] = None

    async def get_connection(self) -> asyncpg.Connection:
        """Get a connection from the pool."""
        if self._pool is None:
            raise RuntimeError("Database not initialized. Call initialize() first.")
        return await self._pool.acquire()

    async def release_connection(self, conn: asyncpg.Connection) -> None:
        """Release a connection back to the pool."""
        if self._pool:
            await self._pool.release(conn)

    async def close(self) -> None:
        """Close the listener connection and the pool."""
        if self._listen_conn is not None:
            await self._listen_conn.close()
            self._listen_conn = None
        if self._pool:
            await self._pool.close()
            self._pool = None

    async def initialize(self) -> None:
        """Create connection pool and initialize database tables."""
        self._pool = await asyncpg.create_pool(
            self.database_url,
            min_size=2,
            max_size=10,
        )
        logger.info("Database connection pool created")

        await self._create_tables()
        logger.info("Database tables initialized")

    async def add_listener(self, channel: str, callback: Callable) -> None:
        """
        Register a LISTEN callback on a dedicated connection.

        Pool connections are recycled, so notifications need a connection
        that stays open for the lifetime of the database manager.
        """
        if self._pool is None:
            raise RuntimeError("Database not initialized. Call initialize() first.")
        if self._listen_conn is None:
            self._listen_conn = await asyncpg.connect(self.database_url)
        await self._listen_conn.add_listener(channel, callback)
        logger.info(f"Listening on channel {channel}")

    async def remove_listener(self, channel: str, callback: Callable) -> None:
        """Remove a previously registered LISTEN callback."""
        if self._listen_conn is not None:
            await self._listen_conn.remove_listener(channel, callback)

    async def _create_tables(self) -> None:
        """Create database tables if they don't exist."""
        conn = await self.get_connection()
        try:
            # Price alerts table
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS price_alerts (
                    id TEXT PRIMARY KEY DEFAULT gen_random_uuid()::text,
                    user_id TEXT NOT NULL,
                    coin_id TEXT NOT NULL,
                    coin_name TEXT NOT NULL,
                    symbol TEXT NOT NULL,
                    target_price DOUBLE PRECISION NOT NULL CHECK(target_price > 0),
                    condition TEXT NOT NULL CHECK(condition IN ('above', 'below')),
                    is_active BOOLEAN NOT NULL DEFAULT TRUE,
                    triggered_at TIMESTAMPTZ,
                    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
                )
            """)

            # Notifications table
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS notifications (
                    id TEXT PRIMARY KEY DEFAULT gen_random_uuid()::text,
                    user_id TEXT NOT NULL,
                    type TEXT NOT NULL,
                    coin TEXT,
                    message TEXT NOT NULL,
                    price DOUBLE PRECISION NOT NULL DEFAULT 0,
                    quantity DOUBLE PRECISION,
                    read BOOLEAN NOT NULL DEFAULT FALSE,
                    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
                )
            """)

            # Create indexes
            await conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_price_alerts_pending "
                "ON price_alerts(user_id) WHERE is_active AND triggered_at IS NULL"
            )
            await conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_price_alerts_coin ON price_alerts(user_id, coin_id)"
            )
            await conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_notifications_user ON notifications(user_id, created_at DESC)"
            )

            # Change feed for subscribers
            await conn.execute(f"""
                CREATE OR REPLACE FUNCTION notify_price_alert_change() RETURNS trigger AS $$
                DECLARE
                    rec RECORD;
                BEGIN
                    IF TG_OP = 'DELETE' THEN
                        rec := OLD;
                    ELSE
                        rec := NEW;
                    END IF;
                    PERFORM pg_notify(
                        '{PRICE_ALERT_CHANNEL}',
                        json_build_object('op', TG_OP, 'id', rec.id, 'user_id', rec.user_id)::text
                    );
                    RETURN rec;
                END;
                $$ LANGUAGE plpgsql
            """)
            await conn.execute(
                "DROP TRIGGER IF EXISTS price_alerts_notify ON price_alerts"
            )
            await conn.execute("""
                CREATE TRIGGER price_alerts_notify
                AFTER INSERT OR UPDATE OR DELETE ON price_alerts
                FOR EACH ROW EXECUTE FUNCTION notify_price_alert_change()
            """)

        finally:
            await self.release_connection(conn)

"""Shared pytest fixtures for price alert tests.

Services and the engine run against the in-memory stores; the asyncpg
repositories are exercised with mocked connections in their own tests.
"""

import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterable, List
from unittest.mock import AsyncMock, MagicMock

import pytest
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# Add project root to path for imports
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from core.market_data import CircuitState, PriceQuote, PriceSourceUnavailable, QuoteSource
from database.repositories import InMemoryPriceAlertRepository, InMemoryNotificationRepository
from services.alert_service import AlertService


class FakePriceSource:
    """Price source returning fixed quotes and recording every call."""

    def __init__(self, prices: Dict[str, float] = None, source: QuoteSource = QuoteSource.API):
        self.prices = dict(prices or {})
        self.source = source
        self.calls: List[List[str]] = []
        self.fail = False
        self.circuit_state = CircuitState.CLOSED

    async def get_prices(self, coin_ids: Iterable[str], currency: str = "usd") -> Dict[str, PriceQuote]:
        ids = list(coin_ids)
        self.calls.append(ids)
        if self.fail:
            raise PriceSourceUnavailable("upstream down")
        now = datetime.now(timezone.utc)
        return {
            coin_id: PriceQuote(
                coin_id=coin_id,
                price=self.prices[coin_id],
                change_24h=0.0,
                as_of=now,
                source=self.source,
            )
            for coin_id in ids
            if coin_id in self.prices
        }


@pytest.fixture
def alert_repo() -> InMemoryPriceAlertRepository:
    return InMemoryPriceAlertRepository()


@pytest.fixture
def notification_repo() -> InMemoryNotificationRepository:
    return InMemoryNotificationRepository()


@pytest.fixture
def alert_service(alert_repo, notification_repo) -> AlertService:
    """Create an AlertService over in-memory stores."""
    return AlertService(alert_repo, notification_repo)


@pytest.fixture
def price_source() -> FakePriceSource:
    return FakePriceSource({"bitcoin": 50500.0})


@pytest.fixture
def job_manager() -> MagicMock:
    """JobManager stand-in so engine tests never start a real scheduler."""
    manager = MagicMock()
    manager.is_running.return_value = False
    return manager


@pytest.fixture
def sample_alert_data() -> dict:
    """Provide sample alert creation data for tests."""
    return {
        "user_id": "user-1",
        "coin_id": "bitcoin",
        "coin_name": "Bitcoin",
        "symbol": "btc",
        "target_price": 50000,
        "condition": "above",
    }


@pytest.fixture
def alert_row() -> dict:
    """Provide a price_alerts row as asyncpg would return it."""
    return {
        "id": "0b7c1f9e-5d2a-4c1e-9a57-3f0e4c2d8a11",
        "user_id": "user-1",
        "coin_id": "bitcoin",
        "coin_name": "Bitcoin",
        "symbol": "BTC",
        "target_price": 50000.0,
        "condition": "above",
        "is_active": True,
        "triggered_at": None,
        "created_at": datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc),
    }


@pytest.fixture
def mock_db():
    """Database double handing out one mocked asyncpg connection."""
    conn = MagicMock()
    conn.fetchrow = AsyncMock()
    conn.fetch = AsyncMock(return_value=[])
    conn.fetchval = AsyncMock()
    conn.execute = AsyncMock()

    db = MagicMock()
    db.get_connection = AsyncMock(return_value=conn)
    db.release_connection = AsyncMock()
    db.add_listener = AsyncMock()
    db.remove_listener = AsyncMock()
    db.conn = conn
    return db

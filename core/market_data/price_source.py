"""Price source with caching, circuit breaking and fallback data."""

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Iterable, Optional, Tuple

from config import settings
from config.constants import FALLBACK_CURRENCY, FALLBACK_USD_PRICES
from core.market_data.cache import PriceCache
from core.market_data.circuit_breaker import CircuitBreaker, CircuitState, CircuitStatus
from core.market_data.coingecko_client import CoinGeckoClient

logger = logging.getLogger(__name__)


class QuoteSource(str, Enum):
    """Where a quote came from."""
    API = "api"
    CACHE = "cache"
    STALE_CACHE = "stale_cache"
    FALLBACK = "fallback"


@dataclass
class PriceQuote:
    """Current price of one coin."""
    coin_id: str
    price: float
    change_24h: float
    as_of: datetime
    source: QuoteSource = QuoteSource.API


class PriceSourceUnavailable(Exception):
    """No live, cached or fallback prices exist for a request."""


class PriceSource:
    """
    Resolves coin prices for the alert engine.

    Serves a fresh cache hit without touching the network. Otherwise asks
    the API unless the circuit is open; on failure it degrades to stale
    cache, then to the fallback dataset, and only raises when neither
    covers the request.
    """

    def __init__(
        self,
        client: Optional[CoinGeckoClient] = None,
        cache: Optional[PriceCache] = None,
        breaker: Optional[CircuitBreaker] = None,
        fallback_prices: Optional[Dict[str, Tuple[float, float]]] = None,
    ):
        self.client = client if client is not None else CoinGeckoClient()
        # An empty cache is falsy, so test against None
        self.cache = cache if cache is not None else PriceCache(ttl_seconds=settings.price_cache_ttl)
        if breaker is None:
            breaker = CircuitBreaker(
                failure_threshold=settings.circuit_failure_threshold,
                success_threshold=settings.circuit_success_threshold,
                reset_timeout=settings.circuit_reset_timeout,
            )
        self.breaker = breaker
        self.fallback_prices = (
            FALLBACK_USD_PRICES if fallback_prices is None else fallback_prices
        )

    @property
    def circuit_state(self) -> CircuitState:
        return self.breaker.state

    def circuit_status(self) -> CircuitStatus:
        return self.breaker.status()

    async def get_prices(
        self,
        coin_ids: Iterable[str],
        currency: str = "usd",
    ) -> Dict[str, PriceQuote]:
        """
        Get current prices for a set of coins.

        Args:
            coin_ids: CoinGecko coin IDs (duplicates and case are ignored)
            currency: Quote currency

        Returns:
            Mapping of coin_id -> PriceQuote. Coins without data are absent.

        Raises:
            PriceSourceUnavailable: upstream failed and nothing is cached
                or covered by fallback data
        """
        ids = sorted({c.strip().lower() for c in coin_ids if c and c.strip()})
        if not ids:
            return {}

        currency = currency.lower()
        key = PriceCache.make_key(ids, currency)

        cached = self.cache.get_fresh(key)
        if cached is not None:
            logger.debug(f"Using cached prices for {len(ids)} coins")
            return {
                coin_id: replace(quote, source=QuoteSource.CACHE)
                for coin_id, quote in cached.items()
            }

        if not self.breaker.allow_request():
            logger.warning("Circuit breaker OPEN - skipping API call")
            return self._degraded(key, ids, currency)

        try:
            raw = await self.client.get_simple_prices(ids, currency)
        except Exception as e:
            logger.error(f"Error fetching coin prices: {e}")
            self.breaker.record_failure(e)
            return self._degraded(key, ids, currency)

        self.breaker.record_success()

        now = datetime.now(timezone.utc)
        quotes = {
            coin_id: PriceQuote(
                coin_id=coin_id,
                price=values["price"],
                change_24h=values["change_24h"],
                as_of=now,
            )
            for coin_id, values in raw.items()
        }
        self.cache.set(key, quotes)

        logger.info(f"Prices fetched for {len(quotes)}/{len(ids)} coins")
        return quotes

    async def health_check(self) -> bool:
        """
        Ping the API while the circuit is open.

        A successful ping moves the breaker to HALF_OPEN so real requests
        are tried again before the cool-down ends.
        """
        if self.breaker.state == CircuitState.CLOSED:
            return True

        logger.info("Running health check...")
        healthy = await self.client.ping()
        if healthy:
            logger.info("Health check passed - API is available")
            self.breaker.half_open()
        else:
            logger.warning("Health check failed")
        return healthy

    async def close(self) -> None:
        await self.client.close()

    def _degraded(self, key: str, ids: list, currency: str) -> Dict[str, PriceQuote]:
        """Serve stale cache, then fallback data, else raise."""
        stale = self.cache.get_stale(key)
        if stale is not None:
            logger.warning(f"Using stale price cache ({self.cache.age(key):.0f}s old) as fallback")
            return {
                coin_id: replace(quote, source=QuoteSource.STALE_CACHE)
                for coin_id, quote in stale.items()
            }

        if currency == FALLBACK_CURRENCY:
            now = datetime.now(timezone.utc)
            fallback = {
                coin_id: PriceQuote(
                    coin_id=coin_id,
                    price=self.fallback_prices[coin_id][0],
                    change_24h=self.fallback_prices[coin_id][1],
                    as_of=now,
                    source=QuoteSource.FALLBACK,
                )
                for coin_id in ids
                if coin_id in self.fallback_prices
            }
            if fallback:
                logger.warning(f"Using fallback prices for {len(fallback)}/{len(ids)} coins")
                return fallback

        raise PriceSourceUnavailable(
            f"No prices available for {', '.join(ids)} in {currency}"
        )

"""CoinGecko API client for spot prices."""

import asyncio
import logging
import random
from typing import Any, Awaitable, Callable, Dict, Iterable, Optional

import httpx

from config import settings
from config.constants import HEALTH_CHECK_TIMEOUT, RETRY_JITTER_RATIO

logger = logging.getLogger(__name__)


class RateLimitError(Exception):
    """Upstream kept answering 429 after all retries."""

    def __init__(self, retry_after: Optional[float] = None):
        self.retry_after = retry_after
        super().__init__(
            "Rate limit exceeded"
            + (f" (retry after {retry_after:.0f}s)" if retry_after is not None else "")
        )


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Parse a Retry-After header given in seconds."""
    if not value:
        return None
    try:
        seconds = float(value.strip())
    except (TypeError, ValueError):
        return None
    return seconds if seconds >= 0 else None


def compute_backoff(
    attempt: int,
    base_delay: float,
    max_delay: float,
    rng: Callable[[], float] = random.random,
) -> float:
    """Exponential backoff for a zero-based attempt, plus up to 30% jitter."""
    delay = min(base_delay * (2 ** attempt), max_delay)
    return delay + rng() * RETRY_JITTER_RATIO * delay


class CoinGeckoClient:
    """Client for the CoinGecko public API."""

    def __init__(
        self,
        host: Optional[str] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        base_retry_delay: Optional[float] = None,
        max_retry_delay: Optional[float] = None,
        api_key: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.host = (host or settings.coingecko_host).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.price_request_timeout
        self.max_retries = max_retries if max_retries is not None else settings.price_max_retries
        self.base_retry_delay = (
            base_retry_delay if base_retry_delay is not None else settings.price_base_retry_delay
        )
        self.max_retry_delay = (
            max_retry_delay if max_retry_delay is not None else settings.price_max_retry_delay
        )
        self.api_key = api_key if api_key is not None else settings.coingecko_api_key
        self._transport = transport
        self._sleep = sleep
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            headers = {"Accept": "application/json"}
            if self.api_key:
                headers["x-cg-demo-api-key"] = self.api_key
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                headers=headers,
                transport=self._transport,
            )
        return self._client

    async def close(self):
        """Close HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def get_simple_prices(
        self,
        coin_ids: Iterable[str],
        currency: str = "usd",
    ) -> Dict[str, Dict[str, float]]:
        """
        Fetch spot price and 24h change for several coins in one request.

        Args:
            coin_ids: CoinGecko coin IDs
            currency: Quote currency (usd, eur, ...)

        Returns:
            Mapping of coin_id -> {"price": ..., "change_24h": ...}.
            Coins the API does not know are absent.

        Raises:
            RateLimitError: 429 persisted through all retries
            httpx.HTTPError: network failure or non-retryable status
        """
        ids = sorted(set(coin_ids))
        if not ids:
            return {}

        currency = currency.lower()
        data = await self._request(
            "/simple/price",
            params={
                "ids": ",".join(ids),
                "vs_currencies": currency,
                "include_24hr_change": "true",
            },
        )

        prices = {}
        for coin_id, values in (data or {}).items():
            if not isinstance(values, dict) or values.get(currency) is None:
                logger.warning(f"No {currency} price in response for {coin_id}")
                continue
            try:
                prices[coin_id] = {
                    "price": float(values[currency]),
                    "change_24h": float(values.get(f"{currency}_24h_change") or 0),
                }
            except (TypeError, ValueError):
                logger.warning(f"Unparseable price for {coin_id}: {values}")

        return prices

    async def ping(self) -> bool:
        """Check API availability with a short timeout."""
        try:
            client = await self._get_client()
            response = await client.get(f"{self.host}/ping", timeout=HEALTH_CHECK_TIMEOUT)
            return response.status_code == 200
        except httpx.HTTPError as e:
            logger.info(f"Health check failed - API unreachable: {e}")
            return False

    async def _request(self, path: str, params: Dict[str, Any]) -> Any:
        """GET with timeout, retry on 429/5xx/network errors and exponential backoff."""
        client = await self._get_client()
        url = f"{self.host}{path}"
        attempts = self.max_retries + 1

        for attempt in range(attempts):
            is_last_attempt = attempt == attempts - 1

            try:
                response = await client.get(url, params=params)
            except httpx.TransportError as e:
                if is_last_attempt:
                    logger.error(f"All {attempts} attempts failed for {path}: {e}")
                    raise
                delay = compute_backoff(attempt, self.base_retry_delay, self.max_retry_delay)
                logger.warning(
                    f"Network error on {path} ({type(e).__name__}). "
                    f"Retry {attempt + 1}/{self.max_retries} in {delay:.1f}s"
                )
                await self._sleep(delay)
                continue

            if response.status_code == 429:
                retry_after = parse_retry_after(response.headers.get("Retry-After"))
                if is_last_attempt:
                    logger.error(f"Rate limited on {path} after {attempts} attempts")
                    raise RateLimitError(retry_after)
                if retry_after is not None:
                    delay = min(retry_after, self.max_retry_delay)
                else:
                    delay = compute_backoff(attempt, self.base_retry_delay, self.max_retry_delay)
                logger.warning(
                    f"Rate limited (429). Retry {attempt + 1}/{self.max_retries} in {delay:.1f}s"
                )
                await self._sleep(delay)
                continue

            if response.status_code >= 500 and not is_last_attempt:
                delay = compute_backoff(attempt, self.base_retry_delay, self.max_retry_delay)
                logger.warning(
                    f"Server error {response.status_code} on {path}. "
                    f"Retry {attempt + 1}/{self.max_retries} in {delay:.1f}s"
                )
                await self._sleep(delay)
                continue

            response.raise_for_status()
            return response.json()

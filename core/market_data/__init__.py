from .cache import PriceCache
from .circuit_breaker import CircuitBreaker, CircuitState, CircuitStatus
from .coingecko_client import CoinGeckoClient, RateLimitError
from .price_source import PriceSource, PriceQuote, QuoteSource, PriceSourceUnavailable

__all__ = [
    "PriceCache",
    "CircuitBreaker",
    "CircuitState",
    "CircuitStatus",
    "CoinGeckoClient",
    "RateLimitError",
    "PriceSource",
    "PriceQuote",
    "QuoteSource",
    "PriceSourceUnavailable",
]

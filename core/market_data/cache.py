"""TTL cache for fetched price sets."""

import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Optional


@dataclass
class CacheEntry:
    """Cached value with the clock reading it was stored at."""
    data: Any
    stored_at: float


class PriceCache:
    """
    Price cache owned by one PriceSource.

    Entries past the TTL are kept so they can be served as stale data
    when the upstream API is failing.
    """

    def __init__(
        self,
        ttl_seconds: float = 120.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}

    @staticmethod
    def make_key(coin_ids: Iterable[str], currency: str) -> str:
        """Build a key from the requested id set and currency."""
        return f"{','.join(sorted(set(coin_ids)))}_{currency.lower()}"

    def set(self, key: str, data: Any) -> None:
        """Store a value stamped with the current clock reading."""
        self._entries[key] = CacheEntry(data=data, stored_at=self._clock())

    def age(self, key: str) -> Optional[float]:
        """Seconds since the entry was stored, or None if absent."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        return self._clock() - entry.stored_at

    def get_fresh(self, key: str) -> Optional[Any]:
        """Return the value only while it is within the TTL."""
        age = self.age(key)
        if age is None or age >= self.ttl_seconds:
            return None
        return self._entries[key].data

    def get_stale(self, key: str) -> Optional[Any]:
        """Return the value regardless of age."""
        entry = self._entries.get(key)
        return entry.data if entry else None

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

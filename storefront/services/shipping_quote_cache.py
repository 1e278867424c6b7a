"""In-memory TTL cache for freight quotes.

The provider allows one freight calculation per second, so identical cart
quotes are answered from memory for a few minutes.
"""

import json
import logging
import time
from dataclasses import dataclass
from hashlib import sha256
from threading import Lock
from typing import Any

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    """A cached quote with expiration."""

    value: Any
    expires_at: float

    def is_expired(self) -> bool:
        """Check if this entry has expired."""
        return time.time() > self.expires_at


class ShippingQuoteCache:
    """Thread-safe in-memory cache for freight quotes with TTL."""

    def __init__(self, ttl_seconds: int = 300, max_size: int = 100) -> None:
        """Initialize the quote cache.

        Args:
            ttl_seconds: Seconds an entry stays valid.
            max_size: Maximum number of entries kept.
        """
        self.ttl_seconds = ttl_seconds
        self.max_size = max_size
        self._cache: dict[str, CacheEntry] = {}
        self._lock = Lock()

    @staticmethod
    def make_key(country: str, postal_code: str | None, lines: list[tuple[str, int]]) -> str:
        """Build a deterministic key from the destination and cart lines.

        Line order does not matter.
        """
        raw = json.dumps(
            {"country": country.upper(), "zip": postal_code or "", "lines": sorted(lines)},
            sort_keys=True,
        )
        return sha256(raw.encode()).hexdigest()[:16]

    def get(self, key: str) -> Any | None:
        with self._lock:
            entry = self._cache.get(key)
            if entry is None:
                return None
            if entry.is_expired():
                del self._cache[key]
                return None
            logger.debug("Shipping quote cache hit for key %s", key)
            return entry.value

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            if len(self._cache) >= self.max_size:
                self._evict()
            self._cache[key] = CacheEntry(value=value, expires_at=time.time() + self.ttl_seconds)

    def _evict(self) -> None:
        """Drop expired entries, then the oldest ones. Must be called with lock held."""
        for key in [k for k, v in self._cache.items() if v.is_expired()]:
            del self._cache[key]

        if len(self._cache) >= self.max_size:
            oldest = sorted(self._cache.items(), key=lambda item: item[1].expires_at)
            for key, _ in oldest[: max(1, len(self._cache) // 10)]:
                del self._cache[key]

    def clear(self) -> int:
        """Clear all cached entries.

        Returns:
            Number of entries cleared.
        """
        with self._lock:
            count = len(self._cache)
            self._cache.clear()
            return count


# Global singleton instance
_shipping_quote_cache: ShippingQuoteCache | None = None


def get_shipping_quote_cache() -> ShippingQuoteCache:
    """Get or create the global quote cache instance."""
    global _shipping_quote_cache
    if _shipping_quote_cache is None:
        from storefront.core.config import get_settings

        settings = get_settings()
        _shipping_quote_cache = ShippingQuoteCache(
            ttl_seconds=settings.shipping_quote_cache_ttl,
            max_size=settings.shipping_quote_cache_size,
        )
    return _shipping_quote_cache

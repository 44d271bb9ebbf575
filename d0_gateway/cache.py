"""
In-process TTL cache for metric computations

Every reconstructor wraps its work in ``get_or_compute`` so repeated dashboard
requests do not re-query the document store or hit vendor rate limits.
Keys follow ``<domain>:<metric>:<params...>``; route handlers rely on that
shape when they call ``invalidate_prefix`` after a manual refresh.
"""
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

from core.logging import get_logger

from .metrics import GatewayMetrics

T = TypeVar("T")

DEFAULT_TTL_MS = 60 * 60 * 1000  # 1 hour


def cache_key(*parts: Any) -> str:
    """Join key segments with ``:``"""
    return ":".join(str(part) for part in parts)


def range_cache_key(domain: str, metric: str, start: Optional[str], end: Optional[str], *extra: Any) -> str:
    """
    Build a key for a date-ranged metric

    Missing bounds render as ``all`` / ``now``, e.g. ``metrics:mrr:all:now``.
    Extra segments (a churn period, a limit) go between the metric and the range.
    """
    return cache_key(domain, metric, *extra, start or "all", end or "now")


def _system_clock() -> float:
    return time.time() * 1000


@dataclass
class CacheEntry:
    value: Any
    expires_at: float


class TTLCache:
    """
    Key -> value memoization with per-entry expiry

    No eviction: the key space is small and fixed by the known metric keys.
    Concurrent misses for the same key each run ``compute``; writes are
    last-write-wins.
    """

    def __init__(
        self,
        default_ttl_ms: int = DEFAULT_TTL_MS,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.default_ttl_ms = default_ttl_ms
        self.clock = clock or _system_clock
        self.logger = get_logger("gateway.cache", domain="d0")
        self.metrics = GatewayMetrics()

        self._entries: Dict[str, CacheEntry] = {}
        self._hits = 0
        self._misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    @staticmethod
    def _namespace(key: str) -> str:
        return key.split(":", 1)[0]

    def get(self, key: str) -> Optional[Any]:
        """Return the live value for ``key`` or None"""
        entry = self._entries.get(key)
        if entry is not None and entry.expires_at > self.clock():
            return entry.value
        return None

    async def get_or_compute(
        self,
        key: str,
        compute: Callable[[], Awaitable[T]],
        ttl_ms: Optional[int] = None,
    ) -> T:
        """
        Return the cached value for ``key`` or compute and store it

        Args:
            key: Cache key
            compute: Zero-argument coroutine function producing the value
            ttl_ms: Lifetime of the stored value (defaults to the cache default)

        Returns:
            Cached or freshly computed value

        Raises:
            Whatever ``compute`` raises; nothing is stored in that case.
        """
        namespace = self._namespace(key)
        entry = self._entries.get(key)
        if entry is not None and entry.expires_at > self.clock():
            self._hits += 1
            self.metrics.record_cache_hit(namespace)
            self.logger.debug(f"Cache hit for key: {key}")
            return entry.value

        self._misses += 1
        self.metrics.record_cache_miss(namespace)
        self.logger.debug(f"Cache miss for key: {key}")

        try:
            value = await compute()
        except Exception:
            self.metrics.record_cache_failure(namespace)
            raise

        lifetime = self.default_ttl_ms if ttl_ms is None else ttl_ms
        self._entries[key] = CacheEntry(value=value, expires_at=self.clock() + lifetime)
        return value

    def invalidate(self, key: str) -> None:
        """Remove a single entry"""
        if self._entries.pop(key, None) is not None:
            self.logger.info(f"Invalidated cache key: {key}")

    def invalidate_prefix(self, prefix: str) -> int:
        """
        Remove every entry whose key starts with ``prefix``

        Returns:
            Number of entries removed
        """
        doomed = [key for key in self._entries if key.startswith(prefix)]
        for key in doomed:
            del self._entries[key]

        if doomed:
            self.logger.info(f"Invalidated {len(doomed)} cache entries with prefix {prefix!r}")
        return len(doomed)

    def clear(self) -> None:
        self._entries.clear()

    def stats(self) -> Dict[str, Any]:
        """Hit/miss statistics"""
        total = self._hits + self._misses
        return {
            "entries": len(self._entries),
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": round(self._hits / total, 3) if total else 0,
        }

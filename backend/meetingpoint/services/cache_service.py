"""In-process response cache for provider lookups, with TTL expiry and a per-request bypass."""

import logging
import threading
import time
from collections.abc import Awaitable, Callable
from contextvars import ContextVar
from dataclasses import dataclass
from typing import Any

from meetingpoint.schemas.search import MultiOriginSearchRequest, SearchRequest

logger = logging.getLogger(__name__)

NULL_SENTINEL = "null"

# Set from an inbound no-cache directive; read by the caching layer of the provider stack
cache_bypass: ContextVar[bool] = ContextVar("cache_bypass", default=False)


def build_cache_key(operation: str, request: SearchRequest | MultiOriginSearchRequest) -> str:
    """Deterministic key over the normalized search parameters.

    Origins and destination lists are sorted so equivalent requests collide.
    """
    if isinstance(request, MultiOriginSearchRequest):
        origins = ",".join(sorted(request.origins))
    else:
        origins = request.origin

    flt = request.destination_filter
    destinations = ",".join(sorted(set(flt.destinations))) if flt.destinations else NULL_SENTINEL

    parts = [
        operation,
        origins,
        flt.continent or NULL_SENTINEL,
        flt.country or NULL_SENTINEL,
        destinations,
        request.departure_date.isoformat(),
        request.return_date.isoformat() if request.return_date else NULL_SENTINEL,
        request.currency,
    ]
    return ":".join(parts)


@dataclass
class CacheEntry:
    key: str
    value: Any
    expires_at: float


class ResponseCache:
    """TTL cache of successful computations; failures are never stored.

    Concurrent misses on one key may both compute and the last write wins.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self._clock = clock
        self._last_purge = clock()
        self.hits = 0
        self.misses = 0

    def get(self, key: str) -> Any | None:
        """Return the live value for ``key``, evicting it if expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.expires_at <= self._clock():
                del self._entries[key]
                return None
            return entry.value

    def set(self, key: str, value: Any, ttl: float) -> None:
        """Store ``value`` until ``ttl`` seconds from now.

        Expired entries for other keys are swept at most once per ``ttl``.
        """
        now = self._clock()
        with self._lock:
            if now - self._last_purge >= ttl:
                self._purge_locked(now)
            self._entries[key] = CacheEntry(key=key, value=value, expires_at=now + ttl)

    def _purge_locked(self, now: float) -> int:
        expired = [k for k, e in self._entries.items() if e.expires_at <= now]
        for k in expired:
            del self._entries[k]
        self._last_purge = now
        if expired:
            logger.debug(f"Evicted {len(expired)} expired cache entries")
        return len(expired)

    async def get_or_compute(
        self,
        key: str,
        compute_fn: Callable[[], Awaitable[Any]],
        ttl: float,
        bypass: bool = False,
    ) -> Any:
        if bypass:
            logger.debug(f"Cache bypassed for {key}")
            return await compute_fn()

        cached = self.get(key)
        if cached is not None:
            with self._lock:
                self.hits += 1
            logger.info(f"Cache hit for {key}")
            return cached

        with self._lock:
            self.misses += 1
        logger.debug(f"Cache miss for {key}")

        value = await compute_fn()
        self.set(key, value, ttl)
        return value

    def purge_expired(self) -> int:
        now = self._clock()
        with self._lock:
            return self._purge_locked(now)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def stats(self) -> dict:
        return {"entries": len(self), "hits": self.hits, "misses": self.misses}


response_cache = ResponseCache()

"""
spacescope.cache: session-lifetime entity cache with TTL-gated refetch.

One ``CacheEntry`` per entity type. Entries are immutable and replaced whole,
so readers never observe a half-written entry.

Staleness rule:
    valid  <=>  data is not None and now - timestamp < ttl

A stale entry keeps its data until the next ``fetch`` replaces it; nothing is
evicted in the background.

Concurrent misses for the same key share one in-flight task, so a burst of
callers produces exactly one backend fetch. Callers that are cancelled while
waiting do not cancel the shared task.
"""
from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, replace
from typing import Any, Protocol

from spacescope.config import CACHE_TTL_SECONDS

log = logging.getLogger(__name__)

ENTITY_ENDPOINTS: dict[str, str] = {
    "countries": "/countries",
    "engines": "/engines",
    "vehicles": "/launch-vehicles",
    "missions": "/missions",
    "satellites": "/satellites",
    "launch_sites": "/launch-sites",
}


class Fetcher(Protocol):
    async def fetch_all(self, endpoint: str) -> list[dict[str, Any]]: ...


@dataclass(frozen=True)
class CacheEntry:
    data: list[dict[str, Any]] | None = None
    timestamp: float = 0.0
    loading: bool = False
    error: str | None = None


EMPTY_ENTRY = CacheEntry()


class EntityCache:
    """Per-entity-type cache owned by the application root.

    Args:
        client: Anything with an async ``fetch_all(endpoint)``; normally
            :class:`spacescope.client.ApiClient`.
        ttl: Seconds an entry stays valid. Defaults to ``CACHE_TTL_SECONDS``.
        clock: Wall-clock source, injectable for tests.
    """

    def __init__(
        self,
        client: Fetcher,
        ttl: float | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.client = client
        self.ttl = CACHE_TTL_SECONDS if ttl is None else ttl
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {key: EMPTY_ENTRY for key in ENTITY_ENDPOINTS}
        self._inflight: dict[str, asyncio.Task] = {}

    # -- read side ----------------------------------------------------------

    def entry(self, key: str) -> CacheEntry:
        return self._entries.get(key, EMPTY_ENTRY)

    def is_valid(self, key: str) -> bool:
        e = self.entry(key)
        return e.data is not None and (self._clock() - e.timestamp) < self.ttl

    def snapshot(self) -> dict[str, dict[str, Any]]:
        """Status of every entry, for diagnostics."""
        now = self._clock()
        out: dict[str, dict[str, Any]] = {}
        for key, e in self._entries.items():
            out[key] = {
                "cached": e.data is not None,
                "count": len(e.data) if e.data is not None else 0,
                "age_seconds": round(now - e.timestamp, 1) if e.data is not None else None,
                "valid": self.is_valid(key),
                "loading": e.loading,
                "error": e.error,
            }
        return out

    # -- write side ---------------------------------------------------------

    async def fetch(self, key: str, endpoint: str | None = None) -> list[dict[str, Any]]:
        """Return cached records for *key*, fetching them on a miss or when stale.

        Raises whatever the client raises; the error message is also recorded
        on the entry. Raises ``KeyError`` for an unknown key with no endpoint.
        """
        if self.is_valid(key):
            log.debug("Cache hit for %s", key)
            return self._entries[key].data  # type: ignore[return-value]

        task = self._inflight.get(key)
        if task is None:
            if endpoint is None:
                endpoint = ENTITY_ENDPOINTS[key]
            log.debug("Cache miss for %s, fetching %s", key, endpoint)
            self._entries[key] = replace(self.entry(key), loading=True, error=None)
            task = asyncio.ensure_future(self._load(key, endpoint))
            self._inflight[key] = task
        else:
            log.debug("Joining in-flight fetch for %s", key)
        return await asyncio.shield(task)

    async def _load(self, key: str, endpoint: str) -> list[dict[str, Any]]:
        try:
            data = await self.client.fetch_all(endpoint)
        except Exception as exc:
            message = str(exc) or f"Failed to fetch {key}"
            self._entries[key] = replace(self.entry(key), loading=False, error=message)
            log.warning("Fetching %s failed: %s", key, message)
            raise
        finally:
            self._inflight.pop(key, None)
        self._entries[key] = CacheEntry(data=data, timestamp=self._clock())
        return data

    def prime(self, key: str, data: list[dict[str, Any]]) -> None:
        """Store *data* as if it had just been fetched."""
        self._entries[key] = CacheEntry(data=data, timestamp=self._clock())

    def invalidate(self, key: str | None = None) -> None:
        """Reset one entry, or every known entry when *key* is omitted."""
        if key is None:
            self._entries = {k: EMPTY_ENTRY for k in ENTITY_ENDPOINTS}
            log.info("Invalidated all cache entries")
        else:
            self._entries[key] = EMPTY_ENTRY
            log.info("Invalidated cache entry %s", key)

"""Per-entity-type accessors exposing ``{items, loading, error}``.

An accessor is what a view holds on to. It reads through the shared
:class:`~spacescope.cache.EntityCache` and never raises: fetch failures end up
in ``state.error``. Without a cache it talks to the client directly, which is
an explicit degraded mode rather than an error.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from spacescope.cache import ENTITY_ENDPOINTS, EntityCache
from spacescope.client import ApiClient

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class AccessorState:
    items: list[dict[str, Any]] = field(default_factory=list)
    loading: bool = False
    error: str | None = None


class EntityAccessor:
    """Reactive-style view onto one entity type."""

    def __init__(
        self,
        key: str,
        cache: EntityCache | None = None,
        client: ApiClient | None = None,
        endpoint: str | None = None,
    ):
        if cache is None and client is None:
            raise ValueError("EntityAccessor needs a cache or a client")
        self.key = key
        self.endpoint = endpoint or ENTITY_ENDPOINTS[key]
        self._cache = cache
        self._client = client
        self._mounted = True
        self._local_items: list[dict[str, Any]] | None = None
        self._local_loading = False
        self._local_error: str | None = None

    @property
    def degraded(self) -> bool:
        return self._cache is None

    @property
    def state(self) -> AccessorState:
        if self._cache is None:
            return AccessorState(
                items=self._local_items or [],
                loading=self._local_loading,
                error=self._local_error,
            )
        entry = self._cache.entry(self.key)
        return AccessorState(
            items=entry.data or [],
            loading=entry.loading or self._local_loading,
            error=entry.error or self._local_error,
        )

    async def load(self) -> AccessorState:
        """Fetch unless the cached data is still fresh or a fetch is under way.

        Stale items stay visible in ``state`` until the refetch replaces them.
        """
        if self._cache is not None:
            if self._cache.entry(self.key).loading or self._cache.is_valid(self.key):
                return self.state
        elif self._local_items is not None:
            return self.state
        await self._run()
        return self.state

    async def refetch(self) -> AccessorState:
        """Explicit refresh: drop what is held and fetch again."""
        if self._cache is not None:
            self._cache.invalidate(self.key)
        else:
            self._local_items = None
        await self._run()
        return self.state

    def close(self) -> None:
        """Stop applying results to this accessor. In-flight requests still finish."""
        self._mounted = False

    async def _run(self) -> None:
        self._set_local(loading=True, error=None)
        try:
            if self._cache is not None:
                await self._cache.fetch(self.key, self.endpoint)
            else:
                items = await self._client.fetch_all(self.endpoint)  # type: ignore[union-attr]
                if self._mounted:
                    self._local_items = items
            self._set_local(loading=False, error=None)
        except Exception as exc:
            log.warning("Loading %s failed: %s", self.key, exc)
            self._set_local(loading=False, error=str(exc) or f"Failed to fetch {self.key}")

    def _set_local(self, *, loading: bool, error: str | None) -> None:
        if not self._mounted:
            return
        self._local_loading = loading
        self._local_error = error


def countries_accessor(cache: EntityCache | None = None, client: ApiClient | None = None) -> EntityAccessor:
    return EntityAccessor("countries", cache, client)


def engines_accessor(cache: EntityCache | None = None, client: ApiClient | None = None) -> EntityAccessor:
    return EntityAccessor("engines", cache, client)


def vehicles_accessor(cache: EntityCache | None = None, client: ApiClient | None = None) -> EntityAccessor:
    return EntityAccessor("vehicles", cache, client)


def missions_accessor(cache: EntityCache | None = None, client: ApiClient | None = None) -> EntityAccessor:
    return EntityAccessor("missions", cache, client)


def satellites_accessor(cache: EntityCache | None = None, client: ApiClient | None = None) -> EntityAccessor:
    return EntityAccessor("satellites", cache, client)


def launch_sites_accessor(cache: EntityCache | None = None, client: ApiClient | None = None) -> EntityAccessor:
    return EntityAccessor("launch_sites", cache, client)

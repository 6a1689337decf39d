from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import httpx
import pytest

from spacescope.accessors import (
    AccessorState,
    EntityAccessor,
    countries_accessor,
    engines_accessor,
    launch_sites_accessor,
    missions_accessor,
    satellites_accessor,
    vehicles_accessor,
)
from spacescope.cache import EntityCache


@pytest.fixture()
def client():
    c = AsyncMock()
    c.fetch_all = AsyncMock(return_value=[{"id": 1, "name": "USA"}])
    return c


class FakeClock:
    def __init__(self, now: float = 1_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def cache(client, clock):
    return EntityCache(client, ttl=300, clock=clock)


class TestCachedAccessor:
    @pytest.mark.asyncio
    async def test_load_populates_state(self, cache):
        accessor = countries_accessor(cache)
        assert accessor.state == AccessorState()
        state = await accessor.load()
        assert state.items == [{"id": 1, "name": "USA"}]
        assert state.loading is False
        assert state.error is None

    @pytest.mark.asyncio
    async def test_accessors_share_cache(self, cache, client):
        a = countries_accessor(cache)
        b = countries_accessor(cache)
        await a.load()
        state = await b.load()
        assert state.items == [{"id": 1, "name": "USA"}]
        client.fetch_all.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_error_lands_in_state(self, cache, client):
        client.fetch_all.side_effect = httpx.ConnectError("Connection refused")
        state = await countries_accessor(cache).load()
        assert state.items == []
        assert state.loading is False
        assert state.error == "Connection refused"

    @pytest.mark.asyncio
    async def test_fresh_data_not_refetched(self, cache, client, clock):
        accessor = countries_accessor(cache)
        await accessor.load()
        clock.now += 299
        await countries_accessor(cache).load()
        client.fetch_all.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_stale_data_refetched_on_load(self, cache, client, clock):
        await countries_accessor(cache).load()
        clock.now += 301
        client.fetch_all.return_value = [{"id": 1, "name": "United States"}]
        state = await countries_accessor(cache).load()
        assert client.fetch_all.await_count == 2
        assert state.items == [{"id": 1, "name": "United States"}]

    @pytest.mark.asyncio
    async def test_refetch_goes_to_network(self, cache, client):
        accessor = engines_accessor(cache)
        await accessor.load()
        client.fetch_all.return_value = [{"id": 2}]
        state = await accessor.refetch()
        assert state.items == [{"id": 2}]
        assert client.fetch_all.await_count == 2

    @pytest.mark.asyncio
    async def test_refetch_recovers_from_error(self, cache, client):
        client.fetch_all.side_effect = [httpx.ConnectError("down"), [{"id": 3}]]
        accessor = vehicles_accessor(cache)
        assert (await accessor.load()).error == "down"
        state = await accessor.refetch()
        assert state.error is None
        assert state.items == [{"id": 3}]

    @pytest.mark.asyncio
    async def test_load_skips_while_loading(self, client):
        release = asyncio.Event()

        async def slow(endpoint):
            await release.wait()
            return [{"id": 1}]

        client.fetch_all.side_effect = slow
        cache = EntityCache(client, ttl=300)
        first = asyncio.create_task(cache.fetch("missions"))
        await asyncio.sleep(0)
        state = await missions_accessor(cache).load()
        assert state.loading is True
        release.set()
        await first
        client.fetch_all.assert_awaited_once()


class TestDegradedMode:
    @pytest.mark.asyncio
    async def test_uses_client_directly(self, client):
        accessor = satellites_accessor(client=client)
        assert accessor.degraded
        state = await accessor.load()
        assert state.items == [{"id": 1, "name": "USA"}]
        client.fetch_all.assert_awaited_once_with("/satellites")

    @pytest.mark.asyncio
    async def test_second_load_is_noop(self, client):
        accessor = launch_sites_accessor(client=client)
        await accessor.load()
        await accessor.load()
        client.fetch_all.assert_awaited_once_with("/launch-sites")

    @pytest.mark.asyncio
    async def test_refetch_hits_client_again(self, client):
        accessor = launch_sites_accessor(client=client)
        await accessor.load()
        await accessor.refetch()
        assert client.fetch_all.await_count == 2

    @pytest.mark.asyncio
    async def test_error_never_raises(self, client):
        client.fetch_all.side_effect = RuntimeError()
        state = await countries_accessor(client=client).load()
        assert state.error == "Failed to fetch countries"

    def test_needs_cache_or_client(self):
        with pytest.raises(ValueError):
            EntityAccessor("countries")


class TestClose:
    @pytest.mark.asyncio
    async def test_results_after_close_are_dropped(self, client):
        release = asyncio.Event()

        async def slow(endpoint):
            await release.wait()
            return [{"id": 1}]

        client.fetch_all.side_effect = slow
        accessor = countries_accessor(client=client)
        task = asyncio.create_task(accessor.load())
        await asyncio.sleep(0)
        assert accessor.state.loading is True
        accessor.close()
        release.set()
        await task
        # the request finished but the closed accessor kept its old state
        client.fetch_all.assert_awaited_once()
        assert accessor.state.items == []

    @pytest.mark.asyncio
    async def test_cache_still_filled_after_close(self, cache):
        accessor = countries_accessor(cache)
        accessor.close()
        await accessor.load()
        assert cache.is_valid("countries")

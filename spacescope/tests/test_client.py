"""Tests for the backend HTTP client and response normalization."""
from __future__ import annotations

import asyncio

import httpx
import pytest

from spacescope.client import ApiClient, FlatResponse, PagedResponse, normalize_response


def _client(handler, **kwargs) -> ApiClient:
    return ApiClient(base_url="http://backend.test/api", transport=httpx.MockTransport(handler), **kwargs)


# ---------------------------------------------------------------------------
# normalize_response
# ---------------------------------------------------------------------------


class TestNormalizeResponse:
    def test_list_is_flat(self):
        result = normalize_response([{"id": 1}, {"id": 2}])
        assert isinstance(result, FlatResponse)
        assert result.items == [{"id": 1}, {"id": 2}]

    def test_page_envelope(self):
        result = normalize_response({
            "content": [{"id": 1}], "totalPages": 3, "totalElements": 5,
            "size": 2, "number": 0, "sort": {"sorted": False},
        })
        assert isinstance(result, PagedResponse)
        assert result.content == [{"id": 1}]
        assert result.total_pages == 3
        assert result.total_elements == 5
        assert result.extras == {"sort": {"sorted": False}}

    def test_missing_total_pages_defaults_to_one(self):
        result = normalize_response({"content": []})
        assert isinstance(result, PagedResponse)
        assert result.total_pages == 1

    @pytest.mark.parametrize("body", [None, "oops", 42, {"data": []}, {"content": "nope"}])
    def test_unrecognized_shapes(self, body):
        assert normalize_response(body) is None


# ---------------------------------------------------------------------------
# fetch_all
# ---------------------------------------------------------------------------


class TestFetchAll:
    @pytest.mark.asyncio
    async def test_flat_response_returned_unchanged(self):
        records = [{"id": 1, "name": "USA"}, {"id": 2, "name": "China"}]
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=records)

        async with _client(handler, page_size=500) as client:
            assert await client.fetch_all("/countries") == records

        assert len(seen) == 1
        assert seen[0].url.path == "/api/countries"
        assert seen[0].url.params["size"] == "500"
        assert "page" not in seen[0].url.params

    @pytest.mark.asyncio
    async def test_paged_response_concatenated_in_page_order(self):
        pages = {
            0: [{"id": 1}, {"id": 2}],
            1: [{"id": 3}, {"id": 4}],
            2: [{"id": 5}],
        }

        async def handler(request: httpx.Request) -> httpx.Response:
            page = int(request.url.params.get("page", 0))
            # later pages answer first; order must still follow page numbers
            await asyncio.sleep(0.01 * (3 - page))
            return httpx.Response(200, json={
                "content": pages[page], "totalPages": 3, "totalElements": 5,
                "size": 2, "number": page,
            })

        async with _client(handler) as client:
            items = await client.fetch_all("/engines")

        assert [i["id"] for i in items] == [1, 2, 3, 4, 5]

    @pytest.mark.asyncio
    async def test_existing_query_string_kept(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=[])

        async with _client(handler, page_size=50) as client:
            await client.fetch_all("/missions?status=active")

        assert seen[0].url.params["status"] == "active"
        assert seen[0].url.params["size"] == "50"

    @pytest.mark.asyncio
    async def test_page_without_content_contributes_nothing(self):
        def handler(request: httpx.Request) -> httpx.Response:
            page = int(request.url.params.get("page", 0))
            if page == 1:
                return httpx.Response(200, json={"unexpected": True})
            return httpx.Response(200, json={"content": [{"id": page}], "totalPages": 3})

        async with _client(handler) as client:
            assert await client.fetch_all("/engines") == [{"id": 0}, {"id": 2}]

    @pytest.mark.asyncio
    async def test_single_page_makes_one_request(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(200, json={"content": [{"id": 1}], "totalPages": 1})

        async with _client(handler) as client:
            assert await client.fetch_all("/missions") == [{"id": 1}]
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_malformed_body_gives_empty_list(self):
        async with _client(lambda r: httpx.Response(200, json={"unexpected": True})) as client:
            assert await client.fetch_all("/satellites") == []

    @pytest.mark.asyncio
    async def test_http_error_propagates(self):
        async with _client(lambda r: httpx.Response(500, json={"error": "boom"})) as client:
            with pytest.raises(httpx.HTTPStatusError):
                await client.fetch_all("/countries")

    @pytest.mark.asyncio
    async def test_transport_error_propagates(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("Connection refused", request=request)

        async with _client(handler) as client:
            with pytest.raises(httpx.ConnectError):
                await client.fetch_all("/countries")

    @pytest.mark.asyncio
    async def test_failing_later_page_fails_whole_fetch(self):
        def handler(request: httpx.Request) -> httpx.Response:
            page = int(request.url.params.get("page", 0))
            if page == 2:
                return httpx.Response(503)
            return httpx.Response(200, json={"content": [{"id": page}], "totalPages": 3})

        async with _client(handler) as client:
            with pytest.raises(httpx.HTTPStatusError):
                await client.fetch_all("/engines")


class TestFetchOne:
    @pytest.mark.asyncio
    async def test_returns_record(self):
        async with _client(lambda r: httpx.Response(200, json={"id": 7, "name": "Raptor"})) as client:
            assert await client.fetch_one("/engines/7") == {"id": 7, "name": "Raptor"}

    @pytest.mark.asyncio
    async def test_404_is_none(self):
        async with _client(lambda r: httpx.Response(404)) as client:
            assert await client.fetch_one("/engines/999") is None

    @pytest.mark.asyncio
    async def test_non_object_is_none(self):
        async with _client(lambda r: httpx.Response(200, json=[1, 2])) as client:
            assert await client.fetch_one("/engines/1") is None


def test_base_url_trailing_slash_stripped():
    client = ApiClient(base_url="http://backend.test/api/", transport=httpx.MockTransport(lambda r: httpx.Response(200)))
    assert client.base_url == "http://backend.test/api"

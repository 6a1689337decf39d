"""HTTP client for the space-program backend.

List endpoints answer in one of two shapes:

- a flat JSON array of records, or
- a Spring-style page envelope ``{content, totalPages, totalElements, size, number}``.

``normalize_response`` resolves the shape once, right after the HTTP call, and
``ApiClient.fetch_all`` turns either shape into a single list, fanning out the
remaining pages concurrently when the backend paginates.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from spacescope.config import API_BASE_URL, API_TIMEOUT, PAGE_SIZE

log = logging.getLogger(__name__)

_USER_AGENT = "SpaceScope/1.0"


# ---------------------------------------------------------------------------
# Response shapes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FlatResponse:
    """Backend returned a bare array."""
    items: list[dict[str, Any]]


@dataclass(frozen=True)
class PagedResponse:
    """Backend returned one page of a paginated listing."""
    content: list[dict[str, Any]]
    total_pages: int = 1
    total_elements: int | None = None
    size: int | None = None
    number: int | None = None
    extras: dict[str, Any] = field(default_factory=dict)


def _as_int(value: Any, default: int | None) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def normalize_response(body: Any) -> FlatResponse | PagedResponse | None:
    """Classify a decoded JSON body. ``None`` means the shape is unrecognized."""
    if isinstance(body, list):
        return FlatResponse(items=body)
    if isinstance(body, dict) and isinstance(body.get("content"), list):
        known = ("content", "totalPages", "totalElements", "size", "number")
        return PagedResponse(
            content=body["content"],
            total_pages=_as_int(body.get("totalPages"), 1) or 1,
            total_elements=_as_int(body.get("totalElements"), None),
            size=_as_int(body.get("size"), None),
            number=_as_int(body.get("number"), None),
            extras={k: v for k, v in body.items() if k not in known},
        )
    return None


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class ApiClient:
    """Thin async wrapper over ``httpx.AsyncClient``.

    Transport and HTTP-status errors (``httpx.TransportError``,
    ``httpx.HTTPStatusError``) propagate unchanged. Nothing is retried.
    """

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        page_size: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = (base_url or API_BASE_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else API_TIMEOUT
        self.page_size = page_size or PAGE_SIZE
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(self.timeout),
            headers={"User-Agent": _USER_AGENT, "Accept": "application/json"},
            follow_redirects=True,
            transport=transport,
        )

    async def __aenter__(self) -> ApiClient:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _get_json(self, endpoint: str, params: dict[str, Any] | None = None) -> Any:
        resp = await self._client.get(endpoint, params=params)
        resp.raise_for_status()
        return resp.json()

    async def fetch_all(self, endpoint: str) -> list[dict[str, Any]]:
        """Return every record behind *endpoint*, following pagination."""
        first = normalize_response(await self._get_json(endpoint, {"size": self.page_size}))

        if isinstance(first, FlatResponse):
            return first.items
        if first is None:
            log.warning("Unrecognized response shape from %s, treating as empty", endpoint)
            return []

        items = list(first.content)
        if first.total_pages > 1:
            log.debug("Fetching %d more pages from %s", first.total_pages - 1, endpoint)
            bodies = await asyncio.gather(*(
                self._get_json(endpoint, {"size": self.page_size, "page": page})
                for page in range(1, first.total_pages)
            ))
            for body in bodies:
                page = normalize_response(body)
                if isinstance(page, PagedResponse):
                    items.extend(page.content)
        return items

    async def fetch_one(self, path: str) -> dict[str, Any] | None:
        """Fetch a single record; ``None`` on 404 or a non-object body."""
        resp = await self._client.get(path)
        if resp.status_code == 404:
            return None
        resp.raise_for_status()
        body = resp.json()
        return body if isinstance(body, dict) else None

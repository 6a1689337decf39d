from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import asdict

from mcp.server.fastmcp import FastMCP

from spacescope import favorites
from spacescope.accessors import EntityAccessor
from spacescope.cache import ENTITY_ENDPOINTS, EntityCache
from spacescope.client import ApiClient
from spacescope.db import init_db, session_scope
from spacescope.scoring import (
    CATEGORIES,
    ComparisonError,
    gap_analysis,
    rank_countries,
    score_categories,
    swot,
    weighted_score,
)
from spacescope.utils import find_country

log = logging.getLogger(__name__)

_cache: EntityCache | None = None


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def spacescope_lifespan(server: FastMCP) -> AsyncIterator[None]:
    global _cache
    init_db()
    client = ApiClient()
    _cache = EntityCache(client)
    try:
        yield
    finally:
        _cache = None
        await client.aclose()


mcp = FastMCP(
    "SpaceScope",
    instructions=(
        "SpaceScope compares national space programs. "
        "Use these tools to list backend entities and derive capability scores. "
        "Start with rankings() for an overview, then country_scores(ref) or "
        "strengths_weaknesses(ref) for one country, and compare_countries(a, b) "
        "for a head-to-head gap analysis. Countries are referenced by id or ISO code."
    ),
    lifespan=spacescope_lifespan,
    json_response=True,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _get_cache() -> EntityCache:
    if _cache is None:
        raise RuntimeError("SpaceScope MCP server is not running")
    return _cache


async def _countries() -> tuple[list[dict] | None, dict | None]:
    try:
        return await _get_cache().fetch("countries"), None
    except Exception as exc:
        log.warning("Loading countries failed: %s", exc)
        return None, {"error": f"Failed to load countries: {exc}"}


def _country_or_error(countries: list[dict], ref: str):
    country = find_country(countries, ref)
    if country is None:
        return None, {"error": f"Country '{ref}' not found"}
    return country, None


# ---------------------------------------------------------------------------
# Resource
# ---------------------------------------------------------------------------


@mcp.resource("spacescope://overview")
def spacescope_overview() -> str:
    """Overview of SpaceScope: entity types, scoring categories and SWOT rules."""
    return json.dumps({
        "system": "SpaceScope: capability comparison for national space programs",
        "entity_types": {key: endpoint for key, endpoint in ENTITY_ENDPOINTS.items()},
        "categories": [{"key": c.key, "label": c.label, "weight": c.weight} for c in CATEGORIES],
        "scoring": (
            "Category scores (0-100) are estimated from each country's overall "
            "capability score plus its capability flags. They are deterministic."
        ),
        "swot": {
            "strength": "more than 10 points above the global average and above the 60th percentile",
            "weakness": "more than 10 points below the global average and below the 40th percentile",
            "opportunity": "near the global average with a score above 30",
            "threat": "ranked 2-5 and trailing the leader by more than 20 points",
        },
        "cache": "Entity lists are cached for five minutes; refresh_cache() forces a refetch.",
    }, indent=2)


# ---------------------------------------------------------------------------
# Entity tools
# ---------------------------------------------------------------------------


@mcp.tool()
async def list_entities(entity_type: str, limit: int = 50) -> dict:
    """List cached backend entities of one type.

    Args:
        entity_type: One of countries, engines, vehicles, missions, satellites, launch_sites.
        limit: Max records to return (default 50).
    """
    if entity_type not in ENTITY_ENDPOINTS:
        return {"error": f"Unknown entity type '{entity_type}'. Use one of: {', '.join(ENTITY_ENDPOINTS)}"}
    state = await EntityAccessor(entity_type, _get_cache()).load()
    if state.error:
        return {"error": state.error}
    return {"total": len(state.items), "items": state.items[:limit]}


@mcp.tool()
def refresh_cache(entity_type: str | None = None) -> dict:
    """Drop cached entities so the next call refetches from the backend.

    Args:
        entity_type: Entity type to drop; all types when omitted.
    """
    if entity_type is not None and entity_type not in ENTITY_ENDPOINTS:
        return {"error": f"Unknown entity type '{entity_type}'"}
    _get_cache().invalidate(entity_type)
    return {"invalidated": [entity_type] if entity_type else list(ENTITY_ENDPOINTS)}


# ---------------------------------------------------------------------------
# Scoring tools
# ---------------------------------------------------------------------------


@mcp.tool()
async def rankings(limit: int = 20) -> dict:
    """Countries ordered by overall capability score, highest first.

    Args:
        limit: Max countries to return (default 20).
    """
    countries, err = await _countries()
    if err:
        return err
    ranked = rank_countries(countries)
    return {
        "total": len(ranked),
        "countries": [
            {"rank": c["rank"], "id": c.get("id"), "name": c.get("name"),
             "iso_code": c.get("isoCode"), "score": c.get("overallCapabilityScore")}
            for c in ranked[:limit]
        ],
    }


@mcp.tool()
async def country_scores(ref: str) -> dict:
    """Estimated category scores and their weighted composite for one country.

    Args:
        ref: Country id or ISO code (e.g. "USA").
    """
    countries, err = await _countries()
    if err:
        return err
    country, err = _country_or_error(countries, ref)
    if err:
        return err
    scores = score_categories(country)
    return {"name": country.get("name"), "scores": scores, "weighted_score": weighted_score(scores)}


@mcp.tool()
async def compare_countries(country1: str, country2: str) -> dict:
    """Head-to-head gap analysis of two countries.

    Args:
        country1: Country id or ISO code.
        country2: Country id or ISO code.
    """
    countries, err = await _countries()
    if err:
        return err
    a, err = _country_or_error(countries, country1)
    if err:
        return err
    b, err = _country_or_error(countries, country2)
    if err:
        return err
    try:
        result = gap_analysis(a, b)
    except ComparisonError as exc:
        return {"error": str(exc)}
    if result is None:
        return {"error": "Gap analysis cannot be computed for these countries"}
    return asdict(result)


@mcp.tool()
async def strengths_weaknesses(ref: str) -> dict:
    """SWOT classification of one country against every known country.

    Args:
        ref: Country id or ISO code.
    """
    countries, err = await _countries()
    if err:
        return err
    country, err = _country_or_error(countries, ref)
    if err:
        return err
    result = swot(country, countries)
    if result is None:
        return {"error": "SWOT cannot be computed without a population"}
    return asdict(result)


# ---------------------------------------------------------------------------
# Favorites
# ---------------------------------------------------------------------------


@mcp.tool()
def list_favorites() -> dict:
    """Favorite entity ids per entity type."""
    with session_scope() as session:
        return {"favorites": favorites.all_favorites(session), "count": favorites.favorite_count(session)}


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main():
    """Run the SpaceScope MCP server over stdio."""
    mcp.run()


if __name__ == "__main__":
    main()

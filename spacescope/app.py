from __future__ import annotations

import logging
import random
from contextlib import asynccontextmanager
from dataclasses import asdict
from typing import Any, Generator

import httpx
from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import Response
from sqlalchemy.orm import Session

from spacescope import export, favorites
from spacescope.accessors import EntityAccessor
from spacescope.cache import ENTITY_ENDPOINTS, EntityCache
from spacescope.client import ApiClient
from spacescope.config import API_BASE_URL
from spacescope.db import get_session, init_db
from spacescope.schemas import (
    CacheEntryStatus,
    ComparisonMatrixOut,
    CountryScoresOut,
    EntityListOut,
    FavoritesOut,
    GapAnalysisOut,
    InvalidateRequest,
    SwotOut,
    ThemeUpdate,
)
from spacescope.scoring import (
    ComparisonError,
    comparison_matrix,
    display_scores,
    gap_analysis,
    rank_countries,
    score_categories,
    swot,
    weighted_score,
)
from spacescope.utils import find_country

log = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    client = ApiClient()
    app.state.client = client
    app.state.cache = EntityCache(client)
    try:
        yield
    finally:
        await client.aclose()


app = FastAPI(
    title="SpaceScope",
    version="0.1.0",
    description=(
        "Capability comparison API for national space programs. "
        "Serves cached backend entities and derived scores: category estimates, "
        "gap analysis, SWOT and rankings. All endpoints return JSON unless exporting."
    ),
    lifespan=lifespan,
    openapi_tags=[
        {"name": "Entities", "description": "Cached entity lists from the backend."},
        {"name": "Cache", "description": "Inspect and invalidate the entity cache."},
        {"name": "Scoring", "description": "Derived category scores, gap analysis, SWOT and rankings."},
        {"name": "Export", "description": "CSV, JSON and XLSX downloads."},
        {"name": "Favorites", "description": "Saved entities and preferences."},
    ],
)


# ---------------------------------------------------------------------------
# Dependencies & Helpers
# ---------------------------------------------------------------------------


def get_cache(request: Request) -> EntityCache:
    return request.app.state.cache


def db_session() -> Generator[Session, None, None]:
    session = get_session()
    try:
        yield session
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def _api_url(cache: EntityCache) -> str:
    return getattr(cache.client, "base_url", API_BASE_URL)


def _check_entity_type(entity_type: str) -> str:
    if entity_type not in ENTITY_ENDPOINTS:
        raise HTTPException(404, f"Unknown entity type '{entity_type}'")
    return entity_type


async def _load(cache: EntityCache, key: str) -> list[dict[str, Any]]:
    try:
        return await cache.fetch(key)
    except httpx.HTTPError as exc:
        log.warning("Backend request for %s failed: %s", key, exc)
        raise HTTPException(502, {
            "message": str(exc) or f"Failed to fetch {key}",
            "api_url": _api_url(cache),
        }) from exc


def _country_or_404(countries: list[dict[str, Any]], ref: str) -> dict[str, Any]:
    country = find_country(countries, ref)
    if country is None:
        raise HTTPException(404, f"Country '{ref}' not found")
    return country


def _select_countries(countries: list[dict[str, Any]], codes: str) -> list[dict[str, Any]]:
    """Resolve comma-separated refs in order, dropping repeats of the same country."""
    selected: list[dict[str, Any]] = []
    for ref in codes.split(","):
        if not ref.strip():
            continue
        country = _country_or_404(countries, ref)
        if not any(country is s for s in selected):
            selected.append(country)
    return selected


# ---------------------------------------------------------------------------
# Routes: Entities & Cache
# ---------------------------------------------------------------------------


@app.get("/api/entities/{entity_type}", response_model=EntityListOut,
         tags=["Entities"], summary="List cached entities of one type, fetching on a miss")
async def list_entities(entity_type: str, cache: EntityCache = Depends(get_cache)):
    accessor = EntityAccessor(_check_entity_type(entity_type), cache)
    state = await accessor.load()
    return {
        "items": state.items, "loading": state.loading, "error": state.error,
        "api_url": _api_url(cache) if state.error else None,
    }


@app.get("/api/cache", response_model=dict[str, CacheEntryStatus],
         tags=["Cache"], summary="Status of every cache entry")
async def cache_status(cache: EntityCache = Depends(get_cache)):
    return cache.snapshot()


@app.post("/api/cache/invalidate", tags=["Cache"],
          summary="Invalidate one entity type, or all when no key is given")
async def invalidate_cache(body: InvalidateRequest | None = None, cache: EntityCache = Depends(get_cache)):
    key = body.key if body else None
    cache.invalidate(key)
    return {"invalidated": [key] if key else list(ENTITY_ENDPOINTS)}


# ---------------------------------------------------------------------------
# Routes: Scoring (static paths before parameterized ones)
# ---------------------------------------------------------------------------


@app.get("/api/rankings", tags=["Scoring"], summary="Countries ordered by overall capability score")
async def rankings(cache: EntityCache = Depends(get_cache)):
    return rank_countries(await _load(cache, "countries"))


@app.get("/api/compare/gap", response_model=GapAnalysisOut,
         tags=["Scoring"], summary="Head-to-head gap analysis of two countries")
async def compare_gap(
    country1: str = Query(..., description="Country id or ISO code"),
    country2: str = Query(..., description="Country id or ISO code"),
    cache: EntityCache = Depends(get_cache),
):
    countries = await _load(cache, "countries")
    a = _country_or_404(countries, country1)
    b = _country_or_404(countries, country2)
    try:
        result = gap_analysis(a, b)
    except ComparisonError as exc:
        raise HTTPException(400, str(exc)) from exc
    if result is None:
        raise HTTPException(422, "Gap analysis cannot be computed for these countries")
    return asdict(result)


@app.get("/api/compare/matrix", response_model=ComparisonMatrixOut,
         tags=["Scoring"], summary="Pairwise comparison matrix for several countries")
async def compare_matrix(
    codes: str = Query(..., description="Comma-separated country ids or ISO codes"),
    cache: EntityCache = Depends(get_cache),
):
    countries = await _load(cache, "countries")
    selected = _select_countries(countries, codes)
    result = comparison_matrix(selected)
    if result is None:
        raise HTTPException(422, "At least two countries are needed for a comparison matrix")
    return asdict(result)


@app.get("/api/countries/{ref}/scores", response_model=CountryScoresOut,
         tags=["Scoring"], summary="Category scores for one country")
async def country_scores(
    ref: str,
    seed: int | None = Query(None, description="Seed for the chart estimate; random when omitted"),
    cache: EntityCache = Depends(get_cache),
):
    country = _country_or_404(await _load(cache, "countries"), ref)
    scores = score_categories(country)
    rng = random.Random(seed) if seed is not None else None
    return {
        "country": country,
        "scores": scores,
        "weighted_score": weighted_score(scores),
        "display_scores": display_scores(country, rng),
    }


@app.get("/api/countries/{ref}/swot", response_model=SwotOut,
         tags=["Scoring"], summary="Strengths, weaknesses, opportunities and threats")
async def country_swot(ref: str, cache: EntityCache = Depends(get_cache)):
    countries = await _load(cache, "countries")
    result = swot(_country_or_404(countries, ref), countries)
    if result is None:
        raise HTTPException(422, "SWOT cannot be computed without a population")
    return asdict(result)


# ---------------------------------------------------------------------------
# Routes: Export
# ---------------------------------------------------------------------------


def _download(rows: list[dict[str, Any]], fmt: str, name: str) -> Response:
    if fmt not in export.EXPORT_FORMATS:
        raise HTTPException(400, f"Unsupported format '{fmt}'")
    body = export.render(rows, fmt, sheet_title=name)
    return Response(
        content=body,
        media_type=export.MEDIA_TYPES[fmt],
        headers={"Content-Disposition": f'attachment; filename="{name}.{fmt}"'},
    )


@app.get("/api/export/comparison", tags=["Export"], summary="Export a category comparison table")
async def export_comparison(
    codes: str = Query(..., description="Comma-separated country ids or ISO codes"),
    fmt: str = Query("csv", description="csv, json or xlsx"),
    cache: EntityCache = Depends(get_cache),
):
    countries = await _load(cache, "countries")
    selected = _select_countries(countries, codes)
    return _download(export.comparison_rows(selected), fmt, "country-comparison")


@app.get("/api/export/{entity_type}", tags=["Export"], summary="Export an entity list")
async def export_entities(
    entity_type: str,
    fmt: str = Query("csv", description="csv, json or xlsx"),
    cache: EntityCache = Depends(get_cache),
):
    records = await _load(cache, _check_entity_type(entity_type))
    builder = export.ROW_BUILDERS.get(entity_type)
    if builder is not None:
        rows = builder(records)
    else:
        rows = [
            {k: v for k, v in r.items() if not isinstance(v, (dict, list))}
            for r in records
        ]
    return _download(rows, fmt, entity_type.replace("_", "-"))


# ---------------------------------------------------------------------------
# Routes: Favorites & Preferences
# ---------------------------------------------------------------------------


def _favorites_out(session: Session) -> dict[str, Any]:
    return {"favorites": favorites.all_favorites(session), "count": favorites.favorite_count(session)}


@app.get("/api/favorites", response_model=FavoritesOut, tags=["Favorites"], summary="All favorites")
async def list_favorites(session: Session = Depends(db_session)):
    return _favorites_out(session)


@app.post("/api/favorites/{entity_type}/{entity_id}", tags=["Favorites"], summary="Toggle a favorite")
async def toggle_favorite(entity_type: str, entity_id: int, session: Session = Depends(db_session)):
    try:
        state = favorites.toggle_favorite(session, entity_type, entity_id)
    except ValueError as exc:
        raise HTTPException(404, str(exc)) from exc
    session.commit()
    return {"entity_type": entity_type, "entity_id": entity_id, "favorite": state}


@app.delete("/api/favorites", tags=["Favorites"], summary="Clear every favorite")
async def clear_favorites(session: Session = Depends(db_session)):
    favorites.clear_all(session)
    session.commit()
    return {"ok": True}


@app.delete("/api/favorites/{entity_type}", tags=["Favorites"], summary="Clear favorites of one type")
async def clear_favorite_type(entity_type: str, session: Session = Depends(db_session)):
    try:
        favorites.clear_type(session, entity_type)
    except ValueError as exc:
        raise HTTPException(404, str(exc)) from exc
    session.commit()
    return {"ok": True}


@app.get("/api/preferences/theme", tags=["Favorites"], summary="Current theme preference")
async def get_theme(session: Session = Depends(db_session)):
    return {"theme": favorites.get_preference(session, "theme", "system")}


@app.put("/api/preferences/theme", tags=["Favorites"], summary="Set the theme preference")
async def set_theme(body: ThemeUpdate, session: Session = Depends(db_session)):
    favorites.set_preference(session, "theme", body.theme)
    session.commit()
    return {"theme": body.theme}


# ---------------------------------------------------------------------------
# Startup
# ---------------------------------------------------------------------------


def main():
    import uvicorn
    uvicorn.run("spacescope.app:app", host="127.0.0.1", port=8001, reload=True)


if __name__ == "__main__":
    main()

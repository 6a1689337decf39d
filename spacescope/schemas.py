"""Pydantic request/response schemas for the SpaceScope API."""
from __future__ import annotations

from typing import Any

from pydantic import BaseModel, field_validator

from spacescope.cache import ENTITY_ENDPOINTS
from spacescope.favorites import THEMES


class EntityListOut(BaseModel):
    items: list[dict[str, Any]] = []
    loading: bool = False
    error: str | None = None
    api_url: str | None = None


class CacheEntryStatus(BaseModel):
    cached: bool
    count: int
    age_seconds: float | None = None
    valid: bool
    loading: bool
    error: str | None = None


class InvalidateRequest(BaseModel):
    key: str | None = None

    @field_validator("key")
    @classmethod
    def key_must_be_known(cls, v: str | None) -> str | None:
        if v is not None and v not in ENTITY_ENDPOINTS:
            raise ValueError(f"key must be one of: {', '.join(ENTITY_ENDPOINTS)}")
        return v


class CountryScoresOut(BaseModel):
    country: dict[str, Any]
    scores: dict[str, float]
    weighted_score: float
    display_scores: dict[str, float]


class CategoryGapOut(BaseModel):
    category: str
    key: str
    weight: float
    country1_score: float
    country2_score: float
    gap: float
    abs_gap: float
    percentage_gap: float
    leader: str
    significance: str


class CapabilityComparisonOut(BaseModel):
    capability: str
    country1: bool
    country2: bool


class GapAnalysisOut(BaseModel):
    country1: dict[str, Any]
    country2: dict[str, Any]
    category_gaps: list[CategoryGapOut]
    overall_gap: float
    overall_score1: float
    overall_score2: float
    leader: str
    key_differentiators: list[CategoryGapOut]
    capability_comparison: list[CapabilityComparisonOut]
    country1_capabilities: int
    country2_capabilities: int
    shared_capabilities: int
    gap_summary: str


class SwotItemOut(BaseModel):
    category: str
    type: str
    description: str
    key: str | None = None
    score: float | None = None
    global_average: float | None = None
    percentile: float | None = None
    difference: float | None = None
    difference_percent: float | None = None
    level: str | None = None


class SwotOut(BaseModel):
    country: dict[str, Any]
    scores: dict[str, float]
    global_averages: dict[str, float]
    percentile_ranks: dict[str, float]
    strengths: list[SwotItemOut] = []
    weaknesses: list[SwotItemOut] = []
    opportunities: list[SwotItemOut] = []
    threats: list[SwotItemOut] = []
    overall_rating: str
    rating_color: str
    global_rank: int
    total_countries: int


class PairComparisonOut(BaseModel):
    country1: dict[str, Any]
    country2: dict[str, Any]
    gap: float
    leader: str
    country1_category_leads: int
    country2_category_leads: int


class MatrixStatisticsOut(BaseModel):
    avg_score: float
    max_score: float
    min_score: float
    score_range: float
    competitiveness: str


class ComparisonMatrixOut(BaseModel):
    countries: list[dict[str, Any]]
    comparisons: list[PairComparisonOut]
    dominant_country: dict[str, Any] | None = None
    statistics: MatrixStatisticsOut


class FavoritesOut(BaseModel):
    favorites: dict[str, list[int]]
    count: int


class ThemeUpdate(BaseModel):
    theme: str

    @field_validator("theme")
    @classmethod
    def theme_must_be_known(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in THEMES:
            raise ValueError(f"theme must be one of: {', '.join(THEMES)}")
        return v

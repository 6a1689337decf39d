"""Derived scoring engine: category estimates, gap analysis, percentiles, SWOT.

Architecture
------------
The backend only delivers an overall Space Capability Index (SCI, 0-100) and a
handful of capability flags per country. Everything here is derived from those
records on demand and never cached:

- **Category scores**: seven capability categories estimated from the SCI
  plus flags (``score_categories``). Deterministic, so gap and SWOT results
  are reproducible for the same input.
- **Presentation estimate**: a jittered variant used only to fill charts
  when a record carries no ``capabilityScores`` (``display_scores``). It is
  never fed back into the deterministic functions.
- **Gap analysis**: head-to-head comparison of two countries.
- **Percentile / SWOT**: one country against a population.
- **Comparison matrix / rankings**: many countries at once.

Insufficient input yields ``None`` (or an empty result); only genuinely
invalid calls, such as comparing a country with itself, raise.
"""
from __future__ import annotations

import math
import random
from dataclasses import dataclass, field
from typing import Any

from spacescope.utils import flag, num, text


class ComparisonError(ValueError):
    """Raised for a comparison that makes no sense, e.g. a country against itself."""


# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Category:
    key: str
    label: str
    weight: float


CATEGORIES: tuple[Category, ...] = (
    Category("launchCapability", "Launch Capability", 0.20),
    Category("propulsionTechnology", "Propulsion Technology", 0.15),
    Category("humanSpaceflight", "Human Spaceflight", 0.20),
    Category("deepSpaceExploration", "Deep Space", 0.15),
    Category("satelliteInfrastructure", "Satellite Infrastructure", 0.15),
    Category("groundInfrastructure", "Ground Infrastructure", 0.10),
    Category("technologicalIndependence", "Tech Independence", 0.05),
)
CATEGORY_KEYS: tuple[str, ...] = tuple(c.key for c in CATEGORIES)

# (label, record field) for the head-to-head capability table
CAPABILITY_FLAGS: tuple[tuple[str, str], ...] = (
    ("Independent Launch", "independentLaunchCapable"),
    ("Human Spaceflight", "humanSpaceflightCapable"),
    ("Reusable Rockets", "reusableRocketCapable"),
    ("Deep Space", "deepSpaceCapable"),
    ("Space Station", "spaceStationCapable"),
    ("Lunar Landing", "lunarLandingCapable"),
    ("Mars Landing", "marsLandingCapable"),
)


def _clamp(value: float, lo: float = 0.0, hi: float = 100.0) -> float:
    return max(lo, min(hi, value))


def _js_round(value: float) -> int:
    """Round half up, the way the dashboard has always displayed numbers."""
    return int(math.floor(value + 0.5))


def overall_score(country: dict | None) -> float:
    return num(country, "overallCapabilityScore")


def _name(country: dict | None) -> str:
    return text(country, "name", "Unknown")


def _same_entity(a: dict, b: dict) -> bool:
    if a is b:
        return True
    return a.get("id") is not None and a.get("id") == b.get("id")


# ---------------------------------------------------------------------------
# Category score estimation
# ---------------------------------------------------------------------------


def score_categories(country: dict | None) -> dict[str, float]:
    """Estimate the seven category scores for a country, each in [0, 100]."""
    if not country:
        return {}

    s = overall_score(country)
    launch = flag(country, "independentLaunchCapable")
    human = flag(country, "humanSpaceflightCapable")
    reusable = flag(country, "reusableRocketCapable")
    deep = flag(country, "deepSpaceCapable")
    station = flag(country, "spaceStationCapable")

    scores = {
        "launchCapability": (
            min(100, s * 1.1 + num(country, "totalLaunches") * 0.05
                + num(country, "launchSuccessRate") * 0.3)
            if launch else min(30, s * 0.5)
        ),
        "propulsionTechnology": min(100, s * 0.9 + (25 if reusable else 0)),
        "humanSpaceflight": (
            min(100, 50 + (30 if station else 0) + num(country, "activeAstronauts") * 0.5)
            if human else 0
        ),
        "deepSpaceExploration": (
            min(100, 60 + (20 if flag(country, "lunarLandingCapable") else 0)
                + (20 if flag(country, "marsLandingCapable") else 0))
            if deep else min(20, s * 0.3)
        ),
        "satelliteInfrastructure": min(100, s * 0.85 + (15 if station else 0)),
        "groundInfrastructure": min(100, s * 0.8 + (20 if launch else 0)),
        "technologicalIndependence": (
            min(100, s * 0.9 + (10 if reusable else 0)) if launch else min(40, s * 0.6)
        ),
    }
    return {k: _clamp(float(v)) for k, v in scores.items()}


def weighted_score(scores: dict[str, float]) -> float:
    """Weighted composite of category scores (weights sum to 1.0)."""
    return sum(scores.get(c.key, 0.0) * c.weight for c in CATEGORIES)


# Multiplier ranges (low, high) per category; flag-gated ones fall back to a
# fixed fraction of the SCI when the flag is unset.
_DISPLAY_JITTER: dict[str, tuple[str | None, float, float, float]] = {
    "launchCapability": ("independentLaunchCapable", 0.9, 0.2, 0.3),
    "propulsionTechnology": (None, 0.8, 0.3, 0.0),
    "humanSpaceflight": ("humanSpaceflightCapable", 0.85, 0.2, 0.1),
    "deepSpaceExploration": ("deepSpaceCapable", 0.8, 0.25, 0.15),
    "satelliteInfrastructure": (None, 0.75, 0.3, 0.0),
    "groundInfrastructure": (None, 0.7, 0.35, 0.0),
    "technologicalIndependence": (None, 0.65, 0.4, 0.0),
}


def estimate_display_scores(country: dict | None, rng: random.Random | None = None) -> dict[str, float]:
    """Jittered category estimate for chart fallbacks only.

    Unseeded by default, so repeated calls differ. Pass a seeded
    ``random.Random`` to get stable values.
    """
    if not country:
        return {}
    rng = rng or random.Random()
    base = overall_score(country)
    out: dict[str, float] = {}
    for key, (gate, low, spread, fallback) in _DISPLAY_JITTER.items():
        if gate is not None and not flag(country, gate):
            value = base * fallback
        else:
            value = base * (low + rng.random() * spread)
        out[key] = _clamp(value)
    return out


def display_scores(country: dict | None, rng: random.Random | None = None) -> dict[str, float]:
    """Category scores for charts: backend-provided when present, else estimated."""
    if not country:
        return {}
    provided = country.get("capabilityScores")
    if isinstance(provided, dict):
        return {k: _clamp(num(provided, k)) for k in CATEGORY_KEYS}
    return estimate_display_scores(country, rng)


# ---------------------------------------------------------------------------
# Percentile rank
# ---------------------------------------------------------------------------


def percentile(value: float, population: list[float]) -> float:
    """Share of *population* strictly below *value*, as 0-100.

    Ties get no partial credit, so equal members share the same percentile.
    """
    if not population:
        return 0.0
    below = sum(1 for v in population if v < value)
    return below / len(population) * 100


# ---------------------------------------------------------------------------
# Gap analysis
# ---------------------------------------------------------------------------


@dataclass
class CategoryGap:
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


@dataclass
class CapabilityComparison:
    capability: str
    country1: bool
    country2: bool


@dataclass
class GapAnalysis:
    country1: dict[str, Any]
    country2: dict[str, Any]
    category_gaps: list[CategoryGap]
    overall_gap: float
    overall_score1: float
    overall_score2: float
    leader: str
    key_differentiators: list[CategoryGap]
    capability_comparison: list[CapabilityComparison]
    country1_capabilities: int
    country2_capabilities: int
    shared_capabilities: int
    gap_summary: str


def gap_significance(abs_gap: float) -> str:
    if abs_gap > 30:
        return "critical"
    if abs_gap > 15:
        return "significant"
    if abs_gap > 5:
        return "moderate"
    return "minimal"


def gap_summary(gap: float) -> str:
    """Bucket an overall SCI difference into a textual summary."""
    abs_gap = abs(gap)
    if abs_gap < 5:
        return "Near Parity"
    if abs_gap < 15:
        return "Minor Gap"
    if abs_gap < 30:
        return "Moderate Gap"
    if abs_gap < 50:
        return "Significant Gap"
    return "Major Gap"


def _leader(gap: float, a: dict, b: dict) -> str:
    if gap > 0:
        return _name(a)
    if gap < 0:
        return _name(b)
    return "Tied"


def gap_analysis(country1: dict | None, country2: dict | None) -> GapAnalysis | None:
    """Compare two countries category by category.

    Returns ``None`` if either country is missing. Raises ``ComparisonError``
    when both arguments are the same country.
    """
    if not country1 or not country2:
        return None
    if _same_entity(country1, country2):
        raise ComparisonError(f"Cannot compare {_name(country1)} with itself")

    scores1 = score_categories(country1)
    scores2 = score_categories(country2)

    category_gaps: list[CategoryGap] = []
    for cat in CATEGORIES:
        s1 = scores1.get(cat.key, 0.0)
        s2 = scores2.get(cat.key, 0.0)
        gap = s1 - s2
        if s2 > 0:
            pct = gap / s2 * 100
        else:
            pct = 100.0 if s1 > 0 else 0.0
        category_gaps.append(CategoryGap(
            category=cat.label,
            key=cat.key,
            weight=cat.weight,
            country1_score=s1,
            country2_score=s2,
            gap=gap,
            abs_gap=abs(gap),
            percentage_gap=pct,
            leader=_leader(gap, country1, country2),
            significance=gap_significance(abs(gap)),
        ))

    overall1 = overall_score(country1)
    overall2 = overall_score(country2)
    overall_gap = overall1 - overall2

    key_differentiators = sorted(
        (g for g in category_gaps if g.abs_gap > 10), key=lambda g: g.abs_gap, reverse=True,
    )[:3]

    capability_comparison = [
        CapabilityComparison(label, flag(country1, field_name), flag(country2, field_name))
        for label, field_name in CAPABILITY_FLAGS
    ]

    return GapAnalysis(
        country1=country1,
        country2=country2,
        category_gaps=category_gaps,
        overall_gap=overall_gap,
        overall_score1=overall1,
        overall_score2=overall2,
        leader=_leader(overall_gap, country1, country2),
        key_differentiators=key_differentiators,
        capability_comparison=capability_comparison,
        country1_capabilities=sum(1 for c in capability_comparison if c.country1 and not c.country2),
        country2_capabilities=sum(1 for c in capability_comparison if c.country2 and not c.country1),
        shared_capabilities=sum(1 for c in capability_comparison if c.country1 and c.country2),
        gap_summary=gap_summary(overall_gap),
    )


# ---------------------------------------------------------------------------
# Strengths / weaknesses / opportunities / threats
# ---------------------------------------------------------------------------


@dataclass
class SwotItem:
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


@dataclass
class SwotResult:
    country: dict[str, Any]
    scores: dict[str, float]
    global_averages: dict[str, float]
    percentile_ranks: dict[str, float]
    strengths: list[SwotItem] = field(default_factory=list)
    weaknesses: list[SwotItem] = field(default_factory=list)
    opportunities: list[SwotItem] = field(default_factory=list)
    threats: list[SwotItem] = field(default_factory=list)
    overall_rating: str = "Early Stage"
    rating_color: str = "gray"
    global_rank: int = 0
    total_countries: int = 0


def _strength_description(label: str, pct: float, diff_pct: float) -> str:
    if pct > 90:
        return f"World-leading in {label.lower()} (top 10%)"
    if pct > 75:
        return f"Excellent {label.lower()} capabilities (top 25%)"
    return f"Above-average {label.lower()} ({_js_round(diff_pct)}% above global average)"


def _weakness_description(label: str, pct: float, diff_pct: float) -> str:
    if pct < 10:
        return f"Critical gap in {label.lower()} (bottom 10%)"
    if pct < 25:
        return f"Significant weakness in {label.lower()} (bottom 25%)"
    return f"Below-average {label.lower()} ({_js_round(abs(diff_pct))}% below global average)"


def _opportunity_description(label: str) -> str:
    return (f"{label} performance is near global average - "
            "focused investment could yield significant improvement")


def overall_rating(score: float, major_strengths: int) -> tuple[str, str]:
    """Map SCI and count of major strengths to ``(rating, color)``."""
    if score >= 80 and major_strengths >= 2:
        return "Excellent", "green"
    if score >= 60 and major_strengths >= 1:
        return "Strong", "blue"
    if score >= 40:
        return "Developing", "yellow"
    if score >= 20:
        return "Emerging", "orange"
    return "Early Stage", "gray"


def global_rank(country: dict, population: list[dict]) -> int:
    """1-based position by SCI, or 0 if *country* is not in *population*."""
    ordered = sorted(population, key=overall_score, reverse=True)
    for idx, c in enumerate(ordered):
        if _same_entity(c, country):
            return idx + 1
    return 0


def swot(country: dict | None, population: list[dict] | None) -> SwotResult | None:
    """Classify *country*'s categories against *population*.

    Returns ``None`` when the country is missing or the population is empty.
    """
    if not country or not population:
        return None

    scores = score_categories(country)
    pop_scores = [score_categories(c) for c in population]
    n = len(pop_scores)

    averages = {k: sum(s.get(k, 0.0) for s in pop_scores) / n for k in CATEGORY_KEYS}
    ranks = {
        k: percentile(scores.get(k, 0.0), [s.get(k, 0.0) for s in pop_scores])
        for k in CATEGORY_KEYS
    }

    result = SwotResult(country=country, scores=scores, global_averages=averages, percentile_ranks=ranks)

    for cat in CATEGORIES:
        score = scores.get(cat.key, 0.0)
        avg = averages[cat.key]
        pct = ranks[cat.key]
        diff = score - avg
        diff_pct = diff / avg * 100 if avg > 0 else 0.0
        base = dict(
            category=cat.label, key=cat.key, score=score, global_average=avg,
            percentile=pct, difference=diff, difference_percent=diff_pct,
        )
        if diff > 10 and pct > 60:
            result.strengths.append(SwotItem(
                type="strength", level="major" if pct > 80 else "minor",
                description=_strength_description(cat.label, pct, diff_pct), **base,
            ))
        elif diff < -10 and pct < 40:
            result.weaknesses.append(SwotItem(
                type="weakness", level="major" if pct < 20 else "minor",
                description=_weakness_description(cat.label, pct, diff_pct), **base,
            ))
        elif diff < 5 and score > 30 and 30 < pct < 70:
            result.opportunities.append(SwotItem(
                type="opportunity", description=_opportunity_description(cat.label), **base,
            ))

    sci = overall_score(country)
    if not flag(country, "humanSpaceflightCapable") and sci > 40:
        result.opportunities.append(SwotItem(
            category="Human Spaceflight", type="opportunity",
            description="Strong foundation exists for developing crewed space capability",
        ))
    if not flag(country, "reusableRocketCapable") and flag(country, "independentLaunchCapable"):
        result.opportunities.append(SwotItem(
            category="Reusability", type="opportunity",
            description="Launch capability provides foundation for reusable rocket development",
        ))

    rank = global_rank(country, population)
    if 1 < rank <= 5:
        leader = max(population, key=overall_score)
        lead = overall_score(leader) - sci
        if lead > 20:
            result.threats.append(SwotItem(
                category="Competitive Position", type="threat",
                description=f"{_name(leader)} maintains a {_js_round(lead)} point lead in overall capability",
            ))

    result.strengths.sort(key=lambda i: i.percentile or 0.0, reverse=True)
    result.weaknesses.sort(key=lambda i: i.percentile or 0.0)
    majors = sum(1 for s in result.strengths if s.level == "major")
    result.overall_rating, result.rating_color = overall_rating(sci, majors)
    result.global_rank = rank
    result.total_countries = n
    return result


# ---------------------------------------------------------------------------
# Multi-country views
# ---------------------------------------------------------------------------


@dataclass
class PairComparison:
    country1: dict[str, Any]
    country2: dict[str, Any]
    gap: float
    leader: str
    country1_category_leads: int
    country2_category_leads: int


@dataclass
class MatrixStatistics:
    avg_score: float
    max_score: float
    min_score: float
    score_range: float
    competitiveness: str


@dataclass
class ComparisonMatrix:
    countries: list[dict[str, Any]]
    comparisons: list[PairComparison]
    dominant_country: dict[str, Any] | None
    statistics: MatrixStatistics


def competitiveness(score_range: float) -> str:
    if score_range < 20:
        return "High"
    if score_range < 40:
        return "Moderate"
    return "Low"


def comparison_matrix(countries: list[dict] | None) -> ComparisonMatrix | None:
    """Pairwise comparison of every country against every other one."""
    if not countries or len(countries) < 2:
        return None

    category_scores = [score_categories(c) for c in countries]
    comparisons: list[PairComparison] = []
    wins: dict[int, int] = {}

    for i in range(len(countries)):
        for j in range(i + 1, len(countries)):
            c1, c2 = countries[i], countries[j]
            s1, s2 = category_scores[i], category_scores[j]
            gap = overall_score(c1) - overall_score(c2)
            leads1 = sum(1 for k in CATEGORY_KEYS if s1.get(k, 0.0) > s2.get(k, 0.0))
            leads2 = sum(1 for k in CATEGORY_KEYS if s2.get(k, 0.0) > s1.get(k, 0.0))
            comparisons.append(PairComparison(
                country1=c1, country2=c2, gap=gap, leader=_leader(gap, c1, c2),
                country1_category_leads=leads1, country2_category_leads=leads2,
            ))
            if gap != 0:
                winner = i if gap > 0 else j
                wins[winner] = wins.get(winner, 0) + 1

    dominant = countries[max(wins, key=wins.__getitem__)] if wins else None

    overall = [overall_score(c) for c in countries]
    hi, lo = max(overall), min(overall)
    stats = MatrixStatistics(
        avg_score=sum(overall) / len(overall),
        max_score=hi,
        min_score=lo,
        score_range=hi - lo,
        competitiveness=competitiveness(hi - lo),
    )
    return ComparisonMatrix(countries=countries, comparisons=comparisons,
                            dominant_country=dominant, statistics=stats)


def rank_countries(countries: list[dict] | None) -> list[dict[str, Any]]:
    """Copies of *countries* ordered by SCI (highest first) with a 1-based ``rank``."""
    ordered = sorted(countries or [], key=overall_score, reverse=True)
    return [{**c, "rank": idx + 1} for idx, c in enumerate(ordered)]

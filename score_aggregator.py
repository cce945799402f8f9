"""
Combine the four factor scores into a GeoScore and build diagnostics.

The composite is the unweighted mean of the factors, rounded half-up.
The diagnostics (hourly/weekly series, competitor breakdown, safety
labels, category counts) are derived from the factors and the input
place lists; their noise comes from a PRNG seeded by the coordinate so
the whole result is reproducible.
"""

import logging
import random
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from factor_scorers import (
    Place,
    competitor_types_for,
    find_competitors,
    places_with_types,
    round_half_up,
    score_accessibility,
    score_competition,
    score_foot_traffic,
    score_safety,
)
from geo_index import Coordinate
from score_trace import timed_stage
from scoring_config import (
    DEFAULT_BUSINESS_TYPES,
    SCORING_MODEL,
    ScoringModel,
    SeriesConfig,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Result types
# =============================================================================

@dataclass(frozen=True)
class Factors:
    foot_traffic: int
    safety: int
    competition: int
    accessibility: int

    def values(self) -> Tuple[int, int, int, int]:
        return (self.foot_traffic, self.safety, self.competition, self.accessibility)

    def composite(self) -> int:
        values = self.values()
        return round_half_up(sum(values) / len(values))

    def to_dict(self) -> Dict[str, int]:
        return {
            "footTraffic": self.foot_traffic,
            "safety": self.safety,
            "competition": self.competition,
            "accessibility": self.accessibility,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Factors":
        return cls(
            foot_traffic=int(data["footTraffic"]),
            safety=int(data["safety"]),
            competition=int(data["competition"]),
            accessibility=int(data["accessibility"]),
        )


@dataclass(frozen=True)
class DetailedAnalysis:
    """Derived diagnostics for one scoring run.  Never mutated after creation."""
    hourly_traffic: List[Dict[str, Any]]
    weekly_trends: List[Dict[str, Any]]
    competitor_analysis: Dict[str, Any]
    safety_metrics: Dict[str, Any]
    location_factors: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hourlyTraffic": self.hourly_traffic,
            "weeklyTrends": self.weekly_trends,
            "competitorAnalysis": self.competitor_analysis,
            "safetyMetrics": self.safety_metrics,
            "locationFactors": self.location_factors,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DetailedAnalysis":
        return cls(
            hourly_traffic=list(data.get("hourlyTraffic", [])),
            weekly_trends=list(data.get("weeklyTrends", [])),
            competitor_analysis=dict(data.get("competitorAnalysis", {})),
            safety_metrics=dict(data.get("safetyMetrics", {})),
            location_factors=dict(data.get("locationFactors", {})),
        )


@dataclass(frozen=True)
class ScoreResult:
    score: int
    factors: Factors
    detailed_analysis: DetailedAnalysis
    model_version: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "score": self.score,
            "factors": self.factors.to_dict(),
            "detailedAnalysis": self.detailed_analysis.to_dict(),
        }


# =============================================================================
# Synthetic series
# =============================================================================

def _series_rng(coords: Coordinate) -> random.Random:
    return random.Random(f"series:{coords.lat:.7f},{coords.lng:.7f}")


def hour_multiplier(hour: int, series: SeriesConfig) -> float:
    for band in series.hour_bands:
        if hour < band.until_hour:
            return band.multiplier
    return series.hour_bands[-1].multiplier


def is_night_hour(hour: int, series: SeriesConfig) -> bool:
    return hour >= series.night_start_hour or hour <= series.night_end_hour


def generate_hourly_traffic(
    base: int,
    rng: random.Random,
    series: SeriesConfig = SCORING_MODEL.series,
) -> List[Dict[str, Any]]:
    """24 entries of pedestrian/vehicle/safety estimates scaled from *base*."""
    hourly = []
    for hour in range(24):
        mult = hour_multiplier(hour, series)
        penalty = series.night_penalty if is_night_hour(hour, series) else 0
        pedestrians = base * mult + rng.uniform(-series.pedestrian_noise, series.pedestrian_noise)
        vehicles = base * series.vehicle_ratio * mult + rng.uniform(
            -series.vehicle_noise, series.vehicle_noise
        )
        safety = series.safety_baseline - penalty + rng.uniform(
            -series.hourly_safety_noise, series.hourly_safety_noise
        )
        hourly.append({
            "hour": f"{hour:02d}:00",
            "pedestrians": max(0, round_half_up(pedestrians)),
            "vehicles": max(0, round_half_up(vehicles)),
            "safety": round_half_up(safety),
        })
    return hourly


def generate_weekly_trends(
    base: int,
    rng: random.Random,
    series: SeriesConfig = SCORING_MODEL.series,
) -> List[Dict[str, Any]]:
    """One entry per weekday, Monday first."""
    weekly = []
    for day, mult in series.day_multipliers:
        traffic = base * mult + rng.uniform(-series.traffic_noise, series.traffic_noise)
        sales = base * mult * series.sales_ratio + rng.uniform(
            -series.sales_noise, series.sales_noise
        )
        competition = series.competition_baseline + rng.uniform(
            -series.competition_noise, series.competition_noise
        )
        weekly.append({
            "day": day,
            "traffic": max(0, round_half_up(traffic)),
            "sales": max(0, round_half_up(sales)),
            "competition": round_half_up(competition),
        })
    return weekly


# =============================================================================
# Diagnostics
# =============================================================================

def competitor_density(count: int) -> str:
    if count > 20:
        return "High"
    if count > 10:
        return "Medium"
    return "Low"


def lighting_label(safety: int) -> str:
    if safety > 80:
        return "Excellent"
    if safety > 60:
        return "Good"
    return "Poor"


def surveillance_label(transit_count: int) -> str:
    if transit_count > 2:
        return "High"
    if transit_count:
        return "Medium"
    return "Low"


def competitor_analysis(competitors: Sequence[Place]) -> Dict[str, Any]:
    """Count, density label, and a histogram keyed by each competitor's primary type."""
    histogram = Counter(((p.get("types") or ["other"])[0]) for p in competitors)
    return {
        "total": len(competitors),
        "density": competitor_density(len(competitors)),
        "types": dict(histogram),
    }


def build_detailed_analysis(
    coords: Coordinate,
    factors: Factors,
    places: Sequence[Place],
    transit_stops: Sequence[Place],
    competitors: Sequence[Place],
    model: ScoringModel = SCORING_MODEL,
) -> DetailedAnalysis:
    rng = _series_rng(coords)
    location_factors = {
        name: len(places_with_types(places, tags))
        for name, tags in model.location_factor_types.items()
    }
    location_factors["transit"] = len(transit_stops)

    return DetailedAnalysis(
        hourly_traffic=generate_hourly_traffic(factors.foot_traffic, rng, model.series),
        weekly_trends=generate_weekly_trends(factors.foot_traffic, rng, model.series),
        competitor_analysis=competitor_analysis(competitors),
        safety_metrics={
            "crimeRate": 100 - factors.safety,
            "lighting": lighting_label(factors.safety),
            "surveillance": surveillance_label(len(transit_stops)),
        },
        location_factors=location_factors,
    )


def get_score_label(score: int, model: ScoringModel = SCORING_MODEL) -> dict:
    """Return label info dict for a given score.

    Returns {"label": str, "css_class": str}.
    """
    for entry in model.score_labels:
        if score >= entry.threshold:
            return {"label": entry.label, "css_class": entry.css_class}
    fallback = model.score_labels[-1]
    return {"label": fallback.label, "css_class": fallback.css_class}


# =============================================================================
# Aggregation
# =============================================================================

def generate_score(
    coords: Coordinate,
    places: Sequence[Place],
    transit_stops: Sequence[Place] = (),
    business_type: Optional[str] = None,
    business_types: Dict[str, Tuple[str, ...]] = DEFAULT_BUSINESS_TYPES,
    model: ScoringModel = SCORING_MODEL,
) -> ScoreResult:
    """Score a coordinate from its nearby places and transit stops.

    *business_types* maps a business category to its competitor tags; an
    unknown or missing *business_type* counts generic competitors.
    """
    competitor_types = competitor_types_for(business_type, business_types)
    if business_type and competitor_types is None:
        logger.info("Unknown business type %r; using generic competitor tags", business_type)

    factors = Factors(
        foot_traffic=timed_stage("footTraffic", score_foot_traffic, coords, places, model),
        safety=timed_stage("safety", score_safety, coords, places, model),
        competition=timed_stage(
            "competition", score_competition, coords, places, competitor_types, model,
        ),
        accessibility=timed_stage(
            "accessibility", score_accessibility, coords, transit_stops, model,
        ),
    )
    competitors = find_competitors(places, competitor_types, model)
    analysis = timed_stage(
        "diagnostics",
        build_detailed_analysis,
        coords, factors, places, transit_stops, competitors, model,
    )
    score = factors.composite()

    logger.info(
        "Scored (%.6f, %.6f): %d [foot=%d safety=%d competition=%d access=%d] "
        "places=%d transit=%d",
        coords.lat, coords.lng, score,
        factors.foot_traffic, factors.safety, factors.competition, factors.accessibility,
        len(places), len(transit_stops),
    )
    return ScoreResult(
        score=score,
        factors=factors,
        detailed_analysis=analysis,
        model_version=model.version,
    )

"""
Factor scorers: foot traffic, safety, accessibility and competition.

Each scorer maps raw place lists to a 0-100 integer and never looks at
the other three factors.  Distance-sensitive factors use first-match-wins
zone classification: the zone rules in scoring_config.py are checked in
order and the first rule satisfied by any place decides the band.

Band-internal jitter is derived from a hash of the coordinate and the
factor name, so scoring the same inputs twice always gives the same
numbers.
"""

import hashlib
import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from geo_index import Coordinate, distance_meters, point_location
from score_trace import get_trace
from scoring_config import (
    SCORING_MODEL,
    Band,
    ScoringModel,
    ZoneFactorConfig,
)

logger = logging.getLogger(__name__)

Place = Dict[str, Any]


# =============================================================================
# Deterministic jitter
# =============================================================================

def round_half_up(value: float) -> int:
    """Round .5 away from zero for positives (floor(x + 0.5)).

    Python's round() is banker's rounding, which would make e.g. a 62.5
    composite score 62 instead of 63.
    """
    return int(math.floor(value + 0.5))


def coordinate_seed(coords: Coordinate) -> float:
    """Classic sin-hash of a coordinate; stable for a given lat/lng."""
    return abs(math.sin(coords.lat * 12.9898 + coords.lng * 78.233) * 43758.5453)


def jitter_fraction(coords: Coordinate, salt: str) -> float:
    """Deterministic pseudo-random fraction in [0, 1) for (coords, salt)."""
    key = f"{coords.lat:.7f},{coords.lng:.7f}:{salt}".encode()
    digest = hashlib.sha256(key).digest()
    return int.from_bytes(digest[:8], "big") / float(1 << 64)


def band_value(band: Band, fraction: float) -> int:
    """Pick the integer inside *band* at *fraction* of its width."""
    return round_half_up(band.low + fraction * (band.high - band.low))


# =============================================================================
# Zone classification
# =============================================================================

@dataclass(frozen=True)
class ZoneMatch:
    """The zone rule that decided a factor's band, and the place that hit it."""
    zone: str
    band: Band
    place_name: str
    distance_m: float


def places_with_types(places: Iterable[Place], tags: Iterable[str]) -> List[Place]:
    """Places whose ``types`` share at least one tag with *tags*, in input order."""
    wanted = set(tags)
    return [p for p in places if wanted.intersection(p.get("types") or ())]


def classify_zone(
    coords: Coordinate,
    places: Sequence[Place],
    config: ZoneFactorConfig,
) -> Optional[ZoneMatch]:
    """Return the first zone satisfied by any place, or None for the default band.

    Rules are tried in order; within a rule, places are tried in the
    caller's order.  This is neither nearest-place nor best-band selection.
    """
    major = set(config.major_types)
    for rule in config.zones:
        for place in places_with_types(places, config.type_sets[rule.source]):
            location = point_location(place)
            if location is None:
                continue
            radius = rule.radius_m
            if rule.major_radius_m is not None and major.intersection(place.get("types") or ()):
                radius = rule.major_radius_m
            distance = distance_meters(coords, location)
            if distance <= radius:
                return ZoneMatch(rule.name, rule.band, place.get("name", ""), distance)
    return None


def _score_zone_factor(
    factor: str,
    coords: Coordinate,
    places: Sequence[Place],
    config: ZoneFactorConfig,
) -> Tuple[int, Optional[ZoneMatch]]:
    match = classify_zone(coords, places, config)
    band = match.band if match else config.default_band
    score = band_value(band, jitter_fraction(coords, factor))

    if match:
        logger.debug(
            "%s: zone=%s (%.0fm from %s) score=%d",
            factor, match.zone, match.distance_m, match.place_name or "?", score,
        )
    else:
        logger.debug("%s: zone=default score=%d", factor, score)

    trace = get_trace()
    if trace:
        trace.record_zone(factor, match.zone if match else "default", score)
    return score, match


# =============================================================================
# Factor scorers
# =============================================================================

def score_foot_traffic(
    coords: Coordinate,
    places: Sequence[Place],
    model: ScoringModel = SCORING_MODEL,
) -> int:
    """Foot traffic from proximity to high/medium traffic generators.

    Order: high-traffic within 200 m, medium within 300 m, high within
    400 m, otherwise the low default band.
    """
    score, _ = _score_zone_factor("footTraffic", coords, places, model.foot_traffic)
    return score


def score_safety(
    coords: Coordinate,
    places: Sequence[Place],
    model: ScoringModel = SCORING_MODEL,
) -> int:
    """Safety from proximity to safety anchors and risk venues.

    Order: safety anchor within its radius (500 m for hospital, police and
    fire stations, 350 m otherwise), risk venue within 250 m, safety
    anchor within 800 m, otherwise the default band.
    """
    score, _ = _score_zone_factor("safety", coords, places, model.safety)
    return score


def score_accessibility(
    coords: Coordinate,
    transit_stops: Sequence[Place],
    model: ScoringModel = SCORING_MODEL,
) -> int:
    """Step function of the transit-stop count; distances are ignored."""
    count = len(transit_stops)
    config = model.accessibility
    band = config.default_band
    for tier in config.tiers:
        if count >= tier.min_count:
            band = tier.band
            break

    score = band_value(band, jitter_fraction(coords, "accessibility"))
    logger.debug("accessibility: %d transit stops score=%d", count, score)

    trace = get_trace()
    if trace:
        trace.record_zone("accessibility", f"stops={count}", score)
    return score


def competitor_types_for(
    business_type: Optional[str],
    business_types: Dict[str, Tuple[str, ...]],
) -> Optional[Tuple[str, ...]]:
    """Competitor tags for a business category, or None if it is not known."""
    if not business_type:
        return None
    return business_types.get(business_type)


def find_competitors(
    places: Sequence[Place],
    competitor_types: Optional[Iterable[str]] = None,
    model: ScoringModel = SCORING_MODEL,
) -> List[Place]:
    """Places counted as competitors.

    Falls back to the generic competitor tags when *competitor_types* is
    None.  Places are counted whether or not they carry a location.
    """
    tags = competitor_types if competitor_types is not None else model.competition.generic_types
    return places_with_types(places, tags)


def competition_base(count: int, model: ScoringModel = SCORING_MODEL) -> int:
    for tier in model.competition.tiers:
        if count <= tier.max_count:
            return tier.base
    return model.competition.overflow_base


def score_competition(
    coords: Coordinate,
    places: Sequence[Place],
    competitor_types: Optional[Iterable[str]] = None,
    model: ScoringModel = SCORING_MODEL,
) -> int:
    """Fewer competitors score higher; a coordinate-seeded offset of up to
    +/- jitter_amplitude is applied, then clamped to [min_score, max_score].
    """
    config = model.competition
    count = len(find_competitors(places, competitor_types, model))
    base = competition_base(count, model)
    variation = math.sin(coordinate_seed(coords) * 75) * config.jitter_amplitude
    score = max(config.min_score, min(config.max_score, round_half_up(base + variation)))

    logger.debug("competition: %d competitors base=%d score=%d", count, base, score)

    trace = get_trace()
    if trace:
        trace.record_zone("competition", f"competitors={count}", score)
    return score

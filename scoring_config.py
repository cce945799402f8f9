"""
Scoring model configuration for GeoScore.

Owns every numeric constant that affects the location score: zone radii,
score bands, transit-count tiers, competitor-count tiers, the time-of-day
and day-of-week multipliers used by the diagnostics, and the default
business-type table.

Frozen dataclasses provide type checking and IDE support without
the indirection of YAML/JSON config files.
"""

from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple


# =============================================================================
# Dataclasses
# =============================================================================

@dataclass(frozen=True)
class Band:
    """A closed score sub-range, e.g. [85, 95]."""
    low: int
    high: int

    def contains(self, value: float) -> bool:
        return self.low <= value <= self.high


@dataclass(frozen=True)
class ZoneRule:
    """One "any point of this kind within R metres" check.

    Rules are evaluated in declaration order; the first rule satisfied by
    any point decides the band.  ``major_radius_m`` overrides the radius
    for points carrying one of the factor's major types.
    """
    name: str          # e.g. "green", "yellow", "extended_yellow"
    source: str        # key into the factor's type_sets
    radius_m: float
    band: Band
    major_radius_m: Optional[float] = None


@dataclass(frozen=True)
class ZoneFactorConfig:
    """Zone classification for a distance-sensitive factor."""
    type_sets: Dict[str, Tuple[str, ...]]
    zones: Tuple[ZoneRule, ...]
    default_band: Band
    major_types: Tuple[str, ...] = ()


@dataclass(frozen=True)
class CountTier:
    """Maps a minimum transit-stop count to a band."""
    min_count: int
    band: Band


@dataclass(frozen=True)
class AccessibilityConfig:
    tiers: Tuple[CountTier, ...]  # sorted highest min_count first
    default_band: Band


@dataclass(frozen=True)
class CompetitionTier:
    """Maps a maximum competitor count to a base score."""
    max_count: int
    base: int


@dataclass(frozen=True)
class CompetitionConfig:
    generic_types: Tuple[str, ...]
    tiers: Tuple[CompetitionTier, ...]  # sorted lowest max_count first
    overflow_base: int                  # base when count exceeds every tier
    jitter_amplitude: float = 6.0
    min_score: int = 0
    max_score: int = 95


@dataclass(frozen=True)
class HourBand:
    """Traffic multiplier applying to hours < until_hour."""
    until_hour: int
    multiplier: float


@dataclass(frozen=True)
class SeriesConfig:
    """Shape of the synthetic hourly/weekly diagnostic series."""
    hour_bands: Tuple[HourBand, ...]
    day_multipliers: Tuple[Tuple[str, float], ...]
    vehicle_ratio: float = 0.8
    sales_ratio: float = 0.7
    safety_baseline: int = 85
    night_penalty: int = 15
    night_start_hour: int = 22
    night_end_hour: int = 5
    pedestrian_noise: float = 6.0
    vehicle_noise: float = 5.0
    hourly_safety_noise: float = 4.0
    traffic_noise: float = 3.0
    sales_noise: float = 2.5
    competition_baseline: int = 70
    competition_noise: float = 7.5


@dataclass(frozen=True)
class ScoreLabel:
    """Maps a minimum score threshold to a human-readable label."""
    threshold: int
    label: str
    css_class: str = ""


@dataclass(frozen=True)
class ScoringModel:
    """Top-level container for all scoring parameters.

    A single module-level instance (SCORING_MODEL) is the source of truth.
    Bump `version` on every change that alters score outputs.
    """
    version: str
    foot_traffic: ZoneFactorConfig
    safety: ZoneFactorConfig
    accessibility: AccessibilityConfig
    competition: CompetitionConfig
    series: SeriesConfig
    score_labels: Tuple[ScoreLabel, ...]
    location_factor_types: Dict[str, Tuple[str, ...]] = field(default_factory=dict)


# =============================================================================
# SCORING_MODEL — current production values
# =============================================================================

TRANSIT_STATION_TYPES = (
    "transit_station",
    "bus_station",
    "train_station",
    "subway_station",
)

_FOOT_TRAFFIC = ZoneFactorConfig(
    type_sets={
        "high": ("restaurant", "cafe", "shopping_mall", "store") + TRANSIT_STATION_TYPES,
        "medium": ("bank", "pharmacy", "gas_station", "convenience_store"),
    },
    zones=(
        ZoneRule("green", "high", 200, Band(85, 95)),
        ZoneRule("yellow", "medium", 300, Band(50, 60)),
        ZoneRule("extended_yellow", "high", 400, Band(50, 60)),
    ),
    default_band=Band(25, 45),
)

_SAFETY = ZoneFactorConfig(
    type_sets={
        "safety": (
            "hospital", "police", "fire_station", "school", "university",
        ) + TRANSIT_STATION_TYPES,
        "risk": ("night_club", "bar", "liquor_store"),
    },
    zones=(
        ZoneRule("green", "safety", 350, Band(85, 95), major_radius_m=500),
        ZoneRule("yellow", "risk", 250, Band(50, 60)),
        ZoneRule("extended_green", "safety", 800, Band(75, 85)),
    ),
    default_band=Band(30, 45),
    major_types=("hospital", "police", "fire_station"),
)

# Adjacent tiers do not overlap, so the score never drops as stops are added.
_ACCESSIBILITY = AccessibilityConfig(
    tiers=(
        CountTier(15, Band(85, 95)),
        CountTier(10, Band(75, 84)),
        CountTier(6, Band(65, 74)),
        CountTier(3, Band(55, 64)),
    ),
    default_band=Band(30, 40),
)

_COMPETITION = CompetitionConfig(
    generic_types=(
        "store", "restaurant", "shop", "establishment",
        "shopping_mall", "gym", "fitness_center",
    ),
    tiers=(
        CompetitionTier(0, 95),
        CompetitionTier(2, 90),
        CompetitionTier(5, 75),
        CompetitionTier(10, 60),
        CompetitionTier(20, 45),
    ),
    overflow_base=30,
    jitter_amplitude=6.0,
    min_score=0,
    max_score=95,
)

_SERIES = SeriesConfig(
    hour_bands=(
        HourBand(6, 0.3),    # overnight
        HourBand(10, 0.7),   # morning
        HourBand(17, 0.9),   # midday
        HourBand(21, 1.0),   # evening peak
        HourBand(24, 0.6),   # late evening
    ),
    day_multipliers=(
        ("Mon", 0.9),
        ("Tue", 1.0),
        ("Wed", 1.0),
        ("Thu", 1.0),
        ("Fri", 1.1),
        ("Sat", 1.2),
        ("Sun", 0.85),
    ),
)

SCORING_MODEL = ScoringModel(
    version="1.0.0",
    foot_traffic=_FOOT_TRAFFIC,
    safety=_SAFETY,
    accessibility=_ACCESSIBILITY,
    competition=_COMPETITION,
    series=_SERIES,
    score_labels=(
        ScoreLabel(72, "Excellent Location", "label-excellent"),
        ScoreLabel(60, "Good Location", "label-good"),
        ScoreLabel(0, "Risky for Credit", "label-risky"),
    ),
    location_factor_types={
        "restaurants": ("restaurant", "cafe"),
        "hospitals": ("hospital", "doctor"),
        "schools": ("school", "university"),
        "shopping": ("shopping_mall", "department_store"),
    },
)


# =============================================================================
# Business types — competitor tag sets per business category
# =============================================================================

DEFAULT_BUSINESS_TYPES: Dict[str, Tuple[str, ...]] = {
    "food_service": ("restaurant", "cafe", "bakery", "meal_takeaway", "food"),
    "retail": ("store", "clothing_store", "shoe_store", "book_store", "electronics_store"),
    "grocery": ("grocery_or_supermarket", "supermarket", "convenience_store"),
    "electronics": ("electronics_store", "computer_store", "phone_store"),
    "health": ("pharmacy", "hospital", "doctor", "dentist", "physiotherapist"),
    "automotive": ("car_dealer", "car_repair", "gas_station", "car_wash"),
    "beauty": ("beauty_salon", "hair_care", "spa", "nail_salon"),
    "fitness": ("gym", "fitness_center", "sports_club", "yoga_studio"),
    "education": ("school", "university", "library", "tutoring"),
}


# =============================================================================
# Validation
# =============================================================================

def validate_model(model: ScoringModel) -> None:
    """Raise ValueError if *model* has inconsistent bands or tiers.

    Uses ValueError, not assert, so validation is never stripped by python -O.
    """
    bands = [model.foot_traffic.default_band, model.safety.default_band,
             model.accessibility.default_band]
    for factor in (model.foot_traffic, model.safety):
        for zone in factor.zones:
            if zone.source not in factor.type_sets:
                raise ValueError(f"Zone {zone.name!r} references unknown source {zone.source!r}")
            bands.append(zone.band)
    bands.extend(t.band for t in model.accessibility.tiers)
    for band in bands:
        if not 0 <= band.low <= band.high <= 100:
            raise ValueError(f"Invalid band [{band.low}, {band.high}]")

    counts = [t.min_count for t in model.accessibility.tiers]
    if counts != sorted(counts, reverse=True):
        raise ValueError("Accessibility tiers must be sorted highest min_count first")

    maxes = [t.max_count for t in model.competition.tiers]
    if maxes != sorted(maxes):
        raise ValueError("Competition tiers must be sorted lowest max_count first")

    if len(model.series.day_multipliers) != 7:
        raise ValueError("day_multipliers must cover all seven days")
    if model.series.hour_bands[-1].until_hour != 24:
        raise ValueError("hour_bands must extend to hour 24")


validate_model(SCORING_MODEL)

"""
Great-circle distance and zone-membership primitives.

Every factor scorer measures distance through this module so that all
radii in scoring_config.py are interpreted the same way (metres on a
spherical Earth).
"""

import math
from dataclasses import dataclass
from typing import Any, Dict, Optional

EARTH_RADIUS_M = 6371000.0


@dataclass(frozen=True)
class Coordinate:
    """A WGS84 point in decimal degrees."""
    lat: float
    lng: float

    def is_valid(self) -> bool:
        return (
            math.isfinite(self.lat)
            and math.isfinite(self.lng)
            and -90.0 <= self.lat <= 90.0
            and -180.0 <= self.lng <= 180.0
        )

    def to_dict(self) -> Dict[str, float]:
        return {"lat": self.lat, "lng": self.lng}


def distance_meters(a: Coordinate, b: Coordinate) -> float:
    """Haversine distance between two coordinates, in metres."""
    lat1, lat2 = math.radians(a.lat), math.radians(b.lat)
    dlat = lat2 - lat1
    dlng = math.radians(b.lng - a.lng)

    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlng / 2) ** 2
    h = min(1.0, h)
    c = 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))

    return EARTH_RADIUS_M * c


def within_radius(origin: Coordinate, point: Coordinate, radius_m: float) -> bool:
    return distance_meters(origin, point) <= radius_m


def point_location(place: Dict[str, Any]) -> Optional[Coordinate]:
    """Return the ``geometry.location`` of a place record, or None.

    Places without a usable location are skipped by every scorer.
    """
    location = (place.get("geometry") or {}).get("location")
    if not isinstance(location, dict):
        return None
    try:
        return Coordinate(float(location["lat"]), float(location["lng"]))
    except (KeyError, TypeError, ValueError):
        return None

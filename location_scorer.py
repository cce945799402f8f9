#!/usr/bin/env python3
"""
Business Location Scorer

Turns a geocoded address plus its nearby places and transit stops into a
0-100 GeoScore for siting a business, and caches the result under the
normalized address.  The CLI returns the cached record for an address it
has already scored unless --refresh is given.

Place lists are Google Places-style dicts (name, vicinity, types,
geometry.location, rating, ...) supplied by the caller; this module does
no network I/O.

Usage:
    python location_scorer.py "123 Main St, New York, NY" --lat 40.7128 --lng -74.0060 \\
        --places nearby.json --transit transit.json --business-type food_service
"""

import argparse
import json
import logging
import os
import sys
from typing import Any, Dict, List, Optional, Sequence, Tuple

from dotenv import load_dotenv

from factor_scorers import Place
from geo_index import Coordinate
from models import LocationCache, LocationRecord, normalize_location_key
from score_aggregator import generate_score, get_score_label
from score_trace import (
    TraceContext,
    clear_trace,
    get_trace,
    set_trace,
    skip_stage,
    timed_stage,
)
from scoring_config import DEFAULT_BUSINESS_TYPES, SCORING_MODEL, ScoringModel

load_dotenv()

logger = logging.getLogger(__name__)


# =============================================================================
# MAIN SCORING
# =============================================================================

def score_location(
    address: str,
    coords: Coordinate,
    places: Sequence[Place],
    transit_stops: Sequence[Place] = (),
    business_type: Optional[str] = None,
    business_types: Dict[str, Tuple[str, ...]] = DEFAULT_BUSINESS_TYPES,
    cache: Optional[LocationCache] = None,
    seeded: bool = False,
    model: ScoringModel = SCORING_MODEL,
) -> LocationRecord:
    """Score *address* and, when a cache is given, store the record.

    Seeded (demo) records are returned but never cached.  Raises
    ValueError for invalid coordinates or an address with no letters or
    digits to key on.
    """
    if not coords.is_valid():
        raise ValueError(f"Invalid coordinates: ({coords.lat}, {coords.lng})")

    key = normalize_location_key(address)
    if not key:
        raise ValueError(f"Address {address!r} has no letters or digits to key on")
    trace = get_trace()
    if trace:
        trace.model_version = model.version

    result = generate_score(
        coords,
        places,
        transit_stops,
        business_type=business_type,
        business_types=business_types,
        model=model,
    )
    record = LocationRecord(
        address=address,
        coordinates=coords,
        score=result.score,
        factors=result.factors,
        detailed_analysis=result.detailed_analysis,
        nearby_places=list(places),
        seeded=seeded,
    )

    if cache is None:
        skip_stage("cache_put", "no cache")
    elif seeded:
        skip_stage("cache_put", "seeded")
    else:
        timed_stage("cache_put", cache.put, key, record)
    return record


def cached_location(address: str, cache: LocationCache) -> Optional[LocationRecord]:
    """Previously stored record for *address*, if any."""
    key = normalize_location_key(address)
    return cache.get(key) if key else None


# =============================================================================
# OUTPUT
# =============================================================================

_FACTOR_LABELS = (
    ("footTraffic", "Foot traffic"),
    ("safety", "Safety"),
    ("competition", "Competition"),
    ("accessibility", "Accessibility"),
)


def format_result(record: LocationRecord) -> str:
    """Format a location record as a readable report"""
    lines = []
    factors = record.factors.to_dict()
    analysis = record.detailed_analysis

    lines.append("=" * 70)
    lines.append(f"LOCATION: {record.address}")
    lines.append(f"COORDINATES: {record.coordinates.lat:.6f}, {record.coordinates.lng:.6f}")
    lines.append("=" * 70)

    lines.append("\nFACTORS:")
    for key, label in _FACTOR_LABELS:
        lines.append(f"  - {label}: {factors[key]}/100")

    comp = analysis.competitor_analysis
    lines.append(f"\nCOMPETITORS: {comp['total']} ({comp['density']} density)")
    for place_type, count in sorted(comp["types"].items(), key=lambda kv: -kv[1]):
        lines.append(f"  - {place_type}: {count}")

    safety = analysis.safety_metrics
    lines.append(
        f"\nSAFETY: lighting {safety['lighting']}, surveillance {safety['surveillance']}, "
        f"risk index {safety['crimeRate']}"
    )

    lines.append(f"\n{'=' * 70}")
    lines.append(f"GEOSCORE: {record.score}/100 ({get_score_label(record.score)['label']})")
    lines.append("=" * 70)
    if record.seeded:
        lines.append("\nNOTE: demo data, not cached")

    return "\n".join(lines)


# =============================================================================
# CLI
# =============================================================================

def load_places(path: Optional[str]) -> List[Place]:
    """Read a place list from a JSON file.

    Accepts a bare list or a Places API response with a ``results`` array.
    """
    if not path:
        return []
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    if isinstance(data, dict):
        data = data.get("results", [])
    if not isinstance(data, list):
        raise ValueError(f"{path}: expected a list of places")
    return [p for p in data if isinstance(p, dict)]


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Score an address for business siting from nearby places and transit"
    )
    parser.add_argument("address", help="Business address to score")
    parser.add_argument("--lat", type=float, required=True, help="Latitude of the address")
    parser.add_argument("--lng", type=float, required=True, help="Longitude of the address")
    parser.add_argument("--places", help="JSON file with nearby places")
    parser.add_argument("--transit", help="JSON file with nearby transit stops")
    parser.add_argument(
        "--business-type",
        choices=sorted(DEFAULT_BUSINESS_TYPES),
        help="Business category used to select competitors",
    )
    parser.add_argument("--seeded", action="store_true", help="Mark as demo data (never cached)")
    parser.add_argument("--no-cache", action="store_true", help="Do not read or write the cache")
    parser.add_argument(
        "--refresh",
        action="store_true",
        help="Re-score even if the address is already cached",
    )
    parser.add_argument(
        "--db-path",
        default=os.environ.get("GEOSCORE_DB_PATH"),
        help="SQLite cache path (or set GEOSCORE_DB_PATH env var)",
    )
    parser.add_argument("--json", action="store_true", help="Output as JSON instead of formatted text")
    parser.add_argument("--trace", action="store_true", help="Include the scoring trace in JSON output")

    args = parser.parse_args(argv)

    logging.basicConfig(level=os.environ.get("GEOSCORE_LOG_LEVEL", "INFO").upper())

    try:
        places = load_places(args.places)
        transit = load_places(args.transit)
    except (OSError, ValueError) as e:
        print(f"Error reading input: {e}", file=sys.stderr)
        return 1

    cache = None if args.no_cache else LocationCache(args.db_path)
    ctx = TraceContext(trace_id=normalize_location_key(args.address)[:40])
    set_trace(ctx)
    try:
        record = None
        if cache is None:
            skip_stage("cache_get", "no cache")
        elif args.refresh or args.seeded:
            skip_stage("cache_get", "refresh" if args.refresh else "seeded")
        else:
            record = timed_stage("cache_get", cached_location, args.address, cache)

        if record is not None:
            logger.info("Using cached record for %r (updated %s)", args.address, record.last_updated)
        else:
            record = score_location(
                args.address,
                Coordinate(args.lat, args.lng),
                places,
                transit,
                business_type=args.business_type,
                cache=cache,
                seeded=args.seeded,
            )
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        ctx.log_summary()
        clear_trace()

    if args.json:
        output: Dict[str, Any] = record.to_dict()
        if args.trace:
            output["trace"] = ctx.full_trace_dict()
        print(json.dumps(output, indent=2))
    else:
        print(format_result(record))
    return 0


if __name__ == "__main__":
    sys.exit(main())

"""
SQLite persistence for GeoScore location records.

One row per normalized address key.  Writes are single-row upserts, so
concurrent scoring runs for different addresses never overwrite each
other.  No ORM — just raw sqlite3.
"""

import json
import logging
import os
import re
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

from geo_index import Coordinate
from score_aggregator import DetailedAnalysis, Factors

load_dotenv()

logger = logging.getLogger(__name__)

DB_PATH = os.environ.get("GEOSCORE_DB_PATH", "geoscore.db")

_NON_KEY_CHARS = re.compile(r"[^a-z0-9]")
_DASH_RUNS = re.compile(r"-+")


def normalize_location_key(address: str) -> str:
    """Lowercase, map everything outside [a-z0-9] to '-', collapse dashes.

    Leading and trailing dashes are dropped so "123 Main St." and
    "123 main st" share a key.  Idempotent.  Addresses with no ASCII
    letters or digits (e.g. "!!!") map to "", which the cache rejects.
    """
    key = _NON_KEY_CHARS.sub("-", address.lower())
    return _DASH_RUNS.sub("-", key).strip("-")


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# =============================================================================
# Location record
# =============================================================================

@dataclass(frozen=True)
class LocationRecord:
    """The persisted result of one scoring run.

    Re-scoring an address creates a new record that replaces the old one
    under the same key.
    """
    address: str
    coordinates: Coordinate
    score: int
    factors: Factors
    detailed_analysis: DetailedAnalysis
    nearby_places: List[Dict[str, Any]] = field(default_factory=list)
    last_updated: str = field(default_factory=utc_now_iso)
    seeded: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "location": self.address,
            "coordinates": self.coordinates.to_dict(),
            "score": self.score,
            "factors": self.factors.to_dict(),
            "lastUpdated": self.last_updated,
            "nearbyPlaces": self.nearby_places,
            "detailedAnalysis": self.detailed_analysis.to_dict(),
            "isSeeded": self.seeded,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LocationRecord":
        coords = data["coordinates"]
        return cls(
            address=data["location"],
            coordinates=Coordinate(float(coords["lat"]), float(coords["lng"])),
            score=int(data["score"]),
            factors=Factors.from_dict(data["factors"]),
            detailed_analysis=DetailedAnalysis.from_dict(data.get("detailedAnalysis", {})),
            nearby_places=list(data.get("nearbyPlaces", [])),
            last_updated=data.get("lastUpdated", ""),
            seeded=bool(data.get("isSeeded", False)),
        )


# =============================================================================
# Location cache
# =============================================================================

class LocationCache:
    """Address-keyed store of LocationRecords backed by SQLite."""

    def __init__(self, db_path: Optional[str] = None):
        self.db_path = db_path or DB_PATH
        self.init_db()

    def _get_db(self):
        """Get a sqlite3 connection with WAL mode for concurrent reads."""
        conn = sqlite3.connect(self.db_path, timeout=10)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        return conn

    def init_db(self):
        """Create tables if they don't exist. Safe to call on every startup."""
        conn = self._get_db()
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS location_cache (
                location_key  TEXT PRIMARY KEY,
                address       TEXT NOT NULL,
                score         INTEGER NOT NULL,
                last_updated  TEXT NOT NULL,
                record_json   TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_location_cache_updated
                ON location_cache(last_updated);
        """)
        conn.commit()
        conn.close()

    def get(self, key: str) -> Optional[LocationRecord]:
        """Load the record stored under *key*, or None if absent or unreadable."""
        conn = self._get_db()
        row = conn.execute(
            "SELECT record_json FROM location_cache WHERE location_key = ?", (key,)
        ).fetchone()
        conn.close()

        if not row:
            return None

        try:
            return LocationRecord.from_dict(json.loads(row["record_json"]))
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            logger.error("Corrupted record_json for location %s: %s", key, e)
            return None

    def put(self, key: str, record: LocationRecord) -> bool:
        """Store *record* under *key*, replacing any existing record.

        Seeded (demo) records are never persisted; returns False for them.
        Raises ValueError for an empty key and TypeError for a record that
        is not JSON-serializable.
        """
        if not key:
            raise ValueError("location key must not be empty")
        if record.seeded:
            logger.info("Not caching seeded record for %s", key)
            return False

        conn = self._get_db()
        try:
            conn.execute(
                """INSERT INTO location_cache
                   (location_key, address, score, last_updated, record_json)
                   VALUES (?, ?, ?, ?, ?)
                   ON CONFLICT(location_key) DO UPDATE SET
                       address = excluded.address,
                       score = excluded.score,
                       last_updated = excluded.last_updated,
                       record_json = excluded.record_json""",
                (
                    key,
                    record.address,
                    record.score,
                    record.last_updated,
                    json.dumps(record.to_dict()),
                ),
            )
            conn.commit()
        finally:
            conn.close()
        return True

    def recent(self, limit: int = 20) -> List[Dict[str, Any]]:
        """Most recently updated locations (key, address, score, last_updated)."""
        conn = self._get_db()
        rows = conn.execute(
            """SELECT location_key, address, score, last_updated
               FROM location_cache ORDER BY last_updated DESC LIMIT ?""",
            (limit,),
        ).fetchall()
        conn.close()
        return [dict(row) for row in rows]

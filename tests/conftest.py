"""Shared fixtures for the GeoScore test suite.

Points the default cache database at a temporary file and provides a
per-test LocationCache.
"""

import atexit
import os
import tempfile

import pytest

# Point the DB at a temp file BEFORE importing models (it reads DB_PATH at import time)
_test_db_fd, _test_db_path = tempfile.mkstemp(suffix=".db")
os.close(_test_db_fd)  # close the fd immediately; sqlite3 opens its own handle
os.environ["GEOSCORE_DB_PATH"] = _test_db_path
atexit.register(lambda: os.unlink(_test_db_path) if os.path.exists(_test_db_path) else None)

from models import LocationCache  # noqa: E402
from score_trace import clear_trace  # noqa: E402


@pytest.fixture()
def cache(tmp_path):
    """A LocationCache backed by a fresh per-test database."""
    return LocationCache(str(tmp_path / "locations.db"))


@pytest.fixture(autouse=True)
def _no_leaked_trace():
    """Make sure no test leaves a trace context on the thread."""
    clear_trace()
    yield
    clear_trace()

"""
Shared fixtures for record store tests.
"""

from datetime import datetime, timedelta, timezone

import pytest

from recordvault.core.config import StoreSettings
from recordvault.core.db import MemorySubstrate
from recordvault.core.store import RecordStore, new_record_id
from recordvault.util.logging import StructuredLogger


@pytest.fixture
def settings():
    """Default settings, independent of the developer's environment."""
    return StoreSettings(db_path=":memory:", debug=False)


@pytest.fixture
def substrate():
    return MemorySubstrate()


@pytest.fixture
def test_logger():
    return StructuredLogger("recordvault.test")


@pytest.fixture
def store(substrate, settings, test_logger):
    """Store over an in-memory substrate with its own cache."""
    record_store = RecordStore(substrate, settings=settings, logger=test_logger)
    yield record_store
    record_store.close()


@pytest.fixture
def make_raw():
    """Factory for valid raw (wire-format) record dicts."""
    def _make(ago: timedelta = timedelta(hours=1), duration=60, **extra):
        raw = {
            "id": new_record_id(),
            "startTime": (datetime.now(timezone.utc) - ago).isoformat(),
            "duration": duration,
        }
        raw.update(extra)
        return raw
    return _make

"""Shared fixtures: local zone, sources, and in-memory fakes"""

from datetime import datetime

import pytest
from dateutil import tz as dateutil_tz

from database.kv_store import KeyValueStore, MemoryTier
from exceptions import VendorHTTPError
from vendors.sources import KNOWN_SOURCES

CHICAGO = dateutil_tz.gettz("America/Chicago")


class FakeClock:
    """Settable clock for TTL and window tests"""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class FakeSourceClient:
    """SourceClient returning canned listings, or raising per source"""

    def __init__(self, listings=None, details=None):
        self.listings = listings or {}
        self.details = details or {}
        self.listing_calls = []
        self.detail_calls = []

    async def fetch_listing(self, source_id):
        self.listing_calls.append(source_id)
        result = self.listings.get(source_id, [])
        if isinstance(result, Exception):
            raise result
        return result

    async def fetch_detail(self, source_id, event_id):
        self.detail_calls.append((source_id, event_id))
        result = self.details.get((source_id, event_id), {})
        if isinstance(result, Exception):
            raise result
        return result


@pytest.fixture
def tz():
    return CHICAGO


@pytest.fixture
def milwaukee():
    return KNOWN_SOURCES["milwaukee"]


@pytest.fixture
def county():
    return KNOWN_SOURCES["milwaukeecounty"]


@pytest.fixture
def memory_store():
    return KeyValueStore([MemoryTier()])


NOW = datetime(2025, 11, 19, 15, 0, tzinfo=CHICAGO)  # Wednesday


def raw_event(event_id, day, time="6:30 PM", body_id="7", **extra):
    """Legistar-shaped listing record for one meeting"""
    record = {
        "EventId": event_id,
        "EventDate": day.strftime("%Y-%m-%dT00:00:00"),
        "EventTime": time,
        "EventBodyId": body_id,
        "EventBodyName": "Common Council",
    }
    record.update(extra)
    return record


def http_error(source_id):
    return VendorHTTPError("HTTP 503 error", vendor="legistar", status_code=503, source_id=source_id)

"""
Tests for CalendarService - the request/response boundary

Every call returns a plain dict; failures never escape as exceptions.
"""

import asyncio
from datetime import timedelta

import pytest

from conftest import CHICAGO, NOW, FakeClock, FakeSourceClient, http_error, raw_event
from exceptions import VendorHTTPError
from pipeline.aggregator import Aggregator
from server.services.calendar import CalendarService
from vendors.normalizer import EventNormalizer


class SlowAggregator:
    async def get_events(self, force_refresh=False):
        await asyncio.sleep(5)

    async def get_event_detail(self, client, event_id):
        await asyncio.sleep(5)


class RecordingCounter:
    def __init__(self):
        self.calls = []

    def labels(self, **labels):
        self.calls.append(labels)
        return self

    def inc(self, amount=1):
        pass


class RecordingMetrics:
    def __init__(self):
        self.api_requests = RecordingCounter()


@pytest.fixture
def source_client():
    return FakeSourceClient(
        listings={"milwaukee": [raw_event(1, NOW + timedelta(days=1))]},
        details={("milwaukee", "1"): {"EventId": 1, "EventVideoPath": "https://example.org/v"}},
    )


@pytest.fixture
def service(memory_store, source_client, milwaukee):
    aggregator = Aggregator(
        store=memory_store,
        client=source_client,
        normalizers={"milwaukee": EventNormalizer(milwaukee, CHICAGO)},
        clock=FakeClock(NOW),
    )
    return CalendarService(aggregator, timeout=2)


class TestGetEvents:
    def test_success_shape(self, service):
        result = asyncio.run(service.get_events())

        assert result["success"] is True
        assert result["fromCache"] is False
        assert [e["id"] for e in result["events"]] == ["milwaukee-1"]
        assert set(result["events"][0]) >= {"startDateTime", "sourceLabel", "sourceColor", "richText"}
        assert "stale" not in result

    def test_total_failure_reports_sources(self, service, source_client):
        source_client.listings["milwaukee"] = http_error("milwaukee")

        result = asyncio.run(service.get_events())

        assert result["success"] is False
        assert result["error"].startswith("Unable to load meetings")
        assert result["failedSources"] == ["milwaukee"]

    def test_timeout_ceiling(self):
        service = CalendarService(SlowAggregator(), timeout=0.05)

        result = asyncio.run(service.get_events(force_refresh=True))

        assert result == {"success": False, "error": "Request timed out after 0.05s"}


class TestGetEventDetail:
    def test_success(self, service):
        result = asyncio.run(service.get_event_detail("milwaukee", "1"))
        assert result == {"success": True, "videoUrl": "https://example.org/v", "minutesUrl": None}

    def test_missing_client(self, service):
        result = asyncio.run(service.get_event_detail(None, "1"))
        assert result == {"success": False, "error": "client is required"}

    def test_missing_event_id(self, service):
        result = asyncio.run(service.get_event_detail("milwaukee", ""))
        assert result == {"success": False, "error": "eventId is required"}

    def test_lookup_failure(self, service, source_client):
        source_client.details[("milwaukee", "9")] = VendorHTTPError(
            "HTTP 404 error", vendor="legistar", status_code=404
        )
        result = asyncio.run(service.get_event_detail("milwaukee", "9"))
        assert result == {"success": False, "error": "Lookup failed: HTTP 404 error"}


class TestHandleMessage:
    def test_get_events_action(self, service):
        result = asyncio.run(service.handle_message({"action": "getEvents", "forceRefresh": True}))
        assert result["success"] is True

    def test_get_event_detail_action(self, service):
        result = asyncio.run(service.handle_message(
            {"action": "getEventDetail", "client": "milwaukee", "eventId": 1}
        ))
        assert result["videoUrl"] == "https://example.org/v"

    def test_unknown_action(self, service):
        result = asyncio.run(service.handle_message({"action": "dance"}))
        assert result == {"success": False, "error": "Unknown action: dance"}

    def test_non_object_message(self, service):
        result = asyncio.run(service.handle_message(["getEvents"]))
        assert result == {"success": False, "error": "Message must be an object"}


def test_outcomes_counted_per_action(memory_store, source_client, milwaukee):
    metrics = RecordingMetrics()
    aggregator = Aggregator(
        store=memory_store,
        client=source_client,
        normalizers={"milwaukee": EventNormalizer(milwaukee, CHICAGO)},
        clock=FakeClock(NOW),
    )
    service = CalendarService(aggregator, metrics=metrics)

    asyncio.run(service.get_events())
    asyncio.run(service.get_event_detail(None, "1"))

    assert metrics.api_requests.calls == [
        {"action": "getEvents", "status": "success"},
        {"action": "getEventDetail", "status": "invalid"},
    ]

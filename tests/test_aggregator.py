"""
Tests for Aggregator

Drives get_events through cache hits, syncs, partial and total failures
with a fake source client and a settable clock.
"""

import asyncio
import sqlite3
from datetime import datetime, timedelta

import pytest

from conftest import CHICAGO, NOW, FakeClock, FakeSourceClient, http_error, raw_event
from database.kv_store import KeyValueStore, MemoryTier, SQLiteTier
from exceptions import SyncError, ValidationError, VendorHTTPError
from pipeline.aggregator import CACHE_KEY, Aggregator
from vendors.normalizer import EventNormalizer


class GatedSourceClient:
    """Holds every listing call until all sources have been entered"""

    def __init__(self, listings, delays=None):
        self.listings = listings
        self.delays = delays or {}
        self.entered = []
        self.finished = []
        self._all_entered = None

    async def fetch_listing(self, source_id):
        if self._all_entered is None:
            self._all_entered = asyncio.Event()
        self.entered.append(source_id)
        if len(self.entered) == len(self.listings):
            self._all_entered.set()
        await asyncio.wait_for(self._all_entered.wait(), timeout=1)

        await asyncio.sleep(self.delays.get(source_id, 0))
        self.finished.append(source_id)
        result = self.listings[source_id]
        if isinstance(result, Exception):
            raise result
        return result


@pytest.fixture
def clock():
    return FakeClock(NOW)


@pytest.fixture
def client():
    return FakeSourceClient(listings={
        "milwaukee": [
            raw_event(1, NOW + timedelta(days=2)),
            raw_event(2, NOW - timedelta(days=3), time="9:00 AM"),
        ],
        "milwaukeecounty": [
            raw_event(10, NOW + timedelta(days=1), body_id="3"),
        ],
    })


@pytest.fixture
def aggregator(memory_store, client, clock, milwaukee, county):
    return Aggregator(
        store=memory_store,
        client=client,
        normalizers={
            "milwaukee": EventNormalizer(milwaukee, CHICAGO),
            "milwaukeecounty": EventNormalizer(county, CHICAGO),
        },
        clock=clock,
    )


def _ids(response):
    return [event.id for event in response.events]


class TestSync:
    def test_fresh_sync_sorted_and_cached(self, aggregator, memory_store, client):
        response = asyncio.run(aggregator.get_events())

        assert response.from_cache is False
        assert _ids(response) == ["milwaukee-2", "milwaukeecounty-10", "milwaukee-1"]
        assert sorted(client.listing_calls) == ["milwaukee", "milwaukeecounty"]

        cached = memory_store.get(CACHE_KEY)
        assert [e["id"] for e in cached["events"]] == _ids(response)
        assert cached["expiresAt"] == (NOW + timedelta(minutes=30)).isoformat()

    def test_window_law(self, aggregator, client):
        anchor = datetime(2025, 11, 10, tzinfo=CHICAGO)
        client.listings["milwaukee"] = [
            raw_event(1, anchor - timedelta(days=1), time="11:59 PM"),
            raw_event(2, anchor, time="12:00 AM"),
            raw_event(3, NOW + timedelta(days=90), time="3:00 PM"),
            raw_event(4, NOW + timedelta(days=91)),
        ]
        client.listings["milwaukeecounty"] = []

        response = asyncio.run(aggregator.get_events())

        assert _ids(response) == ["milwaukee-2", "milwaukee-3"]
        for event in response.events:
            assert anchor <= event.start_date_time <= NOW + timedelta(days=90)

    def test_duplicates_within_source_consolidated(self, aggregator, client):
        day = NOW + timedelta(days=4)
        client.listings["milwaukee"] = [
            raw_event(1, day, EventAgendaFile="https://example.org/agenda.pdf"),
            raw_event(5, day, EventVideoPath="https://example.org/video"),
        ]

        events = asyncio.run(aggregator.get_events()).events

        merged = [e for e in events if e.source == "milwaukee"]
        assert len(merged) == 1
        assert merged[0].agenda_url == "https://example.org/agenda.pdf"
        assert merged[0].video_url == "https://example.org/video"

    def test_partial_failure_keeps_other_sources(self, aggregator, client):
        client.listings["milwaukeecounty"] = http_error("milwaukeecounty")

        response = asyncio.run(aggregator.get_events())

        assert _ids(response) == ["milwaukee-2", "milwaukee-1"]
        assert response.stale is None

    def test_normalization_crash_counts_as_failed_source(self, aggregator, client):
        client.listings["milwaukeecounty"] = None

        response = asyncio.run(aggregator.get_events())

        assert {e.source for e in response.events} == {"milwaukee"}

    def test_all_sources_failing_without_cache_raises(self, aggregator, client):
        client.listings = {
            "milwaukee": http_error("milwaukee"),
            "milwaukeecounty": http_error("milwaukeecounty"),
        }

        with pytest.raises(SyncError) as exc_info:
            asyncio.run(aggregator.get_events())

        assert exc_info.value.failed_sources == ["milwaukee", "milwaukeecounty"]

    def test_sources_fetched_concurrently(self, memory_store, clock, milwaukee, county):
        client = GatedSourceClient({
            "milwaukee": [raw_event(1, NOW + timedelta(days=2))],
            "milwaukeecounty": [raw_event(10, NOW + timedelta(days=1), body_id="3")],
        })
        aggregator = Aggregator(
            store=memory_store,
            client=client,
            normalizers={
                "milwaukee": EventNormalizer(milwaukee, CHICAGO),
                "milwaukeecounty": EventNormalizer(county, CHICAGO),
            },
            clock=clock,
        )

        response = asyncio.run(aggregator.get_events())

        assert sorted(client.entered) == ["milwaukee", "milwaukeecounty"]
        assert _ids(response) == ["milwaukeecounty-10", "milwaukee-1"]

    def test_slow_failing_source_does_not_hold_back_others(self, memory_store, clock, milwaukee, county):
        client = GatedSourceClient(
            {
                "milwaukee": [raw_event(1, NOW + timedelta(days=2))],
                "milwaukeecounty": http_error("milwaukeecounty"),
            },
            delays={"milwaukeecounty": 0.05},
        )
        aggregator = Aggregator(
            store=memory_store,
            client=client,
            normalizers={
                "milwaukee": EventNormalizer(milwaukee, CHICAGO),
                "milwaukeecounty": EventNormalizer(county, CHICAGO),
            },
            clock=clock,
        )

        response = asyncio.run(aggregator.get_events())

        assert client.finished == ["milwaukee", "milwaukeecounty"]
        assert _ids(response) == ["milwaukee-1"]

    def test_empty_result_is_still_cached(self, aggregator, client, clock, memory_store):
        client.listings = {"milwaukee": [], "milwaukeecounty": []}

        first = asyncio.run(aggregator.get_events())
        clock.now = NOW + timedelta(minutes=5)
        second = asyncio.run(aggregator.get_events())

        assert first.events == [] and first.from_cache is False
        assert second.events == [] and second.from_cache is True
        assert memory_store.get(CACHE_KEY)["events"] == []

    def test_cache_write_failure_does_not_fail_request(self, client, clock, milwaukee):
        aggregator = Aggregator(
            store=KeyValueStore([MemoryTier(enabled=False)]),
            client=client,
            normalizers={"milwaukee": EventNormalizer(milwaukee, CHICAGO)},
            clock=clock,
        )

        response = asyncio.run(aggregator.get_events())

        assert _ids(response) == ["milwaukee-2", "milwaukee-1"]

    def test_aggregator_needs_a_source(self, memory_store, client):
        with pytest.raises(ValueError):
            Aggregator(store=memory_store, client=client, normalizers={})


class TestCacheTTL:
    def test_within_ttl_served_from_cache(self, aggregator, client, clock):
        asyncio.run(aggregator.get_events())
        clock.now = NOW + timedelta(minutes=29)

        response = asyncio.run(aggregator.get_events())

        assert response.from_cache is True
        assert len(client.listing_calls) == 2
        assert response.fetched_at == NOW

    def test_past_ttl_triggers_sync(self, aggregator, client, clock):
        asyncio.run(aggregator.get_events())
        clock.now = NOW + timedelta(minutes=31)

        response = asyncio.run(aggregator.get_events())

        assert response.from_cache is False
        assert len(client.listing_calls) == 4
        assert response.fetched_at == clock.now

    def test_force_refresh_skips_fresh_cache(self, aggregator, client):
        asyncio.run(aggregator.get_events())
        response = asyncio.run(aggregator.get_events(force_refresh=True))

        assert response.from_cache is False
        assert len(client.listing_calls) == 4

    def test_malformed_cache_treated_as_absent(self, aggregator, memory_store, client):
        memory_store.set(CACHE_KEY, {"events": "not a list", "fetchedAt": NOW.isoformat()})

        response = asyncio.run(aggregator.get_events())

        assert response.from_cache is False
        assert len(client.listing_calls) == 2

    def test_undecodable_durable_cache_treated_as_absent(self, client, clock, milwaukee, county, tmp_path):
        path = str(tmp_path / "cache.db")
        durable = SQLiteTier(path)
        with sqlite3.connect(path) as conn:
            conn.execute(
                "INSERT INTO kv_cache (key, value, updated_at) VALUES (?, ?, 0)", (CACHE_KEY, "{not json")
            )
        aggregator = Aggregator(
            store=KeyValueStore([MemoryTier(), durable]),
            client=client,
            normalizers={
                "milwaukee": EventNormalizer(milwaukee, CHICAGO),
                "milwaukeecounty": EventNormalizer(county, CHICAGO),
            },
            clock=clock,
        )

        assert aggregator.cache_status()["cached"] is False

        response = asyncio.run(aggregator.get_events())

        assert response.from_cache is False
        assert len(client.listing_calls) == 2
        assert aggregator.cache_status()["cached"] is True


class TestStaleFallback:
    def _prime_then_fail(self, aggregator, client):
        asyncio.run(aggregator.get_events())
        client.listings = {
            "milwaukee": http_error("milwaukee"),
            "milwaukeecounty": http_error("milwaukeecounty"),
        }

    def test_stale_cache_served_within_window(self, aggregator, client, clock):
        self._prime_then_fail(aggregator, client)
        clock.now = NOW + timedelta(hours=23)

        response = asyncio.run(aggregator.get_events())

        assert response.from_cache is True
        assert response.stale is True
        assert response.to_dict()["stale"] is True
        assert _ids(response) == ["milwaukee-2", "milwaukeecounty-10", "milwaukee-1"]

    def test_force_refresh_failure_also_falls_back(self, aggregator, client, clock):
        self._prime_then_fail(aggregator, client)
        clock.now = NOW + timedelta(minutes=1)

        response = asyncio.run(aggregator.get_events(force_refresh=True))

        assert response.stale is True

    def test_error_propagates_past_window(self, aggregator, client, clock):
        self._prime_then_fail(aggregator, client)
        clock.now = NOW + timedelta(hours=25)

        with pytest.raises(SyncError):
            asyncio.run(aggregator.get_events())

    def test_stale_flag_absent_on_normal_responses(self, aggregator):
        assert "stale" not in asyncio.run(aggregator.get_events()).to_dict()


class TestEventDetail:
    def test_detail_links_resolved(self, aggregator, client):
        client.details[("milwaukee", "42")] = {
            "EventId": 42,
            "EventMedia": "77",
            "EventMinutesFile": "https://example.org/minutes.pdf",
        }

        detail = asyncio.run(aggregator.get_event_detail("milwaukee", 42))

        assert detail.minutes_url == "https://example.org/minutes.pdf"
        assert detail.video_url.endswith("clip_id=77")
        assert client.detail_calls == [("milwaukee", "42")]

    @pytest.mark.parametrize("client_id,event_id", [
        (None, "42"),
        ("", "42"),
        ("milwaukee", None),
        ("milwaukee", "  "),
        ("gotham", "42"),
    ])
    def test_invalid_requests_rejected(self, aggregator, client, client_id, event_id):
        with pytest.raises(ValidationError):
            asyncio.run(aggregator.get_event_detail(client_id, event_id))
        assert client.detail_calls == []

    def test_lookup_failure_propagates(self, aggregator, client):
        client.details[("milwaukee", "42")] = http_error("milwaukee")
        with pytest.raises(VendorHTTPError):
            asyncio.run(aggregator.get_event_detail("milwaukee", "42"))


class TestCacheMaintenance:
    def test_status_and_clear(self, aggregator, clock):
        assert aggregator.cache_status()["cached"] is False

        asyncio.run(aggregator.get_events())
        clock.now = NOW + timedelta(hours=1)
        status = aggregator.cache_status()

        assert status["cached"] is True
        assert status["events"] == 3
        assert status["ageSeconds"] == 3600
        assert status["fresh"] is False
        assert status["withinStaleWindow"] is True

        assert aggregator.clear_cache() is True
        assert aggregator.cache_status()["cached"] is False
        assert aggregator.clear_cache() is False

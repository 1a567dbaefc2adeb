"""
Aggregator - fan-out, normalize, window, consolidate, cache

get_events() serves a fresh cached snapshot when it has one, otherwise syncs
every source concurrently and writes a new snapshot. When a sync produces
nothing usable it falls back to a snapshot younger than the stale window,
tagged stale, and otherwise raises.
"""

import asyncio
import time
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Protocol

from pydantic import ValidationError as PydanticValidationError

from config import Config, get_logger
from database.kv_store import NOT_FOUND, KeyValueStore, describe_tiers
from exceptions import CacheError, MeetcalError, SyncError, ValidationError
from pipeline.consolidator import EventConsolidator
from pipeline.models import CachePayload, EventDetail, EventsResponse, NormalizedEvent
from pipeline.protocols import MetricsCollector, NullMetrics
from pipeline.utils import previous_week_monday
from vendors.adapters.legistar_adapter_async import AsyncLegistarAdapter
from vendors.normalizer import EventNormalizer, RawEventRecord
from vendors.sources import SourceConfig, get_sources

logger = get_logger(__name__).bind(component="aggregator")

CACHE_KEY = "meetcal:events:v1"


class SourceClient(Protocol):
    async def fetch_listing(self, source_id: str) -> List[RawEventRecord]: ...

    async def fetch_detail(self, source_id: str, event_id: str) -> RawEventRecord: ...


class Aggregator:
    """Owns one source client, one consolidator and the cache for a process"""

    def __init__(
        self,
        store: KeyValueStore,
        client: SourceClient,
        normalizers: Dict[str, EventNormalizer],
        consolidator: Optional[EventConsolidator] = None,
        clock: Optional[Callable[[], datetime]] = None,
        cache_ttl: timedelta = timedelta(minutes=30),
        stale_window: timedelta = timedelta(hours=24),
        window_forward: timedelta = timedelta(days=90),
        metrics: Optional[MetricsCollector] = None,
    ):
        if not normalizers:
            raise ValueError("Aggregator needs at least one source")

        self.store = store
        self.client = client
        self.normalizers = normalizers
        self.consolidator = consolidator or EventConsolidator()
        self.clock = clock or (lambda: datetime.now().astimezone())
        self.cache_ttl = cache_ttl
        self.stale_window = stale_window
        self.window_forward = window_forward
        self.metrics = metrics or NullMetrics()

    @property
    def source_ids(self) -> List[str]:
        return list(self.normalizers)

    # ---------- cache ----------

    def _read_cache(self) -> Optional[CachePayload]:
        """Cached payload, or None when absent, unreadable or malformed"""
        try:
            raw = self.store.get(CACHE_KEY)
        except CacheError as e:
            logger.warning("cache read failed", error=str(e))
            return None

        if raw is NOT_FOUND:
            return None

        try:
            return CachePayload.model_validate(raw)
        except PydanticValidationError as e:
            logger.warning("discarding malformed cache payload", errors=e.error_count())
            return None

    def _write_cache(self, payload: CachePayload) -> None:
        try:
            self.store.set(CACHE_KEY, payload.to_dict())
        except CacheError as e:
            logger.warning("cache write failed", error=str(e))

    def _age(self, payload: CachePayload, now: datetime) -> timedelta:
        return now - payload.fetched_at

    # ---------- public operations ----------

    async def get_events(self, force_refresh: bool = False) -> EventsResponse:
        """
        Return the consolidated event list.

        Args:
            force_refresh: Skip the fresh-cache shortcut and sync now

        Returns:
            EventsResponse; from_cache/stale say where the events came from

        Raises:
            SyncError: sync failed and no snapshot within the stale window exists
        """
        now = self.clock()
        cached: Optional[CachePayload] = None

        if not force_refresh:
            cached = self._read_cache()
            if cached is not None and self._age(cached, now) < self.cache_ttl:
                self.metrics.cache_lookups.labels(result="hit").inc()
                logger.info("serving cached events", events=len(cached.events), age_seconds=int(self._age(cached, now).total_seconds()))
                return EventsResponse.from_payload(cached, from_cache=True)
            self.metrics.cache_lookups.labels(result="miss").inc()

        try:
            payload = await self.sync(now)
        except MeetcalError as e:
            if cached is None:
                cached = self._read_cache()
            if cached is not None and self._age(cached, now) < self.stale_window:
                self.metrics.cache_lookups.labels(result="stale").inc()
                logger.warning(
                    "sync failed - serving stale cache",
                    error=e.message,
                    age_seconds=int(self._age(cached, now).total_seconds()),
                )
                return EventsResponse.from_payload(cached, from_cache=True, stale=True)
            logger.error("sync failed with no usable cache", error=e.message)
            raise

        return EventsResponse.from_payload(payload, from_cache=False)

    async def sync(self, now: Optional[datetime] = None) -> CachePayload:
        """Fetch all sources concurrently, build and store a new snapshot.

        Raises:
            SyncError: every source was rejected
        """
        now = now or self.clock()
        start_time = time.time()
        source_ids = self.source_ids

        logger.info("starting sync", sources=source_ids)
        results = await asyncio.gather(
            *(self.client.fetch_listing(source_id) for source_id in source_ids),
            return_exceptions=True,
        )

        failures: Dict[str, Exception] = {}
        events: List[NormalizedEvent] = []
        window_start = previous_week_monday(now)
        window_end = now + self.window_forward

        for source_id, result in zip(source_ids, results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                failures[source_id] = result
                self.metrics.record_error(component="aggregator", error=result)
                logger.warning("source rejected", source=source_id, error=str(result), error_type=type(result).__name__)
                continue

            try:
                normalized = self.normalizers[source_id].normalize(result)
            except (TypeError, ValueError, AttributeError) as e:
                failures[source_id] = e
                self.metrics.record_error(component="normalizer", error=e)
                logger.error("source normalization failed", source=source_id, error=str(e), error_type=type(e).__name__)
                continue

            in_window = [
                event for event in normalized
                if window_start <= event.start_date_time <= window_end
            ]
            self.metrics.events_synced.labels(source=source_id).inc(len(in_window))
            logger.info(
                "source fulfilled",
                source=source_id,
                raw=len(result),
                normalized=len(normalized),
                in_window=len(in_window),
            )
            events.extend(in_window)

        if len(failures) == len(source_ids):
            raise SyncError("All sources failed to sync", failures=failures)

        consolidated = self.consolidator.deduplicate(events)
        consolidated.sort(key=lambda event: event.start_date_time)

        payload = CachePayload(
            events=consolidated,
            fetched_at=now,
            expires_at=now + self.cache_ttl,
        )
        self._write_cache(payload)

        duration = time.time() - start_time
        self.metrics.sync_duration.observe(duration)
        logger.info(
            "sync complete",
            events=len(consolidated),
            rejected=sorted(failures),
            duration_seconds=round(duration, 2),
        )
        return payload

    async def get_event_detail(self, client: Optional[str], event_id: Any) -> EventDetail:
        """Video and minutes links for one event.

        Raises:
            ValidationError: client or event_id missing, or client unknown
            VendorError: lookup failed
        """
        if not client:
            raise ValidationError("client is required", field="client")
        if event_id is None or str(event_id).strip() == "":
            raise ValidationError("eventId is required", field="eventId")

        normalizer = self.normalizers.get(client)
        if normalizer is None:
            raise ValidationError(f"Unknown client {client!r}", field="client", value=client)

        raw = await self.client.fetch_detail(client, str(event_id).strip())
        return normalizer.detail_links(raw)

    def clear_cache(self) -> bool:
        """Drop the cached snapshot. Returns True if one was stored."""
        removed = self.store.delete(CACHE_KEY)
        logger.info("cache cleared", removed=removed)
        return removed

    def cache_status(self) -> Dict[str, Any]:
        """Describe the cached snapshot without syncing"""
        now = self.clock()
        cached = self._read_cache()
        tiers = describe_tiers(self.store)
        if cached is None:
            return {"cached": False, "tiers": tiers}

        age = self._age(cached, now)
        return {
            "cached": True,
            "events": len(cached.events),
            "fetchedAt": cached.fetched_at.isoformat(),
            "expiresAt": cached.expires_at.isoformat(),
            "ageSeconds": int(age.total_seconds()),
            "fresh": age < self.cache_ttl,
            "withinStaleWindow": age < self.stale_window,
            "tiers": tiers,
        }

    @classmethod
    def from_config(
        cls,
        config: Config,
        store: Optional[KeyValueStore] = None,
        metrics: Optional[MetricsCollector] = None,
        sources: Optional[List[SourceConfig]] = None,
    ) -> "Aggregator":
        """Wire an Aggregator from configuration (one per process)"""
        tz = config.get_timezone()
        sources = sources or get_sources(config.SOURCES)

        def clock() -> datetime:
            return datetime.now(tz)

        client = AsyncLegistarAdapter(
            sources,
            tz=tz,
            listing_limit=config.LISTING_LIMIT,
            clock=clock,
            max_attempts=config.MAX_ATTEMPTS,
            retry_base_delay=config.RETRY_BASE_DELAY,
            http_timeout=config.HTTP_TIMEOUT,
            metrics=metrics,
        )
        if store is None:
            config.ensure_data_dir()
            store = KeyValueStore.create(config.CACHE_DB_PATH, ephemeral=config.EPHEMERAL_CACHE)

        return cls(
            store=store,
            client=client,
            normalizers={source.source_id: EventNormalizer(source, tz) for source in sources},
            clock=clock,
            cache_ttl=timedelta(minutes=config.CACHE_TTL_MINUTES),
            stale_window=timedelta(hours=config.STALE_WINDOW_HOURS),
            window_forward=timedelta(days=config.WINDOW_DAYS_FORWARD),
            metrics=metrics,
        )

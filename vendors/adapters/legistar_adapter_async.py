"""
Async Legistar Adapter - listing and detail lookups against the Legistar Web API

Every source in the registry is one Legistar client
(https://webapi.legistar.com/v1/{client}). One adapter instance serves all of
them; the source id picks the client.
"""

from datetime import datetime, tzinfo
from typing import Any, Callable, Dict, List, Optional

from vendors.adapters.base_adapter_async import AsyncBaseAdapter, logger
from vendors.sources import SourceConfig
from pipeline.utils import previous_week_monday
from exceptions import VendorError, VendorParsingError

LEGISTAR_API = "https://webapi.legistar.com/v1"

RawEventRecord = Dict[str, Any]


class AsyncLegistarAdapter(AsyncBaseAdapter):
    """Async adapter for Legistar-backed sources"""

    def __init__(
        self,
        sources: List[SourceConfig],
        tz: tzinfo,
        listing_limit: int = 200,
        clock: Optional[Callable[[], datetime]] = None,
        **kwargs,
    ):
        """
        Initialize async Legistar adapter.

        Args:
            sources: Sources this adapter may be asked about
            tz: Local zone used for the lookback anchor
            listing_limit: $top for listing queries (API max 1000)
            clock: Returns the current aware time; defaults to now in tz
            **kwargs: Retry/timeout/metrics settings for AsyncBaseAdapter
        """
        super().__init__(vendor="legistar", **kwargs)
        self.sources = {source.source_id: source for source in sources}
        self.tz = tz
        self.listing_limit = listing_limit
        self.clock = clock or (lambda: datetime.now(self.tz))

    def _source(self, source_id: str) -> SourceConfig:
        source = self.sources.get(source_id)
        if source is None:
            raise VendorError(f"Unknown source {source_id!r}", vendor=self.vendor, source_id=source_id)
        return source

    def _base_url(self, source_id: str) -> str:
        return f"{LEGISTAR_API}/{self._source(source_id).client}"

    def listing_params(self) -> Dict[str, Any]:
        """OData query for events starting on or after the lookback anchor.

        Recomputed per call since the anchor moves with the clock.
        """
        anchor = previous_week_monday(self.clock())
        return {
            "$filter": f"EventDate ge datetime'{anchor.strftime('%Y-%m-%d')}'",
            "$orderby": "EventDate asc",
            "$top": self.listing_limit,
        }

    async def fetch_listing(self, source_id: str) -> List[RawEventRecord]:
        """
        Fetch upcoming events for one source, with retry.

        Returns:
            Raw event dicts as the API sent them

        Raises:
            VendorHTTPError: after max_attempts transport failures
            VendorParsingError: body was not a JSON list
        """
        url = f"{self._base_url(source_id)}/events"
        params = self.listing_params()

        logger.info("legistar fetching listing", source=source_id, filter=params["$filter"])
        events = await self._with_retry(
            lambda: self._get_json(url, source_id=source_id, params=params),
            source_id=source_id,
            what="listing",
        )

        # API may return an error object instead of a list
        if not isinstance(events, list):
            raise VendorParsingError(
                f"Expected list from Legistar API at {url}, got {type(events).__name__}",
                vendor=self.vendor,
                source_id=source_id
            )

        logger.info("legistar listing fetched", source=source_id, count=len(events))
        return events

    async def fetch_detail(self, source_id: str, event_id: str) -> RawEventRecord:
        """
        Fetch one event by id, with retry. No date filter.

        Raises:
            VendorHTTPError: after max_attempts transport failures
            VendorParsingError: body was not a JSON object
        """
        url = f"{self._base_url(source_id)}/events/{event_id}"

        logger.info("legistar fetching detail", source=source_id, event_id=event_id)
        event = await self._with_retry(
            lambda: self._get_json(url, source_id=source_id),
            source_id=source_id,
            what="detail",
        )

        if not isinstance(event, dict):
            raise VendorParsingError(
                f"Expected object from Legistar API at {url}, got {type(event).__name__}",
                vendor=self.vendor,
                source_id=source_id
            )

        return event

"""
Pipeline Models - Canonical event entity and cache/response envelopes

Pydantic models validate at the typed side of the vendor boundary. Python
attributes are snake_case; the wire/cache format uses camelCase aliases
(startDateTime, fromCache, ...) so consumers see one stable JSON shape.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel

DEFAULT_TITLE = "Government Meeting"
DEFAULT_LOCATION = "TBD"

# Fields a later duplicate may fill when the first-seen event left them empty
MERGEABLE_FIELDS = ("agenda_url", "minutes_url", "video_url", "meeting_url", "rich_text")


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_dict(self) -> Dict[str, Any]:
        """JSON-ready dict with camelCase keys"""
        return self.model_dump(mode="json", by_alias=True, exclude_none=False)


class NormalizedEvent(_WireModel):
    """One meeting from one source, in canonical shape"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str
    source: str
    source_label: str
    source_color: str
    body_name: Optional[str] = None
    body_id: Optional[str] = None
    title: str = DEFAULT_TITLE
    location: str = DEFAULT_LOCATION
    start_date_time: datetime
    end_date_time: Optional[datetime] = None
    agenda_url: Optional[str] = None
    minutes_url: Optional[str] = None
    video_url: Optional[str] = None
    meeting_url: Optional[str] = None
    last_modified: Optional[datetime] = None
    rich_text: str = ""

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        """Title is never empty"""
        if not v or not v.strip():
            return DEFAULT_TITLE
        return v.strip()

    @field_validator("start_date_time")
    @classmethod
    def validate_start(cls, v: datetime) -> datetime:
        """Start must be a real instant, not a wall-clock time"""
        if v.tzinfo is None or v.tzinfo.utcoffset(v) is None:
            raise ValueError("start_date_time must be timezone-aware")
        return v


class CachePayload(_WireModel):
    """Snapshot written after every successful sync"""
    events: List[NormalizedEvent]
    fetched_at: datetime
    expires_at: datetime


class EventsResponse(_WireModel):
    """Result of get_events as seen by the transport"""
    events: List[NormalizedEvent]
    fetched_at: datetime
    expires_at: datetime
    from_cache: bool
    stale: Optional[bool] = None

    def to_dict(self) -> Dict[str, Any]:
        # stale only appears when true
        return self.model_dump(mode="json", by_alias=True, exclude={"stale"} if not self.stale else None)

    @classmethod
    def from_payload(cls, payload: CachePayload, from_cache: bool, stale: bool = False) -> "EventsResponse":
        return cls(
            events=payload.events,
            fetched_at=payload.fetched_at,
            expires_at=payload.expires_at,
            from_cache=from_cache,
            stale=True if stale else None,
        )


class EventDetail(_WireModel):
    """Links resolved from a single-event lookup"""
    video_url: Optional[str] = None
    minutes_url: Optional[str] = None

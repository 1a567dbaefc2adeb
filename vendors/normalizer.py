"""
Event Normalizer - raw source records to NormalizedEvent

This is the only place raw upstream dicts are read. Everything downstream
works on NormalizedEvent. Records that cannot be placed on a timeline are
dropped, not raised.
"""

from datetime import tzinfo
from typing import Any, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError

from config import get_logger
from pipeline.models import DEFAULT_LOCATION, DEFAULT_TITLE, EventDetail, NormalizedEvent
from pipeline.utils import combine_date_time, parse_date, parse_time_of_day
from vendors.sources import SourceConfig

logger = get_logger(__name__).bind(component="normalizer")

RawEventRecord = Dict[str, Any]


def _text(value: Any) -> Optional[str]:
    """Stripped string, or None for missing/blank values"""
    if value is None:
        return None
    text = str(value).strip()
    return text or None


class EventNormalizer:
    """Maps one source's raw record shape onto NormalizedEvent"""

    def __init__(self, source: SourceConfig, tz: tzinfo):
        self.source = source
        self.fields = source.fields
        self.tz = tz

    def normalize(self, raw_records: List[RawEventRecord]) -> List[NormalizedEvent]:
        """Normalize a listing, dropping records without a usable id or start"""
        events = []
        for raw in raw_records:
            event = self.normalize_one(raw)
            if event is not None:
                events.append(event)

        dropped = len(raw_records) - len(events)
        if dropped:
            logger.info(
                "dropped unplaceable records",
                source=self.source.source_id,
                total=len(raw_records),
                dropped=dropped,
            )
        return events

    def normalize_one(self, raw: RawEventRecord) -> Optional[NormalizedEvent]:
        """Single record to NormalizedEvent, or None if it cannot be placed"""
        if not isinstance(raw, dict):
            logger.debug("skipping non-object record", source=self.source.source_id)
            return None

        f = self.fields
        native_id = _text(raw.get(f.id)) or _text(raw.get(f.alt_id))
        if native_id is None:
            logger.debug("skipping record without id", source=self.source.source_id)
            return None

        start = combine_date_time(
            raw.get(f.date), raw.get(f.time), self.tz, fallback_date_value=raw.get(f.fallback_date)
        )
        if start is None:
            logger.debug("skipping record without start", source=self.source.source_id, native_id=native_id)
            return None

        end = None
        end_time = parse_time_of_day(raw.get(f.end_time), self.tz)
        if end_time is not None:
            hour, minute, second = end_time
            end = start.replace(hour=hour, minute=minute, second=second, microsecond=0)

        body_name = _text(raw.get(f.body_name))
        meeting_url = _text(raw.get(f.meeting_link))

        try:
            return NormalizedEvent(
                id=f"{self.source.source_id}-{native_id}",
                source=self.source.source_id,
                source_label=self.source.label,
                source_color=self.source.color,
                body_name=body_name,
                body_id=_text(raw.get(f.body_id)),
                title=_text(raw.get(f.name)) or body_name or DEFAULT_TITLE,
                location=_text(raw.get(f.location)) or DEFAULT_LOCATION,
                start_date_time=start,
                end_date_time=end,
                agenda_url=self.agenda_url(raw),
                minutes_url=_text(raw.get(f.minutes_file)),
                video_url=self.video_url(raw),
                meeting_url=meeting_url,
                last_modified=parse_date(raw.get(f.last_modified), self.tz),
                rich_text=_text(raw.get(f.comment)) or "",
            )
        except PydanticValidationError as e:
            logger.warning(
                "record failed validation",
                source=self.source.source_id,
                native_id=native_id,
                error=str(e),
            )
            return None

    def agenda_url(self, raw: RawEventRecord) -> Optional[str]:
        """Agenda file, else the in-site agenda link unless it is just the meeting page"""
        agenda_file = _text(raw.get(self.fields.agenda_file))
        if agenda_file:
            return agenda_file

        agenda_link = _text(raw.get(self.fields.agenda_link))
        meeting_link = _text(raw.get(self.fields.meeting_link))
        if agenda_link and agenda_link != meeting_link:
            return agenda_link
        return None

    def video_url(self, raw: RawEventRecord) -> Optional[str]:
        """Video path, else HTML5 video path, else the source's media template"""
        video_path = _text(raw.get(self.fields.video_path))
        if video_path:
            return video_path

        html5_path = _text(raw.get(self.fields.html5_video_path))
        if html5_path:
            return html5_path

        media = _text(raw.get(self.fields.media))
        if media and self.source.video_base:
            return self.source.video_base.format(media=media)
        return None

    def detail_links(self, raw: RawEventRecord) -> EventDetail:
        """Video and minutes links of a single-event lookup"""
        return EventDetail(
            video_url=self.video_url(raw),
            minutes_url=_text(raw.get(self.fields.minutes_file)),
        )

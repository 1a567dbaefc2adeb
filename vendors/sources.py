"""
Source registry - which upstream Legistar clients feed the calendar.

Each source names its Legistar client, display metadata, the template used to
build a video link from a media id, and the raw field names its records use.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from exceptions import ConfigurationError


@dataclass(frozen=True)
class RecordFields:
    """Raw record keys for one source's listing/detail payloads"""
    id: str = "EventId"
    alt_id: str = "EventGuid"
    date: str = "EventDate"
    fallback_date: str = "EventStartDate"
    time: str = "EventTime"
    end_time: str = "EventEndTime"
    name: str = "EventName"
    body_name: str = "EventBodyName"
    body_id: str = "EventBodyId"
    location: str = "EventLocation"
    agenda_file: str = "EventAgendaFile"
    agenda_link: str = "EventInSiteAgendaURL"
    minutes_file: str = "EventMinutesFile"
    video_path: str = "EventVideoPath"
    html5_video_path: str = "EventHTML5VideoPath"
    media: str = "EventMedia"
    meeting_link: str = "EventInSiteURL"
    last_modified: str = "EventLastModifiedUtc"
    comment: str = "EventComment"


@dataclass(frozen=True)
class SourceConfig:
    source_id: str
    client: str  # Legistar client name in webapi.legistar.com/v1/{client}
    label: str
    color: str
    video_base: Optional[str] = None  # str.format template with {media}
    fields: RecordFields = field(default_factory=RecordFields)
    vendor: str = "legistar"


KNOWN_SOURCES: Dict[str, SourceConfig] = {
    "milwaukee": SourceConfig(
        source_id="milwaukee",
        client="milwaukee",
        label="City of Milwaukee",
        color="#ffa500",
        video_base="https://milwaukee.granicus.com/MediaPlayer.php?view_id=2&clip_id={media}",
    ),
    "milwaukeecounty": SourceConfig(
        source_id="milwaukeecounty",
        client="milwaukeecounty",
        label="Milwaukee County",
        color="#0077be",
        video_base="https://milwaukeecounty.granicus.com/MediaPlayer.php?view_id=2&clip_id={media}",
    ),
}


def get_source(source_id: str) -> SourceConfig:
    """Look up one known source. Raises ConfigurationError if unknown."""
    try:
        return KNOWN_SOURCES[source_id]
    except KeyError:
        raise ConfigurationError(
            f"Unknown source {source_id!r}. Known: {', '.join(sorted(KNOWN_SOURCES))}",
            config_key="MEETCAL_SOURCES",
        ) from None


def get_sources(source_ids: List[str]) -> List[SourceConfig]:
    """Resolve configured source ids, preserving order and dropping repeats"""
    seen = set()
    sources = []
    for source_id in source_ids:
        if source_id in seen:
            continue
        seen.add(source_id)
        sources.append(get_source(source_id))
    return sources

"""
Event Consolidator - collapse re-listings of the same meeting

Per-source ids catch exact repeats. A meeting re-listed within one source
under a different raw id shares (source, body, start) with its twin, and the
twins are merged here.
"""

from datetime import timezone
from typing import Dict, List, Optional

from config import get_logger
from pipeline.models import MERGEABLE_FIELDS, NormalizedEvent

logger = get_logger(__name__).bind(component="consolidator")


def merge_key(event: NormalizedEvent) -> str:
    """source|body_id|start (as UTC), skipping missing parts"""
    parts: List[Optional[str]] = [
        event.source,
        event.body_id,
        event.start_date_time.astimezone(timezone.utc).isoformat(),
    ]
    return "|".join(part for part in parts if part)


class EventConsolidator:
    """First-seen wins; later duplicates only fill empty link/notes fields"""

    def deduplicate(self, events: List[NormalizedEvent]) -> List[NormalizedEvent]:
        merged: Dict[str, NormalizedEvent] = {}

        for event in events:
            key = merge_key(event)
            base = merged.get(key)
            if base is None:
                merged[key] = event
                continue
            merged[key] = self._fill_gaps(base, event)

        if len(merged) < len(events):
            logger.info("merged duplicate listings", total=len(events), unique=len(merged))

        # dicts keep insertion order, so output follows first-seen order
        return list(merged.values())

    def _fill_gaps(self, base: NormalizedEvent, duplicate: NormalizedEvent) -> NormalizedEvent:
        updates = {}
        for name in MERGEABLE_FIELDS:
            if not getattr(base, name) and getattr(duplicate, name):
                updates[name] = getattr(duplicate, name)

        if not updates:
            return base

        logger.debug("filled fields from duplicate", base_id=base.id, duplicate_id=duplicate.id, fields=sorted(updates))
        return base.model_copy(update=updates)

"""
Pipeline Utilities - Date/time helpers shared by the normalizer and aggregator

Upstream sources send dates in several shapes (ISO strings, epoch numbers,
"/Date(ms)/" wrappers, free text) and often split the clock time into its own
field. Everything here resolves to timezone-aware datetimes in the local zone
and returns None instead of raising when a value cannot be placed.
"""

import re
from datetime import date, datetime, timedelta, tzinfo
from typing import Any, Optional, Tuple

from dateutil import parser as date_parser

from config import get_logger

logger = get_logger(__name__).bind(component="normalizer")

# A bare digit string, or digits in parentheses as in "/Date(1700000000000)/"
# with an optional +hhmm/-hhmm offset that is ignored
_EPOCH_DIGITS = re.compile(r"^(-?\d+)$")
_WRAPPED_EPOCH = re.compile(r"\(\s*(-?\d+)\s*(?:[+-]\d{4})?\s*\)")

# Strings that carry a calendar date or an epoch, as opposed to a bare clock time
_TIMESTAMP_HINT = re.compile(r"\d{4}-\d{1,2}-\d{1,2}|\d{1,2}/\d{1,2}/\d{2,4}|\(\s*-?\d{9,}")

_TIME_12H = re.compile(
    r"^(\d{1,2})(?::(\d{2}))?(?::(\d{2}))?\s*([AaPp])\.?\s*[Mm]\.?$"
)
_TIME_24H = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2}))?$")

# "6:30 PM CST" -> "6:30 PM"
_TRAILING_ZONE = re.compile(r"\s+[ECMP][SD]T$", re.IGNORECASE)

TimeOfDay = Tuple[int, int, int]


def localize(dt: datetime, tz: tzinfo) -> datetime:
    """Attach tz to naive datetimes, convert aware ones into tz"""
    if dt.tzinfo is None or dt.tzinfo.utcoffset(dt) is None:
        return dt.replace(tzinfo=tz)
    return dt.astimezone(tz)


def _from_epoch_digits(digits: str, tz: tzinfo) -> Optional[datetime]:
    """Epoch in milliseconds, or seconds when there are at most 10 digits"""
    magnitude = digits.lstrip("-")
    if not magnitude:
        return None
    number = int(digits)
    seconds = number if len(magnitude) <= 10 else number / 1000
    try:
        return datetime.fromtimestamp(seconds, tz)
    except (OverflowError, OSError, ValueError):
        return None


def parse_date(value: Any, tz: tzinfo) -> Optional[datetime]:
    """
    Parse any upstream date representation into an aware local datetime.

    Accepts datetime/date objects, numeric epochs, digit strings, wrapped
    epochs ("/Date(1700000000000)/") and free text (dateutil). Returns None
    on failure, never raises.

    Example:
        >>> parse_date("/Date(1700000000000)/", tz.gettz("America/Chicago"))
        datetime.datetime(2023, 11, 14, 16, 13, 20, tzinfo=tzfile('US/Central'))
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, datetime):
        return localize(value, tz)

    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=tz)

    if isinstance(value, (int, float)):
        return _from_epoch_digits(str(int(value)), tz)

    if not isinstance(value, str):
        return None

    text = value.strip()
    if not text:
        return None

    match = _EPOCH_DIGITS.match(text) or _WRAPPED_EPOCH.search(text)
    if match:
        return _from_epoch_digits(match.group(1), tz)

    try:
        return localize(date_parser.parse(text), tz)
    except (ValueError, OverflowError) as e:
        logger.debug("unparseable date", value=text[:50], error=str(e))
        return None


def _valid_time(hour: int, minute: int, second: int) -> Optional[TimeOfDay]:
    if hour < 24 and minute < 60 and second < 60:
        return hour, minute, second
    return None


def parse_time_of_day(value: Any, tz: tzinfo) -> Optional[TimeOfDay]:
    """
    Extract (hour, minute, second) from a time field.

    Tries a full timestamp first (the local clock time of that instant), then
    "2:30 PM" style, then "14:30[:00]" style.

    Example:
        >>> parse_time_of_day("6:30 PM CST", tz)
        (18, 30, 0)
    """
    if value is None or value == "":
        return None

    if not isinstance(value, str) or _TIMESTAMP_HINT.search(value):
        stamp = parse_date(value, tz)
        if stamp is not None:
            return stamp.hour, stamp.minute, stamp.second

    if not isinstance(value, str):
        return None

    text = _TRAILING_ZONE.sub("", value.strip())

    match = _TIME_12H.match(text)
    if match:
        hour = int(match.group(1))
        minute = int(match.group(2) or 0)
        second = int(match.group(3) or 0)
        is_pm = match.group(4).lower() == "p"
        if is_pm and hour < 12:
            hour += 12
        elif not is_pm and hour == 12:
            hour = 0
        return _valid_time(hour, minute, second)

    match = _TIME_24H.match(text)
    if match:
        return _valid_time(int(match.group(1)), int(match.group(2)), int(match.group(3) or 0))

    logger.debug("could not parse time - using date only", time_str=text[:50])
    return None


def combine_date_time(
    date_value: Any,
    time_value: Any,
    tz: tzinfo,
    fallback_date_value: Any = None,
) -> Optional[datetime]:
    """
    Combine separate date and time fields into one aware datetime.

    Args:
        date_value: Primary date field (e.g., Legistar EventDate)
        time_value: Time field; a clock time or a full timestamp
        tz: Local zone the result is expressed in
        fallback_date_value: Used when the primary date does not parse

    Returns:
        Aware datetime, or None when neither date field parses. If the time
        cannot be read, the base date's own time of day is kept.

    Example:
        >>> combine_date_time("2025-11-18T00:00:00", "6:30 PM", tz)
        datetime.datetime(2025, 11, 18, 18, 30, tzinfo=tzfile('US/Central'))
    """
    base = parse_date(date_value, tz)
    if base is None:
        base = parse_date(fallback_date_value, tz)
    if base is None:
        return None

    time_of_day = parse_time_of_day(time_value, tz)
    if time_of_day is None:
        return base

    hour, minute, second = time_of_day
    return base.replace(hour=hour, minute=minute, second=second, microsecond=0)


def previous_week_monday(now: datetime) -> datetime:
    """
    Local midnight on the Monday of the calendar week before now's week.

    Sunday belongs to the week that started six days earlier.

    Example:
        >>> previous_week_monday(datetime(2025, 11, 19, 15, 0, tzinfo=tz))  # Wednesday
        datetime.datetime(2025, 11, 10, 0, 0, tzinfo=tzfile('US/Central'))
    """
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
    days_since_monday = midnight.weekday()
    return midnight - timedelta(days=days_since_monday + 7)

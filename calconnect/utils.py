from __future__ import annotations
import re
from datetime import datetime, timezone

import pytz
from dateutil import parser as dtparser

from calconnect.errors import InvalidDateTimeError, InvalidIntervalError

_INTERVAL_RE = re.compile(r"(\d+)\s*(second|minute|hour|day)s?", re.IGNORECASE | re.ASCII)
_UNIT_MS = {
    "second": 1000,
    "minute": 60 * 1000,
    "hour": 60 * 60 * 1000,
    "day": 24 * 60 * 60 * 1000,
}
_GRAPH_FRACTION_RE = re.compile(r"\.\d+(?=(Z|[+-]\d{2}:?\d{2})?$)")


def convert_to_ms(value: str) -> int:
    """Turn a duration like ``"55 minute"`` or ``"2 hours"`` into milliseconds."""
    match = _INTERVAL_RE.fullmatch(value or "")
    if not match:
        raise InvalidIntervalError(value)
    quantity, unit = match.groups()
    return int(quantity) * _UNIT_MS[unit.lower()]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(dt: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything stored is UTC.
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def format_utc(dt: datetime) -> str:
    return as_utc(dt).strftime("%Y-%m-%dT%H:%M:%SZ")


def to_utc_iso(value: str) -> str:
    """Normalize a provider timestamp (or all-day date) to ``YYYY-MM-DDTHH:MM:SSZ``.

    Values without an offset are taken as UTC.
    """
    return format_utc(dtparser.isoparse(value))


def normalize_graph_datetime(value: str) -> str:
    """Graph returns ``2024-12-10T04:00:00.0000000``; drop the fraction, pin to UTC."""
    return to_utc_iso(_GRAPH_FRACTION_RE.sub("", value))


def adjust_time_by_timezone(value: str, tz: str = "UTC") -> str:
    """Re-anchor a wall-clock timestamp to ``tz`` and return the real UTC instant.

    The digits are kept and only the zone changes, so ``2024-12-10T09:00:00``
    in ``Asia/Karachi`` (UTC+5) becomes ``2024-12-10T04:00:00Z``. An input that
    carries an offset is first read as UTC wall-clock. DST zones use the offset
    in effect on that date.
    """
    try:
        wall = dtparser.isoparse(value)
        zone = pytz.timezone(tz)
    except pytz.UnknownTimeZoneError as e:
        raise InvalidDateTimeError(f"Unknown timezone: {tz!r}") from e
    except (TypeError, ValueError, OverflowError) as e:
        raise InvalidDateTimeError(f"Invalid timestamp: {value!r}") from e
    if wall.tzinfo is not None:
        wall = wall.astimezone(pytz.utc).replace(tzinfo=None)
    local = zone.localize(wall)
    return format_utc(local)

"""
Coordinate and civil-time helpers.

The tracked region observes a fixed seasonal rule: UTC+2 from the last
Sunday of March 01:00 UTC to the last Sunday of October 01:00 UTC, UTC+1
otherwise. Civil timestamps are ISO-8601 strings carrying that offset.
"""

import math
import re
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Tuple, Union

from dateutil import parser as date_parser

EARTH_RADIUS_KM = 6371.0
SUMMER_OFFSET = "+02:00"
WINTER_OFFSET = "+01:00"

_OFFSET_ISO_RE = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}(:\d{2}(\.\d+)?)?[+-]\d{2}:\d{2}$")
_BARE_ISO_RE = re.compile(r"^(\d{4}-\d{2}-\d{2})[ T](\d{2}:\d{2})(?::(\d{2}))?$")
_HHMM_RE = re.compile(r"^\d{2}:\d{2}$")
_DAY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance in kilometres."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lng2 - lng1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def _last_sunday(year: int, month: int) -> date:
    if month == 12:
        cur = date(year + 1, 1, 1) - timedelta(days=1)
    else:
        cur = date(year, month + 1, 1) - timedelta(days=1)
    while cur.weekday() != 6:
        cur -= timedelta(days=1)
    return cur


def civil_offset_for_date(day: Union[date, datetime, str]) -> str:
    """
    Offset for a calendar date, evaluated at 12:00 UTC of that date so the
    transition hour itself never matters.
    """
    if isinstance(day, datetime):
        day = day.date()
    elif isinstance(day, str):
        day = date.fromisoformat(day[:10])

    dst_start = datetime.combine(_last_sunday(day.year, 3), time(1, 0), tzinfo=timezone.utc)
    dst_end = datetime.combine(_last_sunday(day.year, 10), time(1, 0), tzinfo=timezone.utc)
    noon = datetime.combine(day, time(12, 0), tzinfo=timezone.utc)
    return SUMMER_OFFSET if dst_start <= noon < dst_end else WINTER_OFFSET


def _offset_hours(offset: str) -> int:
    return int(offset[:3])


def civil_now() -> Tuple[str, str]:
    """Current civil (date, HH:MM)."""
    utc_now = datetime.now(timezone.utc)
    local = utc_now + timedelta(hours=_offset_hours(civil_offset_for_date(utc_now)))
    # the offset may differ for the local date right after midnight
    local = utc_now + timedelta(hours=_offset_hours(civil_offset_for_date(local)))
    return local.strftime("%Y-%m-%d"), local.strftime("%H:%M")


def _validated_clock(hhmm: str, seconds: Optional[str] = None) -> str:
    """Raise ValueError unless `hhmm` (and optional seconds) is a real time of day."""
    time.fromisoformat(f"{hhmm}:{seconds or '00'}")
    return hhmm


def _validated_day(day: str) -> str:
    if not _DAY_RE.match(day):
        raise ValueError(day)
    date.fromisoformat(day)
    return day


def to_civil_iso(day: Optional[str] = None, hhmm: Optional[str] = None) -> str:
    """Combine YYYY-MM-DD and HH:MM (either defaulting to now) into a civil ISO string."""
    if not day or not hhmm:
        now_day, now_time = civil_now()
        day = day or now_day
        hhmm = hhmm or now_time
    return f"{day}T{hhmm}:00{civil_offset_for_date(day)}"


def normalize_to_civil_iso(value) -> Optional[str]:
    """
    Normalize any timestamp-ish value to a civil ISO string.

    - strings already carrying a +HH:MM/-HH:MM offset are returned unchanged
    - bare "YYYY-MM-DD HH:MM[:SS]" strings get the offset for their date
    - anything else parseable is read in UTC components and re-offset

    Returns None when nothing can be parsed.
    """
    if isinstance(value, datetime):
        parsed = value
    else:
        if not isinstance(value, str) or not value.strip():
            return None
        value = value.strip()
        match = _BARE_ISO_RE.match(value)
        try:
            if _OFFSET_ISO_RE.match(value):
                datetime.fromisoformat(value)
                return value
            if match:
                day, hhmm, seconds = match.groups()
                _validated_clock(hhmm, seconds)
                return f"{day}T{hhmm}:{seconds or '00'}{civil_offset_for_date(day)}"
            parsed = date_parser.parse(value)
        except (ValueError, OverflowError):
            return None

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc)
    day = parsed.strftime("%Y-%m-%d")
    return f"{day}T{parsed.strftime('%H:%M:%S')}{civil_offset_for_date(parsed)}"


def civil_iso_to_datetime(value: str) -> Optional[datetime]:
    """Aware datetime for a civil ISO string; used as the native timestamp mirror."""
    normalized = normalize_to_civil_iso(value)
    if normalized is None:
        return None
    try:
        return datetime.fromisoformat(normalized)
    except ValueError:
        return None


def resolve_created_at(day: Optional[str], time_value: Optional[str], current: Optional[str] = None) -> Optional[str]:
    """
    Turn user supplied date/time fields into a civil timestamp.

    `current` is the existing timestamp when patching; it supplies the
    missing half of a partial edit. Returns `current` when neither field is
    given. Raises ValueError on unusable input.
    """
    if not day and not time_value:
        return current
    if day:
        try:
            _validated_day(day)
        except ValueError:
            raise ValueError(f"date must be YYYY-MM-DD: {day}")
    if time_value and _HHMM_RE.match(time_value):
        try:
            _validated_clock(time_value)
        except ValueError:
            raise ValueError(f"time is not a valid HH:MM: {time_value}")
        return to_civil_iso(day or (current[:10] if current else None), time_value)
    if day and not time_value:
        return to_civil_iso(day, current[11:16] if current else None)
    if time_value and "T" in time_value:
        normalized = normalize_to_civil_iso(time_value)
        if normalized is None:
            raise ValueError(f"Unparseable timestamp: {time_value}")
        return normalized
    raise ValueError("time must be HH:MM or a full ISO-8601 timestamp")

import re
import zoneinfo
from datetime import datetime, date, time, timedelta, timezone, tzinfo

DATE_ONLY = re.compile(r"^\d{4}-\d{2}-\d{2}$")

def utcnow() -> datetime:
    return datetime.now(timezone.utc)

def get_tz(name: str) -> tzinfo:
    return zoneinfo.ZoneInfo(name)

def as_utc(dt: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes; everything stored is UTC
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)

def is_date_only(value: str | None) -> bool:
    return bool(value and DATE_ONLY.match(value.strip()))

def start_of_day(d: date, tz: tzinfo) -> datetime:
    return datetime.combine(d, time(0, 0)).replace(tzinfo=tz)

def start_of_next_day(d: date, tz: tzinfo) -> datetime:
    return start_of_day(d + timedelta(days=1), tz)

def end_of_day(d: date, tz: tzinfo) -> datetime:
    return datetime.combine(d, time(23, 59, 59, 999000)).replace(tzinfo=tz)

def parse_iso_date(value, tz: tzinfo = timezone.utc) -> datetime | None:
    """
    Parse an ISO-8601 date or timestamp. Date-only strings and naive
    timestamps are placed in `tz`. Returns None when missing or unparseable.
    """
    if not value or not isinstance(value, str):
        return None
    raw = value.strip()
    try:
        if is_date_only(raw):
            return start_of_day(date.fromisoformat(raw), tz)
        parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=tz)
    return parsed

def parse_wall_clock(value, tz: tzinfo) -> datetime | None:
    """
    Strava's start_date_local is a local wall-clock reading with a bogus
    trailing Z; keep the reading and pin it to `tz`.
    """
    if not value or not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed.replace(tzinfo=tz)

def to_epoch(dt: datetime) -> int:
    return int(dt.timestamp())

def from_epoch(seconds) -> datetime | None:
    try:
        return datetime.fromtimestamp(int(seconds), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError):
        return None

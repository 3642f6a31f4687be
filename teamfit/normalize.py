import math
from dataclasses import dataclass, field
from datetime import datetime, timezone, tzinfo

from .utils_time import parse_iso_date, parse_wall_clock, utcnow

@dataclass
class NormalizedActivity:
    id: int
    occurred_at: datetime
    activity_type: str | None = None
    name: str | None = None
    # distance (m), moving_time (s), elevation (m), steps
    metrics: dict[str, float] = field(default_factory=dict)
    raw: dict = field(default_factory=dict)

def _number(value) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        n = float(value)
    except (TypeError, ValueError):
        return None
    return n if math.isfinite(n) else None

def normalize_activity(raw: dict, tz: tzinfo = timezone.utc, now: datetime | None = None) -> NormalizedActivity:
    occurred_at = (
        parse_wall_clock(raw.get("start_date_local"), tz)
        or parse_iso_date(raw.get("start_date"))
        or now
        or utcnow()
    )
    metrics = {
        "distance": _number(raw.get("distance")),
        "moving_time": _number(raw.get("moving_time")),
        "elevation": _number(raw.get("total_elevation_gain")),
        "steps": _number(raw.get("steps")),
    }
    return NormalizedActivity(
        id=int(raw["id"]),
        occurred_at=occurred_at,
        activity_type=raw.get("type") or raw.get("sport_type"),
        name=raw.get("name"),
        metrics={k: v for k, v in metrics.items() if v is not None},
        raw=raw,
    )

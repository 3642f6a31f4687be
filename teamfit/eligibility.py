"""Rules deciding whether a normalized activity counts toward a challenge."""

import math
from datetime import datetime, date, timezone, tzinfo
from typing import Iterable

from .classify import activity_type_names, split_activity_types
from .models import Challenge
from .normalize import NormalizedActivity
from .progress import select_metric_value
from .utils_time import is_date_only, parse_iso_date, start_of_next_day

def window_start(challenge: Challenge, tz: tzinfo = timezone.utc) -> datetime | None:
    return parse_iso_date(challenge.start_date, tz)

def window_end(challenge: Challenge, tz: tzinfo = timezone.utc) -> tuple[datetime | None, bool]:
    """
    Returns (bound, exclusive). A date-only end_date covers that whole day,
    so the bound becomes the start of the next day and is exclusive.
    """
    raw = challenge.end_date
    if is_date_only(raw):
        return start_of_next_day(date.fromisoformat(raw.strip()), tz), True
    return parse_iso_date(raw, tz), False

def within_window(when: datetime, challenge: Challenge, tz: tzinfo = timezone.utc) -> bool:
    start = window_start(challenge, tz)
    if start and when < start:
        return False
    end, exclusive = window_end(challenge, tz)
    if end:
        if exclusive and when >= end:
            return False
        if not exclusive and when > end:
            return False
    return True

def is_active(challenge: Challenge, now: datetime, tz: tzinfo = timezone.utc) -> bool:
    return not challenge.hidden and within_window(now, challenge, tz)

def team_permits(challenge: Challenge, team_ids: Iterable[str] | None) -> bool:
    if not challenge.team_ids:
        return True
    if team_ids is None:
        return False
    return bool(set(challenge.team_ids) & set(team_ids))

def permitted_challenges(challenges: Iterable[Challenge], team_ids: Iterable[str] | None) -> list[Challenge]:
    team_ids = list(team_ids) if team_ids is not None else None
    return [c for c in challenges if team_permits(c, team_ids)]

def matches(
    activity: NormalizedActivity,
    challenge: Challenge,
    allowed_team_ids: Iterable[str] | None,
    tz: tzinfo = timezone.utc,
) -> bool:
    if challenge.hidden:
        return False
    if not challenge.metric_type or challenge.metric_type == "manual":
        return False
    if not challenge.target_value or challenge.target_value <= 0:
        return False

    if not within_window(activity.occurred_at, challenge, tz):
        return False

    if not team_permits(challenge, allowed_team_ids):
        return False

    allowed_types = split_activity_types(challenge.activity_types)
    if allowed_types:
        names = activity_type_names(activity.raw)
        if activity.activity_type:
            names.add(activity.activity_type.lower())
        if not names & allowed_types:
            return False

    value = select_metric_value(activity, challenge.metric_type)
    return value is not None and math.isfinite(value) and value > 0

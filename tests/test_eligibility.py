from datetime import datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from teamfit.eligibility import is_active, matches, permitted_challenges
from teamfit.models import Challenge
from teamfit.normalize import NormalizedActivity


def challenge(**kw):
    fields = dict(
        id="c1", title="t", hidden=False, start_date="2024-10-06", end_date="2024-10-12",
        team_ids=None, metric_type="distance", target_value=1000.0, activity_types=None,
    )
    fields.update(kw)
    return Challenge(**fields)


def activity(when=datetime(2024, 10, 8, 9, 0, tzinfo=timezone.utc), type_="Run", **metrics):
    metrics = metrics or {"distance": 5000.0, "moving_time": 1800.0}
    return NormalizedActivity(id=1, occurred_at=when, activity_type=type_, metrics=metrics, raw={"type": type_})


def test_basic_match():
    assert matches(activity(), challenge(), [])


@pytest.mark.parametrize("kw", [
    {"hidden": True},
    {"metric_type": None},
    {"metric_type": "manual"},
    {"target_value": None},
    {"target_value": 0},
    {"metric_type": "calories"},
])
def test_disqualifying_challenge_settings(kw):
    assert not matches(activity(), challenge(**kw), [])


def test_date_only_end_is_inclusive_through_end_of_day():
    tz = ZoneInfo("Europe/Amsterdam")
    c = challenge(end_date="2024-10-12")
    last_ms = datetime(2024, 10, 12, 23, 59, 59, 999000, tzinfo=tz)
    next_day = datetime(2024, 10, 13, 0, 0, 0, tzinfo=tz)
    assert matches(activity(when=last_ms), c, [], tz)
    assert not matches(activity(when=next_day), c, [], tz)


def test_timestamp_bounds_are_exact():
    c = challenge(start_date="2024-10-08T10:00:00Z", end_date="2024-10-08T12:00:00Z")
    assert not matches(activity(when=datetime(2024, 10, 8, 9, 59, tzinfo=timezone.utc)), c, [])
    assert matches(activity(when=datetime(2024, 10, 8, 12, 0, tzinfo=timezone.utc)), c, [])
    assert not matches(activity(when=datetime(2024, 10, 8, 12, 1, tzinfo=timezone.utc)), c, [])


def test_before_start_is_rejected():
    assert not matches(activity(when=datetime(2024, 10, 5, 23, 0, tzinfo=timezone.utc)), challenge(), [])


def test_team_scope_fails_closed():
    c = challenge(team_ids=["T1"])
    assert matches(activity(), c, ["T1", "T3"])
    assert not matches(activity(), c, ["T2"])
    assert not matches(activity(), c, None)
    assert not matches(activity(), c, [])


def test_empty_restrictions_are_open_to_everyone():
    c = challenge(team_ids=[], activity_types=[])
    assert matches(activity(type_="Swim"), c, None)


def test_activity_type_allowlist_case_insensitive_with_comma_entries():
    c = challenge(activity_types=["Ride, VirtualRide", "RUN"])
    assert matches(activity(type_="run"), c, [])
    assert matches(activity(type_="VirtualRide"), c, [])
    assert not matches(activity(type_="Swim"), c, [])


def test_metric_value_must_be_positive():
    c = challenge(metric_type="steps")
    assert not matches(activity(distance=5000.0), c, [])
    assert not matches(activity(steps=0.0), c, [])
    assert matches(activity(steps=8000.0), c, [])


def test_is_active_and_permitted_challenges():
    now = datetime(2024, 10, 9, tzinfo=timezone.utc)
    assert is_active(challenge(), now)
    assert not is_active(challenge(hidden=True), now)
    assert not is_active(challenge(end_date="2024-10-08"), now)
    assert not is_active(challenge(start_date="2024-10-10"), now)

    open_c = challenge(id="open")
    t1 = challenge(id="t1", team_ids=["T1"])
    assert [c.id for c in permitted_challenges([open_c, t1], ["T1"])] == ["open", "t1"]
    assert [c.id for c in permitted_challenges([open_c, t1], ["T2"])] == ["open"]

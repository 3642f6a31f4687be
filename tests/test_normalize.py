from datetime import datetime, timezone
from zoneinfo import ZoneInfo

from teamfit.normalize import normalize_activity
from teamfit.utils_time import parse_iso_date


def test_prefers_local_wall_clock_over_utc():
    tz = ZoneInfo("America/New_York")
    a = normalize_activity(
        {"id": 1, "start_date": "2024-10-07T12:00:00Z", "start_date_local": "2024-10-07T08:00:00Z"},
        tz=tz,
    )
    assert a.occurred_at == datetime(2024, 10, 7, 8, 0, tzinfo=tz)


def test_falls_back_to_utc_start_date():
    a = normalize_activity({"id": 2, "start_date": "2024-10-07T12:00:00Z", "start_date_local": "garbage"})
    assert a.occurred_at == datetime(2024, 10, 7, 12, 0, tzinfo=timezone.utc)


def test_falls_back_to_now_when_both_dates_unparseable():
    now = datetime(2024, 1, 1, tzinfo=timezone.utc)
    a = normalize_activity({"id": 3, "start_date": None, "start_date_local": "nope"}, now=now)
    assert a.occurred_at == now


def test_metrics_bag_keeps_only_reported_numbers():
    a = normalize_activity({
        "id": "4",
        "start_date": "2024-10-07T12:00:00Z",
        "distance": 5000.0,
        "moving_time": 1500,
        "total_elevation_gain": None,
        "steps": "lots",
        "type": "Run",
        "sport_type": "TrailRun",
    })
    assert a.id == 4
    assert a.metrics == {"distance": 5000.0, "moving_time": 1500.0}
    assert a.activity_type == "Run"
    assert a.raw["sport_type"] == "TrailRun"


def test_parse_iso_date_handles_missing_and_date_only():
    assert parse_iso_date(None) is None
    assert parse_iso_date("") is None
    assert parse_iso_date("not a date") is None
    assert parse_iso_date("2024-10-06") == datetime(2024, 10, 6, tzinfo=timezone.utc)

"""Shared fixtures: in-memory database, settings and a fake Strava client."""

from datetime import datetime, timedelta, timezone

import httpx
import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from teamfit.config import Settings
from teamfit.db import make_session_factory
from teamfit.errors import ActivityFetchError, TokenRefreshError
from teamfit.models import Base, Challenge, Profile, StravaConnection, Team, TeamMember
from teamfit.strava import StravaClient
from teamfit.units import METERS_PER_MILE

NOW = datetime(2024, 10, 9, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        DATABASE_URL="sqlite://",
        STRAVA_CLIENT_ID="client",
        STRAVA_CLIENT_SECRET="secret",
        STRAVA_WEBHOOK_SECRET="hook-secret",
        STRAVA_CRON_SECRET="cron-secret",
        CHALLENGE_TZ="UTC",
        STRAVA_MAX_RETRIES=2,
        STRAVA_BACKOFF_SECONDS=0.01,
    )


@pytest.fixture
def engine():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


class FakeStrava:
    """Stands in for StravaClient: canned activity pages and token responses."""

    def __init__(self, activities=None, page_size=50):
        self.activities = list(activities or [])
        self.page_size = page_size
        self.refresh_calls = []
        self.list_calls = []
        self.refresh_error = None
        self.fetch_error = None
        self.deauthorized = []

    async def refresh_token(self, refresh_token):
        self.refresh_calls.append(refresh_token)
        if self.refresh_error:
            raise TokenRefreshError(self.refresh_error, 400, self.refresh_error)
        return {
            "access_token": f"access-{len(self.refresh_calls)}",
            "refresh_token": f"refresh-{len(self.refresh_calls)}",
            "expires_at": int((NOW + timedelta(hours=6)).timestamp()),
            "athlete": {"id": 4242},
            "scope": "read,activity:read_all",
        }

    async def list_activities(self, access_token, after_ts, page, per_page):
        self.list_calls.append({"token": access_token, "after": after_ts, "page": page, "per_page": per_page})
        if self.fetch_error:
            raise ActivityFetchError(self.fetch_error, 500, self.fetch_error)
        start = (page - 1) * per_page
        return self.activities[start:start + per_page]

    async def deauthorize(self, access_token):
        self.deauthorized.append(access_token)

    def authorize_url(self, state):
        return f"https://www.strava.com/oauth/authorize?state={state}"

    async def exchange_code(self, code):
        return {
            "access_token": "new-access",
            "refresh_token": "new-refresh",
            "expires_at": int((NOW + timedelta(hours=6)).timestamp()),
            "athlete": {"id": 777},
        }


@pytest.fixture
def fake_strava():
    return FakeStrava()


@pytest.fixture
def mock_client(settings):
    """Build a real StravaClient over an httpx.MockTransport handler."""
    sleeps = []

    async def fake_sleep(seconds):
        sleeps.append(seconds)

    def build(handler):
        http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        client = StravaClient(settings, http=http, sleep=fake_sleep)
        client.sleeps = sleeps
        return client

    return build


def strava_activity(activity_id, miles=None, when="2024-10-07T08:00:00Z", type_="Run", **extra):
    raw = {
        "id": activity_id,
        "name": f"Activity {activity_id}",
        "type": type_,
        "start_date": when,
        "start_date_local": when,
        "moving_time": 1800,
        "total_elevation_gain": 40.0,
    }
    if miles is not None:
        raw["distance"] = miles * METERS_PER_MILE
    raw.update(extra)
    return raw


@pytest.fixture
def make_user(db):
    def build(user_id="user-1", teams=(), athlete_id=4242, connected=True, expires_at=NOW + timedelta(hours=2), role="member"):
        db.add(Profile(id=user_id, display_name=user_id.title(), role=role))
        for team_id in teams:
            if not db.get(Team, team_id):
                db.add(Team(id=team_id, name=team_id))
            db.add(TeamMember(team_id=team_id, user_id=user_id))
        conn = None
        if connected:
            conn = StravaConnection(
                user_id=user_id,
                athlete_id=athlete_id,
                access_token="access-0",
                refresh_token="refresh-0",
                expires_at=expires_at,
            )
            db.add(conn)
        db.commit()
        return conn
    return build


@pytest.fixture
def make_challenge(db):
    def build(**kw):
        fields = dict(
            title="Run 10 miles",
            week_index=1,
            start_date="2024-10-06",
            end_date="2024-10-12",
            base_points=10,
            metric_type="distance",
            target_value=10 * METERS_PER_MILE,
            target_unit="meters",
        )
        fields.update(kw)
        c = Challenge(**fields)
        db.add(c)
        db.commit()
        return c
    return build

from datetime import datetime, timedelta, timezone

import httpx
import pytest

from teamfit.errors import ActivityFetchError, TokenRefreshError
from teamfit.fetcher import fetch_activities_since
from teamfit.tokens import needs_refresh, refresh_connection_if_needed

from conftest import NOW, strava_activity


async def test_fetch_follows_pages_until_short_page(mock_client):
    pages = {1: [strava_activity(i) for i in range(3)], 2: [strava_activity(i) for i in range(3, 5)]}
    seen = []

    def handler(request: httpx.Request):
        assert request.headers["Authorization"] == "Bearer tok"
        page = int(request.url.params["page"])
        seen.append((page, request.url.params["after"], request.url.params["per_page"]))
        return httpx.Response(200, json=pages.get(page, []))

    client = mock_client(handler)
    since = datetime(2024, 10, 1, tzinfo=timezone.utc)
    acts = await fetch_activities_since(client, "tok", since, page_size=3)

    assert [a.id for a in acts] == [0, 1, 2, 3, 4]
    assert seen == [(1, str(int(since.timestamp())), "3"), (2, str(int(since.timestamp())), "3")]


async def test_fetch_failure_discards_everything(mock_client):
    def handler(request):
        if request.url.params["page"] == "1":
            return httpx.Response(200, json=[strava_activity(i) for i in range(2)])
        return httpx.Response(401, text="Authorization Error")

    client = mock_client(handler)
    with pytest.raises(ActivityFetchError) as exc:
        await fetch_activities_since(client, "tok", None, page_size=2)
    assert exc.value.status_code == 401
    assert "Authorization Error" in str(exc.value)


async def test_transient_errors_are_retried_with_backoff(mock_client):
    calls = []

    def handler(request):
        calls.append(request)
        if len(calls) < 3:
            return httpx.Response(503, text="busy")
        return httpx.Response(200, json=[])

    client = mock_client(handler)
    assert await fetch_activities_since(client, "tok", None) == []
    assert len(calls) == 3
    assert client.sleeps == [0.01, 0.02]


async def test_retries_are_bounded(mock_client):
    calls = []

    def handler(request):
        calls.append(request)
        raise httpx.ConnectTimeout("timed out", request=request)

    client = mock_client(handler)
    with pytest.raises(ActivityFetchError):
        await fetch_activities_since(client, "tok", None)
    # STRAVA_MAX_RETRIES=2 in the test settings
    assert len(calls) == 3


def test_needs_refresh_buffer(make_user):
    conn = make_user(expires_at=NOW + timedelta(minutes=9))
    assert needs_refresh(conn, NOW)
    conn.expires_at = NOW + timedelta(minutes=11)
    assert not needs_refresh(conn, NOW)
    conn.expires_at = None
    assert needs_refresh(conn, NOW)


async def test_refresh_persists_new_pair_and_clears_error(db, make_user, mock_client):
    conn = make_user(expires_at=NOW + timedelta(minutes=5), athlete_id=None)
    conn.last_error = "old failure"
    db.commit()
    expires = int((NOW + timedelta(hours=6)).timestamp())

    def handler(request):
        body = dict(httpx.QueryParams(request.content.decode()))
        assert body["grant_type"] == "refresh_token"
        assert body["refresh_token"] == "refresh-0"
        return httpx.Response(200, json={
            "access_token": "a2", "refresh_token": "r2", "expires_at": expires,
            "athlete": {"id": 31337}, "scope": ["read", "activity:read_all"],
        })

    refreshed = await refresh_connection_if_needed(db, mock_client(handler), conn, now=NOW)
    db.expire_all()
    assert refreshed.access_token == "a2"
    assert refreshed.refresh_token == "r2"
    assert refreshed.athlete_id == 31337
    assert refreshed.scope == "read,activity:read_all"
    assert refreshed.last_error is None
    assert refreshed.expires_at.replace(tzinfo=timezone.utc) == NOW + timedelta(hours=6)


async def test_valid_token_is_not_refreshed(db, make_user, mock_client):
    conn = make_user(expires_at=NOW + timedelta(hours=1))

    def handler(request):
        raise AssertionError("no network call expected")

    assert await refresh_connection_if_needed(db, mock_client(handler), conn, now=NOW) is conn


async def test_rejected_refresh_raises(db, make_user, mock_client):
    conn = make_user(expires_at=None)

    def handler(request):
        return httpx.Response(400, json={"message": "Bad Request", "errors": [{"code": "invalid"}]})

    with pytest.raises(TokenRefreshError) as exc:
        await refresh_connection_if_needed(db, mock_client(handler), conn, now=NOW)
    assert exc.value.status_code == 400

"""Keeps a user's Strava access token valid before any API call is made."""

from datetime import datetime, timedelta

from loguru import logger
from sqlalchemy.orm import Session

from .errors import TokenRefreshError
from .models import StravaConnection
from .strava import StravaClient, map_scope
from .utils_time import as_utc, from_epoch, utcnow

TOKEN_REFRESH_BUFFER = timedelta(minutes=10)

def needs_refresh(connection: StravaConnection, now: datetime, buffer: timedelta = TOKEN_REFRESH_BUFFER) -> bool:
    expires_at = as_utc(connection.expires_at)
    return expires_at is None or expires_at - now < buffer

async def refresh_connection_if_needed(
    db: Session,
    client: StravaClient,
    connection: StravaConnection,
    now: datetime | None = None,
    buffer: timedelta = TOKEN_REFRESH_BUFFER,
) -> StravaConnection:
    """Return the connection with an access token valid for at least `buffer`.

    The new token pair is committed straight away: Strava rotates refresh
    tokens, so losing it to a later rollback would orphan the connection.

    Raises:
        TokenRefreshError: Strava rejected the refresh token.
    """
    now = now or utcnow()
    if not needs_refresh(connection, now, buffer):
        return connection

    logger.info(f"[TOKEN_REFRESH] Refreshing tokens for user_id={connection.user_id}")
    refreshed = await client.refresh_token(connection.refresh_token)
    try:
        access_token = refreshed["access_token"]
    except (KeyError, TypeError) as e:
        raise TokenRefreshError("Strava token response missing access_token") from e

    connection.access_token = access_token
    connection.refresh_token = refreshed.get("refresh_token") or connection.refresh_token
    connection.expires_at = from_epoch(refreshed.get("expires_at"))
    connection.athlete_id = (refreshed.get("athlete") or {}).get("id") or connection.athlete_id
    connection.scope = map_scope(refreshed.get("scope"))
    connection.last_error = None
    connection.updated_at = now
    db.add(connection)
    db.commit()
    return connection

async def token_status(db: Session, client: StravaClient, connection: StravaConnection) -> dict:
    """Refresh if due and report the connection state; failures are recorded on the row."""
    try:
        connection = await refresh_connection_if_needed(db, client, connection)
    except TokenRefreshError as e:
        db.rollback()
        connection.last_error = str(e)
        connection.updated_at = utcnow()
        db.add(connection)
        db.commit()
        raise
    return {
        "status": "connected",
        "athlete_id": connection.athlete_id,
        "expires_at": as_utc(connection.expires_at).isoformat() if connection.expires_at else None,
        "last_error": connection.last_error,
    }

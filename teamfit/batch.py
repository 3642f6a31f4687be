"""Runs the per-connection sync across every connection a trigger is entitled to.

Three callers converge here: the Strava webhook relay (shared secret plus an
athlete id), the external cron job (its own shared secret) and a signed-in
user pressing "sync now". Connections are processed one after another; one
connection failing never stops the rest.
"""

from dataclasses import dataclass
from datetime import datetime

from loguru import logger
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .config import Settings
from .errors import AuthorizationError, ConnectionNotFound
from .models import StravaConnection, SyncLog
from .strava import StravaClient
from .sync import SyncResult, load_active_challenges, sync_connection
from .utils_time import get_tz, utcnow

@dataclass
class AuthContext:
    webhook_secret: str | None = None
    cron_secret: str | None = None
    user_id: str | None = None

def _secret_matches(provided: str | None, expected: str | None) -> bool:
    return bool(expected) and provided == expected

def athlete_id_from(payload: dict | None) -> int | None:
    if not isinstance(payload, dict):
        return None
    value = payload.get("owner_id") or payload.get("athlete_id")
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None

def resolve_connections(
    db: Session,
    settings: Settings,
    auth: AuthContext,
    athlete_id: int | None,
) -> tuple[list[StravaConnection], str]:
    """Pick the connection set for a trigger.

    Precedence: webhook secret (only with an athlete id), then cron secret,
    then the session user. The first one that validates decides.

    Raises:
        AuthorizationError: nothing validated.
        ConnectionNotFound: session user without a connection.
    """
    if athlete_id and _secret_matches(auth.webhook_secret, settings.STRAVA_WEBHOOK_SECRET):
        rows = db.scalars(select(StravaConnection).where(StravaConnection.athlete_id == athlete_id)).all()
        return list(rows), "webhook"

    if _secret_matches(auth.cron_secret, settings.STRAVA_CRON_SECRET):
        q = select(StravaConnection)
        if athlete_id:
            q = q.where(StravaConnection.athlete_id == athlete_id)
        return list(db.scalars(q).all()), "cron"

    if auth.user_id:
        rows = db.scalars(select(StravaConnection).where(StravaConnection.user_id == auth.user_id)).all()
        if not rows:
            raise ConnectionNotFound("No Strava connection found")
        return list(rows), "user"

    raise AuthorizationError("Unauthorized")

def error_message(error: BaseException) -> str:
    return str(error) or error.__class__.__name__

def record_failure(db: Session, connection: StravaConnection, message: str, now: datetime) -> None:
    try:
        connection.last_error = message
        connection.updated_at = now
        db.add(connection)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception(f"[STRAVA_SYNC] could not record last_error for user_id={connection.user_id}")

def record_sync_log(
    db: Session,
    connection: StravaConnection,
    started_at: datetime,
    status: str,
    result: SyncResult | None = None,
    error: str | None = None,
) -> None:
    # bookkeeping only: a failed insert is logged and forgotten
    try:
        db.add(SyncLog(
            user_id=connection.user_id,
            athlete_id=connection.athlete_id,
            started_at=started_at,
            finished_at=utcnow(),
            since=result.since if result else None,
            fetched_activities=result.fetched_activities if result else None,
            processed_activities=result.processed_activities if result else None,
            matched_activities=result.matched_activities if result else None,
            progress_updates=result.progress_updates if result else None,
            sample_activities=result.sample_activities if result else None,
            status=status,
            error=error,
        ))
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.warning(f"[STRAVA_SYNC] failed to persist sync log for user_id={connection.user_id}: {e}")

async def run_batch(
    db: Session,
    client: StravaClient,
    settings: Settings,
    connections: list[StravaConnection],
    challenges,
    now: datetime | None = None,
) -> list[SyncResult]:
    results = []
    for connection in connections:
        started_at = utcnow()
        user_id, athlete_id = connection.user_id, connection.athlete_id
        try:
            result = await sync_connection(db, client, settings, connection, challenges, now=now)
        except Exception as e:
            db.rollback()
            message = error_message(e)
            logger.error(f"[STRAVA_SYNC] sync failed user_id={user_id} athlete_id={athlete_id}: {message}")
            record_failure(db, connection, message, now or utcnow())
            record_sync_log(db, connection, started_at, "error", error=message)
            continue
        results.append(result)
        record_sync_log(db, connection, started_at, "success", result=result)
    return results

async def trigger_sync(
    db: Session,
    client: StravaClient,
    settings: Settings,
    auth: AuthContext,
    payload: dict | None = None,
    now: datetime | None = None,
) -> dict:
    athlete_id = athlete_id_from(payload)
    connections, mode = resolve_connections(db, settings, auth, athlete_id)

    challenges = load_active_challenges(db, now=now or utcnow(), tz=get_tz(settings.CHALLENGE_TZ))
    if not challenges:
        return {"status": "no_challenges"}

    logger.info(f"[STRAVA_SYNC] mode={mode} connections={len(connections)} challenges={len(challenges)}")
    results = await run_batch(db, client, settings, connections, challenges, now=now)
    return {
        "status": "processed",
        "connections": len(connections),
        "last_synced_at": results[0].last_synced_at.isoformat() if results else None,
        "results": [r.as_dict() for r in results],
    }

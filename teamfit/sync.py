"""Per-connection Strava sync.

One run walks a fixed sequence: make sure the token is valid, fetch every
activity since the watermark, evaluate each unseen activity against the
challenges the user may take part in, re-derive completion for the touched
challenges and finally advance the watermark. Nothing but the token refresh
is committed until the very end, so a failed run leaves no partial progress
behind and is simply retried from the old watermark.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, tzinfo, timezone

from loguru import logger
from sqlalchemy import select
from sqlalchemy.orm import Session

from .config import Settings
from .eligibility import is_active, matches, permitted_challenges
from .fetcher import fetch_activities_since
from .ledger import DedupLedger
from .models import Challenge, StravaConnection, TeamMember
from .progress import record_progress, recompute_submissions, select_metric_value
from .strava import StravaClient
from .tokens import refresh_connection_if_needed
from .utils_time import as_utc, get_tz, utcnow

LOOKBACK = timedelta(days=30)

@dataclass
class SyncResult:
    user_id: str
    athlete_id: int | None
    since: datetime
    fetched_activities: int = 0
    processed_activities: int = 0
    matched_activities: int = 0
    progress_updates: int = 0
    touched_challenges: list[str] = field(default_factory=list)
    sample_activities: list[dict] = field(default_factory=list)
    last_synced_at: datetime | None = None

    def as_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "athlete_id": self.athlete_id,
            "since": self.since.isoformat(),
            "fetched_activities": self.fetched_activities,
            "processed_activities": self.processed_activities,
            "matched_activities": self.matched_activities,
            "progress_updates": self.progress_updates,
            "touched_challenges": self.touched_challenges,
            "sample_activities": self.sample_activities,
            "last_synced_at": self.last_synced_at.isoformat() if self.last_synced_at else None,
        }

def load_active_challenges(db: Session, now: datetime | None = None, tz: tzinfo = timezone.utc) -> list[Challenge]:
    now = now or utcnow()
    rows = db.scalars(select(Challenge).where(Challenge.hidden.is_(False))).all()
    return [c for c in rows if is_active(c, now, tz)]

def team_ids_for_user(db: Session, user_id: str) -> list[str]:
    return list(db.scalars(select(TeamMember.team_id).where(TeamMember.user_id == user_id)))

def sync_window_start(last_synced_at: datetime | None, now: datetime, lookback: timedelta = LOOKBACK) -> datetime:
    floor = now - lookback
    last = as_utc(last_synced_at)
    if last and last > floor:
        return last
    return floor

def sample_of(activities, limit: int = 5) -> list[dict]:
    return [
        {
            "id": a.id,
            "name": a.name,
            "type": a.activity_type,
            "occurred_at": a.occurred_at.isoformat(),
            "distance": a.metrics.get("distance"),
            "moving_time": a.metrics.get("moving_time"),
            "steps": a.metrics.get("steps"),
        }
        for a in activities[:limit]
    ]

async def sync_connection(
    db: Session,
    client: StravaClient,
    settings: Settings,
    connection: StravaConnection,
    challenges: list[Challenge],
    now: datetime | None = None,
) -> SyncResult:
    now = now or utcnow()
    tz = get_tz(settings.CHALLENGE_TZ)

    connection = await refresh_connection_if_needed(
        db, client, connection, now=now,
        buffer=timedelta(minutes=settings.TOKEN_REFRESH_BUFFER_MINUTES),
    )

    since = sync_window_start(connection.last_synced_at, now, timedelta(days=settings.INGESTION_LOOKBACK_DAYS))
    activities = await fetch_activities_since(
        client, connection.access_token, since, page_size=settings.STRAVA_PAGE_SIZE, tz=tz,
    )

    user_id = connection.user_id
    team_ids = team_ids_for_user(db, user_id)
    eligible = permitted_challenges(challenges, team_ids)
    ledger = DedupLedger(db)
    result = SyncResult(
        user_id=user_id,
        athlete_id=connection.athlete_id,
        since=since,
        fetched_activities=len(activities),
        sample_activities=sample_of(activities),
    )
    touched: set[str] = set()

    for activity in activities:
        if ledger.was_processed(user_id, activity.id):
            continue
        result.processed_activities += 1
        matched = False
        for challenge in eligible:
            if not matches(activity, challenge, team_ids, tz):
                continue
            value = select_metric_value(activity, challenge.metric_type)
            record_progress(db, user_id, challenge, activity.id, value)
            touched.add(challenge.id)
            result.progress_updates += 1
            matched = True
        if matched:
            result.matched_activities += 1
        ledger.mark_processed(user_id, activity.id, activity.raw)

    recompute_submissions(db, user_id, touched, now=now)

    connection.last_synced_at = now
    connection.last_error = None
    connection.updated_at = now
    db.add(connection)
    db.commit()

    result.touched_challenges = sorted(touched)
    result.last_synced_at = now
    logger.info(
        f"[STRAVA_SYNC] user_id={user_id} athlete_id={connection.athlete_id} since={since.isoformat()} "
        f"fetched={result.fetched_activities} processed={result.processed_activities} "
        f"matched={result.matched_activities} updates={result.progress_updates}"
    )
    return result

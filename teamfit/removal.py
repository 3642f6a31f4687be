from datetime import datetime
from typing import Iterable

from loguru import logger
from sqlalchemy import select, delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .ledger import DedupLedger
from .models import ProgressEntry
from .progress import recompute_submissions

def coerce_activity_ids(values) -> list[int]:
    if not isinstance(values, list):
        return []
    out = []
    for v in values:
        if isinstance(v, bool):
            continue
        try:
            out.append(int(v))
        except (TypeError, ValueError):
            continue
    return out

def remove_activities(db: Session, user_id: str, activity_ids: Iterable[int], now: datetime | None = None) -> dict:
    """
    Drop a user's progress entries for the given Strava activities, forget
    them in the ledger and re-derive every affected submission.
    """
    activity_ids = list(activity_ids)
    affected = sorted(set(db.scalars(
        select(ProgressEntry.challenge_id).where(
            ProgressEntry.user_id == user_id,
            ProgressEntry.activity_id.in_(activity_ids),
        )
    )))

    db.execute(
        delete(ProgressEntry).where(
            ProgressEntry.user_id == user_id,
            ProgressEntry.activity_id.in_(activity_ids),
        )
    )

    try:
        with db.begin_nested():
            DedupLedger(db).forget(user_id, activity_ids)
    except SQLAlchemyError as e:
        logger.warning(f"[ACTIVITY_REMOVAL] unable to delete activity ingestions for user_id={user_id}: {e}")

    recompute_submissions(db, user_id, affected, now=now)
    db.commit()
    logger.info(f"[ACTIVITY_REMOVAL] user_id={user_id} removed={len(activity_ids)} affected={affected}")
    return {
        "removed": len(activity_ids),
        "affected_challenges": affected,
        "message": "Selected activities removed",
    }

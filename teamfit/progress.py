from datetime import datetime
from typing import Iterable

from loguru import logger
from sqlalchemy import select, func
from sqlalchemy.orm import Session

from .db import upsert
from .models import Challenge, ProgressEntry, Submission
from .utils_time import as_utc, utcnow

METRIC_FIELDS = {
    "distance": "distance",
    "duration": "moving_time",
    "moving_time": "moving_time",
    "elevation": "elevation",
    "steps": "steps",
}

def select_metric_value(activity, metric_type: str | None) -> float | None:
    field = METRIC_FIELDS.get(metric_type or "")
    if field is None:
        return None
    return activity.metrics.get(field)

def record_progress(db: Session, user_id: str, challenge: Challenge, activity_id: int, value: float) -> None:
    # completion is decided per challenge, never per activity
    upsert(
        db, ProgressEntry,
        [{
            "user_id": user_id,
            "challenge_id": challenge.id,
            "activity_id": activity_id,
            "progress_value": value,
            "target_value": challenge.target_value,
            "completed": False,
            "completed_at": None,
        }],
        conflict_keys=["challenge_id", "user_id", "activity_id"],
    )

def accumulated_totals(db: Session, user_id: str, challenge_ids: Iterable[str]) -> dict[str, float]:
    challenge_ids = list(challenge_ids)
    if not challenge_ids:
        return {}
    rows = db.execute(
        select(ProgressEntry.challenge_id, func.sum(ProgressEntry.progress_value))
        .where(ProgressEntry.user_id == user_id, ProgressEntry.challenge_id.in_(challenge_ids))
        .group_by(ProgressEntry.challenge_id)
    ).all()
    return {cid: float(total or 0) for cid, total in rows}

def derive_completion(
    total: float,
    target: float | None,
    existing_completed_at: datetime | None,
    now: datetime,
) -> tuple[bool, datetime | None]:
    completed = bool(target and target > 0 and total >= target)
    if not completed:
        return False, None
    return True, existing_completed_at or now

def recompute_submissions(db: Session, user_id: str, challenge_ids: Iterable[str], now: datetime | None = None) -> dict[str, dict]:
    """
    Re-derive the Submission of every listed challenge from the progress
    entries that exist right now. Totals are summed fresh each time so that
    entries deleted out of band are reflected.
    """
    challenge_ids = sorted(set(challenge_ids))
    if not challenge_ids:
        return {}
    now = now or utcnow()

    totals = accumulated_totals(db, user_id, challenge_ids)
    targets = dict(db.execute(
        select(Challenge.id, Challenge.target_value).where(Challenge.id.in_(challenge_ids))
    ).all())
    existing = {
        s.challenge_id: s
        for s in db.scalars(
            select(Submission).where(Submission.user_id == user_id, Submission.challenge_id.in_(challenge_ids))
        )
    }

    rows = []
    for cid in challenge_ids:
        total = totals.get(cid, 0.0)
        target = targets.get(cid)
        prev = existing.get(cid)
        completed, completed_at = derive_completion(
            total, target, as_utc(prev.completed_at) if prev and prev.completed else None, now,
        )
        if prev and prev.completed and not completed:
            logger.info(f"[PROGRESS] user_id={user_id} challenge_id={cid} dropped below target ({total} < {target})")
        rows.append({
            "user_id": user_id,
            "challenge_id": cid,
            "completed": completed,
            "completed_at": completed_at,
            "progress_value": total,
            "progress_percent": (total / target) * 100 if target and target > 0 else None,
        })

    upsert(db, Submission, rows, conflict_keys=["challenge_id", "user_id"])
    # the upsert bypasses the identity map
    for s in existing.values():
        db.expire(s)
    return {r["challenge_id"]: r for r in rows}

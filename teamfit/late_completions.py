"""Late completion requests: the manual path onto the Submission entity.

A member who finished a challenge after it closed asks for credit; an admin
approves or declines. Approval marks the submission completed as of the end
of the challenge's last day.
"""

from datetime import date, datetime, timezone, tzinfo

from loguru import logger
from sqlalchemy import select
from sqlalchemy.orm import Session

from .db import upsert
from .models import Challenge, LateCompletionRequest, Submission
from .utils_time import end_of_day, is_date_only, parse_iso_date, utcnow

ACTIONS = {"approve": "approved", "decline": "declined"}

def lock_date(challenge: Challenge, tz: tzinfo = timezone.utc) -> datetime | None:
    """Moment after which a challenge no longer accepts progress; None without an end date."""
    end = challenge.end_date
    if is_date_only(end):
        return end_of_day(date.fromisoformat(end.strip()), tz)
    return parse_iso_date(end, tz)

def is_open(challenge: Challenge, now: datetime, tz: tzinfo = timezone.utc) -> bool:
    lock = lock_date(challenge, tz)
    return lock is None or now <= lock

def completed_at_for(challenge: Challenge | None, tz: tzinfo = timezone.utc) -> datetime:
    return (lock_date(challenge, tz) if challenge else None) or utcnow()

def has_completed(db: Session, user_id: str, challenge_id: str) -> bool:
    return bool(db.scalar(
        select(Submission.completed).where(Submission.user_id == user_id, Submission.challenge_id == challenge_id)
    ))

def find_request(db: Session, user_id: str, challenge_id: str) -> LateCompletionRequest | None:
    return db.scalar(
        select(LateCompletionRequest).where(
            LateCompletionRequest.user_id == user_id,
            LateCompletionRequest.challenge_id == challenge_id,
        )
    )

def create_request(db: Session, user_id: str, challenge_id: str) -> LateCompletionRequest:
    req = LateCompletionRequest(user_id=user_id, challenge_id=challenge_id)
    db.add(req)
    db.commit()
    logger.info(f"[LATE_COMPLETION] user_id={user_id} requested challenge_id={challenge_id}")
    return req

def list_requests(
    db: Session,
    status: str | None = "pending",
    user_id: str | None = None,
) -> list[LateCompletionRequest]:
    q = select(LateCompletionRequest).order_by(LateCompletionRequest.requested_at.desc())
    if status:
        q = q.where(LateCompletionRequest.status == status)
    if user_id:
        q = q.where(LateCompletionRequest.user_id == user_id)
    return list(db.scalars(q).unique())

def resolve_request(
    db: Session,
    request_id: str,
    action: str,
    admin_id: str,
    tz: tzinfo = timezone.utc,
) -> LateCompletionRequest | None:
    if action not in ACTIONS:
        raise ValueError("Invalid action")
    req = db.get(LateCompletionRequest, request_id)
    if req is None:
        return None

    req.status = ACTIONS[action]
    req.resolved_at = utcnow()
    req.resolved_by = admin_id
    db.add(req)

    if action == "approve":
        upsert(
            db, Submission,
            [{
                "user_id": req.user_id,
                "challenge_id": req.challenge_id,
                "completed": True,
                "completed_at": completed_at_for(req.challenge, tz).astimezone(timezone.utc),
            }],
            conflict_keys=["challenge_id", "user_id"],
        )
    db.commit()
    logger.info(f"[LATE_COMPLETION] request_id={request_id} {req.status} by admin_id={admin_id}")
    return req

def serialize(req: LateCompletionRequest) -> dict:
    c = req.challenge
    return {
        "id": req.id,
        "status": req.status,
        "user_id": req.user_id,
        "challenge_id": req.challenge_id,
        "requested_at": req.requested_at.isoformat() if req.requested_at else None,
        "resolved_at": req.resolved_at.isoformat() if req.resolved_at else None,
        "challenge": {"title": c.title, "week_index": c.week_index, "end_date": c.end_date} if c else None,
    }

from sqlalchemy import select, func
from sqlalchemy.orm import Session

from .models import Challenge, Profile, Submission, TeamMember

DEFAULT_LIMIT = 25

def is_member(db: Session, team_id: str, user_id: str) -> bool:
    return db.scalar(
        select(TeamMember.id).where(TeamMember.team_id == team_id, TeamMember.user_id == user_id).limit(1)
    ) is not None

def team_leaderboard(db: Session, team_id: str, limit: int = DEFAULT_LIMIT, offset: int = 0) -> dict:
    member_ids = list(db.scalars(select(TeamMember.user_id).where(TeamMember.team_id == team_id)))
    if not member_ids:
        return {"leaderboard": [], "contributions": [], "has_more": False, "total": 0}

    names = {
        pid: name or "Member"
        for pid, name in db.execute(select(Profile.id, Profile.display_name).where(Profile.id.in_(member_ids)))
    }

    totals = {
        uid: (int(points or 0), int(count or 0))
        for uid, points, count in db.execute(
            select(Submission.user_id, func.sum(Challenge.base_points), func.count(Submission.id))
            .join(Challenge, Challenge.id == Submission.challenge_id)
            .where(Submission.user_id.in_(member_ids), Submission.completed.is_(True))
            .group_by(Submission.user_id)
        )
    }

    board = [
        {
            "user_id": uid,
            "name": names.get(uid, "Member"),
            "points": totals.get(uid, (0, 0))[0],
            "completed_count": totals.get(uid, (0, 0))[1],
        }
        for uid in member_ids
    ]
    board.sort(key=lambda r: (-r["points"], -r["completed_count"], r["name"]))

    completed_q = (
        select(Submission)
        .where(Submission.user_id.in_(member_ids), Submission.completed.is_(True))
    )
    total = db.scalar(select(func.count()).select_from(completed_q.subquery())) or 0
    recent = db.scalars(
        completed_q.order_by(Submission.completed_at.desc()).offset(offset).limit(limit)
    ).unique().all()

    contributions = [
        {
            "user_id": s.user_id,
            "name": names.get(s.user_id, "Member"),
            "challenge_id": s.challenge_id,
            "title": s.challenge.title if s.challenge else None,
            "points": s.challenge.base_points if s.challenge else 0,
            "completed_at": s.completed_at.isoformat() if s.completed_at else None,
        }
        for s in recent
    ]
    return {
        "leaderboard": board,
        "contributions": contributions,
        "has_more": offset + len(contributions) < total,
        "total": total,
    }

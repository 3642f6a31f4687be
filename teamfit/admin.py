from fastapi import APIRouter, Depends, HTTPException, Request
from loguru import logger
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from .classify import split_activity_types
from .db import get_session
from .late_completions import ACTIONS, list_requests, resolve_request, serialize
from .models import Challenge
from .progress import METRIC_FIELDS
from .security import require_admin
from .units import normalize_target
from .utils_time import get_tz, parse_iso_date

router = APIRouter(prefix="/admin")

METRIC_TYPES = {"manual", *METRIC_FIELDS}

class ChallengeIn(BaseModel):
    title: str
    week_index: int = 0
    description: str | None = None
    start_date: str | None = None
    end_date: str | None = None
    base_points: int = 0
    team_ids: list[str] = Field(default_factory=list)
    hidden: bool = False
    metric_type: str = "manual"
    target_value: float | None = None
    target_unit: str | None = None
    activity_types: list[str] = Field(default_factory=list)

class ResolveIn(BaseModel):
    request_id: str
    action: str

def challenge_fields(body: ChallengeIn) -> dict:
    """Validate an admin challenge payload and return the columns to store."""
    if body.metric_type not in METRIC_TYPES:
        raise HTTPException(400, f"metric_type must be one of {sorted(METRIC_TYPES)}")
    if body.metric_type != "manual" and (body.target_value is None or body.target_value <= 0):
        raise HTTPException(400, "target_value must be positive for tracked metrics")
    for bound in (body.start_date, body.end_date):
        if bound and parse_iso_date(bound) is None:
            raise HTTPException(400, f"invalid date: {bound}")
    try:
        target, unit = normalize_target(body.metric_type, body.target_value, body.target_unit)
    except ValueError as e:
        raise HTTPException(400, str(e))
    return dict(
        title=body.title.strip(),
        week_index=body.week_index,
        description=body.description,
        start_date=body.start_date,
        end_date=body.end_date,
        base_points=body.base_points,
        team_ids=body.team_ids,
        hidden=body.hidden,
        metric_type=body.metric_type,
        target_value=target,
        target_unit=unit,
        activity_types=sorted(split_activity_types(body.activity_types)),
    )

def challenge_out(c: Challenge) -> dict:
    return {"id": c.id, "target_value": c.target_value, "target_unit": c.target_unit, "activity_types": c.activity_types}

@router.post("/challenges")
def create_challenge(body: ChallengeIn, _: str = Depends(require_admin), db: Session = Depends(get_session)):
    c = Challenge(**challenge_fields(body))
    db.add(c); db.commit()
    return challenge_out(c)

@router.patch("/challenges/{challenge_id}")
def update_challenge(
    challenge_id: str,
    body: ChallengeIn,
    _: str = Depends(require_admin),
    db: Session = Depends(get_session),
):
    c = db.get(Challenge, challenge_id)
    if not c:
        raise HTTPException(404, "challenge not found")
    for name, value in challenge_fields(body).items():
        setattr(c, name, value)
    db.commit()
    return challenge_out(c)

@router.delete("/challenges/{challenge_id}")
def delete_challenge(challenge_id: str, _: str = Depends(require_admin), db: Session = Depends(get_session)):
    c = db.get(Challenge, challenge_id)
    if not c:
        raise HTTPException(404, "challenge not found")
    db.delete(c); db.commit()
    logger.info(f"[ADMIN] deleted challenge_id={challenge_id}")
    return {"status": "deleted", "id": challenge_id}

@router.get("/late-completions")
def late_completions(status: str | None = "pending", _: str = Depends(require_admin), db: Session = Depends(get_session)):
    return {"requests": [serialize(r) for r in list_requests(db, status or None)]}

@router.patch("/late-completions")
def resolve_late_completion(
    body: ResolveIn,
    request: Request,
    admin_id: str = Depends(require_admin),
    db: Session = Depends(get_session),
):
    if body.action not in ACTIONS:
        raise HTTPException(400, "Invalid action")
    tz = get_tz(request.app.state.settings.CHALLENGE_TZ)
    req = resolve_request(db, body.request_id, body.action, admin_id, tz)
    if not req:
        raise HTTPException(404, "request not found")
    return {"request": serialize(req)}

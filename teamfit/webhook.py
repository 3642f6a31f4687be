from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from .db import get_session
from .ingest import handle_ingest
from .security import current_user_id

router = APIRouter(prefix="/webhook")

@router.get("/strava")
async def verify_strava(
    request: Request,
    mode: str | None = Query(None, alias="hub.mode"),
    challenge: str | None = Query(None, alias="hub.challenge"),
    verify_token: str | None = Query(None, alias="hub.verify_token"),
):
    expected = request.app.state.settings.STRAVA_WEBHOOK_SECRET
    if not expected or verify_token != expected:
        raise HTTPException(status_code=403, detail="Bad token")
    # Strava expects this exact key back
    return {"hub.challenge": challenge}

@router.post("/strava")
async def receive_event(
    request: Request,
    db: Session = Depends(get_session),
    user_id: str | None = Depends(current_user_id),
):
    # relayed Strava events: {object_type, object_id, aspect_type, updates, owner_id}
    return await handle_ingest(request, db, user_id)

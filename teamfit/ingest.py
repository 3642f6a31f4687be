from fastapi import HTTPException, Request
from sqlalchemy.orm import Session

from .batch import AuthContext, trigger_sync
from .errors import AuthorizationError, ConnectionNotFound

WEBHOOK_SECRET_HEADER = "x-strava-webhook-secret"
CRON_SECRET_HEADER = "x-cron-secret"

async def read_payload(request: Request) -> dict:
    try:
        payload = await request.json()
    except ValueError:
        return {}
    return payload if isinstance(payload, dict) else {}

async def handle_ingest(request: Request, db: Session, user_id: str | None) -> dict:
    payload = await read_payload(request)
    auth = AuthContext(
        webhook_secret=request.headers.get(WEBHOOK_SECRET_HEADER),
        cron_secret=request.headers.get(CRON_SECRET_HEADER),
        user_id=user_id,
    )
    try:
        return await trigger_sync(
            db, request.app.state.strava, request.app.state.settings, auth, payload,
        )
    except AuthorizationError as e:
        raise HTTPException(status_code=401, detail=str(e))
    except ConnectionNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))

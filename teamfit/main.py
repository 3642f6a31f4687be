from contextlib import asynccontextmanager
from typing import Any
import secrets

from fastapi import FastAPI, Depends, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse
from loguru import logger
from pydantic import BaseModel
from sqlalchemy.orm import Session
from urllib.parse import urlencode

from .config import Settings, get_settings
from .db import make_engine, make_session_factory, get_session, upsert
from . import models
from .admin import router as admin_router
from .errors import StravaAPIError, TokenRefreshError
from .ingest import handle_ingest
from .late_completions import create_request, find_request, has_completed, is_open, list_requests, serialize
from .leaderboard import DEFAULT_LIMIT, is_member, team_leaderboard
from .logger import setup_logger
from .models import Challenge, StravaConnection
from .removal import coerce_activity_ids, remove_activities
from .security import current_user_id, require_user
from .strava import StravaClient, map_scope
from .tokens import token_status
from .utils_time import from_epoch, get_tz, utcnow
from .webhook import router as webhook_router

STATE_COOKIE = "strava_oauth_state"

class RemoveActivitiesIn(BaseModel):
    activityIds: Any = None

class LateCompletionIn(BaseModel):
    challenge_id: str

def create_app(settings: Settings | None = None, session_factory=None, strava: StravaClient | None = None) -> FastAPI:
    settings = settings or get_settings()
    setup_logger(settings.LOG_LEVEL)

    if session_factory is None:
        engine = make_engine(settings.DATABASE_URL)
        models.Base.metadata.create_all(bind=engine)
        session_factory = make_session_factory(engine)

    owns_strava = strava is None

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        yield
        # injected clients belong to the caller
        if owns_strava:
            await _app.state.strava.aclose()

    app = FastAPI(title="Team Fitness Challenges API", lifespan=lifespan)
    app.state.settings = settings
    app.state.session_factory = session_factory
    app.state.strava = strava or StravaClient(settings)

    app.include_router(webhook_router)
    app.include_router(admin_router)
    app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.post("/strava/ingest")
    async def ingest(
        request: Request,
        db: Session = Depends(get_session),
        user_id: str | None = Depends(current_user_id),
    ):
        return await handle_ingest(request, db, user_id)

    @app.get("/strava/auth/start")
    async def auth_start(user_id: str = Depends(require_user)):
        state = secrets.token_urlsafe(24)
        response = RedirectResponse(app.state.strava.authorize_url(state))
        response.set_cookie(
            STATE_COOKIE, state, httponly=True, samesite="lax",
            secure=settings.ENV == "production", path="/strava", max_age=60 * 15,
        )
        return response

    def dashboard_redirect(status: str, message: str | None = None) -> RedirectResponse:
        params = {"strava": status}
        if message:
            params["message"] = message
        response = RedirectResponse(f"{settings.SITE_URL}/dashboard?{urlencode(params)}")
        response.delete_cookie(STATE_COOKIE, path="/strava")
        return response

    @app.get("/strava/auth/callback")
    async def auth_cb(
        request: Request,
        code: str | None = None,
        state: str | None = None,
        error: str | None = None,
        db: Session = Depends(get_session),
        user_id: str | None = Depends(current_user_id),
    ):
        if error:
            return dashboard_redirect("error", error)
        stored = request.cookies.get(STATE_COOKIE)
        if not code or not state or not stored or state != stored:
            return dashboard_redirect("error", "Invalid state or missing code")
        if not user_id:
            return dashboard_redirect("error", "Sign in to connect Strava")

        try:
            token = await app.state.strava.exchange_code(code)
        except StravaAPIError as e:
            return dashboard_redirect("error", str(e))

        now = utcnow()
        upsert(db, StravaConnection, [{
            "user_id": user_id,
            "access_token": token["access_token"],
            "refresh_token": token["refresh_token"],
            "expires_at": from_epoch(token.get("expires_at")),
            "athlete_id": (token.get("athlete") or {}).get("id"),
            "scope": map_scope(token.get("scope")),
            "last_error": None,
            "created_at": now,
            "updated_at": now,
        }], conflict_keys=["user_id"], update_columns=[
            "access_token", "refresh_token", "expires_at", "athlete_id", "scope", "last_error", "updated_at",
        ])
        db.commit()
        return dashboard_redirect("connected")

    @app.post("/strava/disconnect")
    async def disconnect(user_id: str = Depends(require_user), db: Session = Depends(get_session)):
        conn = db.get(StravaConnection, user_id)
        if conn and conn.access_token:
            try:
                await app.state.strava.deauthorize(conn.access_token)
            except StravaAPIError as e:
                # local row goes regardless
                logger.warning(f"[STRAVA_API] deauthorize failed for user_id={user_id}: {e}")
        if conn:
            db.delete(conn)
            db.commit()
        return {"status": "disconnected"}

    @app.post("/strava/refresh")
    async def refresh(user_id: str = Depends(require_user), db: Session = Depends(get_session)):
        conn = db.get(StravaConnection, user_id)
        if not conn:
            return {"status": "disconnected"}
        try:
            return await token_status(db, app.state.strava, conn)
        except TokenRefreshError as e:
            return JSONResponse(status_code=500, content={"error": str(e), "last_error": str(e)})

    @app.post("/strava/remove-activities")
    def remove(body: RemoveActivitiesIn, user_id: str = Depends(require_user), db: Session = Depends(get_session)):
        activity_ids = coerce_activity_ids(body.activityIds)
        if not activity_ids:
            raise HTTPException(400, "activityIds must be a non-empty array")
        return remove_activities(db, user_id, activity_ids)

    @app.get("/teams/{team_id}/leaderboard")
    def leaderboard(
        team_id: str,
        limit: int = DEFAULT_LIMIT,
        offset: int = 0,
        user_id: str = Depends(require_user),
        db: Session = Depends(get_session),
    ):
        if not is_member(db, team_id, user_id):
            raise HTTPException(403, "Forbidden")
        return team_leaderboard(db, team_id, limit=max(1, min(limit, 100)), offset=max(0, offset))

    @app.get("/late-completions")
    def my_late_completions(user_id: str = Depends(require_user), db: Session = Depends(get_session)):
        return {"requests": [serialize(r) for r in list_requests(db, status=None, user_id=user_id)]}

    @app.post("/late-completions")
    def request_late_completion(
        body: LateCompletionIn,
        user_id: str = Depends(require_user),
        db: Session = Depends(get_session),
    ):
        challenge = db.get(Challenge, body.challenge_id.strip())
        if not challenge:
            raise HTTPException(404, "Challenge not found")
        if is_open(challenge, utcnow(), get_tz(settings.CHALLENGE_TZ)):
            raise HTTPException(400, "Challenge is still open")
        if has_completed(db, user_id, challenge.id):
            raise HTTPException(409, "Challenge already completed")
        if find_request(db, user_id, challenge.id):
            raise HTTPException(409, "Request already submitted")
        return {"request": serialize(create_request(db, user_id, challenge.id))}

    return app

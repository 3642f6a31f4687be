# teamfit/security.py
from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from .db import get_session
from .models import AuthSession, Profile
from .utils_time import as_utc, utcnow

ADMIN_ROLES = {"admin", "mod"}

def bearer_token(authorization: str | None) -> str | None:
    if not authorization or not authorization.startswith("Bearer "):
        return None
    return authorization[len("Bearer "):].strip() or None

def current_user_id(
    authorization: str | None = Header(None),
    db: Session = Depends(get_session),
) -> str | None:
    token = bearer_token(authorization)
    if not token:
        return None
    sess = db.get(AuthSession, token)
    if not sess:
        return None
    expires_at = as_utc(sess.expires_at)
    if expires_at and expires_at <= utcnow():
        return None
    return sess.user_id

def require_user(user_id: str | None = Depends(current_user_id)) -> str:
    if not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    return user_id

def require_admin(user_id: str = Depends(require_user), db: Session = Depends(get_session)) -> str:
    profile = db.get(Profile, user_id)
    if not profile or profile.role not in ADMIN_ROLES:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
    return user_id

# pyright: reportCallInDefaultInitializer=false
from __future__ import annotations

from dataclasses import dataclass
import logging

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from docsync.core.config import Settings
from docsync.core.errors import ForbiddenError, UnauthorizedError
from docsync.core.security import decode_access_token
from docsync.db.models import User, utcnow
from docsync.db.session import get_db
from docsync.services.sessions import find_live_session
from docsync.services.sync_engine import SyncEngine


logger = logging.getLogger(__name__)

_bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class CurrentUser:
    id: str
    email: str
    first_name: str | None
    last_name: str | None
    token: str


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def bearer_token(
    creds: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),
) -> str | None:
    if creds is None or creds.scheme.lower() != "bearer" or creds.credentials == "":
        return None
    return creds.credentials


def resolve_principal(db: Session, s: Settings, token: str | None) -> CurrentUser:
    """Map a bearer credential to a user or fail with 401 (absent) / 403 (invalid or stale)."""
    if token is None:
        raise UnauthorizedError("Access token required")

    try:
        payload = decode_access_token(token, s.auth_access_token_secret)
    except ValueError:
        raise ForbiddenError("Invalid or expired token") from None

    sub = payload.get("sub")
    if not isinstance(sub, str) or sub == "":
        raise ForbiddenError("Invalid or expired token")

    now = utcnow()
    session_row = find_live_session(db, token=token, now=now)
    if session_row is None or session_row.user_id != sub:
        raise ForbiddenError("Session expired or revoked")

    user = db.get(User, sub)
    if user is None:
        raise ForbiddenError("User not found")

    principal = CurrentUser(
        id=user.id,
        email=user.email,
        first_name=user.first_name,
        last_name=user.last_name,
        token=token,
    )
    session_row.last_used = now
    db.commit()
    return principal


def require_user(
    db: Session = Depends(get_db),
    s: Settings = Depends(get_app_settings),
    token: str | None = Depends(bearer_token),
) -> CurrentUser:
    return resolve_principal(db, s, token)


def get_sync_engine(
    db: Session = Depends(get_db),
    s: Settings = Depends(get_app_settings),
) -> SyncEngine:
    return SyncEngine(
        db,
        max_content_bytes=s.sync_max_content_bytes,
        history_max_limit=s.sync_history_max_limit,
        strict_conflict_check=s.sync_strict_conflict_check,
    )

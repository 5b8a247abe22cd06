from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
import logging

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from docsync.core.config import Settings
from docsync.core.security import encode_access_token, hash_session_token
from docsync.db.models import User, UserSession, utcnow


logger = logging.getLogger(__name__)

_MAX_USER_AGENT_LENGTH = 1000


@dataclass(frozen=True)
class IssuedSession:
    token: str
    expires_at: datetime


def issue_session(
    db: Session,
    s: Settings,
    *,
    user: User,
    user_agent: str | None,
    ip_address: str | None,
) -> IssuedSession:
    """Mint a bearer token for ``user`` and store its hash. The caller commits."""
    now = utcnow()
    ttl_seconds = s.auth_access_token_ttl_seconds
    token = encode_access_token(
        {"sub": user.id, "email": user.email},
        secret=s.auth_access_token_secret,
        expires_in_seconds=ttl_seconds,
    )
    expires_at = now + timedelta(seconds=ttl_seconds)
    db.add(
        UserSession(
            user_id=user.id,
            token_hash=hash_session_token(token),
            created_at=now,
            expires_at=expires_at,
            last_used=now,
            user_agent=user_agent[:_MAX_USER_AGENT_LENGTH] if user_agent else None,
            ip_address=ip_address,
        )
    )
    logger.info("Session stored user_id=%s expires_at=%s", user.id, expires_at.isoformat())
    return IssuedSession(token=token, expires_at=expires_at)


def find_live_session(db: Session, *, token: str, now: datetime) -> UserSession | None:
    row = db.execute(
        select(UserSession).where(UserSession.token_hash == hash_session_token(token))
    ).scalar_one_or_none()
    if row is None or row.expires_at <= now:
        return None
    return row


def revoke_session(db: Session, *, token: str) -> bool:
    result = db.execute(
        delete(UserSession)
        .where(UserSession.token_hash == hash_session_token(token))
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return int(getattr(result, "rowcount", 0) or 0) > 0


def purge_expired_sessions(db: Session, *, now: datetime) -> dict[str, object]:
    to_delete = db.execute(
        select(func.count()).select_from(UserSession).where(UserSession.expires_at < now)
    ).scalar_one()
    _ = db.execute(
        delete(UserSession)
        .where(UserSession.expires_at < now)
        .execution_options(synchronize_session=False)
    )
    db.commit()

    logger.info("Cleaned up expired sessions deleted=%s", int(to_delete))
    return {
        "deleted": int(to_delete),
        "cutoff": now.isoformat(),
    }

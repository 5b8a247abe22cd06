# pyright: reportCallInDefaultInitializer=false
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request, status
from pydantic import Field
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from docsync.api.deps import CurrentUser, bearer_token, get_app_settings, require_user
from docsync.api.schemas import CamelModel, UtcDatetime
from docsync.core.config import Settings
from docsync.core.errors import SyncError, UnauthorizedError, ValidationError
from docsync.core.security import (
    hash_password,
    is_plausible_email,
    normalize_email,
    validate_password_policy,
    verify_password,
)
from docsync.db.models import User, utcnow
from docsync.db.session import get_db
from docsync.services.sessions import issue_session, revoke_session


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


class EmailAlreadyExistsError(SyncError):
    status_code = status.HTTP_409_CONFLICT


class RegisterRequest(CamelModel):
    email: str = Field(..., examples=["user@example.com"])
    password: str = Field(..., examples=["password123"])
    first_name: str | None = Field(None, max_length=100)
    last_name: str | None = Field(None, max_length=100)


class LoginRequest(CamelModel):
    email: str = Field(..., examples=["user@example.com"])
    password: str = Field(..., examples=["password123"])


class UserOut(CamelModel):
    id: str
    email: str
    first_name: str | None = None
    last_name: str | None = None
    created_at: UtcDatetime | None = None
    updated_at: UtcDatetime | None = None
    last_login: UtcDatetime | None = None


class AuthResponse(CamelModel):
    success: bool = True
    user: UserOut
    token: str
    expires_at: UtcDatetime


class VerifyResponse(CamelModel):
    success: bool = True
    user: UserOut


class LogoutResponse(CamelModel):
    success: bool = True
    message: str = "Logged out successfully"


def _client_ip(request: Request) -> str | None:
    if request.client is None:
        return None
    return request.client.host


def _user_out(user: User) -> UserOut:
    return UserOut(
        id=user.id,
        email=user.email,
        first_name=user.first_name,
        last_name=user.last_name,
        created_at=user.created_at,
        updated_at=user.updated_at,
        last_login=user.last_login,
    )


@router.post(
    "/register",
    response_model=AuthResponse,
    status_code=status.HTTP_201_CREATED,
    operation_id="auth_register",
)
def register(
    payload: RegisterRequest,
    request: Request,
    db: Session = Depends(get_db),
    s: Settings = Depends(get_app_settings),
) -> AuthResponse:
    email = normalize_email(payload.email)
    if not is_plausible_email(email):
        raise ValidationError("email must be a valid email address")
    try:
        validate_password_policy(payload.password)
    except ValueError as exc:
        raise ValidationError(str(exc)) from None

    existing = db.execute(select(User.id).where(User.email == email)).scalar_one_or_none()
    if existing is not None:
        raise EmailAlreadyExistsError("User with this email already exists")

    user = User(
        email=email,
        password_hash=hash_password(payload.password),
        first_name=payload.first_name,
        last_name=payload.last_name,
    )
    db.add(user)
    try:
        db.flush()
    except IntegrityError:
        db.rollback()
        raise EmailAlreadyExistsError("User with this email already exists") from None

    issued = issue_session(
        db,
        s,
        user=user,
        user_agent=request.headers.get("User-Agent"),
        ip_address=_client_ip(request),
    )
    out = _user_out(user)
    db.commit()

    logger.info("User registered user_id=%s", out.id)
    return AuthResponse(user=out, token=issued.token, expires_at=issued.expires_at)


@router.post(
    "/login",
    response_model=AuthResponse,
    operation_id="auth_login",
)
def login(
    payload: LoginRequest,
    request: Request,
    db: Session = Depends(get_db),
    s: Settings = Depends(get_app_settings),
) -> AuthResponse:
    email = normalize_email(payload.email)
    user = db.execute(select(User).where(User.email == email)).scalar_one_or_none()
    if user is None or not verify_password(payload.password, user.password_hash):
        raise UnauthorizedError("Invalid email or password")

    user.last_login = utcnow()
    issued = issue_session(
        db,
        s,
        user=user,
        user_agent=request.headers.get("User-Agent"),
        ip_address=_client_ip(request),
    )
    out = _user_out(user)
    db.commit()

    logger.info("User logged in user_id=%s", out.id)
    return AuthResponse(user=out, token=issued.token, expires_at=issued.expires_at)


@router.get(
    "/verify",
    response_model=VerifyResponse,
    operation_id="auth_verify",
)
def verify(user: CurrentUser = Depends(require_user)) -> VerifyResponse:
    return VerifyResponse(
        user=UserOut(
            id=user.id,
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
        )
    )


@router.post(
    "/logout",
    response_model=LogoutResponse,
    operation_id="auth_logout",
)
def logout(
    db: Session = Depends(get_db),
    token: str | None = Depends(bearer_token),
) -> LogoutResponse:
    # Logout stays idempotent: an unknown or missing token still gets 200.
    if token is not None:
        removed = revoke_session(db, token=token)
        logger.info("User logged out session_removed=%s", removed)
    return LogoutResponse()

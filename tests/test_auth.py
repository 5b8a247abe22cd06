# pyright: reportUnknownMemberType=false
# pyright: reportUnknownVariableType=false

from __future__ import annotations

from datetime import timedelta
from typing import cast
import uuid

from fastapi.testclient import TestClient
from sqlalchemy import select

from docsync.core.security import hash_session_token
from docsync.db.models import UserSession, utcnow
from docsync.main import app


def _random_email(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex}@example.com"


def _register(client: TestClient, *, email: str, password: str) -> dict[str, object]:
    resp = client.post(
        "/api/auth/register",
        json={"email": email, "password": password, "firstName": "Ada", "lastName": "Lovelace"},
    )
    assert resp.status_code == 201, resp.text
    return cast(dict[str, object], resp.json())


def test_register_login_verify_logout() -> None:
    email = _random_email("auth")
    password = f"pw-{uuid.uuid4().hex}"

    with TestClient(app) as client:
        registered = _register(client, email=email, password=password)
        assert registered["success"] is True
        user = cast(dict[str, object], registered["user"])
        assert user["email"] == email
        assert user["firstName"] == "Ada"
        assert "passwordHash" not in user
        assert isinstance(registered.get("expiresAt"), str)

        resp = client.post("/api/auth/login", json={"email": email, "password": password})
        assert resp.status_code == 200, resp.text
        login = cast(dict[str, object], resp.json())
        token = login["token"]
        assert isinstance(token, str)
        assert token != registered["token"]
        assert cast(dict[str, object], login["user"])["lastLogin"] is not None

        headers = {"Authorization": f"Bearer {token}"}
        resp = client.get("/api/auth/verify", headers=headers)
        assert resp.status_code == 200, resp.text
        verified = cast(dict[str, object], resp.json())
        assert cast(dict[str, object], verified["user"])["email"] == email

        resp = client.post("/api/auth/logout", headers=headers)
        assert resp.status_code == 200
        assert cast(dict[str, object], resp.json())["message"] == "Logged out successfully"

        # The JWT is still well-formed, but its session row is gone.
        resp = client.get("/api/auth/verify", headers=headers)
        assert resp.status_code == 403
        assert cast(dict[str, object], resp.json())["error"] == "Session expired or revoked"

        # The registration token is a separate session and keeps working.
        other = {"Authorization": f"Bearer {registered['token']}"}
        assert client.get("/api/auth/verify", headers=other).status_code == 200


def test_register_normalizes_email_and_rejects_duplicates() -> None:
    email = _random_email("dup")

    with TestClient(app) as client:
        _ = _register(client, email=email, password="password123")

        resp = client.post(
            "/api/auth/register",
            json={"email": f"  {email.upper()} ", "password": "password123"},
        )
        assert resp.status_code == 409
        assert cast(dict[str, object], resp.json())["error"] == "User with this email already exists"

        resp = client.post(
            "/api/auth/login",
            json={"email": email.upper(), "password": "password123"},
        )
        assert resp.status_code == 200, resp.text


def test_register_validates_input() -> None:
    with TestClient(app) as client:
        resp = client.post(
            "/api/auth/register", json={"email": "not-an-email", "password": "password123"}
        )
        assert resp.status_code == 400

        resp = client.post(
            "/api/auth/register", json={"email": _random_email("short"), "password": "short"}
        )
        assert resp.status_code == 400
        assert "8 characters" in str(cast(dict[str, object], resp.json())["error"])

        resp = client.post("/api/auth/register", json={"password": "password123"})
        assert resp.status_code == 400


def test_login_with_wrong_password_is_401() -> None:
    email = _random_email("wrong")
    with TestClient(app) as client:
        _ = _register(client, email=email, password="password123")

        resp = client.post("/api/auth/login", json={"email": email, "password": "password124"})
        assert resp.status_code == 401
        assert cast(dict[str, object], resp.json())["error"] == "Invalid email or password"

        resp = client.post(
            "/api/auth/login", json={"email": _random_email("ghost"), "password": "password123"}
        )
        assert resp.status_code == 401


def test_expired_session_row_is_rejected() -> None:
    with TestClient(app) as client:
        registered = _register(client, email=_random_email("exp"), password="password123")
        token = cast(str, registered["token"])

        with app.state.database.session() as db:
            row = db.execute(
                select(UserSession).where(UserSession.token_hash == hash_session_token(token))
            ).scalar_one()
            row.expires_at = utcnow() - timedelta(seconds=1)
            db.commit()

        resp = client.get("/api/auth/verify", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 403


def test_logout_is_idempotent() -> None:
    with TestClient(app) as client:
        assert client.post("/api/auth/logout").status_code == 200
        resp = client.post("/api/auth/logout", headers={"Authorization": "Bearer junk"})
        assert resp.status_code == 200


def test_session_stores_only_token_hash() -> None:
    with TestClient(app) as client:
        registered = _register(client, email=_random_email("hash"), password="password123")
        token = cast(str, registered["token"])

    with app.state.database.session() as db:
        rows = list(db.execute(select(UserSession)).scalars())
        assert len(rows) == 1
        assert rows[0].token_hash == hash_session_token(token)
        assert rows[0].token_hash != token

# pyright: reportUnknownParameterType=false
# pyright: reportMissingParameterType=false
# pyright: reportUnknownArgumentType=false
# pyright: reportUnknownMemberType=false
# pyright: reportUnknownVariableType=false

from __future__ import annotations

from pathlib import Path
from typing import cast
import uuid

from alembic import command
from alembic.config import Config
from fastapi.testclient import TestClient
import pytest
from sqlalchemy import create_engine, inspect
from sqlalchemy.orm import Session

from docsync.db.base import Base
from docsync.main import app


PROJECT_ROOT = Path(__file__).resolve().parents[1]


def _alembic_config(url: str) -> Config:
    cfg = Config()
    cfg.set_main_option("script_location", str(PROJECT_ROOT / "alembic"))
    cfg.set_main_option("sqlalchemy.url", url)
    return cfg


def test_migration_matches_models(tmp_path: Path) -> None:
    url = f"sqlite+pysqlite:///{tmp_path / 'migrated.db'}"
    cfg = _alembic_config(url)
    command.upgrade(cfg, "head")

    engine = create_engine(url)
    try:
        inspector = inspect(engine)
        tables = set(inspector.get_table_names()) - {"alembic_version"}
        assert tables == set(Base.metadata.tables)

        for table in Base.metadata.sorted_tables:
            migrated = {c["name"] for c in inspector.get_columns(table.name)}
            assert migrated == set(table.columns.keys()), table.name

        uniques = inspector.get_unique_constraints("user_data")
        assert any(u["column_names"] == ["user_id", "thread_id"] for u in uniques)

        backup_indexes = {i["name"] for i in inspector.get_indexes("data_backups")}
        assert "ix_data_backups_user_thread_seq" in backup_indexes
        limit_indexes = {i["name"] for i in inspector.get_indexes("request_rate_limits")}
        assert "ix_request_rate_limits_reset_at" in limit_indexes
    finally:
        engine.dispose()

    command.downgrade(cfg, "base")
    engine = create_engine(url)
    try:
        assert set(inspect(engine).get_table_names()) <= {"alembic_version"}
    finally:
        engine.dispose()


def _install_no_ddl_guard(monkeypatch: pytest.MonkeyPatch) -> None:
    orig_execute = Session.execute

    def guarded_execute(self: Session, statement, *args, **kwargs):  # type: ignore[no-untyped-def]
        sql = str(statement).lower()
        if "create table" in sql or "alter table" in sql or "drop table" in sql:
            raise AssertionError(f"request path executed DDL: {statement!r}")
        return orig_execute(self, statement, *args, **kwargs)

    monkeypatch.setattr(Session, "execute", guarded_execute, raising=True)


def test_request_paths_run_no_ddl(monkeypatch: pytest.MonkeyPatch) -> None:
    _install_no_ddl_guard(monkeypatch)

    with TestClient(app) as client:
        resp = client.post(
            "/api/auth/register",
            json={"email": f"ddl-{uuid.uuid4().hex}@example.com", "password": "password123"},
        )
        assert resp.status_code == 201, resp.text
        headers = {"Authorization": f"Bearer {cast(dict[str, object], resp.json())['token']}"}

        for version in (1, 2):
            resp = client.post(
                "/api/sync",
                headers=headers,
                json={"threadId": "t", "dataType": "both", "content": {"v": version}, "version": version},
            )
            assert resp.status_code == 200, resp.text

        assert client.get("/api/sync/t/history", headers=headers).status_code == 200
        assert client.get("/api/sync/stats", headers=headers).status_code == 200
        assert client.delete("/api/sync/t", headers=headers).status_code == 200

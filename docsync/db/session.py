from __future__ import annotations

from collections.abc import Generator
import logging

from fastapi import Request
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from docsync.core.config import Settings


logger = logging.getLogger(__name__)


class Database:
    """Process-wide engine/pool handle; created once at startup and disposed at shutdown."""

    def __init__(self, engine: Engine):
        self.engine: Engine = engine
        self.session_factory: sessionmaker[Session] = sessionmaker(
            bind=engine, autoflush=False, autocommit=False
        )

    def session(self) -> Session:
        return self.session_factory()

    def ping(self) -> bool:
        try:
            with self.engine.connect() as conn:
                _ = conn.execute(text("SELECT 1"))
        except SQLAlchemyError:
            logger.warning("Database ping failed", exc_info=True)
            return False
        return True

    def dispose(self) -> None:
        self.engine.dispose()
        logger.info("Database pool closed")


def create_database(s: Settings) -> Database:
    uri = s.sqlalchemy_database_uri
    if uri.startswith("sqlite"):
        # SQLite: sessions hop between threadpool workers; pool sizing does not apply.
        engine = create_engine(
            uri,
            echo=s.db_echo,
            connect_args={"check_same_thread": False},
        )
        return Database(engine)

    connect_args: dict[str, object] = {}
    if uri.startswith("postgresql"):
        connect_args["connect_timeout"] = s.db_connect_timeout_seconds

    engine = create_engine(
        uri,
        echo=s.db_echo,
        pool_pre_ping=True,
        pool_size=s.db_pool_size,
        max_overflow=s.db_max_overflow,
        pool_timeout=s.db_pool_timeout_seconds,
        pool_recycle=s.db_pool_recycle_seconds,
        connect_args=connect_args,
    )
    return Database(engine)


def get_database(request: Request) -> Database:
    return request.app.state.database


def get_db(request: Request) -> Generator[Session, None, None]:
    db = get_database(request).session()
    try:
        yield db
    finally:
        db.close()

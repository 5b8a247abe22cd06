# pyright: reportMissingImports=false
# pyright: reportIncompatibleVariableOverride=false
# pyright: reportUnknownVariableType=false
from __future__ import annotations

from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from sqlalchemy import (
    JSON,
    BigInteger,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from docsync.db.base import Base


DATA_TYPES: tuple[str, ...] = ("spreadsheet", "document", "both")

BACKUP_REASON_BEFORE_OVERWRITE = "before_overwrite"
BACKUP_REASON_BEFORE_RESTORE = "before_restore"
BACKUP_REASON_BEFORE_DELETE = "before_delete"

# The first four are reserved for scheduled/manual backups; the engine writes the last three.
BACKUP_REASONS: tuple[str, ...] = (
    "auto_daily",
    "auto_weekly",
    "manual",
    "before_migration",
    BACKUP_REASON_BEFORE_OVERWRITE,
    BACKUP_REASON_BEFORE_RESTORE,
    BACKUP_REASON_BEFORE_DELETE,
)

JSONContent = JSON().with_variant(JSONB(), "postgresql")


def _uuid_str() -> str:
    return str(uuid4())


def utcnow() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


def isoformat_utc(value: datetime) -> str:
    """Columns hold naive UTC; the wire format carries an explicit ``Z``."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat().replace("+00:00", "Z")


def _in_list_sql(column: str, values: tuple[str, ...]) -> str:
    quoted = ", ".join(f"'{v}'" for v in values)
    return f"{column} IN ({quoted})"


class User(Base):
    __tablename__: str = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid_str)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    first_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    last_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(), default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(), default=utcnow, onupdate=utcnow, nullable=False
    )
    last_login: Mapped[datetime | None] = mapped_column(DateTime(), nullable=True)

    sessions: Mapped[list["UserSession"]] = relationship(
        "UserSession",
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class UserSession(Base):
    __tablename__: str = "user_sessions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid_str)
    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    token_hash: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(), default=utcnow, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(), index=True, nullable=False)
    last_used: Mapped[datetime] = mapped_column(DateTime(), default=utcnow, nullable=False)
    user_agent: Mapped[str | None] = mapped_column(Text(), nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)

    user: Mapped[User] = relationship("User", back_populates="sessions")


class UserDocument(Base):
    """Current state of one thread. Keyed by (user_id, thread_id) regardless of data_type."""

    __tablename__: str = "user_data"
    __table_args__: tuple[object, ...] = (
        UniqueConstraint("user_id", "thread_id", name="uq_user_data_user_thread"),
        CheckConstraint(_in_list_sql("data_type", DATA_TYPES), name="ck_user_data_data_type"),
        Index("ix_user_data_updated_at", "updated_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid_str)
    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    thread_id: Mapped[str] = mapped_column(String(255), nullable=False)
    data_type: Mapped[str] = mapped_column(String(50), nullable=False)
    content: Mapped[Any] = mapped_column(JSONContent, nullable=False)
    version: Mapped[int] = mapped_column(Integer(), default=1, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(), default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(), default=utcnow, nullable=False)


class DataBackup(Base):
    __tablename__: str = "data_backups"
    __table_args__: tuple[object, ...] = (
        CheckConstraint(
            _in_list_sql("backup_reason", BACKUP_REASONS), name="ck_data_backups_backup_reason"
        ),
        Index("ix_data_backups_user_created_at", "user_id", "created_at"),
        Index("ix_data_backups_user_thread_created_at", "user_id", "thread_id", "created_at"),
        Index("ix_data_backups_user_thread_seq", "user_id", "thread_id", "seq"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid_str)
    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    thread_id: Mapped[str] = mapped_column(String(255), nullable=False)
    data_type: Mapped[str] = mapped_column(String(50), nullable=False)
    content: Mapped[Any] = mapped_column(JSONContent, nullable=False)
    version: Mapped[int] = mapped_column(Integer(), nullable=False)
    # Per-thread write order; breaks created_at ties in history.
    seq: Mapped[int] = mapped_column(BigInteger(), nullable=False, default=1)
    backup_reason: Mapped[str] = mapped_column(String(100), nullable=False)
    source_updated_at: Mapped[datetime | None] = mapped_column(DateTime(), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(), default=utcnow, nullable=False)


class StorageStats(Base):
    __tablename__: str = "storage_stats"
    __table_args__: tuple[object, ...] = (
        CheckConstraint("total_size_bytes >= 0", name="ck_storage_stats_total_size_ge_0"),
        CheckConstraint("thread_count >= 0", name="ck_storage_stats_thread_count_ge_0"),
    )

    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=True,
    )
    total_size_bytes: Mapped[int] = mapped_column(BigInteger(), default=0, nullable=False)
    thread_count: Mapped[int] = mapped_column(Integer(), default=0, nullable=False)
    document_count: Mapped[int] = mapped_column(Integer(), default=0, nullable=False)
    spreadsheet_count: Mapped[int] = mapped_column(Integer(), default=0, nullable=False)
    last_updated: Mapped[datetime] = mapped_column(DateTime(), default=utcnow, nullable=False)


class RequestRateLimit(Base):
    """Fixed-window request counter per client key."""

    __tablename__: str = "request_rate_limits"
    __table_args__: tuple[object, ...] = (
        CheckConstraint("hits >= 0", name="ck_request_rate_limits_hits_ge_0"),
        Index("ix_request_rate_limits_reset_at", "reset_at"),
    )

    key: Mapped[str] = mapped_column(String(512), primary_key=True)
    hits: Mapped[int] = mapped_column(Integer(), nullable=False, default=0)
    reset_at: Mapped[datetime] = mapped_column(DateTime(), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(), default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(), default=utcnow, onupdate=utcnow, nullable=False
    )

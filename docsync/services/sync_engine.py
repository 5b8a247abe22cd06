# pyright: reportUnknownMemberType=false
# pyright: reportUnknownVariableType=false
"""Versioned document sync with automatic backups.

Every write that replaces or removes a thread's current document first copies
the old state into ``data_backups`` inside the same transaction, so backups
form an undo log of every transition except the initial creation. Stats in
``storage_stats`` are recomputed in that transaction too and never drift from
the documents they summarize.

The Save conflict check is optimistic: the stored version is read without a
row lock unless ``strict_conflict_check`` is enabled.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
import json
import logging
import time
from typing import Any

from sqlalchemy import Text, case, cast, delete, func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from docsync.core.errors import (
    ConflictError,
    InternalError,
    NotFoundError,
    PayloadTooLargeError,
    SyncError,
    ValidationError,
)
from docsync.db.models import (
    BACKUP_REASON_BEFORE_DELETE,
    BACKUP_REASON_BEFORE_OVERWRITE,
    BACKUP_REASON_BEFORE_RESTORE,
    DATA_TYPES,
    DataBackup,
    StorageStats,
    UserDocument,
    utcnow,
)
from docsync.metrics.prometheus import record_backup_written, record_sync_operation


logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

_MAX_THREAD_ID_LENGTH = 255


@dataclass(frozen=True)
class SaveResult:
    version: int
    updated_at: datetime
    created: bool


@dataclass(frozen=True)
class RestoreResult:
    version: int
    restored_at: datetime
    backup_id: str


@dataclass(frozen=True)
class DeleteResult:
    deleted: bool


@dataclass(frozen=True)
class HistoryResult:
    current: UserDocument | None
    backups: list[DataBackup]


@dataclass(frozen=True)
class StatsResult:
    storage_stats: StorageStats | None
    thread_count: int
    backup_count: int


def validate_data_type(data_type: object) -> str:
    if not isinstance(data_type, str) or data_type not in DATA_TYPES:
        raise ValidationError("Invalid dataType. Must be: spreadsheet, document, or both")
    return data_type


def content_size_bytes(content: object) -> int:
    try:
        raw = json.dumps(content, ensure_ascii=False)
    except (TypeError, ValueError) as exc:
        raise ValidationError("content must be JSON-serializable") from exc
    return len(raw.encode("utf-8"))


def _is_missing(value: object) -> bool:
    # Falsy scalars count as absent; empty objects and arrays are real content.
    if value is None or value is False or value == "":
        return True
    return isinstance(value, (int, float)) and not isinstance(value, bool) and value == 0


def _require_thread_id(thread_id: object) -> str:
    if not isinstance(thread_id, str) or thread_id.strip() == "":
        raise ValidationError("threadId must be a non-empty string")
    if len(thread_id) > _MAX_THREAD_ID_LENGTH:
        raise ValidationError(f"threadId must be at most {_MAX_THREAD_ID_LENGTH} characters")
    return thread_id


def _outcome_for(exc: BaseException) -> str:
    if isinstance(exc, ConflictError):
        return "conflict"
    if isinstance(exc, NotFoundError):
        return "not_found"
    if isinstance(exc, ValidationError):
        return "invalid"
    return "error"


class SyncEngine:
    def __init__(
        self,
        db: Session,
        *,
        clock: Clock = utcnow,
        max_content_bytes: int | None = None,
        history_max_limit: int = 100,
        strict_conflict_check: bool = False,
    ):
        self._db: Session = db
        self._clock: Clock = clock
        self._max_content_bytes: int | None = max_content_bytes
        self._history_max_limit: int = history_max_limit
        self._strict_conflict_check: bool = strict_conflict_check

    # -- operations -----------------------------------------------------------------

    def save(
        self,
        *,
        user_id: str,
        thread_id: str,
        data_type: str,
        content: Any,
        version: int = 1,
        force: bool = False,
    ) -> SaveResult:
        with self._observe("save"):
            if not thread_id or not data_type or _is_missing(content):
                raise ValidationError("Missing required fields: threadId, dataType, content")
            thread_id = _require_thread_id(thread_id)
            data_type = validate_data_type(data_type)
            if isinstance(version, bool) or not isinstance(version, int):
                raise ValidationError("version must be an integer")

            size = content_size_bytes(content)
            if self._max_content_bytes is not None and size > self._max_content_bytes:
                raise PayloadTooLargeError(
                    f"content exceeds {self._max_content_bytes} bytes",
                    details={"size_bytes": size},
                )

            with self._store_errors("Internal server error during sync"):
                existing = self._current(user_id, thread_id, lock=self._strict_conflict_check)
            if existing is not None and not force and existing.version > version:
                conflict = ConflictError(
                    server_version=existing.version,
                    server_data=existing.content,
                    server_updated_at=existing.updated_at,
                )
                self._db.rollback()
                logger.info(
                    "Version conflict user_id=%s thread_id=%s server_version=%s client_version=%s",
                    user_id,
                    thread_id,
                    conflict.server_version,
                    version,
                )
                raise conflict

            now = self._clock()
            with self._transaction("sync"):
                if existing is not None:
                    self._write_backup(existing, reason=BACKUP_REASON_BEFORE_OVERWRITE, now=now)
                written = self._upsert_document(
                    user_id=user_id,
                    thread_id=thread_id,
                    data_type=data_type,
                    content=content,
                    version=version,
                    now=now,
                    bump_on_update=False,
                )
                self._recompute_storage_stats(user_id, now=now)

            created = existing is None
            if not created:
                record_backup_written(reason=BACKUP_REASON_BEFORE_OVERWRITE)
            logger.info(
                "Data synced user_id=%s thread_id=%s data_type=%s version=%s force=%s created=%s",
                user_id,
                thread_id,
                data_type,
                written,
                force,
                created,
            )
            return SaveResult(version=written, updated_at=now, created=created)

    def load(self, *, user_id: str, thread_id: str, data_type: str = "both") -> UserDocument:
        # data_type is validated but not used as a filter: one document per (user, thread).
        with self._observe("load"):
            _ = validate_data_type(data_type)
            thread_id = _require_thread_id(thread_id)
            with self._store_errors("Internal server error while retrieving data"):
                doc = self._current(user_id, thread_id)
            if doc is None:
                raise NotFoundError("Data not found")
            return doc

    def history(self, *, user_id: str, thread_id: str, limit: int = 10) -> HistoryResult:
        with self._observe("history"):
            thread_id = _require_thread_id(thread_id)
            if isinstance(limit, bool) or not isinstance(limit, int):
                raise ValidationError("limit must be an integer")
            if not 1 <= limit <= self._history_max_limit:
                raise ValidationError(f"limit must be between 1 and {self._history_max_limit}")

            with self._store_errors("Internal server error while retrieving history"):
                current = self._current(user_id, thread_id)
                backups = list(
                    self._db.execute(
                        select(DataBackup)
                        .where(DataBackup.user_id == user_id, DataBackup.thread_id == thread_id)
                        .order_by(DataBackup.seq.desc(), DataBackup.created_at.desc())
                        .limit(limit)
                    ).scalars()
                )
            return HistoryResult(current=current, backups=backups)

    def restore(self, *, user_id: str, thread_id: str, backup_id: str | None) -> RestoreResult:
        with self._observe("restore"):
            thread_id = _require_thread_id(thread_id)
            if not isinstance(backup_id, str) or backup_id.strip() == "":
                raise ValidationError("backupId is required")

            # Ownership is part of the lookup: another user's backup id is simply not found.
            with self._store_errors("Internal server error during restore"):
                backup = self._db.execute(
                    select(DataBackup).where(
                        DataBackup.id == backup_id, DataBackup.user_id == user_id
                    )
                ).scalar_one_or_none()
            if backup is None:
                raise NotFoundError("Backup not found")

            now = self._clock()
            with self._transaction("restore"):
                current = self._current(user_id, thread_id)
                if current is not None:
                    self._write_backup(current, reason=BACKUP_REASON_BEFORE_RESTORE, now=now)
                # Update branch writes backup.version + 1, insert branch backup.version.
                written = self._upsert_document(
                    user_id=user_id,
                    thread_id=thread_id,
                    data_type=backup.data_type,
                    content=backup.content,
                    version=backup.version,
                    now=now,
                    bump_on_update=True,
                )
                self._recompute_storage_stats(user_id, now=now)

            if current is not None:
                record_backup_written(reason=BACKUP_REASON_BEFORE_RESTORE)
            logger.info(
                "Data restored from backup user_id=%s thread_id=%s backup_id=%s version=%s",
                user_id,
                thread_id,
                backup_id,
                written,
            )
            return RestoreResult(version=written, restored_at=now, backup_id=backup_id)

    def delete(self, *, user_id: str, thread_id: str) -> DeleteResult:
        with self._observe("delete"):
            thread_id = _require_thread_id(thread_id)
            now = self._clock()
            with self._transaction("deletion"):
                current = self._current(user_id, thread_id)
                if current is not None:
                    self._write_backup(current, reason=BACKUP_REASON_BEFORE_DELETE, now=now)
                result = self._db.execute(
                    delete(UserDocument)
                    .where(UserDocument.user_id == user_id, UserDocument.thread_id == thread_id)
                    .execution_options(synchronize_session=False)
                )
                deleted = int(getattr(result, "rowcount", 0) or 0) > 0
                self._recompute_storage_stats(user_id, now=now)

            if current is not None:
                record_backup_written(reason=BACKUP_REASON_BEFORE_DELETE)
            logger.info(
                "Data deleted user_id=%s thread_id=%s deleted=%s", user_id, thread_id, deleted
            )
            return DeleteResult(deleted=deleted)

    def stats(self, *, user_id: str) -> StatsResult:
        with self._observe("stats"):
            with self._store_errors("Internal server error while retrieving stats"):
                storage_stats = self._db.get(StorageStats, user_id)
                thread_count = self._db.execute(
                    select(func.count())
                    .select_from(UserDocument)
                    .where(UserDocument.user_id == user_id)
                ).scalar_one()
                backup_count = self._db.execute(
                    select(func.count())
                    .select_from(DataBackup)
                    .where(DataBackup.user_id == user_id)
                ).scalar_one()
            return StatsResult(
                storage_stats=storage_stats,
                thread_count=int(thread_count),
                backup_count=int(backup_count),
            )

    # -- internals ------------------------------------------------------------------

    @contextmanager
    def _observe(self, operation: str) -> Iterator[None]:
        started = time.perf_counter()
        outcome = "ok"
        try:
            yield
        except SyncError as exc:
            outcome = _outcome_for(exc)
            raise
        except Exception:
            outcome = "error"
            raise
        finally:
            latency_ms = int((time.perf_counter() - started) * 1000)
            record_sync_operation(operation=operation, outcome=outcome, latency_ms=latency_ms)

    @contextmanager
    def _transaction(self, operation: str) -> Iterator[None]:
        try:
            yield
            self._db.commit()
        except SQLAlchemyError as exc:
            self._db.rollback()
            logger.exception("Transaction rolled back during %s", operation)
            raise InternalError(f"Internal server error during {operation}") from exc
        except Exception:
            self._db.rollback()
            logger.exception("Transaction rolled back during %s", operation)
            raise

    @contextmanager
    def _store_errors(self, message: str) -> Iterator[None]:
        try:
            yield
        except SQLAlchemyError as exc:
            self._db.rollback()
            logger.exception("Store read failed: %s", message)
            raise InternalError(message) from exc

    def _current(self, user_id: str, thread_id: str, *, lock: bool = False) -> UserDocument | None:
        stmt = select(UserDocument).where(
            UserDocument.user_id == user_id, UserDocument.thread_id == thread_id
        )
        if lock:
            stmt = stmt.with_for_update()
        return self._db.execute(stmt).scalar_one_or_none()

    def _write_backup(self, doc: UserDocument, *, reason: str, now: datetime) -> DataBackup:
        last_seq = self._db.execute(
            select(func.coalesce(func.max(DataBackup.seq), 0)).where(
                DataBackup.user_id == doc.user_id, DataBackup.thread_id == doc.thread_id
            )
        ).scalar_one()
        backup = DataBackup(
            user_id=doc.user_id,
            thread_id=doc.thread_id,
            data_type=doc.data_type,
            content=doc.content,
            version=doc.version,
            seq=int(last_seq) + 1,
            backup_reason=reason,
            source_updated_at=doc.updated_at,
            created_at=now,
        )
        self._db.add(backup)
        self._db.flush()
        return backup

    def _dialect_insert(self) -> Callable[..., Any] | None:
        name = self._db.get_bind().dialect.name
        if name == "postgresql":
            return postgresql.insert
        if name == "sqlite":
            return sqlite.insert
        return None

    def _upsert_document(
        self,
        *,
        user_id: str,
        thread_id: str,
        data_type: str,
        content: Any,
        version: int,
        now: datetime,
        bump_on_update: bool,
    ) -> int:
        insert = self._dialect_insert()
        if insert is None:
            return self._merge_document(
                user_id=user_id,
                thread_id=thread_id,
                data_type=data_type,
                content=content,
                version=version,
                now=now,
                bump_on_update=bump_on_update,
            )

        stmt = insert(UserDocument).values(
            user_id=user_id,
            thread_id=thread_id,
            data_type=data_type,
            content=content,
            version=version,
            created_at=now,
            updated_at=now,
        )
        new_version = stmt.excluded.version + 1 if bump_on_update else stmt.excluded.version
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id", "thread_id"],
            set_={
                "data_type": stmt.excluded.data_type,
                "content": stmt.excluded.content,
                "version": new_version,
                "updated_at": stmt.excluded.updated_at,
            },
        ).returning(UserDocument.version)
        return int(self._db.execute(stmt).scalar_one())

    def _merge_document(
        self,
        *,
        user_id: str,
        thread_id: str,
        data_type: str,
        content: Any,
        version: int,
        now: datetime,
        bump_on_update: bool,
    ) -> int:
        doc = self._current(user_id, thread_id, lock=True)
        if doc is None:
            doc = UserDocument(
                user_id=user_id,
                thread_id=thread_id,
                data_type=data_type,
                content=content,
                version=version,
                created_at=now,
                updated_at=now,
            )
            self._db.add(doc)
        else:
            doc.data_type = data_type
            doc.content = content
            doc.version = version + 1 if bump_on_update else version
            doc.updated_at = now
        self._db.flush()
        return doc.version

    def _recompute_storage_stats(self, user_id: str, *, now: datetime) -> None:
        row = self._db.execute(
            select(
                func.coalesce(func.sum(func.length(cast(UserDocument.content, Text))), 0),
                func.count(),
                func.coalesce(
                    func.sum(case((UserDocument.data_type.in_(("document", "both")), 1), else_=0)),
                    0,
                ),
                func.coalesce(
                    func.sum(
                        case((UserDocument.data_type.in_(("spreadsheet", "both")), 1), else_=0)
                    ),
                    0,
                ),
            ).where(UserDocument.user_id == user_id)
        ).one()
        values: dict[str, object] = {
            "total_size_bytes": int(row[0] or 0),
            "thread_count": int(row[1] or 0),
            "document_count": int(row[2] or 0),
            "spreadsheet_count": int(row[3] or 0),
            "last_updated": now,
        }

        insert = self._dialect_insert()
        if insert is None:
            stats = self._db.get(StorageStats, user_id, with_for_update=True)
            if stats is None:
                self._db.add(StorageStats(user_id=user_id, **values))
            else:
                for key, value in values.items():
                    setattr(stats, key, value)
            self._db.flush()
            return

        stmt = insert(StorageStats).values(user_id=user_id, **values)
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id"],
            set_={key: getattr(stmt.excluded, key) for key in values},
        )
        _ = self._db.execute(stmt)

# pyright: reportCallInDefaultInitializer=false
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query

from docsync.api.deps import CurrentUser, get_app_settings, get_sync_engine, require_user
from docsync.api.schemas import CamelModel, RowModel, UtcDatetime
from docsync.core.config import Settings
from docsync.services.sync_engine import SyncEngine


router = APIRouter(prefix="/sync", tags=["sync"])


class SyncSaveRequest(CamelModel):
    thread_id: str | None = None
    data_type: str | None = None
    content: Any = None
    version: int = 1
    force: bool = False


class SyncRestoreRequest(CamelModel):
    backup_id: str | None = None


class SyncSaveResponse(CamelModel):
    success: bool = True
    message: str = "Data synced successfully"
    version: int
    updated_at: UtcDatetime


class SyncLoadResponse(CamelModel):
    success: bool = True
    data: Any
    version: int
    updated_at: UtcDatetime
    data_type: str


class DocumentOut(RowModel):
    id: str
    user_id: str
    thread_id: str
    data_type: str
    content: Any
    version: int
    created_at: UtcDatetime
    updated_at: UtcDatetime


class BackupOut(RowModel):
    id: str
    user_id: str
    thread_id: str
    data_type: str
    content: Any
    version: int
    seq: int
    backup_reason: str
    source_updated_at: UtcDatetime | None
    created_at: UtcDatetime


class StorageStatsOut(RowModel):
    user_id: str
    total_size_bytes: int
    thread_count: int
    document_count: int
    spreadsheet_count: int
    last_updated: UtcDatetime


class SyncHistoryData(CamelModel):
    current: DocumentOut | None
    history: list[BackupOut]


class SyncHistoryResponse(CamelModel):
    success: bool = True
    data: SyncHistoryData


class SyncRestoreResponse(CamelModel):
    success: bool = True
    message: str = "Data restored successfully"
    version: int
    restored_at: UtcDatetime


class SyncDeleteResponse(CamelModel):
    success: bool = True
    message: str
    deleted: bool


class SyncStatsData(CamelModel):
    storage_stats: StorageStatsOut | None
    thread_count: int
    backup_count: int


class SyncStatsResponse(CamelModel):
    success: bool = True
    data: SyncStatsData


@router.post(
    "",
    response_model=SyncSaveResponse,
    operation_id="sync_save",
    responses={409: {"description": "Version conflict; body carries the server state"}},
)
def sync_save(
    payload: SyncSaveRequest,
    user: CurrentUser = Depends(require_user),
    engine: SyncEngine = Depends(get_sync_engine),
) -> SyncSaveResponse:
    result = engine.save(
        user_id=user.id,
        thread_id=payload.thread_id or "",
        data_type=payload.data_type or "",
        content=payload.content,
        version=payload.version,
        force=payload.force,
    )
    return SyncSaveResponse(version=result.version, updated_at=result.updated_at)


# Declared before "/{thread_id}" so "stats" is never captured as a thread id.
@router.get(
    "/stats",
    response_model=SyncStatsResponse,
    operation_id="sync_stats",
)
def sync_stats(
    user: CurrentUser = Depends(require_user),
    engine: SyncEngine = Depends(get_sync_engine),
) -> SyncStatsResponse:
    result = engine.stats(user_id=user.id)
    storage_stats = (
        StorageStatsOut.model_validate(result.storage_stats)
        if result.storage_stats is not None
        else None
    )
    return SyncStatsResponse(
        data=SyncStatsData(
            storage_stats=storage_stats,
            thread_count=result.thread_count,
            backup_count=result.backup_count,
        )
    )


@router.get(
    "/{thread_id}",
    response_model=SyncLoadResponse,
    operation_id="sync_load",
)
def sync_load(
    thread_id: str,
    data_type: str = Query(default="both", alias="dataType"),
    user: CurrentUser = Depends(require_user),
    engine: SyncEngine = Depends(get_sync_engine),
) -> SyncLoadResponse:
    doc = engine.load(user_id=user.id, thread_id=thread_id, data_type=data_type)
    return SyncLoadResponse(
        data=doc.content,
        version=doc.version,
        updated_at=doc.updated_at,
        data_type=doc.data_type,
    )


@router.get(
    "/{thread_id}/history",
    response_model=SyncHistoryResponse,
    operation_id="sync_history",
)
def sync_history(
    thread_id: str,
    limit: int | None = Query(default=None),
    user: CurrentUser = Depends(require_user),
    engine: SyncEngine = Depends(get_sync_engine),
    s: Settings = Depends(get_app_settings),
) -> SyncHistoryResponse:
    result = engine.history(
        user_id=user.id,
        thread_id=thread_id,
        limit=limit if limit is not None else s.sync_history_default_limit,
    )
    current = DocumentOut.model_validate(result.current) if result.current is not None else None
    return SyncHistoryResponse(
        data=SyncHistoryData(
            current=current,
            history=[BackupOut.model_validate(b) for b in result.backups],
        )
    )


@router.post(
    "/{thread_id}/restore",
    response_model=SyncRestoreResponse,
    operation_id="sync_restore",
)
def sync_restore(
    thread_id: str,
    payload: SyncRestoreRequest,
    user: CurrentUser = Depends(require_user),
    engine: SyncEngine = Depends(get_sync_engine),
) -> SyncRestoreResponse:
    result = engine.restore(user_id=user.id, thread_id=thread_id, backup_id=payload.backup_id)
    return SyncRestoreResponse(version=result.version, restored_at=result.restored_at)


@router.delete(
    "/{thread_id}",
    response_model=SyncDeleteResponse,
    operation_id="sync_delete",
)
def sync_delete(
    thread_id: str,
    user: CurrentUser = Depends(require_user),
    engine: SyncEngine = Depends(get_sync_engine),
) -> SyncDeleteResponse:
    result = engine.delete(user_id=user.id, thread_id=thread_id)
    message = "Data deleted successfully" if result.deleted else "Nothing to delete"
    return SyncDeleteResponse(message=message, deleted=result.deleted)

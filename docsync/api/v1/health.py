from __future__ import annotations

from datetime import UTC, datetime
import time
from typing import Literal

from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

from docsync.core.version import get_app_version
from docsync.db.session import get_database


router = APIRouter(tags=["health"])

_STARTED_AT = time.monotonic()


class HealthResponse(BaseModel):
    status: Literal["ok", "degraded"] = Field(description="degraded when the database is unreachable")
    timestamp: datetime
    uptime: float = Field(description="seconds since the process imported the app")
    version: str
    database: Literal["connected", "disconnected"]
    latency_ms: int | None = None


@router.get("/health", response_model=HealthResponse)
def health(request: Request) -> HealthResponse:
    start = time.perf_counter()
    db_ok = get_database(request).ping()
    latency_ms = int((time.perf_counter() - start) * 1000)

    return HealthResponse(
        status="ok" if db_ok else "degraded",
        timestamp=datetime.now(UTC),
        uptime=round(time.monotonic() - _STARTED_AT, 3),
        version=get_app_version(),
        database="connected" if db_ok else "disconnected",
        latency_ms=latency_ms,
    )

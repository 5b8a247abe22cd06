from __future__ import annotations

from fastapi import APIRouter

from docsync.api.v1.auth import router as auth_router
from docsync.api.v1.sync import router as sync_router


api_router = APIRouter()
api_router.include_router(auth_router)
api_router.include_router(sync_router)

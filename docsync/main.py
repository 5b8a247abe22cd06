# pyright: reportUnusedFunction=false

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
import logging
import time
import uuid

from fastapi import FastAPI, Request, Response, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import RequestResponseEndpoint
from starlette.middleware.gzip import GZipMiddleware
from starlette.middleware.trustedhost import TrustedHostMiddleware

from docsync.api.v1.health import router as health_router
from docsync.api.v1.router import api_router
from docsync.core.config import Settings, get_settings, settings
from docsync.core.errors import SyncError
from docsync.core.logging import configure_logging, request_id_ctx_var
from docsync.core.version import get_app_version
from docsync.db.session import Database, create_database
from docsync.services.rate_limit import (
    RATE_LIMIT_MESSAGE,
    RateLimitCheck,
    RequestRateLimiter,
    client_ip,
    rate_limit_key,
)


logger = logging.getLogger("docsync")

_CONTENT_SECURITY_POLICY = (
    "default-src 'self'; style-src 'self' 'unsafe-inline'; "
    "script-src 'self'; img-src 'self' data: https:"
)


def _count_request(db_handle: Database, limiter: RequestRateLimiter, key: str) -> RateLimitCheck:
    with db_handle.session() as db:
        return limiter.hit(db, key=key)


def _install_exception_handlers(app: FastAPI, s: Settings) -> None:
    @app.exception_handler(SyncError)
    async def sync_error_handler(_request: Request, exc: SyncError) -> JSONResponse:
        headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
        return JSONResponse(
            status_code=exc.status_code,
            content=jsonable_encoder(exc.to_body()),
            headers=headers,
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "error": str(exc.detail)},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        _request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={
                "success": False,
                "error": "Invalid request",
                "details": jsonable_encoder(exc.errors()),
            },
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error(
            "Unhandled error method=%s path=%s", request.method, request.url.path, exc_info=exc
        )
        message = "Internal server error" if s.is_prod_env() else str(exc)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"success": False, "error": message},
        )


def create_app(app_settings: Settings | None = None, database: Database | None = None) -> FastAPI:
    s = app_settings or get_settings()

    configure_logging(s.log_level)

    app_version = get_app_version()
    db_handle = database or create_database(s)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info(
            "docsync-server starting version=%s env=%s database=%s",
            app_version,
            s.env,
            "connected" if db_handle.ping() else "disconnected",
        )
        try:
            yield
        finally:
            logger.info("docsync-server shutting down")
            db_handle.dispose()

    app = FastAPI(title="docsync-server", version=app_version, lifespan=lifespan)
    app.state.settings = s
    app.state.database = db_handle

    limiter = RequestRateLimiter(
        enabled=s.rate_limit_enabled,
        max_requests=s.rate_limit_max_requests,
        window_seconds=s.rate_limit_window_seconds,
    )
    app.state.rate_limiter = limiter

    # Middleware registered first runs innermost: the limiter sits inside CORS and request-id.
    @app.middleware("http")
    async def request_rate_limit(request: Request, call_next: RequestResponseEndpoint) -> Response:
        if not limiter.enabled or not request.url.path.startswith(s.api_prefix):
            return await call_next(request)

        ip = client_ip(
            peer=request.client.host if request.client is not None else None,
            forwarded_for=request.headers.get("X-Forwarded-For"),
            trust_forwarded_for=s.rate_limit_trust_forwarded_for,
        )
        check = await run_in_threadpool(_count_request, db_handle, limiter, rate_limit_key(ip))
        if check.blocked:
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={"success": False, "error": RATE_LIMIT_MESSAGE},
                headers=check.headers(),
            )
        response = await call_next(request)
        response.headers.update(check.headers())
        return response

    app.add_middleware(GZipMiddleware, minimum_size=1024)

    if s.trusted_hosts:
        app.add_middleware(TrustedHostMiddleware, allowed_hosts=s.trusted_hosts)

    if s.cors_allowed_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=s.cors_allowed_origins,
            allow_credentials=True,
            allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
            allow_headers=["Content-Type", "Authorization"],
            max_age=600,
        )

    @app.middleware("http")
    async def request_context_and_security_headers(
        request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        rid = request.headers.get("X-Request-Id") or uuid.uuid4().hex
        token = request_id_ctx_var.set(rid)
        start = time.perf_counter()
        try:
            response = await call_next(request)
            if s.log_requests:
                logger.info(
                    "%s %s -> %s (%dms)",
                    request.method,
                    request.url.path,
                    response.status_code,
                    int((time.perf_counter() - start) * 1000),
                )
        finally:
            request_id_ctx_var.reset(token)

        response.headers["X-Request-Id"] = rid
        response.headers["X-Docsync-Version"] = app_version
        _ = response.headers.setdefault("X-Content-Type-Options", "nosniff")
        _ = response.headers.setdefault("X-Frame-Options", "DENY")
        _ = response.headers.setdefault("Referrer-Policy", "no-referrer")
        _ = response.headers.setdefault(
            "Permissions-Policy",
            "geolocation=(), microphone=(), camera=(), payment=(), usb=()",
        )
        _ = response.headers.setdefault("Content-Security-Policy", _CONTENT_SECURITY_POLICY)
        return response

    _install_exception_handlers(app, s)

    app.include_router(health_router)
    app.include_router(api_router, prefix=s.api_prefix)

    @app.get("/metrics", include_in_schema=False)
    async def prometheus_metrics() -> Response:
        from docsync.metrics.prometheus import metrics_payload

        payload, content_type = metrics_payload()
        return Response(content=payload, media_type=content_type)

    return app


app = create_app(settings)


__all__ = ["app", "create_app"]

# pyright: reportMissingImports=false
# pyright: reportUnknownVariableType=false
# pyright: reportUnknownMemberType=false
# pyright: reportUnknownParameterType=false
from __future__ import annotations

import os

from celery import Celery
from celery.schedules import crontab

from docsync.core.config import get_settings


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    val = raw.strip().lower()
    if val in {"1", "true", "yes", "on"}:
        return True
    if val in {"0", "false", "no", "off"}:
        return False
    return default


def create_celery_app() -> Celery:
    broker_url = os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/0")
    result_backend = os.getenv("CELERY_RESULT_BACKEND", broker_url)

    app = Celery("docsync", broker=broker_url, backend=result_backend)

    app.conf.task_always_eager = _env_bool("CELERY_TASK_ALWAYS_EAGER", False)
    app.conf.task_eager_propagates = _env_bool("CELERY_TASK_EAGER_PROPAGATES", True)

    app.conf.timezone = "UTC"
    app.conf.enable_utc = True
    app.conf.accept_content = ["json"]
    app.conf.task_serializer = "json"
    app.conf.result_serializer = "json"

    app.conf.imports = ("docsync.workers.tasks.sessions",)

    app.conf.beat_schedule = {
        "cleanup-expired-sessions": {
            "task": "docsync.workers.tasks.sessions.cleanup_expired_sessions",
            "schedule": crontab(hour=get_settings().session_cleanup_hour_utc, minute=0),
            "args": (),
        }
    }

    return app


celery_app = create_celery_app()

# pyright: reportMissingImports=false
# pyright: reportUnknownVariableType=false
# pyright: reportUnknownMemberType=false
# pyright: reportUntypedFunctionDecorator=false
from __future__ import annotations

from functools import lru_cache
import logging

from docsync.core.config import get_settings
from docsync.db.models import utcnow
from docsync.db.session import Database, create_database
from docsync.metrics.prometheus import record_sessions_purged
from docsync.services.rate_limit import purge_expired_rate_limits
from docsync.services.sessions import purge_expired_sessions
from docsync.workers.celery_app import celery_app


logger = logging.getLogger(__name__)


@lru_cache
def worker_database() -> Database:
    return create_database(get_settings())


@celery_app.task(name="docsync.workers.tasks.sessions.cleanup_expired_sessions")
def cleanup_expired_sessions() -> dict[str, object]:
    logger.info("Running daily cleanup tasks")
    now = utcnow()
    with worker_database().session() as db:
        report = purge_expired_sessions(db, now=now)
        report["rate_limits_deleted"] = purge_expired_rate_limits(db, now=now)
    deleted = report.get("deleted")
    record_sessions_purged(deleted if isinstance(deleted, int) else 0)
    return report

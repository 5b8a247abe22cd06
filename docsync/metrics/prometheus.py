# pyright: reportMissingTypeStubs=false
# pyright: reportUnknownMemberType=false

from __future__ import annotations

from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, Counter, Histogram, generate_latest


_SYNC_OPERATIONS = Counter(
    "docsync_sync_operations_total",
    "Sync engine operations by outcome.",
    labelnames=("operation", "outcome"),
)
_SYNC_CONFLICTS = Counter(
    "docsync_sync_conflicts_total",
    "Saves rejected because the stored version was newer.",
)
_BACKUPS_WRITTEN = Counter(
    "docsync_backups_written_total",
    "Backup snapshots written by the sync engine.",
    labelnames=("reason",),
)
_SYNC_LATENCY = Histogram(
    "docsync_sync_operation_latency_seconds",
    "Sync engine operation latency in seconds.",
    labelnames=("operation",),
)
_SESSIONS_PURGED = Counter(
    "docsync_expired_sessions_purged_total",
    "Expired user sessions removed by the cleanup task.",
)


def record_sync_operation(*, operation: str, outcome: str, latency_ms: int) -> None:
    _SYNC_OPERATIONS.labels(operation, outcome).inc()
    if outcome == "conflict":
        _SYNC_CONFLICTS.inc()
    if latency_ms >= 0:
        _SYNC_LATENCY.labels(operation).observe(float(latency_ms) / 1000.0)


def record_backup_written(*, reason: str) -> None:
    _BACKUPS_WRITTEN.labels(reason).inc()


def record_sessions_purged(count: int) -> None:
    if count > 0:
        _SESSIONS_PURGED.inc(count)


def metrics_payload() -> tuple[bytes, str]:
    payload = generate_latest(REGISTRY)
    content_type = str(CONTENT_TYPE_LATEST)
    return payload, content_type

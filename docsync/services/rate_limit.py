from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
import hashlib
import logging

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from docsync.db.models import RequestRateLimit, utcnow


logger = logging.getLogger(__name__)

RATE_LIMIT_MESSAGE = "Too many requests from this IP, please try again later."


def _safe_key(raw: str) -> str:
    if len(raw) <= 512:
        return raw
    digest = hashlib.sha256(raw.encode("utf-8")).hexdigest()
    return f"ip|sha256:{digest}"


def client_ip(
    *, peer: str | None, forwarded_for: str | None, trust_forwarded_for: bool
) -> str:
    if trust_forwarded_for and isinstance(forwarded_for, str):
        first = forwarded_for.split(",", 1)[0].strip()
        if first:
            return first
    if not isinstance(peer, str) or peer.strip() == "":
        return "unknown"
    return peer.strip()


def rate_limit_key(ip: str) -> str:
    return _safe_key(f"ip|{ip}")


@dataclass(frozen=True)
class RateLimitCheck:
    blocked: bool
    limit: int
    remaining: int
    retry_after_seconds: int

    def headers(self) -> dict[str, str]:
        out = {
            "RateLimit-Limit": str(self.limit),
            "RateLimit-Remaining": str(self.remaining),
            "RateLimit-Reset": str(self.retry_after_seconds),
        }
        if self.blocked:
            out["Retry-After"] = str(self.retry_after_seconds)
        return out


class RequestRateLimiter:
    """Counts every request per key in a fixed window; over ``max_requests`` is blocked."""

    def __init__(
        self,
        *,
        enabled: bool,
        max_requests: int,
        window_seconds: int,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.enabled: bool = bool(enabled) and max_requests > 0 and window_seconds > 0
        self._max_requests: int = int(max_requests)
        self._window_seconds: int = int(window_seconds)
        self._clock: Callable[[], datetime] = clock

    def hit(self, db: Session, *, key: str) -> RateLimitCheck:
        if not self.enabled:
            return RateLimitCheck(
                blocked=False,
                limit=self._max_requests,
                remaining=self._max_requests,
                retry_after_seconds=0,
            )
        try:
            return self._hit(db, key=key)
        except IntegrityError:
            # Another worker inserted the first row for this key; count against it.
            db.rollback()
            return self._hit(db, key=key)

    def _hit(self, db: Session, *, key: str) -> RateLimitCheck:
        now = self._clock()
        reset_at = now + timedelta(seconds=self._window_seconds)

        row = (
            db.execute(
                select(RequestRateLimit).where(RequestRateLimit.key == key).with_for_update()
            )
            .scalars()
            .one_or_none()
        )
        if row is None:
            row = RequestRateLimit(key=key, hits=1, reset_at=reset_at)
            db.add(row)
        elif row.reset_at <= now:
            row.hits = 1
            row.reset_at = reset_at
        else:
            row.hits = int(row.hits) + 1

        hits = int(row.hits)
        window_reset = row.reset_at
        db.commit()

        retry_after = max(int((window_reset - now).total_seconds()), 0)
        blocked = hits > self._max_requests
        if blocked and hits == self._max_requests + 1:
            logger.warning(
                "Rate limit reached key=%s window_reset=%s", key, window_reset.isoformat()
            )
        return RateLimitCheck(
            blocked=blocked,
            limit=self._max_requests,
            remaining=max(self._max_requests - hits, 0),
            retry_after_seconds=retry_after,
        )


def purge_expired_rate_limits(db: Session, *, now: datetime) -> int:
    result = db.execute(
        delete(RequestRateLimit)
        .where(RequestRateLimit.reset_at <= now)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return int(getattr(result, "rowcount", 0) or 0)

from __future__ import annotations

import contextvars
import logging
import re
import sys
from typing import override


request_id_ctx_var: contextvars.ContextVar[str] = contextvars.ContextVar("request_id", default="-")


class RequestIdFilter(logging.Filter):
    @override
    def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
        record.request_id = request_id_ctx_var.get()
        return True


_RE_BEARER = re.compile(
    r"(?i)(authorization\s*[:=]\s*bearer\s+)([a-z0-9._~+/=-]+)",
)

_RE_JWT = re.compile(r"\beyJ[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+\b")

# Only explicit credential fields; "token" alone also matches harmless keys like token_type.
_RE_JSON_SECRETS = re.compile(
    r'(?i)("(?:token|password|password_hash|token_hash)"\s*:\s*")([^"]+)(")',
)
_RE_PY_SECRETS = re.compile(
    r"(?i)('(?:token|password|password_hash|token_hash)'\s*:\s*')([^']+)(')",
)
_RE_KV_SECRETS = re.compile(
    r"(?i)\b(password|password_hash|token_hash)\b\s*=\s*([^\s,;]+)",
)

_RE_JSON_AUTH_BEARER = re.compile(
    r'(?i)("authorization"\s*:\s*")\s*(bearer\s+)([^\"]+)(")',
)
_RE_PY_AUTH_BEARER = re.compile(
    r"(?i)('authorization'\s*:\s*')\s*(bearer\s+)([^']+)(')",
)
_RE_LONG_B64 = re.compile(r"(?<![a-f0-9])[A-Za-z0-9+/]{120,}={0,2}")


def _redact_value(raw: str) -> str:
    return f"[REDACTED len={len(raw)}]"


class RedactingFormatter(logging.Formatter):
    @override
    def format(self, record: logging.LogRecord) -> str:
        out = super().format(record)

        out = _RE_BEARER.sub(r"\1[REDACTED]", out)
        out = _RE_JSON_AUTH_BEARER.sub(
            lambda m: f"{m.group(1)}{m.group(2)}[REDACTED]{m.group(4)}", out
        )
        out = _RE_PY_AUTH_BEARER.sub(
            lambda m: f"{m.group(1)}{m.group(2)}[REDACTED]{m.group(4)}", out
        )
        out = _RE_JWT.sub("[REDACTED_JWT]", out)

        out = _RE_JSON_SECRETS.sub(
            lambda m: f"{m.group(1)}{_redact_value(m.group(2))}{m.group(3)}", out
        )
        out = _RE_PY_SECRETS.sub(
            lambda m: f"{m.group(1)}{_redact_value(m.group(2))}{m.group(3)}", out
        )
        out = _RE_KV_SECRETS.sub(lambda m: f"{m.group(1)}={_redact_value(m.group(2))}", out)

        out = _RE_LONG_B64.sub("[REDACTED_B64]", out)

        return out


def configure_logging(level: str = "INFO") -> None:
    root = logging.getLogger()
    root.setLevel(level.upper())

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(RequestIdFilter())
    handler.setFormatter(
        RedactingFormatter(
            fmt="%(asctime)s %(levelname)s [%(name)s] [rid=%(request_id)s] %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )

    # Avoid duplicate handlers when app reloads in dev.
    root.handlers = [handler]

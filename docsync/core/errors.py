from __future__ import annotations

from datetime import datetime

from fastapi import status

from docsync.db.models import isoformat_utc


class SyncError(Exception):
    """Base for errors the HTTP layer renders as ``{"success": false, "error": ...}``."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, *, details: object | None = None):
        super().__init__(message)
        self.message: str = message
        self.details: object | None = details

    def to_body(self) -> dict[str, object]:
        body: dict[str, object] = {"success": False, "error": self.message}
        if self.details is not None:
            body["details"] = self.details
        return body


class ValidationError(SyncError):
    status_code = status.HTTP_400_BAD_REQUEST


class PayloadTooLargeError(ValidationError):
    status_code = status.HTTP_413_REQUEST_ENTITY_TOO_LARGE


class NotFoundError(SyncError):
    status_code = status.HTTP_404_NOT_FOUND


class UnauthorizedError(SyncError):
    status_code = status.HTTP_401_UNAUTHORIZED


class ForbiddenError(SyncError):
    status_code = status.HTTP_403_FORBIDDEN


class InternalError(SyncError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class ConflictError(SyncError):
    """The stored document is newer than the version the caller based its write on."""

    status_code = status.HTTP_409_CONFLICT

    def __init__(
        self,
        *,
        server_version: int,
        server_data: object,
        server_updated_at: datetime,
        message: str = "Version conflict",
    ):
        super().__init__(message)
        self.server_version: int = server_version
        self.server_data: object = server_data
        self.server_updated_at: datetime = server_updated_at

    def to_body(self) -> dict[str, object]:
        return {
            "success": False,
            "conflict": True,
            "error": self.message,
            "serverVersion": self.server_version,
            "serverData": self.server_data,
            "serverUpdatedAt": isoformat_utc(self.server_updated_at),
        }

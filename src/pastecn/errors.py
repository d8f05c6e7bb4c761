"""Error codes shared by the snippet services and the HTTP API."""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Mapping


class ApiErrorCode(str, Enum):
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_ID = "INVALID_ID"
    AUTH_REQUIRED = "AUTH_REQUIRED"
    INVALID_PASSWORD = "INVALID_PASSWORD"
    NOT_FOUND = "NOT_FOUND"
    EXPIRED = "EXPIRED"
    ID_COLLISION = "ID_COLLISION"
    RATE_LIMITED = "RATE_LIMITED"
    INTERNAL_ERROR = "INTERNAL_ERROR"


# EXPIRED shares 404 with NOT_FOUND so callers cannot tell the two apart.
ERROR_STATUS: Dict[ApiErrorCode, int] = {
    ApiErrorCode.VALIDATION_ERROR: 400,
    ApiErrorCode.INVALID_ID: 400,
    ApiErrorCode.AUTH_REQUIRED: 401,
    ApiErrorCode.INVALID_PASSWORD: 401,
    ApiErrorCode.NOT_FOUND: 404,
    ApiErrorCode.EXPIRED: 404,
    ApiErrorCode.ID_COLLISION: 409,
    ApiErrorCode.RATE_LIMITED: 429,
    ApiErrorCode.INTERNAL_ERROR: 500,
}


class SnippetError(Exception):
    """Error carrying a stable API code and a user-facing message."""

    def __init__(
        self,
        code: ApiErrorCode,
        message: str,
        *,
        headers: Mapping[str, str] | None = None,
        details: Mapping[str, Any] | None = None,
        status: int | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.status = status
        self.headers = dict(headers or {})
        self.details = dict(details) if details else None

    @property
    def status_code(self) -> int:
        return self.status if self.status is not None else ERROR_STATUS[self.code]

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"code": self.code.value, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class CreateSnippetError(SnippetError):
    """Raised by the creation orchestrator."""

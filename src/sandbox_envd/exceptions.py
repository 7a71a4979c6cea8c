"""Error hierarchy and code mapping for the envd client."""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    AUTHENTICATION_FAILED = "AUTHENTICATION_FAILED"
    NOT_FOUND = "NOT_FOUND"
    RATE_LIMITED = "RATE_LIMITED"
    TIMEOUT = "TIMEOUT"
    CONNECTIVITY_FAILED = "CONNECTIVITY_FAILED"
    PROTOCOL_ERROR = "PROTOCOL_ERROR"
    REMOTE_ERROR = "REMOTE_ERROR"
    INVALID_ARGS = "INVALID_ARGS"


EXIT_CODE_BY_ERROR: dict[ErrorCode, int] = {
    ErrorCode.INVALID_ARGS: 2,
    ErrorCode.AUTHENTICATION_FAILED: 3,
    ErrorCode.NOT_FOUND: 4,
    ErrorCode.CONNECTIVITY_FAILED: 5,
    ErrorCode.RATE_LIMITED: 6,
    ErrorCode.TIMEOUT: 10,
}

ERROR_CODE_BY_STATUS: dict[int, ErrorCode] = {
    401: ErrorCode.AUTHENTICATION_FAILED,
    403: ErrorCode.AUTHENTICATION_FAILED,
    404: ErrorCode.NOT_FOUND,
    429: ErrorCode.RATE_LIMITED,
}


class EnvdError(Exception):
    """Base typed exception raised by every client operation.

    HTTP failures carry the response ``status_code`` and ``headers``; transport
    failures leave them unset and describe the cause in ``details``.
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        *,
        status_code: int | None = None,
        headers: dict[str, str] | None = None,
        details: dict[str, Any] | None = None,
        suggestion: str | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code
        self.headers = headers or {}
        self.details = details or {}
        self.suggestion = suggestion

    @classmethod
    def from_status(
        cls,
        status_code: int,
        message: str,
        *,
        headers: dict[str, str] | None = None,
        details: dict[str, Any] | None = None,
    ) -> "EnvdError":
        code = ERROR_CODE_BY_STATUS.get(status_code, ErrorCode.REMOTE_ERROR)
        return cls(code, message, status_code=status_code, headers=headers, details=details)

    @property
    def exit_code(self) -> int:
        return EXIT_CODE_BY_ERROR.get(self.code, 1)

    def to_error_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "code": self.code.value,
            "message": self.message,
            "details": self.details,
        }
        if self.status_code is not None:
            payload["status_code"] = self.status_code
        if self.suggestion:
            payload["suggestion"] = self.suggestion
        return payload

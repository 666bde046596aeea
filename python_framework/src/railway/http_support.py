"""
HTTP integration — HTTP status ↔ ErrorCode mapping and error response bodies.

Framework-agnostic. Client adapters use `HttpStatusMapper.to_error_code` to
turn a remote status into a failure code; outward-facing surfaces use
`ErrorResponse.from_failure` to render a failure.

    code = HttpStatusMapper.to_error_code(404)           # → ErrorCode.NOT_FOUND
    status = HttpStatusMapper.map_error_code(code)       # → 404
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from railway.failure import ErrorCode, FailureDescription


class HttpStatusMapper:
    """Maps ErrorCode enum values to HTTP status codes and back."""

    _CODE_TO_STATUS: dict[ErrorCode, int] = {
        # Client errors (4xx)
        ErrorCode.VALIDATION_ERROR: 400,
        ErrorCode.AUTHENTICATION_ERROR: 401,
        ErrorCode.AUTHORIZATION_ERROR: 403,
        ErrorCode.NOT_FOUND: 404,
        ErrorCode.CONFLICT_ERROR: 409,
        ErrorCode.BUSINESS_RULE_ERROR: 422,
        ErrorCode.RATE_LIMIT_ERROR: 429,
        # Server errors (5xx)
        ErrorCode.TECHNICAL_ERROR: 500,
        ErrorCode.CONFIGURATION_ERROR: 500,
        ErrorCode.EXTERNAL_SERVICE_ERROR: 502,
        ErrorCode.PROTOCOL_ERROR: 502,
        ErrorCode.REMOTE_OPERATION_FAILED: 502,
        ErrorCode.SERVICE_UNAVAILABLE_ERROR: 503,
        ErrorCode.TIMEOUT_ERROR: 504,
        ErrorCode.UNKNOWN_ERROR: 500,
    }

    _STATUS_TO_CODE: dict[int, ErrorCode] = {
        400: ErrorCode.VALIDATION_ERROR,
        401: ErrorCode.AUTHENTICATION_ERROR,
        403: ErrorCode.AUTHORIZATION_ERROR,
        404: ErrorCode.NOT_FOUND,
        409: ErrorCode.CONFLICT_ERROR,
        422: ErrorCode.VALIDATION_ERROR,
        429: ErrorCode.RATE_LIMIT_ERROR,
        503: ErrorCode.SERVICE_UNAVAILABLE_ERROR,
        504: ErrorCode.TIMEOUT_ERROR,
    }

    @classmethod
    def map_error_code(cls, code: ErrorCode) -> int:
        """Map an ErrorCode to an HTTP status code."""
        return cls._CODE_TO_STATUS.get(code, 500)

    @classmethod
    def to_error_code(cls, status: int) -> ErrorCode:
        """
        Map a remote HTTP status to the ErrorCode a client adapter should report.

        Unlisted 4xx statuses are treated as validation problems with the
        request; everything else is an external service failure.
        """
        if status in cls._STATUS_TO_CODE:
            return cls._STATUS_TO_CODE[status]
        if 400 <= status < 500:
            return ErrorCode.VALIDATION_ERROR
        return ErrorCode.EXTERNAL_SERVICE_ERROR


@dataclass(frozen=True, slots=True)
class ErrorResponse:
    """
    Standardized error response body.

        {
            "error_code": "CONFLICT_ERROR",
            "message": "activation already in progress for version 2",
            "details": [],
            "timestamp": "2026-02-17T10:30:00+00:00"
        }
    """

    error_code: str
    message: str
    timestamp: str
    details: list[Any] = field(default_factory=list)

    @staticmethod
    def from_failure(failure: FailureDescription) -> ErrorResponse:
        return ErrorResponse(
            error_code=failure.code.value,
            message=failure.message,
            timestamp=failure.timestamp.isoformat(),
            details=[_detail_to_dict(d) for d in failure.details],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
            "timestamp": self.timestamp,
        }


def _detail_to_dict(detail: Any) -> Any:
    to_dict = getattr(detail, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    return detail

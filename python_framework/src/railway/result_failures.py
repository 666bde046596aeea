"""
Convenience factory methods for common Result failures.

    from railway.result_failures import ResultFailures

    # Instead of:
    Result.failure(ErrorCode.CONFLICT_ERROR, "activation already in progress for version 2")

    # Write:
    ResultFailures.conflict("activation already in progress for version 2")
"""

from __future__ import annotations

from typing import Any

from railway.failure import ErrorCode
from railway.result import Result


class ResultFailures:
    """Factory methods for common failure types."""

    @staticmethod
    def validation_error(message: str, details: tuple[Any, ...] = ()) -> Result:
        """Invalid input — missing fields, wrong format, type mismatch."""
        return Result.failure(ErrorCode.VALIDATION_ERROR, message, details=details)

    @staticmethod
    def business_rule_error(message: str) -> Result:
        """Domain invariant violated — business constraint failed."""
        return Result.failure(ErrorCode.BUSINESS_RULE_ERROR, message)

    @staticmethod
    def not_found(resource_type: str, identifier: str) -> Result:
        """Resource doesn't exist."""
        return Result.failure(
            ErrorCode.NOT_FOUND,
            f"{resource_type} not found with identifier: {identifier}",
        )

    @staticmethod
    def conflict(message: str) -> Result:
        """A competing operation on the same resource is in flight."""
        return Result.failure(ErrorCode.CONFLICT_ERROR, message)

    @staticmethod
    def protocol_error(message: str) -> Result:
        """The remote answer contradicts what the caller asked for."""
        return Result.failure(ErrorCode.PROTOCOL_ERROR, message)

    @staticmethod
    def remote_operation_failed(message: str) -> Result:
        """An asynchronous remote operation ended in FAILED; not retried."""
        return Result.failure(ErrorCode.REMOTE_OPERATION_FAILED, message)

    @staticmethod
    def external_service_error(message: str, exception: BaseException | None = None) -> Result:
        """External API call failure."""
        return Result.failure(ErrorCode.EXTERNAL_SERVICE_ERROR, message, exception)

    @staticmethod
    def timeout_error(message: str) -> Result:
        """Operation exceeded time limit."""
        return Result.failure(ErrorCode.TIMEOUT_ERROR, message)

    @staticmethod
    def configuration_error(message: str) -> Result:
        """System misconfiguration."""
        return Result.failure(ErrorCode.CONFIGURATION_ERROR, message)

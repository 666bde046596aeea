"""
Railway-Oriented Programming (ROP) Framework for Python.

Explicit, composable, functional error handling — no exceptions in business logic.

    from railway import Result, ErrorCode

    def require_version(version: int | None) -> Result[int]:
        if version is None:
            return Result.failure(ErrorCode.NOT_FOUND, "CA set has no version")
        return Result.success(version)
"""

from railway.result import Result, Success, Failure
from railway.failure import ErrorCode, FailureDescription
from railway.execution import (
    ExecutionContext,
    NoOpExecutionContext,
    LoggingExecutionContext,
)
from railway.http_support import ErrorResponse, HttpStatusMapper
from railway.result_failures import ResultFailures
from railway.assertions import ResultAssertions

__all__ = [
    "Result",
    "Success",
    "Failure",
    "ErrorCode",
    "FailureDescription",
    "ExecutionContext",
    "NoOpExecutionContext",
    "LoggingExecutionContext",
    "ErrorResponse",
    "HttpStatusMapper",
    "ResultFailures",
    "ResultAssertions",
]

__version__ = "1.1.0"

"""
Execution contexts — separate WHAT (pure logic) from HOW (side effects).

Pure functions describe WHAT should happen and return Result[T]; an
ExecutionContext describes HOW it runs (logging, timing, error capture).

    ctx = LoggingExecutionContext(operation="ca_set_activation.create")
    result = ctx.execute(lambda: orchestrator.activate(request, timeout))
"""

from __future__ import annotations

import time
from typing import Any, Callable, Protocol, TypeVar, runtime_checkable

import structlog

from railway.failure import ErrorCode, FailureDescription
from railway.result import Failure, Result

T = TypeVar("T")
log = structlog.get_logger("railway.execution")


@runtime_checkable
class ExecutionContext(Protocol):
    """Any class implementing execute(computation) satisfies this protocol."""

    def execute(self, computation: Callable[[], Result[T]]) -> Result[T]: ...


class NoOpExecutionContext:
    """Passthrough execution context — runs the computation without any wrapper."""

    def execute(self, computation: Callable[[], Result[T]]) -> Result[T]:
        return computation()


class LoggingExecutionContext:
    """
    Execution context that logs entry, exit, duration, and result state.

    Wraps another context (decorator pattern) to add observability. An
    exception escaping the computation is converted into a TECHNICAL_ERROR
    failure so callers always receive a Result.
    """

    def __init__(
        self,
        inner: ExecutionContext | None = None,
        operation: str = "unknown",
        **context: Any,
    ) -> None:
        self._inner = inner or NoOpExecutionContext()
        self._operation = operation
        self._context = context

    def execute(self, computation: Callable[[], Result[T]]) -> Result[T]:
        bound = log.bind(operation=self._operation, **self._context)
        bound.debug("execution.started")
        start = time.monotonic()

        try:
            result = self._inner.execute(computation)
        except Exception as e:
            bound.error("execution.crashed", elapsed_s=round(time.monotonic() - start, 3), error=str(e))
            return Failure(FailureDescription(ErrorCode.TECHNICAL_ERROR, f"Execution failed: {e}", e))

        elapsed = round(time.monotonic() - start, 3)
        if result.is_success():
            bound.info("execution.completed", elapsed_s=elapsed)
        else:
            failure = result.error()
            bound.warning(
                "execution.failed",
                elapsed_s=elapsed,
                error_code=failure.code.value,
                message=failure.message,
            )
        return result

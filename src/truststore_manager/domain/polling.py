"""
Polling — bounded, cancellable waiting for asynchronous remote operations.

Both the activation and the deletion flows submit a request and then watch
it until the service reports a terminal state. This module holds the shared
mechanics:

  - Deadline:        overall time budget, measured on a monotonic clock
  - retry_interval:  server `retry_after` hint if it lies in the future,
                     otherwise the caller's default interval
  - poll_until_settled: sleep → fetch → classify, until the classifier
                     settles the outcome, the deadline passes or the
                     cancellation token (a threading.Event) is set

Every wait is capped at the remaining budget, so a loop never outlives its
deadline by more than one remote call. A loop that stops waiting leaves the
remote operation running; no compensating call is made.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Generic, TypeVar

import structlog
from railway import Result, ResultFailures

from truststore_manager.domain.ports import Clock

log = structlog.get_logger()

S = TypeVar("S")
T = TypeVar("T")


class SystemClock:
    """Wall-clock time, monotonic time and an Event-based interruptible sleep."""

    def now(self) -> datetime:
        return datetime.now(UTC)

    def monotonic(self) -> float:
        return time.monotonic()

    def sleep(self, seconds: float, cancel: threading.Event | None = None) -> bool:
        if cancel is None:
            if seconds > 0:
                time.sleep(seconds)
            return False
        if seconds <= 0:
            return cancel.is_set()
        return cancel.wait(seconds)


@dataclass(frozen=True, slots=True)
class Deadline:
    """A point on the monotonic clock after which waiting stops."""

    expires_at: float
    timeout: float

    @staticmethod
    def after(timeout: float, clock: Clock) -> Deadline:
        return Deadline(expires_at=clock.monotonic() + timeout, timeout=timeout)

    def remaining(self, clock: Clock) -> float:
        return max(0.0, self.expires_at - clock.monotonic())


def retry_interval(retry_after: datetime | None, default: float, now: datetime) -> float:
    """
    Seconds to wait before the next status read.

    A retry_after in the past (or absent) falls back to the default, so a
    stale hint never turns the loop into a busy spin.
    """
    if retry_after is not None:
        wait = (retry_after - now).total_seconds()
        if wait > 0:
            return wait
    return default


@dataclass(frozen=True, slots=True)
class Settled(Generic[T]):
    """The operation reached a terminal state; `result` is the final answer."""

    result: Result[T]


@dataclass(frozen=True, slots=True)
class Pending:
    """Still running; read the status again after `delay` seconds."""

    delay: float


def poll_until_settled(
    fetch: Callable[[], Result[S]],
    classify: Callable[[S], Settled[T] | Pending],
    *,
    deadline: Deadline,
    first_delay: float,
    clock: Clock,
    describe: str,
    cancel: threading.Event | None = None,
) -> Result[T]:
    """
    Drive one asynchronous remote operation to a terminal state.

    Args:
        fetch: One remote status read. A failure here ends the loop unchanged;
            transport errors are never retried at this level.
        classify: Maps a status snapshot to Settled (done) or Pending (wait).
        deadline: Overall budget; expiry yields Failure(TIMEOUT_ERROR).
        first_delay: Wait before the first read (0 for an immediate read).
        clock: Time source; tests pass a fake that advances instantly.
        describe: Human description used in timeout messages.
        cancel: Optional token; setting it stops the wait with TIMEOUT_ERROR.
    """
    delay = first_delay
    polls = 0
    while True:
        if cancel is not None and cancel.is_set():
            return _cancelled(describe)

        remaining = deadline.remaining(clock)
        if remaining <= 0:
            return _timed_out(describe, deadline)

        if clock.sleep(min(delay, remaining), cancel):
            return _cancelled(describe)
        if delay >= remaining:
            return _timed_out(describe, deadline)

        polls += 1
        fetched = fetch()
        if fetched.is_failure():
            log.debug("poll.fetch_failed", target=describe, polls=polls, error=str(fetched.error()))
            return Result.failure_from(fetched.error())

        match classify(fetched.value()):
            case Settled(result):
                log.debug("poll.settled", target=describe, polls=polls, success=result.is_success())
                return result
            case Pending(next_delay):
                log.debug("poll.pending", target=describe, polls=polls, next_delay_s=round(next_delay, 3))
                delay = next_delay


def _timed_out(describe: str, deadline: Deadline) -> Result:
    log.warning("poll.timed_out", target=describe, timeout_s=deadline.timeout)
    return ResultFailures.timeout_error(
        f"timed out after {deadline.timeout:g}s waiting for {describe}; "
        "the remote operation may still complete"
    )


def _cancelled(describe: str) -> Result:
    log.warning("poll.cancelled", target=describe)
    return ResultFailures.timeout_error(
        f"cancelled while waiting for {describe}; the remote operation may still complete"
    )

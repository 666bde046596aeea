"""
Unit tests for the polling primitives — deadline, interval selection and
the bounded poll loop.

The loop is driven by a FakeClock, so every test runs instantly while the
recorded sleeps show exactly how long the real loop would have waited.
"""

from __future__ import annotations

import threading
from datetime import timedelta

from railway import ErrorCode, Result, ResultAssertions

from tests.builders import START, FakeClock
from truststore_manager.domain.polling import (
    Deadline,
    Pending,
    Settled,
    poll_until_settled,
    retry_interval,
)

# ─────────────────────── Helpers ───────────────────────


def _fetch_sequence(*values: str):
    """fetch() returning the given snapshots in order, repeating the last one."""
    remaining = list(values)
    calls: list[str] = []

    def fetch() -> Result[str]:
        value = remaining.pop(0) if len(remaining) > 1 else remaining[0]
        calls.append(value)
        return Result.success(value)

    return fetch, calls


def _classify(value: str) -> Settled[str] | Pending:
    if value == "done":
        return Settled(Result.success("finished"))
    if value == "broken":
        return Settled(Result.failure(ErrorCode.REMOTE_OPERATION_FAILED, "broken"))
    return Pending(5.0)


# ─────────────────────── retry_interval ───────────────────────


class TestRetryInterval:
    def test_future_hint_wins(self) -> None:
        assert retry_interval(START + timedelta(seconds=12), 5.0, START) == 12.0

    def test_missing_hint_uses_default(self) -> None:
        assert retry_interval(None, 5.0, START) == 5.0

    def test_past_hint_uses_default(self) -> None:
        """
        GIVEN a retry_after that already lies in the past
        WHEN the next interval is chosen
        THEN the default is used instead of a zero or negative wait.
        """
        assert retry_interval(START - timedelta(seconds=3), 10.0, START) == 10.0


class TestDeadline:
    def test_remaining_counts_down_and_floors_at_zero(self, clock: FakeClock) -> None:
        deadline = Deadline.after(30.0, clock)
        clock.advance(10.0)
        assert deadline.remaining(clock) == 20.0
        clock.advance(50.0)
        assert deadline.remaining(clock) == 0.0


# ─────────────────────── poll_until_settled ───────────────────────


class TestPollSettles:
    """
    GIVEN a remote operation that eventually reaches a terminal state
    WHEN poll_until_settled drives it
    THEN the classifier's settled result is returned.
    """

    def test_first_read_is_immediate_when_first_delay_is_zero(self, clock: FakeClock) -> None:
        fetch, calls = _fetch_sequence("done")
        result = poll_until_settled(
            fetch, _classify, deadline=Deadline.after(60, clock), first_delay=0.0, clock=clock, describe="op"
        )
        assert ResultAssertions.assert_success(result) == "finished"
        assert clock.sleeps == [0.0]
        assert calls == ["done"]

    def test_waits_pending_delay_between_reads(self, clock: FakeClock) -> None:
        fetch, calls = _fetch_sequence("running", "running", "done")
        result = poll_until_settled(
            fetch, _classify, deadline=Deadline.after(60, clock), first_delay=0.0, clock=clock, describe="op"
        )
        ResultAssertions.assert_success(result)
        assert clock.sleeps == [0.0, 5.0, 5.0]
        assert len(calls) == 3

    def test_terminal_failure_is_returned_unchanged(self, clock: FakeClock) -> None:
        fetch, _ = _fetch_sequence("running", "broken")
        result = poll_until_settled(
            fetch, _classify, deadline=Deadline.after(60, clock), first_delay=0.0, clock=clock, describe="op"
        )
        ResultAssertions.assert_failure(result, ErrorCode.REMOTE_OPERATION_FAILED)

    def test_fetch_failure_ends_loop_without_retry(self, clock: FakeClock) -> None:
        """
        GIVEN the status read itself fails
        WHEN the loop sees the failure
        THEN it stops immediately with that failure; no second read happens.
        """
        calls = []

        def fetch() -> Result[str]:
            calls.append(1)
            return Result.failure(ErrorCode.EXTERNAL_SERVICE_ERROR, "502 Bad Gateway")

        result = poll_until_settled(
            fetch, _classify, deadline=Deadline.after(60, clock), first_delay=0.0, clock=clock, describe="op"
        )
        ResultAssertions.assert_failure(result, ErrorCode.EXTERNAL_SERVICE_ERROR)
        assert calls == [1]


class TestPollTermination:
    """
    GIVEN an operation that never settles
    WHEN the deadline passes
    THEN the loop stops with TIMEOUT_ERROR within timeout + one interval.
    """

    def test_times_out_with_timeout_error(self, clock: FakeClock) -> None:
        fetch, calls = _fetch_sequence("running")
        result = poll_until_settled(
            fetch, _classify, deadline=Deadline.after(12, clock), first_delay=0.0, clock=clock, describe="activation"
        )
        ResultAssertions.assert_failure(result, ErrorCode.TIMEOUT_ERROR)
        ResultAssertions.assert_failure_message_contains(result, "may still complete")
        assert clock.elapsed <= 12 + 5.0
        assert len(calls) == 3

    def test_waits_are_capped_at_remaining_budget(self, clock: FakeClock) -> None:
        fetch, _ = _fetch_sequence("running")
        poll_until_settled(
            fetch, _classify, deadline=Deadline.after(7, clock), first_delay=0.0, clock=clock, describe="op"
        )
        assert clock.sleeps == [0.0, 5.0, 2.0]
        assert clock.elapsed == 7.0

    def test_slow_fetch_still_bounded(self, clock: FakeClock) -> None:
        """Each read costs 4s of wall time; the loop still ends within timeout + one read."""

        def fetch() -> Result[str]:
            clock.advance(4.0)
            return Result.success("running")

        result = poll_until_settled(
            fetch, _classify, deadline=Deadline.after(20, clock), first_delay=0.0, clock=clock, describe="op"
        )
        ResultAssertions.assert_failure(result, ErrorCode.TIMEOUT_ERROR)
        assert clock.elapsed <= 20 + 4.0


class TestPollCancellation:
    def test_cancel_before_start_never_fetches(self, clock: FakeClock) -> None:
        cancel = threading.Event()
        cancel.set()
        fetch, calls = _fetch_sequence("done")
        result = poll_until_settled(
            fetch,
            _classify,
            deadline=Deadline.after(60, clock),
            first_delay=0.0,
            clock=clock,
            describe="op",
            cancel=cancel,
        )
        ResultAssertions.assert_failure(result, ErrorCode.TIMEOUT_ERROR)
        ResultAssertions.assert_failure_message_contains(result, "cancelled")
        assert calls == []

    def test_cancel_during_wait_stops_loop(self, clock: FakeClock) -> None:
        """
        GIVEN the cancellation token is set while the loop is waiting
        WHEN the wait wakes up
        THEN the loop ends with TIMEOUT_ERROR and performs no further read.
        """
        cancel = threading.Event()
        fetch, calls = _fetch_sequence("running")
        clock.on_sleep = lambda seconds: cancel.set() if seconds > 0 else None

        result = poll_until_settled(
            fetch,
            _classify,
            deadline=Deadline.after(60, clock),
            first_delay=0.0,
            clock=clock,
            describe="op",
            cancel=cancel,
        )
        ResultAssertions.assert_failure(result, ErrorCode.TIMEOUT_ERROR)
        assert calls == ["running"]

"""
Deletion Coordinator — removes a CA set from every network.

    guard ─→ DeleteCASet ─→ poll GetCASetDeletionStatus ─→ COMPLETE | FAILED

A CA set that is already absent counts as deleted. A referenced CA set is
never submitted for deletion. A FAILED deletion is not retried: it needs
operator action on the service side.
"""

from __future__ import annotations

import threading
from enum import Enum, unique

import structlog
from railway import ErrorCode, Result, ResultFailures

from truststore_manager.domain.associations import AssociationGuard
from truststore_manager.domain.models import CASetDeletionStatus, DeletionState
from truststore_manager.domain.polling import (
    Deadline,
    Pending,
    Settled,
    SystemClock,
    poll_until_settled,
    retry_interval,
)
from truststore_manager.domain.ports import Clock, DeletionGateway

log = structlog.get_logger()

DEFAULT_INTERVAL = 10.0
INITIAL_DELAY = 0.01


@unique
class DeletionOutcome(Enum):
    DELETED = "DELETED"
    ALREADY_ABSENT = "ALREADY_ABSENT"


class DeletionCoordinator:
    """Guards, submits and polls a CA set deletion."""

    def __init__(
        self,
        client: DeletionGateway,
        guard: AssociationGuard,
        clock: Clock | None = None,
        interval: float = DEFAULT_INTERVAL,
        initial_delay: float = INITIAL_DELAY,
    ) -> None:
        self._client = client
        self._guard = guard
        self._clock = clock or SystemClock()
        self._interval = interval
        self._initial_delay = initial_delay

    def delete(
        self,
        ca_set_id: str,
        timeout: float,
        cancel: threading.Event | None = None,
    ) -> Result[DeletionOutcome]:
        """
        Delete the CA set and wait until every network reports COMPLETE.

        Returns:
            Success(DELETED) after the deletion completed,
            Success(ALREADY_ABSENT) if the service no longer knows the set,
            Failure(BUSINESS_RULE_ERROR) while the set is referenced (no delete is issued),
            Failure(REMOTE_OPERATION_FAILED) when the service reports FAILED,
            Failure(TIMEOUT_ERROR) when `timeout` elapses or `cancel` is set.
        """
        log.info("deletion.requested", ca_set_id=ca_set_id, timeout_s=timeout)
        guarded = self._guard.check_not_in_use(ca_set_id)
        if guarded.has_code(ErrorCode.NOT_FOUND):
            return self._absent(ca_set_id)
        return guarded.flat_map(lambda _: self._submit(ca_set_id, timeout, cancel))

    def _submit(self, ca_set_id: str, timeout: float, cancel: threading.Event | None) -> Result[DeletionOutcome]:
        submitted = self._client.delete_ca_set(ca_set_id)
        if submitted.has_code(ErrorCode.NOT_FOUND):
            return self._absent(ca_set_id)
        log.info("deletion.submitted", ca_set_id=ca_set_id)
        return submitted.map_failure(
            lambda err: err.with_message(f"delete CA set {ca_set_id} failed: {err.message}")
        ).flat_map(lambda _: self._await_completion(ca_set_id, Deadline.after(timeout, self._clock), cancel))

    def _await_completion(
        self,
        ca_set_id: str,
        deadline: Deadline,
        cancel: threading.Event | None,
    ) -> Result[DeletionOutcome]:
        def fetch() -> Result[CASetDeletionStatus]:
            return self._client.get_deletion_status(ca_set_id).map_failure(
                lambda err: err.with_message(f"get CA set {ca_set_id} deletion status failed: {err.message}")
            )

        def classify(status: CASetDeletionStatus) -> Settled[DeletionOutcome] | Pending:
            match status.status:
                case DeletionState.COMPLETE:
                    log.info("deletion.complete", ca_set_id=ca_set_id)
                    return Settled(Result.success(DeletionOutcome.DELETED))
                case DeletionState.FAILED:
                    log.error("deletion.failed", ca_set_id=ca_set_id, reason=status.failure_reason)
                    return Settled(
                        ResultFailures.remote_operation_failed(
                            f"delete CA set {ca_set_id} failed: contact support team to resolve the issue. "
                            f"{status.failure_reason or ''}".rstrip()
                        )
                    )
                case _:
                    log.debug(
                        "deletion.in_progress",
                        ca_set_id=ca_set_id,
                        networks={n.network.value: n.percent_complete for n in status.networks},
                    )
                    return Pending(retry_interval(status.retry_after, self._interval, self._clock.now()))

        return poll_until_settled(
            fetch,
            classify,
            deadline=deadline,
            first_delay=self._initial_delay,
            clock=self._clock,
            describe=f"deletion of CA set {ca_set_id}",
            cancel=cancel,
        )

    def _absent(self, ca_set_id: str) -> Result[DeletionOutcome]:
        log.info("deletion.already_absent", ca_set_id=ca_set_id)
        return Result.success(DeletionOutcome.ALREADY_ABSENT)

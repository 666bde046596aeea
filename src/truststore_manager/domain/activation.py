"""
Activation Orchestrator — drives a CA set version live (or not live) on a network.

State machine per request (ca_set_id, version, network, desired type):

    Idle ─→ AlreadySatisfied                      (ACTIVATE only, no mutation)
    Idle ─→ ConflictDetected                      (CONFLICT_ERROR)
    Idle ─→ Submitting ─→ Polling ─→ Complete
                          Polling ─→ Failed        (REMOTE_OPERATION_FAILED)
                          Polling ─→ TimedOut      (TIMEOUT_ERROR)

An IN_PROGRESS operation of the same type and version is adopted instead of
being resubmitted. The remote service is the only arbiter of the
at-most-one-in-flight rule per (CA set, network); it is observed here, never
enforced locally.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable
from datetime import UTC, datetime

import structlog
from railway import ErrorCode, Result, ResultFailures

from truststore_manager.domain.associations import AssociationGuard
from truststore_manager.domain.models import (
    Activation,
    ActivationRequest,
    ActivationStatus,
    ActivationType,
    CASetVersion,
    Network,
    VersionStatus,
)
from truststore_manager.domain.polling import (
    Deadline,
    Pending,
    Settled,
    SystemClock,
    poll_until_settled,
    retry_interval,
)
from truststore_manager.domain.ports import Clock, TrustStoreClient

log = structlog.get_logger()

DEFAULT_POLL_INTERVAL = 5.0

_EPOCH = datetime.min.replace(tzinfo=UTC)


def most_recent_completed(
    history: Iterable[Activation],
    version: int,
    network: Network,
    activation_type: ActivationType = ActivationType.ACTIVATE,
) -> Activation | None:
    """
    The latest COMPLETE activation of `activation_type` for (version, network).

    "Latest" is decided by created_date, then activation_id, so the answer
    does not depend on the order the service lists its history in.
    """
    matching = [
        a
        for a in history
        if a.version == version and a.network is network and a.is_completed(activation_type)
    ]
    if not matching:
        return None
    return max(matching, key=lambda a: (a.created_date or _EPOCH, a.activation_id))


class ActivationOrchestrator:
    """Activates and deactivates CA set versions, polling each to completion."""

    def __init__(
        self,
        client: TrustStoreClient,
        clock: Clock | None = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        guard: AssociationGuard | None = None,
    ) -> None:
        self._client = client
        self._clock = clock or SystemClock()
        self._poll_interval = poll_interval
        self._guard = guard or AssociationGuard(client)

    # ── Public operations ──────────────────────────────────────────

    def activate(
        self,
        request: ActivationRequest,
        timeout: float,
        cancel: threading.Event | None = None,
    ) -> Result[Activation]:
        """
        Make `request.version` the live version on `request.network`.

        Returns the completed ACTIVATE activation. When the version is already
        ACTIVE and a completed record exists, that record is returned and no
        mutating call is issued.
        """
        log.info(
            "activation.requested",
            ca_set_id=request.ca_set_id,
            version=request.version,
            network=request.network.value,
        )
        return self._read_version(request).flat_map(
            lambda version: self._activate_from(version, request, timeout, cancel)
        )

    def deactivate(
        self,
        request: ActivationRequest,
        timeout: float,
        cancel: threading.Event | None = None,
    ) -> Result[Activation]:
        """Take `request.version` off `request.network`; returns the completed DEACTIVATE activation."""
        log.info(
            "deactivation.requested",
            ca_set_id=request.ca_set_id,
            version=request.version,
            network=request.network.value,
        )
        return self._drive(request, ActivationType.DEACTIVATE, timeout, cancel)

    def check_deactivation_safe(self, request: ActivationRequest) -> Result[tuple[str, ...]]:
        """
        Destroy-time check: warnings to show before deactivating.

        A version that is live on the network while the CA set is still
        referenced produces a warning carrying the association listing. An
        unreadable version only produces a warning; a failed association
        listing is an error.
        """
        read = self._client.get_ca_set_version(request.ca_set_id, request.version)
        if read.is_failure():
            return Result.success((
                f"Could not check associations for CA set ID {request.ca_set_id} "
                f"version {request.version}: {read.error().message}",
            ))
        if read.value().status_on(request.network) is not VersionStatus.ACTIVE:
            return Result.success(())

        return (
            self._guard.check_not_in_use(request.ca_set_id)
            .map(lambda _: ())
            .recover_if(
                ErrorCode.BUSINESS_RULE_ERROR,
                lambda err: Result.success((
                    f"The CA set with ID {request.ca_set_id} and version {request.version} "
                    "is still associated with one or more enrollments or properties and "
                    f"cannot be deleted. Details: {err.message}",
                )),
            )
            .map_failure(lambda err: err.with_message(f"listing CA set associations failed: {err.message}"))
        )

    # ── Short-circuit (ACTIVATE only) ──────────────────────────────

    def _read_version(self, request: ActivationRequest) -> Result[CASetVersion]:
        return self._client.get_ca_set_version(request.ca_set_id, request.version).recover_if(
            ErrorCode.NOT_FOUND, lambda err: self._explain_missing(request)
        )

    def _explain_missing(self, request: ActivationRequest) -> Result[CASetVersion]:
        """Tell a missing CA set apart from a missing version of an existing one."""
        if self._client.get_ca_set(request.ca_set_id).has_code(ErrorCode.NOT_FOUND):
            return Result.failure(ErrorCode.NOT_FOUND, f"CA set with ID {request.ca_set_id} not found")
        return Result.failure(
            ErrorCode.NOT_FOUND,
            f"CA set version {request.version} not found for CA set ID {request.ca_set_id}",
        )

    def _activate_from(
        self,
        version: CASetVersion,
        request: ActivationRequest,
        timeout: float,
        cancel: threading.Event | None,
    ) -> Result[Activation]:
        if version.status_on(request.network) is not VersionStatus.ACTIVE:
            return self._drive(request, ActivationType.ACTIVATE, timeout, cancel)

        return (
            self._client.list_version_activations(request.ca_set_id, request.version)
            .map_failure(
                lambda err: err.with_message(
                    f"error fetching activations for version {request.version}: {err.message}"
                )
            )
            .flat_map(lambda history: self._reuse_or_drive(history, request, timeout, cancel))
        )

    def _reuse_or_drive(
        self,
        history: list[Activation],
        request: ActivationRequest,
        timeout: float,
        cancel: threading.Event | None,
    ) -> Result[Activation]:
        existing = most_recent_completed(history, request.version, request.network)
        if existing is None:
            # ACTIVE without a completed record: reconcile through a normal activation.
            log.warning(
                "activation.active_without_record",
                ca_set_id=request.ca_set_id,
                version=request.version,
                network=request.network.value,
            )
            return self._drive(request, ActivationType.ACTIVATE, timeout, cancel)

        log.info(
            "activation.already_satisfied",
            ca_set_id=request.ca_set_id,
            version=request.version,
            network=request.network.value,
            activation_id=existing.activation_id,
        )
        return Result.success(existing)

    # ── Conflict check, submit, poll ───────────────────────────────

    def _drive(
        self,
        request: ActivationRequest,
        desired: ActivationType,
        timeout: float,
        cancel: threading.Event | None,
    ) -> Result[Activation]:
        return self._adopt_or_submit(request, desired).flat_map(
            lambda handle: self._await_completion(handle, desired, Deadline.after(timeout, self._clock), cancel)
        )

    def _adopt_or_submit(self, request: ActivationRequest, desired: ActivationType) -> Result[Activation]:
        return (
            self._client.list_activations(request.ca_set_id)
            .map_failure(
                lambda err: err.with_message(f"CA set with ID {request.ca_set_id} not found")
                if err.code is ErrorCode.NOT_FOUND
                else err.with_message(
                    f"could not retrieve activation details for CA set ID {request.ca_set_id}: {err.message}"
                )
            )
            .flat_map(lambda activations: self._resolve_in_flight(activations, request, desired))
        )

    def _resolve_in_flight(
        self,
        activations: list[Activation],
        request: ActivationRequest,
        desired: ActivationType,
    ) -> Result[Activation]:
        ongoing = next(
            (
                a
                for a in activations
                if a.network is request.network and a.status is ActivationStatus.IN_PROGRESS
            ),
            None,
        )
        if ongoing is None:
            return self._submit(request, desired)

        if ongoing.activation_type is not desired:
            log.warning("activation.conflict", ca_set_id=request.ca_set_id, ongoing_version=ongoing.version)
            return ResultFailures.conflict(
                f"{ongoing.activation_type.label} in progress for version {ongoing.version}, "
                f"cannot {desired.value.lower()}"
            )
        if ongoing.version != request.version:
            log.warning("activation.conflict", ca_set_id=request.ca_set_id, ongoing_version=ongoing.version)
            return ResultFailures.conflict(f"{desired.label} already in progress for version {ongoing.version}")

        log.info(
            "activation.adopted",
            ca_set_id=request.ca_set_id,
            version=request.version,
            network=request.network.value,
            activation_id=ongoing.activation_id,
        )
        return Result.success(ongoing)

    def _submit(self, request: ActivationRequest, desired: ActivationType) -> Result[Activation]:
        if desired is ActivationType.ACTIVATE:
            submitted = self._client.activate_version(request.ca_set_id, request.version, request.network)
        else:
            submitted = self._client.deactivate_version(request.ca_set_id, request.version, request.network)

        return submitted.map_failure(
            lambda err: err.with_message(
                f"{desired.label} request failed for CA set {request.ca_set_id}, "
                f"version {request.version}: {err.message}"
            )
        ).peek(
            lambda handle: log.info(
                f"{desired.label}.submitted",
                ca_set_id=handle.ca_set_id,
                version=handle.version,
                network=handle.network.value,
                activation_id=handle.activation_id,
            )
        )

    def _await_completion(
        self,
        handle: Activation,
        desired: ActivationType,
        deadline: Deadline,
        cancel: threading.Event | None,
    ) -> Result[Activation]:
        label = desired.label
        subject = f"CA set {handle.ca_set_id}, version {handle.version}"

        def fetch() -> Result[Activation]:
            return self._client.get_activation(handle.ca_set_id, handle.version, handle.activation_id).map_failure(
                lambda err: err.with_message(
                    f"error checking {label} status for {subject}, "
                    f"activation ID {handle.activation_id}: {err.message}"
                )
            )

        def classify(current: Activation) -> Settled[Activation] | Pending:
            match current.status:
                case ActivationStatus.COMPLETE if current.activation_type is desired:
                    log.info(f"{label}.complete", ca_set_id=handle.ca_set_id, activation_id=handle.activation_id)
                    return Settled(Result.success(current))
                case ActivationStatus.COMPLETE:
                    return Settled(
                        ResultFailures.protocol_error(
                            f"unexpected activation type: {current.activation_type.value} "
                            f"(expected {desired.value})"
                        )
                    )
                case ActivationStatus.FAILED:
                    log.error(f"{label}.failed", ca_set_id=handle.ca_set_id, activation_id=handle.activation_id)
                    return Settled(ResultFailures.remote_operation_failed(f"{label} failed for {subject}"))
                case _:
                    hint = current.retry_after or handle.retry_after
                    return Pending(retry_interval(hint, self._poll_interval, self._clock.now()))

        return poll_until_settled(
            fetch,
            classify,
            deadline=deadline,
            first_delay=0.0,
            clock=self._clock,
            describe=f"{label} of {subject}",
            cancel=cancel,
        )

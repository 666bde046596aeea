"""
Lifecycle hooks for the `ca_set_activation` resource.

A CA set activation records that one version of a CA set is live on one
network. Hooks translate the host's attribute bags into orchestrator
requests and the resulting Activation back into state:

    create / update  → ActivationOrchestrator.activate
    read             → DriftReconciler.read
    delete           → ActivationOrchestrator.deactivate
    import_state     → "caSetID:network", most recent completed activation
    plan_destroy     → ActivationOrchestrator.check_deactivation_safe
"""

from __future__ import annotations

import threading
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

import structlog
from railway import ErrorCode, LoggingExecutionContext, Result, ResultFailures

from truststore_manager.config import TimeoutSettings
from truststore_manager.domain.activation import ActivationOrchestrator
from truststore_manager.domain.drift import DriftReconciler, ReadAction, ReadOutcome
from truststore_manager.domain.models import Activation, ActivationRequest, ActivationStatus, ActivationType, Network
from truststore_manager.domain.ports import ActivationGateway
from truststore_manager.resources.common import AttributeReader, HookResponse, isoformat

log = structlog.get_logger()

ONLY_TIMEOUT_CHANGE_WARNING = "requested only timeout change; API won't be called"

_IDENTITY = ("ca_set_id", "version", "network")
_EPOCH = datetime.min.replace(tzinfo=UTC)


def _read_request(
    bag: Mapping[str, Any] | None, operation: str, default_timeout: float
) -> Result[tuple[ActivationRequest, float]]:
    """Parse the (ca_set_id, version, network) identity and the timeout for `operation`."""
    reader = AttributeReader(bag)
    ca_set_id = reader.string("ca_set_id")
    version = reader.integer("version")
    network_name = reader.string("network")
    network = None
    if network_name is not None:
        network = next((n for n in Network if n.value == network_name), None)
        if network is None:
            reader.complain(f"network: must be 'STAGING' or 'PRODUCTION', got: {network_name}")
    timeout = reader.timeout(operation, default_timeout)
    return reader.build(lambda: (ActivationRequest(ca_set_id, version, network), timeout))


def _with_activation(base: Mapping[str, Any], activation: Activation) -> dict[str, Any]:
    state = dict(base)
    state.update(
        ca_set_id=activation.ca_set_id,
        version=activation.version,
        network=activation.network.value,
        id=activation.activation_id,
        created_by=activation.created_by,
        created_date=isoformat(activation.created_date),
        modified_by=activation.modified_by,
        modified_date=isoformat(activation.modified_date),
    )
    return state


def only_timeouts_changed(state: Mapping[str, Any], plan: Mapping[str, Any]) -> bool:
    """True when plan and state name the same activation and differ only in timeouts."""
    same_target = all(state.get(key) == plan.get(key) for key in _IDENTITY)
    return same_target and state.get("timeouts") != plan.get("timeouts")


class CASetActivationResource:
    """Host hooks for one CA set version being live on one network."""

    def __init__(
        self,
        orchestrator: ActivationOrchestrator,
        drift: DriftReconciler,
        activations: ActivationGateway,
        timeouts: TimeoutSettings,
    ) -> None:
        self._orchestrator = orchestrator
        self._drift = drift
        self._activations = activations
        self._timeouts = timeouts

    def create(self, plan: Mapping[str, Any], cancel: threading.Event | None = None) -> Result[HookResponse]:
        return LoggingExecutionContext(operation="ca_set_activation.create").execute(
            lambda: _read_request(plan, "create", self._timeouts.create)
            .flat_map(lambda parsed: self._orchestrator.activate(parsed[0], parsed[1], cancel))
            .map_failure(lambda err: err.with_message(f"create CA set activation failed: {err.message}"))
            .map(lambda activation: HookResponse(_with_activation(plan, activation)))
        )

    def update(
        self,
        plan: Mapping[str, Any],
        state: Mapping[str, Any],
        cancel: threading.Event | None = None,
    ) -> Result[HookResponse]:
        if only_timeouts_changed(state, plan):
            log.info("ca_set_activation.timeouts_only", ca_set_id=state.get("ca_set_id"))
            updated = dict(state)
            updated["timeouts"] = plan.get("timeouts")
            return Result.success(HookResponse(updated, (ONLY_TIMEOUT_CHANGE_WARNING,)))

        return LoggingExecutionContext(operation="ca_set_activation.update").execute(
            lambda: _read_request(plan, "update", self._timeouts.update)
            .flat_map(lambda parsed: self._orchestrator.activate(parsed[0], parsed[1], cancel))
            .map_failure(lambda err: err.with_message(f"update a CA set activation failed: {err.message}"))
            .map(lambda activation: HookResponse(_with_activation(plan, activation)))
        )

    def read(self, state: Mapping[str, Any], superseded: bool = False) -> Result[HookResponse]:
        """Refresh state from the service; see DriftReconciler for the outcomes."""
        return (
            _read_request(state, "read", self._timeouts.create)
            .flat_map(
                lambda parsed: self._drift.read(
                    parsed[0].ca_set_id, parsed[0].version, parsed[0].network, superseded
                )
            )
            .map_failure(lambda err: err.with_message(f"read CA set activation failed: {err.message}"))
            .map(lambda outcome: self._apply(state, outcome))
        )

    def _apply(self, state: Mapping[str, Any], outcome: ReadOutcome) -> HookResponse:
        match outcome.action:
            case ReadAction.KEEP:
                return HookResponse(_with_activation(state, outcome.activation))
            case ReadAction.REMOVE:
                log.warning("ca_set_activation.removed", ca_set_id=state.get("ca_set_id"))
                return HookResponse(None)
            case _:
                return HookResponse(dict(state))

    def delete(self, state: Mapping[str, Any], cancel: threading.Event | None = None) -> Result[HookResponse]:
        return LoggingExecutionContext(operation="ca_set_activation.delete").execute(
            lambda: _read_request(state, "delete", self._timeouts.delete)
            .flat_map(lambda parsed: self._orchestrator.deactivate(parsed[0], parsed[1], cancel))
            .map_failure(
                lambda err: err.with_message(
                    f"failed to deactivate CA set ID {state.get('ca_set_id')} "
                    f"version {state.get('version')}: {err.message}"
                )
            )
            .map(lambda _: HookResponse(None))
        )

    def plan_destroy(self, state: Mapping[str, Any]) -> Result[HookResponse]:
        return (
            _read_request(state, "delete", self._timeouts.delete)
            .flat_map(lambda parsed: self._orchestrator.check_deactivation_safe(parsed[0]))
            .map(lambda warnings: HookResponse(dict(state), warnings))
        )

    def import_state(self, import_id: str) -> Result[HookResponse]:
        """Import the activation currently live for "caSetID:network"."""
        parts = import_id.split(":") if isinstance(import_id, str) else []
        if len(parts) != 2:
            return ResultFailures.validation_error(f"Expected format: 'caSetID:network', got: {import_id!r}")
        ca_set_id, network_name = parts
        if not ca_set_id:
            return ResultFailures.validation_error("CA set ID cannot be empty.")
        network = next((n for n in Network if n.value == network_name), None)
        if network is None:
            return ResultFailures.validation_error(
                f"Network must be 'STAGING' or 'PRODUCTION', got: {network_name}"
            )

        return (
            self._activations.list_activations(ca_set_id)
            .map_failure(
                lambda err: err.with_message(f"CA set with ID {ca_set_id} not found: {err.message}")
                if err.code is ErrorCode.NOT_FOUND
                else err.with_message(
                    f"could not retrieve activation details for CA set ID {ca_set_id}: {err.message}"
                )
            )
            .flat_map(lambda history: _live_activation(ca_set_id, network, history))
            .peek(
                lambda activation: log.info(
                    "ca_set_activation.imported",
                    ca_set_id=ca_set_id,
                    version=activation.version,
                    activation_id=activation.activation_id,
                    network=network.value,
                )
            )
            .map(lambda activation: HookResponse(_with_activation({"timeouts": None}, activation)))
        )


def _live_activation(ca_set_id: str, network: Network, history: list[Activation]) -> Result[Activation]:
    """
    The activation that makes a version live on `network`, newest first.

    An operation still in flight blocks the import; a completed DEACTIVATE
    newer than any ACTIVATE means nothing is live.
    """
    on_network = sorted(
        (a for a in history if a.network is network),
        key=lambda a: (a.created_date or _EPOCH, a.activation_id),
        reverse=True,
    )
    for activation in on_network:
        if activation.status is ActivationStatus.IN_PROGRESS:
            return ResultFailures.conflict(
                f"A CA set operation is already in progress: {ca_set_id}. Can only import completed activations."
            )
        if activation.status is ActivationStatus.COMPLETE:
            if activation.activation_type is ActivationType.ACTIVATE:
                return Result.success(activation)
            break
    return ResultFailures.business_rule_error(
        f"CA set with ID {ca_set_id} is not active in the {network.value} network. "
        "Only completed activations can be imported."
    )

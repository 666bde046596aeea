"""
Drift Reconciler — re-derives the held activation record from remote history.

Run on every read of an activation. The outcome tells the host what to do
with its local record:

    KEEP        the desired version is live; refresh the record from the
                authoritative activation (absorbs re-activations of the
                same version made out of band)
    REMOVE      the CA set is gone, or nothing is live on the network
    SUPERSEDED  no matching activation, but the caller is about to replace
                its intent with an update; keep the record untouched

Any other mismatch is drift that cannot be reconciled silently and is
reported as BUSINESS_RULE_ERROR.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, unique

import structlog
from railway import ErrorCode, Result, ResultFailures

from truststore_manager.domain.activation import most_recent_completed
from truststore_manager.domain.models import Activation, CASet, Network
from truststore_manager.domain.ports import ActivationGateway, CASetReader

log = structlog.get_logger()


@unique
class ReadAction(Enum):
    KEEP = "KEEP"
    REMOVE = "REMOVE"
    SUPERSEDED = "SUPERSEDED"


@dataclass(frozen=True, slots=True)
class ReadOutcome:
    action: ReadAction
    activation: Activation | None = None

    @staticmethod
    def keep(activation: Activation) -> ReadOutcome:
        return ReadOutcome(ReadAction.KEEP, activation)

    @staticmethod
    def remove() -> ReadOutcome:
        return ReadOutcome(ReadAction.REMOVE)

    @staticmethod
    def superseded() -> ReadOutcome:
        return ReadOutcome(ReadAction.SUPERSEDED)


class DriftReconciler:
    """Compares the locally held activation with what the service says is live."""

    def __init__(self, ca_sets: CASetReader, activations: ActivationGateway) -> None:
        self._ca_sets = ca_sets
        self._activations = activations

    def read(
        self,
        ca_set_id: str,
        desired_version: int,
        network: Network,
        superseded: bool = False,
    ) -> Result[ReadOutcome]:
        fetched = self._ca_sets.get_ca_set(ca_set_id)
        if fetched.has_code(ErrorCode.NOT_FOUND):
            return self._gone(ca_set_id)
        return fetched.map_failure(lambda err: err.with_message(f"failed to get CA set: {err.message}")).flat_map(
            lambda ca_set: self._reconcile(ca_set, desired_version, network, superseded)
        )

    def _gone(self, ca_set_id: str) -> Result[ReadOutcome]:
        log.info("drift.ca_set_gone", ca_set_id=ca_set_id)
        return Result.success(ReadOutcome.remove())

    def _reconcile(
        self,
        ca_set: CASet,
        desired_version: int,
        network: Network,
        superseded: bool,
    ) -> Result[ReadOutcome]:
        if ca_set.active_version(network) is None:
            log.info("drift.nothing_active", ca_set_id=ca_set.ca_set_id, network=network.value)
            return Result.success(ReadOutcome.remove())

        return (
            self._activations.list_version_activations(ca_set.ca_set_id, desired_version)
            .map_failure(lambda err: err.with_message(f"failed to find activation: {err.message}"))
            .flat_map(lambda history: self._judge(ca_set.ca_set_id, desired_version, network, history, superseded))
        )

    def _judge(
        self,
        ca_set_id: str,
        desired_version: int,
        network: Network,
        history: list[Activation],
        superseded: bool,
    ) -> Result[ReadOutcome]:
        found = most_recent_completed(history, desired_version, network)
        if found is not None:
            return Result.success(ReadOutcome.keep(found))
        if superseded:
            log.info("drift.superseded", ca_set_id=ca_set_id, version=desired_version, network=network.value)
            return Result.success(ReadOutcome.superseded())

        log.warning("drift.unreconcilable", ca_set_id=ca_set_id, version=desired_version, network=network.value)
        return ResultFailures.business_rule_error(
            f"no activation found for CA set {ca_set_id}, version {desired_version}, network {network.value}"
        )

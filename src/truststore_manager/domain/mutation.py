"""
Mutation Guard — copy-on-write protection for CA set versions.

A version that has ever been made live (a COMPLETE ACTIVATE on staging or
production, even if later deactivated) is frozen. Editing such a CA set
first clones the latest version and applies the edit to the clone, which
then becomes the CA set's latest version. A version that was never live is
edited in place.

Exactly one of these call sequences reaches the service per edit:

    UpdateCASetVersion(current)
    CloneCASetVersion(current) → UpdateCASetVersion(clone)
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum, unique

import structlog
from railway import Result

from truststore_manager.domain.models import Activation, ActivationType, CASetVersion, VersionEdit
from truststore_manager.domain.ports import ActivationGateway, VersionWriter

log = structlog.get_logger()


@unique
class TargetKind(Enum):
    REUSE = "REUSE"
    CLONE = "CLONE"


@dataclass(frozen=True, slots=True)
class TargetDecision:
    """Which version an edit may touch: `version` itself, or a clone of it."""

    kind: TargetKind
    version: int

    @staticmethod
    def reuse(version: int) -> TargetDecision:
        return TargetDecision(TargetKind.REUSE, version)

    @staticmethod
    def clone(source_version: int) -> TargetDecision:
        return TargetDecision(TargetKind.CLONE, source_version)


@dataclass(frozen=True, slots=True)
class VersionEditOutcome:
    """The edited version, and the version it was cloned from (None if edited in place)."""

    version: CASetVersion
    cloned_from: int | None = None


def decide_target(current_version: int, history: Iterable[Activation]) -> TargetDecision:
    """Reuse the current version unless it has ever completed an activation."""
    ever_live = any(
        activation.version == current_version and activation.is_completed(ActivationType.ACTIVATE)
        for activation in history
    )
    if ever_live:
        return TargetDecision.clone(current_version)
    return TargetDecision.reuse(current_version)


def clone_description(source_version: int) -> str:
    return f"Cloned from version {source_version}"


class MutationGuard:
    """Applies a VersionEdit without ever rewriting a version that was live."""

    def __init__(self, activations: ActivationGateway, versions: VersionWriter) -> None:
        self._activations = activations
        self._versions = versions

    def apply_edit(self, ca_set_id: str, current_version: int, edit: VersionEdit) -> Result[VersionEditOutcome]:
        """
        Apply `edit` to the CA set, cloning first when the current version is frozen.

        Returns the updated version; its `version` number is the CA set's new
        latest version. Failures from any of the remote calls are returned
        unchanged, with the step that failed named in the message.
        """
        return (
            self._activations.list_version_activations(ca_set_id, current_version)
            .map_failure(lambda err: err.with_message(f"list CA set activations failed: {err.message}"))
            .map(lambda history: decide_target(current_version, history))
            .flat_map(lambda decision: self._execute(ca_set_id, decision, edit))
        )

    def _execute(self, ca_set_id: str, decision: TargetDecision, edit: VersionEdit) -> Result[VersionEditOutcome]:
        if decision.kind is TargetKind.REUSE:
            log.debug("mutation.update_in_place", ca_set_id=ca_set_id, version=decision.version)
            return self._update(ca_set_id, decision.version, edit).map(VersionEditOutcome)

        source = decision.version
        return (
            self._versions.clone_version(ca_set_id, source, clone_description(source))
            .map_failure(lambda err: err.with_message(f"clone CA set version failed: {err.message}"))
            .peek(
                lambda clone: log.info(
                    "mutation.cloned",
                    ca_set_id=ca_set_id,
                    source_version=source,
                    new_version=clone.version,
                )
            )
            .flat_map(lambda clone: self._update(ca_set_id, clone.version, edit))
            .map(lambda updated: VersionEditOutcome(updated, cloned_from=source))
        )

    def _update(self, ca_set_id: str, version: int, edit: VersionEdit) -> Result[CASetVersion]:
        return self._versions.update_version(ca_set_id, version, edit).map_failure(
            lambda err: err.with_message(f"update CA set version failed: {err.message}")
        )

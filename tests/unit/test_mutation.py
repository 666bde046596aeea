"""
Unit tests for the Mutation Guard — copy-on-write edits of CA set versions.

The activation history and the version writer are the same MagicMock
client, so call order across both ports can be asserted with mock_calls.
"""

from __future__ import annotations

from unittest.mock import call

from railway import ErrorCode, Result, ResultAssertions

from tests.builders import CA_SET_ID, make_activation, make_client, make_edit, make_version
from truststore_manager.domain.models import ActivationStatus, ActivationType, Network
from truststore_manager.domain.mutation import (
    MutationGuard,
    TargetKind,
    clone_description,
    decide_target,
)

# ─────────────────────── decide_target ───────────────────────


class TestDecideTarget:
    def test_no_history_reuses(self) -> None:
        decision = decide_target(1, [])
        assert decision.kind is TargetKind.REUSE
        assert decision.version == 1

    def test_completed_activate_forces_clone(self) -> None:
        decision = decide_target(1, [make_activation(version=1)])
        assert decision.kind is TargetKind.CLONE
        assert decision.version == 1

    def test_later_deactivation_does_not_unfreeze(self) -> None:
        """
        GIVEN version 1 was activated and later deactivated
        WHEN the target is decided
        THEN the version is still frozen.
        """
        history = [
            make_activation(activation_id=1, version=1),
            make_activation(activation_id=2, version=1, activation_type=ActivationType.DEACTIVATE, created_offset_minutes=30),
        ]
        assert decide_target(1, history).kind is TargetKind.CLONE

    def test_production_activation_also_freezes(self) -> None:
        assert decide_target(1, [make_activation(network=Network.PRODUCTION)]).kind is TargetKind.CLONE

    def test_incomplete_or_failed_activations_do_not_freeze(self) -> None:
        history = [
            make_activation(activation_id=1, status=ActivationStatus.FAILED),
            make_activation(activation_id=2, status=ActivationStatus.IN_PROGRESS),
        ]
        assert decide_target(1, history).kind is TargetKind.REUSE

    def test_completed_deactivate_alone_does_not_freeze(self) -> None:
        history = [make_activation(activation_type=ActivationType.DEACTIVATE)]
        assert decide_target(1, history).kind is TargetKind.REUSE

    def test_other_versions_are_ignored(self) -> None:
        assert decide_target(2, [make_activation(version=1)]).kind is TargetKind.REUSE


def test_clone_description() -> None:
    assert clone_description(3) == "Cloned from version 3"


# ─────────────────────── MutationGuard.apply_edit ───────────────────────


class TestApplyEditInPlace:
    def test_never_live_version_is_updated_in_place(self) -> None:
        """
        GIVEN version 1 has no completed activation
        WHEN an edit is applied
        THEN UpdateCASetVersion(1) is the only write and no clone is made.
        """
        client = make_client()
        edit = make_edit()
        client.update_version.return_value = Result.success(make_version(1))

        result = MutationGuard(client, client).apply_edit(CA_SET_ID, 1, edit)

        outcome = ResultAssertions.assert_success(result)
        assert outcome.version.version == 1
        assert outcome.cloned_from is None
        client.update_version.assert_called_once_with(CA_SET_ID, 1, edit)
        client.clone_version.assert_not_called()

    def test_update_failure_is_prefixed(self) -> None:
        client = make_client()
        client.update_version.return_value = Result.failure(ErrorCode.VALIDATION_ERROR, "400 Bad Request")

        result = MutationGuard(client, client).apply_edit(CA_SET_ID, 1, make_edit())

        ResultAssertions.assert_failure(result, ErrorCode.VALIDATION_ERROR)
        ResultAssertions.assert_failure_message_contains(result, "update CA set version failed: 400")


class TestApplyEditClone:
    def test_live_version_is_cloned_then_clone_updated(self) -> None:
        """
        GIVEN version 1 completed an activation on staging
        WHEN an edit is applied
        THEN the calls are Clone(1) then Update(2), and version 1 is never written.
        """
        client = make_client()
        edit = make_edit()
        client.list_version_activations.return_value = Result.success([make_activation(version=1)])
        client.clone_version.return_value = Result.success(make_version(2))
        client.update_version.return_value = Result.success(make_version(2))

        result = MutationGuard(client, client).apply_edit(CA_SET_ID, 1, edit)

        outcome = ResultAssertions.assert_success(result)
        assert outcome.version.version == 2
        assert outcome.cloned_from == 1
        writes = [c for c in client.mock_calls if c[0] in ("clone_version", "update_version")]
        assert writes == [
            call.clone_version(CA_SET_ID, 1, "Cloned from version 1"),
            call.update_version(CA_SET_ID, 2, edit),
        ]

    def test_clone_failure_stops_before_update(self) -> None:
        client = make_client()
        client.list_version_activations.return_value = Result.success([make_activation(version=1)])
        client.clone_version.return_value = Result.failure(ErrorCode.EXTERNAL_SERVICE_ERROR, "500 Internal Server Error")

        result = MutationGuard(client, client).apply_edit(CA_SET_ID, 1, make_edit())

        ResultAssertions.assert_failure_message_contains(result, "clone CA set version failed")
        client.update_version.assert_not_called()

    def test_update_of_clone_failure_leaves_live_version_untouched(self) -> None:
        client = make_client()
        client.list_version_activations.return_value = Result.success([make_activation(version=1)])
        client.clone_version.return_value = Result.success(make_version(2))
        client.update_version.return_value = Result.failure(ErrorCode.VALIDATION_ERROR, "bad cert")

        result = MutationGuard(client, client).apply_edit(CA_SET_ID, 1, make_edit())

        ResultAssertions.assert_failure(result, ErrorCode.VALIDATION_ERROR)
        assert all(c.args[1] != 1 for c in client.update_version.call_args_list)


class TestApplyEditHistoryFailure:
    def test_history_failure_means_no_write(self) -> None:
        """
        GIVEN the activation history cannot be read
        WHEN an edit is applied
        THEN it fails and nothing is written.
        """
        client = make_client()
        client.list_version_activations.return_value = Result.failure(ErrorCode.EXTERNAL_SERVICE_ERROR, "timeout")

        result = MutationGuard(client, client).apply_edit(CA_SET_ID, 1, make_edit())

        ResultAssertions.assert_failure(result, ErrorCode.EXTERNAL_SERVICE_ERROR)
        ResultAssertions.assert_failure_message_contains(result, "list CA set activations failed")
        client.clone_version.assert_not_called()
        client.update_version.assert_not_called()

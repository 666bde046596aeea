"""
Unit tests for the main module — composition root and hook dispatch.

Tests verify structlog configuration, request routing and the JSON
envelope without making real HTTP calls.
"""

from __future__ import annotations

import io
import json
from collections.abc import Iterator
from unittest.mock import MagicMock

import pytest
import structlog
from railway import ErrorCode, Result

from truststore_manager.adapters.http_client import HttpTrustStoreClient
from truststore_manager.config import ApiSettings, AppSettings
from truststore_manager.main import Resources, configure_structlog, create_resources, handle_request, main
from truststore_manager.resources.common import HookResponse


def _resources() -> Resources:
    return Resources(client=MagicMock(), ca_set=MagicMock(), ca_set_activation=MagicMock())


class TestConfigureStructlog:
    """Verify structlog configuration function."""

    @pytest.fixture(autouse=True)
    def _reset_structlog(self) -> Iterator[None]:
        yield
        structlog.reset_defaults()

    def test_configure_structlog_sets_log_level(self) -> None:
        """
        GIVEN log_level="WARNING"
        WHEN configure_structlog is called
        THEN structlog is configured (no exception raised).
        """
        configure_structlog("WARNING")
        assert structlog.get_logger() is not None

    def test_configure_structlog_invalid_level_falls_back(self) -> None:
        """
        GIVEN an invalid log_level string
        WHEN configure_structlog is called
        THEN it falls back to INFO (no crash).
        """
        configure_structlog("NONEXISTENT")
        assert structlog.get_logger() is not None


class TestCreateResources:
    def test_wires_http_client(self) -> None:
        settings = AppSettings(api=ApiSettings(base_url="https://truststore.example.com"), _env_file=None)
        resources = create_resources(settings)
        try:
            assert isinstance(resources.client, HttpTrustStoreClient)
        finally:
            resources.client.close()


class TestHandleRequest:
    def test_routes_to_resource_operation(self) -> None:
        """
        GIVEN a ca_set create request
        WHEN it is handled
        THEN CASetResource.create receives the plan and the envelope says ok.
        """
        resources = _resources()
        resources.ca_set.create.return_value = Result.success(HookResponse({"id": "1"}))

        response = handle_request(resources, {"resource": "ca_set", "operation": "create", "plan": {"name": "x"}})

        resources.ca_set.create.assert_called_once_with({"name": "x"})
        assert response == {"status": "ok", "state": {"id": "1"}, "warnings": []}

    def test_activation_read_passes_superseded_flag(self) -> None:
        resources = _resources()
        resources.ca_set_activation.read.return_value = Result.success(HookResponse(None))

        handle_request(
            resources,
            {"resource": "ca_set_activation", "operation": "read", "state": {"id": 1}, "superseded": True},
        )

        resources.ca_set_activation.read.assert_called_once_with({"id": 1}, superseded=True)

    def test_import_passes_id(self) -> None:
        resources = _resources()
        resources.ca_set_activation.import_state.return_value = Result.success(HookResponse({}))

        handle_request(resources, {"resource": "ca_set_activation", "operation": "import", "id": "12345:STAGING"})

        resources.ca_set_activation.import_state.assert_called_once_with("12345:STAGING")

    def test_failure_becomes_error_envelope(self) -> None:
        resources = _resources()
        resources.ca_set.delete.return_value = Result.failure(ErrorCode.BUSINESS_RULE_ERROR, "CA set is in use")

        response = handle_request(resources, {"resource": "ca_set", "operation": "delete", "state": {"id": "1"}})

        assert response["status"] == "error"
        assert response["error_code"] == "BUSINESS_RULE_ERROR"
        assert response["message"] == "CA set is in use"

    def test_unknown_resource(self) -> None:
        response = handle_request(_resources(), {"resource": "certificate", "operation": "create"})
        assert response["error_code"] == "VALIDATION_ERROR"

    def test_validate_only_exists_for_ca_set(self) -> None:
        response = handle_request(_resources(), {"resource": "ca_set_activation", "operation": "validate"})
        assert response["error_code"] == "VALIDATION_ERROR"

    def test_non_object_request(self) -> None:
        response = handle_request(_resources(), ["not", "an", "object"])  # type: ignore[arg-type]
        assert response["message"] == "request must be a JSON object"

    @pytest.mark.parametrize("field", ["plan", "state"])
    def test_non_object_plan_or_state_is_rejected(self, field: str) -> None:
        """
        GIVEN an update request whose plan or state is a JSON list
        WHEN it is handled
        THEN a VALIDATION_ERROR envelope comes back and no resource is called.
        """
        resources = _resources()
        request = {"resource": "ca_set", "operation": "update", "plan": {"name": "x"}, "state": {"id": "1"}}
        request[field] = [1]

        response = handle_request(resources, request)

        assert response["status"] == "error"
        assert response["error_code"] == "VALIDATION_ERROR"
        resources.ca_set.update.assert_not_called()


class TestMain:
    @pytest.fixture(autouse=True)
    def _quiet_logging(self, monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
        """Send main()'s logs to a throwaway sink so stdout holds only the response."""
        monkeypatch.setattr(
            "truststore_manager.main.configure_structlog",
            lambda level="INFO": structlog.configure(logger_factory=structlog.PrintLoggerFactory(file=io.StringIO())),
        )
        yield
        structlog.reset_defaults()

    def test_missing_configuration_exits_1(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("API__BASE_URL", raising=False)

        with pytest.raises(SystemExit) as exc:
            main()

        assert exc.value.code == 1

    def test_bad_json_exits_2(self, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
        monkeypatch.setenv("API__BASE_URL", "https://truststore.example.com")
        monkeypatch.setattr("sys.stdin", io.StringIO("{not json"))

        with pytest.raises(SystemExit) as exc:
            main()

        assert exc.value.code == 2
        assert json.loads(capsys.readouterr().out)["status"] == "error"

    def test_error_response_exits_1(self, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
        monkeypatch.setenv("API__BASE_URL", "https://truststore.example.com")
        monkeypatch.setattr("sys.stdin", io.StringIO(json.dumps({"resource": "nope", "operation": "read"})))

        with pytest.raises(SystemExit) as exc:
            main()

        assert exc.value.code == 1
        assert json.loads(capsys.readouterr().out)["error_code"] == "VALIDATION_ERROR"

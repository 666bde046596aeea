"""
Unit tests for the hook plumbing: durations, attribute reading, responses.
"""

from __future__ import annotations

import pytest
from railway import ErrorCode, ResultAssertions

from truststore_manager.resources.common import AttributeReader, HookResponse, parse_duration


class TestParseDuration:
    @pytest.mark.parametrize(
        ("text", "seconds"),
        [("90s", 90.0), ("1h30m", 5400.0), ("500ms", 0.5), ("2h", 7200.0), (" 10m ", 600.0)],
    )
    def test_valid(self, text: str, seconds: float) -> None:
        assert parse_duration(text) == seconds

    @pytest.mark.parametrize("text", ["", "10", "ten minutes", "5x", "0s", "1h-5m"])
    def test_invalid(self, text: str) -> None:
        assert parse_duration(text) is None


class TestAttributeReader:
    def test_collects_every_problem(self) -> None:
        """
        GIVEN a bag with a missing, a mistyped and a bool-for-int attribute
        WHEN it is built
        THEN one VALIDATION_ERROR lists all three problems.
        """
        reader = AttributeReader({"version": True, "network": 5})
        reader.string("ca_set_id")
        reader.integer("version")
        reader.string("network")

        result = reader.build(lambda: "never")

        error = ResultAssertions.assert_failure(result, ErrorCode.VALIDATION_ERROR)
        assert error.details == (
            "ca_set_id: attribute is required",
            "version: expected an integer, got bool",
            "network: expected a string, got int",
        )

    def test_builds_when_clean(self) -> None:
        reader = AttributeReader({"ca_set_id": "1", "version": 2})
        ca_set_id = reader.string("ca_set_id")
        version = reader.integer("version")
        ResultAssertions.assert_success_value(reader.build(lambda: (ca_set_id, version)), ("1", 2))

    def test_non_mapping_bag(self) -> None:
        reader = AttributeReader(["not", "a", "dict"])  # type: ignore[arg-type]
        ResultAssertions.assert_failure(reader.build(lambda: 1), ErrorCode.VALIDATION_ERROR)

    def test_timeout_override_and_default(self) -> None:
        reader = AttributeReader({"timeouts": {"create": "30m"}})
        assert reader.timeout("create", 3600.0) == 1800.0
        assert reader.timeout("delete", 3600.0) == 3600.0
        assert reader.problems == ()

    def test_invalid_timeout_is_a_problem(self) -> None:
        reader = AttributeReader({"timeouts": {"delete": "soon"}})
        assert reader.timeout("delete", 60.0) == 60.0
        assert reader.problems == ("timeouts.delete: invalid duration 'soon'",)

    def test_objects_rejects_non_objects(self) -> None:
        reader = AttributeReader({"certificates": [{"certificate_pem": "x"}, "oops"]})
        assert len(reader.objects("certificates")) == 1
        assert reader.problems == ("certificates[1]: expected an object, got str",)


def test_hook_response_to_dict() -> None:
    assert HookResponse(None, ("gone",)).to_dict() == {"state": None, "warnings": ["gone"]}

"""Tests for FailureDescription and ErrorCode."""

import pytest

from railway import ErrorCode, FailureDescription


class TestErrorCode:
    def test_all_15_error_codes_exist(self):
        codes = list(ErrorCode)
        assert len(codes) == 15

    def test_remote_operation_codes(self):
        assert ErrorCode.CONFLICT_ERROR.value == "CONFLICT_ERROR"
        assert ErrorCode.PROTOCOL_ERROR.value == "PROTOCOL_ERROR"
        assert ErrorCode.REMOTE_OPERATION_FAILED.value == "REMOTE_OPERATION_FAILED"

    def test_error_code_values_are_strings(self):
        for code in ErrorCode:
            assert isinstance(code.value, str)
            assert code.value == code.name


class TestFailureDescription:
    def test_creation_with_code_and_message(self):
        desc = FailureDescription(ErrorCode.VALIDATION_ERROR, "name is required")
        assert desc.code == ErrorCode.VALIDATION_ERROR
        assert desc.message == "name is required"
        assert desc.exception is None
        assert desc.details == ()
        assert desc.timestamp is not None

    def test_creation_with_exception(self):
        ex = ConnectionError("connection refused")
        desc = FailureDescription(ErrorCode.EXTERNAL_SERVICE_ERROR, "request failed", ex)
        assert desc.exception is ex

    def test_factory_method(self):
        desc = FailureDescription.create(ErrorCode.VALIDATION_ERROR, "bad", details=("a",))
        assert desc.code == ErrorCode.VALIDATION_ERROR
        assert desc.details == ("a",)

    def test_immutability(self):
        desc = FailureDescription(ErrorCode.VALIDATION_ERROR, "test")
        with pytest.raises(AttributeError):
            desc.message = "changed"  # type: ignore

    def test_timestamp_is_utc(self):
        desc = FailureDescription(ErrorCode.VALIDATION_ERROR, "test")
        assert desc.timestamp.tzinfo is not None

    def test_str(self):
        assert str(FailureDescription(ErrorCode.NOT_FOUND, "gone")) == "NOT_FOUND: gone"


class TestWithMessage:
    def test_keeps_code_exception_and_details(self):
        ex = RuntimeError("boom")
        desc = FailureDescription(ErrorCode.VALIDATION_ERROR, "400 Bad Request", ex, ("finding",))

        wrapped = desc.with_message("certificates are invalid: 400 Bad Request")

        assert wrapped.code == ErrorCode.VALIDATION_ERROR
        assert wrapped.message == "certificates are invalid: 400 Bad Request"
        assert wrapped.exception is ex
        assert wrapped.details == ("finding",)

    def test_original_is_unchanged(self):
        desc = FailureDescription(ErrorCode.NOT_FOUND, "gone")
        desc.with_message("other")
        assert desc.message == "gone"


class TestFullStackTrace:
    def test_without_exception(self):
        desc = FailureDescription(ErrorCode.VALIDATION_ERROR, "just a message")
        assert desc.full_stack_trace() == "just a message"

    def test_with_exception(self):
        try:
            raise ValueError("boom")
        except ValueError as e:
            desc = FailureDescription(ErrorCode.EXTERNAL_SERVICE_ERROR, "request failed", e)
        trace = desc.full_stack_trace()
        assert "request failed" in trace
        assert "ValueError" in trace
        assert "boom" in trace

"""Unit tests for jira_confluence.exceptions - the AppError taxonomy."""

from __future__ import annotations

import pytest

from jira_confluence.exceptions import (
    RETRYABLE_STATUS_CODES,
    AppError,
    ErrorCode,
    format_error_details,
)


class TestAppError:
    """Construction and cause chaining."""

    def test_inherits_from_exception(self) -> None:
        assert issubclass(AppError, Exception)

    def test_str_is_message(self) -> None:
        error = AppError(ErrorCode.UNKNOWN_ERROR, "something broke")
        assert str(error) == "something broke"
        assert error.context == {}
        assert error.status_code is None

    def test_cause_is_chained(self) -> None:
        cause = ValueError("root")
        error = AppError.network("Jira request failed", cause)
        assert error.cause is cause
        assert error.__cause__ is cause

    def test_repr_includes_code(self) -> None:
        error = AppError.jira_api("bad", 400)
        assert "JIRA_API_ERROR" in repr(error)


class TestFactories:
    """Each factory sets the matching code."""

    def test_config(self) -> None:
        assert AppError.config("x").code == ErrorCode.CONFIG_ERROR

    def test_validation_keeps_context(self) -> None:
        error = AppError.validation("x", {"field": "summary"})
        assert error.code == ErrorCode.VALIDATION_ERROR
        assert error.context == {"field": "summary"}

    def test_jira_api(self) -> None:
        error = AppError.jira_api("x", 404, context={"errors": {}})
        assert error.code == ErrorCode.JIRA_API_ERROR
        assert error.status_code == 404
        assert error.context == {"errors": {}}

    def test_confluence_api(self) -> None:
        error = AppError.confluence_api("x", 409)
        assert error.code == ErrorCode.CONFLUENCE_API_ERROR
        assert error.status_code == 409

    def test_circuit_breaker_open(self) -> None:
        error = AppError.circuit_breaker_open("confluence")
        assert error.code == ErrorCode.CIRCUIT_BREAKER_OPEN
        assert error.message == (
            "Circuit breaker is open for confluence. Service is temporarily unavailable."
        )
        assert error.context == {"service": "confluence"}

    def test_unknown(self) -> None:
        assert AppError.unknown("x").code == ErrorCode.UNKNOWN_ERROR


class TestRetryable:
    """The retryable flag follows code and status."""

    def test_network_is_retryable(self) -> None:
        assert AppError.network("down").retryable

    def test_open_circuit_is_retryable(self) -> None:
        assert AppError.circuit_breaker_open("jira").retryable

    @pytest.mark.parametrize("status", sorted(RETRYABLE_STATUS_CODES))
    def test_retryable_provider_statuses(self, status: int) -> None:
        assert AppError.jira_api("x", status).retryable
        assert AppError.confluence_api("x", status).retryable

    @pytest.mark.parametrize("status", [None, 400, 401, 404, 500])
    def test_other_provider_statuses(self, status: int | None) -> None:
        assert not AppError.jira_api("x", status).retryable

    def test_validation_is_not_retryable(self) -> None:
        assert not AppError.validation("x").retryable
        assert not AppError.config("x").retryable


class TestFormatErrorDetails:
    """Rendering for the CLI error surface."""

    def test_message_only(self) -> None:
        assert format_error_details(AppError.config("Missing URL")) == (
            "[CONFIG_ERROR] Missing URL"
        )

    def test_status_and_context(self) -> None:
        error = AppError.jira_api("Bad field", 400, context={"errors": {"summary": "req"}})
        assert format_error_details(error) == (
            '[JIRA_API_ERROR] Bad field (Status: 400, Context: {"errors": {"summary": "req"}})'
        )

    def test_context_without_status(self) -> None:
        text = format_error_details(AppError.circuit_breaker_open("jira"))
        assert text.endswith('(Context: {"service": "jira"})')

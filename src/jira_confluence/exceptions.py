"""Centralized error taxonomy for the jira-confluence package.

Every failure that escapes a resilient client or service is an ``AppError``
carrying a machine-readable ``ErrorCode``, so callers can branch on the code
instead of on the exception type.
"""

from __future__ import annotations

import json
from enum import StrEnum
from typing import Any

RETRYABLE_STATUS_CODES = frozenset({429, 502, 503, 504})


class ErrorCode(StrEnum):
    """Machine-readable error categories."""

    CONFIG_ERROR = "CONFIG_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    JIRA_API_ERROR = "JIRA_API_ERROR"
    CONFLUENCE_API_ERROR = "CONFLUENCE_API_ERROR"
    NETWORK_ERROR = "NETWORK_ERROR"
    CIRCUIT_BREAKER_OPEN = "CIRCUIT_BREAKER_OPEN"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


class AppError(Exception):
    """Base exception for all jira-confluence errors.

    Args:
        code: Error category.
        message: Human-readable description.
        status_code: HTTP status of the failed request, when there was one.
        context: Structured details for callers (field errors, service name...).
        cause: The underlying exception. Also chained as ``__cause__``.
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        *,
        status_code: int | None = None,
        context: dict[str, Any] | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code
        self.context: dict[str, Any] = context or {}
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause

    def __repr__(self) -> str:
        return (
            f"AppError(code={self.code.value!r}, message={self.message!r}, "
            f"status_code={self.status_code!r})"
        )

    @property
    def retryable(self) -> bool:
        """Whether repeating the failed operation could succeed."""
        if self.code in (ErrorCode.NETWORK_ERROR, ErrorCode.CIRCUIT_BREAKER_OPEN):
            return True
        if self.code in (ErrorCode.JIRA_API_ERROR, ErrorCode.CONFLUENCE_API_ERROR):
            return self.status_code in RETRYABLE_STATUS_CODES
        return False

    # -----------------------------------------------------------------------
    # Factories
    # -----------------------------------------------------------------------

    @classmethod
    def config(cls, message: str, cause: BaseException | None = None) -> AppError:
        return cls(ErrorCode.CONFIG_ERROR, message, cause=cause)

    @classmethod
    def validation(
        cls, message: str, context: dict[str, Any] | None = None
    ) -> AppError:
        return cls(ErrorCode.VALIDATION_ERROR, message, context=context)

    @classmethod
    def jira_api(
        cls,
        message: str,
        status_code: int | None = None,
        cause: BaseException | None = None,
        context: dict[str, Any] | None = None,
    ) -> AppError:
        return cls(
            ErrorCode.JIRA_API_ERROR,
            message,
            status_code=status_code,
            context=context,
            cause=cause,
        )

    @classmethod
    def confluence_api(
        cls,
        message: str,
        status_code: int | None = None,
        cause: BaseException | None = None,
    ) -> AppError:
        return cls(
            ErrorCode.CONFLUENCE_API_ERROR,
            message,
            status_code=status_code,
            cause=cause,
        )

    @classmethod
    def network(cls, message: str, cause: BaseException | None = None) -> AppError:
        return cls(ErrorCode.NETWORK_ERROR, message, cause=cause)

    @classmethod
    def circuit_breaker_open(cls, service: str) -> AppError:
        return cls(
            ErrorCode.CIRCUIT_BREAKER_OPEN,
            f"Circuit breaker is open for {service}. "
            "Service is temporarily unavailable.",
            context={"service": service},
        )

    @classmethod
    def unknown(cls, message: str, cause: BaseException | None = None) -> AppError:
        return cls(ErrorCode.UNKNOWN_ERROR, message, cause=cause)


def format_error_details(error: AppError) -> str:
    """Render an ``AppError`` as ``[CODE] message (Status: N, Context: {...})``.

    The parenthesised suffix is omitted when there is neither a status nor
    any context.
    """
    details: list[str] = []
    if error.status_code is not None:
        details.append(f"Status: {error.status_code}")
    if error.context:
        details.append(f"Context: {json.dumps(error.context, default=str)}")
    suffix = f" ({', '.join(details)})" if details else ""
    return f"[{error.code.value}] {error.message}{suffix}"

"""Resilient Jira client: circuit breaker around retry around the raw REST calls."""

from __future__ import annotations

import json
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar
from urllib.parse import urlparse

import structlog
from pydantic import BaseModel, ValidationError

from jira_confluence.config import JiraApiVersion, JiraSettings, ResilienceSettings
from jira_confluence.core.circuit_breaker import (
    CircuitBreakerOptions,
    CircuitBreakerRegistry,
    default_registry,
)
from jira_confluence.core.errors import (
    HttpErrorShape,
    NetworkErrorShape,
    get_status_code,
    parse_raw_error,
)
from jira_confluence.core.http import BasicAuth, BearerAuth, Credentials
from jira_confluence.core.retry import (
    RetryOptions,
    is_retryable_error,
    is_retryable_status_code,
    with_retry,
)
from jira_confluence.exceptions import AppError
from jira_confluence.jira.api import JiraRestApi
from jira_confluence.jira.models import (
    JiraCreateIssueResponse,
    JiraField,
    JiraIssue,
    JiraSearchResult,
    JiraTransition,
)
from jira_confluence.logging import register_secret

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

JIRA_SERVICE_NAME = "jira"

T = TypeVar("T")
M = TypeVar("M", bound=BaseModel)


# ---------------------------------------------------------------------------
# Error classification
# ---------------------------------------------------------------------------


def get_jira_error_status(error: BaseException) -> int | None:
    return get_status_code(error)


def is_retryable_jira_error(error: BaseException) -> bool:
    if is_retryable_error(error):
        return True
    return is_retryable_status_code(get_jira_error_status(error))


def _jira_messages(data: Any) -> tuple[list[str], dict[str, Any], list[str]]:
    if not isinstance(data, dict):
        return [], {}, []
    error_messages = [m for m in data.get("errorMessages") or [] if isinstance(m, str)]
    errors = data.get("errors") or {}
    if not isinstance(errors, dict):
        errors = {}
    messages = [*error_messages, *(f"{field}: {msg}" for field, msg in errors.items())]
    return messages, errors, error_messages


def normalize_jira_error(error: BaseException) -> AppError:
    """Convert any error raised by a Jira call into an ``AppError``.

    ``AppError`` instances pass through unchanged. HTTP failures keep the
    structured ``errors`` and ``errorMessages`` in ``context`` so callers can
    react to individual field rejections.
    """
    if isinstance(error, AppError):
        return error

    shape = parse_raw_error(error)
    if isinstance(shape, HttpErrorShape):
        messages, errors, error_messages = _jira_messages(shape.data)
        message = "; ".join(messages) if messages else shape.message or "Jira API error"
        context: dict[str, Any] = {}
        if errors:
            context["errors"] = errors
        if error_messages:
            context["errorMessages"] = error_messages
        return AppError.jira_api(message, shape.status, error, context=context or None)
    if isinstance(shape, NetworkErrorShape):
        detail = shape.message or shape.code or "network failure"
        return AppError.network(f"Jira request failed: {detail}", error)
    return AppError.unknown("Unknown Jira error", error)


# ---------------------------------------------------------------------------
# API version
# ---------------------------------------------------------------------------


def resolve_api_version(
    base_url: str, override: JiraApiVersion | None = None
) -> JiraApiVersion:
    """Jira Cloud (``*.atlassian.net``) speaks v3; everything else defaults to v2."""
    if override:
        return override
    hostname = (urlparse(base_url).hostname or "").lower()
    if hostname.endswith(".atlassian.net"):
        return "3"
    return "2"


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class JiraClient:
    """Every call runs ``breaker(retry(raw_call))`` and raises ``AppError`` on failure.

    Args:
        api: The raw REST layer.
        retry: Retry policy; defaults to 3 attempts, 1 s base, 10 s cap.
        circuit_breaker: Breaker policy; defaults to 5 failures, 30 s reset.
        registry: Circuit registry; defaults to the process-wide one.
    """

    def __init__(
        self,
        api: JiraRestApi,
        retry: RetryOptions | None = None,
        circuit_breaker: CircuitBreakerOptions | None = None,
        registry: CircuitBreakerRegistry | None = None,
    ) -> None:
        self.api = api
        self._retry = retry or RetryOptions(
            max_attempts=3,
            base_delay=1.0,
            max_delay=10.0,
            should_retry=lambda error, attempt: is_retryable_jira_error(error),
        )
        self._breaker = circuit_breaker or CircuitBreakerOptions(
            failure_threshold=5,
            reset_timeout=30.0,
            should_trip=is_retryable_jira_error,
        )
        self._registry = registry or default_registry

    @property
    def registry(self) -> CircuitBreakerRegistry:
        return self._registry

    async def aclose(self) -> None:
        await self.api.aclose()

    async def __aenter__(self) -> JiraClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def _execute(self, operation: Callable[[], Awaitable[T]]) -> T:
        try:
            return await self._registry.call(
                JIRA_SERVICE_NAME,
                lambda: with_retry(operation, self._retry),
                self._breaker,
            )
        except Exception as exc:
            normalized = normalize_jira_error(exc)
            logger.debug(
                "jira_call_failed",
                code=normalized.code.value,
                status=normalized.status_code,
                error=normalized.message,
            )
            if normalized is exc:
                raise
            raise normalized from exc

    @staticmethod
    def _parse(model: type[M], data: Any) -> M:
        try:
            return model.model_validate(data)
        except ValidationError as exc:
            msg = f"Unexpected Jira response for {model.__name__}"
            raise AppError.jira_api(msg, None, exc) from exc

    async def get_issue(
        self,
        issue_id_or_key: str,
        fields: list[str] | None = None,
        expand: list[str] | None = None,
    ) -> JiraIssue:
        data = await self._execute(
            lambda: self.api.get_issue(issue_id_or_key, fields=fields, expand=expand)
        )
        return self._parse(JiraIssue, data)

    async def search(
        self,
        jql: str,
        max_results: int | None = None,
        start_at: int | None = None,
        fields: list[str] | None = None,
        expand: list[str] | None = None,
    ) -> JiraSearchResult:
        """Run a JQL search.

        Raises:
            AppError: ``JIRA_API_ERROR`` with status 401 when Jira answers
                with an HTML page, which usually means the credentials were
                rejected and a login form was served instead.
        """

        async def _search() -> Any:
            result = await self.api.search(
                jql,
                max_results=max_results,
                start_at=start_at,
                fields=fields,
                expand=expand,
            )
            if isinstance(result, str):
                if result.strip().startswith("<"):
                    raise AppError.jira_api(
                        "Jira search returned HTML (likely a login page). "
                        "Verify authentication credentials.",
                        401,
                    )
                try:
                    return json.loads(result)
                except json.JSONDecodeError as exc:
                    raise AppError.jira_api(
                        "Unexpected Jira search response format", None, exc
                    ) from exc
            return result

        data = await self._execute(_search)
        return self._parse(JiraSearchResult, data)

    async def create_issue(self, fields: dict[str, Any]) -> JiraCreateIssueResponse:
        data = await self._execute(lambda: self.api.create_issue(fields))
        return self._parse(JiraCreateIssueResponse, data)

    async def update_issue(
        self,
        issue_id_or_key: str,
        fields: dict[str, Any] | None = None,
        update: dict[str, Any] | None = None,
    ) -> None:
        await self._execute(
            lambda: self.api.edit_issue(issue_id_or_key, fields=fields, update=update)
        )

    async def list_fields(self) -> list[JiraField]:
        data = await self._execute(self.api.get_fields)
        if not isinstance(data, list):
            raise AppError.jira_api("Unexpected Jira field catalog format")
        return [self._parse(JiraField, item) for item in data]

    async def get_transitions(self, issue_id_or_key: str) -> list[JiraTransition]:
        data = await self._execute(lambda: self.api.get_transitions(issue_id_or_key))
        transitions = data.get("transitions") or [] if isinstance(data, dict) else []
        return [self._parse(JiraTransition, item) for item in transitions]

    async def transition_issue(self, issue_id_or_key: str, transition_id: str) -> None:
        await self._execute(
            lambda: self.api.do_transition(issue_id_or_key, transition_id)
        )

    async def transition_to_status(
        self, issue_id_or_key: str, status: str
    ) -> JiraTransition:
        """Apply the transition whose name (case-insensitive) or id matches *status*.

        Raises:
            AppError: ``VALIDATION_ERROR`` listing the available transitions
                when none matches.
        """
        transitions = await self.get_transitions(issue_id_or_key)
        wanted = status.strip().lower()
        match = next(
            (
                transition
                for transition in transitions
                if transition.name.lower() == wanted or transition.id == status.strip()
            ),
            None,
        )
        if match is None:
            available = (
                ", ".join(f'"{t.name}" (id: {t.id})' for t in transitions) or "none"
            )
            raise AppError.validation(
                f'Cannot transition to "{status}". Available transitions: {available}',
                {"issue": issue_id_or_key, "status": status},
            )
        await self.transition_issue(issue_id_or_key, match.id)
        logger.info(
            "issue_transitioned",
            issue=issue_id_or_key,
            transition=match.name,
            transition_id=match.id,
        )
        return match


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


def jira_credentials(settings: JiraSettings) -> Credentials:
    """Pick bearer or basic credentials according to ``auth_mode``.

    Raises:
        AppError: ``CONFIG_ERROR`` when the selected mode is missing values.
    """
    if settings.auth_mode == "bearer":
        if settings.bearer_token is None or not settings.bearer_token.get_secret_value():
            raise AppError.config(
                "Missing Jira bearer token. Set JIRA_BEARER_TOKEN "
                "(or JIRA_ACCESS_TOKEN / JIRA_TOKEN), or switch JIRA_AUTH_MODE to basic."
            )
        register_secret(settings.bearer_token.get_secret_value())
        return BearerAuth(settings.bearer_token.get_secret_value())

    if not settings.email:
        raise AppError.config("Missing JIRA_EMAIL for basic authentication.")
    if settings.api_token is None or not settings.api_token.get_secret_value():
        raise AppError.config(
            "Missing JIRA_API_TOKEN (or JIRA_PASSWORD) for basic authentication."
        )
    register_secret(settings.api_token.get_secret_value())
    return BasicAuth(settings.email, settings.api_token.get_secret_value())


def create_jira_client(
    settings: JiraSettings,
    resilience: ResilienceSettings | None = None,
    registry: CircuitBreakerRegistry | None = None,
    api_version: JiraApiVersion | None = None,
) -> JiraClient:
    """Build a ``JiraClient`` from settings.

    Raises:
        AppError: ``CONFIG_ERROR`` for a missing base URL or credentials.
    """
    if not settings.base_url:
        raise AppError.config(
            "Missing JIRA_BASE_URL environment variable (or legacy JIRA_HOST)."
        )
    credentials = jira_credentials(settings)
    version = resolve_api_version(settings.base_url, settings.api_version or api_version)
    api = JiraRestApi(settings.base_url, credentials, api_version=version)

    retry = None
    breaker = None
    if resilience is not None:
        retry = RetryOptions(
            max_attempts=resilience.max_attempts,
            base_delay=resilience.base_delay,
            max_delay=resilience.max_delay,
            should_retry=lambda error, attempt: is_retryable_jira_error(error),
            attempt_timeout=resilience.attempt_timeout,
        )
        breaker = CircuitBreakerOptions(
            failure_threshold=resilience.failure_threshold,
            reset_timeout=resilience.reset_timeout,
            half_open_max_attempts=resilience.half_open_max_attempts,
            should_trip=is_retryable_jira_error,
        )
    logger.debug("jira_client_created", base_url=settings.base_url, api_version=version)
    return JiraClient(api, retry=retry, circuit_breaker=breaker, registry=registry)


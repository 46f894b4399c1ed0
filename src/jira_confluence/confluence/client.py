"""Resilient Confluence client."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import structlog
from pydantic import BaseModel, ValidationError

from jira_confluence.config import ConfluenceSettings, ResilienceSettings
from jira_confluence.confluence.api import ConfluenceRestApi
from jira_confluence.confluence.models import ConfluencePage, ConfluenceSearchResult
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
from jira_confluence.logging import register_secret

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

CONFLUENCE_SERVICE_NAME = "confluence"

DEFAULT_PAGE_EXPAND = ("body.storage", "version")
DEFAULT_SEARCH_EXPAND = ("version",)

T = TypeVar("T")
M = TypeVar("M", bound=BaseModel)


def get_confluence_error_status(error: BaseException) -> int | None:
    return get_status_code(error)


def is_retryable_confluence_error(error: BaseException) -> bool:
    if is_retryable_error(error):
        return True
    return is_retryable_status_code(get_confluence_error_status(error))


def normalize_confluence_error(error: BaseException) -> AppError:
    """Convert any error raised by a Confluence call into an ``AppError``."""
    if isinstance(error, AppError):
        return error

    shape = parse_raw_error(error)
    if isinstance(shape, HttpErrorShape):
        data = shape.data if isinstance(shape.data, dict) else {}
        message = (
            data.get("message")
            or data.get("reason")
            or shape.message
            or "Confluence API error"
        )
        return AppError.confluence_api(str(message), shape.status, error)
    if isinstance(shape, NetworkErrorShape):
        detail = shape.message or shape.code or "network failure"
        return AppError.network(f"Confluence request failed: {detail}", error)
    return AppError.unknown("Unknown Confluence error", error)


class ConfluenceClient:
    """Every call runs ``breaker(retry(raw_call))`` and raises ``AppError`` on failure."""

    def __init__(
        self,
        api: ConfluenceRestApi,
        retry: RetryOptions | None = None,
        circuit_breaker: CircuitBreakerOptions | None = None,
        registry: CircuitBreakerRegistry | None = None,
    ) -> None:
        self.api = api
        self._retry = retry or RetryOptions(
            max_attempts=3,
            base_delay=1.0,
            max_delay=10.0,
            should_retry=lambda error, attempt: is_retryable_confluence_error(error),
        )
        self._breaker = circuit_breaker or CircuitBreakerOptions(
            failure_threshold=5,
            reset_timeout=30.0,
            should_trip=is_retryable_confluence_error,
        )
        self._registry = registry or default_registry

    async def aclose(self) -> None:
        await self.api.aclose()

    async def __aenter__(self) -> ConfluenceClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def _execute(self, operation: Callable[[], Awaitable[T]]) -> T:
        try:
            return await self._registry.call(
                CONFLUENCE_SERVICE_NAME,
                lambda: with_retry(operation, self._retry),
                self._breaker,
            )
        except Exception as exc:
            normalized = normalize_confluence_error(exc)
            logger.debug(
                "confluence_call_failed",
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
            msg = f"Unexpected Confluence response for {model.__name__}"
            raise AppError.confluence_api(msg, None, exc) from exc

    async def get_page_by_id(
        self, page_id: str, expand: list[str] | None = None
    ) -> ConfluencePage:
        expand = expand if expand is not None else list(DEFAULT_PAGE_EXPAND)
        data = await self._execute(
            lambda: self.api.get_content_by_id(page_id, expand=expand)
        )
        return self._parse(ConfluencePage, data)

    async def get_page_by_title(
        self,
        space_key: str,
        title: str,
        limit: int = 1,
        expand: list[str] | None = None,
    ) -> ConfluencePage | None:
        expand = expand if expand is not None else list(DEFAULT_PAGE_EXPAND)
        data = await self._execute(
            lambda: self.api.get_content(space_key, title, limit=limit, expand=expand)
        )
        result = self._parse(ConfluenceSearchResult, data)
        return result.results[0] if result.results else None

    async def search(
        self,
        cql: str,
        limit: int = 10,
        start: int | None = None,
        expand: list[str] | None = None,
    ) -> ConfluenceSearchResult:
        expand = expand if expand is not None else list(DEFAULT_SEARCH_EXPAND)
        data = await self._execute(
            lambda: self.api.search_content_by_cql(
                cql, limit=limit, start=start, expand=expand
            )
        )
        return self._parse(ConfluenceSearchResult, data)

    async def create_page(
        self,
        space_key: str,
        title: str,
        body: str,
        parent_id: str | None = None,
    ) -> ConfluencePage:
        payload: dict[str, Any] = {
            "type": "page",
            "title": title,
            "space": {"key": space_key},
            "body": {"storage": {"value": body, "representation": "storage"}},
        }
        if parent_id:
            payload["ancestors"] = [{"id": parent_id}]
        data = await self._execute(lambda: self.api.create_content(payload))
        return self._parse(ConfluencePage, data)

    async def update_page(
        self,
        page_id: str,
        current_page: ConfluencePage,
        title: str | None = None,
        body: str | None = None,
        version: int | None = None,
    ) -> ConfluencePage:
        """Publish a new version of a page.

        Title and body default to the current ones; the version number
        defaults to the current number plus one.
        """
        payload: dict[str, Any] = {
            "id": page_id,
            "type": current_page.type,
            "title": title or current_page.title,
            "version": {
                "number": version
                if version is not None
                else current_page.version.number + 1
            },
        }
        if body is not None:
            payload["body"] = {"storage": {"value": body, "representation": "storage"}}
        elif current_page.body is not None:
            payload["body"] = current_page.body
        data = await self._execute(lambda: self.api.update_content(page_id, payload))
        return self._parse(ConfluencePage, data)


def confluence_credentials(settings: ConfluenceSettings) -> Credentials:
    """Pick bearer or basic credentials according to ``auth_mode``.

    Raises:
        AppError: ``CONFIG_ERROR`` when the selected mode is missing values.
    """
    if settings.auth_mode == "bearer":
        if settings.bearer_token is None or not settings.bearer_token.get_secret_value():
            raise AppError.config(
                "Missing Confluence bearer token. Set CONFLUENCE_BEARER_TOKEN "
                "(or CONFLUENCE_ACCESS_TOKEN / CONFLUENCE_TOKEN), "
                "or switch CONFLUENCE_AUTH_MODE to basic."
            )
        register_secret(settings.bearer_token.get_secret_value())
        return BearerAuth(settings.bearer_token.get_secret_value())

    if not settings.email:
        raise AppError.config(
            "Missing CONFLUENCE_EMAIL (or CONFLUENCE_USERNAME) for basic authentication."
        )
    if settings.api_token is None or not settings.api_token.get_secret_value():
        raise AppError.config(
            "Missing CONFLUENCE_API_TOKEN (or CONFLUENCE_PASSWORD / CONFLUENCE_TOKEN) "
            "for basic authentication."
        )
    register_secret(settings.api_token.get_secret_value())
    return BasicAuth(settings.email, settings.api_token.get_secret_value())


def create_confluence_client(
    settings: ConfluenceSettings,
    resilience: ResilienceSettings | None = None,
    registry: CircuitBreakerRegistry | None = None,
) -> ConfluenceClient:
    """Build a ``ConfluenceClient`` from settings.

    Raises:
        AppError: ``CONFIG_ERROR`` for a missing base URL or credentials.
    """
    if not settings.base_url:
        raise AppError.config(
            "Missing CONFLUENCE_BASE_URL environment variable (or CONFLUENCE_HOST)."
        )
    api = ConfluenceRestApi(settings.base_url, confluence_credentials(settings))

    retry = None
    breaker = None
    if resilience is not None:
        retry = RetryOptions(
            max_attempts=resilience.max_attempts,
            base_delay=resilience.base_delay,
            max_delay=resilience.max_delay,
            should_retry=lambda error, attempt: is_retryable_confluence_error(error),
            attempt_timeout=resilience.attempt_timeout,
        )
        breaker = CircuitBreakerOptions(
            failure_threshold=resilience.failure_threshold,
            reset_timeout=resilience.reset_timeout,
            half_open_max_attempts=resilience.half_open_max_attempts,
            should_trip=is_retryable_confluence_error,
        )
    logger.debug("confluence_client_created", base_url=settings.base_url)
    return ConfluenceClient(api, retry=retry, circuit_breaker=breaker, registry=registry)

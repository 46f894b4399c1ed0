"""Configuration: environment / ``.env`` settings and ``jira.config.json``.

Uses pydantic-settings for the Jira and Confluence connection settings. Each
service reads its own prefixed variables (``JIRA_*``, ``CONFLUENCE_*``) and
accepts the legacy names the CLI has always honoured (``JIRA_HOST``,
``JIRA_TOKEN``...). Tool-level knobs for retry, circuit breaking and logging
live under the ``JIRA_CONFLUENCE_`` prefix with ``__`` as nested delimiter.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Annotated, Any, Literal

import structlog
from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    SecretStr,
    ValidationError,
    field_validator,
)
from pydantic.alias_generators import to_camel
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from jira_confluence.exceptions import AppError

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

AuthMode = Literal["bearer", "basic"]
JiraApiVersion = Literal["2", "3"]

JIRA_CONFIG_FILE_NAME = "jira.config.json"


def read_csv_list(value: str | None) -> list[str]:
    """Split a comma-separated value, dropping blanks."""
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def normalize_api_version(value: object) -> JiraApiVersion | None:
    """Accept ``2``, ``3``, ``v2`` or ``v3``; blank means auto-detect."""
    if value is None:
        return None
    text = str(value).strip().lower()
    if not text:
        return None
    if text in ("2", "v2"):
        return "2"
    if text in ("3", "v3"):
        return "3"
    msg = f"Unsupported Jira API version {value!r}. Use 2 or 3."
    raise ValueError(msg)


def _split_csv(value: object) -> object:
    if isinstance(value, str):
        return read_csv_list(value)
    return value


def _lower(value: object) -> object:
    if isinstance(value, str):
        return value.strip().lower()
    return value


# ---------------------------------------------------------------------------
# Connection settings
# ---------------------------------------------------------------------------


class JiraSettings(BaseSettings):
    """Jira connection and field-candidate settings."""

    model_config = SettingsConfigDict(
        env_prefix="JIRA_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    base_url: str | None = Field(
        default=None,
        validation_alias=AliasChoices("JIRA_BASE_URL", "JIRA_HOST"),
    )
    auth_mode: AuthMode = "bearer"
    bearer_token: SecretStr | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "JIRA_BEARER_TOKEN", "JIRA_ACCESS_TOKEN", "JIRA_TOKEN"
        ),
    )
    email: str | None = None
    api_token: SecretStr | None = Field(
        default=None,
        validation_alias=AliasChoices("JIRA_API_TOKEN", "JIRA_PASSWORD"),
    )
    api_version: JiraApiVersion | None = None
    default_project: str | None = None

    acceptance_field: str | None = None
    acceptance_fields: Annotated[list[str], NoDecode] = Field(default_factory=list)
    epic_field: str | None = None
    epic_fields: Annotated[list[str], NoDecode] = Field(default_factory=list)
    epic_string_fields: Annotated[list[str], NoDecode] = Field(default_factory=list)

    config_path: Path = Path(JIRA_CONFIG_FILE_NAME)

    @field_validator("auth_mode", mode="before")
    @classmethod
    def _lower_auth_mode(cls, value: object) -> object:
        return _lower(value)

    @field_validator(
        "acceptance_fields", "epic_fields", "epic_string_fields", mode="before"
    )
    @classmethod
    def _split_lists(cls, value: object) -> object:
        return _split_csv(value)

    @field_validator("api_version", mode="before")
    @classmethod
    def _normalize_api_version(cls, value: object) -> object:
        return normalize_api_version(value)


class ConfluenceSettings(BaseSettings):
    """Confluence connection settings."""

    model_config = SettingsConfigDict(
        env_prefix="CONFLUENCE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    base_url: str | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "CONFLUENCE_BASE_URL", "CONFLUENCE_HOST"
        ),
    )
    auth_mode: AuthMode = "bearer"
    bearer_token: SecretStr | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "CONFLUENCE_BEARER_TOKEN",
            "CONFLUENCE_ACCESS_TOKEN",
            "CONFLUENCE_TOKEN",
        ),
    )
    email: str | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "CONFLUENCE_EMAIL", "CONFLUENCE_USERNAME"
        ),
    )
    api_token: SecretStr | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "CONFLUENCE_API_TOKEN",
            "CONFLUENCE_PASSWORD",
            "CONFLUENCE_TOKEN",
        ),
    )

    @field_validator("auth_mode", mode="before")
    @classmethod
    def _lower_auth_mode(cls, value: object) -> object:
        return _lower(value)


# ---------------------------------------------------------------------------
# Tool settings
# ---------------------------------------------------------------------------


class ResilienceSettings(BaseModel):
    """Retry and circuit-breaker defaults for the API clients."""

    max_attempts: int = Field(default=3, ge=1, le=10)
    base_delay: float = Field(default=1.0, ge=0.0, description="Seconds.")
    max_delay: float = Field(default=10.0, ge=0.0, description="Seconds.")
    attempt_timeout: float | None = Field(
        default=None,
        gt=0.0,
        description="Per-attempt deadline in seconds. None disables it.",
    )
    failure_threshold: int = Field(default=5, ge=1)
    reset_timeout: float = Field(default=30.0, gt=0.0, description="Seconds.")
    half_open_max_attempts: int = Field(default=1, ge=1)


class LoggingSettings(BaseModel):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "WARNING"
    format: Literal["console", "json"] = "console"
    file: Path | None = None


class Settings(BaseSettings):
    """Tool-level settings.

    Resolution order (first wins): init overrides, environment
    (``JIRA_CONFLUENCE_`` prefix), ``.env``, defaults.
    """

    model_config = SettingsConfigDict(
        env_prefix="JIRA_CONFLUENCE_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    debug: bool = Field(
        default=False, validation_alias=AliasChoices("DEBUG")
    )
    resilience: ResilienceSettings = Field(default_factory=ResilienceSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @field_validator("debug", mode="before")
    @classmethod
    def _truthy_debug(cls, value: object) -> object:
        # DEBUG=anything-non-empty turns debug output on
        if isinstance(value, str):
            return value.strip().lower() not in ("", "0", "false", "no", "off")
        return value

    @classmethod
    def load(cls, **overrides: Any) -> Settings:
        """Load settings, applying *overrides* at the highest priority.

        Raises:
            ValidationError: If any setting value fails validation.
        """
        return cls(**overrides)


# ---------------------------------------------------------------------------
# jira.config.json
# ---------------------------------------------------------------------------


class JiraFieldMapping(BaseModel):
    """Explicit logical-name to field-id mapping."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    acceptance: str | None = None
    epic: str | None = None
    story_points: str | None = None
    sprint: str | None = None

    def get(self, logical_name: str) -> str | None:
        return self.model_dump(by_alias=True).get(logical_name)


class JiraFieldConfig(BaseModel):
    """Contents of ``jira.config.json``; all keys optional."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="ignore"
    )

    api_version: JiraApiVersion | None = None
    default_project: str | None = None
    field_mapping: JiraFieldMapping = Field(default_factory=JiraFieldMapping)
    epic_string_fields: list[str] = Field(default_factory=list)
    acceptance_field_candidates: list[str] = Field(default_factory=list)
    epic_field_candidates: list[str] = Field(default_factory=list)


def load_jira_field_config(
    path: Path | None = None, *, required: bool = False
) -> JiraFieldConfig:
    """Load ``jira.config.json``.

    Args:
        path: Config file location; defaults to ``./jira.config.json``.
        required: Raise when the file is missing instead of returning defaults.

    Raises:
        AppError: ``CONFIG_ERROR`` when the file is unreadable, is not valid
            JSON, or does not match the schema.
    """
    config_path = path or Path.cwd() / JIRA_CONFIG_FILE_NAME
    if not config_path.exists():
        if required:
            raise AppError.config(f"Jira config file not found: {config_path}")
        return JiraFieldConfig()

    try:
        raw = config_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise AppError.config(
            f"Failed to read Jira config file: {config_path}", exc
        ) from exc

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise AppError.config(
            f"Invalid JSON in Jira config file: {config_path}", exc
        ) from exc

    try:
        config = JiraFieldConfig.model_validate(data)
    except ValidationError as exc:
        issues = "; ".join(
            f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
            for error in exc.errors()
        )
        raise AppError.config(f"Invalid Jira config: {issues}", exc) from exc

    logger.debug("jira_config_loaded", path=str(config_path))
    return config


def format_validation_error(exc: ValidationError) -> str:
    """Format a Pydantic ValidationError into a user-friendly message."""
    lines: list[str] = []
    for error in exc.errors():
        loc = " -> ".join(str(part) for part in error["loc"])
        msg = error["msg"]
        raw_input = error.get("input")
        if raw_input is not None and not isinstance(raw_input, dict):
            lines.append(f"  {loc}: {msg} (got {raw_input!r})")
        else:
            lines.append(f"  {loc}: {msg}")
    return "Configuration error:\n" + "\n".join(lines)

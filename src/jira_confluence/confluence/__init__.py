"""Confluence client and page service."""

from jira_confluence.confluence.client import (
    ConfluenceClient,
    create_confluence_client,
    is_retryable_confluence_error,
    normalize_confluence_error,
)
from jira_confluence.confluence.pages import PageService

__all__ = [
    "ConfluenceClient",
    "PageService",
    "create_confluence_client",
    "is_retryable_confluence_error",
    "normalize_confluence_error",
]

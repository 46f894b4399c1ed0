"""Jira client, services, and issue-creation fallback."""

from jira_confluence.jira.client import (
    JiraClient,
    create_jira_client,
    is_retryable_jira_error,
    normalize_jira_error,
    resolve_api_version,
)
from jira_confluence.jira.fallback import FieldCandidates, create_issue_with_fallback
from jira_confluence.jira.fields import FieldService
from jira_confluence.jira.issues import IssueService
from jira_confluence.jira.search import SearchService

__all__ = [
    "FieldCandidates",
    "FieldService",
    "IssueService",
    "JiraClient",
    "SearchService",
    "create_issue_with_fallback",
    "create_jira_client",
    "is_retryable_jira_error",
    "normalize_jira_error",
    "resolve_api_version",
]

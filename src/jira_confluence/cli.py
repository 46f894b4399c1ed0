"""Typer CLI entry point for jira-confluence."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Coroutine
from pathlib import Path
from typing import Annotated, Any, TypeVar

import structlog
import typer
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel

from jira_confluence import __version__
from jira_confluence.config import (
    ConfluenceSettings,
    JiraFieldConfig,
    JiraSettings,
    Settings,
    format_validation_error,
    load_jira_field_config,
    read_csv_list,
)
from jira_confluence.confluence.client import ConfluenceClient, create_confluence_client
from jira_confluence.confluence.models import ConfluencePage
from jira_confluence.confluence.pages import PageService
from jira_confluence.exceptions import AppError, format_error_details
from jira_confluence.jira.client import JiraClient, create_jira_client
from jira_confluence.jira.fallback import FieldCandidates, create_issue_with_fallback
from jira_confluence.jira.fields import FieldService
from jira_confluence.jira.formatting import (
    build_clean_issue,
    format_issue_for_llm,
    merge_labels,
    normalize_multiline,
    normalize_text,
    parse_fields,
)
from jira_confluence.jira.inputs import load_issue_from_json
from jira_confluence.jira.issues import IssueService
from jira_confluence.jira.models import UpdateIssueInput
from jira_confluence.jira.search import SearchService
from jira_confluence.logging import configure_logging

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

console = Console()
err_console = Console(stderr=True)

app = typer.Typer(
    name="jira-confluence",
    help="Create, read, update, and search Jira issues and Confluence pages.",
    no_args_is_help=True,
)

T = TypeVar("T")

VerboseOption = Annotated[
    bool,
    typer.Option("--verbose", "-v", help="Enable verbose logging."),
]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _load_settings(**overrides: Any) -> Settings:
    """Load settings with error handling and user-friendly messages."""
    try:
        return Settings.load(**overrides)
    except ValidationError as exc:
        err_console.print(
            Panel(
                escape(format_validation_error(exc)),
                title="Configuration Error",
                border_style="red",
            )
        )
        raise typer.Exit(code=1) from exc


def _setup(command: str, verbose: bool) -> Settings:
    """Load tool settings and configure logging for *command*."""
    settings = _load_settings()
    level = "DEBUG" if verbose or settings.debug else settings.logging.level
    configure_logging(
        level=level,
        fmt=settings.logging.format,
        log_file=settings.logging.file,
        command=command,
    )
    return settings


def _run(coro: Coroutine[Any, Any, T], settings: Settings) -> T:
    """Run *coro*, rendering any ``AppError`` and exiting with status 1."""
    try:
        return asyncio.run(coro)
    except AppError as exc:
        err_console.print(format_error_details(exc), style="red", markup=False)
        if settings.debug and exc.__cause__ is not None:
            err_console.print(f"Caused by: {exc.__cause__!r}", style="dim", markup=False)
        raise typer.Exit(code=1) from exc


def _jira_settings() -> JiraSettings:
    try:
        return JiraSettings()
    except ValidationError as exc:
        raise AppError.config(format_validation_error(exc), exc) from exc


def _confluence_settings() -> ConfluenceSettings:
    try:
        return ConfluenceSettings()
    except ValidationError as exc:
        raise AppError.config(format_validation_error(exc), exc) from exc


def _jira_client(jira: JiraSettings, settings: Settings) -> JiraClient:
    return create_jira_client(jira, resilience=settings.resilience)


def _confluence_client(
    confluence: ConfluenceSettings, settings: Settings
) -> ConfluenceClient:
    return create_confluence_client(confluence, resilience=settings.resilience)


def _with_field_overrides(
    config: JiraFieldConfig,
    acceptance_field: str | None = None,
    epic_field: str | None = None,
) -> JiraFieldConfig:
    """Pin the acceptance/epic mapping to ids given on the command line."""
    updates = {
        name: value
        for name, value in (("acceptance", acceptance_field), ("epic", epic_field))
        if value
    }
    if not updates:
        return config
    mapping = config.field_mapping.model_copy(update=updates)
    return config.model_copy(update={"field_mapping": mapping})


def _print_json(payload: Any) -> None:
    console.print(
        json.dumps(payload, indent=2, default=str),
        markup=False,
        highlight=False,
        soft_wrap=True,
    )


def _read_body(body: str | None, body_file: Path | None) -> str | None:
    if body and body_file:
        raise AppError.validation("Use either --body or --body-file, not both")
    if body:
        return body
    if body_file:
        try:
            return body_file.read_text(encoding="utf-8")
        except OSError as exc:
            raise AppError.config(f"Failed to read body file: {body_file}", exc) from exc
    return None


def _version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold]jira-confluence[/bold] {__version__}")
        raise typer.Exit


@app.callback()
def common(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit.",
            callback=_version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """jira-confluence global options."""


# ---------------------------------------------------------------------------
# Jira commands
# ---------------------------------------------------------------------------


@app.command("jira-create")
def jira_create(
    project: Annotated[str | None, typer.Option(help="Jira project key.")] = None,
    issue_type: Annotated[
        str | None, typer.Option("--type", help="Issue type name.")
    ] = None,
    summary: Annotated[str | None, typer.Option(help="Issue summary.")] = None,
    description: Annotated[str | None, typer.Option(help="Issue description.")] = None,
    assignee: Annotated[str | None, typer.Option(help="Assignee username.")] = None,
    priority: Annotated[str | None, typer.Option(help="Issue priority.")] = None,
    labels: Annotated[str | None, typer.Option(help="Comma-separated labels.")] = None,
    epic: Annotated[str | None, typer.Option(help="Epic key to link.")] = None,
    acceptance: Annotated[
        str | None, typer.Option(help="Acceptance criteria text.")
    ] = None,
    acceptance_field: Annotated[
        str | None, typer.Option(help="Custom field id for acceptance criteria.")
    ] = None,
    epic_field: Annotated[
        str | None, typer.Option(help="Custom field id for linking epics.")
    ] = None,
    fields: Annotated[
        str | None, typer.Option(help="Additional fields as a JSON object.")
    ] = None,
    from_json: Annotated[
        Path | None, typer.Option(help="Load issue details from a JSON file.")
    ] = None,
    verbose: VerboseOption = False,
) -> None:
    """Create a Jira issue."""
    settings = _setup("jira-create", verbose)

    async def _create() -> str:
        jira = _jira_settings()
        config = load_jira_field_config(jira.config_path)
        extra_fields = parse_fields(fields, "fields JSON")

        if from_json is not None:
            issue = load_issue_from_json(from_json, "create")
            data = {
                "project": normalize_text(project) or issue.project,
                "issue_type": normalize_text(issue_type) or issue.issue_type,
                "summary": normalize_text(summary) or issue.summary,
                "description": description if description is not None else issue.description,
                "assignee": normalize_text(assignee) or issue.assignee,
                "priority": normalize_text(priority) or issue.priority,
                "labels": merge_labels(issue.labels, labels),
                "acceptance": normalize_multiline(
                    acceptance if acceptance is not None else issue.acceptance
                ),
                "epic": normalize_text(epic) or issue.epic,
                "story_points": issue.story_points,
                "custom_fields": {**(issue.custom_fields or {}), **extra_fields} or None,
            }
            config = _with_field_overrides(
                config,
                normalize_text(acceptance_field) or issue.acceptance_field,
                normalize_text(epic_field) or issue.epic_field,
            )
            async with _jira_client(jira, settings) as client:
                service = IssueService(client, FieldService(config, client))
                created = await service.create_issue(data)
            return created.key

        project_key = normalize_text(project) or jira.default_project or config.default_project
        type_name = normalize_text(issue_type)
        summary_text = normalize_text(summary)
        missing = [
            flag
            for flag, value in (
                ("--project", project_key),
                ("--type", type_name),
                ("--summary", summary_text),
            )
            if not value
        ]
        if missing:
            raise AppError.validation(
                f"Missing required options: {', '.join(missing)} "
                "(or use --from-json <path>)."
            )

        base_fields: dict[str, Any] = {
            "project": {"key": project_key},
            "issuetype": {"name": type_name},
            "summary": summary_text,
        }
        if description:
            base_fields["description"] = description
        if normalize_text(assignee):
            base_fields["assignee"] = {"name": normalize_text(assignee)}
        if normalize_text(priority):
            base_fields["priority"] = {"name": normalize_text(priority)}
        label_list = merge_labels(labels)
        if label_list:
            base_fields["labels"] = label_list
        base_fields.update(extra_fields)

        candidates = FieldCandidates.from_settings(
            jira,
            config,
            acceptance_preference=acceptance_field,
            epic_preference=epic_field,
        )
        async with _jira_client(jira, settings) as client:
            created = await create_issue_with_fallback(
                client,
                base_fields,
                candidates,
                acceptance=normalize_multiline(acceptance),
                epic_key=normalize_text(epic),
            )
        return created.key

    key = _run(_create(), settings)
    console.print(f"Created issue [bold]{escape(key)}[/bold]")


@app.command("jira-search")
def jira_search(
    jql: Annotated[str | None, typer.Option(help="Explicit JQL query.")] = None,
    text: Annotated[
        str | None, typer.Option(help="Simple text search (wrapped into JQL).")
    ] = None,
    limit: Annotated[int, typer.Option(min=1, help="Maximum results.")] = 10,
    verbose: VerboseOption = False,
) -> None:
    """Search Jira issues by JQL or free text."""
    settings = _setup("jira-search", verbose)

    async def _search() -> list[tuple[str, str]]:
        if not jql and not text:
            raise AppError.validation("Provide either --jql or --text for search")
        jira = _jira_settings()
        async with _jira_client(jira, settings) as client:
            service = SearchService(client, base_url=jira.base_url)
            if jql:
                result = await service.search_by_jql(jql, limit=limit)
            else:
                result = await service.search_by_text(text or "", limit=limit)
        return [(issue.key, str(issue.fields.get("summary") or "")) for issue in result.issues]

    rows = _run(_search(), settings)
    if not rows:
        console.print("No issues found.")
        return
    for key, issue_summary in rows:
        console.print(f"{key}: {issue_summary}", markup=False, highlight=False)


@app.command("jira-update")
def jira_update(
    issue_key: Annotated[str, typer.Argument(help="Issue id or key.")],
    summary: Annotated[str | None, typer.Option(help="New summary.")] = None,
    description: Annotated[str | None, typer.Option(help="New description.")] = None,
    fields: Annotated[
        str | None, typer.Option(help="Arbitrary fields as a JSON object.")
    ] = None,
    acceptance: Annotated[
        str | None,
        typer.Option(help="Acceptance criteria text (table generated automatically)."),
    ] = None,
    acceptance_field: Annotated[
        str | None, typer.Option(help="Custom field id for acceptance criteria.")
    ] = None,
    from_json: Annotated[
        Path | None, typer.Option(help="Load updates from a JSON file.")
    ] = None,
    verbose: VerboseOption = False,
) -> None:
    """Update fields of an existing Jira issue."""
    settings = _setup("jira-update", verbose)

    async def _update() -> None:
        extra_fields = parse_fields(fields, "fields JSON")
        if from_json is not None:
            issue = load_issue_from_json(from_json, "update")
            new_summary = normalize_text(summary) or issue.summary
            new_description = description if description is not None else issue.description
            new_acceptance = normalize_multiline(
                acceptance if acceptance is not None else issue.acceptance
            )
            custom_fields = {**(issue.custom_fields or {}), **extra_fields}
            field_override = normalize_text(acceptance_field) or issue.acceptance_field
        else:
            new_summary = normalize_text(summary)
            new_description = description
            new_acceptance = normalize_multiline(acceptance)
            custom_fields = extra_fields
            field_override = normalize_text(acceptance_field)

        if (
            not new_summary
            and new_description is None
            and not new_acceptance
            and not custom_fields
        ):
            raise AppError.validation(
                "Nothing to update. Provide --summary, --description, --acceptance, "
                "--fields, or use --from-json."
            )

        jira = _jira_settings()
        config = load_jira_field_config(jira.config_path)
        has_env_candidates = bool(jira.acceptance_field or jira.acceptance_fields)
        if (
            new_acceptance
            and not field_override
            and config.field_mapping.acceptance is None
            and has_env_candidates
        ):
            field_override = FieldCandidates.from_settings(jira, config).acceptance[0]
        config = _with_field_overrides(config, field_override)

        data = UpdateIssueInput(
            summary=new_summary,
            description=new_description,
            acceptance=new_acceptance,
            custom_fields=custom_fields or None,
        )
        async with _jira_client(jira, settings) as client:
            service = IssueService(client, FieldService(config, client))
            await service.update_issue(issue_key, data)

    _run(_update(), settings)
    console.print(f"Updated issue [bold]{escape(issue_key)}[/bold]")


@app.command("jira-get")
def jira_get(
    issue_key: Annotated[str, typer.Argument(help="Issue id or key.")],
    fields: Annotated[
        str | None, typer.Option(help="Comma-separated list of fields to include.")
    ] = None,
    expand: Annotated[
        str | None, typer.Option(help="Comma-separated list of entities to expand.")
    ] = None,
    llm: Annotated[
        bool, typer.Option("--llm", help="Output a condensed summary for LLM consumption.")
    ] = False,
    as_json: Annotated[
        bool, typer.Option("--json", help="Output the issue as JSON.")
    ] = False,
    raw: Annotated[
        bool, typer.Option("--raw", help="With --json, output the raw Jira response.")
    ] = False,
    verbose: VerboseOption = False,
) -> None:
    """Show a Jira issue."""
    settings = _setup("jira-get", verbose)

    async def _get() -> None:
        if llm and as_json:
            raise AppError.validation("--llm cannot be combined with --json")
        if raw and not as_json:
            raise AppError.validation("--raw requires --json")

        jira = _jira_settings()
        expand_values = dict.fromkeys(read_csv_list(expand))
        expand_values.update(dict.fromkeys(["names", "renderedFields"]))
        async with _jira_client(jira, settings) as client:
            issue = await client.get_issue(
                issue_key,
                fields=read_csv_list(fields) or None,
                expand=list(expand_values),
            )
        clean = build_clean_issue(issue, jira.base_url)

        if llm:
            console.print(format_issue_for_llm(clean), markup=False, highlight=False)
            return
        if as_json:
            _print_json(
                issue.model_dump(by_alias=True, exclude_none=True)
                if raw
                else clean.to_json_dict()
            )
            return

        lines = [
            " | ".join(
                [
                    clean.key or issue.key or issue_key,
                    clean.issue_type or "Issue",
                    clean.summary or "(no summary)",
                ]
            ),
            f"Status: {clean.status or 'Unknown'}",
            f"Reporter: {clean.reporter or 'Unknown'}",
            f"Assignee: {clean.assignee or 'Unassigned'}",
        ]
        if clean.priority:
            lines.append(f"Priority: {clean.priority}")
        if clean.story_points is not None:
            lines.append(f"Story Points: {clean.story_points:g}")
        if clean.epic:
            epic_line = " - ".join(part for part in (clean.epic.key, clean.epic.summary) if part)
            if epic_line:
                lines.append(f"Epic: {epic_line}")
        if clean.url:
            lines.append(f"URL: {clean.url}")
        for line in lines:
            console.print(line, markup=False, highlight=False)

    _run(_get(), settings)


@app.command("jira-transition")
def jira_transition(
    issue_key: Annotated[str, typer.Argument(help="Issue id or key.")],
    status: Annotated[
        str,
        typer.Option(help='Target status or transition name (e.g. "Done").'),
    ],
    verbose: VerboseOption = False,
) -> None:
    """Move a Jira issue to another status."""
    settings = _setup("jira-transition", verbose)

    async def _transition() -> str:
        jira = _jira_settings()
        async with _jira_client(jira, settings) as client:
            transition = await client.transition_to_status(issue_key, status)
        return transition.name

    name = _run(_transition(), settings)
    console.print(f'Transitioned {escape(issue_key)} to "{escape(name)}"')


# ---------------------------------------------------------------------------
# Confluence commands
# ---------------------------------------------------------------------------


async def _fetch_page(
    service: PageService,
    page_id: str | None,
    space: str | None,
    title: str | None,
) -> ConfluencePage:
    if page_id:
        return await service.read_page(page_id)
    if space and title:
        page = await service.read_page_by_title(space, title)
        if page is None:
            raise AppError.validation(
                f'No page found for space {space} with title "{title}"',
                {"space": space, "title": title},
            )
        return page
    raise AppError.validation("Provide either --id or combination of --space and --title")


@app.command("confluence-read")
def confluence_read(
    page_id: Annotated[str | None, typer.Option("--id", help="Page id.")] = None,
    space: Annotated[str | None, typer.Option(help="Space key.")] = None,
    title: Annotated[str | None, typer.Option(help="Page title.")] = None,
    verbose: VerboseOption = False,
) -> None:
    """Print a Confluence page as JSON."""
    settings = _setup("confluence-read", verbose)

    async def _read() -> ConfluencePage:
        confluence = _confluence_settings()
        async with _confluence_client(confluence, settings) as client:
            return await _fetch_page(PageService(client), page_id, space, title)

    page = _run(_read(), settings)
    _print_json(page.model_dump(by_alias=True, exclude_none=True))


@app.command("confluence-update")
def confluence_update(
    page_id: Annotated[str, typer.Option("--id", help="Page id.")],
    title: Annotated[str | None, typer.Option(help="New title.")] = None,
    body: Annotated[str | None, typer.Option(help="Storage-format body.")] = None,
    body_file: Annotated[
        Path | None, typer.Option(help="File containing the storage-format body.")
    ] = None,
    verbose: VerboseOption = False,
) -> None:
    """Publish a new version of a Confluence page."""
    settings = _setup("confluence-update", verbose)

    async def _update() -> str:
        new_body = _read_body(body, body_file)
        confluence = _confluence_settings()
        async with _confluence_client(confluence, settings) as client:
            page = await PageService(client).update_page(page_id, title=title, body=new_body)
        return page.id

    updated_id = _run(_update(), settings)
    console.print(f"Updated Confluence page {escape(updated_id)}")


@app.command("confluence-create")
def confluence_create(
    space: Annotated[str, typer.Option(help="Space key.")],
    title: Annotated[str, typer.Option(help="Page title.")],
    body: Annotated[str | None, typer.Option(help="Storage-format body.")] = None,
    body_file: Annotated[
        Path | None, typer.Option(help="File containing the storage-format body.")
    ] = None,
    parent: Annotated[str | None, typer.Option(help="Parent page id.")] = None,
    verbose: VerboseOption = False,
) -> None:
    """Create a Confluence page."""
    settings = _setup("confluence-create", verbose)

    async def _create() -> str:
        page_body = _read_body(body, body_file)
        if not page_body:
            raise AppError.validation(
                "Creating a Confluence page requires --body or --body-file"
            )
        confluence = _confluence_settings()
        async with _confluence_client(confluence, settings) as client:
            page = await PageService(client).create_page(
                space, title, page_body, parent_id=parent
            )
        return page.id

    created_id = _run(_create(), settings)
    console.print(f"Created Confluence page {escape(created_id)}")


@app.command("confluence-search")
def confluence_search(
    cql: Annotated[str | None, typer.Option(help="Explicit CQL query.")] = None,
    text: Annotated[
        str | None, typer.Option(help="Simple text search (wrapped into CQL).")
    ] = None,
    space: Annotated[
        str | None, typer.Option(help="Limit a text search to one space.")
    ] = None,
    limit: Annotated[int, typer.Option(min=1, help="Maximum results.")] = 10,
    read: Annotated[
        bool, typer.Option("--read", help="Print the first matching page in full.")
    ] = False,
    verbose: VerboseOption = False,
) -> None:
    """Search Confluence pages by CQL or free text."""
    settings = _setup("confluence-search", verbose)

    async def _search() -> list[ConfluencePage]:
        if not cql and not text:
            raise AppError.validation("Provide either --cql or --text for search")
        confluence = _confluence_settings()
        async with _confluence_client(confluence, settings) as client:
            service = PageService(client)
            if cql:
                result = await service.search_pages(cql, limit=limit)
            else:
                result = await service.search_by_text(text or "", space_key=space, limit=limit)
            if read and result.results:
                return [await service.read_page(result.results[0].id)]
            return result.results

    pages = _run(_search(), settings)
    if not pages:
        console.print("No pages found.")
        return
    if read:
        _print_json(pages[0].model_dump(by_alias=True, exclude_none=True))
        return
    for page in pages:
        console.print(f"{page.id}: {page.title}", markup=False, highlight=False)


def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()

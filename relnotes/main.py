"""relnotes CLI — all commands."""

import asyncio
import json
from collections.abc import Awaitable
from pathlib import Path
from typing import Annotated, Any, TypeVar

import tomlkit
import typer
from rich import print as rprint
from rich.table import Table

from relnotes.generators.base import GenerationError, GeneratorConfigError
from relnotes.generators.factory import get_text_generator
from relnotes.logging_config import configure_logging
from relnotes.models import (
    DateRange,
    GenerationOptions,
    GenerationRequest,
    IssueFilters,
    LinearIssueLite,
    Sections,
)
from relnotes.pipeline import ReleaseNotesError, build_generation_prompts, generate_release_notes
from relnotes.prompt_engine import CONTENT_TYPES, generate_professional_system_prompt
from relnotes.providers.linear import LinearAPIClient, LinearAPIError
from relnotes.release_service import LinearReleaseService
from relnotes.settings import CONFIG_PATH, RelnotesSettings, _list_profiles, get_settings
from relnotes.validation import (
    format_validation_errors,
    format_validation_warnings,
    validate_complete_wizard_data,
)

T = TypeVar("T")

app = typer.Typer(help="relnotes: release notes from completed Linear issues", no_args_is_help=True)

ProfileOpt = Annotated[
    str | None,
    typer.Option("--profile", "-p", help="Profile name from ~/.config/relnotes/config.toml"),
]
TeamOpt = Annotated[
    list[str] | None,
    typer.Option("--team", "-t", help="Team ID (repeatable). Defaults to linear_team_ids from the profile"),
]
ProjectOpt = Annotated[list[str] | None, typer.Option("--project", help="Project ID (repeatable)")]
FromOpt = Annotated[str | None, typer.Option("--from", help="Start date, ISO 8601")]
ToOpt = Annotated[str | None, typer.Option("--to", help="End date, ISO 8601")]
StateOpt = Annotated[list[str] | None, typer.Option("--state", help="Keep only these state types (repeatable)")]
LabelOpt = Annotated[list[str] | None, typer.Option("--label", help="Keep issues with any of these labels")]
MinPriorityOpt = Annotated[int | None, typer.Option("--min-priority", help="Minimum priority (0-5)")]
VersionOpt = Annotated[str | None, typer.Option("--version", help="Release version, e.g. v2.1.0")]
ReleaseDateOpt = Annotated[str | None, typer.Option("--release-date", help="Release date shown in the notes")]
InstructionsOpt = Annotated[str | None, typer.Option("--instructions", help="Additional instructions for the writer")]
TemplateOpt = Annotated[
    Path | None,
    typer.Option("--template-file", help="Template: a JSON template record, or a plain-text structure hint"),
]

_SECTION_TITLES = {
    "features": "Features",
    "improvements": "Improvements",
    "bugfixes": "Bug Fixes",
    "breaking": "Breaking Changes",
}


@app.callback()
def main(ctx: typer.Context, profile: ProfileOpt = None) -> None:
    """Configure logging from the active profile before any command runs."""
    ctx.obj = {"profile": profile}
    settings = get_settings(profile=profile, require_linear=False)
    configure_logging(settings.log_level, settings.log_format)


# ---------------------------------------------------------------------------
# Composition helpers
# ---------------------------------------------------------------------------


def _profile(ctx: typer.Context) -> str | None:
    return (ctx.obj or {}).get("profile")


def _run(coro: Awaitable[T]) -> T:
    """Run a coroutine, turning domain failures into a red message and exit code 1."""
    try:
        return asyncio.run(coro)  # type: ignore[arg-type]
    except LinearAPIError as exc:
        rprint(f"[red]Linear API error ({exc.status}): {exc}[/red]")
        raise typer.Exit(1) from exc
    except (ReleaseNotesError, GenerationError, GeneratorConfigError) as exc:
        rprint(f"[red]{exc}[/red]")
        raise typer.Exit(1) from exc
    except TimeoutError as exc:
        rprint("[red]Release notes generation timed out[/red]")
        raise typer.Exit(1) from exc


def _token(settings: RelnotesSettings) -> str:
    if settings.linear_api_key is None:
        rprint("[red]Missing Linear credentials. Set RELNOTES_LINEAR_API_KEY or linear_api_key in your profile.[/red]")
        raise typer.Exit(1)
    return settings.linear_api_key.get_secret_value()


def _load_template(path: Path | None) -> str | dict | None:
    if path is None:
        return None
    text = path.read_text()
    if path.suffix == ".json":
        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            rprint(f"[red]Template file {path} is not valid JSON: {exc}[/red]")
            raise typer.Exit(1) from exc
    return text


def _build_request(
    settings: RelnotesSettings,
    team: list[str] | None,
    project: list[str] | None,
    date_from: str | None,
    date_to: str | None,
    state: list[str] | None,
    label: list[str] | None,
    min_priority: int | None,
    **extra: Any,
) -> GenerationRequest:
    teams = team or settings.linear_team_ids
    if not teams:
        rprint(
            "[red]No team specified. Use --team or set linear_team_ids in your config profile. "
            "Run 'relnotes list-teams' to see available teams.[/red]"
        )
        raise typer.Exit(1)

    filters = None
    if state or label or min_priority is not None:
        filters = IssueFilters(state_types=state or [], labels=label or [], min_priority=min_priority)

    return GenerationRequest(
        teams=teams,
        projects=project or [],
        date_range=DateRange(from_=date_from, to=date_to) if date_from or date_to else None,
        issue_filters=filters,
        page_size=settings.linear_page_size,
        **extra,
    )


def _issue_table(title: str, issues: list[LinearIssueLite]) -> Table:
    table = Table(title=title)
    table.add_column("ID", style="cyan")
    table.add_column("Title")
    table.add_column("Labels")
    table.add_column("Pri")
    table.add_column("Completed", style="dim")
    for issue in issues:
        table.add_row(
            issue.identifier,
            issue.title,
            ", ".join(issue.labels) or "—",
            str(issue.priority) if issue.priority is not None else "—",
            issue.completed_at or "—",
        )
    return table


def _print_sections(sections: Sections) -> None:
    for name, title in _SECTION_TITLES.items():
        issues = getattr(sections, name)
        if issues:
            rprint(_issue_table(f"{title} ({len(issues)})", issues))
    rprint(f"[bold]{sections.total()}[/bold] issues in total")


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.command("test-connection")
def test_connection(ctx: typer.Context) -> None:
    """Check the Linear API key by fetching the current user."""
    settings = get_settings(profile=_profile(ctx))

    async def check():
        async with LinearAPIClient() as client:
            return await client.test_connection(_token(settings))

    result = _run(check())
    if not result.success:
        rprint(f"[red]Connection failed: {result.error}[/red]")
        raise typer.Exit(1)

    user = result.user or {}
    org = result.organization or {}
    rprint(f"[green]✓[/green] Connected as [bold]{user.get('name') or user.get('email')}[/bold]")
    if org:
        rprint(f"  Organization: {org.get('name')} ({org.get('urlKey') or org.get('id')})")


@app.command("list-teams")
def list_teams(ctx: typer.Context) -> None:
    """List the teams visible to the API key."""
    settings = get_settings(profile=_profile(ctx))

    async def fetch():
        async with LinearAPIClient() as client:
            return await client.get_teams(_token(settings))

    teams = _run(fetch()) or {}

    table = Table(title="Teams")
    table.add_column("Key", style="cyan")
    table.add_column("Name")
    table.add_column("ID", style="dim")
    for t in teams.get("nodes") or []:
        table.add_row(t.get("key") or "", t.get("name") or "", t.get("id") or "")

    rprint(table)


@app.command("list-projects")
def list_projects(ctx: typer.Context) -> None:
    """List projects in the workspace."""
    settings = get_settings(profile=_profile(ctx))

    async def fetch():
        async with LinearAPIClient() as client:
            return await client.get_projects(_token(settings))

    projects = _run(fetch()) or {}

    table = Table(title="Projects")
    table.add_column("Name", style="cyan")
    table.add_column("State")
    table.add_column("Progress")
    table.add_column("ID", style="dim")
    for p in projects.get("nodes") or []:
        progress = p.get("progress")
        table.add_row(
            p.get("name") or "",
            p.get("state") or "—",
            f"{progress:.0%}" if isinstance(progress, int | float) else "—",
            p.get("id") or "",
        )

    rprint(table)


@app.command("preview")
def preview(
    ctx: typer.Context,
    team: TeamOpt = None,
    project: ProjectOpt = None,
    date_from: FromOpt = None,
    date_to: ToOpt = None,
    state: StateOpt = None,
    label: LabelOpt = None,
    min_priority: MinPriorityOpt = None,
) -> None:
    """Aggregate completed issues and show how they would be categorized."""
    settings = get_settings(profile=_profile(ctx))
    request = _build_request(settings, team, project, date_from, date_to, state, label, min_priority)

    async def collect():
        async with LinearAPIClient() as client:
            service = LinearReleaseService(_token(settings), client)
            prepared = await build_generation_prompts(
                service,
                request,
                organization=settings.organization,
                ai_context=settings.ai_context,
            )
            return prepared.sections

    _print_sections(_run(collect()))


@app.command("prompt")
def prompt_cmd(
    ctx: typer.Context,
    team: TeamOpt = None,
    project: ProjectOpt = None,
    date_from: FromOpt = None,
    date_to: ToOpt = None,
    state: StateOpt = None,
    label: LabelOpt = None,
    min_priority: MinPriorityOpt = None,
    version: VersionOpt = None,
    release_date: ReleaseDateOpt = None,
    instructions: InstructionsOpt = None,
    template_file: TemplateOpt = None,
) -> None:
    """Print the system and user prompts without calling a model."""
    settings = get_settings(profile=_profile(ctx))
    request = _build_request(
        settings,
        team,
        project,
        date_from,
        date_to,
        state,
        label,
        min_priority,
        version=version,
        release_date=release_date,
        instructions=instructions,
        template=_load_template(template_file),
    )

    async def build():
        async with LinearAPIClient() as client:
            service = LinearReleaseService(_token(settings), client)
            return await build_generation_prompts(
                service,
                request,
                organization=settings.organization,
                ai_context=settings.ai_context,
            )

    prepared = _run(build())
    rprint("[bold]System prompt[/bold]")
    typer.echo(prepared.prompts.system_prompt)
    rprint("\n[bold]User prompt[/bold]")
    typer.echo(prepared.prompts.user_prompt)


@app.command("generate")
def generate(
    ctx: typer.Context,
    team: TeamOpt = None,
    project: ProjectOpt = None,
    date_from: FromOpt = None,
    date_to: ToOpt = None,
    state: StateOpt = None,
    label: LabelOpt = None,
    min_priority: MinPriorityOpt = None,
    version: VersionOpt = None,
    release_date: ReleaseDateOpt = None,
    instructions: InstructionsOpt = None,
    template_file: TemplateOpt = None,
    issue: Annotated[
        list[str] | None,
        typer.Option("--issue", "-i", help="Only include these issues (identifier or id, repeatable)"),
    ] = None,
    output: Annotated[
        Path | None,
        typer.Option("--output", "-o", help="Write the markdown draft to a file instead of stdout"),
    ] = None,
) -> None:
    """Generate a release-notes draft from completed Linear issues."""
    settings = get_settings(profile=_profile(ctx))
    request = _build_request(
        settings,
        team,
        project,
        date_from,
        date_to,
        state,
        label,
        min_priority,
        version=version,
        release_date=release_date,
        instructions=instructions,
        template=_load_template(template_file),
        selected_issues=issue or [],
    )
    try:
        generator = get_text_generator(settings)
    except GeneratorConfigError as exc:
        rprint(f"[red]{exc}[/red]")
        raise typer.Exit(1) from exc

    async def run():
        async with LinearAPIClient() as client:
            service = LinearReleaseService(_token(settings), client)
            return await generate_release_notes(
                service,
                generator,
                request,
                organization=settings.organization,
                ai_context=settings.ai_context,
                options=GenerationOptions(
                    max_tokens=settings.generation_max_tokens,
                    temperature=settings.generation_temperature,
                ),
                timeout=settings.generation_timeout,
            )

    draft = _run(run())

    if output:
        output.write_text(draft.content_markdown)
        rprint(f"[green]✓[/green] Wrote [bold]{draft.title}[/bold] to {output}")
        rprint(f"  slug: {draft.slug}  sources: {', '.join(draft.source_ticket_ids)}")
    else:
        typer.echo(draft.content_markdown)


@app.command("system-prompt")
def system_prompt(
    ctx: typer.Context,
    content_type: Annotated[
        str,
        typer.Option("--content-type", "-c", help=f"One of: {', '.join(CONTENT_TYPES)}"),
    ] = "release_notes",
) -> None:
    """Render the professional system prompt for the active profile's organization."""
    settings = get_settings(profile=_profile(ctx), require_linear=False)
    typer.echo(generate_professional_system_prompt(settings.organization, settings.ai_context, content_type))


@app.command("validate-wizard")
def validate_wizard(
    file: Annotated[Path, typer.Argument(help="JSON file with repository, data_sources, template, ...")],
) -> None:
    """Validate a release-notes wizard payload."""
    try:
        payload = json.loads(file.read_text())
    except (OSError, json.JSONDecodeError) as exc:
        rprint(f"[red]Could not read {file}: {exc}[/red]")
        raise typer.Exit(1) from exc
    if not isinstance(payload, dict):
        rprint(f"[red]{file} must contain a JSON object[/red]")
        raise typer.Exit(1)

    result = validate_complete_wizard_data(payload)
    if result.warnings:
        rprint(f"[yellow]{format_validation_warnings(result.warnings)}[/yellow]")
    if not result.is_valid:
        rprint(f"[red]{format_validation_errors(result.errors)}[/red]")
        raise typer.Exit(1)
    rprint("[green]✓[/green] Wizard data is valid")


@app.command("set-default")
def set_default(
    profile: Annotated[str, typer.Argument(help="Profile name to set as default")],
) -> None:
    """Set the default profile in ~/.config/relnotes/config.toml."""
    if not CONFIG_PATH.exists():
        CONFIG_PATH.parent.mkdir(parents=True, exist_ok=True)
        doc = tomlkit.document()
        doc.add("default_profile", profile)
        CONFIG_PATH.write_text(tomlkit.dumps(doc))
        rprint(f'[green]✓[/green] Default profile set to "{profile}" in {CONFIG_PATH}')
        return

    doc = tomlkit.load(CONFIG_PATH.open())
    profiles = _list_profiles(doc)
    if profile not in profiles:
        rprint(f"[red]Profile '{profile}' not found in {CONFIG_PATH}. Available: {profiles or '(none)'}[/red]")
        raise typer.Exit(1)

    doc["default_profile"] = profile
    CONFIG_PATH.write_text(tomlkit.dumps(doc))
    rprint(f'[green]✓[/green] Default profile set to "{profile}" in {CONFIG_PATH}')


def _mask(val: str | None, prefix: str = "") -> str:
    if val is None:
        return "[dim](not set)[/dim]"
    if len(val) <= 5:
        return "***"
    return f"{prefix}...{val[-5:]}"


def _secret(value) -> str | None:
    return value.get_secret_value() if value else None


@app.command("config-show")
def config_show(ctx: typer.Context) -> None:
    """Show resolved configuration (masks credentials)."""
    settings = get_settings(profile=_profile(ctx), require_linear=False)
    not_set = "[dim](not set)[/dim]"

    table = Table(title="relnotes Configuration")
    table.add_column("Field", style="bold")
    table.add_column("Value")

    table.add_row("default_profile", settings.default_profile or not_set)
    table.add_row("linear_api_key", _mask(_secret(settings.linear_api_key), prefix="lin_api_"))
    table.add_row("linear_team_ids", ", ".join(settings.linear_team_ids) or not_set)
    table.add_row("ai_provider", settings.ai_provider or "[dim](auto)[/dim]")
    table.add_row("gemini_api_key", _mask(_secret(settings.gemini_api_key)))
    table.add_row("gemini_model", settings.gemini_model)
    table.add_row("azure_openai_api_key", _mask(_secret(settings.azure_openai_api_key)))
    table.add_row("azure_openai_endpoint", settings.azure_openai_endpoint or not_set)
    table.add_row("azure_openai_deployment", settings.azure_openai_deployment)
    table.add_row("organization", settings.organization.get("name") or not_set)
    table.add_row("log_level", settings.log_level)

    rprint(table)

"""GHPM CLI — all commands."""

from typing import Annotated, NoReturn

import tomlkit
import typer
from rich import print as rprint
from rich.table import Table

from ghpm.errors import GhpmError, PipelineError, TransferPreconditionError
from ghpm.fields import TYPE_FIELD, ensure_priority_field, ensure_team_field, require_field, set_field_value
from ghpm.logging import configure_logging
from ghpm.models import IssueDraft, IssueRef, ProjectContext, ProjectField
from ghpm.pipeline import CreationRequest, StepStatus, project_node_id, run_creation_pipeline
from ghpm.providers.base import ProjectBackend
from ghpm.providers.github import GitHubProvider
from ghpm.relationships import add_blocked_by, add_parent_link, remove_parent_link
from ghpm.settings import CONFIG_PATH, GhpmSettings, _list_contexts, get_settings
from ghpm.templates import default_sources, resolve_template
from ghpm.transfer import transfer_issue

app = typer.Typer(help="gh-project-management: template-driven issues for GitHub Projects", no_args_is_help=True)
field_app = typer.Typer(help="Team and Priority project fields", no_args_is_help=True)
dependency_app = typer.Typer(help="Blocked-by dependencies", no_args_is_help=True)
link_app = typer.Typer(help="Parent/child links", no_args_is_help=True)
app.add_typer(field_app, name="field")
app.add_typer(dependency_app, name="dependency")
app.add_typer(link_app, name="link")

ContextOpt = Annotated[
    str | None,
    typer.Option("--context", "-c", help="Context name from ~/.config/ghpm/config.toml"),
]
TeamOpt = Annotated[str | None, typer.Option("--team", "-t", help="Team name (see team_repos in the context)")]
PriorityOpt = Annotated[str | None, typer.Option("--priority", "-p", help="Critical, High, Medium or Low")]


@app.callback()
def main(
    log_level: Annotated[
        str, typer.Option("--log-level", envvar="GHPM_LOG_LEVEL", help="DEBUG, INFO, WARNING or ERROR")
    ] = "WARNING",
    json_logs: Annotated[bool, typer.Option("--json-logs", help="Emit logs as JSON lines on stderr")] = False,
) -> None:
    configure_logging(log_level, json_output=json_logs)


# ---------------------------------------------------------------------------
# Backend factory
# ---------------------------------------------------------------------------


def get_backend(settings: GhpmSettings) -> ProjectBackend:
    return GitHubProvider(settings)


def _session(context: str | None) -> tuple[ProjectContext, ProjectBackend]:
    settings = get_settings(context=context)
    try:
        project = settings.project_context()
    except GhpmError as exc:
        _fail(exc)
    return project, get_backend(settings)


def _fail(exc: BaseException) -> NoReturn:
    """Print ``exc`` and its cause chain, then exit 1."""
    rprint(f"[red]✗ {exc}[/red]")
    cause = exc.__cause__
    while cause is not None:
        rprint(f"  [dim]caused by:[/dim] {type(cause).__name__}: {cause}")
        cause = cause.__cause__
    raise typer.Exit(1)


def _parse_ref(ref: str, context: ProjectContext) -> IssueRef:
    try:
        return IssueRef.parse(ref, context.owner, context.default_repo)
    except GhpmError as exc:
        raise typer.BadParameter(str(exc)) from exc


def _parse_field_values(raw: list[str]) -> dict[str, str]:
    values: dict[str, str] = {}
    for item in raw:
        key, sep, value = item.partition("=")
        if not sep or not key.strip():
            raise typer.BadParameter(f"Expected id=value, got '{item}'", param_hint="--field")
        values[key.strip()] = value
    return values


def _options_table(field: ProjectField) -> Table:
    table = Table(title=f"{field.name} options")
    table.add_column("Option", style="cyan")
    table.add_column("Color")
    for option in field.options:
        table.add_row(option.name, str(option.color or "—"))
    return table


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.command("create")
def create(
    issue_type: Annotated[str, typer.Option("--type", help="Issue type, e.g. epic, task, bug")],
    title: Annotated[str, typer.Option("--title", help="Issue title")] = "",
    field_values: Annotated[
        list[str] | None,
        typer.Option("--field", "-f", help="Template field value as id=value (repeatable)"),
    ] = None,
    team: TeamOpt = None,
    priority: PriorityOpt = None,
    parent: Annotated[str | None, typer.Option("--parent", help="Parent issue (owner/repo#N or #N)")] = None,
    depends_on: Annotated[
        list[str] | None,
        typer.Option("--depends-on", help="Blocking issue (repeatable)"),
    ] = None,
    transfer: Annotated[
        bool, typer.Option("--transfer/--no-transfer", help="Move the issue to the team's repository")
    ] = True,
    show_fields: Annotated[
        bool, typer.Option("--show-fields", help="List the template's fields and exit without creating")
    ] = False,
    context: ContextOpt = None,
) -> None:
    """Create an issue from a template and wire it into the project."""
    project, backend = _session(context)

    if show_fields:
        try:
            resolved = resolve_template(issue_type, default_sources(backend, project))
        except GhpmError as exc:
            _fail(exc)

        table = Table(title=f"{resolved.template.name} ({resolved.source}: {resolved.location})")
        table.add_column("ID", style="cyan")
        table.add_column("Kind")
        table.add_column("Label")
        table.add_column("Required")
        table.add_column("Options", style="dim")
        for field in resolved.template.input_fields():
            table.add_row(field.id, str(field.kind), field.label, "yes" if field.required else "", ", ".join(field.options))
        rprint(table)
        return

    request = CreationRequest(
        draft=IssueDraft(type=issue_type, title=title, field_values=_parse_field_values(field_values or [])),
        team=team,
        priority=priority,
        parent=parent,
        depends_on=depends_on or [],
        transfer=transfer,
    )

    try:
        result = run_creation_pipeline(backend, project, request)
    except PipelineError as exc:
        _fail(exc)

    rprint(f"[green]✓[/green] [bold]{result.issue.ref}[/bold] {result.issue.title}")
    rprint(f"  {result.issue.url}")
    rprint(f"  [dim]template: {result.template_source}[/dim]")

    for outcome in result.outcomes:
        match outcome.status:
            case StepStatus.OK:
                rprint(f"[green]✓[/green] {outcome.message}")
            case StepStatus.WARNING:
                rprint(f"[yellow]Warning:[/yellow] {outcome.step}: {outcome.message}")
            case StepStatus.SKIPPED:
                rprint(f"[dim]Skipped {outcome.step}: {outcome.message}[/dim]")

    if result.transferred:
        rprint(f"  Now at {result.transferred.url}")


@field_app.command("set")
def field_set(
    issue: Annotated[str, typer.Argument(help="Issue (owner/repo#N or #N)")],
    team: TeamOpt = None,
    priority: PriorityOpt = None,
    issue_type: Annotated[
        str | None, typer.Option("--type", help="Value of the project's Type field, e.g. Epic, Task, Bug")
    ] = None,
    transfer: Annotated[
        bool, typer.Option("--transfer/--no-transfer", help="Move the issue to the team's repository")
    ] = True,
    context: ContextOpt = None,
) -> None:
    """Set Team, Priority and/or Type on an issue already in the project.

    Setting --team also moves the issue to that team's repository unless
    --no-transfer is given.
    """
    if not team and not priority and not issue_type:
        raise typer.BadParameter("Pass --team, --priority and/or --type")
    project, backend = _session(context)
    ref = _parse_ref(issue, project)

    try:
        project_id = project_node_id(backend, project)
        issue_id = backend.resolve_issue_id(ref.owner, ref.repo, ref.number)
        item_id = backend.find_project_item_id(project_id, issue_id)
        if team:
            team_field = ensure_team_field(backend, project_id, [*project.team_repos, team])
            set_field_value(backend, project_id, item_id, team_field, team)
            rprint(f"[green]✓[/green] {ref} Team: {team}")
        if priority:
            priority_field = ensure_priority_field(backend, project_id)
            set_field_value(backend, project_id, item_id, priority_field, priority)
            rprint(f"[green]✓[/green] {ref} Priority: {priority}")
        if issue_type:
            type_field = require_field(backend, project_id, TYPE_FIELD)
            set_field_value(backend, project_id, item_id, type_field, issue_type)
            rprint(f"[green]✓[/green] {ref} Type: {issue_type}")
    except GhpmError as exc:
        _fail(exc)

    if not team:
        return
    if not transfer:
        rprint("[dim]Skipped transfer: transfer disabled[/dim]")
        return
    try:
        moved = transfer_issue(backend, project, ref, team)
    except TransferPreconditionError as exc:
        rprint(f"[dim]Skipped transfer: {exc}[/dim]")
        return
    except GhpmError as exc:
        _fail(exc)
    rprint(f"[green]✓[/green] {ref} → [bold]{moved.owner}/{moved.repo}#{moved.number}[/bold]")
    rprint(f"  {moved.url}")


@field_app.command("sync")
def field_sync(context: ContextOpt = None) -> None:
    """Ensure the Team field offers every configured team and Priority exists."""
    project, backend = _session(context)
    try:
        project_id = project_node_id(backend, project)
        synced = []
        if project.team_repos:
            synced.append(ensure_team_field(backend, project_id, project.team_repos))
        synced.append(ensure_priority_field(backend, project_id))
    except GhpmError as exc:
        _fail(exc)

    for field in synced:
        rprint(_options_table(field))


@dependency_app.command("add")
def dependency_add(
    blocked: Annotated[str, typer.Argument(help="Issue that is blocked")],
    blocking: Annotated[list[str], typer.Argument(help="Issues it waits on")],
    context: ContextOpt = None,
) -> None:
    """Mark BLOCKED as blocked by each BLOCKING issue (same repository only).

    A bad reference or a failed link is reported and the rest still run.
    Exits 1 only when no dependency could be added.
    """
    project, backend = _session(context)
    blocked_ref = _parse_ref(blocked, project)

    added = 0
    for raw in blocking:
        try:
            blocking_ref = IssueRef.parse(raw, project.owner, project.default_repo)
            add_blocked_by(backend, blocked_ref, blocking_ref)
        except GhpmError as exc:
            rprint(f"[yellow]Warning:[/yellow] {raw}: {exc}")
            continue
        rprint(f"[green]✓[/green] {blocked_ref} is blocked by {blocking_ref}")
        added += 1

    if not added:
        rprint(f"[red]✗ No dependencies added to {blocked_ref}[/red]")
        raise typer.Exit(1)
    rprint(f"Added {added}/{len(blocking)} dependencies to {blocked_ref}")


@link_app.command("add")
def link_add(
    parent: Annotated[str, typer.Argument(help="Parent issue")],
    child: Annotated[str, typer.Argument(help="Child issue")],
    context: ContextOpt = None,
) -> None:
    """Make CHILD a sub-issue of PARENT."""
    project, backend = _session(context)
    parent_ref, child_ref = _parse_ref(parent, project), _parse_ref(child, project)
    try:
        add_parent_link(backend, parent_ref, child_ref)
    except GhpmError as exc:
        _fail(exc)
    rprint(f"[green]✓[/green] {child_ref} is a sub-issue of {parent_ref}")


@link_app.command("remove")
def link_remove(
    parent: Annotated[str, typer.Argument(help="Parent issue")],
    child: Annotated[str, typer.Argument(help="Child issue")],
    context: ContextOpt = None,
) -> None:
    """Detach CHILD from PARENT."""
    project, backend = _session(context)
    parent_ref, child_ref = _parse_ref(parent, project), _parse_ref(child, project)
    try:
        remove_parent_link(backend, parent_ref, child_ref)
    except GhpmError as exc:
        _fail(exc)
    rprint(f"[green]✓[/green] {child_ref} removed from {parent_ref}")


@app.command("transfer")
def transfer_cmd(
    issue: Annotated[str, typer.Argument(help="Issue in the default repository")],
    team: Annotated[str, typer.Option("--team", "-t", help="Team whose repository receives the issue")],
    context: ContextOpt = None,
) -> None:
    """Move an issue from the default repository to its team's repository."""
    project, backend = _session(context)
    ref = _parse_ref(issue, project)
    try:
        moved = transfer_issue(backend, project, ref, team)
    except GhpmError as exc:
        _fail(exc)
    rprint(f"[green]✓[/green] {ref} → [bold]{moved.owner}/{moved.repo}#{moved.number}[/bold]")
    rprint(f"  {moved.url}")


@app.command("use-context")
def use_context(
    name: Annotated[str, typer.Argument(help="Context name to make current")],
) -> None:
    """Set current_context in ~/.config/ghpm/config.toml."""
    if not CONFIG_PATH.exists():
        rprint(f"[red]No config file at {CONFIG_PATH}. Add a [{name}] table first.[/red]")
        raise typer.Exit(1)

    doc = tomlkit.load(CONFIG_PATH.open())
    contexts = _list_contexts(doc)
    if name not in contexts:
        rprint(f"[red]Context '{name}' not found in {CONFIG_PATH}. Available: {contexts or '(none)'}[/red]")
        raise typer.Exit(1)

    doc["current_context"] = name
    CONFIG_PATH.write_text(tomlkit.dumps(doc))
    rprint(f'[green]✓[/green] Current context set to "{name}" in {CONFIG_PATH}')


@app.command("config-show")
def config_show(context: ContextOpt = None) -> None:
    """Show resolved configuration (masks credentials)."""
    settings = get_settings(context=context)

    def mask(val: str | None, prefix: str = "") -> str:
        if val is None:
            return "[dim](not set)[/dim]"
        if len(val) <= 5:
            return "***"
        return f"{prefix}...{val[-5:]}"

    def shown(val: str | None) -> str:
        return val or "[dim](not set)[/dim]"

    table = Table(title="GHPM Configuration")
    table.add_column("Field", style="bold")
    table.add_column("Value")

    table.add_row("context", shown(settings.current_context))
    table.add_row(
        "github_token",
        mask(settings.github_token.get_secret_value() if settings.github_token else None, prefix="ghp_"),
    )
    table.add_row("github_auth", settings.github_auth)
    table.add_row("owner", f"{shown(settings.owner)} ({settings.owner_type})")
    table.add_row("default_repo", shown(settings.default_repo))
    table.add_row("project_id", shown(settings.project_id))
    table.add_row("sub_issues", str(settings.sub_issues).lower())
    teams = ", ".join(f"{team} → {repo}" for team, repo in settings.team_repos.items())
    table.add_row("team_repos", teams or "[dim](none)[/dim]")

    rprint(table)

"""End-to-end issue creation.

The pipeline runs strictly in order::

    INIT → TEMPLATE_RESOLVED → FIELDS_VALIDATED → ISSUE_CREATED → PROJECT_ASSIGNED
         → [LABELED] → [PARENT_LINKED] → [FIELDS_SYNCED] → [DEPENDENCIES_ADDED] → [TRANSFERRED] → DONE

The first four transitions are fatal: a failure raises PipelineError and
nothing further runs. The bracketed steps run only when requested and are
best-effort: each attempt yields a StepOutcome, failures become warnings on
the result, and the next step runs regardless. Every best-effort step is
also available on its own (relationships, fields, transfer modules) so a
partially configured issue can be finished by hand.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TypeVar

import structlog

from ghpm.errors import (
    ConfigurationError,
    FieldValidationError,
    GhpmError,
    MissingRequiredFieldsError,
    PipelineError,
    TransferPreconditionError,
)
from ghpm.fields import ensure_priority_field, ensure_team_field, set_field_value
from ghpm.models import Issue, IssueDraft, IssueRef, ProjectContext, TransferredIssue
from ghpm.providers.base import ProjectBackend
from ghpm.relationships import add_blocked_by, add_parent_link
from ghpm.templates.body import build_body, validate_fields
from ghpm.templates.model import Template
from ghpm.templates.resolver import (
    ResolvedTemplate,
    TemplateSource,
    TemplateSourceStrategy,
    default_sources,
    resolve_template,
)
from ghpm.transfer import transfer_issue

logger = structlog.get_logger()

T = TypeVar("T")


class PipelineState(StrEnum):
    INIT = "init"
    TEMPLATE_RESOLVED = "template-resolved"
    FIELDS_VALIDATED = "fields-validated"
    ISSUE_CREATED = "issue-created"
    PROJECT_ASSIGNED = "project-assigned"
    LABELED = "labeled"
    PARENT_LINKED = "parent-linked"
    FIELDS_SYNCED = "fields-synced"
    DEPENDENCIES_ADDED = "dependencies-added"
    TRANSFERRED = "transferred"
    DONE = "done"


class StepStatus(StrEnum):
    OK = "ok"
    WARNING = "warning"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class StepOutcome:
    step: PipelineState
    status: StepStatus
    message: str = ""
    error: GhpmError | None = None


@dataclass
class CreationRequest:
    draft: IssueDraft
    team: str | None = None
    priority: str | None = None
    parent: str | None = None  # issue reference, see IssueRef.parse
    depends_on: list[str] = field(default_factory=list)
    transfer: bool = True
    template: Template | None = None  # skip resolution when given
    sources: list[TemplateSourceStrategy] | None = None


@dataclass
class CreationResult:
    issue: Issue
    project_item_id: str
    template_source: TemplateSource
    outcomes: list[StepOutcome] = field(default_factory=list)
    transferred: TransferredIssue | None = None

    @property
    def warnings(self) -> list[StepOutcome]:
        return [o for o in self.outcomes if o.status is StepStatus.WARNING]

    @property
    def skipped(self) -> list[StepOutcome]:
        return [o for o in self.outcomes if o.status is StepStatus.SKIPPED]

    @property
    def transferred_number(self) -> int | None:
        return self.transferred.number if self.transferred else None


def project_node_id(backend: ProjectBackend, context: ProjectContext) -> str:
    """Return the ProjectV2 node ID for the context's project (a number is resolved remotely)."""
    if not context.project_id:
        raise ConfigurationError("No project configured. Set project_id in the active context.")
    if context.project_id.isdigit():
        return backend.resolve_project_id(context.owner, int(context.project_id), context.owner_type)
    return context.project_id


def _fatal(state: PipelineState, action: Callable[[], T]) -> T:
    try:
        return action()
    except GhpmError as exc:
        logger.error("pipeline_aborted", state=str(state), error=str(exc))
        raise PipelineError(str(state), exc) from exc


def _attempt(step: PipelineState, action: Callable[[], str | None]) -> StepOutcome:
    try:
        message = action()
    except TransferPreconditionError as exc:
        logger.info("step_skipped", step=str(step), reason=str(exc))
        return StepOutcome(step, StepStatus.SKIPPED, str(exc), exc)
    except GhpmError as exc:
        logger.warning("step_warning", step=str(step), error=str(exc))
        return StepOutcome(step, StepStatus.WARNING, str(exc), exc)
    return StepOutcome(step, StepStatus.OK, message or "")


def _title(template: Template, title: str) -> str:
    """Prefix ``title`` with the template's title prefix unless it already starts with it."""
    prefix = template.title
    if not prefix or title.startswith(prefix):
        return title
    return f"{prefix}{title}"


def _validate(template: Template, draft: IssueDraft) -> None:
    errors = validate_fields(template, draft.field_values)
    if not draft.title.strip():
        errors.insert(0, MissingRequiredFieldsError(["title"]))
    if errors:
        raise FieldValidationError(errors)


def run_creation_pipeline(
    backend: ProjectBackend, context: ProjectContext, request: CreationRequest
) -> CreationResult:
    """Create an issue from ``request`` and wire it up.

    Raises:
        PipelineError: a fatal step failed; ``cause`` holds the original error.
    """
    draft = request.draft
    log = logger.bind(issue_type=draft.type)

    # Fatal steps
    if request.template is not None:
        resolved = ResolvedTemplate(request.template, TemplateSource.PROVIDED, "provided by caller")
    else:
        sources = request.sources if request.sources is not None else default_sources(backend, context)
        resolved = _fatal(PipelineState.TEMPLATE_RESOLVED, lambda: resolve_template(draft.type, sources))

    template = resolved.template
    _fatal(PipelineState.FIELDS_VALIDATED, lambda: _validate(template, draft))
    body = build_body(template, draft.field_values)

    def create() -> tuple[Issue, str]:
        project_id = project_node_id(backend, context)
        repository_id = backend.resolve_repository_id(context.owner, context.default_repo)
        return backend.create_issue(repository_id, _title(template, draft.title), body), project_id

    issue, project_id = _fatal(PipelineState.ISSUE_CREATED, create)
    log = log.bind(issue=str(issue.ref))
    log.info("issue_created", url=issue.url)

    item_id = _fatal(PipelineState.PROJECT_ASSIGNED, lambda: backend.add_issue_to_project(project_id, issue.id))
    log.info("issue_added_to_project", item_id=item_id)

    result = CreationResult(issue=issue, project_item_id=item_id, template_source=resolved.source)

    # Best-effort steps
    if template.labels:
        labels = list(template.labels)

        def label() -> str:
            backend.add_labels(issue.owner, issue.repo, issue.number, labels)
            return f"labels: {', '.join(labels)}"

        result.outcomes.append(_attempt(PipelineState.LABELED, label))

    if request.parent:
        parent_ref = request.parent

        def link_parent() -> str:
            parent = IssueRef.parse(parent_ref, context.owner, context.default_repo)
            add_parent_link(backend, parent, issue.ref)
            return f"linked to parent {parent}"

        result.outcomes.append(_attempt(PipelineState.PARENT_LINKED, link_parent))

    if request.team or request.priority:
        result.outcomes.extend(_sync_fields(backend, context, project_id, item_id, request))

    if request.depends_on:
        for dep in request.depends_on:

            def add_dependency(dep: str = dep) -> str:
                blocking = IssueRef.parse(dep, context.owner, context.default_repo)
                add_blocked_by(backend, issue.ref, blocking)
                return f"blocked by {blocking}"

            result.outcomes.append(_attempt(PipelineState.DEPENDENCIES_ADDED, add_dependency))

    if request.team:
        if not request.transfer:
            result.outcomes.append(StepOutcome(PipelineState.TRANSFERRED, StepStatus.SKIPPED, "transfer disabled"))
        else:

            def move() -> str:
                result.transferred = transfer_issue(backend, context, issue.ref, request.team)
                return f"transferred to {result.transferred.owner}/{result.transferred.repo}#{result.transferred.number}"

            result.outcomes.append(_attempt(PipelineState.TRANSFERRED, move))

    log.info("pipeline_done", warnings=len(result.warnings), skipped=len(result.skipped))
    return result


def _sync_fields(
    backend: ProjectBackend,
    context: ProjectContext,
    project_id: str,
    item_id: str,
    request: CreationRequest,
) -> list[StepOutcome]:
    outcomes = []
    team = request.team
    priority = request.priority

    if team:

        def set_team() -> str:
            field = ensure_team_field(backend, project_id, [*context.team_repos, team])
            set_field_value(backend, project_id, item_id, field, team)
            return f"Team: {team}"

        outcomes.append(_attempt(PipelineState.FIELDS_SYNCED, set_team))

    if priority:

        def set_priority() -> str:
            field = ensure_priority_field(backend, project_id)
            set_field_value(backend, project_id, item_id, field, priority)
            return f"Priority: {priority}"

        outcomes.append(_attempt(PipelineState.FIELDS_SYNCED, set_priority))

    return outcomes

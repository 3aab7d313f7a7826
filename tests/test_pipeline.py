"""Tests for the issue creation pipeline."""

import pytest

from ghpm.errors import (
    ConfigurationError,
    FieldValidationError,
    PipelineError,
    RemoteAPIError,
    TemplateNotFoundError,
)
from ghpm.fields import PRIORITY_FIELD, TEAM_FIELD
from ghpm.models import FieldColor, IssueDraft, ProjectContext
from ghpm.pipeline import (
    CreationRequest,
    PipelineState,
    StepStatus,
    project_node_id,
    run_creation_pipeline,
)
from ghpm.templates.model import Template
from ghpm.templates.resolver import EmbeddedTemplateSource, TemplateSource


def _request(template: Template | None = None, **kwargs) -> CreationRequest:
    values = kwargs.pop("values", {"description": "Do the thing"})
    title = kwargs.pop("title", "Add caching")
    return CreationRequest(draft=IssueDraft(type="task", title=title, field_values=values), template=template, **kwargs)


class TestFatalSteps:
    def test_minimal_creation(self, backend, context: ProjectContext, task_template: Template) -> None:
        result = run_creation_pipeline(backend, context, _request(task_template))

        assert result.issue.title == "Add caching"
        assert result.issue.body == "### Description\n\nDo the thing\n\n"
        assert result.project_item_id == f"PVTI_{result.issue.id}"
        assert result.template_source is TemplateSource.PROVIDED
        assert result.outcomes == []
        assert backend.mutations == ["create_issue", "add_issue_to_project"]

    def test_template_resolved_from_sources(self, backend, context: ProjectContext) -> None:
        result = run_creation_pipeline(backend, context, _request(sources=[EmbeddedTemplateSource()]))
        assert result.template_source is TemplateSource.EMBEDDED
        assert result.issue.body.startswith("### Description\n\nDo the thing\n\n")

    def test_unknown_type_aborts_before_any_call(self, backend, context: ProjectContext) -> None:
        request = CreationRequest(draft=IssueDraft(type="spike", title="x"), sources=[EmbeddedTemplateSource()])
        with pytest.raises(PipelineError) as exc_info:
            run_creation_pipeline(backend, context, request)
        assert exc_info.value.state == PipelineState.TEMPLATE_RESOLVED
        assert isinstance(exc_info.value.cause, TemplateNotFoundError)
        assert backend.calls == []

    def test_validation_errors_aggregated(self, backend, context: ProjectContext, task_template: Template) -> None:
        request = _request(task_template, title=" ", values={"size": "XL"})
        with pytest.raises(PipelineError) as exc_info:
            run_creation_pipeline(backend, context, request)

        cause = exc_info.value.cause
        assert isinstance(cause, FieldValidationError)
        assert len(cause.errors) == 3  # title, description, size
        assert exc_info.value.__cause__ is cause
        assert backend.calls == []

    def test_missing_project_aborts_before_create(self, backend, task_template: Template) -> None:
        ctx = ProjectContext(owner="acme", default_repo="planning")
        with pytest.raises(PipelineError) as exc_info:
            run_creation_pipeline(backend, ctx, _request(task_template))
        assert exc_info.value.state == PipelineState.ISSUE_CREATED
        assert isinstance(exc_info.value.cause, ConfigurationError)
        assert backend.mutations == []

    def test_create_failure(self, backend, context: ProjectContext, task_template: Template) -> None:
        backend.failures["create_issue"] = RemoteAPIError("create-issue", "boom")
        with pytest.raises(PipelineError, match="aborted before issue-created"):
            run_creation_pipeline(backend, context, _request(task_template, team="Backend"))
        assert "add_issue_to_project" not in backend.call_names

    def test_project_assignment_failure_is_fatal(self, backend, context: ProjectContext, task_template: Template) -> None:
        backend.failures["add_issue_to_project"] = RemoteAPIError("add-issue-to-project", "forbidden")
        with pytest.raises(PipelineError) as exc_info:
            run_creation_pipeline(backend, context, _request(task_template, parent="#1", team="Backend"))
        assert exc_info.value.state == PipelineState.PROJECT_ASSIGNED
        assert backend.mutations == ["create_issue", "add_issue_to_project"]


class TestBestEffortSteps:
    def test_full_run_in_order(self, backend, context: ProjectContext, task_template: Template) -> None:
        request = _request(task_template, team="Backend", priority="High", parent="#1", depends_on=["#2", "#3"])
        result = run_creation_pipeline(backend, context, request)

        assert [o.step for o in result.outcomes] == [
            PipelineState.PARENT_LINKED,
            PipelineState.FIELDS_SYNCED,
            PipelineState.FIELDS_SYNCED,
            PipelineState.DEPENDENCIES_ADDED,
            PipelineState.DEPENDENCIES_ADDED,
            PipelineState.TRANSFERRED,
        ]
        assert all(o.status is StepStatus.OK for o in result.outcomes)
        assert backend.sub_issue_links == [("I_acme/planning#1", result.issue.id)]
        assert backend.blocked_by == [(result.issue.id, "I_acme/planning#2"), (result.issue.id, "I_acme/planning#3")]
        assert result.transferred_number == 7
        assert backend.mutations[-1] == "transfer_issue"

    def test_team_field_gets_all_context_teams(self, backend, context: ProjectContext, task_template: Template) -> None:
        result = run_creation_pipeline(backend, context, _request(task_template, team="Web", transfer=False))

        team_field = backend.fields[TEAM_FIELD]
        assert [o.name for o in team_field.options] == ["Backend", "App", "Web"]
        assert backend.field_values[(result.project_item_id, team_field.id)] == "opt_Team_Web"

    def test_existing_team_field_only_gains_new_team(
        self, backend, context: ProjectContext, task_template: Template
    ) -> None:
        backend.seed_field(TEAM_FIELD, [("Backend", FieldColor.PINK), ("App", FieldColor.RED)])
        run_creation_pipeline(backend, context, _request(task_template, team="Web", transfer=False))

        options = {o.name: o.color for o in backend.fields[TEAM_FIELD].options}
        assert options["Backend"] is FieldColor.PINK
        assert options["App"] is FieldColor.RED
        assert list(options) == ["Backend", "App", "Web"]

    def test_failures_become_warnings_and_later_steps_run(
        self, backend, context: ProjectContext, task_template: Template
    ) -> None:
        backend.failures["add_sub_issue"] = RemoteAPIError("add-sub-issue", "parent not found")
        request = _request(task_template, priority="Urgent", parent="#1", depends_on=["acme/website#2", "#3"])

        result = run_creation_pipeline(backend, context, request)

        assert [(o.step, o.status) for o in result.outcomes] == [
            (PipelineState.PARENT_LINKED, StepStatus.WARNING),
            (PipelineState.FIELDS_SYNCED, StepStatus.WARNING),
            (PipelineState.DEPENDENCIES_ADDED, StepStatus.WARNING),
            (PipelineState.DEPENDENCIES_ADDED, StepStatus.OK),
        ]
        assert len(result.warnings) == 3
        assert "Urgent" in result.warnings[1].message
        assert backend.blocked_by == [(result.issue.id, "I_acme/planning#3")]
        assert PRIORITY_FIELD in backend.fields

    def test_invalid_parent_reference_is_a_warning(
        self, backend, context: ProjectContext, task_template: Template
    ) -> None:
        result = run_creation_pipeline(backend, context, _request(task_template, parent="not-an-issue"))
        assert result.outcomes[0].status is StepStatus.WARNING

    def test_transfer_disabled(self, backend, context: ProjectContext, task_template: Template) -> None:
        result = run_creation_pipeline(backend, context, _request(task_template, team="Backend", transfer=False))
        assert result.outcomes[-1].status is StepStatus.SKIPPED
        assert result.transferred is None
        assert "transfer_issue" not in backend.call_names

    def test_unmapped_team_skips_transfer(self, backend, context: ProjectContext, task_template: Template) -> None:
        result = run_creation_pipeline(backend, context, _request(task_template, team="Design"))
        assert result.skipped[0].step is PipelineState.TRANSFERRED
        assert "Design" in result.skipped[0].message
        assert result.warnings == []
        assert "transfer_issue" not in backend.call_names

    def test_transfer_failure_is_warning(self, backend, context: ProjectContext, task_template: Template) -> None:
        backend.failures["transfer_issue"] = RemoteAPIError("transfer-issue", "no permission")
        result = run_creation_pipeline(backend, context, _request(task_template, team="Backend"))
        assert result.warnings[-1].step is PipelineState.TRANSFERRED
        assert result.transferred_number is None

    def test_tasklist_parent_link(self, tasklist_backend, context: ProjectContext, task_template: Template) -> None:
        tasklist_backend.seed_issue("acme", "planning", 1, body="Epic intro")
        result = run_creation_pipeline(tasklist_backend, context, _request(task_template, parent="#1"))
        expected = f"Epic intro\n\n## Tasks\n\n- [ ] #{result.issue.number}\n"
        assert tasklist_backend.body_of("acme", "planning", 1) == expected


class TestProjectNodeId:
    def test_node_id_used_as_is(self, backend, context: ProjectContext) -> None:
        assert project_node_id(backend, context) == "PVT_kwDOproject"
        assert backend.calls == []

    def test_number_is_resolved(self, backend) -> None:
        ctx = ProjectContext(owner="jdoe", owner_type="user", default_repo="planning", project_id="7")
        assert project_node_id(backend, ctx) == "PVT_jdoe_7"
        assert backend.calls == [("resolve_project_id", "jdoe", 7, "user")]

    def test_missing(self, backend) -> None:
        with pytest.raises(ConfigurationError):
            project_node_id(backend, ProjectContext(owner="acme", default_repo="planning"))


class TestTemplateMetadata:
    @pytest.fixture
    def labeled_template(self, task_template: Template) -> Template:
        return task_template.model_copy(update={"title": "[Task]: ", "labels": ["task", "backend"]})

    def test_title_prefix_and_labels(self, backend, context: ProjectContext, labeled_template: Template) -> None:
        result = run_creation_pipeline(backend, context, _request(labeled_template))

        assert result.issue.title == "[Task]: Add caching"
        assert backend.labels[("acme", "planning", result.issue.number)] == ["task", "backend"]
        assert [(o.step, o.status) for o in result.outcomes] == [(PipelineState.LABELED, StepStatus.OK)]
        assert backend.mutations == ["create_issue", "add_issue_to_project", "add_labels"]

    def test_prefix_is_not_doubled(self, backend, context: ProjectContext, labeled_template: Template) -> None:
        result = run_creation_pipeline(backend, context, _request(labeled_template, title="[Task]: Add caching"))
        assert result.issue.title == "[Task]: Add caching"

    def test_label_failure_is_warning(self, backend, context: ProjectContext, labeled_template: Template) -> None:
        backend.failures["add_labels"] = RemoteAPIError("add-labels", "forbidden")
        result = run_creation_pipeline(backend, context, _request(labeled_template, parent="#1"))
        assert result.warnings[0].step is PipelineState.LABELED
        assert result.outcomes[1].step is PipelineState.PARENT_LINKED
        assert result.outcomes[1].status is StepStatus.OK

    def test_embedded_template_metadata(self, backend, context: ProjectContext) -> None:
        result = run_creation_pipeline(backend, context, _request(sources=[EmbeddedTemplateSource()]))
        assert result.issue.title == "[Task]: Add caching"
        assert backend.labels[("acme", "planning", result.issue.number)] == ["task"]

"""Shared test fixtures."""

import pytest

from ghpm.errors import RemoteAPIError
from ghpm.models import FieldColor, FieldOption, Issue, ProjectContext, ProjectField, TransferredIssue
from ghpm.providers.base import ProjectBackend
from ghpm.templates.model import Template, parse_template

MUTATIONS = {
    "create_issue",
    "update_issue_body",
    "add_labels",
    "add_issue_to_project",
    "create_single_select_field",
    "update_field_options",
    "update_item_field_value",
    "add_blocked_by",
    "add_sub_issue",
    "remove_sub_issue",
    "transfer_issue",
}

TASK_TEMPLATE = """\
name: Task
description: A unit of work
type: task
body:
  - type: markdown
    attributes:
      value: Describe the task.
  - type: textarea
    id: description
    attributes:
      label: Description
    validations:
      required: true
  - type: dropdown
    id: size
    attributes:
      label: Size
      options: [S, M, L]
  - type: checkboxes
    id: platforms
    attributes:
      label: Platforms
      options:
        - label: iOS
        - label: Android
        - label: Web
"""


class FakeBackend(ProjectBackend):
    """In-memory backend that records every call as ``(method, *args)``."""

    def __init__(self, sub_issues: bool = True) -> None:
        self.supports_sub_issues = sub_issues
        self.calls: list[tuple] = []
        self.failures: dict[str, Exception] = {}
        self.issues: dict[tuple[str, str, int], Issue] = {}
        self.fields: dict[str, ProjectField] = {}
        self.project_items: dict[str, str] = {}  # issue id → item id
        self.field_values: dict[tuple[str, str], str] = {}  # (item id, field id) → option id
        self.templates: dict[tuple[str, str, str], str] = {}
        self.labels: dict[tuple[str, str, int], list[str]] = {}
        self.blocked_by: list[tuple[str, str]] = []
        self.sub_issue_links: list[tuple[str, str]] = []
        self._next_number = 100

    # -- helpers -----------------------------------------------------------

    def _record(self, method: str, *args: object) -> None:
        self.calls.append((method, *args))
        if method in self.failures:
            raise self.failures[method]

    @property
    def call_names(self) -> list[str]:
        return [c[0] for c in self.calls]

    @property
    def mutations(self) -> list[str]:
        return [name for name in self.call_names if name in MUTATIONS]

    def seed_issue(self, owner: str, repo: str, number: int, body: str = "") -> Issue:
        issue = Issue(
            id=f"I_{owner}/{repo}#{number}",
            number=number,
            url=f"https://github.com/{owner}/{repo}/issues/{number}",
            title=f"Issue {number}",
            body=body,
            owner=owner,
            repo=repo,
        )
        self.issues[(owner, repo, number)] = issue
        return issue

    def seed_field(self, name: str, options: list[tuple[str, FieldColor | None]]) -> ProjectField:
        field = ProjectField(
            id=f"F_{name}",
            name=name,
            options=[FieldOption(id=f"opt_{name}_{n}", name=n, color=c) for n, c in options],
        )
        self.fields[name] = field
        return field

    def body_of(self, owner: str, repo: str, number: int) -> str:
        return self.issues[(owner, repo, number)].body

    # -- ProjectBackend ----------------------------------------------------

    def resolve_repository_id(self, owner: str, repo: str) -> str:
        self._record("resolve_repository_id", owner, repo)
        return f"R_{owner}/{repo}"

    def resolve_issue_id(self, owner: str, repo: str, number: int) -> str:
        self._record("resolve_issue_id", owner, repo, number)
        return f"I_{owner}/{repo}#{number}"

    def resolve_project_id(self, owner: str, number: int, owner_type: str) -> str:
        self._record("resolve_project_id", owner, number, owner_type)
        return f"PVT_{owner}_{number}"

    def get_issue(self, owner: str, repo: str, number: int) -> Issue:
        self._record("get_issue", owner, repo, number)
        try:
            return self.issues[(owner, repo, number)]
        except KeyError:
            raise RemoteAPIError("get-issue", f"issue #{number} not found in {owner}/{repo}") from None

    def create_issue(self, repository_id: str, title: str, body: str) -> Issue:
        self._record("create_issue", repository_id, title, body)
        owner, repo = repository_id.removeprefix("R_").split("/")
        number = self._next_number
        self._next_number += 1
        issue = self.seed_issue(owner, repo, number, body)
        issue = issue.model_copy(update={"title": title})
        self.issues[(owner, repo, number)] = issue
        return issue

    def update_issue_body(self, owner: str, repo: str, number: int, body: str) -> None:
        self._record("update_issue_body", owner, repo, number, body)
        self.issues[(owner, repo, number)] = self.issues[(owner, repo, number)].model_copy(update={"body": body})

    def add_labels(self, owner: str, repo: str, number: int, labels: list[str]) -> None:
        self._record("add_labels", owner, repo, number, labels)
        self.labels.setdefault((owner, repo, number), []).extend(labels)

    def add_issue_to_project(self, project_id: str, issue_id: str) -> str:
        self._record("add_issue_to_project", project_id, issue_id)
        item_id = f"PVTI_{issue_id}"
        self.project_items[issue_id] = item_id
        return item_id

    def find_project_item_id(self, project_id: str, issue_id: str) -> str:
        self._record("find_project_item_id", project_id, issue_id)
        if issue_id not in self.project_items:
            raise RemoteAPIError("find-project-item", "issue not found in project")
        return self.project_items[issue_id]

    def list_project_fields(self, project_id: str) -> list[ProjectField]:
        self._record("list_project_fields", project_id)
        return list(self.fields.values())

    def create_single_select_field(self, project_id: str, name: str, options: list[FieldOption]) -> ProjectField:
        self._record("create_single_select_field", project_id, name, options)
        return self.seed_field(name, [(o.name, o.color) for o in options])

    def update_field_options(self, field_id: str, options: list[FieldOption]) -> None:
        self._record("update_field_options", field_id, options)
        field = next(f for f in self.fields.values() if f.id == field_id)
        # Like the remote API, the update replaces the option list wholesale
        self.seed_field(field.name, [(o.name, o.color) for o in options])

    def update_item_field_value(self, project_id: str, item_id: str, field_id: str, option_id: str) -> None:
        self._record("update_item_field_value", project_id, item_id, field_id, option_id)
        self.field_values[(item_id, field_id)] = option_id

    def add_blocked_by(self, issue_id: str, blocking_issue_id: str) -> None:
        self._record("add_blocked_by", issue_id, blocking_issue_id)
        self.blocked_by.append((issue_id, blocking_issue_id))

    def add_sub_issue(self, issue_id: str, sub_issue_id: str) -> None:
        self._record("add_sub_issue", issue_id, sub_issue_id)
        self.sub_issue_links.append((issue_id, sub_issue_id))

    def remove_sub_issue(self, issue_id: str, sub_issue_id: str) -> None:
        self._record("remove_sub_issue", issue_id, sub_issue_id)
        self.sub_issue_links.remove((issue_id, sub_issue_id))

    def transfer_issue(self, issue_id: str, repository_id: str) -> TransferredIssue:
        self._record("transfer_issue", issue_id, repository_id)
        owner, repo = repository_id.removeprefix("R_").split("/")
        return TransferredIssue(number=7, url=f"https://github.com/{owner}/{repo}/issues/7", owner=owner, repo=repo)

    def fetch_template(self, owner: str, repo: str, path: str) -> str | None:
        self._record("fetch_template", owner, repo, path)
        return self.templates.get((owner, repo, path))


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def tasklist_backend() -> FakeBackend:
    """Backend without structured sub-issues: parent links are written into bodies."""
    return FakeBackend(sub_issues=False)


@pytest.fixture
def context() -> ProjectContext:
    return ProjectContext(
        owner="acme",
        default_repo="planning",
        project_id="PVT_kwDOproject",
        team_repos={"Backend": "backend", "App": "mobile-app"},
    )


@pytest.fixture
def task_template() -> Template:
    return parse_template(TASK_TEMPLATE)

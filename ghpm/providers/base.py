"""Abstract remote backend: every project-tracker operation the core consumes."""

from abc import ABC, abstractmethod

from ghpm.models import FieldOption, Issue, ProjectField, TransferredIssue


class ProjectBackend(ABC):
    # Structured sub-issue API available; otherwise parent links are kept as tasklist lines
    supports_sub_issues: bool = True

    @abstractmethod
    def resolve_repository_id(self, owner: str, repo: str) -> str: ...

    @abstractmethod
    def resolve_issue_id(self, owner: str, repo: str, number: int) -> str: ...

    @abstractmethod
    def resolve_project_id(self, owner: str, number: int, owner_type: str) -> str: ...

    @abstractmethod
    def get_issue(self, owner: str, repo: str, number: int) -> Issue: ...

    @abstractmethod
    def create_issue(self, repository_id: str, title: str, body: str) -> Issue: ...

    @abstractmethod
    def update_issue_body(self, owner: str, repo: str, number: int, body: str) -> None: ...

    @abstractmethod
    def add_labels(self, owner: str, repo: str, number: int, labels: list[str]) -> None: ...

    @abstractmethod
    def add_issue_to_project(self, project_id: str, issue_id: str) -> str: ...

    @abstractmethod
    def find_project_item_id(self, project_id: str, issue_id: str) -> str: ...

    @abstractmethod
    def list_project_fields(self, project_id: str) -> list[ProjectField]: ...

    @abstractmethod
    def create_single_select_field(self, project_id: str, name: str, options: list[FieldOption]) -> ProjectField: ...

    @abstractmethod
    def update_field_options(self, field_id: str, options: list[FieldOption]) -> None: ...

    @abstractmethod
    def update_item_field_value(self, project_id: str, item_id: str, field_id: str, option_id: str) -> None: ...

    @abstractmethod
    def add_blocked_by(self, issue_id: str, blocking_issue_id: str) -> None: ...

    @abstractmethod
    def add_sub_issue(self, issue_id: str, sub_issue_id: str) -> None: ...

    @abstractmethod
    def remove_sub_issue(self, issue_id: str, sub_issue_id: str) -> None: ...

    @abstractmethod
    def transfer_issue(self, issue_id: str, repository_id: str) -> TransferredIssue: ...

    @abstractmethod
    def fetch_template(self, owner: str, repo: str, path: str) -> str | None:
        """Return the file content, or None when the repository has no such file."""

"""Shared pydantic models — the contract between the backend, the core and main.py."""

from enum import StrEnum

from pydantic import BaseModel, ConfigDict

from ghpm.errors import InvalidIssueReferenceError


class FieldColor(StrEnum):
    BLUE = "BLUE"
    GRAY = "GRAY"
    GREEN = "GREEN"
    ORANGE = "ORANGE"
    PINK = "PINK"
    PURPLE = "PURPLE"
    RED = "RED"
    YELLOW = "YELLOW"


class IssueRef(BaseModel):
    model_config = ConfigDict(frozen=True)

    owner: str
    repo: str
    number: int

    @classmethod
    def parse(cls, ref: str, default_owner: str | None = None, default_repo: str | None = None) -> "IssueRef":
        """Parse an issue reference.

        Accepts:
        - "owner/repo#123" — fully qualified
        - "#123" or "123" — bare number, requires default_owner and default_repo
        """
        ref = ref.strip()
        repo_part, sep, num_str = ref.rpartition("#")
        if not sep:
            num_str = ref
        if not num_str.isdigit():
            raise InvalidIssueReferenceError(
                f"Invalid issue reference '{ref}': expected 'owner/repo#number', '#number' or 'number'"
            )
        if repo_part:
            owner, slash, repo = repo_part.partition("/")
            if not slash or not owner or not repo:
                raise InvalidIssueReferenceError(f"Invalid repository path in '{ref}': expected 'owner/repo'")
            return cls(owner=owner, repo=repo, number=int(num_str))
        if not default_owner or not default_repo:
            raise InvalidIssueReferenceError(
                f"Cannot resolve bare issue number '{ref}': no default repo set. "
                "Set default_repo in your context or use owner/repo#number."
            )
        return cls(owner=default_owner, repo=default_repo, number=int(num_str))

    def same_repo(self, other: "IssueRef") -> bool:
        return (self.owner, self.repo) == (other.owner, other.repo)

    def __str__(self) -> str:
        return f"{self.owner}/{self.repo}#{self.number}"


class Issue(BaseModel):
    """A remote issue. Only ``body`` changes after creation, by replacing the model."""

    model_config = ConfigDict(frozen=True)

    id: str  # GraphQL node ID
    number: int
    url: str
    title: str
    body: str = ""
    owner: str
    repo: str

    @property
    def ref(self) -> IssueRef:
        return IssueRef(owner=self.owner, repo=self.repo, number=self.number)


class IssueDraft(BaseModel):
    type: str
    title: str
    field_values: dict[str, str] = {}


class FieldOption(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = ""
    name: str
    color: FieldColor | None = None


class ProjectField(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    options: list[FieldOption] = []

    def option(self, name: str) -> FieldOption | None:
        return next((o for o in self.options if o.name == name), None)


class TransferredIssue(BaseModel):
    """Returned by transfer_issue: the issue's identity in its new repository."""

    model_config = ConfigDict(frozen=True)

    number: int
    url: str
    owner: str
    repo: str


class ProjectContext(BaseModel):
    """Read-only view of the active configuration context."""

    model_config = ConfigDict(frozen=True)

    owner: str
    owner_type: str = "org"  # "org" | "user"
    default_repo: str
    project_id: str | None = None  # project number or ProjectV2 node ID
    team_repos: dict[str, str] = {}

    def default_ref(self, number: int) -> IssueRef:
        return IssueRef(owner=self.owner, repo=self.default_repo, number=number)

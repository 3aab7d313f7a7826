"""Moving issues to the repository mapped to their team."""

import structlog

from ghpm.errors import TransferPreconditionError
from ghpm.models import IssueRef, ProjectContext, TransferredIssue
from ghpm.providers.base import ProjectBackend

logger = structlog.get_logger()


def transfer_target(context: ProjectContext, issue: IssueRef, team: str | None) -> str:
    """Return the target repo name, or raise TransferPreconditionError. Makes no remote call."""
    if (issue.owner, issue.repo) != (context.owner, context.default_repo):
        raise TransferPreconditionError(
            f"{issue} is not in the default repository {context.owner}/{context.default_repo}"
        )
    if not team:
        raise TransferPreconditionError("no team selected")
    target = context.team_repos.get(team)
    if not target:
        available = ", ".join(context.team_repos) or "(none)"
        raise TransferPreconditionError(f"no repository mapping for team '{team}'. Available teams: {available}")
    if target == context.default_repo:
        raise TransferPreconditionError(f"team '{team}' maps to the default repository")
    return target


def transfer_issue(
    backend: ProjectBackend, context: ProjectContext, issue: IssueRef, team: str | None
) -> TransferredIssue:
    target = transfer_target(context, issue, team)
    issue_id = backend.resolve_issue_id(issue.owner, issue.repo, issue.number)
    repository_id = backend.resolve_repository_id(context.owner, target)
    moved = backend.transfer_issue(issue_id, repository_id)
    logger.info("issue_transferred", issue=str(issue), target=f"{moved.owner}/{moved.repo}#{moved.number}")
    return moved

"""Blocked-by dependencies and parent/child links between issues."""

import structlog

from ghpm import tasklist
from ghpm.errors import RelationshipConstraintError
from ghpm.models import IssueRef
from ghpm.providers.base import ProjectBackend

logger = structlog.get_logger()


def add_blocked_by(backend: ProjectBackend, blocked: IssueRef, blocking: IssueRef) -> None:
    """Record that ``blocked`` is blocked by ``blocking``.

    Both issues must live in the same repository; this is checked before
    any remote call. Cycles and duplicates are left to the remote service.
    """
    if not blocked.same_repo(blocking):
        raise RelationshipConstraintError(
            f"{blocked} cannot be blocked by {blocking}: dependencies must stay within one repository"
        )
    if blocked.number == blocking.number:
        raise RelationshipConstraintError(f"{blocked} cannot block itself")

    blocked_id = backend.resolve_issue_id(blocked.owner, blocked.repo, blocked.number)
    blocking_id = backend.resolve_issue_id(blocking.owner, blocking.repo, blocking.number)
    backend.add_blocked_by(blocked_id, blocking_id)
    logger.info("dependency_added", blocked=str(blocked), blocking=str(blocking))


def _require_same_repo_for_tasklist(parent: IssueRef, child: IssueRef) -> None:
    if not parent.same_repo(child):
        raise RelationshipConstraintError(
            f"Cannot list {child} in {parent}: tasklist references only work within one repository"
        )


def add_parent_link(backend: ProjectBackend, parent: IssueRef, child: IssueRef) -> None:
    """Make ``child`` a sub-issue of ``parent``.

    Uses the structured sub-issue API when the backend supports it,
    otherwise adds a ``- [ ] #<child>`` line to the parent's body.
    """
    if backend.supports_sub_issues:
        parent_id = backend.resolve_issue_id(parent.owner, parent.repo, parent.number)
        child_id = backend.resolve_issue_id(child.owner, child.repo, child.number)
        backend.add_sub_issue(parent_id, child_id)
    else:
        _require_same_repo_for_tasklist(parent, child)
        issue = backend.get_issue(parent.owner, parent.repo, parent.number)
        body = tasklist.add_task_reference(issue.body, child.number)
        if body != issue.body:
            backend.update_issue_body(parent.owner, parent.repo, parent.number, body)
    logger.info("parent_linked", parent=str(parent), child=str(child), structured=backend.supports_sub_issues)


def remove_parent_link(backend: ProjectBackend, parent: IssueRef, child: IssueRef) -> None:
    if backend.supports_sub_issues:
        parent_id = backend.resolve_issue_id(parent.owner, parent.repo, parent.number)
        child_id = backend.resolve_issue_id(child.owner, child.repo, child.number)
        backend.remove_sub_issue(parent_id, child_id)
    else:
        _require_same_repo_for_tasklist(parent, child)
        issue = backend.get_issue(parent.owner, parent.repo, parent.number)
        body = tasklist.remove_task_reference(issue.body, child.number)
        if body != issue.body:
            backend.update_issue_body(parent.owner, parent.repo, parent.number, body)
    logger.info("parent_unlinked", parent=str(parent), child=str(child), structured=backend.supports_sub_issues)

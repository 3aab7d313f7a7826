"""Tests for team transfers."""

import pytest

from ghpm.errors import TransferPreconditionError
from ghpm.models import IssueRef, ProjectContext
from ghpm.transfer import transfer_issue, transfer_target


def test_transfers_to_team_repo(backend, context: ProjectContext) -> None:
    moved = transfer_issue(backend, context, context.default_ref(12), "Backend")
    assert (moved.owner, moved.repo, moved.number) == ("acme", "backend", 7)
    assert backend.calls[-1] == ("transfer_issue", "I_acme/planning#12", "R_acme/backend")


def test_issue_outside_default_repo_skipped_without_remote_call(backend, context: ProjectContext) -> None:
    with pytest.raises(TransferPreconditionError, match="not in the default repository"):
        transfer_issue(backend, context, IssueRef.parse("acme/website#12"), "Backend")
    assert backend.calls == []


def test_unknown_team_lists_available(context: ProjectContext) -> None:
    with pytest.raises(TransferPreconditionError, match="Available teams: Backend, App"):
        transfer_target(context, context.default_ref(1), "Design")


def test_no_team(context: ProjectContext) -> None:
    with pytest.raises(TransferPreconditionError, match="no team"):
        transfer_target(context, context.default_ref(1), None)


def test_team_mapped_to_default_repo() -> None:
    ctx = ProjectContext(owner="acme", default_repo="planning", team_repos={"PM": "planning"})
    with pytest.raises(TransferPreconditionError, match="maps to the default repository"):
        transfer_target(ctx, ctx.default_ref(1), "PM")


def test_target(context: ProjectContext) -> None:
    assert transfer_target(context, context.default_ref(1), "App") == "mobile-app"

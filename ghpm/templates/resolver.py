"""Template resolution: local checkout → target repository → embedded default.

Each source is a strategy returning a tagged SourceResult. resolve_template
walks them in order and stops at the first one that yields a parsed template.
"""

import subprocess
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import StrEnum
from importlib import resources
from pathlib import Path

import structlog

from ghpm.errors import GhpmError, TemplateNotFoundError
from ghpm.models import ProjectContext
from ghpm.providers.base import ProjectBackend
from ghpm.templates.model import Template, parse_template, template_file_name

logger = structlog.get_logger()

TEMPLATE_DIR = ".github/ISSUE_TEMPLATE"


class TemplateSource(StrEnum):
    LOCAL = "local"
    REPOSITORY = "repository"
    EMBEDDED = "embedded"
    PROVIDED = "provided"  # caller supplied the template directly


@dataclass(frozen=True)
class ResolvedTemplate:
    template: Template
    source: TemplateSource
    location: str  # display only


@dataclass(frozen=True)
class SourceResult:
    resolved: ResolvedTemplate | None = None
    reason: str = ""

    @property
    def ok(self) -> bool:
        return self.resolved is not None


def _candidate_names(issue_type: str) -> list[str]:
    yml = template_file_name(issue_type)
    return [yml, yml.removesuffix(".yml") + ".yaml"]


def _repo_name_from_remote(url: str) -> str | None:
    """Return the repository name from a git remote URL (https or ssh)."""
    cleaned = url.strip().removesuffix("/").removesuffix(".git")
    if not cleaned:
        return None
    name = cleaned.rsplit("/", 1)[-1].rsplit(":", 1)[-1]
    return name or None


def local_repo_name(repo_root: Path) -> str | None:
    try:
        result = subprocess.run(
            ["git", "-C", str(repo_root), "remote", "get-url", "origin"],
            capture_output=True,
            text=True,
        )
    except OSError as exc:
        # git missing from PATH
        logger.debug("git_unavailable", error=str(exc))
        return None
    if result.returncode != 0:
        return None
    return _repo_name_from_remote(result.stdout)


class TemplateSourceStrategy(ABC):
    @abstractmethod
    def load(self, issue_type: str) -> SourceResult: ...


class LocalTemplateSource(TemplateSourceStrategy):
    """Templates from the working copy, used only when it is a checkout of the target repo."""

    def __init__(self, repo_root: Path, target_repo: str) -> None:
        self._root = repo_root
        self._target_repo = target_repo

    def load(self, issue_type: str) -> SourceResult:
        active = local_repo_name(self._root)
        if active != self._target_repo:
            return SourceResult(reason=f"local checkout is '{active or 'not a git repository'}', not '{self._target_repo}'")
        for name in _candidate_names(issue_type):
            path = self._root / TEMPLATE_DIR / name
            if not path.is_file():
                continue
            try:
                template = parse_template(path.read_text(encoding="utf-8"), source=str(path))
            except (GhpmError, OSError) as exc:
                return SourceResult(reason=f"local template {path}: {exc}")
            return SourceResult(ResolvedTemplate(template, TemplateSource.LOCAL, str(path)))
        return SourceResult(reason=f"no {_candidate_names(issue_type)[0]} in {self._root / TEMPLATE_DIR}")


class RemoteTemplateSource(TemplateSourceStrategy):
    def __init__(self, backend: ProjectBackend, owner: str, repo: str) -> None:
        self._backend = backend
        self._owner = owner
        self._repo = repo

    def load(self, issue_type: str) -> SourceResult:
        for name in _candidate_names(issue_type):
            path = f"{TEMPLATE_DIR}/{name}"
            try:
                content = self._backend.fetch_template(self._owner, self._repo, path)
                if content is None:
                    continue
                template = parse_template(content, source=f"{self._owner}/{self._repo}:{path}")
            except GhpmError as exc:
                return SourceResult(reason=f"repository template {path}: {exc}")
            return SourceResult(
                ResolvedTemplate(template, TemplateSource.REPOSITORY, f"{self._owner}/{self._repo} ({path})")
            )
        return SourceResult(reason=f"no {_candidate_names(issue_type)[0]} in {self._owner}/{self._repo}")


class EmbeddedTemplateSource(TemplateSourceStrategy):
    def load(self, issue_type: str) -> SourceResult:
        name = template_file_name(issue_type)
        resource = resources.files("ghpm.templates").joinpath("default", name)
        if not resource.is_file():
            return SourceResult(reason=f"no embedded default for '{issue_type}' (available: {', '.join(embedded_types())})")
        try:
            template = parse_template(resource.read_text(encoding="utf-8"), source=f"default/{name}")
        except GhpmError as exc:
            return SourceResult(reason=str(exc))
        return SourceResult(ResolvedTemplate(template, TemplateSource.EMBEDDED, "default embedded template"))


def embedded_types() -> list[str]:
    default_dir = resources.files("ghpm.templates").joinpath("default")
    return sorted(entry.name.removesuffix(".yml") for entry in default_dir.iterdir() if entry.name.endswith(".yml"))


def default_sources(
    backend: ProjectBackend, context: ProjectContext, repo_root: Path | None = None
) -> list[TemplateSourceStrategy]:
    return [
        LocalTemplateSource(repo_root or Path.cwd(), context.default_repo),
        RemoteTemplateSource(backend, context.owner, context.default_repo),
        EmbeddedTemplateSource(),
    ]


def resolve_template(issue_type: str, sources: list[TemplateSourceStrategy]) -> ResolvedTemplate:
    """Return the template from the first source that yields one.

    Raises:
        TemplateNotFoundError: every source failed; carries each failure reason.
    """
    reasons = []
    for source in sources:
        result = source.load(issue_type)
        if result.resolved is not None:
            logger.debug("template_resolved", issue_type=issue_type, source=str(result.resolved.source))
            return result.resolved
        logger.debug("template_source_skipped", issue_type=issue_type, reason=result.reason)
        reasons.append(result.reason)
    raise TemplateNotFoundError(issue_type, reasons)

"""Settings resolution with named contexts and a 4-step precedence chain."""

import os
from collections.abc import Mapping
from functools import lru_cache
from pathlib import Path

import tomlkit
import typer
from pydantic import SecretStr
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from ghpm.errors import ConfigurationError
from ghpm.models import ProjectContext

CONFIG_PATH = Path.home() / ".config" / "ghpm" / "config.toml"


class GhpmSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="GHPM_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    current_context: str | None = None  # context name, resolved by get_settings

    # GitHub auth
    github_token: SecretStr | None = None
    github_auth: str = "token"  # "token" | "gh-cli"

    # Project context
    owner: str | None = None
    owner_type: str = "org"  # "org" | "user"
    default_repo: str | None = None  # repo name under owner
    project_id: str | None = None  # project number or ProjectV2 node ID
    team_repos: dict[str, str] = {}  # team name → repo name
    sub_issues: bool = True  # False: parent links are written as tasklist lines

    log_level: str = "WARNING"

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # Context values from config.toml arrive as init kwargs; env vars and .env override them
        return env_settings, dotenv_settings, init_settings, file_secret_settings

    def project_context(self) -> ProjectContext:
        if not self.owner or not self.default_repo:
            raise ConfigurationError(
                f"Context '{self.current_context or '(none)'}' needs 'owner' and 'default_repo'. "
                f"Set them in {CONFIG_PATH} or via GHPM_OWNER / GHPM_DEFAULT_REPO."
            )
        return ProjectContext(
            owner=self.owner,
            owner_type=self.owner_type,
            default_repo=self.default_repo,
            project_id=self.project_id,
            team_repos=dict(self.team_repos),
        )


@lru_cache(maxsize=1)
def _load_toml() -> tomlkit.TOMLDocument:
    """Load ~/.config/ghpm/config.toml, returning empty document if missing."""
    if not CONFIG_PATH.exists():
        return tomlkit.document()
    return tomlkit.load(CONFIG_PATH.open())


def _list_contexts(config: Mapping) -> list[str]:
    # tomlkit Table implements MutableMapping but not dict, so check Mapping
    return [k for k, v in config.items() if isinstance(v, Mapping)]


def _plain(value: object) -> object:
    """Unwrap tomlkit containers so pydantic sees plain dicts."""
    if isinstance(value, Mapping):
        return {k: _plain(v) for k, v in value.items()}
    return value


def get_settings(context: str | None = None) -> GhpmSettings:
    """Resolve the active context and return a fully populated GhpmSettings.

    Precedence (highest to lowest):
    1. context argument (--context CLI flag)
    2. GHPM_CONTEXT env var
    3. current_context key in ~/.config/ghpm/config.toml
    4. First context defined in ~/.config/ghpm/config.toml
    """
    toml_config = _load_toml()

    active = (
        context
        or os.environ.get("GHPM_CONTEXT")
        or toml_config.get("current_context")
        or ((_contexts := _list_contexts(toml_config)) and _contexts[0] or None)
    )

    context_defaults: dict = {}
    if active:
        if active in toml_config and isinstance(toml_config[active], Mapping):
            context_defaults = _plain(toml_config[active])  # type: ignore[assignment]
        else:
            contexts = _list_contexts(toml_config)
            typer.echo(f"Context '{active}' not found in {CONFIG_PATH}. Available: {contexts or '(none)'}")
            raise typer.Exit(1)

    settings = GhpmSettings(**context_defaults)
    settings.current_context = active

    if settings.github_auth == "token" and not settings.github_token:
        typer.echo(
            "Missing GitHub credentials. Set GHPM_GITHUB_TOKEN or "
            f"github_token in the [{active or 'context'}] section of {CONFIG_PATH}, "
            'or set github_auth = "gh-cli" to use the gh CLI.'
        )
        raise typer.Exit(1)

    return settings

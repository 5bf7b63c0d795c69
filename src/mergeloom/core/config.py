"""Application state and configuration."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any, Literal

import platformdirs
from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from mergeloom.core.base import BaseConfig, BaseState
from mergeloom.core.log import Logger
from mergeloom.core.yaml_settings import APP_NAME, YamlWithIncludesSettingsSource

# ============================================================
# TEMPLATE SUBSTITUTION NAMESPACE
# ============================================================

# Usage in YAML: {platformdirs.user_log_dir}, {os.getcwd}, {Path.cwd}
TEMPLATE_NAMESPACE = {
    'os': os,
    'platformdirs': platformdirs,
    'Path': Path,
}

# ============================================================
# CONFIG MODELS (loaded from YAML/env/CLI)
# ============================================================

class StoreConfig(BaseConfig):
    """Where objects and refs live."""

    backend: Literal["local", "github", "memory"] = Field(
        default="local",
        description=(
            "'local' runs git plumbing in workdir, 'github' uses the "
            "REST API, 'memory' is an empty in-process store"
        ),
    )
    workdir: Path = Field(
        default_factory=Path.cwd,
        description="Repository for the local backend",
    )
    api_url: str = Field(
        default="https://api.github.com",
        description="GitHub API root (GitHub Enterprise: https://host/api/v3)",
    )
    token: str | None = Field(
        default=None,
        description="GitHub token (or MERGELOOM_CONFIG__STORE__TOKEN)",
    )
    owner: str | None = Field(default=None, description="Repository owner")
    repo: str | None = Field(default=None, description="Repository name")
    timeout: int = Field(
        default=30,
        description="Seconds per request or git command",
    )
    max_retries: int = Field(
        default=3,
        description="Attempts for retryable GitHub requests",
    )
    concurrency: int = Field(
        default=8,
        description="Files loaded and GitHub requests in flight at once",
    )
    rate_limit_wait: int = Field(
        default=60,
        description=(
            "Longest wait in seconds for a GitHub rate limit to reset "
            "before giving up"
        ),
    )

    def open(self, commands: dict[str, dict[str, str]] | None = None):
        """Create the object store this section describes."""
        if self.backend == "github":
            from mergeloom.git.github import GitHubStore
            return GitHubStore(
                owner=self.owner,
                repo=self.repo,
                token=self.token,
                api_url=self.api_url,
                timeout=self.timeout,
                max_retries=self.max_retries,
                max_concurrency=self.concurrency,
                max_rate_limit_wait=self.rate_limit_wait,
            )
        if self.backend == "memory":
            from mergeloom.git.store import MemoryObjectStore
            return MemoryObjectStore()

        from mergeloom.git.local import LocalGitStore
        return LocalGitStore(
            workdir=self.workdir,
            commands=(commands or {}).get("git"),
            timeout=self.timeout,
        )


class MergeConfig(BaseConfig):
    """The pull request being merged."""

    base_branch: str = Field(
        description="Branch the pull request targets (ours)"
    )
    head_branch: str = Field(
        description="Pull request branch (theirs); the branch that moves"
    )
    message: str | None = Field(
        default=None,
        description=(
            "Commit message; {base_branch} and {head_branch} are "
            "filled in. Default: Merge branch '{base_branch}' into "
            "{head_branch}"
        ),
    )
    author_name: str = Field(
        default="mergeloom",
        description="Author and committer name of the merge commit",
    )
    author_email: str = Field(
        default="mergeloom@localhost",
        description="Author and committer email of the merge commit",
    )
    session_name: str = Field(
        default="merge",
        description="Name used for log directories and the service name",
    )


class ResolveConfig(BaseConfig):
    """How conflicts get resolved without a user."""

    strategy: Literal["none", "ours", "theirs", "both"] = Field(
        default="none",
        description=(
            "Applied to every hunk still pending after the "
            "resolutions file"
        ),
    )
    resolutions_file: Path | None = Field(
        default=None,
        description="YAML file of per-path / per-conflict choices",
    )


class Config(BaseConfig):
    """Application configuration loaded from YAML/env/CLI."""

    logger: Logger = Field(
        default=None,
        description="Logger configuration and runtime instance"
    )
    store: StoreConfig = Field(
        default_factory=StoreConfig,
        description="Object store settings",
    )
    merge: MergeConfig = Field(
        description="Branches and commit identity",
    )
    resolve: ResolveConfig = Field(
        default_factory=ResolveConfig,
        description="Automatic resolution settings",
    )

    log_level: str = Field(
        default="info",
        alias="log-level",
        description=(
            "Console log level: 'spew', 'trace', 'debug', 'info', "
            "'warn', 'error', 'fatal'"
        ),
    )
    log_root: Path = Field(
        default_factory=(
            lambda: Path(platformdirs.user_state_dir()) / APP_NAME
        ),
        description=(
            "Root directory for log files "
            "(supports {platformdirs.*} templates)"
        ),
    )
    commands: dict[str, dict[str, str]] = Field(
        default_factory=dict,
        description="Command templates by category (git, ...)",
    )

    model_config = ConfigDict(populate_by_name=True)

    @model_validator(mode='after')
    def _setup_logger(self) -> 'Config':
        """Install the global logger once configuration is loaded."""
        from mergeloom.core.log import setup_logger

        if self.logger is None:
            self.logger = Logger()
        if self.logger.console.level is None or 'log_level' in self.model_fields_set:
            self.logger.console.level = self.log_level

        setup_logger(
            log_root=self.log_root,
            session_name=self.merge.session_name,
            console=self.logger.console,
            otlp=self.logger.otlp,
            file=self.logger.file,
            logfire=self.logger.logfire,
        )

        # The global logger is a separate instance from the bootstrap one
        from mergeloom.core.yaml_settings import _cleanup_bootstrap_logger
        _cleanup_bootstrap_logger()

        return self

    def close(self):
        from mergeloom.core.log import logger
        logger.close()
        super().close()


# ============================================================
# RUNTIME STATE MODELS (mutable during workflow execution)
# ============================================================

class MergeState(BaseState):
    """Merge workflow runtime state."""

    store: Any = Field(
        default=None,
        description="Open ObjectStore; preset it to skip config.store",
    )
    session: Any = Field(
        default=None,
        description="MergeSession being resolved",
    )
    status: str = Field(
        default="pending",
        description=(
            "pending, opened, pending_hunks, committed, conflict, failed"
        ),
    )
    commit_sha: str | None = Field(
        default=None,
        description="Merge commit created by the resolve command",
    )
    resolved_hunks: int = Field(
        default=0,
        description="Hunks resolved by the resolutions file or strategy",
    )

    model_config = ConfigDict(arbitrary_types_allowed=True)


class Runtime(BaseModel):
    """All runtime state, by workflow."""

    merge: MergeState = Field(
        default_factory=MergeState,
        description="Merge workflow runtime state"
    )


# ============================================================
# STATE (config + runtime combined)
# ============================================================

class State(BaseSettings):
    """Configuration plus runtime state; flows through every workflow node.

    - config: loaded from YAML/env/CLI
    - runtime: mutated while the workflow runs
    """

    config: Config = Field(
        description="Application configuration (from YAML/env/CLI)"
    )
    runtime: Runtime = Field(
        default_factory=Runtime,
        description="Runtime state (mutates during workflow execution)",
    )
    include: list[str] | None = Field(
        default=None,
        description=(
            "Additional YAML files to merge in. "
            "Use --include on CLI or include: in YAML files."
        ),
    )

    model_config = SettingsConfigDict(
        yaml_file=f"{APP_NAME}.yaml",
        env_file=".env",
        env_prefix="MERGELOOM_",
        env_nested_delimiter="__",
        cli_implicit_flags=True,
        cli_use_class_docs_for_groups=True,
        arbitrary_types_allowed=True,
        extra='ignore'
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Priority, highest first: init args, YAML layers, .env,
        environment, secrets."""
        return (
            init_settings,
            YamlWithIncludesSettingsSource(settings_cls),
            dotenv_settings,
            env_settings,
            file_secret_settings,
        )

    @model_validator(mode="after")
    def substitute_templates(self) -> "State":
        """Replace {config.*} and {platformdirs.*} templates in every
        string and Path field."""
        self._substitute_recursive(self)
        return self

    def _substitute_recursive(self, obj: Any) -> None:
        if isinstance(obj, BaseModel):
            for field_name in obj.__class__.model_fields:
                value = getattr(obj, field_name)
                new_value = self._substitute_value(value)
                if new_value is not value:
                    setattr(obj, field_name, new_value)
        elif isinstance(obj, dict):
            for key in obj:
                obj[key] = self._substitute_value(obj[key])
        elif isinstance(obj, list):
            for i in range(len(obj)):
                obj[i] = self._substitute_value(obj[i])

    def _substitute_value(self, value: Any) -> Any:
        if isinstance(value, str):
            return self._substitute_string(value)
        elif isinstance(value, Path):
            return Path(self._substitute_string(str(value)))
        elif isinstance(value, (BaseModel, dict, list)):
            self._substitute_recursive(value)
            return value
        else:
            return value

    def _substitute_string(self, value: str) -> str:
        """Replace {field.path} templates with field values.

        Unknown names are left alone, so command placeholders such as
        ``{object}`` survive for str.format later.

        Examples:
            "{config.store.workdir}/.git" -> "/home/user/repo/.git"
            "{platformdirs.user_log_dir}" -> "~/.local/state/mergeloom/log"
        """
        def replace_template(match):
            parts = match.group(1).split(".")

            if parts[0] in TEMPLATE_NAMESPACE:
                obj = TEMPLATE_NAMESPACE[parts[0]]
                parts = parts[1:]
            else:
                obj = self

            try:
                for part in parts:
                    obj = getattr(obj, part)
                if callable(obj):
                    obj = obj(APP_NAME, appauthor=False)
                return str(obj)
            except (AttributeError, TypeError):
                return match.group(0)

        return re.sub(r'\{([a-z._]+)\}', replace_template, value)


__all__ = ["State", "Config", "BaseConfig", "BaseState"]

"""
Configuration loaders for kickstart.

Settings come from the process environment layered over an optional
``<workspace>/.kickstart.env`` file; the environment wins. Per-invocation
options travel into the Prefect flows as a RunOptions model.
"""

import os
from dataclasses import dataclass
from pathlib import Path

from pydantic import BaseModel, Field

from . import envparse

ENV_FILENAME = ".kickstart.env"
DEFAULT_TIMEOUT_MS = 600_000


class ConfigError(ValueError):
    """Invalid configuration value."""


@dataclass
class Settings:
    """Resolved settings for one run."""
    workspace_root: Path
    save_ctx: bool = False
    cursor_enabled: bool = False
    opencode_timeout_ms: int = DEFAULT_TIMEOUT_MS
    cursor_timeout_ms: int = DEFAULT_TIMEOUT_MS
    issue: str | None = None
    plan: str | None = None
    pr_url: str | None = None
    notify: bool = False


def _flag(value: str | None) -> bool:
    return (value or "").strip().lower() in ("1", "true", "yes")


def _timeout(env: dict, key: str, default: int) -> int:
    raw = env.get(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigError(f"{key} must be an integer number of milliseconds, got '{raw}'") from None
    if value <= 0:
        raise ConfigError(f"{key} must be positive, got {value}")
    return value


def normalize_workspace_root(raw: str) -> Path:
    stripped = raw.rstrip("/") or "/"
    return Path(stripped)


def load_settings(environ: dict | None = None, cwd: Path | None = None) -> Settings:
    """Build Settings from the environment and .kickstart.env.

    Raises:
        ConfigError: bad timeout value or unparseable env file
    """
    environ = dict(os.environ if environ is None else environ)
    cwd = Path.cwd() if cwd is None else Path(cwd)

    workspace_root = normalize_workspace_root(environ.get("WORKSPACE_ROOT") or str(cwd))

    env: dict[str, str] = {}
    env_file = workspace_root / ENV_FILENAME
    if env_file.exists():
        try:
            env.update(envparse.load_env(env_file))
        except ValueError as e:
            raise ConfigError(f"{env_file}: {e}") from None
    env.update(environ)

    opencode_timeout = _timeout(env, "OPENCODE_TIMEOUT_MS", DEFAULT_TIMEOUT_MS)
    return Settings(
        workspace_root=workspace_root,
        save_ctx=_flag(env.get("SAVE_CTX")),
        cursor_enabled=_flag(env.get("CURSOR_ENABLED")),
        opencode_timeout_ms=opencode_timeout,
        cursor_timeout_ms=_timeout(env, "CURSOR_TIMEOUT_MS", opencode_timeout),
        issue=env.get("ISSUE") or None,
        plan=env.get("PLAN") or None,
        pr_url=env.get("PR_URL") or None,
        notify=_flag(env.get("KICKSTART_NOTIFY")),
    )


class RunOptions(BaseModel):
    """Options for one orchestrator invocation."""
    reference: str | None = Field(default=None, description="Issue URL, issue number, or local markdown path")
    full_automation: bool = Field(default=False, description="Manage branch, commit, push and PR")
    use_cursor: bool = Field(default=False, description="Use the Cursor headless agent")
    plan_name: str | None = Field(default=None, description="Plan name under plans/")
    plan_file: str | None = Field(default=None, description="Existing plan file to resume")
    preserve: bool = Field(default=False, description="Keep the scratch directory on success")
    workspace_root: str | None = Field(default=None, description="Override the workspace root")
    dry_run: bool = Field(default=False, description="Preview issue updates without writing")
    update_issue: bool = Field(default=False, description="Fill empty issue template sections")
    pr_url: str | None = Field(default=None, description="Pull request URL for fixup")

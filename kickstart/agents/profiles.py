"""
opencode permission profiles.

opencode reads a single ``opencode.json`` from the workspace root. Each phase
swaps in its own profile for the duration of the run:

    opencode.plan.json       restricted: may only write plan files and /tmp
    opencode.implement.json  permissive: required, created by the user

The original ``opencode.json`` is kept as ``opencode.json.backup`` and put
back when the phase ends, however it ends.
"""

import json
import logging
import shutil
from contextlib import contextmanager
from pathlib import Path

from kickstart.lib.validate import ValidationError, validate

logger = logging.getLogger(__name__)

ACTIVE_CONFIG = "opencode.json"
PLAN_CONFIG = "opencode.plan.json"
IMPLEMENT_CONFIG = "opencode.implement.json"
BACKUP_CONFIG = "opencode.json.backup"

PLAN_FILE_GLOBS = ("plans/**/*.plan.md", "plans/*.plan.md", "**/*.plan.md")


class ProfileError(Exception):
    """A permission profile is missing, unreadable, or could not be swapped in."""


def default_plan_profile() -> dict:
    edit = {"*": "deny", "/tmp/**": "allow"}
    for glob in PLAN_FILE_GLOBS:
        edit[glob] = "allow"
    return {
        "$schema": "https://opencode.ai/config.json",
        "permission": {
            "edit": edit,
            "bash": {"*": "allow"},
            "external_directory": "allow",
        },
    }


def _read_profile(path: Path) -> dict:
    try:
        data = json.loads(path.read_text())
    except (OSError, json.JSONDecodeError) as e:
        raise ProfileError(f"Could not read {path}: {e}") from None
    try:
        validate(data, "agent_profile")
    except ValidationError as e:
        raise ProfileError(f"Invalid profile {path}: {e}") from None
    return data


def ensure_plan_profile(workspace_root: Path) -> Path:
    """Create the restricted plan profile, or add any missing plan-file globs to it."""
    path = Path(workspace_root) / PLAN_CONFIG
    if not path.exists():
        path.write_text(json.dumps(default_plan_profile(), indent=2) + "\n")
        logger.info(f"Created default plan profile at {path}")
        return path

    data = _read_profile(path)
    edit = data.setdefault("permission", {}).setdefault("edit", {})
    if not isinstance(edit, dict):
        raise ProfileError(f"{path}: permission.edit must be an object of glob rules")
    missing = [glob for glob in PLAN_FILE_GLOBS if edit.get(glob) != "allow"]
    if missing:
        logger.warning(f"{path.name} does not allow plan files ({', '.join(missing)}); adding them")
        for glob in missing:
            edit[glob] = "allow"
        path.write_text(json.dumps(data, indent=2) + "\n")
    return path


def require_implement_profile(workspace_root: Path) -> Path:
    path = Path(workspace_root) / IMPLEMENT_CONFIG
    if not path.exists():
        raise ProfileError(
            f"Implement config not found at {path}. "
            f"Please create {IMPLEMENT_CONFIG} in the workspace root."
        )
    _read_profile(path)
    return path


def restore_profile(workspace_root: Path, had_original: bool = True) -> None:
    """Put the backed-up config back, or remove the swapped-in one if there was none."""
    root = Path(workspace_root)
    active = root / ACTIVE_CONFIG
    backup = root / BACKUP_CONFIG
    if backup.exists():
        shutil.copyfile(backup, active)
        backup.unlink()
        logger.debug(f"Restored {active} from backup")
    elif not had_original and active.exists():
        active.unlink()
        logger.debug(f"Removed swapped-in {active}")


def recover_stale_backup(workspace_root: Path) -> bool:
    """Restore a backup left behind by a run that died mid-phase."""
    backup = Path(workspace_root) / BACKUP_CONFIG
    if not backup.exists():
        return False
    logger.warning(f"Found stale {backup.name} from an interrupted run; restoring it")
    restore_profile(workspace_root)
    return True


@contextmanager
def swapped_profile(workspace_root: Path, restricted: bool):
    """Activate the plan (restricted) or implement profile for the enclosed block.

    Raises:
        ProfileError: the phase profile is missing or the swap failed
    """
    root = Path(workspace_root)
    phase = "plan" if restricted else "implement"
    recover_stale_backup(root)

    source = ensure_plan_profile(root) if restricted else require_implement_profile(root)
    active = root / ACTIVE_CONFIG
    backup = root / BACKUP_CONFIG
    had_original = active.exists()

    try:
        if had_original:
            shutil.copyfile(active, backup)
        shutil.copyfile(source, active)
    except OSError as e:
        restore_profile(root, had_original)
        raise ProfileError(f"Failed to set config for {phase} phase: {e}") from None

    logger.debug(f"Activated {source.name} for {phase} phase")
    try:
        yield source
    finally:
        restore_profile(root, had_original)

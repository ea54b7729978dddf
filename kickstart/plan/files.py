"""Plan file locations under the workspace.

Plan files live in ``<workspace>/plans/<name>.plan.md``. The file is the only
state that survives between runs, so a later ``loop`` invocation can pick up
where a previous one stopped.
"""

import logging
import re
from pathlib import Path

logger = logging.getLogger(__name__)

PLANS_DIRNAME = "plans"
PLAN_SUFFIX = ".plan.md"

ISSUE_URL_RE = re.compile(r'https://github\.com/([^/\s]+)/([^/\s]+)/issues/(\d+)')


def normalize_plan_name(name: str) -> str:
    """Strip whitespace and a trailing ``.plan.md`` the user may have typed."""
    name = name.strip()
    if name.endswith(PLAN_SUFFIX):
        name = name[:-len(PLAN_SUFFIX)]
    return name


def plan_path(workspace_root: Path, name: str) -> Path:
    """Path of the plan file for ``name``.

    Raises:
        ValueError: name is empty or escapes the plans directory
    """
    name = normalize_plan_name(name)
    if not name:
        raise ValueError("Plan name is required")
    if "/" in name or "\\" in name or name in (".", ".."):
        raise ValueError(f"Invalid plan name: {name}")
    return Path(workspace_root) / PLANS_DIRNAME / f"{name}{PLAN_SUFFIX}"


def ensure_plans_dir(workspace_root: Path) -> Path:
    plans_dir = Path(workspace_root) / PLANS_DIRNAME
    plans_dir.mkdir(parents=True, exist_ok=True)
    return plans_dir


def read_existing_plan(path: Path) -> str | None:
    """Content of an existing non-empty plan file, or None."""
    path = Path(path)
    if not path.is_file():
        return None
    content = path.read_text()
    return content if content.strip() else None


def relative_to_workspace(path: Path, workspace_root: Path) -> str:
    """Path relative to the workspace for user-facing hints, absolute if outside it."""
    path = Path(path).resolve()
    try:
        return str(path.relative_to(Path(workspace_root).resolve()))
    except ValueError:
        return str(path)


def delete_plan(path: Path) -> bool:
    """Remove a finished plan file. Failure is logged, not raised."""
    try:
        Path(path).unlink()
        return True
    except FileNotFoundError:
        return False
    except OSError as e:
        logger.warning(f"Could not delete plan file {path}: {e}")
        return False


def extract_issue_url(plan_text: str) -> tuple[str, str, int] | None:
    """First GitHub issue link in a plan as (owner, repo, number)."""
    match = ISSUE_URL_RE.search(plan_text)
    if not match:
        return None
    return match.group(1), match.group(2), int(match.group(3))

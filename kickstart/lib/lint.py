"""Best-effort lint after the implement phase.

The first matching project linter runs; a workspace with none is skipped.
"""

import json
import logging
import re
import subprocess
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

LINT_TIMEOUT_SECONDS = 300

MAKE_LINT_RE = re.compile(r'^lint\s*:', re.MULTILINE)
RUFF_SECTION_RE = re.compile(r'^\[tool\.ruff', re.MULTILINE)


@dataclass
class LintResult:
    ran: bool
    success: bool
    commands: list[list[str]]
    output: str = ""


def _read(path: Path) -> str:
    try:
        return path.read_text()
    except OSError:
        return ""


def _has_npm_lint(path: Path) -> bool:
    try:
        scripts = json.loads(path.read_text()).get("scripts") or {}
    except (OSError, json.JSONDecodeError, AttributeError):
        return False
    return "lint" in scripts


def _deno_commands(path: Path) -> list[list[str]]:
    try:
        tasks = json.loads(path.read_text()).get("tasks") or {}
    except (OSError, json.JSONDecodeError, AttributeError):
        tasks = {}
    if "check" in tasks:
        return [["deno", "task", "check"]]
    return [["deno", "fmt"], ["deno", "lint"]]


def detect_lint_commands(workspace_root: Path) -> list[list[str]]:
    """Commands for the first lint setup found, or [] to skip."""
    root = Path(workspace_root)

    makefile = root / "Makefile"
    if makefile.exists() and MAKE_LINT_RE.search(_read(makefile)):
        return [["make", "lint"]]

    pyproject = root / "pyproject.toml"
    if (root / "ruff.toml").exists() or (pyproject.exists() and RUFF_SECTION_RE.search(_read(pyproject))):
        return [["ruff", "check", "."]]

    if (root / "deno.json").exists():
        return _deno_commands(root / "deno.json")

    package_json = root / "package.json"
    if package_json.exists() and _has_npm_lint(package_json):
        return [["npm", "run", "lint"]]

    return []


def run_lint(workspace_root: Path) -> LintResult:
    """Run the detected lint commands in order, stopping at the first failure.

    Never raises; a missing tool or timeout is reported as a failed result.
    """
    commands = detect_lint_commands(workspace_root)
    if not commands:
        return LintResult(ran=False, success=True, commands=[])

    output = []
    for cmd in commands:
        logger.debug(f"Lint: {' '.join(cmd)}")
        try:
            result = subprocess.run(
                cmd,
                cwd=str(workspace_root),
                capture_output=True,
                text=True,
                stdin=subprocess.DEVNULL,
                timeout=LINT_TIMEOUT_SECONDS,
            )
        except FileNotFoundError:
            return LintResult(ran=True, success=False, commands=commands,
                              output=f"{cmd[0]}: command not found")
        except subprocess.TimeoutExpired:
            return LintResult(ran=True, success=False, commands=commands,
                              output=f"{' '.join(cmd)} timed out after {LINT_TIMEOUT_SECONDS}s")

        output.append(result.stdout + result.stderr)
        if result.returncode != 0:
            return LintResult(ran=True, success=False, commands=commands, output="".join(output))

    return LintResult(ran=True, success=True, commands=commands, output="".join(output))

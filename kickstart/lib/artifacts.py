"""
Workspace artifacts written after a run.

AGENTS.md gives future agent runs the project's commands and explains how
kickstart plan files work. An existing AGENTS.md is only ever appended to.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path

from kickstart.plan import document as plan_doc

logger = logging.getLogger(__name__)

KICKSTART_SECTION = "Using kickstart"
CURSOR_RULES_PATH = Path(".cursor") / "rules" / "kickstart.mdc"

AGENTS_MD_HEADER = (
    "# AGENTS.md\n\n"
    "This file provides instructions for agentic coding agents operating in this repository.\n"
)


@dataclass
class WorkspaceAnalysis:
    runtime: str = "unknown"
    package_manager: str = "unknown"
    has_deno: bool = False
    has_node: bool = False
    has_python: bool = False
    has_rust: bool = False
    has_go: bool = False
    deno_tasks: dict = field(default_factory=dict)
    node_scripts: dict = field(default_factory=dict)


def _read_json(path: Path) -> dict:
    try:
        data = json.loads(path.read_text())
    except (OSError, json.JSONDecodeError):
        return {}
    return data if isinstance(data, dict) else {}


def analyze_workspace(workspace_root: Path) -> WorkspaceAnalysis:
    """Detect project types; the first one found names the runtime."""
    root = Path(workspace_root)
    result = WorkspaceAnalysis()

    def claim(runtime: str, package_manager: str) -> None:
        if result.runtime == "unknown":
            result.runtime = runtime
            result.package_manager = package_manager

    if (root / "deno.json").exists():
        result.has_deno = True
        result.deno_tasks = _read_json(root / "deno.json").get("tasks") or {}
        claim("Deno", "Deno imports")
    if (root / "package.json").exists():
        result.has_node = True
        result.node_scripts = _read_json(root / "package.json").get("scripts") or {}
        claim("Node.js", "npm/yarn/pnpm")
    if (root / "pyproject.toml").exists():
        result.has_python = True
        claim("Python", "pip/poetry")
    elif (root / "requirements.txt").exists():
        result.has_python = True
        claim("Python", "pip")
    if (root / "Cargo.toml").exists():
        result.has_rust = True
        claim("Rust", "Cargo")
    if (root / "go.mod").exists():
        result.has_go = True
        claim("Go", "go mod")
    return result


def suggest_commands(analysis: WorkspaceAnalysis) -> dict[str, str]:
    """lint/test (always) and build/format (when known) commands."""
    commands = {
        "lint": "echo 'No linting configured'",
        "test": "echo 'No tests configured'",
    }
    if analysis.has_deno:
        tasks = analysis.deno_tasks
        commands["lint"] = tasks.get("check") or tasks.get("lint") or "deno task check"
        commands["test"] = tasks.get("test") or "deno test"
        commands["format"] = tasks.get("fmt") or "deno fmt"
        if tasks.get("dev"):
            commands["build"] = tasks["dev"]
    elif analysis.has_node:
        scripts = analysis.node_scripts
        commands["lint"] = scripts.get("lint") or "npm run lint"
        commands["test"] = scripts.get("test") or "npm test"
        if scripts.get("build"):
            commands["build"] = scripts["build"]
    elif analysis.has_python:
        commands["lint"] = "ruff check ."
        commands["test"] = "pytest"
    elif analysis.has_rust:
        commands.update(lint="cargo clippy", test="cargo test", build="cargo build")
    elif analysis.has_go:
        commands.update(lint="go vet ./...", test="go test ./...", build="go build ./...")
    return commands


def kickstart_section() -> str:
    return (
        f"## {KICKSTART_SECTION}\n\n"
        "Work in this repository may be driven by kickstart plan files in `plans/*.plan.md`.\n\n"
        "- Plan files have a `# Title`, `## Overview`, `## Implementation Plan` and\n"
        "  `## Acceptance Criteria` with `- [ ]` / `- [x]` checkboxes.\n"
        "- When implementing, check off only the criteria you actually completed.\n"
        "  Never reorder, reword or remove criteria.\n"
        "- To continue an incomplete plan: `kickstart loop --plan-file plans/<name>.plan.md`\n"
    )


def render_agents_md(analysis: WorkspaceAnalysis) -> str:
    commands = suggest_commands(analysis)
    lines = [AGENTS_MD_HEADER, "## Project Overview\n"]
    lines.append(f"- Runtime: {analysis.runtime}")
    lines.append(f"- Package manager: {analysis.package_manager}\n")
    lines.append("## Build, Lint and Test\n")
    for name in ("build", "lint", "test", "format"):
        if name in commands:
            lines.append(f"- {name.capitalize()}: `{commands[name]}`")
    lines.append("")
    lines.append(kickstart_section())
    return "\n".join(lines)


def update_agents_md(workspace_root: Path) -> str:
    """Create AGENTS.md or append the kickstart section to an existing one.

    Returns:
        "created", "updated" or "unchanged"
    """
    path = Path(workspace_root) / "AGENTS.md"
    if not path.exists():
        path.write_text(render_agents_md(analyze_workspace(workspace_root)))
        logger.info(f"Created {path}")
        return "created"

    content = path.read_text()
    if plan_doc.parse(content).section(KICKSTART_SECTION) is not None:
        return "unchanged"

    path.write_text(content.rstrip("\n") + "\n\n" + kickstart_section())
    logger.info(f"Added '{KICKSTART_SECTION}' section to {path}")
    return "updated"


def render_cursor_rules() -> str:
    return (
        "---\n"
        "description: kickstart plan files and workflow\n"
        "alwaysApply: false\n"
        "globs: plans/**/*.plan.md\n"
        "---\n\n"
        "# kickstart\n\n"
        "Plan files in `plans/` track work driven by kickstart.\n\n"
        "- `kickstart start <issue>`: plan and implement an issue\n"
        "- `kickstart prep <issue>`: write the plan only\n"
        "- `kickstart loop --plan-file <path>`: continue an incomplete plan\n"
        "- `kickstart fixup <pr-url>`: address PR review feedback\n\n"
        "When editing a plan file, only flip `- [ ]` to `- [x]` for completed criteria.\n"
    )


def write_cursor_rules(workspace_root: Path) -> Path:
    path = Path(workspace_root) / CURSOR_RULES_PATH
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(render_cursor_rules())
    return path


def generate_artifacts(workspace_root: Path, use_cursor: bool = False) -> list[str]:
    """Write all artifacts; returns a short description per artifact."""
    done = [f"AGENTS.md {update_agents_md(workspace_root)}"]
    if use_cursor:
        done.append(f"{write_cursor_rules(workspace_root)} written")
    return done

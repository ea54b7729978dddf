"""
Prompt loader for kickstart.

Loads prompt templates from kickstart/prompts/ and assembles the combined
prompt file handed to the agent for each phase.

Templates use Python str.format() syntax: {variable_name}
Use {{ and }} for literal braces.

HTML comments (<!-- ... -->) are stripped before rendering - use them for
documentation that shouldn't be sent to the agent.
"""

import logging
import re
from functools import lru_cache
from pathlib import Path

logger = logging.getLogger(__name__)

__all__ = [
    "PromptError",
    "PROMPTS_DIR",
    "PHASE_MARKERS",
    "MANIFEST_FILES",
    "load_prompt",
    "render_prompt",
    "build_section",
    "clear_cache",
    "inject_before_marker",
    "with_plan_path",
    "find_manifest",
    "assemble_combined_prompt",
]

_HTML_COMMENT_PATTERN = re.compile(r'<!--.*?-->\s*', re.DOTALL)

PROMPTS_DIR = Path(__file__).resolve().parent.parent / "prompts"

# The line each system prompt uses to introduce the appended context
PHASE_MARKERS = {
    "plan": "---\n\nThe issue context will be provided below.",
    "implement": "---\n\nThe issue context and plan output",
    "fixup": "---\n\nThe PR context (description + comments) will be provided below.",
}

# Template that tells the agent where the plan file lives, per phase
PLAN_PATH_TEMPLATES = {
    "plan": "plan_path_plan",
    "implement": "plan_path_implement",
    "fixup": "plan_path_fixup",
}

MANIFEST_FILES = ("pyproject.toml", "package.json", "deno.json")

SECTION_SEPARATOR = "\n\n---\n\n"


class PromptError(Exception):
    """Raised when prompt loading or rendering fails."""
    pass


@lru_cache(maxsize=32)
def load_prompt(name: str) -> str:
    """
    Load a prompt template by name (cached).

    Args:
        name: Prompt name without extension (e.g., 'plan', 'implement')

    Returns:
        Prompt template content (HTML comments stripped)

    Raises:
        PromptError: If prompt file doesn't exist
    """
    prompt_path = PROMPTS_DIR / f"{name}.md"

    if not prompt_path.exists():
        raise PromptError(
            f"Prompt template '{name}' not found. "
            f"Expected file: {prompt_path}"
        )

    logger.debug(f"Loading prompt template: {name}")
    content = _HTML_COMMENT_PATTERN.sub('', prompt_path.read_text())
    return content.lstrip()


def render_prompt(name: str, **kwargs) -> str:
    """
    Load and render a prompt template with variables.

    Raises:
        PromptError: If template not found or required variable missing

    Example:
        render_prompt('plan_path_plan', path='/repo/plans/login.plan.md')
    """
    template = load_prompt(name)
    try:
        return template.format(**kwargs)
    except KeyError as e:
        raise PromptError(
            f"Missing required variable {e} in prompt '{name}'. "
            f"Provided: {list(kwargs.keys())}"
        ) from e


def build_section(content: str | None, header: str) -> str:
    """``---`` separator, header and content; empty string when there is no content."""
    if not content or not content.strip():
        return ""
    return f"{SECTION_SEPARATOR}{header}\n{content}"


def clear_cache():
    """Clear the prompt cache (useful for testing)."""
    load_prompt.cache_clear()


def inject_before_marker(prompt: str, instruction: str, marker: str) -> str:
    """Insert ``instruction`` right before ``marker``, or append it if the marker is absent."""
    instruction = instruction.strip()
    index = prompt.find(marker)
    if index == -1:
        return f"{prompt.rstrip()}\n\n{instruction}\n"
    head = prompt[:index].rstrip()
    return f"{head}\n\n{instruction}\n\n{prompt[index:]}"


def with_plan_path(system_prompt: str, phase: str, plan_path: Path, continuing: bool = False) -> str:
    """System prompt with the phase's plan-file instruction injected.

    ``continuing`` adds the note asking the plan phase to revise, not replace.

    Raises:
        PromptError: unknown phase
    """
    if phase not in PLAN_PATH_TEMPLATES:
        raise PromptError(f"No plan path instruction for phase '{phase}'")
    instruction = render_prompt(PLAN_PATH_TEMPLATES[phase], path=str(plan_path))
    if continuing and phase == "plan":
        instruction = f"{instruction.rstrip()}\n\n{load_prompt('continuation_note').strip()}"
    return inject_before_marker(system_prompt, instruction, PHASE_MARKERS[phase])


def find_manifest(workspace_root: Path) -> Path | None:
    """First project manifest present in the workspace."""
    for name in MANIFEST_FILES:
        path = Path(workspace_root) / name
        if path.is_file():
            return path
    return None


def _read_optional(path: Path) -> str | None:
    try:
        return path.read_text()
    except FileNotFoundError:
        return None


def assemble_combined_prompt(
    system_prompt: str,
    workspace_root: Path,
    issue_context: str | None = None,
    previous_plan: str | None = None,
    plan_output: str | None = None,
) -> str:
    """
    Build the full prompt file content for one phase.

    Order: system prompt, project guidelines (AGENTS.md), project manifest,
    previous plan, plan phase output, issue context. Absent parts are skipped.
    """
    root = Path(workspace_root)
    parts = [system_prompt.rstrip()]

    parts.append(build_section(_read_optional(root / "AGENTS.md"), "# Project Guidelines (AGENTS.md)"))

    manifest = find_manifest(root)
    if manifest is not None:
        parts.append(build_section(manifest.read_text(), f"# Project Configuration ({manifest.name})"))

    parts.append(build_section(previous_plan, "# Previous Plan\n"))
    parts.append(build_section(plan_output, "# Plan Phase Output"))
    parts.append(build_section(issue_context, "# Issue Context"))

    return "".join(parts) + "\n"

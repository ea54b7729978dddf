"""
Fill empty issue template sections with the agent.

The agent runs with the restricted plan profile and prints the complete set
of ``##`` sections on stdout. The new body is the original frontmatter plus
those sections, and it is only accepted if every non-empty section survived
unchanged.
"""

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

from kickstart.agents.runner import AgentResult
from kickstart.lib import github
from kickstart.lib import output as out
from kickstart.lib.config import RunOptions, Settings
from kickstart.lib.issues import WorkItemError, classify_input, resolve_issue
from kickstart.lib.prompts import assemble_combined_prompt, load_prompt
from kickstart.plan import document as plan_doc
from kickstart.runner.context import RunContext
from kickstart.runner.stages import StageError, run_stage
from kickstart.workflow.orchestrator import default_phase_runner

logger = logging.getLogger(__name__)

FENCE_RE = re.compile(r'^\s*```')
SECTION_START_RE = re.compile(r'^##\s+', re.MULTILINE)


@dataclass
class FillResult:
    updated: bool
    body: str = ""
    filled_sections: list[str] = field(default_factory=list)
    skipped_sections: list[str] = field(default_factory=list)
    error: str | None = None

    @property
    def exit_code(self) -> int:
        return 1 if self.error else 0


def extract_sections(agent_output: str) -> str | None:
    """Agent stdout from the first ``##`` heading on, with code fences removed."""
    lines = [line for line in agent_output.split("\n") if not FENCE_RE.match(line)]
    text = "\n".join(lines)
    match = SECTION_START_RE.search(text)
    if not match:
        return None
    return text[match.start():].strip()


def reassemble_body(frontmatter: str, sections: str) -> str:
    if frontmatter.strip():
        return f"{frontmatter.rstrip()}\n\n{sections.strip()}\n"
    return f"{sections.strip()}\n"


def build_fill_context(number: int, title: str, body: str, empty: list[plan_doc.Section]) -> str:
    listing = "\n".join(f"- {section.header}" for section in empty)
    return (
        f"# Issue #{number}: {title}\n\n"
        f"## Empty Sections\n\n{listing}\n\n"
        f"## Current Issue Body\n\n```markdown\n{body}\n```\n"
    )


def fill_issue_template(
    settings: Settings,
    options: RunOptions,
    agent,
    phase_runner: Callable[..., AgentResult] = default_phase_runner,
) -> FillResult:
    """Fill the empty sections of an issue body; preview only on dry run."""
    workspace_root = Path(options.workspace_root or settings.workspace_root)
    reference = options.reference or settings.issue
    try:
        classified = classify_input(reference or "")
    except WorkItemError as e:
        return FillResult(updated=False, error=str(e))
    if classified.issue_ref is None:
        return FillResult(
            updated=False,
            error="--update-issue requires an issue URL or number, not a file path",
        )

    try:
        item = resolve_issue(classified.issue_ref, workspace_root)
    except WorkItemError as e:
        return FillResult(updated=False, error=str(e))

    original = plan_doc.parse(item.body)
    if not original.sections:
        return FillResult(updated=False, body=item.body, error="Issue body has no ## sections to fill.")

    empty = [section for section in original.sections if section.is_empty]
    skipped = [section.title for section in original.sections if not section.is_empty]
    if not empty:
        out.info("All sections are already filled.")
        return FillResult(updated=False, body=item.body, skipped_sections=skipped)

    out.info(f"Filling {len(empty)} empty section(s): {', '.join(s.title for s in empty)}")
    ctx = RunContext.create(workspace_root, mode="fill_issue",
                            preserve=options.preserve or settings.save_ctx)
    context = build_fill_context(item.number, item.title, item.body, empty)
    ctx.issue_context_path.write_text(context)

    def run_agent() -> AgentResult:
        ctx.plan_prompt_path.write_text(
            assemble_combined_prompt(load_prompt("prep"), workspace_root, issue_context=context)
        )
        result = phase_runner(agent, "plan", ctx.plan_prompt_path, workspace_root, True,
                              log_file=ctx.agent_log_path("prep"))
        ctx.output_path("prep", "stdout").write_text(result.stdout)
        ctx.output_path("prep", "stderr").write_text(result.stderr)
        if not result.success:
            raise StageError("fill_issue", f"Agent failed with exit code {result.exit_code}", result.exit_code)
        return result

    def build_body() -> str:
        sections = extract_sections(result.stdout)
        if sections is None:
            raise StageError("verify", "Agent output did not contain any ## sections")
        body = reassemble_body(original.frontmatter, sections)
        violations = plan_doc.verify_preserved(original, plan_doc.parse(body))
        if violations:
            raise StageError("verify", "Agent modified protected content: " + "; ".join(violations))
        return body

    try:
        result = run_stage(ctx, "fill_issue", run_agent)
        body = run_stage(ctx, "verify", build_body)
    except StageError as e:
        ctx.write_result("failed", failed_stage=e.stage, error=e.message)
        out.info(f"Debug files preserved in: {ctx.tmp_dir}")
        return FillResult(updated=False, error=e.message, skipped_sections=skipped)

    updated_doc = plan_doc.parse(body)
    filled = []
    for section in empty:
        counterpart = updated_doc.section(section.title)
        if counterpart is not None and not counterpart.is_empty:
            filled.append(section.title)

    if options.dry_run:
        out.block("Preview (dry run)", body)
        ctx.write_result("complete")
        ctx.finish(success=True)
        return FillResult(updated=False, body=body, filled_sections=filled, skipped_sections=skipped)

    try:
        github.update_issue_body(item.owner, item.repo, item.number, body, workspace_root)
    except github.GitHubError as e:
        ctx.write_result("failed", failed_stage="update_issue", error=str(e))
        return FillResult(updated=False, body=body, error=str(e),
                          filled_sections=filled, skipped_sections=skipped)

    out.success(f"Updated issue #{item.number}: filled {', '.join(filled) or 'no sections'}")
    ctx.write_result("complete")
    ctx.finish(success=True)
    return FillResult(updated=True, body=body, filled_sections=filled, skipped_sections=skipped)

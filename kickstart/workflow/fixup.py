"""
Address review feedback on an open pull request.

Fetches the PR with its comments and reviews, switches to the PR head
branch, writes ``plans/fixup-pr-<N>.plan.md`` with acceptance criteria
derived from the feedback, and runs the implement phase against it.
Changes are left uncommitted so they can be reviewed before pushing.
"""

import logging
import re
from pathlib import Path
from typing import Callable

from kickstart.agents.runner import AgentResult
from kickstart.lib import github
from kickstart.lib import output as out
from kickstart.lib.config import RunOptions, Settings
from kickstart.lib.issues import WorkItemError
from kickstart.plan import files as plan_files
from kickstart.vcs import VcsBackend, require_backend
from kickstart.workflow.decisions import DecisionProvider
from kickstart.workflow.orchestrator import Orchestrator, RunOutcome, default_phase_runner

logger = logging.getLogger(__name__)

FIXUP_PLAN_PREFIX = "fixup-pr-"
MIN_FEEDBACK_LENGTH = 20
SNIPPET_LENGTH = 80
DEFAULT_CRITERION = "Review PR feedback and determine if any changes are needed"

# Conversation comments that carry no actionable feedback
ACKNOWLEDGEMENT_RE = re.compile(r'^(lgtm|looks good|thanks|ok|nice)', re.IGNORECASE)


def fixup_plan_name(number: int) -> str:
    return f"{FIXUP_PLAN_PREFIX}{number}"


def _snippet(text: str) -> str:
    first_line = text.strip().split("\n", 1)[0].strip()
    if len(first_line) > SNIPPET_LENGTH:
        return first_line[:SNIPPET_LENGTH] + "..."
    return first_line


def _active_reviews(pr: github.PullRequest) -> list[github.Review]:
    return [r for r in pr.reviews if r.state != "DISMISSED"]


def format_pr_context(pr: github.PullRequest) -> str:
    """PR description and all feedback as markdown, line comments grouped by file."""
    parts = [
        f"# PR #{pr.number}: {pr.title}\n\n"
        f"URL: {pr.url}\n"
        f"Branch: {pr.head_branch}\n",
        f"## Description\n\n{pr.body.strip() or '(no description)'}\n",
    ]

    if pr.comments:
        lines = ["## Conversation Comments\n"]
        for comment in pr.comments:
            lines.append(f"### {comment.author}\n\n{comment.body.strip()}\n")
        parts.append("\n".join(lines))

    reviews = [r for r in _active_reviews(pr) if r.body.strip()]
    if reviews:
        lines = ["## Code Reviews\n"]
        for review in reviews:
            lines.append(f"### {review.author} ({review.state})\n\n{review.body.strip()}\n")
        parts.append("\n".join(lines))

    if pr.review_comments:
        by_file: dict[str, list[github.ReviewComment]] = {}
        for comment in pr.review_comments:
            by_file.setdefault(comment.path, []).append(comment)
        lines = ["## Line Comments\n"]
        for path, comments in by_file.items():
            lines.append(f"### `{path}`\n")
            for comment in comments:
                where = f"line {comment.line}" if comment.line else "file"
                lines.append(f"- **{comment.author}** ({where}): {comment.body.strip()}")
            lines.append("")
        parts.append("\n".join(lines))

    return "\n".join(parts)


def derive_acceptance_criteria(pr: github.PullRequest) -> list[str]:
    criteria = []
    for review in _active_reviews(pr):
        if len(review.body.strip()) > MIN_FEEDBACK_LENGTH:
            state = review.state.lower().replace("_", " ")
            criteria.append(f"Address {review.author}'s review ({state}): \"{_snippet(review.body)}\"")

    for comment in pr.review_comments:
        location = f"{comment.path}:{comment.line}" if comment.line else comment.path
        criteria.append(f"Address feedback in `{location}`: \"{_snippet(comment.body)}\"")

    for comment in pr.comments:
        body = comment.body.strip()
        if len(body) < MIN_FEEDBACK_LENGTH or ACKNOWLEDGEMENT_RE.match(body):
            continue
        criteria.append(f"Address {comment.author}'s comment: \"{_snippet(body)}\"")

    return criteria or [DEFAULT_CRITERION]


def render_fixup_plan(pr: github.PullRequest, criteria: list[str]) -> str:
    checklist = "\n".join(f"- [ ] {item}" for item in criteria)
    return (
        f"# Fixup: {pr.title}\n\n"
        f"## Overview\n\n"
        f"Address feedback on PR #{pr.number}.\n\n"
        f"- PR URL: {pr.url}\n"
        f"- Branch: {pr.head_branch}\n\n"
        f"## PR Context\n\n"
        f"- {len(pr.comments)} conversation comment(s)\n"
        f"- {len(_active_reviews(pr))} review(s)\n"
        f"- {len(pr.review_comments)} line comment(s)\n\n"
        f"## Implementation Plan\n\n"
        f"## Acceptance Criteria\n\n"
        f"{checklist}\n"
    )


def checkout_pr_branch(backend: VcsBackend, pr: github.PullRequest, workspace_root: Path) -> None:
    current = backend.current_branch()
    if current == pr.head_branch:
        return
    out.info(f"Switching from {current or '(detached)'} to {backend.branch_term} {pr.head_branch}")
    if backend.gh_checkout and github.checkout_pull_request(pr.number, workspace_root):
        return
    backend.checkout_remote_branch(pr.head_branch)


def write_fixup_plan(workspace_root: Path, pr: github.PullRequest) -> Path:
    path = plan_files.plan_path(workspace_root, fixup_plan_name(pr.number))
    plan_files.ensure_plans_dir(workspace_root)
    if path.exists():
        logger.info(f"Overwriting existing fixup plan {path}")
    path.write_text(render_fixup_plan(pr, derive_acceptance_criteria(pr)))
    return path


def run_fixup(
    settings: Settings,
    options: RunOptions,
    decisions: DecisionProvider,
    agent,
    phase_runner: Callable[..., AgentResult] = default_phase_runner,
) -> RunOutcome:
    """Fetch PR feedback, write the fixup plan and implement it in place.

    Raises:
        WorkItemError: PR URL missing or malformed
        GitHubError: gh failed
        VcsError: no repository, or the PR branch could not be checked out
    """
    workspace_root = Path(options.workspace_root or settings.workspace_root)
    url = options.pr_url or settings.pr_url
    if not url:
        raise WorkItemError("A pull request URL is required (--pr-url or PR_URL)")
    parsed = github.parse_pr_url(url)
    if parsed is None:
        raise WorkItemError(f"Invalid PR URL: {url}. Expected https://github.com/<owner>/<repo>/pull/<number>")
    owner, repo, number = parsed

    backend = require_backend(workspace_root)
    out.info(f"Fetching PR #{number} from {owner}/{repo}")
    pr = github.fetch_pull_request(owner, repo, number, workspace_root)
    out.info(f"{len(pr.comments)} comment(s), {len(pr.reviews)} review(s), "
             f"{len(pr.review_comments)} line comment(s)")

    checkout_pr_branch(backend, pr, workspace_root)
    plan_path = write_fixup_plan(workspace_root, pr)
    out.info(f"Fixup plan: {plan_files.relative_to_workspace(plan_path, workspace_root)}")

    orchestrator = Orchestrator(settings, options, decisions, agent, phase_runner=phase_runner)
    outcome = orchestrator.run_from_plan(plan_path, prompt_name="fixup",
                                         context=format_pr_context(pr), mode="fixup")
    if not outcome.success:
        return outcome

    if backend.has_changes():
        out.success("Changes made by the agent:")
        for path in backend.changed_files():
            out.info(f"  {path}")
        out.info(f"Review them with `{backend.binary} diff`, then commit and push "
                 f"to update PR #{pr.number}.")
    else:
        out.info("No changes were made by the agent.")
    return outcome

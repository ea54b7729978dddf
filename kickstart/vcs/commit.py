"""Commit, push and branch cleanup."""

import logging

from kickstart.vcs.backends import VcsError
from kickstart.vcs.branch import VcsContext

logger = logging.getLogger(__name__)

SUBJECT_MAX_LENGTH = 50
ELLIPSIS = "…"


def format_subject(number: int, title: str) -> str:
    """``#<n> <title>`` capped at 50 characters including the ellipsis."""
    subject = f"#{number} {title}".strip()
    if len(subject) <= SUBJECT_MAX_LENGTH:
        return subject
    return subject[:SUBJECT_MAX_LENGTH - 1] + ELLIPSIS


def commit_and_push(ctx: VcsContext, number: int, title: str) -> str:
    """Stage everything, commit and push the working branch.

    Force-with-lease is only used on branches this run created; a reused
    branch is pushed normally.

    Returns:
        The commit subject

    Raises:
        VcsError: any step failed
    """
    subject = format_subject(number, title)
    ctx.backend.stage_all()
    ctx.backend.commit(subject)
    ctx.backend.push(ctx.branch_name, force_with_lease=ctx.owns_branch)
    logger.info(f"Pushed {subject} to {ctx.branch_name}")
    return subject


def cleanup(ctx: VcsContext | None) -> None:
    """Return to the previous branch and delete the one this run created.

    Never raises.
    """
    if ctx is None or not ctx.owns_branch:
        return
    try:
        ctx.backend.checkout(ctx.previous_branch)
        ctx.backend.delete_branch(ctx.branch_name)
        logger.info(f"Removed {ctx.backend.branch_term} {ctx.branch_name}")
    except VcsError as e:
        logger.warning(f"Branch cleanup failed for {ctx.branch_name}: {e}")

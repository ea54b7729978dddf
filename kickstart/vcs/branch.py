"""Working branch selection for a work item."""

import logging
import re
from dataclasses import dataclass

from kickstart.vcs.backends import VcsBackend, VcsError

logger = logging.getLogger(__name__)

BRANCH_PREFIX = "kickstart/"
SLUG_MAX_LENGTH = 50


def slugify(title: str) -> str:
    """Lowercase, non-alphanumerics to single hyphens, capped at 50 chars."""
    slug = re.sub(r'[^a-z0-9]', '-', title.lower())
    slug = re.sub(r'-+', '-', slug).strip('-')
    return slug[:SLUG_MAX_LENGTH]


def generate_branch_name(number: int, title: str) -> str:
    """e.g. (42, "Fix Login Bug!!") -> kickstart/issue_42_fix-login-bug"""
    return f"{BRANCH_PREFIX}issue_{number}_{slugify(title)}"


@dataclass
class VcsContext:
    """Branch state for one run."""
    backend: VcsBackend
    branch_name: str
    previous_branch: str
    created: bool = False

    @property
    def owns_branch(self) -> bool:
        """True when this run created the branch and may rewrite or delete it."""
        return self.created and self.branch_name != self.previous_branch


def prepare_branch(backend: VcsBackend, number: int, title: str, decisions) -> VcsContext:
    """Reuse the current branch or create one for the work item.

    ``decisions`` supplies the ``use_current_branch`` and ``branch_name``
    answers. A clean tree is required before anything is created.

    Raises:
        VcsError: dirty tree, or the chosen name already exists
    """
    term = backend.branch_term
    current = backend.current_branch()

    if decisions.confirm("use_current_branch", f"Use current {term} [{current}]?", default=False):
        logger.info(f"Reusing current {term} {current}")
        return VcsContext(backend=backend, branch_name=current, previous_branch=current)

    suggested = generate_branch_name(number, title)
    name = decisions.ask(
        "branch_name",
        f"Suggested {term} name: {suggested}\nEnter {term} name (or press Enter to use suggested)",
        suggested=suggested,
    ).strip() or suggested

    if not backend.is_clean():
        raise VcsError(
            f"Working tree is not clean. Please commit or {backend.stash_term} changes first."
        )

    if backend.branch_exists(name):
        raise VcsError(
            f"{term.capitalize()} {name} already exists. Please delete it or use a different name."
        )

    backend.create_branch(name)
    logger.info(f"Created {term} {name} from {current}")
    return VcsContext(backend=backend, branch_name=name, previous_branch=current, created=True)

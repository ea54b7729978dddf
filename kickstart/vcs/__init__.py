"""VCS adapter for git and Sapling.

Return type conventions:
- Mutating operations (create_branch, commit, push) raise VcsError on failure.
- Predicates (branch_exists, is_clean, has_changes) return bool.
- cleanup() never raises; failures are logged as warnings.
"""

from kickstart.vcs.backends import (
    BACKENDS,
    GitBackend,
    IGNORED_STATUS_PATHS,
    SaplingBackend,
    VcsBackend,
    VcsError,
    detect,
    require_backend,
)
from kickstart.vcs.branch import (
    BRANCH_PREFIX,
    VcsContext,
    generate_branch_name,
    prepare_branch,
    slugify,
)
from kickstart.vcs.commit import (
    SUBJECT_MAX_LENGTH,
    cleanup,
    commit_and_push,
    format_subject,
)
from kickstart.vcs.runner import VcsResult, run_vcs

__all__ = [
    # backends
    "BACKENDS",
    "GitBackend",
    "IGNORED_STATUS_PATHS",
    "SaplingBackend",
    "VcsBackend",
    "VcsError",
    "detect",
    "require_backend",
    # branch
    "BRANCH_PREFIX",
    "VcsContext",
    "generate_branch_name",
    "prepare_branch",
    "slugify",
    # commit
    "SUBJECT_MAX_LENGTH",
    "cleanup",
    "commit_and_push",
    "format_subject",
    # runner
    "VcsResult",
    "run_vcs",
]

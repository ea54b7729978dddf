"""Git and Sapling backends behind one interface.

Only this module knows which commands each tool takes. Callers hold a
``VcsBackend`` and never branch on ``backend.name``.
"""

import logging
import re
from pathlib import Path

from kickstart.vcs.runner import PUSH_TIMEOUT, VcsResult, run_vcs

logger = logging.getLogger(__name__)

# Written by the Cursor agent while it runs; never counts as a change
IGNORED_STATUS_PATHS = (".cursor/debug.log",)

STATUS_PREFIX_RE = re.compile(r'^[MADRC?!]+\s+')


class VcsError(Exception):
    """A VCS operation failed or no supported VCS is available."""


def _strip_status_prefix(line: str) -> str:
    return STATUS_PREFIX_RE.sub("", line.strip())


class VcsBackend:
    """Common operations. Subclasses set ``name``, ``binary`` and the terms."""

    name = ""
    binary = ""
    branch_term = "branch"
    stash_term = "stash"
    default_branch = "main"
    # whether `gh pr checkout` can switch this working copy to a PR head
    gh_checkout = False

    def __init__(self, root: Path):
        self.root = Path(root)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.root})"

    def run(self, args: list[str], timeout: int | None = None) -> VcsResult:
        if timeout is None:
            return run_vcs(self.binary, args, self.root)
        return run_vcs(self.binary, args, self.root, timeout=timeout)

    def _require(self, args: list[str], action: str, timeout: int | None = None) -> VcsResult:
        result = self.run(args, timeout=timeout)
        if not result.success:
            raise VcsError(f"Failed to {action}: {result.detail}")
        return result

    @classmethod
    def probe(cls, cwd: Path) -> Path | None:
        """Repository root if ``cwd`` is inside a repository of this kind."""
        raise NotImplementedError

    def current_branch(self) -> str:
        raise NotImplementedError

    def branch_exists(self, name: str) -> bool:
        raise NotImplementedError

    def create_branch(self, name: str) -> None:
        raise NotImplementedError

    def checkout(self, name: str) -> None:
        raise NotImplementedError

    def delete_branch(self, name: str) -> None:
        raise NotImplementedError

    def checkout_remote_branch(self, name: str) -> None:
        """Switch to a branch that may only exist on the remote."""
        raise NotImplementedError

    def _status_lines(self) -> list[str]:
        raise NotImplementedError

    def status_lines(self) -> list[str]:
        """Status entries minus ignored paths.

        Raises:
            VcsError: status command failed
        """
        return [
            line for line in self._status_lines()
            if line.strip() and _strip_status_prefix(line) not in IGNORED_STATUS_PATHS
        ]

    def is_clean(self) -> bool:
        return not self.status_lines()

    def has_changes(self) -> bool:
        return bool(self.status_lines())

    def changed_files(self) -> list[str]:
        return [_strip_status_prefix(line) for line in self.status_lines()]

    def stage_all(self) -> None:
        raise NotImplementedError

    def commit(self, message: str) -> None:
        self._require(["commit", "-m", message], "commit changes")

    def push(self, branch: str, force_with_lease: bool = False) -> None:
        raise NotImplementedError


class GitBackend(VcsBackend):
    name = "git"
    binary = "git"
    gh_checkout = True

    @classmethod
    def probe(cls, cwd: Path) -> Path | None:
        result = run_vcs("git", ["rev-parse", "--show-toplevel"], cwd)
        if result.success and result.stdout.strip():
            return Path(result.stdout.strip())
        return None

    def current_branch(self) -> str:
        result = self.run(["branch", "--show-current"])
        if result.success and result.stdout.strip():
            return result.stdout.strip()
        return self.default_branch

    def branch_exists(self, name: str) -> bool:
        return self.run(["show-ref", "--verify", "--quiet", f"refs/heads/{name}"]).success

    def create_branch(self, name: str) -> None:
        self._require(["checkout", "-b", name], f"create branch {name}")

    def checkout(self, name: str) -> None:
        self._require(["checkout", name], f"check out {name}")

    def delete_branch(self, name: str) -> None:
        self._require(["branch", "-D", name], f"delete branch {name}")

    def checkout_remote_branch(self, name: str) -> None:
        if self.run(["fetch", "origin", f"{name}:{name}"], timeout=PUSH_TIMEOUT).success \
                and self.run(["checkout", name]).success:
            return
        logger.debug(f"Direct fetch of {name} failed, tracking origin/{name}")
        self._require(["fetch", "origin"], "fetch origin", timeout=PUSH_TIMEOUT)
        self._require(["checkout", "-b", name, f"origin/{name}"], f"check out {name}")

    def _status_lines(self) -> list[str]:
        result = self._require(["status", "--porcelain"], "read git status")
        return result.stdout.splitlines()

    def stage_all(self) -> None:
        self._require(["add", "-A"], "stage changes")

    def push(self, branch: str, force_with_lease: bool = False) -> None:
        args = ["push", "-u"]
        if force_with_lease:
            args.append("--force-with-lease")
        args += ["origin", branch]
        self._require(args, f"push {branch}", timeout=PUSH_TIMEOUT)


class SaplingBackend(VcsBackend):
    name = "sapling"
    binary = "sl"
    branch_term = "bookmark"
    stash_term = "shelve"
    default_branch = "default"

    ACTIVE_BOOKMARK_RE = re.compile(r'\*\s+(\S+)')
    BOOKMARK_RE = re.compile(r'^\s*\*?\s+(\S+)')

    @classmethod
    def probe(cls, cwd: Path) -> Path | None:
        result = run_vcs("sl", ["root"], cwd)
        if result.success and result.stdout.strip():
            return Path(result.stdout.strip())
        return None

    def _bookmark_lines(self) -> list[str]:
        result = self.run(["bookmarks"])
        return result.stdout.splitlines() if result.success else []

    def current_branch(self) -> str:
        for line in self._bookmark_lines():
            if line.strip().startswith("*"):
                match = self.ACTIVE_BOOKMARK_RE.search(line)
                if match:
                    return match.group(1)
        return self.default_branch

    def branch_exists(self, name: str) -> bool:
        for line in self._bookmark_lines():
            match = self.BOOKMARK_RE.match(line)
            if match and match.group(1) == name:
                return True
        return False

    def create_branch(self, name: str) -> None:
        self._require(["bookmark", name], f"create bookmark {name}")

    def checkout(self, name: str) -> None:
        self._require(["goto", name], f"go to {name}")

    def delete_branch(self, name: str) -> None:
        self._require(["bookmark", "-d", name], f"delete bookmark {name}")

    def checkout_remote_branch(self, name: str) -> None:
        self._require(["pull", "--bookmark", name], f"pull bookmark {name}", timeout=PUSH_TIMEOUT)
        self.checkout(name)

    def _status_lines(self) -> list[str]:
        result = self._require(["status"], "read sl status")
        return result.stdout.splitlines()

    def stage_all(self) -> None:
        self._require(["add", "."], "stage changes")

    def push(self, branch: str, force_with_lease: bool = False) -> None:
        # sl push --to moves the remote bookmark; there is no lease equivalent
        self._require(["push", "--to", branch], f"push {branch}", timeout=PUSH_TIMEOUT)


# Sapling repos can also answer git commands through a shim, so probe it first
BACKENDS = (SaplingBackend, GitBackend)


def detect(cwd: Path) -> VcsBackend | None:
    """First backend whose presence probe succeeds in ``cwd``, or None."""
    for backend_cls in BACKENDS:
        root = backend_cls.probe(cwd)
        if root is not None:
            logger.debug(f"Detected {backend_cls.name} repository at {root}")
            return backend_cls(root)
    return None


def require_backend(cwd: Path) -> VcsBackend:
    """Like ``detect`` but fatal when neither tool is available."""
    backend = detect(cwd)
    if backend is None:
        raise VcsError("Neither sapling (sl) nor git found in PATH")
    return backend

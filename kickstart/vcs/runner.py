"""Subprocess boundary shared by the git and Sapling backends.

Commands never raise here: a missing binary or a timeout comes back as a
failed VcsResult so the backend decides whether it is fatal.
"""

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30
PUSH_TIMEOUT = 120

COMMAND_NOT_FOUND = 127


@dataclass
class VcsResult:
    returncode: int
    stdout: str
    stderr: str
    timed_out: bool = False

    @property
    def success(self) -> bool:
        return self.returncode == 0 and not self.timed_out

    @property
    def detail(self) -> str:
        """Best message for a failure: stderr, else stdout."""
        return self.stderr.strip() or self.stdout.strip()


def run_vcs(binary: str, args: list[str], cwd: Path, timeout: int = DEFAULT_TIMEOUT) -> VcsResult:
    """``<binary> <args>`` in ``cwd`` with stdin closed.

    A missing binary yields returncode 127; a timeout sets ``timed_out``.
    """
    cmd = [binary, *args]
    logger.debug(f"{' '.join(cmd)} (cwd={cwd})")
    try:
        proc = subprocess.run(cmd, cwd=str(cwd), capture_output=True, text=True,
                              timeout=timeout, stdin=subprocess.DEVNULL)
    except FileNotFoundError:
        return VcsResult(COMMAND_NOT_FOUND, "", f"{binary}: command not found")
    except subprocess.TimeoutExpired:
        logger.warning(f"{binary} {args[0] if args else ''} timed out after {timeout}s")
        return VcsResult(-1, "", f"Command timed out after {timeout}s", timed_out=True)
    return VcsResult(proc.returncode, proc.stdout, proc.stderr)

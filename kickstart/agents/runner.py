"""
Blocking agent process execution.

An agent run is one external process group with stdin closed, a hard wall-clock
timeout, and periodic progress warnings. Exceeding the timeout raises
AgentTimeout; a process that exits non-zero is returned as a normal
AgentResult so the caller can report its output.
"""

import logging
import os
import re
import signal
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path

from kickstart.lib.agents_config import AgentsConfig, check_agent_binary

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_MS = 600_000
EXIT_CHECK_SECONDS = 1
DRAIN_TIMEOUT_SECONDS = 5
LONG_RUN_WARNING_SECONDS = 300
APPROACHING_TIMEOUT_CAP_SECONDS = 600

PROMPT_WORD_RE = re.compile(
    r'(?:enter|input|prompt|confirm|yes/no|y/n|press|waiting|select|choose)',
    re.IGNORECASE,
)
TRAILING_QUESTION_RE = re.compile(r'\?[\s]*$', re.MULTILINE)


@dataclass
class AgentResult:
    exit_code: int
    stdout: str
    stderr: str
    duration: float = 0.0

    @property
    def success(self) -> bool:
        return self.exit_code == 0


class AgentNotInstalled(Exception):
    """The agent binary is not on PATH."""


class AgentTimeout(Exception):
    """The agent exceeded its time budget. Distinct from a non-zero exit."""

    def __init__(self, message: str, timeout_seconds: float, stdout: str = "", stderr: str = ""):
        self.timeout_seconds = timeout_seconds
        self.stdout = stdout
        self.stderr = stderr
        super().__init__(message)


def require_agent(config: AgentsConfig, agent: str) -> str:
    """Binary name for ``agent``.

    Raises:
        AgentNotInstalled: binary not on PATH; the message carries the install hint
    """
    check = check_agent_binary(config, agent)
    if not check.ok:
        raise AgentNotInstalled(check.error_message)
    return check.binary


def approaching_timeout_threshold(timeout_seconds: float) -> float:
    return min(timeout_seconds * 0.8, APPROACHING_TIMEOUT_CAP_SECONDS)


def looks_interactive(stderr: str) -> bool:
    """True if stderr reads like the agent was waiting on a prompt."""
    return bool(PROMPT_WORD_RE.search(stderr) or TRAILING_QUESTION_RE.search(stderr))


def write_log(log_file: Path, cmd: list[str], result: AgentResult) -> None:
    log_file.write_text(
        f"=== COMMAND ===\n{' '.join(cmd)}\n\n"
        f"=== EXIT CODE ===\n{result.exit_code}\n\n"
        f"=== STDOUT ===\n{result.stdout}\n\n"
        f"=== STDERR ===\n{result.stderr}\n"
    )


def _kill_group(proc: subprocess.Popen) -> None:
    """SIGKILL the agent and everything it spawned into its session."""
    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except (ProcessLookupError, PermissionError):
        pass


def _decode(data) -> str:
    if isinstance(data, bytes):
        return data.decode(errors="replace")
    return data or ""


def _drain(proc: subprocess.Popen) -> tuple[str, str]:
    """Collect remaining output once the process group is gone."""
    try:
        stdout, stderr = proc.communicate(timeout=DRAIN_TIMEOUT_SECONDS)
        return stdout or "", stderr or ""
    except subprocess.TimeoutExpired as e:
        # a descendant moved to its own session and still holds the pipes
        logger.warning(f"Agent output pipes still open after {DRAIN_TIMEOUT_SECONDS}s, closing them")
        for stream in (proc.stdout, proc.stderr):
            if stream is not None:
                stream.close()
        proc.wait()
        return _decode(e.output), _decode(e.stderr)


def run_agent_process(
    cmd: list[str],
    cwd: Path,
    timeout_seconds: float,
    label: str,
    timeout_hint: str,
    log_file: Path | None = None,
) -> AgentResult:
    """
    Run an agent command to completion.

    The agent runs in its own session so a timeout kills the whole process
    group. Children the agent leaves behind after exiting are killed too, so
    they cannot hold the output pipes open.

    Args:
        cmd: Command list, binary first
        cwd: Working directory (the workspace root)
        timeout_seconds: Hard limit before the process group is killed
        label: Human-readable name for warnings ("opencode plan phase")
        timeout_hint: Appended to the timeout message (which env var to raise)
        log_file: Optional path for the COMMAND/EXIT CODE/STDOUT/STDERR log

    Returns:
        AgentResult with exit code and captured output

    Raises:
        AgentTimeout: the process ran past timeout_seconds and was killed
    """
    logger.debug(f"Running {label}: {' '.join(cmd)}")
    start = time.monotonic()
    proc = subprocess.Popen(
        cmd,
        cwd=str(cwd),
        stdin=subprocess.DEVNULL,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
        start_new_session=True,
    )

    approaching_at = approaching_timeout_threshold(timeout_seconds)
    warned_long = False
    warned_approaching = False

    while True:
        elapsed = time.monotonic() - start
        remaining = timeout_seconds - elapsed
        if remaining <= 0:
            _kill_group(proc)
            stdout, stderr = _drain(proc)
            exit_code = proc.returncode if proc.returncode is not None else -signal.SIGKILL
            if log_file:
                write_log(log_file, cmd, AgentResult(exit_code, stdout, stderr, elapsed))
            raise AgentTimeout(
                f"{label} timed out after {int(timeout_seconds)}s. "
                "This may indicate it's waiting for user input. "
                f"Check stderr output for prompts. {timeout_hint}",
                timeout_seconds=timeout_seconds,
                stdout=stdout,
                stderr=stderr,
            )
        try:
            stdout, stderr = proc.communicate(timeout=min(EXIT_CHECK_SECONDS, remaining))
            stdout, stderr = stdout or "", stderr or ""
            break
        except subprocess.TimeoutExpired:
            if proc.poll() is not None:
                logger.debug(f"{label} exited with {proc.returncode}; killing leftover children")
                _kill_group(proc)
                stdout, stderr = _drain(proc)
                break
            elapsed = time.monotonic() - start
            if not warned_approaching and elapsed >= approaching_at:
                warned_approaching = True
                logger.warning(f"{label} approaching timeout ({int(elapsed)}s of {int(timeout_seconds)}s)")
            elif not warned_long and elapsed >= LONG_RUN_WARNING_SECONDS:
                warned_long = True
                logger.warning(f"{label} has been running for {int(elapsed)}s")

    result = AgentResult(
        exit_code=proc.returncode,
        stdout=stdout,
        stderr=stderr,
        duration=time.monotonic() - start,
    )

    if log_file:
        write_log(log_file, cmd, result)

    if not result.success and looks_interactive(result.stderr):
        logger.warning(
            f"{label} exited with {result.exit_code} and its stderr looks like an interactive prompt. "
            "Agents must run headless; check the agent configuration."
        )

    return result

"""
Desktop notification when a run finishes.

Sent through notify-send when KICKSTART_NOTIFY=1. A missing notify-send,
or one that fails, never affects the run.
"""

import logging
import shutil
import subprocess

logger = logging.getLogger(__name__)

APP_NAME = "kickstart"
NOTIFY_TIMEOUT_SECONDS = 5

# run status -> (urgency, headline)
STATUS_STYLES = {
    "complete": ("normal", "All acceptance criteria complete"),
    "incomplete": ("normal", "Plan incomplete, run loop to continue"),
    "failed": ("critical", "Run failed"),
    "blocked": ("critical", "Agent reported a blocking error"),
}


def build_command(title: str, body: str, urgency: str) -> list[str]:
    return ["notify-send", "--urgency", urgency, "--app-name", APP_NAME, title, body]


def send(title: str, body: str, urgency: str = "normal") -> bool:
    """True if notify-send accepted the notification."""
    if shutil.which("notify-send") is None:
        logger.debug("notify-send not available; no desktop notification")
        return False
    try:
        proc = subprocess.run(build_command(title, body, urgency), capture_output=True, text=True,
                              timeout=NOTIFY_TIMEOUT_SECONDS)
    except (subprocess.TimeoutExpired, OSError) as e:
        logger.warning(f"Desktop notification failed: {e}")
        return False
    if proc.returncode != 0:
        logger.warning(f"notify-send exited {proc.returncode}: {proc.stderr.strip()}")
        return False
    return True


def notify_run_finished(label: str, status: str, detail: str = "") -> bool:
    urgency, headline = STATUS_STYLES.get(status, ("normal", status))
    body = f"{headline}\n{detail}" if detail else headline
    return send(f"{APP_NAME}: {label}", body, urgency)

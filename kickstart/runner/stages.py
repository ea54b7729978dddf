"""
Stage execution framework.

Every orchestrator step runs through ``run_stage`` (fatal on failure) or
``run_best_effort`` (warning on failure). Nothing is retried.
"""

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from kickstart.runner.context import RunContext

logger = logging.getLogger(__name__)


class StageResult(Enum):
    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"
    BLOCKED = "blocked"
    WARNING = "warning"


@dataclass
class StageError(Exception):
    """A stage failed."""
    stage: str
    message: str
    exit_code: int = 1
    details: Optional[dict] = None

    def __str__(self):
        return f"[{self.stage}] {self.message}"


@dataclass
class StageBlocked(Exception):
    """The agent reported it could not proceed at all."""
    stage: str
    reason: str

    def __str__(self):
        return f"[{self.stage}] blocked: {self.reason}"


def run_stage(ctx: RunContext, stage_name: str, stage_fn: Callable[[], object]):
    """
    Run a fatal stage with timing and error handling.

    Returns the stage function's return value. StageError and StageBlocked are
    re-raised after recording; any other exception is wrapped in StageError.
    """
    ctx.log(f"Starting stage: {stage_name}")
    start = time.time()

    try:
        value = stage_fn()
        duration = time.time() - start
        ctx.record_stage(stage_name, StageResult.PASSED.value, duration)
        ctx.log(f"Stage {stage_name} passed ({duration:.2f}s)")
        return value

    except StageBlocked as e:
        duration = time.time() - start
        ctx.record_stage(stage_name, StageResult.BLOCKED.value, duration, e.reason)
        ctx.log(f"Stage {stage_name} blocked: {e.reason}")
        raise

    except StageError as e:
        duration = time.time() - start
        ctx.record_stage(stage_name, StageResult.FAILED.value, duration, e.message)
        ctx.log(f"Stage {stage_name} failed: {e.message}")
        raise

    except Exception as e:
        duration = time.time() - start
        ctx.record_stage(stage_name, StageResult.FAILED.value, duration, str(e))
        ctx.log(f"Stage {stage_name} error: {e}")
        raise StageError(stage_name, str(e), 1) from e


def run_best_effort(ctx: RunContext, stage_name: str, stage_fn: Callable[[], object]) -> StageResult:
    """
    Run a stage whose failure is only a warning.

    Never raises.
    """
    ctx.log(f"Starting best-effort stage: {stage_name}")
    start = time.time()
    try:
        stage_fn()
    except Exception as e:
        duration = time.time() - start
        ctx.record_stage(stage_name, StageResult.WARNING.value, duration, str(e))
        ctx.log(f"Stage {stage_name} warning: {e}")
        logger.warning(f"{stage_name} failed (continuing): {e}")
        return StageResult.WARNING

    duration = time.time() - start
    ctx.record_stage(stage_name, StageResult.PASSED.value, duration)
    ctx.log(f"Stage {stage_name} passed ({duration:.2f}s)")
    return StageResult.PASSED


def skip_stage(ctx: RunContext, stage_name: str, reason: str) -> StageResult:
    ctx.record_stage(stage_name, StageResult.SKIPPED.value, 0.0, reason)
    ctx.log(f"Stage {stage_name} skipped: {reason}")
    return StageResult.SKIPPED

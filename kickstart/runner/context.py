"""
Run context and scratch directory management.

Each run owns a fresh scratch directory holding the assembled prompts and the
captured agent output. It is removed when the run succeeds (unless SAVE_CTX=1)
and always kept when the run fails.
"""

import logging
import shutil
import tempfile
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from kickstart.lib.validate import write_json
from kickstart.plan.document import CompletionStatus

logger = logging.getLogger(__name__)

SCRATCH_PREFIX = "kickstart-"


@dataclass
class RunContext:
    """Context for a single orchestrator run."""
    run_id: str
    tmp_dir: Path
    workspace_root: Path
    mode: str  # full, plan_only, loop, fixup, fill_issue
    full_automation: bool = False
    preserve: bool = False
    start_time: datetime = field(default_factory=datetime.now)
    stages: dict = field(default_factory=dict)
    plan_path: Path | None = None
    completion: CompletionStatus | None = None
    pr_url: str | None = None

    @classmethod
    def create(cls, workspace_root: Path, mode: str, full_automation: bool = False,
               preserve: bool = False) -> 'RunContext':
        """Create a run context with a fresh scratch directory."""
        tmp_dir = Path(tempfile.mkdtemp(prefix=SCRATCH_PREFIX))
        run_id = f"{datetime.now().strftime('%Y%m%d-%H%M%S')}_{mode}"
        return cls(
            run_id=run_id,
            tmp_dir=tmp_dir,
            workspace_root=Path(workspace_root),
            mode=mode,
            full_automation=full_automation,
            preserve=preserve,
        )

    # Scratch files

    @property
    def issue_context_path(self) -> Path:
        return self.tmp_dir / "issue-context.md"

    @property
    def plan_prompt_path(self) -> Path:
        return self.tmp_dir / "combined_prompt_plan.txt"

    @property
    def implement_prompt_path(self) -> Path:
        return self.tmp_dir / "combined_prompt_implement.txt"

    @property
    def plan_output_path(self) -> Path:
        return self.tmp_dir / "plan_output.txt"

    def system_prompt_path(self, phase: str) -> Path:
        return self.tmp_dir / f"system.prompt.{phase}.md"

    def agent_log_path(self, phase: str) -> Path:
        return self.tmp_dir / f"{phase}_agent.log"

    def output_path(self, phase: str, stream: str) -> Path:
        return self.tmp_dir / f"{phase}_{stream}.txt"

    def debug_paths(self) -> dict[str, Path]:
        """Scratch files worth inspecting after a failure, in display order."""
        paths = {
            "Plan prompt": self.plan_prompt_path,
            "Implement prompt": self.implement_prompt_path,
            "Plan output": self.plan_output_path,
            "Issue context": self.issue_context_path,
        }
        for phase in ("plan", "implement"):
            paths[f"{phase.capitalize()} agent log"] = self.agent_log_path(phase)
            paths[f"{phase.capitalize()} stdout"] = self.output_path(phase, "stdout")
            paths[f"{phase.capitalize()} stderr"] = self.output_path(phase, "stderr")
        return paths

    def log(self, message: str):
        """Append to run log."""
        timestamp = datetime.now().isoformat()
        with open(self.tmp_dir / "run.log", "a") as f:
            f.write(f"[{timestamp}] {message}\n")

    def record_stage(self, stage: str, status: str, duration: float, notes: str = ""):
        self.stages[stage] = {
            "status": status,
            "duration_s": round(duration, 3),
            "notes": notes,
        }

    def write_result(self, status: str, failed_stage: str | None = None, error: str | None = None) -> Path:
        """Write a schema-validated result.json into the scratch directory."""
        result = {
            "status": status,
            "mode": self.mode,
            "full_automation": self.full_automation,
            "started_at": self.start_time.isoformat(),
            "ended_at": datetime.now().isoformat(),
            "failed_stage": failed_stage,
            "error": error,
            "plan_path": str(self.plan_path) if self.plan_path else None,
            "pr_url": self.pr_url,
            "completion": None,
            "stages": self.stages,
        }
        if self.completion is not None:
            result["completion"] = {
                "total": self.completion.total,
                "completed": self.completion.completed,
                "complete": self.completion.complete,
                "incomplete": list(self.completion.incomplete),
            }

        return write_json(result, "result", self.tmp_dir / "result.json")

    def finish(self, success: bool) -> bool:
        """Remove the scratch directory after a successful, non-preserved run.

        Returns:
            True if the directory was removed
        """
        if not success or self.preserve:
            return False
        shutil.rmtree(self.tmp_dir, ignore_errors=True)
        logger.debug(f"Removed scratch directory {self.tmp_dir}")
        return True

"""Prefect task wrappers for orchestrator steps.

Wraps the agent phase and the best-effort steps with @task so each shows up
as its own task run. Retries are off: a failed agent phase is reported and
the caller decides whether to re-run.
"""

from pathlib import Path

from prefect import task

from kickstart.lib.artifacts import generate_artifacts
from kickstart.lib.lint import run_lint


@task(
    retries=0,
    name="agent_phase",
    description="Run the coding agent for one phase (plan or implement)",
)
def task_run_agent_phase(agent, phase: str, prompt_path: Path, workspace_root: Path,
                         restricted: bool, log_file: Path | None = None):
    return agent.run(phase, prompt_path, workspace_root, restricted, log_file=log_file)


@task(
    retries=0,
    name="lint",
    description="Run the project linter",
)
def task_lint(workspace_root: Path):
    return run_lint(workspace_root)


@task(
    retries=0,
    name="generate_artifacts",
    description="Write AGENTS.md and editor rules",
)
def task_generate_artifacts(workspace_root: Path, use_cursor: bool = False):
    return generate_artifacts(workspace_root, use_cursor=use_cursor)

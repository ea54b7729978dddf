"""
Prefect flows, one per CLI entry point.

Each flow resolves settings for the run's workspace, picks the agent
backend and drives the Orchestrator with the agent phase, lint and
artifact steps wrapped as Prefect tasks.
"""

import logging
import os
from pathlib import Path

from prefect import flow

from kickstart.agents import get_agent
from kickstart.lib.config import RunOptions, Settings, load_settings
from kickstart.workflow.decisions import ConsoleDecisions, DecisionProvider, ScriptedDecisions
from kickstart.workflow.fill_issue import FillResult, fill_issue_template
from kickstart.workflow.fixup import run_fixup
from kickstart.workflow.orchestrator import Orchestrator, RunOutcome
from kickstart.workflow.tasks import task_generate_artifacts, task_lint, task_run_agent_phase

logger = logging.getLogger(__name__)


def resolve_settings(options: RunOptions) -> Settings:
    environ = dict(os.environ)
    if options.workspace_root:
        environ["WORKSPACE_ROOT"] = options.workspace_root
    return load_settings(environ)


def make_decisions(answers: dict | None, interactive: bool) -> DecisionProvider:
    if interactive:
        return ConsoleDecisions()
    return ScriptedDecisions(answers)


def build_orchestrator(options: RunOptions, decisions: DecisionProvider,
                       settings: Settings | None = None) -> Orchestrator:
    settings = settings or resolve_settings(options)
    agent = get_agent(settings, use_cursor=options.use_cursor)
    logger.debug(f"Using agent {agent.name} in {settings.workspace_root}")
    return Orchestrator(
        settings,
        options,
        decisions,
        agent,
        phase_runner=task_run_agent_phase,
        lint_runner=task_lint,
        artifact_runner=task_generate_artifacts,
    )


@flow(name="kickstart_start")
def start_flow(options: RunOptions, answers: dict | None = None, interactive: bool = True) -> RunOutcome:
    """Plan and implement a work item (and publish it with full automation)."""
    return build_orchestrator(options, make_decisions(answers, interactive)).run_full()


@flow(name="kickstart_prep")
def prep_flow(options: RunOptions, answers: dict | None = None, interactive: bool = True) -> RunOutcome:
    """Write and validate a plan file without implementing it."""
    return build_orchestrator(options, make_decisions(answers, interactive)).run_plan_only()


@flow(name="kickstart_loop")
def loop_flow(options: RunOptions, answers: dict | None = None, interactive: bool = True) -> RunOutcome:
    """Resume implementation of an existing plan file."""
    settings = resolve_settings(options)
    plan_file = options.plan_file or settings.plan
    if not plan_file:
        raise ValueError("Either provide --plan-file or set PLAN environment variable")
    orchestrator = build_orchestrator(options, make_decisions(answers, interactive), settings)
    return orchestrator.run_loop(Path(plan_file))


@flow(name="kickstart_fixup")
def fixup_flow(options: RunOptions, answers: dict | None = None, interactive: bool = True) -> RunOutcome:
    """Implement review feedback on an open pull request."""
    settings = resolve_settings(options)
    agent = get_agent(settings, use_cursor=options.use_cursor)
    return run_fixup(settings, options, make_decisions(answers, interactive), agent,
                     phase_runner=task_run_agent_phase)


@flow(name="kickstart_fill_issue")
def fill_issue_flow(options: RunOptions) -> FillResult:
    """Fill empty template sections of a GitHub issue."""
    settings = resolve_settings(options)
    agent = get_agent(settings, use_cursor=options.use_cursor)
    return fill_issue_template(settings, options, agent, phase_runner=task_run_agent_phase)

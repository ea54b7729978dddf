"""Tests for the Prefect flows (called through ``.fn`` without a Prefect run)."""

from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from kickstart.lib.config import RunOptions, Settings
from kickstart.workflow import engine
from kickstart.workflow.decisions import ConsoleDecisions, ScriptedDecisions
from kickstart.workflow.tasks import task_generate_artifacts, task_lint, task_run_agent_phase


class TestResolveSettings:
    """Workspace override reaches the settings loader."""

    def test_workspace_override(self, tmp_path, monkeypatch):
        monkeypatch.delenv("WORKSPACE_ROOT", raising=False)
        settings = engine.resolve_settings(RunOptions(workspace_root=str(tmp_path)))
        assert settings.workspace_root == tmp_path

    def test_environment(self, tmp_path, monkeypatch):
        monkeypatch.setenv("WORKSPACE_ROOT", str(tmp_path))
        monkeypatch.setenv("PLAN", "plans/x.plan.md")
        assert engine.resolve_settings(RunOptions()).plan == "plans/x.plan.md"


class TestMakeDecisions:
    """Interactive vs headless providers."""

    def test_interactive(self):
        assert isinstance(engine.make_decisions(None, interactive=True), ConsoleDecisions)

    def test_headless(self):
        decisions = engine.make_decisions({"plan_name": "x"}, interactive=False)
        assert isinstance(decisions, ScriptedDecisions)
        assert decisions.answers == {"plan_name": "x"}


class TestBuildOrchestrator:
    """Agent steps are wired through Prefect tasks."""

    def test_task_wrappers(self, tmp_path):
        settings = Settings(workspace_root=tmp_path)
        orchestrator = engine.build_orchestrator(RunOptions(), ScriptedDecisions(), settings)
        assert orchestrator.phase_runner is task_run_agent_phase
        assert orchestrator.lint_runner is task_lint
        assert orchestrator.artifact_runner is task_generate_artifacts
        assert orchestrator.agent.name == "opencode"

    def test_cursor_selected(self, tmp_path):
        settings = Settings(workspace_root=tmp_path)
        orchestrator = engine.build_orchestrator(RunOptions(use_cursor=True), ScriptedDecisions(), settings)
        assert orchestrator.agent.name == "cursor"


class TestFlows:
    """Each flow drives the matching orchestrator entry point."""

    def test_start_flow(self):
        with patch("kickstart.workflow.engine.build_orchestrator") as mock_build:
            mock_build.return_value.run_full.return_value = "outcome"
            assert engine.start_flow.fn(RunOptions(reference="42"), answers={"plan_name": "x"},
                                        interactive=False) == "outcome"
        decisions = mock_build.call_args[0][1]
        assert isinstance(decisions, ScriptedDecisions)

    def test_prep_flow(self):
        with patch("kickstart.workflow.engine.build_orchestrator") as mock_build:
            engine.prep_flow.fn(RunOptions(reference="42"))
        mock_build.return_value.run_plan_only.assert_called_once()

    def test_loop_flow_requires_plan(self, tmp_path):
        with patch("kickstart.workflow.engine.resolve_settings", return_value=Settings(workspace_root=tmp_path)):
            with pytest.raises(ValueError, match="Either provide --plan-file or set PLAN"):
                engine.loop_flow.fn(RunOptions())

    def test_loop_flow(self, tmp_path):
        settings = Settings(workspace_root=tmp_path, plan="plans/env.plan.md")
        with patch("kickstart.workflow.engine.resolve_settings", return_value=settings), \
             patch("kickstart.workflow.engine.build_orchestrator") as mock_build:
            engine.loop_flow.fn(RunOptions())
        mock_build.return_value.run_loop.assert_called_once_with(Path("plans/env.plan.md"))

    def test_fixup_flow(self, tmp_path):
        settings = Settings(workspace_root=tmp_path)
        options = RunOptions(pr_url="https://github.com/acme/api/pull/9")
        with patch("kickstart.workflow.engine.resolve_settings", return_value=settings), \
             patch("kickstart.workflow.engine.get_agent", return_value=MagicMock()) as mock_agent, \
             patch("kickstart.workflow.engine.run_fixup") as mock_fixup:
            engine.fixup_flow.fn(options, interactive=True)
        args, kwargs = mock_fixup.call_args
        assert args[0] is settings
        assert args[1] is options
        assert args[3] is mock_agent.return_value
        assert kwargs["phase_runner"] is task_run_agent_phase

    def test_fill_issue_flow(self, tmp_path):
        settings = Settings(workspace_root=tmp_path)
        with patch("kickstart.workflow.engine.resolve_settings", return_value=settings), \
             patch("kickstart.workflow.engine.get_agent", return_value=MagicMock()), \
             patch("kickstart.workflow.engine.fill_issue_template") as mock_fill:
            engine.fill_issue_flow.fn(RunOptions(reference="5", update_issue=True))
        assert mock_fill.call_args[1]["phase_runner"] is task_run_agent_phase

"""Tests for the PR fixup workflow."""

import tempfile
from unittest.mock import patch

import pytest

from kickstart.agents.runner import AgentResult
from kickstart.lib.config import RunOptions, Settings
from kickstart.lib.github import Comment, PullRequest, Review, ReviewComment
from kickstart.lib.issues import WorkItemError
from kickstart.plan import document as plan_doc
from kickstart.workflow.decisions import ScriptedDecisions
from kickstart.workflow.fixup import (
    DEFAULT_CRITERION,
    checkout_pr_branch,
    derive_acceptance_criteria,
    format_pr_context,
    render_fixup_plan,
    run_fixup,
    write_fixup_plan,
)


def make_pr(**overrides):
    fields = dict(
        owner="acme",
        repo="api",
        number=9,
        title="Rate limit logins",
        body="Adds a limiter.",
        url="https://github.com/acme/api/pull/9",
        head_branch="kickstart/issue_42_rate-limit",
        comments=[
            Comment(author="alice", body="LGTM, but please also document the limiter settings."),
            Comment(author="bob", body="Could you add a changelog entry for this?"),
            Comment(author="carol", body="nice"),
        ],
        reviews=[
            Review(author="dave", state="CHANGES_REQUESTED", body="The limiter needs tests for the lockout path."),
            Review(author="erin", state="DISMISSED", body="Outdated review that no longer applies here."),
            Review(author="frank", state="APPROVED", body=""),
        ],
        review_comments=[
            ReviewComment(author="dave", path="app/limits.py", line=12, body="Use a constant here"),
            ReviewComment(author="dave", path="README.md", line=None, body="Mention the new setting"),
        ],
    )
    fields.update(overrides)
    return PullRequest(**fields)


class FakeBackend:
    branch_term = "branch"
    binary = "git"
    gh_checkout = False

    def __init__(self, current="main", changed=()):
        self.current = current
        self.changed = list(changed)
        self.remote_checkouts = []

    def current_branch(self):
        return self.current

    def checkout_remote_branch(self, name):
        self.remote_checkouts.append(name)

    def has_changes(self):
        return bool(self.changed)

    def changed_files(self):
        return self.changed


class TestDeriveAcceptanceCriteria:
    """Criteria from reviews, line comments and conversation."""

    def test_criteria(self):
        assert derive_acceptance_criteria(make_pr()) == [
            "Address dave's review (changes requested): \"The limiter needs tests for the lockout path.\"",
            "Address feedback in `app/limits.py:12`: \"Use a constant here\"",
            "Address feedback in `README.md`: \"Mention the new setting\"",
            "Address bob's comment: \"Could you add a changelog entry for this?\"",
        ]

    def test_default_when_no_feedback(self):
        pr = make_pr(comments=[], reviews=[], review_comments=[])
        assert derive_acceptance_criteria(pr) == [DEFAULT_CRITERION]

    def test_long_feedback_is_truncated(self):
        pr = make_pr(comments=[], review_comments=[],
                     reviews=[Review(author="dave", state="COMMENTED", body="x" * 200 + "\nsecond line")])
        (criterion,) = derive_acceptance_criteria(pr)
        assert criterion.endswith("x" * 80 + '..."')


class TestFormatPrContext:
    """Markdown context for the agent."""

    def test_sections(self):
        context = format_pr_context(make_pr())
        assert context.startswith("# PR #9: Rate limit logins\n\nURL: https://github.com/acme/api/pull/9\n")
        assert "### dave (CHANGES_REQUESTED)" in context
        assert "erin" not in context
        assert "### `app/limits.py`\n\n- **dave** (line 12): Use a constant here" in context
        assert "- **dave** (file): Mention the new setting" in context

    def test_no_description(self):
        assert "(no description)" in format_pr_context(make_pr(body="  "))


class TestFixupPlan:
    """The generated plan is a valid plan file."""

    def test_plan_passes_validation(self, tmp_path):
        path = write_fixup_plan(tmp_path, make_pr())
        assert path == tmp_path / "plans" / "fixup-pr-9.plan.md"
        doc = plan_doc.check_plan_file(path)
        assert doc.title == "Fixup: Rate limit logins"
        assert plan_doc.compute_completion(doc).total == 4

    def test_context_counts(self):
        text = render_fixup_plan(make_pr(), ["One"])
        assert "- 3 conversation comment(s)\n- 2 review(s)\n- 2 line comment(s)" in text


class TestCheckoutPrBranch:
    """Switching to the PR head."""

    def test_already_on_branch(self, tmp_path):
        backend = FakeBackend(current="kickstart/issue_42_rate-limit")
        checkout_pr_branch(backend, make_pr(), tmp_path)
        assert backend.remote_checkouts == []

    @patch("kickstart.workflow.fixup.github.checkout_pull_request")
    def test_sapling_uses_remote_checkout(self, mock_gh, tmp_path):
        backend = FakeBackend()
        checkout_pr_branch(backend, make_pr(), tmp_path)
        mock_gh.assert_not_called()
        assert backend.remote_checkouts == ["kickstart/issue_42_rate-limit"]

    @patch("kickstart.workflow.fixup.github.checkout_pull_request", return_value=False)
    def test_gh_checkout_falls_back(self, mock_gh, tmp_path):
        backend = FakeBackend()
        backend.gh_checkout = True
        checkout_pr_branch(backend, make_pr(), tmp_path)
        mock_gh.assert_called_once_with(9, tmp_path)
        assert backend.remote_checkouts == ["kickstart/issue_42_rate-limit"]


class TestRunFixup:
    """Whole workflow with a scripted agent."""

    @pytest.fixture(autouse=True)
    def scratch_in_tmp(self, tmp_path, monkeypatch):
        scratch = tmp_path / "scratch"
        scratch.mkdir()
        monkeypatch.setattr(tempfile, "tempdir", str(scratch))

    def test_missing_url(self, tmp_path):
        with pytest.raises(WorkItemError, match="pull request URL is required"):
            run_fixup(Settings(workspace_root=tmp_path), RunOptions(), ScriptedDecisions(), agent=object())

    def test_invalid_url(self, tmp_path):
        with pytest.raises(WorkItemError, match="Invalid PR URL"):
            run_fixup(Settings(workspace_root=tmp_path), RunOptions(pr_url="https://github.com/acme/api/issues/9"),
                      ScriptedDecisions(), agent=object())

    @patch("kickstart.workflow.fixup.github.fetch_pull_request")
    @patch("kickstart.workflow.fixup.require_backend")
    def test_implements_feedback(self, mock_backend, mock_fetch, tmp_path, capsys):
        backend = FakeBackend(changed=["app/limits.py"])
        mock_backend.return_value = backend
        mock_fetch.return_value = make_pr()
        phases = []

        def run(agent, phase, prompt_path, workspace_root, restricted, log_file=None):
            phases.append((phase, restricted, prompt_path.read_text()))
            plan = workspace_root / "plans" / "fixup-pr-9.plan.md"
            plan.write_text(plan.read_text().replace("- [ ]", "- [x]"))
            return AgentResult(exit_code=0, stdout="Addressed feedback", stderr="")

        outcome = run_fixup(
            Settings(workspace_root=tmp_path),
            RunOptions(pr_url="https://github.com/acme/api/pull/9"),
            ScriptedDecisions(),
            agent=object(),
            phase_runner=run,
        )

        assert outcome.status == "complete"
        assert backend.remote_checkouts == ["kickstart/issue_42_rate-limit"]
        assert [(phase, restricted) for phase, restricted, _ in phases] == [("implement", False)]
        assert "# PR #9: Rate limit logins" in phases[0][2]
        assert "Review them with `git diff`, then commit and push to update PR #9." in capsys.readouterr().out

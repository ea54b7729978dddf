"""Tests for the gh CLI boundary and work item resolution."""

import json
import subprocess
from unittest.mock import MagicMock, patch

import pytest

from kickstart.lib import github
from kickstart.lib.github import (
    GitHubError,
    create_pull_request,
    fetch_issue,
    fetch_pull_request,
    parse_pr_url,
    update_issue_body,
)
from kickstart.lib.issues import (
    WorkItem,
    WorkItemError,
    classify_input,
    format_issue_context,
    load_local_document,
    parse_issue_reference,
    resolve_issue,
    resolve_work_item,
)

REPO_VIEW = json.dumps({"owner": {"login": "acme"}, "name": "api"})
ISSUE_VIEW = json.dumps({
    "number": 42,
    "title": "Add rate limiting",
    "body": "Too many logins.",
    "labels": [{"name": "bug"}, {"name": "auth"}],
    "url": "https://github.com/acme/api/issues/42",
})


def ok(stdout=""):
    return MagicMock(returncode=0, stdout=stdout, stderr="")


def gh_responses(mapping):
    """side_effect answering by the gh subcommand pair (e.g. ("repo", "view"))."""
    def run(cmd, **kwargs):
        return mapping[tuple(cmd[1:3])]
    return run


class TestGh:
    """gh invocation and error mapping."""

    @patch("kickstart.lib.github.subprocess.run")
    def test_missing_gh(self, mock_run):
        mock_run.side_effect = FileNotFoundError()
        with pytest.raises(GitHubError, match="GitHub CLI \\(gh\\) not found"):
            fetch_issue("acme", "api", 1)

    @patch("kickstart.lib.github.subprocess.run")
    def test_timeout(self, mock_run):
        mock_run.side_effect = subprocess.TimeoutExpired(cmd="gh", timeout=30)
        with pytest.raises(GitHubError, match="timed out after 30s"):
            fetch_issue("acme", "api", 1)

    @patch("kickstart.lib.github.subprocess.run")
    def test_nonzero_exit(self, mock_run):
        mock_run.return_value = MagicMock(returncode=1, stdout="", stderr="HTTP 404")
        with pytest.raises(GitHubError, match="HTTP 404"):
            fetch_issue("acme", "api", 1)

    @patch("kickstart.lib.github.subprocess.run")
    def test_fetch_issue_flattens_labels(self, mock_run):
        mock_run.return_value = ok(ISSUE_VIEW)
        issue = fetch_issue("acme", "api", 42)
        assert issue["labels"] == ["bug", "auth"]
        assert mock_run.call_args[0][0][:3] == ["gh", "issue", "view"]

    @patch("kickstart.lib.github.subprocess.run")
    def test_update_issue_body_uses_stdin(self, mock_run):
        mock_run.return_value = ok()
        update_issue_body("acme", "api", 42, "## New body\n")
        cmd = mock_run.call_args[0][0]
        assert cmd[-2:] == ["--body-file", "-"]
        assert mock_run.call_args[1]["input"] == "## New body\n"

    @patch("kickstart.lib.github.subprocess.run")
    def test_create_pull_request_returns_url(self, mock_run):
        mock_run.return_value = ok("Creating pull request\nhttps://github.com/acme/api/pull/9\n")
        url = create_pull_request(None, "kickstart/issue_42_x", "#42 Add rate limiting", "Closes #42")
        assert url == "https://github.com/acme/api/pull/9"


class TestPullRequests:
    """PR URL parsing and feedback fetch."""

    def test_parse_pr_url(self):
        assert parse_pr_url("https://github.com/acme/api/pull/9") == ("acme", "api", 9)
        assert parse_pr_url("https://github.com/acme/api/issues/9") is None

    @patch("kickstart.lib.github.subprocess.run")
    def test_fetch_pull_request(self, mock_run):
        view = {
            "number": 9,
            "title": "Rate limit",
            "body": "Adds a limiter",
            "url": "https://github.com/acme/api/pull/9",
            "headRefName": "kickstart/issue_42_x",
            "comments": [{"author": {"login": "rev"}, "body": "Please add docs for the limiter."}],
            "reviews": [{"author": {"login": "rev"}, "state": "CHANGES_REQUESTED", "body": "Needs tests"}],
        }
        line_comments = [{"user": {"login": "rev"}, "path": "app.py", "line": 12, "body": "Rename this"}]
        mock_run.side_effect = gh_responses({
            ("pr", "view"): ok(json.dumps(view)),
            ("api", "repos/acme/api/pulls/9/comments"): ok(json.dumps(line_comments)),
        })
        pr = fetch_pull_request("acme", "api", 9)
        assert pr.head_branch == "kickstart/issue_42_x"
        assert pr.comments[0].author == "rev"
        assert pr.reviews[0].state == "CHANGES_REQUESTED"
        assert pr.review_comments[0].path == "app.py"
        assert pr.review_comments[0].line == 12


class TestClassifyInput:
    """Issue reference vs local document."""

    @pytest.mark.parametrize("raw", [
        "42",
        "#42",
        "https://github.com/acme/api/issues/42",
        "HTTPS://GitHub.com/acme/api/issues/42?foo=bar",
    ])
    def test_issue_references(self, raw):
        assert classify_input(raw).issue_ref == raw

    def test_local_path(self):
        result = classify_input("docs/feature.md")
        assert result.issue_ref is None
        assert str(result.local_path) == "docs/feature.md"

    def test_empty(self):
        with pytest.raises(WorkItemError, match="is required"):
            classify_input("  ")

    def test_parse_invalid_reference(self):
        with pytest.raises(WorkItemError, match="Invalid issue URL or number"):
            parse_issue_reference("not-an-issue")


class TestResolveIssue:
    """Issues must belong to the current repository."""

    @patch("kickstart.lib.github.subprocess.run")
    def test_bare_number(self, mock_run, tmp_path):
        mock_run.side_effect = gh_responses({
            ("repo", "view"): ok(REPO_VIEW),
            ("issue", "view"): ok(ISSUE_VIEW),
        })
        item = resolve_issue("#42", tmp_path)
        assert item.is_issue
        assert (item.owner, item.repo, item.number) == ("acme", "api", 42)
        assert item.labels == ("bug", "auth")

    @patch("kickstart.lib.github.subprocess.run")
    def test_other_repository_is_fatal(self, mock_run, tmp_path):
        mock_run.side_effect = gh_responses({("repo", "view"): ok(REPO_VIEW)})
        with pytest.raises(WorkItemError, match="different repository \\(other/api\\)"):
            resolve_issue("https://github.com/other/api/issues/42", tmp_path)

    @patch("kickstart.lib.github.subprocess.run")
    def test_fetch_failure(self, mock_run, tmp_path):
        mock_run.side_effect = gh_responses({
            ("repo", "view"): ok(REPO_VIEW),
            ("issue", "view"): MagicMock(returncode=1, stdout="", stderr="not found"),
        })
        with pytest.raises(WorkItemError, match="Failed to fetch issue #42"):
            resolve_issue("42", tmp_path)


class TestLocalDocuments:
    """Markdown files as work items."""

    def test_title_from_h1(self, tmp_path):
        (tmp_path / "feature.md").write_text("# Dark mode\n\nAdd a toggle.\n")
        item = resolve_work_item("feature.md", tmp_path)
        assert item.title == "Dark mode"
        assert item.number == 0
        assert not item.is_issue

    def test_title_from_stem(self, tmp_path):
        (tmp_path / "notes.md").write_text("No heading here.")
        assert load_local_document(tmp_path / "notes.md", tmp_path).title == "notes"

    def test_issue_context_header(self, tmp_path):
        (tmp_path / "ctx.md").write_text("# Issue #17: Flaky test\n\nbody\n")
        item = load_local_document(tmp_path / "ctx.md", tmp_path)
        assert (item.number, item.title) == (17, "Flaky test")

    def test_missing_file(self, tmp_path):
        with pytest.raises(WorkItemError, match="File not found"):
            load_local_document(tmp_path / "nope.md", tmp_path)

    def test_directory_rejected(self, tmp_path):
        (tmp_path / "dir.md").mkdir()
        with pytest.raises(WorkItemError, match="Not a file"):
            load_local_document(tmp_path / "dir.md", tmp_path)


class TestFormatIssueContext:
    """Context file layout."""

    def test_issue_with_labels(self):
        item = WorkItem(number=42, title="Add rate limiting", body="Body", labels=("bug",),
                        owner="acme", repo="api")
        assert format_issue_context(item) == (
            "# Issue #42: Add rate limiting\n\nBody\n\n---\n\n## Labels\n- bug\n"
        )

    def test_issue_without_labels(self):
        item = WorkItem(number=1, title="T", body="B", owner="acme", repo="api")
        assert format_issue_context(item).endswith("## Labels\n(none)\n")

    def test_local_document_passes_through(self, tmp_path):
        item = WorkItem(number=0, title="T", body="raw text", source_path=tmp_path / "x.md")
        assert format_issue_context(item) == "raw text"

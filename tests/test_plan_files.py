"""Tests for kickstart.plan.files module."""

import pytest

from kickstart.plan.files import (
    delete_plan,
    ensure_plans_dir,
    extract_issue_url,
    normalize_plan_name,
    plan_path,
    read_existing_plan,
    relative_to_workspace,
)


class TestPlanPath:
    """Plan name to file path."""

    def test_builds_path_under_plans(self, tmp_path):
        assert plan_path(tmp_path, "feature-x") == tmp_path / "plans" / "feature-x.plan.md"

    def test_suffix_typed_by_user_is_not_doubled(self, tmp_path):
        assert plan_path(tmp_path, " feature-x.plan.md ") == tmp_path / "plans" / "feature-x.plan.md"

    def test_empty_name_rejected(self, tmp_path):
        with pytest.raises(ValueError, match="Plan name is required"):
            plan_path(tmp_path, "   ")

    @pytest.mark.parametrize("name", ["../escape", "a/b", "a\\b", ".."])
    def test_path_like_names_rejected(self, tmp_path, name):
        with pytest.raises(ValueError, match="Invalid plan name"):
            plan_path(tmp_path, name)

    def test_normalize(self):
        assert normalize_plan_name("x.plan.md") == "x"
        assert normalize_plan_name("x.md") == "x.md"


class TestPlanFileIO:
    """Reading, creating and deleting plan files."""

    def test_ensure_plans_dir_is_idempotent(self, tmp_path):
        first = ensure_plans_dir(tmp_path)
        second = ensure_plans_dir(tmp_path)
        assert first == second == tmp_path / "plans"
        assert first.is_dir()

    def test_read_missing_plan(self, tmp_path):
        assert read_existing_plan(tmp_path / "nope.plan.md") is None

    def test_read_blank_plan(self, tmp_path):
        path = tmp_path / "blank.plan.md"
        path.write_text("\n\n")
        assert read_existing_plan(path) is None

    def test_read_existing_plan(self, tmp_path):
        path = tmp_path / "x.plan.md"
        path.write_text("# Plan\n")
        assert read_existing_plan(path) == "# Plan\n"

    def test_delete_plan(self, tmp_path):
        path = tmp_path / "x.plan.md"
        path.write_text("# Plan\n")
        assert delete_plan(path) is True
        assert not path.exists()

    def test_delete_missing_plan(self, tmp_path):
        assert delete_plan(tmp_path / "x.plan.md") is False


class TestRelativeToWorkspace:
    """User-facing paths."""

    def test_inside_workspace(self, tmp_path):
        assert relative_to_workspace(tmp_path / "plans" / "a.plan.md", tmp_path) == "plans/a.plan.md"

    def test_outside_workspace_stays_absolute(self, tmp_path):
        other = tmp_path.parent / "elsewhere.plan.md"
        assert relative_to_workspace(other, tmp_path) == str(other.resolve())


class TestExtractIssueUrl:
    """Issue link found in plan text."""

    def test_first_issue_link(self):
        text = "# T\nIssue: https://github.com/acme/api/issues/42\nSee also https://github.com/acme/api/issues/7"
        assert extract_issue_url(text) == ("acme", "api", 42)

    def test_pull_request_links_are_ignored(self):
        assert extract_issue_url("https://github.com/acme/api/pull/3") is None

"""Tests for kickstart.plan.document module."""

import pytest

from kickstart.plan import document as plan_doc
from kickstart.plan.document import (
    ACCEPTANCE_CRITERIA,
    CHECKLIST_ITEM,
    TITLE,
    CompletionStatus,
    PlanValidationError,
    check_plan_file,
    compute_completion,
    extract_acceptance_criteria,
    parse,
    render_pr_body,
    summarize,
    validate_structure,
    verify_preserved,
)

VALID_PLAN = """# Add rate limiting

Issue: https://github.com/acme/api/issues/42

## Overview

Limit login attempts per account.

## Implementation Plan

1. Add a limiter
2. Wire it into the login view

## Acceptance Criteria

- [x] Limiter rejects the sixth attempt
- [ ] Lockout is logged
- [X] Settings are documented
"""


class TestParse:
    """Splitting text into frontmatter and sections."""

    def test_frontmatter_and_sections(self):
        doc = parse(VALID_PLAN)
        assert doc.frontmatter.startswith("# Add rate limiting")
        assert [s.title for s in doc.sections] == ["Overview", "Implementation Plan", "Acceptance Criteria"]

    def test_round_trip_is_lossless(self):
        for text in [VALID_PLAN, "## Only\nbody", "\n\n## Leading blank\n", "no sections at all", ""]:
            assert parse(text).to_text() == text

    def test_no_sections_is_all_frontmatter(self):
        doc = parse("# Title\n\nJust prose.")
        assert doc.sections == []
        assert doc.frontmatter == "# Title\n\nJust prose."

    def test_section_lookup_ignores_case_and_spacing(self):
        doc = parse("## acceptance   CRITERIA\n- [ ] a\n")
        assert doc.section(ACCEPTANCE_CRITERIA) is not None

    def test_title_from_first_h1(self):
        assert parse(VALID_PLAN).title == "Add rate limiting"
        assert parse("## Overview\ntext").title is None

    def test_section_line_ranges(self):
        doc = parse("# T\n## A\na\n## B\nb")
        assert doc.sections[0].start_line == 1
        assert doc.sections[0].end_line == 3
        assert doc.sections[1].end_line == 5


class TestAcceptanceCriteria:
    """Checklist extraction and completion."""

    def test_items_in_order_with_state(self):
        items = extract_acceptance_criteria(parse(VALID_PLAN))
        assert [(i.done, i.label) for i in items] == [
            (True, "Limiter rejects the sixth attempt"),
            (False, "Lockout is logged"),
            (True, "Settings are documented"),
        ]

    def test_item_line_is_document_line(self):
        doc = parse(VALID_PLAN)
        lines = VALID_PLAN.split("\n")
        for item in extract_acceptance_criteria(doc):
            assert item.label in lines[item.line]

    def test_checkboxes_outside_section_are_ignored(self):
        text = "# T\n## Overview\n- [ ] not a criterion\n## Acceptance Criteria\n- [ ] real\n"
        assert [i.label for i in extract_acceptance_criteria(parse(text))] == ["real"]

    def test_checkboxes_in_html_comments_are_ignored(self):
        text = "## Acceptance Criteria\n<!--\n- [ ] example\n-->\n- [ ] real\n<!-- - [ ] inline -->\n"
        assert [i.label for i in extract_acceptance_criteria(parse(text))] == ["real"]

    def test_duplicate_labels_are_independent(self):
        text = "## Acceptance Criteria\n- [x] Add tests\n- [ ] Add tests\n"
        status = compute_completion(parse(text))
        assert status.total == 2
        assert status.completed == 1
        assert status.incomplete == ("Add tests",)

    def test_missing_section_gives_empty_list(self):
        assert extract_acceptance_criteria(parse("# T\n## Overview\nx")) == []

    def test_partial_completion(self):
        status = compute_completion(parse(VALID_PLAN))
        assert status.total == 3
        assert status.completed == 2
        assert status.remaining == 1
        assert not status.complete

    def test_zero_items_is_never_complete(self):
        assert CompletionStatus(total=0, completed=0).complete is False

    def test_all_checked_is_complete(self):
        assert CompletionStatus(total=2, completed=2).complete is True


class TestValidateStructure:
    """Required title, sections, and at least one checkbox."""

    def test_valid_plan_has_nothing_missing(self):
        assert validate_structure(parse(VALID_PLAN)) == []

    def test_missing_acceptance_criteria(self):
        text = VALID_PLAN.split("## Acceptance Criteria")[0]
        assert validate_structure(parse(text)) == [ACCEPTANCE_CRITERIA]

    def test_missing_title(self):
        text = VALID_PLAN.replace("# Add rate limiting\n", "")
        assert TITLE in validate_structure(parse(text))

    def test_section_without_checkbox(self):
        text = VALID_PLAN.split("- [x]")[0] + "Nothing to check.\n"
        assert validate_structure(parse(text)) == [CHECKLIST_ITEM]


class TestCheckPlanFile:
    """File-level validation errors."""

    def test_missing_file(self, tmp_path):
        path = tmp_path / "plans" / "x.plan.md"
        with pytest.raises(PlanValidationError, match="Plan file not found at .*Plan phase must create"):
            check_plan_file(path)

    def test_empty_file(self, tmp_path):
        path = tmp_path / "x.plan.md"
        path.write_text("  \n")
        with pytest.raises(PlanValidationError, match="exists but is empty"):
            check_plan_file(path)

    def test_missing_sections_listed(self, tmp_path):
        path = tmp_path / "x.plan.md"
        path.write_text("# T\n\n## Overview\ntext\n")
        with pytest.raises(PlanValidationError, match="missing required sections") as exc:
            check_plan_file(path)
        assert exc.value.missing == ["Implementation Plan", "Acceptance Criteria"]

    def test_no_checkbox_message(self, tmp_path):
        path = tmp_path / "x.plan.md"
        path.write_text("# T\n## Overview\na\n## Implementation Plan\nb\n## Acceptance Criteria\nnone\n")
        with pytest.raises(PlanValidationError, match=r"Use format: - \[ \] Description"):
            check_plan_file(path)

    def test_valid_file_returns_document(self, tmp_path):
        path = tmp_path / "x.plan.md"
        path.write_text(VALID_PLAN)
        assert check_plan_file(path).title == "Add rate limiting"


class TestVerifyPreserved:
    """Only empty sections may change; checkbox flips are allowed."""

    TEMPLATE = "Intro text\n\n## Problem\nUsers are locked out.\n\n## Proposal\n\n## Notes\n<!-- optional -->\n"

    def test_filling_empty_sections_is_allowed(self):
        updated = self.TEMPLATE.replace("## Proposal\n", "## Proposal\nAdd a limiter.\n")
        updated = updated.replace("<!-- optional -->", "Some notes")
        assert verify_preserved(parse(self.TEMPLATE), parse(updated)) == []

    def test_frontmatter_change_is_a_violation(self):
        updated = self.TEMPLATE.replace("Intro text", "Rewritten intro")
        violations = verify_preserved(parse(self.TEMPLATE), parse(updated))
        assert violations == ["Frontmatter was modified. Content above the first ## section must be preserved."]

    def test_modified_non_empty_section(self):
        updated = self.TEMPLATE.replace("Users are locked out.", "Users are annoyed.")
        violations = verify_preserved(parse(self.TEMPLATE), parse(updated))
        assert violations == [
            'Non-empty section "## Problem" was modified. Only empty sections should be filled.'
        ]

    def test_removed_section(self):
        updated = self.TEMPLATE.replace("## Notes\n<!-- optional -->\n", "")
        assert verify_preserved(parse(self.TEMPLATE), parse(updated)) == ["Missing section: ## Notes"]

    def test_checkbox_flip_is_allowed(self):
        original = parse(VALID_PLAN)
        updated = parse(VALID_PLAN.replace("- [ ] Lockout is logged", "- [x] Lockout is logged"))
        assert verify_preserved(original, updated) == []

    def test_duplicate_headings_pair_by_position(self):
        original = parse("## Step\none\n## Step\n\n")
        updated = parse("## Step\none\n## Step\ntwo\n")
        assert verify_preserved(original, updated) == []

    def test_whitespace_only_differences_are_ignored(self):
        original = parse("## A\ntext\n")
        updated = parse("## A\n\ntext\n\n")
        assert verify_preserved(original, updated) == []


class TestSummarize:
    """PR summary extraction."""

    def test_overview_and_criteria(self):
        summary = summarize(parse(VALID_PLAN))
        assert summary.title == "Add rate limiting"
        assert summary.overview == "Limit login attempts per account."
        assert summary.total == 3
        assert summary.completed == 2

    def test_overview_truncated_and_flattened(self):
        text = "# T\n## Overview\n" + ("word " * 100) + "\nsecond line\n"
        summary = summarize(parse(text))
        assert len(summary.overview) <= plan_doc.OVERVIEW_SUMMARY_LENGTH
        assert "\n" not in summary.overview

    def test_falls_back_to_frontmatter_prose(self):
        summary = summarize(parse("# Title\n\nSome context here.\n\n## Acceptance Criteria\n- [ ] a\n"))
        assert summary.overview == "Some context here."


class TestRenderPrBody:
    """PR description layout."""

    def test_full_body(self):
        body = render_pr_body(summarize(parse(VALID_PLAN)), 42)
        assert body.startswith("## Summary\n\nLimit login attempts per account.\n\n## Changes\n\n")
        assert "- Lockout is logged\n" in body
        assert body.endswith("Closes #42")

    def test_without_summary(self):
        assert render_pr_body(None, 7) == "Closes #7"

"""
Plan document model.

A plan file is markdown with a free-form header (the "frontmatter": everything
above the first ``## `` heading) followed by second-level sections. The
Acceptance Criteria section holds the checklist that tracks completion:

    # Add login rate limiting

    ## Overview
    ...

    ## Implementation Plan
    ...

    ## Acceptance Criteria
    - [x] Limiter rejects the sixth attempt
    - [ ] Lockout is logged

The same parser is used for GitHub issue bodies (template sections) and for
AGENTS.md, since all three share the frontmatter + ``##`` section shape.
"""

import re
from dataclasses import dataclass, field
from pathlib import Path

SECTION_RE = re.compile(r'^##\s+(.+)$')
TITLE_RE = re.compile(r'^#\s+(.+)$')
CHECKBOX_RE = re.compile(r'^-\s+\[([\sxX])\]\s+(.+)$')
HTML_COMMENT_RE = re.compile(r'<!--.*?-->', re.DOTALL)

OVERVIEW = "Overview"
IMPLEMENTATION_PLAN = "Implementation Plan"
ACCEPTANCE_CRITERIA = "Acceptance Criteria"
TITLE = "Title (H1)"
CHECKLIST_ITEM = "Acceptance Criteria checkbox"

REQUIRED_SECTIONS = (OVERVIEW, IMPLEMENTATION_PLAN, ACCEPTANCE_CRITERIA)

OVERVIEW_SUMMARY_LENGTH = 300


def normalize_heading(text: str) -> str:
    """Normalize heading text for matching: case- and whitespace-insensitive."""
    return " ".join(text.split()).casefold()


def is_empty_section(body: str) -> bool:
    """True if only whitespace remains after stripping HTML comments."""
    return HTML_COMMENT_RE.sub("", body).strip() == ""


@dataclass(frozen=True)
class Section:
    """A ``##`` section. ``header`` is the full heading line, ``body`` excludes it."""
    header: str
    body: str
    start_line: int  # 0-indexed line of the heading
    end_line: int  # exclusive

    @property
    def title(self) -> str:
        match = SECTION_RE.match(self.header)
        return match.group(1).strip() if match else self.header.strip()

    @property
    def is_empty(self) -> bool:
        return is_empty_section(self.body)

    def matches(self, name: str) -> bool:
        return normalize_heading(self.title) == normalize_heading(name)


@dataclass(frozen=True)
class ChecklistItem:
    done: bool
    label: str
    line: int  # 0-indexed line within the document


@dataclass(frozen=True)
class CompletionStatus:
    """Derived completion state of the Acceptance Criteria checklist."""
    total: int
    completed: int
    incomplete: tuple[str, ...] = ()

    @property
    def complete(self) -> bool:
        # An empty checklist is never complete
        return self.total > 0 and self.completed == self.total

    @property
    def remaining(self) -> int:
        return self.total - self.completed


@dataclass
class PlanDocument:
    frontmatter: str
    sections: list[Section] = field(default_factory=list)

    def section(self, name: str) -> Section | None:
        """First section whose heading text matches ``name``."""
        for section in self.sections:
            if section.matches(name):
                return section
        return None

    @property
    def title(self) -> str | None:
        """Text of the first ``# `` heading, if any."""
        for line in self.to_text().split("\n"):
            match = TITLE_RE.match(line)
            if match:
                return match.group(1).strip()
        return None

    def to_text(self) -> str:
        if not self.sections:
            return self.frontmatter
        parts = []
        # A document that starts directly with "## " has no frontmatter line
        if self.frontmatter or self.sections[0].start_line > 0:
            parts.append(self.frontmatter)
        for section in self.sections:
            parts.append(section.header)
            parts.append(section.body)
        return "\n".join(parts)


@dataclass(frozen=True)
class PlanSummary:
    """Condensed plan content used for PR descriptions."""
    title: str
    overview: str
    acceptance_criteria: tuple[str, ...]
    completed: int
    total: int


class PlanValidationError(Exception):
    """Plan file is missing, empty, or structurally invalid."""

    def __init__(self, message: str, path: Path | None = None, missing: list[str] | None = None):
        self.path = path
        self.missing = missing or []
        super().__init__(message)


def parse(text: str) -> PlanDocument:
    """Split text into frontmatter and ``##`` sections.

    Two passes: first find the heading boundaries, then slice the lines
    between them. ``parse(text).to_text() == text`` for any input.
    """
    lines = text.split("\n")

    boundaries = [i for i, line in enumerate(lines) if SECTION_RE.match(line)]
    if not boundaries:
        return PlanDocument(frontmatter=text)

    first = boundaries[0]
    frontmatter = "\n".join(lines[:first])
    sections = []
    for index, start in enumerate(boundaries):
        end = boundaries[index + 1] if index + 1 < len(boundaries) else len(lines)
        sections.append(Section(
            header=lines[start],
            body="\n".join(lines[start + 1:end]),
            start_line=start,
            end_line=end,
        ))
    return PlanDocument(frontmatter=frontmatter, sections=sections)


def load(path: Path) -> PlanDocument:
    return parse(Path(path).read_text())


def _checklist_lines(body: str) -> list[tuple[int, str]]:
    """Body lines outside HTML comment blocks, with their offsets."""
    result = []
    in_comment = False
    for offset, line in enumerate(body.split("\n")):
        if '<!--' in line:
            in_comment = '-->' not in line.split('<!--', 1)[1]
            continue
        if in_comment:
            if '-->' in line:
                in_comment = False
            continue
        result.append((offset, line))
    return result


def extract_acceptance_criteria(doc: PlanDocument) -> list[ChecklistItem]:
    """Checklist items of the Acceptance Criteria section, in document order.

    Duplicate labels are kept as separate items. Returns [] when the section
    is absent.
    """
    section = doc.section(ACCEPTANCE_CRITERIA)
    if section is None:
        return []

    items = []
    for offset, line in _checklist_lines(section.body):
        match = CHECKBOX_RE.match(line)
        if match:
            items.append(ChecklistItem(
                done=match.group(1).lower() == "x",
                label=match.group(2).strip(),
                line=section.start_line + 1 + offset,
            ))
    return items


def validate_structure(doc: PlanDocument) -> list[str]:
    """Return names of missing required parts; empty list means usable."""
    missing = []
    if doc.title is None:
        missing.append(TITLE)
    for name in REQUIRED_SECTIONS:
        if doc.section(name) is None:
            missing.append(name)
    if doc.section(ACCEPTANCE_CRITERIA) is not None and not extract_acceptance_criteria(doc):
        missing.append(CHECKLIST_ITEM)
    return missing


def check_plan_file(path: Path) -> PlanDocument:
    """Load a plan file and require a usable structure.

    Raises:
        PlanValidationError: file missing, empty, or missing required parts
    """
    path = Path(path)
    if not path.exists():
        raise PlanValidationError(
            f"Plan file not found at {path}. "
            "Plan phase must create a plan file with all required sections.",
            path=path,
        )

    text = path.read_text()
    if not text.strip():
        raise PlanValidationError(f"Plan file exists but is empty at {path}", path=path)

    doc = parse(text)
    missing = validate_structure(doc)
    if CHECKLIST_ITEM in missing and len(missing) == 1:
        raise PlanValidationError(
            "Plan file must contain at least one checkbox in Acceptance Criteria section. "
            "Use format: - [ ] Description",
            path=path,
            missing=missing,
        )
    if missing:
        raise PlanValidationError(
            f"Plan file is missing required sections: {', '.join(missing)}. "
            f"Required sections: {TITLE}, {', '.join(REQUIRED_SECTIONS)}",
            path=path,
            missing=missing,
        )
    return doc


def _sections_by_occurrence(doc: PlanDocument) -> dict[tuple[str, int], Section]:
    """Key sections by (normalized title, nth occurrence) so repeated headings pair up by position."""
    seen: dict[str, int] = {}
    keyed = {}
    for section in doc.sections:
        name = normalize_heading(section.title)
        count = seen.get(name, 0)
        seen[name] = count + 1
        keyed[(name, count)] = section
    return keyed


def _unmark_checkboxes(body: str) -> str:
    """Reset every checkbox mark so bodies compare equal across check/uncheck edits."""
    lines = []
    for line in body.strip().split("\n"):
        match = CHECKBOX_RE.match(line)
        lines.append(f"- [ ] {match.group(2)}" if match else line)
    return "\n".join(lines)


def verify_preserved(original: PlanDocument, updated: PlanDocument) -> list[str]:
    """Check that an edit only filled empty sections or flipped checkboxes.

    Returns a list of violations; empty means the edit is acceptable.
    """
    violations = []

    if original.frontmatter.strip() != updated.frontmatter.strip():
        violations.append(
            "Frontmatter was modified. Content above the first ## section must be preserved."
        )

    updated_sections = _sections_by_occurrence(updated)
    for key, section in _sections_by_occurrence(original).items():
        counterpart = updated_sections.get(key)
        if counterpart is None:
            violations.append(f"Missing section: {section.header}")
            continue
        if section.is_empty:
            continue
        if _unmark_checkboxes(section.body) != _unmark_checkboxes(counterpart.body):
            violations.append(
                f'Non-empty section "{section.header}" was modified. '
                "Only empty sections should be filled."
            )

    return violations


def compute_completion(doc: PlanDocument) -> CompletionStatus:
    items = extract_acceptance_criteria(doc)
    return CompletionStatus(
        total=len(items),
        completed=sum(1 for item in items if item.done),
        incomplete=tuple(item.label for item in items if not item.done),
    )


def summarize(doc: PlanDocument) -> PlanSummary:
    """Title, a short overview, and the checklist labels."""
    overview_section = doc.section(OVERVIEW)
    if overview_section is not None:
        overview_text = overview_section.body
    else:
        # Fall back to prose below the title
        overview_text = "\n".join(
            line for line in doc.frontmatter.split("\n") if not TITLE_RE.match(line)
        )
    overview_text = HTML_COMMENT_RE.sub("", overview_text).strip()
    overview = re.sub(r'\n+', ' ', overview_text[:OVERVIEW_SUMMARY_LENGTH])

    items = extract_acceptance_criteria(doc)
    return PlanSummary(
        title=doc.title or "",
        overview=overview,
        acceptance_criteria=tuple(item.label for item in items),
        completed=sum(1 for item in items if item.done),
        total=len(items),
    )


def render_pr_body(summary: PlanSummary | None, issue_number: int) -> str:
    """PR description: Summary, Changes, and a Closes link."""
    if summary is None:
        return f"Closes #{issue_number}"

    body = "## Summary\n\n"
    if summary.overview:
        body += summary.overview + "\n\n"
    elif summary.title:
        body += summary.title + "\n\n"

    if summary.acceptance_criteria:
        body += "## Changes\n\n"
        for criterion in summary.acceptance_criteria:
            body += f"- {criterion}\n"
        body += "\n"

    body += f"Closes #{issue_number}"
    return body

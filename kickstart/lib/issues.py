"""
Work item resolution.

A work item is either a GitHub issue (URL, bare number, or ``#123``) in the
current repository, or a local markdown document.
"""

import logging
import re
from dataclasses import dataclass
from pathlib import Path

from kickstart.lib import github

logger = logging.getLogger(__name__)

ISSUE_URL_RE = re.compile(
    r'^https?://github\.com/([^/]+)/([^/]+)/issues/(\d+)(?:\?.*)?$',
    re.IGNORECASE,
)
ISSUE_NUMBER_RE = re.compile(r'^#?(\d+)$')
CONTEXT_HEADER_RE = re.compile(r'^# Issue #(\d+): (.+)$', re.MULTILINE)
H1_RE = re.compile(r'^#\s+(.+)$', re.MULTILINE)


class WorkItemError(Exception):
    """The work item reference is invalid or could not be resolved."""


@dataclass(frozen=True)
class WorkItem:
    number: int
    title: str
    body: str
    labels: tuple[str, ...] = ()
    owner: str | None = None
    repo: str | None = None
    url: str | None = None
    source_path: Path | None = None

    @property
    def is_issue(self) -> bool:
        return self.owner is not None and self.repo is not None and self.number > 0


@dataclass(frozen=True)
class WorkItemInput:
    """Classified user input: exactly one of the two fields is set."""
    issue_ref: str | None = None
    local_path: Path | None = None


def is_issue_reference(raw: str) -> bool:
    raw = raw.strip()
    return bool(ISSUE_URL_RE.match(raw) or ISSUE_NUMBER_RE.match(raw))


def classify_input(raw: str) -> WorkItemInput:
    """Issue URL or number vs. local document path.

    Raises:
        WorkItemError: empty input
    """
    raw = (raw or "").strip()
    if not raw:
        raise WorkItemError("An issue URL, issue number, or markdown file path is required")
    if is_issue_reference(raw):
        return WorkItemInput(issue_ref=raw)
    return WorkItemInput(local_path=Path(raw).expanduser())


def parse_issue_reference(raw: str) -> tuple[str | None, str | None, int]:
    """(owner, repo, number); owner/repo are None for bare numbers.

    Raises:
        WorkItemError: neither a GitHub issue URL nor a number
    """
    raw = raw.strip()
    match = ISSUE_URL_RE.match(raw)
    if match:
        return match.group(1), match.group(2), int(match.group(3))
    match = ISSUE_NUMBER_RE.match(raw)
    if match:
        return None, None, int(match.group(1))
    raise WorkItemError(
        f"Invalid issue URL or number: {raw}. Provide a full URL "
        "(e.g. https://github.com/owner/repo/issues/123) or an issue number "
        "for the current repository."
    )


def resolve_issue(raw: str, workspace_root: Path) -> WorkItem:
    """Fetch an issue from the repository checked out at ``workspace_root``.

    Raises:
        WorkItemError: bad reference, different repository, or fetch failed
    """
    owner, repo, number = parse_issue_reference(raw)
    try:
        current_owner, current_repo = github.get_current_repo(workspace_root)
    except github.GitHubError as e:
        raise WorkItemError(f"Could not determine the current repository: {e}") from None

    if owner is not None and (owner.lower(), repo.lower()) != (current_owner.lower(), current_repo.lower()):
        raise WorkItemError(
            f"Issue URL points to a different repository ({owner}/{repo}) than the current "
            f"workspace ({current_owner}/{current_repo}). Kickstart only supports implementing "
            "issues from the current repository."
        )

    try:
        data = github.fetch_issue(current_owner, current_repo, number, workspace_root)
    except github.GitHubError as e:
        raise WorkItemError(f"Failed to fetch issue #{number}: {e}") from None

    return WorkItem(
        number=data["number"],
        title=data["title"],
        body=data["body"],
        labels=tuple(data["labels"]),
        owner=current_owner,
        repo=current_repo,
        url=data["url"],
    )


def parse_issue_context(text: str) -> tuple[int, str] | None:
    """(number, title) from a ``# Issue #N: title`` header."""
    match = CONTEXT_HEADER_RE.search(text)
    if not match:
        return None
    return int(match.group(1)), match.group(2).strip()


def load_local_document(path: Path, workspace_root: Path) -> WorkItem:
    """Work item from a markdown file.

    Raises:
        WorkItemError: missing or not a regular file
    """
    path = Path(path)
    if not path.is_absolute():
        path = Path(workspace_root) / path
    if not path.exists():
        raise WorkItemError(f"File not found: {path}")
    if not path.is_file():
        raise WorkItemError(f"Not a file: {path}")

    text = path.read_text()
    header = parse_issue_context(text)
    if header is not None:
        number, title = header
    else:
        h1 = H1_RE.search(text)
        number, title = 0, h1.group(1).strip() if h1 else path.stem

    return WorkItem(number=number, title=title, body=text, source_path=path)


def resolve_work_item(raw: str, workspace_root: Path) -> WorkItem:
    classified = classify_input(raw)
    if classified.issue_ref is not None:
        return resolve_issue(classified.issue_ref, workspace_root)
    return load_local_document(classified.local_path, workspace_root)


def format_issue_context(item: WorkItem) -> str:
    """Markdown context handed to the agent."""
    if item.source_path is not None and not item.is_issue:
        return item.body
    labels = "".join(f"- {label}\n" for label in item.labels) if item.labels else "(none)\n"
    return f"# Issue #{item.number}: {item.title}\n\n{item.body}\n\n---\n\n## Labels\n{labels}"

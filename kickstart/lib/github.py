"""
GitHub boundary via the gh CLI.

Every call goes through ``_gh`` with a fixed timeout and raises GitHubError on
failure, so callers never see raw subprocess errors.
"""

import json
import logging
import re
import subprocess
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)

# Timeout for GitHub CLI operations (seconds)
GH_TIMEOUT_SECONDS = 30

PR_URL_RE = re.compile(r'https?://github\.com/([^/\s]+)/([^/\s]+)/pull/(\d+)')


class GitHubError(Exception):
    """A gh CLI call failed, timed out, or returned unexpected output."""


@dataclass
class Comment:
    author: str
    body: str


@dataclass
class ReviewComment:
    author: str
    path: str
    line: int | None
    body: str


@dataclass
class Review:
    author: str
    state: str  # APPROVED, CHANGES_REQUESTED, COMMENTED, DISMISSED
    body: str


@dataclass
class PullRequest:
    owner: str
    repo: str
    number: int
    title: str
    body: str
    url: str
    head_branch: str
    comments: list[Comment] = field(default_factory=list)
    reviews: list[Review] = field(default_factory=list)
    review_comments: list[ReviewComment] = field(default_factory=list)


def _gh(args: list[str], cwd: Path | None = None, input_text: str | None = None) -> str:
    """Run gh and return stdout.

    Raises:
        GitHubError: non-zero exit, timeout, or gh missing
    """
    cmd = ["gh"] + args
    logger.debug(f"gh {' '.join(args)}")
    try:
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            cwd=str(cwd) if cwd else None,
            input=input_text,
            timeout=GH_TIMEOUT_SECONDS,
        )
    except FileNotFoundError:
        raise GitHubError("GitHub CLI (gh) not found. Install it from https://cli.github.com/") from None
    except subprocess.TimeoutExpired:
        raise GitHubError(f"gh {args[0]} timed out after {GH_TIMEOUT_SECONDS}s") from None
    except subprocess.SubprocessError as e:
        raise GitHubError(f"gh {args[0]} failed: {e}") from None

    if result.returncode != 0:
        detail = result.stderr.strip() or result.stdout.strip()
        raise GitHubError(f"gh {' '.join(args[:2])} failed: {detail}")
    return result.stdout


def _gh_json(args: list[str], cwd: Path | None = None):
    output = _gh(args, cwd)
    try:
        return json.loads(output)
    except json.JSONDecodeError as e:
        raise GitHubError(f"Invalid JSON from gh {' '.join(args[:2])}: {e}") from None


def get_current_repo(cwd: Path) -> tuple[str, str]:
    """(owner, repo) of the repository checked out at ``cwd``."""
    data = _gh_json(["repo", "view", "--json", "owner,name"], cwd)
    try:
        return data["owner"]["login"], data["name"]
    except (KeyError, TypeError):
        raise GitHubError("Could not determine the current repository from gh repo view") from None


def fetch_issue(owner: str, repo: str, number: int, cwd: Path | None = None) -> dict:
    """Issue fields: number, title, body, labels (names), url."""
    data = _gh_json([
        "issue", "view", str(number),
        "--repo", f"{owner}/{repo}",
        "--json", "number,title,body,labels,url",
    ], cwd)
    return {
        "number": data.get("number", number),
        "title": data.get("title", ""),
        "body": data.get("body") or "",
        "labels": [label.get("name", "") for label in data.get("labels") or []],
        "url": data.get("url", f"https://github.com/{owner}/{repo}/issues/{number}"),
    }


def update_issue_body(owner: str, repo: str, number: int, body: str, cwd: Path | None = None) -> None:
    _gh([
        "issue", "edit", str(number),
        "--repo", f"{owner}/{repo}",
        "--body-file", "-",
    ], cwd, input_text=body)
    logger.info(f"Updated body of {owner}/{repo}#{number}")


def create_pull_request(cwd: Path, head: str, title: str, body: str) -> str:
    """Open a PR from ``head`` and return its URL."""
    output = _gh([
        "pr", "create",
        "--head", head,
        "--title", title,
        "--body-file", "-",
    ], cwd, input_text=body)
    url = output.strip().splitlines()[-1] if output.strip() else ""
    if not url:
        raise GitHubError("gh pr create did not return a PR URL")
    return url


def parse_pr_url(url: str) -> tuple[str, str, int] | None:
    """(owner, repo, number) from a pull request URL."""
    match = PR_URL_RE.search(url)
    if not match:
        return None
    return match.group(1), match.group(2), int(match.group(3))


def _author(item: dict) -> str:
    author = item.get("author") or item.get("user") or {}
    return author.get("login", "unknown")


def fetch_pull_request(owner: str, repo: str, number: int, cwd: Path | None = None) -> PullRequest:
    """PR description, conversation comments, reviews and line comments."""
    data = _gh_json([
        "pr", "view", str(number),
        "--repo", f"{owner}/{repo}",
        "--json", "number,title,body,url,headRefName,comments,reviews",
    ], cwd)

    raw_line_comments = _gh_json(["api", f"repos/{owner}/{repo}/pulls/{number}/comments"], cwd) or []
    review_comments = [
        ReviewComment(
            author=_author(c),
            path=c.get("path", ""),
            line=c.get("line") or c.get("original_line"),
            body=c.get("body") or "",
        )
        for c in raw_line_comments
    ]

    reviews = []
    for r in data.get("reviews") or []:
        reviews.append(Review(
            author=_author(r),
            state=r.get("state", ""),
            body=r.get("body") or "",
        ))

    return PullRequest(
        owner=owner,
        repo=repo,
        number=data.get("number", number),
        title=data.get("title", ""),
        body=data.get("body") or "",
        url=data.get("url", f"https://github.com/{owner}/{repo}/pull/{number}"),
        head_branch=data.get("headRefName", ""),
        comments=[Comment(author=_author(c), body=c.get("body") or "") for c in data.get("comments") or []],
        reviews=reviews,
        review_comments=review_comments,
    )


def checkout_pull_request(number: int, cwd: Path) -> bool:
    """``gh pr checkout``; False instead of raising so callers can fall back."""
    try:
        _gh(["pr", "checkout", str(number)], cwd)
        return True
    except GitHubError as e:
        logger.warning(f"gh pr checkout {number} failed: {e}")
        return False

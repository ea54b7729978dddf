"""Detect agent output that says it could not proceed at all.

Agents sometimes exit 0 after giving up, so this runs regardless of the
exit code.
"""

import re

BLOCKING_PATTERNS = [
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r'error:\s*cannot proceed',
        r'error:\s*implementation blocked',
        r'cannot proceed with implementation',
        r'implementation blocked:',
        r'codebase not present',
        r'required.*not present',
        r'missing.*codebase',
        r'workspace.*not found',
        r'critical.*missing',
    )
]


def detect_blocking_error(stdout: str, stderr: str) -> str | None:
    """Context around the first blocking phrase, or None.

    The context is the matching line with one line before and two after,
    taken from the original text so case is preserved.
    """
    lines = f"{stdout}\n{stderr}".split("\n")
    for index, line in enumerate(lines):
        if any(pattern.search(line) for pattern in BLOCKING_PATTERNS):
            return "\n".join(lines[max(0, index - 1):index + 3]).strip()
    return None

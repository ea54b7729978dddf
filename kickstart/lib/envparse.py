"""
Safe .env parser for .kickstart.env.

Reads KEY=value lines without any shell evaluation. Values that contain
shell metacharacters are rejected outright instead of being interpreted.
"""

import re
from pathlib import Path

FORBIDDEN_PATTERNS = [
    (re.compile(r'`'), "backtick"),
    (re.compile(r'\$\('), "command substitution"),
    (re.compile(r'\$\{'), "variable expansion"),
    (re.compile(r';'), "';'"),
    (re.compile(r'&&'), "'&&'"),
    (re.compile(r'\|\|'), "'||'"),
    (re.compile(r'\|'), "pipe"),
]

KEY_PATTERN = re.compile(r'^[A-Z][A-Z0-9_]*$')


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ('"', "'"):
        return value[1:-1]
    return value


def parse_env(text: str) -> dict[str, str]:
    """
    Parse env-file text.

    Raises:
        ValueError: "Line N: ..." for bad syntax, bad keys, or forbidden values
    """
    result = {}
    for lineno, raw in enumerate(text.splitlines(), 1):
        line = raw.strip()
        if not line or line.startswith('#'):
            continue
        if line.startswith('export '):
            line = line[len('export '):].lstrip()

        key, sep, value = line.partition('=')
        if not sep:
            raise ValueError(f"Line {lineno}: Invalid syntax (no '=')")

        key = key.strip()
        if not KEY_PATTERN.match(key):
            raise ValueError(f"Line {lineno}: Invalid key '{key}'")

        value = _unquote(value.strip())
        for pattern, label in FORBIDDEN_PATTERNS:
            if pattern.search(value):
                raise ValueError(f"Line {lineno}: Forbidden {label} in value of {key}")

        result[key] = value
    return result


def load_env(filepath: Path) -> dict[str, str]:
    """
    Parse an env file.

    Raises:
        FileNotFoundError: if file doesn't exist
        ValueError: if syntax invalid or forbidden pattern found
    """
    path = Path(filepath)
    if not path.exists():
        raise FileNotFoundError(f"Env file not found: {filepath}")
    return parse_env(path.read_text())

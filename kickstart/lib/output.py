"""
User-facing console output.

Step headers, status lines and agent output go through one rich Console.
Colors are off when NO_COLOR is set or when running in CI.
"""

import os

from rich.console import Console
from rich.markup import escape
from rich.rule import Rule


def _make_console(stderr: bool = False) -> Console:
    no_color = bool(os.environ.get("NO_COLOR")) or bool(os.environ.get("CI"))
    return Console(stderr=stderr, no_color=no_color, highlight=False, soft_wrap=True)


console = _make_console()
err_console = _make_console(stderr=True)


def step(number: int, message: str) -> None:
    console.print(f"\n[bold cyan]Step {number}:[/] {escape(message)}")


def info(message: str) -> None:
    console.print(escape(message))


def success(message: str) -> None:
    console.print(f"[green]✓[/] {escape(message)}")


def warning(message: str) -> None:
    console.print(f"[yellow]Warning:[/] {escape(message)}")


def error(message: str) -> None:
    err_console.print(f"[bold red]ERROR:[/] {escape(message)}")


def rule(title: str = "") -> None:
    console.print(Rule(escape(title)) if title else Rule())


def block(title: str, text: str) -> None:
    """A titled block of raw text, e.g. agent stdout."""
    if not text.strip():
        return
    rule(title)
    console.print(text.rstrip(), markup=False)
    rule()

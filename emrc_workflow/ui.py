"""Colorized console output for emrc-workflow commands.

Thin wrapper around :mod:`rich`.  User-facing status lines go through
this module; ``logger.*`` calls stay for structured logging.
"""

from __future__ import annotations

from rich.console import Console
from rich.panel import Panel

# Shared console; Rich decides whether stdout is a terminal.
console = Console(stderr=False, force_terminal=None)

# ── Symbols ────────────────────────────────────────────────────────────────

_PASS = "[bold green]✓[/]"
_FAIL = "[bold red]✗[/]"
_WARN = "[bold yellow]⚠[/]"
_ARROW = "[bold cyan]›[/]"
_DOT = "[dim]·[/]"

# ── Phase headers ──────────────────────────────────────────────────────────


def phase(title: str) -> None:
    """Print a bold phase header (``ASSEMBLE``, ``PREFLIGHT``, ``DEPLOY``)."""
    console.print()
    console.print(f"[bold blue]── {title} ──[/]")


# ── Status lines ───────────────────────────────────────────────────────────


def ok(msg: str) -> None:
    console.print(f"  {_PASS} {msg}")


def fail(msg: str) -> None:
    console.print(f"  {_FAIL} [red]{msg}[/]")


def warn(msg: str) -> None:
    console.print(f"  {_WARN} [yellow]{msg}[/]")


def step(msg: str) -> None:
    """In-progress action."""
    console.print(f"  {_ARROW} {msg}")


def info(msg: str) -> None:
    console.print(f"  {_DOT} [dim]{msg}[/]")


def detail(key: str, value: str) -> None:
    """Key-value pair, indented."""
    console.print(f"    [bold]{key}[/]: {value}", highlight=False)


def error_msg(msg: str) -> None:
    """Bold red error message (not indented)."""
    console.print(f"[bold red]ERROR:[/] {msg}")


# ── Panels ────────────────────────────────────────────────────────────────


def _panel(title: str, body: str, color: str) -> None:
    console.print()
    console.print(
        Panel(
            body,
            title=f"[bold {color}]{title}[/]",
            border_style=color,
            padding=(1, 2),
        )
    )


def success_panel(title: str, body: str) -> None:
    _panel(title, body, "green")


def error_panel(title: str, body: str) -> None:
    _panel(title, body, "red")


def elapsed_str(seconds: float) -> str:
    """Format seconds as ``Xm Ys``."""
    m, s = divmod(int(seconds), 60)
    if m > 0:
        return f"{m}m {s}s"
    return f"{s}s"

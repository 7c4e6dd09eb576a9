"""Shared Rich Console instance for wasmhttp."""

from __future__ import annotations

from rich.console import Console
from rich.markup import escape

_console: Console | None = None


def get_console() -> Console:
    """Get the shared Console instance, creating it on first access."""
    global _console
    if _console is None:
        _console = Console(highlight=False, markup=True)
    return _console


def set_console(console: Console) -> None:
    """Set a custom Console instance.

    Useful for testing or custom configurations.
    """
    global _console
    _console = console


def print_guest_line(text: str) -> None:
    """Print a line of guest output verbatim (no markup, emoji or highlighting)."""
    get_console().out(text, highlight=False)


_error_console: Console | None = None


def get_error_console() -> Console:
    """Get the shared stderr Console used for start-up errors."""
    global _error_console
    if _error_console is None:
        _error_console = Console(stderr=True, highlight=False, markup=True)
    return _error_console


def print_error(message: str) -> None:
    get_error_console().print(f"[bold red]Error:[/] {escape(message)}")

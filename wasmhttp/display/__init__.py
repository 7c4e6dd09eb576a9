"""Console output shared by the CLI and the guest's print sink."""

from wasmhttp.display.console import (
    get_console,
    get_error_console,
    print_error,
    print_guest_line,
    set_console,
)

__all__ = ["get_console", "get_error_console", "print_error", "print_guest_line", "set_console"]

"""Command-line interface."""

from wasmhttp.cli.serve import main

__all__ = ["main"]

"""Argument parsing for the wasmhttp CLI."""

import argparse
from pathlib import Path

from wasmhttp import __version__


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="wasmhttp",
        description="Run a WebAssembly guest that serves HTTP through the host",
    )
    parser.add_argument(
        "wasm",
        type=Path,
        help="Path to the guest module (.wasm or .wat)",
    )
    parser.add_argument(
        "--verbosity", "-v",
        type=int,
        choices=(0, 1, 2),
        default=0,
        help="Log level: 0 warnings, 1 info, 2 debug (default: 0)",
    )
    parser.add_argument(
        "--config", "-c",
        type=Path,
        default=None,
        help="Config file (default: ./.wasmhttp/config.json if present)",
    )
    parser.add_argument(
        "--no-start",
        dest="call_start",
        action="store_false",
        default=None,
        help="Do not call the guest's start export after instantiation",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    return parser


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    return build_parser().parse_args(argv)

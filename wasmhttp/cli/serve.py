"""Host entry point: run a guest module until interrupted.

Example:
    wasmhttp app.wasm -v 1

The guest is instantiated, its start export runs, and the process then waits
for SIGINT/SIGTERM while guest-started HTTP servers handle traffic.

Exit codes:
    0  interrupted
    1  start-up failure (config, unreadable or invalid module, trap in start)
"""

import argparse
import asyncio
import logging
import signal
from pathlib import Path

from wasmhttp.cli.arg_parser import parse_args
from wasmhttp.config.loader import load_config
from wasmhttp.config.schema import Config
from wasmhttp.core.errors import ConfigError, GuestError
from wasmhttp.display import print_error, print_guest_line
from wasmhttp.host.bootstrap import boot_guest, configure_logging

logger = logging.getLogger(__name__)


async def wait_for_interrupt() -> None:
    """Block until SIGINT or SIGTERM arrives."""
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    installed = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except (NotImplementedError, RuntimeError):
            # Windows: Ctrl+C surfaces as KeyboardInterrupt instead
            continue
        installed.append(sig)
    try:
        await stop.wait()
    finally:
        for sig in installed:
            loop.remove_signal_handler(sig)


async def run_host(wasm: Path, config: Config) -> int:
    """Boot the guest and serve until interrupted.

    Returns:
        Process exit code.
    """
    try:
        runtime, _engine = boot_guest(wasm, config, write_line=print_guest_line)
    except GuestError as e:
        print_error(e.message)
        return 1

    logger.info("Guest %s running, press Ctrl+C to stop", wasm)
    try:
        await wait_for_interrupt()
    finally:
        logger.info("Shutting down")
        await runtime.shutdown()
    return 0


def _apply_cli_overrides(config: Config, args: argparse.Namespace) -> Config:
    if args.call_start is None:
        return config
    channel = config.channel.model_copy(update={"call_start": args.call_start})
    return config.model_copy(update={"channel": channel})


def main(argv: list[str] | None = None) -> None:
    """Entry point for the wasmhttp CLI."""
    args = parse_args(argv)

    try:
        config = load_config(args.config)
    except ConfigError as e:
        print_error(f"Configuration error: {e.message}")
        raise SystemExit(1) from None
    config = _apply_cli_overrides(config, args)

    log_file = Path(config.logging.file) if config.logging.file else None
    configure_logging(args.verbosity, config.logging.level, log_file)

    try:
        exit_code = asyncio.run(run_host(args.wasm, config))
    except KeyboardInterrupt:
        exit_code = 0
    raise SystemExit(exit_code)

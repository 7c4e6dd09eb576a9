"""Object graph bootstrap for the guest host.

Builds the HostRuntime, registers the channel functions on the engine,
instantiates the guest and optionally runs its start export. Also owns process
logging setup.

Usage:
    configure_logging(verbosity=1)
    runtime, engine = boot_guest(Path("app.wasm"), config)
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Callable
from logging.handlers import RotatingFileHandler
from pathlib import Path

from wasmhttp.config.schema import DEFAULT_START_EXPORT, Config
from wasmhttp.core.errors import GuestError
from wasmhttp.host.channel import SEND_END_IMPORT, SEND_IMPORT
from wasmhttp.host.engine import GuestEngine
from wasmhttp.host.runtime import HostRuntime

logger = logging.getLogger(__name__)

ROOT_LOGGER_NAME = "wasmhttp"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

SPECTEST_NAMESPACE = "spectest"
PRINT_CHAR_IMPORT = "print_char"

VERBOSITY_LEVELS = {
    0: logging.WARNING,
    1: logging.INFO,
    2: logging.DEBUG,
}


def configure_logging(
    verbosity: int = 0,
    level_override: str | None = None,
    log_file: Path | None = None,
) -> logging.Logger:
    """Configure the wasmhttp namespace logger.

    Console output goes to stderr at the level selected by verbosity (0-2) or
    by level_override. When log_file is given, INFO and above are also written
    to a rotating file (5MB per file, 3 backups).

    Calling this again replaces the previous handlers.
    """
    console_level = (
        logging.getLevelName(level_override)
        if level_override is not None
        else VERBOSITY_LEVELS.get(verbosity, logging.DEBUG)
    )

    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.handlers.clear()
    root.propagate = False

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%H:%M:%S"))
    root.addHandler(console_handler)
    level = console_level

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=5 * 1024 * 1024,  # 5MB
            backupCount=3,
            encoding="utf-8",
        )
        file_handler.setLevel(logging.INFO)
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
        root.addHandler(file_handler)
        level = min(level, logging.INFO)

    root.setLevel(level)
    return root


def register_host_functions(engine: GuestEngine, runtime: HostRuntime) -> None:
    """Expose the channel and the print sink to the guest."""
    namespace = runtime.config.channel.host_namespace
    engine.define(namespace, SEND_IMPORT, 1, runtime.channel.push_char)
    engine.define(namespace, SEND_END_IMPORT, 0, runtime.channel.end_message)
    engine.define(SPECTEST_NAMESPACE, PRINT_CHAR_IMPORT, 1, runtime.console.print_char)


def boot_guest(
    source: Path | bytes | str,
    config: Config | None = None,
    write_line: Callable[[str], None] = print,
) -> tuple[HostRuntime, GuestEngine]:
    """Load, link and instantiate a guest, then run its start export.

    Must be called from inside the running event loop: messages the guest
    sends while starting up are dispatched on that loop.

    Raises:
        GuestError: If loading, instantiation or the start export fails, or if
            a non-default start export is configured but not exported.
    """
    runtime = HostRuntime(config, write_line=write_line)
    runtime.bind_loop()

    engine = GuestEngine()
    engine.load(source)
    register_host_functions(engine, runtime)
    engine.instantiate()
    runtime.attach(engine)
    logger.info("Guest instantiated")

    channel_config = runtime.config.channel
    if channel_config.call_start:
        start = channel_config.start_export
        if engine.has_export(start):
            logger.debug("Calling '%s'", start)
            try:
                engine.call(start)
            except GuestError as e:
                raise GuestError(f"Failed to execute '{start}': {e.message}") from e
        elif start != DEFAULT_START_EXPORT:
            raise GuestError(f"Guest does not export '{start}'")
        else:
            logger.warning("No '%s' function exported by the guest", start)

    return runtime, engine

"""Execution engine adapter over the wasmtime bindings.

Loads a guest module, registers host functions for it, instantiates it and
calls its exports by name. All store access goes through one re-entrant lock:
a wasmtime Store must not be entered from two threads at once, and host
functions called from inside the guest may call back into it.

Example:
    engine = GuestEngine()
    engine.load(Path("app.wasm"))
    engine.define("__h", "h_sd", 1, channel.push_char)
    engine.define("__h", "h_se", 0, channel.end_message)
    engine.instantiate()
    engine.call("_start")
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from pathlib import Path
from typing import Any

import wasmtime

from wasmhttp.core.errors import GuestError

logger = logging.getLogger(__name__)


class GuestEngine:
    """A single guest module and its instance."""

    def __init__(self) -> None:
        self._engine = wasmtime.Engine()
        self._store = wasmtime.Store(self._engine)
        self._linker = wasmtime.Linker(self._engine)
        self._module: wasmtime.Module | None = None
        self._instance: wasmtime.Instance | None = None
        self._lock = threading.RLock()

    @property
    def instantiated(self) -> bool:
        return self._instance is not None

    def load(self, source: Path | bytes | str) -> None:
        """Compile a guest module.

        Args:
            source: Path to a .wasm file, raw wasm bytes, or WebAssembly text.

        Raises:
            GuestError: If the file cannot be read or the module is invalid.
        """
        if isinstance(source, Path):
            try:
                if source.suffix == ".wat":
                    source = source.read_text(encoding="utf-8")
                else:
                    source = source.read_bytes()
            except (OSError, UnicodeDecodeError) as e:
                raise GuestError(f"Failed to read file {source}: {e}") from e

        try:
            self._module = wasmtime.Module(self._engine, source)
        except wasmtime.WasmtimeError as e:
            raise GuestError(f"Failed to create module: {e}") from e

        logger.debug(
            "Guest imports: %s",
            [f"{imp.module}.{imp.name}" for imp in self._module.imports],
        )

    def define(
        self,
        module: str,
        name: str,
        param_count: int,
        func: Callable[..., None],
    ) -> None:
        """Register a host function taking ``param_count`` i32 arguments.

        Raises:
            GuestError: If the name is already defined.
        """
        ty = wasmtime.FuncType([wasmtime.ValType.i32()] * param_count, [])
        try:
            self._linker.define_func(module, name, ty, func)
        except wasmtime.WasmtimeError as e:
            raise GuestError(f"Failed to define {module}.{name}: {e}") from e

    def instantiate(self) -> None:
        """Instantiate the loaded module against the defined host functions.

        Raises:
            GuestError: If no module is loaded, an import is unresolved, or
                the module's start function traps.
        """
        if self._module is None:
            raise GuestError("No module loaded")
        with self._lock:
            try:
                self._instance = self._linker.instantiate(self._store, self._module)
            except (wasmtime.WasmtimeError, wasmtime.Trap) as e:
                raise GuestError(f"Failed to instantiate module: {e}") from e

    def _export(self, name: str) -> wasmtime.Func | None:
        if self._instance is None:
            return None
        try:
            export = self._instance.exports(self._store)[name]
        except KeyError:
            return None
        return export if isinstance(export, wasmtime.Func) else None

    def has_export(self, name: str) -> bool:
        """Return True if the instance exports a function with this name."""
        with self._lock:
            return self._export(name) is not None

    def call(self, name: str, *args: int) -> Any:
        """Call an exported function.

        Raises:
            GuestError: If the export is missing or the call traps.
        """
        with self._lock:
            func = self._export(name)
            if func is None:
                raise GuestError(f"Guest does not export function '{name}'")
            try:
                return func(self._store, *args)
            except (wasmtime.WasmtimeError, wasmtime.Trap) as e:
                raise GuestError(f"'{name}' failed: {e}") from e

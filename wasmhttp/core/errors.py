"""Typed exception hierarchy for wasmhttp."""

from __future__ import annotations


class WasmHttpError(Exception):
    """Base class for all wasmhttp errors."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ConfigError(WasmHttpError):
    """Raised for configuration issues (missing file, invalid JSON, validation failure)."""


class GuestError(WasmHttpError):
    """Raised when the guest module cannot be compiled, instantiated or run."""


class ChannelError(WasmHttpError):
    """Raised for failures on the guest/host character channel."""


class ChannelNotInitializedError(ChannelError):
    """Raised when the host tries to reach a guest that is not instantiated yet."""

    def __init__(self, export: str) -> None:
        self.export = export
        super().__init__(f"channel not initialized: guest export '{export}' unavailable")


class PayloadError(WasmHttpError):
    """Raised when a command payload does not have the expected shape."""


class HttpParseError(WasmHttpError):
    """Raised when an HTTP request line cannot be read or parsed."""

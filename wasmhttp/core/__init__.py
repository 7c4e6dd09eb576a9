"""Core types shared across wasmhttp."""

from wasmhttp.core.errors import (
    ChannelError,
    ChannelNotInitializedError,
    ConfigError,
    GuestError,
    HttpParseError,
    PayloadError,
    WasmHttpError,
)

__all__ = [
    "ChannelError",
    "ChannelNotInitializedError",
    "ConfigError",
    "GuestError",
    "HttpParseError",
    "PayloadError",
    "WasmHttpError",
]

"""Pydantic models for wasmhttp configuration validation."""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR"]

DEFAULT_START_EXPORT = "_start"


class ServerConfig(BaseModel):
    """Configuration for the HTTP servers started by the guest.

    The port is chosen by the guest through ``http.listen``; everything else
    about the listening socket is decided here.

    Example in config.json:
        "server": {
            "host": "127.0.0.1",
            "max_request_line": 8192,
            "pending_timeout": 30
        }
    """

    model_config = ConfigDict(extra="forbid")

    host: str = "0.0.0.0"
    """Host address servers bind to."""

    max_request_line: int = Field(default=8192, ge=16, le=1_048_576)
    """Maximum request line length in bytes, including the line terminator."""

    pending_timeout: float | None = Field(default=None, gt=0)
    """Seconds a request may wait for the guest's http.end before it is
    answered with 504. None keeps pending requests open indefinitely."""

    keep_alive_timeout: int = Field(default=5, ge=0)
    """Value advertised in the Keep-Alive response header."""


class ChannelConfig(BaseModel):
    """Configuration for the guest side of the character channel."""

    model_config = ConfigDict(extra="forbid")

    host_namespace: str = "__h"
    """Import module name under which h_sd/h_se are provided to the guest."""

    start_export: str = DEFAULT_START_EXPORT
    """Export invoked after instantiation. The default may be absent from the
    guest; any other name must be exported."""

    call_start: bool = True
    """Invoke start_export after instantiation if the guest exports it."""


class LoggingConfig(BaseModel):
    """Configuration for process logging."""

    model_config = ConfigDict(extra="forbid")

    level: LogLevel | None = None
    """Console level override. None derives the level from --verbosity."""

    file: str | None = None
    """Optional path of a rotating log file receiving INFO and above."""


class Config(BaseModel):
    """Root configuration model.

    Example config.json:
        {
            "server": {"host": "127.0.0.1", "pending_timeout": 30},
            "channel": {"call_start": true},
            "logging": {"file": ".wasmhttp/logs/host.log"}
        }
    """

    model_config = ConfigDict(extra="forbid")

    server: ServerConfig = ServerConfig()
    channel: ChannelConfig = ChannelConfig()
    logging: LoggingConfig = LoggingConfig()

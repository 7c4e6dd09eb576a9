"""Configuration loading and validation."""

from wasmhttp.config.loader import load_config, validate_config
from wasmhttp.config.schema import ChannelConfig, Config, LoggingConfig, ServerConfig

__all__ = [
    "ChannelConfig",
    "Config",
    "LoggingConfig",
    "ServerConfig",
    "load_config",
    "validate_config",
]

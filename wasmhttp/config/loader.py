"""Configuration loading with fail-fast behavior.

The runtime reads at most one config file: an explicit path from the command
line, or the project-local ``.wasmhttp/config.json``. Without either, pydantic
defaults apply. An explicit path must exist; the local file is optional.
"""

import json
import logging
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from wasmhttp.config.schema import Config
from wasmhttp.core.errors import ConfigError

logger = logging.getLogger(__name__)

LOCAL_CONFIG_DIR = ".wasmhttp"
LOCAL_CONFIG_NAME = "config.json"


def load_config(path: Path | None = None, cwd: Path | None = None) -> Config:
    """Load and validate configuration.

    Args:
        path: Explicit config file path. Must exist when given.
        cwd: Directory searched for .wasmhttp/config.json. Defaults to Path.cwd().

    Returns:
        Validated Config object.

    Raises:
        ConfigError: If a config file is missing (explicit path only),
            unreadable, contains invalid JSON, or fails validation.
    """
    if path is not None:
        source = path
    else:
        source = (cwd or Path.cwd()) / LOCAL_CONFIG_DIR / LOCAL_CONFIG_NAME
        if not source.is_file():
            logger.debug("No config file at %s, using defaults", source)
            return Config()

    data = _read_config_json(source)
    logger.info("Config loaded from: %s", source)
    return validate_config(data, source)


def validate_config(data: dict[str, Any], source: Path | str = "<config>") -> Config:
    """Validate parsed JSON against the Config schema.

    Raises:
        ConfigError: If validation fails. The message names the source.
    """
    try:
        return Config.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Config validation failed for {source}: {e}") from e


def _read_config_json(path: Path) -> dict[str, Any]:
    # An empty file counts as "{}" so a freshly created config is valid.
    try:
        content = path.read_text(encoding="utf-8-sig")
    except FileNotFoundError:
        raise ConfigError(f"Config file not found: {path}") from None
    except OSError as e:
        raise ConfigError(f"Failed to read config file {path}: {e}") from e

    if not content.strip():
        return {}

    try:
        data = json.loads(content)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Config in {path} must be an object, got {type(data).__name__}")
    return data

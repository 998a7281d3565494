"""Configuration loading and validation."""

from __future__ import annotations

import logging
import os
import stat
from enum import Enum
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from camwatch.models.config import Config

logger = logging.getLogger(__name__)
_SENSITIVE_MODE_MASK = 0o077


class ConfigErrorCode(str, Enum):
    """Stable config error codes."""

    FILE_NOT_FOUND = "CONFIG_FILE_NOT_FOUND"
    YAML_INVALID = "CONFIG_YAML_INVALID"
    EMPTY_FILE = "CONFIG_EMPTY_FILE"
    ROOT_NOT_MAPPING = "CONFIG_ROOT_NOT_MAPPING"
    VALIDATION_FAILED = "CONFIG_VALIDATION_FAILED"
    PLUGIN_NAMES_INVALID = "CONFIG_PLUGIN_NAMES_INVALID"
    PLUGIN_CONFIG_INVALID = "CONFIG_PLUGIN_CONFIG_INVALID"
    ENV_VAR_MISSING = "CONFIG_ENV_VAR_MISSING"
    UNKNOWN = "CONFIG_UNKNOWN"


class ConfigError(Exception):
    """Configuration loading or validation error."""

    def __init__(
        self,
        message: str,
        *,
        code: ConfigErrorCode = ConfigErrorCode.UNKNOWN,
        path: Path | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.path = path
        self.__cause__ = cause


def load_config(path: Path) -> Config:
    """Load the service config from YAML, then check plugin names and configs.

    Raises:
        ConfigError: If the file is missing, is not a YAML mapping, or fails validation
    """
    if not path.exists():
        raise ConfigError(
            f"Config file not found: {path}",
            code=ConfigErrorCode.FILE_NOT_FOUND,
            path=path,
        )
    _warn_if_permissive_config_mode(path)

    raw = read_yaml_mapping(path, label="Config")
    if raw is None:
        raise ConfigError(
            f"Config file is empty: {path}",
            code=ConfigErrorCode.EMPTY_FILE,
            path=path,
        )
    return _validate(raw, path)


def load_config_from_dict(data: dict[str, Any]) -> Config:
    """Validate an in-memory config mapping."""
    return _validate(data, None)


def read_yaml_mapping(path: Path, *, label: str) -> dict[str, Any] | None:
    """Parse a YAML file whose root must be a mapping; `None` for an empty file.

    Raises:
        ConfigError: With `YAML_INVALID` or `ROOT_NOT_MAPPING`
    """
    try:
        with path.open() as f:
            raw = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(
            f"Invalid YAML in {path}: {e}",
            code=ConfigErrorCode.YAML_INVALID,
            path=path,
            cause=e,
        ) from e

    if raw is None or isinstance(raw, dict):
        return raw
    raise ConfigError(
        f"{label} must be a YAML mapping, got {type(raw).__name__}",
        code=ConfigErrorCode.ROOT_NOT_MAPPING,
        path=path,
    )


def _validate(data: dict[str, Any], path: Path | None) -> Config:
    try:
        config = Config.model_validate(data)
    except ValidationError as e:
        raise ConfigError(
            format_validation_error(e, path),
            code=ConfigErrorCode.VALIDATION_FAILED,
            path=path,
            cause=e,
        ) from e

    from camwatch.config.validation import validate_config
    from camwatch.plugins import discover_all_plugins

    discover_all_plugins()
    validate_config(config)
    return config


def resolve_env_var(env_var_name: str, *, required: bool = True) -> str | None:
    """Read a secret from the environment by variable name.

    Raises:
        ConfigError: If required and not set
    """
    value = os.environ.get(env_var_name)
    if value is None and required:
        raise ConfigError(
            f"Required environment variable not set: {env_var_name}",
            code=ConfigErrorCode.ENV_VAR_MISSING,
        )
    return value


def format_validation_error(
    e: ValidationError, path: Path | None = None, *, what: str = "Config"
) -> str:
    """Render a pydantic error as one `location: message` line per problem."""
    where = f" ({path})" if path else ""
    lines = [f"{what} validation failed{where}:"]
    for err in e.errors():
        loc = " -> ".join(str(x) for x in err["loc"]) or "<root>"
        lines.append(f"  {loc}: {err['msg']}")
    return "\n".join(lines)


def _warn_if_permissive_config_mode(path: Path) -> None:
    """Config may name credentials; it should be readable by its owner only."""
    if os.name != "posix":
        return
    try:
        mode = stat.S_IMODE(path.stat().st_mode)
    except OSError:
        return
    if mode & _SENSITIVE_MODE_MASK:
        logger.warning(
            "Config file permissions are too permissive: path=%s mode=%04o expected=0600",
            path,
            mode,
        )

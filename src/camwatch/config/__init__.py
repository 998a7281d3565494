"""Configuration loading and validation."""

from camwatch.config.loader import (
    ConfigError,
    ConfigErrorCode,
    format_validation_error,
    load_config,
    load_config_from_dict,
    read_yaml_mapping,
    resolve_env_var,
)
from camwatch.config.validation import (
    validate_config,
    validate_plugin_configs,
    validate_plugin_names,
)

__all__ = [
    "ConfigError",
    "ConfigErrorCode",
    "format_validation_error",
    "load_config",
    "load_config_from_dict",
    "read_yaml_mapping",
    "resolve_env_var",
    "validate_config",
    "validate_plugin_configs",
    "validate_plugin_names",
]

"""Plugin-aware configuration validation."""

from __future__ import annotations

from camwatch.config.loader import ConfigError, ConfigErrorCode
from camwatch.models.config import Config
from camwatch.plugins.registry import PluginType, get_plugin_names, validate_plugin


def validate_plugin_names(config: Config) -> None:
    """Check that configured backends are registered plugins.

    Raises:
        ConfigError: If a backend name is not recognized
    """
    errors = []

    if config.classifier.enabled:
        valid_classifiers = get_plugin_names(PluginType.CLASSIFIER)
        if config.classifier.backend not in valid_classifiers:
            errors.append(
                f"Unknown classifier backend: {config.classifier.backend} "
                f"(valid: {valid_classifiers})"
            )

    valid_publishers = get_plugin_names(PluginType.PUBLISHER)
    if config.publisher.backend not in valid_publishers:
        errors.append(
            f"Unknown publisher backend: {config.publisher.backend} (valid: {valid_publishers})"
        )

    if errors:
        raise ConfigError(
            "Invalid plugin configuration:\n  " + "\n  ".join(errors),
            code=ConfigErrorCode.PLUGIN_NAMES_INVALID,
        )


def validate_plugin_configs(config: Config) -> None:
    """Validate plugin configs against registered plugin config models."""
    errors: list[str] = []

    if config.classifier.enabled:
        try:
            validate_plugin(
                PluginType.CLASSIFIER, config.classifier.backend, config.classifier.config
            )
        except Exception as exc:
            errors.append(f"classifier[{config.classifier.backend}]: {exc}")

    try:
        validate_plugin(PluginType.PUBLISHER, config.publisher.backend, config.publisher.config)
    except Exception as exc:
        errors.append(f"publisher[{config.publisher.backend}]: {exc}")

    if errors:
        raise ConfigError(
            "Invalid plugin config:\n  " + "\n  ".join(errors),
            code=ConfigErrorCode.PLUGIN_CONFIG_INVALID,
        )


def validate_config(config: Config) -> None:
    validate_plugin_names(config)
    validate_plugin_configs(config)

"""Plugin discovery for classifier and publisher backends."""

import importlib
import logging
import pkgutil
from importlib import metadata

logger = logging.getLogger(__name__)

_BUILTIN_PACKAGES = ("classifiers", "publishers")
_ENTRY_POINT_GROUP = "camwatch.plugins"


def discover_all_plugins() -> None:
    """Import built-in plugin modules and external entry points.

    Plugins register through the `plugin` decorator, so importing a module is
    enough to make it loadable by name.
    """
    for package_name in _BUILTIN_PACKAGES:
        package = importlib.import_module(f"camwatch.plugins.{package_name}")
        for _, module_name, _ in pkgutil.iter_modules(package.__path__):
            if module_name.startswith("_"):
                continue
            try:
                importlib.import_module(f"camwatch.plugins.{package_name}.{module_name}")
            except Exception as exc:
                logger.error(
                    "Failed to import built-in plugin module %s.%s: %s",
                    package_name,
                    module_name,
                    exc,
                    exc_info=True,
                )

    for point in metadata.entry_points(group=_ENTRY_POINT_GROUP):
        try:
            importlib.import_module(point.module)
        except Exception as exc:
            logger.error(
                "Failed to load external plugin %s from %s: %s",
                point.name,
                point.module,
                exc,
                exc_info=True,
            )


__all__ = ["discover_all_plugins"]

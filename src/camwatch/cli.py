"""CLI entrypoint for camwatch."""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

import fire  # type: ignore[import-untyped]

from camwatch.analysis.classifier import ClassifierAdapter
from camwatch.app import Application
from camwatch.config import ConfigError, load_config
from camwatch.logging_setup import configure_logging
from camwatch.models.config import Config
from camwatch.models.detection import Detection
from camwatch.models.settings import CameraSettings
from camwatch.plugins.registry import PluginType, load_plugin
from camwatch.settings_store import YamlSettingsStore


def setup_logging(level: str = "INFO") -> None:
    """Configure logging for CLI."""
    configure_logging(log_level=level)


class CamWatch:
    """camwatch CLI - motion-triggered video analysis per camera."""

    def run(self, config: str, log_level: str = "INFO") -> None:
        """Run video analysis for every configured camera.

        Args:
            config: Path to YAML config file
            log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        """
        setup_logging(log_level)

        app = Application(Path(config))

        try:
            asyncio.run(app.run())
        except ConfigError as e:
            print(f"✗ Config invalid: {e}", file=sys.stderr)
            sys.exit(1)
        except KeyboardInterrupt:
            pass

    def validate(self, config: str) -> None:
        """Validate config file without running.

        Args:
            config: Path to YAML config file
        """
        config_path = Path(config)

        try:
            cfg = load_config(config_path)
        except ConfigError as e:
            print(f"✗ Config invalid: {e}", file=sys.stderr)
            sys.exit(1)

        print(f"✓ Config valid: {config_path}")
        print(f"  Cameras: {[camera.name for camera in cfg.cameras]}")
        print(f"  Settings file: {cfg.settings_path}")
        classifier = cfg.classifier.backend if cfg.classifier.enabled else "disabled"
        print(f"  Classifier: {classifier}")
        print(f"  Publisher: {cfg.publisher.backend}")

    def detect(self, config: str, camera: str, image: str, log_level: str = "WARNING") -> None:
        """Run the configured classifier on an image file with a camera's settings.

        Args:
            config: Path to YAML config file
            camera: Camera name whose classifier settings apply
            image: Path to a PNG or JPEG file
            log_level: Logging level
        """
        setup_logging(log_level)

        try:
            cfg = load_config(Path(config))
        except ConfigError as e:
            print(f"✗ Config invalid: {e}", file=sys.stderr)
            sys.exit(1)

        if not cfg.classifier.enabled:
            print("✗ Classifier is disabled in config", file=sys.stderr)
            sys.exit(1)
        if camera not in {c.name for c in cfg.cameras}:
            print(f"✗ Unknown camera: {camera}", file=sys.stderr)
            sys.exit(1)

        detections = asyncio.run(_detect_image(cfg, camera, Path(image)))
        for detection in detections:
            print(detection.model_dump_json())
        if not detections:
            print("No detections")


async def _detect_image(cfg: Config, camera: str, image: Path) -> list[Detection]:
    store = YamlSettingsStore(Path(cfg.settings_path))
    settings = await store.get_camera_settings(camera) or CameraSettings(name=camera)
    classifier_settings = settings.classifier.model_copy(update={"active": True})

    classifier = load_plugin(PluginType.CLASSIFIER, cfg.classifier.backend, cfg.classifier.config)
    try:
        adapter = ClassifierAdapter(classifier, plugin_name=cfg.classifier.backend)
        return await adapter.detect_from_buffer(
            image.read_bytes(), classifier_settings, camera_name=camera
        )
    finally:
        await classifier.shutdown()


def main() -> None:
    """Main CLI entrypoint."""
    if len(sys.argv) == 2 and sys.argv[1] in ("--help", "-h"):
        sys.argv.pop()
    fire.Fire(CamWatch)


if __name__ == "__main__":
    main()

"""Per-camera settings backed by a YAML file.

The file holds a `cameras:` list of records::

    cameras:
      - name: front_door
        videoanalysis:
          sensitivity: 80
          dwellTimer: 30
          regions:
            - name: driveway
              coords: [[0, 50], [100, 50], [100, 100], [0, 100]]
        classifier:
          active: true
          labels: person, car

The file is re-read on every lookup so edits apply to the next session start
without restarting the service.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from camwatch.config.loader import format_validation_error, read_yaml_mapping
from camwatch.interfaces import SettingsStore
from camwatch.models.settings import CameraSettings

logger = logging.getLogger(__name__)


class YamlSettingsStore(SettingsStore):
    def __init__(self, path: Path) -> None:
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    async def get_camera_settings(self, camera_name: str) -> CameraSettings | None:
        records = await asyncio.to_thread(self.load_all)
        return records.get(camera_name)

    def load_all(self) -> dict[str, CameraSettings]:
        """Read every camera record. A missing file means no records.

        Raises:
            ConfigError: If the file is not valid YAML or not a `cameras:` mapping.
        """
        if not self._path.exists():
            return {}

        raw = read_yaml_mapping(self._path, label="Settings")
        if raw is None:
            return {}

        records: dict[str, CameraSettings] = {}
        for item in raw.get("cameras") or []:
            settings = self._parse_record(item)
            if settings is not None:
                records[settings.name] = settings
        return records

    def _parse_record(self, item: Any) -> CameraSettings | None:
        if not isinstance(item, dict):
            logger.warning("Ignoring settings record that is not a mapping: %r", item)
            return None
        try:
            return CameraSettings.model_validate(item)
        except ValidationError as e:
            logger.warning(
                "Ignoring invalid settings record: %s",
                format_validation_error(e, self._path, what="Settings record"),
            )
            return None

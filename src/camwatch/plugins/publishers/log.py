"""Publisher that writes camera events to the application log."""

from __future__ import annotations

import logging

from camwatch.interfaces import EventPublisher
from camwatch.models.config import LogPublisherConfig
from camwatch.models.events import CameraEvent
from camwatch.plugins.registry import PluginType, plugin

logger = logging.getLogger(__name__)


@plugin(plugin_type=PluginType.PUBLISHER, name="log")
class LogPublisher(EventPublisher):
    config_cls = LogPublisherConfig

    @classmethod
    def create(cls, config: LogPublisherConfig) -> EventPublisher:
        return cls(config)

    def __init__(self, config: LogPublisherConfig) -> None:
        self._level = logging.getLevelName(config.level.upper())
        if not isinstance(self._level, int):
            self._level = logging.INFO

    async def publish(self, event: CameraEvent) -> None:
        logger.log(
            self._level,
            "Camera event %s: %s",
            event.event_type,
            event.model_dump_json(exclude={"camera", "event_type"}),
            extra={"camera_name": event.camera},
        )

    async def ping(self) -> bool:
        return True

    async def shutdown(self, timeout: float | None = None) -> None:
        _ = timeout

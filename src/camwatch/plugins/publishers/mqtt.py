"""MQTT event publisher plugin."""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Any

import paho.mqtt.client as mqtt

from camwatch.config.loader import resolve_env_var
from camwatch.interfaces import EventPublisher
from camwatch.models.config import MQTTConfig
from camwatch.models.events import CameraEvent
from camwatch.plugins.registry import PluginType, plugin

logger = logging.getLogger(__name__)


@plugin(plugin_type=PluginType.PUBLISHER, name="mqtt")
class MQTTPublisher(EventPublisher):
    """Publishes camera events as JSON to per-camera, per-type topics."""

    config_cls = MQTTConfig

    @classmethod
    def create(cls, config: MQTTConfig) -> EventPublisher:
        return cls(config)

    def __init__(self, config: MQTTConfig, client: Any | None = None) -> None:
        self.host = config.host
        self.port = int(config.port)
        self.topic_template = config.topic_template
        self.qos = int(config.qos)
        self.retain = bool(config.retain)
        self.connection_timeout = float(config.connection_timeout)

        self.username: str | None = None
        self.password: str | None = None

        if config.auth is not None:
            self.username = _credential(config.auth.username_env, "username")
            self.password = _credential(config.auth.password_env, "password")

        self.client = client or mqtt.Client(mqtt.CallbackAPIVersion.VERSION2)

        if self.username and self.password:
            self.client.username_pw_set(self.username, self.password)

        self._connected = False
        self._connected_event = threading.Event()
        self._shutdown_called = False
        self._loop_started = False

        self.client.on_connect = self._on_connect
        self.client.on_disconnect = self._on_disconnect

        try:
            self.client.connect(self.host, self.port, keepalive=60)
            self.client.loop_start()
            self._loop_started = True
        except Exception as e:
            logger.error("Failed to connect to MQTT broker: %s", e, exc_info=True)
            self._connected = False

    def _on_connect(
        self,
        client: Any,
        userdata: object,
        flags: object,
        reason_code: Any,
        properties: object = None,
    ) -> None:
        if not reason_code.is_failure:
            self._connected = True
            self._connected_event.set()
            logger.info("MQTTPublisher connected: %s:%d", self.host, self.port)
            return
        self._connected = False
        logger.warning("MQTTPublisher connection failed: rc=%s", reason_code)

    def _on_disconnect(
        self,
        client: Any,
        userdata: object,
        flags: object,
        reason_code: Any,
        properties: object = None,
    ) -> None:
        self._connected = False
        self._connected_event.clear()
        if reason_code.is_failure:
            logger.warning("MQTTPublisher disconnected unexpectedly: rc=%s", reason_code)

    def topic_for(self, event: CameraEvent) -> str:
        return self.topic_template.format(
            camera_name=event.camera, event_type=str(event.event_type)
        )

    async def publish(self, event: CameraEvent) -> None:
        await self._ensure_connected()

        topic = self.topic_for(event)
        payload = event.model_dump_json()

        await asyncio.to_thread(self._publish, topic, payload, self.qos, self.retain)

        logger.debug(
            "Published event to MQTT: topic=%s",
            topic,
            extra={"camera_name": event.camera},
        )

    def _publish(self, topic: str, payload: str, qos: int, retain: bool) -> None:
        result = self.client.publish(topic, payload, qos=qos, retain=retain)
        result.wait_for_publish(timeout=self.connection_timeout)

    async def ping(self) -> bool:
        if self._shutdown_called:
            return False
        if self._connected and self.client.is_connected():
            return True
        await asyncio.to_thread(self._connected_event.wait, 2.0)
        return self._connected and self.client.is_connected()

    async def shutdown(self, timeout: float | None = None) -> None:
        _ = timeout
        if self._shutdown_called:
            return

        self._shutdown_called = True
        logger.info("Shutting down MQTTPublisher...")

        if self._loop_started:
            await asyncio.to_thread(self.client.loop_stop)
            await asyncio.to_thread(self.client.disconnect)

        logger.info("MQTTPublisher shutdown complete")

    async def _ensure_connected(self) -> None:
        if self._shutdown_called:
            raise RuntimeError("Publisher has been shut down")
        if self._connected:
            return
        connected = await asyncio.to_thread(self._connected_event.wait, self.connection_timeout)
        if not connected or not self._connected:
            raise RuntimeError(
                f"MQTT broker not connected after {self.connection_timeout}s timeout"
            )


def _credential(env_var: str | None, what: str) -> str | None:
    if not env_var:
        return None
    value = resolve_env_var(env_var, required=False)
    if not value:
        logger.warning("MQTT %s not found in env: %s", what, env_var)
    return value

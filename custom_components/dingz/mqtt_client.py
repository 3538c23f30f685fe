"""MQTT bus client carrying puck state pushes and commands."""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import paho.mqtt.client as mqtt

from .connectivity import PuckApiError
from .const import DEFAULT_MQTT_HOST, DEFAULT_MQTT_PORT, DEFAULT_MQTT_SCOPE

_LOGGER = logging.getLogger(__name__)

MessageCallback = Callable[[str, bytes], None]


@dataclass(frozen=True, slots=True)
class MqttClientConfig:
    """Broker location and topic scope."""

    host: str = DEFAULT_MQTT_HOST
    port: int = DEFAULT_MQTT_PORT
    scope: str = DEFAULT_MQTT_SCOPE
    qos: int = 0
    keepalive: int = 60
    debug: bool = False

    @property
    def uri(self) -> str:
        return f"mqtt://{self.host}:{self.port}"


def _create_paho_client(client_id: str) -> Any:
    return mqtt.Client(mqtt.CallbackAPIVersion.VERSION2, client_id=client_id)


class PuckMqttClient:
    """Subscribe to ``<scope>/#`` and publish device commands."""

    def __init__(
        self,
        *,
        config: MqttClientConfig,
        on_message: MessageCallback,
        loop: asyncio.AbstractEventLoop | None = None,
        client_factory: Callable[[str], Any] | None = None,
    ) -> None:
        """Bind configuration and the loop-side message callback."""

        self._config = config
        self._on_message = on_message
        self._loop = loop
        self._client_factory = client_factory or _create_paho_client
        self._client: Any | None = None

    @property
    def config(self) -> MqttClientConfig:
        return self._config

    @property
    def started(self) -> bool:
        return self._client is not None

    async def async_start(self) -> None:
        """Connect in the background; subscriptions are renewed on reconnect."""

        if self._client is not None:
            return
        self._loop = self._loop or asyncio.get_running_loop()
        client = self._client_factory(f"{self._config.scope}-{uuid.uuid4().hex[:8]}")
        client.on_connect = self._handle_connect
        client.on_message = self._handle_message
        client.reconnect_delay_set(min_delay=1, max_delay=30)
        client.connect_async(
            self._config.host, self._config.port, keepalive=self._config.keepalive
        )
        client.loop_start()
        self._client = client
        _LOGGER.info("Connecting to MQTT broker %s", self._config.uri)

    def _handle_connect(
        self,
        client: Any,
        _userdata: Any,
        _flags: Any,
        reason_code: Any,
        _properties: Any = None,
    ) -> None:
        failed = getattr(reason_code, "is_failure", None)
        if failed is None:
            failed = reason_code != 0
        if failed:
            _LOGGER.error("MQTT connection failed: %s", reason_code)
            return
        client.subscribe(f"{self._config.scope}/#", qos=self._config.qos)

    def _handle_message(self, _client: Any, _userdata: Any, message: Any) -> None:
        """Hand the raw message over to the event loop thread."""

        if self._config.debug:
            _LOGGER.debug("MQTT %s: %r", message.topic, message.payload)
        if self._loop is None:
            return
        self._loop.call_soon_threadsafe(
            self._on_message, str(message.topic), bytes(message.payload)
        )

    async def async_publish(
        self, device_id: str, local_path: str, payload: dict[str, Any]
    ) -> None:
        """Publish ``payload`` as JSON to ``<scope>/<device_id>/<local_path>``."""

        if self._client is None:
            raise PuckApiError("MQTT client is not connected")
        topic = f"{self._config.scope}/{device_id}/{local_path}"
        if self._config.debug:
            _LOGGER.debug("Publishing %s to %s", payload, topic)
        info = self._client.publish(topic, json.dumps(payload), qos=self._config.qos)
        rc = getattr(info, "rc", 0)
        if rc != mqtt.MQTT_ERR_SUCCESS:
            raise PuckApiError(f"MQTT publish to {topic} failed: {mqtt.error_string(rc)}")

    async def async_stop(self) -> None:
        """Disconnect and stop the network loop."""

        if self._client is None:
            return
        client = self._client
        self._client = None
        client.loop_stop()
        client.disconnect()

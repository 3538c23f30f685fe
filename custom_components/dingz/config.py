"""Configuration schema for the integration."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

import voluptuous as vol

from .const import (
    DEFAULT_BROADCAST_PORT,
    DEFAULT_MQTT_HOST,
    DEFAULT_MQTT_PORT,
    DEFAULT_MQTT_SCOPE,
    DEFAULT_POLL_INTERVAL_S,
    DEFAULT_REQUEST_TIMEOUT_S,
    DEFAULT_WEBHOOK_PORT,
    TRANSPORT_MQTT,
    TRANSPORT_WEBHOOK,
)
from .mqtt_client import MqttClientConfig

_PORT = vol.All(vol.Coerce(int), vol.Range(min=0, max=65535))

_MQTT_SCHEMA = vol.Schema(
    {
        vol.Optional("host", default=DEFAULT_MQTT_HOST): str,
        vol.Optional("port", default=DEFAULT_MQTT_PORT): _PORT,
        vol.Optional("scope", default=DEFAULT_MQTT_SCOPE): vol.All(str, vol.Length(min=1)),
    }
)

_WEBHOOK_SCHEMA = vol.Schema(
    {
        vol.Optional("bind_host", default="0.0.0.0"): str,
        vol.Optional("port", default=DEFAULT_WEBHOOK_PORT): _PORT,
        vol.Optional("advertise_host"): vol.Any(None, str),
    }
)

_DISCOVERY_SCHEMA = vol.Schema(
    {
        vol.Optional("mdns", default=True): bool,
        vol.Optional("broadcast", default=True): bool,
        vol.Optional("broadcast_port", default=DEFAULT_BROADCAST_PORT): _PORT,
    }
)

CONFIG_SCHEMA = vol.Schema(
    {
        vol.Optional("transport", default=TRANSPORT_MQTT): vol.In(
            (TRANSPORT_MQTT, TRANSPORT_WEBHOOK)
        ),
        vol.Optional("poll_interval", default=DEFAULT_POLL_INTERVAL_S): vol.All(
            vol.Coerce(float), vol.Range(min=0.5)
        ),
        vol.Optional("request_timeout", default=DEFAULT_REQUEST_TIMEOUT_S): vol.All(
            vol.Coerce(float), vol.Range(min=0.1)
        ),
        vol.Optional("mqtt", default=dict): _MQTT_SCHEMA,
        vol.Optional("webhook", default=dict): _WEBHOOK_SCHEMA,
        vol.Optional("discovery", default=dict): _DISCOVERY_SCHEMA,
        vol.Optional("debug", default=False): bool,
    }
)


@dataclass(frozen=True, slots=True)
class WebhookConfig:
    bind_host: str
    port: int
    advertise_host: str | None


@dataclass(frozen=True, slots=True)
class DiscoveryConfig:
    mdns: bool
    broadcast: bool
    broadcast_port: int


@dataclass(frozen=True, slots=True)
class PuckConfig:
    """Validated runtime configuration."""

    transport: str
    poll_interval: float
    request_timeout: float
    mqtt: MqttClientConfig
    webhook: WebhookConfig
    discovery: DiscoveryConfig
    debug: bool

    @property
    def uses_mqtt(self) -> bool:
        return self.transport == TRANSPORT_MQTT


def load_config(raw: Mapping[str, Any] | None = None) -> PuckConfig:
    """Validate ``raw`` and return a :class:`PuckConfig`.

    Raises ``voluptuous.Invalid`` for malformed input.
    """

    data = CONFIG_SCHEMA(dict(raw or {}))
    debug = data["debug"]
    mqtt_data = data["mqtt"]
    return PuckConfig(
        transport=data["transport"],
        poll_interval=data["poll_interval"],
        request_timeout=data["request_timeout"],
        mqtt=MqttClientConfig(
            host=mqtt_data["host"],
            port=mqtt_data["port"],
            scope=mqtt_data["scope"],
            debug=debug,
        ),
        webhook=WebhookConfig(
            bind_host=data["webhook"]["bind_host"],
            port=data["webhook"]["port"],
            advertise_host=data["webhook"].get("advertise_host"),
        ),
        discovery=DiscoveryConfig(**data["discovery"]),
        debug=debug,
    )

"""Integration entry point for the dingz puck adapter."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from .config import PuckConfig, load_config
from .const import DOMAIN
from .coordinator import PuckCoordinator
from .discovery import PuckBroadcastListener, PuckMdnsBrowser
from .mqtt_client import PuckMqttClient
from .rest_client import PuckRestClient
from .webhook import PuckWebhookEndpoint

__all__ = [
    "DOMAIN",
    "async_setup",
    "async_unload",
]

_LOGGER = logging.getLogger(__name__)


class PuckIntegration:
    """Running coordinator together with the transports it was started with."""

    def __init__(self, coordinator: PuckCoordinator, config: PuckConfig) -> None:
        self.coordinator = coordinator
        self.config = config
        self.rest_client: PuckRestClient | None = None
        self.mqtt_client: PuckMqttClient | None = None
        self.webhook: PuckWebhookEndpoint | None = None
        self.discovery: list[PuckBroadcastListener | PuckMdnsBrowser] = []


async def async_setup(host: Any, raw_config: Mapping[str, Any] | None = None) -> PuckIntegration:
    """Validate ``raw_config``, build the coordinator and start the transports."""

    config = load_config(raw_config)
    if config.debug:
        logging.getLogger(__package__).setLevel(logging.DEBUG)

    rest_client = PuckRestClient(timeout=config.request_timeout, debug=config.debug)
    coordinator = PuckCoordinator(host=host, config=config, rest_client=rest_client)
    integration = PuckIntegration(coordinator, config)
    integration.rest_client = rest_client

    if config.uses_mqtt:
        mqtt_client = PuckMqttClient(
            config=config.mqtt, on_message=coordinator.handle_mqtt_message
        )
        coordinator.set_mqtt_client(mqtt_client)
        integration.mqtt_client = mqtt_client
        await mqtt_client.async_start()
    else:
        webhook = PuckWebhookEndpoint(
            on_event=coordinator.handle_webhook_event,
            bind_host=config.webhook.bind_host,
            port=config.webhook.port,
            advertise_host=config.webhook.advertise_host,
        )
        coordinator.set_webhook(webhook)
        integration.webhook = webhook

    if config.discovery.mdns:
        integration.discovery.append(
            PuckMdnsBrowser(callback=coordinator.handle_discovery)
        )
    if config.discovery.broadcast:
        integration.discovery.append(
            PuckBroadcastListener(
                callback=coordinator.handle_discovery,
                port=config.discovery.broadcast_port,
            )
        )
    for source in integration.discovery:
        try:
            await source.async_start()
        except OSError as err:
            _LOGGER.error("Unable to start %s: %s", type(source).__name__, err)

    _LOGGER.info("dingz adapter started using %s", config.transport)
    return integration


async def async_unload(integration: PuckIntegration) -> bool:
    """Stop discovery, transports and polling."""

    for source in integration.discovery:
        await source.async_stop()
    integration.discovery.clear()
    await integration.coordinator.async_shutdown()
    if integration.mqtt_client is not None:
        await integration.mqtt_client.async_stop()
    if integration.webhook is not None:
        await integration.webhook.async_stop()
    if integration.rest_client is not None:
        await integration.rest_client.async_close()
    return True

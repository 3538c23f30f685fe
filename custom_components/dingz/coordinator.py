"""Own all pucks and route discovery, pushes and polls to them."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

from .config import PuckConfig
from .connectivity import PuckApiError, PuckSetupError
from .device import PuckDevice, device_id_for
from .discovery import DiscoveryRecord
from .mqtt_client import PuckMqttClient
from .normalizer import AnnounceRecord, normalize_topic_message, normalize_webhook
from .rest_client import PuckRestClient
from .scheduler import PollScheduler
from .webhook import PuckWebhookEndpoint

_LOGGER = logging.getLogger(__name__)


class PuckCoordinator:
    """Create devices on discovery and keep their state in sync.

    ``host`` is the gateway-side collaborator notified about devices, property
    changes, events and connectivity; see ``handle_device_added``,
    ``handle_device_removed``, ``property_changed``, ``event_fired`` and
    ``connected_changed``.
    """

    def __init__(
        self,
        *,
        host: Any,
        config: PuckConfig,
        rest_client: PuckRestClient,
        mqtt_client: PuckMqttClient | None = None,
        webhook: PuckWebhookEndpoint | None = None,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        """Wire the shared services; transports are started by the caller."""

        self._host = host
        self._config = config
        self._rest_client = rest_client
        self._mqtt_client = mqtt_client
        self._webhook = webhook
        self._scheduler = PollScheduler(
            interval=config.poll_interval, callback=self.async_poll_all, loop=loop
        )
        self._setup_tasks: dict[str, asyncio.Task[Any]] = {}
        self._pending: dict[str, PuckDevice] = {}
        self.devices: dict[str, PuckDevice] = {}

    @property
    def scheduler(self) -> PollScheduler:
        return self._scheduler

    def set_mqtt_client(self, mqtt_client: PuckMqttClient | None) -> None:
        self._mqtt_client = mqtt_client

    def set_webhook(self, webhook: PuckWebhookEndpoint | None) -> None:
        self._webhook = webhook

    def get_device(self, device_id: str) -> PuckDevice | None:
        return self.devices.get(device_id)

    def handle_discovery(self, record: DiscoveryRecord) -> None:
        """Synchronous entry point for discovery transports."""

        device_id = device_id_for(record.mac)
        if device_id in self._setup_tasks:
            pending = self._pending.get(device_id)
            if pending is not None:
                pending.update_from_discovery(record.address)
            return
        task = asyncio.ensure_future(self.async_handle_discovery(record))
        self._setup_tasks[device_id] = task
        task.add_done_callback(
            lambda done: self._finish_setup_task(device_id, done)
        )

    def _finish_setup_task(self, device_id: str, task: asyncio.Task[Any]) -> None:
        self._setup_tasks.pop(device_id, None)
        if task.cancelled():
            return
        err = task.exception()
        if err is not None:
            _LOGGER.error("Setup of %s failed", device_id, exc_info=err)

    async def async_handle_discovery(self, record: DiscoveryRecord) -> PuckDevice | None:
        """Create a device for an unknown MAC or revive a known one."""

        device_id = device_id_for(record.mac)
        known = self.devices.get(device_id) or self._pending.get(device_id)
        if known is not None:
            known.update_from_discovery(record.address)
            return known

        device = PuckDevice(
            mac=record.mac,
            address=record.address,
            rest_client=self._rest_client,
            host=self._host,
            transport=self._config.transport,
            publisher=self._mqtt_client.async_publish if self._mqtt_client else None,
        )
        self._pending[device_id] = device
        ready = False
        try:
            await device.async_setup()
            await self._async_configure_push(device)
            ready = True
        except (PuckApiError, PuckSetupError) as err:
            _LOGGER.error("Unable to set up %s at %s: %s", device_id, record.address, err)
            return None
        finally:
            self._pending.pop(device_id, None)
            if not ready and self._webhook is not None:
                await self._webhook.async_remove_device(device)
        self._announce(device)
        return device

    def _announce(self, device: PuckDevice) -> None:
        device.mark_announced()
        self.devices[device.id] = device
        self._scheduler.acquire()
        self._host.handle_device_added(device)
        _LOGGER.info("Added %s (%s) at %s", device.id, device.title, device.address)

    async def _async_configure_push(self, device: PuckDevice) -> None:
        """Point the device at the active push channel."""

        if self._config.uses_mqtt:
            await device.async_api_post(
                "services_config",
                content=json.dumps(
                    {
                        "mqtt": {
                            "uri": self._config.mqtt.uri,
                            "enable": True,
                            "server.crt": None,
                        }
                    }
                ),
            )
        elif self._webhook is not None:
            url = await self._webhook.async_add_device(device)
            await device.async_api_post("action/generic/generic", content=url)

    async def async_set_property(self, device_id: str, name: str, value: Any) -> Any:
        """Write property ``name`` on device ``device_id``."""

        device = self.devices.get(device_id)
        if device is None:
            raise KeyError(device_id)
        return await device.async_set_property(name, value)

    async def async_perform_action(self, device_id: str, name: str) -> None:
        device = self.devices.get(device_id)
        if device is None:
            raise KeyError(device_id)
        await device.async_perform_action(name)

    async def async_remove_device(self, device_id: str) -> None:
        """Stop syncing ``device_id`` and tell the host."""

        device = self.devices.pop(device_id, None)
        if device is None:
            return
        device.removed = True
        self._scheduler.release()
        if self._webhook is not None:
            await self._webhook.async_remove_device(device)
        self._host.handle_device_removed(device)

    async def async_poll_all(self) -> None:
        """Poll every device; a failure only affects its own device."""

        devices = list(self.devices.values())
        results = await asyncio.gather(
            *(device.async_poll() for device in devices), return_exceptions=True
        )
        for device, result in zip(devices, results):
            if isinstance(result, BaseException):
                _LOGGER.error("Polling %s failed: %s", device.id, result)

    def handle_mqtt_message(self, topic: str, payload: bytes) -> None:
        """Route one bus message to its device, or to discovery on announce."""

        message = normalize_topic_message(topic, payload)
        if message is None:
            return
        device_id = device_id_for(message.device_id)
        announce = next(
            (record for record in message.records if isinstance(record, AnnounceRecord)),
            None,
        )
        device = self.devices.get(device_id)
        if device is None:
            if announce is not None and announce.address:
                self.handle_discovery(
                    DiscoveryRecord(mac=message.device_id.upper(), address=announce.address)
                )
            return
        if message.model:
            device.model = message.model
        if announce is not None:
            if announce.model:
                device.model = announce.model
            device.update_from_discovery(announce.address)
        device.apply_push(message.records)

    def handle_webhook_event(
        self, device: PuckDevice, index: str, action: str, address: str | None
    ) -> None:
        """Apply a generic webhook callback from ``device``."""

        device.update_from_discovery(address)
        device.apply_push(normalize_webhook(index, action))

    async def async_shutdown(self) -> None:
        """Stop polling and forget every device; in-flight calls are left alone."""

        self._scheduler.cancel()
        for task in list(self._setup_tasks.values()):
            task.cancel()
        for device_id in list(self.devices):
            await self.async_remove_device(device_id)

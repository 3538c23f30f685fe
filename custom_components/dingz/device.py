"""A single dingz puck: identity, schema, connectivity and transports."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterable, Mapping
from types import MappingProxyType
from typing import Any

from . import capabilities as capability_resolver
from . import reconciler
from .capabilities import Capabilities, SetupPhase
from .commands import ActionHandler, WriteHandler, action_handler_for, write_handler_for
from .connectivity import ConnectivitySupervisor
from .const import DEFAULT_MODEL, DEVICE_ID_PREFIX, TRANSPORT_MQTT
from .model import PuckAction, PuckEvent, PuckProperty
from .normalizer import UpdateRecord
from .rest_client import PuckRestClient

_LOGGER = logging.getLogger(__name__)

Publisher = Callable[[str, str, dict[str, Any]], Awaitable[None]]


def device_id_for(mac: str) -> str:
    """Return the gateway identifier for the device with ``mac``."""

    return f"{DEVICE_ID_PREFIX}{mac.lower()}"


class PuckDevice:
    """Own the property store of one puck and talk to it."""

    def __init__(
        self,
        *,
        mac: str,
        address: str | None,
        rest_client: PuckRestClient,
        host: Any,
        transport: str = TRANSPORT_MQTT,
        publisher: Publisher | None = None,
    ) -> None:
        """Bind identity and collaborators; the schema is built by setup."""

        self._mac = mac.upper()
        self._id = device_id_for(mac)
        self.address = address
        self.title = self._id
        self.model = DEFAULT_MODEL
        self.capabilities = Capabilities()
        self.phase = SetupPhase.RESOLVING
        self.removed = False
        self._rest_client = rest_client
        self._host = host
        self._transport = transport
        self._publisher = publisher
        self._properties: dict[str, PuckProperty] = {}
        self._actions: dict[str, PuckAction] = {}
        self._events: dict[str, PuckEvent] = {}
        self._write_handlers: dict[str, WriteHandler | None] = {}
        self._action_handlers: dict[str, ActionHandler | None] = {}
        self._semantic_types: list[str] = []
        self._push_sequence = 0
        self.connectivity = ConnectivitySupervisor(
            name=self._id, on_change=self._handle_connectivity_change
        )

    @property
    def id(self) -> str:
        return self._id

    @property
    def mac(self) -> str:
        return self._mac

    @property
    def connected(self) -> bool:
        return self.connectivity.connected

    @property
    def uses_mqtt(self) -> bool:
        return self._transport == TRANSPORT_MQTT

    @property
    def properties(self) -> Mapping[str, PuckProperty]:
        return MappingProxyType(self._properties)

    @property
    def actions(self) -> Mapping[str, PuckAction]:
        return MappingProxyType(self._actions)

    @property
    def events(self) -> Mapping[str, PuckEvent]:
        return MappingProxyType(self._events)

    @property
    def push_sequence(self) -> int:
        """Sequence number of the most recent push-applied update."""

        return self._push_sequence

    def next_push_sequence(self) -> int:
        self._push_sequence += 1
        return self._push_sequence

    def add_property(self, prop: PuckProperty) -> PuckProperty:
        """Register ``prop`` and bind its write handler once."""

        self._properties[prop.name] = prop
        self._write_handlers[prop.name] = write_handler_for(prop.kind)
        return prop

    def add_action(self, action: PuckAction) -> PuckAction:
        self._actions[action.name] = action
        self._action_handlers[action.name] = action_handler_for(action.kind)
        return action

    def add_event(self, event: PuckEvent) -> PuckEvent:
        self._events[event.name] = event
        return event

    def find_property(self, name: str) -> PuckProperty | None:
        """Return property ``name`` or None when this unit does not have it."""

        return self._properties.get(name)

    def find_action(self, name: str) -> PuckAction | None:
        return self._actions.get(name)

    def find_event(self, name: str) -> PuckEvent | None:
        return self._events.get(name)

    async def async_setup(self) -> None:
        """Resolve capabilities, register the schema and refine it.

        Leaves the device in :attr:`SetupPhase.CONFIG_REFINED`; announcing it
        to the host is up to the caller.
        """

        resolved = await capability_resolver.async_resolve(self._mac, self.async_api_get)
        if resolved.title is not None:
            self.title = resolved.title
        self.capabilities = resolved.capabilities
        self._semantic_types = resolved.capabilities.semantic_types()
        capability_resolver.build_schema(self, resolved.capabilities)
        self.phase = SetupPhase.SCHEMA_READY
        await capability_resolver.async_refine(
            self, resolved.capabilities, self.async_api_get
        )
        self.phase = SetupPhase.CONFIG_REFINED

    def mark_announced(self) -> None:
        if self.phase is not SetupPhase.CONFIG_REFINED:
            msg = f"{self._id} cannot be announced while {self.phase.value}"
            raise RuntimeError(msg)
        self.phase = SetupPhase.ANNOUNCED

    def apply_push(self, records: Iterable[UpdateRecord]) -> list[str]:
        """Apply pushed records; returns the names of changed properties."""

        return reconciler.apply_records(self, records)

    async def async_poll(self) -> bool:
        return await reconciler.async_poll(self)

    def update_from_discovery(self, address: str | None) -> None:
        """Mark the device reachable and adopt ``address`` if it is a plain host."""

        self.connectivity.set_connected(True)
        if address and ":" not in address:
            self.address = address

    def notify_property_changed(self, prop: PuckProperty) -> None:
        self._host.property_changed(self, prop)

    def fire_event(self, event: PuckEvent, data: Any = None) -> None:
        _LOGGER.debug("%s fired %s", self._id, event.name)
        self._host.event_fired(self, event, data)

    def _handle_connectivity_change(self, connected: bool) -> None:
        self._host.connected_changed(self, connected)

    async def async_set_property(self, name: str, value: Any) -> Any:
        """Write ``value`` to the device and cache it.

        Writes to properties without a device command are cached only.
        Transport errors propagate and leave the cached value untouched.
        """

        prop = self.find_property(name)
        if prop is None:
            raise KeyError(name)
        if prop.read_only:
            msg = f"{self._id}.{name} is read-only"
            raise ValueError(msg)
        coerced = prop.coerce(value)
        handler = self._write_handlers.get(name)
        if handler is not None and not await handler(self, prop.kind, coerced):
            return prop.value
        if prop.set_cached_value(coerced):
            self.notify_property_changed(prop)
        return prop.value

    async def async_perform_action(self, name: str) -> None:
        """Invoke action ``name`` on the device."""

        action = self.find_action(name)
        if action is None:
            raise KeyError(name)
        handler = self._action_handlers.get(name)
        if handler is None:
            _LOGGER.error("No handler for action %s on %s", name, self._id)
            return
        await handler(self, action.kind)

    async def async_api_get(self, path: str) -> Any:
        """GET ``path``; None when skipped, empty or the device is unreachable."""

        if not self.address:
            _LOGGER.warning("Address not set for %s", self._id)
            return None
        result = None
        async with self.connectivity.guard(f"GET {path}"):
            result = await self._rest_client.async_get(self.address, path)
        return result

    async def async_api_post(
        self,
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
        data: Mapping[str, Any] | None = None,
        content: str | bytes | None = None,
    ) -> None:
        """POST to ``path``; unreachable devices are marked disconnected."""

        if not self.address:
            _LOGGER.warning("Address not set for %s", self._id)
            return
        async with self.connectivity.guard(f"POST {path}"):
            await self._rest_client.async_post(
                self.address, path, params=params, data=data, content=content
            )

    async def async_publish(self, local_path: str, payload: dict[str, Any]) -> None:
        """Publish ``payload`` below this device's model topic."""

        if self._publisher is None:
            msg = f"No message bus configured for {self._id}"
            raise RuntimeError(msg)
        await self._publisher(self._mac.lower(), f"{self.model}/{local_path}", payload)

    def as_dict(self) -> dict[str, Any]:
        """Describe the device for the host, omitting invisible entries."""

        return {
            "id": self._id,
            "title": self.title,
            "@type": list(self._semantic_types),
            "connected": self.connected,
            "links": [
                {
                    "rel": "alternate",
                    "mediaType": "text/html",
                    "href": f"http://{self.address}/index.html",
                }
            ],
            "properties": {
                name: prop.as_dict()
                for name, prop in self._properties.items()
                if prop.visible
            },
            "actions": {
                name: action.as_dict()
                for name, action in self._actions.items()
                if action.visible
            },
            "events": {name: event.as_dict() for name, event in self._events.items()},
        }

"""Pytest configuration and shared test doubles for the dingz adapter tests."""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Callable, Mapping
from typing import Any

import pytest

from custom_components.dingz.device import PuckDevice

MAC = "AABBCCDDEEFF"
ADDRESS = "192.168.1.50"


def pytest_configure(config: pytest.Config) -> None:
    """Register markers used throughout the test suite."""

    config.addinivalue_line(
        "markers", "asyncio: mark coroutine tests to execute via asyncio loop"
    )


def pytest_pyfunc_call(pyfuncitem: pytest.Function) -> bool | None:
    """Execute coroutine tests within a dedicated event loop."""

    test_function = pyfuncitem.obj
    if not inspect.iscoroutinefunction(test_function):
        return None

    arguments = {
        name: pyfuncitem.funcargs[name] for name in pyfuncitem._fixtureinfo.argnames
    }
    loop = asyncio.new_event_loop()
    try:
        asyncio.set_event_loop(loop)
        loop.run_until_complete(test_function(**arguments))
    finally:
        asyncio.set_event_loop(None)
        loop.close()
    return True


class FakeHost:
    """Record every notification the adapter sends to the gateway."""

    def __init__(self) -> None:
        """Start with empty call logs."""

        self.added: list[PuckDevice] = []
        self.removed: list[PuckDevice] = []
        self.changes: list[tuple[str, str, Any]] = []
        self.events: list[tuple[str, str, Any]] = []
        self.connectivity: list[tuple[str, bool]] = []

    def handle_device_added(self, device: PuckDevice) -> None:
        self.added.append(device)

    def handle_device_removed(self, device: PuckDevice) -> None:
        self.removed.append(device)

    def property_changed(self, device: PuckDevice, prop: Any) -> None:
        self.changes.append((device.id, prop.name, prop.value))

    def event_fired(self, device: PuckDevice, event: Any, data: Any) -> None:
        self.events.append((device.id, event.name, data))

    def connected_changed(self, device: PuckDevice, connected: bool) -> None:
        self.connectivity.append((device.id, connected))


class FakeRestClient:
    """Serve canned ``GET`` responses by path and record every call.

    A response that is an exception instance is raised instead of returned.
    """

    def __init__(self, responses: Mapping[str, Any] | None = None) -> None:
        """Store the canned responses."""

        self.responses: dict[str, Any] = dict(responses or {})
        self.gets: list[tuple[str, str]] = []
        self.posts: list[dict[str, Any]] = []
        self.post_error: BaseException | None = None

    async def async_get(self, address: str, path: str) -> Any:
        self.gets.append((address, path))
        response = self.responses.get(path)
        if isinstance(response, BaseException):
            raise response
        return response

    async def async_post(
        self,
        address: str,
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
        data: Mapping[str, Any] | None = None,
        content: str | bytes | None = None,
    ) -> None:
        self.posts.append(
            {
                "address": address,
                "path": path,
                "params": params,
                "data": data,
                "content": content,
            }
        )
        if self.post_error is not None:
            raise self.post_error

    async def async_close(self) -> None:
        return None


class FakePublisher:
    """Capture MQTT publishes issued through a device."""

    def __init__(self) -> None:
        """Initialise the publish log."""

        self.published: list[tuple[str, str, dict[str, Any]]] = []

    async def __call__(self, device_id: str, local_path: str, payload: dict[str, Any]) -> None:
        self.published.append((device_id, local_path, payload))


def setup_responses(
    *,
    mac: str = MAC,
    dip_config: int = 0,
    has_pir: bool = True,
    thermostat: bool = False,
    thermostat_output: int | None = None,
    blinds: list[dict[str, Any]] | None = None,
    dimmers: list[dict[str, Any]] | None = None,
) -> dict[str, Any]:
    """Build the configuration endpoints a puck answers during setup."""

    outputs: list[dict[str, Any]] = []
    if thermostat_output is not None:
        outputs.append(
            {"type": "heating_valve", "enable": True, "ph_out_id": thermostat_output}
        )
    return {
        "system_config": {"room_name": "Office", "dingz_name": "Door"},
        "device": {mac: {"dip_config": dip_config, "has_pir": has_pir}},
        "thermostat": {"active": thermostat},
        "outputs": {"outputs": outputs},
        "blind_config": {
            "blinds": blinds
            if blinds is not None
            else [
                {"type": "blind", "name": "Window", "min_value": 0, "max_value": 100},
                {"type": "shade", "name": "", "min_value": 5, "max_value": 95},
            ]
        },
        "dimmer_config": {
            "dimmers": dimmers
            if dimmers is not None
            else [
                {"active": True, "type": "light", "name": "Ceiling"},
                {"active": True, "type": "light", "name": ""},
                {"active": False, "type": "light", "name": "Spare"},
                {"active": True, "type": "not_connected", "name": ""},
            ]
        },
    }


@pytest.fixture
def host() -> FakeHost:
    return FakeHost()


@pytest.fixture
def rest_client() -> FakeRestClient:
    return FakeRestClient()


@pytest.fixture
def publisher() -> FakePublisher:
    return FakePublisher()


@pytest.fixture
def make_device(
    host: FakeHost, rest_client: FakeRestClient, publisher: FakePublisher
) -> Callable[..., PuckDevice]:
    """Return a factory creating devices wired to the shared fakes."""

    def _make(**kwargs: Any) -> PuckDevice:
        kwargs.setdefault("mac", MAC)
        kwargs.setdefault("address", ADDRESS)
        kwargs.setdefault("rest_client", rest_client)
        kwargs.setdefault("host", host)
        kwargs.setdefault("publisher", publisher)
        return PuckDevice(**kwargs)

    return _make


@pytest.fixture
def ready_device(
    make_device: Callable[..., PuckDevice], rest_client: FakeRestClient
) -> Callable[..., Any]:
    """Return a coroutine factory for devices that finished setup."""

    async def _make(responses: Mapping[str, Any] | None = None, **kwargs: Any) -> PuckDevice:
        rest_client.responses.update(responses or setup_responses())
        device = make_device(**kwargs)
        await device.async_setup()
        device.mark_announced()
        return device

    return _make

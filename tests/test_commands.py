"""Tests for translating writes and actions into device commands."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pytest

from conftest import FakeHost, FakePublisher, FakeRestClient, setup_responses
from custom_components.dingz.commands import split_color, write_handler_for
from custom_components.dingz.connectivity import PuckApiError, PuckUnreachableError
from custom_components.dingz.const import TRANSPORT_WEBHOOK
from custom_components.dingz.device import PuckDevice
from custom_components.dingz.model import PASSIVE, dimmer

MQTT_ID = "aabbccddeeff"


def test_split_color() -> None:
    assert split_color("#FF1000") == (255, 16, 0)
    assert split_color("00ff7f") == (0, 255, 127)
    with pytest.raises(ValueError):
        split_color("#FFF")


def test_handlers_are_bound_by_kind() -> None:
    assert write_handler_for(PASSIVE) is None
    assert write_handler_for(dimmer(1)) is not None


@pytest.mark.asyncio
async def test_led_writes_over_mqtt(
    ready_device: Callable[..., Any], publisher: FakePublisher, host: FakeHost
) -> None:
    device: PuckDevice = await ready_device()

    assert await device.async_set_property("led", True) is True
    await device.async_set_property("ledColor", "#ff1000")

    assert publisher.published == [
        (MQTT_ID, "dingz/command/led", {"on": 1}),
        (MQTT_ID, "dingz/command/led", {"r": 255, "g": 16, "b": 0}),
    ]
    assert (device.id, "led", True) in host.changes


@pytest.mark.asyncio
async def test_led_writes_over_http(
    ready_device: Callable[..., Any], rest_client: FakeRestClient
) -> None:
    device: PuckDevice = await ready_device(transport=TRANSPORT_WEBHOOK)

    await device.async_set_property("led", False)
    await device.async_set_property("ledColor", "00ff7f")

    assert [(post["path"], post["data"]) for post in rest_client.posts] == [
        ("led/set", {"action": "off"}),
        ("led/set", {"color": "00FF7F", "mode": "rgb"}),
    ]


@pytest.mark.asyncio
async def test_empty_color_is_not_sent(
    ready_device: Callable[..., Any], publisher: FakePublisher
) -> None:
    device: PuckDevice = await ready_device()

    await device.async_set_property("ledColor", "")

    assert publisher.published == []
    assert device.find_property("ledColor").value is None


@pytest.mark.asyncio
async def test_shade_writes_use_companion_value(
    ready_device: Callable[..., Any], publisher: FakePublisher
) -> None:
    """Unknown companions fall back to full travel."""

    device: PuckDevice = await ready_device()

    await device.async_set_property("shade1", 30)
    await device.async_set_property("shade1Lamella", 45)

    assert publisher.published == [
        (MQTT_ID, "dingz/command/motor/0", {"position": 30, "lamella": 100}),
        (MQTT_ID, "dingz/command/motor/0", {"position": 30, "lamella": 45}),
    ]


@pytest.mark.asyncio
async def test_shade_write_over_http(
    ready_device: Callable[..., Any], rest_client: FakeRestClient
) -> None:
    device: PuckDevice = await ready_device(transport=TRANSPORT_WEBHOOK)

    await device.async_set_property("shade2Lamella", 20)

    post = rest_client.posts[-1]
    assert post["path"] == "shade/1"
    assert post["params"] == {"blind": 100, "lamella": 20}


@pytest.mark.asyncio
async def test_shade_actions(
    ready_device: Callable[..., Any],
    publisher: FakePublisher,
    make_device: Callable[..., PuckDevice],
    rest_client: FakeRestClient,
) -> None:
    device: PuckDevice = await ready_device()

    await device.async_perform_action("shade2down")
    await device.async_perform_action("shade1stop")

    assert publisher.published == [
        (MQTT_ID, "dingz/command/motor/1", {"motion": 2}),
        (MQTT_ID, "dingz/command/motor/0", {"motion": 0}),
    ]

    http_device = make_device(transport=TRANSPORT_WEBHOOK)
    await http_device.async_setup()
    await http_device.async_perform_action("shade1up")
    assert rest_client.posts[-1]["path"] == "shade/0/up"


@pytest.mark.asyncio
async def test_dimmer_toggle_and_cached_writes(
    ready_device: Callable[..., Any],
    publisher: FakePublisher,
    rest_client: FakeRestClient,
) -> None:
    """Dimmer writes have no device command but are still cached."""

    device: PuckDevice = await ready_device(setup_responses(dip_config=3))

    await device.async_perform_action("dimmer3toggle")
    await device.async_set_property("dimmer1", True)
    await device.async_set_property("dimmer1Brightness", 55.4)

    assert publisher.published == [
        (MQTT_ID, "dingz/command/light/2", {"turn": "toggle"}),
    ]
    assert rest_client.posts == []
    assert device.find_property("dimmer1").value is True
    assert device.find_property("dimmer1Brightness").value == 55


@pytest.mark.asyncio
async def test_thermostat_writes_always_use_http(
    ready_device: Callable[..., Any],
    publisher: FakePublisher,
    rest_client: FakeRestClient,
) -> None:
    device: PuckDevice = await ready_device(
        setup_responses(dip_config=3, thermostat=True, thermostat_output=1)
    )

    await device.async_set_property("targetTemperature", 21)
    await device.async_set_property("thermostatMode", "heat")
    await device.async_set_property("thermostatMode", "off")

    assert publisher.published == []
    assert [(post["path"], post["params"]) for post in rest_client.posts] == [
        ("thermostat/off", {"temp": 21.0}),
        ("thermostat/on", {"temp": 21.0}),
        ("thermostat/off", {"temp": 21.0}),
    ]


@pytest.mark.asyncio
async def test_invalid_writes_are_rejected(ready_device: Callable[..., Any]) -> None:
    device: PuckDevice = await ready_device()

    with pytest.raises(KeyError):
        await device.async_set_property("dimmer1", True)
    with pytest.raises(ValueError):
        await device.async_set_property("temperature", 20)
    with pytest.raises(KeyError):
        await device.async_perform_action("dimmer1toggle")


@pytest.mark.asyncio
async def test_failed_command_keeps_cached_value(
    ready_device: Callable[..., Any], rest_client: FakeRestClient
) -> None:
    device: PuckDevice = await ready_device(transport=TRANSPORT_WEBHOOK)
    rest_client.post_error = PuckApiError("500: boom")

    with pytest.raises(PuckApiError):
        await device.async_set_property("led", True)

    assert device.find_property("led").value is None
    assert device.connected is True


@pytest.mark.asyncio
async def test_unreachable_command_marks_device_disconnected(
    ready_device: Callable[..., Any], rest_client: FakeRestClient, host: FakeHost
) -> None:
    device: PuckDevice = await ready_device(transport=TRANSPORT_WEBHOOK)
    rest_client.post_error = PuckUnreachableError("timed out")

    await device.async_set_property("led", True)

    assert device.connected is False
    assert host.connectivity == [(device.id, False)]

"""Tests for the generic webhook endpoint."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import asyncio

import pytest
from fastapi.testclient import TestClient

from custom_components.dingz.device import PuckDevice
from custom_components.dingz.webhook import PuckWebhookEndpoint


def _endpoint(received: list[tuple[Any, ...]]) -> PuckWebhookEndpoint:
    def on_event(device: PuckDevice, index: str, action: str, host: str | None) -> None:
        received.append((device.id, index, action, host))

    return PuckWebhookEndpoint(on_event=on_event, advertise_host="192.168.1.2")


def test_handle_event_checks_listener_and_mac(
    make_device: Callable[..., PuckDevice]
) -> None:
    received: list[tuple[Any, ...]] = []
    endpoint = _endpoint(received)
    device = make_device()
    listener_id = endpoint.register(device)

    assert endpoint.register(device) == listener_id
    assert endpoint.handle_event("unknown", {"index": "1", "mac": device.mac}, None) == 401
    assert endpoint.handle_event(listener_id, {"index": "1", "mac": "000000000000"}, None) == 401
    assert endpoint.handle_event(listener_id, {"mac": device.mac}, None) == 401
    assert (
        endpoint.handle_event(
            listener_id, {"index": "2", "action": "1", "mac": "aabbccddeeff"}, "10.0.0.9"
        )
        == 204
    )
    assert received == [(device.id, "2", "1", "10.0.0.9")]


def test_route_parses_form_body(make_device: Callable[..., PuckDevice]) -> None:
    received: list[tuple[Any, ...]] = []
    endpoint = _endpoint(received)
    device = make_device()
    listener_id = endpoint.register(device)
    client = TestClient(endpoint.app)

    response = client.post(
        f"/{listener_id}",
        content=f"index=5&action=8&mac={device.mac}",
        headers={"Content-Type": "application/x-www-form-urlencoded"},
    )
    rejected = client.post("/someone-else", content="index=1&action=1&mac=AABBCCDDEEFF")

    assert response.status_code == 204
    assert rejected.status_code == 401
    assert received[0][:3] == (device.id, "5", "8")


@pytest.mark.asyncio
async def test_server_runs_while_devices_are_registered(
    make_device: Callable[..., PuckDevice]
) -> None:
    endpoint = PuckWebhookEndpoint(
        on_event=lambda *args: None, bind_host="127.0.0.1", advertise_host="127.0.0.1"
    )
    first = make_device()
    second = make_device(mac="112233445566")

    url = await endpoint.async_add_device(first)
    await endpoint.async_add_device(second)

    assert endpoint.running is True
    assert url.startswith("post://127.0.0.1:")
    assert url.endswith(f"/{endpoint.register(first)}")
    assert endpoint.listener_count == 2

    await endpoint.async_remove_device(first)
    assert endpoint.running is True
    await endpoint.async_remove_device(second)
    assert endpoint.running is False


@pytest.mark.asyncio
async def test_concurrent_registrations_share_one_server(
    make_device: Callable[..., PuckDevice], monkeypatch: pytest.MonkeyPatch
) -> None:
    endpoint = PuckWebhookEndpoint(
        on_event=lambda *args: None, bind_host="127.0.0.1", advertise_host="127.0.0.1"
    )
    starts: list[int] = []
    original_start = endpoint._async_start

    async def counting_start() -> None:
        starts.append(1)
        await original_start()

    monkeypatch.setattr(endpoint, "_async_start", counting_start)
    first = make_device()
    second = make_device(mac="112233445566")

    first_url, second_url = await asyncio.gather(
        endpoint.async_add_device(first), endpoint.async_add_device(second)
    )

    assert len(starts) == 1
    assert first_url.rsplit("/", 1)[0] == second_url.rsplit("/", 1)[0]
    assert endpoint.listener_count == 2

    await asyncio.gather(
        endpoint.async_remove_device(first), endpoint.async_remove_device(second)
    )
    assert endpoint.running is False

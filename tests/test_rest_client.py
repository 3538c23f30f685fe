"""Tests for the REST helper using httpx's mock transport."""

from __future__ import annotations

import httpx
import pytest

from custom_components.dingz.connectivity import PuckApiError, PuckUnreachableError
from custom_components.dingz.rest_client import PuckRestClient, build_url


def _client(handler) -> PuckRestClient:
    transport = httpx.MockTransport(handler)
    return PuckRestClient(http_client=httpx.AsyncClient(transport=transport))


def test_build_url() -> None:
    assert build_url("10.0.0.5", "state") == "http://10.0.0.5/api/v1/state"
    assert build_url("10.0.0.5", "/shade/0/up") == "http://10.0.0.5/api/v1/shade/0/up"


@pytest.mark.asyncio
async def test_get_decodes_json_and_handles_no_content() -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if request.url.path.endswith("/empty"):
            return httpx.Response(204)
        return httpx.Response(200, json={"led": {"on": True}})

    client = _client(handler)

    assert await client.async_get("10.0.0.5", "state") == {"led": {"on": True}}
    assert await client.async_get("10.0.0.5", "empty") is None
    assert str(requests[0].url) == "http://10.0.0.5/api/v1/state"


@pytest.mark.asyncio
async def test_post_sends_params_and_form_data() -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, text="not json")

    client = _client(handler)

    await client.async_post("10.0.0.5", "shade/0", params={"blind": 30, "lamella": 100})
    await client.async_post("10.0.0.5", "led/set", data={"action": "on"})

    assert requests[0].method == "POST"
    assert requests[0].url.params["blind"] == "30"
    assert requests[0].url.params["lamella"] == "100"
    assert requests[1].content == b"action=on"


@pytest.mark.asyncio
async def test_error_status_raises_api_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, text="boom")

    client = _client(handler)

    with pytest.raises(PuckApiError, match="500: boom"):
        await client.async_get("10.0.0.5", "state")


@pytest.mark.asyncio
async def test_timeouts_raise_unreachable() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectTimeout("timed out", request=request)

    client = _client(handler)

    with pytest.raises(PuckUnreachableError):
        await client.async_post("10.0.0.5", "led/set", data={"action": "on"})


@pytest.mark.asyncio
async def test_invalid_json_raises_api_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>not json</html>")

    client = _client(handler)

    with pytest.raises(PuckApiError, match="invalid JSON"):
        await client.async_get("10.0.0.5", "device")

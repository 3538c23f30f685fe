"""HTTP helpers for the device's local REST API."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

import httpx

from .connectivity import PuckApiError, PuckUnreachableError, is_unreachable
from .const import API_PATH_PREFIX, DEFAULT_REQUEST_TIMEOUT_S

_LOGGER = logging.getLogger(__name__)


def build_url(address: str, path: str) -> str:
    """Return the API URL for ``path`` on the device at ``address``."""

    return f"http://{address}{API_PATH_PREFIX}{path.lstrip('/')}"


class PuckRestClient:
    """Shared httpx client issuing ``/api/v1`` calls to any puck."""

    def __init__(
        self,
        *,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = DEFAULT_REQUEST_TIMEOUT_S,
        debug: bool = False,
    ) -> None:
        """Wrap ``http_client`` or create one with ``timeout`` seconds."""

        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            timeout=timeout, follow_redirects=True
        )
        self._debug = debug

    async def async_get(self, address: str, path: str) -> Any:
        """GET ``path`` and return decoded JSON, or None for ``204``."""

        response = await self._request("GET", address, path)
        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as err:
            raise PuckApiError(f"GET {path}: invalid JSON response") from err

    async def async_post(
        self,
        address: str,
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
        data: Mapping[str, Any] | None = None,
        content: str | bytes | None = None,
    ) -> None:
        """POST to ``path``; the response body is never parsed."""

        await self._request(
            "POST", address, path, params=params, data=data, content=content
        )

    async def _request(
        self, method: str, address: str, path: str, **kwargs: Any
    ) -> httpx.Response:
        url = build_url(address, path)
        if self._debug:
            _LOGGER.debug("%s %s %s", method, url, kwargs)
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as err:
            if is_unreachable(err):
                raise PuckUnreachableError(f"{method} {url}: {err}") from err
            raise PuckApiError(f"{method} {url}: {err}") from err
        if not response.is_success:
            raise PuckApiError(f"{response.status_code}: {response.text}")
        return response

    async def async_close(self) -> None:
        """Close the underlying client when this wrapper created it."""

        if self._owns_client:
            await self._client.aclose()

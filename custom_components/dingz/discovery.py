"""Local network discovery of pucks via mDNS and UDP broadcasts."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from zeroconf import IPVersion, ServiceStateChange
from zeroconf.asyncio import AsyncServiceBrowser, AsyncServiceInfo, AsyncZeroconf

from .const import (
    BROADCAST_DEVICE_TYPE,
    BROADCAST_PACKET_SIZE,
    DEFAULT_BROADCAST_PORT,
    MDNS_NAME_PREFIX,
    MDNS_SERVICE_TYPE,
)

_LOGGER = logging.getLogger(__name__)

_SERVICE_INFO_TIMEOUT_MS = 3000


@dataclass(frozen=True, slots=True)
class DiscoveryRecord:
    """A device MAC seen at a network address."""

    mac: str
    address: str


DiscoveryCallback = Callable[[DiscoveryRecord], Any]


def parse_broadcast(data: bytes, addr: tuple[str, int]) -> DiscoveryRecord | None:
    """Decode the 8 byte presence packet; bytes 0-5 MAC, byte 6 device type."""

    if len(data) != BROADCAST_PACKET_SIZE or data[6] != BROADCAST_DEVICE_TYPE:
        return None
    mac = data[:6].hex().upper()
    return DiscoveryRecord(mac=mac, address=addr[0])


class PuckBroadcastListener:
    """Listen for presence broadcasts on a UDP port."""

    def __init__(
        self,
        *,
        callback: DiscoveryCallback,
        port: int = DEFAULT_BROADCAST_PORT,
    ) -> None:
        """Bind the discovery callback and listening port."""

        self._callback = callback
        self._port = port
        self._transport: asyncio.DatagramTransport | None = None

    async def async_start(self) -> None:
        """Bind the UDP socket."""

        if self._transport is not None:
            return
        loop = asyncio.get_running_loop()

        class _Protocol(asyncio.DatagramProtocol):
            def __init__(self, outer: PuckBroadcastListener) -> None:
                self._outer = outer

            def datagram_received(self, data: bytes, addr: tuple[str, int]) -> None:
                self._outer._handle_datagram(data, addr)

        transport, _protocol = await loop.create_datagram_endpoint(
            lambda: _Protocol(self),
            local_addr=("0.0.0.0", self._port),
            allow_broadcast=True,
        )
        self._transport = transport

    def _handle_datagram(self, data: bytes, addr: tuple[str, int]) -> None:
        record = parse_broadcast(data, addr)
        if record is None:
            return
        self._callback(record)

    async def async_stop(self) -> None:
        if self._transport is not None:
            self._transport.close()
            self._transport = None


class PuckMdnsBrowser:
    """Browse ``_http._tcp`` services and report those named like pucks."""

    def __init__(
        self,
        *,
        callback: DiscoveryCallback,
        zeroconf: AsyncZeroconf | None = None,
    ) -> None:
        """Use ``zeroconf`` when given, otherwise create a private instance."""

        self._callback = callback
        self._zeroconf = zeroconf
        self._owns_zeroconf = zeroconf is None
        self._browser: AsyncServiceBrowser | None = None
        self._tasks: set[asyncio.Task[Any]] = set()

    async def async_start(self) -> None:
        if self._browser is not None:
            return
        if self._zeroconf is None:
            self._zeroconf = AsyncZeroconf()
        self._browser = AsyncServiceBrowser(
            self._zeroconf.zeroconf,
            MDNS_SERVICE_TYPE,
            handlers=[self._on_service_state_change],
        )

    def _on_service_state_change(
        self,
        zeroconf: Any,
        service_type: str,
        name: str,
        state_change: ServiceStateChange,
    ) -> None:
        if state_change is not ServiceStateChange.Added:
            return
        if not name.upper().startswith(MDNS_NAME_PREFIX):
            return
        task = asyncio.ensure_future(self._async_resolve(service_type, name))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _async_resolve(self, service_type: str, name: str) -> None:
        if self._zeroconf is None:
            return
        info = AsyncServiceInfo(service_type, name)
        if not await info.async_request(
            self._zeroconf.zeroconf, _SERVICE_INFO_TIMEOUT_MS
        ):
            _LOGGER.debug("No service info for %s", name)
            return
        mac = info.properties.get(b"mac")
        addresses = info.parsed_addresses(IPVersion.V4Only)
        if not mac or not addresses:
            return
        self._callback(
            DiscoveryRecord(mac=mac.decode("ascii").upper(), address=addresses[0])
        )

    async def async_stop(self) -> None:
        if self._browser is not None:
            await self._browser.async_cancel()
            self._browser = None
        if self._zeroconf is not None and self._owns_zeroconf:
            await self._zeroconf.async_close()
            self._zeroconf = None

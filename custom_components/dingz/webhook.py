"""HTTP endpoint receiving the generic button/motion callbacks of pucks."""

from __future__ import annotations

import asyncio
import logging
import socket
import uuid
from collections.abc import Callable, Mapping
from typing import TYPE_CHECKING, Any
from urllib.parse import parse_qs

import uvicorn
from fastapi import FastAPI, Request, Response

from .const import DEFAULT_WEBHOOK_PORT

if TYPE_CHECKING:
    from .device import PuckDevice

_LOGGER = logging.getLogger(__name__)

WebhookCallback = Callable[["PuckDevice", str, str, "str | None"], None]

_STARTUP_POLL_S = 0.05


def local_address_for(remote: str | None) -> str:
    """Return the local IPv4 address used to reach ``remote``."""

    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
        try:
            sock.connect((remote or "10.255.255.255", 80))
            return sock.getsockname()[0]
        except OSError as err:
            _LOGGER.warning("Unable to determine local address for %s: %s", remote, err)
            return "127.0.0.1"


class PuckWebhookEndpoint:
    """Shared callback server; runs while at least one device is registered."""

    def __init__(
        self,
        *,
        on_event: WebhookCallback,
        bind_host: str = "0.0.0.0",
        port: int = DEFAULT_WEBHOOK_PORT,
        advertise_host: str | None = None,
    ) -> None:
        """Configure the listening socket and the event callback."""

        self._on_event = on_event
        self._bind_host = bind_host
        self._port = port
        self._advertise_host = advertise_host
        self._listeners: dict[str, PuckDevice] = {}
        self._listener_ids: dict[str, str] = {}
        self._server: uvicorn.Server | None = None
        self._serve_task: asyncio.Task[Any] | None = None
        self._bound_port: int | None = None
        self._start_lock = asyncio.Lock()
        self.app = self._build_app()

    @property
    def running(self) -> bool:
        return self._server is not None

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def _build_app(self) -> FastAPI:
        app = FastAPI(title="dingz webhook", docs_url=None, redoc_url=None)

        @app.post("/{listener_id}")
        async def _receive(listener_id: str, request: Request) -> Response:
            body = (await request.body()).decode("utf-8", errors="replace")
            form = {key: values[-1] for key, values in parse_qs(body).items()}
            client_host = request.client.host if request.client else None
            status = self.handle_event(listener_id, form, client_host)
            return Response(status_code=status)

        return app

    def register(self, device: PuckDevice) -> str:
        """Assign (or reuse) the listener id for ``device``."""

        listener_id = self._listener_ids.get(device.id)
        if listener_id is None or listener_id not in self._listeners:
            listener_id = uuid.uuid4().hex
            self._listener_ids[device.id] = listener_id
            self._listeners[listener_id] = device
        return listener_id

    async def async_add_device(self, device: PuckDevice) -> str:
        """Register ``device`` and return the callback URL it should call."""

        async with self._start_lock:
            if self._server is None:
                await self._async_start()
            listener_id = self.register(device)
        host = self._advertise_host or local_address_for(device.address)
        return f"post://{host}:{self._bound_port}/{listener_id}"

    async def async_remove_device(self, device: PuckDevice) -> None:
        """Forget ``device``; the server stops with the last listener."""

        async with self._start_lock:
            listener_id = self._listener_ids.pop(device.id, None)
            if listener_id is not None:
                self._listeners.pop(listener_id, None)
            if not self._listeners:
                await self.async_stop()

    def handle_event(
        self, listener_id: str, form: Mapping[str, str], client_host: str | None
    ) -> int:
        """Validate one callback and return the HTTP status to answer with."""

        device = self._listeners.get(listener_id)
        index = form.get("index")
        if device is None or not index:
            return 401
        mac = (form.get("mac") or "").upper()
        if mac != device.mac:
            _LOGGER.warning("Callback for %s came from unexpected device %s", device.id, mac)
            return 401
        self._on_event(device, index, form.get("action", ""), client_host)
        return 204

    async def _async_start(self) -> None:
        config = uvicorn.Config(
            self.app,
            host=self._bind_host,
            port=self._port,
            log_level="warning",
            lifespan="off",
        )
        server = uvicorn.Server(config)
        task = asyncio.create_task(server.serve())
        while not server.started:
            if task.done():
                task.result()
                raise RuntimeError("Webhook server exited during startup")
            await asyncio.sleep(_STARTUP_POLL_S)
        self._server = server
        self._serve_task = task
        self._bound_port = server.servers[0].sockets[0].getsockname()[1]
        _LOGGER.info("Webhook endpoint listening on port %s", self._bound_port)

    async def async_stop(self) -> None:
        """Shut the server down and forget all listeners."""

        server, task = self._server, self._serve_task
        self._server = None
        self._serve_task = None
        self._bound_port = None
        self._listeners.clear()
        self._listener_ids.clear()
        if server is None:
            return
        server.should_exit = True
        if task is not None:
            await task

"""Transport failure classification and per-device connectivity tracking."""

from __future__ import annotations

import contextlib
import errno
import logging
from collections.abc import AsyncIterator, Callable
from enum import Enum

import httpx

_LOGGER = logging.getLogger(__name__)

_UNREACHABLE_ERRNOS = frozenset({errno.EHOSTUNREACH, errno.ETIMEDOUT})
_UNREACHABLE_MARKERS = ("unreachable", "timed out")


class DecodeFailure(ValueError):
    """Raised when a pushed payload cannot be decoded."""


class PuckApiError(RuntimeError):
    """Raised when a device call fails for any reason but reachability."""


class PuckUnreachableError(PuckApiError):
    """Raised when a device call times out or the host is unreachable."""


class PuckSetupError(RuntimeError):
    """Raised when capability resolution cannot complete."""


class ConnectivityState(str, Enum):
    """Reachability verdict for a single device."""

    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


def _iter_causes(exc: BaseException) -> list[BaseException]:
    chain: list[BaseException] = []
    current: BaseException | None = exc
    while current is not None and current not in chain:
        chain.append(current)
        current = current.__cause__ or current.__context__
    return chain


def is_unreachable(exc: BaseException) -> bool:
    """Return True when ``exc`` means the device could not be reached at all."""

    if isinstance(exc, PuckUnreachableError | httpx.TimeoutException):
        return True
    if not isinstance(exc, httpx.ConnectError | OSError):
        return False
    for cause in _iter_causes(exc):
        if isinstance(cause, TimeoutError):
            return True
        if isinstance(cause, OSError) and cause.errno in _UNREACHABLE_ERRNOS:
            return True
        text = str(cause).lower()
        if any(marker in text for marker in _UNREACHABLE_MARKERS):
            return True
    return False


class ConnectivitySupervisor:
    """Track whether a device is reachable and gate polling accordingly."""

    def __init__(
        self,
        *,
        name: str,
        on_change: Callable[[bool], None] | None = None,
    ) -> None:
        """Start in the connected state; ``on_change`` sees every transition."""

        self._name = name
        self._state = ConnectivityState.CONNECTED
        self._on_change = on_change

    @property
    def state(self) -> ConnectivityState:
        return self._state

    @property
    def connected(self) -> bool:
        return self._state is ConnectivityState.CONNECTED

    def set_change_callback(self, callback: Callable[[bool], None] | None) -> None:
        self._on_change = callback

    def set_connected(self, connected: bool) -> None:
        """Record a new verdict and notify when it differs from the old one."""

        state = (
            ConnectivityState.CONNECTED if connected else ConnectivityState.DISCONNECTED
        )
        if state is self._state:
            return
        _LOGGER.info("%s is now %s", self._name, state.value)
        self._state = state
        if self._on_change is not None:
            self._on_change(connected)

    def should_poll(self) -> bool:
        """Polling short-circuits while the device is disconnected."""

        return self.connected

    @contextlib.asynccontextmanager
    async def guard(self, description: str) -> AsyncIterator[None]:
        """Turn unreachable failures inside the block into a disconnect.

        Every other error propagates unchanged.
        """

        try:
            yield
        except Exception as err:
            if not is_unreachable(err):
                raise
            _LOGGER.warning("%s unreachable during %s: %s", self._name, description, err)
            self.set_connected(False)

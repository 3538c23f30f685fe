"""Reference-counted shared poll timer."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

_LOGGER = logging.getLogger(__name__)


class PollScheduler:
    """Invoke ``callback`` every ``interval`` seconds while it has users.

    The timer starts with the first :meth:`acquire` and stops when the last
    user calls :meth:`release`.
    """

    def __init__(
        self,
        *,
        interval: float,
        callback: Callable[[], Awaitable[Any]],
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        """Store the interval and the coroutine function run on each tick."""

        self._interval = interval
        self._callback = callback
        self._loop = loop
        self._users = 0
        self._handle: asyncio.TimerHandle | None = None
        self._pending_tasks: set[asyncio.Task[Any]] = set()

    @property
    def users(self) -> int:
        return self._users

    @property
    def running(self) -> bool:
        return self._handle is not None

    def acquire(self) -> None:
        """Register a user, starting the timer for the first one."""

        self._users += 1
        if self._users == 1:
            _LOGGER.debug("Starting poll timer every %ss", self._interval)
            self._schedule()

    def release(self) -> None:
        """Drop a user, stopping the timer when none remain."""

        if self._users == 0:
            return
        self._users -= 1
        if self._users == 0:
            _LOGGER.debug("Stopping poll timer")
            self.cancel()

    def cancel(self) -> None:
        """Stop the timer regardless of users."""

        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _schedule(self) -> None:
        loop = self._loop or asyncio.get_running_loop()
        self._handle = loop.call_later(self._interval, self._tick)

    def _tick(self) -> None:
        task = asyncio.ensure_future(self._callback())
        self._pending_tasks.add(task)
        task.add_done_callback(self._pending_tasks.discard)
        if self._users > 0:
            self._schedule()
        else:
            self._handle = None

"""Timer abstraction the poller schedules its ticks through.

Production code uses :class:`LoopScheduler`; tests pass a fake that
records the pending callback and fires it on demand.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Coroutine
from typing import Any, Protocol

TickCallback = Callable[[], Coroutine[Any, Any, None]]


class ScheduledCall(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Run an async callback once after ``delay`` seconds."""

    def schedule(self, delay: float, callback: TickCallback) -> ScheduledCall: ...


class LoopScheduler:
    """Schedule callbacks on the running asyncio loop.

    Cancelling a :class:`ScheduledCall` only drops a timer that has not
    fired yet; a callback that already started runs to completion.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop
        self._tasks: set[asyncio.Task[None]] = set()

    def schedule(self, delay: float, callback: TickCallback) -> ScheduledCall:
        loop = self._loop or asyncio.get_running_loop()
        return loop.call_later(delay, self._spawn, loop, callback)

    def _spawn(self, loop: asyncio.AbstractEventLoop, callback: TickCallback) -> None:
        task = loop.create_task(callback())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

"""Scheduled callbacks used for timed flushes.

The update buffer arms and disarms a single delayed flush. Hiding the event
loop behind :class:`Scheduler` lets tests drive time by hand.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Protocol

logger = logging.getLogger(__name__)

TimerCallback = Callable[[], Awaitable[None]]


class TimerHandle(Protocol):
    """An armed callback that can be disarmed before it fires."""

    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Arms a coroutine callback to run after a delay."""

    def call_later(self, delay: float, callback: TimerCallback) -> TimerHandle: ...


class AsyncioScheduler:
    """Scheduler backed by the running asyncio event loop.

    When a timer fires its callback runs as a task. The scheduler keeps a
    reference to every running callback task until it finishes.
    """

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[None]] = set()

    def call_later(self, delay: float, callback: TimerCallback) -> TimerHandle:
        loop = asyncio.get_running_loop()
        return loop.call_later(delay, self._spawn, callback)

    def _spawn(self, callback: TimerCallback) -> None:
        task = asyncio.ensure_future(self._run(callback))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run(self, callback: TimerCallback) -> None:
        try:
            await callback()
        except Exception as e:
            logger.exception(f"Scheduled callback failed: {e}")

"""Batching of streamed text updates.

Agents stream text a few characters at a time. Forwarding every fragment as
its own notification floods the client, so message and thought chunks are
accumulated here and released in batches, while every other update goes out
immediately behind whatever text was already waiting.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Awaitable, Callable
from typing import Literal

from acp import text_block, update_agent_message, update_agent_thought
from acp.schema import (
    AgentMessageChunk,
    AgentPlanUpdate,
    AgentThoughtChunk,
    CurrentModeUpdate,
    TextContentBlock,
    ToolCallProgress,
    ToolCallStart,
)

from relay.config import DEFAULT_FLUSH_DELAY_MS, DEFAULT_MIN_BUFFER_SIZE
from relay.scheduling import AsyncioScheduler, Scheduler, TimerHandle

logger = logging.getLogger(__name__)

SessionUpdate = (
    AgentMessageChunk | AgentThoughtChunk | ToolCallStart | ToolCallProgress | AgentPlanUpdate | CurrentModeUpdate
)
SendUpdate = Callable[[SessionUpdate], Awaitable[None]]

TextKind = Literal["message", "thought"]


def text_chunk_kind(update: SessionUpdate) -> TextKind | None:
    """Classify an update as a bufferable text chunk, or None if structural."""
    if not isinstance(getattr(update, "content", None), TextContentBlock):
        return None
    if isinstance(update, AgentMessageChunk):
        return "message"
    if isinstance(update, AgentThoughtChunk):
        return "thought"
    return None


class UpdateBuffer:
    """Coalesces text chunks and keeps the outbound stream in order.

    Flush triggers are checked after every appended chunk:

    - size: once message plus thought text reaches ``min_buffer_size``
      characters, flush right away;
    - time: otherwise arm one timer for ``flush_delay_ms``. An armed timer is
      left alone when more text arrives, so latency is bounded from the first
      unflushed character.

    Every update is committed to an outbox in the order it was queued, before
    any await, and the outbox is written under one lock. Text queued after a
    structural update therefore stays behind it even when the transport
    suspends mid-send.
    """

    def __init__(
        self,
        send: SendUpdate,
        *,
        min_buffer_size: int = DEFAULT_MIN_BUFFER_SIZE,
        flush_delay_ms: int = DEFAULT_FLUSH_DELAY_MS,
        scheduler: Scheduler | None = None,
    ) -> None:
        """Initialize the buffer.

        Args:
            send: Coroutine that writes one update to the transport.
            min_buffer_size: Combined text length that forces a flush.
            flush_delay_ms: Delay before a timed flush.
            scheduler: Timer source (asyncio event loop if not specified).
        """
        self._send = send
        self._min_buffer_size = min_buffer_size
        self._flush_delay = flush_delay_ms / 1000
        self._scheduler = scheduler or AsyncioScheduler()
        self._message = ""
        self._thought = ""
        self._timer: TimerHandle | None = None
        self._timer_generation = 0
        self._outbox: deque[SessionUpdate] = deque()
        self._send_lock = asyncio.Lock()

    @property
    def timer_armed(self) -> bool:
        return self._timer is not None

    def buffer_sizes(self) -> dict[str, int]:
        """Current buffered character counts by kind."""
        return {"message": len(self._message), "thought": len(self._thought)}

    async def queue_update(self, update: SessionUpdate) -> None:
        """Buffer a text chunk or send a structural update.

        Args:
            update: Any outbound session update.
        """
        kind = text_chunk_kind(update)
        if kind is None:
            self._commit_text()
            self._outbox.append(update)
            await self._send_outbox()
            return

        text = update.content.text  # type: ignore[union-attr]
        if not text:
            return
        if kind == "message":
            self._message += text
        else:
            self._thought += text

        if len(self._message) + len(self._thought) >= self._min_buffer_size:
            await self.flush()
        elif self._timer is None:
            self._arm()

    async def flush(self) -> None:
        """Send buffered message text, then thought text, and clear both."""
        self._commit_text()
        await self._send_outbox()

    def reset(self) -> None:
        """Drop buffered text and disarm the timer without sending."""
        dropped = len(self._message) + len(self._thought)
        self._message = ""
        self._thought = ""
        self._disarm()
        if dropped:
            logger.debug(f"Discarded {dropped} buffered chars")

    def _arm(self) -> None:
        self._timer_generation += 1
        generation = self._timer_generation
        self._timer = self._scheduler.call_later(self._flush_delay, lambda: self._on_timer(generation))

    async def _on_timer(self, generation: int) -> None:
        if generation != self._timer_generation:
            logger.debug("Ignoring stale flush timer")
            return
        self._timer = None
        await self.flush()

    def _commit_text(self) -> None:
        """Move buffered text to the outbox, message before thought."""
        message, thought = self._message, self._thought
        self._message = ""
        self._thought = ""
        self._disarm()
        if message:
            self._outbox.append(update_agent_message(text_block(message)))
        if thought:
            self._outbox.append(update_agent_thought(text_block(thought)))

    async def _send_outbox(self) -> None:
        async with self._send_lock:
            while self._outbox:
                await self._send(self._outbox.popleft())

    def _disarm(self) -> None:
        self._timer_generation += 1
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

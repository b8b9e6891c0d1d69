"""Correlation of shell output with the command tool calls that started it.

A command's ``tool_call`` goes out when the agent asks to run it, but its
output arrives later through separate events: live execution chunks while
it runs, then a final ``command_output`` message. This module ties both back
to the pending tool call. Live output is streamed as message text inside a
code fence that is opened once per tool call and closed when the final
output completes the call.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from acp import text_block, update_agent_message, update_tool_call

from relay.events import SAY_COMMAND_OUTPUT, AgentMessage

if TYPE_CHECKING:
    from relay.delta_tracker import DeltaTracker
    from relay.update_buffer import SendUpdate

logger = logging.getLogger(__name__)

CODE_FENCE = "```\n"


@dataclass
class PendingCommand:
    """A command tool call waiting for its output."""

    tool_call_id: str
    command: str
    ts: int


class CommandStreamManager:
    """Streams command output and completes pending command tool calls."""

    def __init__(self, delta_tracker: DeltaTracker, send_update: SendUpdate) -> None:
        """Initialize the manager.

        Args:
            delta_tracker: Session delta tracker, keyed here by execution id.
            send_update: Outbound update sink.
        """
        self._delta_tracker = delta_tracker
        self._send_update = send_update
        self._pending: dict[str, PendingCommand] = {}
        self._open_fences: set[str] = set()

    @staticmethod
    def is_command_output_message(message: AgentMessage) -> bool:
        return message.type == "say" and message.say == SAY_COMMAND_OUTPUT

    @property
    def pending_command_count(self) -> int:
        return len(self._pending)

    def has_open_code_fences(self) -> bool:
        return bool(self._open_fences)

    def track_command(self, tool_call_id: str, command: str, ts: int) -> None:
        """Register a command awaiting output. Re-tracking an id replaces it."""
        self._pending[tool_call_id] = PendingCommand(tool_call_id=tool_call_id, command=command, ts=ts)
        logger.debug(f"Tracking command {tool_call_id}: {command}")

    async def handle_execution_output(self, execution_id: str, output: str) -> None:
        """Stream new live output for the most recent pending command.

        Args:
            execution_id: Shell execution id; ``output`` accumulates per id.
            output: All output seen so far for this execution.
        """
        pending = self._most_recent()
        if pending is None:
            logger.debug(f"Dropping output for {execution_id}, no pending command")
            return

        if pending.tool_call_id not in self._open_fences:
            self._open_fences.add(pending.tool_call_id)
            await self._send_update(update_agent_message(text_block(CODE_FENCE)))

        delta = self._delta_tracker.get_delta(execution_id, output)
        if delta:
            await self._send_update(update_agent_message(text_block(delta)))

    async def handle_command_output(self, message: AgentMessage) -> None:
        """Complete the most recent pending command with its final output.

        Partial messages are ignored; only the final copy completes the call.
        """
        if message.partial:
            return

        pending = self._most_recent()
        if pending is None:
            logger.debug("Command output with no pending command")
            return

        if pending.tool_call_id in self._open_fences:
            self._open_fences.discard(pending.tool_call_id)
            await self._send_update(update_agent_message(text_block(CODE_FENCE)))

        await self._send_update(
            update_tool_call(
                tool_call_id=pending.tool_call_id,
                status="completed",
                raw_output={"output": message.text},
            )
        )
        del self._pending[pending.tool_call_id]
        logger.debug(f"Command {pending.tool_call_id} completed")

    def reset(self) -> None:
        self._pending.clear()
        self._open_fences.clear()

    def _most_recent(self) -> PendingCommand | None:
        if not self._pending:
            return None
        return max(self._pending.values(), key=lambda p: p.ts)

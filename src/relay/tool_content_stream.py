"""Live streaming of file content while a write tool's payload grows."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from acp import text_block, update_agent_message

from relay.content import has_valid_file_path
from relay.events import ASK_TOOL, AgentMessage
from relay.tool_parser import parse_tool_payload
from relay.tool_registry import is_file_write_tool

if TYPE_CHECKING:
    from relay.delta_tracker import DeltaTracker
    from relay.update_buffer import SendUpdate

logger = logging.getLogger(__name__)


class ToolContentStreamManager:
    """Shows a file being written as it is generated.

    Once a streaming write payload has a usable path, a header and opening
    fence are sent, then the file body is streamed as message deltas. The
    final copy of the message closes the fence.
    """

    def __init__(self, delta_tracker: DeltaTracker, send_update: SendUpdate) -> None:
        self._delta_tracker = delta_tracker
        self._send_update = send_update
        self._headers_sent: set[int] = set()

    @staticmethod
    def is_tool_ask_message(message: AgentMessage) -> bool:
        return message.type == "ask" and message.ask == ASK_TOOL

    @property
    def active_header_count(self) -> int:
        return len(self._headers_sent)

    async def handle_tool_content_streaming(self, message: AgentMessage) -> None:
        """Stream the body of a file-write tool message.

        Messages that do not parse yet, or that belong to other tools, are
        skipped.
        """
        payload = parse_tool_payload(message.text or "{}", partial=message.partial)
        if payload is None:
            return

        tool_name = payload.get("tool") or "tool"
        tool_path = payload.get("path") or ""
        body = payload.get("content") or ""
        if not (isinstance(tool_name, str) and isinstance(tool_path, str) and isinstance(body, str)):
            return

        if not is_file_write_tool(tool_name):
            logger.debug(f"Skipping content streaming for non-file tool: {tool_name}")
            return

        if message.partial:
            await self._stream_partial(message.ts, tool_path, body)
        else:
            await self._finish(message.ts, tool_path, body)

    def reset(self) -> None:
        self._headers_sent.clear()

    async def _stream_partial(self, ts: int, tool_path: str, body: str) -> None:
        if not has_valid_file_path(tool_path):
            return

        if ts not in self._headers_sent:
            self._headers_sent.add(ts)
            logger.debug(f"Sending tool content header for {tool_path}")
            await self._send_update(update_agent_message(text_block(f"\n**Creating {tool_path}**\n```\n")))

        if body:
            delta = self._delta_tracker.get_delta(f"tool-content-{ts}", body)
            if delta:
                await self._send_update(update_agent_message(text_block(delta)))

    async def _finish(self, ts: int, tool_path: str, body: str) -> None:
        if ts in self._headers_sent:
            self._headers_sent.discard(ts)
            await self._send_update(update_agent_message(text_block("\n```\n")))
        logger.debug(f"Tool content streaming complete for {tool_path}: {len(body)} chars")

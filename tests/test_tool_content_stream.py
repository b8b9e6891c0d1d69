"""Tests for relay.tool_content_stream module."""

import json
from unittest.mock import AsyncMock

import pytest

from relay.delta_tracker import DeltaTracker
from relay.events import ASK_TOOL, AgentMessage
from relay.tool_content_stream import ToolContentStreamManager


def _texts(send):
    return [c.args[0].content.text for c in send.call_args_list]


def _write(path, content, partial=True, ts=10):
    text = json.dumps({"tool": "newFileCreated", "path": path, "content": content})
    return AgentMessage.ask_message(ts, ASK_TOOL, text, partial=partial)


@pytest.fixture
def send():
    return AsyncMock()


@pytest.fixture
def manager(send):
    return ToolContentStreamManager(DeltaTracker(), send)


class TestToolContentStreaming:
    """Tests for ToolContentStreamManager."""

    @pytest.mark.asyncio
    async def test_header_then_deltas_then_closing_fence(self, manager, send) -> None:
        """Should frame the streamed file body in a fenced block."""
        # When
        await manager.handle_tool_content_streaming(_write("src/app.py", "import os"))
        await manager.handle_tool_content_streaming(_write("src/app.py", "import os\nimport sys"))
        await manager.handle_tool_content_streaming(_write("src/app.py", "import os\nimport sys", partial=False))

        # Then
        assert _texts(send) == [
            "\n**Creating src/app.py**\n```\n",
            "import os",
            "\nimport sys",
            "\n```\n",
        ]
        assert manager.active_header_count == 0

    @pytest.mark.asyncio
    async def test_waits_for_a_usable_path(self, manager, send) -> None:
        """Should send nothing while the path has no file extension yet."""
        await manager.handle_tool_content_streaming(_write("src/ap", ""))

        send.assert_not_awaited()
        assert manager.active_header_count == 0

    @pytest.mark.asyncio
    async def test_unparseable_partial_is_skipped(self, manager, send) -> None:
        message = AgentMessage.ask_message(10, ASK_TOOL, '{"tool": "newFileCreated", "pa', partial=True)

        await manager.handle_tool_content_streaming(message)

        send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_non_write_tools_are_skipped(self, manager, send) -> None:
        message = AgentMessage.ask_message(10, ASK_TOOL, json.dumps({"tool": "readFile", "path": "a.py"}), partial=True)

        await manager.handle_tool_content_streaming(message)

        send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_complete_without_header_sends_nothing(self, manager, send) -> None:
        await manager.handle_tool_content_streaming(_write("a.py", "x", partial=False))

        send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_reset_forgets_headers(self, manager, send) -> None:
        await manager.handle_tool_content_streaming(_write("a.py", "x"))
        assert manager.active_header_count == 1

        manager.reset()

        assert manager.active_header_count == 0

    def test_is_tool_ask_message(self) -> None:
        assert ToolContentStreamManager.is_tool_ask_message(AgentMessage.ask_message(1, ASK_TOOL, "{}"))
        assert not ToolContentStreamManager.is_tool_ask_message(AgentMessage.ask_message(1, "command", "ls"))

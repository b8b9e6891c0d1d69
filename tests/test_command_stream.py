"""Tests for relay.command_stream module."""

from unittest.mock import AsyncMock

import pytest

from relay.command_stream import CODE_FENCE, CommandStreamManager
from relay.delta_tracker import DeltaTracker
from relay.events import SAY_COMMAND_OUTPUT, SAY_TEXT, AgentMessage


def _sent(send):
    return [c.args[0] for c in send.call_args_list]


@pytest.fixture
def send():
    return AsyncMock()


@pytest.fixture
def manager(send):
    return CommandStreamManager(DeltaTracker(), send)


class TestIsCommandOutputMessage:
    def test_command_output(self) -> None:
        assert CommandStreamManager.is_command_output_message(AgentMessage.say_message(1, SAY_COMMAND_OUTPUT, "x"))
        assert not CommandStreamManager.is_command_output_message(AgentMessage.say_message(1, SAY_TEXT, "x"))


class TestExecutionOutput:
    """Tests for live output streaming."""

    @pytest.mark.asyncio
    async def test_streams_inside_fence_opened_once(self, manager, send) -> None:
        """Should open one fence and then stream only new output."""
        # Given
        manager.track_command("tool-1", "ls", ts=1)

        # When
        await manager.handle_execution_output("exec-1", "a.py\n")
        await manager.handle_execution_output("exec-1", "a.py\nb.py\n")

        # Then
        assert [u.content.text for u in _sent(send)] == [CODE_FENCE, "a.py\n", "b.py\n"]
        assert manager.has_open_code_fences()

    @pytest.mark.asyncio
    async def test_output_without_pending_command_is_dropped(self, manager, send) -> None:
        await manager.handle_execution_output("exec-1", "orphan")

        send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_output_goes_to_most_recent_command(self, manager, send) -> None:
        manager.track_command("tool-1", "first", ts=1)
        manager.track_command("tool-2", "second", ts=2)

        await manager.handle_execution_output("exec-2", "out")
        await manager.handle_command_output(AgentMessage.say_message(3, SAY_COMMAND_OUTPUT, "out"))

        completion = _sent(send)[-1]
        assert completion.tool_call_id == "tool-2"
        assert manager.pending_command_count == 1


class TestCommandOutput:
    """Tests for final command output."""

    @pytest.mark.asyncio
    async def test_closes_fence_and_completes_call(self, manager, send) -> None:
        """Should close the open fence before completing the tool call."""
        # Given
        manager.track_command("tool-1", "ls", ts=1)
        await manager.handle_execution_output("exec-1", "a.py")

        # When
        await manager.handle_command_output(AgentMessage.say_message(2, SAY_COMMAND_OUTPUT, "a.py"))

        # Then
        sent = _sent(send)
        assert sent[-2].content.text == CODE_FENCE
        assert sent[-1].session_update == "tool_call_update"
        assert sent[-1].status == "completed"
        assert sent[-1].raw_output == {"output": "a.py"}
        assert not manager.has_open_code_fences()
        assert manager.pending_command_count == 0

    @pytest.mark.asyncio
    async def test_without_live_output_no_fence(self, manager, send) -> None:
        manager.track_command("tool-1", "true", ts=1)

        await manager.handle_command_output(AgentMessage.say_message(2, SAY_COMMAND_OUTPUT, ""))

        assert [u.session_update for u in _sent(send)] == ["tool_call_update"]

    @pytest.mark.asyncio
    async def test_partial_output_is_ignored(self, manager, send) -> None:
        manager.track_command("tool-1", "ls", ts=1)

        await manager.handle_command_output(AgentMessage.say_message(2, SAY_COMMAND_OUTPUT, "a", partial=True))

        send.assert_not_awaited()
        assert manager.pending_command_count == 1

    @pytest.mark.asyncio
    async def test_reset_clears_pending_and_fences(self, manager, send) -> None:
        manager.track_command("tool-1", "ls", ts=1)
        await manager.handle_execution_output("exec-1", "x")

        manager.reset()

        assert manager.pending_command_count == 0
        assert not manager.has_open_code_fences()

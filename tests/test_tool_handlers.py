"""Tests for relay.tool_handlers module."""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from relay.content import FileReadResult
from relay.events import ASK_COMMAND, ASK_TOOL, AgentMessage
from relay.tool_handlers import (
    COMMAND_HANDLER,
    DEFAULT_HANDLERS,
    FILE_READ_HANDLER,
    ToolHandlerRegistry,
)


def _tool_ask(payload, ts=100):
    return AgentMessage.ask_message(ts, ASK_TOOL, json.dumps(payload))


@pytest.fixture
def resolver():
    """Create a file resolver returning fixed content."""
    resolver = MagicMock()
    resolver.read_text = AsyncMock(return_value=FileReadResult.success("line1\nline2"))
    return resolver


@pytest.fixture
def registry():
    return ToolHandlerRegistry()


class TestHandlerSelection:
    """Tests for ToolHandlerRegistry.get_handler."""

    def test_command_ask_wins_before_tool_names(self, registry, resolver) -> None:
        """Should pick the command handler by ask type alone."""
        message = AgentMessage.ask_message(1, ASK_COMMAND, "npm test")
        ctx = registry.create_context(message, ASK_COMMAND, "/w", resolver)

        assert registry.get_handler(ctx).name == "command"

    @pytest.mark.parametrize(
        ("tool", "handler"),
        [
            ("editedExistingFile", "file_edit"),
            ("newFileCreated", "file_edit"),
            ("readFile", "file_read"),
            ("searchFiles", "search"),
            ("listFilesRecursive", "list_files"),
            ("browserAction", "default"),
        ],
    )
    def test_tool_asks_by_name(self, registry, resolver, tool, handler) -> None:
        ctx = registry.create_context(_tool_ask({"tool": tool, "path": "a.py"}), ASK_TOOL, "/w", resolver)

        assert registry.get_handler(ctx).name == handler

    def test_non_tool_ask_falls_to_default(self, registry, resolver) -> None:
        """Should not match tool-name handlers for other ask types."""
        message = AgentMessage.ask_message(1, "use_mcp_server", json.dumps({"tool": "readFile"}))
        ctx = registry.create_context(message, "use_mcp_server", "/w", resolver)

        assert registry.get_handler(ctx).name == "default"

    def test_chain_without_catch_all_raises(self, resolver) -> None:
        """Should raise when nothing matches."""
        registry = ToolHandlerRegistry([FILE_READ_HANDLER])
        ctx = registry.create_context(_tool_ask({"tool": "mystery"}), ASK_TOOL, "/w", resolver)

        with pytest.raises(LookupError):
            registry.get_handler(ctx)

    def test_default_chain_order(self) -> None:
        assert [h.name for h in DEFAULT_HANDLERS] == [
            "command",
            "file_edit",
            "file_read",
            "search",
            "list_files",
            "default",
        ]


class TestHandlers:
    """Tests for the updates each handler produces."""

    @pytest.mark.asyncio
    async def test_command_defers_completion(self, registry, resolver) -> None:
        """Should return a pending command instead of a completion."""
        # Given
        message = AgentMessage.ask_message(55, ASK_COMMAND, "pytest -q")
        ctx = registry.create_context(message, ASK_COMMAND, "/w", resolver)

        # When
        result = await registry.handle(ctx)

        # Then
        assert result.initial_update.kind == "execute"
        assert result.initial_update.status == "in_progress"
        assert result.initial_update.title == "pytest -q"
        assert result.completion_update is None
        assert result.pending_command.tool_call_id == "tool-55"
        assert result.pending_command.command == "pytest -q"
        assert result.pending_command.ts == 55

    @pytest.mark.asyncio
    async def test_file_edit_carries_diff(self, registry, resolver) -> None:
        payload = {"tool": "editedExistingFile", "path": "a.py", "content": "@@ -1 +1 @@\n-a\n+b"}
        ctx = registry.create_context(_tool_ask(payload), ASK_TOOL, "/w", resolver)

        result = await registry.handle(ctx)

        assert result.initial_update.kind == "edit"
        assert result.initial_update.content[0].new_text == "b"
        assert result.completion_update.status == "completed"
        assert result.completion_update.content[0].old_text == "a"
        assert result.completion_update.raw_output == payload

    @pytest.mark.asyncio
    async def test_file_read_inlines_content(self, registry, resolver) -> None:
        """Should read the file and show it in a code block."""
        ctx = registry.create_context(_tool_ask({"tool": "readFile", "path": "a.py"}), ASK_TOOL, "/w", resolver)

        result = await registry.handle(ctx)

        resolver.read_text.assert_awaited_once_with("/w/a.py")
        assert result.initial_update.kind == "read"
        assert result.completion_update.content[0].content.text == "```\nline1\nline2\n```"

    @pytest.mark.asyncio
    async def test_file_read_failure_is_inlined(self, registry, resolver) -> None:
        """Should show the read error rather than raising."""
        resolver.read_text = AsyncMock(return_value=FileReadResult.failure("Failed to read file /w/a.py: gone"))
        ctx = registry.create_context(_tool_ask({"tool": "readFile", "path": "a.py"}), ASK_TOOL, "/w", resolver)

        result = await registry.handle(ctx)

        assert result.completion_update.status == "completed"
        assert "gone" in result.completion_update.content[0].content.text

    @pytest.mark.asyncio
    async def test_file_read_is_truncated(self, registry, resolver) -> None:
        resolver.read_text = AsyncMock(return_value=FileReadResult.success("a\nb\nc"))
        ctx = registry.create_context(
            _tool_ask({"tool": "readFile", "path": "a.py"}), ASK_TOOL, "/w", resolver, max_read_lines=2
        )

        result = await registry.handle(ctx)

        assert result.completion_update.content[0].content.text == "```\na\nb\n\n... (1 more lines)\n```"

    @pytest.mark.asyncio
    async def test_search_summarizes_results(self, registry, resolver) -> None:
        payload = {"tool": "searchFiles", "path": ".", "regex": "foo", "content": "Found 2 results.\n# a.py\n# b.py"}
        ctx = registry.create_context(_tool_ask(payload), ASK_TOOL, "/w", resolver)

        result = await registry.handle(ctx)

        assert result.initial_update.kind == "search"
        text = result.completion_update.content[0].content.text
        assert "Found 2 results in 2 files" in text
        assert [loc.path for loc in result.initial_update.locations] == ["/w/a.py", "/w/b.py"]

    @pytest.mark.asyncio
    async def test_list_files_shows_listing(self, registry, resolver) -> None:
        payload = {"tool": "listFiles", "path": "src", "content": "a.py\nb.py"}
        ctx = registry.create_context(_tool_ask(payload), ASK_TOOL, "/w", resolver)

        result = await registry.handle(ctx)

        assert result.initial_update.kind == "read"
        assert result.completion_update.content[0].content.text == "a.py\nb.py"

    @pytest.mark.asyncio
    async def test_default_handler(self, registry, resolver) -> None:
        payload = {"tool": "fetch", "url": "https://example.com"}
        ctx = registry.create_context(_tool_ask(payload), ASK_TOOL, "/w", resolver)

        result = await registry.handle(ctx)

        assert result.initial_update.kind == "fetch"
        assert result.initial_update.raw_input == payload
        assert result.completion_update.content is None

    def test_command_handler_predicate(self, registry, resolver) -> None:
        ctx = registry.create_context(AgentMessage.ask_message(1, ASK_TOOL, "{}"), ASK_TOOL, "/w", resolver)

        assert not COMMAND_HANDLER.can_handle(ctx)

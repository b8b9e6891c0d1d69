"""Tests for relay.tool_parser module."""

import json

from relay.events import ASK_TOOL, AgentMessage
from relay.tool_parser import (
    extract_tool_content,
    generate_tool_title,
    parse_tool_from_message,
    parse_tool_payload,
)


def _tool_ask(payload, ts=1000, partial=False):
    text = payload if isinstance(payload, str) else json.dumps(payload)
    return AgentMessage.ask_message(ts, ASK_TOOL, text, partial=partial)


class TestParseToolPayload:
    """Tests for parse_tool_payload."""

    def test_valid_object(self) -> None:
        assert parse_tool_payload('{"tool": "readFile"}') == {"tool": "readFile"}

    def test_truncated_partial_is_not_yet_parseable(self) -> None:
        """Should wait for more text instead of guessing."""
        assert parse_tool_payload('{"tool": "readFi', partial=True) is None

    def test_malformed_complete_payload_is_repaired(self) -> None:
        """Should recover a complete payload with minor syntax damage."""
        result = parse_tool_payload('{"tool": "readFile", "path": "a.py",}')

        assert result == {"tool": "readFile", "path": "a.py"}

    def test_non_object_json(self) -> None:
        assert parse_tool_payload("[1, 2]") is None
        assert parse_tool_payload('"text"') is None


class TestGenerateToolTitle:
    """Tests for generate_tool_title."""

    def test_known_tools_use_file_name(self) -> None:
        assert generate_tool_title("readFile", "/w/src/app.py") == "Read app.py"
        assert generate_tool_title("editedExistingFile", "app.py") == "Edit app.py"
        assert generate_tool_title("newFileCreated", "x/new.ts") == "Creating new.ts"

    def test_known_tools_without_path(self) -> None:
        assert generate_tool_title("readFile") == "Read file"
        assert generate_tool_title("searchFiles") == "Searching files"

    def test_listing_uses_full_path(self) -> None:
        assert generate_tool_title("listFiles", "src/lib") == "Listing files in src/lib"

    def test_unknown_tool(self) -> None:
        assert generate_tool_title("customTool", "a/b.txt") == "customTool: b.txt"
        assert generate_tool_title("customTool") == "customTool"


class TestExtractToolContent:
    """Tests for extract_tool_content."""

    def test_edit_with_diff_body(self) -> None:
        params = {"tool": "editedExistingFile", "path": "a.py", "content": "@@ -1 +1 @@\n-x = 1\n+x = 2"}

        content = extract_tool_content(params, "/w")

        assert len(content) == 1
        assert content[0].type == "diff"
        assert content[0].path == "/w/a.py"
        assert content[0].old_text == "x = 1"
        assert content[0].new_text == "x = 2"

    def test_new_file_with_raw_body(self) -> None:
        content = extract_tool_content({"tool": "newFileCreated", "path": "n.py", "content": "print(1)"})

        assert content[0].old_text is None
        assert content[0].new_text == "print(1)"

    def test_non_edit_tool(self) -> None:
        assert extract_tool_content({"tool": "readFile", "path": "a.py", "content": "a.py"}) is None

    def test_missing_body(self) -> None:
        assert extract_tool_content({"tool": "editedExistingFile", "path": "a.py"}) is None


class TestParseToolFromMessage:
    """Tests for parse_tool_from_message."""

    def test_json_payload(self) -> None:
        """Should build a full tool description from a JSON payload."""
        # Given
        message = _tool_ask({"tool": "readFile", "path": "src/app.py"}, ts=42)

        # When
        info = parse_tool_from_message(message, "/w")

        # Then
        assert info.id == "tool-42"
        assert info.name == "readFile"
        assert info.title == "Read app.py"
        assert info.params == {"tool": "readFile", "path": "src/app.py"}
        assert [loc.path for loc in info.locations] == ["/w/src/app.py"]
        assert info.content is None

    def test_partial_unparseable_payload(self) -> None:
        assert parse_tool_from_message(_tool_ask('{"tool": "rea', partial=True)) is None

    def test_plain_text_mention(self) -> None:
        message = AgentMessage.say_message(7, "mcp_server_request_started", "Using github to list issues")

        info = parse_tool_from_message(message)

        assert info.name == "github"
        assert info.title == "Using github to list issues"
        assert info.params == {}

    def test_plain_text_title_is_truncated(self) -> None:
        info = parse_tool_from_message(AgentMessage.say_message(7, "x", "a" * 150))

        assert info.name == "unknown"
        assert len(info.title) == 100

    def test_empty_text(self) -> None:
        assert parse_tool_from_message(AgentMessage.say_message(7, "x", "")) is None

    def test_payload_without_tool_name(self) -> None:
        info = parse_tool_from_message(_tool_ask({"path": "a.py"}))

        assert info.name == "unknown"

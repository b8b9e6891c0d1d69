"""Parsing of tool invocation payloads from agent messages."""

from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import dataclass, field
from typing import Any

import json_repair
from acp import tool_diff_content
from acp.schema import FileEditToolCallContent, ToolCallLocation

from relay.content import resolve_file_path_unsafe
from relay.diff_parser import parse_unified_diff
from relay.events import AgentMessage
from relay.locations import extract_locations
from relay.tool_registry import is_edit_tool

logger = logging.getLogger(__name__)

_TOOL_MENTION = re.compile(r"(?:Using|Executing|Running)\s+(\w+)", re.IGNORECASE)

MAX_TITLE_LENGTH = 100


@dataclass
class ToolCallInfo:
    """Structured view of a tool invocation."""

    id: str
    name: str
    title: str
    params: dict[str, Any] = field(default_factory=dict)
    locations: list[ToolCallLocation] = field(default_factory=list)
    content: list[FileEditToolCallContent] | None = None


def tool_call_id_for(ts: int) -> str:
    return f"tool-{ts}"


def parse_tool_payload(text: str, *, partial: bool = False) -> dict[str, Any] | None:
    """Parse a JSON tool payload.

    While a message is still streaming its JSON is usually cut off mid-way;
    that is expected and yields None so the caller can wait for more text.
    A complete payload that fails strict parsing gets one repair attempt.

    Args:
        text: Raw payload text.
        partial: Whether the message is still streaming.

    Returns:
        The payload object, or None if it is not (yet) a JSON object.
    """
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        if partial:
            return None
        parsed = json_repair.loads(text)
        if isinstance(parsed, dict):
            logger.debug(f"Repaired malformed tool payload ({len(text)} chars)")
    return parsed if isinstance(parsed, dict) else None


def generate_tool_title(tool_name: str, file_path: str | None = None) -> str:
    """Human-readable title for a tool call."""
    file_name = os.path.basename(file_path) if file_path else None

    creating = f"Creating {file_name}" if file_name else "Creating file"
    editing = f"Edit {file_name}" if file_name else "Edit file"
    reading = f"Read {file_name}" if file_name else "Read file"
    listing = f"Listing files in {file_path}" if file_path else "Listing files"

    titles = {
        "newFileCreated": creating,
        "create_file": creating,
        "write_to_file": f"Writing {file_name}" if file_name else "Writing file",
        "editedExistingFile": editing,
        "apply_diff": editing,
        "appliedDiff": editing,
        "modify_file": editing,
        "read_file": reading,
        "readFile": reading,
        "list_files": listing,
        "listFiles": listing,
        "search_files": "Searching files",
        "searchFiles": "Searching files",
        "execute_command": "Running command",
        "executeCommand": "Running command",
        "browser_action": "Browser action",
        "browserAction": "Browser action",
    }
    if tool_name in titles:
        return titles[tool_name]
    return f"{tool_name}: {file_name}" if file_name else tool_name


def extract_tool_content(
    params: dict[str, Any], workspace_path: str | None = None
) -> list[FileEditToolCallContent] | None:
    """Build diff content for edit tools that carry a path and a body."""
    file_path = params.get("path")
    body = params.get("content")
    tool_name = params.get("tool")

    if not (isinstance(file_path, str) and file_path and isinstance(body, str) and body):
        return None
    if not isinstance(tool_name, str) or not is_edit_tool(tool_name):
        return None

    diff = parse_unified_diff(body)
    if diff is None:
        return None
    absolute_path = resolve_file_path_unsafe(file_path, workspace_path)
    return [tool_diff_content(absolute_path, diff.new_text, diff.old_text)]


def parse_tool_from_message(
    message: AgentMessage, workspace_path: str | None = None
) -> ToolCallInfo | None:
    """Extract tool intent from a message.

    JSON payloads give full detail. Plain text falls back to spotting
    "Using <tool>" style phrases.

    Returns:
        The tool info, or None for empty text or a JSON payload that is still
        streaming and not yet parseable.
    """
    text = message.text
    if not text:
        return None

    tool_call_id = tool_call_id_for(message.ts)

    if text.startswith("{"):
        payload = parse_tool_payload(text, partial=message.partial)
        if payload is not None:
            tool_name = payload.get("tool")
            tool_name = tool_name if isinstance(tool_name, str) and tool_name else "unknown"
            file_path = payload.get("path")
            file_path = file_path if isinstance(file_path, str) and file_path else None
            return ToolCallInfo(
                id=tool_call_id,
                name=tool_name,
                title=generate_tool_title(tool_name, file_path),
                params=payload,
                locations=extract_locations(payload, workspace_path),
                content=extract_tool_content(payload, workspace_path),
            )
        if message.partial:
            return None

    mention = _TOOL_MENTION.search(text)
    return ToolCallInfo(
        id=tool_call_id,
        name=mention.group(1) if mention else "unknown",
        title=text[:MAX_TITLE_LENGTH],
    )

"""Translation between agent messages and ACP protocol shapes.

Covers the messages that are not delta-streamed, the ask taxonomy used to
route permission requests, and flattening of ACP prompt
blocks into the plain text the agent consumes.
"""

from __future__ import annotations

import logging
from typing import Any

from acp import start_tool_call, text_block, update_agent_message, update_agent_thought, update_tool_call
from acp.schema import (
    AudioContentBlock,
    EmbeddedResourceContentBlock,
    ImageContentBlock,
    ResourceContentBlock,
    TextContentBlock,
    TextResourceContents,
)

from relay.events import ASK_COMMAND, ASK_TOOL, SAY_ERROR, SAY_REASONING, SAY_TEXT, AgentMessage
from relay.tool_parser import parse_tool_from_message
from relay.tool_registry import map_tool_to_kind
from relay.update_buffer import SessionUpdate

logger = logging.getLogger(__name__)

PromptBlock = (
    TextContentBlock
    | ImageContentBlock
    | AudioContentBlock
    | ResourceContentBlock
    | EmbeddedResourceContentBlock
)

PERMISSION_ASKS = frozenset({ASK_TOOL, ASK_COMMAND, "browser_action_launch", "use_mcp_server"})
COMPLETION_ASKS = frozenset({"completion_result", "api_req_failed", "mistake_limit_reached"})

# Say messages describing tool activity rather than text.
TOOL_SAYS = frozenset({"shell_integration_warning", "mcp_server_request_started", "mcp_server_response"})


def is_permission_ask(ask: str) -> bool:
    return ask in PERMISSION_ASKS


def is_completion_ask(ask: str) -> bool:
    return ask in COMPLETION_ASKS


def translate_to_update(message: AgentMessage, workspace_path: str | None = None) -> SessionUpdate | None:
    """Translate a non-streamed message into a session update.

    Lifecycle chatter (API request events, user feedback, completion
    results) and all ask messages have no direct update and give None.
    """
    if message.type != "say":
        return None

    if message.say == SAY_TEXT:
        return update_agent_message(text_block(message.text))
    if message.say == SAY_REASONING:
        return update_agent_thought(text_block(message.text))
    if message.say == SAY_ERROR:
        return update_agent_message(text_block(f"Error: {message.text}"))
    if message.say in TOOL_SAYS:
        return _translate_tool_say(message, workspace_path)
    return None


def _translate_tool_say(message: AgentMessage, workspace_path: str | None) -> SessionUpdate | None:
    info = parse_tool_from_message(message, workspace_path)
    if info is None:
        return None

    if message.partial:
        return start_tool_call(
            tool_call_id=info.id,
            title=info.title,
            kind=map_tool_to_kind(info.name),
            status="in_progress",
            locations=info.locations,
            raw_input=info.params,
        )
    return update_tool_call(
        tool_call_id=info.id,
        status="completed",
        content=[],
        raw_output=info.params,
    )


def extract_prompt_text(blocks: list[PromptBlock] | list[dict[str, Any]]) -> str:
    """Flatten prompt blocks into the text sent to the agent.

    Resource links become ``@uri`` mentions, embedded text resources are
    inlined, and media blocks leave a placeholder.
    """
    parts: list[str] = []
    for block in blocks:
        if isinstance(block, dict):
            text = _dict_block_text(block)
        elif isinstance(block, TextContentBlock):
            text = block.text
        elif isinstance(block, ResourceContentBlock):
            text = f"@{block.uri}"
        elif isinstance(block, EmbeddedResourceContentBlock):
            resource = block.resource
            text = None
            if isinstance(resource, TextResourceContents):
                text = f"Content from {resource.uri}:\n{resource.text}"
        elif isinstance(block, ImageContentBlock):
            text = "[image content]"
        elif isinstance(block, AudioContentBlock):
            text = "[audio content]"
        else:
            text = None
        if text is not None:
            parts.append(text)
    return "\n".join(parts)


def _dict_block_text(block: dict[str, Any]) -> str | None:
    """Text for a prompt block that arrived as a plain dict."""
    block_type = block.get("type")
    if block_type == "text":
        return block.get("text", "")
    if block_type == "resource_link":
        return f"@{block.get('uri', '')}"
    if block_type == "resource":
        resource = block.get("resource") or {}
        if "text" in resource:
            return f"Content from {resource.get('uri', '')}:\n{resource['text']}"
        return None
    if block_type in ("image", "audio"):
        return f"[{block_type} content]"
    return None


def extract_prompt_images(blocks: list[PromptBlock] | list[dict[str, Any]]) -> list[str]:
    """Base64 data of every image block."""
    images: list[str] = []
    for block in blocks:
        if isinstance(block, ImageContentBlock) and block.data:
            images.append(block.data)
        elif isinstance(block, dict) and block.get("type") == "image" and block.get("data"):
            images.append(block["data"])
    return images


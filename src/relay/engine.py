"""Agent engines that produce the event stream a session consumes.

A session only needs an object satisfying :class:`AgentEngine`.
:class:`ClaudeAgentEngine` drives the Claude Agent SDK and rewrites its
messages into Relay events: assistant text and thinking become ``say``
messages, tool uses become permission asks, shell tool results become
``command_output`` and the final result completes the task.
"""

from __future__ import annotations

import asyncio
import contextlib
import difflib
import json
import logging
import time
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any, Protocol

from claude_agent_sdk import (
    AssistantMessage,
    ClaudeAgentOptions,
    ClaudeSDKClient,
    PermissionResultAllow,
    ResultMessage,
    TextBlock,
    ThinkingBlock,
    ToolPermissionContext,
    ToolResultBlock,
    ToolUseBlock,
    UserMessage,
)

from relay.events import (
    ASK_COMMAND,
    ASK_TOOL,
    SAY_COMMAND_OUTPUT,
    SAY_ERROR,
    SAY_REASONING,
    SAY_TEXT,
    AgentEvent,
    AgentMessage,
    TaskCompleted,
    WaitingForInput,
)

logger = logging.getLogger(__name__)

EventListener = Callable[[AgentEvent], Awaitable[None]]


class AgentEngine(Protocol):
    """What a session needs from the agent it bridges."""

    def set_listener(self, listener: EventListener) -> None: ...

    async def start_task(self, text: str, images: list[str] | None = None) -> None: ...

    async def cancel_task(self) -> None: ...

    async def approve(self) -> None: ...

    async def respond(self, text: str) -> None: ...

    async def set_mode(self, mode_id: str) -> None: ...

    async def set_model(self, model_id: str) -> None: ...

    async def close(self) -> None: ...


def _shell_tool(name: str) -> bool:
    return name in ("Bash", "mcp__acp__Bash")


def _edit_diff(file_path: str, old: str, new: str) -> str:
    return "\n".join(
        difflib.unified_diff(
            old.splitlines(),
            new.splitlines(),
            fromfile=f"a/{file_path}",
            tofile=f"b/{file_path}",
            lineterm="",
        )
    )


def tool_use_to_payload(name: str, tool_input: dict[str, Any]) -> dict[str, Any]:
    """Rewrite a Claude tool use into the JSON payload of a tool ask."""
    file_path = tool_input.get("file_path", "")

    if name in ("Write", "mcp__acp__Write"):
        tool = "write_to_file" if Path(file_path).exists() else "newFileCreated"
        return {"tool": tool, "path": file_path, "content": tool_input.get("content", "")}

    if name in ("Edit", "mcp__acp__Edit"):
        diff = _edit_diff(file_path, tool_input.get("old_string", ""), tool_input.get("new_string", ""))
        return {"tool": "editedExistingFile", "path": file_path, "content": diff}

    if name == "MultiEdit":
        diffs = [
            _edit_diff(file_path, edit.get("old_string", ""), edit.get("new_string", ""))
            for edit in tool_input.get("edits", [])
        ]
        return {"tool": "editedExistingFile", "path": file_path, "content": "\n".join(diffs)}

    if name in ("Read", "mcp__acp__Read"):
        return {"tool": "readFile", "path": file_path}

    if name == "Grep":
        return {"tool": "searchFiles", "path": tool_input.get("path", "."), "regex": tool_input.get("pattern", "")}

    if name == "Glob":
        return {
            "tool": "searchFiles",
            "path": tool_input.get("path", "."),
            "filePattern": tool_input.get("pattern", ""),
        }

    if name == "LS":
        return {"tool": "listFiles", "path": tool_input.get("path", ".")}

    if name == "WebFetch":
        return {"tool": "fetch", "url": tool_input.get("url", "")}

    if name == "TodoWrite":
        todos = [
            {"id": str(index), "content": todo.get("content", ""), "status": todo.get("status", "pending")}
            for index, todo in enumerate(tool_input.get("todos", []))
        ]
        return {"tool": "updateTodoList", "todos": todos}

    return {"tool": name, **tool_input}


def _tool_result_text(block: ToolResultBlock) -> str:
    content = block.content
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    return "\n".join(str(part.get("text", "")) for part in content if isinstance(part, dict))


class ClaudeAgentEngine:
    """Runs tasks on a Claude Agent SDK client and emits Relay events.

    Tool permission requests from the SDK are granted: the bridge approves
    every tool call after announcing it to the editor.
    """

    def __init__(self, cwd: str, model: str | None = None, permission_mode: str = "default") -> None:
        """Initialize the engine.

        Args:
            cwd: Working directory for the agent.
            model: Claude model name (SDK default if not specified).
            permission_mode: SDK permission mode the client starts in.
        """
        self._cwd = cwd
        self._model = model
        self._permission_mode = permission_mode
        self._client: ClaudeSDKClient | None = None
        self._listener: EventListener | None = None
        self._pump_task: asyncio.Task[None] | None = None
        self._last_ts = 0
        self._shell_tool_uses: set[str] = set()

    def set_listener(self, listener: EventListener) -> None:
        self._listener = listener

    async def start_task(self, text: str, images: list[str] | None = None) -> None:
        """Send a prompt and start streaming the agent's response.

        Returns once the prompt is submitted. Events follow on the listener.
        """
        if images:
            logger.info(f"Ignoring {len(images)} prompt image(s), text prompts only")
        await self._stop_pump()
        client = await self._get_client()
        await client.query(text)
        self._pump_task = asyncio.create_task(self._pump(client))

    async def cancel_task(self) -> None:
        if self._client is not None:
            await self._client.interrupt()

    async def approve(self) -> None:
        logger.debug("Approval acknowledged")

    async def respond(self, text: str) -> None:
        logger.debug(f"Response acknowledged ({len(text)} chars)")

    async def set_mode(self, mode_id: str) -> None:
        """Switch the SDK permission mode, now if connected or on connect."""
        self._permission_mode = mode_id
        if self._client is not None:
            await self._client.set_permission_mode(mode_id)

    async def set_model(self, model_id: str) -> None:
        self._model = model_id
        if self._client is not None:
            await self._client.set_model(model_id)

    async def close(self) -> None:
        await self._stop_pump()
        if self._client is not None:
            await self._client.disconnect()
            self._client = None

    async def _get_client(self) -> ClaudeSDKClient:
        if self._client is None:
            options = ClaudeAgentOptions(
                cwd=self._cwd,
                model=self._model,
                permission_mode=self._permission_mode,  # type: ignore[arg-type]
                can_use_tool=self._allow_tool,
            )
            self._client = ClaudeSDKClient(options=options)
            await self._client.connect()
            logger.info("Claude SDK client connected")
        return self._client

    async def _allow_tool(
        self,
        tool_name: str,
        input_params: dict[str, Any],
        context: ToolPermissionContext,
    ) -> PermissionResultAllow:
        logger.debug(f"Granting tool permission: {tool_name}")
        return PermissionResultAllow(updated_input=input_params)

    async def _stop_pump(self) -> None:
        if self._pump_task is not None and not self._pump_task.done():
            self._pump_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._pump_task
        self._pump_task = None

    def _next_ts(self) -> int:
        ts = max(time.time_ns() // 1_000_000, self._last_ts + 1)
        self._last_ts = ts
        return ts

    async def _emit(self, event: AgentEvent) -> None:
        if self._listener is not None:
            await self._listener(event)

    async def _pump(self, client: ClaudeSDKClient) -> None:
        try:
            async for message in client.receive_response():
                if isinstance(message, AssistantMessage):
                    for block in message.content:
                        await self._emit_assistant_block(block)
                elif isinstance(message, UserMessage) and isinstance(message.content, list):
                    for block in message.content:
                        if isinstance(block, ToolResultBlock):
                            await self._emit_tool_result(block)
                elif isinstance(message, ResultMessage):
                    await self._emit(TaskCompleted(success=not message.is_error))
                    return
        except Exception as e:
            logger.exception(f"Agent stream failed: {e}")
            await self._emit(AgentMessage.say_message(self._next_ts(), SAY_ERROR, str(e)))
            await self._emit(TaskCompleted(success=False))

    async def _emit_assistant_block(self, block: Any) -> None:
        if isinstance(block, TextBlock):
            await self._emit(AgentMessage.say_message(self._next_ts(), SAY_TEXT, block.text))
        elif isinstance(block, ThinkingBlock):
            await self._emit(AgentMessage.say_message(self._next_ts(), SAY_REASONING, block.thinking))
        elif isinstance(block, ToolUseBlock):
            if _shell_tool(block.name):
                self._shell_tool_uses.add(block.id)
                message = AgentMessage.ask_message(self._next_ts(), ASK_COMMAND, block.input.get("command", ""))
            else:
                payload = tool_use_to_payload(block.name, block.input)
                message = AgentMessage.ask_message(self._next_ts(), ASK_TOOL, json.dumps(payload))
            await self._emit(message)
            await self._emit(WaitingForInput(ask=message.ask or ASK_TOOL, message=message))

    async def _emit_tool_result(self, block: ToolResultBlock) -> None:
        if block.tool_use_id not in self._shell_tool_uses:
            return
        self._shell_tool_uses.discard(block.tool_use_id)
        await self._emit(
            AgentMessage.say_message(self._next_ts(), SAY_COMMAND_OUTPUT, _tool_result_text(block))
        )

"""Tool call dispatch.

Each permission ask is matched against an ordered list of handlers. The
first handler whose predicate accepts the context turns it into the
``tool_call`` update announcing the tool and, when the result is already
known, the ``tool_call_update`` completing it. Order matters: commands are
recognized by their ask type before any tool-name matching, and the default
handler at the tail accepts everything.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Any

from acp import start_tool_call, text_block, tool_content, update_tool_call
from acp.schema import ContentToolCallContent, ToolCallProgress, ToolCallStart

from relay.command_stream import PendingCommand
from relay.config import DEFAULT_MAX_READ_LINES
from relay.content import (
    FileResolver,
    LocalFileResolver,
    extract_content_from_params,
    format_read_content,
    format_search_results,
    read_file_content,
    wrap_in_code_block,
)
from relay.events import ASK_COMMAND, ASK_TOOL, AgentMessage
from relay.tool_parser import MAX_TITLE_LENGTH, ToolCallInfo, parse_tool_from_message, tool_call_id_for
from relay.tool_registry import (
    ToolKind,
    is_edit_tool,
    is_list_files_tool,
    is_read_tool,
    is_search_tool,
    map_tool_to_kind,
)

logger = logging.getLogger(__name__)


@dataclass
class ToolHandlerContext:
    """Everything a handler needs to translate one permission ask."""

    message: AgentMessage
    ask: str
    workspace_path: str | None
    tool_info: ToolCallInfo | None
    file_resolver: FileResolver
    max_read_lines: int = DEFAULT_MAX_READ_LINES

    @property
    def tool_name(self) -> str:
        return self.tool_info.name if self.tool_info else ""

    @property
    def params(self) -> dict[str, Any]:
        return self.tool_info.params if self.tool_info else {}


@dataclass
class ToolHandleResult:
    """Updates produced for one tool call.

    ``completion_update`` is None when completion arrives later (commands);
    ``pending_command`` is set for those so their output can be correlated.
    """

    initial_update: ToolCallStart
    completion_update: ToolCallProgress | None = None
    pending_command: PendingCommand | None = None


@dataclass(frozen=True)
class ToolHandler:
    """A predicate and the coroutine that handles what it matches."""

    name: str
    can_handle: Callable[[ToolHandlerContext], bool]
    handle: Callable[[ToolHandlerContext], Awaitable[ToolHandleResult]]


def _initial_update(
    ctx: ToolHandlerContext,
    kind: ToolKind | None = None,
    content: Sequence[Any] | None = None,
) -> ToolCallStart:
    """Shared ``tool_call`` shape for every handler, already in progress."""
    info = ctx.tool_info
    return start_tool_call(
        tool_call_id=info.id if info else tool_call_id_for(ctx.message.ts),
        title=(info.title if info else None) or ctx.message.text[:MAX_TITLE_LENGTH] or "Tool execution",
        kind=kind or (map_tool_to_kind(info.name) if info else "other"),
        status="in_progress",
        content=list(content) if content else None,
        locations=info.locations if info else [],
        raw_input=ctx.params,
    )


def _completion_update(
    tool_call_id: str,
    params: dict[str, Any],
    content: Sequence[Any] | None = None,
) -> ToolCallProgress:
    return update_tool_call(
        tool_call_id=tool_call_id,
        status="completed",
        content=list(content) if content else None,
        raw_output=params,
    )


def _text_content(text: str | None) -> list[ContentToolCallContent] | None:
    return [tool_content(text_block(text))] if text else None


def _is_tool_ask(ctx: ToolHandlerContext, predicate: Callable[[str], bool]) -> bool:
    return ctx.ask == ASK_TOOL and predicate(ctx.tool_name)


async def _handle_command(ctx: ToolHandlerContext) -> ToolHandleResult:
    initial = _initial_update(ctx, "execute")
    logger.info(f"Handling command: {initial.tool_call_id}")
    return ToolHandleResult(
        initial_update=initial,
        pending_command=PendingCommand(
            tool_call_id=initial.tool_call_id,
            command=ctx.message.text,
            ts=ctx.message.ts,
        ),
    )


async def _handle_file_edit(ctx: ToolHandlerContext) -> ToolHandleResult:
    diff = ctx.tool_info.content if ctx.tool_info else None
    initial = _initial_update(ctx, "edit", diff)
    logger.info(f"Handling file edit: {initial.tool_call_id}")
    return ToolHandleResult(
        initial_update=initial,
        completion_update=_completion_update(initial.tool_call_id, ctx.params, diff),
    )


async def _handle_file_read(ctx: ToolHandlerContext) -> ToolHandleResult:
    initial = _initial_update(ctx, "read")
    logger.info(f"Handling file read: {initial.tool_call_id}")

    result = await read_file_content(ctx.params, ctx.workspace_path, ctx.file_resolver)
    formatted = None
    if result.text:
        formatted = wrap_in_code_block(format_read_content(result.text, ctx.max_read_lines))

    return ToolHandleResult(
        initial_update=initial,
        completion_update=_completion_update(
            initial.tool_call_id, ctx.params, _text_content(formatted)
        ),
    )


async def _handle_search(ctx: ToolHandlerContext) -> ToolHandleResult:
    initial = _initial_update(ctx, "search")
    logger.info(f"Handling search: {initial.tool_call_id}")

    raw = ctx.params.get("content")
    formatted = wrap_in_code_block(format_search_results(raw)) if isinstance(raw, str) and raw else None
    return ToolHandleResult(
        initial_update=initial,
        completion_update=_completion_update(
            initial.tool_call_id, ctx.params, _text_content(formatted)
        ),
    )


async def _handle_list_files(ctx: ToolHandlerContext) -> ToolHandleResult:
    initial = _initial_update(ctx, "read")
    logger.info(f"Handling list files: {initial.tool_call_id}")
    return ToolHandleResult(
        initial_update=initial,
        completion_update=_completion_update(
            initial.tool_call_id,
            ctx.params,
            _text_content(extract_content_from_params(ctx.params)),
        ),
    )


async def _handle_default(ctx: ToolHandlerContext) -> ToolHandleResult:
    initial = _initial_update(ctx)
    logger.info(f"Handling tool: {initial.tool_call_id}, kind: {initial.kind}")
    return ToolHandleResult(
        initial_update=initial,
        completion_update=_completion_update(
            initial.tool_call_id,
            ctx.params,
            _text_content(extract_content_from_params(ctx.params)),
        ),
    )


COMMAND_HANDLER = ToolHandler("command", lambda ctx: ctx.ask == ASK_COMMAND, _handle_command)
FILE_EDIT_HANDLER = ToolHandler(
    "file_edit", lambda ctx: _is_tool_ask(ctx, is_edit_tool), _handle_file_edit
)
FILE_READ_HANDLER = ToolHandler(
    "file_read", lambda ctx: _is_tool_ask(ctx, is_read_tool), _handle_file_read
)
SEARCH_HANDLER = ToolHandler("search", lambda ctx: _is_tool_ask(ctx, is_search_tool), _handle_search)
LIST_FILES_HANDLER = ToolHandler(
    "list_files", lambda ctx: _is_tool_ask(ctx, is_list_files_tool), _handle_list_files
)
DEFAULT_HANDLER = ToolHandler("default", lambda ctx: True, _handle_default)

DEFAULT_HANDLERS: tuple[ToolHandler, ...] = (
    COMMAND_HANDLER,
    FILE_EDIT_HANDLER,
    FILE_READ_HANDLER,
    SEARCH_HANDLER,
    LIST_FILES_HANDLER,
    DEFAULT_HANDLER,
)


class ToolHandlerRegistry:
    """Ordered handler chain; the first match wins.

    The registry holds no per-session state and can be shared.
    """

    def __init__(self, handlers: Sequence[ToolHandler] | None = None) -> None:
        """Initialize the registry.

        Args:
            handlers: Handler chain in priority order. Should end with a
                catch-all; defaults to :data:`DEFAULT_HANDLERS`.
        """
        self.handlers: tuple[ToolHandler, ...] = tuple(handlers or DEFAULT_HANDLERS)

    def get_handler(self, ctx: ToolHandlerContext) -> ToolHandler:
        """Return the first handler that accepts ``ctx``.

        Raises:
            LookupError: If no handler matches, meaning the chain was built
                without a catch-all.
        """
        for handler in self.handlers:
            if handler.can_handle(ctx):
                return handler
        raise LookupError(
            f"No tool handler matched ask={ctx.ask!r} tool={ctx.tool_name!r}; "
            "the handler chain must end with a catch-all"
        )

    async def handle(self, ctx: ToolHandlerContext) -> ToolHandleResult:
        handler = self.get_handler(ctx)
        logger.debug(f"Dispatching ask={ctx.ask} tool={ctx.tool_name or '-'} to {handler.name}")
        return await handler.handle(ctx)

    @staticmethod
    def create_context(
        message: AgentMessage,
        ask: str,
        workspace_path: str | None,
        file_resolver: FileResolver | None = None,
        max_read_lines: int = DEFAULT_MAX_READ_LINES,
    ) -> ToolHandlerContext:
        """Parse a message's tool payload into a handler context."""
        return ToolHandlerContext(
            message=message,
            ask=ask,
            workspace_path=workspace_path,
            tool_info=parse_tool_from_message(message, workspace_path),
            file_resolver=file_resolver or LocalFileResolver(),
            max_read_lines=max_read_lines,
        )

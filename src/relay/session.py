"""Session orchestrator.

A :class:`BridgeSession` owns the per-session pipeline: one delta tracker,
one update buffer and one prompt state machine. It receives engine events,
routes them through the tool handlers and stream managers, and writes the
resulting updates to the ACP connection through the buffer.

Routing of agent messages, in order:

1. todo list payloads become ``plan`` updates;
2. tool asks feed the file-write content stream;
3. ``command_output`` completes the pending command, if there is one;
4. delta-streamed say types become message or thought chunks;
5. anything else goes through :func:`relay.translator.translate_to_update`.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal

from acp import text_block, update_agent_message, update_agent_thought

from relay.command_stream import CommandStreamManager
from relay.config import RelayConfig
from relay.content import FileResolver, LocalFileResolver, is_user_echo
from relay.delta_tracker import DeltaTracker
from relay.events import (
    ASK_API_REQ_FAILED,
    ASK_FOLLOWUP,
    ASK_RESUME_TASK,
    SAY_COMMAND_OUTPUT,
    SAY_COMPLETION_RESULT,
    SAY_ERROR,
    SAY_REASONING,
    SAY_TEXT,
    AgentEvent,
    AgentMessage,
    CommandExecutionOutput,
    TaskCompleted,
    WaitingForInput,
)
from relay.modes import DEFAULT_MODE_ID, mode_update
from relay.plan import PriorityConfig, create_plan_update_from_message, is_todo_list_message
from relay.prompt_state import PromptStateMachine, StopReason
from relay.tool_content_stream import ToolContentStreamManager
from relay.tool_handlers import ToolHandlerRegistry
from relay.translator import is_completion_ask, is_permission_ask, translate_to_update
from relay.update_buffer import SessionUpdate, UpdateBuffer

if TYPE_CHECKING:
    from acp.interfaces import Client

    from relay.engine import AgentEngine
    from relay.scheduling import Scheduler

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeltaStreamConfig:
    """How a delta-streamed say type is sent."""

    update_kind: Literal["message", "thought"]
    prefix: str = ""


DELTA_STREAM_CONFIG: dict[str, DeltaStreamConfig] = {
    SAY_TEXT: DeltaStreamConfig("message"),
    SAY_COMMAND_OUTPUT: DeltaStreamConfig("message"),
    SAY_COMPLETION_RESULT: DeltaStreamConfig("message"),
    SAY_REASONING: DeltaStreamConfig("thought"),
    SAY_ERROR: DeltaStreamConfig("message", prefix="Error: "),
}

# Stateless, shared by every session.
DEFAULT_REGISTRY = ToolHandlerRegistry()


class BridgeSession:
    """One ACP session bridged to one agent engine."""

    def __init__(
        self,
        session_id: str,
        conn: Client,
        engine: AgentEngine,
        *,
        workspace_path: str | None = None,
        config: RelayConfig | None = None,
        file_resolver: FileResolver | None = None,
        registry: ToolHandlerRegistry | None = None,
        scheduler: Scheduler | None = None,
    ) -> None:
        """Initialize the session and subscribe to the engine's events.

        Args:
            session_id: ACP session id used on every outbound update.
            conn: ACP client connection.
            engine: Agent engine that runs prompts.
            workspace_path: Session working directory.
            config: Buffer, read and plan settings (defaults if not specified).
            file_resolver: Source of file content for read tools (local disk,
                confined to the workspace, if not specified).
            registry: Tool handler chain (shared default if not specified).
            scheduler: Timer source for the update buffer.
        """
        self.session_id = session_id
        self.workspace_path = workspace_path
        self._conn = conn
        self._engine = engine
        self._config = config or RelayConfig()
        self._file_resolver = file_resolver or LocalFileResolver()
        self._registry = registry or DEFAULT_REGISTRY
        self._priority_config = PriorityConfig(
            default_priority=self._config.default_priority,
            prioritize_in_progress=self._config.prioritize_in_progress,
            prioritize_by_order=self._config.prioritize_by_order,
            high_priority_count=self._config.high_priority_count,
        )

        self.delta_tracker = DeltaTracker()
        self.buffer = UpdateBuffer(
            self._send_update,
            min_buffer_size=self._config.min_buffer_size,
            flush_delay_ms=self._config.flush_delay_ms,
            scheduler=scheduler,
        )
        self.prompt_state = PromptStateMachine()
        self.command_stream = CommandStreamManager(self.delta_tracker, self.buffer.queue_update)
        self.content_stream = ToolContentStreamManager(self.delta_tracker, self.buffer.queue_update)

        self._processed_permissions: set[str] = set()
        self.current_mode_id = DEFAULT_MODE_ID
        self.current_model_id = self._config.model

        engine.set_listener(self.handle_event)

    async def prompt(self, text: str, images: list[str] | None = None) -> StopReason:
        """Run one prompt turn to completion.

        A turn still in progress is cancelled first. Buffered text is flushed
        before the stop reason is returned.

        Args:
            text: Prompt text for the agent.
            images: Base64 image data attached to the prompt.

        Returns:
            The turn's stop reason.
        """
        if self.prompt_state.is_processing():
            await self.cancel()
            await self.buffer.flush()

        self._reset_turn_state()
        completion = self.prompt_state.start_prompt(text)
        logger.info(f"Session {self.session_id}: prompt started")

        try:
            await self._engine.start_task(text, images)
        except Exception as e:
            logger.exception(f"Session {self.session_id}: failed to start task: {e}")
            await self.buffer.queue_update(update_agent_message(text_block(f"Error: {e}")))
            self.prompt_state.complete(False)

        try:
            result = await completion
        except asyncio.CancelledError:
            task = asyncio.current_task()
            if task is not None and task.cancelling():
                raise
            logger.info(f"Session {self.session_id}: turn discarded by reset")
            return "cancelled"

        await self.buffer.flush()
        logger.info(f"Session {self.session_id}: prompt finished with {result.stop_reason}")
        return result.stop_reason

    async def cancel(self) -> None:
        """Cancel the active turn. No-op when idle.

        The turn ends as ``cancelled`` right away. Stopping the engine
        follows and does not hold up the stop reason.
        """
        if not self.prompt_state.is_processing():
            logger.debug(f"Session {self.session_id}: cancel with no active turn")
            return

        self.prompt_state.cancel()
        try:
            await self._engine.cancel_task()
        except Exception as e:
            logger.warning(f"Session {self.session_id}: engine cancel failed: {e}")

    async def set_mode(self, mode_id: str) -> None:
        """Switch the engine to another mode and announce it to the client."""
        await self._engine.set_mode(mode_id)
        self.current_mode_id = mode_id
        await self.buffer.queue_update(mode_update(mode_id))
        logger.info(f"Session {self.session_id}: mode set to {mode_id}")

    async def set_model(self, model_id: str) -> None:
        await self._engine.set_model(model_id)
        self.current_model_id = model_id
        logger.info(f"Session {self.session_id}: model set to {model_id}")

    async def dispose(self) -> None:
        """Drop all session state and close the engine."""
        self.prompt_state.reset()
        self._reset_turn_state()
        await self._engine.close()
        logger.info(f"Session {self.session_id} disposed")

    async def handle_event(self, event: AgentEvent) -> None:
        """Route one engine event into session updates."""
        if isinstance(event, TaskCompleted):
            self._handle_task_completed(event)
            return

        if not self.prompt_state.is_processing():
            logger.debug(f"Session {self.session_id}: ignoring {type(event).__name__} outside a turn")
            return

        if isinstance(event, AgentMessage):
            await self._handle_message(event)
        elif isinstance(event, WaitingForInput):
            await self._handle_waiting_for_input(event)
        elif isinstance(event, CommandExecutionOutput):
            await self.command_stream.handle_execution_output(event.execution_id, event.output)

    def _reset_turn_state(self) -> None:
        self.buffer.reset()
        self.delta_tracker.reset()
        self.command_stream.reset()
        self.content_stream.reset()
        self._processed_permissions.clear()

    async def _handle_message(self, message: AgentMessage) -> None:
        if is_todo_list_message(message):
            plan = create_plan_update_from_message(message, self._priority_config)
            if plan is not None:
                await self.buffer.queue_update(plan)
            return

        if ToolContentStreamManager.is_tool_ask_message(message):
            await self.content_stream.handle_tool_content_streaming(message)
            return

        if CommandStreamManager.is_command_output_message(message) and self.command_stream.pending_command_count:
            await self.command_stream.handle_command_output(message)
            return

        stream_config = DELTA_STREAM_CONFIG.get(message.say or "") if message.type == "say" else None
        if stream_config is not None:
            await self._stream_delta(message, stream_config)
            return

        update = translate_to_update(message, self.workspace_path)
        if update is not None:
            await self.buffer.queue_update(update)

    async def _stream_delta(self, message: AgentMessage, stream_config: DeltaStreamConfig) -> None:
        if message.say == SAY_TEXT and is_user_echo(message.text, self.prompt_state.prompt_text):
            logger.debug(f"Dropping echo of the user prompt (ts={message.ts})")
            return

        first = self.delta_tracker.get_position(message.ts) == 0
        delta = self.delta_tracker.get_delta(message.ts, message.text)
        if not delta:
            return

        if first and stream_config.prefix:
            delta = stream_config.prefix + delta
        if stream_config.update_kind == "thought":
            await self.buffer.queue_update(update_agent_thought(text_block(delta)))
        else:
            await self.buffer.queue_update(update_agent_message(text_block(delta)))

    async def _handle_waiting_for_input(self, event: WaitingForInput) -> None:
        ask = event.ask
        if is_permission_ask(ask):
            await self._handle_permission(event)
        elif ask == ASK_FOLLOWUP:
            logger.info("Answering followup question with an empty response")
            await self._engine.respond("")
        elif ask in (ASK_RESUME_TASK, ASK_API_REQ_FAILED):
            logger.info(f"Auto-approving {ask}")
            await self._engine.approve()
        elif is_completion_ask(ask):
            logger.debug(f"Completion ask {ask}, waiting for task completion")
        else:
            logger.info(f"Auto-approving unknown ask: {ask}")
            await self._engine.approve()

    async def _handle_permission(self, event: WaitingForInput) -> None:
        message = event.message
        key = f"{event.ask}:{message.ts}:{message.text}"
        if key in self._processed_permissions:
            logger.debug(f"Duplicate permission request {event.ask} (ts={message.ts}), approving again")
            await self._engine.approve()
            return
        self._processed_permissions.add(key)

        ctx = self._registry.create_context(
            message,
            event.ask,
            self.workspace_path,
            self._file_resolver,
            self._config.max_read_lines,
        )
        result = await self._registry.handle(ctx)

        await self.buffer.queue_update(result.initial_update)
        if result.pending_command is not None:
            pending = result.pending_command
            self.command_stream.track_command(pending.tool_call_id, pending.command, pending.ts)
        if result.completion_update is not None:
            await self.buffer.queue_update(result.completion_update)

        await self._engine.approve()

    def _handle_task_completed(self, event: TaskCompleted) -> None:
        if not self.prompt_state.is_processing():
            logger.debug(f"Session {self.session_id}: task completed outside a turn")
            return
        self.prompt_state.complete(event.success)

    async def _send_update(self, update: SessionUpdate) -> None:
        try:
            await self._conn.session_update(session_id=self.session_id, update=update)
        except Exception as e:
            logger.warning(f"Session {self.session_id}: failed to send update: {e}")

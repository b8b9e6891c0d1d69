"""Inbound agent event model.

The agent engine reports its activity as a stream of these records. Messages
are keyed by their timestamp and re-sent with growing text while they stream,
so the same ``ts`` is seen many times with ``partial=True`` before a final
copy with ``partial=False``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

# Say types the bridge knows about. Others pass through untouched.
SAY_TEXT = "text"
SAY_REASONING = "reasoning"
SAY_ERROR = "error"
SAY_COMMAND_OUTPUT = "command_output"
SAY_COMPLETION_RESULT = "completion_result"
SAY_USER_EDIT_TODOS = "user_edit_todos"

# Ask types.
ASK_TOOL = "tool"
ASK_COMMAND = "command"
ASK_FOLLOWUP = "followup"
ASK_RESUME_TASK = "resume_task"
ASK_API_REQ_FAILED = "api_req_failed"


@dataclass
class AgentMessage:
    """One chat message emitted by the agent.

    Attributes:
        ts: Message timestamp; doubles as the stable stream id.
        type: ``"say"`` for output, ``"ask"`` for requests needing a response.
        say: Say subtype when ``type == "say"``.
        ask: Ask subtype when ``type == "ask"``.
        text: Accumulated text so far (JSON for tool asks).
        partial: True while the message is still streaming.
    """

    ts: int
    type: Literal["say", "ask"]
    say: str | None = None
    ask: str | None = None
    text: str = ""
    partial: bool = False

    @classmethod
    def say_message(cls, ts: int, say: str, text: str, partial: bool = False) -> AgentMessage:
        return cls(ts=ts, type="say", say=say, text=text, partial=partial)

    @classmethod
    def ask_message(cls, ts: int, ask: str, text: str, partial: bool = False) -> AgentMessage:
        return cls(ts=ts, type="ask", ask=ask, text=text, partial=partial)


@dataclass
class WaitingForInput:
    """The agent is blocked on an ask and needs an answer to continue."""

    ask: str
    message: AgentMessage


@dataclass
class CommandExecutionOutput:
    """A chunk of live shell output.

    ``output`` is the accumulated output for ``execution_id`` so far.
    """

    execution_id: str
    output: str


@dataclass
class TaskCompleted:
    """The agent finished the current task."""

    success: bool


AgentEvent = AgentMessage | WaitingForInput | CommandExecutionOutput | TaskCompleted

"""Translation of agent todo lists into ACP plan updates."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Literal

from acp import plan_entry, update_plan
from acp.schema import AgentPlanUpdate, PlanEntry

from relay.events import ASK_TOOL, SAY_USER_EDIT_TODOS, AgentMessage

logger = logging.getLogger(__name__)

Priority = Literal["high", "medium", "low"]
TodoStatus = Literal["pending", "in_progress", "completed"]

TODO_TOOL_NAME = "updateTodoList"
_TODO_STATUSES = ("pending", "in_progress", "completed")


@dataclass
class TodoItem:
    """One item of the agent's todo list."""

    content: str
    status: TodoStatus = "pending"
    id: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TodoItem | None:
        """Build an item from payload JSON, or None if it has no content."""
        content = data.get("content")
        if not isinstance(content, str) or not content:
            return None
        status = data.get("status")
        item_id = data.get("id")
        return cls(
            content=content,
            status=status if status in _TODO_STATUSES else "pending",
            id=str(item_id) if item_id is not None else None,
        )


@dataclass
class PriorityConfig:
    """How plan entry priorities are derived.

    Attributes:
        default_priority: Priority when no other rule applies.
        prioritize_in_progress: In-progress items are always high. Takes
            precedence over ordering.
        prioritize_by_order: The first ``high_priority_count`` items are
            high, the rest of the first half medium, the remainder low.
        high_priority_count: Leading items marked high when ordering.
    """

    default_priority: Priority = "medium"
    prioritize_in_progress: bool = True
    prioritize_by_order: bool = False
    high_priority_count: int = 3


def determine_priority(item: TodoItem, index: int, total: int, config: PriorityConfig) -> Priority:
    if config.prioritize_in_progress and item.status == "in_progress":
        return "high"

    if config.prioritize_by_order:
        if index < config.high_priority_count:
            return "high"
        if index < total // 2:
            return "medium"
        return "low"

    return config.default_priority


def todo_item_to_plan_entry(
    item: TodoItem, index: int, total: int, config: PriorityConfig | None = None
) -> PlanEntry:
    priority = determine_priority(item, index, total, config or PriorityConfig())
    return plan_entry(item.content, priority=priority, status=item.status)


def todo_list_to_plan_update(
    todos: list[TodoItem], config: PriorityConfig | None = None
) -> AgentPlanUpdate:
    """Convert a todo list to a plan update.

    An empty list gives a plan with no entries. Callers that must not send
    empty plans check for that themselves.
    """
    config = config or PriorityConfig()
    total = len(todos)
    return update_plan(
        [todo_item_to_plan_entry(item, index, total, config) for index, item in enumerate(todos)]
    )


def parse_todo_list_from_message(text: str) -> list[TodoItem] | None:
    """Parse an ``updateTodoList`` tool payload.

    Returns:
        The todo items, or None if ``text`` is not a todo list payload.
    """
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        return None

    if not isinstance(parsed, dict) or parsed.get("tool") != TODO_TOOL_NAME:
        return None
    raw_todos = parsed.get("todos")
    if not isinstance(raw_todos, list):
        return None

    items = [TodoItem.from_dict(raw) for raw in raw_todos if isinstance(raw, dict)]
    return [item for item in items if item is not None]


def extract_todo_list_from_message(message: AgentMessage) -> list[TodoItem] | None:
    """Todo items carried by a tool ask or a ``user_edit_todos`` message."""
    if not message.text:
        return None
    if message.type == "ask" and message.ask == ASK_TOOL:
        return parse_todo_list_from_message(message.text)
    if message.type == "say" and message.say == SAY_USER_EDIT_TODOS:
        return parse_todo_list_from_message(message.text)
    return None


def is_todo_list_message(message: AgentMessage) -> bool:
    return extract_todo_list_from_message(message) is not None


def create_plan_update_from_message(
    message: AgentMessage, config: PriorityConfig | None = None
) -> AgentPlanUpdate | None:
    """Plan update for a todo message, or None if it has no todos."""
    todos = extract_todo_list_from_message(message)
    if not todos:
        return None
    return todo_list_to_plan_update(todos, config)

"""Prompt lifecycle state machine.

A session runs one prompt turn at a time. The turn starts in ``processing``
and leaves it exactly once, by normal completion or by cancellation, which
resolves the future handed out by :meth:`PromptStateMachine.start_prompt`.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Literal

logger = logging.getLogger(__name__)

PromptState = Literal["idle", "processing"]
StopReason = Literal["end_turn", "max_tokens", "max_turn_requests", "refusal", "cancelled"]


class InvalidPromptStateError(RuntimeError):
    """A prompt lifecycle call was made in a state that does not allow it."""


@dataclass(frozen=True)
class PromptCompletion:
    """Outcome of one prompt turn."""

    stop_reason: StopReason


class CancellationToken:
    """Cooperative cancellation signal owned by one prompt turn.

    Callbacks registered before cancellation run synchronously, in
    registration order, when :meth:`cancel` is first called. Registering on an
    already cancelled token runs the callback immediately.
    """

    def __init__(self) -> None:
        self._cancelled = False
        self._callbacks: list[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def add_callback(self, callback: Callable[[], None]) -> None:
        if self._cancelled:
            callback()
            return
        self._callbacks.append(callback)

    def remove_callback(self, callback: Callable[[], None]) -> None:
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback()


class PromptStateMachine:
    """Single-flight controller for prompt turns.

    ``idle -> processing`` on :meth:`start_prompt`; ``processing -> idle`` on
    :meth:`complete`, :meth:`cancel` or :meth:`transition_to_complete`. Only
    the first transition out of ``processing`` has any effect.
    """

    def __init__(self) -> None:
        self._state: PromptState = "idle"
        self._token: CancellationToken | None = None
        self._prompt_text: str | None = None
        self._completion: asyncio.Future[PromptCompletion] | None = None
        self._last_stop_reason: StopReason | None = None

    @property
    def state(self) -> PromptState:
        return self._state

    @property
    def prompt_text(self) -> str | None:
        """Text of the active prompt, used to spot the agent echoing it."""
        return self._prompt_text

    @property
    def cancellation_token(self) -> CancellationToken | None:
        return self._token

    @property
    def last_stop_reason(self) -> StopReason | None:
        """Stop reason of the most recently finished turn."""
        return self._last_stop_reason

    def is_processing(self) -> bool:
        return self._state == "processing"

    def can_start_prompt(self) -> bool:
        return self._state == "idle"

    def start_prompt(self, text: str) -> asyncio.Future[PromptCompletion]:
        """Begin a new turn, cancelling any turn still in progress.

        Must be called from a running event loop.

        Args:
            text: The user's prompt text.

        Returns:
            Future resolved once with the turn's :class:`PromptCompletion`.
        """
        if self._state == "processing":
            logger.info("Prompt started while another is processing, cancelling previous turn")
            self.cancel()

        loop = asyncio.get_running_loop()
        token = CancellationToken()
        token.add_callback(lambda: self.transition_to_complete("cancelled"))

        self._token = token
        self._completion = loop.create_future()
        self._prompt_text = text
        self._state = "processing"
        logger.debug(f"Prompt turn started ({len(text)} chars)")
        return self._completion

    def complete(self, success: bool) -> StopReason | None:
        """Finish the active turn.

        Args:
            success: Whether the agent finished normally.

        Returns:
            ``end_turn`` on success, ``refusal`` on failure, or None when the
            turn had already ended (a completion racing a cancellation).

        Raises:
            InvalidPromptStateError: No turn has been started since the last
                reset.
        """
        if self._state != "processing":
            if self._last_stop_reason is None:
                raise InvalidPromptStateError("complete() called with no prompt turn started")
            logger.debug(f"Ignoring completion, turn already ended with {self._last_stop_reason}")
            return None

        stop_reason: StopReason = "end_turn" if success else "refusal"
        self.transition_to_complete(stop_reason)
        return stop_reason

    def cancel(self) -> None:
        """Cancel the active turn. No-op when idle."""
        if self._state != "processing" or self._token is None:
            return
        logger.info("Cancelling prompt turn")
        self._token.cancel()

    def transition_to_complete(self, stop_reason: StopReason) -> None:
        """Leave ``processing`` with ``stop_reason``. Ignored when idle."""
        if self._state != "processing":
            logger.debug(f"Ignoring transition to {stop_reason}, no turn in progress")
            return

        completion = self._completion
        self._state = "idle"
        self._token = None
        self._prompt_text = None
        self._completion = None
        self._last_stop_reason = stop_reason
        logger.info(f"Prompt turn completed: {stop_reason}")

        if completion is not None and not completion.done():
            completion.set_result(PromptCompletion(stop_reason=stop_reason))

    def reset(self) -> None:
        """Force ``idle`` and drop all turn state.

        A pending turn future is cancelled rather than resolved.
        """
        completion = self._completion
        self._state = "idle"
        self._token = None
        self._prompt_text = None
        self._completion = None
        self._last_stop_reason = None
        if completion is not None and not completion.done():
            completion.cancel()

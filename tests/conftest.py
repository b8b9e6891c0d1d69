"""Shared fixtures for Relay tests."""

from unittest.mock import AsyncMock, MagicMock

import pytest


class FakeTimer:
    """Handle returned by FakeScheduler."""

    def __init__(self, due: float, callback):
        self.due = due
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeScheduler:
    """Manual clock: timers only fire when a test advances time."""

    def __init__(self):
        self.now = 0.0
        self.timers: list[FakeTimer] = []

    def call_later(self, delay: float, callback) -> FakeTimer:
        timer = FakeTimer(self.now + delay, callback)
        self.timers.append(timer)
        return timer

    @property
    def armed(self) -> list[FakeTimer]:
        return [t for t in self.timers if not t.cancelled]

    async def advance(self, seconds: float) -> None:
        """Move the clock forward, running every timer that falls due."""
        self.now += seconds
        due = [t for t in self.armed if t.due <= self.now]
        for timer in sorted(due, key=lambda t: t.due):
            if timer.cancelled:
                continue
            timer.cancelled = True
            await timer.callback()


@pytest.fixture
def scheduler():
    """Create a manual scheduler."""
    return FakeScheduler()


@pytest.fixture
def mock_conn():
    """Create a mock ACP connection."""
    conn = MagicMock()
    conn.session_update = AsyncMock()
    return conn


def sent_updates(conn) -> list:
    """Updates passed to conn.session_update, in order."""
    return [c.kwargs["update"] for c in conn.session_update.call_args_list]


def sent_text(conn) -> str:
    """Concatenated text of every text chunk sent."""
    return "".join(
        u.content.text for u in sent_updates(conn) if getattr(u, "session_update", "").endswith("_chunk")
    )

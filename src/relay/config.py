"""Runtime configuration for Relay sessions."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

DEFAULT_MIN_BUFFER_SIZE = 200
DEFAULT_FLUSH_DELAY_MS = 500
DEFAULT_MAX_READ_LINES = 100


@dataclass
class RelayConfig:
    """Settings shared by the ACP server and every session it creates.

    Attributes:
        min_buffer_size: Buffered text length (message plus thought) that
            forces an immediate flush.
        flush_delay_ms: Delay from the first unflushed character to the
            timed flush.
        max_read_lines: Lines of file content shown for read tools before
            truncation.
        default_priority: Plan entry priority when no other rule applies.
        prioritize_in_progress: Give in-progress todo items high priority.
        prioritize_by_order: Derive priority from todo position.
        high_priority_count: Leading todo items marked high when ordering
            by position.
        model: Model passed to the Claude agent engine (SDK default if None).
        use_client_fs: Resolve file reads through the editor instead of
            local disk when the client advertises support.
    """

    min_buffer_size: int = DEFAULT_MIN_BUFFER_SIZE
    flush_delay_ms: int = DEFAULT_FLUSH_DELAY_MS
    max_read_lines: int = DEFAULT_MAX_READ_LINES
    default_priority: Literal["high", "medium", "low"] = "medium"
    prioritize_in_progress: bool = True
    prioritize_by_order: bool = False
    high_priority_count: int = 3
    model: str | None = None
    use_client_fs: bool = True

    def __post_init__(self) -> None:
        if self.min_buffer_size < 1:
            raise ValueError(f"min_buffer_size must be positive, got {self.min_buffer_size}")
        if self.flush_delay_ms < 0:
            raise ValueError(f"flush_delay_ms must not be negative, got {self.flush_delay_ms}")
        if self.max_read_lines < 1:
            raise ValueError(f"max_read_lines must be positive, got {self.max_read_lines}")

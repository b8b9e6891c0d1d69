"""Per-stream delta tracking for accumulating text snapshots."""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)

StreamId = str | int


class DeltaTracker:
    """Turns "full text so far" snapshots into incremental deltas.

    The agent re-sends a streaming message with its whole accumulated text
    each time it grows. The tracker remembers what was already emitted per
    stream id and hands back only the unseen suffix.

    Slicing is by code point, so a delta never splits a character.

    If a snapshot does not extend what was emitted for its id (the message
    was replaced or shrank), the tracker restarts that stream: the whole
    snapshot is returned as the delta and becomes the new baseline.
    """

    def __init__(self) -> None:
        self._emitted: dict[StreamId, str] = {}

    def get_delta(self, stream_id: StreamId, full_text: str) -> str:
        """Return the new suffix of ``full_text`` and advance the cursor.

        The cursor only moves when the delta is non-empty, so repeating a
        snapshot is a no-op and a longer snapshot still yields its full
        unseen suffix.
        """
        delta = self._compute(stream_id, full_text, warn=True)
        if delta:
            self._emitted[stream_id] = full_text
        return delta

    def peek_delta(self, stream_id: StreamId, full_text: str) -> str:
        """Return what :meth:`get_delta` would return, without advancing."""
        return self._compute(stream_id, full_text, warn=False)

    def get_position(self, stream_id: StreamId) -> int:
        """Number of characters already emitted for ``stream_id``."""
        return len(self._emitted.get(stream_id, ""))

    def reset_id(self, stream_id: StreamId) -> None:
        """Forget the cursor for one stream."""
        self._emitted.pop(stream_id, None)

    def reset(self) -> None:
        """Forget all cursors."""
        self._emitted.clear()

    def _compute(self, stream_id: StreamId, full_text: str, *, warn: bool) -> str:
        emitted = self._emitted.get(stream_id, "")
        if full_text.startswith(emitted):
            return full_text[len(emitted):]
        if not full_text:
            return ""
        if warn:
            logger.warning(
                f"Stream {stream_id!r} diverged from emitted text "
                f"({len(emitted)} chars emitted, {len(full_text)} received), restarting"
            )
        return full_text

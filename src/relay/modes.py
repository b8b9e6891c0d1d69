"""Session modes advertised over ACP.

Each mode maps onto a Claude Agent SDK permission mode.
"""

from __future__ import annotations

from acp.schema import CurrentModeUpdate, SessionMode, SessionModeState

DEFAULT_MODE_ID = "default"


def available_modes() -> list[dict[str, str]]:
    return [
        {"id": "default", "name": "Default", "description": "Standard behavior"},
        {"id": "acceptEdits", "name": "Accept Edits", "description": "Apply file edits without asking"},
        {"id": "plan", "name": "Plan", "description": "Plan only, no changes to files"},
        {
            "id": "bypassPermissions",
            "name": "Bypass Permissions",
            "description": "Run every tool without permission checks",
        },
    ]


def is_known_mode(mode_id: str) -> bool:
    return any(m["id"] == mode_id for m in available_modes())


def build_mode_state(current_mode: str) -> SessionModeState:
    """Describe the available modes with ``current_mode`` selected."""
    return SessionModeState(
        available_modes=[
            SessionMode(id=m["id"], name=m["name"], description=m["description"]) for m in available_modes()
        ],
        current_mode_id=current_mode,
    )


def mode_update(mode_id: str) -> CurrentModeUpdate:
    return CurrentModeUpdate(session_update="current_mode_update", current_mode_id=mode_id)

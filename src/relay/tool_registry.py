"""Tool name categories and ACP tool kind inference.

Agents spell the same tool several ways (``write_to_file``, ``writeToFile``,
``write-to-file``), so every lookup goes through :func:`normalize_tool_name`.
"""

from __future__ import annotations

from typing import Literal

ToolKind = Literal[
    "read",
    "edit",
    "delete",
    "move",
    "search",
    "execute",
    "think",
    "fetch",
    "switch_mode",
    "other",
]

TOOL_CATEGORIES: dict[str, frozenset[str]] = {
    "edit": frozenset(
        {
            "newfilecreated",
            "editedexistingfile",
            "writetofile",
            "applydiff",
            "applieddiff",
            "createfile",
            "modifyfile",
        }
    ),
    "read": frozenset({"readfile"}),
    "search": frozenset({"searchfiles", "codebasesearch", "grep", "ripgrep"}),
    "list": frozenset({"listfiles", "listfilestoplevel", "listfilesrecursive"}),
    "execute": frozenset({"executecommand", "runcommand"}),
    "delete": frozenset({"deletefile", "removefile"}),
    "move": frozenset({"movefile", "renamefile"}),
    "think": frozenset({"think", "reason", "plan", "analyze"}),
    "fetch": frozenset({"fetch", "httpget", "httppost", "urlfetch", "webrequest"}),
    "switch_mode": frozenset({"switchmode", "setmode"}),
    # Tools whose payload carries whole-file content worth streaming live.
    "file_write": frozenset(
        {
            "newfilecreated",
            "writetofile",
            "createfile",
            "editedexistingfile",
            "applydiff",
            "modifyfile",
        }
    ),
}

# Checked in order; the first category containing the tool decides its kind.
_KIND_ORDER: tuple[tuple[str, ToolKind], ...] = (
    ("switch_mode", "switch_mode"),
    ("think", "think"),
    ("search", "search"),
    ("delete", "delete"),
    ("move", "move"),
    ("edit", "edit"),
    ("fetch", "fetch"),
    ("read", "read"),
    ("list", "read"),
    ("execute", "execute"),
)


def normalize_tool_name(name: str) -> str:
    """Lowercase and strip ``-``/``_`` so spelling variants compare equal."""
    return name.lower().replace("-", "").replace("_", "")


def is_tool_in_category(name: str, category: str) -> bool:
    """Check whether ``name`` belongs to a category in :data:`TOOL_CATEGORIES`.

    Raises:
        KeyError: If ``category`` is unknown.
    """
    return normalize_tool_name(name) in TOOL_CATEGORIES[category]


def is_edit_tool(name: str) -> bool:
    return is_tool_in_category(name, "edit")


def is_read_tool(name: str) -> bool:
    return is_tool_in_category(name, "read")


def is_search_tool(name: str) -> bool:
    return is_tool_in_category(name, "search")


def is_list_files_tool(name: str) -> bool:
    return is_tool_in_category(name, "list")


def is_file_write_tool(name: str) -> bool:
    return is_tool_in_category(name, "file_write")


def map_tool_to_kind(name: str) -> ToolKind:
    """Infer the ACP tool kind for a tool name, ``"other"`` if unrecognized."""
    normalized = normalize_tool_name(name)
    for category, kind in _KIND_ORDER:
        if normalized in TOOL_CATEGORIES[category]:
            return kind
    return "other"

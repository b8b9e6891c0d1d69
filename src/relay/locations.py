"""File locations touched by a tool call."""

from __future__ import annotations

import re
from typing import Any

from acp.schema import ToolCallLocation

from relay.content import resolve_file_path_unsafe
from relay.tool_registry import is_list_files_tool, is_search_tool

_PATH_PARAMS = ("path", "file", "filePath", "file_path")
_DIR_PARAMS = ("directory", "dir")

# Markdown-style file headers in search output, e.g. "# src/app.py".
_FILE_HEADER = re.compile(r"^#+\s+(.+?\.[a-zA-Z0-9]+)\s*$", re.MULTILINE)


def extract_locations(params: dict[str, Any], workspace_path: str | None = None) -> list[ToolCallLocation]:
    """Collect the paths a tool call refers to.

    Search tools report the files found in their output. List tools report
    the listed directory. Anything else reports every path-like parameter.

    Args:
        params: Parsed tool payload, including its ``tool`` name.
        workspace_path: Root for resolving relative paths.

    Returns:
        Locations in parameter order.
    """
    tool_name = params.get("tool")
    tool_name = tool_name if isinstance(tool_name, str) else ""

    if is_search_tool(tool_name):
        content = params.get("content")
        if isinstance(content, str) and content:
            return extract_file_paths_from_search_results(content, workspace_path)
        return []

    if is_list_files_tool(tool_name):
        dir_path = params.get("path")
        if isinstance(dir_path, str) and dir_path:
            return [ToolCallLocation(path=resolve_file_path_unsafe(dir_path, workspace_path))]
        return []

    paths: list[str] = []
    for key in (*_PATH_PARAMS, *_DIR_PARAMS):
        value = params.get(key)
        if isinstance(value, str):
            paths.append(value)

    extra = params.get("paths")
    if isinstance(extra, list):
        paths.extend(p for p in extra if isinstance(p, str))

    return [ToolCallLocation(path=resolve_file_path_unsafe(p, workspace_path)) for p in paths]


def extract_file_paths_from_search_results(
    content: str, workspace_path: str | None = None
) -> list[ToolCallLocation]:
    """Pull file paths out of search result headers, first occurrence wins.

    Header-shaped lines with neither a ``/`` nor a ``.`` are plain markdown
    headings, not files, and are skipped.
    """
    seen: set[str] = set()
    locations: list[ToolCallLocation] = []
    for match in _FILE_HEADER.finditer(content):
        file_path = match.group(1).strip()
        if file_path in seen or ("/" not in file_path and "." not in file_path):
            continue
        seen.add(file_path)
        locations.append(ToolCallLocation(path=resolve_file_path_unsafe(file_path, workspace_path)))
    return locations

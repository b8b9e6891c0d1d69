"""Content extraction, formatting and file resolution for tool results."""

from __future__ import annotations

import asyncio
import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol

from relay.config import DEFAULT_MAX_READ_LINES

if TYPE_CHECKING:
    from acp.interfaces import Client

logger = logging.getLogger(__name__)

# Parameter fields that may carry a tool's textual result, in lookup order.
CONTENT_FIELDS = ("content", "text", "result", "output", "fileContent", "data")

_RESULT_COUNT = re.compile(r"Found (\d+) results?")
_SEARCH_FILE_HEADER = re.compile(r"^# (.+)$", re.MULTILINE)
_FILE_EXTENSION = re.compile(r"\.[a-zA-Z0-9]+$")


class PathTraversalError(ValueError):
    """A tool path points outside the session workspace."""


@dataclass(frozen=True)
class FileReadResult:
    """Outcome of a file read: text on success, a message on failure."""

    ok: bool
    value: str | None = None
    error: str | None = None

    @classmethod
    def success(cls, value: str) -> FileReadResult:
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: str) -> FileReadResult:
        return cls(ok=False, error=error)

    @property
    def text(self) -> str:
        """File text, or the error message for failed reads."""
        return (self.value if self.ok else self.error) or ""


class FileResolver(Protocol):
    """Reads file text for tool results."""

    async def read_text(self, path: str) -> FileReadResult: ...


class LocalFileResolver:
    """Reads files from local disk."""

    async def read_text(self, path: str) -> FileReadResult:
        try:
            text = await asyncio.to_thread(Path(path).read_text, encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"Failed to read file {path}: {e}")
            return FileReadResult.failure(f"Failed to read file {path}: {e}")
        return FileReadResult.success(text)


class ClientFileResolver:
    """Reads files through the editor's ``fs/read_text_file`` method.

    The editor sees unsaved buffer contents that local disk does not.
    """

    def __init__(self, conn: Client, session_id: str) -> None:
        self._conn = conn
        self._session_id = session_id

    async def read_text(self, path: str) -> FileReadResult:
        try:
            response = await self._conn.read_text_file(path=path, session_id=self._session_id)
        except Exception as e:
            logger.warning(f"Client failed to read file {path}: {e}")
            return FileReadResult.failure(f"Failed to read file {path}: {e}")
        return FileReadResult.success(response.content)


def resolve_file_path(file_path: str, workspace_path: str | None = None) -> str:
    """Normalize a tool path and confine it to the workspace.

    Relative paths resolve against ``workspace_path``. Without a workspace the
    path is only normalized.

    Raises:
        PathTraversalError: If the path lands outside the workspace.
    """
    normalized = os.path.normpath(file_path)
    if not workspace_path:
        return normalized

    workspace = os.path.normpath(workspace_path)
    if os.path.isabs(normalized):
        resolved = normalized
    else:
        resolved = os.path.normpath(os.path.join(workspace, normalized))

    if resolved != workspace and not resolved.startswith(workspace.rstrip(os.sep) + os.sep):
        raise PathTraversalError(
            f"Path traversal detected: {file_path} is outside workspace {workspace_path}"
        )
    return resolved


def resolve_file_path_unsafe(file_path: str, workspace_path: str | None = None) -> str:
    """Like :func:`resolve_file_path`, but returns ``file_path`` on traversal."""
    try:
        return resolve_file_path(file_path, workspace_path)
    except PathTraversalError:
        return file_path


async def read_file_content(
    params: dict[str, Any],
    workspace_path: str | None,
    resolver: FileResolver,
) -> FileReadResult:
    """Read the file a read tool refers to.

    Read tools put the path in ``content`` (falling back to ``path``).

    Args:
        params: Parsed tool parameters.
        workspace_path: Session workspace root.
        resolver: Where to read the file from.

    Returns:
        The file text, or a failure carrying a readable message.
    """
    raw_path = params.get("content") or params.get("path")
    if not isinstance(raw_path, str) or not raw_path:
        return FileReadResult.failure("readFile tool has no path")

    try:
        path = resolve_file_path(raw_path, workspace_path)
    except PathTraversalError as e:
        logger.warning(str(e))
        return FileReadResult.failure(str(e))

    return await resolver.read_text(path)


def format_search_results(content: str) -> str:
    """Summarize raw search output as a sorted, deduplicated file list.

    Files are taken from ``# path`` header lines. Without any, the first line
    of the output is returned.
    """
    count_match = _RESULT_COUNT.search(content)
    result_count = int(count_match.group(1)) if count_match else None

    files = sorted(set(_SEARCH_FILE_HEADER.findall(content)), key=str.casefold)
    if not files:
        return content.split("\n")[0] or content

    file_word = "file" if len(files) == 1 else "files"
    if result_count is not None:
        result_word = "result" if result_count == 1 else "results"
        summary = f"Found {result_count} {result_word} in {len(files)} {file_word}"
    else:
        summary = f"Found matches in {len(files)} {file_word}"

    file_list = "\n".join(f"- {f}" for f in files)
    return f"{summary}\n\n{file_list}"


def format_read_content(content: str, max_lines: int = DEFAULT_MAX_READ_LINES) -> str:
    """Truncate file content to ``max_lines`` lines with a remainder note."""
    lines = content.split("\n")
    if len(lines) <= max_lines:
        return content
    truncated = "\n".join(lines[:max_lines])
    return f"{truncated}\n\n... ({len(lines) - max_lines} more lines)"


def wrap_in_code_block(content: str, language: str | None = None) -> str:
    fence = f"```{language}" if language else "```"
    return f"{fence}\n{content}\n```"


def extract_content_from_params(params: dict[str, Any]) -> str | None:
    """First non-empty string among :data:`CONTENT_FIELDS`."""
    for field in CONTENT_FIELDS:
        value = params.get(field)
        if isinstance(value, str) and value:
            return value
    return None


def is_user_echo(text: str, prompt_text: str | None) -> bool:
    """Check whether agent text just repeats the user's prompt.

    Comparison ignores case and surrounding whitespace. Containment either
    way counts as an echo once the contained text is over 10 characters.
    """
    if not prompt_text:
        return False

    prompt = prompt_text.strip().lower()
    candidate = text.strip().lower()

    if candidate == prompt:
        return True
    if len(candidate) > 10 and candidate in prompt:
        return True
    if len(prompt) > 10 and prompt in candidate:
        return True
    return False


def has_valid_file_path(file_path: str) -> bool:
    """True when the path ends in a file extension."""
    return bool(_FILE_EXTENSION.search(file_path))

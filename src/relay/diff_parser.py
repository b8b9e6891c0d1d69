"""Unified diff parsing into before/after text."""

from __future__ import annotations

from dataclasses import dataclass

_HEADER_PREFIXES = ("===", "---", "+++", "@@")


@dataclass(frozen=True)
class ParsedDiff:
    """Reconstructed file text on each side of a diff.

    ``old_text`` is None for a new file, which is distinct from an existing
    empty file.
    """

    old_text: str | None
    new_text: str


def parse_unified_diff(diff: str) -> ParsedDiff | None:
    """Rebuild old and new text from a unified diff.

    Input with no diff markers at all is taken to be the new file's raw
    content. A ``--- /dev/null`` header marks a new file. Context lines are
    copied to both sides; hunk bodies start after an ``@@`` or ``+++``
    header.

    Args:
        diff: Diff text, or raw file content.

    Returns:
        The parsed diff, or None for empty input.
    """
    if not diff:
        return None

    if "@@" not in diff and "---" not in diff and "+++" not in diff:
        return ParsedDiff(old_text=None, new_text=diff)

    old_lines: list[str] = []
    new_lines: list[str] = []
    in_hunk = False
    is_new_file = False

    for line in diff.split("\n"):
        if line.startswith("--- /dev/null"):
            is_new_file = True
            continue

        if line.startswith(_HEADER_PREFIXES):
            if line.startswith(("@@", "+++")):
                in_hunk = True
            continue

        if not in_hunk:
            continue

        if line.startswith("-"):
            old_lines.append(line[1:])
        elif line.startswith("+"):
            new_lines.append(line[1:])
        elif line.startswith(" ") or line == "":
            context = line[1:] if line else line
            old_lines.append(context)
            new_lines.append(context)

    old_text = "\n".join(old_lines)
    return ParsedDiff(
        old_text=None if is_new_file or not old_text else old_text,
        new_text="\n".join(new_lines),
    )

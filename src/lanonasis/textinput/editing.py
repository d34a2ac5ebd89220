"""Pure buffer edits: (lines, cursor) -> (lines, cursor).

Every function returns a new tuple of lines and a new Cursor and keeps the
cursor invariant: ``0 <= cursor.line < len(lines)`` and
``0 <= cursor.column <= len(lines[cursor.line])``.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence

from lanonasis.textinput.base import Cursor
from lanonasis.textinput.keys import KeyKind

Lines = tuple[str, ...]
Edit = Callable[[Sequence[str], Cursor], tuple[Lines, Cursor]]


def insert_text(lines: Sequence[str], cursor: Cursor, text: str) -> tuple[Lines, Cursor]:
    current = lines[cursor.line]
    updated = current[: cursor.column] + text + current[cursor.column :]
    new_lines = (*lines[: cursor.line], updated, *lines[cursor.line + 1 :])
    return new_lines, Cursor(cursor.line, cursor.column + len(text))


def insert_newline(
    lines: Sequence[str], cursor: Cursor, max_lines: int | None = None
) -> tuple[Lines, Cursor]:
    """Split the current line at the cursor. No-op once max_lines is reached."""
    if max_lines is not None and len(lines) >= max_lines:
        return tuple(lines), cursor
    current = lines[cursor.line]
    before, after = current[: cursor.column], current[cursor.column :]
    new_lines = (*lines[: cursor.line], before, after, *lines[cursor.line + 1 :])
    return new_lines, Cursor(cursor.line + 1, 0)


def backspace(lines: Sequence[str], cursor: Cursor) -> tuple[Lines, Cursor]:
    if cursor.column > 0:
        current = lines[cursor.line]
        updated = current[: cursor.column - 1] + current[cursor.column :]
        new_lines = (*lines[: cursor.line], updated, *lines[cursor.line + 1 :])
        return new_lines, Cursor(cursor.line, cursor.column - 1)
    if cursor.line > 0:
        # Merge with previous line
        previous = lines[cursor.line - 1]
        merged = previous + lines[cursor.line]
        new_lines = (*lines[: cursor.line - 1], merged, *lines[cursor.line + 1 :])
        return new_lines, Cursor(cursor.line - 1, len(previous))
    return tuple(lines), cursor


def delete_forward(lines: Sequence[str], cursor: Cursor) -> tuple[Lines, Cursor]:
    current = lines[cursor.line]
    if cursor.column < len(current):
        updated = current[: cursor.column] + current[cursor.column + 1 :]
        return (*lines[: cursor.line], updated, *lines[cursor.line + 1 :]), cursor
    if cursor.line < len(lines) - 1:
        # Pull the next line up
        merged = current + lines[cursor.line + 1]
        return (*lines[: cursor.line], merged, *lines[cursor.line + 2 :]), cursor
    return tuple(lines), cursor


def move_left(lines: Sequence[str], cursor: Cursor) -> tuple[Lines, Cursor]:
    if cursor.column > 0:
        return tuple(lines), Cursor(cursor.line, cursor.column - 1)
    if cursor.line > 0:
        return tuple(lines), Cursor(cursor.line - 1, len(lines[cursor.line - 1]))
    return tuple(lines), cursor


def move_right(lines: Sequence[str], cursor: Cursor) -> tuple[Lines, Cursor]:
    if cursor.column < len(lines[cursor.line]):
        return tuple(lines), Cursor(cursor.line, cursor.column + 1)
    if cursor.line < len(lines) - 1:
        return tuple(lines), Cursor(cursor.line + 1, 0)
    return tuple(lines), cursor


def move_up(lines: Sequence[str], cursor: Cursor) -> tuple[Lines, Cursor]:
    if cursor.line == 0:
        return tuple(lines), cursor
    line = cursor.line - 1
    return tuple(lines), Cursor(line, min(cursor.column, len(lines[line])))


def move_down(lines: Sequence[str], cursor: Cursor) -> tuple[Lines, Cursor]:
    if cursor.line >= len(lines) - 1:
        return tuple(lines), cursor
    line = cursor.line + 1
    return tuple(lines), Cursor(line, min(cursor.column, len(lines[line])))


def move_home(lines: Sequence[str], cursor: Cursor) -> tuple[Lines, Cursor]:
    return tuple(lines), Cursor(cursor.line, 0)


def move_end(lines: Sequence[str], cursor: Cursor) -> tuple[Lines, Cursor]:
    return tuple(lines), Cursor(cursor.line, len(lines[cursor.line]))


def kill_to_line_start(lines: Sequence[str], cursor: Cursor) -> tuple[Lines, Cursor]:
    current = lines[cursor.line]
    new_lines = (*lines[: cursor.line], current[cursor.column :], *lines[cursor.line + 1 :])
    return new_lines, Cursor(cursor.line, 0)


# Navigation/deletion keys with no extra arguments
KEY_EDITS: dict[KeyKind, Edit] = {
    KeyKind.BACKSPACE: backspace,
    KeyKind.DELETE: delete_forward,
    KeyKind.LEFT: move_left,
    KeyKind.RIGHT: move_right,
    KeyKind.UP: move_up,
    KeyKind.DOWN: move_down,
    KeyKind.HOME: move_home,
    KeyKind.END: move_end,
}

# Emacs-style shortcuts, only consulted when the chord is not submit/cancel
CTRL_EDITS: dict[str, Edit] = {
    "a": move_home,
    "e": move_end,
    "u": kill_to_line_start,
}

"""Live redraw of the editor frame using ANSI cursor movement.

Each redraw returns to the first row of the previous frame, clears to the end
of the screen and draws again, so the frame never grows the scrollback.
"""

from __future__ import annotations

from dataclasses import dataclass

from lanonasis.textinput.base import InputSession, Terminal
from lanonasis.textinput.keys import describe_chord

_RULE_WIDTH = 50
_DIM = "\x1b[2m"
_RESET = "\x1b[0m"
_MARKER = "→"
_HIDE_CURSOR = "\x1b[?25l"
_SHOW_CURSOR = "\x1b[?25h"


@dataclass
class Frame:
    lines: list[str]
    cursor_row: int
    cursor_col: int


def help_text(session: InputSession) -> str:
    opts = session.options
    submit = "/".join(describe_chord(k) for k in opts.submit_keys)
    cancel = "/".join(describe_chord(k) for k in opts.cancel_keys)
    return f"{submit} to finish, {cancel} to cancel, Enter for new line"


def build_frame(session: InputSession, columns: int, rows: int) -> Frame:
    """Lay out prompt, visible content window, rules and help text."""
    width = max(columns - 1, 10)
    # prompt + rule + rule + help + one spare row
    available = max(rows - 5, 1)

    content = session.content
    cursor = session.cursor
    start = 0
    if len(content) > available:
        start = max(0, cursor.line - available + 1)
    visible = range(start, min(len(content), start + available))

    gutter = 5 if session.options.show_line_numbers else 2
    text_width = max(width - gutter, 1)

    lines = [session.prompt[:width], "─" * min(_RULE_WIDTH, width)]
    cursor_row = cursor_col = 0
    empty = len(content) == 1 and not content[0]

    for idx in visible:
        active = idx == cursor.line
        marker = _MARKER if active else " "
        prefix = f"{idx + 1:>3}{marker} " if session.options.show_line_numbers else f"{marker} "
        display = content[idx].replace("\t", " ")
        offset = 0
        if active and cursor.column >= text_width:
            offset = cursor.column - text_width + 1
        body = display[offset : offset + text_width]
        if empty and session.options.placeholder:
            body = f"{_DIM}{session.options.placeholder[:text_width]}{_RESET}"
        if active:
            cursor_row = len(lines)
            cursor_col = gutter + cursor.column - offset
        lines.append(prefix + body)

    lines.append("─" * min(_RULE_WIDTH, width))
    footer = help_text(session)
    if len(content) > available:
        footer += f" (lines {visible.start + 1}-{visible.stop} of {len(content)})"
    lines.append(footer[:width])
    return Frame(lines=lines, cursor_row=cursor_row, cursor_col=cursor_col)


class FrameRenderer:
    """Idempotent clear-then-draw renderer bound to one session."""

    def __init__(self, terminal: Terminal) -> None:
        self._terminal = terminal
        self._cursor_row: int | None = None
        self._height = 0

    def draw(self, session: InputSession) -> None:
        columns, rows = self._terminal.size()
        frame = build_frame(session, columns, rows)

        out: list[str] = [_HIDE_CURSOR]
        if self._cursor_row is not None:
            # Back to the first row of the previous frame
            out.append("\r")
            if self._cursor_row:
                out.append(f"\x1b[{self._cursor_row}A")
        out.append("\x1b[J")
        out.append("\r\n".join(frame.lines))

        up = len(frame.lines) - 1 - frame.cursor_row
        if up:
            out.append(f"\x1b[{up}A")
        out.append("\r")
        if frame.cursor_col:
            out.append(f"\x1b[{frame.cursor_col}C")
        out.append(_SHOW_CURSOR)

        self._cursor_row = frame.cursor_row
        self._height = len(frame.lines)
        self._terminal.write("".join(out))

    def finish(self) -> None:
        """Park the cursor below the frame so later output starts on a fresh line."""
        if self._cursor_row is None:
            return
        down = self._height - 1 - self._cursor_row
        self._terminal.write(_SHOW_CURSOR + (f"\x1b[{down}B" if down else "") + "\r\n")
        self._cursor_row = None
        self._height = 0

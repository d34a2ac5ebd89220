"""Key events: tagged variants parsed from raw terminal input (no I/O).

- Parse: decoded terminal text -> list of KeyEvent
- Chords: "ctrl+d" / "escape" / "enter" -> KeyEvent used for matching
"""

from __future__ import annotations

import enum
from dataclasses import dataclass

from lanonasis.errors import ValidationError


class KeyKind(enum.Enum):
    CHAR = "char"
    ENTER = "enter"
    BACKSPACE = "backspace"
    DELETE = "delete"
    LEFT = "left"
    RIGHT = "right"
    UP = "up"
    DOWN = "down"
    HOME = "home"
    END = "end"
    CTRL = "ctrl"
    ESCAPE = "escape"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class KeyEvent:
    """One logical keystroke.

    ``text`` holds inserted characters for CHAR (a paste may coalesce into one
    event) and the raw sequence for UNKNOWN. ``name`` holds the letter for
    CTRL events, e.g. ``KeyEvent(KeyKind.CTRL, name="d")`` for Ctrl+D.
    """

    kind: KeyKind
    text: str = ""
    name: str = ""


# CSI final byte -> key kind (ESC [ A etc. and SS3 ESC O A)
_CSI_FINAL = {
    "A": KeyKind.UP,
    "B": KeyKind.DOWN,
    "C": KeyKind.RIGHT,
    "D": KeyKind.LEFT,
    "H": KeyKind.HOME,
    "F": KeyKind.END,
}

# CSI "<n>~" sequences
_CSI_TILDE = {
    "1": KeyKind.HOME,
    "3": KeyKind.DELETE,
    "4": KeyKind.END,
    "7": KeyKind.HOME,
    "8": KeyKind.END,
}


def parse_keys(text: str) -> list[KeyEvent]:
    """Split decoded terminal input into key events.

    A single read may carry several keys (fast typing or a paste); runs of
    printable characters are coalesced into one CHAR event.
    """
    events: list[KeyEvent] = []
    pending: list[str] = []
    i = 0
    n = len(text)

    def flush() -> None:
        if pending:
            events.append(KeyEvent(KeyKind.CHAR, text="".join(pending)))
            pending.clear()

    while i < n:
        ch = text[i]

        if ch == "\x1b":
            flush()
            event, i = _parse_escape(text, i)
            events.append(event)
            continue

        if ch in ("\r", "\n"):
            flush()
            events.append(KeyEvent(KeyKind.ENTER))
            # CR LF is one Enter
            if ch == "\r" and i + 1 < n and text[i + 1] == "\n":
                i += 1
        elif ch in ("\x7f", "\x08"):
            flush()
            events.append(KeyEvent(KeyKind.BACKSPACE))
        elif ch == "\t":
            pending.append(ch)
        elif ord(ch) < 32:
            flush()
            events.append(KeyEvent(KeyKind.CTRL, name=chr(ord(ch) + 96)))
        else:
            pending.append(ch)
        i += 1

    flush()
    return events


def _parse_escape(text: str, start: int) -> tuple[KeyEvent, int]:
    """Parse an escape sequence beginning at ``start``; return (event, next index)."""
    n = len(text)
    if start + 1 >= n or text[start + 1] not in ("[", "O"):
        return KeyEvent(KeyKind.ESCAPE), start + 1

    # Parameter/intermediate bytes until a final byte in 0x40–0x7E
    j = start + 2
    while j < n and not ("\x40" <= text[j] <= "\x7e"):
        j += 1
    if j >= n:
        return KeyEvent(KeyKind.UNKNOWN, text=text[start:]), n

    params = text[start + 2 : j]
    final = text[j]
    raw = text[start : j + 1]

    if final == "~":
        kind = _CSI_TILDE.get(params.split(";")[0], KeyKind.UNKNOWN)
    elif final in _CSI_FINAL:
        kind = _CSI_FINAL[final]
    else:
        kind = KeyKind.UNKNOWN
    return KeyEvent(kind, text=raw if kind is KeyKind.UNKNOWN else ""), j + 1


def parse_chord(chord: str) -> KeyEvent:
    """Turn a chord name into the KeyEvent it matches.

    >>> parse_chord("ctrl+d")
    KeyEvent(kind=<KeyKind.CTRL: 'ctrl'>, text='', name='d')
    """
    normalized = chord.strip().lower()
    if normalized.startswith("ctrl+"):
        letter = normalized[5:]
        if len(letter) == 1 and "a" <= letter <= "z":
            return KeyEvent(KeyKind.CTRL, name=letter)
    elif normalized in ("escape", "esc"):
        return KeyEvent(KeyKind.ESCAPE)
    elif normalized in ("enter", "return"):
        return KeyEvent(KeyKind.ENTER)
    raise ValidationError(
        f"Unsupported key chord: {chord!r}",
        remediation="Use 'ctrl+<letter>', 'escape' or 'enter'",
    )


def describe_chord(chord: str) -> str:
    """Human label for help text, e.g. 'ctrl+d' -> 'Ctrl+D'."""
    event = parse_chord(chord)
    if event.kind is KeyKind.CTRL:
        return f"Ctrl+{event.name.upper()}"
    return event.kind.value.capitalize()

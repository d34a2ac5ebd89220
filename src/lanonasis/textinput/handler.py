"""Inline multi-line text capture without an external editor.

The handler owns at most one InputSession at a time. Keystrokes arrive as raw
bytes from the Terminal, are parsed into KeyEvents and applied through the
pure edit functions in ``editing``; the frame is redrawn after every chunk.
"""

from __future__ import annotations

import asyncio
import codecs
import logging
from typing import Literal

from lanonasis.errors import CancelledByUser, CapabilityError
from lanonasis.textinput.base import InputOptions, InputSession, Terminal, iter_chords
from lanonasis.textinput.editing import CTRL_EDITS, KEY_EDITS, insert_newline, insert_text
from lanonasis.textinput.keys import KeyEvent, KeyKind, parse_chord, parse_keys
from lanonasis.textinput.render import FrameRenderer
from lanonasis.textinput.terminal import StdinTerminal

logger = logging.getLogger(__name__)

Action = Literal["submit", "cancel"]

# Enter, type, jump up to the end of the first line, type, submit
_DRY_RUN_KEYS = "\rok\x1b[A\x1b[F!\x04"
_DRY_RUN_EXPECTED = "dry!\nok"


class TextInputHandler:
    """Collect multi-line text from a raw-mode terminal."""

    def __init__(self, terminal: Terminal | None = None) -> None:
        self.terminal = terminal or StdinTerminal()
        self._session: InputSession | None = None
        self._outcome: asyncio.Future[str] | None = None

    @property
    def current_session(self) -> InputSession | None:
        return self._session

    async def collect_multiline_input(
        self, prompt: str, options: InputOptions | None = None
    ) -> str:
        """Run an editing session and return the committed text.

        Raises CancelledByUser on the cancel chord, CapabilityError if the
        terminal cannot do raw mode and ValidationError for bad options.
        Raw mode and the stdin listener are released on every exit path.
        """
        opts = (options or InputOptions()).merged()
        if self._session is not None:
            raise RuntimeError("An input session is already active on this handler")
        if not self.terminal.supports_raw_mode():
            raise CapabilityError(
                "Terminal does not support raw-mode input",
                remediation="Run the command from an interactive terminal (TTY)",
            )

        session = InputSession.create(prompt, opts)
        chords = _chord_table(opts)
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        renderer = FrameRenderer(self.terminal)
        outcome: asyncio.Future[str] = asyncio.get_running_loop().create_future()

        def on_data(chunk: bytes) -> None:
            if outcome.done():
                return
            try:
                if not chunk:
                    raise CapabilityError("Terminal input closed before submit")
                for key in parse_keys(decoder.decode(chunk)):
                    action = apply_key(session, key, chords)
                    if action == "submit":
                        session.status = "completed"
                        outcome.set_result(session.text)
                        return
                    if action == "cancel":
                        session.status = "cancelled"
                        outcome.set_exception(CancelledByUser())
                        return
                renderer.draw(session)
            except Exception as e:
                outcome.set_exception(e)

        self._session = session
        self._outcome = outcome
        logger.debug("Input session %s started", session.id)
        try:
            with self.terminal.raw_mode():
                self.terminal.add_listener(on_data)
                try:
                    renderer.draw(session)
                    return await outcome
                finally:
                    self.terminal.remove_listener(on_data)
                    renderer.finish()
        except CancelledByUser:
            logger.debug("Input session %s cancelled", session.id)
            raise
        finally:
            if session.status == "active":
                session.status = "cancelled"
            self._session = None
            self._outcome = None

    def cancel_input(self) -> None:
        """Cancel the active session, if any, as if the cancel chord was pressed."""
        if self._session is None or self._outcome is None or self._outcome.done():
            return
        self._session.status = "cancelled"
        self._outcome.set_exception(CancelledByUser())

    def dry_run(self) -> str:
        """Exercise options, key parsing and editing without touching the terminal."""
        opts = InputOptions(default_content="dry").merged()
        session = InputSession.create("dry-run", opts)
        chords = _chord_table(opts)
        for key in parse_keys(_DRY_RUN_KEYS):
            if apply_key(session, key, chords) == "submit":
                break
        else:
            raise CapabilityError("Dry run never reached the submit chord")
        if session.text != _DRY_RUN_EXPECTED:
            raise CapabilityError(f"Dry run produced {session.text!r}")
        return session.text


def _chord_table(options: InputOptions) -> dict[KeyEvent, Action]:
    return {parse_chord(chord): action for chord, action in iter_chords(options)}


def apply_key(
    session: InputSession, key: KeyEvent, chords: dict[KeyEvent, Action]
) -> Action | None:
    """Apply one key to the session buffer; return submit/cancel if the key is a chord."""
    action = chords.get(key)
    if action:
        return action

    lines, cursor = session.content, session.cursor
    if key.kind is KeyKind.CHAR:
        lines, cursor = insert_text(lines, cursor, key.text)
    elif key.kind is KeyKind.ENTER:
        lines, cursor = insert_newline(lines, cursor, session.options.max_lines)
    elif key.kind is KeyKind.CTRL and key.name in CTRL_EDITS:
        lines, cursor = CTRL_EDITS[key.name](lines, cursor)
    elif key.kind in KEY_EDITS:
        lines, cursor = KEY_EDITS[key.kind](lines, cursor)
    else:
        logger.debug("Ignoring key %s", key)
        return None

    session.content = list(lines)
    session.cursor = cursor
    return None

"""POSIX terminal backed by the process's stdin/stdout.

Raw mode goes through termios; keystrokes are delivered from the event loop
via ``loop.add_reader`` so the awaiting coroutine is never polled.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import TextIO

try:
    import termios
    import tty
except ImportError:  # Windows
    termios = None
    tty = None

from lanonasis.errors import CapabilityError
from lanonasis.textinput.base import DataListener

logger = logging.getLogger(__name__)

_READ_SIZE = 1024


class StdinTerminal:
    """Terminal implementation over real file descriptors."""

    def __init__(self, stdin: TextIO | None = None, stdout: TextIO | None = None) -> None:
        self._stdin = stdin or sys.stdin
        self._stdout = stdout or sys.stdout
        self._listeners: list[DataListener] = []
        self._loop: asyncio.AbstractEventLoop | None = None
        self._raw = False

    @property
    def is_raw(self) -> bool:
        return self._raw

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def is_interactive(self) -> bool:
        try:
            return self._stdin.isatty() and self._stdout.isatty()
        except ValueError:  # closed stream
            return False

    def supports_raw_mode(self) -> bool:
        if termios is None or not self.is_interactive():
            return False
        try:
            termios.tcgetattr(self._stdin.fileno())
        except (termios.error, OSError, ValueError):
            return False
        return True

    @contextmanager
    def raw_mode(self) -> Iterator[None]:
        """Hold raw mode for the duration of the block; always restores."""
        if self._raw:
            raise RuntimeError("Raw mode is already held by another session")
        if termios is None:
            raise CapabilityError("Raw terminal mode is not available on this platform")

        fd = self._stdin.fileno()
        try:
            saved = termios.tcgetattr(fd)
            tty.setraw(fd)
        except (termios.error, OSError) as e:
            raise CapabilityError(
                f"Could not enable raw mode: {e}",
                remediation="Run the command from an interactive terminal",
            ) from e

        self._raw = True
        try:
            yield
        finally:
            termios.tcsetattr(fd, termios.TCSADRAIN, saved)
            self._raw = False

    # ── Listeners ─────────────────────────────────────────────

    def add_listener(self, listener: DataListener) -> None:
        if listener in self._listeners:
            return
        self._listeners.append(listener)
        if len(self._listeners) == 1:
            self._loop = asyncio.get_running_loop()
            self._loop.add_reader(self._stdin.fileno(), self._on_readable)

    def remove_listener(self, listener: DataListener) -> None:
        if listener not in self._listeners:
            return
        self._listeners.remove(listener)
        if not self._listeners and self._loop is not None:
            self._loop.remove_reader(self._stdin.fileno())
            self._loop = None

    def _on_readable(self) -> None:
        try:
            data = os.read(self._stdin.fileno(), _READ_SIZE)
        except BlockingIOError:
            return
        except OSError as e:
            logger.warning("stdin read failed: %s", e)
            data = b""
        # b"" signals EOF to listeners
        for listener in list(self._listeners):
            listener(data)

    # ── Output ────────────────────────────────────────────────

    def write(self, text: str) -> None:
        self._stdout.write(text)
        self._stdout.flush()

    def size(self) -> tuple[int, int]:
        size = shutil.get_terminal_size(fallback=(80, 24))
        return size.columns, size.lines

"""Inline multi-line text input without an external editor."""

from lanonasis.textinput.base import Cursor, InputOptions, InputSession, Terminal
from lanonasis.textinput.handler import TextInputHandler
from lanonasis.textinput.keys import KeyEvent, KeyKind
from lanonasis.textinput.terminal import StdinTerminal

__all__ = [
    "Cursor",
    "InputOptions",
    "InputSession",
    "KeyEvent",
    "KeyKind",
    "StdinTerminal",
    "Terminal",
    "TextInputHandler",
]

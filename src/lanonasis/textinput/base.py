"""Text input types and the Terminal protocol."""

from __future__ import annotations

import uuid
from collections.abc import Callable, Iterator
from contextlib import AbstractContextManager
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Literal, Protocol, runtime_checkable

from lanonasis.errors import ValidationError
from lanonasis.textinput.keys import parse_chord

SessionStatus = Literal["active", "completed", "cancelled"]

# Callback receiving raw bytes read from the terminal
DataListener = Callable[[bytes], None]

DEFAULT_PLACEHOLDER = "Enter your text (Ctrl+D to finish, Ctrl+C to cancel)"


@dataclass(frozen=True)
class Cursor:
    line: int = 0
    column: int = 0


@dataclass(frozen=True)
class InputOptions:
    """Per-session editor options. ``None`` fields fall back to defaults."""

    placeholder: str | None = None
    default_content: str | None = None
    max_lines: int | None = None
    submit_keys: tuple[str, ...] | None = None
    cancel_keys: tuple[str, ...] | None = None
    show_line_numbers: bool | None = None

    def merged(self) -> InputOptions:
        """Return a fully-populated copy with defaults applied and validated."""
        opts = replace(
            self,
            placeholder=DEFAULT_PLACEHOLDER if self.placeholder is None else self.placeholder,
            max_lines=100 if self.max_lines is None else self.max_lines,
            submit_keys=("ctrl+d",) if self.submit_keys is None else tuple(self.submit_keys),
            cancel_keys=("ctrl+c",) if self.cancel_keys is None else tuple(self.cancel_keys),
            show_line_numbers=True if self.show_line_numbers is None else self.show_line_numbers,
        )

        if opts.max_lines <= 0:
            raise ValidationError(
                f"max_lines must be positive, got {opts.max_lines}",
                remediation="Pass max_lines >= 1 or leave it unset",
            )
        if not opts.submit_keys:
            raise ValidationError("At least one submit key is required")
        submit = {parse_chord(k) for k in opts.submit_keys}
        cancel = {parse_chord(k) for k in opts.cancel_keys}
        overlap = submit & cancel
        if overlap:
            raise ValidationError("A key cannot both submit and cancel input")
        if opts.default_content is not None:
            n_lines = opts.default_content.count("\n") + 1
            if n_lines > opts.max_lines:
                raise ValidationError(
                    f"default_content has {n_lines} lines, more than max_lines={opts.max_lines}"
                )
        return opts


@dataclass
class InputSession:
    """State of one collect_multiline_input call."""

    prompt: str
    options: InputOptions
    content: list[str] = field(default_factory=lambda: [""])
    cursor: Cursor = field(default_factory=Cursor)
    id: str = field(default_factory=lambda: f"session_{uuid.uuid4().hex[:12]}")
    start_time: datetime = field(default_factory=datetime.now)
    status: SessionStatus = "active"

    @classmethod
    def create(cls, prompt: str, options: InputOptions) -> InputSession:
        lines = options.default_content.split("\n") if options.default_content else [""]
        return cls(
            prompt=prompt,
            options=options,
            content=lines,
            cursor=Cursor(line=len(lines) - 1, column=len(lines[-1])),
        )

    @property
    def text(self) -> str:
        return "\n".join(self.content)


@runtime_checkable
class Terminal(Protocol):
    """The terminal surface the input handler drives."""

    @property
    def is_raw(self) -> bool: ...

    @property
    def listener_count(self) -> int: ...

    def is_interactive(self) -> bool:
        """True if both stdin and stdout are attached to a TTY."""
        ...

    def supports_raw_mode(self) -> bool:
        """True if stdin can be switched to raw mode."""
        ...

    def raw_mode(self) -> AbstractContextManager[None]:
        """Context manager holding raw mode for its duration."""
        ...

    def add_listener(self, listener: DataListener) -> None: ...

    def remove_listener(self, listener: DataListener) -> None: ...

    def write(self, text: str) -> None: ...

    def size(self) -> tuple[int, int]:
        """Return (columns, rows)."""
        ...


def iter_chords(options: InputOptions) -> Iterator[tuple[str, str]]:
    """Yield (chord, action) pairs for the configured submit/cancel keys."""
    for chord in options.submit_keys or ():
        yield chord, "submit"
    for chord in options.cancel_keys or ():
        yield chord, "cancel"

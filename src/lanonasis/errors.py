"""Error taxonomy for the interactive-session layer.

Expected failures (capability, spawn, readiness) are reported to the user as
one actionable line built from ``str(exc)`` and ``exc.remediation``.
"""

from __future__ import annotations


class LanonasisError(Exception):
    """Base class for all lanonasis errors."""

    def __init__(self, message: str, *, remediation: str | None = None) -> None:
        super().__init__(message)
        self.remediation = remediation

    def user_message(self) -> str:
        if self.remediation:
            return f"{self} — {self.remediation}"
        return str(self)


class ValidationError(LanonasisError, ValueError):
    """Bad option combination, e.g. max_lines <= 0."""


class CapabilityError(LanonasisError):
    """The terminal cannot support raw-mode input."""


class SpawnError(LanonasisError):
    """The companion process failed to start."""


class ReadinessTimeout(LanonasisError, TimeoutError):
    """A readiness or shutdown deadline elapsed."""


class PersistenceError(LanonasisError):
    """A configuration file could not be read or written."""


class InvalidTransition(LanonasisError, RuntimeError):
    """A server status change outside the allowed state machine."""


class CancelledByUser(LanonasisError):
    """The user aborted input. Expected outcome, not a failure."""

    def __init__(self, message: str = "Input cancelled by user") -> None:
        super().__init__(message)


class RemoteError(LanonasisError):
    """The companion answered a request with a JSON-RPC error."""

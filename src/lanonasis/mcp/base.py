"""Companion server state and connection result types."""

from __future__ import annotations

import enum
import os
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from lanonasis.errors import InvalidTransition


class ServerStatus(str, enum.Enum):
    STARTING = "starting"
    RUNNING = "running"
    STOPPED = "stopped"
    ERROR = "error"


# Allowed ServerInstance.status changes
TRANSITIONS: dict[ServerStatus, frozenset[ServerStatus]] = {
    ServerStatus.STARTING: frozenset({ServerStatus.RUNNING, ServerStatus.ERROR}),
    ServerStatus.RUNNING: frozenset({ServerStatus.STOPPED, ServerStatus.ERROR}),
    ServerStatus.STOPPED: frozenset(),
    ServerStatus.ERROR: frozenset(),
}


@dataclass
class ServerInstance:
    """One spawned companion process."""

    pid: int | None
    port: int
    log_path: Path
    status: ServerStatus = ServerStatus.STARTING
    start_time: datetime = field(default_factory=datetime.now)
    exit_code: int | None = None

    def transition(self, new_status: ServerStatus) -> None:
        if new_status not in TRANSITIONS[self.status]:
            raise InvalidTransition(
                f"Server status cannot go from {self.status.value} to {new_status.value}"
            )
        self.status = new_status


@dataclass
class ConnectionStatus:
    is_connected: bool = False
    connection_attempts: int = 0
    server_path: str | None = None
    server_instance: ServerInstance | None = None
    last_connected: datetime | None = None
    last_error: str | None = None


@dataclass
class ConnectionResult:
    success: bool
    server_path: str | None = None
    pid: int | None = None
    error: str | None = None
    suggestions: list[str] = field(default_factory=list)


@dataclass
class ConfigResult:
    success: bool
    config_path: str | None = None
    server_path: str | None = None
    error: str | None = None


def pid_alive(pid: int | None) -> bool:
    """Liveness probe: signal 0 checks existence without affecting the process."""
    if pid is None or pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        # Exists but owned by someone else
        return True
    return True

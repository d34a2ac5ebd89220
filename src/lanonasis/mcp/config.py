"""MCPConfig, the persisted companion-server configuration document.

Stored as JSON with camelCase keys. Keys this version does not know about
are carried in ``extra`` and written back unchanged.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

from lanonasis.config import write_json_atomic
from lanonasis.errors import PersistenceError

logger = logging.getLogger(__name__)

_KEY_MAP = {
    "local_server_path": "localServerPath",
    "server_port": "serverPort",
    "auto_start": "autoStart",
    "connection_timeout": "connectionTimeout",
    "retry_attempts": "retryAttempts",
    "log_level": "logLevel",
    "server_args": "serverArgs",
}
_REVERSE_KEY_MAP = {v: k for k, v in _KEY_MAP.items()}

# Accepted JSON types per field; bool is rejected wherever a number is expected
_FIELD_TYPES: dict[str, tuple[type, ...]] = {
    "local_server_path": (str,),
    "server_port": (int,),
    "auto_start": (bool,),
    "connection_timeout": (int, float),
    "retry_attempts": (int,),
    "log_level": (str,),
    "server_args": (list,),
}


def _check_type(name: str, value: Any) -> None:
    expected = _FIELD_TYPES[name]
    numeric = bool not in expected and isinstance(value, bool)
    if numeric or not isinstance(value, expected):
        allowed = " or ".join(t.__name__ for t in expected)
        raise TypeError(f"{_KEY_MAP[name]} must be {allowed}, got {type(value).__name__}")
    if name == "server_args" and not all(isinstance(a, str) for a in value):
        raise TypeError(f"{_KEY_MAP[name]} must be a list of strings")


@dataclass
class MCPConfig:
    local_server_path: str = ""
    server_port: int = 3000
    auto_start: bool = True
    connection_timeout: int = 10000  # ms
    retry_attempts: int = 3
    log_level: str = "info"
    server_args: list[str] = field(default_factory=list)
    extra: dict[str, Any] = field(default_factory=dict, repr=False)

    @property
    def connection_timeout_s(self) -> float:
        return self.connection_timeout / 1000

    def to_dict(self) -> dict[str, Any]:
        data = dict(self.extra)
        for f in fields(self):
            if f.name == "extra":
                continue
            data[_KEY_MAP[f.name]] = getattr(self, f.name)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MCPConfig:
        """Build from a camelCase document. Raises TypeError on a mistyped known key."""
        known: dict[str, Any] = {}
        extra: dict[str, Any] = {}
        for key, value in data.items():
            if key in _REVERSE_KEY_MAP:
                name = _REVERSE_KEY_MAP[key]
                _check_type(name, value)
                known[name] = value
            else:
                extra[key] = value
        return cls(**known, extra=extra)

    def merge(self, **partial: Any) -> MCPConfig:
        """Return a copy with ``partial`` applied; accepts snake_case or camelCase keys."""
        data = self.to_dict()
        for key, value in partial.items():
            data[_KEY_MAP.get(key, key)] = value
        return MCPConfig.from_dict(data)


def load_mcp_config(path: Path) -> MCPConfig:
    """Read the config document. A missing file yields defaults.

    Raises PersistenceError if the file exists but cannot be read or parsed.
    """
    if not path.exists():
        return MCPConfig()
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise PersistenceError(
            f"Could not read {path}: {e}",
            remediation=f"Fix or delete {path} to restore defaults",
        ) from e
    if not isinstance(data, dict):
        raise PersistenceError(f"{path} does not contain a JSON object")
    try:
        return MCPConfig.from_dict(data)
    except TypeError as e:
        raise PersistenceError(f"Invalid configuration in {path}: {e}") from e


def save_mcp_config(path: Path, config: MCPConfig) -> None:
    try:
        write_json_atomic(path, config.to_dict())
    except OSError as e:
        raise PersistenceError(
            f"Could not write {path}: {e}",
            remediation=f"Check permissions on {path.parent}",
        ) from e
    logger.debug("Saved MCP config to %s", path)

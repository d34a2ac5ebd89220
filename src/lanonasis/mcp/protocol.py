"""JSON-RPC 2.0 line protocol for the companion's stdio link (no I/O).

- Parse: stdout lines -> typed responses/notifications
- Format: requests/notifications -> stdin lines (no trailing newline)
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

PROTOCOL_VERSION = "2024-11-05"
CLIENT_NAME = "lanonasis-cli"


# ── Parsed message types (companion stdout -> CLI) ────────────


@dataclass
class Response:
    """A reply to a request we sent, matched by id."""

    id: int
    result: Any = None
    error: dict[str, Any] | None = None

    @property
    def is_error(self) -> bool:
        return self.error is not None

    @property
    def error_message(self) -> str:
        if not self.error:
            return ""
        return str(self.error.get("message", "unknown error"))


@dataclass
class Notification:
    """A message from the companion that expects no reply."""

    method: str
    params: dict[str, Any] = field(default_factory=dict)


ParsedMessage = Response | Notification | dict


def parse_line(line: str) -> ParsedMessage:
    """Parse one stdout line.

    Raises json.JSONDecodeError for non-JSON output; callers treat such lines
    as log output. Server-initiated requests and malformed responses come
    back as raw dicts.
    """
    data = json.loads(line)
    if not isinstance(data, dict):
        return {"raw": data}

    if "id" in data and ("result" in data or "error" in data):
        request_id, error = data["id"], data.get("error")
        # Only integer ids are ever sent; anything else cannot match a request
        if not isinstance(request_id, int) or isinstance(request_id, bool):
            return data
        if error is not None and not isinstance(error, dict):
            return data
        return Response(id=request_id, result=data.get("result"), error=error)

    if "method" in data and "id" not in data:
        return Notification(method=data["method"], params=data.get("params") or {})

    return data


# ── Formatting (CLI -> companion stdin) ───────────────────────


def format_request(request_id: int, method: str, params: dict[str, Any] | None = None) -> str:
    message: dict[str, Any] = {"jsonrpc": "2.0", "id": request_id, "method": method}
    if params is not None:
        message["params"] = params
    return json.dumps(message)


def format_notification(method: str, params: dict[str, Any] | None = None) -> str:
    message: dict[str, Any] = {"jsonrpc": "2.0", "method": method}
    if params is not None:
        message["params"] = params
    return json.dumps(message)


def initialize_params(client_version: str) -> dict[str, Any]:
    """Params for the ``initialize`` handshake used as the readiness signal."""
    return {
        "protocolVersion": PROTOCOL_VERSION,
        "capabilities": {},
        "clientInfo": {"name": CLIENT_NAME, "version": client_version},
    }

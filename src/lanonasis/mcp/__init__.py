"""Local companion (MCP server) discovery, lifecycle and configuration."""

from lanonasis.mcp.base import (
    ConfigResult,
    ConnectionResult,
    ConnectionStatus,
    ServerInstance,
    ServerStatus,
)
from lanonasis.mcp.config import MCPConfig
from lanonasis.mcp.connection import ConnectionManager

__all__ = [
    "ConfigResult",
    "ConnectionManager",
    "ConnectionResult",
    "ConnectionStatus",
    "MCPConfig",
    "ServerInstance",
    "ServerStatus",
]

"""lanonasis: interactive-session layer of the Lanonasis memory CLI.

Layout:
    lanonasis/
    ├── textinput/     # Inline multi-line editor (raw-mode terminal)
    ├── mcp/           # Local companion server lifecycle + MCPConfig
    ├── onboarding.py  # First-run setup and readiness report
    └── config.py      # Settings from lanonasis.toml / environment

Per-user state lives in ``~/.lanonasis/`` (config.json, mcp-config.json,
mcp-server.log).
"""

__version__ = "0.4.0"

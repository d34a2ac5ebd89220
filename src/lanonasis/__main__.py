"""Entry point: python -m lanonasis [setup|connect|status|input]

- "setup":   First-run onboarding and readiness report (default)
- "connect": Start/connect the local MCP server, list its tools, stop it
- "status":  Show the persisted MCP configuration
- "input":   Capture multi-line text with the inline editor and print it
"""

from __future__ import annotations

import asyncio
import logging
import sys

from lanonasis.config import Settings, load_settings
from lanonasis.errors import CancelledByUser, LanonasisError


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


async def _run_setup(settings: Settings) -> int:
    from lanonasis.onboarding import OnboardingFlow, format_report

    flow = OnboardingFlow(settings)
    state = await flow.run_initial_setup()
    print(format_report(state, settings))
    return 0 if state.ready else 1


async def _run_connect(settings: Settings) -> int:
    from lanonasis.mcp.connection import ConnectionManager

    manager = ConnectionManager(settings)
    await manager.init()
    result = await manager.connect_local()
    if not result.success:
        print(f"Connection failed: {result.error}", file=sys.stderr)
        for suggestion in result.suggestions:
            print(f"  - {suggestion}", file=sys.stderr)
        return 1

    try:
        print(f"Connected to {result.server_path} (pid={result.pid})")
        tools = await manager.list_tools()
        for tool in tools:
            print(f"  {tool.get('name', '?')}: {tool.get('description', '')}")
    finally:
        await manager.stop_local_server()
    return 0


async def _run_status(settings: Settings) -> int:
    from lanonasis.mcp.connection import ConnectionManager

    manager = ConnectionManager(settings)
    await manager.init()
    config = manager.get_config()
    print(f"Config file:  {manager.config_path}")
    print(f"Server path:  {config.local_server_path or '(not configured)'}")
    print(f"Detected:     {manager.detect_server_path() or '(none)'}")
    print(f"Auto start:   {config.auto_start}")
    print(f"Timeout:      {config.connection_timeout} ms")
    return 0


async def _run_input(settings: Settings) -> int:
    from lanonasis.textinput.handler import TextInputHandler

    handler = TextInputHandler()
    try:
        text = await handler.collect_multiline_input("Memory content:")
    except CancelledByUser:
        print("Cancelled.", file=sys.stderr)
        return 130
    print(text)
    return 0


_COMMANDS = {
    "setup": _run_setup,
    "connect": _run_connect,
    "status": _run_status,
    "input": _run_input,
}


def main() -> None:
    cmd = sys.argv[1] if len(sys.argv) > 1 else "setup"
    runner = _COMMANDS.get(cmd)
    if runner is None:
        print("Usage: python -m lanonasis [setup|connect|status|input]")
        print("  setup    First-run setup and readiness report (default)")
        print("  connect  Connect to the local MCP server")
        print("  status   Show MCP configuration")
        print("  input    Capture multi-line text inline")
        sys.exit(2)

    settings = load_settings()
    _setup_logging(settings.log_level)

    try:
        code = asyncio.run(runner(settings))
    except LanonasisError as e:
        print(f"Error: {e.user_message()}", file=sys.stderr)
        code = 1
    except KeyboardInterrupt:
        code = 130
    sys.exit(code)


if __name__ == "__main__":
    main()

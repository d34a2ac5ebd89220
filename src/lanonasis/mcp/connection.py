"""Local companion (MCP server) lifecycle manager.

Discovers, spawns, verifies and stops a companion process that speaks
JSON-RPC over stdin/stdout, and owns the persisted MCPConfig.

Per spawned process there is exactly one exit-watcher task (the only exit
listener) plus two pump tasks draining stdout/stderr. All three are torn
down by stop_local_server() or a failed start.
"""

from __future__ import annotations

import asyncio
import copy
import json
import logging
import os
import shutil
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, TextIO

from lanonasis import __version__
from lanonasis.config import Settings
from lanonasis.errors import (
    LanonasisError,
    PersistenceError,
    ReadinessTimeout,
    RemoteError,
    SpawnError,
)
from lanonasis.mcp.base import (
    ConfigResult,
    ConnectionResult,
    ConnectionStatus,
    ServerInstance,
    ServerStatus,
    pid_alive,
)
from lanonasis.mcp.config import MCPConfig, load_mcp_config, save_mcp_config
from lanonasis.mcp.protocol import (
    Notification,
    Response,
    format_notification,
    format_request,
    initialize_params,
    parse_line,
)

logger = logging.getLogger(__name__)

SERVER_ENTRY = "mcp-server-entry.js"
SERVER_EXECUTABLE = "lanonasis-mcp"

_NODE_SUFFIXES = (".js", ".mjs", ".cjs")


class ConnectionManager:
    """Manage the local companion process and its configuration."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        config_path: Path | None = None,
        candidate_paths: list[Path] | None = None,
    ) -> None:
        self.settings = settings or Settings()
        self.config_path = config_path or self.settings.mcp_config_path
        self._candidate_paths = candidate_paths
        self._config = MCPConfig()
        self._loaded = False
        self._status = ConnectionStatus()
        self._process: asyncio.subprocess.Process | None = None
        self._exit_task: asyncio.Task[int] | None = None
        self._pump_tasks: list[asyncio.Task[None]] = []
        self._pending: dict[int, asyncio.Future[Response]] = {}
        self._next_id = 0
        self._stop_requested = False
        self._log_file: TextIO | None = None

    @property
    def is_running(self) -> bool:
        instance = self._status.server_instance
        return (
            self._process is not None
            and self._process.returncode is None
            and instance is not None
            and instance.status is ServerStatus.RUNNING
        )

    @property
    def listener_count(self) -> int:
        """Live background tasks attached to the child process."""
        tasks = [self._exit_task, *self._pump_tasks]
        return sum(1 for t in tasks if t is not None and not t.done())

    @property
    def exit_listener_count(self) -> int:
        return int(self._exit_task is not None and not self._exit_task.done())

    # ── Configuration ─────────────────────────────────────────

    async def init(self) -> None:
        """Load persisted configuration from disk (reloads if already loaded)."""
        self._load_config()

    def _ensure_loaded(self) -> None:
        if not self._loaded:
            self._load_config()

    def _load_config(self) -> None:
        try:
            self._config = load_mcp_config(self.config_path)
        except PersistenceError as e:
            logger.warning("%s; using default MCP configuration", e)
            self._config = MCPConfig()
        self._loaded = True
        logger.debug("MCP config loaded from %s", self.config_path)

    def _save_config(self) -> bool:
        try:
            save_mcp_config(self.config_path, self._config)
        except PersistenceError as e:
            logger.warning("%s; configuration kept in memory only", e)
            return False
        return True

    def get_config(self) -> MCPConfig:
        self._ensure_loaded()
        return copy.deepcopy(self._config)

    async def update_config(self, **partial: Any) -> None:
        """Merge ``partial`` into the configuration and persist it."""
        self._ensure_loaded()
        self._config = self._config.merge(**partial)
        self._save_config()

    def get_connection_status(self) -> ConnectionStatus:
        return copy.deepcopy(self._status)

    # ── Discovery ─────────────────────────────────────────────

    def candidate_paths(self) -> list[Path]:
        """Ordered install locations probed by detect_server_path()."""
        if self._candidate_paths is not None:
            return list(self._candidate_paths)

        candidates = list(self.settings.server_candidates)
        env_path = os.getenv("LANONASIS_MCP_SERVER")
        if env_path:
            candidates.append(Path(env_path).expanduser())

        bundled = Path(__file__).resolve().parent.parent / "server"
        cwd = Path.cwd()
        candidates += [
            bundled / SERVER_ENTRY,
            cwd / "node_modules" / "@lanonasis" / "cli" / "dist" / SERVER_ENTRY,
            cwd / "dist" / SERVER_ENTRY,
            cwd / "cli" / "dist" / SERVER_ENTRY,
            cwd.parent / "cli" / "dist" / SERVER_ENTRY,
            self.settings.config_dir / "server" / SERVER_ENTRY,
        ]
        on_path = shutil.which(SERVER_EXECUTABLE)
        if on_path:
            candidates.append(Path(on_path))
        return candidates

    def detect_server_path(self) -> str | None:
        """Return the first existing candidate. Never touches configuration."""
        for candidate in self.candidate_paths():
            if candidate.is_file() and os.access(candidate, os.R_OK):
                logger.debug("Detected companion server at %s", candidate)
                return str(candidate)
        return None

    async def auto_configure_local_server(self) -> ConfigResult:
        """Detect the companion and persist its path as localServerPath."""
        self._ensure_loaded()
        server_path = self.detect_server_path()
        if not server_path:
            return ConfigResult(
                success=False, error="Could not detect MCP server path for auto-configuration"
            )
        self._config = self._config.merge(local_server_path=server_path)
        if not self._save_config():
            return ConfigResult(
                success=False,
                server_path=server_path,
                error=f"Could not write {self.config_path}",
            )
        return ConfigResult(
            success=True, config_path=str(self.config_path), server_path=server_path
        )

    # ── Connect / verify ──────────────────────────────────────

    async def connect_local(self, server_path: str | None = None) -> ConnectionResult:
        """Connect to the local companion, starting it if needed.

        Path priority: explicit argument > persisted localServerPath > detection.
        Expected failures come back in the result, never raised.
        """
        self._ensure_loaded()
        path = server_path or self._config.local_server_path.strip() or self.detect_server_path()
        if not path:
            return self._fail(
                "Could not detect local MCP server path",
                [
                    "Ensure the CLI package is properly installed",
                    f"Set LANONASIS_MCP_SERVER or localServerPath in {self.config_path}",
                    "Try running: lanonasis setup",
                ],
            )

        if path != self._config.local_server_path:
            self._config = self._config.merge(local_server_path=path)
            self._save_config()
        self._status.server_path = path

        if not self.is_running:
            if not self._config.auto_start:
                return self._fail(
                    "Companion server is not running and autoStart is disabled",
                    ["Enable autoStart in the MCP configuration", "Start the server manually"],
                    path,
                )
            error = await self._start_with_retries(path)
            if error is not None:
                return self._fail(str(error), _suggestions_for(error, self.settings), path)

        connected = await self.verify_connection(path)
        instance = self._status.server_instance
        self._status.connection_attempts += 1
        self._status.is_connected = (
            connected and instance is not None and instance.status is ServerStatus.RUNNING
        )
        if not self._status.is_connected:
            return self._fail(
                "Failed to verify MCP server connection",
                [
                    f"Check server logs: {self.settings.server_log_path}",
                    "Ensure no other process is using the port",
                    "Try restarting the CLI",
                ],
                path,
                count_attempt=False,
            )

        self._status.last_connected = datetime.now()
        self._status.last_error = None
        logger.info("Connected to companion server (pid=%s)", instance.pid)
        return ConnectionResult(success=True, server_path=path, pid=instance.pid)

    def _fail(
        self,
        error: str,
        suggestions: list[str],
        path: str | None = None,
        *,
        count_attempt: bool = True,
    ) -> ConnectionResult:
        if count_attempt:
            self._status.connection_attempts += 1
        self._status.is_connected = False
        self._status.last_error = error
        logger.warning("Connection failed: %s", error)
        return ConnectionResult(
            success=False, server_path=path, error=error, suggestions=suggestions
        )

    async def _start_with_retries(self, path: str) -> LanonasisError | None:
        attempts = max(1, self._config.retry_attempts)
        last_error: LanonasisError | None = None
        for attempt in range(1, attempts + 1):
            try:
                await self.start_local_server(path)
                return None
            except (SpawnError, ReadinessTimeout) as e:
                last_error = e
                logger.warning("Start attempt %d/%d failed: %s", attempt, attempts, e)
                if attempt < attempts:
                    await asyncio.sleep(self.settings.retry_delay)
        return last_error

    async def verify_connection(self, server_path: str) -> bool:
        """True only if the path is accessible and the instance is healthy.

        No instance yet is acceptable (first attempt). Otherwise the instance
        must be running and its pid must answer a liveness probe.
        """
        path = Path(server_path)
        if not (path.exists() and os.access(path, os.R_OK)):
            return False

        instance = self._status.server_instance
        if instance is None:
            return True
        if instance.status is not ServerStatus.RUNNING:
            return False
        if pid_alive(instance.pid):
            return True

        logger.warning("Companion pid %s is no longer alive", instance.pid)
        instance.transition(ServerStatus.ERROR)
        self._status.is_connected = False
        return False

    # ── Process lifecycle ─────────────────────────────────────

    def _build_command(self, server_path: str) -> list[str]:
        suffix = Path(server_path).suffix.lower()
        if suffix in _NODE_SUFFIXES:
            cmd = ["node", server_path]
        elif suffix == ".py":
            cmd = [sys.executable, server_path]
        else:
            cmd = [server_path]
        cmd.extend(self._config.server_args)
        return cmd

    async def start_local_server(self, server_path: str | None = None) -> ServerInstance:
        """Spawn the companion and wait for the initialize handshake.

        Raises SpawnError if the process cannot start or dies during startup,
        ReadinessTimeout if it does not answer within connectionTimeout.
        """
        self._ensure_loaded()
        if self.is_running:
            raise RuntimeError("Companion server already running")
        if self._process is not None:
            # Previous process died on its own; drop its tasks before respawning
            await self._release()
        path = server_path or self._config.local_server_path
        if not path:
            raise SpawnError(
                "No local server path configured", remediation="Run: lanonasis setup"
            )

        instance = ServerInstance(
            pid=None,
            port=self._config.server_port,
            log_path=self.settings.server_log_path,
        )
        self._status.server_instance = instance
        self._status.is_connected = False

        cmd = self._build_command(path)
        env = {
            **os.environ,
            "PORT": str(self._config.server_port),
            "LOG_LEVEL": self._config.log_level,
        }
        logger.debug("Starting: %s", " ".join(cmd))

        self._open_log(instance.log_path)
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=env,
            )
        except OSError as e:
            instance.transition(ServerStatus.ERROR)
            self._close_log()
            raise SpawnError(
                f"Could not start {cmd[0]}: {e}",
                remediation="Check that the server path and its runtime (e.g. node) are installed",
            ) from e

        if not process.pid:
            instance.transition(ServerStatus.ERROR)
            try:
                process.kill()
            except ProcessLookupError:
                pass
            self._close_log()
            raise SpawnError("Companion process started without a usable pid")

        instance.pid = process.pid
        self._process = process
        self._stop_requested = False
        self._exit_task = asyncio.create_task(self._watch_exit(process, instance))
        self._pump_tasks = [
            asyncio.create_task(self._pump_stdout(process)),
            asyncio.create_task(self._pump_stderr(process)),
        ]

        try:
            await self._handshake()
        except BaseException:
            # Includes cancellation: never leave a half-started child behind
            if instance.status is ServerStatus.STARTING:
                instance.transition(ServerStatus.ERROR)
            await self.stop_local_server()
            raise

        instance.transition(ServerStatus.RUNNING)
        logger.info("Companion server started (pid=%d)", process.pid)
        return instance

    async def _handshake(self) -> None:
        timeout = self._config.connection_timeout_s
        try:
            response = await self._request(
                "initialize", initialize_params(__version__), timeout
            )
        except asyncio.TimeoutError as e:
            raise ReadinessTimeout(
                f"Companion did not become ready within {timeout:g}s",
                remediation=f"Check server logs: {self.settings.server_log_path}",
            ) from e
        if response.is_error:
            raise SpawnError(f"Companion rejected initialize: {response.error_message}")
        await self._write_line(format_notification("notifications/initialized"))

    async def stop_local_server(self) -> None:
        """Terminate the companion, escalating to SIGKILL after the grace period.

        Safe to call repeatedly or when nothing is running.
        """
        process = self._process
        if process is None:
            return

        self._stop_requested = True
        try:
            if process.returncode is None:
                logger.info("Stopping companion server (pid=%d)", process.pid)
                await self._terminate(process)
        finally:
            await self._release()
        logger.info("Companion server stopped")

    async def _terminate(self, process: asyncio.subprocess.Process) -> None:
        exited = self._exit_task
        if exited is None:
            return
        try:
            process.terminate()
        except ProcessLookupError:
            return

        # First of {process exited, grace elapsed} wins; the loser is cancelled
        escalation = asyncio.create_task(asyncio.sleep(self.settings.stop_grace))
        try:
            done, _ = await asyncio.wait(
                {exited, escalation}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            escalation.cancel()
        if exited in done:
            return

        logger.warning(
            "Companion didn't exit within %.1fs, killing (pid=%d)",
            self.settings.stop_grace,
            process.pid,
        )
        try:
            process.kill()
        except ProcessLookupError:
            return
        done, _ = await asyncio.wait({exited}, timeout=self.settings.kill_timeout)
        if not done:
            logger.error("Companion (pid=%d) did not exit after SIGKILL", process.pid)

    async def _release(self) -> None:
        """Drop every task and handle tied to the current process."""
        instance = self._status.server_instance
        tasks = [t for t in (self._exit_task, *self._pump_tasks) if t is not None]
        for task in tasks:
            if not task.done():
                task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

        if instance is not None and instance.status is ServerStatus.RUNNING:
            # Exit was never observed
            instance.transition(ServerStatus.ERROR)

        self._fail_pending(SpawnError("Companion server stopped"))
        self._exit_task = None
        self._pump_tasks = []
        self._process = None
        self._stop_requested = False
        self._status.is_connected = False
        self._close_log()

    async def _watch_exit(self, process: asyncio.subprocess.Process, instance: ServerInstance) -> int:
        returncode = await process.wait()
        instance.exit_code = returncode
        if instance.status is ServerStatus.STARTING:
            instance.transition(ServerStatus.ERROR)
            logger.error("Companion exited during startup (code %s)", returncode)
        elif instance.status is ServerStatus.RUNNING:
            if self._stop_requested:
                instance.transition(ServerStatus.STOPPED)
            else:
                instance.transition(ServerStatus.ERROR)
                logger.warning("Companion server exited unexpectedly (code %s)", returncode)
        self._status.is_connected = False
        self._fail_pending(SpawnError(f"Companion process exited (code {returncode})"))
        return returncode

    # ── Requests over stdio ───────────────────────────────────

    async def send_request(self, method: str, params: dict[str, Any] | None = None) -> Any:
        """Send a JSON-RPC request to the running companion and return its result."""
        if not self.is_running:
            raise RuntimeError("Companion server not running — call connect_local() first")
        response = await self._request(method, params, self._config.connection_timeout_s)
        if response.is_error:
            raise RemoteError(f"{method} failed: {response.error_message}")
        return response.result

    async def list_tools(self) -> list[dict[str, Any]]:
        result = await self.send_request("tools/list")
        return (result or {}).get("tools", [])

    async def call_tool(self, name: str, arguments: dict[str, Any] | None = None) -> Any:
        """Invoke a companion tool; the companion proxies it to the memory backend."""
        return await self.send_request(
            "tools/call", {"name": name, "arguments": arguments or {}}
        )

    async def _request(
        self, method: str, params: dict[str, Any] | None, timeout: float
    ) -> Response:
        process = self._process
        if process is None or process.returncode is not None:
            raise SpawnError("Companion process is not running")

        self._next_id += 1
        request_id = self._next_id
        future: asyncio.Future[Response] = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        try:
            await self._write_line(format_request(request_id, method, params))
            return await asyncio.wait_for(future, timeout=timeout)
        finally:
            self._pending.pop(request_id, None)

    def _fail_pending(self, error: Exception) -> None:
        for future in self._pending.values():
            if not future.done():
                future.set_exception(error)
        self._pending.clear()

    async def _write_line(self, data: str) -> None:
        if not self._process or not self._process.stdin:
            raise SpawnError("Companion stdin not available")
        logger.debug("> %s", data[:200])
        try:
            self._process.stdin.write((data + "\n").encode())
            await self._process.stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as e:
            raise SpawnError(f"Companion closed its stdin: {e}") from e

    async def _pump_stdout(self, process: asyncio.subprocess.Process) -> None:
        """Route responses to waiting requests; anything else goes to the log."""
        if process.stdout is None:
            return
        while True:
            line = await process.stdout.readline()
            if not line:
                return
            decoded = line.decode(errors="replace").strip()
            if not decoded:
                continue
            logger.debug("< %s", decoded[:200])
            try:
                msg = parse_line(decoded)
            except json.JSONDecodeError:
                self._log_line(decoded)
                continue

            if isinstance(msg, Response):
                future = self._pending.get(msg.id)
                if future is not None and not future.done():
                    future.set_result(msg)
                else:
                    logger.debug("Unmatched response id=%s", msg.id)
            elif isinstance(msg, Notification):
                logger.debug("Companion notification: %s", msg.method)
            else:
                logger.debug("Ignoring companion message: %s", decoded[:200])

    async def _pump_stderr(self, process: asyncio.subprocess.Process) -> None:
        if process.stderr is None:
            return
        while True:
            line = await process.stderr.readline()
            if not line:
                return
            self._log_line(line.decode(errors="replace").rstrip())

    # ── Server log file ───────────────────────────────────────

    def _open_log(self, path: Path) -> None:
        self._close_log()
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            self._log_file = path.open("a", encoding="utf-8")
        except OSError as e:
            logger.warning("Cannot open server log %s: %s", path, e)
            self._log_file = None

    def _log_line(self, text: str) -> None:
        if self._log_file is None:
            return
        stamp = datetime.now().isoformat(timespec="seconds")
        self._log_file.write(f"{stamp} {text}\n")
        self._log_file.flush()

    def _close_log(self) -> None:
        if self._log_file is not None:
            self._log_file.close()
            self._log_file = None


def _suggestions_for(error: LanonasisError, settings: Settings) -> list[str]:
    suggestions = [error.remediation] if error.remediation else []
    if isinstance(error, ReadinessTimeout):
        suggestions.append("Increase connectionTimeout in the MCP configuration")
    suggestions.append(f"Check server logs: {settings.server_log_path}")
    return suggestions

"""Shared fakes: a scripted terminal and a scripted companion process."""

import asyncio
import json
from contextlib import contextmanager
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from lanonasis.config import Settings


class FakeTerminal:
    """Terminal that replays byte chunks once a listener is attached."""

    def __init__(self, chunks=(), *, interactive=True, raw_capable=True, size=(80, 24)):
        self.chunks = list(chunks)
        self.interactive = interactive
        self.raw_capable = raw_capable
        self._size = size
        self.is_raw = False
        self.raw_entries = 0
        self.listeners = []
        self.output: list[str] = []

    @property
    def listener_count(self) -> int:
        return len(self.listeners)

    def is_interactive(self) -> bool:
        return self.interactive

    def supports_raw_mode(self) -> bool:
        return self.raw_capable

    @contextmanager
    def raw_mode(self):
        self.is_raw = True
        self.raw_entries += 1
        try:
            yield
        finally:
            self.is_raw = False

    def add_listener(self, listener) -> None:
        self.listeners.append(listener)
        if self.chunks:
            asyncio.get_running_loop().call_soon(self._deliver)

    def remove_listener(self, listener) -> None:
        if listener in self.listeners:
            self.listeners.remove(listener)

    def _deliver(self) -> None:
        while self.chunks and self.listeners:
            self.feed(self.chunks.pop(0))

    def feed(self, data: bytes) -> None:
        for listener in list(self.listeners):
            listener(data)

    def write(self, text: str) -> None:
        self.output.append(text)

    def size(self) -> tuple[int, int]:
        return self._size


class _LineStream:
    def __init__(self) -> None:
        self.queue: asyncio.Queue[bytes] = asyncio.Queue()

    async def readline(self) -> bytes:
        return await self.queue.get()


class FakeProcess:
    """Mock asyncio.subprocess.Process that answers JSON-RPC requests."""

    def __init__(self, *, pid=4242, respond=True, exit_on_terminate=True, tools=None):
        self.pid = pid
        self.returncode = None
        self.respond = respond
        self.exit_on_terminate = exit_on_terminate
        self.tools = tools if tools is not None else [{"name": "search_memories", "description": "Search"}]
        self.written: list[dict] = []
        self.terminate_calls = 0
        self.kill_calls = 0
        self._exited = asyncio.Event()
        self.stdout = _LineStream()
        self.stderr = _LineStream()
        self.stdin = MagicMock()
        self.stdin.write = MagicMock(side_effect=self._on_write)
        self.stdin.drain = AsyncMock()

    def _on_write(self, data: bytes) -> None:
        msg = json.loads(data.decode())
        self.written.append(msg)
        if not self.respond or "id" not in msg:
            return
        method = msg["method"]
        if method == "initialize":
            reply = {"result": {"protocolVersion": "2024-11-05", "serverInfo": {"name": "fake"}}}
        elif method == "tools/list":
            reply = {"result": {"tools": self.tools}}
        elif method == "tools/call":
            reply = {"result": {"content": [{"type": "text", "text": "ok"}]}}
        else:
            reply = {"error": {"code": -32601, "message": f"Method not found: {method}"}}
        line = json.dumps({"jsonrpc": "2.0", "id": msg["id"], **reply})
        self.stdout.queue.put_nowait(line.encode() + b"\n")

    def emit_stderr(self, text: str) -> None:
        self.stderr.queue.put_nowait(text.encode() + b"\n")

    def exit(self, code: int = 0) -> None:
        if self.returncode is not None:
            return
        self.returncode = code
        self._exited.set()
        self.stdout.queue.put_nowait(b"")
        self.stderr.queue.put_nowait(b"")

    async def wait(self) -> int:
        await self._exited.wait()
        return self.returncode

    def terminate(self) -> None:
        self.terminate_calls += 1
        if self.returncode is not None:
            raise ProcessLookupError
        if self.exit_on_terminate:
            self.exit(-15)

    def kill(self) -> None:
        self.kill_calls += 1
        if self.returncode is not None:
            raise ProcessLookupError
        self.exit(-9)


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        config_dir=tmp_path / ".lanonasis",
        stop_grace=0.05,
        kill_timeout=0.05,
        retry_delay=0,
    )


@pytest.fixture
def server_file(tmp_path: Path) -> Path:
    path = tmp_path / "dist" / "mcp-server-entry.js"
    path.parent.mkdir(parents=True)
    path.write_text("// lanonasis mcp server\n")
    return path


@pytest.fixture
def terminal() -> FakeTerminal:
    return FakeTerminal()


@pytest.fixture
def make_terminal():
    return FakeTerminal


@pytest.fixture
def make_process():
    return FakeProcess

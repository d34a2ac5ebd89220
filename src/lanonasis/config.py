"""Settings loading from environment variables and lanonasis.toml."""

from __future__ import annotations

import json
import os
import sys
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

_DEFAULT_CONFIG_DIR = Path.home() / ".lanonasis"
_CONFIG_FILENAME = "lanonasis.toml"

DEFAULT_API_URL = "https://api.lanonasis.com"


@dataclass
class Settings:
    """Process-wide settings for one CLI invocation."""

    config_dir: Path = _DEFAULT_CONFIG_DIR
    log_level: str = "INFO"
    api_url: str = DEFAULT_API_URL
    stop_grace: float = 5.0
    kill_timeout: float = 3.0
    retry_delay: float = 0.5
    server_candidates: list[Path] = field(default_factory=list)

    @property
    def cli_config_path(self) -> Path:
        return self.config_dir / "config.json"

    @property
    def mcp_config_path(self) -> Path:
        return self.config_dir / "mcp-config.json"

    @property
    def onboarding_path(self) -> Path:
        return self.config_dir / "onboarding.json"

    @property
    def server_log_path(self) -> Path:
        return self.config_dir / "mcp-server.log"


def load_settings(config_path: Path | None = None) -> Settings:
    """Load settings from environment variables and optional lanonasis.toml.

    Priority: environment variables > lanonasis.toml > defaults.
    """
    file_data: dict = {}
    if config_path and config_path.exists():
        file_data = tomllib.loads(config_path.read_text())
    else:
        # Search current dir and ~/.lanonasis/
        for candidate in [Path.cwd() / _CONFIG_FILENAME, _DEFAULT_CONFIG_DIR / _CONFIG_FILENAME]:
            if candidate.exists():
                file_data = tomllib.loads(candidate.read_text())
                break

    server_data = file_data.get("server", {})
    config_dir = os.getenv("LANONASIS_CONFIG_DIR", file_data.get("config_dir"))

    return Settings(
        config_dir=Path(config_dir).expanduser() if config_dir else _DEFAULT_CONFIG_DIR,
        log_level=os.getenv("LANONASIS_LOG_LEVEL", file_data.get("log_level", "INFO")),
        api_url=os.getenv("LANONASIS_API_URL", file_data.get("api_url", DEFAULT_API_URL)),
        stop_grace=float(
            os.getenv("LANONASIS_STOP_GRACE", server_data.get("stop_grace", 5.0))
        ),
        kill_timeout=float(server_data.get("kill_timeout", 3.0)),
        retry_delay=float(server_data.get("retry_delay", 0.5)),
        server_candidates=[Path(p).expanduser() for p in server_data.get("candidates", [])],
    )


def write_json_atomic(path: Path, data: dict[str, Any]) -> None:
    """Write JSON to a sibling temp file, then rename it over ``path``.

    A crash mid-write leaves the previous file intact. Raises OSError.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            json.dump(data, fh, indent=2)
            fh.write("\n")
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise

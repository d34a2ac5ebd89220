"""First-run onboarding: default configuration plus a readiness report.

run_initial_setup() is idempotent: the default config.json is written only
when absent, an existing localServerPath is never replaced, and the four
connectivity checks run every time. Step progress is kept in onboarding.json
so a re-run picks up where the last one stopped.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from lanonasis.config import Settings, write_json_atomic
from lanonasis.errors import LanonasisError, PersistenceError
from lanonasis.mcp.connection import ConnectionManager
from lanonasis.textinput.handler import TextInputHandler

logger = logging.getLogger(__name__)

WELCOME_TIPS = """\
Getting started:
  lanonasis input      Write a memory with the inline editor
  lanonasis connect    Start and connect to the local MCP server
  lanonasis status     Show MCP connection status
Tips: Ctrl+D finishes multi-line input, Ctrl+C cancels it."""

ONBOARDING_STEPS = (
    "configure-defaults",
    "configure-mcp",
    "test-connectivity",
    "gather-preferences",
    "welcome-demo",
)

DEFAULT_USER_PREFERENCES: dict[str, Any] = {
    "inputMode": "inline",
    "autoStartMCP": True,
    "showOnboardingTips": True,
    "verboseErrors": False,
}


@dataclass
class CheckResult:
    name: str
    passed: bool
    detail: str
    remediation: str | None = None


@dataclass
class OnboardingProgress:
    """Step progress persisted to onboarding.json between runs."""

    current_step: int = 0
    completed_steps: list[str] = field(default_factory=list)
    skipped_steps: list[str] = field(default_factory=list)
    user_preferences: dict[str, Any] = field(
        default_factory=lambda: dict(DEFAULT_USER_PREFERENCES)
    )
    completed: bool = False

    @property
    def total_steps(self) -> int:
        return len(ONBOARDING_STEPS)

    @property
    def current_step_name(self) -> str | None:
        if self.current_step < len(ONBOARDING_STEPS):
            return ONBOARDING_STEPS[self.current_step]
        return None

    def mark_completed(self, step: str) -> None:
        if step in self.skipped_steps:
            self.skipped_steps.remove(step)
        if step not in self.completed_steps:
            self.completed_steps.append(step)
        self.current_step = max(self.current_step, ONBOARDING_STEPS.index(step) + 1)

    def mark_skipped(self, step: str) -> None:
        if step not in self.skipped_steps and step not in self.completed_steps:
            self.skipped_steps.append(step)
        self.current_step = max(self.current_step, ONBOARDING_STEPS.index(step) + 1)

    def to_dict(self) -> dict[str, Any]:
        return {
            "currentStep": self.current_step,
            "totalSteps": self.total_steps,
            "completedSteps": list(self.completed_steps),
            "skippedSteps": list(self.skipped_steps),
            "userPreferences": dict(self.user_preferences),
            "completed": self.completed,
        }

    @classmethod
    def from_dict(cls, data: Any) -> OnboardingProgress:
        """Raises ValueError for a document this version cannot use."""
        if not isinstance(data, dict):
            raise ValueError("onboarding state is not a JSON object")
        current = data.get("currentStep", 0)
        completed = data.get("completedSteps", [])
        skipped = data.get("skippedSteps", [])
        prefs = data.get("userPreferences", {})
        if not isinstance(current, int) or isinstance(current, bool) or current < 0:
            raise ValueError(f"currentStep must be a non-negative integer, got {current!r}")
        for name, steps in (("completedSteps", completed), ("skippedSteps", skipped)):
            if not isinstance(steps, list) or not all(s in ONBOARDING_STEPS for s in steps):
                raise ValueError(f"{name} must be a list of known step names")
        if not isinstance(prefs, dict):
            raise ValueError("userPreferences must be a JSON object")
        return cls(
            current_step=min(current, len(ONBOARDING_STEPS)),
            completed_steps=list(completed),
            skipped_steps=list(skipped),
            user_preferences={**DEFAULT_USER_PREFERENCES, **prefs},
            completed=bool(data.get("completed", False)),
        )


@dataclass
class OnboardingState:
    is_first_run: bool
    defaults_written: bool = False
    check_results: list[CheckResult] = field(default_factory=list)
    setup_error: str | None = None
    mcp_configured: bool = False
    mcp_server_path: str | None = None
    mcp_error: str | None = None
    progress: OnboardingProgress | None = None

    @property
    def ready(self) -> bool:
        return self.setup_error is None and all(r.passed for r in self.check_results)

    @property
    def issues(self) -> list[str]:
        issues = [f"{r.name}: {r.detail}" for r in self.check_results if not r.passed]
        if self.mcp_error:
            issues.insert(0, f"MCP configuration: {self.mcp_error}")
        if self.setup_error:
            issues.insert(0, self.setup_error)
        return issues


def default_cli_config(settings: Settings) -> dict[str, Any]:
    # autoMcpConnect / inputMode are read by other commands, not here
    return {
        "apiUrl": settings.api_url,
        "outputFormat": "table",
        "verboseLogging": False,
        "autoMcpConnect": True,
        "inputMode": "inline",
    }


class OnboardingFlow:
    """Detect a first run, write defaults, and report readiness."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        connection_manager: ConnectionManager | None = None,
        text_input: TextInputHandler | None = None,
    ) -> None:
        self.settings = settings or Settings()
        self.connection_manager = connection_manager or ConnectionManager(self.settings)
        self.text_input = text_input or TextInputHandler()
        self._progress: OnboardingProgress | None = None

    @property
    def config_path(self) -> Path:
        return self.settings.cli_config_path

    @property
    def progress_path(self) -> Path:
        return self.settings.onboarding_path

    @property
    def progress(self) -> OnboardingProgress:
        if self._progress is None:
            self._progress = self._load_progress()
        return self._progress

    def detect_first_run(self) -> bool:
        return not self.config_path.exists()

    def configure_defaults(self) -> bool:
        """Write the default config.json unless one exists. Returns True if written."""
        if self.config_path.exists():
            logger.debug("Keeping existing configuration at %s", self.config_path)
            return False
        try:
            write_json_atomic(self.config_path, default_cli_config(self.settings))
        except OSError as e:
            raise PersistenceError(
                f"Could not write {self.config_path}: {e}",
                remediation=f"Check permissions on {self.config_path.parent}",
            ) from e
        logger.info("Default configuration written to %s", self.config_path)
        return True

    def update_preferences(self, **preferences: Any) -> dict[str, Any]:
        """Merge preference keys into config.json, keeping every other key."""
        current: dict[str, Any] = default_cli_config(self.settings)
        if self.config_path.exists():
            try:
                current = json.loads(self.config_path.read_text(encoding="utf-8"))
            except (OSError, json.JSONDecodeError) as e:
                raise PersistenceError(f"Could not read {self.config_path}: {e}") from e
        current.update({k: v for k, v in preferences.items() if v is not None})
        try:
            write_json_atomic(self.config_path, current)
        except OSError as e:
            raise PersistenceError(f"Could not write {self.config_path}: {e}") from e
        return current

    # ── Step progress ─────────────────────────────────────────

    def _load_progress(self) -> OnboardingProgress:
        if not self.progress_path.exists():
            return OnboardingProgress()
        try:
            data = json.loads(self.progress_path.read_text(encoding="utf-8"))
            return OnboardingProgress.from_dict(data)
        except (OSError, ValueError) as e:
            logger.warning("Ignoring unreadable onboarding state %s: %s", self.progress_path, e)
            return OnboardingProgress()

    def _save_progress(self) -> bool:
        try:
            write_json_atomic(self.progress_path, self.progress.to_dict())
        except OSError as e:
            logger.warning("Could not save onboarding state to %s: %s", self.progress_path, e)
            return False
        return True

    def skip_current_step(self, reason: str | None = None) -> str | None:
        """Mark the current step skipped and move on. Returns the skipped step's name."""
        step = self.progress.current_step_name
        if step is None:
            return None
        self.progress.mark_skipped(step)
        logger.info("Skipped onboarding step %s%s", step, f": {reason}" if reason else "")
        self._save_progress()
        return step

    def complete_onboarding(self) -> OnboardingProgress:
        """Mark every step done and copy the gathered preferences into config.json.

        Raises PersistenceError if config.json cannot be updated.
        """
        progress = self.progress
        progress.current_step = progress.total_steps
        progress.completed = True
        self._save_progress()
        self.update_preferences(userPreferences=dict(progress.user_preferences))
        logger.info(
            "Onboarding complete (%d/%d steps)",
            len(progress.completed_steps),
            progress.total_steps,
        )
        return progress

    def reset_onboarding(self) -> None:
        """Forget step progress so the next run starts from the first step."""
        self._progress = OnboardingProgress()
        try:
            self.progress_path.unlink(missing_ok=True)
        except OSError as e:
            raise PersistenceError(
                f"Could not remove {self.progress_path}: {e}",
                remediation=f"Delete {self.progress_path} by hand",
            ) from e
        logger.info("Onboarding state reset")

    async def _configure_mcp(self, state: OnboardingState) -> None:
        configured = self.connection_manager.get_config().local_server_path.strip()
        if configured and Path(configured).is_file():
            state.mcp_configured = True
            state.mcp_server_path = configured
            return
        result = await self.connection_manager.auto_configure_local_server()
        state.mcp_configured = result.success
        state.mcp_server_path = result.server_path
        if not result.success:
            state.mcp_error = result.error
            logger.warning("MCP auto-configuration failed: %s", result.error)

    # ── Connectivity battery ──────────────────────────────────

    async def test_connectivity(self) -> list[CheckResult]:
        """Run the four readiness checks. Never raises."""
        checks: list[tuple[str, Callable[[], CheckResult]]] = [
            ("Companion server detection", self._check_companion),
            ("Text input", self._check_text_input),
            ("Configuration directory", self._check_config_dir),
            ("Terminal capabilities", self._check_terminal),
        ]
        results: list[CheckResult] = []
        for name, check in checks:
            try:
                results.append(check())
            except Exception as e:
                logger.warning("Check %r crashed: %s", name, e)
                results.append(
                    CheckResult(
                        name=name,
                        passed=False,
                        detail=f"Check failed unexpectedly: {e}",
                        remediation="Re-run with LANONASIS_LOG_LEVEL=DEBUG and report the log",
                    )
                )
        return results

    def _check_companion(self) -> CheckResult:
        name = "Companion server detection"
        server_path = self.connection_manager.detect_server_path()
        if server_path:
            return CheckResult(name, True, f"Found at {server_path}")
        return CheckResult(
            name,
            False,
            "Local MCP server not found",
            remediation="Reinstall the CLI or set LANONASIS_MCP_SERVER to the server entry file",
        )

    def _check_text_input(self) -> CheckResult:
        name = "Text input"
        try:
            self.text_input.dry_run()
        except LanonasisError as e:
            return CheckResult(
                name,
                False,
                f"Inline editor dry run failed: {e}",
                remediation="Reinstall the CLI package",
            )
        return CheckResult(name, True, "Inline editor dry run succeeded")

    def _check_config_dir(self) -> CheckResult:
        name = "Configuration directory"
        config_dir = self.settings.config_dir
        try:
            config_dir.mkdir(parents=True, exist_ok=True)
            fd, probe = tempfile.mkstemp(prefix=".write-test.", dir=config_dir)
            os.close(fd)
            os.unlink(probe)
        except OSError as e:
            return CheckResult(
                name,
                False,
                f"Cannot write to {config_dir}: {e.strerror or e}",
                remediation=f"Fix permissions on {config_dir} or set LANONASIS_CONFIG_DIR",
            )
        return CheckResult(name, True, f"{config_dir} is writable")

    def _check_terminal(self) -> CheckResult:
        name = "Terminal capabilities"
        terminal = self.text_input.terminal
        if not terminal.is_interactive():
            return CheckResult(
                name,
                False,
                "stdin/stdout is not an interactive terminal",
                remediation="Run from an interactive terminal to use the inline editor",
            )
        if not terminal.supports_raw_mode():
            return CheckResult(
                name,
                False,
                "Terminal does not support raw mode",
                remediation="Use a POSIX terminal emulator with termios support",
            )
        return CheckResult(name, True, "Interactive TTY with raw-mode support")

    # ── Orchestration ─────────────────────────────────────────

    async def run_initial_setup(self) -> OnboardingState:
        state = OnboardingState(is_first_run=self.detect_first_run())
        if state.is_first_run:
            # Stale step state from an earlier install does not apply
            self._progress = OnboardingProgress()
        progress = self.progress

        if state.is_first_run:
            try:
                state.defaults_written = self.configure_defaults()
            except PersistenceError as e:
                logger.warning("%s", e)
                state.setup_error = e.user_message()
        if state.setup_error is None:
            progress.mark_completed("configure-defaults")

        await self._configure_mcp(state)
        if state.mcp_configured:
            progress.mark_completed("configure-mcp")
        else:
            progress.mark_skipped("configure-mcp")

        state.check_results = await self.test_connectivity()
        progress.mark_completed("test-connectivity")
        # Defaults stand in for interactive answers until the user changes them
        progress.mark_completed("gather-preferences")
        progress.mark_completed("welcome-demo")
        self._save_progress()

        if state.setup_error is None:
            try:
                self.complete_onboarding()
            except PersistenceError as e:
                logger.warning("%s", e)
                state.setup_error = e.user_message()
        state.progress = progress
        return state


def format_report(state: OnboardingState, settings: Settings | None = None) -> str:
    """Human-readable summary of an onboarding run."""
    settings = settings or Settings()
    lines = ["Lanonasis setup: " + ("first run" if state.is_first_run else "existing configuration")]
    if state.defaults_written:
        lines.append(f"  Default configuration written to {settings.cli_config_path}")
    if state.setup_error:
        lines.append(f"  ! {state.setup_error}")
    if state.mcp_configured:
        lines.append(f"  MCP server configured: {state.mcp_server_path}")
    else:
        lines.append(f"  MCP server not configured: {state.mcp_error or 'unknown error'}")

    for result in state.check_results:
        mark = "PASS" if result.passed else "FAIL"
        lines.append(f"  [{mark}] {result.name}: {result.detail}")
        if not result.passed and result.remediation:
            lines.append(f"         -> {result.remediation}")

    passed = sum(1 for r in state.check_results if r.passed)
    lines.append(f"Ready: {passed}/{len(state.check_results)} checks passed")
    if state.progress is not None:
        progress = state.progress
        lines.append(
            f"Onboarding: {len(progress.completed_steps)}/{progress.total_steps} steps completed"
        )
        if progress.skipped_steps:
            lines.append("  Skipped: " + ", ".join(progress.skipped_steps))
    if state.is_first_run:
        lines.extend(["", WELCOME_TIPS])
    return "\n".join(lines)

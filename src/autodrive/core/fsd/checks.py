"""Automated checks (build, typecheck, test, lint) run after each attempt.

Checks run concurrently in a thread pool and all of them finish before a
verdict is made. A check whose command or script does not exist in the
project counts as passed (not applicable).
"""

from __future__ import annotations

import logging
import shlex
import subprocess
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Dict, Mapping, Optional, Protocol, Sequence

from .models import AutomatedChecks, CheckResult

logger = logging.getLogger(__name__)

DEFAULT_CHECK_COMMANDS: Dict[str, str] = {
    "build": "pnpm build",
    "typecheck": "pnpm typecheck",
    "test": "pnpm test",
    "lint": "pnpm lint",
}

DEFAULT_CHECK_TIMEOUT_SECONDS = 600

# Keep only the tail of failing output; errors are usually at the end
MAX_FAILURE_OUTPUT_CHARS = 2000

# Package-manager errors for a script the project does not define. Only
# consulted on a nonzero exit; a missing binary surfaces as FileNotFoundError.
MISSING_SCRIPT_MARKERS = (
    "Missing script",
    "ERR_PNPM_NO_SCRIPT",
)


class CheckRunnerProtocol(Protocol):
    def __call__(
        self,
        command: Sequence[str],
        *,
        cwd: str,
        timeout: Optional[float] = None,
    ) -> subprocess.CompletedProcess[str]:
        raise NotImplementedError


def default_check_runner(
    command: Sequence[str],
    *,
    cwd: str,
    timeout: Optional[float] = None,
) -> subprocess.CompletedProcess[str]:
    """Run a check command, merging stderr into stdout."""
    return subprocess.run(  # noqa: S603 - commands come from project config
        list(command),
        cwd=cwd,
        stdin=subprocess.DEVNULL,
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
        text=True,
        timeout=timeout,
        check=False,
    )


class CheckRunner:
    """Runs the configured check commands against a project."""

    def __init__(
        self,
        commands: Optional[Mapping[str, str]] = None,
        *,
        timeout: float = DEFAULT_CHECK_TIMEOUT_SECONDS,
        runner: Optional[CheckRunnerProtocol] = None,
    ) -> None:
        self.commands = dict(DEFAULT_CHECK_COMMANDS if commands is None else commands)
        self.timeout = timeout
        self._runner = runner or default_check_runner

    def run_check(self, name: str, command: str, project_path: Path) -> CheckResult:
        try:
            completed = self._runner(shlex.split(command), cwd=str(project_path), timeout=self.timeout)
        except FileNotFoundError:
            logger.debug("Check %s not applicable: %s not found", name, command)
            return CheckResult(passed=True)
        except subprocess.TimeoutExpired:
            logger.warning("Check %s timed out after %ss", name, self.timeout)
            return CheckResult(passed=False, output=f"{command} timed out after {self.timeout}s")

        output = completed.stdout or ""
        if completed.returncode == 0:
            return CheckResult(passed=True)
        if any(marker in output for marker in MISSING_SCRIPT_MARKERS):
            logger.debug("Check %s not applicable in this project", name)
            return CheckResult(passed=True)
        return CheckResult(passed=False, output=output[-MAX_FAILURE_OUTPUT_CHARS:])

    def run(self, project_path: Path) -> AutomatedChecks:
        """Run every configured check concurrently and wait for all of them."""
        if not self.commands:
            return AutomatedChecks()
        with ThreadPoolExecutor(max_workers=len(self.commands), thread_name_prefix="fsd-check") as pool:
            futures = {
                name: pool.submit(self.run_check, name, command, project_path)
                for name, command in self.commands.items()
            }
            results = {name: future.result() for name, future in futures.items()}

        failed = [name for name, result in results.items() if not result.passed]
        if failed:
            logger.info("Automated checks failed: %s", ", ".join(failed))
        return AutomatedChecks(results=results)

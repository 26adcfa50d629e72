"""Git branch isolation for FSD sessions.

All agent work happens on a dedicated ``fsd/<slug>-<timestamp>`` branch,
and a pre-push hook physically blocks ``git push`` until the session
completes. The user reviews and merges manually.

Lifecycle: ``uninitialized -> isolated -> completed``. Any setup failure
moves to ``disabled``: isolation is then skipped for the session, which is
logged but never fatal.
"""

from __future__ import annotations

import logging
import os
import re
import stat
import subprocess
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional, Protocol, Sequence, Tuple

from autodrive.core.errors.execution import GitIsolationError

from .models import GitState, utc_now

logger = logging.getLogger(__name__)

GIT_TIMEOUT_SECONDS = 30

PROTECTED_BRANCHES = frozenset({"main", "master", "develop", "production", "prod"})

HOOK_MARKER = "# FSD Mode Pre-Push Hook"
HOOK_BACKUP_SUFFIX = ".fsd-backup"

PRE_PUSH_HOOK = f"""#!/bin/sh
{HOOK_MARKER} - blocks pushes during autonomous execution
# Installed by autodrive and removed when the FSD session completes.

echo ""
echo "GIT PUSH BLOCKED"
echo "FSD mode is active. Push is blocked for safety."
echo ""
echo "You can push manually after FSD mode completes and"
echo "you have reviewed the changes."
echo ""
exit 1
"""


class GitRunnerProtocol(Protocol):
    def __call__(
        self,
        args: Sequence[str],
        *,
        cwd: str,
        timeout: Optional[float] = None,
    ) -> subprocess.CompletedProcess[str]:
        raise NotImplementedError


def default_git_runner(
    args: Sequence[str],
    *,
    cwd: str,
    timeout: Optional[float] = None,
) -> subprocess.CompletedProcess[str]:
    return subprocess.run(  # noqa: S603,S607 - fixed git invocation
        ["git", *args],
        cwd=cwd,
        capture_output=True,
        text=True,
        timeout=timeout,
        check=False,
    )


class IsolationState(str, Enum):
    UNINITIALIZED = "uninitialized"
    ISOLATED = "isolated"
    COMPLETED = "completed"
    DISABLED = "disabled"


@dataclass
class GitCompletion:
    """Summary produced when an isolated session is finalized."""

    fsd_branch: str
    original_branch: str
    diff_summary: str
    next_steps: List[str] = field(default_factory=list)


def generate_branch_name(goal: str, now: Optional[datetime] = None) -> str:
    """Build ``fsd/<slug>-<YYYYMMDDTHHMM>`` from the session goal."""
    now = now or utc_now()
    slug = re.sub(r"[^a-z0-9]+", "-", goal.lower())[:30].strip("-") or "session"
    return f"fsd/{slug}-{now.strftime('%Y%m%dT%H%M')}"


def is_protected_branch(name: str) -> bool:
    return name.lower() in PROTECTED_BRANCHES


def get_isolation_rules(fsd_branch: str) -> str:
    """Return the fixed git rule block injected into every agent prompt."""
    return f"""
## GIT RULES (MANDATORY)

You are working on FSD branch: {fsd_branch}

BLOCKED OPERATIONS:
- git push (any form) - user must review and push manually
- git checkout main/master/develop/production/prod
- git merge into main/master
- git reset --hard
- Force push of any kind

ALLOWED OPERATIONS:
- git add
- git commit
- git status/log/diff
- git checkout <feature-branch>
- git stash

If you need to push, tell the user: "Changes are ready. Please review and push manually."
"""


class GitIsolation:
    """Owns the FSD branch and pre-push hook for one project."""

    def __init__(
        self,
        cwd: Path,
        *,
        runner: Optional[GitRunnerProtocol] = None,
        on_log: Optional[Callable[[str], None]] = None,
    ) -> None:
        self.cwd = Path(cwd)
        self._runner = runner or default_git_runner
        self._on_log = on_log
        self.state = IsolationState.UNINITIALIZED
        self.git_state: Optional[GitState] = None

    # ── Helpers ────────────────────────────────────────────────────────

    def _log(self, message: str) -> None:
        logger.info(message)
        if self._on_log is not None:
            self._on_log(message)

    def _git(self, *args: str) -> Tuple[bool, str]:
        try:
            completed = self._runner(list(args), cwd=str(self.cwd), timeout=GIT_TIMEOUT_SECONDS)
        except (OSError, subprocess.TimeoutExpired) as exc:
            logger.debug("git %s failed: %s", " ".join(args), exc)
            return False, str(exc)
        output = (completed.stdout or "").strip() or (completed.stderr or "").strip()
        return completed.returncode == 0, output

    def _checkout(self, *args: str) -> None:
        """Run ``git checkout``.

        Raises:
            GitIsolationError: git refused the checkout
        """
        ok, output = self._git("checkout", *args)
        if not ok:
            raise GitIsolationError(
                f"git checkout {' '.join(args)} failed: {output}",
                remediation="Commit or stash local changes, then resume",
            )

    def is_repo(self) -> bool:
        ok, output = self._git("rev-parse", "--is-inside-work-tree")
        return ok and output == "true"

    def current_branch(self) -> Optional[str]:
        ok, output = self._git("rev-parse", "--abbrev-ref", "HEAD")
        return output if ok and output else None

    def hooks_dir(self) -> Optional[Path]:
        ok, output = self._git("rev-parse", "--git-path", "hooks")
        if not ok or not output:
            return None
        hooks = Path(output)
        if not hooks.is_absolute():
            hooks = self.cwd / hooks
        try:
            hooks.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            logger.warning("Cannot create hooks directory %s: %s", hooks, exc)
            return None
        return hooks

    # ── Pre-push hook ──────────────────────────────────────────────────

    def install_pre_push_hook(self) -> bool:
        """Install the blocking hook, backing up any foreign hook verbatim."""
        hooks = self.hooks_dir()
        if hooks is None:
            return False
        hook_path = hooks / "pre-push"
        backup_path = hooks / f"pre-push{HOOK_BACKUP_SUFFIX}"
        try:
            existing = hook_path.read_text() if hook_path.exists() else ""
            if HOOK_MARKER in existing:
                return True
            if existing:
                backup_path.write_text(existing)
                os.chmod(backup_path, hook_path.stat().st_mode)
            hook_path.write_text(PRE_PUSH_HOOK)
            os.chmod(hook_path, hook_path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
            return True
        except OSError as exc:
            logger.warning("Failed to install pre-push hook: %s", exc)
            return False

    def remove_pre_push_hook(self) -> bool:
        """Remove our hook and restore the backup. Foreign hooks are left alone."""
        hooks = self.hooks_dir()
        if hooks is None:
            return False
        hook_path = hooks / "pre-push"
        backup_path = hooks / f"pre-push{HOOK_BACKUP_SUFFIX}"
        try:
            if not hook_path.exists():
                return True
            if HOOK_MARKER not in hook_path.read_text():
                return True
            if backup_path.exists():
                os.replace(backup_path, hook_path)
            else:
                hook_path.unlink()
            return True
        except OSError as exc:
            logger.warning("Failed to remove pre-push hook: %s", exc)
            return False

    # ── Lifecycle ──────────────────────────────────────────────────────

    def start(self, goal: str, now: Optional[datetime] = None) -> Optional[GitState]:
        """Create the FSD branch and install the hook.

        Returns:
            GitState, or None when isolation is disabled for this session
        """
        if self.state != IsolationState.UNINITIALIZED:
            return self.git_state

        if not self.is_repo():
            self._log("Not a git repository - git isolation disabled")
            self.state = IsolationState.DISABLED
            return None

        original_branch = self.current_branch() or "HEAD"
        fsd_branch = generate_branch_name(goal, now)
        self._log(f"Current branch: {original_branch}")

        ok, status = self._git("status", "--porcelain")
        if ok and status:
            self._log("Warning: You have uncommitted changes. Consider committing first.")

        try:
            self._checkout("-b", fsd_branch)
        except GitIsolationError as exc:
            self._log(f"Failed to create FSD branch {fsd_branch}: {exc} - git isolation disabled")
            self.state = IsolationState.DISABLED
            return None
        self._log(f"Switched to FSD branch: {fsd_branch}")

        if self.install_pre_push_hook():
            self._log("Pre-push hook installed (git push blocked during FSD)")
        else:
            self._log("Warning: Could not install pre-push hook")

        self.git_state = GitState(is_repo=True, original_branch=original_branch, fsd_branch=fsd_branch)
        self.state = IsolationState.ISOLATED
        return self.git_state

    def restore(self, git_state: Optional[GitState]) -> Optional[GitState]:
        """Re-enter isolation from persisted state when resuming a session."""
        if git_state is None or not git_state.is_repo or not git_state.fsd_branch:
            self.state = IsolationState.DISABLED
            return None

        if self.current_branch() != git_state.fsd_branch:
            try:
                self._checkout(git_state.fsd_branch)
            except GitIsolationError as exc:
                self._log(f"Failed to return to FSD branch {git_state.fsd_branch}: {exc} - git isolation disabled")
                self.state = IsolationState.DISABLED
                return None
            self._log(f"Switched back to FSD branch: {git_state.fsd_branch}")

        self.install_pre_push_hook()
        self.git_state = git_state
        self.state = IsolationState.ISOLATED
        return git_state

    def diff_summary(self, original_branch: str) -> str:
        ok_stat, diff_stat = self._git("diff", "--stat", original_branch)
        ok_count, count = self._git("rev-list", "--count", f"{original_branch}..HEAD")
        return (
            f"Commits: {count if ok_count else '0'}\n\n"
            f"Changed files:\n{diff_stat if ok_stat and diff_stat else 'No changes'}"
        )

    def complete(self) -> Optional[GitCompletion]:
        """Remove the hook and summarize the branch for manual review."""
        if self.state != IsolationState.ISOLATED or self.git_state is None:
            return None

        self.remove_pre_push_hook()
        original = self.git_state.original_branch or "HEAD"
        fsd_branch = self.git_state.fsd_branch or ""
        completion = GitCompletion(
            fsd_branch=fsd_branch,
            original_branch=original,
            diff_summary=self.diff_summary(original),
            next_steps=[
                f"Review changes: git diff {original}",
                f"If satisfied, merge: git checkout {original} && git merge {fsd_branch}",
                f"Push: git push origin {original}",
                f"Clean up: git branch -d {fsd_branch}",
            ],
        )
        self.state = IsolationState.COMPLETED
        return completion

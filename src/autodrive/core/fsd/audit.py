"""Post-execution auditing of agent invocations.

Every agent invocation is bracketed by a content-hash snapshot of the
project tree. The diff is turned into security events (environment files
touched, CLAUDE.md rewritten, sensitive-looking files changed, deletions)
that the observer surfaces to the user.
"""

from __future__ import annotations

import dataclasses
import hashlib
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional

from autodrive.core.observability.redaction import redact_secrets
from autodrive.core.providers.base import (
    AgentExecutor,
    ExecutionOptions,
    ExecutionResult,
    StreamEvent,
)
from autodrive.core.providers.stream import redact_event
from autodrive.core.safety import SafetyCheckResult

from .models import SecurityEvent, SecurityEventType

logger = logging.getLogger(__name__)

SKIP_DIRS = frozenset(
    {
        "node_modules",
        ".git",
        "dist",
        "build",
        ".next",
        ".turbo",
        ".cache",
        "__pycache__",
        ".venv",
        ".tox",
        ".mypy_cache",
        ".pytest_cache",
    }
)

SENSITIVE_NAME_PATTERNS = (".env", ".ssh", ".aws", "credentials", "secret", "token", "password")

_HASH_CHUNK = 1 << 16


def _hash_file(path: Path) -> str:
    digest = hashlib.md5(usedforsecurity=False)
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(_HASH_CHUNK), b""):
            digest.update(chunk)
    return digest.hexdigest()


def take_file_snapshot(project_root: Path) -> Dict[str, str]:
    """Map project-relative file paths to content hashes.

    Build output and dependency directories are skipped, as are files that
    cannot be read.
    """
    root = Path(project_root)
    snapshot: Dict[str, str] = {}
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if d not in SKIP_DIRS)
        for filename in filenames:
            full_path = Path(dirpath) / filename
            if full_path.is_symlink() or not full_path.is_file():
                continue
            try:
                snapshot[full_path.relative_to(root).as_posix()] = _hash_file(full_path)
            except OSError as exc:
                logger.debug("Skipping unreadable file %s: %s", full_path, exc)
    return snapshot


@dataclass
class PostExecutionCheck:
    modified_files: List[str] = field(default_factory=list)
    new_files: List[str] = field(default_factory=list)
    deleted_files: List[str] = field(default_factory=list)
    env_modified: bool = False
    claude_md_modified: bool = False
    sensitive_files_accessed: List[str] = field(default_factory=list)


def _is_sensitive(path: str) -> bool:
    lowered = path.lower()
    return any(pattern in lowered for pattern in SENSITIVE_NAME_PATTERNS)


def analyze_post_execution(before: Dict[str, str], after: Dict[str, str]) -> PostExecutionCheck:
    """Diff two snapshots.

    Only files that changed (modified, created, or deleted) are considered
    for the sensitive-file check.
    """
    check = PostExecutionCheck()
    for path, digest in before.items():
        after_digest = after.get(path)
        if after_digest is None:
            check.deleted_files.append(path)
        elif after_digest != digest:
            check.modified_files.append(path)
    check.new_files = [path for path in after if path not in before]

    changed = check.modified_files + check.new_files + check.deleted_files
    check.sensitive_files_accessed = [path for path in changed if _is_sensitive(path)]
    check.env_modified = any(".env" in path for path in check.modified_files + check.new_files)
    check.claude_md_modified = any("CLAUDE.md" in path for path in check.modified_files)
    return check


def format_post_execution_warnings(check: PostExecutionCheck) -> List[str]:
    warnings: List[str] = []
    if check.env_modified:
        warnings.append("Environment files were modified (.env)")
    if check.claude_md_modified:
        warnings.append("CLAUDE.md was modified - please review changes")
    if check.sensitive_files_accessed:
        warnings.append(f"Sensitive files accessed: {', '.join(check.sensitive_files_accessed[:3])}")
    if check.deleted_files:
        warnings.append(f"Files deleted: {', '.join(check.deleted_files[:5])}")
    return warnings


def security_events_from(check: PostExecutionCheck) -> List[SecurityEvent]:
    return [
        SecurityEvent(type=SecurityEventType.WARNING, message=warning)
        for warning in format_post_execution_warnings(check)
    ]


def security_event_for_safety(
    result: SafetyCheckResult,
    *,
    command: Optional[str] = None,
    sensitive_approval: bool = True,
) -> Optional[SecurityEvent]:
    """Turn an unsafe analysis into a ``blocked`` or ``checkpoint`` event.

    With ``sensitive_approval`` the action waits for the user (checkpoint);
    without it the action is refused outright (blocked).
    """
    if result.safe:
        return None
    event_type = (
        SecurityEventType.CHECKPOINT
        if sensitive_approval and result.requires_approval
        else SecurityEventType.BLOCKED
    )
    return SecurityEvent(
        type=event_type,
        message=result.reason or "Unsafe action detected",
        command=redact_secrets(command) if command else None,
    )


class AuditedExecutor:
    """Wrap an :class:`AgentExecutor` with snapshots and output redaction."""

    def __init__(
        self,
        inner: AgentExecutor,
        project_root: Path,
        on_security_event: Optional[Callable[[SecurityEvent], None]] = None,
    ) -> None:
        self.inner = inner
        self.name = f"audited:{getattr(inner, 'name', 'agent')}"
        self.project_root = Path(project_root)
        self.on_security_event = on_security_event
        self.last_check: Optional[PostExecutionCheck] = None

    def _redacting(self, callback: Optional[Callable[[StreamEvent], None]]) -> Optional[Callable[[StreamEvent], None]]:
        if callback is None:
            return None

        def _emit(event: StreamEvent) -> None:
            callback(redact_event(event))

        return _emit

    def execute(self, prompt: str, options: ExecutionOptions) -> ExecutionResult:
        before = take_file_snapshot(self.project_root)
        audited_options = dataclasses.replace(
            options, on_stream_event=self._redacting(options.on_stream_event)
        )
        try:
            result = self.inner.execute(prompt, audited_options)
        finally:
            self.last_check = analyze_post_execution(before, take_file_snapshot(self.project_root))
            for event in security_events_from(self.last_check):
                logger.warning("Post-execution: %s", event.message)
                if self.on_security_event is not None:
                    self.on_security_event(event)

        return dataclasses.replace(
            result,
            output=redact_secrets(result.output),
            errors=[redact_secrets(error) for error in result.errors],
        )

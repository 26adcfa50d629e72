"""File-based persistence for resumable FSD sessions.

One session per project, stored at ``<project>/.claude/fsd-state.json``:
- Atomic writes (temp+fsync+rename) under a file lock
- Version check on load; anything unreadable is treated as absent
- Staleness window for resume eligibility
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from datetime import datetime, timedelta
from pathlib import Path
from typing import Optional

from filelock import FileLock, Timeout
from pydantic import ValidationError

from autodrive.core.errors.storage import LockAcquisitionError, StateCorrupted

from .models import (
    STATE_VERSION,
    MilestoneStatus,
    ResumeInfo,
    SavedSession,
    utc_now,
)

logger = logging.getLogger(__name__)

STATE_DIR_NAME = ".claude"
STATE_FILE_NAME = "fsd-state.json"

# Lock acquisition timeout (seconds)
LOCK_ACQUISITION_TIMEOUT = 5

# Sessions older than this are never offered for resume
STALE_AFTER = timedelta(hours=24)

_MIN_TICK = timedelta(microseconds=1)


class StateStore:
    """Save, load, and clear the single resumable session of a project."""

    def __init__(self, project_path: Path) -> None:
        self.project_path = Path(project_path)
        self.state_dir = self.project_path / STATE_DIR_NAME
        self.state_path = self.state_dir / STATE_FILE_NAME
        self.lock_path = self.state_dir / f"{STATE_FILE_NAME}.lock"
        self._last_saved_at: Optional[datetime] = None

    def _lock(self) -> FileLock:
        return FileLock(str(self.lock_path), timeout=LOCK_ACQUISITION_TIMEOUT)

    def _next_saved_at(self, previous: datetime) -> datetime:
        floor = previous
        if self._last_saved_at is not None and self._last_saved_at > floor:
            floor = self._last_saved_at
        now = utc_now()
        return now if now > floor else floor + _MIN_TICK

    # =========================================================================
    # CRUD Operations
    # =========================================================================

    def save(self, session: SavedSession) -> SavedSession:
        """Persist ``session`` atomically.

        ``saved_at`` is restamped so that it strictly increases across saves.

        Args:
            session: Session envelope to write

        Returns:
            The envelope as written (with the new ``saved_at``)

        Raises:
            LockAcquisitionError: If the state lock cannot be acquired
        """
        self.state_dir.mkdir(parents=True, exist_ok=True)
        stamped = session.model_copy(
            update={"saved_at": self._next_saved_at(session.saved_at), "version": STATE_VERSION}
        )
        data = stamped.model_dump(mode="json")

        try:
            with self._lock():
                fd, temp_path = tempfile.mkstemp(
                    dir=self.state_dir,
                    prefix=f".{STATE_FILE_NAME}.",
                    suffix=".tmp",
                )
                try:
                    with os.fdopen(fd, "w") as f:
                        json.dump(data, f, indent=2)
                        f.flush()
                        os.fsync(f.fileno())

                    # Atomic rename
                    os.replace(temp_path, self.state_path)
                except Exception:
                    # Clean up temp file on error
                    try:
                        os.unlink(temp_path)
                    except OSError:
                        pass
                    raise
        except Timeout as exc:
            raise LockAcquisitionError(
                f"Could not lock {self.lock_path} within {LOCK_ACQUISITION_TIMEOUT}s"
            ) from exc

        self._last_saved_at = stamped.saved_at
        logger.debug("Saved FSD session %s to %s", stamped.session_id, self.state_path)
        return stamped

    def load(self) -> Optional[SavedSession]:
        """Load the saved session.

        Returns:
            The session, or None if the file is missing, malformed, fails
            validation, or carries a different envelope version
        """
        if not self.state_path.exists():
            return None

        try:
            with self._lock():
                if not self.state_path.exists():
                    return None
                raw = self.state_path.read_text()
        except Timeout:
            logger.warning("Timed out waiting for state lock %s; treating state as absent", self.lock_path)
            return None

        try:
            session = self._parse(raw)
        except StateCorrupted as exc:
            logger.warning("Ignoring saved session: %s", exc)
            return None

        if self._last_saved_at is None or session.saved_at > self._last_saved_at:
            self._last_saved_at = session.saved_at
        return session

    def _parse(self, raw: str) -> SavedSession:
        """Decode and validate a state file body.

        Raises:
            StateCorrupted: Malformed JSON, wrong envelope version, or
                failed validation
        """
        path = str(self.state_path)
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise StateCorrupted(path, f"invalid JSON ({exc})") from exc

        if not isinstance(data, dict):
            raise StateCorrupted(path, "expected a JSON object")
        if data.get("version") != STATE_VERSION:
            raise StateCorrupted(path, f"unsupported version {data.get('version')!r}")

        try:
            return SavedSession.model_validate(data)
        except ValidationError as exc:
            raise StateCorrupted(path, f"{exc.error_count()} validation error(s)") from exc

    def clear(self) -> bool:
        """Delete the saved session. Idempotent.

        Returns:
            True if a state file was removed
        """
        removed = False
        try:
            with self._lock():
                try:
                    self.state_path.unlink()
                    removed = True
                    logger.debug("Cleared FSD state %s", self.state_path)
                except FileNotFoundError:
                    pass
        except Timeout as exc:
            raise LockAcquisitionError(
                f"Could not lock {self.lock_path} within {LOCK_ACQUISITION_TIMEOUT}s"
            ) from exc

        try:
            self.lock_path.unlink()
        except OSError:
            pass
        return removed

    # =========================================================================
    # Resume helpers
    # =========================================================================

    def is_resumable(self, now: Optional[datetime] = None) -> bool:
        """True if a saved session exists, is fresh, and has unfinished milestones."""
        session = self.load()
        if session is None:
            return False
        now = now or utc_now()
        if now - session.saved_at > STALE_AFTER:
            logger.debug("Saved session %s is stale (saved %s)", session.session_id, session.saved_at)
            return False
        return any(m.status != MilestoneStatus.COMPLETED for m in session.plan.milestones)

    def resume_info(self, now: Optional[datetime] = None) -> Optional[ResumeInfo]:
        """Summarize the saved session for a resume prompt."""
        session = self.load()
        if session is None:
            return None
        total = len(session.plan.milestones)
        completed = sum(1 for m in session.plan.milestones if m.status == MilestoneStatus.COMPLETED)
        return ResumeInfo(
            goal=session.goal,
            completed=completed,
            total=total,
            elapsed_minutes=session.execution_state.elapsed_minutes(now),
            saved_at=session.saved_at,
        )

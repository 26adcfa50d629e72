"""Abort signalling for a running FSD session.

In-process, the session owns an :class:`AbortSignal` (a thread-safe flag).
Out-of-process, ``autodrive stop`` writes a well-known stop file that the
signal also honours:

    <project>/.claude/fsd.stop
"""

from __future__ import annotations

import json
import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

STOP_SIGNAL_FILE_NAME = "fsd.stop"


def stop_signal_path(project_path: Path) -> Path:
    """Return the canonical stop-signal file path for a project."""
    return Path(project_path) / ".claude" / STOP_SIGNAL_FILE_NAME


def write_stop_signal(
    project_path: Path,
    requested_by: str = "autodrive-cli",
    reason: str = "operator_stop",
) -> Path:
    """Write a stop signal file for the project.

    Args:
        project_path: Project root.
        requested_by: Identifier of the component requesting the stop.
        reason: Machine-readable stop reason.

    Returns:
        Path to the written signal file.
    """
    sig_file = stop_signal_path(project_path)
    sig_file.parent.mkdir(parents=True, exist_ok=True)
    payload = {
        "requested_at": datetime.now(timezone.utc).isoformat(),
        "requested_by": requested_by,
        "reason": reason,
    }
    sig_file.write_text(json.dumps(payload, indent=2))
    return sig_file


def read_stop_signal(project_path: Path) -> Optional[Dict[str, Any]]:
    """Return the stop payload if a stop file exists, else None."""
    sig_file = stop_signal_path(project_path)
    if not sig_file.exists():
        return None
    try:
        payload = json.loads(sig_file.read_text())
    except (json.JSONDecodeError, OSError) as exc:
        logger.warning("Unreadable stop signal %s: %s", sig_file, exc)
        return {"reason": "operator_stop"}
    return payload if isinstance(payload, dict) else {"reason": "operator_stop"}


def clear_stop_signal(project_path: Path) -> None:
    try:
        stop_signal_path(project_path).unlink()
    except FileNotFoundError:
        pass


class AbortSignal:
    """Session-wide abort flag.

    ``is_set()`` also trips when the project's stop file appears, so an
    operator can stop a session from another terminal.
    """

    def __init__(self, project_path: Optional[Path] = None) -> None:
        self._event = threading.Event()
        self._project_path = Path(project_path) if project_path is not None else None
        self.reason: Optional[str] = None

    def set(self, reason: str = "aborted") -> None:
        if not self._event.is_set():
            self.reason = reason
            logger.info("Abort requested: %s", reason)
        self._event.set()

    def is_set(self) -> bool:
        if self._event.is_set():
            return True
        if self._project_path is not None:
            payload = read_stop_signal(self._project_path)
            if payload is not None:
                self.set(str(payload.get("reason") or "operator_stop"))
                return True
        return False

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self._event.wait(timeout)

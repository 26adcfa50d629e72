"""Cooperative pause gate for the execution loop.

The loop calls :meth:`PauseController.wait_if_paused` at safe points
(between milestones, after checks, after QA). Any other thread (CLI input,
signal handler) may call :meth:`pause` / :meth:`resume`.
"""

from __future__ import annotations

import logging
import threading
from typing import Optional

logger = logging.getLogger(__name__)


class PauseController:
    """Condition-variable pause/resume gate.

    - ``pause()`` is idempotent.
    - ``resume()`` wakes every waiter; it is a no-op when not paused.
    - ``reset()`` disarms unconditionally (used when a session restarts).
    """

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._paused = False

    @property
    def is_paused(self) -> bool:
        with self._cond:
            return self._paused

    def pause(self) -> None:
        with self._cond:
            if not self._paused:
                logger.debug("Pause requested")
            self._paused = True

    def resume(self) -> None:
        with self._cond:
            if not self._paused:
                return
            self._paused = False
            self._cond.notify_all()
            logger.debug("Resumed")

    def wait_if_paused(self, timeout: Optional[float] = None) -> bool:
        """Block while paused.

        Args:
            timeout: Maximum seconds to wait (None waits indefinitely)

        Returns:
            True if not paused on return, False if the timeout elapsed first
        """
        with self._cond:
            return self._cond.wait_for(lambda: not self._paused, timeout=timeout)

    def reset(self) -> None:
        with self._cond:
            self._paused = False
            self._cond.notify_all()

"""Error-to-code mapping registry.

Gives the CLI a single place to turn an exception into the
``(error_code, error_type)`` pair it reports in its JSON envelope.

Usage:
    from autodrive.core.errors.base import error_to_response

    try:
        do_something()
    except Exception as e:
        mapped = error_to_response(e)
        if mapped is None:
            raise
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Tuple, Type

from autodrive.core.errors.execution import (
    AutodriveError,
    BudgetExceededError,
    GitIsolationError,
    PlanValidationError,
    SafetyViolationError,
)
from autodrive.core.errors.provider import (
    AgentAbortedError,
    AgentInvocationError,
    AgentTimeoutError,
    AgentUnavailableError,
)
from autodrive.core.errors.storage import LockAcquisitionError, StateCorrupted

ERROR_MAPPINGS: Dict[Type[Exception], Tuple[str, str]] = {
    # --- Agent errors ---
    AgentUnavailableError: ("UNAVAILABLE", "unavailable"),
    AgentTimeoutError: ("AGENT_TIMEOUT", "unavailable"),
    AgentAbortedError: ("ABORTED", "cancelled"),
    AgentInvocationError: ("AGENT_ERROR", "agent"),
    # --- Execution errors ---
    BudgetExceededError: ("BUDGET_EXCEEDED", "budget"),
    SafetyViolationError: ("SAFETY_VIOLATION", "forbidden"),
    GitIsolationError: ("GIT_ISOLATION_ERROR", "git"),
    PlanValidationError: ("VALIDATION_ERROR", "validation"),
    AutodriveError: ("AUTODRIVE_ERROR", "internal"),
    # --- Storage errors ---
    LockAcquisitionError: ("LOCK_TIMEOUT", "conflict"),
    StateCorrupted: ("STATE_CORRUPTED", "storage"),
}


def error_to_response(exc: Exception) -> Optional[Dict[str, Any]]:
    """Map an exception to an error payload, or None for unknown errors.

    The most specific registered class wins, so subclasses listed before
    their bases in ``ERROR_MAPPINGS`` take precedence.
    """
    for exc_type in type(exc).__mro__:
        if exc_type in ERROR_MAPPINGS:
            code, error_type = ERROR_MAPPINGS[exc_type]
            payload: Dict[str, Any] = {
                "message": str(exc),
                "code": code,
                "error_type": error_type,
            }
            if isinstance(exc, AutodriveError):
                payload["remediation"] = exc.remediation
                payload["details"] = exc.details
            return payload
    return None

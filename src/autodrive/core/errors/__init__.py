"""Unified error hierarchy for autodrive.

Exception classes live in domain-specific modules within this package;
this __init__ re-exports them for convenient access.
"""

from autodrive.core.errors.base import ERROR_MAPPINGS, error_to_response
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

__all__ = [
    "ERROR_MAPPINGS",
    "error_to_response",
    "AutodriveError",
    "BudgetExceededError",
    "GitIsolationError",
    "PlanValidationError",
    "SafetyViolationError",
    "AgentAbortedError",
    "AgentInvocationError",
    "AgentTimeoutError",
    "AgentUnavailableError",
    "LockAcquisitionError",
    "StateCorrupted",
]

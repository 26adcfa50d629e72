"""Execution-loop error classes.

These carry structured context so that the CLI can render what failed,
for which milestone, and whether session state was saved.
"""

from typing import Any, Optional


class AutodriveError(RuntimeError):
    """Structured error for the execution engine."""

    code: str = "AUTODRIVE_ERROR"

    def __init__(
        self,
        message: str,
        *,
        remediation: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.remediation = remediation
        self.details = details or {}


class BudgetExceededError(AutodriveError):
    """Raised when the estimated spend reached the configured maximum."""

    code = "BUDGET_EXCEEDED"

    def __init__(
        self,
        message: str,
        *,
        estimated_cost: float,
        max_cost: float,
        milestone_id: Optional[str] = None,
    ) -> None:
        super().__init__(
            message,
            remediation="Raise --max-cost or resume with a fresh budget",
            details={
                "estimated_cost": estimated_cost,
                "max_cost": max_cost,
                "milestone_id": milestone_id,
            },
        )
        self.estimated_cost = estimated_cost
        self.max_cost = max_cost
        self.milestone_id = milestone_id


class GitIsolationError(AutodriveError):
    """Raised when an isolation branch or pre-push hook operation fails."""

    code = "GIT_ISOLATION_ERROR"


class SafetyViolationError(AutodriveError):
    """Raised when an action is refused by the safety analyzer."""

    code = "SAFETY_VIOLATION"

    def __init__(self, message: str, *, label: Optional[str] = None, command: Optional[str] = None) -> None:
        super().__init__(message, details={"label": label, "command": command})
        self.label = label
        self.command = command


class PlanValidationError(AutodriveError):
    """Raised when a plan file is malformed or references unknown milestones."""

    code = "VALIDATION_ERROR"

"""
Pydantic models for full self-driving (FSD) execution state.

Models are designed for file-backed persistence: ``SavedSession`` is the
versioned envelope written to ``.claude/fsd-state.json`` and everything it
contains round-trips through ``model_dump(mode="json")`` /
``model_validate``.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Iterable, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from ulid import ULID

ESTIMATED_COST_PER_PROMPT = 0.10
"""Conservative per-prompt cost floor in USD used when the agent reports nothing."""

STATE_VERSION = 1
"""Envelope version of the persisted session file."""


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_session_id() -> str:
    """Generate a ULID-format session identifier."""
    return str(ULID())


# =============================================================================
# Enums
# =============================================================================


class MilestoneSize(str, Enum):
    """Relative milestone size estimated by the planner."""

    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"


class MilestoneStatus(str, Enum):
    """Milestone lifecycle status. Milestones are never deleted."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class ExecutionMode(str, Enum):
    """Top-level mode of an FSD session."""

    PLANNING = "planning"
    EXECUTING = "executing"
    REVIEWING = "reviewing"
    WAITING_USER = "waiting_user"
    PAUSED = "paused"
    COMPLETED = "completed"


class SecurityEventType(str, Enum):
    """Kinds of security events surfaced to the observer."""

    WARNING = "warning"
    BLOCKED = "blocked"
    CHECKPOINT = "checkpoint"
    APPROVED = "approved"


class QAStatus(str, Enum):
    PASS = "PASS"
    FAIL = "FAIL"


class QASeverity(str, Enum):
    CRITICAL = "critical"
    MAJOR = "major"
    MINOR = "minor"


class MilestoneOutcome(str, Enum):
    """Three-valued result of executing one milestone.

    ``NEEDS_REPLAN`` means the retry budget was exhausted; the plan executor
    stops auto-continuing unless the caller confirms.
    """

    SUCCESS = "success"
    FAILED = "failed"
    NEEDS_REPLAN = "needs_replan"


# =============================================================================
# Plan
# =============================================================================


class Milestone(BaseModel):
    """One independently verifiable unit of work."""

    id: str = Field(..., min_length=1, description="Stable unique milestone identifier")
    title: str = Field(..., description="Short human-readable title")
    description: str = Field("", description="What to build")
    success_criteria: str = Field("", description="How completion is judged")
    size: MilestoneSize = Field(MilestoneSize.MEDIUM, description="Planner size estimate")
    depends_on: List[str] = Field(default_factory=list, description="Prerequisite milestone ids")
    qa_goal: str = Field("", description="What the QA agent should verify")
    status: MilestoneStatus = Field(MilestoneStatus.PENDING, description="Lifecycle status")

    def dependencies_met(self, completed: Iterable[str]) -> bool:
        """True when every prerequisite id is in ``completed``."""
        done = set(completed)
        return all(dep in done for dep in self.depends_on)


class UserBlocker(BaseModel):
    """Something only the user can do (API keys, accounts) before a milestone."""

    id: str
    description: str
    check_instruction: str = ""
    required_for: List[str] = Field(default_factory=list)
    completed: bool = False


class Plan(BaseModel):
    """Ordered milestone list produced by the planner."""

    milestones: List[Milestone] = Field(default_factory=list)
    user_blockers: List[UserBlocker] = Field(default_factory=list)
    estimated_cost: float = Field(0.0, ge=0)
    estimated_time_minutes: int = Field(0, ge=0)
    risks: List[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_milestone_ids(self) -> "Plan":
        """Milestone ids are unique and dependencies reference known ids."""
        seen: set[str] = set()
        for milestone in self.milestones:
            if milestone.id in seen:
                raise ValueError(f"Duplicate milestone id: {milestone.id}")
            seen.add(milestone.id)
        for milestone in self.milestones:
            unknown = [dep for dep in milestone.depends_on if dep not in seen]
            if unknown:
                raise ValueError(
                    f"Milestone {milestone.id} depends on unknown milestone(s): {', '.join(unknown)}"
                )
        return self

    def get(self, milestone_id: str) -> Optional[Milestone]:
        for milestone in self.milestones:
            if milestone.id == milestone_id:
                return milestone
        return None

    def all_completed(self) -> bool:
        return all(m.status == MilestoneStatus.COMPLETED for m in self.milestones)

    def pending_blockers(self) -> List[UserBlocker]:
        return [b for b in self.user_blockers if not b.completed]


# =============================================================================
# Execution state
# =============================================================================


class InteractiveEntry(BaseModel):
    """A user instruction or agent reply exchanged while the session was paused."""

    role: Literal["user", "assistant"]
    content: str
    timestamp: datetime = Field(default_factory=utc_now)


class ExecutionState(BaseModel):
    """Mutable progress of an FSD session.

    Cost is tracked two ways: ``reported_cost`` sums what the agent reported,
    and ``total_cost`` is the budget-relevant figure, never lower than the
    per-prompt estimate. ``total_cost`` is monotonically non-decreasing.
    """

    mode: ExecutionMode = ExecutionMode.PLANNING
    current_milestone_id: Optional[str] = None
    completed_milestones: List[str] = Field(default_factory=list)
    failed_attempts: int = Field(0, ge=0)
    total_cost: float = Field(0.0, ge=0)
    reported_cost: float = Field(0.0, ge=0)
    total_prompts: int = Field(0, ge=0)
    learnings: List[str] = Field(default_factory=list)
    start_time: datetime = Field(default_factory=utc_now)
    agent_session_id: Optional[str] = Field(None, description="Agent resume token")
    interactive_history: List[InteractiveEntry] = Field(default_factory=list)

    def record_cost(self, amount: float) -> None:
        """Raise ``total_cost`` to ``amount``; never lowers it."""
        if amount > self.total_cost:
            self.total_cost = amount

    def record_prompt(self, reported_cost_usd: Optional[float] = None) -> None:
        """Count one agent invocation and update cost accounting."""
        self.total_prompts += 1
        if reported_cost_usd:
            self.reported_cost += max(0.0, reported_cost_usd)
        self.record_cost(max(self.total_prompts * ESTIMATED_COST_PER_PROMPT, self.reported_cost))

    def add_learning(self, learning: str) -> bool:
        """Append ``learning`` unless already present. Returns True if added."""
        if not learning or learning in self.learnings:
            return False
        self.learnings.append(learning)
        return True

    def mark_completed(self, milestone_id: str) -> None:
        if milestone_id not in self.completed_milestones:
            self.completed_milestones.append(milestone_id)

    def elapsed_minutes(self, now: Optional[datetime] = None) -> int:
        now = now or utc_now()
        return max(0, int((now - self.start_time).total_seconds() // 60))


class FSDConfig(BaseModel):
    """Immutable limits for one FSD session."""

    model_config = ConfigDict(frozen=True)

    max_cost: float = Field(10.0, gt=0, description="Budget ceiling in USD")
    max_iterations_per_milestone: int = Field(5, ge=1)
    max_total_prompts: int = Field(100, ge=1)
    checkpoint_interval: int = Field(3, ge=0, description="Pause every N completed milestones (0 = never)")
    sensitive_approval: bool = Field(True, description="Require approval for flagged actions")
    auto_resume: bool = False


class GitState(BaseModel):
    """Git isolation provenance. ``original_branch`` is read-only once set."""

    is_repo: bool
    original_branch: Optional[str] = None
    fsd_branch: Optional[str] = None


class SecurityEvent(BaseModel):
    """Ephemeral safety signal emitted during execution."""

    type: SecurityEventType
    message: str
    command: Optional[str] = None


# =============================================================================
# Checks and QA
# =============================================================================


class CheckResult(BaseModel):
    passed: bool
    output: Optional[str] = None


class AutomatedChecks(BaseModel):
    """Results of the automated check commands keyed by check name."""

    results: Dict[str, CheckResult] = Field(default_factory=dict)

    @property
    def all_passed(self) -> bool:
        return all(result.passed for result in self.results.values())

    def failures(self) -> Dict[str, CheckResult]:
        return {name: result for name, result in self.results.items() if not result.passed}


class QAIssue(BaseModel):
    severity: QASeverity
    description: str
    evidence: Optional[str] = None
    suggestion: Optional[str] = None


class QASummary(BaseModel):
    total_flows: int = 0
    passed: int = 0
    failed: int = 0


class QAResult(BaseModel):
    """Structured verdict of a QA agent run.

    A critical issue always forces ``FAIL``, whatever the report claimed.
    """

    status: QAStatus
    summary: QASummary = Field(default_factory=QASummary)
    test_approach: List[str] = Field(default_factory=list)
    issues: List[QAIssue] = Field(default_factory=list)
    console_errors: List[str] = Field(default_factory=list)
    network_failures: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
    incomplete: bool = Field(False, description="Agent did not produce a report")

    @model_validator(mode="after")
    def force_fail_on_critical(self) -> "QAResult":
        if self.status == QAStatus.PASS and self.critical_issues:
            self.status = QAStatus.FAIL
        return self

    @property
    def critical_issues(self) -> List[QAIssue]:
        return [issue for issue in self.issues if issue.severity == QASeverity.CRITICAL]


class MilestoneResult(BaseModel):
    status: MilestoneOutcome
    automated_checks: Optional[AutomatedChecks] = None
    errors: List[str] = Field(default_factory=list)
    learnings: List[str] = Field(default_factory=list)
    qa_report_path: Optional[str] = None


# =============================================================================
# Persistence envelope and summaries
# =============================================================================


class SavedSession(BaseModel):
    """Versioned, self-contained snapshot of a resumable session."""

    version: int = STATE_VERSION
    saved_at: datetime = Field(default_factory=utc_now)
    session_id: str = Field(default_factory=new_session_id)
    goal: str
    plan: Plan
    execution_state: ExecutionState
    config: FSDConfig
    git_state: Optional[GitState] = None

    @field_validator("goal")
    @classmethod
    def goal_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("goal must not be blank")
        return value


class ResumeInfo(BaseModel):
    goal: str
    completed: int
    total: int
    elapsed_minutes: int
    saved_at: datetime


class SessionSummary(BaseModel):
    """End-of-session report handed to the observer."""

    milestones_completed: int
    milestones_total: int
    total_prompts: int
    total_cost: float
    elapsed_minutes: int
    failed_attempts: int
    learnings: List[str] = Field(default_factory=list)
    outcomes: Dict[str, MilestoneStatus] = Field(default_factory=dict)
    results: Dict[str, MilestoneOutcome] = Field(
        default_factory=dict, description="Executor outcome per milestone that ran"
    )
    skip_reasons: Dict[str, str] = Field(default_factory=dict)
    stopped_reason: Optional[str] = None
    state_saved: bool = False
    state_cleared: bool = False

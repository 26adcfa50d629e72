"""Full self-driving (FSD) execution engine.

Runs a milestone plan autonomously through an external coding agent with
budget enforcement, safety screening, git isolation, resumable state, and
QA verification.
"""

from autodrive.core.fsd.budget import BudgetDecision, BudgetLevel, check_budget, check_prompt_limit
from autodrive.core.fsd.checks import DEFAULT_CHECK_COMMANDS, CheckRunner
from autodrive.core.fsd.context import ExecutionContext
from autodrive.core.fsd.executor import PlanExecutor
from autodrive.core.fsd.git_isolation import GitIsolation, generate_branch_name, get_isolation_rules
from autodrive.core.fsd.milestone import MilestoneExecutor, derive_learning
from autodrive.core.fsd.models import (
    ExecutionMode,
    ExecutionState,
    FSDConfig,
    GitState,
    Milestone,
    MilestoneOutcome,
    MilestoneResult,
    MilestoneStatus,
    Plan,
    QAResult,
    QAStatus,
    SavedSession,
    SessionSummary,
)
from autodrive.core.fsd.observer import ConsoleObserver, FSDObserver, LoggingObserver
from autodrive.core.fsd.pause import PauseController
from autodrive.core.fsd.qa import QAAgent, QALoop, parse_qa_report, save_qa_report
from autodrive.core.fsd.signals import AbortSignal, write_stop_signal
from autodrive.core.fsd.state import StateStore

__all__ = [
    "AbortSignal",
    "BudgetDecision",
    "BudgetLevel",
    "CheckRunner",
    "ConsoleObserver",
    "DEFAULT_CHECK_COMMANDS",
    "ExecutionContext",
    "ExecutionMode",
    "ExecutionState",
    "FSDConfig",
    "FSDObserver",
    "GitIsolation",
    "GitState",
    "LoggingObserver",
    "Milestone",
    "MilestoneExecutor",
    "MilestoneOutcome",
    "MilestoneResult",
    "MilestoneStatus",
    "PauseController",
    "Plan",
    "PlanExecutor",
    "QAAgent",
    "QALoop",
    "QAResult",
    "QAStatus",
    "SavedSession",
    "SessionSummary",
    "StateStore",
    "check_budget",
    "check_prompt_limit",
    "derive_learning",
    "generate_branch_name",
    "get_isolation_rules",
    "parse_qa_report",
    "save_qa_report",
    "write_stop_signal",
]

"""Plan executor: runs an ordered milestone plan end to end.

The executor owns one FSD session for one project directory. It sets up git
isolation, threads an :class:`ExecutionContext` through the milestone and QA
loops, persists state around every milestone, and asks the observer before
continuing past failures. Everything it needs is injected; there is no
module-level session state.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Optional

from autodrive.core.errors.execution import BudgetExceededError
from autodrive.core.errors.provider import AgentInvocationError
from autodrive.core.errors.storage import LockAcquisitionError
from autodrive.core.observability.redaction import redact_secrets
from autodrive.core.providers.base import AgentExecutor
from autodrive.core.safety import get_safety_rules

from .audit import AuditedExecutor
from .checks import CheckRunner
from .context import ExecutionContext
from .git_isolation import GitIsolation, get_isolation_rules
from .milestone import MilestoneExecutor
from .models import (
    ExecutionMode,
    ExecutionState,
    FSDConfig,
    GitState,
    InteractiveEntry,
    Milestone,
    MilestoneOutcome,
    MilestoneStatus,
    Plan,
    QAStatus,
    SavedSession,
    SessionSummary,
    new_session_id,
)
from .observer import FSDObserver
from .pause import PauseController
from .prompts import combine_rules
from .qa import QALoop
from .signals import AbortSignal, clear_stop_signal
from .state import StateStore

logger = logging.getLogger(__name__)

SKIP_ALREADY_COMPLETED = "already completed"
SKIP_DEPENDENCIES_NOT_MET = "dependencies not met"


class PlanExecutor:
    """Execute a plan's milestones in list order.

    Args:
        project_path: Project root the agent works in
        goal: Session goal, used for the branch name and persisted state
        plan: Milestones to run; statuses are updated in place
        config: Session limits
        agent: Agent backend; wrapped in an :class:`AuditedExecutor`
        observer: Receives progress and answers confirmations
        checks: Automated check runner (defaults to the pnpm checks)
        store: State store (defaults to ``<project>/.claude``)
        git: Git isolation manager
        pause: Pause gate shared with whoever drives the session
        abort_signal: Session abort flag (honours the stop file by default)
        state: Restored execution state when resuming
        git_state: Restored git provenance when resuming
        session_id: Restored session id when resuming
        qa_enabled: Run the QA loop after each successful milestone
        checkpoint: Ask for confirmation every ``config.checkpoint_interval``
            completed milestones
    """

    def __init__(
        self,
        project_path: Path,
        goal: str,
        plan: Plan,
        config: FSDConfig,
        agent: AgentExecutor,
        *,
        observer: Optional[FSDObserver] = None,
        checks: Optional[CheckRunner] = None,
        store: Optional[StateStore] = None,
        git: Optional[GitIsolation] = None,
        pause: Optional[PauseController] = None,
        abort_signal: Optional[AbortSignal] = None,
        state: Optional[ExecutionState] = None,
        git_state: Optional[GitState] = None,
        session_id: Optional[str] = None,
        qa_enabled: bool = True,
        checkpoint: bool = False,
        agent_timeout: Optional[float] = None,
        allowed_tools: Optional[List[str]] = None,
        model: Optional[str] = None,
    ) -> None:
        self.project_path = Path(project_path).resolve()
        self.goal = goal
        self.plan = plan
        self.config = config
        self.observer = observer or FSDObserver()
        self.store = store or StateStore(self.project_path)
        self.git = git or GitIsolation(self.project_path, on_log=self.observer.output)
        self.git_state = git_state
        self._resuming = state is not None
        self.session_id = session_id or new_session_id()
        self.qa_enabled = qa_enabled
        self.checkpoint = checkpoint

        self.ctx = ExecutionContext(
            project_path=self.project_path,
            state=state or ExecutionState(),
            config=config,
            agent=AuditedExecutor(agent, self.project_path, on_security_event=self.observer.security_event),
            checks=checks or CheckRunner(),
            observer=self.observer,
            abort_signal=abort_signal or AbortSignal(self.project_path),
            pause=pause or PauseController(),
            rules=get_safety_rules(str(self.project_path)),
            agent_timeout=agent_timeout,
            allowed_tools=allowed_tools,
            model=model,
        )

    @classmethod
    def from_saved(cls, session: SavedSession, project_path: Path, agent: AgentExecutor, **kwargs) -> "PlanExecutor":
        """Rebuild an executor from a persisted session for resume."""
        return cls(
            project_path,
            session.goal,
            session.plan,
            session.config,
            agent,
            state=session.execution_state,
            git_state=session.git_state,
            session_id=session.session_id,
            **kwargs,
        )

    @property
    def state(self) -> ExecutionState:
        return self.ctx.state

    @property
    def pause(self) -> PauseController:
        return self.ctx.pause

    @property
    def abort_signal(self) -> AbortSignal:
        return self.ctx.abort_signal

    # ── Persistence ────────────────────────────────────────────────────

    def snapshot(self) -> SavedSession:
        return SavedSession(
            session_id=self.session_id,
            goal=self.goal,
            plan=self.plan,
            execution_state=self.state,
            config=self.config,
            git_state=self.git_state,
        )

    def persist(self) -> bool:
        """Save the session. A failed save is reported but never fatal."""
        try:
            self.store.save(self.snapshot())
        except (LockAcquisitionError, OSError) as exc:
            logger.warning("Failed to persist FSD state: %s", exc)
            self.observer.error(f"Failed to save session state: {exc}")
            return False
        return True

    # ── Setup ──────────────────────────────────────────────────────────

    def _setup_isolation(self) -> None:
        if self._resuming:
            # A session saved without git state ran unisolated and stays that way
            self.git_state = self.git.restore(self.git_state)
        else:
            self.git_state = self.git.start(self.goal)

        isolation_rules = None
        if self.git_state is not None and self.git_state.fsd_branch:
            self.observer.git_branch(self.git_state)
            isolation_rules = get_isolation_rules(self.git_state.fsd_branch)
        self.ctx.rules = combine_rules(isolation_rules, get_safety_rules(str(self.project_path)))

    def _checkpoint_due(self) -> bool:
        interval = self.config.checkpoint_interval
        if not self.checkpoint or interval <= 0:
            return False
        completed = sum(1 for m in self.plan.milestones if m.status == MilestoneStatus.COMPLETED)
        return completed > 0 and completed % interval == 0

    # ── Main loop ──────────────────────────────────────────────────────

    def _run_qa(self, milestone: Milestone) -> Optional[str]:
        """Run QA for a completed milestone; returns a stop reason if the user stops."""
        self.observer.qa_start(milestone)
        outcome = QALoop(self.ctx).run(milestone)
        self.persist()
        if outcome.result.status == QAStatus.FAIL and outcome.result.critical_issues:
            if not self.observer.confirm(
                f"QA found {len(outcome.result.critical_issues)} critical issue(s) in "
                f"'{milestone.title}'. Continue to next milestone anyway?",
                default=False,
            ):
                return f"Stopped after QA failure in {milestone.id}"
        return None

    def _run_milestones(self, results: Dict[str, MilestoneOutcome], skip_reasons: Dict[str, str]) -> Optional[str]:
        state = self.state
        total = len(self.plan.milestones)

        for index, milestone in enumerate(self.plan.milestones, start=1):
            self.pause.wait_if_paused()
            if self.abort_signal.is_set():
                return f"Aborted: {self.abort_signal.reason or 'stop requested'}"

            if milestone.status == MilestoneStatus.COMPLETED or milestone.id in state.completed_milestones:
                milestone.status = MilestoneStatus.COMPLETED
                state.mark_completed(milestone.id)
                skip_reasons[milestone.id] = SKIP_ALREADY_COMPLETED
                self.observer.milestone_skipped(milestone, SKIP_ALREADY_COMPLETED)
                continue

            if not milestone.dependencies_met(state.completed_milestones):
                milestone.status = MilestoneStatus.SKIPPED
                skip_reasons[milestone.id] = SKIP_DEPENDENCIES_NOT_MET
                self.observer.milestone_skipped(milestone, SKIP_DEPENDENCIES_NOT_MET)
                continue

            milestone.status = MilestoneStatus.IN_PROGRESS
            self.observer.milestone_start(milestone, index, total)
            self.persist()

            result = MilestoneExecutor(self.ctx).execute(milestone)
            results[milestone.id] = result.status
            self.persist()

            if result.status == MilestoneOutcome.SUCCESS:
                milestone.status = MilestoneStatus.COMPLETED
                state.mark_completed(milestone.id)

                self.pause.wait_if_paused()
                if self.qa_enabled and not self.abort_signal.is_set():
                    stop = self._run_qa(milestone)
                    if stop:
                        self.observer.milestone_complete(milestone, result)
                        return stop

                self.observer.milestone_complete(milestone, result)
                self.persist()
                self.pause.wait_if_paused()
                if self._checkpoint_due() and not self.observer.confirm(
                    f"Checkpoint: {index}/{total} milestones processed. Continue?"
                ):
                    return "Stopped at checkpoint"
                continue

            milestone.status = MilestoneStatus.FAILED
            self.observer.milestone_failed(milestone, result.errors)
            self.persist()
            if self.abort_signal.is_set():
                return f"Aborted: {self.abort_signal.reason or 'stop requested'}"

            if result.status == MilestoneOutcome.NEEDS_REPLAN:
                question = f"Milestone '{milestone.title}' needs replanning. Continue anyway?"
            else:
                question = "Continue to next milestone anyway?"
            if not self.observer.confirm(question, default=False):
                return f"Stopped after {result.status.value} milestone {milestone.id}"

        return None

    def run(self) -> SessionSummary:
        """Run every pending milestone and return the session summary."""
        state = self.state
        clear_stop_signal(self.project_path)
        self.observer.start(self.goal, self.config)
        self._setup_isolation()
        state.mode = ExecutionMode.EXECUTING
        self.persist()

        results: Dict[str, MilestoneOutcome] = {}
        skip_reasons: Dict[str, str] = {}
        try:
            stopped_reason = self._run_milestones(results, skip_reasons)
        except KeyboardInterrupt:
            self.abort_signal.set("interrupted")
            stopped_reason = "Interrupted"

        all_completed = self.plan.all_completed()
        state_saved = False
        state_cleared = False
        if all_completed:
            state.mode = ExecutionMode.COMPLETED
            state_cleared = self.store.clear()
            completion = self.git.complete()
            if completion is not None:
                self.observer.git_complete(completion)
        else:
            state.mode = ExecutionMode.PAUSED if stopped_reason else ExecutionMode.EXECUTING
            state_saved = self.persist()
        if self.abort_signal.is_set():
            clear_stop_signal(self.project_path)

        summary = SessionSummary(
            milestones_completed=sum(1 for m in self.plan.milestones if m.status == MilestoneStatus.COMPLETED),
            milestones_total=len(self.plan.milestones),
            total_prompts=state.total_prompts,
            total_cost=state.total_cost,
            elapsed_minutes=state.elapsed_minutes(),
            failed_attempts=state.failed_attempts,
            learnings=list(state.learnings),
            outcomes={m.id: m.status for m in self.plan.milestones},
            results=results,
            skip_reasons=skip_reasons,
            stopped_reason=stopped_reason,
            state_saved=state_saved,
            state_cleared=state_cleared,
        )
        logger.info(
            "FSD session %s finished: %d/%d milestones completed",
            self.session_id,
            summary.milestones_completed,
            summary.milestones_total,
        )
        self.observer.complete(summary)
        return summary

    # ── Interactive input ──────────────────────────────────────────────

    def handle_user_input(self, text: str) -> str:
        """Forward a user instruction to the agent while the session is paused.

        The exchange is appended to the interactive history and persisted.
        Once the budget is spent the instruction is recorded but not sent.

        Returns:
            The agent's (redacted) reply
        """
        state = self.state
        previous_mode = state.mode
        state.mode = ExecutionMode.WAITING_USER
        state.interactive_history.append(InteractiveEntry(role="user", content=redact_secrets(text)))

        prompt = text if not self.ctx.rules else f"{text}\n\n{self.ctx.rules}"
        try:
            self.ctx.ensure_budget(state.current_milestone_id)
            result = self.ctx.run_agent(prompt)
            reply = result.output
        except BudgetExceededError as exc:
            logger.warning("Interactive instruction not sent: %s", exc)
            reply = f"Instruction not sent: {exc}"
        except AgentInvocationError as exc:
            logger.warning("Interactive instruction failed: %s", redact_secrets(str(exc)))
            reply = f"Agent invocation failed: {redact_secrets(str(exc))}"
        finally:
            state.mode = previous_mode

        state.interactive_history.append(InteractiveEntry(role="assistant", content=reply))
        self.persist()
        return reply

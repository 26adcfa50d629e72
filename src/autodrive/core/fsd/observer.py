"""Observer interface for FSD progress, output, and confirmations.

The engine never prints. Everything the user sees or answers goes through
an :class:`FSDObserver`, injected into the plan executor. Two
implementations ship here:

- :class:`ConsoleObserver`: interactive terminal rendering via click
- :class:`LoggingObserver`: headless, logs everything and answers
  confirmations with a fixed default
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, List, Optional, Sequence

import click

from autodrive.core.observability.redaction import redact_secrets

from .models import (
    FSDConfig,
    Milestone,
    MilestoneResult,
    Plan,
    QAIssue,
    QAResult,
    QAStatus,
    SecurityEvent,
    SecurityEventType,
    SessionSummary,
    UserBlocker,
)

if TYPE_CHECKING:
    from .git_isolation import GitCompletion
    from .models import GitState

logger = logging.getLogger(__name__)


class FSDObserver:
    """Base observer. Every callback is a no-op; ``confirm`` answers yes."""

    def start(self, goal: str, config: FSDConfig) -> None:
        pass

    def planning_start(self) -> None:
        pass

    def planning_complete(self, plan: Plan) -> None:
        pass

    def show_plan(self, plan: Plan) -> None:
        pass

    def show_blockers(self, blockers: Sequence[UserBlocker]) -> None:
        pass

    def milestone_start(self, milestone: Milestone, index: int, total: int) -> None:
        pass

    def milestone_complete(self, milestone: Milestone, result: MilestoneResult) -> None:
        pass

    def milestone_failed(self, milestone: Milestone, errors: List[str]) -> None:
        pass

    def milestone_skipped(self, milestone: Milestone, reason: str) -> None:
        pass

    def qa_start(self, milestone: Milestone) -> None:
        pass

    def qa_complete(self, milestone: Milestone, result: QAResult, report_path: Optional[str]) -> None:
        pass

    def qa_issue(self, issue: QAIssue) -> None:
        pass

    def output(self, text: str) -> None:
        pass

    def progress(self, cost: float, max_cost: float, prompts: int) -> None:
        pass

    def git_branch(self, git_state: "GitState") -> None:
        pass

    def git_complete(self, completion: "GitCompletion") -> None:
        pass

    def security_event(self, event: SecurityEvent) -> None:
        pass

    def confirm(self, question: str, default: bool = True) -> bool:
        return True

    def complete(self, summary: SessionSummary) -> None:
        pass

    def error(self, message: str) -> None:
        pass


class LoggingObserver(FSDObserver):
    """Headless observer: logs every callback, auto-answers confirmations."""

    def __init__(self, auto_confirm: bool = True) -> None:
        self.auto_confirm = auto_confirm

    def start(self, goal: str, config: FSDConfig) -> None:
        logger.info("FSD session started: %s (max cost $%.2f)", goal, config.max_cost)

    def show_plan(self, plan: Plan) -> None:
        logger.info("Plan: %d milestone(s), est. $%.2f", len(plan.milestones), plan.estimated_cost)

    def milestone_start(self, milestone: Milestone, index: int, total: int) -> None:
        logger.info("Milestone %d/%d: %s", index, total, milestone.title)

    def milestone_complete(self, milestone: Milestone, result: MilestoneResult) -> None:
        logger.info("Milestone completed: %s", milestone.title)

    def milestone_failed(self, milestone: Milestone, errors: List[str]) -> None:
        logger.warning("Milestone failed: %s (%s)", milestone.title, "; ".join(errors) or "no details")

    def milestone_skipped(self, milestone: Milestone, reason: str) -> None:
        logger.info("Milestone skipped: %s (%s)", milestone.title, reason)

    def qa_complete(self, milestone: Milestone, result: QAResult, report_path: Optional[str]) -> None:
        logger.info("QA %s for %s (%d issue(s))", result.status.value, milestone.title, len(result.issues))

    def qa_issue(self, issue: QAIssue) -> None:
        logger.info("QA issue [%s]: %s", issue.severity.value, issue.description)

    def output(self, text: str) -> None:
        logger.debug("agent: %s", redact_secrets(text))

    def security_event(self, event: SecurityEvent) -> None:
        logger.warning("Security %s: %s", event.type.value, event.message)

    def confirm(self, question: str, default: bool = True) -> bool:
        logger.info("Auto-answering %r with %s", question, "yes" if self.auto_confirm else "no")
        return self.auto_confirm

    def complete(self, summary: SessionSummary) -> None:
        logger.info(
            "FSD session finished: %d/%d milestones, %d prompts, ~$%.2f, %d min",
            summary.milestones_completed,
            summary.milestones_total,
            summary.total_prompts,
            summary.total_cost,
            summary.elapsed_minutes,
        )

    def error(self, message: str) -> None:
        logger.error(message)


class ConsoleObserver(FSDObserver):
    """Interactive terminal observer built on click.

    Writes to stderr so stdout stays free for the CLI's JSON envelope.
    """

    def __init__(self, *, assume_yes: bool = False, verbose: bool = True) -> None:
        self.assume_yes = assume_yes
        self.verbose = verbose

    def _echo(self, message: str) -> None:
        click.echo(message, err=True)

    def _secho(self, message: str, **styles: Any) -> None:
        click.secho(message, err=True, **styles)

    def start(self, goal: str, config: FSDConfig) -> None:
        self._secho(f"\nFSD mode: {goal}", bold=True)
        self._echo(f"Budget: ${config.max_cost:.2f} | Max prompts: {config.max_total_prompts}")

    def planning_start(self) -> None:
        self._echo("Planning milestones...")

    def planning_complete(self, plan: Plan) -> None:
        self._echo(f"Plan ready: {len(plan.milestones)} milestone(s)")

    def show_plan(self, plan: Plan) -> None:
        self._secho("\nPlan", bold=True)
        for index, milestone in enumerate(plan.milestones, start=1):
            self._echo(f"  {index}. {milestone.title} [{milestone.size.value}]")
            if milestone.depends_on:
                self._echo(click.style(f"     Depends on: {', '.join(milestone.depends_on)}", dim=True))
        self._echo(f"Estimated cost: ${plan.estimated_cost:.2f} | Estimated time: {plan.estimated_time_minutes} min")
        for risk in plan.risks:
            self._echo(click.style(f"  Risk: {risk}", fg="yellow"))

    def show_blockers(self, blockers: Sequence[UserBlocker]) -> None:
        if not blockers:
            return
        self._secho("\nBefore starting, you need to:", fg="yellow", bold=True)
        for blocker in blockers:
            self._echo(f"  - {blocker.description}")
            if blocker.check_instruction:
                self._echo(click.style(f"    Check: {blocker.check_instruction}", dim=True))

    def milestone_start(self, milestone: Milestone, index: int, total: int) -> None:
        self._secho(f"\n[{index}/{total}] {milestone.title}", fg="cyan", bold=True)

    def milestone_complete(self, milestone: Milestone, result: MilestoneResult) -> None:
        self._secho(f"Completed: {milestone.title}", fg="green")

    def milestone_failed(self, milestone: Milestone, errors: List[str]) -> None:
        self._secho(f"Failed: {milestone.title}", fg="red")
        for error in errors:
            self._echo(f"  {redact_secrets(error)}")

    def milestone_skipped(self, milestone: Milestone, reason: str) -> None:
        self._echo(click.style(f"Skipped: {milestone.title} ({reason})", dim=True))

    def qa_start(self, milestone: Milestone) -> None:
        self._echo("Running QA verification...")

    def qa_complete(self, milestone: Milestone, result: QAResult, report_path: Optional[str]) -> None:
        colour = "green" if result.status == QAStatus.PASS else "red"
        self._secho(
            f"QA {result.status.value}: {result.summary.passed}/{result.summary.total_flows} flows passed",
            fg=colour,
        )
        if report_path:
            self._echo(click.style(f"  Report: {report_path}", dim=True))

    def qa_issue(self, issue: QAIssue) -> None:
        colour = "red" if issue.severity.value == "critical" else "yellow"
        self._secho(f"  [{issue.severity.value}] {issue.description}", fg=colour)
        if issue.evidence:
            self._echo(click.style(f"    Evidence: {redact_secrets(issue.evidence)}", dim=True))

    def output(self, text: str) -> None:
        if self.verbose:
            self._echo(redact_secrets(text))

    def progress(self, cost: float, max_cost: float, prompts: int) -> None:
        self._echo(click.style(f"  ~${cost:.2f} / ${max_cost:.2f} | {prompts} prompt(s)", dim=True))

    def git_branch(self, git_state: "GitState") -> None:
        self._echo(f"Working on branch {git_state.fsd_branch} (from {git_state.original_branch})")

    def git_complete(self, completion: "GitCompletion") -> None:
        self._secho("\n--- Git Summary ---", bold=True)
        self._echo(f"FSD Branch: {completion.fsd_branch}")
        self._echo(f"Original Branch: {completion.original_branch}")
        self._echo(completion.diff_summary)
        self._echo("\nNext steps:")
        for index, step in enumerate(completion.next_steps, start=1):
            self._echo(f"  {index}. {step}")

    def security_event(self, event: SecurityEvent) -> None:
        colour = "red" if event.type in (SecurityEventType.BLOCKED, SecurityEventType.CHECKPOINT) else "yellow"
        self._secho(f"[security:{event.type.value}] {event.message}", fg=colour)
        if event.command:
            self._echo(f"  {event.command}")

    def confirm(self, question: str, default: bool = True) -> bool:
        if self.assume_yes:
            return True
        return click.confirm(question, default=default, err=True)

    def complete(self, summary: SessionSummary) -> None:
        self._secho("\nFSD session finished", bold=True)
        self._echo(f"Milestones: {summary.milestones_completed}/{summary.milestones_total}")
        self._echo(f"Prompts: {summary.total_prompts} | Cost: ~${summary.total_cost:.2f}")
        self._echo(f"Time: {summary.elapsed_minutes} min | Failed attempts: {summary.failed_attempts}")
        if summary.stopped_reason:
            self._secho(f"Stopped: {summary.stopped_reason}", fg="yellow")
        if summary.learnings:
            self._echo("Learnings:")
            for learning in summary.learnings:
                self._echo(f"  - {learning}")
        if summary.state_saved:
            self._echo("Session state saved. Resume with: autodrive resume")

    def error(self, message: str) -> None:
        self._secho(redact_secrets(message), fg="red")

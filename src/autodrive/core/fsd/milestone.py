"""Milestone executor: the implement, verify, fix loop for one milestone."""

from __future__ import annotations

import logging
from typing import List, Optional

from autodrive.core.errors.execution import BudgetExceededError, SafetyViolationError
from autodrive.core.errors.provider import AgentInvocationError, AgentUnavailableError
from autodrive.core.observability.redaction import redact_secrets
from autodrive.core.safety import analyze_safety

from .audit import security_event_for_safety
from .budget import BudgetLevel, check_budget, check_prompt_limit
from .context import ExecutionContext
from .models import (
    AutomatedChecks,
    Milestone,
    MilestoneOutcome,
    MilestoneResult,
    SecurityEvent,
    SecurityEventType,
)
from .prompts import generate_fix_prompt, generate_milestone_prompt

logger = logging.getLogger(__name__)

# (markers, learning); first matching rule wins
LEARNING_RULES = (
    (
        ("Cannot find module", "ModuleNotFoundError", "No module named"),
        "Always verify imports exist before using them",
    ),
    (("is not assignable", "Incompatible types"), "Check type compatibility before assignments"),
    (("ENOENT", "No such file"), "Verify file paths exist before referencing them"),
    (("SyntaxError",), "Check syntax carefully after each edit"),
)
MOCK_LEARNING = "Ensure all external dependencies are properly mocked in tests"


def derive_learning(checks: AutomatedChecks) -> Optional[str]:
    """Derive a reusable rule from the signature of failing check output."""
    failures = checks.failures()
    combined = "\n".join(result.output or "" for result in failures.values())
    for markers, learning in LEARNING_RULES:
        if any(marker in combined for marker in markers):
            return learning
    test_failure = failures.get("test")
    if test_failure is not None and "mock" in (test_failure.output or "").lower():
        return MOCK_LEARNING
    return None


class MilestoneExecutor:
    """Drive one milestone to success, failure, or ``needs_replan``.

    Each iteration spends one implementation prompt, runs the automated
    checks, and on failure spends one fix prompt. The loop is bounded by
    ``config.max_iterations_per_milestone``.
    """

    def __init__(self, ctx: ExecutionContext) -> None:
        self.ctx = ctx

    def _failed(self, errors: List[str], checks: Optional[AutomatedChecks] = None) -> MilestoneResult:
        return MilestoneResult(
            status=MilestoneOutcome.FAILED,
            automated_checks=checks,
            errors=errors,
            learnings=list(self.ctx.state.learnings),
        )

    def _enforce_limits(self, milestone: Milestone, *, before_prompt: bool = True) -> None:
        """Raise when the budget is spent.

        Before an implementation prompt the 80% warning is surfaced and the
        total-prompt limit is checked as well; before a fix prompt only the
        cost ceiling applies.

        Raises:
            BudgetExceededError: Cost ceiling or prompt limit reached
        """
        ctx = self.ctx
        decision = check_budget(ctx.state, ctx.config)
        if decision.ok and before_prompt:
            if decision.level == BudgetLevel.WARNING and decision.message:
                logger.warning(decision.message)
                ctx.observer.output(decision.message)
            decision = check_prompt_limit(ctx.state, ctx.config)
        if not decision.ok:
            raise BudgetExceededError(
                decision.message or "Cost limit reached",
                estimated_cost=decision.estimated_cost,
                max_cost=ctx.config.max_cost,
                milestone_id=milestone.id,
            )

    def _safety_gate(self, milestone: Milestone) -> None:
        """Screen the milestone's own text before anything is sent to the agent.

        Raises:
            SafetyViolationError: Flagged and not approved
        """
        ctx = self.ctx
        text = "\n".join(part for part in (milestone.title, milestone.description, milestone.success_criteria) if part)
        analysis = analyze_safety(text, str(ctx.project_path), check_project_bounds=False)
        event = security_event_for_safety(analysis, sensitive_approval=ctx.config.sensitive_approval)
        if event is None:
            return

        ctx.observer.security_event(event)
        if event.type == SecurityEventType.CHECKPOINT and ctx.observer.confirm(
            f"Milestone '{milestone.title}' was flagged: {event.message}. Allow it to run?",
            default=False,
        ):
            ctx.observer.security_event(
                SecurityEvent(type=SecurityEventType.APPROVED, message=f"User approved: {event.message}")
            )
            return
        raise SafetyViolationError(f"Blocked by safety check: {event.message}", label=analysis.label)

    def _invoke(self, prompt: str, errors: List[str]) -> bool:
        """Run one prompt, collecting failures into ``errors``.

        Returns:
            True if the agent finished and reported success
        """
        try:
            result = self.ctx.run_agent(prompt)
        except AgentUnavailableError:
            raise
        except AgentInvocationError as exc:
            message = redact_secrets(str(exc))
            logger.warning("Agent invocation failed: %s", message)
            errors.append(message)
            return False
        if not result.success:
            errors.extend(redact_secrets(error) for error in result.errors or ["Agent reported failure"])
            return False
        return True

    def execute(self, milestone: Milestone) -> MilestoneResult:
        ctx = self.ctx
        state = ctx.state
        state.current_milestone_id = milestone.id

        try:
            self._safety_gate(milestone)
        except SafetyViolationError as exc:
            logger.warning("Milestone %s refused: %s", milestone.id, exc)
            return self._failed([str(exc)])

        errors: List[str] = []
        checks: Optional[AutomatedChecks] = None
        max_iterations = ctx.config.max_iterations_per_milestone

        for iteration in range(1, max_iterations + 1):
            if ctx.abort_signal.is_set():
                return self._failed(errors + ["Execution aborted"], checks)

            prompt = generate_milestone_prompt(
                milestone, state.learnings, is_retry=iteration > 1, rules=ctx.rules
            )
            try:
                self._enforce_limits(milestone)
                invoked = self._invoke(prompt, errors)
            except (BudgetExceededError, AgentUnavailableError) as exc:
                return self._failed(errors + [str(exc)], checks)
            if not invoked:
                # Checks are only meaningful after a completed implementation turn
                continue

            checks = ctx.checks.run(ctx.project_path)
            if checks.all_passed:
                state.mark_completed(milestone.id)
                logger.info("Milestone %s passed checks on iteration %d", milestone.id, iteration)
                return MilestoneResult(
                    status=MilestoneOutcome.SUCCESS,
                    automated_checks=checks,
                    learnings=list(state.learnings),
                )

            failed_checks = ", ".join(checks.failures())
            errors.append(f"Iteration {iteration}: checks failed ({failed_checks})")
            ctx.observer.output(f"Checks failed: {failed_checks}. Attempting fix...")

            try:
                self._enforce_limits(milestone, before_prompt=False)
                self._invoke(generate_fix_prompt(checks, state.learnings), errors)
            except (BudgetExceededError, AgentUnavailableError) as exc:
                return self._failed(errors + [str(exc)], checks)
            state.failed_attempts += 1

            learning = derive_learning(checks)
            if learning and state.add_learning(learning):
                logger.info("Learned: %s", learning)

        logger.warning("Milestone %s exhausted %d iterations", milestone.id, max_iterations)
        return MilestoneResult(
            status=MilestoneOutcome.NEEDS_REPLAN,
            automated_checks=checks,
            errors=errors + [f"Max iterations ({max_iterations}) reached"],
            learnings=list(state.learnings),
        )

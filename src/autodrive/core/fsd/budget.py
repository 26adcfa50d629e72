"""Budget gate: decides whether another agent invocation may be spent.

Both checks are pure functions of the execution state and config. The
estimate is the larger of ``total_prompts * ESTIMATED_COST_PER_PROMPT``
and the recorded ``total_cost``, so agent-reported cost supersedes the
per-prompt floor once it is larger.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .models import ESTIMATED_COST_PER_PROMPT, ExecutionState, FSDConfig

WARNING_THRESHOLD = 0.8
"""Fraction of ``max_cost`` at which a warning is produced."""


class BudgetLevel(str, Enum):
    OK = "ok"
    WARNING = "warning"
    BLOCKED = "blocked"


@dataclass(frozen=True)
class BudgetDecision:
    """Outcome of a budget check. ``ok`` is False only when blocked."""

    ok: bool
    level: BudgetLevel
    message: Optional[str] = None
    estimated_cost: float = 0.0


def estimate_cost(state: ExecutionState) -> float:
    return max(state.total_prompts * ESTIMATED_COST_PER_PROMPT, state.total_cost)


def check_budget(state: ExecutionState, config: FSDConfig) -> BudgetDecision:
    """Check the estimated spend against ``config.max_cost``.

    Args:
        state: Current execution state
        config: Session limits

    Returns:
        BLOCKED once the estimate reaches the maximum, WARNING from 80%
    """
    estimated = estimate_cost(state)
    if estimated >= config.max_cost:
        return BudgetDecision(
            ok=False,
            level=BudgetLevel.BLOCKED,
            message=f"Cost limit reached: ~${estimated:.2f} / ${config.max_cost:.2f} max",
            estimated_cost=estimated,
        )
    if estimated >= config.max_cost * WARNING_THRESHOLD:
        return BudgetDecision(
            ok=True,
            level=BudgetLevel.WARNING,
            message=f"Warning: Approaching cost limit (~${estimated:.2f} / ${config.max_cost:.2f})",
            estimated_cost=estimated,
        )
    return BudgetDecision(ok=True, level=BudgetLevel.OK, estimated_cost=estimated)


def check_prompt_limit(state: ExecutionState, config: FSDConfig) -> BudgetDecision:
    """Block once ``total_prompts`` reaches ``config.max_total_prompts``."""
    if state.total_prompts >= config.max_total_prompts:
        return BudgetDecision(
            ok=False,
            level=BudgetLevel.BLOCKED,
            message=f"Total prompts limit reached ({state.total_prompts}/{config.max_total_prompts})",
            estimated_cost=estimate_cost(state),
        )
    return BudgetDecision(ok=True, level=BudgetLevel.OK, estimated_cost=estimate_cost(state))

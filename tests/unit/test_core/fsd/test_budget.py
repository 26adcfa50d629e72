"""Tests for the budget gate."""

from __future__ import annotations

import pytest

from autodrive.core.fsd.budget import BudgetLevel, check_budget, check_prompt_limit, estimate_cost
from autodrive.core.fsd.models import ExecutionState, FSDConfig


class TestCheckBudget:
    def test_under_threshold_is_ok(self):
        state = ExecutionState(total_prompts=10)
        decision = check_budget(state, FSDConfig(max_cost=10.0))
        assert decision.ok
        assert decision.level == BudgetLevel.OK
        assert decision.message is None

    def test_eighty_percent_warns(self):
        state = ExecutionState(total_prompts=80)
        decision = check_budget(state, FSDConfig(max_cost=10.0))
        assert decision.ok
        assert decision.level == BudgetLevel.WARNING
        assert "Approaching cost limit" in decision.message

    def test_at_limit_blocks(self):
        state = ExecutionState(total_prompts=100)
        decision = check_budget(state, FSDConfig(max_cost=10.0))
        assert not decision.ok
        assert decision.level == BudgetLevel.BLOCKED
        assert decision.message.startswith("Cost limit reached")

    def test_reported_cost_supersedes_prompt_estimate(self):
        state = ExecutionState(total_prompts=1, total_cost=9.5)
        decision = check_budget(state, FSDConfig(max_cost=10.0))
        assert decision.level == BudgetLevel.WARNING
        assert decision.estimated_cost == 9.5

    def test_prompt_estimate_used_when_larger(self):
        state = ExecutionState(total_prompts=30, total_cost=0.5)
        assert estimate_cost(state) == pytest.approx(3.0)


class TestPromptLimit:
    def test_below_limit(self):
        state = ExecutionState(total_prompts=99)
        assert check_prompt_limit(state, FSDConfig(max_total_prompts=100)).ok

    def test_at_limit_blocks(self):
        state = ExecutionState(total_prompts=100)
        decision = check_prompt_limit(state, FSDConfig(max_total_prompts=100))
        assert not decision.ok
        assert "(100/100)" in decision.message


class TestCostAccounting:
    def test_record_prompt_uses_floor(self):
        state = ExecutionState()
        state.record_prompt()
        state.record_prompt()
        assert state.total_prompts == 2
        assert state.total_cost == pytest.approx(0.2)

    def test_reported_cost_raises_total(self):
        state = ExecutionState()
        state.record_prompt(1.5)
        assert state.reported_cost == 1.5
        assert state.total_cost == 1.5

    def test_total_cost_never_decreases(self):
        state = ExecutionState(total_cost=5.0)
        state.record_cost(1.0)
        assert state.total_cost == 5.0
        state.record_prompt()
        assert state.total_cost == 5.0

"""Tests for exception-to-response mapping."""

from __future__ import annotations

import pytest

from autodrive.core.errors.base import ERROR_MAPPINGS, error_to_response
from autodrive.core.errors.execution import BudgetExceededError, PlanValidationError, SafetyViolationError
from autodrive.core.errors.provider import (
    AgentAbortedError,
    AgentInvocationError,
    AgentTimeoutError,
    AgentUnavailableError,
)
from autodrive.core.errors.storage import LockAcquisitionError, StateCorrupted


class TestErrorToResponse:
    @pytest.mark.parametrize(
        "exc, code, error_type",
        [
            (AgentUnavailableError("missing"), "UNAVAILABLE", "unavailable"),
            (AgentTimeoutError("slow", timeout=5), "AGENT_TIMEOUT", "unavailable"),
            (AgentAbortedError("stopped"), "ABORTED", "cancelled"),
            (AgentInvocationError("boom"), "AGENT_ERROR", "agent"),
            (LockAcquisitionError("busy"), "LOCK_TIMEOUT", "conflict"),
            (StateCorrupted("/x/fsd-state.json", "bad json"), "STATE_CORRUPTED", "storage"),
            (PlanValidationError("bad plan"), "VALIDATION_ERROR", "validation"),
        ],
    )
    def test_codes(self, exc, code, error_type):
        response = error_to_response(exc)
        assert response["code"] == code
        assert response["error_type"] == error_type
        assert response["message"] == str(exc)

    def test_unknown_error(self):
        assert error_to_response(ValueError("nope")) is None

    def test_structured_error_carries_details(self):
        exc = BudgetExceededError("over", estimated_cost=10.2, max_cost=10.0, milestone_id="m2")
        response = error_to_response(exc)
        assert response["code"] == "BUDGET_EXCEEDED"
        assert response["remediation"].startswith("Raise --max-cost")
        assert response["details"] == {"estimated_cost": 10.2, "max_cost": 10.0, "milestone_id": "m2"}

    def test_safety_violation(self):
        response = error_to_response(SafetyViolationError("blocked", label="sudo", command="sudo rm"))
        assert response["error_type"] == "forbidden"
        assert response["details"]["label"] == "sudo"

    def test_codes_are_unique(self):
        codes = [code for code, _ in ERROR_MAPPINGS.values()]
        assert len(codes) == len(set(codes))

    def test_state_corrupted_message(self):
        exc = StateCorrupted("/x/fsd-state.json", "bad json")
        assert str(exc) == "State file /x/fsd-state.json is corrupted: bad json"
        assert exc.path == "/x/fsd-state.json"

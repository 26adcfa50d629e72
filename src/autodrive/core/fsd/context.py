"""Explicit per-session execution context.

Everything a milestone or QA run needs (state, limits, agent, checks,
observer, abort signal, injected rule text) travels in one object instead
of module-level globals.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from autodrive.core.errors.execution import BudgetExceededError
from autodrive.core.errors.provider import AgentInvocationError, AgentUnavailableError
from autodrive.core.providers.base import (
    AgentExecutor,
    ExecutionOptions,
    ExecutionResult,
    StreamEvent,
)
from autodrive.core.providers.stream import redact_event, render_event

from .budget import check_budget, check_prompt_limit
from .checks import CheckRunner
from .models import ExecutionState, FSDConfig
from .observer import FSDObserver
from .pause import PauseController
from .signals import AbortSignal

logger = logging.getLogger(__name__)


@dataclass
class ExecutionContext:
    project_path: Path
    state: ExecutionState
    config: FSDConfig
    agent: AgentExecutor
    checks: CheckRunner
    observer: FSDObserver = field(default_factory=FSDObserver)
    abort_signal: AbortSignal = field(default_factory=AbortSignal)
    pause: PauseController = field(default_factory=PauseController)
    rules: str = ""
    agent_timeout: Optional[float] = None
    allowed_tools: Optional[List[str]] = None
    model: Optional[str] = None

    def _on_stream_event(self, event: StreamEvent) -> None:
        self.observer.output(render_event(redact_event(event)))

    def agent_options(self, *, timeout: Optional[float] = None, resume: bool = True) -> ExecutionOptions:
        return ExecutionOptions(
            cwd=str(self.project_path),
            resume_session_id=self.state.agent_session_id if resume else None,
            allowed_tools=self.allowed_tools,
            on_stream_event=self._on_stream_event,
            abort_signal=self.abort_signal,
            timeout=timeout or self.agent_timeout,
            model=self.model,
        )

    def report_progress(self) -> None:
        self.observer.progress(self.state.total_cost, self.config.max_cost, self.state.total_prompts)

    def run_agent(
        self,
        prompt: str,
        *,
        timeout: Optional[float] = None,
        resume: bool = True,
    ) -> ExecutionResult:
        """Invoke the agent and account for the prompt.

        The resume token is updated from the result. A prompt is counted
        for every invocation that reached the agent, including ones that
        timed out or were aborted mid-run.

        Raises:
            AgentInvocationError: Propagated from the agent
        """
        try:
            result = self.agent.execute(prompt, self.agent_options(timeout=timeout, resume=resume))
        except AgentUnavailableError:
            raise
        except AgentInvocationError:
            self.state.record_prompt()
            self.report_progress()
            raise

        if result.session_id and resume:
            self.state.agent_session_id = result.session_id
        self.state.record_prompt(result.cost.total_cost_usd)
        self.report_progress()
        return result

    def ensure_budget(self, milestone_id: Optional[str] = None) -> None:
        """Refuse another invocation once the cost ceiling or prompt limit is hit.

        Raises:
            BudgetExceededError: Either limit reached
        """
        for decision in (check_budget(self.state, self.config), check_prompt_limit(self.state, self.config)):
            if not decision.ok:
                raise BudgetExceededError(
                    decision.message or "Budget exhausted",
                    estimated_cost=decision.estimated_cost,
                    max_cost=self.config.max_cost,
                    milestone_id=milestone_id,
                )

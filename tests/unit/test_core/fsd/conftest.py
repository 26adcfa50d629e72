"""Shared fixtures and fakes for FSD engine tests."""

from __future__ import annotations

import subprocess
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

import pytest

from autodrive.core.fsd.checks import CheckRunner
from autodrive.core.fsd.context import ExecutionContext
from autodrive.core.fsd.git_isolation import GitIsolation
from autodrive.core.fsd.models import (
    AutomatedChecks,
    CheckResult,
    ExecutionState,
    FSDConfig,
    Milestone,
    Plan,
    SavedSession,
)
from autodrive.core.fsd.observer import FSDObserver
from autodrive.core.fsd.signals import AbortSignal
from autodrive.core.providers.base import CostSnapshot, ExecutionOptions, ExecutionResult


def make_milestone(
    milestone_id: str = "m1",
    *,
    title: Optional[str] = None,
    description: str = "Build the thing",
    success_criteria: str = "The thing works",
    depends_on: Optional[List[str]] = None,
    **kwargs: Any,
) -> Milestone:
    """Factory for milestones with sensible defaults."""
    return Milestone(
        id=milestone_id,
        title=title or f"Milestone {milestone_id}",
        description=description,
        success_criteria=success_criteria,
        depends_on=depends_on or [],
        **kwargs,
    )


def make_plan(*milestones: Milestone, **kwargs: Any) -> Plan:
    return Plan(milestones=list(milestones) or [make_milestone()], **kwargs)


def make_saved_session(
    *,
    goal: str = "Build a todo app",
    plan: Optional[Plan] = None,
    state: Optional[ExecutionState] = None,
    config: Optional[FSDConfig] = None,
    saved_at: Optional[datetime] = None,
    **kwargs: Any,
) -> SavedSession:
    return SavedSession(
        goal=goal,
        plan=plan or make_plan(make_milestone("m1"), make_milestone("m2", depends_on=["m1"])),
        execution_state=state or ExecutionState(),
        config=config or FSDConfig(),
        saved_at=saved_at or datetime.now(timezone.utc),
        **kwargs,
    )


def ok_result(output: str = "done", *, session_id: str = "agent-session-1", cost: float = 0.0) -> ExecutionResult:
    return ExecutionResult(
        success=True,
        output=output,
        session_id=session_id,
        cost=CostSnapshot(total_cost_usd=cost),
    )


AgentStep = Union[ExecutionResult, BaseException, Callable[[str, ExecutionOptions], ExecutionResult]]


class FakeAgent:
    """Scripted agent. Each call consumes the next step; the last one repeats."""

    name = "fake"

    def __init__(self, steps: Optional[Sequence[AgentStep]] = None) -> None:
        self.steps = list(steps or [ok_result()])
        self.calls: List[tuple[str, ExecutionOptions]] = []

    @property
    def prompts(self) -> List[str]:
        return [prompt for prompt, _ in self.calls]

    def execute(self, prompt: str, options: ExecutionOptions) -> ExecutionResult:
        self.calls.append((prompt, options))
        step = self.steps.pop(0) if len(self.steps) > 1 else self.steps[0]
        if isinstance(step, BaseException):
            raise step
        if callable(step) and not isinstance(step, ExecutionResult):
            return step(prompt, options)
        return step


class FakeCheckRunner(CheckRunner):
    """Check runner returning scripted results instead of running commands."""

    def __init__(self, results: Optional[Sequence[Dict[str, CheckResult]]] = None) -> None:
        super().__init__({})
        self.results = list(results or [{"build": CheckResult(passed=True)}])
        self.runs = 0

    def run(self, project_path: Path) -> AutomatedChecks:
        self.runs += 1
        result = self.results.pop(0) if len(self.results) > 1 else self.results[0]
        return AutomatedChecks(results=dict(result))


def failing_checks(output: str = "error TS2322: Type 'string' is not assignable to type 'number'") -> Dict[str, CheckResult]:
    return {"build": CheckResult(passed=True), "typecheck": CheckResult(passed=False, output=output)}


def passing_checks() -> Dict[str, CheckResult]:
    return {"build": CheckResult(passed=True), "test": CheckResult(passed=True)}


class RecordingObserver(FSDObserver):
    """Observer that records callbacks and answers confirms from a script."""

    def __init__(self, answers: Optional[Sequence[bool]] = None, default_answer: bool = True) -> None:
        self.events: List[tuple] = []
        self.questions: List[str] = []
        self.answers = list(answers or [])
        self.default_answer = default_answer

    def named(self, name: str) -> List[tuple]:
        return [event for event in self.events if event[0] == name]

    def start(self, goal, config):
        self.events.append(("start", goal))

    def milestone_start(self, milestone, index, total):
        self.events.append(("milestone_start", milestone.id, index, total))

    def milestone_complete(self, milestone, result):
        self.events.append(("milestone_complete", milestone.id, result.status))

    def milestone_failed(self, milestone, errors):
        self.events.append(("milestone_failed", milestone.id, list(errors)))

    def milestone_skipped(self, milestone, reason):
        self.events.append(("milestone_skipped", milestone.id, reason))

    def qa_start(self, milestone):
        self.events.append(("qa_start", milestone.id))

    def qa_complete(self, milestone, result, report_path):
        self.events.append(("qa_complete", milestone.id, result.status, report_path))

    def qa_issue(self, issue):
        self.events.append(("qa_issue", issue.severity, issue.description))

    def output(self, text):
        self.events.append(("output", text))

    def git_branch(self, git_state):
        self.events.append(("git_branch", git_state.fsd_branch))

    def git_complete(self, completion):
        self.events.append(("git_complete", completion.fsd_branch))

    def security_event(self, event):
        self.events.append(("security_event", event.type, event.message))

    def confirm(self, question, default=True):
        self.questions.append(question)
        return self.answers.pop(0) if self.answers else self.default_answer

    def complete(self, summary):
        self.events.append(("complete", summary))

    def error(self, message):
        self.events.append(("error", message))


@pytest.fixture
def project(tmp_path: Path) -> Path:
    root = tmp_path / "project"
    root.mkdir()
    (root / "src").mkdir()
    (root / "src" / "index.ts").write_text("export const answer = 42;\n")
    return root


@pytest.fixture
def observer() -> RecordingObserver:
    return RecordingObserver()


def make_context(
    project: Path,
    *,
    agent: Optional[FakeAgent] = None,
    checks: Optional[FakeCheckRunner] = None,
    observer: Optional[FSDObserver] = None,
    config: Optional[FSDConfig] = None,
    state: Optional[ExecutionState] = None,
    rules: str = "",
) -> ExecutionContext:
    return ExecutionContext(
        project_path=project,
        state=state or ExecutionState(),
        config=config or FSDConfig(),
        agent=agent or FakeAgent(),
        checks=checks or FakeCheckRunner(),
        observer=observer or RecordingObserver(),
        abort_signal=AbortSignal(),
        rules=rules,
    )


class FakeGit:
    """Answers git invocations from a table keyed by the joined arguments."""

    def __init__(self, hooks_dir: str, responses: Optional[Dict[str, tuple]] = None) -> None:
        self.calls: List[List[str]] = []
        self.responses = {
            "rev-parse --is-inside-work-tree": (0, "true"),
            "rev-parse --abbrev-ref HEAD": (0, "main"),
            "rev-parse --git-path hooks": (0, hooks_dir),
            "status --porcelain": (0, ""),
        }
        self.responses.update(responses or {})

    def __call__(self, args: Sequence[str], *, cwd: str, timeout: Optional[float] = None):
        self.calls.append(list(args))
        key = " ".join(args)
        returncode, stdout = self.responses.get(key, (0, ""))
        if key.startswith("checkout -b ") and "checkout -b" in self.responses:
            returncode, stdout = self.responses["checkout -b"]
        return subprocess.CompletedProcess(list(args), returncode, stdout=stdout, stderr="")

    def ran(self, *args: str) -> bool:
        return list(args) in self.calls


def no_git(project: Path) -> GitIsolation:
    """Git isolation for a directory that is not a repository."""
    runner = FakeGit(
        str(project / ".git" / "hooks"),
        {"rev-parse --is-inside-work-tree": (128, "fatal: not a git repository")},
    )
    return GitIsolation(project, runner=runner)

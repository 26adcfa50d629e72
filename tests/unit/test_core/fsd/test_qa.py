"""Tests for QA report parsing, the QA agent, and the QA fix loop."""

from __future__ import annotations

from pathlib import Path

import pytest

from autodrive.core.errors.provider import AgentTimeoutError
from autodrive.core.fsd.models import (
    ExecutionMode,
    ExecutionState,
    FSDConfig,
    QAIssue,
    QAResult,
    QASeverity,
    QAStatus,
)
from autodrive.core.fsd.prompts import QA_REPORT_FILE_NAME
from autodrive.core.fsd.qa import QAAgent, QALoop, failed_qa_result, parse_qa_report, save_qa_report
from autodrive.core.observability.redaction import REDACTION_MARKER

from .conftest import FakeAgent, RecordingObserver, make_context, make_milestone, ok_result

FAILING_REPORT = """# QA Report: Login

## Result: FAIL

## How I Tested
- Ran the dev server
- Used curl against the login endpoint

## What I Tested
- Valid login
- Empty password

## Issues Found
- [critical] Empty password logs the user in
  - Evidence: POST /api/login returned 200
  - Suggestion: Reject empty passwords
- [minor] Error message typo

## Console/Error Output
- None

## Network Failures
- POST /api/session 500

## Recommendations
- Validate password presence
"""

PASSING_REPORT = """# QA Report: Login

## Result: PASS

## What I Tested
- Valid login

## Issues Found
- No issues found
"""


def writes_report(project: Path, markdown: str):
    """Agent step that writes the QA report file, like a real QA run does."""

    def _step(prompt, options):
        (project / QA_REPORT_FILE_NAME).write_text(markdown)
        return ok_result("QA finished")

    return _step


# =============================================================================
# Parsing
# =============================================================================


class TestParseQAReport:
    def test_full_report(self):
        result = parse_qa_report(FAILING_REPORT)

        assert result.status == QAStatus.FAIL
        assert result.test_approach == ["Ran the dev server", "Used curl against the login endpoint"]
        assert [issue.severity for issue in result.issues] == [QASeverity.CRITICAL, QASeverity.MINOR]
        critical = result.issues[0]
        assert critical.description == "Empty password logs the user in"
        assert critical.evidence == "POST /api/login returned 200"
        assert critical.suggestion == "Reject empty passwords"
        assert result.console_errors == []
        assert result.network_failures == ["POST /api/session 500"]
        assert result.recommendations == ["Validate password presence"]
        assert result.summary.total_flows == 2
        assert result.summary.failed == 2
        assert result.summary.passed == 0

    def test_evidence_does_not_leak_to_previous_issue(self):
        report = """## Result: FAIL
## Issues Found
- [major] First problem
- [minor] Second problem
  - Evidence: only about the second
"""
        first, second = parse_qa_report(report).issues
        assert first.evidence is None
        assert second.evidence == "only about the second"

    def test_critical_issue_forces_fail(self):
        report = "## Result: PASS\n\n## Issues Found\n- [critical] Data loss on save\n"
        assert parse_qa_report(report).status == QAStatus.FAIL

    def test_bold_fail_marker(self):
        assert parse_qa_report("## Result: **FAIL**\n").status == QAStatus.FAIL

    def test_no_issues_placeholder_ignored(self):
        result = parse_qa_report(PASSING_REPORT)
        assert result.status == QAStatus.PASS
        assert result.issues == []
        assert result.summary.passed == 1

    def test_missing_sections_are_empty(self):
        result = parse_qa_report("# QA Report: x\n\n## Result: PASS\n")
        assert result.test_approach == []
        assert result.network_failures == []
        assert result.summary.total_flows == 0

    def test_model_forces_fail_on_critical(self):
        result = QAResult(
            status=QAStatus.PASS,
            issues=[QAIssue(severity=QASeverity.CRITICAL, description="broken")],
        )
        assert result.status == QAStatus.FAIL


class TestSaveReport:
    def test_writes_parseable_report(self, project):
        result = parse_qa_report(FAILING_REPORT)
        path = save_qa_report(result, make_milestone("m1", title="Login"), project)

        assert path == project / ".claude" / "qa-report-m1.md"
        reparsed = parse_qa_report(path.read_text())
        assert reparsed.status == QAStatus.FAIL
        assert [issue.description for issue in reparsed.issues] == [
            "Empty password logs the user in",
            "Error message typo",
        ]
        assert reparsed.network_failures == ["POST /api/session 500"]


# =============================================================================
# QA agent
# =============================================================================


class TestQAAgent:
    def test_reads_and_removes_report(self, project):
        ctx = make_context(project, agent=FakeAgent([writes_report(project, PASSING_REPORT)]))
        result = QAAgent(ctx).run(make_milestone())
        assert result.status == QAStatus.PASS
        assert not (project / QA_REPORT_FILE_NAME).exists()
        assert ctx.state.total_prompts == 1

    def test_stale_report_is_not_reused(self, project):
        (project / QA_REPORT_FILE_NAME).write_text(PASSING_REPORT)
        ctx = make_context(project, agent=FakeAgent([ok_result("did some testing")]))

        result = QAAgent(ctx).run(make_milestone())

        assert result.status == QAStatus.FAIL
        assert result.incomplete
        assert "INCOMPLETE" in result.issues[0].description

    def test_report_in_output(self, project):
        ctx = make_context(project, agent=FakeAgent([ok_result(PASSING_REPORT)]))
        assert QAAgent(ctx).run(make_milestone()).status == QAStatus.PASS

    def test_agent_failure_is_fail(self, project):
        ctx = make_context(project, agent=FakeAgent([AgentTimeoutError("Agent timed out after 600 seconds")]))
        result = QAAgent(ctx).run(make_milestone())
        assert result.status == QAStatus.FAIL
        assert result.issues[0].description.startswith("QA execution failed:")
        assert result.recommendations == ["Re-run QA or verify manually"]
        assert ctx.state.total_prompts == 1

    def test_does_not_resume_agent_session(self, project):
        agent = FakeAgent([ok_result(PASSING_REPORT)])
        ctx = make_context(project, agent=agent, state=ExecutionState(agent_session_id="abc"))
        QAAgent(ctx, timeout=42).run(make_milestone())
        options = agent.calls[0][1]
        assert options.resume_session_id is None
        assert options.timeout == 42
        assert ctx.state.agent_session_id == "abc"

    def test_secrets_in_report_are_redacted(self, project):
        token = "ghp_" + "a" * 36
        report = (
            "# QA Report: Login\n\n## Result: FAIL\n\n## Issues Found\n"
            f"- [critical] Login page prints {token} in the footer\n"
            f"  - Evidence: curl -H 'Authorization: token {token}' returned 200\n"
        )
        ctx = make_context(project, agent=FakeAgent([writes_report(project, report)]))

        result = QAAgent(ctx).run(make_milestone())

        issue = result.issues[0]
        assert token not in issue.description
        assert token not in issue.evidence
        assert REDACTION_MARKER in issue.description

    def test_secrets_in_output_report_are_redacted(self, project):
        token = "ghp_" + "b" * 36
        ctx = make_context(project, agent=FakeAgent([ok_result(f"{PASSING_REPORT}\n## Recommendations\n- Rotate {token}\n")]))
        result = QAAgent(ctx).run(make_milestone())
        assert result.recommendations == [f"Rotate {REDACTION_MARKER}"]

    def test_blocked_budget_skips_agent(self, project):
        agent = FakeAgent()
        ctx = make_context(project, agent=agent, state=ExecutionState(total_prompts=100))

        result = QAAgent(ctx).run(make_milestone())

        assert agent.calls == []
        assert result.status == QAStatus.FAIL
        assert result.incomplete
        assert result.issues[0].description.startswith("Budget exhausted: Cost limit reached")
        assert ctx.state.total_prompts == 100


# =============================================================================
# QA loop
# =============================================================================


class TestQALoop:
    def test_pass_first_time(self, project):
        observer = RecordingObserver()
        ctx = make_context(project, agent=FakeAgent([writes_report(project, PASSING_REPORT)]), observer=observer)

        outcome = QALoop(ctx).run(make_milestone("m1"))

        assert outcome.result.status == QAStatus.PASS
        assert outcome.attempts == 1
        assert outcome.report_path == project / ".claude" / "qa-report-m1.md"
        assert observer.named("qa_complete")[0][2] == QAStatus.PASS
        assert ctx.state.mode == ExecutionMode.EXECUTING

    def test_fix_then_pass(self, project):
        agent = FakeAgent(
            [
                writes_report(project, FAILING_REPORT),
                ok_result("fixed"),
                writes_report(project, PASSING_REPORT),
            ]
        )
        observer = RecordingObserver()
        ctx = make_context(project, agent=agent, observer=observer)

        outcome = QALoop(ctx).run(make_milestone())

        assert outcome.result.status == QAStatus.PASS
        assert outcome.attempts == 2
        fix_prompt = agent.prompts[1]
        assert fix_prompt.startswith("## Fix QA Issues")
        assert "Empty password logs the user in" in fix_prompt
        assert "Error message typo" not in fix_prompt
        assert observer.questions == ["Attempt to fix 1 critical issue(s)?"]
        assert len(observer.named("qa_issue")) == 2

    def test_non_critical_failure_not_fixed(self, project):
        report = "## Result: FAIL\n\n## Issues Found\n- [major] Slow page\n"
        agent = FakeAgent([writes_report(project, report)])
        ctx = make_context(project, agent=agent)

        outcome = QALoop(ctx).run(make_milestone())

        assert outcome.result.status == QAStatus.FAIL
        assert outcome.attempts == 1
        assert len(agent.calls) == 1

    def test_user_declines_fix(self, project):
        agent = FakeAgent([writes_report(project, FAILING_REPORT)])
        ctx = make_context(project, agent=agent, observer=RecordingObserver(answers=[False]))
        outcome = QALoop(ctx).run(make_milestone())
        assert outcome.attempts == 1
        assert len(agent.calls) == 1

    def test_attempts_bounded(self, project):
        agent = FakeAgent([writes_report(project, FAILING_REPORT), ok_result("tried")] * 3)
        ctx = make_context(project, agent=agent)

        outcome = QALoop(ctx, max_attempts=3).run(make_milestone())

        assert outcome.attempts == 3
        assert outcome.result.status == QAStatus.FAIL
        # three QA runs with two fixes in between
        assert len(agent.calls) == 5

    def test_budget_stops_fixing(self, project):
        agent = FakeAgent([writes_report(project, FAILING_REPORT)])
        observer = RecordingObserver()
        ctx = make_context(project, agent=agent, observer=observer, config=FSDConfig(max_cost=0.1))

        outcome = QALoop(ctx).run(make_milestone())

        assert outcome.attempts == 1
        assert len(agent.calls) == 1
        assert observer.named("error")[0][1].startswith("Cost limit reached")

    def test_saved_report_and_issue_events_are_redacted(self, project):
        token = "ghp_" + "c" * 36
        report = FAILING_REPORT.replace("returned 200", f"returned 200 for token {token}").replace(
            "Error message typo", f"Error message shows {token}"
        )
        observer = RecordingObserver(answers=[False])
        ctx = make_context(project, agent=FakeAgent([writes_report(project, report)]), observer=observer)

        outcome = QALoop(ctx).run(make_milestone("m1"))

        saved = outcome.report_path.read_text()
        assert token not in saved
        assert REDACTION_MARKER in saved
        assert all(token not in event[2] for event in observer.named("qa_issue"))

    def test_blocked_budget_runs_no_qa_prompt(self, project):
        agent = FakeAgent()
        ctx = make_context(project, agent=agent, state=ExecutionState(total_prompts=5), config=FSDConfig(max_total_prompts=5))

        outcome = QALoop(ctx).run(make_milestone())

        assert agent.calls == []
        assert outcome.result.incomplete
        assert "Total prompts limit reached (5/5)" in outcome.result.issues[0].description

    def test_abort_skips_qa(self, project):
        ctx = make_context(project)
        ctx.abort_signal.set("test")
        outcome = QALoop(ctx).run(make_milestone())
        assert outcome.attempts == 0
        assert outcome.result.status == QAStatus.FAIL


def test_failed_result_helper():
    result = failed_qa_result("boom", incomplete=True)
    assert result.status == QAStatus.FAIL
    assert result.incomplete
    assert result.issues[0].severity == QASeverity.MAJOR


@pytest.mark.parametrize("marker", ["Result: FAIL", "Result:FAIL", "result: fail"])
def test_fail_marker_variants(marker):
    assert parse_qa_report(f"## {marker}\n").status == QAStatus.FAIL

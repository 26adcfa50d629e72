"""QA verification loop.

After a milestone passes its automated checks, a separate QA agent run
verifies it like a user would and writes a markdown report. The report is
parsed into a :class:`QAResult`; critical issues trigger a bounded fix
loop. A missing report or a failed QA invocation is never treated as PASS.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from autodrive.core.errors.execution import BudgetExceededError
from autodrive.core.errors.provider import AgentInvocationError
from autodrive.core.observability.redaction import redact_secrets

from .context import ExecutionContext
from .models import (
    ExecutionMode,
    Milestone,
    QAIssue,
    QAResult,
    QASeverity,
    QAStatus,
    QASummary,
)
from .prompts import QA_REPORT_FILE_NAME, generate_qa_fix_prompt, generate_qa_prompt

logger = logging.getLogger(__name__)

QA_TIMEOUT_SECONDS = 600
MAX_QA_FIX_ATTEMPTS = 3

_EMPTY_BULLETS = frozenset({"none", "n/a", "no issues found", "no test scenarios recorded"})
_ISSUE_PATTERN = re.compile(r"-\s*\[(critical|major|minor)\]\s*(.+)", re.IGNORECASE)
_EVIDENCE_PATTERN = re.compile(r"Evidence:\s*(.+)", re.IGNORECASE)
_SUGGESTION_PATTERN = re.compile(r"(?:Suggestion|Suggested fix):\s*(.+)", re.IGNORECASE)
_FAIL_PATTERN = re.compile(r"Result:\s*\**\s*FAIL\b", re.IGNORECASE)


# =============================================================================
# Report parsing
# =============================================================================


def _section(markdown: str, heading: str) -> Optional[str]:
    """Body of the first ``## <heading>`` section (heading is a regex)."""
    match = re.search(
        rf"^##\s+(?:{heading})[^\n]*\n(.*?)(?=^##\s|\Z)",
        markdown,
        re.MULTILINE | re.DOTALL | re.IGNORECASE,
    )
    return match.group(1) if match else None


def _bullets(body: Optional[str]) -> List[str]:
    if not body:
        return []
    items: List[str] = []
    for line in body.splitlines():
        stripped = line.strip()
        if not stripped.startswith("-"):
            continue
        item = stripped.lstrip("-").strip()
        if item and item.lower() not in _EMPTY_BULLETS:
            items.append(item)
    return items


def _parse_issues(body: Optional[str]) -> List[QAIssue]:
    if not body:
        return []
    matches = list(_ISSUE_PATTERN.finditer(body))
    issues: List[QAIssue] = []
    for index, match in enumerate(matches):
        description = match.group(2).strip()
        if not description or "no issues" in description.lower():
            continue
        # Evidence belongs to this issue only if it appears before the next one
        end = matches[index + 1].start() if index + 1 < len(matches) else len(body)
        trailing = body[match.end():end]
        evidence = _EVIDENCE_PATTERN.search(trailing)
        suggestion = _SUGGESTION_PATTERN.search(trailing)
        issues.append(
            QAIssue(
                severity=QASeverity(match.group(1).lower()),
                description=description,
                evidence=evidence.group(1).strip() if evidence else None,
                suggestion=suggestion.group(1).strip() if suggestion else None,
            )
        )
    return issues


def parse_qa_report(markdown: str) -> QAResult:
    """Parse a QA report into a structured result.

    Missing sections yield empty lists. Any critical issue forces FAIL.
    """
    tested: List[str] = []
    for heading in (r"How I Tested", r"What I Tested", r"What Was Tested"):
        tested = _bullets(_section(markdown, heading))
        if tested:
            break

    issues = _parse_issues(_section(markdown, r"Issues Found"))
    total = len(tested)
    failed = len(issues)
    return QAResult(
        status=QAStatus.FAIL if _FAIL_PATTERN.search(markdown) else QAStatus.PASS,
        summary=QASummary(total_flows=total, passed=max(0, total - failed), failed=failed),
        test_approach=tested,
        issues=issues,
        console_errors=_bullets(_section(markdown, r"Console[^\n]*?(?:Errors?|Output)")),
        network_failures=_bullets(_section(markdown, r"Network Failures")),
        recommendations=_bullets(_section(markdown, r"Recommendations")),
    )


def failed_qa_result(description: str, *, incomplete: bool = False) -> QAResult:
    return QAResult(
        status=QAStatus.FAIL,
        issues=[QAIssue(severity=QASeverity.MAJOR, description=description)],
        recommendations=["Re-run QA or verify manually"],
        incomplete=incomplete,
    )


def _render_list(items: List[str], empty: str) -> str:
    return "\n".join(f"- {item}" for item in items) or empty


def save_qa_report(result: QAResult, milestone: Milestone, project_path: Path) -> Path:
    """Write ``.claude/qa-report-<milestone id>.md`` and return its path."""
    report_dir = Path(project_path) / ".claude"
    report_dir.mkdir(parents=True, exist_ok=True)
    report_path = report_dir / f"qa-report-{milestone.id}.md"

    issues = "\n".join(
        f"- [{issue.severity.value}] {issue.description}"
        + (f"\n  - Evidence: {issue.evidence}" if issue.evidence else "")
        for issue in result.issues
    )
    markdown = f"""# QA Report: {milestone.title}

## Result: {result.status.value}

## Summary
- Total Flows Tested: {result.summary.total_flows}
- Passed: {result.summary.passed}
- Failed: {result.summary.failed}

## What Was Tested
{_render_list(result.test_approach, "- No test scenarios recorded")}

## Issues Found
{issues or "- No issues found"}

## Console Errors
{_render_list(result.console_errors, "- None")}

## Network Failures
{_render_list(result.network_failures, "- None")}

## Recommendations
{_render_list(result.recommendations, "- None")}
"""
    report_path.write_text(markdown)
    return report_path


# =============================================================================
# QA agent and fix loop
# =============================================================================


class QAAgent:
    """Runs one QA verification of a milestone."""

    def __init__(self, ctx: ExecutionContext, *, timeout: float = QA_TIMEOUT_SECONDS) -> None:
        self.ctx = ctx
        self.timeout = timeout

    @property
    def report_path(self) -> Path:
        return self.ctx.project_path / QA_REPORT_FILE_NAME

    def run(self, milestone: Milestone) -> QAResult:
        try:
            self.ctx.ensure_budget(milestone.id)
        except BudgetExceededError as exc:
            logger.warning("Skipping QA for %s: %s", milestone.id, exc)
            return failed_qa_result(f"Budget exhausted: {exc}", incomplete=True)

        # A report left over from an earlier run must not be mistaken for this one
        self.report_path.unlink(missing_ok=True)

        try:
            result = self.ctx.run_agent(generate_qa_prompt(milestone), timeout=self.timeout, resume=False)
        except AgentInvocationError as exc:
            message = redact_secrets(str(exc))
            logger.warning("QA agent failed for %s: %s", milestone.id, message)
            return failed_qa_result(f"QA execution failed: {message}")

        if self.report_path.exists():
            try:
                markdown = self.report_path.read_text()
            except OSError as exc:
                logger.warning("Could not read QA report %s: %s", self.report_path, exc)
            else:
                self.report_path.unlink(missing_ok=True)
                return parse_qa_report(redact_secrets(markdown))

        if "# QA Report" in result.output:
            return parse_qa_report(redact_secrets(result.output))

        logger.warning("QA agent did not produce a report for %s", milestone.id)
        return failed_qa_result("QA agent did not produce a report (INCOMPLETE)", incomplete=True)


@dataclass
class QALoopOutcome:
    result: QAResult
    report_path: Optional[Path]
    attempts: int


class QALoop:
    """QA with up to ``max_attempts`` verification runs and fixes in between."""

    def __init__(
        self,
        ctx: ExecutionContext,
        *,
        agent: Optional[QAAgent] = None,
        max_attempts: int = MAX_QA_FIX_ATTEMPTS,
    ) -> None:
        self.ctx = ctx
        self.agent = agent or QAAgent(ctx)
        self.max_attempts = max_attempts

    def _attempt_fix(self, milestone: Milestone, issues: List[QAIssue]) -> None:
        ctx = self.ctx
        ctx.ensure_budget(milestone.id)
        prompt = generate_qa_fix_prompt(milestone, issues, ctx.state.learnings, rules=ctx.rules)
        try:
            ctx.run_agent(prompt)
        except AgentInvocationError as exc:
            logger.warning("QA fix invocation failed for %s: %s", milestone.id, redact_secrets(str(exc)))

    def run(self, milestone: Milestone) -> QALoopOutcome:
        ctx = self.ctx
        ctx.state.mode = ExecutionMode.REVIEWING
        result = failed_qa_result("QA did not run", incomplete=True)
        report_path: Optional[Path] = None
        attempts = 0

        try:
            while attempts < self.max_attempts and not ctx.abort_signal.is_set():
                attempts += 1
                result = self.agent.run(milestone)
                report_path = save_qa_report(result, milestone, ctx.project_path)
                ctx.observer.qa_complete(milestone, result, str(report_path))
                if result.status == QAStatus.PASS:
                    break

                for issue in result.issues:
                    ctx.observer.qa_issue(issue)
                critical = result.critical_issues
                if not critical or attempts >= self.max_attempts:
                    break
                if not ctx.observer.confirm(f"Attempt to fix {len(critical)} critical issue(s)?"):
                    break
                try:
                    self._attempt_fix(milestone, critical)
                except BudgetExceededError as exc:
                    ctx.observer.error(str(exc))
                    break
        finally:
            ctx.state.mode = ExecutionMode.EXECUTING

        return QALoopOutcome(result=result, report_path=report_path, attempts=attempts)

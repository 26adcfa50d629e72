"""Prompt builders for milestone execution, fixes, and QA.

Prompts state goals and constraints; they never tell the agent how to
implement or how to test.
"""

from __future__ import annotations

from typing import Iterable, List, Optional, Sequence

from .models import AutomatedChecks, Milestone, QAIssue

EXECUTION_PRINCIPLES = """
## Execution Principles (MANDATORY)

### Think Before Coding
- If something is unclear, ASK rather than guess
- State your assumptions before starting
- If multiple approaches exist, briefly explain which you chose and why

### Simplicity First
- Implement ONLY what the milestone asks for
- No extra features, no "nice to have" additions
- If 200 lines could be 50, make it 50
- Avoid over-abstraction - three similar lines > premature abstraction

### Surgical Changes
- Touch ONLY what you must to complete this milestone
- Do NOT refactor adjacent code
- Do NOT add comments to code you didn't write
- Do NOT "improve" existing code unless the milestone asks for it

### Goal-Driven
- Keep working until SUCCESS CRITERIA is met
- Run checks frequently to verify progress
- If stuck after 3 attempts, STOP and explain what's blocking
"""

CHECK_FAILURE_HEADINGS = {
    "build": "Build failed",
    "typecheck": "Type errors",
    "test": "Test failures",
    "lint": "Lint errors",
}

QA_REPORT_FILE_NAME = "qa-report.md"


def _learned_rules(learnings: Sequence[str], heading: str = "## Learned Rules") -> str:
    if not learnings:
        return ""
    bullets = "\n".join(f"- {learning}" for learning in learnings)
    return f"{heading}\n{bullets}\n\n"


def combine_rules(*blocks: Optional[str]) -> str:
    """Join non-empty rule blocks (git isolation, safety) into one section."""
    return "\n\n".join(block.strip() for block in blocks if block and block.strip())


def generate_milestone_prompt(
    milestone: Milestone,
    learnings: Sequence[str],
    *,
    is_retry: bool = False,
    rules: Optional[str] = None,
) -> str:
    prompt = f"""## Milestone: {milestone.title}

{milestone.description}

## Success Criteria
{milestone.success_criteria}

{EXECUTION_PRINCIPLES}

## Your Job
Implement this milestone. You decide HOW to implement it - you have full autonomy.
Keep working until the success criteria is met. Run verifications frequently.

"""
    if rules:
        prompt += rules + "\n\n"
    prompt += _learned_rules(learnings, "## Learned Rules (from previous attempts)")
    if is_retry:
        prompt += (
            "## IMPORTANT\n"
            "This is a retry attempt. Previous attempt failed. Focus on fixing the issues.\n"
            "Review the errors carefully and make targeted fixes.\n"
        )
    return prompt


def generate_fix_prompt(checks: AutomatedChecks, learnings: Sequence[str]) -> str:
    """Build a fix prompt from the failing checks only."""
    failures: List[str] = []
    for name, result in checks.failures().items():
        heading = CHECK_FAILURE_HEADINGS.get(name, f"{name} failed")
        failures.append(f"{heading}:\n{result.output or '(no output)'}")

    separator = "\n\n---\n\n"
    prompt = f"""## Fix Required

The following checks failed:

{separator.join(failures)}

## Instructions
Fix these issues. Do not introduce new features, just fix the errors.

"""
    return prompt + _learned_rules(learnings)


def generate_qa_fix_prompt(
    milestone: Milestone,
    issues: Iterable[QAIssue],
    learnings: Sequence[str],
    *,
    rules: Optional[str] = None,
) -> str:
    rendered: List[str] = []
    for index, issue in enumerate(issues, start=1):
        block = f"### Issue {index} [{issue.severity.value}]\n{issue.description}"
        if issue.evidence:
            block += f"\nEvidence: {issue.evidence}"
        if issue.suggestion:
            block += f"\nSuggestion: {issue.suggestion}"
        rendered.append(block)

    prompt = f"""## Fix QA Issues: {milestone.title}

The QA Agent found the following issues that need to be fixed:

{chr(10).join(rendered)}

## Fix Principles (Surgical Changes)
- Fix ONLY the reported issues - nothing else
- Do NOT refactor or improve adjacent code
- Make the MINIMAL change needed to fix each issue
- Verify the fix works before moving on

## Success Criteria
{milestone.success_criteria}

"""
    if rules:
        prompt += rules + "\n\n"
    return prompt + _learned_rules(learnings)


def generate_qa_prompt(milestone: Milestone, report_name: str = QA_REPORT_FILE_NAME) -> str:
    """Tell the QA agent what was built and what to verify, not how to test."""
    return f"""You are a QA engineer verifying a completed milestone.

## What was built
{milestone.title}

{milestone.description}

## Verification goal
{milestone.qa_goal or milestone.success_criteria}

## Your job
Figure out how to verify this goal is achieved. Think like a REAL USER.
You may run commands, read files, make network requests to local services,
and install any testing tools you need.

## Testing approach
1. First, understand what was built
2. Figure out HOW to verify it works
3. Try normal use cases
4. Try edge cases and weird inputs
5. Try to break it

## CRITICAL
- Don't just check if code exists - actually RUN and TEST it
- Try unexpected inputs: empty, very long, special characters
- Look for error messages, crashes, silent failures

## Output
Create {report_name} in the project root with this structure:

```markdown
# QA Report: {milestone.title}

## Result: PASS | FAIL

## How I Tested
- [Describe your testing approach - what tools/commands you used]

## What I Tested
- [List each test scenario]

## Issues Found
- [critical|major|minor] Description
  - Evidence: What you observed

## Console/Error Output
- [Any errors or warnings observed]

## Network Failures
- [Failed requests, if any]

## Recommendations
- [Suggestions for improvement]
```
"""

"""autodrive run: execute a milestone plan from a JSON file."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import click
from pydantic import ValidationError

from autodrive.cli.logging import get_cli_logger
from autodrive.cli.output import emit_error, emit_success
from autodrive.cli.registry import get_context
from autodrive.cli.session import build_agent, executor_options, run_and_report
from autodrive.core.errors.execution import PlanValidationError
from autodrive.core.fsd.executor import PlanExecutor
from autodrive.core.fsd.models import Plan

logger = get_cli_logger()


def load_plan_file(path: Path) -> Tuple[Plan, Optional[str]]:
    """Load a plan JSON file.

    The file holds the plan fields (``milestones``, ``user_blockers``,
    ``estimated_cost``...) plus an optional top-level ``goal``.

    Raises:
        PlanValidationError: Unreadable JSON or a plan that fails validation
    """
    remediation = "Fix the plan file: milestone ids must be unique and dependencies must exist"
    try:
        data: Dict[str, Any] = json.loads(path.read_text())
    except (OSError, json.JSONDecodeError) as exc:
        raise PlanValidationError(f"Cannot read plan file {path}: {exc}", remediation=remediation) from exc
    if not isinstance(data, dict):
        raise PlanValidationError("Plan file must contain a JSON object", remediation=remediation)

    goal = data.pop("goal", None)
    try:
        plan = Plan.model_validate(data)
    except ValidationError as exc:
        raise PlanValidationError(f"Invalid plan: {exc.errors()[0]['msg']}", remediation=remediation) from exc
    if not plan.milestones:
        raise PlanValidationError("Plan has no milestones", remediation=remediation)
    return plan, goal


@click.command("run")
@click.argument("plan_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--goal", default=None, help="Session goal (defaults to the plan file's goal).")
@click.option("--max-cost", type=float, default=None, help="Budget ceiling in USD.")
@click.option("--checkpoint", is_flag=True, help="Confirm every checkpoint_interval milestones.")
@click.option("--skip-qa", is_flag=True, help="Skip QA verification after milestones.")
@click.option("--dry-run", is_flag=True, help="Validate and show the plan without executing.")
@click.option("--yes", "-y", "assume_yes", is_flag=True, help="Answer yes to every confirmation.")
@click.pass_context
def run_cmd(
    ctx: click.Context,
    plan_file: Path,
    goal: Optional[str],
    max_cost: Optional[float],
    checkpoint: bool,
    skip_qa: bool,
    dry_run: bool,
    assume_yes: bool,
) -> None:
    """Execute the milestones in PLAN_FILE autonomously."""
    cli_ctx = get_context(ctx)

    try:
        plan, file_goal = load_plan_file(plan_file)
    except PlanValidationError as exc:
        emit_error(
            str(exc),
            code=exc.code,
            error_type="validation",
            remediation=exc.remediation,
            details={"plan_file": str(plan_file)},
        )

    session_goal = (goal or file_goal or "").strip()
    if not session_goal:
        emit_error(
            "No goal given",
            code="VALIDATION_ERROR",
            error_type="validation",
            remediation="Pass --goal or add a 'goal' field to the plan file",
        )

    try:
        config = cli_ctx.config.to_fsd_config(max_cost=max_cost)
    except ValidationError as exc:
        emit_error(
            f"Invalid limits: {exc.errors()[0]['msg']}",
            code="VALIDATION_ERROR",
            error_type="validation",
            remediation="--max-cost must be a positive number",
        )

    options = executor_options(cli_ctx, assume_yes=assume_yes, skip_qa=skip_qa, checkpoint=checkpoint)
    observer = options["observer"]
    observer.show_plan(plan)
    observer.show_blockers(plan.pending_blockers())

    if dry_run:
        emit_success(
            {
                "action": "dry_run",
                "goal": session_goal,
                "milestones": [m.id for m in plan.milestones],
                "estimated_cost": plan.estimated_cost,
                "max_cost": config.max_cost,
            }
        )
        return

    store = cli_ctx.store
    if store.is_resumable() and not observer.confirm(
        "A resumable FSD session exists and will be replaced. Continue?", default=False
    ):
        emit_success({"action": "cancelled", "reason": "existing session kept"})
        return

    if not observer.confirm("Start FSD execution?"):
        emit_success({"action": "cancelled"})
        return

    logger.info("Starting FSD session for %s", cli_ctx.project_path)
    executor = PlanExecutor(
        cli_ctx.project_path,
        session_goal,
        plan,
        config,
        build_agent(cli_ctx),
        **options,
    )
    run_and_report(executor)

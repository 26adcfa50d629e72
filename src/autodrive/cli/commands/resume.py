"""autodrive resume: continue a saved FSD session."""

from __future__ import annotations

import click

from autodrive.cli.output import emit_error, emit_success
from autodrive.cli.registry import get_context
from autodrive.cli.session import build_agent, executor_options, run_and_report
from autodrive.core.fsd.executor import PlanExecutor


@click.command("resume")
@click.option("--skip-qa", is_flag=True, help="Skip QA verification after milestones.")
@click.option("--checkpoint", is_flag=True, help="Confirm every checkpoint_interval milestones.")
@click.option("--yes", "-y", "assume_yes", is_flag=True, help="Answer yes to every confirmation.")
@click.pass_context
def resume_cmd(ctx: click.Context, skip_qa: bool, checkpoint: bool, assume_yes: bool) -> None:
    """Resume the saved FSD session for this project."""
    cli_ctx = get_context(ctx)
    store = cli_ctx.store

    if not store.is_resumable():
        emit_error(
            "No resumable FSD session found",
            code="NOT_FOUND",
            error_type="not_found",
            remediation="Sessions older than 24 hours or already complete cannot be resumed; start one with 'autodrive run'",
            details={"state_file": str(store.state_path)},
        )

    session = store.load()
    info = store.resume_info()
    if session is None or info is None:
        emit_error(
            "Saved session disappeared while loading",
            code="NOT_FOUND",
            error_type="not_found",
        )

    options = executor_options(cli_ctx, assume_yes=assume_yes, skip_qa=skip_qa, checkpoint=checkpoint)
    observer = options["observer"]
    question = (
        f"Resume '{info.goal}' ({info.completed}/{info.total} milestones done, "
        f"{info.elapsed_minutes} min elapsed)?"
    )
    if not session.config.auto_resume and not observer.confirm(question):
        emit_success({"action": "cancelled"})
        return

    executor = PlanExecutor.from_saved(session, cli_ctx.project_path, build_agent(cli_ctx), **options)
    run_and_report(executor)

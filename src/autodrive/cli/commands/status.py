"""autodrive status: report the saved session for this project."""

from __future__ import annotations

import click

from autodrive.cli.output import emit_success
from autodrive.cli.registry import get_context
from autodrive.core.fsd.signals import read_stop_signal


@click.command("status")
@click.pass_context
def status_cmd(ctx: click.Context) -> None:
    """Show whether a resumable FSD session exists."""
    cli_ctx = get_context(ctx)
    store = cli_ctx.store
    session = store.load()

    data = {
        "project": str(cli_ctx.project_path),
        "state_file": str(store.state_path),
        "has_session": session is not None,
        "resumable": store.is_resumable(),
        "stop_requested": read_stop_signal(cli_ctx.project_path) is not None,
        "session": None,
    }
    if session is not None:
        info = store.resume_info()
        data["session"] = {
            "session_id": session.session_id,
            "goal": session.goal,
            "mode": session.execution_state.mode.value,
            "completed": info.completed if info else 0,
            "total": info.total if info else len(session.plan.milestones),
            "elapsed_minutes": info.elapsed_minutes if info else 0,
            "saved_at": session.saved_at.isoformat(),
            "total_prompts": session.execution_state.total_prompts,
            "total_cost": session.execution_state.total_cost,
            "fsd_branch": session.git_state.fsd_branch if session.git_state else None,
            "milestones": {m.id: m.status.value for m in session.plan.milestones},
        }
    emit_success(data)

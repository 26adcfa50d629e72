"""autodrive stop: ask a running session to stop.

Writes a signal file that the running session checks at its next safe
point (before each milestone and between iterations). Completed
milestones are kept and the session stays resumable.
"""

from __future__ import annotations

import click

from autodrive.cli.output import emit_error, emit_success
from autodrive.cli.registry import get_context
from autodrive.core.fsd.signals import write_stop_signal


@click.command("stop")
@click.option("--reason", default="operator_stop", show_default=True, help="Stop reason recorded in the signal file.")
@click.pass_context
def stop_cmd(ctx: click.Context, reason: str) -> None:
    """Request a graceful stop of the running FSD session."""
    cli_ctx = get_context(ctx)
    try:
        signal_file = write_stop_signal(cli_ctx.project_path, reason=reason)
    except OSError as e:
        emit_error(
            f"Failed to write signal file: {e}",
            code="IO_ERROR",
            error_type="io",
            remediation="Check file system permissions for the project directory",
        )
    emit_success(
        {
            "action": "stop_requested",
            "signal_file": str(signal_file),
            "message": "Stop signal written. The session will stop at its next safe point.",
        }
    )

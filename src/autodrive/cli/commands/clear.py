"""autodrive clear: delete the saved session."""

from __future__ import annotations

import click

from autodrive.cli.output import emit_error, emit_success
from autodrive.cli.registry import get_context
from autodrive.core.errors.storage import LockAcquisitionError


@click.command("clear")
@click.pass_context
def clear_cmd(ctx: click.Context) -> None:
    """Delete the saved FSD session for this project."""
    cli_ctx = get_context(ctx)
    store = cli_ctx.store
    try:
        removed = store.clear()
    except LockAcquisitionError as exc:
        emit_error(
            str(exc),
            code="LOCK_TIMEOUT",
            error_type="conflict",
            remediation="Another autodrive process holds the state lock; stop it first",
        )
    emit_success({"cleared": removed, "state_file": str(store.state_path)})

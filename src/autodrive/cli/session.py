"""Helpers shared by the ``run`` and ``resume`` commands."""

from __future__ import annotations

from typing import Any, Dict

from autodrive.cli.logging import get_cli_logger
from autodrive.cli.output import emit_error, emit_success
from autodrive.cli.registry import CLIContext
from autodrive.core.errors.base import error_to_response
from autodrive.core.fsd.executor import PlanExecutor
from autodrive.core.fsd.observer import ConsoleObserver
from autodrive.core.providers.base import AgentExecutor
from autodrive.core.providers.claude import ClaudeCodeExecutor

logger = get_cli_logger()


def build_agent(cli_ctx: CLIContext) -> AgentExecutor:
    agent = cli_ctx.config.agent
    return ClaudeCodeExecutor(binary=agent.binary, timeout=agent.timeout, model=agent.model)


def executor_options(cli_ctx: CLIContext, *, assume_yes: bool, skip_qa: bool, checkpoint: bool) -> Dict[str, Any]:
    """Keyword arguments for :class:`PlanExecutor` derived from config and flags."""
    config = cli_ctx.config
    return {
        "observer": ConsoleObserver(assume_yes=assume_yes),
        "checks": config.build_check_runner(),
        "qa_enabled": config.qa_enabled and not skip_qa,
        "checkpoint": checkpoint or config.checkpoint,
        "agent_timeout": config.agent.timeout,
        "allowed_tools": config.agent.allowed_tools or None,
        "model": config.agent.model,
    }


def run_and_report(executor: PlanExecutor) -> None:
    """Run the session and emit its summary envelope."""
    try:
        summary = executor.run()
    except Exception as exc:
        mapped = error_to_response(exc)
        if mapped is None:
            raise
        logger.error("FSD session failed: %s", mapped["message"])
        emit_error(
            mapped["message"],
            code=mapped["code"],
            error_type=mapped["error_type"],
            remediation=mapped.get("remediation"),
            details=mapped.get("details"),
        )

    data = summary.model_dump(mode="json")
    data["session_id"] = executor.session_id
    data["state_file"] = str(executor.store.state_path) if summary.state_saved else None
    emit_success(data)

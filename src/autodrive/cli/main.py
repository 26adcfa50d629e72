"""autodrive command-line entry point."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import click

from autodrive import __version__
from autodrive.cli.commands import clear_cmd, resume_cmd, run_cmd, status_cmd, stop_cmd
from autodrive.cli.logging import setup_logging
from autodrive.cli.registry import CLIContext
from autodrive.config import AutodriveConfig


@click.group()
@click.version_option(__version__, prog_name="autodrive")
@click.option(
    "--project",
    "project",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Project directory (default: current directory).",
)
@click.option(
    "--config",
    "config_file",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Explicit TOML config file.",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="Override the configured log level.",
)
@click.pass_context
def cli(ctx: click.Context, project: Optional[Path], config_file: Optional[Path], log_level: Optional[str]) -> None:
    """Run a milestone plan autonomously with a coding agent."""
    project_path = (project or Path.cwd()).resolve()
    config = AutodriveConfig.from_env(config_file, project_path=project_path)
    if log_level:
        config.log_level = log_level.upper()
    setup_logging(config.log_level)
    ctx.obj = CLIContext(project_path=project_path, config=config)


cli.add_command(run_cmd)
cli.add_command(resume_cmd)
cli.add_command(status_cmd)
cli.add_command(clear_cmd)
cli.add_command(stop_cmd)


def main() -> None:
    cli()


if __name__ == "__main__":
    main()

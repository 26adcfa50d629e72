"""CLI commands."""

from autodrive.cli.commands.clear import clear_cmd
from autodrive.cli.commands.resume import resume_cmd
from autodrive.cli.commands.run import run_cmd
from autodrive.cli.commands.status import status_cmd
from autodrive.cli.commands.stop import stop_cmd

__all__ = [
    "clear_cmd",
    "resume_cmd",
    "run_cmd",
    "status_cmd",
    "stop_cmd",
]

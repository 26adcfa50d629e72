"""Shared CLI context carried on ``click.Context.obj``."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import click

from autodrive.config import AutodriveConfig
from autodrive.core.fsd.state import StateStore


@dataclass
class CLIContext:
    project_path: Path
    config: AutodriveConfig

    @property
    def store(self) -> StateStore:
        return StateStore(self.project_path)


def get_context(ctx: click.Context) -> CLIContext:
    """Return the CLIContext set up by the root group."""
    obj = ctx.find_object(CLIContext)
    if obj is None:
        raise click.UsageError("autodrive context is not initialised")
    return obj

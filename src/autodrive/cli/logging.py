"""Logging setup for the autodrive CLI.

Log records go to stderr through a :class:`RedactingFilter`, so secrets that
reach a log message are masked before they are written anywhere.
"""

from __future__ import annotations

import logging
import sys

from autodrive.core.observability.redaction import RedactingFilter

_ROOT_LOGGER_NAME = "autodrive"
_HANDLER_NAME = "autodrive-cli"


def setup_logging(level: str = "INFO") -> logging.Logger:
    """Install (or replace) the CLI stderr handler on the ``autodrive`` logger."""
    root_logger = logging.getLogger(_ROOT_LOGGER_NAME)
    for handler in list(root_logger.handlers):
        if handler.get_name() == _HANDLER_NAME:
            root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.set_name(_HANDLER_NAME)
    handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
    handler.addFilter(RedactingFilter())

    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    return root_logger


def get_cli_logger() -> logging.Logger:
    return logging.getLogger(f"{_ROOT_LOGGER_NAME}.cli")

"""JSON output envelopes for CLI commands.

Every command prints exactly one JSON document to stdout:

    {"success": true, "data": {...}, "error": null}
    {"success": false, "data": {"error_code": ..., ...}, "error": "message"}
"""

from __future__ import annotations

import json
import sys
from typing import Any, Dict, NoReturn, Optional

import click

from autodrive.core.observability.redaction import redact_data, redact_secrets


def _emit(payload: Dict[str, Any]) -> None:
    click.echo(json.dumps(payload, indent=2, default=str))


def emit_success(data: Dict[str, Any]) -> None:
    """Print a success envelope."""
    _emit({"success": True, "data": redact_data(data), "error": None})


def emit_error(
    message: str,
    *,
    code: str,
    error_type: str,
    remediation: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
) -> NoReturn:
    """Print an error envelope and exit with status 1."""
    data: Dict[str, Any] = {"error_code": code, "error_type": error_type}
    if remediation:
        data["remediation"] = remediation
    if details:
        data["details"] = redact_data(details)
    _emit({"success": False, "data": data, "error": redact_secrets(message)})
    sys.exit(1)

"""Observability helpers: secret redaction for logs and agent output."""

from autodrive.core.observability.redaction import (
    REDACTION_MARKER,
    RedactingFilter,
    redact_data,
    redact_secrets,
)

__all__ = ["REDACTION_MARKER", "RedactingFilter", "redact_data", "redact_secrets"]

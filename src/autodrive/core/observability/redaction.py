"""Secret redaction for agent output, logs, and persisted state.

Every line of agent or tool output passes through :func:`redact_secrets`
before it is logged, stored, or shown. Redaction is idempotent: applying
it to already-redacted text is a no-op, because no pattern matches the
marker itself.
"""

import logging
import re
from typing import Any, Final, List, Pattern, Tuple

REDACTION_MARKER: Final[str] = "***REDACTED***"

_NOT_MARKER = r"(?!\*\*\*REDACTED)"

SECRET_PATTERNS: Final[List[Tuple[str, str]]] = [
    # Vendor key prefixes
    (r"\bsk-[a-zA-Z0-9_\-]{20,}", "OPENAI_STYLE_KEY"),
    (r"\bsk_live_[a-zA-Z0-9]{20,}", "STRIPE_SECRET_LIVE"),
    (r"\bsk_test_[a-zA-Z0-9]{20,}", "STRIPE_SECRET_TEST"),
    (r"\bpk_live_[a-zA-Z0-9]{20,}", "STRIPE_PUBLIC_LIVE"),
    (r"\bpk_test_[a-zA-Z0-9]{20,}", "STRIPE_PUBLIC_TEST"),
    # GitHub/GitLab/Slack tokens
    (r"gh[pousr]_[a-zA-Z0-9]{36,}", "GITHUB_TOKEN"),
    (r"glpat-[a-zA-Z0-9_\-]{20,}", "GITLAB_TOKEN"),
    (r"xox[baprs]-[a-zA-Z0-9\-]{10,}", "SLACK_TOKEN"),
    # AWS access key id
    (r"AKIA[0-9A-Z]{16}", "AWS_ACCESS_KEY"),
    # JSON Web Tokens
    (r"eyJ[a-zA-Z0-9_\-]{20,}\.[a-zA-Z0-9_\-]{20,}\.[a-zA-Z0-9_\-]{20,}", "JWT"),
    # Private key headers
    (r"-----BEGIN (?:RSA |EC |DSA |OPENSSH )?PRIVATE KEY-----", "PRIVATE_KEY"),
]
"""Patterns whose entire match is replaced by the redaction marker.

Each tuple contains:
- regex pattern: The pattern to match sensitive data
- label: A human-readable label for the type of secret
"""

ASSIGNMENT_PATTERNS: Final[List[Tuple[str, str]]] = [
    # FOO_KEY=..., FOO_SECRET=..., FOO_TOKEN=...
    (
        r"\b([A-Z0-9_]*(?:_KEY|_SECRET|_TOKEN))=[\"']?" + _NOT_MARKER + r"([^\"'\s]{8,})[\"']?",
        "ENV_ASSIGNMENT",
    ),
    (
        r"\b(password|passwd|pwd)(\s*[=:]\s*)[\"']?" + _NOT_MARKER + r"([^\"'\s]{4,})[\"']?",
        "PASSWORD",
    ),
]
"""Patterns that keep the variable name and redact only the assigned value."""

HEX_SECRET_PATTERN: Final[str] = r"\b[a-fA-F0-9]{32,64}\b"
"""Long hex strings (API secrets, session keys). Full 40-char commit SHAs
also match."""


def _compile(pattern: str) -> Pattern[str]:
    return re.compile(pattern, re.IGNORECASE)


_COMPILED_SECRETS = [(_compile(p), label) for p, label in SECRET_PATTERNS]
_COMPILED_ENV, _COMPILED_PASSWORD = (_compile(p) for p, _ in ASSIGNMENT_PATTERNS)
_COMPILED_HEX = _compile(HEX_SECRET_PATTERN)


def redact_secrets(text: str) -> str:
    """Replace known secret shapes in ``text`` with ``***REDACTED***``.

    Args:
        text: Arbitrary output (agent stream, tool result, log message)

    Returns:
        Text with every secret-shaped token replaced
    """
    if not text:
        return text

    result = text
    for pattern, _label in _COMPILED_SECRETS:
        result = pattern.sub(REDACTION_MARKER, result)
    result = _COMPILED_ENV.sub(lambda m: f"{m.group(1)}={REDACTION_MARKER}", result)
    result = _COMPILED_PASSWORD.sub(
        lambda m: f"{m.group(1)}{m.group(2)}{REDACTION_MARKER}", result
    )
    result = _COMPILED_HEX.sub(REDACTION_MARKER, result)
    return result


def redact_data(data: Any, *, max_depth: int = 10) -> Any:
    """Recursively redact strings inside dicts, lists, and tuples.

    Non-string scalars are returned unchanged.
    """
    if max_depth <= 0:
        return "[MAX_DEPTH_EXCEEDED]"
    if isinstance(data, str):
        return redact_secrets(data)
    if isinstance(data, dict):
        return {key: redact_data(value, max_depth=max_depth - 1) for key, value in data.items()}
    if isinstance(data, (list, tuple)):
        items = [redact_data(item, max_depth=max_depth - 1) for item in data]
        return type(data)(items) if isinstance(data, tuple) else items
    return data


class RedactingFilter(logging.Filter):
    """Logging filter that redacts secrets from the rendered record message."""

    def filter(self, record: logging.LogRecord) -> bool:
        try:
            message = record.getMessage()
        except (TypeError, ValueError):
            return True
        redacted = redact_secrets(message)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True

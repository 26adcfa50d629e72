"""Parsing helpers for configuration values from TOML and environment."""

import logging
from typing import Any, Callable, Dict, List, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"true", "1", "yes", "on"}


def _try_parse_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    normalized = str(value).strip().lower()
    if normalized in {"true", "1", "yes", "on"}:
        return True
    if normalized in {"false", "0", "no", "off"}:
        return False
    return None


def _parse_list(value: Any) -> List[str]:
    """Accept a TOML list or a comma-separated string."""
    if isinstance(value, (list, tuple)):
        return [str(item).strip() for item in value if str(item).strip()]
    return [item.strip() for item in str(value).split(",") if item.strip()]


def _parse_commands(value: Any) -> Dict[str, str]:
    """Parse a ``name -> command`` table, dropping blank entries."""
    if not isinstance(value, dict):
        raise ValueError(f"expected a table of check commands, got {type(value).__name__}")
    return {str(name): str(command) for name, command in value.items() if str(command).strip()}


def _coerce(raw: Any, parse: Callable[[Any], T], *, source: str) -> Optional[T]:
    """Parse ``raw`` or log and return None when it is invalid."""
    try:
        return parse(raw)
    except (TypeError, ValueError) as exc:
        logger.warning("Ignoring invalid value %r for %s: %s", raw, source, exc)
        return None

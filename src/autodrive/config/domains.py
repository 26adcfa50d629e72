"""Configuration sections: FSD limits, automated checks, and the agent."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from autodrive.config.parsing import _coerce, _parse_bool, _parse_commands, _parse_list
from autodrive.core.fsd.checks import DEFAULT_CHECK_COMMANDS, DEFAULT_CHECK_TIMEOUT_SECONDS
from autodrive.core.providers.claude import DEFAULT_TIMEOUT_SECONDS


@dataclass
class FSDSettings:
    """Session limits, mirrored into the frozen ``FSDConfig`` at run time.

    Attributes:
        max_cost: Budget ceiling in USD
        max_iterations_per_milestone: Implement/fix iterations before replanning
        max_total_prompts: Hard cap on agent invocations per session
        checkpoint_interval: Confirm every N completed milestones (0 = never)
        sensitive_approval: Ask before running flagged milestones
        auto_resume: Resume a saved session without asking
    """

    max_cost: float = 10.0
    max_iterations_per_milestone: int = 5
    max_total_prompts: int = 100
    checkpoint_interval: int = 3
    sensitive_approval: bool = True
    auto_resume: bool = False

    def update_from_dict(self, data: Dict[str, Any], *, source: str = "[fsd]") -> None:
        parsers = {
            "max_cost": float,
            "max_iterations_per_milestone": int,
            "max_total_prompts": int,
            "checkpoint_interval": int,
            "sensitive_approval": _parse_bool,
            "auto_resume": _parse_bool,
        }
        for key, parse in parsers.items():
            if key not in data:
                continue
            value = _coerce(data[key], parse, source=f"{source}.{key}")
            if value is not None:
                setattr(self, key, value)


@dataclass
class ChecksSettings:
    """Automated check commands run after every attempt."""

    commands: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_CHECK_COMMANDS))
    timeout: float = float(DEFAULT_CHECK_TIMEOUT_SECONDS)

    @classmethod
    def from_toml_dict(cls, data: Dict[str, Any]) -> "ChecksSettings":
        """Create settings from the ``[checks]`` TOML section.

        Args:
            data: Dict from TOML parsing

        Returns:
            ChecksSettings instance
        """
        settings = cls()
        if "commands" in data:
            commands = _coerce(data["commands"], _parse_commands, source="[checks].commands")
            if commands is not None:
                settings.commands = commands
        if "timeout" in data:
            timeout = _coerce(data["timeout"], float, source="[checks].timeout")
            if timeout is not None:
                settings.timeout = timeout
        return settings


@dataclass
class AgentSettings:
    """How the coding agent is launched."""

    binary: str = "claude"
    model: Optional[str] = None
    timeout: float = float(DEFAULT_TIMEOUT_SECONDS)
    allowed_tools: List[str] = field(default_factory=list)

    @classmethod
    def from_toml_dict(cls, data: Dict[str, Any]) -> "AgentSettings":
        settings = cls()
        if data.get("binary"):
            settings.binary = str(data["binary"])
        if data.get("model"):
            settings.model = str(data["model"])
        if "timeout" in data:
            timeout = _coerce(data["timeout"], float, source="[agent].timeout")
            if timeout is not None:
                settings.timeout = timeout
        if "allowed_tools" in data:
            settings.allowed_tools = _parse_list(data["allowed_tools"])
        return settings

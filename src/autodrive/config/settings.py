"""AutodriveConfig dataclass.

Field declarations and conversions only. Loading and validation live in the
``_AutodriveConfigLoader`` mixin (``loader.py``).
"""

from dataclasses import dataclass, field

from autodrive.config.domains import AgentSettings, ChecksSettings, FSDSettings
from autodrive.config.loader import _AutodriveConfigLoader
from autodrive.core.fsd.checks import CheckRunner
from autodrive.core.fsd.models import FSDConfig


@dataclass
class AutodriveConfig(_AutodriveConfigLoader):
    """Project configuration with support for env vars and TOML overrides."""

    log_level: str = "INFO"
    qa_enabled: bool = True
    checkpoint: bool = False

    fsd: FSDSettings = field(default_factory=FSDSettings)
    checks: ChecksSettings = field(default_factory=ChecksSettings)
    agent: AgentSettings = field(default_factory=AgentSettings)

    def to_fsd_config(self, **overrides) -> FSDConfig:
        """Freeze the FSD settings, applying any non-None ``overrides``."""
        values = {
            "max_cost": self.fsd.max_cost,
            "max_iterations_per_milestone": self.fsd.max_iterations_per_milestone,
            "max_total_prompts": self.fsd.max_total_prompts,
            "checkpoint_interval": self.fsd.checkpoint_interval,
            "sensitive_approval": self.fsd.sensitive_approval,
            "auto_resume": self.fsd.auto_resume,
        }
        values.update({key: value for key, value in overrides.items() if value is not None})
        return FSDConfig(**values)

    def build_check_runner(self) -> CheckRunner:
        return CheckRunner(self.checks.commands, timeout=self.checks.timeout)

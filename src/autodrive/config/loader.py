"""AutodriveConfig loading and validation logic.

Provides ``_AutodriveConfigLoader``, a mixin whose methods are inherited by
``AutodriveConfig`` (defined in ``settings.py``).
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional, Union, cast

if TYPE_CHECKING:
    from autodrive.config.settings import AutodriveConfig

try:
    import tomllib
except ImportError:
    import tomli as tomllib  # Python < 3.11 fallback

from autodrive.config.domains import AgentSettings, ChecksSettings, FSDSettings
from autodrive.config.parsing import _coerce, _parse_list, _try_parse_bool

logger = logging.getLogger(__name__)

CONFIG_FILE_ENV_VAR = "AUTODRIVE_CONFIG_FILE"
PROJECT_CONFIG_NAME = "autodrive.toml"

_VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}

_FSD_ENV_VARS = {
    "AUTODRIVE_MAX_COST": "max_cost",
    "AUTODRIVE_MAX_ITERATIONS": "max_iterations_per_milestone",
    "AUTODRIVE_MAX_TOTAL_PROMPTS": "max_total_prompts",
    "AUTODRIVE_CHECKPOINT_INTERVAL": "checkpoint_interval",
    "AUTODRIVE_SENSITIVE_APPROVAL": "sensitive_approval",
    "AUTODRIVE_AUTO_RESUME": "auto_resume",
}


class _AutodriveConfigLoader:
    """Mixin providing config-loading methods for ``AutodriveConfig``."""

    if TYPE_CHECKING:
        log_level: str
        qa_enabled: bool
        checkpoint: bool
        fsd: FSDSettings
        checks: ChecksSettings
        agent: AgentSettings

    @classmethod
    def from_env(
        cls,
        config_file: Optional[Union[str, Path]] = None,
        project_path: Optional[Path] = None,
    ) -> "AutodriveConfig":
        """
        Create configuration from environment variables and optional TOML file.

        Priority (highest to lowest):
        1. Environment variables (``AUTODRIVE_*``)
        2. Explicit file (``config_file`` or ``AUTODRIVE_CONFIG_FILE``), or
           the project's ``autodrive.toml`` layered over the XDG
           config (``~/.config/autodrive/config.toml``)
        3. Default values
        """
        config = cls()

        toml_path = config_file or os.environ.get(CONFIG_FILE_ENV_VAR)
        if toml_path:
            config._load_toml(Path(toml_path))
        else:
            xdg_config_home = os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config")
            xdg_config = Path(xdg_config_home) / "autodrive" / "config.toml"
            if xdg_config.exists():
                config._load_toml(xdg_config)
                logger.debug("Loaded XDG config from %s", xdg_config)

            project_config = Path(project_path or Path.cwd()) / PROJECT_CONFIG_NAME
            if project_config.exists():
                config._load_toml(project_config)
                logger.debug("Loaded project config from %s", project_config)

        config._load_env()
        config._validate()
        return cast("AutodriveConfig", config)

    def _load_toml(self, path: Path) -> None:
        """Load configuration from TOML file."""
        if not path.exists():
            logger.warning("Config file not found: %s", path)
            return

        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)
        except (OSError, tomllib.TOMLDecodeError) as e:
            logger.error("Error loading config file %s: %s", path, e)
            return

        if isinstance(data.get("logging"), dict) and "level" in data["logging"]:
            self.log_level = str(data["logging"]["level"]).upper()

        if isinstance(data.get("fsd"), dict):
            fsd = data["fsd"]
            self.fsd.update_from_dict(fsd)
            for key in ("qa_enabled", "checkpoint"):
                if key in fsd:
                    parsed = _try_parse_bool(fsd[key])
                    if parsed is None:
                        logger.warning("Ignoring invalid value %r for [fsd].%s", fsd[key], key)
                    else:
                        setattr(self, key, parsed)

        if isinstance(data.get("checks"), dict):
            self.checks = ChecksSettings.from_toml_dict(data["checks"])

        if isinstance(data.get("agent"), dict):
            self.agent = AgentSettings.from_toml_dict(data["agent"])

    def _load_env(self) -> None:
        """Load configuration from environment variables."""
        if level := os.environ.get("AUTODRIVE_LOG_LEVEL"):
            self.log_level = level.upper()

        fsd_overrides: dict[str, Any] = {}
        for env_var, key in _FSD_ENV_VARS.items():
            if (value := os.environ.get(env_var)) is not None:
                fsd_overrides[key] = value
        if fsd_overrides:
            self.fsd.update_from_dict(fsd_overrides, source="environment")

        for env_var, key in (("AUTODRIVE_QA_ENABLED", "qa_enabled"), ("AUTODRIVE_CHECKPOINT", "checkpoint")):
            if (value := os.environ.get(env_var)) is not None:
                parsed = _try_parse_bool(value)
                if parsed is None:
                    logger.warning("Ignoring invalid value %r for %s", value, env_var)
                else:
                    setattr(self, key, parsed)

        if binary := os.environ.get("AUTODRIVE_AGENT_BINARY"):
            self.agent.binary = binary
        if model := os.environ.get("AUTODRIVE_AGENT_MODEL"):
            self.agent.model = model
        if agent_timeout := os.environ.get("AUTODRIVE_AGENT_TIMEOUT"):
            parsed_timeout = _coerce(agent_timeout, float, source="AUTODRIVE_AGENT_TIMEOUT")
            if parsed_timeout is not None:
                self.agent.timeout = parsed_timeout
        if tools := os.environ.get("AUTODRIVE_ALLOWED_TOOLS"):
            self.agent.allowed_tools = _parse_list(tools)
        if check_timeout := os.environ.get("AUTODRIVE_CHECK_TIMEOUT"):
            parsed_check_timeout = _coerce(check_timeout, float, source="AUTODRIVE_CHECK_TIMEOUT")
            if parsed_check_timeout is not None:
                self.checks.timeout = parsed_check_timeout

    def _validate(self) -> None:
        """Reset out-of-range values to their defaults with a warning."""
        if self.log_level not in _VALID_LOG_LEVELS:
            logger.warning("Invalid log level %r; using INFO", self.log_level)
            self.log_level = "INFO"

        defaults = FSDSettings()
        minimums = {
            "max_iterations_per_milestone": 1,
            "max_total_prompts": 1,
            "checkpoint_interval": 0,
        }
        if self.fsd.max_cost <= 0:
            logger.warning("max_cost must be positive, got %s; using %s", self.fsd.max_cost, defaults.max_cost)
            self.fsd.max_cost = defaults.max_cost
        for key, minimum in minimums.items():
            if getattr(self.fsd, key) < minimum:
                logger.warning(
                    "%s must be >= %d, got %s; using %s",
                    key,
                    minimum,
                    getattr(self.fsd, key),
                    getattr(defaults, key),
                )
                setattr(self.fsd, key, getattr(defaults, key))

        if self.agent.timeout <= 0:
            logger.warning("Agent timeout must be positive; using %s", AgentSettings().timeout)
            self.agent.timeout = AgentSettings().timeout
        if self.checks.timeout <= 0:
            logger.warning("Check timeout must be positive; using %s", ChecksSettings().timeout)
            self.checks.timeout = ChecksSettings().timeout

"""Configuration package for autodrive.

Sub-modules:
    parsing  – Boolean/list/command-table parsing helpers
    domains  – FSDSettings, ChecksSettings, AgentSettings
    loader   – AutodriveConfig loading/validation mixin (_AutodriveConfigLoader)
    settings – AutodriveConfig dataclass
"""

from autodrive.config.domains import AgentSettings, ChecksSettings, FSDSettings  # noqa: F401
from autodrive.config.loader import CONFIG_FILE_ENV_VAR, PROJECT_CONFIG_NAME  # noqa: F401
from autodrive.config.parsing import _parse_bool, _try_parse_bool  # noqa: F401
from autodrive.config.settings import AutodriveConfig  # noqa: F401

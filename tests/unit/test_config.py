"""Tests for AutodriveConfig loading from TOML and environment."""

from __future__ import annotations

import logging
import os

import pytest

from autodrive.config import AutodriveConfig
from autodrive.config.parsing import _parse_list, _try_parse_bool
from autodrive.core.fsd.checks import DEFAULT_CHECK_COMMANDS
from autodrive.core.fsd.models import FSDConfig


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    """Keep the developer's own config and AUTODRIVE_* vars out of the tests."""
    for name in list(os.environ):
        if name.startswith("AUTODRIVE_"):
            monkeypatch.delenv(name)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
    monkeypatch.chdir(tmp_path)


def write_config(path, body):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(body)
    return path


FULL_TOML = """
[logging]
level = "debug"

[fsd]
max_cost = 25.5
max_iterations_per_milestone = 3
max_total_prompts = 40
checkpoint_interval = 2
sensitive_approval = false
auto_resume = "yes"
qa_enabled = false
checkpoint = true

[checks]
timeout = 120

[checks.commands]
test = "pytest -q"
lint = ""

[agent]
binary = "/usr/local/bin/claude"
model = "opus"
timeout = 900
allowed_tools = ["Read", "Edit", "Bash"]
"""


# =============================================================================
# TOML loading
# =============================================================================


class TestTomlLoading:
    def test_defaults(self, tmp_path):
        config = AutodriveConfig.from_env(project_path=tmp_path)
        assert config.log_level == "INFO"
        assert config.qa_enabled
        assert not config.checkpoint
        assert config.fsd.max_cost == 10.0
        assert config.checks.commands == DEFAULT_CHECK_COMMANDS
        assert config.agent.binary == "claude"

    def test_explicit_file(self, tmp_path):
        path = write_config(tmp_path / "custom.toml", FULL_TOML)
        config = AutodriveConfig.from_env(config_file=path)

        assert config.log_level == "DEBUG"
        assert config.fsd.max_cost == 25.5
        assert config.fsd.max_iterations_per_milestone == 3
        assert config.fsd.max_total_prompts == 40
        assert config.fsd.checkpoint_interval == 2
        assert config.fsd.sensitive_approval is False
        assert config.fsd.auto_resume is True
        assert config.qa_enabled is False
        assert config.checkpoint is True
        assert config.checks.commands == {"test": "pytest -q"}
        assert config.checks.timeout == 120.0
        assert config.agent.binary == "/usr/local/bin/claude"
        assert config.agent.model == "opus"
        assert config.agent.timeout == 900.0
        assert config.agent.allowed_tools == ["Read", "Edit", "Bash"]

    def test_file_from_environment_variable(self, tmp_path, monkeypatch):
        path = write_config(tmp_path / "env.toml", "[fsd]\nmax_cost = 3\n")
        monkeypatch.setenv("AUTODRIVE_CONFIG_FILE", str(path))
        assert AutodriveConfig.from_env().fsd.max_cost == 3.0

    def test_project_overrides_xdg(self, tmp_path):
        write_config(tmp_path / "xdg" / "autodrive" / "config.toml", "[fsd]\nmax_cost = 4\nmax_total_prompts = 7\n")
        project = tmp_path / "project"
        write_config(project / "autodrive.toml", "[fsd]\nmax_cost = 6\n")

        config = AutodriveConfig.from_env(project_path=project)

        assert config.fsd.max_cost == 6.0
        assert config.fsd.max_total_prompts == 7

    def test_project_defaults_to_cwd(self, tmp_path):
        write_config(tmp_path / "autodrive.toml", "[fsd]\ncheckpoint_interval = 5\n")
        assert AutodriveConfig.from_env().fsd.checkpoint_interval == 5

    def test_missing_explicit_file_keeps_defaults(self, tmp_path, caplog):
        with caplog.at_level(logging.WARNING, logger="autodrive.config.loader"):
            config = AutodriveConfig.from_env(config_file=tmp_path / "nope.toml")
        assert config.fsd.max_cost == 10.0
        assert "Config file not found" in caplog.text

    def test_malformed_toml_keeps_defaults(self, tmp_path, caplog):
        path = write_config(tmp_path / "bad.toml", "[fsd\nmax_cost = ")
        with caplog.at_level(logging.ERROR, logger="autodrive.config.loader"):
            config = AutodriveConfig.from_env(config_file=path)
        assert config.fsd.max_cost == 10.0
        assert "Error loading config file" in caplog.text

    def test_invalid_values_ignored(self, tmp_path, caplog):
        body = '[fsd]\nmax_cost = "lots"\nqa_enabled = "maybe"\n\n[checks]\ncommands = "pytest"\n'
        path = write_config(tmp_path / "invalid.toml", body)
        with caplog.at_level(logging.WARNING):
            config = AutodriveConfig.from_env(config_file=path)
        assert config.fsd.max_cost == 10.0
        assert config.qa_enabled is True
        assert config.checks.commands == DEFAULT_CHECK_COMMANDS
        assert "[fsd].max_cost" in caplog.text
        assert "[checks].commands" in caplog.text


# =============================================================================
# Environment overrides
# =============================================================================


class TestEnvironmentOverrides:
    def test_env_beats_file(self, tmp_path, monkeypatch):
        path = write_config(tmp_path / "c.toml", FULL_TOML)
        monkeypatch.setenv("AUTODRIVE_MAX_COST", "2.5")
        monkeypatch.setenv("AUTODRIVE_MAX_TOTAL_PROMPTS", "12")
        monkeypatch.setenv("AUTODRIVE_QA_ENABLED", "true")
        monkeypatch.setenv("AUTODRIVE_LOG_LEVEL", "warning")
        monkeypatch.setenv("AUTODRIVE_AGENT_MODEL", "sonnet")
        monkeypatch.setenv("AUTODRIVE_ALLOWED_TOOLS", "Read, Grep")
        monkeypatch.setenv("AUTODRIVE_CHECK_TIMEOUT", "30")

        config = AutodriveConfig.from_env(config_file=path)

        assert config.fsd.max_cost == 2.5
        assert config.fsd.max_total_prompts == 12
        assert config.qa_enabled is True
        assert config.log_level == "WARNING"
        assert config.agent.model == "sonnet"
        assert config.agent.allowed_tools == ["Read", "Grep"]
        assert config.checks.timeout == 30.0

    def test_invalid_env_value_ignored(self, monkeypatch):
        monkeypatch.setenv("AUTODRIVE_MAX_ITERATIONS", "many")
        monkeypatch.setenv("AUTODRIVE_CHECKPOINT", "sometimes")
        config = AutodriveConfig.from_env()
        assert config.fsd.max_iterations_per_milestone == 5
        assert config.checkpoint is False


# =============================================================================
# Validation
# =============================================================================


class TestValidation:
    def test_out_of_range_values_reset(self, tmp_path):
        body = "[fsd]\nmax_cost = -1\nmax_iterations_per_milestone = 0\nmax_total_prompts = 0\ncheckpoint_interval = -2\n"
        config = AutodriveConfig.from_env(config_file=write_config(tmp_path / "c.toml", body))
        assert config.fsd.max_cost == 10.0
        assert config.fsd.max_iterations_per_milestone == 5
        assert config.fsd.max_total_prompts == 100
        assert config.fsd.checkpoint_interval == 3

    def test_zero_checkpoint_interval_allowed(self, tmp_path):
        config = AutodriveConfig.from_env(config_file=write_config(tmp_path / "c.toml", "[fsd]\ncheckpoint_interval = 0\n"))
        assert config.fsd.checkpoint_interval == 0

    def test_unknown_log_level(self, monkeypatch):
        monkeypatch.setenv("AUTODRIVE_LOG_LEVEL", "chatty")
        assert AutodriveConfig.from_env().log_level == "INFO"

    def test_non_positive_timeouts_reset(self, tmp_path):
        body = "[checks]\ntimeout = 0\n\n[agent]\ntimeout = -5\n"
        config = AutodriveConfig.from_env(config_file=write_config(tmp_path / "c.toml", body))
        assert config.checks.timeout == 600.0
        assert config.agent.timeout == 1800.0


# =============================================================================
# Conversions
# =============================================================================


class TestConversions:
    def test_to_fsd_config(self):
        config = AutodriveConfig()
        config.fsd.max_cost = 20.0
        frozen = config.to_fsd_config(max_total_prompts=15, checkpoint_interval=None)
        assert isinstance(frozen, FSDConfig)
        assert frozen.max_cost == 20.0
        assert frozen.max_total_prompts == 15
        assert frozen.checkpoint_interval == 3

    def test_build_check_runner(self):
        config = AutodriveConfig()
        config.checks.commands = {"test": "pytest"}
        config.checks.timeout = 45.0
        runner = config.build_check_runner()
        assert runner.commands == {"test": "pytest"}
        assert runner.timeout == 45.0


class TestParsingHelpers:
    @pytest.mark.parametrize("value, expected", [("on", True), ("0", False), (True, True), ("maybe", None)])
    def test_try_parse_bool(self, value, expected):
        assert _try_parse_bool(value) is expected

    def test_parse_list(self):
        assert _parse_list(" a, ,b ") == ["a", "b"]
        assert _parse_list(["x", " "]) == ["x"]

"""Shared fixtures for CLI command tests."""

import json
import os

import pytest
from click.testing import CliRunner

from autodrive.core.providers.base import ExecutionResult

ENVELOPE_START = '{\n  "success"'


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    for name in list(os.environ):
        if name.startswith("AUTODRIVE_"):
            monkeypatch.delenv(name)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))


@pytest.fixture
def cli_runner():
    return CliRunner()


@pytest.fixture
def project_dir(tmp_path):
    project = tmp_path / "project"
    (project / "src").mkdir(parents=True)
    (project / "src" / "index.ts").write_text("export const x = 1;\n")
    return project


@pytest.fixture
def config_file(tmp_path):
    """Config with no check commands so runs never shell out to a toolchain."""
    path = tmp_path / "autodrive.toml"
    path.write_text("[fsd]\nqa_enabled = false\n\n[checks.commands]\n")
    return path


@pytest.fixture
def plan_file(tmp_path):
    plan = {
        "goal": "Build a todo app",
        "milestones": [
            {"id": "m1", "title": "Scaffold", "description": "Create the app", "success_criteria": "It builds"},
            {
                "id": "m2",
                "title": "Todo list",
                "description": "List todos",
                "success_criteria": "Todos render",
                "depends_on": ["m1"],
            },
        ],
        "estimated_cost": 1.5,
    }
    path = tmp_path / "plan.json"
    path.write_text(json.dumps(plan))
    return path


def base_args(project_dir, config_file):
    return ["--project", str(project_dir), "--config", str(config_file)]


def parse_envelope(output):
    """Return the JSON envelope, ignoring any prompts or logs echoed before it."""
    return json.loads(output[output.index(ENVELOPE_START) :])


class StubAgent:
    """Agent that succeeds immediately."""

    name = "stub"

    def __init__(self, **kwargs):
        self.kwargs = kwargs
        self.prompts = []

    def execute(self, prompt, options):
        self.prompts.append(prompt)
        return ExecutionResult(success=True, output="done", session_id="stub-session")

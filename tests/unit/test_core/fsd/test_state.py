"""Tests for file-backed session persistence."""

from __future__ import annotations

import json
from datetime import timedelta

import pytest

from autodrive.core.fsd.models import (
    ExecutionMode,
    ExecutionState,
    GitState,
    MilestoneStatus,
    utc_now,
)
from autodrive.core.fsd.state import STATE_FILE_NAME, StateStore

from .conftest import make_milestone, make_plan, make_saved_session


@pytest.fixture
def store(tmp_path):
    return StateStore(tmp_path)


# =============================================================================
# Save / load
# =============================================================================


class TestSaveLoad:
    def test_load_missing_returns_none(self, store):
        assert store.load() is None

    def test_round_trip(self, store):
        state = ExecutionState(mode=ExecutionMode.EXECUTING, completed_milestones=["m1"], total_prompts=4)
        state.add_learning("Check type compatibility before assignments")
        session = make_saved_session(
            state=state,
            git_state=GitState(is_repo=True, original_branch="main", fsd_branch="fsd/todo-20260101T0000"),
        )

        saved = store.save(session)
        loaded = store.load()

        assert loaded is not None
        assert loaded.session_id == session.session_id
        assert loaded.goal == session.goal
        assert loaded.execution_state.completed_milestones == ["m1"]
        assert loaded.execution_state.learnings == ["Check type compatibility before assignments"]
        assert loaded.git_state.fsd_branch == "fsd/todo-20260101T0000"
        assert loaded.saved_at == saved.saved_at

    def test_file_is_snake_case_json_with_version(self, store):
        store.save(make_saved_session())
        data = json.loads(store.state_path.read_text())
        assert data["version"] == 1
        assert "execution_state" in data
        assert "completed_milestones" in data["execution_state"]

    def test_state_file_location(self, store, tmp_path):
        assert store.state_path == tmp_path / ".claude" / STATE_FILE_NAME

    def test_saved_at_strictly_increases(self, store):
        session = make_saved_session()
        first = store.save(session)
        second = store.save(session)
        third = store.save(session)
        assert first.saved_at < second.saved_at < third.saved_at

    def test_no_temp_files_left_behind(self, store):
        store.save(make_saved_session())
        leftovers = [p.name for p in store.state_dir.iterdir() if p.name.endswith(".tmp")]
        assert leftovers == []


class TestCorruptState:
    def test_invalid_json_is_absent(self, store):
        store.state_dir.mkdir(parents=True)
        store.state_path.write_text("{not json")
        assert store.load() is None
        assert not store.is_resumable()

    def test_version_mismatch_is_absent(self, store):
        store.save(make_saved_session())
        data = json.loads(store.state_path.read_text())
        data["version"] = 99
        store.state_path.write_text(json.dumps(data))
        assert store.load() is None

    def test_validation_failure_is_absent(self, store):
        store.state_dir.mkdir(parents=True)
        store.state_path.write_text(json.dumps({"version": 1, "goal": "x"}))
        assert store.load() is None


# =============================================================================
# Clear and resume
# =============================================================================


class TestClear:
    def test_clear_removes_file(self, store):
        store.save(make_saved_session())
        assert store.clear() is True
        assert not store.state_path.exists()
        assert store.load() is None

    def test_clear_is_idempotent(self, store):
        assert store.clear() is False
        assert store.clear() is False


class TestResume:
    def test_fresh_unfinished_session_is_resumable(self, store):
        store.save(make_saved_session())
        assert store.is_resumable()

    def test_stale_session_not_resumable(self, store):
        store.save(make_saved_session())
        assert not store.is_resumable(now=utc_now() + timedelta(hours=25))

    def test_one_hour_old_session_is_resumable(self, store):
        store.save(make_saved_session())
        assert store.is_resumable(now=utc_now() + timedelta(hours=1))

    def test_completed_plan_not_resumable(self, store):
        plan = make_plan(make_milestone("m1", status=MilestoneStatus.COMPLETED))
        store.save(make_saved_session(plan=plan))
        assert not store.is_resumable()

    def test_resume_info(self, store):
        plan = make_plan(
            make_milestone("m1", status=MilestoneStatus.COMPLETED),
            make_milestone("m2"),
            make_milestone("m3"),
        )
        state = ExecutionState(start_time=utc_now() - timedelta(minutes=12))
        store.save(make_saved_session(plan=plan, state=state))

        info = store.resume_info()
        assert info is not None
        assert info.goal == "Build a todo app"
        assert info.completed == 1
        assert info.total == 3
        assert info.elapsed_minutes >= 12

    def test_resume_info_without_session(self, store):
        assert store.resume_info() is None

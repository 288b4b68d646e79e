from __future__ import annotations

import json
from pathlib import Path

from app.payslips import config
from app.payslips.state import SCHEMA_VERSION, WorkflowState, WorkflowStateStore


def test_default_path_comes_from_config() -> None:
    assert WorkflowStateStore().path == Path(config.WORKFLOW_STATE_FILE)


def test_missing_file_loads_default_state() -> None:
    state = WorkflowStateStore().load()

    assert state == WorkflowState()
    assert state.navigated is False


def test_mark_navigated_round_trips(tmp_path: Path) -> None:
    store = WorkflowStateStore(tmp_path / "state.json")

    saved = store.mark_navigated("12345", "https://payroll.example.com/history")
    loaded = WorkflowStateStore(tmp_path / "state.json").load()

    assert loaded == saved
    assert loaded.navigated is True
    assert loaded.employee_id == "12345"
    assert loaded.navigated_at
    assert not (tmp_path / "state.json.tmp").exists()


def test_corrupt_file_is_ignored(tmp_path: Path) -> None:
    path = tmp_path / "state.json"
    path.write_text("{not json", encoding="utf-8")

    assert WorkflowStateStore(path).load() == WorkflowState()


def test_non_object_payload_is_ignored(tmp_path: Path) -> None:
    path = tmp_path / "state.json"
    path.write_text(json.dumps(["navigated"]), encoding="utf-8")

    assert WorkflowStateStore(path).load() == WorkflowState()


def test_schema_mismatch_is_ignored(tmp_path: Path) -> None:
    path = tmp_path / "state.json"
    path.write_text(
        json.dumps({"schema_version": SCHEMA_VERSION + 1, "navigated": True}),
        encoding="utf-8",
    )

    assert WorkflowStateStore(path).load().navigated is False


def test_clear_is_idempotent(tmp_path: Path) -> None:
    store = WorkflowStateStore(tmp_path / "state.json")
    store.mark_navigated("12345", "https://payroll.example.com/history")

    store.clear()
    store.clear()

    assert not store.path.exists()
    assert store.load() == WorkflowState()

"""Durable workflow state that survives the redirect to the history page.

Every full page load restarts the workflow from a blank slate; this record
is the only thing carried across. It has exactly one writer (the navigation
transition) and one consumer (the extraction phase, which clears it).
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from . import config
from .logging_utils import _payslips_event
from .utils import log_line, now_iso

SCHEMA_VERSION = 1


@dataclass
class WorkflowState:
    schema_version: int = SCHEMA_VERSION
    navigated: bool = False
    employee_id: Optional[str] = None
    history_url: Optional[str] = None
    navigated_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WorkflowState":
        return cls(
            schema_version=int(data.get("schema_version", SCHEMA_VERSION)),
            navigated=bool(data.get("navigated", False)),
            employee_id=data.get("employee_id") or None,
            history_url=data.get("history_url") or None,
            navigated_at=data.get("navigated_at") or None,
        )


class WorkflowStateStore:
    """Persist and restore :class:`WorkflowState` as a small JSON file."""

    def __init__(self, path: Optional[Path] = None) -> None:
        self.path = Path(path or config.WORKFLOW_STATE_FILE)

    def load(self) -> WorkflowState:
        if not self.path.exists():
            return WorkflowState()
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            log_line(f"[STATE] Ignoring unreadable workflow state {self.path}: {exc}")
            return WorkflowState()

        if not isinstance(raw, dict):
            log_line(f"[STATE] Ignoring malformed workflow state {self.path}")
            return WorkflowState()

        version = raw.get("schema_version")
        if version != SCHEMA_VERSION:
            _payslips_event(
                "state",
                phase="load",
                kind="schema_mismatch",
                found=version,
                expected=SCHEMA_VERSION,
            )
            return WorkflowState()

        return WorkflowState.from_dict(raw)

    def save(self, state: WorkflowState) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(
            json.dumps(state.to_dict(), ensure_ascii=False, indent=2),
            encoding="utf-8",
        )
        tmp_path.replace(self.path)

    def mark_navigated(self, employee_id: str, history_url: str) -> WorkflowState:
        state = WorkflowState(
            navigated=True,
            employee_id=employee_id,
            history_url=history_url,
            navigated_at=now_iso(),
        )
        self.save(state)
        _payslips_event("state", phase="save", navigated=True, employee_id=employee_id)
        return state

    def clear(self) -> None:
        """Remove the persisted state; safe to call when nothing is stored."""

        try:
            self.path.unlink()
            _payslips_event("state", phase="clear", path=str(self.path))
        except FileNotFoundError:
            pass


__all__ = ["SCHEMA_VERSION", "WorkflowState", "WorkflowStateStore"]

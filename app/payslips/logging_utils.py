from __future__ import annotations

from typing import Any

from .utils import log_line


def _payslips_event(label: str, **fields: Any) -> None:
    """Log one harvester event as ``[PAYSLIPS][LABEL] key='value', ...``.

    Fields are rendered with ``repr`` in key order so lines from the same
    stage line up in the run log. Formatting errors are dropped.
    """

    try:
        payload = ", ".join(f"{key}={value!r}" for key, value in sorted(fields.items()))
        log_line(f"[PAYSLIPS][{label.upper()}] {payload}")
    except Exception:  # noqa: BLE001
        return


__all__ = ["_payslips_event"]

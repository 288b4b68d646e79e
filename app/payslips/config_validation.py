from __future__ import annotations

from typing import Literal

from . import config
from .archive import COLLISION_POLICIES
from .logging_utils import _payslips_event
from .utils import log_line

Entrypoint = Literal["ui", "cli", "tests"]


def _raise_config_error(message: str, *, entrypoint: Entrypoint, error: str) -> None:
    _payslips_event(
        "error",
        phase="config",
        context="runtime_validation",
        error=error,
        entrypoint=entrypoint,
    )
    log_line(f"[CONFIG] {message} (entrypoint={entrypoint})")
    raise ValueError(message)


def validate_runtime_config(entrypoint: Entrypoint) -> None:
    """Validate runtime configuration for the given entrypoint.

    Raises ``ValueError`` when a blocking misconfiguration is detected.
    """

    positive_fields = [
        ("DOM_POLL_INTERVAL_SECONDS", config.DOM_POLL_INTERVAL_SECONDS),
        ("ENTRY_TIMEOUT_SECONDS", config.ENTRY_TIMEOUT_SECONDS),
        ("READINESS_TIMEOUT_SECONDS", config.READINESS_TIMEOUT_SECONDS),
        ("NAV_TIMEOUT_SECONDS", config.NAV_TIMEOUT_SECONDS),
        ("FETCH_TIMEOUT_SECONDS", config.FETCH_TIMEOUT_SECONDS),
        ("CONVERSION_TIMEOUT_SECONDS", config.CONVERSION_TIMEOUT_SECONDS),
        ("MAX_SIMULTANEOUS_DOWNLOADS", config.MAX_SIMULTANEOUS_DOWNLOADS),
        ("FETCH_MAX_ATTEMPTS", config.FETCH_MAX_ATTEMPTS),
    ]
    for field_name, value in positive_fields:
        if value <= 0:
            _raise_config_error(
                f"{field_name} must be greater than zero.",
                entrypoint=entrypoint,
                error="invalid_positive_value",
            )

    if config.DOWNLOAD_BATCH_DELAY_SECONDS < 0:
        _raise_config_error(
            "DOWNLOAD_BATCH_DELAY_SECONDS must be non-negative.",
            entrypoint=entrypoint,
            error="invalid_batch_delay",
        )

    if config.TABLE_HEADER_ROW_COUNT < 0:
        _raise_config_error(
            "TABLE_HEADER_ROW_COUNT must be non-negative.",
            entrypoint=entrypoint,
            error="invalid_header_rows",
        )

    if config.FILENAME_COLLISION_POLICY not in COLLISION_POLICIES:
        _raise_config_error(
            f"PAYSLIPS_ON_COLLISION must be one of {', '.join(COLLISION_POLICIES)}.",
            entrypoint=entrypoint,
            error="invalid_collision_policy",
        )


__all__ = ["validate_runtime_config", "Entrypoint"]

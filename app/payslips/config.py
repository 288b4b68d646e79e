"""Configuration constants for the payslip harvester."""
from __future__ import annotations

import os
from pathlib import Path


def _parse_int(env_var: str, default: int, *, minimum: int | None = None) -> int:
    """Parse an integer from the environment, falling back to ``default``."""

    try:
        value = int(os.getenv(env_var, str(default)))
    except ValueError:
        return default
    if minimum is not None:
        return max(minimum, value)
    return value


def _parse_float(env_var: str, default: float) -> float:
    try:
        return float(os.getenv(env_var, str(default)))
    except ValueError:
        return default


def _parse_bool(env_var: str, default: bool) -> bool:
    raw = os.getenv(env_var)
    if raw is None:
        return default
    return raw.strip().lower() not in {"0", "false", "no", "off", ""}


DATA_DIR: Path = Path(os.getenv("PAYSLIPS_DATA_DIR", "data"))
OUTPUT_DIR: Path = DATA_DIR / "output"
LOG_DIR: Path = DATA_DIR / "logs"
LOG_FILE: Path = LOG_DIR / "latest.log"
WORKFLOW_STATE_FILE: Path = DATA_DIR / "workflow_state.json"
SUMMARY_FILE: Path = DATA_DIR / "last_summary.json"
BROWSER_PROFILE_DIR: Path = DATA_DIR / "browser_profile"

PORTAL_BASE_URL: str = os.getenv(
    "PAYSLIPS_PORTAL_BASE_URL", "https://payroll.ascenderpay.com"
).rstrip("/")
HISTORY_PATH: str = "ords/wss_vzbp/WK8020VZ$.startup"
# Substring of the listing page URL; its presence means the redirect already happened.
HISTORY_URL_MARKER: str = "ords/wss_vzbp"
ARCHIVE_NAME: str = "payslips.zip"

# Readiness polling (seconds)
DOM_POLL_INTERVAL_SECONDS: float = _parse_float("PAYSLIPS_DOM_POLL_INTERVAL_SECONDS", 0.5)
# Entry page wait covers a manual login.
ENTRY_TIMEOUT_SECONDS: int = _parse_int("PAYSLIPS_ENTRY_TIMEOUT_SECONDS", 300)
READINESS_TIMEOUT_SECONDS: int = _parse_int("PAYSLIPS_READINESS_TIMEOUT_SECONDS", 60)
NAV_TIMEOUT_SECONDS: int = _parse_int("PAYSLIPS_NAV_TIMEOUT_SECONDS", 30)
MAX_NAVIGATION_HOPS: int = 3

# Batch conversion
MAX_SIMULTANEOUS_DOWNLOADS: int = _parse_int("PAYSLIPS_MAX_SIMULTANEOUS_DOWNLOADS", 5)
DOWNLOAD_BATCH_DELAY_SECONDS: float = _parse_float(
    "PAYSLIPS_DOWNLOAD_BATCH_DELAY_SECONDS", 1.0
)
FETCH_TIMEOUT_SECONDS: int = _parse_int("PAYSLIPS_FETCH_TIMEOUT_SECONDS", 30)
FETCH_MAX_ATTEMPTS: int = _parse_int("PAYSLIPS_FETCH_MAX_ATTEMPTS", 2)
CONVERSION_TIMEOUT_SECONDS: int = _parse_int("PAYSLIPS_CONVERSION_TIMEOUT_SECONDS", 120)
DRY_RUN_DEFAULT: bool = _parse_bool("PAYSLIPS_DRY_RUN", False)

# Renderer quality
RENDER_PRINT_EMULATION: bool = _parse_bool("PAYSLIPS_RENDER_PRINT_EMULATION", True)
RENDER_DPI: int = _parse_int("PAYSLIPS_RENDER_DPI", 300)
# WeasyPrint layout zoom; 1.0 keeps the page at its own size.
RENDER_SCALE: float = _parse_float("PAYSLIPS_RENDER_SCALE", 1.0)

# Listing table shape: column headers plus the "Year to Date" summary row.
TABLE_HEADER_ROW_COUNT: int = _parse_int("PAYSLIPS_TABLE_HEADER_ROW_COUNT", 2)

FILENAME_COLLISION_POLICY: str = (
    os.getenv("PAYSLIPS_ON_COLLISION", "rename").strip().lower() or "rename"
)

USER_AGENT: str = (
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


__all__ = [
    "DATA_DIR",
    "OUTPUT_DIR",
    "LOG_DIR",
    "LOG_FILE",
    "WORKFLOW_STATE_FILE",
    "SUMMARY_FILE",
    "BROWSER_PROFILE_DIR",
    "PORTAL_BASE_URL",
    "HISTORY_PATH",
    "HISTORY_URL_MARKER",
    "ARCHIVE_NAME",
]

from __future__ import annotations

"""CLI helper for printing the last harvest summary."""

import argparse
from typing import Sequence

from . import config
from .utils import load_json_file


def _build_parser() -> argparse.ArgumentParser:
    """Return an argument parser for the run summary CLI."""

    parser = argparse.ArgumentParser(
        description="Show the summary of the most recent payslip run.",
    )
    parser.add_argument(
        "--errors",
        action="store_true",
        help="List every skipped row or document.",
    )
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for the run summary CLI."""

    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    summary = load_json_file(config.SUMMARY_FILE)
    if not isinstance(summary, dict):
        parser.error(f"No run summary found at {config.SUMMARY_FILE}")

    print(f"Run {summary.get('started_at')} ({summary.get('status')})")
    for key in ("found", "converted", "skipped", "row_errors", "failed", "dry_run_count"):
        print(f"  {key}: {summary.get(key, 0)}")
    if summary.get("archive_path"):
        print(f"  archive: {summary['archive_path']}")
    if summary.get("error"):
        print(f"  error: {summary['error']}")

    errors = summary.get("errors") or []
    if args.errors and errors:
        print("\nSkipped:")
        for entry in errors:
            what = entry.get("label") or f"row {entry.get('row_index')}"
            print(f"  {what}: {entry.get('error_code')} {entry.get('message')}")

    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entry
    raise SystemExit(main())

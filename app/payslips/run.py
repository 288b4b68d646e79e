"""Playwright-driven harvester for payroll self-service payslip history.

Workflow:

- Open the portal in a headed Chromium profile; the user signs in.
- Click "My Details", read the employee number and redirect to the payslip
  history report (persisting the workflow state first).
- Once the report table renders, read the "Period End" links.
- Fetch each payslip page with the browser's cookies and render it to PDF,
  five at a time with a pause between batches.
- Bundle the PDFs into ``payslips.zip`` (or save them one by one).

Wired to the CLI via ``_cli_entrypoint`` and to the web UI via
``app.main``.
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from playwright.sync_api import Error as PWError

from . import config
from .archive import COLLISION_POLICIES, PerFileSaver, build_archive, save_archive
from .browser import BrowserSession, open_browser_session
from .config_validation import validate_runtime_config
from .error_codes import ErrorCode, PayslipsError
from .extractor import extract_documents
from .http_client import build_session
from .logging_utils import _payslips_event
from .navigation import drive_to_listing
from .pipeline import ConversionPipeline, ConversionResult, DocumentConverter
from .readiness import CancelToken
from .renderer import Renderer, WeasyPrintRenderer
from .selectors import PORTAL_SELECTORS, PortalSelectors
from .state import WorkflowStateStore
from .utils import ensure_dirs, log_line, now_iso, save_json_file, setup_run_logger


def _short_error_message(exc: BaseException, max_length: int = 200) -> str:
    message = f"{type(exc).__name__}: {exc}"
    if len(message) > max_length:
        return message[: max_length - 3] + "..."
    return message


def _new_summary(*, dry_run: bool, archive: bool) -> Dict[str, Any]:
    return {
        "status": "running",
        "started_at": now_iso(),
        "finished_at": None,
        "dry_run": dry_run,
        "output_mode": "archive" if archive else "files",
        "employee_id": None,
        "found": 0,
        "row_errors": 0,
        "converted": 0,
        "failed": 0,
        "dry_run_count": 0,
        "skipped": 0,
        "archive_path": None,
        "saved_files": [],
        "errors": [],
    }


def _tally(summary: Dict[str, Any], results: List[ConversionResult]) -> None:
    for result in results:
        if result.dry_run:
            summary["dry_run_count"] += 1
        elif result.ok:
            summary["converted"] += 1
        else:
            summary["failed"] += 1
            summary["errors"].append(
                {
                    "label": result.descriptor.label,
                    "url": result.descriptor.source_url,
                    "error_code": result.error_code,
                    "message": str(result.error),
                }
            )
    summary["skipped"] = summary["row_errors"] + summary["failed"]


def _finalize_summary(summary: Dict[str, Any]) -> Dict[str, Any]:
    summary["finished_at"] = now_iso()
    _payslips_event(
        "summary",
        status=summary["status"],
        found=summary["found"],
        converted=summary["converted"],
        skipped=summary["skipped"],
        dry_run=summary["dry_run_count"],
        archive_path=summary["archive_path"],
    )
    if summary["status"] == "completed":
        if summary["dry_run"]:
            log_line(f"Dry run: {summary['dry_run_count']} payslips would be converted.")
        else:
            log_line(
                f"Saved {summary['converted']} of {summary['found'] + summary['row_errors']} payslips "
                f"({summary['skipped']} skipped)."
            )
    try:
        save_json_file(config.SUMMARY_FILE, summary)
    except OSError as exc:
        log_line(f"[RUN][WARN] Unable to write summary: {exc}")
    return summary


def run_harvest(
    browser: BrowserSession,
    *,
    store: Optional[WorkflowStateStore] = None,
    dry_run: Optional[bool] = None,
    archive: bool = True,
    output_dir: Optional[Path] = None,
    batch_size: Optional[int] = None,
    batch_delay: Optional[float] = None,
    on_collision: Optional[str] = None,
    renderer: Optional[Renderer] = None,
    cancel: Optional[CancelToken] = None,
    selectors: PortalSelectors = PORTAL_SELECTORS,
    entry_timeout: Optional[float] = None,
    readiness_timeout: Optional[float] = None,
) -> Dict[str, Any]:
    """Drive an open browser session from the portal to a saved archive.

    Row and document failures are counted in the returned summary.
    Any other error (readiness timeout, navigation precondition, archive
    failure or an unexpected exception) is recorded in the summary file as
    a failed run and re-raised.
    """

    store = store or WorkflowStateStore()
    dry_run = config.DRY_RUN_DEFAULT if dry_run is None else dry_run
    output_dir = Path(output_dir or config.OUTPUT_DIR)
    cancel = cancel or CancelToken()
    page = browser.page

    summary = _new_summary(dry_run=dry_run, archive=archive)
    try:
        state = drive_to_listing(
            page,
            store,
            selectors=selectors,
            cancel=cancel,
            entry_timeout=entry_timeout,
            readiness_timeout=readiness_timeout,
        )
        summary["employee_id"] = state.employee_id

        table_html = page.eval_on_selector(selectors.listing_table, "el => el.outerHTML")
        extraction = extract_documents(table_html, page_url=page.url, selectors=selectors)
        summary["found"] = len(extraction.descriptors)
        summary["row_errors"] = len(extraction.errors)
        for error in extraction.errors:
            summary["errors"].append(
                {"row_index": error.row_index, "error_code": error.error_code, "message": str(error)}
            )

        session = build_session(browser.cookies(), user_agent=browser.user_agent())
        converter = DocumentConverter(
            session,
            renderer or WeasyPrintRenderer(session),
            cancel=cancel,
        )
        saver = None if (archive or dry_run) else PerFileSaver(output_dir, on_collision=on_collision)
        pipeline = ConversionPipeline(
            converter,
            batch_size=batch_size,
            batch_delay=batch_delay,
            dry_run=dry_run,
            cancel=cancel,
            on_result=saver,
        )
        results = pipeline.run(extraction.descriptors)
        _tally(summary, results)

        if saver is not None:
            summary["saved_files"] = [str(path) for path in saver.saved]
        elif archive and not dry_run:
            build = build_archive(results, on_collision=on_collision)
            if build.entries:
                summary["archive_path"] = str(save_archive(build, output_dir))
                summary["saved_files"] = sorted(build.entries)
            else:
                log_line("[RUN] No payslips converted; archive not written.")

        summary["status"] = "completed"
        return _finalize_summary(summary)
    except Exception as exc:
        summary["status"] = "failed"
        summary["error_code"] = getattr(exc, "error_code", ErrorCode.INTERNAL)
        summary["error"] = _short_error_message(exc)
        _payslips_event("error", phase="run", error_code=summary["error_code"], error=summary["error"])
        _finalize_summary(summary)
        raise
    finally:
        store.clear()


def run_payslips(
    *,
    portal_url: Optional[str] = None,
    headless: bool = False,
    dry_run: Optional[bool] = None,
    archive: bool = True,
    output_dir: Optional[Path] = None,
    batch_size: Optional[int] = None,
    batch_delay: Optional[float] = None,
    on_collision: Optional[str] = None,
    cancel: Optional[CancelToken] = None,
) -> Dict[str, Any]:
    """Public entrypoint: open the browser and run one harvest."""

    ensure_dirs()
    log_path = setup_run_logger()
    validate_runtime_config("cli")
    cancel = cancel or CancelToken()
    store = WorkflowStateStore()
    portal_url = (portal_url or config.PORTAL_BASE_URL).strip()

    with open_browser_session(headless=headless) as browser:
        browser.page.on("close", lambda _page: cancel.cancel("page closed"))
        state = store.load()
        start_url = state.history_url if state.navigated and state.history_url else portal_url
        _payslips_event("nav", step="start", url=start_url, resumed=state.navigated)
        browser.page.goto(start_url, wait_until="domcontentloaded")
        try:
            summary = run_harvest(
                browser,
                store=store,
                dry_run=dry_run,
                archive=archive,
                output_dir=output_dir,
                batch_size=batch_size,
                batch_delay=batch_delay,
                on_collision=on_collision,
                cancel=cancel,
            )
        except KeyboardInterrupt:
            cancel.cancel("interrupted")
            raise

    summary["log_file"] = str(log_path)
    return summary


def _cli_entrypoint(argv: Optional[List[str]] = None) -> int:  # pragma: no cover
    parser = argparse.ArgumentParser(description="Download payslip history as PDFs")
    parser.add_argument("--portal-url", default=None)
    parser.add_argument("--output-dir", type=Path, default=None)
    parser.add_argument("--headless", action="store_true")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        default=config.DRY_RUN_DEFAULT,
        help="List the payslips that would be converted without fetching them.",
    )
    parser.add_argument(
        "--no-archive",
        dest="archive",
        action="store_false",
        help="Save one PDF per payslip instead of payslips.zip.",
    )
    parser.add_argument("--batch-size", type=int, default=None)
    parser.add_argument("--batch-delay", type=float, default=None)
    parser.add_argument("--on-collision", choices=COLLISION_POLICIES, default=None)

    args = parser.parse_args(argv)

    try:
        summary = run_payslips(
            portal_url=args.portal_url,
            headless=args.headless,
            dry_run=args.dry_run,
            archive=args.archive,
            output_dir=args.output_dir,
            batch_size=args.batch_size,
            batch_delay=args.batch_delay,
            on_collision=args.on_collision,
        )
    except (PayslipsError, PWError, ValueError) as exc:
        print(f"Payslip download failed: {exc}", file=sys.stderr)
        return 1

    if summary.get("archive_path"):
        print(f"Archive written to {summary['archive_path']}")
    return 0


__all__ = ["run_harvest", "run_payslips", "_cli_entrypoint"]


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(_cli_entrypoint())

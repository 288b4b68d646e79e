"""Cross-navigation state machine for reaching the payslip history listing.

Phases:

- ``AWAITING_ENTRY``: on the portal landing page. Open "My Details", read
  the employee number from the identity panel, persist the workflow state
  and redirect to the history report.
- ``AWAITING_HISTORY_LISTING``: the redirect happened (URL marker or
  persisted state) but the report table has not rendered yet.
- ``READY_FOR_EXTRACTION``: the report table is present.

Each hop of :func:`drive_to_listing` starts from scratch: the phase is
re-derived from the current URL and the state file, never from in-memory
variables of a previous hop.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Any, Optional
from urllib.parse import urlencode

from playwright.sync_api import Error as PWError

from . import config
from .error_codes import NavigationPreconditionError
from .logging_utils import _payslips_event
from .readiness import CancelToken, element_by_id, elements_by_selector, wait_until_ready
from .selectors import PORTAL_SELECTORS, PortalSelectors
from .state import WorkflowState, WorkflowStateStore

# "<id> <lastname>, <firstname> <middlenames>"
_IDENTITY_PATTERN = re.compile(r"^(\S+)\s+\S")


class NavigationPhase(str, Enum):
    AWAITING_ENTRY = "awaiting_entry"
    AWAITING_HISTORY_LISTING = "awaiting_history_listing"
    READY_FOR_EXTRACTION = "ready_for_extraction"


def resolve_phase(
    url: str,
    state: WorkflowState,
    *,
    table_present: bool,
    marker: Optional[str] = None,
) -> NavigationPhase:
    """Return the active phase for ``url`` and the persisted ``state``."""

    marker = config.HISTORY_URL_MARKER if marker is None else marker
    on_history_page = bool(marker) and marker in (url or "")
    if not (on_history_page or state.navigated):
        return NavigationPhase.AWAITING_ENTRY
    if table_present:
        return NavigationPhase.READY_FOR_EXTRACTION
    return NavigationPhase.AWAITING_HISTORY_LISTING


def parse_employee_id(detail_text: Optional[str]) -> str:
    """Extract the employee number from the identity panel text.

    >>> parse_employee_id("12345 Smith, John Alan")
    '12345'
    """

    text = (detail_text or "").strip()
    match = _IDENTITY_PATTERN.match(text)
    if not match:
        raise NavigationPreconditionError(
            f"Unable to parse employee identifier from {text[:80]!r}",
            detail_text=text,
        )
    return match.group(1)


def build_history_url(employee_id: str, *, base_url: Optional[str] = None) -> str:
    base = (base_url or config.PORTAL_BASE_URL).rstrip("/")
    query = urlencode({"Z_EMPLOYEE_NUMBER": employee_id, "P_MODE": "R"})
    return f"{base}/{config.HISTORY_PATH}?{query}"


def _listing_table_present(page: Any, selectors: PortalSelectors) -> bool:
    try:
        return page.query_selector(selectors.listing_rows) is not None
    except PWError:
        return False


def _goto(page: Any, url: str, *, label: str) -> None:
    _payslips_event("nav", step="goto", target=label, url=url)
    page.goto(
        url,
        wait_until="domcontentloaded",
        timeout=config.NAV_TIMEOUT_SECONDS * 1000,
    )


def navigate_to_history(
    page: Any,
    store: WorkflowStateStore,
    *,
    selectors: PortalSelectors = PORTAL_SELECTORS,
    cancel: Optional[CancelToken] = None,
    entry_timeout: Optional[float] = None,
    readiness_timeout: Optional[float] = None,
    base_url: Optional[str] = None,
) -> str:
    """Run the ``AWAITING_ENTRY`` transition and return the history URL."""

    entry_timeout = config.ENTRY_TIMEOUT_SECONDS if entry_timeout is None else entry_timeout

    menu = wait_until_ready(
        page,
        element_by_id(selectors.menu_button_id),
        timeout=entry_timeout,
        cancel=cancel,
    )
    menu.click()

    cells = wait_until_ready(
        page,
        elements_by_selector(selectors.identity_cells),
        timeout=readiness_timeout,
        cancel=cancel,
    )
    detail_text = cells[0].inner_text()
    employee_id = parse_employee_id(detail_text)
    history_url = build_history_url(employee_id, base_url=base_url)

    store.mark_navigated(employee_id, history_url)
    try:
        _goto(page, history_url, label="history")
    except PWError as exc:
        store.clear()
        raise NavigationPreconditionError(
            f"Redirect to payslip history failed: {exc}"
        ) from exc
    except Exception:
        # The flag must never outlive a redirect that did not happen.
        store.clear()
        raise
    return history_url


def drive_to_listing(
    page: Any,
    store: WorkflowStateStore,
    *,
    selectors: PortalSelectors = PORTAL_SELECTORS,
    cancel: Optional[CancelToken] = None,
    entry_timeout: Optional[float] = None,
    readiness_timeout: Optional[float] = None,
    base_url: Optional[str] = None,
    max_hops: Optional[int] = None,
) -> WorkflowState:
    """Advance the workflow until the history table is rendered.

    Returns the workflow state that was in effect when the listing became
    ready. The caller owns clearing it once extraction ends.
    """

    max_hops = config.MAX_NAVIGATION_HOPS if max_hops is None else max_hops

    for hop in range(1, max_hops + 1):
        state = store.load()
        phase = resolve_phase(
            page.url,
            state,
            table_present=_listing_table_present(page, selectors),
        )
        _payslips_event("nav", step="phase", hop=hop, phase=phase.value, url=page.url)

        if phase is NavigationPhase.READY_FOR_EXTRACTION:
            return state

        if phase is NavigationPhase.AWAITING_ENTRY:
            navigate_to_history(
                page,
                store,
                selectors=selectors,
                cancel=cancel,
                entry_timeout=entry_timeout,
                readiness_timeout=readiness_timeout,
                base_url=base_url,
            )
            continue

        # Persisted state says we already navigated, but this page is not the
        # report (e.g. the tool was restarted); go straight back to it.
        if config.HISTORY_URL_MARKER not in (page.url or "") and state.history_url:
            _goto(page, state.history_url, label="history_resume")

        wait_until_ready(
            page,
            elements_by_selector(selectors.listing_rows),
            timeout=readiness_timeout,
            cancel=cancel,
        )
        return state

    raise NavigationPreconditionError(
        f"Payslip history not reached after {max_hops} navigation hops"
    )


__all__ = [
    "NavigationPhase",
    "resolve_phase",
    "parse_employee_id",
    "build_history_url",
    "navigate_to_history",
    "drive_to_listing",
]

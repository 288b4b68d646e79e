"""Polling primitive for synchronising with an asynchronously rendering page.

The portal draws its menus and report tables with client-side scripts, so a
selector can be absent for a while after ``load`` fires. ``wait_until_ready``
re-evaluates a query against the live page at a fixed interval until the
query reports ready, the timeout elapses, or the cancel token fires.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Generic, List, Optional, TypeVar

from playwright.sync_api import Error as PWError

from . import config
from .error_codes import OperationCancelled, ReadinessTimeout
from .logging_utils import _payslips_event

T = TypeVar("T")


class CancelToken:
    """Cooperative cancellation shared by polling, fetching and batching."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self.reason: Optional[str] = None

    def cancel(self, reason: str = "cancelled") -> None:
        self.reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, seconds: float) -> bool:
        """Sleep up to ``seconds``; return ``True`` if cancelled meanwhile."""

        return self._event.wait(max(0.0, seconds))

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelled(f"Operation cancelled: {self.reason or 'cancelled'}")


@dataclass
class QueryResult(Generic[T]):
    result: T
    ready: bool


@dataclass
class ReadinessQuery(Generic[T]):
    description: str
    evaluate: Callable[[Any], QueryResult[T]]

    def __call__(self, page: Any) -> QueryResult[T]:
        return self.evaluate(page)


def element_by_id(element_id: str) -> ReadinessQuery[Any]:
    """Ready once an element with ``element_id`` exists.

    Ids on the portal contain ``:`` so an attribute selector is used rather
    than ``#id``.
    """

    def _evaluate(page: Any) -> QueryResult[Any]:
        handle = page.query_selector(f"[id='{element_id}']")
        return QueryResult(result=handle, ready=handle is not None)

    return ReadinessQuery(description=f"id={element_id}", evaluate=_evaluate)


def elements_by_selector(selector: str) -> ReadinessQuery[List[Any]]:
    """Ready once ``selector`` matches at least one element."""

    def _evaluate(page: Any) -> QueryResult[List[Any]]:
        handles = list(page.query_selector_all(selector))
        return QueryResult(result=handles, ready=len(handles) > 0)

    return ReadinessQuery(description=f"selector={selector}", evaluate=_evaluate)


def wait_until_ready(
    page: Any,
    query: ReadinessQuery[T],
    *,
    interval: Optional[float] = None,
    timeout: Optional[float] = None,
    cancel: Optional[CancelToken] = None,
    clock: Callable[[], float] = time.monotonic,
) -> T:
    """Poll ``query`` against ``page`` until it reports ready.

    Args:
        page: Live Playwright page (or any object the query understands).
        query: Query producing a result plus a readiness flag.
        interval: Seconds between polls.
        timeout: Seconds before ``ReadinessTimeout`` is raised.
        cancel: Token that aborts the wait with ``OperationCancelled``.
        clock: Monotonic clock, injectable for tests.

    Returns:
        The first ready result.
    """

    interval = config.DOM_POLL_INTERVAL_SECONDS if interval is None else interval
    timeout = config.READINESS_TIMEOUT_SECONDS if timeout is None else timeout
    cancel = cancel or CancelToken()

    started = clock()
    attempt = 0
    while True:
        cancel.raise_if_cancelled()
        attempt += 1
        try:
            outcome = query(page)
        except PWError as exc:
            # Execution contexts are torn down while the page navigates.
            _payslips_event(
                "wait",
                query=query.description,
                attempt=attempt,
                error=str(exc),
            )
        else:
            if outcome.ready:
                _payslips_event("wait", query=query.description, attempt=attempt, ready=True)
                return outcome.result
            _payslips_event(
                "wait",
                query=query.description,
                attempt=attempt,
                ready=False,
                retry_in_seconds=interval,
            )

        if clock() - started >= timeout:
            _payslips_event(
                "error",
                phase="wait",
                query=query.description,
                attempts=attempt,
                timeout_seconds=timeout,
            )
            raise ReadinessTimeout(query.description, timeout)

        if cancel.wait(interval):
            cancel.raise_if_cancelled()


__all__ = [
    "CancelToken",
    "QueryResult",
    "ReadinessQuery",
    "element_by_id",
    "elements_by_selector",
    "wait_until_ready",
]

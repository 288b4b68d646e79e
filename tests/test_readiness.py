from __future__ import annotations

import itertools
import threading

import pytest
from playwright.sync_api import Error as PWError

from app.payslips import readiness
from app.payslips.error_codes import ErrorCode, OperationCancelled, ReadinessTimeout
from app.payslips.readiness import (
    CancelToken,
    QueryResult,
    ReadinessQuery,
    element_by_id,
    elements_by_selector,
    wait_until_ready,
)
from tests.conftest import FakeElement, FakePage


def test_element_by_id_uses_attribute_selector_for_colon_ids() -> None:
    page = FakePage()
    button = FakeElement()
    page.elements["[id='pt1:pt_sdi8::btn']"] = [button]

    outcome = element_by_id("pt1:pt_sdi8::btn")(page)

    assert outcome.ready is True
    assert outcome.result is button


def test_elements_by_selector_not_ready_when_empty() -> None:
    outcome = elements_by_selector("table tr")(FakePage())

    assert outcome.ready is False
    assert outcome.result == []


def test_wait_until_ready_polls_until_present(monkeypatch: pytest.MonkeyPatch) -> None:
    events: list[dict] = []
    monkeypatch.setattr(readiness, "_payslips_event", lambda *args, **kwargs: events.append(kwargs))

    page = FakePage()
    rows = [FakeElement("a"), FakeElement("b")]
    page.elements["table tr"] = rows
    page.delays["table tr"] = 3

    result = wait_until_ready(page, elements_by_selector("table tr"), interval=0, timeout=60)

    assert result == rows
    misses = [event for event in events if event.get("ready") is False]
    assert len(misses) == 3
    assert events[-1]["ready"] is True
    assert events[-1]["attempt"] == 4


def test_wait_until_ready_raises_timeout() -> None:
    ticks = itertools.count()
    page = FakePage()

    with pytest.raises(ReadinessTimeout) as excinfo:
        wait_until_ready(
            page,
            elements_by_selector("table tr"),
            interval=0,
            timeout=5,
            clock=lambda: float(next(ticks)),
        )

    assert excinfo.value.error_code == ErrorCode.READINESS_TIMEOUT
    assert "table tr" in str(excinfo.value)


def test_wait_until_ready_honours_cancel_token() -> None:
    token = CancelToken()
    token.cancel("page closed")

    with pytest.raises(OperationCancelled) as excinfo:
        wait_until_ready(FakePage(), elements_by_selector("table tr"), interval=0, timeout=5, cancel=token)

    assert "page closed" in str(excinfo.value)


def test_cancel_during_wait_interrupts_sleep() -> None:
    token = CancelToken()
    timer = threading.Timer(0.05, token.cancel)
    timer.start()
    try:
        with pytest.raises(OperationCancelled):
            wait_until_ready(
                FakePage(),
                elements_by_selector("table tr"),
                interval=30,
                timeout=120,
                cancel=token,
            )
    finally:
        timer.cancel()


def test_query_errors_during_navigation_count_as_not_ready() -> None:
    calls = {"count": 0}

    def _evaluate(_page):  # noqa: ANN001
        calls["count"] += 1
        if calls["count"] == 1:
            raise PWError("Execution context was destroyed")
        return QueryResult(result="ready", ready=True)

    result = wait_until_ready(
        FakePage(),
        ReadinessQuery(description="flaky", evaluate=_evaluate),
        interval=0,
        timeout=5,
    )

    assert result == "ready"
    assert calls["count"] == 2

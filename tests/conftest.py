from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import pytest

from app.payslips import config, utils


@pytest.fixture(autouse=True)
def temp_paths(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point every data path at a per-test directory."""

    data_dir = tmp_path / "data"
    data_dir.mkdir(parents=True, exist_ok=True)

    monkeypatch.setattr(config, "DATA_DIR", data_dir)
    monkeypatch.setattr(config, "OUTPUT_DIR", data_dir / "output")
    monkeypatch.setattr(config, "LOG_DIR", data_dir / "logs")
    monkeypatch.setattr(config, "LOG_FILE", data_dir / "logs" / "latest.log")
    monkeypatch.setattr(config, "WORKFLOW_STATE_FILE", data_dir / "workflow_state.json")
    monkeypatch.setattr(config, "SUMMARY_FILE", data_dir / "last_summary.json")
    monkeypatch.setattr(config, "BROWSER_PROFILE_DIR", data_dir / "browser_profile")
    monkeypatch.setattr(config, "PORTAL_BASE_URL", "https://payroll.example.com")
    monkeypatch.setattr(utils, "_LOGGER_INITIALISED", False)
    return data_dir


class FakeElement:
    def __init__(self, text: str = "", on_click: Optional[Callable[[], None]] = None) -> None:
        self.text = text
        self.on_click = on_click
        self.clicks = 0

    def click(self) -> None:
        self.clicks += 1
        if self.on_click is not None:
            self.on_click()

    def inner_text(self) -> str:
        return self.text


class FakePage:
    """Just enough of ``playwright.sync_api.Page`` for the harvester."""

    def __init__(self, url: str = "https://payroll.example.com/faces/home") -> None:
        self.url = url
        self.elements: Dict[str, List[Any]] = {}
        # selector -> number of polls that still come back empty
        self.delays: Dict[str, int] = {}
        self.table_html = ""
        self.goto_calls: List[str] = []
        self.on_goto: Optional[Callable[[str], None]] = None
        self.goto_error: Optional[Exception] = None

    def query_selector_all(self, selector: str) -> List[Any]:
        remaining = self.delays.get(selector, 0)
        if remaining > 0:
            self.delays[selector] = remaining - 1
            return []
        return list(self.elements.get(selector, []))

    def query_selector(self, selector: str) -> Any:
        found = self.query_selector_all(selector)
        return found[0] if found else None

    def goto(self, url: str, **_kwargs: Any) -> None:
        self.goto_calls.append(url)
        if self.goto_error is not None:
            raise self.goto_error
        self.url = url
        if self.on_goto is not None:
            self.on_goto(url)

    def eval_on_selector(self, _selector: str, _expression: str) -> str:
        return self.table_html

    def evaluate(self, _expression: str) -> str:
        return "FakeBrowser/1.0"


class FakeContext:
    def __init__(self, cookies: Optional[List[Dict[str, Any]]] = None) -> None:
        self._cookies = cookies or [
            {"name": "ORA_WWV_APP", "value": "abc", "domain": "payroll.example.com", "path": "/"}
        ]

    def cookies(self) -> List[Dict[str, Any]]:
        return list(self._cookies)


class FakeRenderer:
    def __init__(self, fail_for: Optional[set] = None) -> None:
        self.fail_for = fail_for or set()
        self.calls: List[str] = []

    def render(self, document, options, *, base_url: str) -> bytes:  # noqa: ANN001
        from app.payslips.error_codes import ConversionError, ErrorCode

        self.calls.append(base_url)
        if base_url in self.fail_for:
            raise ConversionError(ErrorCode.RENDER_FAILED, "boom")
        title = document.title.get_text(strip=True) if document.title else ""
        return b"%PDF-1.7\n" + title.encode("utf-8")


def listing_table(
    document_rows: int,
    *,
    extra_header_rows: int = 0,
    start: int = 1,
    link_prefix: str = "WK8020VZ$.payslip?P_ID=",
) -> str:
    """Build a history table: header row, YTD row, then document rows."""

    header = (
        "<tr><th>Pay Date</th><th>Gross</th><th>Tax</th><th>Net</th>"
        "<th>Period Start</th><th>Period End</th></tr>"
    )
    ytd = "<tr><td>Year to Date</td><td>100</td><td>20</td><td>80</td><td></td><td></td></tr>"
    extra = "".join(
        "<tr><td colspan='6'>Financial year</td></tr>" for _ in range(extra_header_rows)
    )
    rows = []
    for index in range(start, start + document_rows):
        rows.append(
            "<tr><td>2024-01-%02d</td><td>1</td><td>2</td><td>3</td><td>2024-01-01</td>"
            "<td><a href=\"%s%d\">2024-01-%02d</a></td></tr>" % (index, link_prefix, index, index)
        )
    return f"<table summary='Pehistpay'>{header}{ytd}{extra}{''.join(rows)}</table>"


@pytest.fixture
def fake_page() -> FakePage:
    return FakePage()


@pytest.fixture
def fake_renderer() -> FakeRenderer:
    return FakeRenderer()

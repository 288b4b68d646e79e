"""Playwright browser session used by the harvester.

A persistent Chromium profile keeps the portal's login cookies between runs.
The window is headed by default: the user signs in by hand and the harvester
takes over once the portal menu appears.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

from playwright.sync_api import sync_playwright

from . import config
from .utils import log_line


@dataclass
class BrowserSession:
    context: Any
    page: Any

    def cookies(self) -> List[Dict[str, Any]]:
        return list(self.context.cookies())

    def user_agent(self) -> Optional[str]:
        try:
            return self.page.evaluate("() => navigator.userAgent")
        except Exception:  # noqa: BLE001
            return None


@contextmanager
def open_browser_session(
    *,
    headless: bool = False,
    profile_dir: Optional[Path] = None,
) -> Iterator[BrowserSession]:
    profile = Path(profile_dir or config.BROWSER_PROFILE_DIR)
    profile.mkdir(parents=True, exist_ok=True)

    with sync_playwright() as pw:
        log_line(f"Launching Chromium (headless={headless}) with profile {profile}")
        context = pw.chromium.launch_persistent_context(
            str(profile),
            headless=headless,
            locale="en-AU",
        )
        context.set_default_navigation_timeout(config.NAV_TIMEOUT_SECONDS * 1000)
        try:
            page = context.pages[0] if context.pages else context.new_page()
            yield BrowserSession(context=context, page=page)
        finally:
            context.close()


__all__ = ["BrowserSession", "open_browser_session"]

"""
HTML to PDF rendering via WeasyPrint.

Fetched payslip pages are parsed into a detached document (scripts removed,
nothing executed) and handed to WeasyPrint. Stylesheets and images referenced
by the page live behind the portal login, so sub-resources are fetched
through the same authenticated ``requests`` session as the page itself.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Protocol

import requests
from bs4 import BeautifulSoup

from . import config
from .error_codes import ConversionError, ErrorCode
from .logging_utils import _payslips_event

try:
    from weasyprint import HTML, default_url_fetcher
except Exception:  # pragma: no cover - missing native libraries surface at runtime
    HTML = None
    default_url_fetcher = None


@dataclass(frozen=True)
class RenderOptions:
    print_emulation: bool = True
    dpi: int = 300
    scale: float = 1.0

    @classmethod
    def from_config(cls) -> "RenderOptions":
        return cls(
            print_emulation=config.RENDER_PRINT_EMULATION,
            dpi=config.RENDER_DPI,
            scale=config.RENDER_SCALE,
        )


class Renderer(Protocol):
    def render(self, document: BeautifulSoup, options: RenderOptions, *, base_url: str) -> bytes:
        ...


def parse_detached_document(html: str) -> BeautifulSoup:
    """Parse ``html`` into a standalone document with scripts stripped."""

    soup = BeautifulSoup(html or "", "html5lib")
    for tag in soup.find_all(["script", "noscript"]):
        tag.decompose()
    return soup


class WeasyPrintRenderer:
    def __init__(self, session: Optional[requests.Session] = None, *, timeout: Optional[float] = None):
        self.session = session
        self.timeout = config.FETCH_TIMEOUT_SECONDS if timeout is None else timeout

    def available(self) -> bool:
        """Return True if WeasyPrint is importable."""
        return HTML is not None

    def _session_fetcher(self) -> Callable[..., Dict[str, Any]]:
        """Return a url_fetcher that routes http(s) through the session."""

        session = self.session
        timeout = self.timeout

        def fetch(url: str, *args: Any, **kwargs: Any) -> Dict[str, Any]:
            if session is None or not url.startswith(("http://", "https://")):
                return default_url_fetcher(url, *args, **kwargs)
            response = session.get(url, timeout=timeout)
            response.raise_for_status()
            mime_type = (response.headers.get("Content-Type") or "").split(";")[0].strip()
            return {
                "string": response.content,
                "mime_type": mime_type or None,
                "redirected_url": response.url,
            }

        return fetch

    def render(self, document: BeautifulSoup, options: RenderOptions, *, base_url: str) -> bytes:
        if HTML is None:
            raise ConversionError(
                ErrorCode.RENDER_FAILED,
                "WeasyPrint is not installed. Please install 'weasyprint'.",
            )

        try:
            html = HTML(
                string=str(document),
                base_url=base_url,
                url_fetcher=self._session_fetcher(),
                media_type="print" if options.print_emulation else "screen",
            )
            data = html.write_pdf(zoom=options.scale, dpi=options.dpi)
        except Exception as exc:  # noqa: BLE001
            raise ConversionError(ErrorCode.RENDER_FAILED, f"WeasyPrint generation failed: {exc}") from exc

        if not data or not data.startswith(b"%PDF"):
            raise ConversionError(ErrorCode.RENDER_FAILED, "Renderer produced no PDF output")

        _payslips_event("render", base_url=base_url, bytes=len(data), dpi=options.dpi, zoom=options.scale)
        return data


__all__ = [
    "RenderOptions",
    "Renderer",
    "WeasyPrintRenderer",
    "parse_detached_document",
]

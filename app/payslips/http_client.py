from __future__ import annotations

import urllib.parse
from typing import Any, Dict, Iterable, Optional

import requests

from . import config
from .error_codes import ConversionError, ErrorCode
from .logging_utils import _payslips_event
from .readiness import CancelToken
from .retry_policy import compute_backoff_seconds, decide_retry


def _redact_url(url: str) -> str:
    try:
        parsed = urllib.parse.urlparse(url)
        return urllib.parse.urlunparse(parsed._replace(query=""))
    except Exception:
        return url


def _classify_http_status(status: Optional[int]) -> str:
    if status is None:
        return ErrorCode.INTERNAL
    if status == 401:
        return ErrorCode.HTTP_401
    if status == 403:
        return ErrorCode.HTTP_403
    if status == 404:
        return ErrorCode.HTTP_404
    if 400 <= status < 500:
        return ErrorCode.HTTP_4XX
    if status >= 500:
        return ErrorCode.HTTP_5XX
    return ErrorCode.INTERNAL


def build_session(
    cookies: Iterable[Dict[str, Any]] = (),
    *,
    user_agent: Optional[str] = None,
) -> requests.Session:
    """Return a ``requests`` session carrying the browser's cookies.

    ``cookies`` is the list returned by Playwright's
    ``BrowserContext.cookies()``; no authentication headers are added.
    """

    session = requests.Session()
    session.headers.update(
        {
            "User-Agent": user_agent or config.USER_AGENT,
            "Accept": "text/html,application/xhtml+xml,*/*;q=0.8",
            "Accept-Language": "en-AU,en;q=0.9",
        }
    )
    for cookie in cookies:
        name = cookie.get("name")
        if not name:
            continue
        session.cookies.set(
            name,
            cookie.get("value", ""),
            domain=cookie.get("domain") or "",
            path=cookie.get("path") or "/",
        )
    return session


def fetch_document_html(
    session: requests.Session,
    url: str,
    *,
    timeout: Optional[float] = None,
    max_attempts: Optional[int] = None,
    cancel: Optional[CancelToken] = None,
) -> str:
    """GET ``url`` and return the response body as text, with retries."""

    timeout = config.FETCH_TIMEOUT_SECONDS if timeout is None else timeout
    max_attempts = max(1, config.FETCH_MAX_ATTEMPTS if max_attempts is None else max_attempts)
    cancel = cancel or CancelToken()
    safe_url = _redact_url(url)

    for attempt in range(1, max_attempts + 1):
        cancel.raise_if_cancelled()
        status: Optional[int] = None
        try:
            response = session.get(url, timeout=timeout)
            status = response.status_code
            response.raise_for_status()
            _payslips_event(
                "fetch",
                url=safe_url,
                status="ok",
                http_status=status,
                chars=len(response.text),
            )
            return response.text
        except (requests.Timeout, requests.ConnectionError) as exc:
            error_code = ErrorCode.NETWORK
            error_message = str(exc)
        except requests.HTTPError as exc:
            status = getattr(exc.response, "status_code", status)
            error_code = _classify_http_status(status)
            error_message = str(exc)
        except requests.RequestException as exc:
            error_code = ErrorCode.INTERNAL
            error_message = str(exc)

        should_retry = decide_retry(
            attempt,
            max_attempts,
            error_code=error_code,
            http_status=status,
        )
        backoff = compute_backoff_seconds(attempt)
        _payslips_event(
            "fetch",
            url=safe_url,
            status="error",
            attempt=attempt,
            error_code=error_code,
            http_status=status,
            will_retry=should_retry,
            backoff_seconds=backoff if should_retry else None,
            error_message=error_message,
        )

        if not should_retry:
            raise ConversionError(error_code, error_message, http_status=status)

        if cancel.wait(backoff):
            cancel.raise_if_cancelled()

    # Only reachable when max_attempts retries were all granted.
    raise ConversionError(ErrorCode.INTERNAL, f"fetch failed for {safe_url}")


__all__ = ["build_session", "fetch_document_html"]

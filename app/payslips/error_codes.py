from __future__ import annotations

"""Error code taxonomy and exception types for harvester failures.

Codes appear in structured log lines and in the run summary so a user can
see why a document was skipped. Workflow-fatal errors (readiness timeouts,
navigation preconditions, archive assembly) propagate to the caller;
row- and document-scoped errors are recorded and processing continues.
"""

from typing import Optional


class ErrorCode:
    READINESS_TIMEOUT = "readiness_timeout"
    NAVIGATION_PRECONDITION = "navigation_precondition"
    ROW_EXTRACTION = "row_extraction"
    NETWORK = "network_error"
    HTTP_4XX = "http_4xx"
    HTTP_401 = "http_401_unauthorised"
    HTTP_403 = "http_403_forbidden"
    HTTP_404 = "http_404_not_found"
    HTTP_5XX = "http_5xx"
    RENDER_FAILED = "render_failed"
    CONVERSION_TIMEOUT = "conversion_timeout"
    ARCHIVE_ASSEMBLY = "archive_assembly"
    FILENAME_COLLISION = "filename_collision"
    CANCELLED = "cancelled"
    INTERNAL = "internal_error"


class PayslipsError(Exception):
    error_code: str = ErrorCode.INTERNAL

    def __init__(self, message: str, *, error_code: Optional[str] = None) -> None:
        super().__init__(message)
        if error_code is not None:
            self.error_code = error_code


class ReadinessTimeout(PayslipsError):
    """A required DOM fragment never appeared."""

    error_code = ErrorCode.READINESS_TIMEOUT

    def __init__(self, description: str, timeout: float) -> None:
        super().__init__(f"Target not found: {description} (waited {timeout:g}s)")
        self.description = description
        self.timeout = timeout


class NavigationPreconditionError(PayslipsError):
    """The entry page did not yield what the redirect needs."""

    error_code = ErrorCode.NAVIGATION_PRECONDITION

    def __init__(self, message: str, *, detail_text: Optional[str] = None) -> None:
        super().__init__(message)
        self.detail_text = detail_text


class RowExtractionError(PayslipsError):
    error_code = ErrorCode.ROW_EXTRACTION

    def __init__(self, row_index: int, message: str) -> None:
        super().__init__(f"Row {row_index}: {message}")
        self.row_index = row_index


class ConversionError(PayslipsError):
    """Fetching or rendering a single document failed."""

    def __init__(
        self,
        error_code: str,
        message: str,
        *,
        http_status: Optional[int] = None,
    ) -> None:
        super().__init__(message, error_code=error_code)
        self.http_status = http_status


class ArchiveAssemblyError(PayslipsError):
    error_code = ErrorCode.ARCHIVE_ASSEMBLY


class OperationCancelled(PayslipsError):
    error_code = ErrorCode.CANCELLED


__all__ = [
    "ErrorCode",
    "PayslipsError",
    "ReadinessTimeout",
    "NavigationPreconditionError",
    "RowExtractionError",
    "ConversionError",
    "ArchiveAssemblyError",
    "OperationCancelled",
]

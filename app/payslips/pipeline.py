from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor, as_completed, wait
from concurrent.futures import TimeoutError as FuturesTimeout
from dataclasses import dataclass
from threading import Lock
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple, TypeVar

import requests

from . import config
from .error_codes import ConversionError, ErrorCode, OperationCancelled, PayslipsError
from .extractor import DocumentDescriptor
from .http_client import fetch_document_html
from .logging_utils import _payslips_event
from .readiness import CancelToken
from .renderer import RenderOptions, Renderer, parse_detached_document

T = TypeVar("T")
ConvertFn = Callable[[DocumentDescriptor], bytes]

_DRAIN_POLL_SECONDS = 0.5


@dataclass
class ConversionResult:
    """Outcome of converting one descriptor.

    Exactly one of ``artifact``/``error`` is set, except for dry runs which
    carry neither and are tagged with ``dry_run=True``.
    """

    descriptor: DocumentDescriptor
    artifact: Optional[bytes] = None
    error: Optional[PayslipsError] = None
    dry_run: bool = False

    def __post_init__(self) -> None:
        has_artifact = self.artifact is not None
        has_error = self.error is not None
        if self.dry_run:
            if has_artifact or has_error:
                raise ValueError("dry-run results carry neither artifact nor error")
        elif has_artifact == has_error:
            raise ValueError("exactly one of artifact or error must be set")

    @property
    def ok(self) -> bool:
        return self.artifact is not None

    @property
    def error_code(self) -> Optional[str]:
        return self.error.error_code if self.error is not None else None


def chunked(items: Sequence[T], size: int) -> Iterator[List[T]]:
    """Yield consecutive slices of ``items`` holding at most ``size`` elements."""

    if size < 1:
        raise ValueError("size must be at least 1")
    for start in range(0, len(items), size):
        yield list(items[start:start + size])


class DocumentConverter:
    """Fetch a payslip page and render it to PDF bytes."""

    def __init__(
        self,
        session: requests.Session,
        renderer: Renderer,
        options: Optional[RenderOptions] = None,
        *,
        fetch_timeout: Optional[float] = None,
        max_attempts: Optional[int] = None,
        cancel: Optional[CancelToken] = None,
    ) -> None:
        self.session = session
        self.renderer = renderer
        self.options = options or RenderOptions.from_config()
        self.fetch_timeout = fetch_timeout
        self.max_attempts = max_attempts
        self.cancel = cancel or CancelToken()

    def __call__(self, descriptor: DocumentDescriptor) -> bytes:
        html = fetch_document_html(
            self.session,
            descriptor.source_url,
            timeout=self.fetch_timeout,
            max_attempts=self.max_attempts,
            cancel=self.cancel,
        )
        self.cancel.raise_if_cancelled()
        document = parse_detached_document(html)
        return self.renderer.render(document, self.options, base_url=descriptor.source_url)


class ConversionPipeline:
    """
    Convert descriptors in fixed-size concurrent batches.

    - Every conversion of a batch settles before the next batch starts.
    - A fixed delay separates batches (not applied after the last one).
    - A conversion that exceeds the timeout is recorded as failed; its
      thread is still waited for before the next batch starts.
    - A failing conversion yields a failed result; siblings and later
      batches carry on.
    """

    def __init__(
        self,
        convert: ConvertFn,
        *,
        batch_size: Optional[int] = None,
        batch_delay: Optional[float] = None,
        conversion_timeout: Optional[float] = None,
        dry_run: bool = False,
        cancel: Optional[CancelToken] = None,
        on_result: Optional[Callable[[ConversionResult], None]] = None,
    ) -> None:
        self.convert = convert
        self.batch_size = max(1, config.MAX_SIMULTANEOUS_DOWNLOADS if batch_size is None else batch_size)
        self.batch_delay = config.DOWNLOAD_BATCH_DELAY_SECONDS if batch_delay is None else batch_delay
        self.conversion_timeout = (
            config.CONVERSION_TIMEOUT_SECONDS if conversion_timeout is None else conversion_timeout
        )
        self.dry_run = dry_run
        self.cancel = cancel or CancelToken()
        self.on_result = on_result
        self._lock = Lock()
        self._in_flight = 0
        self._peak_in_flight = 0
        # Timed-out conversions whose threads are still running.
        self._stragglers: List[Future] = []

    @property
    def peak_in_flight(self) -> int:
        with self._lock:
            return self._peak_in_flight

    def _convert_one(self, descriptor: DocumentDescriptor) -> ConversionResult:
        with self._lock:
            self._in_flight += 1
            self._peak_in_flight = max(self._peak_in_flight, self._in_flight)
        try:
            artifact = self.convert(descriptor)
            if not artifact:
                raise ConversionError(ErrorCode.RENDER_FAILED, "renderer returned no bytes")
            return ConversionResult(descriptor, artifact=artifact)
        except PayslipsError as exc:
            return ConversionResult(descriptor, error=exc)
        except Exception as exc:  # noqa: BLE001
            return ConversionResult(
                descriptor,
                error=ConversionError(ErrorCode.INTERNAL, f"{type(exc).__name__}: {exc}"),
            )
        finally:
            with self._lock:
                self._in_flight -= 1

    def _record(self, results: Dict[int, ConversionResult], index: int, result: ConversionResult) -> None:
        results[index] = result
        if result.error is not None:
            _payslips_event(
                "error",
                phase="convert",
                filename=result.descriptor.filename,
                error_code=result.error_code,
                error=str(result.error),
            )
        else:
            _payslips_event(
                "batch",
                step="settled",
                filename=result.descriptor.filename,
                dry_run=result.dry_run,
                bytes=len(result.artifact or b""),
            )
        if self.on_result is not None:
            self.on_result(result)

    def _run_batch(self, batch: List[Tuple[int, DocumentDescriptor]], results: Dict[int, ConversionResult]) -> None:
        if self.dry_run:
            for index, descriptor in batch:
                self._record(results, index, ConversionResult(descriptor, dry_run=True))
            return

        executor = ThreadPoolExecutor(max_workers=len(batch), thread_name_prefix="payslip-convert")
        futures: Dict[Future, Tuple[int, DocumentDescriptor]] = {}
        try:
            for index, descriptor in batch:
                futures[executor.submit(self._convert_one, descriptor)] = (index, descriptor)
            try:
                for future in as_completed(futures, timeout=self.conversion_timeout):
                    index, _ = futures[future]
                    self._record(results, index, future.result())
            except FuturesTimeout:
                for future, (index, descriptor) in futures.items():
                    if index in results:
                        continue
                    if future.done() and not future.cancelled():
                        self._record(results, index, future.result())
                        continue
                    if not future.cancel():
                        self._stragglers.append(future)
                    error = ConversionError(
                        ErrorCode.CONVERSION_TIMEOUT,
                        f"conversion exceeded {self.conversion_timeout:g}s",
                    )
                    self._record(results, index, ConversionResult(descriptor, error=error))
        finally:
            # Running renders cannot be interrupted; stragglers are drained before the next batch.
            executor.shutdown(wait=False, cancel_futures=True)

    def _drain_stragglers(self) -> bool:
        """Wait for timed-out conversions to exit. Returns False if cancelled first."""

        pending = {future for future in self._stragglers if not future.done()}
        if pending:
            _payslips_event("batch", step="drain", running=len(pending))
        while pending:
            if self.cancel.cancelled:
                return False
            _, pending = wait(pending, timeout=_DRAIN_POLL_SECONDS)
        self._stragglers = []
        return True

    def run(self, descriptors: Iterable[DocumentDescriptor]) -> List[ConversionResult]:
        items = list(enumerate(descriptors))
        batches = list(chunked(items, self.batch_size))
        results: Dict[int, ConversionResult] = {}

        for number, batch in enumerate(batches, 1):
            if self.cancel.cancelled or not self._drain_stragglers():
                break
            _payslips_event(
                "batch",
                step="start",
                batch=number,
                batches=len(batches),
                size=len(batch),
                dry_run=self.dry_run,
            )
            for _, descriptor in batch:
                _payslips_event("batch", step="convert", filename=descriptor.filename, dry_run=self.dry_run)
            self._run_batch(batch, results)

            if number < len(batches) and self.cancel.wait(self.batch_delay):
                break

        for index, descriptor in items:
            if index not in results:
                error = OperationCancelled(f"Operation cancelled: {self.cancel.reason or 'cancelled'}")
                self._record(results, index, ConversionResult(descriptor, error=error))

        _payslips_event(
            "batch",
            step="summary",
            total=len(items),
            peak_in_flight=self.peak_in_flight,
            max_parallel=self.batch_size,
        )
        return [results[index] for index, _ in items]


__all__ = [
    "ConversionResult",
    "ConvertFn",
    "DocumentConverter",
    "ConversionPipeline",
    "chunked",
]

from __future__ import annotations

import pytest

from app.payslips import retry_policy
from app.payslips.error_codes import ErrorCode


@pytest.fixture
def event_recorder(monkeypatch: pytest.MonkeyPatch) -> list[tuple[str, dict]]:
    events: list[tuple[str, dict]] = []

    def _record(event_phase: str, **fields: object) -> None:
        events.append((event_phase, fields))

    monkeypatch.setattr(retry_policy, "_payslips_event", _record)
    return events


@pytest.mark.parametrize(
    "attempt, expected, kind",
    [
        (1, True, "retryable"),
        (2, True, "retryable"),
        (3, False, "capped"),
        (5, False, "capped"),
    ],
)
def test_network_retry_limits(
    attempt: int, expected: bool, kind: str, event_recorder: list[tuple[str, dict]]
) -> None:
    result = retry_policy.decide_retry(attempt, 3, error_code=ErrorCode.NETWORK)
    assert result is expected
    assert len(event_recorder) == 1
    phase, fields = event_recorder[0]
    assert phase == "state"
    assert fields["phase"] == "retry_decision"
    assert fields["error_code"] == ErrorCode.NETWORK
    assert fields["attempt"] == attempt
    assert fields["max_attempts"] == 3
    assert fields["will_retry"] is expected
    assert fields["kind"] == kind


@pytest.mark.parametrize(
    "error_code",
    [
        ErrorCode.HTTP_401,
        ErrorCode.HTTP_403,
        ErrorCode.HTTP_404,
        ErrorCode.HTTP_4XX,
        ErrorCode.RENDER_FAILED,
        ErrorCode.CONVERSION_TIMEOUT,
        ErrorCode.CANCELLED,
    ],
)
def test_non_retryable_error_codes(error_code: str, event_recorder: list[tuple[str, dict]]) -> None:
    assert error_code in retry_policy.NON_RETRYABLE_ERROR_CODES
    assert retry_policy.decide_retry(1, 3, error_code=error_code) is False
    assert event_recorder[0][1]["kind"] == "non_retryable"


def test_server_status_without_code_is_retryable(event_recorder: list[tuple[str, dict]]) -> None:
    assert retry_policy.decide_retry(1, 2, error_code="mystery", http_status=502) is True


def test_missing_error_code_not_retried(event_recorder: list[tuple[str, dict]]) -> None:
    assert retry_policy.decide_retry(1, 3) is False
    assert event_recorder[0][1]["kind"] == "missing_error_code"


def test_unknown_error_code_not_retried(event_recorder: list[tuple[str, dict]]) -> None:
    assert retry_policy.decide_retry(1, 3, error_code="mystery") is False
    assert event_recorder[0][1]["kind"] == "unknown"


@pytest.mark.parametrize("attempt, expected", [(1, 1.0), (2, 2.0), (3, 4.0), (10, 30.0)])
def test_backoff_is_capped_exponential(attempt: int, expected: float) -> None:
    assert retry_policy.compute_backoff_seconds(attempt) == expected

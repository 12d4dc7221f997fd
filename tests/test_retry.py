import pytest

from gbp_scan.client.retry import CancellationToken, ScanCancelled, with_retry
from gbp_scan.core.errors import NotFoundError, TransientNetworkError


def _flaky(failures):
    calls = {"n": 0}

    def operation():
        calls["n"] += 1
        if calls["n"] <= failures:
            raise TransientNetworkError("connection reset")
        return "ok"

    return operation, calls


def test_retries_transient_errors_with_doubling_delay():
    operation, calls = _flaky(2)
    delays = []

    assert with_retry(operation, sleep=delays.append) == "ok"
    assert calls["n"] == 3
    assert delays == [1.0, 2.0]


def test_gives_up_after_max_attempts():
    operation, calls = _flaky(5)
    delays = []

    with pytest.raises(TransientNetworkError):
        with_retry(operation, max_attempts=3, base_delay=0.5, sleep=delays.append)
    assert calls["n"] == 3
    assert delays == [0.5, 1.0]


def test_non_retryable_error_raised_immediately():
    calls = []

    def operation():
        calls.append(1)
        raise NotFoundError("no match")

    with pytest.raises(NotFoundError):
        with_retry(operation, sleep=lambda _: pytest.fail("should not sleep"))
    assert calls == [1]


def test_cancelled_token_stops_before_next_attempt():
    token = CancellationToken()
    calls = []

    def operation():
        calls.append(1)
        token.cancel()
        raise TransientNetworkError("timeout")

    with pytest.raises(ScanCancelled):
        with_retry(operation, base_delay=30, token=token)
    assert calls == [1]


def test_already_cancelled_token_never_runs_operation():
    token = CancellationToken()
    token.cancel()

    with pytest.raises(ScanCancelled):
        with_retry(lambda: pytest.fail("should not run"), token=token)


def test_invalid_attempt_count():
    with pytest.raises(ValueError):
        with_retry(lambda: None, max_attempts=0)

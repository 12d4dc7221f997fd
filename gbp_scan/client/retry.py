"""Exponential-backoff retry and per-attempt cancellation for client calls."""

import logging
import threading
import time
from typing import Callable, Optional, TypeVar

from gbp_scan.core.errors import ScanError

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_ATTEMPTS = 3
BASE_DELAY_SECONDS = 1.0


class ScanCancelled(Exception):
    """Raised inside a cancelled scan attempt to unwind its work."""


class CancellationToken:
    """One token per scan submission; cancelling it stops the attempt's retry loop and timers."""

    def __init__(self) -> None:
        self._event = threading.Event()

    @property
    def event(self) -> threading.Event:
        return self._event

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise ScanCancelled()


def with_retry(
    operation: Callable[[], T],
    *,
    max_attempts: int = MAX_ATTEMPTS,
    base_delay: float = BASE_DELAY_SECONDS,
    sleep: Optional[Callable[[float], None]] = None,
    token: Optional[CancellationToken] = None,
) -> T:
    """Run ``operation`` up to ``max_attempts`` times, doubling the delay between attempts.

    Only errors whose ``retryable`` flag is set are retried; anything else is raised
    immediately. With a token and no explicit ``sleep``, the wait between attempts
    ends early on cancellation.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    for attempt in range(1, max_attempts + 1):
        if token is not None:
            token.raise_if_cancelled()
        try:
            return operation()
        except ScanError as exc:
            if not exc.retryable or attempt == max_attempts:
                raise
            delay = base_delay * 2 ** (attempt - 1)
            logger.warning("Attempt %d/%d failed: %s; retrying in %.1fs", attempt, max_attempts, exc, delay)
            if sleep is not None:
                sleep(delay)
            elif token is not None:
                token.event.wait(delay)
            else:
                time.sleep(delay)
    raise RuntimeError("unreachable: retry loop exited without result")

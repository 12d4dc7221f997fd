"""Client-side scan state machine.

States: form -> scanning -> results -> leadgate -> success. A failed scan returns
to form with progress reset. Each submission gets its own cancellation token;
submitting again cancels the previous attempt's retry loop, progress ticker and
recommendation race, and any late result from it is ignored.
"""

import logging
import threading
from typing import Any, Callable, Dict, Optional

from gbp_scan.client.api_client import ScanApiClient
from gbp_scan.client.retry import BASE_DELAY_SECONDS, MAX_ATTEMPTS, CancellationToken, ScanCancelled, with_retry
from gbp_scan.core.config import get_settings
from gbp_scan.core.errors import ScanError, user_message_for
from gbp_scan.core.models import RecommendationPayload, ScanResult
from gbp_scan.scan.recommendations import fallback_recommendations

logger = logging.getLogger(__name__)

FORM = "form"
SCANNING = "scanning"
RESULTS = "results"
LEADGATE = "leadgate"
SUCCESS = "success"

AI_PENDING = "pending"
AI_GENERATING = "generating"
AI_COMPLETED = "completed"
AI_FAILED = "failed"

PROGRESS_CEILING = 95.0
PROGRESS_STEP = 0.15
RESULTS_DELAY_SECONDS = 1.0
PROGRESS_INTERVAL_SECONDS = 0.6

Subscriber = Callable[[str, float], Optional[RecommendationPayload]]


class _ScanAttempt:
    def __init__(self) -> None:
        self.token = CancellationToken()
        self.scan_done = threading.Event()
        self.recommendations_ready = threading.Event()

    def cancel(self) -> None:
        self.token.cancel()
        self.scan_done.set()
        self.recommendations_ready.set()


class ScanController:
    def __init__(
        self,
        api: Optional[ScanApiClient] = None,
        *,
        subscribe: Optional[Subscriber] = None,
        recommendation_timeout: Optional[float] = None,
        results_delay: float = RESULTS_DELAY_SECONDS,
        progress_interval: float = PROGRESS_INTERVAL_SECONDS,
        retry_attempts: int = MAX_ATTEMPTS,
        retry_base_delay: float = BASE_DELAY_SECONDS,
        sleep: Optional[Callable[[float], None]] = None,
    ) -> None:
        self._api = api or ScanApiClient()
        self._subscribe = subscribe or self._api.wait_for_recommendations
        if recommendation_timeout is None:
            recommendation_timeout = get_settings().recommendation_timeout_seconds
        self._recommendation_timeout = recommendation_timeout
        self._results_delay = results_delay
        self._progress_interval = progress_interval
        self._retry_attempts = retry_attempts
        self._retry_base_delay = retry_base_delay
        self._sleep = sleep

        self._lock = threading.RLock()
        self._attempt: Optional[_ScanAttempt] = None
        self.state = FORM
        self.progress = 0.0
        self.error: Optional[str] = None
        self.scan_result: Optional[ScanResult] = None
        self.recommendations: Optional[RecommendationPayload] = None
        self.ai_status = AI_PENDING

    # ---------- Public API ----------

    def submit(self, business_name: str, business_location: str) -> Optional[ScanResult]:
        """Run a scan; returns the result, or None when it failed or was superseded."""
        attempt = self._begin()
        ticker = threading.Thread(target=self._tick_progress, args=(attempt,), daemon=True)
        ticker.start()

        try:
            result = with_retry(
                lambda: self._api.scan(business_name, business_location),
                max_attempts=self._retry_attempts,
                base_delay=self._retry_base_delay,
                sleep=self._sleep,
                token=attempt.token,
            )
        except ScanCancelled:
            logger.info("Scan for %s superseded by a newer submission", business_name)
            return None
        except ScanError as exc:
            logger.error("Scan failed for %s in %s: %s", business_name, business_location, exc)
            self._fail(attempt, exc)
            return None
        except Exception as exc:  # noqa: BLE001
            logger.exception("Unexpected scan failure for %s in %s: %s", business_name, business_location, exc)
            self._fail(attempt, exc)
            return None
        finally:
            attempt.scan_done.set()
            ticker.join()

        with self._lock:
            if not self._is_current(attempt):
                return None
            self.progress = 100.0
            self.scan_result = result
            self.ai_status = AI_GENERATING

        threading.Thread(
            target=self._race_recommendations,
            args=(attempt, business_name, business_location, result),
            daemon=True,
        ).start()

        attempt.token.event.wait(self._results_delay)
        with self._lock:
            if not self._is_current(attempt):
                return None
            self.state = RESULTS
        return result

    def wait_for_recommendations(self, timeout: Optional[float] = None) -> Optional[RecommendationPayload]:
        attempt = self._attempt
        if attempt is None:
            return None
        attempt.recommendations_ready.wait(timeout)
        return self.recommendations

    def view_full_report(self) -> bool:
        with self._lock:
            if self.state != RESULTS:
                return False
            self.state = LEADGATE
            return True

    def capture_lead(
        self,
        email: str,
        *,
        phone: Optional[str] = None,
        postcode: Optional[str] = None,
        source: str = "scan_results",
    ) -> bool:
        with self._lock:
            if self.state not in (RESULTS, LEADGATE):
                return False
            scan_id = self.scan_result.scan_id if self.scan_result else None
        try:
            self._api.capture_lead(email, scan_id=scan_id, phone=phone, postcode=postcode, source=source)
        except ScanError as exc:
            logger.error("Lead capture failed for scan %s: %s", scan_id, exc)
            self.error = user_message_for(exc)
            return False

        with self._lock:
            self.error = None
            self.state = SUCCESS
        return True

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "state": self.state,
                "progress": self.progress,
                "error": self.error,
                "aiStatus": self.ai_status,
                "scan": self.scan_result.to_dict() if self.scan_result else None,
                "recommendations": self.recommendations.to_dict() if self.recommendations else None,
            }

    # ---------- Internals ----------

    def _is_current(self, attempt: _ScanAttempt) -> bool:
        return attempt is self._attempt and not attempt.token.cancelled

    def _begin(self) -> _ScanAttempt:
        with self._lock:
            if self._attempt is not None:
                self._attempt.cancel()
            attempt = _ScanAttempt()
            self._attempt = attempt
            self.state = SCANNING
            self.progress = 0.0
            self.error = None
            self.scan_result = None
            self.recommendations = None
            self.ai_status = AI_PENDING
        return attempt

    def _fail(self, attempt: _ScanAttempt, exc: Exception) -> None:
        with self._lock:
            if not self._is_current(attempt):
                return
            self.error = user_message_for(exc)
            self.progress = 0.0
            self.scan_result = None
            self.state = FORM
            self.ai_status = AI_FAILED
        # Nothing will be generated for a failed scan.
        attempt.recommendations_ready.set()

    def _tick_progress(self, attempt: _ScanAttempt) -> None:
        # Cosmetic: approaches the ceiling but never reaches 100 on its own.
        while not attempt.scan_done.wait(self._progress_interval):
            with self._lock:
                if not self._is_current(attempt):
                    return
                self.progress += (PROGRESS_CEILING - self.progress) * PROGRESS_STEP

    def _apply_recommendations(self, attempt: _ScanAttempt, payload: RecommendationPayload) -> bool:
        """Single-writer rule: only the first payload for a still-generating attempt is kept."""
        with self._lock:
            if not self._is_current(attempt) or self.ai_status != AI_GENERATING:
                return False
            self.recommendations = payload
            self.ai_status = AI_COMPLETED
            scan_id = self.scan_result.scan_id if self.scan_result else None
        attempt.recommendations_ready.set()
        logger.info("Applied %s recommendations for scan %s", payload.source, scan_id)
        return True

    def _listen(self, attempt: _ScanAttempt, scan_id: str) -> None:
        try:
            payload = self._subscribe(scan_id, self._recommendation_timeout)
        except ScanError as exc:
            logger.warning("Recommendation subscription failed for scan %s: %s", scan_id, exc)
            return
        if payload is not None:
            self._apply_recommendations(attempt, payload)

    def _race_recommendations(
        self,
        attempt: _ScanAttempt,
        business_name: str,
        business_location: str,
        result: ScanResult,
    ) -> None:
        try:
            self._api.generate_recommendations(business_name, business_location, result)
        except ScanError as exc:
            logger.warning("AI recommendation request failed for scan %s: %s", result.scan_id, exc)
            self._apply_recommendations(attempt, fallback_recommendations(result.scores))
            return

        threading.Thread(target=self._listen, args=(attempt, result.scan_id), daemon=True).start()
        if not attempt.recommendations_ready.wait(self._recommendation_timeout):
            logger.warning(
                "No AI recommendations for scan %s after %.0fs; using fallback",
                result.scan_id,
                self._recommendation_timeout,
            )
            self._apply_recommendations(attempt, fallback_recommendations(result.scores))

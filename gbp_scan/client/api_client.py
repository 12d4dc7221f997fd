"""HTTP client for the scan service endpoints."""

import logging
from typing import Any, Dict, Optional

import requests

from gbp_scan.core.config import get_settings
from gbp_scan.core.errors import (
    RecommendationGenerationFailure,
    ScanError,
    TransientNetworkError,
    error_from_response,
)
from gbp_scan.core.models import RecommendationParseError, RecommendationPayload, ScanResult

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 30


class ScanApiClient:
    def __init__(self, base_url: Optional[str] = None, session: Optional[requests.Session] = None) -> None:
        self.base_url = (base_url or get_settings().scan_api_url).rstrip("/")
        self._session = session or requests.Session()

    def _request(self, method: str, path: str, *, timeout: float = REQUEST_TIMEOUT, **kwargs: Any) -> requests.Response:
        url = f"{self.base_url}{path}"
        try:
            response = self._session.request(method, url, timeout=timeout, **kwargs)
        except requests.RequestException as exc:
            logger.error("Request to %s failed: %s", url, exc)
            raise TransientNetworkError(str(exc)) from exc

        if response.status_code >= 400:
            try:
                payload = response.json()
            except ValueError:
                payload = None
            logger.error("Request to %s returned %s", url, response.status_code)
            raise error_from_response(response.status_code, payload if isinstance(payload, dict) else None)
        return response

    def scan(self, business_name: str, business_location: str) -> ScanResult:
        response = self._request(
            "POST",
            "/scan",
            json={"businessName": business_name, "businessLocation": business_location},
        )
        try:
            data = response.json()
        except ValueError as exc:
            raise ScanError(f"Scan response is not JSON: {exc}") from exc
        if not isinstance(data, dict) or not data.get("success"):
            error = data.get("error") if isinstance(data, dict) else None
            raise ScanError(error or "Scan failed - no success flag")
        try:
            return ScanResult.from_dict(data)
        except (KeyError, TypeError, ValueError) as exc:
            raise ScanError(f"Scan response is malformed: {exc!r}") from exc

    def generate_recommendations(self, business_name: str, business_location: str, result: ScanResult) -> None:
        """Ask the service to generate recommendations; the payload arrives via the subscription."""
        body = {
            "scanId": result.scan_id,
            "businessData": {"businessName": business_name, "businessLocation": business_location},
            "scanResults": {
                "overallScore": result.scores.overall,
                "reviewsScore": result.scores.reviews,
                "completenessScore": result.scores.completeness,
                "photosScore": result.scores.photos,
                "engagementScore": result.scores.engagement,
            },
            "placeDetails": result.place_summary,
        }
        try:
            self._request("POST", "/generate-recommendations", json=body)
        except ScanError as exc:
            raise RecommendationGenerationFailure(str(exc)) from exc

    def wait_for_recommendations(self, scan_id: str, timeout: float) -> Optional[RecommendationPayload]:
        response = self._request(
            "GET",
            f"/scans/{scan_id}/recommendations",
            params={"timeout": timeout},
            timeout=timeout + REQUEST_TIMEOUT,
        )
        if response.status_code == 204:
            return None
        try:
            return RecommendationPayload.from_json(response.json().get("recommendations"))
        except (RecommendationParseError, ValueError) as exc:
            raise RecommendationGenerationFailure(str(exc)) from exc

    def capture_lead(
        self,
        email: str,
        *,
        scan_id: Optional[str] = None,
        phone: Optional[str] = None,
        postcode: Optional[str] = None,
        source: str = "scan_results",
    ) -> Dict[str, Any]:
        body = {"scanId": scan_id, "email": email, "phone": phone, "postcode": postcode, "source": source}
        return self._request("POST", "/capture-lead", json=body).json()

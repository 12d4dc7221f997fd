import pytest
import requests

from gbp_scan.client.api_client import ScanApiClient
from gbp_scan.core.errors import (
    NotFoundError,
    RateLimitError,
    RecommendationGenerationFailure,
    ScanError,
    TransientNetworkError,
    ValidationError,
)
from gbp_scan.core.models import ScanResult, ScoreSet

SCORES = ScoreSet(overall=62, reviews=75, engagement=70, photos=20, completeness=67)


class DummyResponse:
    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self._payload = payload

    def json(self):
        if self._payload is None:
            raise ValueError("no json body")
        return self._payload


class DummySession:
    def __init__(self, responses):
        self._responses = list(responses)
        self.calls = []

    def request(self, method, url, timeout=None, **kwargs):
        self.calls.append({"method": method, "url": url, "timeout": timeout, **kwargs})
        response = self._responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def _client(*responses):
    session = DummySession(responses)
    return ScanApiClient(base_url="http://scan.test/", session=session), session


def test_scan_parses_result():
    body = {"success": True, "scanId": "scan-1", "scores": SCORES.to_dict(), "placeSummary": {"name": "Acme"}}
    client, session = _client(DummyResponse(200, body))

    result = client.scan("Acme", "Leeds")

    assert result.scan_id == "scan-1"
    assert result.scores == SCORES
    assert session.calls[0]["url"] == "http://scan.test/scan"
    assert session.calls[0]["json"] == {"businessName": "Acme", "businessLocation": "Leeds"}


def test_scan_maps_error_responses():
    client, _ = _client(
        DummyResponse(404, {"success": False, "error": "nope", "errorType": "not_found"}),
        DummyResponse(429, {"success": False, "error": "slow down"}),
        DummyResponse(400, {"success": False, "error": "businessName and businessLocation are required"}),
        DummyResponse(500, None),
    )

    with pytest.raises(NotFoundError):
        client.scan("Joe's Plumbing", "Manchester")
    with pytest.raises(RateLimitError):
        client.scan("A", "B")
    with pytest.raises(ValidationError) as excinfo:
        client.scan("", "")
    assert excinfo.value.user_message == "businessName and businessLocation are required"
    with pytest.raises(TransientNetworkError):
        client.scan("A", "B")


def test_scan_malformed_success_body_is_classified():
    client, _ = _client(DummyResponse(200, None), DummyResponse(200, {"success": True, "scanId": "scan-1"}))

    with pytest.raises(ScanError) as excinfo:
        client.scan("Acme", "Leeds")
    assert excinfo.value.retryable is False
    with pytest.raises(ScanError):
        client.scan("Acme", "Leeds")


def test_connection_errors_are_retryable():
    client, _ = _client(requests.ConnectionError("refused"))

    with pytest.raises(TransientNetworkError) as excinfo:
        client.scan("A", "B")
    assert excinfo.value.retryable is True


def test_generate_recommendations_sends_scores():
    client, session = _client(DummyResponse(202, {"success": True, "status": "queued"}))
    result = ScanResult(scan_id="scan-1", scores=SCORES, place_summary={"rating": 4.5})

    client.generate_recommendations("Acme", "Leeds", result)

    body = session.calls[0]["json"]
    assert body["scanId"] == "scan-1"
    assert body["scanResults"]["overallScore"] == 62
    assert body["scanResults"]["photosScore"] == 20
    assert body["placeDetails"] == {"rating": 4.5}


def test_generate_recommendations_failure_is_wrapped():
    client, _ = _client(DummyResponse(503, {"success": False, "error": "down", "errorType": "service_unavailable"}))
    result = ScanResult(scan_id="scan-1", scores=SCORES, place_summary={})

    with pytest.raises(RecommendationGenerationFailure):
        client.generate_recommendations("Acme", "Leeds", result)


def test_wait_for_recommendations():
    payload = {
        "priority": "medium",
        "recommendations": [],
        "quickWins": ["Reply to reviews"],
        "revenueImpact": "Steady growth",
        "source": "ai",
    }
    client, session = _client(DummyResponse(200, {"success": True, "recommendations": payload}), DummyResponse(204))

    received = client.wait_for_recommendations("scan-1", 15)
    assert received.priority == "medium"
    assert received.source == "ai"
    assert session.calls[0]["params"] == {"timeout": 15}
    assert session.calls[0]["timeout"] == 45

    assert client.wait_for_recommendations("scan-1", 15) is None


def test_wait_for_recommendations_rejects_malformed_payload():
    client, _ = _client(DummyResponse(200, {"success": True, "recommendations": {"priority": "urgent"}}))

    with pytest.raises(RecommendationGenerationFailure):
        client.wait_for_recommendations("scan-1", 1)


def test_capture_lead():
    client, session = _client(DummyResponse(200, {"success": True, "scanId": "scan-1", "leadId": "lead-1"}))

    assert client.capture_lead("joe@example.com", scan_id="scan-1")["leadId"] == "lead-1"
    assert session.calls[0]["json"]["source"] == "scan_results"

"""Error taxonomy shared by the scan pipeline, the HTTP layer and the client."""

from typing import Any, Dict, Optional, Type


class ScanError(RuntimeError):
    """Base class for classified scan failures."""

    error_type = "scan_failed"
    status_code = 500
    retryable = False
    user_message = (
        "Scan temporarily unavailable. Our technical team has been notified. "
        "Please try again in a few minutes or contact support if this continues."
    )

    def to_response(self) -> Dict[str, Any]:
        return {"success": False, "error": self.user_message, "errorType": self.error_type}


class NotFoundError(ScanError):
    """No place matched any of the query compositions."""

    error_type = "not_found"
    status_code = 404
    user_message = (
        "We couldn't find your business on Google. Please try:\n"
        "- Using your exact business name as it appears on Google\n"
        "- Including your city or postcode\n"
        "- Checking if your business has a Google Business Profile"
    )


class UpstreamConfigurationError(ScanError):
    """An external API credential is missing or rejected."""

    error_type = "service_unavailable"
    status_code = 503
    user_message = "Our scanning service is temporarily unavailable. Please try again later."


class TransientNetworkError(ScanError):
    error_type = "network"
    status_code = 502
    retryable = True
    user_message = (
        "Connection issue detected. Please check your internet connection and try again. "
        "If the problem persists, try refreshing the page."
    )


class RateLimitError(ScanError):
    error_type = "rate_limited"
    status_code = 429
    user_message = "Too many scan requests. Please wait 60 seconds before trying again to ensure accurate results."


class PersistenceError(ScanError):
    error_type = "persistence"


class RecommendationGenerationFailure(ScanError):
    """The AI strategy failed; callers always mask this with the fallback generator."""

    error_type = "recommendation_failed"


class ValidationError(ScanError):
    error_type = "invalid_request"
    status_code = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.user_message = message


_BY_TYPE: Dict[str, Type[ScanError]] = {
    cls.error_type: cls
    for cls in (
        ScanError,
        NotFoundError,
        UpstreamConfigurationError,
        TransientNetworkError,
        RateLimitError,
        PersistenceError,
        RecommendationGenerationFailure,
    )
}

_BY_STATUS: Dict[int, Type[ScanError]] = {
    404: NotFoundError,
    429: RateLimitError,
    503: UpstreamConfigurationError,
}


def user_message_for(exc: BaseException) -> str:
    if isinstance(exc, ScanError):
        return exc.user_message
    return ScanError.user_message


def error_from_response(status_code: int, payload: Optional[Dict[str, Any]]) -> ScanError:
    """Rebuild a classified error from an HTTP error response."""
    payload = payload or {}
    message = payload.get("error") or f"HTTP {status_code}"
    if status_code == 400:
        return ValidationError(message)

    cls = _BY_TYPE.get(payload.get("errorType") or "")
    if cls is None:
        cls = _BY_STATUS.get(status_code)
    if cls is None:
        cls = TransientNetworkError if status_code >= 500 else ScanError
    return cls(message)

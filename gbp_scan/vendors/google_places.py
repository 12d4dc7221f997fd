"""Client utilities for the Google Places and Geocoding APIs."""

import logging
from typing import Any, Dict, Optional

import requests

logger = logging.getLogger(__name__)
_SESSION = requests.Session()
_BASE_URL = "https://maps.googleapis.com/maps/api/place"
_GEOCODE_URL = "https://maps.googleapis.com/maps/api/geocode/json"

DETAIL_FIELDS = (
    "place_id,name,rating,user_ratings_total,photos,formatted_address,"
    "formatted_phone_number,website,opening_hours,types,geometry"
)


class GooglePlacesError(RuntimeError):
    """Raised when the Places API returns a non-successful response."""

    def __init__(self, message: str, status: Optional[str] = None) -> None:
        super().__init__(message)
        self.status = status


def _check_status(payload: Dict[str, Any], operation: str) -> None:
    status = payload.get("status")
    if status not in {"OK", "ZERO_RESULTS"}:
        logger.error("%s failed: status=%s, error_message=%s", operation, status, payload.get("error_message"))
        raise GooglePlacesError(payload.get("error_message") or status or "unknown error", status=status)


def text_search(query: str, api_key: str) -> Dict[str, Any]:
    params = {"query": query, "key": api_key}
    response = _SESSION.get(f"{_BASE_URL}/textsearch/json", params=params, timeout=10)
    response.raise_for_status()
    payload = response.json()
    _check_status(payload, "text_search")
    return payload


def place_details(place_id: str, api_key: str) -> Dict[str, Any]:
    params = {"place_id": place_id, "key": api_key, "fields": DETAIL_FIELDS}
    response = _SESSION.get(f"{_BASE_URL}/details/json", params=params, timeout=10)
    response.raise_for_status()
    payload = response.json()
    _check_status(payload, "place_details")
    return payload.get("result", {})


def geocode(address: str, api_key: str) -> Optional[Dict[str, float]]:
    """Return ``{"lat": ..., "lng": ...}`` for the best geocoding match, or None."""
    params = {"address": address, "key": api_key}
    response = _SESSION.get(_GEOCODE_URL, params=params, timeout=10)
    response.raise_for_status()
    payload = response.json()
    _check_status(payload, "geocode")
    results = payload.get("results") or []
    if not results:
        return None
    location = results[0].get("geometry", {}).get("location") or {}
    if location.get("lat") is None or location.get("lng") is None:
        return None
    return {"lat": float(location["lat"]), "lng": float(location["lng"])}

"""Resolve a free-text business name and location into a single Google place."""

import logging
import math
from typing import Any, Callable, Dict, List, Optional, Tuple

import requests

from gbp_scan.core.errors import (
    NotFoundError,
    RateLimitError,
    TransientNetworkError,
    UpstreamConfigurationError,
)
from gbp_scan.core.models import PlaceRecord
from gbp_scan.etl.transform import to_place_record
from gbp_scan.vendors import google_places
from gbp_scan.vendors.google_places import GooglePlacesError

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0
SEARCH_RADIUS_KM = 50.0
LOW_SIMILARITY_THRESHOLD = 0.5
QUERY_TEMPLATES = ("{name} {location}", "{name} near {location}", "{name}, {location}")

_CONFIG_STATUSES = {"REQUEST_DENIED", "INVALID_REQUEST"}

Coordinates = Tuple[float, float]


def build_queries(name: str, location: str) -> List[str]:
    return [template.format(name=name, location=location) for template in QUERY_TEMPLATES]


def haversine_km(origin: Coordinates, target: Coordinates) -> float:
    lat1, lng1 = map(math.radians, origin)
    lat2, lng2 = map(math.radians, target)
    dlat = lat2 - lat1
    dlng = lng2 - lng1
    a = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlng / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(a))


def levenshtein(left: str, right: str) -> int:
    if len(left) < len(right):
        left, right = right, left
    previous = list(range(len(right) + 1))
    for i, left_char in enumerate(left, start=1):
        current = [i]
        for j, right_char in enumerate(right, start=1):
            cost = 0 if left_char == right_char else 1
            current.append(min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + cost))
        previous = current
    return previous[-1]


def name_similarity(query_name: str, candidate_name: str) -> float:
    """Normalised Levenshtein similarity in [0, 1], case-insensitive."""
    left = query_name.strip().lower()
    right = candidate_name.strip().lower()
    longest = max(len(left), len(right))
    if longest == 0:
        return 1.0
    return 1 - levenshtein(left, right) / longest


def _result_coordinates(result: Dict[str, Any]) -> Optional[Coordinates]:
    location = result.get("geometry", {}).get("location") or {}
    lat, lng = location.get("lat"), location.get("lng")
    if lat is None or lng is None:
        return None
    return float(lat), float(lng)


def filter_by_distance(
    results: List[Dict[str, Any]],
    origin: Coordinates,
    radius_km: float = SEARCH_RADIUS_KM,
) -> List[Dict[str, Any]]:
    nearby = []
    for result in results:
        coordinates = _result_coordinates(result)
        if coordinates is not None and haversine_km(origin, coordinates) <= radius_km:
            nearby.append(result)
    return nearby


def _call(fn: Callable[..., Any], **kwargs: Any) -> Any:
    """Invoke a Places vendor function, translating failures into the scan error taxonomy."""
    try:
        return fn(**kwargs)
    except requests.HTTPError as exc:
        status_code = exc.response.status_code if exc.response is not None else None
        if status_code in (401, 403):
            raise UpstreamConfigurationError(str(exc)) from exc
        if status_code == 404:
            raise NotFoundError(str(exc)) from exc
        raise TransientNetworkError(str(exc)) from exc
    except requests.RequestException as exc:
        raise TransientNetworkError(str(exc)) from exc
    except GooglePlacesError as exc:
        if exc.status in _CONFIG_STATUSES:
            raise UpstreamConfigurationError(str(exc)) from exc
        if exc.status == "OVER_QUERY_LIMIT":
            raise RateLimitError(str(exc)) from exc
        if exc.status == "NOT_FOUND":
            raise NotFoundError(str(exc)) from exc
        raise TransientNetworkError(str(exc)) from exc


def geocode_location(location: str, api_key: str) -> Optional[Coordinates]:
    """Geocode ``location``; failures are logged and treated as "no bias"."""
    try:
        point = google_places.geocode(location, api_key)
    except (GooglePlacesError, requests.RequestException) as exc:
        logger.warning("Geocoding failed for location=%s: %s", location, exc)
        return None
    if point is None:
        logger.info("Geocoding returned no match for location=%s", location)
        return None
    return point["lat"], point["lng"]


def resolve_place(
    name: str,
    location: str,
    api_key: str,
    radius_km: float = SEARCH_RADIUS_KM,
) -> PlaceRecord:
    if not api_key:
        raise UpstreamConfigurationError("Google Places API key not configured")

    name = name.strip()
    location = location.strip()
    origin = geocode_location(location, api_key)

    results: List[Dict[str, Any]] = []
    for query in build_queries(name, location):
        response = _call(google_places.text_search, query=query, api_key=api_key)
        results = response.get("results") or []
        if results:
            logger.info("Query %r returned %d results", query, len(results))
            break
        logger.info("No results for query=%r", query)

    if not results:
        raise NotFoundError(f"No Google listing found for {name!r} in {location!r}")

    candidates = results
    if origin is not None:
        nearby = filter_by_distance(results, origin, radius_km)
        if nearby:
            candidates = nearby
        else:
            logger.warning("No results within %.0fkm of %s; using unfiltered results", radius_km, location)

    best = candidates[0]
    similarity = name_similarity(name, best.get("name") or "")
    if similarity < LOW_SIMILARITY_THRESHOLD:
        # Low confidence matches are still accepted.
        logger.warning(
            "Low name similarity %.2f between query %r and match %r", similarity, name, best.get("name")
        )

    place_id = best.get("place_id")
    if not place_id:
        raise NotFoundError(f"Match for {name!r} has no place_id")

    details = _call(google_places.place_details, place_id=place_id, api_key=api_key)
    return to_place_record(details or best)

"""Utilities for transforming Google Places responses into records and database rows."""

import logging
from typing import Any, Dict, Iterable, List, Optional

from gbp_scan.core.models import PlaceRecord, ScoreSet

logger = logging.getLogger(__name__)

_IGNORE_TYPES = {"point_of_interest", "establishment", "political", "premise"}

_INDUSTRY_BY_TYPE = {
    "plumber": "plumbing",
    "electrician": "electrical",
    "heating_contractor": "heating",
    "hvac_contractor": "heating",
    "landscaping": "landscaping",
    "roofing_contractor": "roofing",
    "painter": "painting",
    "general_contractor": "construction",
    "car_repair": "automotive",
    "auto_repair": "automotive",
    "cleaning_service": "cleaning",
}

_DAY_NAMES = ("sunday", "monday", "tuesday", "wednesday", "thursday", "friday", "saturday")


def _extract_primary_type(types: Iterable[str]) -> Optional[str]:
    for type_name in types or []:
        if type_name not in _IGNORE_TYPES:
            return type_name
    return None


def map_types_to_industry(types: Iterable[str]) -> str:
    for type_name in types or []:
        industry = _INDUSTRY_BY_TYPE.get(type_name)
        if industry:
            return industry
    return "other"


def _format_time(value: str) -> str:
    if len(value) == 4:
        return f"{value[:2]}:{value[2:]}"
    return value


def format_business_hours(opening_hours: Optional[Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
    """Convert Places ``opening_hours.periods`` into a per-weekday open/close map."""
    if not opening_hours or not opening_hours.get("periods"):
        return {}

    hours = {day: {"closed": True, "open": "09:00", "close": "17:00"} for day in _DAY_NAMES}
    for period in opening_hours["periods"]:
        opening = period.get("open") or {}
        day = opening.get("day")
        if day is None or not 0 <= day < len(_DAY_NAMES):
            continue
        closing = period.get("close")
        hours[_DAY_NAMES[day]] = {
            "closed": False,
            "open": _format_time(opening.get("time", "0000")),
            "close": _format_time(closing["time"]) if closing and closing.get("time") else "23:59",
        }
    return hours


def _safe_int(value: Any) -> int:
    try:
        return max(int(value), 0)
    except (TypeError, ValueError):
        return 0


def _safe_float(value: Any) -> Optional[float]:
    try:
        if value is None:
            return None
        return float(value)
    except (TypeError, ValueError):
        return None


def to_place_record(result: Dict[str, Any]) -> PlaceRecord:
    geometry = result.get("geometry", {}).get("location", {})
    photos: List[Dict[str, Any]] = [photo for photo in result.get("photos") or [] if isinstance(photo, dict)]
    return PlaceRecord(
        place_id=result.get("place_id") or "",
        name=result.get("name") or "",
        rating=_safe_float(result.get("rating")),
        review_count=_safe_int(result.get("user_ratings_total")),
        address=result.get("formatted_address"),
        phone=result.get("formatted_phone_number"),
        website=result.get("website"),
        opening_hours=result.get("opening_hours") or None,
        photos=photos,
        types=list(result.get("types") or []),
        latitude=_safe_float(geometry.get("lat")),
        longitude=_safe_float(geometry.get("lng")),
        raw=result,
    )


def to_place_summary(place: PlaceRecord) -> Dict[str, Any]:
    summary = place.summary()
    summary["primaryType"] = _extract_primary_type(place.types)
    summary["industry"] = map_types_to_industry(place.types)
    summary["businessHours"] = format_business_hours(place.opening_hours)
    return summary


def to_scan_row(
    business_name: str,
    business_location: str,
    place: PlaceRecord,
    scores: ScoreSet,
    analysis: Dict[str, List[str]],
) -> Dict[str, Any]:
    return {
        "business_name": business_name,
        "business_location": business_location,
        "google_place_id": place.place_id,
        "overall_score": scores.overall,
        "reviews_score": scores.reviews,
        "engagement_score": scores.engagement,
        "photos_score": scores.photos,
        "completeness_score": scores.completeness,
        "scan_status": "pending",
        "scan_results": {
            "placeDetails": place.raw or {},
            "scores": scores.to_dict(),
            "analysis": analysis,
        },
    }

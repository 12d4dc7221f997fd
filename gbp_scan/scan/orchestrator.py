"""Scan orchestration: lookup, scoring, persistence, then recommendation dispatch."""

import logging
from typing import Callable, Optional

import psycopg2

from gbp_scan.core import db
from gbp_scan.core.config import Settings, get_settings
from gbp_scan.core.errors import PersistenceError, UpstreamConfigurationError, ValidationError
from gbp_scan.core.models import ScanResult
from gbp_scan.etl.transform import to_place_summary, to_scan_row
from gbp_scan.scan import scoring
from gbp_scan.scan.lookup import resolve_place

logger = logging.getLogger(__name__)

RecommendationDispatcher = Callable[[str, str, ScanResult], None]


def start_scan(
    business_name: str,
    business_location: str,
    *,
    settings: Optional[Settings] = None,
    dispatch: Optional[RecommendationDispatcher] = None,
) -> ScanResult:
    """Run a scan and return its result without waiting for recommendations.

    ``dispatch`` is called after the record is persisted and must not block;
    a failure to dispatch is logged and never fails the scan.
    """
    business_name = (business_name or "").strip()
    business_location = (business_location or "").strip()
    if not business_name or not business_location:
        raise ValidationError("businessName and businessLocation are required")

    settings = settings or get_settings()
    logger.info("Starting scan for: %s in %s", business_name, business_location)

    place = resolve_place(
        business_name,
        business_location,
        api_key=settings.google_api_key,
        radius_km=settings.search_radius_km,
    )
    scores = scoring.score_place(place)
    row = to_scan_row(business_name, business_location, place, scores, scoring.generate_analysis(scores))

    try:
        scan_id = db.insert_scan(row)
    except RuntimeError as exc:
        # init_pool raises RuntimeError when DATABASE_URL is missing.
        raise UpstreamConfigurationError(str(exc)) from exc
    except psycopg2.Error as exc:
        logger.error("Failed to persist scan for %s: %s", business_name, exc)
        raise PersistenceError(str(exc)) from exc

    result = ScanResult(scan_id=scan_id, scores=scores, place_summary=to_place_summary(place))
    logger.info("Scan completed for %s with overall score: %d", business_name, scores.overall)

    if dispatch is not None:
        try:
            dispatch(business_name, business_location, result)
        except Exception as exc:  # noqa: BLE001
            logger.error("Failed to dispatch recommendations for scan %s: %s", scan_id, exc)

    return result

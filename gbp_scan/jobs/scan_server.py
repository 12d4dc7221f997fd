"""HTTP entrypoint exposing the business scan, lead capture and recommendation endpoints."""

from __future__ import annotations

import logging
import os
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, Optional

import psycopg2
from flask import Flask, jsonify, request

from gbp_scan.core import db
from gbp_scan.core.config import get_settings
from gbp_scan.core.errors import RateLimitError, ScanError, ValidationError
from gbp_scan.core.models import ScanResult, ScoreSet
from gbp_scan.core.validation import (
    sanitize_string,
    validate_email,
    validate_uk_phone,
    validate_uk_postcode,
)
from gbp_scan.scan.orchestrator import start_scan
from gbp_scan.scan.recommendations import generate_recommendations

# ---------- Logging ----------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s - %(message)s",
)
logger = logging.getLogger(__name__)

# ---------- App & executor ----------
app = Flask(__name__)
_executor = ThreadPoolExecutor(max_workers=4)

MAX_SUBSCRIPTION_TIMEOUT = 30.0

_CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
}

_SCAN_SCORE_KEYS = {
    "overall": "overallScore",
    "reviews": "reviewsScore",
    "engagement": "engagementScore",
    "photos": "photosScore",
    "completeness": "completenessScore",
}


@app.after_request
def add_cors_headers(response):
    response.headers.update(_CORS_HEADERS)
    return response


# ---------- Routes ----------


@app.get("/")
def root() -> Any:
    return "ok", 200


@app.get("/healthz")
def healthcheck() -> Any:
    """Lightweight health endpoint; reads settings only, no database round trip."""
    settings = get_settings()
    return (
        jsonify(
            {
                "status": "ok",
                "worker_port_config": settings.worker_port,
                "google_configured": bool(settings.google_api_key),
                "ai_configured": bool(settings.openai_api_key),
                "revision": os.getenv("K_REVISION", "unknown"),
            }
        ),
        200,
    )


@app.post("/scan")
def scan_business() -> Any:
    """Scan a business. Required JSON fields: businessName, businessLocation."""
    settings = get_settings()
    limited = _rate_limited("scan-business", settings.scan_rate_limit)
    if limited is not None:
        return limited

    payload: Dict[str, Any] = request.get_json(silent=True) or {}
    business_name = sanitize_string(payload.get("businessName"))
    business_location = sanitize_string(payload.get("businessLocation"))
    if not business_name or not business_location:
        return _error(ValidationError("businessName and businessLocation are required"))

    dispatch = _dispatch_recommendations if settings.scan_auto_recommend else None
    try:
        result = start_scan(business_name, business_location, settings=settings, dispatch=dispatch)
    except ScanError as exc:
        logger.error("Scan failed for %s in %s: %s", business_name, business_location, exc)
        return _error(exc)

    return jsonify(result.to_dict()), 200


@app.post("/capture-lead")
def capture_lead() -> Any:
    """Attach contact details to a scan, or record a standalone lead when no scanId is given."""
    settings = get_settings()
    limited = _rate_limited("capture-lead", settings.lead_rate_limit)
    if limited is not None:
        return limited

    payload: Dict[str, Any] = request.get_json(silent=True) or {}
    scan_id = sanitize_string(payload.get("scanId"))
    email = sanitize_string(payload.get("email"))
    phone = sanitize_string(payload.get("phone"))
    postcode = sanitize_string(payload.get("postcode"))
    source = sanitize_string(payload.get("source")) or "unknown"

    if not email or not validate_email(email):
        return _error(ValidationError("A valid email address is required"))
    if phone and not validate_uk_phone(phone):
        return _error(ValidationError("phone must be a valid UK phone number"))
    if postcode and not validate_uk_postcode(postcode):
        return _error(ValidationError("postcode must be a valid UK postcode"))

    try:
        lead_id = db.capture_lead(
            {"scan_id": scan_id, "email": email, "phone": phone, "postcode": postcode, "source": source}
        )
    except psycopg2.DataError as exc:
        logger.warning("Rejected lead for malformed scan id %s: %s", scan_id, exc)
        return _error(ValidationError("scanId is not a valid scan identifier"))
    except (psycopg2.Error, RuntimeError) as exc:
        logger.error("Failed to capture lead for scan %s: %s", scan_id, exc)
        return _error(ScanError(str(exc)))

    if lead_id is None:
        return jsonify({"success": False, "error": "Scan not found"}), 404

    logger.info("Lead captured for scan %s from source=%s", scan_id, source)
    return jsonify({"success": True, "scanId": scan_id, "leadId": lead_id}), 200


@app.post("/generate-recommendations")
def enqueue_recommendations() -> Any:
    """
    Queue recommendation generation for a scan.
    Required JSON fields: scanId, businessData, scanResults. Optional: placeDetails.
    The result is delivered by writing to the scan record, not in this response.
    """
    settings = get_settings()
    limited = _rate_limited("generate-recommendations", settings.recommend_rate_limit)
    if limited is not None:
        return limited

    payload: Dict[str, Any] = request.get_json(silent=True) or {}
    scan_id = payload.get("scanId")
    business_data = payload.get("businessData") or {}
    if not scan_id:
        return _error(ValidationError("scanId is required"))

    try:
        scores = _scores_from_payload(payload.get("scanResults") or {})
    except (KeyError, TypeError, ValueError):
        return _error(ValidationError("scanResults must contain all five scores"))

    job_args = dict(
        scan_id=str(scan_id),
        business_name=str(business_data.get("businessName") or ""),
        business_location=str(business_data.get("businessLocation") or ""),
        scores=scores,
        place_summary=payload.get("placeDetails") or {},
    )
    logger.info("Queueing recommendation job for scan %s", scan_id)
    _executor.submit(_run_recommendations_safe, job_args)
    return jsonify({"success": True, "status": "queued"}), 202


@app.get("/scans/<scan_id>")
def get_scan(scan_id: str) -> Any:
    try:
        record = db.get_scan(scan_id)
    except (psycopg2.Error, RuntimeError) as exc:
        logger.error("Failed to load scan %s: %s", scan_id, exc)
        return _error(ScanError(str(exc)))
    if record is None:
        return jsonify({"success": False, "error": "Scan not found"}), 404
    return jsonify({"success": True, "scan": record.to_dict()}), 200


@app.get("/scans/<scan_id>/recommendations")
def wait_for_recommendations(scan_id: str) -> Any:
    """Long-poll until the scan's recommendations are written or ``timeout`` seconds pass."""
    try:
        timeout = float(request.args.get("timeout", "15"))
    except ValueError:
        return _error(ValidationError("timeout must be numeric"))
    timeout = max(0.0, min(timeout, MAX_SUBSCRIPTION_TIMEOUT))

    try:
        recommendations = db.wait_for_recommendations(scan_id, timeout)
    except (psycopg2.Error, RuntimeError) as exc:
        logger.error("Recommendation subscription failed for scan %s: %s", scan_id, exc)
        return _error(ScanError(str(exc)))
    if recommendations is None:
        return "", 204
    return jsonify({"success": True, "recommendations": recommendations.to_dict()}), 200


# ---------- Internals ----------


def _error(exc: ScanError):
    return jsonify(exc.to_response()), exc.status_code


def _client_ip() -> str:
    forwarded = request.headers.get("X-Forwarded-For", "")
    if forwarded.split(",")[0].strip():
        return forwarded.split(",")[0].strip()
    return (
        request.headers.get("X-Real-IP")
        or request.headers.get("CF-Connecting-IP")
        or request.remote_addr
        or "unknown"
    )


def _rate_limited(endpoint: str, limit: int) -> Optional[Any]:
    """Return a 429 response when the caller exceeded ``limit``; None otherwise.

    Store failures allow the request through.
    """
    settings = get_settings()
    client_ip = _client_ip()
    try:
        count = db.increment_rate_limit(client_ip, endpoint, settings.rate_limit_window_minutes)
    except (psycopg2.Error, RuntimeError) as exc:
        logger.error("Rate limit check failed for %s: %s", endpoint, exc)
        return None

    if count <= limit:
        return None

    logger.warning("Rate limit exceeded for %s on %s (%d/%d)", client_ip, endpoint, count, limit)
    db.log_security_event(
        "rate_limit_exceeded",
        client_ip,
        request.headers.get("User-Agent"),
        {"endpoint": endpoint, "requests": count, "limit": limit},
    )
    return _error(RateLimitError("rate limit exceeded"))


def _scores_from_payload(data: Dict[str, Any]) -> ScoreSet:
    if "overallScore" in data:
        data = {name: data[key] for name, key in _SCAN_SCORE_KEYS.items()}
    return ScoreSet.from_dict(data)


def _dispatch_recommendations(business_name: str, business_location: str, result: ScanResult) -> None:
    _executor.submit(
        _run_recommendations_safe,
        dict(
            scan_id=result.scan_id,
            business_name=business_name,
            business_location=business_location,
            scores=result.scores,
            place_summary=result.place_summary,
        ),
    )


def _run_recommendations_safe(job_args: Dict[str, Any]) -> None:
    try:
        generate_recommendations(**job_args)
    except Exception as exc:  # noqa: BLE001
        logger.exception("Recommendation job failed for scan %s: %s", job_args.get("scan_id"), exc)
        try:
            db.mark_scan_failed(job_args["scan_id"])
        except Exception as mark_exc:  # noqa: BLE001
            logger.error("Failed to mark scan %s as failed: %s", job_args.get("scan_id"), mark_exc)


def main() -> None:
    port = get_settings().worker_port
    logger.info("[BOOT] Binding on 0.0.0.0:%d", port)
    app.run(host="0.0.0.0", port=port, threaded=True)


if __name__ == "__main__":
    main()

"""Database helpers for scan records, leads and rate limits."""

import logging
import select
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

import psycopg2
from psycopg2 import extensions, extras, pool

from gbp_scan.core.config import get_settings
from gbp_scan.core.models import RecommendationParseError, RecommendationPayload, ScanRecord, ScoreSet

logger = logging.getLogger(__name__)

RECOMMENDATIONS_CHANNEL = "scan_recommendations"
LISTEN_POLL_SECONDS = 0.5

_connection_pool: Optional[pool.SimpleConnectionPool] = None


def init_pool(minconn: int = 1, maxconn: int = 5) -> pool.SimpleConnectionPool:
    """Initialise and return the shared connection pool."""
    global _connection_pool
    if _connection_pool is None:
        settings = get_settings()
        if not settings.database_url:
            raise RuntimeError("DATABASE_URL is required for database connections")
        _connection_pool = pool.SimpleConnectionPool(
            minconn,
            maxconn,
            dsn=settings.database_url,
            connect_timeout=10,
        )
        logger.info("Database connection pool initialised")
    return _connection_pool


@contextmanager
def get_connection():
    """Context manager yielding a pooled connection, rolled back if the block raises."""
    pg_pool = init_pool()
    conn = pg_pool.getconn()
    try:
        yield conn
    except Exception:
        conn.rollback()
        raise
    finally:
        pg_pool.putconn(conn)


def _prepare_scan_params(row: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "business_name": row.get("business_name"),
        "business_location": row.get("business_location"),
        "google_place_id": row.get("google_place_id"),
        "overall_score": row.get("overall_score"),
        "reviews_score": row.get("reviews_score"),
        "engagement_score": row.get("engagement_score"),
        "photos_score": row.get("photos_score"),
        "completeness_score": row.get("completeness_score"),
        "scan_status": row.get("scan_status") or "pending",
        "scan_results": extras.Json(row.get("scan_results") or {}),
    }


_INSERT_SCAN = """
INSERT INTO business_scans (
    business_name,
    business_location,
    google_place_id,
    overall_score,
    reviews_score,
    engagement_score,
    photos_score,
    completeness_score,
    scan_status,
    scan_results
) VALUES (
    %(business_name)s,
    %(business_location)s,
    %(google_place_id)s,
    %(overall_score)s,
    %(reviews_score)s,
    %(engagement_score)s,
    %(photos_score)s,
    %(completeness_score)s,
    %(scan_status)s,
    %(scan_results)s
)
RETURNING id;
"""

_SELECT_SCAN = """
SELECT
    id,
    business_name,
    business_location,
    google_place_id,
    overall_score,
    reviews_score,
    engagement_score,
    photos_score,
    completeness_score,
    scan_status,
    ai_recommendations,
    email,
    phone,
    postcode,
    created_at
FROM business_scans
WHERE id = %(scan_id)s;
"""

_SELECT_RECOMMENDATIONS = """
SELECT scan_status, ai_recommendations FROM business_scans WHERE id = %(scan_id)s;
"""

# Only the first writer for a pending scan wins; later writes are no-ops.
_SAVE_RECOMMENDATIONS = """
UPDATE business_scans
SET ai_recommendations = %(recommendations)s,
    scan_status = 'completed',
    updated_at = NOW()
WHERE id = %(scan_id)s AND scan_status = 'pending';
"""

_MARK_FAILED = """
UPDATE business_scans
SET scan_status = 'failed',
    updated_at = NOW()
WHERE id = %(scan_id)s AND scan_status = 'pending';
"""

_NOTIFY = "SELECT pg_notify(%(channel)s, %(scan_id)s);"

_UPDATE_CONTACT = """
UPDATE business_scans
SET email = %(email)s,
    phone = %(phone)s,
    postcode = %(postcode)s,
    updated_at = NOW()
WHERE id = %(scan_id)s;
"""

_INSERT_LEAD = """
INSERT INTO leads (scan_id, email, phone, postcode, source)
VALUES (%(scan_id)s, %(email)s, %(phone)s, %(postcode)s, %(source)s)
RETURNING id;
"""

_INCREMENT_RATE_LIMIT = """
INSERT INTO rate_limits (ip_address, endpoint, window_start, request_count)
VALUES (%(ip_address)s, %(endpoint)s, %(window_start)s, 1)
ON CONFLICT (ip_address, endpoint, window_start) DO UPDATE SET
    request_count = rate_limits.request_count + 1
RETURNING request_count;
"""

_INSERT_SECURITY_EVENT = """
INSERT INTO security_logs (event_type, ip_address, user_agent, metadata)
VALUES (%(event_type)s, %(ip_address)s, %(user_agent)s, %(metadata)s);
"""


def insert_scan(row: Dict[str, Any]) -> str:
    """Persist a freshly scored scan in pending state and return its id."""
    params = _prepare_scan_params(row)
    if not params["business_name"] or not params["google_place_id"]:
        raise ValueError("business_name and google_place_id are required for insert")

    with get_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(_INSERT_SCAN, params)
            scan_id = str(cur.fetchone()[0])
        conn.commit()
    logger.debug("Inserted scan %s for %s", scan_id, params["business_name"])
    return scan_id


def _parse_recommendations(scan_id: str, raw: Any) -> Optional[RecommendationPayload]:
    if raw is None:
        return None
    try:
        return RecommendationPayload.from_json(raw)
    except RecommendationParseError as exc:
        logger.error("Stored recommendations for scan %s are malformed: %s", scan_id, exc)
        return None


def _row_to_record(row: Dict[str, Any]) -> ScanRecord:
    scan_id = str(row["id"])
    scores = None
    if row.get("overall_score") is not None:
        scores = ScoreSet(
            overall=row["overall_score"],
            reviews=row["reviews_score"],
            engagement=row["engagement_score"],
            photos=row["photos_score"],
            completeness=row["completeness_score"],
        )
    return ScanRecord(
        id=scan_id,
        business_name=row["business_name"],
        business_location=row["business_location"],
        place_id=row.get("google_place_id"),
        scores=scores,
        status=row.get("scan_status") or "pending",
        recommendations=_parse_recommendations(scan_id, row.get("ai_recommendations")),
        email=row.get("email"),
        phone=row.get("phone"),
        postcode=row.get("postcode"),
        created_at=row.get("created_at"),
    )


def get_scan(scan_id: str) -> Optional[ScanRecord]:
    with get_connection() as conn:
        with conn.cursor(cursor_factory=extras.RealDictCursor) as cur:
            cur.execute(_SELECT_SCAN, {"scan_id": scan_id})
            row = cur.fetchone()
        conn.commit()
    if row is None:
        return None
    return _row_to_record(row)


def save_recommendations(scan_id: str, payload: RecommendationPayload) -> bool:
    """Write recommendations if the scan is still pending and notify subscribers.

    Returns False when another writer already completed (or failed) the scan.
    """
    params = {"scan_id": scan_id, "recommendations": extras.Json(payload.to_dict())}
    with get_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(_SAVE_RECOMMENDATIONS, params)
            written = cur.rowcount == 1
            if written:
                cur.execute(_NOTIFY, {"channel": RECOMMENDATIONS_CHANNEL, "scan_id": scan_id})
        conn.commit()

    if written:
        logger.info("Saved %s recommendations for scan %s", payload.source, scan_id)
    else:
        logger.info("Scan %s is no longer pending; %s recommendations discarded", scan_id, payload.source)
    return written


def mark_scan_failed(scan_id: str) -> bool:
    with get_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(_MARK_FAILED, {"scan_id": scan_id})
            updated = cur.rowcount == 1
            if updated:
                cur.execute(_NOTIFY, {"channel": RECOMMENDATIONS_CHANNEL, "scan_id": scan_id})
        conn.commit()
    return updated


def capture_lead(row: Dict[str, Any]) -> Optional[str]:
    """Store contact details on the scan (when given) and insert a lead row in one transaction.

    Returns the new lead id, or None when ``scan_id`` matches no scan.
    """
    if not row.get("email"):
        raise ValueError("email is required for lead insert")
    params = {
        "scan_id": row.get("scan_id"),
        "email": row.get("email"),
        "phone": row.get("phone"),
        "postcode": row.get("postcode"),
        "source": row.get("source") or "unknown",
    }
    with get_connection() as conn:
        with conn.cursor() as cur:
            if params["scan_id"]:
                cur.execute(_UPDATE_CONTACT, params)
                if cur.rowcount != 1:
                    conn.rollback()
                    return None
            cur.execute(_INSERT_LEAD, params)
            lead_id = str(cur.fetchone()[0])
        conn.commit()
    return lead_id


def window_start_for(now: datetime, window_minutes: int) -> datetime:
    """Start of the fixed rate-limit window containing ``now``."""
    window_seconds = window_minutes * 60
    epoch = int(now.timestamp())
    return datetime.fromtimestamp(epoch - epoch % window_seconds, tz=timezone.utc)


def increment_rate_limit(
    ip_address: str,
    endpoint: str,
    window_minutes: int,
    now: Optional[datetime] = None,
) -> int:
    """Count one request for ``ip_address`` on ``endpoint`` and return the window total."""
    now = now or datetime.now(timezone.utc)
    params = {
        "ip_address": ip_address,
        "endpoint": endpoint,
        "window_start": window_start_for(now, window_minutes),
    }
    with get_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(_INCREMENT_RATE_LIMIT, params)
            count = int(cur.fetchone()[0])
        conn.commit()
    return count


def log_security_event(
    event_type: str,
    ip_address: str,
    user_agent: Optional[str],
    metadata: Optional[Dict[str, Any]] = None,
) -> None:
    params = {
        "event_type": event_type,
        "ip_address": ip_address,
        "user_agent": user_agent,
        "metadata": extras.Json(metadata or {}),
    }
    try:
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(_INSERT_SECURITY_EVENT, params)
            conn.commit()
    except (psycopg2.Error, RuntimeError) as exc:
        logger.error("Failed to log security event %s: %s", event_type, exc)


def _fetch_recommendation_state(conn, scan_id: str) -> Tuple[Optional[str], Optional[RecommendationPayload]]:
    with conn.cursor() as cur:
        cur.execute(_SELECT_RECOMMENDATIONS, {"scan_id": scan_id})
        row = cur.fetchone()
    if row is None:
        return None, None
    status, raw = row
    return status, _parse_recommendations(scan_id, raw)


def wait_for_recommendations(
    scan_id: str,
    timeout: float,
) -> Optional[RecommendationPayload]:
    """Block until recommendations for ``scan_id`` are written, or ``timeout`` elapses.

    Uses a dedicated LISTEN connection on the recommendations channel. The current
    row is read right after LISTEN so a write that landed earlier is not missed.
    Returns None on timeout or when the scan was marked failed.
    """
    settings = get_settings()
    if not settings.database_url:
        raise RuntimeError("DATABASE_URL is required for database connections")

    conn = psycopg2.connect(settings.database_url, connect_timeout=10)
    try:
        conn.set_isolation_level(extensions.ISOLATION_LEVEL_AUTOCOMMIT)
        with conn.cursor() as cur:
            cur.execute(f"LISTEN {RECOMMENDATIONS_CHANNEL};")

        status, payload = _fetch_recommendation_state(conn, scan_id)
        if payload is not None or status in (None, "failed"):
            return payload

        deadline = time.monotonic() + timeout
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                logger.info("No recommendations for scan %s within %.1fs", scan_id, timeout)
                return None
            if select.select([conn], [], [], min(remaining, LISTEN_POLL_SECONDS)) == ([], [], []):
                continue
            conn.poll()
            matched = False
            while conn.notifies:
                notify = conn.notifies.pop(0)
                if notify.payload == scan_id:
                    matched = True
            if matched:
                status, payload = _fetch_recommendation_state(conn, scan_id)
                if payload is not None or status == "failed":
                    return payload
    finally:
        conn.close()

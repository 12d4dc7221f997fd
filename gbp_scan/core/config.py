"""Application configuration helpers."""

import logging
import os
from dataclasses import dataclass
from functools import lru_cache

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

_TRUE_VALUES = {"1", "true", "yes"}


@dataclass(frozen=True)
class Settings:
    google_api_key: str
    database_url: str
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    worker_port: int = 9000
    scan_api_url: str = "http://localhost:9000"
    recommendation_timeout_seconds: float = 15.0
    search_radius_km: float = 50.0
    scan_auto_recommend: bool = True
    rate_limit_window_minutes: int = 60
    scan_rate_limit: int = 10
    lead_rate_limit: int = 5
    recommend_rate_limit: int = 10


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load settings from environment variables with sensible defaults."""
    load_dotenv()

    google_api_key = os.getenv("GOOGLE_PLACES_API_KEY") or os.getenv("GOOGLE_API_KEY", "")
    database_url = os.getenv("DATABASE_URL", "")
    openai_api_key = os.getenv("OPENAI_API_KEY", "")
    openai_model = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
    worker_port = int(os.getenv("PORT") or os.getenv("WORKER_PORT", "9000"))
    scan_api_url = os.getenv("SCAN_API_URL", "http://localhost:9000").rstrip("/")
    recommendation_timeout_seconds = float(os.getenv("RECOMMENDATION_TIMEOUT_SECONDS", "15"))
    search_radius_km = float(os.getenv("SEARCH_RADIUS_KM", "50"))
    scan_auto_recommend = os.getenv("SCAN_AUTO_RECOMMEND", "true").lower() in _TRUE_VALUES
    rate_limit_window_minutes = int(os.getenv("RATE_LIMIT_WINDOW_MINUTES", "60"))
    scan_rate_limit = int(os.getenv("SCAN_RATE_LIMIT", "10"))
    lead_rate_limit = int(os.getenv("LEAD_RATE_LIMIT", "5"))
    recommend_rate_limit = int(os.getenv("RECOMMEND_RATE_LIMIT", "10"))

    if not database_url:
        logger.warning("DATABASE_URL is not set; database operations will fail.")
    if not google_api_key:
        logger.warning("GOOGLE_PLACES_API_KEY is not configured; Google Places requests will fail.")
    if not openai_api_key:
        logger.warning("OPENAI_API_KEY is not configured; fallback recommendations will be used.")

    return Settings(
        google_api_key=google_api_key,
        database_url=database_url,
        openai_api_key=openai_api_key,
        openai_model=openai_model,
        worker_port=worker_port,
        scan_api_url=scan_api_url,
        recommendation_timeout_seconds=recommendation_timeout_seconds,
        search_radius_km=search_radius_km,
        scan_auto_recommend=scan_auto_recommend,
        rate_limit_window_minutes=rate_limit_window_minutes,
        scan_rate_limit=scan_rate_limit,
        lead_rate_limit=lead_rate_limit,
        recommend_rate_limit=recommend_rate_limit,
    )

"""Recommendation strategies: AI-backed generation and a deterministic fallback.

The AI strategy is always attempted first. Whenever it cannot produce a valid
payload the fallback generator is used instead, so callers never see a
recommendation failure.
"""

import logging
import re
from typing import Any, Dict, List, Optional

from gbp_scan.core import db
from gbp_scan.core.config import Settings, get_settings
from gbp_scan.core.errors import RecommendationGenerationFailure
from gbp_scan.core.models import (
    RecommendationParseError,
    Recommendation,
    RecommendationPayload,
    ScoreSet,
)
from gbp_scan.vendors import openai_chat
from gbp_scan.vendors.openai_chat import OpenAIError

logger = logging.getLogger(__name__)

MAX_QUICK_WINS = 3
MAX_RECOMMENDATIONS = 4

REVIEWS_THRESHOLD = 70
PHOTOS_THRESHOLD = 70
COMPLETENESS_THRESHOLD = 80

_REVIEWS_RULE = (
    "Ask satisfied customers to leave Google reviews",
    Recommendation(
        category="Review Management",
        action="Implement a systematic approach to request reviews from happy customers",
        impact="More reviews improve local search rankings and customer trust",
        timeframe="2-4 weeks",
        difficulty="medium",
    ),
)
_PHOTOS_RULE = (
    "Add high-quality photos of your work and business",
    Recommendation(
        category="Visual Content",
        action="Upload 10-15 high-quality photos showcasing your work, team, and business location",
        impact="Photos can increase customer engagement by 42% and build trust with potential clients",
        timeframe="1-2 days",
        difficulty="easy",
    ),
)
_COMPLETENESS_RULE = (
    "Complete all missing profile information",
    Recommendation(
        category="Profile Optimization",
        action="Fill in missing business hours, contact details, services, and description",
        impact="Complete profiles get 2x more customer actions than incomplete ones",
        timeframe="1 week",
        difficulty="easy",
    ),
)
_GENERAL_RULE = (
    "Optimize your Google Business Profile for better visibility",
    Recommendation(
        category="General Optimization",
        action="Regularly update your business information and engage with customer reviews",
        impact="Active profiles perform better in local search results",
        timeframe="Ongoing",
        difficulty="easy",
    ),
)

SYSTEM_PROMPT = (
    "You are a Google Business Profile optimization expert helping UK tradespeople and service "
    "businesses improve their online presence. Focus on profile completeness, optimization "
    "opportunities, and actionable improvements. Always respond with valid JSON only."
)

_FENCE_RE = re.compile(r"```(?:json)?\n?")


def priority_for(overall: int) -> str:
    if overall < 50:
        return "critical"
    if overall < 70:
        return "high"
    return "medium"


def fallback_recommendations(scores: ScoreSet) -> RecommendationPayload:
    """Rule-based recommendations for each sub-score below its threshold."""
    rules = []
    if scores.reviews < REVIEWS_THRESHOLD:
        rules.append(_REVIEWS_RULE)
    if scores.photos < PHOTOS_THRESHOLD:
        rules.append(_PHOTOS_RULE)
    if scores.completeness < COMPLETENESS_THRESHOLD:
        rules.append(_COMPLETENESS_RULE)
    if not rules:
        rules.append(_GENERAL_RULE)

    quick_wins = [quick_win for quick_win, _ in rules]
    recommendations = [recommendation for _, recommendation in rules]
    return RecommendationPayload(
        priority=priority_for(scores.overall),
        recommendations=recommendations[:MAX_RECOMMENDATIONS],
        quick_wins=quick_wins[:MAX_QUICK_WINS],
        revenue_impact="Implementing these improvements could increase your online leads by 25-40% within 3 months",
        profile_gaps=(
            f"Your Google Business Profile needs attention in {len(rules)} key areas "
            "to improve local search visibility"
        ),
        source="fallback",
    )


def build_prompt(
    business_name: str,
    business_location: str,
    scores: ScoreSet,
    place_summary: Dict[str, Any],
) -> str:
    return f"""As a Google Business Profile optimization expert, analyze this UK business profile and provide specific actionable recommendations:

Business: {business_name}
Location: {business_location}

Current Profile Performance:
- Overall Score: {scores.overall}/100
- Reviews Score: {scores.reviews}/100
- Completeness Score: {scores.completeness}/100
- Photos Score: {scores.photos}/100
- Engagement Score: {scores.engagement}/100

Business Profile Details:
- Rating: {place_summary.get("rating")}/5 ({place_summary.get("reviewCount")} reviews)
- Has Photos: {place_summary.get("hasPhotos")}
- Has Website: {place_summary.get("hasWebsite")}
- Has Phone: {place_summary.get("hasPhone")}

Provide recommendations in this exact JSON format:
{{
  "priority": "critical|high|medium",
  "quickWins": ["action 1", "action 2", "action 3"],
  "recommendations": [
    {{
      "category": "Profile Optimization",
      "action": "specific action to take",
      "impact": "expected result and benefit",
      "timeframe": "1-2 weeks",
      "difficulty": "easy|medium|hard"
    }}
  ],
  "profileGaps": "explanation of what's missing from their Google Business Profile",
  "revenueImpact": "estimated business impact and revenue potential",
  "competitiveRisk": "what local competitors gain if nothing changes"
}}

Focus on the lowest scoring areas first. Provide 4-6 specific, actionable recommendations."""


def parse_ai_content(content: str) -> RecommendationPayload:
    cleaned = _FENCE_RE.sub("", content).strip()
    payload = RecommendationPayload.from_json(cleaned, source="ai")
    payload.quick_wins = payload.quick_wins[:MAX_QUICK_WINS]
    return payload


def generate_ai_recommendations(
    business_name: str,
    business_location: str,
    scores: ScoreSet,
    place_summary: Dict[str, Any],
    settings: Optional[Settings] = None,
) -> RecommendationPayload:
    settings = settings or get_settings()
    if not settings.openai_api_key:
        raise RecommendationGenerationFailure("OpenAI API key not configured")

    messages: List[Dict[str, str]] = [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": build_prompt(business_name, business_location, scores, place_summary)},
    ]
    try:
        response = openai_chat.chat_completion(
            messages,
            api_key=settings.openai_api_key,
            model=settings.openai_model,
        )
        return parse_ai_content(openai_chat.extract_content(response))
    except (OpenAIError, RecommendationParseError) as exc:
        raise RecommendationGenerationFailure(str(exc)) from exc


def generate_recommendations(
    scan_id: str,
    business_name: str,
    business_location: str,
    scores: ScoreSet,
    place_summary: Dict[str, Any],
    settings: Optional[Settings] = None,
) -> Optional[RecommendationPayload]:
    """Produce and persist recommendations for a pending scan.

    Returns the payload that was written, or None when the scan was already
    completed by another writer.
    """
    existing = db.get_scan(scan_id)
    if existing is None:
        logger.warning("Scan %s not found; skipping recommendation generation", scan_id)
        return None
    if existing.status != "pending":
        logger.info("Scan %s already %s; skipping recommendation generation", scan_id, existing.status)
        return None

    logger.info("Generating AI recommendations for scan: %s", scan_id)
    try:
        payload = generate_ai_recommendations(business_name, business_location, scores, place_summary, settings)
    except RecommendationGenerationFailure as exc:
        logger.warning("AI recommendations unavailable for scan %s, using fallback: %s", scan_id, exc)
        payload = fallback_recommendations(scores)

    if not db.save_recommendations(scan_id, payload):
        return None
    return payload

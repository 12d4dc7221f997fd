"""Deterministic health scoring for a Google Business Profile listing.

Four sub-scores in [0, 100] are combined into an overall score:

    overall = min(100, 0.30*reviews + 0.25*engagement + 0.15*photos + 0.15*completeness + 15)

The weights sum to 0.85 and the flat 15 point base makes up the rest. Rounding is
half-up so results match the scores shown to users by earlier versions of the scan.
"""

import math
from typing import Dict, List

from gbp_scan.core.models import PlaceRecord, ScoreSet

REVIEW_VOLUME_TARGET = 50
PHOTO_TARGET = 15
PHOTO_BONUS_THRESHOLD = 10
PHOTO_BONUS = 10
BASE_SCORE = 15

WEIGHTS = {
    "reviews": 0.30,
    "engagement": 0.25,
    "photos": 0.15,
    "completeness": 0.15,
}


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def reviews_score(rating, review_count: int) -> int:
    if not rating or not review_count:
        return 0
    rating_score = rating / 5 * 100
    volume_score = min(review_count / REVIEW_VOLUME_TARGET * 100, 100)
    return min(_round_half_up(rating_score * 0.7 + volume_score * 0.3), 100)


def engagement_score(place: PlaceRecord) -> int:
    score = 0
    if place.review_count > 0:
        score += 40
    if place.phone or place.website:
        score += 30
    if place.opening_hours:
        score += 30
    return score


def photos_score(photo_count: int) -> int:
    score = _round_half_up(min(photo_count / PHOTO_TARGET * 100, 100))
    if photo_count >= PHOTO_BONUS_THRESHOLD:
        score = min(score + PHOTO_BONUS, 100)
    return score


def completeness_score(place: PlaceRecord) -> int:
    fields = [
        place.name,
        place.address,
        place.phone,
        place.website,
        place.opening_hours,
        place.photo_count > 0,
    ]
    completed = sum(1 for value in fields if value)
    return _round_half_up(completed / len(fields) * 100)


def overall_score(reviews: int, engagement: int, photos: int, completeness: int) -> int:
    weighted = (
        reviews * WEIGHTS["reviews"]
        + engagement * WEIGHTS["engagement"]
        + photos * WEIGHTS["photos"]
        + completeness * WEIGHTS["completeness"]
        + BASE_SCORE
    )
    return _round_half_up(min(100, weighted))


def score_place(place: PlaceRecord) -> ScoreSet:
    reviews = reviews_score(place.rating, place.review_count)
    engagement = engagement_score(place)
    photos = photos_score(place.photo_count)
    completeness = completeness_score(place)
    return ScoreSet(
        overall=overall_score(reviews, engagement, photos, completeness),
        reviews=reviews,
        engagement=engagement,
        photos=photos,
        completeness=completeness,
    )


def generate_analysis(scores: ScoreSet) -> Dict[str, List[str]]:
    """Plain-language issues and strengths stored alongside the scan."""
    issues: List[str] = []
    strengths: List[str] = []

    if scores.reviews < 70:
        issues.append("Low review volume or rating affecting customer trust")
    else:
        strengths.append("Strong review performance building customer confidence")

    if scores.engagement < 60:
        issues.append("Limited customer engagement and interaction")
    else:
        strengths.append("Good customer engagement levels")

    if scores.photos < 50:
        issues.append("Insufficient visual content to attract customers")
    else:
        strengths.append("Good visual representation of your business")

    if scores.completeness < 80:
        issues.append("Incomplete business profile missing key information")
    else:
        strengths.append("Well-completed business profile")

    return {"issues": issues, "strengths": strengths}

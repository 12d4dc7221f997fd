"""Core data models shared by the scan pipeline."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Union

PRIORITIES = ("critical", "high", "medium")


class RecommendationParseError(ValueError):
    """Raised when a stored or generated recommendation blob has the wrong shape."""


@dataclass(slots=True)
class PlaceRecord:
    """Resolved Google Business Profile listing used as scoring input."""

    place_id: str
    name: str
    rating: Optional[float] = None
    review_count: int = 0
    address: Optional[str] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    opening_hours: Optional[Dict[str, Any]] = None
    photos: List[Dict[str, Any]] = field(default_factory=list)
    types: List[str] = field(default_factory=list)
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    raw: Optional[Dict[str, Any]] = field(default=None, repr=False)

    @property
    def photo_count(self) -> int:
        return len(self.photos)

    def summary(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "rating": self.rating,
            "reviewCount": self.review_count,
            "address": self.address,
            "hasPhotos": self.photo_count > 0,
            "hasWebsite": bool(self.website),
            "hasPhone": bool(self.phone),
            "hasHours": bool(self.opening_hours),
        }


@dataclass(frozen=True)
class ScoreSet:
    overall: int
    reviews: int
    engagement: int
    photos: int
    completeness: int

    def to_dict(self) -> Dict[str, int]:
        return {
            "overall": self.overall,
            "reviews": self.reviews,
            "engagement": self.engagement,
            "photos": self.photos,
            "completeness": self.completeness,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ScoreSet":
        return cls(
            overall=int(data["overall"]),
            reviews=int(data["reviews"]),
            engagement=int(data["engagement"]),
            photos=int(data["photos"]),
            completeness=int(data["completeness"]),
        )


@dataclass(frozen=True)
class Recommendation:
    category: str
    action: str
    impact: str
    timeframe: str
    difficulty: str

    def to_dict(self) -> Dict[str, str]:
        return {
            "category": self.category,
            "action": self.action,
            "impact": self.impact,
            "timeframe": self.timeframe,
            "difficulty": self.difficulty,
        }


@dataclass
class RecommendationPayload:
    priority: str
    recommendations: List[Recommendation]
    quick_wins: List[str]
    revenue_impact: str
    profile_gaps: Optional[str] = None
    competitive_risk: Optional[str] = None
    source: str = "fallback"

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "priority": self.priority,
            "recommendations": [item.to_dict() for item in self.recommendations],
            "quickWins": list(self.quick_wins),
            "revenueImpact": self.revenue_impact,
            "source": self.source,
        }
        if self.profile_gaps is not None:
            data["profileGaps"] = self.profile_gaps
        if self.competitive_risk is not None:
            data["competitiveRisk"] = self.competitive_risk
        return data

    @classmethod
    def from_json(cls, raw: Union[str, bytes, Mapping[str, Any]], *, source: Optional[str] = None) -> "RecommendationPayload":
        """Parse a recommendation blob (JSON text or decoded object) or raise RecommendationParseError."""
        if isinstance(raw, (str, bytes)):
            try:
                raw = json.loads(raw)
            except ValueError as exc:
                raise RecommendationParseError(f"recommendations are not valid JSON: {exc}") from exc
        if not isinstance(raw, Mapping):
            raise RecommendationParseError("recommendations must be a JSON object")

        priority = raw.get("priority")
        if priority not in PRIORITIES:
            raise RecommendationParseError(f"invalid priority: {priority!r}")

        quick_wins = raw.get("quickWins")
        items = raw.get("recommendations")
        revenue_impact = raw.get("revenueImpact")
        if not isinstance(quick_wins, list) or not all(isinstance(item, str) for item in quick_wins):
            raise RecommendationParseError("quickWins must be a list of strings")
        if not isinstance(items, list):
            raise RecommendationParseError("recommendations must be a list")
        if not isinstance(revenue_impact, str) or not revenue_impact:
            raise RecommendationParseError("revenueImpact is required")

        recommendations = []
        for item in items:
            if not isinstance(item, Mapping):
                raise RecommendationParseError("each recommendation must be an object")
            try:
                recommendations.append(
                    Recommendation(
                        category=str(item["category"]),
                        action=str(item["action"]),
                        impact=str(item["impact"]),
                        timeframe=str(item["timeframe"]),
                        difficulty=str(item["difficulty"]),
                    )
                )
            except KeyError as exc:
                raise RecommendationParseError(f"recommendation missing field {exc.args[0]}") from exc

        return cls(
            priority=priority,
            recommendations=recommendations,
            quick_wins=quick_wins,
            revenue_impact=revenue_impact,
            profile_gaps=raw.get("profileGaps") or None,
            competitive_risk=raw.get("competitiveRisk") or None,
            source=source or raw.get("source") or "ai",
        )


@dataclass
class ScanRecord:
    """Persisted aggregate for one business-profile health scan."""

    id: str
    business_name: str
    business_location: str
    place_id: Optional[str]
    scores: Optional[ScoreSet]
    status: str = "pending"
    recommendations: Optional[RecommendationPayload] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    postcode: Optional[str] = None
    created_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "businessName": self.business_name,
            "businessLocation": self.business_location,
            "placeId": self.place_id,
            "scores": self.scores.to_dict() if self.scores else None,
            "status": self.status,
            "recommendations": self.recommendations.to_dict() if self.recommendations else None,
            "hasContact": bool(self.email),
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }


@dataclass
class ScanResult:
    """Synchronous outcome of a scan: identifiers plus scores and a place summary."""

    scan_id: str
    scores: ScoreSet
    place_summary: Dict[str, Any]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": True,
            "scanId": self.scan_id,
            "scores": self.scores.to_dict(),
            "placeSummary": self.place_summary,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ScanResult":
        return cls(
            scan_id=str(data["scanId"]),
            scores=ScoreSet.from_dict(data["scores"]),
            place_summary=dict(data.get("placeSummary") or {}),
        )

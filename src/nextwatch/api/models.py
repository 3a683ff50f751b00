"""
API Models

Pydantic request/response models for the recommendation, seeding and metrics
endpoints.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..recommend.retrieval import ScoredCandidate
from ..recommend.service import RecommendationResult


# ---------------------------------------------------------------------
# Recommendations
# ---------------------------------------------------------------------

class RecommendationRequest(BaseModel):
    """
    Request body for POST /recommendations.
    """
    selected_items: List[str] = Field(..., min_length=1, max_length=20)
    max_recommendations: int = Field(default=5, ge=1, le=20)

    model_config = ConfigDict(extra="forbid")


class RecommendedItem(BaseModel):
    title: str = Field(..., min_length=1)
    overview: Optional[str] = None
    genres: str = ""
    rating: Optional[float] = None
    poster_url: Optional[str] = None
    trailer_url: Optional[str] = None
    why_recommended: str = ""
    quality_score: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    quality_tier: Optional[str] = None

    @classmethod
    def from_candidate(cls, candidate: ScoredCandidate, image_base_url: str) -> "RecommendedItem":
        record = candidate.record
        return cls(
            title=record.title,
            overview=record.overview,
            genres=record.genres_text,
            rating=record.rating,
            poster_url=record.poster_url(image_base_url),
            trailer_url=record.trailer_url,
            why_recommended=candidate.explanation or "",
            quality_score=candidate.quality_score,
            quality_tier=candidate.quality_tier,
        )


class RecommendationResponse(BaseModel):
    recommendations: List[RecommendedItem] = Field(default_factory=list)
    reasoning: str = ""
    processing_time_ms: int = Field(default=0, ge=0)

    @classmethod
    def from_result(cls, result: RecommendationResult, image_base_url: str) -> "RecommendationResponse":
        return cls(
            recommendations=[
                RecommendedItem.from_candidate(candidate, image_base_url)
                for candidate in result.recommendations
            ],
            reasoning=result.reasoning,
            processing_time_ms=result.processing_time_ms,
        )


# ---------------------------------------------------------------------
# Seeding
# ---------------------------------------------------------------------

class SeedingResponse(BaseModel):
    """
    Response for POST /seeder/seed.
    """
    status: str
    message: str


class SeedingStatusResponse(BaseModel):
    state: str
    last_run: Optional[Dict[str, Any]] = None

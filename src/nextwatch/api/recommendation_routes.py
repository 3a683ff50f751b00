"""
Recommendation Routes

Thin HTTP wrapper around `RecommendationService`. Unresolvable reference
titles surface as 404 through the global exception handlers.
"""

from fastapi import APIRouter, Depends

from .dependencies import get_recommendation_service
from .models import RecommendationRequest, RecommendationResponse
from ..config import settings
from ..recommend.service import RecommendationService

router = APIRouter(prefix="/recommendations", tags=["recommendations"])


@router.post("", response_model=RecommendationResponse)
async def recommend(
    req: RecommendationRequest,
    service: RecommendationService = Depends(get_recommendation_service),
) -> RecommendationResponse:
    result = await service.recommend(req.selected_items, req.max_recommendations)
    return RecommendationResponse.from_result(result, settings.tmdb_image_base_url)


@router.get("/health")
def health():
    return {"status": "UP", "service": "recommendations"}

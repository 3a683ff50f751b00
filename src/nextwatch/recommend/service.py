"""
Recommendation Service

Request-level flow:

1. Resolve the user's titles into a reference set.
2. Retrieve diverse candidates (oversampled by 3x the requested count).
3. Explain the top candidates.
4. Quality-rank and tier-annotate them.

Empty reference sets and empty candidate pools return an empty result with a
reasoning string. Only reference resolution failures surface as errors.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from ..config import settings
from ..observability import PipelineObserver, notify
from .explanations import ExplanationService
from .quality import QualityRanker
from .references import ReferenceResolver
from .retrieval import CandidateRetriever, ScoredCandidate

logger = logging.getLogger("nextwatch.recommendations")

NO_REFERENCES_REASONING = "No items found for recommendations"
NO_CANDIDATES_REASONING = "No suitable recommendations found"


@dataclass
class RecommendationResult:
    recommendations: List[ScoredCandidate] = field(default_factory=list)
    reasoning: str = ""
    processing_time_ms: int = 0


class RecommendationService:
    def __init__(
        self,
        resolver: ReferenceResolver,
        retriever: CandidateRetriever,
        explainer: ExplanationService,
        ranker: Optional[QualityRanker] = None,
        observer: Optional[PipelineObserver] = None,
    ) -> None:
        self._resolver = resolver
        self._retriever = retriever
        self._explainer = explainer
        self._ranker = ranker or QualityRanker()
        self._observer = observer or PipelineObserver()

    async def recommend(
        self,
        titles: Sequence[str],
        max_recommendations: Optional[int] = None,
    ) -> RecommendationResult:
        """
        Build recommendations for the given reference titles.

        Raises
        ------
        ReferenceNotFoundError
            If a title cannot be resolved at all.
        """
        limit = max_recommendations or settings.max_recommendations
        started = time.perf_counter()
        notify(self._observer.request_started, list(titles))

        try:
            result = await self._recommend(titles, limit, started)
        except Exception as exc:
            logger.error("Recommendation request failed: %s", exc)
            notify(self._observer.request_failed, exc)
            raise

        notify(self._observer.request_succeeded, len(result.recommendations), result.processing_time_ms)
        return result

    async def _recommend(self, titles: Sequence[str], limit: int, started: float) -> RecommendationResult:
        logger.info("Processing recommendation request for %d items", len(titles))

        reference = await self._resolver.resolve_all(titles)
        if not reference:
            logger.warning("No reference items found")
            return RecommendationResult(reasoning=NO_REFERENCES_REASONING, processing_time_ms=_elapsed_ms(started))

        candidates = await self._retriever.retrieve(reference, limit * 3)
        logger.info("Found %d candidates from vector search", len(candidates))
        if not candidates:
            logger.warning("No candidates found from vector search")
            return RecommendationResult(reasoning=NO_CANDIDATES_REASONING, processing_time_ms=_elapsed_ms(started))

        explained = await self._explainer.explain(reference, candidates[:limit])
        ranked = self._ranker.rank(explained, reference)

        reasoning = "Based on your taste in " + ", ".join(record.title for record in reference)
        elapsed = _elapsed_ms(started)
        logger.info("Generated %d recommendations in %dms", len(ranked), elapsed)
        return RecommendationResult(recommendations=ranked, reasoning=reasoning, processing_time_ms=elapsed)


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)

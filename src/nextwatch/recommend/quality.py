"""
Quality Ranking Engine

Final pass over curated candidates. Each candidate gets a composite score:

    0.40 * rating affinity      closeness to the reference set's mean rating
    0.30 * genre novelty        penalizes genres the reference set is full of
    0.20 * popularity balance   franchise titles and blank overviews score lower
    0.10 * explanation quality  longer explanations score higher

and a tier label appended to its explanation.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import replace
from typing import List, Mapping, Sequence, Tuple

from ..catalog.models import CatalogRecord
from .retrieval import ScoredCandidate

logger = logging.getLogger("nextwatch.quality")

RATING_WEIGHT = 0.40
GENRE_WEIGHT = 0.30
POPULARITY_WEIGHT = 0.20
EXPLANATION_WEIGHT = 0.10

DEFAULT_REFERENCE_RATING = 7.0
FRANCHISE_MARKERS = ("avengers", "saga", "trilogy")
MIN_EXPLANATION_LENGTH = 20

TIERS: Tuple[Tuple[float, str], ...] = (
    (0.85, "Excellent Match"),
    (0.70, "Very Good Match"),
    (0.50, "Good Match"),
)
FALLBACK_TIER = "Interesting Discovery"
TIER_LABELS = tuple(label for _, label in TIERS) + (FALLBACK_TIER,)


# ---------------------------------------------------------------------
# Factor scores
# ---------------------------------------------------------------------

def rating_affinity(rating, reference_rating: float) -> float:
    if not rating:
        return 0.7
    return max(0.0, 1.0 - abs(rating - reference_rating) / 10.0)


def genre_novelty(genres: Sequence[str], histogram: Mapping[str, int]) -> float:
    if not genres or not histogram:
        return 0.5
    average = sum(histogram.get(genre, 0) for genre in genres) / len(genres)
    return max(0.0, 1.0 - average / 5.0)


def popularity_balance(record: CatalogRecord) -> float:
    title = record.title.lower()
    if any(marker in title for marker in FRANCHISE_MARKERS):
        return 0.6
    if not record.overview:
        return 0.5
    return 0.8


def explanation_quality(explanation) -> float:
    return 1.0 if explanation and len(explanation) > MIN_EXPLANATION_LENGTH else 0.5


def quality_tier(score: float) -> str:
    for threshold, label in TIERS:
        if score > threshold:
            return label
    return FALLBACK_TIER


def annotate(explanation, tier: str) -> str:
    """Append ``" (tier)"`` unless the text already carries a tier label."""
    text = explanation or ""
    if any(label in text for label in TIER_LABELS):
        return text
    return f"{text} ({tier})" if text else f"({tier})"


# ---------------------------------------------------------------------
# Ranker
# ---------------------------------------------------------------------

class QualityRanker:
    def rank(
        self,
        curated: Sequence[ScoredCandidate],
        reference: Sequence[CatalogRecord],
    ) -> List[ScoredCandidate]:
        """
        Score, sort (stable, descending) and tier-annotate `curated`.

        Returns new candidates; the inputs are not modified.
        """
        if not curated:
            return []

        logger.debug("Ranking %d recommendations for quality", len(curated))

        histogram = Counter(genre for record in reference for genre in record.genres)
        reference_rating = (
            sum(record.rating or 0.0 for record in reference) / len(reference)
            if reference
            else DEFAULT_REFERENCE_RATING
        )

        scored = [
            (self.score(candidate, histogram, reference_rating), candidate)
            for candidate in curated
        ]
        scored.sort(key=lambda pair: pair[0], reverse=True)

        ranked = []
        for score, candidate in scored:
            tier = quality_tier(score)
            ranked.append(
                replace(
                    candidate,
                    quality_score=score,
                    quality_tier=tier,
                    explanation=annotate(candidate.explanation, tier),
                )
            )
        return ranked

    @staticmethod
    def score(
        candidate: ScoredCandidate,
        histogram: Mapping[str, int],
        reference_rating: float,
    ) -> float:
        record = candidate.record
        return (
            RATING_WEIGHT * rating_affinity(record.rating, reference_rating)
            + GENRE_WEIGHT * genre_novelty(record.genres, histogram)
            + POPULARITY_WEIGHT * popularity_balance(record)
            + EXPLANATION_WEIGHT * explanation_quality(candidate.explanation)
        )

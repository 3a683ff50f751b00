"""
Candidate Retrieval Engine

Turns an ordered reference set into a single weighted query, pulls an
oversampled neighbour set from the vector store and narrows it with Maximal
Marginal Relevance so the final list is not one genre cluster.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import AbstractSet, List, Optional, Protocol, Sequence

from ..catalog.models import CatalogRecord
from ..config import settings
from ..db.vector_store import VectorHit
from ..observability import PipelineObserver, notify

logger = logging.getLogger("nextwatch.retrieval")

MMR_RELEVANCE_WEIGHT = 0.7
OVERSAMPLING_FACTOR = 3
RANK_SCORE_STEP = 0.01


class QueryEmbedder(Protocol):
    async def embed_one(self, text: str) -> List[float]: ...


class VectorSearch(Protocol):
    async def search(self, query_embedding: List[float], k: int = 10) -> List[VectorHit]: ...


class RecordLookup(Protocol):
    async def get_by_id(self, item_id: int) -> Optional[CatalogRecord]: ...


@dataclass(frozen=True)
class ScoredCandidate:
    """
    A retrieved record with its similarity to the query, plus the
    explanation and quality annotations added later in the request.
    """
    record: CatalogRecord
    similarity: float
    explanation: Optional[str] = None
    quality_score: Optional[float] = None
    quality_tier: Optional[str] = None

    @property
    def title(self) -> str:
        return self.record.title


# ---------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------

def build_query_text(reference: Sequence[CatalogRecord]) -> str:
    """
    Concatenate each reference item's descriptive text, repeated by weight.

    The first of N items has weight N, the next N - 1, and so on down to 1,
    which biases the query toward earlier preferences.
    """
    total = len(reference)
    parts: List[str] = []
    for position, record in enumerate(reference):
        weight = max(1, total - position)
        parts.extend([record.descriptive_text()] * weight)
    return " ".join(parts)


def jaccard(a: AbstractSet[str], b: AbstractSet[str]) -> float:
    """Genre-overlap similarity; 0.0 when either side has no genres."""
    if not a or not b:
        return 0.0
    return len(a & b) / len(a | b)


def rank_similarity(position: int) -> float:
    """Similarity approximated from retrieval rank: 1.0, 0.99, 0.98, ..."""
    return max(0.0, 1.0 - position * RANK_SCORE_STEP)


def apply_mmr(
    candidates: Sequence[ScoredCandidate],
    limit: int,
    relevance_weight: float = MMR_RELEVANCE_WEIGHT,
) -> List[ScoredCandidate]:
    """
    Select up to `limit` candidates balancing similarity against diversity.

    Each step picks the unselected candidate maximizing
    ``w * similarity + (1 - w) * (1 - mean Jaccard to the selected set)``.
    Ties keep the earlier-ranked candidate.
    """
    if limit <= 0:
        return []
    if len(candidates) <= limit:
        return list(candidates)

    # sorted() is stable, so equal similarities stay in retrieval order
    remaining = sorted(candidates, key=lambda c: c.similarity, reverse=True)
    selected = [remaining.pop(0)]

    while len(selected) < limit and remaining:
        best_index = 0
        best_score = float("-inf")

        for index, candidate in enumerate(remaining):
            overlap = sum(
                jaccard(candidate.record.genre_set, chosen.record.genre_set)
                for chosen in selected
            ) / len(selected)
            score = relevance_weight * candidate.similarity + (1 - relevance_weight) * (1 - overlap)
            if score > best_score:
                best_index = index
                best_score = score

        selected.append(remaining.pop(best_index))

    return selected


# ---------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------

class CandidateRetriever:
    """
    Read-only against the vector store and catalog; safe to share across
    concurrent requests.
    """

    def __init__(
        self,
        embedder: QueryEmbedder,
        vector_store: VectorSearch,
        catalog: RecordLookup,
        observer: Optional[PipelineObserver] = None,
        sample_size: Optional[int] = None,
        use_store_scores: bool = False,
    ) -> None:
        """
        Parameters
        ----------
        sample_size : Optional[int]
            Cap on how many neighbours are requested from the vector store.

        use_store_scores : bool
            Use the store's cosine similarity instead of the rank-derived
            score in the MMR relevance term.
        """
        self._embedder = embedder
        self._vector_store = vector_store
        self._catalog = catalog
        self._observer = observer or PipelineObserver()
        self._sample_size = sample_size or settings.diversity_sample_size
        self._use_store_scores = use_store_scores

    async def retrieve(
        self,
        reference: Sequence[CatalogRecord],
        limit: int,
    ) -> List[ScoredCandidate]:
        """
        Return at most `limit` diverse candidates similar to `reference`.

        Reference items are never returned, nor is any record twice.
        """
        if not reference:
            logger.warning("No reference items provided, returning empty list")
            return []
        if limit <= 0:
            return []

        logger.info(
            "Finding %d items similar to %d reference items using MMR",
            limit,
            len(reference),
        )

        top_k = min(self._sample_size, limit * OVERSAMPLING_FACTOR)
        query_vector = await self._embedder.embed_one(build_query_text(reference))
        hits = await self._vector_store.search(query_vector, k=top_k)

        candidates = await self._resolve(hits, reference)

        notify(
            self._observer.candidates_retrieved,
            len(candidates),
            [c.similarity for c in candidates],
        )

        selected = apply_mmr(candidates, limit)
        logger.debug(
            "Retrieved %d hits, %d candidates, %d selected",
            len(hits),
            len(candidates),
            len(selected),
        )
        return selected

    async def _resolve(
        self,
        hits: Sequence[VectorHit],
        reference: Sequence[CatalogRecord],
    ) -> List[ScoredCandidate]:
        excluded_ids = {record.id for record in reference}
        excluded_external = {record.external_id for record in reference}
        seen = set()
        candidates: List[ScoredCandidate] = []

        for hit in hits:
            if hit.item_id in excluded_ids or hit.item_id in seen:
                continue

            record = await self._catalog.get_by_id(hit.item_id)
            if record is None:
                logger.debug("Vector hit %s has no catalog record, skipping", hit.item_id)
                continue
            if record.external_id in excluded_external:
                continue

            seen.add(record.id)
            similarity = (
                max(0.0, min(1.0, hit.score))
                if self._use_store_scores
                else rank_similarity(len(candidates))
            )
            candidates.append(ScoredCandidate(record=record, similarity=similarity))

        return candidates

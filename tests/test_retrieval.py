"""
Candidate Retrieval Tests

- Weighted query text
- MMR bounds, diversity and tie-breaking
- Oversampling, exclusion and de-duplication against the vector store
"""

import pytest

from nextwatch.recommend.retrieval import (
    CandidateRetriever,
    ScoredCandidate,
    apply_mmr,
    build_query_text,
    jaccard,
    rank_similarity,
)

from conftest import FailingObserver, FakeEmbedder, FakeVectorSearch, make_record


def candidates(*specs):
    """specs: (item_id, genres) pairs in retrieval-rank order."""
    return [
        ScoredCandidate(record=make_record(item_id, genres=genres), similarity=rank_similarity(rank))
        for rank, (item_id, genres) in enumerate(specs)
    ]


class TestQueryText:
    def test_earlier_items_repeated_more(self):
        first = make_record(1, title="Inception", genres="Sci-Fi", overview="Dreams.")
        second = make_record(2, title="Heat", genres="Crime", overview="Heists.")
        third = make_record(3, title="Up", genres="Family", overview="Balloons.")

        text = build_query_text([first, second, third])

        assert text.count("Inception Sci-Fi Dreams.") == 3
        assert text.count("Heat Crime Heists.") == 2
        assert text.count("Up Family Balloons.") == 1

    def test_empty_reference(self):
        assert build_query_text([]) == ""


class TestJaccard:
    def test_overlap(self):
        assert jaccard({"Drama", "Crime"}, {"Drama", "Mystery"}) == pytest.approx(1 / 3)
        assert jaccard({"Drama"}, {"Drama"}) == 1.0

    def test_empty_side_is_zero(self):
        assert jaccard(set(), {"Drama"}) == 0.0
        assert jaccard(frozenset(), frozenset()) == 0.0


class TestMMR:
    def test_returns_all_when_pool_fits(self):
        pool = candidates((1, "Drama"), (2, "Drama"))
        assert apply_mmr(pool, 5) == pool

    def test_zero_limit(self):
        assert apply_mmr(candidates((1, "Drama")), 0) == []

    def test_disjoint_genre_item_selected(self):
        same = [(i, "Action, Thriller") for i in range(1, 7)]
        pool = candidates(*same, (99, "Animation, Family"))

        selected = apply_mmr(pool, 3)

        ids = [c.record.id for c in selected]
        assert len(ids) == 3
        assert ids[0] == 1
        assert 99 in ids

    def test_tie_keeps_earlier_candidate(self):
        pool = [
            ScoredCandidate(record=make_record(1, genres="Drama"), similarity=0.9),
            ScoredCandidate(record=make_record(2, genres="Comedy"), similarity=0.8),
            ScoredCandidate(record=make_record(3, genres="Horror"), similarity=0.8),
        ]
        selected = apply_mmr(pool, 2)
        assert [c.record.id for c in selected] == [1, 2]

    @pytest.mark.parametrize("limit", [1, 2, 4, 7])
    def test_never_exceeds_limit_or_duplicates(self, limit):
        pool = candidates(*[(i, "Drama" if i % 2 else "Comedy, Drama") for i in range(1, 11)])
        selected = apply_mmr(pool, limit)
        ids = [c.record.id for c in selected]
        assert len(ids) == limit
        assert len(set(ids)) == len(ids)


class TestCandidateRetriever:
    @pytest.fixture
    def populated(self, catalog):
        for item_id in range(1, 21):
            catalog.add(make_record(item_id, genres="Drama" if item_id % 3 else "Comedy"))
        return catalog

    @pytest.mark.asyncio
    async def test_oversamples_and_caps_sample(self, populated):
        search = FakeVectorSearch(range(1, 21))
        retriever = CandidateRetriever(FakeEmbedder(), search, populated, sample_size=50)

        await retriever.retrieve([populated.rows[1]], limit=4)
        await retriever.retrieve([populated.rows[1]], limit=30)

        assert search.requested_k == [12, 50]

    @pytest.mark.asyncio
    async def test_excludes_reference_and_duplicates(self, populated, observer):
        search = FakeVectorSearch([1, 2, 2, 3, 404, 4, 5, 6])
        retriever = CandidateRetriever(FakeEmbedder(), search, populated, observer=observer)
        reference = [populated.rows[1], populated.rows[3]]

        selected = await retriever.retrieve(reference, limit=10)

        ids = [c.record.id for c in selected]
        assert ids == [2, 4, 5, 6]
        assert [c.similarity for c in selected] == pytest.approx([1.0, 0.99, 0.98, 0.97])
        (count, scores), = observer.events["candidates_retrieved"]
        assert count == 4
        assert scores == pytest.approx([1.0, 0.99, 0.98, 0.97])

    @pytest.mark.asyncio
    async def test_failing_observer_does_not_fail_retrieval(self, populated, caplog):
        search = FakeVectorSearch([2, 3, 4])
        retriever = CandidateRetriever(FakeEmbedder(), search, populated, observer=FailingObserver())

        selected = await retriever.retrieve([populated.rows[1]], limit=5)

        assert [c.record.id for c in selected] == [2, 3, 4]
        assert "collector down" in caplog.text

    @pytest.mark.asyncio
    async def test_result_bounded_by_limit(self, populated):
        retriever = CandidateRetriever(FakeEmbedder(), FakeVectorSearch(range(1, 21)), populated)
        reference = [populated.rows[5]]

        selected = await retriever.retrieve(reference, limit=3)

        ids = [c.record.id for c in selected]
        assert len(ids) == 3
        assert 5 not in ids
        assert len(set(ids)) == 3

    @pytest.mark.asyncio
    async def test_empty_reference_skips_search(self, populated):
        embedder = FakeEmbedder()
        search = FakeVectorSearch(range(1, 21))
        retriever = CandidateRetriever(embedder, search, populated)

        assert await retriever.retrieve([], limit=5) == []
        assert embedder.texts == []
        assert search.requested_k == []

    @pytest.mark.asyncio
    async def test_store_scores_when_enabled(self, populated):
        retriever = CandidateRetriever(
            FakeEmbedder(),
            FakeVectorSearch([2, 4]),
            populated,
            use_store_scores=True,
        )
        selected = await retriever.retrieve([populated.rows[1]], limit=5)
        assert [c.similarity for c in selected] == pytest.approx([1.0, 0.95])

    @pytest.mark.asyncio
    async def test_query_uses_weighted_text(self, populated):
        embedder = FakeEmbedder()
        retriever = CandidateRetriever(embedder, FakeVectorSearch([]), populated)

        assert await retriever.retrieve([populated.rows[1], populated.rows[2]], limit=5) == []
        assert embedder.texts == [build_query_text([populated.rows[1], populated.rows[2]])]

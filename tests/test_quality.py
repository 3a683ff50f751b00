import pytest

from nextwatch.recommend.quality import (
    QualityRanker,
    annotate,
    explanation_quality,
    genre_novelty,
    popularity_balance,
    quality_tier,
    rating_affinity,
)
from nextwatch.recommend.retrieval import ScoredCandidate

from conftest import make_record


def candidate(item_id, explanation="This one fits your taste very well.", **record_fields):
    return ScoredCandidate(
        record=make_record(item_id, **record_fields),
        similarity=1.0,
        explanation=explanation,
    )


class TestFactors:
    def test_rating_affinity(self):
        assert rating_affinity(8.0, 8.0) == 1.0
        assert rating_affinity(6.0, 8.0) == pytest.approx(0.8)
        assert rating_affinity(None, 8.0) == 0.7
        assert rating_affinity(0.0, 8.0) == 0.7

    def test_genre_novelty(self):
        histogram = {"Drama": 2, "Thriller": 1}
        assert genre_novelty(("Drama",), histogram) == pytest.approx(0.6)
        assert genre_novelty(("Comedy",), histogram) == 1.0
        assert genre_novelty((), histogram) == 0.5
        assert genre_novelty(("Drama",), {}) == 0.5

    def test_popularity_balance(self):
        assert popularity_balance(make_record(1, title="Star Wars Saga")) == 0.6
        assert popularity_balance(make_record(1, title="Avengers: Endgame")) == 0.6
        assert popularity_balance(make_record(1, title="Primer", overview=None)) == 0.5
        assert popularity_balance(make_record(1, title="Primer")) == 0.8

    def test_explanation_quality(self):
        assert explanation_quality("x" * 21) == 1.0
        assert explanation_quality("x" * 20) == 0.5
        assert explanation_quality(None) == 0.5


class TestTiers:
    @pytest.mark.parametrize(
        "score, tier",
        [
            (0.90, "Excellent Match"),
            (0.85, "Very Good Match"),
            (0.71, "Very Good Match"),
            (0.70, "Good Match"),
            (0.51, "Good Match"),
            (0.50, "Interesting Discovery"),
            (0.10, "Interesting Discovery"),
        ],
    )
    def test_thresholds_are_strict(self, score, tier):
        assert quality_tier(score) == tier

    def test_annotate_is_idempotent(self):
        once = annotate("Great pick", "Good Match")
        assert once == "Great pick (Good Match)"
        assert annotate(once, "Good Match") == once

        discovery = annotate("Offbeat pick", "Interesting Discovery")
        assert annotate(discovery, "Interesting Discovery") == discovery

    def test_annotate_empty_explanation(self):
        assert annotate(None, "Good Match") == "(Good Match)"


class TestRanker:
    def test_sorted_descending_and_annotated(self):
        reference = [
            make_record(100, title="Inception", genres="Sci-Fi, Thriller", rating=8.8),
            make_record(101, title="The Prestige", genres="Drama, Mystery", rating=8.5),
        ]
        curated = [
            candidate(1, title="Star Wars Saga", genres="Sci-Fi", rating=5.0, explanation="ok"),
            candidate(2, title="Memento", genres="Mystery, Thriller", rating=8.4),
            candidate(3, title="Amélie", genres="Comedy, Romance", rating=8.3),
        ]

        ranked = QualityRanker().rank(curated, reference)

        scores = [c.quality_score for c in ranked]
        assert scores == sorted(scores, reverse=True)
        assert [c.title for c in ranked][0] == "Amélie"
        assert ranked[-1].title == "Star Wars Saga"
        for result in ranked:
            assert result.quality_tier in result.explanation

    def test_ties_keep_input_order(self):
        curated = [candidate(i) for i in range(1, 5)]
        ranked = QualityRanker().rank(curated, [make_record(100, genres="Horror")])
        assert [c.record.id for c in ranked] == [1, 2, 3, 4]

    def test_reranking_does_not_duplicate_tier(self):
        ranker = QualityRanker()
        reference = [make_record(100)]
        once = ranker.rank([candidate(1)], reference)
        twice = ranker.rank(once, reference)
        assert twice[0].explanation == once[0].explanation

    def test_inputs_untouched_and_empty(self):
        original = candidate(1)
        QualityRanker().rank([original], [])
        assert original.quality_score is None
        assert original.explanation == "This one fits your taste very well."
        assert QualityRanker().rank([], []) == []

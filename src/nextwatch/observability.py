"""
Observability

The core reports what it does through a `PipelineObserver`. Every hook is
fire-and-forget: no return value is consumed and the default implementation
does nothing, so components can run without any collector attached.

`PrometheusObserver` records the same events with prometheus_client on its
own registry, which the API exposes at /metrics.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional, Sequence, TYPE_CHECKING

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram

if TYPE_CHECKING:
    from .seeding.stats import SeedingStats

logger = logging.getLogger("nextwatch.observability")


def notify(hook: Callable[..., None], *args: Any) -> None:
    """
    Call an observer hook, logging and discarding anything it raises.

    A broken collector must never fail the request or task that reports to it.
    """
    try:
        hook(*args)
    except Exception:
        logger.exception("Observer hook %s failed", getattr(hook, "__name__", hook))


class PipelineObserver:
    """No-op observer. Subclass and override the hooks you care about."""

    # Ingestion ---------------------------------------------------------

    def ingestion_finished(self, stats: "SeedingStats") -> None:
        pass

    def item_embedded(self, title: str, latency_ms: float, success: bool, attempts: int) -> None:
        pass

    # Retrieval ---------------------------------------------------------

    def candidates_retrieved(self, count: int, similarity_scores: Sequence[float]) -> None:
        pass

    def explanation_generated(self, latency_ms: float, prompt_chars: int, response_chars: int) -> None:
        pass

    def explanation_failed(self, error: Exception) -> None:
        pass

    # Requests ----------------------------------------------------------

    def request_started(self, titles: Sequence[str]) -> None:
        pass

    def request_succeeded(self, returned: int, latency_ms: float) -> None:
        pass

    def request_failed(self, error: Exception) -> None:
        pass


class PrometheusObserver(PipelineObserver):
    """
    Observer backed by prometheus_client metrics.

    Parameters
    ----------
    registry : Optional[CollectorRegistry]
        Registry to register metrics on. A private registry is created when
        omitted so that several instances can coexist (tests, workers).
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None) -> None:
        self.registry = registry or CollectorRegistry()

        self.seed_runs = Counter(
            "nextwatch_seed_runs_total", "Completed seeding runs",
            registry=self.registry,
        )
        self.seed_items = Counter(
            "nextwatch_seed_items_total", "Items processed by seeding, by outcome",
            ["outcome"], registry=self.registry,
        )
        self.seed_duration = Histogram(
            "nextwatch_seed_duration_seconds", "Seeding run duration",
            buckets=(30, 60, 120, 300, 600, 1200, 1800, 3600),
            registry=self.registry,
        )
        self.embeddings = Counter(
            "nextwatch_embeddings_total", "Item embeddings, by outcome",
            ["outcome"], registry=self.registry,
        )
        self.embedding_latency = Histogram(
            "nextwatch_embedding_latency_seconds", "Per-item embedding latency including retries",
            registry=self.registry,
        )
        self.candidate_count = Histogram(
            "nextwatch_vector_candidates", "Candidates returned by vector retrieval",
            buckets=(0, 1, 5, 10, 15, 25, 50),
            registry=self.registry,
        )
        self.similarity_score = Histogram(
            "nextwatch_vector_similarity_score", "Similarity scores of retrieved candidates",
            buckets=(0.1, 0.2, 0.3, 0.4, 0.5, 0.6, 0.7, 0.8, 0.9, 1.0),
            registry=self.registry,
        )
        self.vector_search_empty = Counter(
            "nextwatch_vector_empty_results_total", "Retrievals that produced no candidates",
            registry=self.registry,
        )
        self.llm_latency = Histogram(
            "nextwatch_llm_generation_latency_seconds", "Explanation generation latency",
            registry=self.registry,
        )
        self.llm_errors = Counter(
            "nextwatch_llm_errors_total", "Explanation failures that fell back to generic text",
            registry=self.registry,
        )
        self.requests = Counter(
            "nextwatch_recommendation_requests_total", "Recommendation requests, by outcome",
            ["outcome"], registry=self.registry,
        )
        self.request_latency = Histogram(
            "nextwatch_recommendation_latency_seconds", "Recommendation request latency",
            registry=self.registry,
        )
        self.active_requests = Gauge(
            "nextwatch_recommendation_active_requests", "In-flight recommendation requests",
            registry=self.registry,
        )

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------

    def ingestion_finished(self, stats: "SeedingStats") -> None:
        self.seed_runs.inc()
        self.seed_items.labels(outcome="added").inc(stats.added)
        self.seed_items.labels(outcome="skipped").inc(stats.skipped)
        self.seed_duration.observe(stats.duration_seconds)

    def item_embedded(self, title: str, latency_ms: float, success: bool, attempts: int) -> None:
        self.embeddings.labels(outcome="success" if success else "failure").inc()
        self.embedding_latency.observe(latency_ms / 1000.0)

    def candidates_retrieved(self, count: int, similarity_scores: Sequence[float]) -> None:
        self.candidate_count.observe(count)
        if count == 0:
            self.vector_search_empty.inc()
        for score in similarity_scores:
            self.similarity_score.observe(score)

    def explanation_generated(self, latency_ms: float, prompt_chars: int, response_chars: int) -> None:
        self.llm_latency.observe(latency_ms / 1000.0)

    def explanation_failed(self, error: Exception) -> None:
        self.llm_errors.inc()

    def request_started(self, titles: Sequence[str]) -> None:
        self.active_requests.inc()

    def request_succeeded(self, returned: int, latency_ms: float) -> None:
        self.active_requests.dec()
        self.requests.labels(outcome="success").inc()
        self.request_latency.observe(latency_ms / 1000.0)

    def request_failed(self, error: Exception) -> None:
        self.active_requests.dec()
        self.requests.labels(outcome="failure").inc()

    # ------------------------------------------------------------------
    # Snapshot
    # ------------------------------------------------------------------

    def _sample(self, name: str, labels: Optional[Dict[str, str]] = None) -> float:
        return self.registry.get_sample_value(name, labels or {}) or 0.0

    def snapshot(self) -> Dict[str, Any]:
        """
        Summarize request metrics as a plain dict for the JSON metrics route.
        """
        succeeded = self._sample("nextwatch_recommendation_requests_total", {"outcome": "success"})
        failed = self._sample("nextwatch_recommendation_requests_total", {"outcome": "failure"})
        total = succeeded + failed
        latency_count = self._sample("nextwatch_recommendation_latency_seconds_count")
        latency_sum = self._sample("nextwatch_recommendation_latency_seconds_sum")

        return {
            "total_requests": int(total),
            "successful_requests": int(succeeded),
            "failed_requests": int(failed),
            "active_requests": int(self._sample("nextwatch_recommendation_active_requests")),
            "avg_latency_ms": (latency_sum / latency_count * 1000.0) if latency_count else 0.0,
            "llm_errors": int(self._sample("nextwatch_llm_errors_total")),
            "vector_search_empty": int(self._sample("nextwatch_vector_empty_results_total")),
            "embeddings_succeeded": int(self._sample("nextwatch_embeddings_total", {"outcome": "success"})),
            "embeddings_failed": int(self._sample("nextwatch_embeddings_total", {"outcome": "failure"})),
            "success_rate": (succeeded * 100.0 / total) if total else 0.0,
        }

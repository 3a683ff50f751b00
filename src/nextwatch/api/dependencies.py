from functools import lru_cache

from ..catalog.writer import CatalogWriter
from ..db.catalog_repository import CatalogRepository
from ..db.vector_store import VectorStore
from ..embeddings.embedder import Embedder
from ..embeddings.service import ItemEmbeddingService
from ..llm.client import LLMClient
from ..metadata.tmdb_client import TMDbClient
from ..observability import PrometheusObserver
from ..recommend.explanations import ExplanationService
from ..recommend.references import ReferenceResolver
from ..recommend.retrieval import CandidateRetriever
from ..recommend.service import RecommendationService
from ..seeding.orchestrator import SeedingOrchestrator


@lru_cache
def get_observer() -> PrometheusObserver:
    return PrometheusObserver()


@lru_cache
def get_llm_client() -> LLMClient:
    return LLMClient()


@lru_cache
def get_embedder() -> Embedder:
    return Embedder()


@lru_cache
def get_metadata_client() -> TMDbClient:
    return TMDbClient()


@lru_cache
def get_catalog_repository() -> CatalogRepository:
    return CatalogRepository()


@lru_cache
def get_vector_store() -> VectorStore:
    return VectorStore()


@lru_cache
def get_catalog_writer() -> CatalogWriter:
    return CatalogWriter(get_catalog_repository())


@lru_cache
def get_seeding_orchestrator() -> SeedingOrchestrator:
    # Cached so the single-flight state is shared by every request
    return SeedingOrchestrator(
        source=get_metadata_client(),
        writer=get_catalog_writer(),
        embedding_service=ItemEmbeddingService(get_embedder(), get_vector_store()),
        observer=get_observer(),
    )


@lru_cache
def get_recommendation_service() -> RecommendationService:
    observer = get_observer()
    return RecommendationService(
        resolver=ReferenceResolver(
            get_catalog_repository(),
            get_metadata_client(),
            get_catalog_writer(),
        ),
        retriever=CandidateRetriever(
            get_embedder(),
            get_vector_store(),
            get_catalog_repository(),
            observer=observer,
        ),
        explainer=ExplanationService(get_llm_client(), observer=observer),
        observer=observer,
    )

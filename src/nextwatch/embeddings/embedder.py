"""
Embedding Client

Async client for the OpenAI embeddings API (or any compatible provider).
Responsible for:

- Batching text inputs
- Isolating transport errors behind `EmbeddingError`
- Validating response shape and vector dimensionality

Stateless and safe to share across the ingestion pool and request handlers.
"""

from __future__ import annotations

from typing import List, Sequence, Optional
import logging
import httpx

from ..config import settings

logger = logging.getLogger("nextwatch.embedder")


class EmbeddingError(RuntimeError):
    """Raised when embedding generation fails."""


class Embedder:
    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        dimensions: Optional[int] = None,
        base_url: str = "https://api.openai.com/v1/embeddings",
        timeout: float = 60.0,
    ) -> None:
        """
        Parameters
        ----------
        api_key : Optional[str]
            Override for the provider key. Defaults to settings.openai_api_key.

        model : Optional[str]
            Override for the embedding model. Defaults to settings.embedding_model.

        dimensions : Optional[int]
            Expected vector width; must match the pgvector column.

        base_url : str
            Embeddings endpoint.

        timeout : float
            HTTP timeout per request.
        """
        self.api_key = api_key or settings.openai_api_key.get_secret_value()
        self.model = model or settings.embedding_model
        self.dimensions = dimensions or settings.embedding_dimensions
        self.base_url = base_url
        self.timeout = timeout

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def embed_one(self, text: str) -> List[float]:
        """Embed a single text and return its vector."""
        vectors = await self.embed([text])
        if len(vectors) != 1:
            raise EmbeddingError(f"Expected 1 embedding, got {len(vectors)}.")
        return vectors[0]

    async def embed(
        self,
        texts: Sequence[str],
        batch_size: int = 20,
    ) -> List[List[float]]:
        """
        Generate embeddings for a sequence of input texts, in input order.

        Raises
        ------
        EmbeddingError
            If any batch fails or the response is malformed.
        """
        if not texts:
            return []

        all_embeddings: List[List[float]] = []
        headers = {"Authorization": f"Bearer {self.api_key}"}

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            for start in range(0, len(texts), batch_size):
                batch = list(texts[start : start + batch_size])
                payload = {
                    "model": self.model,
                    "input": batch,
                    "dimensions": self.dimensions,
                }

                try:
                    response = await client.post(
                        self.base_url,
                        json=payload,
                        headers=headers,
                    )
                    response.raise_for_status()
                except httpx.HTTPError as exc:
                    logger.error(
                        "Embedding request failed (%s): batch size=%d, error=%s",
                        type(exc).__name__,
                        len(batch),
                        str(exc),
                    )
                    raise EmbeddingError(
                        f"Embedding generation failed: {type(exc).__name__}"
                    ) from exc

                all_embeddings.extend(self._extract_embeddings(response.json(), len(batch)))

        return all_embeddings

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _extract_embeddings(self, data: dict, expected: int) -> List[List[float]]:
        """
        Validate `{"data": [{"index": i, "embedding": [...]}, ...]}` and return
        the vectors ordered by `index`.
        """
        records = data.get("data") if isinstance(data, dict) else None
        if not isinstance(records, list):
            raise EmbeddingError("Embedding response missing 'data' list.")

        if len(records) != expected:
            raise EmbeddingError(
                f"Embedding response has {len(records)} records for {expected} inputs."
            )

        ordered = sorted(
            records,
            key=lambda r: r.get("index", 0) if isinstance(r, dict) else 0,
        )

        embeddings: List[List[float]] = []
        for position, record in enumerate(ordered):
            emb = record.get("embedding") if isinstance(record, dict) else None
            if not isinstance(emb, list) or not all(isinstance(x, (float, int)) for x in emb):
                raise EmbeddingError(f"Invalid embedding vector at index {position}.")
            if len(emb) != self.dimensions:
                raise EmbeddingError(
                    f"Embedding at index {position} has {len(emb)} dimensions, "
                    f"expected {self.dimensions}."
                )
            embeddings.append([float(x) for x in emb])

        return embeddings

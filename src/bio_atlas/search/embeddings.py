"""Embedding gateway for Bio Atlas.

Uses litellm to route embedding requests to any OpenAI-compatible endpoint
(OpenAI, Azure, self-hosted TEI, etc.) via a single code path.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any

import litellm
from loguru import logger

from bio_atlas.errors import EmbeddingUnavailableError, InvalidInputError
from bio_atlas.telemetry import get_metrics

if TYPE_CHECKING:
    from bio_atlas.settings import EmbeddingSettings


class EmbedClient:
    """Async embedding client backed by litellm.

    Routes to any OpenAI-compatible endpoint. When ``base_url`` is set
    (e.g. self-hosted TEI), the model is prefixed with ``openai/`` so
    litellm treats it as an OpenAI-compatible API.
    """

    def __init__(self, settings: EmbeddingSettings) -> None:
        self._settings = settings
        self._batch_size = settings.batch_size
        self._timeout = settings.timeout_s
        self._dimension = settings.dimension

        if settings.base_url:
            model = settings.model
            if not model.startswith("openai/"):
                model = f"openai/{model}"
            self._model = model
            self._api_base: str | None = settings.base_url
            self._api_key: str | None = settings.api_key or "unused"  # OpenAI SDK requires a key
        else:
            self._model = settings.model
            self._api_base = None
            self._api_key = settings.api_key or None

    @property
    def dimension(self) -> int:
        return self._dimension

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Embed a list of texts, chunking by ``batch_size``.

        Returns a flat list of vectors in the same order as *texts*.
        Raises ``EmbeddingUnavailableError`` on failure or when a returned
        vector does not have the configured dimension.
        """
        if not texts:
            return []

        all_vectors: list[list[float]] = []
        for i in range(0, len(texts), self._batch_size):
            chunk = texts[i : i + self._batch_size]
            kwargs: dict[str, Any] = {
                "model": self._model,
                "input": chunk,
                "timeout": self._timeout,
            }
            if self._settings.request_dimensions:
                kwargs["dimensions"] = self._dimension
            if self._api_base:
                kwargs["api_base"] = self._api_base
            if self._api_key:
                kwargs["api_key"] = self._api_key

            t0 = time.monotonic()
            try:
                response = await litellm.aembedding(**kwargs)
                vectors = [_vector_of(item) for item in response.data]
            except Exception as exc:
                msg = f"Embedding failed for batch [{i}:{i + len(chunk)}]: {exc}"
                logger.error(msg)
                raise EmbeddingUnavailableError(msg) from exc
            finally:
                get_metrics().embedding_latency.record(time.monotonic() - t0, {"model": self._model})

            if len(vectors) != len(chunk):
                msg = f"Embedding returned {len(vectors)} vectors for {len(chunk)} texts"
                logger.error(msg)
                raise EmbeddingUnavailableError(msg)
            for vec in vectors:
                if len(vec) != self._dimension:
                    msg = f"Embedding dimension mismatch: expected {self._dimension}, got {len(vec)}"
                    logger.error(msg)
                    raise EmbeddingUnavailableError(msg)
            all_vectors.extend(vectors)

        return all_vectors

    async def embed_one(self, text: str) -> list[float]:
        """Embed a single text. Blank text is rejected before any API call."""
        if not text or not text.strip():
            raise InvalidInputError("Cannot embed empty text")
        result = await self.embed_batch([text])
        return result[0]

    async def health_check(self) -> bool:
        """Check if the embedding service is reachable with a tiny embedding call."""
        try:
            await self.embed_one("health check")
        except EmbeddingUnavailableError:
            return False
        else:
            return True


def _vector_of(item: Any) -> list[float]:
    """Extract the vector from a response item (dict or attribute object, depending on provider)."""
    embedding = item["embedding"] if isinstance(item, dict) else item.embedding
    return list(embedding)

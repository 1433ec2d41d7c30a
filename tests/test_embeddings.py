"""Tests for the litellm-backed embedding gateway."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest

from bio_atlas.errors import EmbeddingUnavailableError, InvalidInputError
from bio_atlas.search.embeddings import EmbedClient
from bio_atlas.settings import EmbeddingSettings


def _response(*vectors):
    return SimpleNamespace(data=[{"object": "embedding", "index": i, "embedding": v} for i, v in enumerate(vectors)])


def _settings(**overrides) -> EmbeddingSettings:
    return EmbeddingSettings(dimension=3, **overrides)


# ---------------------------------------------------------------------------
# Model routing
# ---------------------------------------------------------------------------


class TestRouting:
    async def test_cloud_model_passes_dimensions(self):
        client = EmbedClient(_settings(api_key="sk-test"))
        with patch("litellm.aembedding", new_callable=AsyncMock, return_value=_response([0.1, 0.2, 0.3])) as mock:
            await client.embed_one("aspirin")
        kwargs = mock.call_args.kwargs
        assert kwargs["model"] == "text-embedding-3-small"
        assert kwargs["input"] == ["aspirin"]
        assert kwargs["dimensions"] == 3
        assert kwargs["api_key"] == "sk-test"
        assert "api_base" not in kwargs

    async def test_base_url_prefixes_openai(self):
        client = EmbedClient(_settings(base_url="http://localhost:8080", model="bge-small"))
        with patch("litellm.aembedding", new_callable=AsyncMock, return_value=_response([0.1, 0.2, 0.3])) as mock:
            await client.embed_one("aspirin")
        kwargs = mock.call_args.kwargs
        assert kwargs["model"] == "openai/bge-small"
        assert kwargs["api_base"] == "http://localhost:8080"
        assert kwargs["api_key"] == "unused"

    async def test_dimensions_omitted_when_disabled(self):
        client = EmbedClient(_settings(request_dimensions=False))
        with patch("litellm.aembedding", new_callable=AsyncMock, return_value=_response([0.1, 0.2, 0.3])) as mock:
            await client.embed_one("aspirin")
        assert "dimensions" not in mock.call_args.kwargs


# ---------------------------------------------------------------------------
# Batching and validation
# ---------------------------------------------------------------------------


class TestEmbed:
    async def test_batch_chunks_in_order(self):
        client = EmbedClient(_settings(batch_size=2))
        side_effect = [_response([1, 0, 0], [0, 1, 0]), _response([0, 0, 1])]
        with patch("litellm.aembedding", new_callable=AsyncMock, side_effect=side_effect) as mock:
            vectors = await client.embed_batch(["a", "b", "c"])
        assert vectors == [[1, 0, 0], [0, 1, 0], [0, 0, 1]]
        assert mock.await_count == 2

    async def test_empty_batch_no_call(self):
        client = EmbedClient(_settings())
        with patch("litellm.aembedding", new_callable=AsyncMock) as mock:
            assert await client.embed_batch([]) == []
        mock.assert_not_called()

    @pytest.mark.parametrize("text", ["", "   ", "\n"])
    async def test_blank_text_rejected(self, text):
        client = EmbedClient(_settings())
        with patch("litellm.aembedding", new_callable=AsyncMock) as mock, pytest.raises(InvalidInputError):
            await client.embed_one(text)
        mock.assert_not_called()

    async def test_wrong_dimension(self):
        client = EmbedClient(_settings())
        with (
            patch("litellm.aembedding", new_callable=AsyncMock, return_value=_response([0.1, 0.2])),
            pytest.raises(EmbeddingUnavailableError, match="dimension"),
        ):
            await client.embed_one("aspirin")

    async def test_attribute_style_items(self):
        client = EmbedClient(_settings())
        response = SimpleNamespace(data=[SimpleNamespace(embedding=[0.1, 0.2, 0.3])])
        with patch("litellm.aembedding", new_callable=AsyncMock, return_value=response):
            assert await client.embed_one("aspirin") == [0.1, 0.2, 0.3]

    async def test_provider_error_wrapped(self):
        client = EmbedClient(_settings())
        with (
            patch("litellm.aembedding", new_callable=AsyncMock, side_effect=RuntimeError("rate limited")),
            pytest.raises(EmbeddingUnavailableError, match="rate limited") as exc_info,
        ):
            await client.embed_one("aspirin")
        assert exc_info.value.retryable


class TestHealthCheck:
    async def test_healthy(self):
        client = EmbedClient(_settings())
        with patch("litellm.aembedding", new_callable=AsyncMock, return_value=_response([0.1, 0.2, 0.3])):
            assert await client.health_check() is True

    async def test_unhealthy(self):
        client = EmbedClient(_settings())
        with patch("litellm.aembedding", new_callable=AsyncMock, side_effect=ConnectionError("refused")):
            assert await client.health_check() is False

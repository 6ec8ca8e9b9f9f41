"""Tests for embedding providers with mocked backends."""

import json
from unittest.mock import MagicMock

import httpx
import pytest
from openai import OpenAIError

from diagnosis_engine.core.config import Settings
from diagnosis_engine.core.embeddings import (
    OpenAIEmbeddingProvider,
    ZhipuEmbeddingProvider,
    create_embedding_provider,
)
from diagnosis_engine.core.exceptions import ProviderError


@pytest.fixture
def mock_openai_response():
    """Create a mock OpenAI embeddings response."""

    def _create_response(num_embeddings: int, dimension: int = 1536):
        mock_response = MagicMock()
        mock_response.data = []

        for _ in range(num_embeddings):
            mock_embedding = MagicMock()
            mock_embedding.embedding = [0.1] * dimension
            mock_response.data.append(mock_embedding)

        return mock_response

    return _create_response


def _openai_provider(client, dimension: int = 1536) -> OpenAIEmbeddingProvider:
    return OpenAIEmbeddingProvider(
        api_key="test", model="text-embedding-3-small", dimension=dimension, client=client
    )


class TestOpenAIProvider:
    @pytest.mark.asyncio
    async def test_embed_single(self, mock_openai_response):
        client = MagicMock()
        client.embeddings.create.return_value = mock_openai_response(1)

        vector = await _openai_provider(client).embed("Hello world")

        assert len(vector) == 1536
        client.embeddings.create.assert_called_once_with(
            model="text-embedding-3-small", input=["Hello world"]
        )

    @pytest.mark.asyncio
    async def test_embed_batch_empty(self):
        client = MagicMock()

        assert await _openai_provider(client).embed_batch([]) == []
        client.embeddings.create.assert_not_called()

    @pytest.mark.asyncio
    async def test_dimension_mismatch_raises(self, mock_openai_response):
        client = MagicMock()
        client.embeddings.create.return_value = mock_openai_response(1, dimension=768)

        with pytest.raises(ProviderError, match="dimension mismatch"):
            await _openai_provider(client).embed("text")

    @pytest.mark.asyncio
    async def test_sdk_error_becomes_provider_error(self):
        client = MagicMock()
        client.embeddings.create.side_effect = OpenAIError("invalid api key")

        with pytest.raises(ProviderError, match="invalid api key"):
            await _openai_provider(client).embed("text")

    def test_missing_key_raises(self):
        with pytest.raises(ProviderError, match="OPENAI_API_KEY"):
            OpenAIEmbeddingProvider(api_key=None, model="m", dimension=4)


class TestZhipuProvider:
    @pytest.mark.asyncio
    async def test_embed_posts_model_and_input(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"data": [{"index": 0, "embedding": [0.5] * 4}]})

        provider = ZhipuEmbeddingProvider(
            api_key="zk",
            model="embedding-3",
            dimension=4,
            url="https://zhipu.test/embeddings",
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        )

        vector = await provider.embed("组织结构")

        assert vector == [0.5] * 4
        assert seen["body"]["model"] == "embedding-3"
        assert seen["body"]["input"] == ["组织结构"]

    @pytest.mark.asyncio
    async def test_http_error_becomes_provider_error(self):
        provider = ZhipuEmbeddingProvider(
            api_key="zk",
            model="embedding-3",
            dimension=4,
            url="https://zhipu.test/embeddings",
            http_client=httpx.AsyncClient(
                transport=httpx.MockTransport(lambda request: httpx.Response(401, text="bad key"))
            ),
        )

        with pytest.raises(ProviderError, match="401"):
            await provider.embed("text")


class TestFactory:
    def test_selects_zhipu(self):
        settings = Settings(EMBEDDING_PROVIDER="zhipu", ZHIPU_API_KEY="zk")
        assert create_embedding_provider(settings).name == "zhipu"

    def test_selects_openai(self):
        settings = Settings(EMBEDDING_PROVIDER="openai", OPENAI_API_KEY="ok")
        assert create_embedding_provider(settings).name == "openai"

    def test_unknown_provider(self):
        settings = Settings(EMBEDDING_PROVIDER="cohere")
        with pytest.raises(ValueError, match="Unknown EMBEDDING_PROVIDER"):
            create_embedding_provider(settings)

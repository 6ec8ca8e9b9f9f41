"""Embedding providers with dimension validation.

Exactly one backend is active per deployment: vectors from different backends
are not comparable, so queries and ingested documents must share one.
"""

import asyncio
from typing import Protocol

import httpx
from openai import OpenAI, OpenAIError

from diagnosis_engine.core.config import Settings
from diagnosis_engine.core.exceptions import ProviderError
from diagnosis_engine.core.logging import get_logger

logger = get_logger(__name__)


class EmbeddingProvider(Protocol):
    """Turns text into fixed-length float vectors."""

    name: str
    dimension: int

    async def embed(self, text: str) -> list[float]: ...

    async def embed_batch(self, texts: list[str]) -> list[list[float]]: ...


def _validate_dimensions(vectors: list[list[float]], expected: int, provider: str) -> None:
    for i, vector in enumerate(vectors):
        if len(vector) != expected:
            raise ProviderError(
                f"{provider} embedding dimension mismatch for text {i}: "
                f"expected {expected}, got {len(vector)}"
            )


class OpenAIEmbeddingProvider:
    """Embeddings via the OpenAI SDK."""

    name = "openai"

    def __init__(self, api_key: str | None, model: str, dimension: int, client: OpenAI | None = None):
        if client is None and not api_key:
            raise ProviderError("OPENAI_API_KEY is not configured")
        self.model = model
        self.dimension = dimension
        self._client = client or OpenAI(api_key=api_key)

    def _embed_sync(self, texts: list[str]) -> list[list[float]]:
        try:
            response = self._client.embeddings.create(model=self.model, input=texts)
        except OpenAIError as e:
            logger.error(f"Failed to generate embeddings: {e}")
            raise ProviderError(f"OpenAI embeddings failed: {e}") from e

        vectors = [item.embedding for item in response.data]
        if len(vectors) != len(texts):
            raise ProviderError(f"OpenAI returned {len(vectors)} embeddings for {len(texts)} texts")
        _validate_dimensions(vectors, self.dimension, self.name)

        logger.debug(f"Generated {len(vectors)} embeddings using {self.model}")
        return vectors

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        # The SDK client is synchronous; keep it off the event loop
        return await asyncio.to_thread(self._embed_sync, texts)

    async def embed(self, text: str) -> list[float]:
        vectors = await self.embed_batch([text])
        return vectors[0]


class ZhipuEmbeddingProvider:
    """Embeddings via the Zhipu AI HTTP API."""

    name = "zhipu"

    def __init__(
        self,
        api_key: str | None,
        model: str,
        dimension: int,
        url: str,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ):
        if not api_key:
            raise ProviderError("ZHIPU_API_KEY is not configured")
        self.model = model
        self.dimension = dimension
        self.url = url
        self.timeout = timeout
        self._api_key = api_key
        self._client = http_client or httpx.AsyncClient()

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []

        try:
            response = await self._client.post(
                self.url,
                headers={"Authorization": f"Bearer {self._api_key}"},
                json={"model": self.model, "input": texts, "dimensions": self.dimension},
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            raise ProviderError(
                f"Zhipu embeddings error {e.response.status_code}: {e.response.text[:300]}"
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise ProviderError(f"Zhipu embeddings failed: {e}") from e

        try:
            items = sorted(data["data"], key=lambda item: item.get("index", 0))
            vectors = [item["embedding"] for item in items]
        except (KeyError, TypeError) as e:
            raise ProviderError(f"Malformed Zhipu embeddings response: {e}") from e

        if len(vectors) != len(texts):
            raise ProviderError(f"Zhipu returned {len(vectors)} embeddings for {len(texts)} texts")
        _validate_dimensions(vectors, self.dimension, self.name)
        return vectors

    async def embed(self, text: str) -> list[float]:
        vectors = await self.embed_batch([text])
        return vectors[0]

    async def aclose(self) -> None:
        await self._client.aclose()


def create_embedding_provider(
    settings: Settings, http_client: httpx.AsyncClient | None = None
) -> EmbeddingProvider:
    """Build the configured embedding backend.

    Raises:
        ValueError: If EMBEDDING_PROVIDER is not a known backend
        ProviderError: If the backend's API key is missing
    """
    provider = settings.EMBEDDING_PROVIDER.lower()

    if provider == "openai":
        return OpenAIEmbeddingProvider(
            api_key=settings.OPENAI_API_KEY,
            model=settings.OPENAI_EMBEDDING_MODEL,
            dimension=settings.EMBEDDING_DIM,
        )
    if provider == "zhipu":
        return ZhipuEmbeddingProvider(
            api_key=settings.ZHIPU_API_KEY,
            model=settings.ZHIPU_EMBEDDING_MODEL,
            dimension=settings.EMBEDDING_DIM,
            url=settings.ZHIPU_EMBEDDINGS_URL,
            http_client=http_client,
        )

    raise ValueError(f"Unknown EMBEDDING_PROVIDER: {settings.EMBEDDING_PROVIDER}")

"""Knowledge-base retrieval for grounding conversation turns.

Pipeline: embed query → ``match_documents`` vector search filtered by stage →
threshold / rank / top-k → format with source attribution.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from diagnosis_engine.core.logging import get_logger
from diagnosis_engine.core.retrieval_format import format_passages
from diagnosis_engine.core.schemas_diagnosis import KnowledgeChunk
from diagnosis_engine.core.stages import Stage

if TYPE_CHECKING:
    from diagnosis_engine.core.embeddings import EmbeddingProvider
    from diagnosis_engine.db.knowledge import KnowledgeStore

logger = get_logger(__name__)


@dataclass
class RetrievalOptions:
    """Filters for one retrieval call."""

    dimension: Stage | None = None
    threshold: float = 0.7
    top_k: int = 3


class Retriever:
    """Vector search over the knowledge base."""

    def __init__(
        self,
        embedder: EmbeddingProvider,
        knowledge: KnowledgeStore,
        default_threshold: float = 0.7,
        default_top_k: int = 3,
    ):
        self._embedder = embedder
        self._knowledge = knowledge
        self.default_threshold = default_threshold
        self.default_top_k = default_top_k

    def _options(self, options: RetrievalOptions | None) -> RetrievalOptions:
        if options is not None:
            return options
        return RetrievalOptions(threshold=self.default_threshold, top_k=self.default_top_k)

    async def retrieve_documents(
        self, query: str, options: RetrievalOptions | None = None
    ) -> list[KnowledgeChunk]:
        """
        Find the passages most similar to ``query``.

        The store is asked for ranked results, but threshold, ordering and
        top-k are re-applied here so a loose store cannot leak extra rows.
        Equal similarities keep the store's order.

        Raises:
            ProviderError: If the query cannot be embedded
            StoreError: If the vector search fails
        """
        opts = self._options(options)
        if opts.top_k <= 0 or not query.strip():
            return []

        embedding = await self._embedder.embed(query)
        rows = await self._knowledge.match_documents(
            embedding,
            category_filter=opts.dimension.value if opts.dimension else None,
            match_threshold=opts.threshold,
            top_k=opts.top_k,
        )

        matches = [chunk for chunk in rows if chunk.similarity >= opts.threshold]
        # sorted() is stable, so ties stay in store order
        matches = sorted(matches, key=lambda c: c.similarity, reverse=True)
        return matches[: opts.top_k]

    async def retrieve_context(self, query: str, options: RetrievalOptions | None = None) -> str:
        """Retrieve and format passages; returns the no-context sentinel when empty."""
        matches = await self.retrieve_documents(query, options)
        logger.debug(
            f"Retrieved {len(matches)} passages",
            extra={"stage": options.dimension.value if options and options.dimension else None},
        )
        return format_passages(matches)

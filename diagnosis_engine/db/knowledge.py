"""Knowledge base (``knowledge_docs``) vector search and bulk load."""

from typing import Any

from supabase import Client

from diagnosis_engine.core.logging import get_logger
from diagnosis_engine.core.schemas_diagnosis import KnowledgeChunk, KnowledgeStat
from diagnosis_engine.db.supabase_client import run_query

logger = get_logger(__name__)

KNOWLEDGE_TABLE = "knowledge_docs"


def to_pgvector(embedding: list[float]) -> str:
    """Serialize a vector in pgvector's text form."""
    return "[" + ",".join(str(x) for x in embedding) + "]"


class KnowledgeStore:
    """Read-mostly access to the knowledge base."""

    def __init__(self, client: Client):
        self._client = client

    async def match_documents(
        self,
        embedding: list[float],
        category_filter: str | None,
        match_threshold: float,
        top_k: int,
    ) -> list[KnowledgeChunk]:
        """
        Vector similarity search via the ``match_documents`` RPC.

        Returns:
            Passages ranked by descending similarity

        Raises:
            StoreError: If the RPC fails
        """
        params = {
            "query_embedding": to_pgvector(embedding),
            "category_filter": category_filter,
            "match_threshold": match_threshold,
            "top_k": top_k,
        }

        def _rpc():
            return self._client.rpc("match_documents", params).execute()

        response = await run_query(_rpc, "match documents")
        return [KnowledgeChunk.model_validate(row) for row in response.data or []]

    async def get_knowledge_stats(self) -> list[KnowledgeStat]:
        """Per-category document counts."""

        def _rpc():
            return self._client.rpc("get_knowledge_stats", {}).execute()

        response = await run_query(_rpc, "get knowledge stats")
        return [KnowledgeStat.model_validate(row) for row in response.data or []]

    async def insert_chunks(self, records: list[dict[str, Any]]) -> int:
        """
        Insert chunk records (content, embedding, category, source, chunk_index, metadata).

        Returns:
            Number of rows inserted
        """
        if not records:
            return 0

        rows = [{**record, "embedding": to_pgvector(record["embedding"])} for record in records]

        def _insert():
            return self._client.table(KNOWLEDGE_TABLE).insert(rows).execute()

        response = await run_query(_insert, f"insert {len(rows)} knowledge chunks")
        return len(response.data or rows)

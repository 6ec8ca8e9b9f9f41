"""Offline knowledge-base ingestion: read → categorize → chunk → embed → load."""

import asyncio
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from diagnosis_engine.core.chunking import chunk_document
from diagnosis_engine.core.embeddings import EmbeddingProvider
from diagnosis_engine.core.exceptions import StoreError
from diagnosis_engine.core.logging import get_logger
from diagnosis_engine.core.stages import STAGES, Stage
from diagnosis_engine.db.knowledge import KnowledgeStore

logger = get_logger(__name__)

DOC_EXTENSIONS = (".md", ".txt")

# Checked in stage order; the first match wins
CATEGORY_KEYWORDS: dict[Stage, list[str]] = {
    Stage.STRATEGY: ["strategy", "战略", "strategic", "策略"],
    Stage.STRUCTURE: ["structure", "组织", "organization", "架构", "structural"],
    Stage.PERFORMANCE: ["performance", "绩效", "kpi", "okr"],
    Stage.COMPENSATION: ["compensation", "薪酬", "薪资", "reward", "salary"],
    Stage.TALENT: ["talent", "人才", "hr", "人力资源", "personnel"],
}

EMBED_BATCH_SIZE = 16


@dataclass
class SourceDocument:
    path: str
    content: str


@dataclass
class DocumentChunk:
    content: str
    category: Stage
    source: str
    chunk_index: int
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class IngestionReport:
    documents: int = 0
    chunks: int = 0
    inserted: int = 0
    by_category: dict[str, int] = field(default_factory=dict)


def read_documents(docs_dir: Path) -> list[SourceDocument]:
    """Read every .md/.txt file under ``docs_dir`` recursively, in path order."""
    documents = []
    for path in sorted(docs_dir.rglob("*")):
        if path.is_file() and path.suffix.lower() in DOC_EXTENSIONS:
            documents.append(
                SourceDocument(
                    path=path.relative_to(docs_dir.parent).as_posix(),
                    content=path.read_text(encoding="utf-8"),
                )
            )
    return documents


def detect_category(content: str, filename: str) -> Stage:
    """Pick a dimension from filename/content keywords, defaulting to strategy."""
    lower_content = content.lower()
    lower_filename = filename.lower()

    for stage in STAGES:
        for keyword in CATEGORY_KEYWORDS[stage]:
            if keyword in lower_filename or keyword in lower_content:
                return stage
    return Stage.STRATEGY


def build_chunks(
    documents: list[SourceDocument], chunk_size: int = 500, overlap: int = 50
) -> list[DocumentChunk]:
    """Chunk and categorize documents."""
    chunks: list[DocumentChunk] = []
    for doc in documents:
        pieces = chunk_document(doc.content, chunk_size=chunk_size, overlap=overlap)
        category = detect_category(doc.content, doc.path)
        for index, piece in enumerate(pieces):
            chunks.append(
                DocumentChunk(
                    content=piece,
                    category=category,
                    source=doc.path,
                    chunk_index=index,
                    metadata={
                        "filename": Path(doc.path).name,
                        "chunk_count": len(pieces),
                        "char_count": len(piece),
                    },
                )
            )
    return chunks


async def embed_chunks(embedder: EmbeddingProvider, chunks: list[DocumentChunk]) -> list[list[float]]:
    """Embed chunk contents in batches. ProviderError propagates; nothing is zero-filled."""
    vectors: list[list[float]] = []
    for i in range(0, len(chunks), EMBED_BATCH_SIZE):
        batch = chunks[i : i + EMBED_BATCH_SIZE]
        vectors.extend(await embedder.embed_batch([c.content for c in batch]))
        logger.info(f"Embedded {len(vectors)}/{len(chunks)} chunks")
    return vectors


async def insert_with_retry(
    knowledge: KnowledgeStore,
    records: list[dict[str, Any]],
    max_retries: int = 3,
    backoff_seconds: float = 1.0,
) -> int:
    """
    Insert one batch, retrying on store failure with linear backoff.

    Raises:
        StoreError: If every attempt fails
    """
    attempt = 1
    while True:
        try:
            return await knowledge.insert_chunks(records)
        except StoreError as e:
            if attempt >= max_retries:
                raise
            logger.warning(f"Batch insert attempt {attempt}/{max_retries} failed: {e}")
            await asyncio.sleep(backoff_seconds * attempt)
            attempt += 1


async def ingest_documents(
    documents: list[SourceDocument],
    embedder: EmbeddingProvider,
    knowledge: KnowledgeStore,
    chunk_size: int = 500,
    overlap: int = 50,
    batch_size: int = 100,
    max_retries: int = 3,
    backoff_seconds: float = 1.0,
) -> IngestionReport:
    """
    Chunk, embed and bulk-load documents into the knowledge base.

    Returns:
        IngestionReport with per-category chunk counts
    """
    report = IngestionReport(documents=len(documents))
    chunks = build_chunks(documents, chunk_size=chunk_size, overlap=overlap)
    report.chunks = len(chunks)
    for chunk in chunks:
        report.by_category[chunk.category.value] = report.by_category.get(chunk.category.value, 0) + 1

    if not chunks:
        return report

    vectors = await embed_chunks(embedder, chunks)

    for i in range(0, len(chunks), batch_size):
        records = [
            {
                "content": chunk.content,
                "embedding": vector,
                "category": chunk.category.value,
                "source": chunk.source,
                "chunk_index": chunk.chunk_index,
                "metadata": chunk.metadata,
            }
            for chunk, vector in zip(chunks[i : i + batch_size], vectors[i : i + batch_size])
        ]
        report.inserted += await insert_with_retry(
            knowledge, records, max_retries=max_retries, backoff_seconds=backoff_seconds
        )
        logger.info(f"Inserted {report.inserted}/{len(chunks)} chunks")

    return report

"""Load knowledge documents into the knowledge base.

Reads .md/.txt files, detects each file's dimension, chunks by paragraph,
embeds with the configured EMBEDDING_PROVIDER and inserts into knowledge_docs.

Usage:
    python scripts/ingest_docs.py [--docs-dir docs] [--dry-run]

Examples:
    # Preview chunking and categories without calling any API
    python scripts/ingest_docs.py --docs-dir docs --dry-run

    # Full load
    python scripts/ingest_docs.py
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

# Ensure diagnosis_engine is importable
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))


async def run_ingestion(docs_dir: Path, dry_run: bool) -> int:
    from diagnosis_engine.core.config import get_settings
    from diagnosis_engine.core.embeddings import create_embedding_provider
    from diagnosis_engine.core.ingestion import build_chunks, ingest_documents, read_documents
    from diagnosis_engine.db.knowledge import KnowledgeStore
    from diagnosis_engine.db.supabase_client import create_supabase_client

    settings = get_settings()

    if not docs_dir.is_dir():
        print(f"ERROR: {docs_dir} is not a directory")
        return 1

    print(f"Reading documents from {docs_dir}...")
    documents = read_documents(docs_dir)
    if not documents:
        print("No .md or .txt documents found. Add files and rerun.")
        return 0
    print(f"  Found {len(documents)} documents")

    if dry_run:
        chunks = build_chunks(
            documents,
            chunk_size=settings.INGEST_CHUNK_SIZE,
            overlap=settings.INGEST_CHUNK_OVERLAP,
        )
        print(f"  Would insert {len(chunks)} chunks:")
        for doc in documents:
            doc_chunks = [c for c in chunks if c.source == doc.path]
            category = doc_chunks[0].category.value if doc_chunks else "-"
            print(f"    {doc.path}: {len(doc_chunks)} chunks [{category}]")
        return 0

    embedder = create_embedding_provider(settings)
    knowledge = KnowledgeStore(create_supabase_client(settings))

    report = await ingest_documents(
        documents,
        embedder,
        knowledge,
        chunk_size=settings.INGEST_CHUNK_SIZE,
        overlap=settings.INGEST_CHUNK_OVERLAP,
        batch_size=settings.INGEST_BATCH_SIZE,
        max_retries=settings.INGEST_MAX_RETRIES,
    )

    print(f"\n{'='*60}")
    print(f"Inserted {report.inserted}/{report.chunks} chunks from {report.documents} documents")
    for category, count in sorted(report.by_category.items()):
        print(f"  {category}: {count}")

    stats = await knowledge.get_knowledge_stats()
    if stats:
        print("\nKnowledge base statistics:")
        for stat in stats:
            avg = f"{stat.avg_chunk_count:.1f}" if stat.avg_chunk_count is not None else "-"
            print(f"  {stat.category:<14} docs={stat.doc_count:<6} avg_chunks={avg}")

    return 0


def main() -> None:
    parser = argparse.ArgumentParser(description="Ingest knowledge documents")
    parser.add_argument("--docs-dir", default=None, help="Documents directory (default: INGEST_DOCS_DIR)")
    parser.add_argument("--dry-run", action="store_true", help="Chunk and categorize only")
    args = parser.parse_args()

    from diagnosis_engine.core.config import get_settings

    docs_dir = Path(args.docs_dir or get_settings().INGEST_DOCS_DIR).resolve()
    sys.exit(asyncio.run(run_ingestion(docs_dir, args.dry_run)))


if __name__ == "__main__":
    main()

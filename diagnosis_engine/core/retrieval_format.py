"""Format retrieved knowledge passages for prompt injection.

Each passage keeps its source identifier and similarity so the model can
attribute claims. Truncation drops the lowest-ranked passages first.
"""

from diagnosis_engine.core.schemas_diagnosis import KnowledgeChunk

NO_CONTEXT_SENTINEL = "No relevant information found in the knowledge base."

PASSAGE_SEPARATOR = "\n\n---\n\n"


def format_passage(index: int, chunk: KnowledgeChunk) -> str:
    """Render one passage as ``[Source n] source / content / [Similarity: x%]``."""
    source = chunk.source or "unknown"
    return (
        f"[Source {index}] {source}\n"
        f"{chunk.content}\n"
        f"[Similarity: {chunk.similarity * 100:.1f}%]"
    )


def format_passages(chunks: list[KnowledgeChunk], max_chars: int | None = None) -> str:
    """Join ranked passages into one context block.

    Args:
        chunks: Passages ranked best-first
        max_chars: Optional budget; passages past it are dropped

    Returns:
        Context block, or the sentinel when nothing is left to show
    """
    rendered: list[str] = []
    chars_used = 0

    for i, chunk in enumerate(chunks, start=1):
        block = format_passage(i, chunk)
        if max_chars is not None and rendered and chars_used + len(block) > max_chars:
            break
        rendered.append(block)
        chars_used += len(block) + len(PASSAGE_SEPARATOR)

    if not rendered:
        return NO_CONTEXT_SENTINEL
    return PASSAGE_SEPARATOR.join(rendered)

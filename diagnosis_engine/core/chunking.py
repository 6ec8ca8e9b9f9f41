"""Text chunking for knowledge-base ingestion."""

import re

_PARAGRAPH_BREAK = re.compile(r"\n\s*\n+")


def split_long_text(text: str, max_chars: int, overlap: int) -> list[str]:
    """
    Split text into fixed-size character windows with overlap.

    Raises:
        ValueError: If max_chars <= overlap
    """
    if max_chars <= overlap:
        raise ValueError(f"max_chars ({max_chars}) must be greater than overlap ({overlap})")

    windows = []
    start = 0
    while start < len(text):
        end = min(start + max_chars, len(text))
        windows.append(text[start:end])
        if end >= len(text):
            break
        start = end - overlap
    return windows


def chunk_document(content: str, chunk_size: int = 500, overlap: int = 50) -> list[str]:
    """
    Split a document into paragraph-aligned chunks.

    Paragraphs are packed into a chunk until adding the next would exceed
    ``chunk_size``; the next chunk then starts with the last ``overlap``
    characters of the previous one. A single paragraph longer than
    ``chunk_size`` is cut into character windows.

    Args:
        content: Document text
        chunk_size: Target maximum characters per chunk
        overlap: Characters carried from the end of one chunk into the next

    Returns:
        List of chunk strings (empty for blank input)

    Raises:
        ValueError: If chunk_size <= overlap
    """
    if chunk_size <= overlap:
        raise ValueError(f"chunk_size ({chunk_size}) must be greater than overlap ({overlap})")

    paragraphs = [p.strip() for p in _PARAGRAPH_BREAK.split(content) if p.strip()]

    chunks: list[str] = []
    current = ""

    for paragraph in paragraphs:
        if len(paragraph) > chunk_size:
            if current:
                chunks.append(current)
                current = ""
            chunks.extend(w.strip() for w in split_long_text(paragraph, chunk_size, overlap))
            continue

        if current and len(current) + len(paragraph) > chunk_size:
            chunks.append(current)
            tail = current[-overlap:] if overlap else ""
            current = f"{tail}\n\n{paragraph}" if tail else paragraph
        else:
            current = f"{current}\n\n{paragraph}" if current else paragraph

    if current.strip():
        chunks.append(current.strip())

    return chunks

"""Tests for knowledge retrieval and context formatting."""

import pytest

from diagnosis_engine.core.exceptions import ProviderError, StoreError
from diagnosis_engine.core.retrieval import RetrievalOptions
from diagnosis_engine.core.retrieval_format import NO_CONTEXT_SENTINEL, format_passages
from diagnosis_engine.core.schemas_diagnosis import KnowledgeChunk
from diagnosis_engine.core.stages import Stage


def _chunk(content: str, similarity: float, source: str = "docs/a.md") -> KnowledgeChunk:
    return KnowledgeChunk(content=content, similarity=similarity, source=source, category="structure")


@pytest.mark.asyncio
async def test_no_matches_returns_sentinel(retriever, knowledge):
    knowledge.matches = []

    context = await retriever.retrieve_context("anything", RetrievalOptions(dimension=Stage.STRATEGY))

    assert context == NO_CONTEXT_SENTINEL


@pytest.mark.asyncio
async def test_matches_below_threshold_return_sentinel(retriever, knowledge):
    knowledge.matches = [_chunk("weak", 0.5)]

    context = await retriever.retrieve_context("q", RetrievalOptions(threshold=0.7))

    assert context == NO_CONTEXT_SENTINEL


@pytest.mark.asyncio
async def test_passes_filters_to_store(retriever, knowledge, embedder):
    await retriever.retrieve_documents(
        "reporting lines", RetrievalOptions(dimension=Stage.STRUCTURE, threshold=0.75, top_k=4)
    )

    assert embedder.calls == [["reporting lines"]]
    call = knowledge.match_calls[0]
    assert call["category_filter"] == "structure"
    assert call["match_threshold"] == 0.75
    assert call["top_k"] == 4


@pytest.mark.asyncio
async def test_ranks_descending_with_stable_ties_and_top_k(retriever, knowledge):
    knowledge.matches = [
        _chunk("first tie", 0.8, "a"),
        _chunk("best", 0.95, "b"),
        _chunk("second tie", 0.8, "c"),
        _chunk("low", 0.71, "d"),
    ]

    docs = await retriever.retrieve_documents("q", RetrievalOptions(threshold=0.7, top_k=3))

    assert [d.content for d in docs] == ["best", "first tie", "second tie"]


@pytest.mark.asyncio
async def test_context_renders_source_and_similarity(retriever, knowledge):
    knowledge.matches = [
        _chunk("Clarify reporting lines.", 0.81, "docs/structure/lines.md"),
        _chunk("Define decision rights.", 0.76, "docs/structure/raci.md"),
    ]

    context = await retriever.retrieve_context("q", RetrievalOptions(dimension=Stage.STRUCTURE))

    assert context == (
        "[Source 1] docs/structure/lines.md\nClarify reporting lines.\n[Similarity: 81.0%]"
        "\n\n---\n\n"
        "[Source 2] docs/structure/raci.md\nDefine decision rights.\n[Similarity: 76.0%]"
    )


@pytest.mark.asyncio
async def test_embedding_failure_propagates(retriever, embedder):
    embedder.error = ProviderError("auth failed")

    with pytest.raises(ProviderError):
        await retriever.retrieve_context("q")


@pytest.mark.asyncio
async def test_store_failure_propagates(retriever, knowledge):
    knowledge.error = StoreError("rpc down")

    with pytest.raises(StoreError):
        await retriever.retrieve_context("q")


def test_format_passages_truncates_lowest_ranked_first():
    chunks = [_chunk("a" * 100, 0.9), _chunk("b" * 100, 0.8), _chunk("c" * 100, 0.7)]

    context = format_passages(chunks, max_chars=300)

    assert "a" * 100 in context
    assert "c" * 100 not in context


def test_format_passages_empty_is_sentinel():
    assert format_passages([]) == NO_CONTEXT_SENTINEL

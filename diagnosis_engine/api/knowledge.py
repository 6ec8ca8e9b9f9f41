"""Knowledge base API endpoints."""

from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from diagnosis_engine.api.deps import Services, get_services, to_http_exception
from diagnosis_engine.core.exceptions import DiagnosisError
from diagnosis_engine.core.retrieval import RetrievalOptions
from diagnosis_engine.core.schemas_diagnosis import KnowledgeChunk
from diagnosis_engine.core.stages import Stage

router = APIRouter()


class KnowledgeSearchRequest(BaseModel):
    """Similarity search over the knowledge base."""

    query: str = Field(..., min_length=1)
    dimension: Stage | None = Field(default=None, description="Restrict to one stage")
    threshold: float = Field(default=0.7, ge=0, le=1)
    top_k: int = Field(default=5, ge=1, le=20)


@router.get("/knowledge/stats")
async def knowledge_stats(services: Services = Depends(get_services)) -> dict[str, Any]:
    """Per-category document counts and whether anything has been ingested."""
    try:
        stats = await services.knowledge.get_knowledge_stats()
    except DiagnosisError as e:
        raise to_http_exception(e) from e
    return {
        "ready": any(stat.doc_count > 0 for stat in stats),
        "stats": [stat.model_dump() for stat in stats],
    }


@router.post("/knowledge/search", response_model=list[KnowledgeChunk])
async def search_knowledge(
    request: KnowledgeSearchRequest,
    services: Services = Depends(get_services),
) -> list[KnowledgeChunk]:
    """Ranked passages for a query."""
    options = RetrievalOptions(
        dimension=request.dimension, threshold=request.threshold, top_k=request.top_k
    )
    try:
        return await services.retriever.retrieve_documents(request.query, options)
    except DiagnosisError as e:
        raise to_http_exception(e) from e

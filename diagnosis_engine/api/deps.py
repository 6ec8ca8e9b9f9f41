"""Service container and request dependencies.

All clients are built once at startup by ``build_services`` and reached from
routes through ``get_services``; nothing is memoized at module level.
"""

from dataclasses import dataclass

import httpx
from fastapi import Header, HTTPException, Request
from supabase import Client

from diagnosis_engine.core.background import BackgroundTasks
from diagnosis_engine.core.completion import CompletionClient, CompletionOptions
from diagnosis_engine.core.config import Settings
from diagnosis_engine.core.conversation import ConversationConfig, ConversationOrchestrator
from diagnosis_engine.core.embeddings import EmbeddingProvider, create_embedding_provider
from diagnosis_engine.core.exceptions import (
    AccessDeniedError,
    CompletionTimeoutError,
    DiagnosisError,
    NotFoundError,
    NoNextStageError,
    StageConflictError,
    StoreError,
    UnknownStageError,
)
from diagnosis_engine.core.extraction import ExtractionEngine
from diagnosis_engine.core.logging import get_logger
from diagnosis_engine.core.retrieval import Retriever
from diagnosis_engine.core.stages import StageController
from diagnosis_engine.db.knowledge import KnowledgeStore
from diagnosis_engine.db.sessions import SessionStore
from diagnosis_engine.db.supabase_client import create_supabase_client
from diagnosis_engine.db.transcript import TranscriptStore

logger = get_logger(__name__)


@dataclass
class Services:
    """Everything a request handler needs, wired once per process."""

    sessions: SessionStore
    transcripts: TranscriptStore
    knowledge: KnowledgeStore
    retriever: Retriever
    completion: CompletionClient
    extraction: ExtractionEngine
    stages: StageController
    conversation: ConversationOrchestrator
    background: BackgroundTasks
    http_client: httpx.AsyncClient | None = None

    async def aclose(self) -> None:
        await self.background.drain()
        await self.completion.aclose()
        if self.http_client is not None:
            await self.http_client.aclose()


def build_services(
    settings: Settings,
    supabase: Client | None = None,
    embedder: EmbeddingProvider | None = None,
) -> Services:
    """
    Construct stores, clients and engines from settings.

    Args:
        settings: Loaded application settings
        supabase: Optional pre-built Supabase client
        embedder: Optional pre-built embedding provider

    Returns:
        Wired Services container
    """
    supabase = supabase or create_supabase_client(settings)
    http_client = httpx.AsyncClient()

    sessions = SessionStore(supabase)
    transcripts = TranscriptStore(supabase)
    knowledge = KnowledgeStore(supabase)

    embedder = embedder or create_embedding_provider(settings, http_client=http_client)
    retriever = Retriever(
        embedder,
        knowledge,
        default_threshold=settings.RETRIEVAL_MATCH_THRESHOLD,
        default_top_k=settings.RETRIEVAL_TOP_K,
    )
    completion = CompletionClient.from_settings(settings, http_client=httpx.AsyncClient())
    background = BackgroundTasks()

    extraction = ExtractionEngine(
        sessions,
        transcripts,
        completion,
        options=CompletionOptions(
            temperature=settings.EXTRACTION_TEMPERATURE,
            top_p=settings.COMPLETION_TOP_P,
            max_tokens=settings.COMPLETION_MAX_TOKENS,
        ),
    )
    conversation = ConversationOrchestrator(
        sessions,
        transcripts,
        retriever,
        completion,
        extraction,
        background,
        config=ConversationConfig(
            completion=CompletionOptions(
                temperature=settings.CHAT_TEMPERATURE,
                top_p=settings.COMPLETION_TOP_P,
                max_tokens=settings.COMPLETION_MAX_TOKENS,
            ),
            retrieval_threshold=settings.RETRIEVAL_MATCH_THRESHOLD,
            retrieval_top_k=settings.RETRIEVAL_TOP_K,
            history_limit=settings.CHAT_HISTORY_LIMIT,
        ),
    )

    logger.info(
        f"Services ready (embeddings={settings.EMBEDDING_PROVIDER}, model={settings.COMPLETION_MODEL})"
    )
    return Services(
        sessions=sessions,
        transcripts=transcripts,
        knowledge=knowledge,
        retriever=retriever,
        completion=completion,
        extraction=extraction,
        stages=StageController(sessions),
        conversation=conversation,
        background=background,
        http_client=http_client,
    )


def get_services(request: Request) -> Services:
    """FastAPI dependency returning the process-wide Services."""
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(status_code=503, detail="Service not initialized")
    return services


def get_owner_id(x_user_id: str | None = Header(default=None)) -> str | None:
    """Caller identity forwarded by the upstream identity layer, if any."""
    return x_user_id or None


_STATUS_BY_ERROR: list[tuple[type[DiagnosisError], int]] = [
    (NotFoundError, 404),
    (AccessDeniedError, 403),
    (NoNextStageError, 409),
    (StageConflictError, 409),
    (UnknownStageError, 409),
    (CompletionTimeoutError, 504),
    (StoreError, 503),
]


def to_http_exception(error: DiagnosisError) -> HTTPException:
    """Map a domain error to an HTTP error; upstream AI failures become 502."""
    status_code = 502
    for error_type, code in _STATUS_BY_ERROR:
        if isinstance(error, error_type):
            status_code = code
            break
    return HTTPException(status_code=status_code, detail={"code": error.code, "message": str(error)})

"""Conversation turn orchestration: retrieve → prompt → stream → persist → extract.

A turn runs in two phases. ``prepare_turn`` does everything that may fail
before any text is produced (session lookup, retrieval, persisting the user
message). ``relay`` then streams fragments to the caller, persists the reply
only once the stream has been fully drained, and hands extraction to a
background task.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import aclosing
from dataclasses import dataclass, field

from diagnosis_engine.core.background import BackgroundTasks
from diagnosis_engine.core.completion import CompletionClient, CompletionOptions
from diagnosis_engine.core.exceptions import (
    CompletionError,
    ProviderError,
    StoreError,
    UnknownStageError,
)
from diagnosis_engine.core.extraction import ExtractionEngine
from diagnosis_engine.core.logging import get_logger, log_with_context
from diagnosis_engine.core.prompts import build_conversation_prompt
from diagnosis_engine.core.retrieval import RetrievalOptions, Retriever
from diagnosis_engine.core.retrieval_format import NO_CONTEXT_SENTINEL
from diagnosis_engine.core.schemas_diagnosis import Session, TranscriptEntry
from diagnosis_engine.core.stages import Stage
from diagnosis_engine.db.supabase_client import utc_now_iso
from diagnosis_engine.db.sessions import SessionStore
from diagnosis_engine.db.transcript import TranscriptStore

logger = get_logger(__name__)


@dataclass
class ConversationConfig:
    """Tunables for conversation turns."""

    completion: CompletionOptions = field(default_factory=CompletionOptions)
    retrieval_threshold: float = 0.7
    retrieval_top_k: int = 3
    history_limit: int = 10


@dataclass
class PreparedTurn:
    """A validated turn whose user message is already persisted."""

    session: Session
    stage: Stage
    context: str
    messages: list[dict[str, str]]
    user_entry: TranscriptEntry

    @property
    def session_id(self) -> str:
        return self.session.id

    @property
    def context_used(self) -> bool:
        return self.context != NO_CONTEXT_SENTINEL


class ConversationOrchestrator:
    """Serves one user turn at a time against a session."""

    def __init__(
        self,
        sessions: SessionStore,
        transcripts: TranscriptStore,
        retriever: Retriever,
        completion: CompletionClient,
        extraction: ExtractionEngine,
        background: BackgroundTasks,
        config: ConversationConfig | None = None,
    ):
        self._sessions = sessions
        self._transcripts = transcripts
        self._retriever = retriever
        self._completion = completion
        self._extraction = extraction
        self._background = background
        self.config = config or ConversationConfig()

    async def _retrieve_context(self, session_id: str, stage: Stage, query: str) -> str:
        options = RetrievalOptions(
            dimension=stage,
            threshold=self.config.retrieval_threshold,
            top_k=self.config.retrieval_top_k,
        )
        try:
            return await self._retriever.retrieve_context(query, options)
        except (ProviderError, StoreError) as e:
            log_with_context(
                logger,
                logging.WARNING,
                f"Retrieval unavailable, continuing without context: {e}",
                session_id=session_id,
                stage=stage.value,
            )
            return NO_CONTEXT_SENTINEL

    async def prepare_turn(
        self, session_id: str, message: str, owner_id: str | None = None
    ) -> PreparedTurn:
        """
        Validate the session, build the prompt and persist the user message.

        Raises:
            NotFoundError: Session does not exist
            AccessDeniedError: Session belongs to another user
            UnknownStageError: Session's stored stage is not recognized
            StoreError: History read or user-message write failed
        """
        session = await self._sessions.get_session(session_id, owner_id=owner_id)
        stage = session.stage
        if stage is None:
            raise UnknownStageError(f"Session {session_id} has unknown stage {session.current_stage!r}")

        context = await self._retrieve_context(session_id, stage, message)
        system_prompt = build_conversation_prompt(stage, context)

        # History is read before the new message is written so it is not duplicated
        history = await self._transcripts.list_recent(session_id, self.config.history_limit)
        messages = [{"role": "system", "content": system_prompt}]
        messages.extend(
            {"role": entry.role, "content": entry.content}
            for entry in history
            if entry.role != "system" and entry.content.strip()
        )
        messages.append({"role": "user", "content": message})

        user_entry = await self._transcripts.append(
            session_id,
            "user",
            message,
            metadata={"stage": stage.value, "timestamp": utc_now_iso()},
        )

        log_with_context(
            logger,
            logging.INFO,
            "Turn prepared",
            session_id=session_id,
            stage=stage.value,
            history=len(messages) - 2,
            context_used=context != NO_CONTEXT_SENTINEL,
        )
        return PreparedTurn(
            session=session,
            stage=stage,
            context=context,
            messages=messages,
            user_entry=user_entry,
        )

    async def relay(self, turn: PreparedTurn) -> AsyncIterator[str]:
        """
        Stream the model reply for a prepared turn.

        The assistant entry is written, and extraction triggered, only after
        the stream is fully drained. A stream that fails, or that the caller
        stops consuming, leaves only the user entry behind.

        Raises:
            CompletionError: Backend failed, timed out, or returned no text
            StoreError: Reply could not be persisted
        """
        fragments: list[str] = []
        drained = False
        stream = self._completion.stream_complete(turn.messages, self.config.completion)

        try:
            async with aclosing(stream):
                async for fragment in stream:
                    fragments.append(fragment)
                    yield fragment
            drained = True
        finally:
            if not drained:
                log_with_context(
                    logger,
                    logging.WARNING,
                    "Turn ended before the stream finished; reply not persisted",
                    session_id=turn.session_id,
                    stage=turn.stage.value,
                    fragments=len(fragments),
                )

        reply = "".join(fragments)
        if not reply.strip():
            raise CompletionError("Completion stream returned no text")

        await self._transcripts.append(
            turn.session_id,
            "assistant",
            reply,
            metadata={
                "stage": turn.stage.value,
                "timestamp": utc_now_iso(),
                "rag_context_used": turn.context_used,
            },
        )
        log_with_context(
            logger,
            logging.INFO,
            "Turn completed",
            session_id=turn.session_id,
            stage=turn.stage.value,
            reply_chars=len(reply),
        )

        self._background.spawn(
            self._extract_quietly(turn.session_id, turn.stage),
            name=f"extract:{turn.session_id}:{turn.stage.value}",
        )

    async def _extract_quietly(self, session_id: str, stage: Stage) -> None:
        result = await self._extraction.extract(session_id, stage=stage)
        if not result.success:
            logger.info(
                f"Background extraction did not store an insight: {result.reason}",
                extra={"session_id": session_id},
            )

    async def start_turn(
        self, session_id: str, message: str, owner_id: str | None = None
    ) -> AsyncIterator[str]:
        """Prepare a turn eagerly and return its lazy fragment stream."""
        turn = await self.prepare_turn(session_id, message, owner_id=owner_id)
        return self.relay(turn)

    async def handle_turn(
        self, session_id: str, message: str, owner_id: str | None = None
    ) -> AsyncIterator[str]:
        """Single lazy sequence covering the whole turn, preparation included."""
        turn = await self.prepare_turn(session_id, message, owner_id=owner_id)
        async with aclosing(self.relay(turn)) as fragments:
            async for fragment in fragments:
                yield fragment

"""Asynchronous extraction of structured insights from a session transcript.

At most one extraction runs per (session, stage) at a time. A caller that
arrives while a run is in flight queues one follow-up run; callers arriving
while that follow-up is still queued share its result instead of queueing
more. The follow-up reads the transcript only after the in-flight run has
written, so the last write always reflects the newest transcript it saw.
"""

import asyncio
import logging

from diagnosis_engine.core.completion import CompletionClient, CompletionOptions
from diagnosis_engine.core.exceptions import (
    DiagnosisError,
    InvalidExtractionError,
    UnknownStageError,
)
from diagnosis_engine.core.llm import parse_insight_json
from diagnosis_engine.core.logging import get_logger, log_with_context
from diagnosis_engine.core.prompts import build_extraction_prompt, format_transcript_for_extraction
from diagnosis_engine.core.schemas_diagnosis import ExtractionResult
from diagnosis_engine.core.stages import Stage
from diagnosis_engine.db.sessions import SessionStore
from diagnosis_engine.db.transcript import TranscriptStore

logger = get_logger(__name__)

_Key = tuple[str, Stage]


class ExtractionEngine:
    """Re-analyzes a transcript into the current stage's DimensionInsight."""

    def __init__(
        self,
        sessions: SessionStore,
        transcripts: TranscriptStore,
        completion: CompletionClient,
        options: CompletionOptions | None = None,
    ):
        self._sessions = sessions
        self._transcripts = transcripts
        self._completion = completion
        self._options = options or CompletionOptions(temperature=0.3)
        self._locks: dict[_Key, asyncio.Lock] = {}
        self._queued: dict[_Key, asyncio.Task] = {}
        self._tasks: set[asyncio.Task] = set()

    def in_flight(self, session_id: str, stage: Stage) -> bool:
        lock = self._locks.get((session_id, stage))
        return lock is not None and lock.locked()

    async def extract(
        self, session_id: str, owner_id: str | None = None, stage: Stage | None = None
    ) -> ExtractionResult:
        """
        Extract and store the insight for the session's current stage.

        Never raises; failures come back as ``success=False`` with the error
        code in ``reason``. A failed run leaves the stored insight untouched.

        Args:
            session_id: Session UUID
            owner_id: When given, the session must belong to this user
            stage: Stage to score; defaults to the session's current stage

        Returns:
            ExtractionResult with the stored insight on success
        """
        try:
            session = await self._sessions.get_session(session_id, owner_id=owner_id)
            stage = stage or session.stage
            if stage is None:
                raise UnknownStageError(f"Session {session_id} has unknown stage {session.current_stage!r}")
        except DiagnosisError as e:
            return self._failure(session_id, None, e)

        return await self._run_exclusive((session_id, stage))

    def _spawn(self, coro, key: _Key) -> asyncio.Task:
        task = asyncio.create_task(coro, name=f"extract:{key[0]}:{key[1].value}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run_exclusive(self, key: _Key) -> ExtractionResult:
        # Runs are engine-owned tasks that callers only await
        run = self._queued.get(key)
        if run is None:
            lock = self._locks.setdefault(key, asyncio.Lock())
            if lock.locked():
                run = self._spawn(self._run_when_free(key, lock), key)
                self._queued[key] = run
            else:
                # Free lock: acquired without suspending
                await lock.acquire()
                run = self._spawn(self._run_holding(key, lock), key)
        return await asyncio.shield(run)

    async def _run_when_free(self, key: _Key, lock: asyncio.Lock) -> ExtractionResult:
        try:
            await lock.acquire()
        finally:
            if self._queued.get(key) is asyncio.current_task():
                del self._queued[key]
        # From here on, new callers queue a fresh run that reads a newer transcript
        return await self._run_holding(key, lock)

    async def _run_holding(self, key: _Key, lock: asyncio.Lock) -> ExtractionResult:
        try:
            return await self._run(*key)
        finally:
            lock.release()
            if key not in self._queued and not lock.locked():
                self._locks.pop(key, None)

    async def _run(self, session_id: str, stage: Stage) -> ExtractionResult:
        try:
            # Reload inside the lock: the session may have been deleted while queued
            await self._sessions.get_session(session_id)
            transcript = await self._transcripts.list_entries(session_id)

            conversation = format_transcript_for_extraction(transcript)
            if not conversation:
                raise InvalidExtractionError("Transcript has no conversation to analyze")

            messages = [
                {"role": "system", "content": build_extraction_prompt(stage)},
                {"role": "user", "content": conversation},
            ]
            raw_output = await self._completion.complete(messages, self._options)
            insight = parse_insight_json(raw_output)

            await self._sessions.replace_insight(session_id, stage, insight)
        except DiagnosisError as e:
            return self._failure(session_id, stage, e)
        except Exception as e:
            logger.exception(f"Unexpected extraction failure for session {session_id}: {e}")
            return ExtractionResult(
                success=False, stage=stage, error=str(e), reason="INTERNAL_ERROR"
            )

        log_with_context(
            logger,
            logging.INFO,
            f"Extracted {stage.value} insight (score={insight.score:g})",
            session_id=session_id,
            stage=stage.value,
            entries=len(transcript),
        )
        return ExtractionResult(success=True, stage=stage, insight=insight)

    @staticmethod
    def _failure(session_id: str, stage: Stage | None, error: DiagnosisError) -> ExtractionResult:
        log_with_context(
            logger,
            logging.WARNING,
            f"Extraction failed: {error}",
            session_id=session_id,
            stage=stage.value if stage else None,
            reason=error.code,
        )
        return ExtractionResult(success=False, stage=stage, error=str(error), reason=error.code)

"""Conversation API endpoints: streaming turns and transcript management."""

import json
from collections.abc import AsyncIterator
from contextlib import aclosing
from typing import Any

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from diagnosis_engine.api.deps import Services, get_owner_id, get_services, to_http_exception
from diagnosis_engine.core.exceptions import DiagnosisError
from diagnosis_engine.core.logging import get_logger
from diagnosis_engine.core.schemas_diagnosis import TranscriptEntry, TranscriptRole

logger = get_logger(__name__)

router = APIRouter()


class ChatRequest(BaseModel):
    """One user message for the advisor."""

    message: str = Field(..., min_length=1, description="User message")


class ImportedMessage(BaseModel):
    """A transcript entry supplied by the caller."""

    role: TranscriptRole
    content: str = Field(..., min_length=1)
    metadata: dict[str, Any] = Field(default_factory=dict)


class ImportMessagesRequest(BaseModel):
    """Entries to append to a transcript, in order."""

    messages: list[ImportedMessage] = Field(..., min_length=1, max_length=200)


def _sse_event(data: dict) -> str:
    """Format a dict as an SSE data line."""
    return f"data: {json.dumps(data, ensure_ascii=False)}\n\n"


async def _event_stream(fragments: AsyncIterator[str], session_id: str) -> AsyncIterator[str]:
    """Wrap turn fragments as SSE: chunk* → done, or a terminal error event."""
    async with aclosing(fragments):
        try:
            async for fragment in fragments:
                yield _sse_event({"type": "chunk", "content": fragment})
        except DiagnosisError as e:
            logger.error(f"Turn failed mid-stream: {e}", extra={"session_id": session_id})
            yield _sse_event({"type": "error", "code": e.code, "message": str(e)})
            return
    yield _sse_event({"type": "done"})


@router.post("/sessions/{session_id}/chat")
async def chat(
    session_id: str,
    request: ChatRequest,
    owner_id: str | None = Depends(get_owner_id),
    services: Services = Depends(get_services),
) -> StreamingResponse:
    """
    Send a message and stream the advisor's reply.

    Session lookup and user-message persistence happen before the response
    starts, so a missing session is a plain 404. Failures after that arrive
    as a terminal ``error`` event.
    """
    try:
        fragments = await services.conversation.start_turn(
            session_id, request.message, owner_id=owner_id
        )
    except DiagnosisError as e:
        raise to_http_exception(e) from e

    return StreamingResponse(
        _event_stream(fragments, session_id),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@router.get("/sessions/{session_id}/messages", response_model=list[TranscriptEntry])
async def list_messages(
    session_id: str,
    owner_id: str | None = Depends(get_owner_id),
    services: Services = Depends(get_services),
) -> list[TranscriptEntry]:
    """Transcript for a session in creation order."""
    try:
        await services.sessions.get_session(session_id, owner_id=owner_id)
        return await services.transcripts.list_entries(session_id)
    except DiagnosisError as e:
        raise to_http_exception(e) from e


@router.post(
    "/sessions/{session_id}/messages", response_model=list[TranscriptEntry], status_code=201
)
async def import_messages(
    session_id: str,
    request: ImportMessagesRequest,
    owner_id: str | None = Depends(get_owner_id),
    services: Services = Depends(get_services),
) -> list[TranscriptEntry]:
    """
    Append several transcript entries in one insert.

    Used to seed or restore a conversation. Entries are stored in the order
    given and do not trigger extraction.
    """
    entries = [
        TranscriptEntry(
            session_id=session_id,
            role=message.role,
            content=message.content,
            metadata=message.metadata,
        )
        for message in request.messages
    ]
    try:
        await services.sessions.get_session(session_id, owner_id=owner_id)
        stored = await services.transcripts.append_many(entries)
    except DiagnosisError as e:
        raise to_http_exception(e) from e

    logger.info(f"Imported {len(stored)} messages", extra={"session_id": session_id})
    return stored


@router.delete("/messages/{message_id}")
async def delete_message(
    message_id: str,
    owner_id: str | None = Depends(get_owner_id),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """Delete a single transcript entry."""
    try:
        entry = await services.transcripts.get_entry(message_id)
        await services.sessions.get_session(entry.session_id, owner_id=owner_id)
        await services.transcripts.delete_entry(message_id)
    except DiagnosisError as e:
        raise to_http_exception(e) from e
    return {"success": True, "message_id": message_id}

"""Diagnosis session API endpoints."""

from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from diagnosis_engine.api.deps import Services, get_owner_id, get_services, to_http_exception
from diagnosis_engine.core.exceptions import DiagnosisError
from diagnosis_engine.core.logging import get_logger
from diagnosis_engine.core.schemas_diagnosis import Session, TranscriptEntry

logger = get_logger(__name__)

router = APIRouter()


class SessionDetail(BaseModel):
    """A session with its full transcript."""

    session: Session
    messages: list[TranscriptEntry]


class CompleteSessionRequest(BaseModel):
    """Request to close out a session."""

    summary_report: str | None = None


@router.post("/sessions", response_model=Session, status_code=201)
async def create_session(
    owner_id: str | None = Depends(get_owner_id),
    services: Services = Depends(get_services),
) -> Session:
    """Start a new diagnosis at the strategy stage."""
    try:
        return await services.sessions.create_session(owner_id)
    except DiagnosisError as e:
        raise to_http_exception(e) from e


@router.get("/sessions", response_model=list[Session])
async def list_sessions(
    owner_id: str | None = Depends(get_owner_id),
    services: Services = Depends(get_services),
) -> list[Session]:
    """List sessions, newest first. Scoped to the caller when X-User-Id is sent."""
    try:
        return await services.sessions.list_sessions(owner_id)
    except DiagnosisError as e:
        raise to_http_exception(e) from e


@router.get("/sessions/{session_id}", response_model=SessionDetail)
async def get_session(
    session_id: str,
    owner_id: str | None = Depends(get_owner_id),
    services: Services = Depends(get_services),
) -> SessionDetail:
    """
    Get a session and its transcript.

    Args:
        session_id: Session UUID

    Returns:
        Session record plus messages in creation order
    """
    try:
        session = await services.sessions.get_session(session_id, owner_id=owner_id)
        messages = await services.transcripts.list_entries(session_id)
    except DiagnosisError as e:
        raise to_http_exception(e) from e
    return SessionDetail(session=session, messages=messages)


@router.post("/sessions/{session_id}/complete", response_model=Session)
async def complete_session(
    session_id: str,
    request: CompleteSessionRequest,
    owner_id: str | None = Depends(get_owner_id),
    services: Services = Depends(get_services),
) -> Session:
    """Mark a session completed and compute its total score."""
    try:
        session = await services.sessions.get_session(session_id, owner_id=owner_id)
        if session.status == "completed":
            raise HTTPException(status_code=409, detail="Session already completed")
        return await services.sessions.complete_session(session_id, request.summary_report)
    except DiagnosisError as e:
        raise to_http_exception(e) from e


@router.delete("/sessions/{session_id}")
async def delete_session(
    session_id: str,
    owner_id: str | None = Depends(get_owner_id),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """Delete a session together with its transcript."""
    try:
        await services.sessions.get_session(session_id, owner_id=owner_id)
        await services.sessions.delete_session(session_id)
    except DiagnosisError as e:
        raise to_http_exception(e) from e
    return {"success": True, "session_id": session_id}

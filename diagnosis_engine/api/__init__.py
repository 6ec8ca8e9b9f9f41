"""API router for v1 endpoints."""

from fastapi import APIRouter

from diagnosis_engine.api import chat, extraction, knowledge, sessions, stages

router = APIRouter()

router.include_router(sessions.router, tags=["sessions"])

router.include_router(chat.router, tags=["chat"])

router.include_router(extraction.router, tags=["extraction"])

router.include_router(stages.router, tags=["stages"])

router.include_router(knowledge.router, tags=["knowledge"])

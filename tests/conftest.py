"""Pytest configuration and fixtures."""

import os

import pytest

from diagnosis_engine.core.background import BackgroundTasks
from diagnosis_engine.core.completion import CompletionOptions
from diagnosis_engine.core.conversation import ConversationConfig, ConversationOrchestrator
from diagnosis_engine.core.extraction import ExtractionEngine
from diagnosis_engine.core.retrieval import Retriever
from diagnosis_engine.core.stages import StageController
from tests.fakes.fake_ai import FakeCompletion, FakeEmbedder
from tests.fakes.fake_db import FakeKnowledgeStore, FakeSessionStore, FakeTranscriptStore


@pytest.fixture(scope="session", autouse=True)
def setup_test_env():
    """Set up test environment variables."""
    os.environ["SUPABASE_URL"] = "https://test.supabase.co"
    os.environ["SUPABASE_SERVICE_ROLE_KEY"] = "test-key"
    os.environ["OPENAI_API_KEY"] = "test-openai-key"
    os.environ["ZHIPU_API_KEY"] = "test-zhipu-key"
    os.environ["DIAG_ENGINE_ENV"] = "test"


@pytest.fixture
def sessions():
    return FakeSessionStore()


@pytest.fixture
def transcripts(sessions):
    store = FakeTranscriptStore()
    sessions.transcripts = store
    return store


@pytest.fixture
def knowledge():
    return FakeKnowledgeStore()


@pytest.fixture
def embedder():
    return FakeEmbedder()


@pytest.fixture
def completion():
    return FakeCompletion()


@pytest.fixture
def retriever(embedder, knowledge):
    return Retriever(embedder, knowledge)


@pytest.fixture
def background():
    return BackgroundTasks()


@pytest.fixture
def extraction(sessions, transcripts, completion):
    return ExtractionEngine(
        sessions, transcripts, completion, options=CompletionOptions(temperature=0.3)
    )


@pytest.fixture
def stage_controller(sessions):
    return StageController(sessions)


@pytest.fixture
def orchestrator(sessions, transcripts, retriever, completion, extraction, background):
    return ConversationOrchestrator(
        sessions,
        transcripts,
        retriever,
        completion,
        extraction,
        background,
        config=ConversationConfig(history_limit=10),
    )

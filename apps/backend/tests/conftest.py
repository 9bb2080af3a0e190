"""Shared test fixtures for pytest.

We set minimal env defaults (e.g. SECRET_KEY) early so importing modules
that instantiate settings (core.security) succeeds without needing an
external .env file during tests.
"""

import os
from collections.abc import AsyncGenerator, Generator

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient
from pydantic_ai import models


os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("ENVIRONMENT", "test")

# Block any real model requests in tests
models.ALLOW_MODEL_REQUESTS = False

from chat_fakes import (  # noqa: E402
    FakeDocumentStore,
    FakeEmbedder,
    FakeLedger,
    FakePersister,
    FakeRetriever,
    FakeTextGenerator,
)
from core.security import create_access_token  # noqa: E402
from dependencies.services import ChatPipeline, get_chat_pipeline  # noqa: E402
from main import app  # noqa: E402
from services.chapter_service import ChapterGenerationService  # noqa: E402
from services.rag_service import RagAnswerService  # noqa: E402
from services.rerank import RetrievalRerankEngine  # noqa: E402


USER_ID = "user-1"


@pytest.fixture
def client() -> Generator[TestClient, None, None]:
    """
    Create a test client for the FastAPI application.
    """
    with TestClient(app) as client:
        yield client


@pytest.fixture
def auth_headers() -> dict[str, str]:
    token = create_access_token({"sub": USER_ID, "email": "parent@example.test"})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture
def chat_generator() -> FakeTextGenerator:
    """Streams answers, page drafts and outlines."""
    return FakeTextGenerator()


@pytest.fixture
def lite_generator() -> FakeTextGenerator:
    """Scores relevance and classifies follow-up actions."""
    return FakeTextGenerator()


@pytest.fixture
def embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def retriever() -> FakeRetriever:
    return FakeRetriever()


@pytest.fixture
def document_store() -> FakeDocumentStore:
    return FakeDocumentStore()


@pytest.fixture
def persister() -> FakePersister:
    return FakePersister()


@pytest.fixture
def rerank_engine(
    embedder: FakeEmbedder, retriever: FakeRetriever, lite_generator: FakeTextGenerator
) -> RetrievalRerankEngine:
    return RetrievalRerankEngine(
        embedder, retriever, lite_generator, candidate_count=10, min_score=3.0
    )


@pytest.fixture
def rag_service(
    chat_generator: FakeTextGenerator,
    lite_generator: FakeTextGenerator,
    rerank_engine: RetrievalRerankEngine,
) -> RagAnswerService:
    return RagAnswerService(chat_generator, lite_generator, rerank_engine)


@pytest.fixture
def chapter_service(
    document_store: FakeDocumentStore,
    chat_generator: FakeTextGenerator,
    lite_generator: FakeTextGenerator,
    persister: FakePersister,
) -> ChapterGenerationService:
    return ChapterGenerationService(document_store, lite_generator, chat_generator, persister)


@pytest.fixture
def pipeline(
    ledger: FakeLedger,
    rag_service: RagAnswerService,
    chapter_service: ChapterGenerationService,
) -> ChatPipeline:
    return ChatPipeline(ledger=ledger, rag=rag_service, chapters=chapter_service)


@pytest_asyncio.fixture
async def async_client(pipeline: ChatPipeline) -> AsyncGenerator[AsyncClient, None]:
    """Async client whose chat pipeline runs entirely on in-memory fakes."""
    app.dependency_overrides[get_chat_pipeline] = lambda: pipeline
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client
    app.dependency_overrides.pop(get_chat_pipeline, None)

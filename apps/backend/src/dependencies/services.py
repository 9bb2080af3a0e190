"""Wiring of the chat generation pipeline.

Everything is built lazily on first request and cached for the process.
Tests replace the whole pipeline with ``app.dependency_overrides``.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache

from dependencies.db import AsyncSessionLocal
from services.ai.interfaces import UsageLedger
from services.ai.model_factory import (
    get_chat_model,
    get_current_embedding_model_name,
    get_text_model,
)
from services.ai.text_generator import PydanticAITextGenerator
from services.chapter_service import ChapterGenerationService
from services.document_store import SqlDocumentStore
from services.embedding_service import ProviderEmbedder
from services.page_persister import SqlPagePersister
from services.rag_service import RagAnswerService
from services.rerank import RetrievalRerankEngine
from services.retrieval import PgVectorRetriever
from services.usage_ledger import SqlUsageLedger


@dataclass(frozen=True)
class ChatPipeline:
    ledger: UsageLedger
    rag: RagAnswerService
    chapters: ChapterGenerationService


@lru_cache
def get_chat_pipeline() -> ChatPipeline:
    chat = PydanticAITextGenerator(get_chat_model)
    lite = PydanticAITextGenerator(get_text_model)
    embedder = ProviderEmbedder()
    ledger = SqlUsageLedger(AsyncSessionLocal)

    rerank = RetrievalRerankEngine(embedder, PgVectorRetriever(AsyncSessionLocal), lite)
    persister = SqlPagePersister(
        AsyncSessionLocal,
        ledger,
        embedder,
        embedding_model=get_current_embedding_model_name(),
    )
    return ChatPipeline(
        ledger=ledger,
        rag=RagAnswerService(chat, lite, rerank),
        chapters=ChapterGenerationService(
            SqlDocumentStore(AsyncSessionLocal), lite, chat, persister
        ),
    )

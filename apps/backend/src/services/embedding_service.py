"""Generate page and query embeddings using Gemini or Azure OpenAI APIs."""

from __future__ import annotations

import logging
from typing import Any

import numpy as np

from core.config import get_settings
from models.pages import EMBEDDING_DIMENSIONS
from services.ai.interfaces import EmbeddingTask
from services.ai.model_factory import (
    get_current_embedding_model_name,
    get_embedding_client,
)


logger = logging.getLogger(__name__)


def _is_azure_provider() -> bool:
    """Check if Azure OpenAI should be used for embeddings."""
    settings = get_settings()
    return settings.LLM_PROVIDER == "azure_openai"


def normalize_embedding(embedding: np.ndarray, embed_type: str) -> list[float]:
    """Normalize embedding for cosine similarity."""
    norm = np.linalg.norm(embedding)

    if norm == 0:
        raise ValueError(
            f"{embed_type.capitalize()} embedding has zero norm (all zeros). "
            "Cannot normalize."
        )

    normalized = embedding / norm
    return list(normalized.tolist())


class ProviderEmbedder:
    """Embedder backed by the configured provider's embedding endpoint.

    Gemini receives the task type so query and document vectors are tuned
    separately; Azure uses one embedding for both.
    """

    def __init__(self, client: Any | None = None, model_name: str | None = None) -> None:
        self._client = client
        self._model_name = model_name

    @property
    def client(self) -> Any:
        if self._client is None:
            self._client = get_embedding_client()
        return self._client

    @property
    def model_name(self) -> str:
        return self._model_name or get_current_embedding_model_name()

    async def embed(self, text: str, task: EmbeddingTask) -> list[float]:
        if _is_azure_provider():
            return await self._embed_azure(text, task)
        return await self._embed_gemini(text, task)

    async def _embed_azure(self, text: str, task: EmbeddingTask) -> list[float]:
        response = await self.client.embeddings.create(
            model=self.model_name,
            input=text,
            dimensions=EMBEDDING_DIMENSIONS,
        )

        if not response.data:
            raise ValueError("No embeddings returned from Azure API")

        embedding = np.array(response.data[0].embedding)
        return normalize_embedding(embedding, _embed_type(task))

    async def _embed_gemini(self, text: str, task: EmbeddingTask) -> list[float]:
        from google.genai import types

        result = await self.client.aio.models.embed_content(
            model=self.model_name,
            contents=text,
            config=types.EmbedContentConfig(
                task_type=task,
                output_dimensionality=EMBEDDING_DIMENSIONS,
            ),
        )

        if not result.embeddings:
            raise ValueError("No embeddings returned from Gemini API")

        embedding = np.array(result.embeddings[0].values)
        return normalize_embedding(embedding, _embed_type(task))


def _embed_type(task: EmbeddingTask) -> str:
    return "query" if task == "RETRIEVAL_QUERY" else "document"

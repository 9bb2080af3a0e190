"""Centralized AI model factory for all LLM/embedding operations.

Supports Gemini and Azure OpenAI based on ``LLM_PROVIDER``.

Usage:
    from services.ai.model_factory import get_chat_model, get_text_model

    model = get_chat_model()  # answers, page drafts
    scorer = get_text_model()  # relevance scoring, classification, outlines
    client = get_embedding_client()  # provider-specific async client
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import TYPE_CHECKING, Any, cast

from pydantic_ai.models import Model
from pydantic_ai.models.google import GoogleModel
from pydantic_ai.models.openai import OpenAIChatModel
from pydantic_ai.providers.google import GoogleProvider
from pydantic_ai.providers.openai import OpenAIProvider

from core.config import get_settings


# OpenAI reasoning models that support reasoning_effort parameter
REASONING_MODELS = {
    "gpt-5-mini",
    "gpt-5-nano",
    "o3-mini",
}


if TYPE_CHECKING:
    from httpx import AsyncClient

logger = logging.getLogger(__name__)

_NO_PROVIDER_MESSAGE = (
    "No valid LLM provider configured. Either set Azure OpenAI "
    "credentials (AZURE_OPENAI_ENDPOINT + AZURE_OPENAI_API_KEY) "
    "or Gemini credentials (GEMINI_API_KEY)."
)


def _normalize_azure_endpoint(endpoint: str) -> str:
    """Strip trailing slashes; Azure treats ``//openai/...`` as another path."""
    return endpoint.rstrip("/")


def _is_azure_provider() -> bool:
    return get_settings().LLM_PROVIDER == "azure_openai"


def _validate_azure_credentials() -> bool:
    settings = get_settings()
    if (
        not settings.AZURE_OPENAI_ENDPOINT
        or not settings.AZURE_OPENAI_API_KEY
        or not settings.AZURE_OPENAI_API_VERSION
    ):
        logger.warning(
            "LLM_PROVIDER=azure_openai but credentials missing, falling back to Gemini"
        )
        return False
    return True


def _validate_gemini_credentials() -> bool:
    if not get_settings().GEMINI_API_KEY:
        logger.warning("Gemini API key not configured")
        return False
    return True


def _create_azure_model(model_name: str, http_client: AsyncClient | None = None) -> Model:
    """Create an Azure OpenAI model; reasoning models get low effort."""
    settings = get_settings()

    from openai import AsyncAzureOpenAI

    azure_client = AsyncAzureOpenAI(
        azure_endpoint=_normalize_azure_endpoint(settings.AZURE_OPENAI_ENDPOINT or ""),
        api_key=settings.AZURE_OPENAI_API_KEY,
        api_version=settings.AZURE_OPENAI_API_VERSION,
        http_client=http_client,
    )
    provider = OpenAIProvider(openai_client=azure_client)

    if model_name in REASONING_MODELS:
        logger.info("Applying low reasoning effort for reasoning model: %s", model_name)
        return OpenAIChatModel(
            model_name,
            provider=provider,
            settings={"openai_reasoning_effort": "low"},
        )
    return OpenAIChatModel(model_name, provider=provider)


def _create_gemini_model(model_name: str, http_client: AsyncClient | None = None) -> Model:
    provider = GoogleProvider(
        api_key=get_settings().GEMINI_API_KEY,
        http_client=http_client,
    )
    return cast(Model, GoogleModel(model_name, provider=provider))


def _resolve_model(model_name: str, purpose: str, http_client: AsyncClient | None) -> Model:
    if _is_azure_provider() and _validate_azure_credentials():
        logger.info("Using Azure OpenAI %s model: %s", purpose, model_name)
        return _create_azure_model(model_name, http_client)

    if not _validate_gemini_credentials():
        raise ValueError(_NO_PROVIDER_MESSAGE)

    logger.info("Using Gemini %s model: %s", purpose, model_name)
    return _create_gemini_model(model_name, http_client)


def get_chat_model(http_client: AsyncClient | None = None) -> Model:
    """Model for user-facing prose: chat answers, surprise ideas, page drafts."""
    return _resolve_model(get_settings().CHAT_MODEL, "chat", http_client)


def get_text_model(http_client: AsyncClient | None = None) -> Model:
    """Fast model for short internal tasks: scoring, classification, outlines."""
    return _resolve_model(get_settings().TEXT_MODEL, "text", http_client)


@lru_cache
def get_embedding_client() -> Any:
    """Get the cached embedding client for the configured provider.

    For Azure: AsyncAzureOpenAI client
    For Gemini: google.genai.Client
    """
    settings = get_settings()

    if _is_azure_provider() and _validate_azure_credentials():
        from openai import AsyncAzureOpenAI

        logger.info("Using Azure OpenAI for embeddings: %s", settings.EMBEDDING_MODEL)
        return AsyncAzureOpenAI(
            azure_endpoint=_normalize_azure_endpoint(
                settings.AZURE_OPENAI_ENDPOINT or ""
            ),
            api_key=settings.AZURE_OPENAI_API_KEY,
            api_version=settings.AZURE_OPENAI_API_VERSION,
        )

    if not _validate_gemini_credentials():
        raise ValueError(_NO_PROVIDER_MESSAGE)

    from google import genai

    logger.info("Using Gemini for embeddings: %s", settings.EMBEDDING_MODEL)
    return genai.Client(api_key=settings.GEMINI_API_KEY)


def get_current_embedding_model_name() -> str:
    return get_settings().EMBEDDING_MODEL


def clear_embedding_client_cache() -> None:
    """Clear the cached embedding client (tests, runtime reconfiguration)."""
    get_embedding_client.cache_clear()

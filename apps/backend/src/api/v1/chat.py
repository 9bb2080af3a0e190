"""Chat streaming endpoint: RAG answers, surprise prompts and chapter drafts."""

from __future__ import annotations

import asyncio
import logging
from typing import Annotated

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from core.exceptions import (
    CancelledByClient,
    DomainError,
    InvalidRequestError,
    UpstreamGenerationError,
)
from core.observability import get_tracer
from core.streaming import GenerationMode, GenerationSession, StreamSession
from dependencies.auth import CurrentIdentity
from dependencies.services import ChatPipeline, get_chat_pipeline
from schemas.chat_streaming import ChatStreamRequest, DonePayload
from services import router as route_resolver


logger = logging.getLogger(__name__)
tracer = get_tracer(__name__)

router = APIRouter(prefix="/chat", tags=["chat"])

GENERAL_SCOPE = "general"

# Strong references so handler tasks outlive the request that started them
_running_generations: set[asyncio.Task[None]] = set()


def _get_user_friendly_error_message(exc: Exception) -> str:
    """Convert technical exceptions to user-friendly error messages.

    Handles common AI API errors like rate limits and overloaded models
    with actionable guidance for users.
    """
    exc_str = str(exc).lower()

    # Gemini API overload / service unavailable
    if "503" in exc_str or "overloaded" in exc_str or "unavailable" in exc_str:
        return (
            "The AI service is currently experiencing high demand. "
            "Please wait a moment and try again."
        )

    # Rate limiting
    if "429" in exc_str or "rate limit" in exc_str:
        return "You've sent too many requests. Please wait a minute before trying again."

    # Timeout errors
    if "timeout" in exc_str or "timed out" in exc_str:
        return (
            "The request took too long to complete. "
            "Please try a simpler question or try again later."
        )

    # Network/connection errors
    if "connection" in exc_str or "network" in exc_str:
        return (
            "There was a network issue connecting to the AI service. "
            "Please check your connection and try again."
        )

    # Fall back to a generic message for unknown errors
    logger.error("Unhandled chat error: %s", exc)
    return "Something went wrong. Please try again."


def _select_mode(payload: ChatStreamRequest) -> GenerationMode:
    if payload.is_surprise:
        return "surprise"
    decision = route_resolver.resolve(payload.action, payload.has_chapter_context)
    if decision.route == "error":
        raise InvalidRequestError(decision.error or "Invalid request")
    return decision.route


async def _dispatch(
    session: StreamSession,
    payload: ChatStreamRequest,
    user_id: str,
    pipeline: ChatPipeline,
) -> DonePayload:
    mode = session.generation.mode
    if mode == "surprise":
        result = await pipeline.rag.stream_surprise(session, payload.messages)
    elif mode == "chapter":
        result = await pipeline.chapters.stream(
            session,
            payload.messages,
            user_id,
            payload.book_id or "",
            payload.chapter_id or "",
        )
    else:
        result = await pipeline.rag.stream(
            session,
            payload.messages,
            user_id,
            use_retrieval=payload.scope != GENERAL_SCOPE,
            has_chapter_context=payload.has_chapter_context,
        )
    if result is None or session.generation.cancelled:
        raise CancelledByClient()
    return result


async def _run_generation(
    session: StreamSession,
    payload: ChatStreamRequest,
    user_id: str,
    pipeline: ChatPipeline,
) -> None:
    """Drive one generation to exactly one terminal frame, or none if the client left."""
    generation = session.generation
    try:
        with tracer.start_as_current_span("chat.stream") as span:
            span.set_attribute("chat.mode", generation.mode)
            result = await _dispatch(session, payload, user_id, pipeline)
        session.send("done", result.to_payload())
    except CancelledByClient:
        logger.debug("Generation %s cancelled by client", generation.request_id)
    except UpstreamGenerationError as exc:
        # Provider text is not meant for end users
        logger.warning("Generation %s upstream failure: %s", generation.request_id, exc)
        session.send("error", {"message": _get_user_friendly_error_message(exc)})
    except DomainError as exc:
        logger.info("Generation %s failed: %s", generation.request_id, exc.error_code)
        session.send("error", {"message": exc.message})
    except Exception as exc:
        logger.exception("Generation %s failed", generation.request_id)
        session.send("error", {"message": _get_user_friendly_error_message(exc)})
    finally:
        session.close()


@router.post("/stream", response_class=StreamingResponse)
async def stream_chat(
    payload: ChatStreamRequest,
    identity: CurrentIdentity,
    pipeline: Annotated[ChatPipeline, Depends(get_chat_pipeline)],
) -> StreamingResponse:
    """Stream a chat answer or chapter draft as server-sent events.

    Validation, quota and routing failures are ordinary status-coded
    responses. Once the stream has begun, failures arrive as an ``error``
    frame and success as a single ``done`` frame.
    """
    if not payload.messages:
        raise InvalidRequestError("Messages are required.")

    await pipeline.ledger.consume(identity.uid, 1)
    mode = _select_mode(payload)

    session = StreamSession(GenerationSession(mode=mode))
    response = session.begin()

    task = asyncio.create_task(_run_generation(session, payload, identity.uid, pipeline))
    _running_generations.add(task)
    task.add_done_callback(_running_generations.discard)
    return response

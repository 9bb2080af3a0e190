"""Event-stream transport with cooperative cancellation.

A ``StreamSession`` owns one request's outgoing frames. Producers call
``send`` from the handler task while Starlette drains ``frames()`` into the
response body. When the client goes away Starlette stops draining, the
generator's ``finally`` latches the session as cancelled and every later
``send`` becomes a no-op. Producers poll the predicate from
``detect_close()`` after each suspension point instead of being interrupted.

The latch depends on Starlette having started ``frames()``. A client that
disconnects before the first frame is pulled never finalizes the generator,
so the flag stays False and the handler runs to completion with its frames
queued in memory until the session is garbage collected.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass, field
from typing import Any, Literal

from fastapi.responses import StreamingResponse

from schemas.chat_streaming import STREAM_EVENT_NAMES, StreamEvent


logger = logging.getLogger(__name__)

READY_FRAME = ":ready\n\n"
SSE_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}

GenerationMode = Literal["surprise", "chapter", "rag"]


@dataclass
class GenerationSession:
    """Per-request generation state; ``cancelled`` only ever goes True."""

    mode: GenerationMode
    request_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    _cancelled: bool = field(default=False, repr=False)

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True


class StreamSession:
    """Unidirectional event stream for a single request."""

    def __init__(self, generation: GenerationSession) -> None:
        self.generation = generation
        self._queue: asyncio.Queue[str | None] = asyncio.Queue()
        self._begun = False
        self._finished = False

    def begin(self) -> StreamingResponse:
        """Commit stream headers and queue the readiness marker.

        After this call the status line is fixed at 200; failures must be
        reported with an ``error`` frame.
        """
        if self._begun:
            raise RuntimeError("Stream already begun")
        self._begun = True
        self._queue.put_nowait(READY_FRAME)
        return StreamingResponse(
            self.frames(), media_type="text/event-stream", headers=SSE_HEADERS
        )

    def send(self, event: str, payload: dict[str, Any]) -> bool:
        """Queue one named frame. Returns False when the frame was dropped."""
        if event not in STREAM_EVENT_NAMES:
            raise ValueError(f"Unknown stream event: {event}")
        if self.generation.cancelled or self._finished:
            return False
        self._queue.put_nowait(StreamEvent(event=event, data=payload).to_sse())  # type: ignore[arg-type]
        return True

    def detect_close(self) -> Callable[[], bool]:
        """Predicate that turns True once the client disconnects and stays True."""
        generation = self.generation
        return lambda: generation.cancelled

    def close(self) -> None:
        """Mark the end of output; the response body completes after queued frames."""
        if not self._finished:
            self._finished = True
            self._queue.put_nowait(None)

    async def frames(self) -> AsyncIterator[str]:
        completed = False
        try:
            while True:
                frame = await self._queue.get()
                if frame is None:
                    completed = True
                    return
                yield frame
        finally:
            if not completed:
                logger.debug(
                    "Client closed stream %s before completion",
                    self.generation.request_id,
                )
                self.generation.cancel()

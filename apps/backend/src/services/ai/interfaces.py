"""Capability interfaces consumed by the generation pipeline.

Services depend on these protocols rather than on concrete providers so the
pipeline can be exercised with in-memory fakes and the providers swapped
without touching orchestration code.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Sequence
from typing import Literal, Protocol, TypeVar

from pydantic import BaseModel

from core.config import PlanLimits
from schemas.auth import Identity
from schemas.chat_streaming import CreatedPage, HistoryMessage, RetrievedDocument


OutputT = TypeVar("OutputT", bound=BaseModel)

EmbeddingTask = Literal["RETRIEVAL_DOCUMENT", "RETRIEVAL_QUERY"]
UsageCounter = Literal["pages"]


class GenerationStream(Protocol):
    """A started streaming generation.

    ``chunks()`` yields text increments as they arrive; ``final_text()``
    returns the full response once the stream has been drained (or the
    provider's complete text when no increments were produced).
    """

    def chunks(self) -> AsyncIterator[str]: ...

    async def final_text(self) -> str: ...


class TextGenerator(Protocol):
    async def generate(
        self, prompt: str, history: Sequence[HistoryMessage] | None = None
    ) -> str:
        """One-shot text generation."""
        ...

    async def generate_structured(
        self, prompt: str, output_type: type[OutputT]
    ) -> OutputT:
        """One-shot generation constrained to ``output_type``."""
        ...

    def stream(
        self,
        prompt: str,
        history: Sequence[HistoryMessage] | None = None,
        *,
        instructions: str | None = None,
    ) -> GenerationStream:
        """Start a streaming generation."""
        ...


class Embedder(Protocol):
    async def embed(self, text: str, task: EmbeddingTask) -> list[float]: ...


class Retriever(Protocol):
    async def query(
        self, vector: Sequence[float], owner_id: str, k: int
    ) -> list[RetrievedDocument]:
        """Nearest documents created by ``owner_id``; never anyone else's."""
        ...


class BookRecord(Protocol):
    id: str
    owner_id: str
    member_ids: list[str]
    title: str | None
    baby_name: str | None


class ChapterRecord(Protocol):
    id: str
    book_id: str
    title: str | None
    description: str | None


class DocumentStore(Protocol):
    async def get_book(self, book_id: str) -> BookRecord | None: ...

    async def get_chapter(self, book_id: str, chapter_id: str) -> ChapterRecord | None: ...


class PagePersister(Protocol):
    async def create(
        self, user_id: str, book_id: str, chapter_id: str, markdown: str
    ) -> CreatedPage: ...


class UsageLedger(Protocol):
    """Per-user counters enforcing plan limits.

    ``reserve`` and ``release`` form an explicit two-step protocol: callers
    reserve before expensive work and release if that work fails.
    """

    async def consume(self, user_id: str, amount: int = 1) -> None: ...

    async def reserve(
        self,
        user_id: str,
        counter: UsageCounter,
        amount: int = 1,
        *,
        message: str | None = None,
    ) -> bool:
        """Return True when a unit was reserved, False when the tier is unlimited."""
        ...

    async def release(self, user_id: str, counter: UsageCounter, amount: int = 1) -> None: ...

    async def limits_for(self, user_id: str) -> PlanLimits: ...


class IdentityVerifier(Protocol):
    def verify(self, token: str) -> Identity: ...

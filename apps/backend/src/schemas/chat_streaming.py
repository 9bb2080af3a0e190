"""Schemas for the chat / chapter generation event stream."""

from __future__ import annotations

import json
from typing import Any, Literal, get_args

from pydantic import BaseModel, ConfigDict, Field, field_validator


MAX_SSE_EVENT_BYTES: int = 65_536

StreamEventName = Literal[
    "outline",
    "page_start",
    "page_chunk",
    "chunk",
    "page_done",
    "page_error",
    "done",
    "error",
]
STREAM_EVENT_NAMES: frozenset[str] = frozenset(get_args(StreamEventName))
# Generated text frames carry whole pages or chapters and are never size-capped
TEXT_EVENT_NAMES: frozenset[str] = frozenset({"chunk", "page_chunk", "done"})

GENERATE_CHAPTER_ACTION = "generate_chapter"
DENY_CHAPTER_ACTION = "deny_generate_chapter"


class StreamEvent(BaseModel):
    """One named frame of the event stream."""

    event: StreamEventName
    data: dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(extra="forbid")

    def to_sse(self) -> str:
        """Serialize to ``event: <name>\\ndata: <json>\\n\\n``.

        Control frames are limited to ``MAX_SSE_EVENT_BYTES``; text frames are not.
        """
        payload = json.dumps(self.data, ensure_ascii=False, default=str)
        if (
            self.event not in TEXT_EVENT_NAMES
            and len(payload.encode("utf-8")) > MAX_SSE_EVENT_BYTES
        ):
            raise ValueError("SSE payload exceeded MAX_SSE_EVENT_BYTES")
        return f"event: {self.event}\ndata: {payload}\n\n"


class ConversationMessage(BaseModel):
    """A single chat turn as sent by the client."""

    role: Literal["user", "assistant", "model", "system"]
    content: str = ""

    @field_validator("content", mode="before")
    @classmethod
    def _none_as_empty(cls, v: object) -> object:
        return "" if v is None else v


class HistoryMessage(BaseModel):
    """Normalized prior turn handed to the text generator."""

    role: Literal["user", "model", "system"]
    content: str


class ChatStreamRequest(BaseModel):
    """Request payload for ``POST /chat/stream``.

    ``source`` and ``context`` are sent by current web clients and ignored.
    """

    messages: list[ConversationMessage] = Field(default_factory=list)
    is_surprise: bool = Field(default=False, alias="isSurprise")
    action: str | None = None
    scope: str | None = None
    book_id: str | None = Field(default=None, alias="bookId")
    chapter_id: str | None = Field(default=None, alias="chapterId")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @property
    def has_chapter_context(self) -> bool:
        return bool(self.book_id and self.chapter_id)


class OutlinePage(BaseModel):
    """A planned page stub produced before any page text is generated.

    ``title`` may be blank in planner output; ``normalize_outline`` drops
    those entries.
    """

    title: str = ""
    summary: str = ""
    key_points: list[str] = Field(default_factory=list, alias="keyPoints")

    model_config = ConfigDict(populate_by_name=True)

    def to_payload(self) -> dict[str, Any]:
        return {"title": self.title, "summary": self.summary, "keyPoints": self.key_points}


class ChapterOutline(BaseModel):
    """Structured output of the outline planner."""

    pages: list[OutlinePage] = Field(default_factory=list)


class SourceRef(BaseModel):
    id: str
    book_id: str | None = None
    chapter_id: str | None = None


class RetrievedDocument(BaseModel):
    """A retrieval candidate, ephemeral to one request."""

    id: str
    text: str
    score: float = Field(default=0.0, ge=0.0, le=10.0)
    source_ref: SourceRef


class Source(BaseModel):
    """Public projection of a document used as answer context."""

    id: str
    short_note: str = Field(alias="shortNote")

    model_config = ConfigDict(populate_by_name=True)


class ChatAction(BaseModel):
    id: str
    label: str


class ActionDecision(BaseModel):
    """Structured output of the follow-up action classifier."""

    show_action: bool = Field(
        default=False, description="Offer the user a follow-up action"
    )
    action_prompt: str | None = Field(
        default=None, description="Short question shown above the action buttons"
    )
    actions: list[Any] = Field(
        default_factory=list, description="Buttons as {id, label} objects"
    )


class DonePayload(BaseModel):
    """The single terminal summary of a completed request."""

    text: str = ""
    sources: list[Source] = Field(default_factory=list)
    action_prompt: str = Field(default="", alias="actionPrompt")
    actions: list[ChatAction] = Field(default_factory=list)
    created_page_ids: list[str] = Field(default_factory=list, alias="createdPageIds")
    page_error: str = Field(default="", alias="pageError")

    model_config = ConfigDict(populate_by_name=True)

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


class CreatedPage(BaseModel):
    id: str
    order: str

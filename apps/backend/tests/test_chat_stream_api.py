"""Tests for the chat streaming endpoint."""

from __future__ import annotations

from datetime import timedelta

import pytest
from fastapi import status
from httpx import AsyncClient

from chat_fakes import (
    FakeBook,
    FakeChapter,
    FakeDocumentStore,
    FakeLedger,
    FakeRetriever,
    FakeTextGenerator,
    ScriptedStream,
    make_doc,
    parse_sse_body,
)
from core.exceptions import UpstreamGenerationError
from core.security import create_access_token
from schemas.chat_streaming import ActionDecision, ChapterOutline, OutlinePage


STREAM_URL = "/api/v1/chat/stream"


def _body(*contents: str, **extra: object) -> dict[str, object]:
    return {"messages": [{"role": "user", "content": c} for c in contents], **extra}


class TestPreStreamErrors:
    """Failures that surface as ordinary status-coded responses."""

    @pytest.mark.asyncio
    async def test_missing_token_is_401(self, async_client: AsyncClient) -> None:
        response = await async_client.post(STREAM_URL, json=_body("hi"))

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.headers["www-authenticate"] == "Bearer"
        assert response.json()["success"] is False

    @pytest.mark.asyncio
    async def test_invalid_token_is_401(self, async_client: AsyncClient) -> None:
        response = await async_client.post(
            STREAM_URL, json=_body("hi"), headers={"Authorization": "Bearer not-a-jwt"}
        )
        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    @pytest.mark.asyncio
    async def test_expired_token_is_401(self, async_client: AsyncClient) -> None:
        token = create_access_token({"sub": "user-1"}, expires_delta=timedelta(minutes=-5))
        response = await async_client.post(
            STREAM_URL, json=_body("hi"), headers={"Authorization": f"Bearer {token}"}
        )
        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    @pytest.mark.asyncio
    async def test_empty_messages_is_400(
        self, async_client: AsyncClient, auth_headers: dict[str, str], ledger: FakeLedger
    ) -> None:
        response = await async_client.post(
            STREAM_URL, json={"messages": []}, headers=auth_headers
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["message"] == "Messages are required."
        assert response.json()["error"]["type"] == "invalid_request"
        assert ledger.used == 0

    @pytest.mark.asyncio
    async def test_malformed_payload_is_422(
        self, async_client: AsyncClient, auth_headers: dict[str, str]
    ) -> None:
        response = await async_client.post(
            STREAM_URL, json={"messages": "hello"}, headers=auth_headers
        )
        assert response.status_code == status.HTTP_422_UNPROCESSABLE_CONTENT

    @pytest.mark.asyncio
    async def test_quota_exhausted_is_429(
        self,
        async_client: AsyncClient,
        auth_headers: dict[str, str],
        ledger: FakeLedger,
        chat_generator: FakeTextGenerator,
    ) -> None:
        ledger.used = ledger.api_calls or 0

        response = await async_client.post(STREAM_URL, json=_body("hi"), headers=auth_headers)

        assert response.status_code == status.HTTP_429_TOO_MANY_REQUESTS
        assert response.json()["message"] == "AI monthly limit reached. Please upgrade your plan."
        assert chat_generator.call_count == 0

    @pytest.mark.asyncio
    async def test_generate_chapter_without_context_is_400(
        self,
        async_client: AsyncClient,
        auth_headers: dict[str, str],
        chat_generator: FakeTextGenerator,
    ) -> None:
        response = await async_client.post(
            STREAM_URL,
            json=_body("draft it", action="generate_chapter", bookId="b1"),
            headers=auth_headers,
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["message"] == "Book and chapter context is required."
        assert chat_generator.call_count == 0


class TestStreaming:
    """Requests that reach the event stream."""

    @pytest.mark.asyncio
    async def test_rag_answer_stream(
        self,
        async_client: AsyncClient,
        auth_headers: dict[str, str],
        ledger: FakeLedger,
        retriever: FakeRetriever,
        chat_generator: FakeTextGenerator,
        lite_generator: FakeTextGenerator,
    ) -> None:
        retriever.corpus["user-1"] = [make_doc("p2", "First steps in the park")]
        lite_generator.replies = ["8"]
        lite_generator.structured = [ActionDecision(show_action=False)]
        chat_generator.streams = [ScriptedStream(["She walked ", "in May."])]

        response = await async_client.post(
            STREAM_URL,
            json=_body("When did she walk?", source="web", context={"page": 1}),
            headers=auth_headers,
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.headers["content-type"].startswith("text/event-stream")
        assert response.headers["cache-control"] == "no-cache, no-transform"
        assert response.headers["x-accel-buffering"] == "no"
        assert response.text.startswith(":ready\n\n")

        events = parse_sse_body(response.text)
        assert [name for name, _ in events] == ["chunk", "chunk", "done"]
        done = events[-1][1]
        assert done == {
            "text": "She walked in May.",
            "sources": [{"id": "p2", "shortNote": "First steps in the park"}],
            "actionPrompt": "",
            "actions": [],
            "createdPageIds": [],
            "pageError": "",
        }
        assert ledger.used == 1

    @pytest.mark.asyncio
    async def test_general_scope_skips_retrieval(
        self,
        async_client: AsyncClient,
        auth_headers: dict[str, str],
        retriever: FakeRetriever,
        chat_generator: FakeTextGenerator,
    ) -> None:
        chat_generator.streams = [ScriptedStream(["Hi"])]

        response = await async_client.post(
            STREAM_URL, json=_body("hello", scope="general"), headers=auth_headers
        )

        assert parse_sse_body(response.text)[-1][0] == "done"
        assert retriever.calls == []

    @pytest.mark.asyncio
    async def test_surprise_bypasses_routing(
        self,
        async_client: AsyncClient,
        auth_headers: dict[str, str],
        chat_generator: FakeTextGenerator,
        retriever: FakeRetriever,
    ) -> None:
        chat_generator.streams = [ScriptedStream(["Write about bath time."])]

        response = await async_client.post(
            STREAM_URL,
            json=_body("surprise me", isSurprise=True, action="generate_chapter"),
            headers=auth_headers,
        )

        assert response.status_code == status.HTTP_200_OK
        events = parse_sse_body(response.text)
        assert [name for name, _ in events] == ["chunk", "done"]
        assert events[-1][1]["text"] == "Write about bath time."
        assert retriever.calls == []

    @pytest.mark.asyncio
    async def test_chapter_generation_stream(
        self,
        async_client: AsyncClient,
        auth_headers: dict[str, str],
        document_store: FakeDocumentStore,
        chat_generator: FakeTextGenerator,
        lite_generator: FakeTextGenerator,
    ) -> None:
        document_store.books["b1"] = FakeBook(id="b1", owner_id="user-1", title="Our Year")
        document_store.chapters["c1"] = FakeChapter(id="c1", book_id="b1", title="Firsts")
        lite_generator.structured = [
            ChapterOutline(pages=[OutlinePage(title="Park"), OutlinePage(title="Film")])
        ]
        chat_generator.streams = [ScriptedStream(["one"]), ScriptedStream(["two"])]

        response = await async_client.post(
            STREAM_URL,
            json=_body("write it", action="generate_chapter", bookId="b1", chapterId="c1"),
            headers=auth_headers,
        )

        events = parse_sse_body(response.text)
        names = [name for name, _ in events]
        assert names[0] == "outline"
        assert names.count("page_done") == 2
        assert names[-1] == "done"
        assert events[-1][1]["createdPageIds"] == ["page-1", "page-2"]
        assert events[-1][1]["text"] == "onetwo"

    @pytest.mark.asyncio
    async def test_long_chapter_done_frame_is_delivered(
        self,
        async_client: AsyncClient,
        auth_headers: dict[str, str],
        document_store: FakeDocumentStore,
        chat_generator: FakeTextGenerator,
        lite_generator: FakeTextGenerator,
    ) -> None:
        document_store.books["b1"] = FakeBook(id="b1", owner_id="user-1", title="Our Year")
        document_store.chapters["c1"] = FakeChapter(id="c1", book_id="b1", title="Firsts")
        lite_generator.structured = [
            ChapterOutline(pages=[OutlinePage(title="A"), OutlinePage(title="B")])
        ]
        chat_generator.streams = [ScriptedStream(["x" * 36_000]), ScriptedStream(["y" * 36_000])]

        response = await async_client.post(
            STREAM_URL,
            json=_body("write it", action="generate_chapter", bookId="b1", chapterId="c1"),
            headers=auth_headers,
        )

        events = parse_sse_body(response.text)
        names = [name for name, _ in events]
        assert "error" not in names
        assert names[-1] == "done"
        assert events[-1][1]["createdPageIds"] == ["page-1", "page-2"]
        assert len(events[-1][1]["text"]) == 72_000

    @pytest.mark.asyncio
    async def test_chapter_access_denied_is_error_frame(
        self,
        async_client: AsyncClient,
        auth_headers: dict[str, str],
        document_store: FakeDocumentStore,
    ) -> None:
        document_store.books["b1"] = FakeBook(id="b1", owner_id="someone-else")
        document_store.chapters["c1"] = FakeChapter(id="c1", book_id="b1")

        response = await async_client.post(
            STREAM_URL,
            json=_body("write it", action="generate_chapter", bookId="b1", chapterId="c1"),
            headers=auth_headers,
        )

        assert response.status_code == status.HTTP_200_OK
        events = parse_sse_body(response.text)
        assert events == [("error", {"message": "You do not have access to this book."})]

    @pytest.mark.asyncio
    async def test_non_user_last_message_is_error_frame(
        self,
        async_client: AsyncClient,
        auth_headers: dict[str, str],
        chat_generator: FakeTextGenerator,
    ) -> None:
        body = {
            "messages": [
                {"role": "user", "content": "hi"},
                {"role": "assistant", "content": "hello"},
            ]
        }
        response = await async_client.post(STREAM_URL, json=body, headers=auth_headers)

        events = parse_sse_body(response.text)
        assert events == [("error", {"message": "Last message must be from user."})]
        assert chat_generator.call_count == 0

    @pytest.mark.asyncio
    async def test_upstream_failure_is_friendly_error_frame(
        self,
        async_client: AsyncClient,
        auth_headers: dict[str, str],
        chat_generator: FakeTextGenerator,
    ) -> None:
        chat_generator.streams = [
            ScriptedStream(["partial"], error=RuntimeError("503 model overloaded"))
        ]

        response = await async_client.post(
            STREAM_URL, json=_body("q", scope="general"), headers=auth_headers
        )

        events = parse_sse_body(response.text)
        assert [name for name, _ in events] == ["chunk", "error"]
        assert "high demand" in events[-1][1]["message"]

    @pytest.mark.asyncio
    async def test_upstream_error_text_is_not_forwarded(
        self,
        async_client: AsyncClient,
        auth_headers: dict[str, str],
        chat_generator: FakeTextGenerator,
    ) -> None:
        chat_generator.streams = [
            ScriptedStream([], error=UpstreamGenerationError("finish_reason=SAFETY raw"))
        ]

        response = await async_client.post(
            STREAM_URL, json=_body("q", scope="general"), headers=auth_headers
        )

        events = parse_sse_body(response.text)
        assert events == [("error", {"message": "Something went wrong. Please try again."})]

    @pytest.mark.asyncio
    async def test_correlation_id_echoed(
        self,
        async_client: AsyncClient,
        auth_headers: dict[str, str],
        chat_generator: FakeTextGenerator,
    ) -> None:
        chat_generator.streams = [ScriptedStream(["ok"])]

        response = await async_client.post(
            STREAM_URL,
            json=_body("q", scope="general"),
            headers={**auth_headers, "X-Correlation-ID": "trace-123"},
        )
        assert response.headers["x-correlation-id"] == "trace-123"

"""Tests for page persistence quota handling and compensation."""

from __future__ import annotations

import logging

import pytest

from chat_fakes import FakeEmbedder, FakeLedger
from core.exceptions import QuotaExhaustedError
from schemas.chat_streaming import CreatedPage
from services.page_persister import PAGE_LIMIT_MESSAGE, SqlPagePersister


class _Recorder:
    """Replaces the database-facing steps of the persister."""

    def __init__(self, existing: int = 0, insert_error: Exception | None = None) -> None:
        self.existing = existing
        self.insert_error = insert_error
        self.inserted: list[str] = []

    async def count(self, book_id: str, chapter_id: str) -> int:
        return self.existing

    async def insert(self, user_id: str, book_id: str, chapter_id: str, markdown: str):
        if self.insert_error is not None:
            raise self.insert_error
        self.inserted.append(markdown)
        return CreatedPage(id="page-1", order="m")


def _persister(
    ledger: FakeLedger, recorder: _Recorder, embedder: FakeEmbedder | None = None
) -> SqlPagePersister:
    persister = SqlPagePersister(
        None, ledger, embedder or FakeEmbedder(), embedding_model="test-embed"  # type: ignore[arg-type]
    )
    persister._count_pages = recorder.count  # type: ignore[method-assign]
    persister._insert = recorder.insert  # type: ignore[method-assign]
    return persister


class TestCreate:
    """Tests for SqlPagePersister.create."""

    @pytest.mark.asyncio
    async def test_success_reserves_one_page(self) -> None:
        ledger = FakeLedger()
        recorder = _Recorder()

        created = await _persister(ledger, recorder).create("u1", "b1", "c1", "# Hi")

        assert created.id == "page-1"
        assert ledger.events == [("reserve", 1)]
        assert ledger.pages_used == 1
        assert recorder.inserted == ["# Hi"]

    @pytest.mark.asyncio
    async def test_per_chapter_limit_checked_before_reserving(self) -> None:
        ledger = FakeLedger(pages_per_chapter=25)
        recorder = _Recorder(existing=25)

        with pytest.raises(QuotaExhaustedError, match="up to 25 pages per chapter"):
            await _persister(ledger, recorder).create("u1", "b1", "c1", "text")

        assert ledger.events == []
        assert recorder.inserted == []

    @pytest.mark.asyncio
    async def test_unlimited_tier_skips_chapter_limit(self) -> None:
        ledger = FakeLedger(api_calls=None, pages=None, pages_per_chapter=None)
        recorder = _Recorder(existing=500)

        await _persister(ledger, recorder).create("u1", "b1", "c1", "text")

        assert recorder.inserted == ["text"]
        assert ledger.events == []

    @pytest.mark.asyncio
    async def test_page_quota_exhausted(self) -> None:
        ledger = FakeLedger(pages=2, pages_used=2)
        recorder = _Recorder()

        with pytest.raises(QuotaExhaustedError, match=PAGE_LIMIT_MESSAGE):
            await _persister(ledger, recorder).create("u1", "b1", "c1", "text")

        assert recorder.inserted == []

    @pytest.mark.asyncio
    async def test_failure_after_reserve_releases_and_reraises(self) -> None:
        ledger = FakeLedger(pages_used=4)
        recorder = _Recorder(insert_error=RuntimeError("insert failed"))

        with pytest.raises(RuntimeError, match="insert failed"):
            await _persister(ledger, recorder).create("u1", "b1", "c1", "text")

        assert ledger.events == [("reserve", 1), ("release", 1)]
        assert ledger.pages_used == 4

    @pytest.mark.asyncio
    async def test_release_failure_is_logged_not_raised(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        class BrokenReleaseLedger(FakeLedger):
            async def release(self, user_id: str, counter: str, amount: int = 1) -> None:
                raise ConnectionError("db gone")

        recorder = _Recorder(insert_error=RuntimeError("insert failed"))

        with caplog.at_level(logging.ERROR), pytest.raises(RuntimeError, match="insert failed"):
            await _persister(BrokenReleaseLedger(), recorder).create("u1", "b1", "c1", "x")

        assert "Failed to release reserved page quota" in caplog.text

    @pytest.mark.asyncio
    async def test_unlimited_failure_releases_nothing(self) -> None:
        ledger = FakeLedger(api_calls=None, pages=None, pages_per_chapter=None)
        recorder = _Recorder(insert_error=RuntimeError("boom"))

        with pytest.raises(RuntimeError):
            await _persister(ledger, recorder).create("u1", "b1", "c1", "x")

        assert ledger.events == []


class TestEmbedding:
    """Tests for best-effort page embeddings."""

    @pytest.mark.asyncio
    async def test_embeds_document_text(self) -> None:
        embedder = FakeEmbedder(vector=[0.0, 1.0])
        persister = _persister(FakeLedger(), _Recorder(), embedder)

        assert await persister._embed("First steps") == [0.0, 1.0]
        assert embedder.calls == [("First steps", "RETRIEVAL_DOCUMENT")]

    @pytest.mark.asyncio
    async def test_empty_text_not_embedded(self) -> None:
        embedder = FakeEmbedder()
        persister = _persister(FakeLedger(), _Recorder(), embedder)

        assert await persister._embed("") is None
        assert embedder.calls == []

    @pytest.mark.asyncio
    async def test_embedding_failure_stores_without_vector(self) -> None:
        embedder = FakeEmbedder(error=ValueError("zero norm"))
        persister = _persister(FakeLedger(), _Recorder(), embedder)

        assert await persister._embed("text") is None

"""Owner-scoped retrieval followed by LLM relevance reranking."""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass, field

from core.config import get_settings
from core.exceptions import UpstreamGenerationError
from core.observability import get_tracer
from schemas.chat_streaming import RetrievedDocument, Source
from services.ai.interfaces import Embedder, Retriever, TextGenerator
from services.ai.prompts import build_scoring_prompt


logger = logging.getLogger(__name__)
tracer = get_tracer(__name__)

_LEADING_NUMBER_RE = re.compile(r"[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?")


@dataclass
class RerankResult:
    documents: list[RetrievedDocument] = field(default_factory=list)

    @property
    def context_text(self) -> str:
        return "\n\n".join(doc.text for doc in self.documents)

    @property
    def sources(self) -> list[Source]:
        return [Source(id=doc.id, short_note=doc.text[:50] or "Page") for doc in self.documents]


def parse_score(raw: str) -> float | None:
    """Leading number of a scorer reply, or None when it is not numeric."""
    match = _LEADING_NUMBER_RE.match(raw.strip())
    return float(match.group(0)) if match else None


class RetrievalRerankEngine:
    """Fetch up to N candidates for the owner and keep the single best one.

    Each candidate is scored by its own model call. Only a top score strictly
    above the threshold survives; otherwise the context is empty and the
    answer falls back to general knowledge. Every failure along the way
    degrades to an empty result.
    """

    def __init__(
        self,
        embedder: Embedder,
        retriever: Retriever,
        scorer: TextGenerator,
        *,
        candidate_count: int | None = None,
        min_score: float | None = None,
    ) -> None:
        settings = get_settings()
        self._embedder = embedder
        self._retriever = retriever
        self._scorer = scorer
        self._k = candidate_count or settings.RAG_CANDIDATE_COUNT
        self._min_score = settings.RERANK_MIN_SCORE if min_score is None else min_score

    async def retrieve(
        self,
        query: str,
        owner_id: str,
        is_closed: Callable[[], bool] = lambda: False,
    ) -> RerankResult:
        """Best context document for ``query``; empty once ``is_closed`` reads True."""
        with tracer.start_as_current_span("rerank.retrieve") as span:
            try:
                vector = await self._embedder.embed(query, "RETRIEVAL_QUERY")
                candidates = await self._retriever.query(vector, owner_id, self._k)
            except Exception:
                logger.warning("Retrieval failed; answering without context", exc_info=True)
                return RerankResult()
            if is_closed():
                return RerankResult()

            span.set_attribute("rerank.candidates", len(candidates))
            scored: list[tuple[float, RetrievedDocument]] = []
            for doc in candidates:
                try:
                    reply = await self._scorer.generate(build_scoring_prompt(query, doc.text))
                except UpstreamGenerationError:
                    logger.warning("Relevance scoring failed; dropping retrieved context")
                    return RerankResult()
                if is_closed():
                    logger.debug("Client closed stream during reranking")
                    return RerankResult()
                score = parse_score(reply)
                logger.debug("Scored document %s: %s", doc.id, score)
                if score is not None:
                    scored.append((score, doc))

            scored.sort(key=lambda item: item[0], reverse=True)
            if not scored or scored[0][0] <= self._min_score:
                span.set_attribute("rerank.selected", 0)
                return RerankResult()

            best_score, best = scored[0]
            span.set_attribute("rerank.selected", 1)
            logger.info("Selected document %s with score %.2f", best.id, best_score)
            clamped = max(0.0, min(best_score, 10.0))
            return RerankResult([best.model_copy(update={"score": clamped})])

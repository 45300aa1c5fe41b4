"""Second-pass relevance scoring of retrieved passages with Claude."""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import replace
from typing import Any

from recall.llm import AnthropicCompleter
from recall.retrieval.search import SearchResult

logger = logging.getLogger(__name__)

BATCH_SIZE = 5
PASSAGE_CHARS = 800

SYSTEM_PROMPT = (
    "You are a relevance scoring assistant. Score how relevant a text chunk is "
    "to the user's query with a number between 0.0 and 1.0."
)

SCORE_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "score": {
            "type": "number",
            "description": "Relevance between 0.0 (not relevant) and 1.0 (directly answers the query).",
        }
    },
    "required": ["score"],
}


def _build_prompt(query: str, passage: str) -> str:
    return (
        f'User Query: "{query}"\n\n'
        f'Text Chunk:\n"{passage}"\n\n'
        "Rate the relevance on a scale of 0.0 to 1.0, where:\n"
        "- 1.0 = Perfectly relevant, directly answers the query\n"
        "- 0.7-0.9 = Highly relevant, contains important information\n"
        "- 0.4-0.6 = Somewhat relevant, tangentially related\n"
        "- 0.1-0.3 = Minimally relevant, barely related\n"
        "- 0.0 = Not relevant at all"
    )


class Reranker:
    """Scores every ``(query, passage)`` pair and keeps the best *top_n*."""

    def __init__(
        self,
        completer: AnthropicCompleter,
        batch_size: int = BATCH_SIZE,
        passage_chars: int = PASSAGE_CHARS,
    ) -> None:
        self._completer = completer
        self._batch_size = batch_size
        self._passage_chars = passage_chars

    async def score(self, query: str, result: SearchResult) -> float:
        """Relevance of one passage, clamped to [0, 1]; 0.0 on any failure."""
        passage = str(result.payload.get("text", ""))[: self._passage_chars]
        try:
            data = await self._completer.complete_json(
                SYSTEM_PROMPT,
                _build_prompt(query, passage),
                SCORE_SCHEMA,
            )
            value = data.get("score")
            if isinstance(value, bool) or not isinstance(value, int | float) or not math.isfinite(value):
                raise ValueError(f"score is not a number: {value!r}")
        except Exception as exc:
            logger.warning("Rerank scoring failed for point %s: %s", result.id, exc)
            return 0.0
        return max(0.0, min(1.0, float(value)))

    async def rerank(self, query: str, results: list[SearchResult], top_n: int) -> list[SearchResult]:
        """Replace fused scores with relevance scores and return the top *top_n*.

        Lists no longer than *top_n* are returned unchanged.
        """
        if len(results) <= top_n:
            return results
        if top_n <= 0:
            return []

        total_batches = (len(results) + self._batch_size - 1) // self._batch_size
        logger.info("Reranking %d results to top %d in %d batches", len(results), top_n, total_batches)

        scored: list[SearchResult] = []
        for start in range(0, len(results), self._batch_size):
            batch = results[start : start + self._batch_size]
            scores = await asyncio.gather(*(self.score(query, r) for r in batch))
            scored.extend(replace(r, score=s) for r, s in zip(batch, scores, strict=True))

        scored.sort(key=lambda r: r.score, reverse=True)
        reranked = scored[:top_n]
        logger.info(
            "Reranking complete: top %.4f, bottom %.4f",
            reranked[0].score,
            reranked[-1].score,
        )
        return reranked

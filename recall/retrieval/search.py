"""Hybrid retrieval: keyword + vector search over a user's collection with score fusion."""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, replace
from typing import Any

from qdrant_client import AsyncQdrantClient, models

from recall.retrieval.temporal import TemporalRange, build_date_range_filter
from recall.vector_store import collection_name

logger = logging.getLogger(__name__)

KEYWORD_WEIGHT = 0.3
VECTOR_WEIGHT = 0.7

# Upper bound on points pulled by the unfiltered keyword fallback
FALLBACK_SCAN_LIMIT = 1000

STOP_WORDS = frozenset(
    {
        "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for",
        "of", "with", "by", "from", "as", "is", "was", "are", "were", "be",
        "been", "being", "have", "has", "had", "do", "does", "did", "will",
        "would", "should", "could", "may", "might", "must", "can", "this",
        "that", "these", "those", "what", "which", "who", "whom", "whose",
        "where", "when", "why", "how", "about", "into", "through", "during",
    }
)  # fmt: skip

_NON_WORD_RE = re.compile(r"[^\w\s]")


class SearchUnavailableError(RuntimeError):
    """Neither the keyword nor the vector branch could be executed."""


@dataclass
class SearchResult:
    """A scored point returned by a search branch, fusion, or reranking."""

    id: int | str
    score: float
    payload: dict[str, Any]


def extract_keywords(query: str) -> list[str]:
    """Lower-cased query terms longer than two characters, minus stop words."""
    words = _NON_WORD_RE.sub(" ", query.lower()).split()
    keywords: list[str] = []
    for word in words:
        if len(word) > 2 and word not in STOP_WORDS and word not in keywords:
            keywords.append(word)
    return keywords


def keyword_score(keywords: list[str], payload: dict[str, Any]) -> float:
    """Fraction of query *keywords* found in the point's keyword list.

    A query keyword counts when it is a substring of any stored keyword.
    """
    if not keywords:
        return 0.0
    stored = [str(k).lower() for k in payload.get("keywords") or []]
    matched = sum(1 for kw in keywords if any(kw in s for s in stored))
    return matched / len(keywords)


def normalize_scores(results: list[SearchResult]) -> list[SearchResult]:
    """Min-max normalize scores into [0, 1]; a flat score range maps to 0.5."""
    if not results:
        return []
    scores = [r.score for r in results]
    low, high = min(scores), max(scores)
    spread = high - low
    if spread == 0:
        return [replace(r, score=0.5) for r in results]
    return [replace(r, score=(r.score - low) / spread) for r in results]


def fuse_scores(
    keyword_results: list[SearchResult],
    vector_results: list[SearchResult],
    keyword_weight: float = KEYWORD_WEIGHT,
    vector_weight: float = VECTOR_WEIGHT,
) -> list[SearchResult]:
    """Combine both branches into one ranking.

    ``final = keyword_weight * norm_keyword + vector_weight * norm_vector``;
    a point found by only one branch gets that branch's contribution alone.
    """
    fused: dict[int | str, SearchResult] = {}

    for result in normalize_scores(keyword_results):
        fused[result.id] = replace(result, score=result.score * keyword_weight)

    for result in normalize_scores(vector_results):
        existing = fused.get(result.id)
        if existing is not None:
            existing.score += result.score * vector_weight
        else:
            fused[result.id] = replace(result, score=result.score * vector_weight)

    return sorted(fused.values(), key=lambda r: r.score, reverse=True)


class HybridRetriever:
    """Runs keyword and vector search concurrently and fuses the results."""

    def __init__(
        self,
        client: AsyncQdrantClient,
        collection_prefix: str = "recall_",
        keyword_weight: float = KEYWORD_WEIGHT,
        vector_weight: float = VECTOR_WEIGHT,
        timeout: float = 60.0,
    ) -> None:
        self._client = client
        self._prefix = collection_prefix
        self._keyword_weight = keyword_weight
        self._vector_weight = vector_weight
        self._timeout = timeout

    async def _call(self, coro: Any) -> Any:
        return await asyncio.wait_for(coro, timeout=self._timeout)

    async def _collection_exists(self, name: str) -> bool:
        return bool(await self._call(self._client.collection_exists(name)))

    def _build_filter(
        self,
        user_id: str,
        temporal_range: TemporalRange | None,
        keywords: list[str] | None = None,
    ) -> models.Filter:
        must: list[Any] = [models.FieldCondition(key="user_id", match=models.MatchValue(value=user_id))]
        if keywords:
            must.append(models.FieldCondition(key="keywords", match=models.MatchAny(any=keywords)))
        date_condition = build_date_range_filter(temporal_range)
        if date_condition is not None:
            must.append(date_condition)
        return models.Filter(must=must)

    async def keyword_search(
        self,
        name: str,
        keywords: list[str],
        user_id: str,
        limit: int,
        temporal_range: TemporalRange | None = None,
    ) -> list[SearchResult]:
        """Filtered scroll for points sharing at least one query keyword."""
        if not keywords:
            logger.info("No keywords extracted, skipping keyword search")
            return []
        if not await self._collection_exists(name):
            logger.warning("Collection %s does not exist", name)
            return []

        try:
            points, _ = await self._call(
                self._client.scroll(
                    collection_name=name,
                    scroll_filter=self._build_filter(user_id, temporal_range, keywords),
                    limit=limit,
                    with_payload=True,
                    with_vectors=False,
                )
            )
            results = [
                SearchResult(id=p.id, score=keyword_score(keywords, p.payload or {}), payload=p.payload or {})
                for p in points
            ]
        except Exception as exc:
            logger.warning("Keyword search with filter failed (%s); scanning without filter", exc)
            points, _ = await self._call(
                self._client.scroll(
                    collection_name=name,
                    limit=FALLBACK_SCAN_LIMIT,
                    with_payload=True,
                    with_vectors=False,
                )
            )
            results = [
                SearchResult(id=p.id, score=keyword_score(keywords, p.payload or {}), payload=p.payload or {})
                for p in points
                if (p.payload or {}).get("user_id") == user_id
            ]
            results = [r for r in results if r.score > 0]

        results.sort(key=lambda r: r.score, reverse=True)
        logger.info("Keyword search found %d matches for %s", len(results), ", ".join(keywords))
        return results[:limit]

    async def vector_search(
        self,
        name: str,
        query_embedding: list[float],
        user_id: str,
        limit: int,
        temporal_range: TemporalRange | None = None,
    ) -> list[SearchResult]:
        """Similarity search restricted to the user's points."""
        if not await self._collection_exists(name):
            logger.warning("Collection %s does not exist", name)
            return []

        try:
            response = await self._call(
                self._client.query_points(
                    collection_name=name,
                    query=query_embedding,
                    query_filter=self._build_filter(user_id, temporal_range),
                    limit=limit,
                    with_payload=True,
                )
            )
            results = [SearchResult(id=p.id, score=p.score or 0.0, payload=p.payload or {}) for p in response.points]
        except Exception as exc:
            logger.warning("Vector search with filter failed (%s); retrying without filter", exc)
            response = await self._call(
                self._client.query_points(
                    collection_name=name,
                    query=query_embedding,
                    limit=limit,
                    with_payload=True,
                )
            )
            results = [
                SearchResult(id=p.id, score=p.score or 0.0, payload=p.payload or {})
                for p in response.points
                if (p.payload or {}).get("user_id") == user_id
            ]

        logger.info("Vector search found %d matches", len(results))
        return results

    async def search(
        self,
        user_id: str,
        query: str,
        query_embedding: list[float],
        top_k: int,
        temporal_range: TemporalRange | None = None,
    ) -> list[SearchResult]:
        """Hybrid search: keyword and vector branches fused, best *top_k* first.

        A branch that fails entirely contributes nothing. Only when both
        branches fail is :class:`SearchUnavailableError` raised.
        """
        name = collection_name(user_id, self._prefix)
        keywords = extract_keywords(query)
        limit = top_k * 2
        logger.info(
            "Hybrid search in %s (top_k=%d, keywords=%s, temporal=%s)",
            name,
            top_k,
            keywords,
            temporal_range.relative_text if temporal_range else None,
        )

        keyword_outcome, vector_outcome = await asyncio.gather(
            self.keyword_search(name, keywords, user_id, limit, temporal_range),
            self.vector_search(name, query_embedding, user_id, limit, temporal_range),
            return_exceptions=True,
        )

        if isinstance(keyword_outcome, BaseException) and isinstance(vector_outcome, BaseException):
            logger.error("Both search branches failed: %s / %s", keyword_outcome, vector_outcome)
            raise SearchUnavailableError("keyword and vector search both failed") from vector_outcome

        keyword_results: list[SearchResult] = []
        if isinstance(keyword_outcome, BaseException):
            logger.warning("Keyword branch unavailable: %s", keyword_outcome)
        else:
            keyword_results = keyword_outcome

        vector_results: list[SearchResult] = []
        if isinstance(vector_outcome, BaseException):
            logger.warning("Vector branch unavailable: %s", vector_outcome)
        else:
            vector_results = vector_outcome

        fused = fuse_scores(keyword_results, vector_results, self._keyword_weight, self._vector_weight)
        logger.info(
            "Fused %d keyword + %d vector results into %d unique",
            len(keyword_results),
            len(vector_results),
            len(fused),
        )
        return fused[:top_k]

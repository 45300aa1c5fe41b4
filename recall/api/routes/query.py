"""Search and chat endpoints: temporal parsing, hybrid retrieval, reranking, answers."""

from __future__ import annotations

import logging
from typing import Annotated

from anthropic import APIStatusError
from fastapi import APIRouter, Depends, HTTPException

from recall.api.models import (
    ChatRequest,
    ChatResponse,
    SearchHit,
    SearchRequest,
    SearchResponse,
    TemporalRangeModel,
)
from recall.retrieval.generation import generate_answer
from recall.retrieval.search import SearchResult, SearchUnavailableError
from recall.retrieval.temporal import TemporalRange, parse_temporal_query
from recall.services import Services, get_services

logger = logging.getLogger(__name__)

router = APIRouter()

ServicesDep = Annotated[Services, Depends(get_services)]


def _to_hit(result: SearchResult) -> SearchHit:
    payload = result.payload
    return SearchHit(
        id=result.id,
        score=result.score,
        text=str(payload.get("text", "")),
        source_name=payload.get("source_name"),
        source_date=payload.get("source_date"),
        modality=payload.get("modality"),
        speaker=payload.get("speaker"),
        speakers=payload.get("speakers") or [],
        job_id=payload.get("job_id"),
        chunk_index=payload.get("chunk_index"),
    )


def _to_range_model(temporal_range: TemporalRange | None) -> TemporalRangeModel | None:
    if temporal_range is None or temporal_range.start_date is None or temporal_range.end_date is None:
        return None
    return TemporalRangeModel(
        start_date=temporal_range.start_date,
        end_date=temporal_range.end_date,
        relative_text=temporal_range.relative_text or None,
    )


async def retrieve(
    services: Services,
    user_id: str,
    query: str,
    top_k: int,
    rerank_top_n: int | None,
) -> tuple[list[SearchResult], TemporalRange | None]:
    """Parse dates out of *query*, run hybrid search and optionally rerank.

    Raises:
        HTTPException(503): Search or embedding backends are unavailable.
    """
    cleaned, temporal_range = parse_temporal_query(query, tz=services.retrieval.tz)
    search_text = cleaned or query

    try:
        embedding = await services.embedder.embed_query(search_text)
    except Exception as exc:
        logger.exception("Query embedding failed")
        raise HTTPException(status_code=503, detail="Embedding service unavailable") from exc

    try:
        results = await services.retriever.search(user_id, search_text, embedding, top_k, temporal_range)
    except SearchUnavailableError as exc:
        raise HTTPException(status_code=503, detail="Search unavailable") from exc

    if rerank_top_n is not None:
        results = await services.reranker.rerank(search_text, results, rerank_top_n)
    return results, temporal_range


@router.post("/api/search", response_model=SearchResponse)
async def search(request: SearchRequest, services: ServicesDep) -> SearchResponse:
    """Hybrid search over the user's memory."""
    top_k = request.top_k or services.retrieval.top_k
    rerank_top_n = None
    if request.rerank:
        rerank_top_n = request.rerank_top_n if request.rerank_top_n is not None else services.retrieval.rerank_top_n

    results, temporal_range = await retrieve(services, request.user_id, request.query, top_k, rerank_top_n)
    return SearchResponse(
        results=[_to_hit(r) for r in results],
        query=request.query,
        temporal_range=_to_range_model(temporal_range),
    )


@router.post("/api/chat", response_model=ChatResponse)
async def chat(request: ChatRequest, services: ServicesDep) -> ChatResponse:
    """Answer a question from the user's memory with cited sources."""
    results, temporal_range = await retrieve(
        services,
        request.user_id,
        request.question,
        services.retrieval.top_k,
        services.retrieval.rerank_top_n,
    )

    try:
        result = await generate_answer(services.answerer, request.question, results)
    except APIStatusError as exc:
        # Return 503 so the browser receives a proper JSON response with CORS headers intact.
        raise HTTPException(status_code=503, detail=f"LLM unavailable: {exc.message}") from exc

    return ChatResponse(
        answer=result["answer"],
        sources=[_to_hit(r) for r in results],
        temporal_range=_to_range_model(temporal_range),
        model=result.get("model"),
        usage=result.get("usage"),
    )

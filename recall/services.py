"""Construction of the shared clients and components, once per process."""

from __future__ import annotations

from dataclasses import dataclass

from anthropic import AsyncAnthropic
from fastapi import Request
from openai import AsyncOpenAI
from qdrant_client import AsyncQdrantClient

from recall.config import Settings
from recall.ingestion.embeddings import OpenAIEmbedder
from recall.ingestion.indexer import Indexer
from recall.ingestion.pipeline import IngestionPipeline
from recall.ingestion.speakers import SpeakerAttributor
from recall.ingestion.storage import JobStore, get_supabase_client
from recall.ingestion.transcription import AssemblyAITranscriber
from recall.ingestion.worker import IngestionWorker
from recall.llm import AnthropicCompleter
from recall.pipeline_config import RetrievalConfig
from recall.retrieval.reranker import Reranker
from recall.retrieval.search import HybridRetriever


@dataclass
class Services:
    """Everything the API needs, wired together."""

    store: JobStore
    embedder: OpenAIEmbedder
    retriever: HybridRetriever
    reranker: Reranker
    answerer: AnthropicCompleter
    pipeline: IngestionPipeline
    worker: IngestionWorker
    retrieval: RetrievalConfig
    qdrant: AsyncQdrantClient | None = None

    async def aclose(self) -> None:
        if self.qdrant is not None:
            await self.qdrant.close()


def build_services(settings: Settings) -> Services:
    """Create every client exactly once from *settings*."""
    timeout = settings.external_call_timeout
    retrieval = RetrievalConfig.from_settings(settings)

    qdrant = AsyncQdrantClient(url=settings.qdrant_url, api_key=settings.qdrant_api_key or None)
    openai_client = AsyncOpenAI(api_key=settings.openai_api_key)
    anthropic_client = AsyncAnthropic(api_key=settings.anthropic_api_key)

    answerer = AnthropicCompleter(anthropic_client, settings.llm_model, timeout=timeout)
    scorer = AnthropicCompleter(anthropic_client, settings.scoring_model, timeout=timeout, max_tokens=256)

    store = JobStore(
        get_supabase_client(settings.supabase_url, settings.supabase_key),
        table=settings.jobs_table,
        bucket=settings.uploads_bucket,
    )
    embedder = OpenAIEmbedder(openai_client, settings.embedding_model, timeout=timeout)
    indexer = Indexer(
        qdrant,
        embedder,
        dimensions=settings.embedding_dimensions,
        collection_prefix=settings.collection_prefix,
        batch_size=settings.index_batch_size,
        timeout=timeout,
    )
    attributor = SpeakerAttributor(
        answerer,
        batch_size=settings.speaker_batch_size,
        context_size=settings.speaker_context_size,
    )
    pipeline = IngestionPipeline(
        store,
        AssemblyAITranscriber(settings.assemblyai_api_key),
        answerer,
        attributor,
        indexer,
        min_tokens=settings.min_chunk_tokens,
        max_tokens=settings.max_chunk_tokens,
    )
    retriever = HybridRetriever(
        qdrant,
        collection_prefix=settings.collection_prefix,
        keyword_weight=retrieval.keyword_weight,
        vector_weight=retrieval.vector_weight,
        timeout=timeout,
    )
    reranker = Reranker(
        scorer,
        batch_size=retrieval.rerank_batch_size,
        passage_chars=retrieval.rerank_passage_chars,
    )
    return Services(
        store=store,
        embedder=embedder,
        retriever=retriever,
        reranker=reranker,
        answerer=answerer,
        pipeline=pipeline,
        worker=IngestionWorker(pipeline),
        retrieval=retrieval,
        qdrant=qdrant,
    )


def get_services(request: Request) -> Services:
    """FastAPI dependency returning the services built at startup."""
    return request.app.state.services

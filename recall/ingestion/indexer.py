"""Embed chunks and write them to the user's Qdrant collection."""

from __future__ import annotations

import asyncio
import hashlib
import logging
from datetime import UTC, datetime
from typing import Any

from qdrant_client import AsyncQdrantClient, models

from recall.ingestion.embeddings import OpenAIEmbedder
from recall.ingestion.models import Chunk, SourceMetadata
from recall.vector_store import collection_name, ensure_collection, ensure_payload_indexes

logger = logging.getLogger(__name__)

BATCH_SIZE = 10


def point_id(job_id: str, chunk_index: int) -> int:
    """Deterministic point ID for chunk *chunk_index* of *job_id*.

    The first 15 hex digits of a SHA-256 keep the ID inside 60 bits, so
    re-indexing a job overwrites its points instead of duplicating them.
    """
    digest = hashlib.sha256(f"{job_id}_chunk_{chunk_index}".encode()).hexdigest()
    return int(digest[:15], 16)


def normalize_keywords(keywords: list[str]) -> list[str]:
    """Lower-case and de-duplicate keywords, adding the words of multi-word phrases.

    Query terms are single words, so ``"Project Apollo"`` is stored as
    ``["project apollo", "project", "apollo"]``.
    """
    normalized: list[str] = []
    for keyword in keywords:
        phrase = " ".join(str(keyword).lower().split())
        if not phrase:
            continue
        candidates = [phrase]
        if " " in phrase:
            candidates += [w for w in phrase.split() if len(w) > 2]
        for candidate in candidates:
            if candidate not in normalized:
                normalized.append(candidate)
    return normalized


def build_payload(
    chunk: Chunk,
    chunk_index: int,
    job_id: str,
    user_id: str,
    modality: str,
    metadata: SourceMetadata,
    source_name: str | None,
    source_date: datetime | None,
    created_at: str,
) -> dict[str, Any]:
    return {
        "text": chunk.text,
        "job_id": job_id,
        "user_id": user_id,
        "modality": modality,
        "chunk_index": chunk_index,
        "token_estimate": chunk.token_estimate,
        "keywords": normalize_keywords(metadata.keywords),
        "speakers": metadata.speakers,
        "speaker": chunk.speaker,
        "chunk_speakers": chunk.speakers or [],
        "summary": metadata.summary,
        "topics": metadata.topics,
        "source_name": source_name,
        "source_date": source_date.isoformat() if source_date else None,
        "created_at": created_at,
    }


class Indexer:
    """Writes chunk embeddings and payloads into per-user collections."""

    def __init__(
        self,
        client: AsyncQdrantClient,
        embedder: OpenAIEmbedder,
        dimensions: int = 1536,
        collection_prefix: str = "recall_",
        batch_size: int = BATCH_SIZE,
        timeout: float = 60.0,
    ) -> None:
        self._client = client
        self._embedder = embedder
        self._dimensions = dimensions
        self._prefix = collection_prefix
        self._batch_size = batch_size
        self._timeout = timeout

    async def index(
        self,
        chunks: list[Chunk],
        job_id: str,
        user_id: str,
        modality: str,
        metadata: SourceMetadata,
        source_name: str | None = None,
        source_date: datetime | None = None,
    ) -> int:
        """Embed and upsert *chunks*; return the number of points written.

        Embedding and upsert failures propagate so the caller can mark the
        job as failed. Payload index creation is best-effort.
        """
        name = collection_name(user_id, self._prefix)
        logger.info(
            "Indexing %d chunks for job %s into %s (batch size %d)",
            len(chunks),
            job_id,
            name,
            self._batch_size,
        )

        await ensure_collection(self._client, name, self._dimensions, self._timeout)
        for result in await ensure_payload_indexes(self._client, name, self._timeout):
            if not result.ok:
                logger.warning("Continuing without payload index %s", result.name)

        stored = 0
        total_batches = (len(chunks) + self._batch_size - 1) // self._batch_size
        for start in range(0, len(chunks), self._batch_size):
            batch = chunks[start : start + self._batch_size]
            batch_num = start // self._batch_size + 1

            vectors = await self._embedder.embed([c.text for c in batch])
            if len(vectors) != len(batch):
                raise ValueError(f"Expected {len(batch)} embeddings, got {len(vectors)}")

            created_at = datetime.now(UTC).isoformat()
            points = [
                models.PointStruct(
                    id=point_id(job_id, start + offset),
                    vector=vector,
                    payload=build_payload(
                        chunk,
                        start + offset,
                        job_id,
                        user_id,
                        modality,
                        metadata,
                        source_name,
                        source_date,
                        created_at,
                    ),
                )
                for offset, (chunk, vector) in enumerate(zip(batch, vectors, strict=True))
            ]

            try:
                await asyncio.wait_for(
                    self._client.upsert(collection_name=name, points=points, wait=True),
                    timeout=self._timeout,
                )
            except Exception:
                logger.exception("Qdrant upsert failed for batch %d/%d of job %s", batch_num, total_batches, job_id)
                raise

            stored += len(batch)
            logger.info("Batch %d/%d stored: %d/%d chunks", batch_num, total_batches, stored, len(chunks))

        return stored

"""Qdrant collection helpers shared by the indexer and the retriever."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from qdrant_client import AsyncQdrantClient, models

logger = logging.getLogger(__name__)

# Payload fields that get a secondary index, with their index type
PAYLOAD_INDEXES: dict[str, models.PayloadSchemaType] = {
    "user_id": models.PayloadSchemaType.KEYWORD,
    "keywords": models.PayloadSchemaType.KEYWORD,
    "created_at": models.PayloadSchemaType.DATETIME,
    "source_date": models.PayloadSchemaType.DATETIME,
}


@dataclass(frozen=True)
class AdvisoryResult:
    """Outcome of a best-effort operation.

    Failures are reported here and logged, never raised: payload indexes
    speed up filtering but search works without them.
    """

    name: str
    ok: bool
    error: str | None = None


def collection_name(user_id: str, prefix: str = "recall_") -> str:
    """Name of the per-user collection."""
    return f"{prefix}{user_id}"


async def ensure_collection(
    client: AsyncQdrantClient,
    name: str,
    dimensions: int,
    timeout: float = 60.0,
) -> bool:
    """Create the collection if it does not exist yet.

    Returns:
        True if the collection was created by this call.
    """
    exists = await asyncio.wait_for(client.collection_exists(name), timeout=timeout)
    if exists:
        logger.debug("Qdrant collection exists: %s", name)
        return False

    await asyncio.wait_for(
        client.create_collection(
            collection_name=name,
            vectors_config=models.VectorParams(size=dimensions, distance=models.Distance.COSINE),
        ),
        timeout=timeout,
    )
    logger.info("Created Qdrant collection %s (dim=%d, cosine)", name, dimensions)
    return True


async def ensure_payload_index(
    client: AsyncQdrantClient,
    name: str,
    field: str,
    schema: models.PayloadSchemaType,
    timeout: float = 60.0,
) -> AdvisoryResult:
    """Create one payload index; an existing index counts as success."""
    label = f"{name}.{field}"
    try:
        await asyncio.wait_for(
            client.create_payload_index(
                collection_name=name,
                field_name=field,
                field_schema=schema,
                wait=True,
            ),
            timeout=timeout,
        )
    except Exception as exc:
        if "already exists" in str(exc).lower():
            return AdvisoryResult(label, ok=True)
        logger.warning("Could not create payload index %s: %s", label, exc)
        return AdvisoryResult(label, ok=False, error=str(exc))
    return AdvisoryResult(label, ok=True)


async def ensure_payload_indexes(
    client: AsyncQdrantClient,
    name: str,
    timeout: float = 60.0,
) -> list[AdvisoryResult]:
    """Create every index in :data:`PAYLOAD_INDEXES` (advisory)."""
    results = []
    for field, schema in PAYLOAD_INDEXES.items():
        results.append(await ensure_payload_index(client, name, field, schema, timeout))
    return results

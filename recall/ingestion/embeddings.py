"""Embedding helpers using OpenAI text-embedding-3-small."""

from __future__ import annotations

import asyncio

from openai import AsyncOpenAI


class OpenAIEmbedder:
    """Batched embeddings through the OpenAI embeddings API.

    Args:
        client: Shared async OpenAI client.
        model: Embedding model name.
        timeout: Seconds before a single embeddings call is abandoned.
    """

    def __init__(
        self,
        client: AsyncOpenAI,
        model: str = "text-embedding-3-small",
        timeout: float = 60.0,
    ) -> None:
        self._client = client
        self._model = model
        self._timeout = timeout

    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Embed *texts* in one request, returning vectors in input order."""
        if not texts:
            return []
        response = await asyncio.wait_for(
            self._client.embeddings.create(input=texts, model=self._model),
            timeout=self._timeout,
        )
        ordered = sorted(response.data, key=lambda item: item.index)
        return [item.embedding for item in ordered]

    async def embed_query(self, query: str) -> list[float]:
        """Embed a single query string."""
        vectors = await self.embed([query])
        return vectors[0]

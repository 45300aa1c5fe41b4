"""In-memory fakes for Qdrant, OpenAI embeddings and Claude completions."""

from __future__ import annotations

import math
from collections.abc import Callable
from datetime import datetime
from types import SimpleNamespace
from typing import Any

from qdrant_client import models

from recall.ingestion.models import IngestionJob, TranscriptionResult, coerce_datetime


class FakeCompleter:
    """Stands in for ``AnthropicCompleter``.

    *responder* receives ``(system, prompt, schema)`` and returns the tool
    input dict, or raises to simulate a failed call.
    """

    def __init__(
        self,
        responder: Callable[[str, str, dict[str, Any]], dict[str, Any]] | None = None,
        text: str = "An answer [Source 1].",
    ) -> None:
        self._responder = responder or (lambda system, prompt, schema: {})
        self._text = text
        self.json_calls: list[str] = []
        self.text_calls: list[str] = []

    async def complete_json(
        self,
        system: str,
        prompt: str,
        schema: dict[str, Any],
        temperature: float = 0.1,
    ) -> dict[str, Any]:
        self.json_calls.append(prompt)
        return self._responder(system, prompt, schema)

    async def complete_text(
        self,
        system: str,
        prompt: str,
        max_tokens: int = 1500,
        temperature: float = 0.7,
    ) -> tuple[str, Any]:
        self.text_calls.append(prompt)
        response = SimpleNamespace(
            model="claude-test",
            usage=SimpleNamespace(input_tokens=10, output_tokens=5),
        )
        return self._text, response


class FakeEmbedder:
    """Deterministic 3-dimensional embeddings keyed on a few topic words."""

    TOPICS = ("budget", "hiring", "launch")

    def __init__(self) -> None:
        self.calls: list[list[str]] = []

    def vector_for(self, text: str) -> list[float]:
        lowered = text.lower()
        vector = [float(lowered.count(topic)) for topic in self.TOPICS]
        if not any(vector):
            vector = [0.1, 0.1, 0.1]
        return vector

    async def embed(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        return [self.vector_for(t) for t in texts]

    async def embed_query(self, query: str) -> list[float]:
        return (await self.embed([query]))[0]


def _cosine(a: list[float], b: list[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b, strict=True))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    return dot / norm if norm else 0.0


def _condition_matches(condition: Any, payload: dict[str, Any]) -> bool:
    if isinstance(condition, models.Filter):
        return _filter_matches(condition, payload)
    if isinstance(condition, models.IsEmptyCondition):
        value = payload.get(condition.is_empty.key)
        return value is None or value == []
    if isinstance(condition, models.FieldCondition):
        value = payload.get(condition.key)
        if isinstance(condition.match, models.MatchValue):
            if isinstance(value, list):
                return condition.match.value in value
            return value == condition.match.value
        if isinstance(condition.match, models.MatchAny):
            values = value if isinstance(value, list) else [value]
            return any(v in condition.match.any for v in values)
        if isinstance(condition.range, models.DatetimeRange):
            if not value:
                return False
            stamp = coerce_datetime(value)
            gte, lte = condition.range.gte, condition.range.lte
            if gte is not None and stamp < coerce_datetime(gte):
                return False
            if lte is not None and stamp > coerce_datetime(lte):
                return False
            return True
    raise NotImplementedError(f"Unsupported condition in fake: {condition!r}")


def _filter_matches(flt: models.Filter | None, payload: dict[str, Any]) -> bool:
    if flt is None:
        return True
    if flt.must and not all(_condition_matches(c, payload) for c in flt.must):
        return False
    if flt.should and not any(_condition_matches(c, payload) for c in flt.should):
        return False
    return True


class FakeQdrant:
    """Just enough of ``AsyncQdrantClient`` for the indexer and retriever."""

    def __init__(self) -> None:
        self.collections: dict[str, dict[int | str, models.PointStruct]] = {}
        self.payload_indexes: list[tuple[str, str]] = []
        self.upserts: list[tuple[str, int, bool]] = []
        self.fail_filtered_scroll = False
        self.fail_filtered_query = False
        self.fail_scroll = False
        self.fail_query = False
        self.fail_upsert = False
        self.fail_payload_index = False

    async def collection_exists(self, collection_name: str) -> bool:
        return collection_name in self.collections

    async def create_collection(self, collection_name: str, vectors_config: Any) -> bool:
        self.collections[collection_name] = {}
        return True

    async def create_payload_index(
        self,
        collection_name: str,
        field_name: str,
        field_schema: Any,
        wait: bool = True,
    ) -> Any:
        if self.fail_payload_index:
            raise RuntimeError("index creation not supported")
        self.payload_indexes.append((collection_name, field_name))
        return SimpleNamespace(status="completed")

    async def upsert(self, collection_name: str, points: list[models.PointStruct], wait: bool = True) -> Any:
        if self.fail_upsert:
            raise RuntimeError("upsert rejected")
        collection = self.collections[collection_name]
        for point in points:
            collection[point.id] = point
        self.upserts.append((collection_name, len(points), wait))
        return SimpleNamespace(status="completed")

    def _matching(self, collection_name: str, flt: models.Filter | None) -> list[models.PointStruct]:
        points = self.collections.get(collection_name, {}).values()
        return [p for p in points if _filter_matches(flt, p.payload or {})]

    async def scroll(
        self,
        collection_name: str,
        scroll_filter: models.Filter | None = None,
        limit: int = 10,
        with_payload: bool = True,
        with_vectors: bool = False,
    ) -> tuple[list[Any], Any]:
        if self.fail_scroll or (self.fail_filtered_scroll and scroll_filter is not None):
            raise RuntimeError("scroll failed")
        records = [
            SimpleNamespace(id=p.id, payload=dict(p.payload or {}))
            for p in self._matching(collection_name, scroll_filter)
        ]
        return records[:limit], None

    async def query_points(
        self,
        collection_name: str,
        query: list[float],
        query_filter: models.Filter | None = None,
        limit: int = 10,
        with_payload: bool = True,
    ) -> Any:
        if self.fail_query or (self.fail_filtered_query and query_filter is not None):
            raise RuntimeError("query failed")
        scored = [
            SimpleNamespace(id=p.id, score=_cosine(query, p.vector), payload=dict(p.payload or {}))
            for p in self._matching(collection_name, query_filter)
        ]
        scored.sort(key=lambda s: s.score, reverse=True)
        return SimpleNamespace(points=scored[:limit])

    async def close(self) -> None:
        return None




class FakeJobStore:
    """In-memory ``JobStore``: jobs keyed by ID plus uploaded files by path."""

    def __init__(self) -> None:
        self.jobs: dict[str, dict[str, Any]] = {}
        self.files: dict[str, bytes] = {}
        self.updates: list[tuple[str, dict[str, Any]]] = []

    def add_job(self, job_id: str, **fields: Any) -> IngestionJob:
        row = {"id": job_id, "user_id": "u1", "modality": "text", "status": "pending", **fields}
        self.jobs[job_id] = row
        return IngestionJob.model_validate(row)

    def create_job(
        self,
        user_id: str,
        modality: str,
        source_name: str | None = None,
        storage_path: str | None = None,
        source_date: datetime | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> IngestionJob:
        return self.add_job(
            f"job-{len(self.jobs) + 1}",
            user_id=user_id,
            modality=modality,
            source_name=source_name,
            storage_path=storage_path,
            source_date=source_date,
            metadata=metadata or {},
        )

    def get_job(self, job_id: str) -> IngestionJob | None:
        row = self.jobs.get(job_id)
        return IngestionJob.model_validate(row) if row else None

    def update_job(self, job_id: str, **fields: Any) -> None:
        self.updates.append((job_id, fields))
        self.jobs[job_id].update(fields)

    def download(self, storage_path: str) -> bytes:
        return self.files[storage_path]


class FakeTranscriber:
    def __init__(self, result: TranscriptionResult | Exception) -> None:
        self._result = result
        self.calls: list[str] = []

    async def transcribe(self, audio: bytes, filename: str) -> TranscriptionResult:
        self.calls.append(filename)
        if isinstance(self._result, Exception):
            raise self._result
        return self._result

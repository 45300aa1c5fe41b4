"""Tests for the ingestion pipeline and the background worker (no external services)."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from typing import Any

import pytest
from fakes import FakeCompleter, FakeEmbedder, FakeJobStore, FakeQdrant, FakeTranscriber

from recall.ingestion.indexer import Indexer
from recall.ingestion.models import TranscriptionResult, TranscriptSegment
from recall.ingestion.pipeline import IngestionPipeline, JobNotFoundError
from recall.ingestion.speakers import SpeakerAttributor
from recall.ingestion.transcription import TranscriptionError
from recall.ingestion.worker import IngestionWorker

TRANSCRIPT = "Hi, I'm Alice and the budget is approved. Thanks Alice, hiring starts next week."


def _responder(system: str, prompt: str, schema: dict[str, Any]) -> dict[str, Any]:
    if schema.get("required") == ["speakers"]:
        return {"speakers": {"Segment 1": "alice", "Segment 2": "bob"}}
    return {
        "keywords": ["Budget", "Hiring"],
        "summary": "Budget approved and hiring next.",
        "topics": ["finance"],
        "speakers": ["Alice"],
    }


def _pipeline(
    store: FakeJobStore,
    qdrant: FakeQdrant,
    embedder: FakeEmbedder,
    transcriber: FakeTranscriber | None = None,
) -> IngestionPipeline:
    completer = FakeCompleter(_responder)
    transcriber = transcriber or FakeTranscriber(
        TranscriptionResult(
            text=TRANSCRIPT,
            duration=12.0,
            segments=[
                TranscriptSegment(text="Hi, I'm Alice and the budget is approved.", start=0.0, end=4.0),
                TranscriptSegment(text="Thanks Alice, hiring starts next week.", start=4.0, end=8.0),
            ],
        )
    )
    return IngestionPipeline(
        store,  # type: ignore[arg-type]
        transcriber,  # type: ignore[arg-type]
        completer,  # type: ignore[arg-type]
        SpeakerAttributor(completer),  # type: ignore[arg-type]
        Indexer(qdrant, embedder, dimensions=3),  # type: ignore[arg-type]
    )


def _payloads(qdrant: FakeQdrant, user_id: str = "u1") -> list[dict[str, Any]]:
    return [p.payload for p in qdrant.collections[f"recall_{user_id}"].values()]


@pytest.fixture
def store() -> FakeJobStore:
    return FakeJobStore()


class TestIngestionPipeline:
    def test_audio_job(self, store: FakeJobStore, fake_qdrant: FakeQdrant, fake_embedder: FakeEmbedder) -> None:
        store.add_job("a1", modality="audio", source_name="standup.m4a", storage_path="u1/standup.m4a")
        store.files["u1/standup.m4a"] = b"\x00audio"

        result = asyncio.run(_pipeline(store, fake_qdrant, fake_embedder).process_job("a1"))

        statuses = [fields.get("status") for _, fields in store.updates]
        assert statuses == ["processing", "completed"]
        assert store.jobs["a1"]["status"] == "completed"
        assert result["chunks_count"] == 1
        assert result["duration"] == 12.0
        assert result["speakers"] == ["Alice", "Bob"]
        assert result["text_length"] == len(TRANSCRIPT)

        (payload,) = _payloads(fake_qdrant)
        assert payload["modality"] == "audio"
        assert payload["chunk_speakers"] == ["Alice", "Bob"]
        assert payload["speaker"] is None
        assert payload["keywords"] == ["budget", "hiring"]
        assert payload["source_name"] == "standup.m4a"

    def test_document_job_with_explicit_date(
        self, store: FakeJobStore, fake_qdrant: FakeQdrant, fake_embedder: FakeEmbedder
    ) -> None:
        store.add_job(
            "d1",
            modality="document",
            source_name="plan.md",
            storage_path="u1/plan.md",
            source_date="2024-02-10T00:00:00Z",
        )
        store.files["u1/plan.md"] = b"# Plan\nThe launch moves to June. Budget is unchanged."

        result = asyncio.run(_pipeline(store, fake_qdrant, fake_embedder).process_job("d1"))

        assert result["source_date"] == datetime(2024, 2, 10, tzinfo=UTC).isoformat()
        (payload,) = _payloads(fake_qdrant)
        assert payload["modality"] == "document"
        assert payload["source_date"] == "2024-02-10T00:00:00+00:00"

    def test_legacy_plain_text_modality(
        self, store: FakeJobStore, fake_qdrant: FakeQdrant, fake_embedder: FakeEmbedder
    ) -> None:
        store.add_job("t1", modality="plain text", storage_path="u1/note.txt", source_date="not a date")
        store.files["u1/note.txt"] = "Remember to renew the passport.".encode()

        result = asyncio.run(_pipeline(store, fake_qdrant, fake_embedder).process_job("t1"))

        assert result["source_date"] is None
        (payload,) = _payloads(fake_qdrant)
        assert payload["modality"] == "text"
        assert payload["source_date"] is None

    def test_text_transcript_keeps_speakers(
        self, store: FakeJobStore, fake_qdrant: FakeQdrant, fake_embedder: FakeEmbedder
    ) -> None:
        store.add_job("t3", storage_path="u1/chat.txt")
        store.files["u1/chat.txt"] = b"Carol: The launch slipped a week.\nCarol: Marketing is ready anyway."

        result = asyncio.run(_pipeline(store, fake_qdrant, fake_embedder).process_job("t3"))

        assert result["speakers"] == ["Alice", "Carol"]
        (payload,) = _payloads(fake_qdrant)
        assert payload["speaker"] == "Carol"

    def test_failure_marks_job_failed_and_reraises(
        self, store: FakeJobStore, fake_qdrant: FakeQdrant, fake_embedder: FakeEmbedder
    ) -> None:
        store.add_job("a2", modality="audio", storage_path="u1/broken.mp3")
        store.files["u1/broken.mp3"] = b"\x00"
        pipeline = _pipeline(store, fake_qdrant, fake_embedder, FakeTranscriber(TranscriptionError("bad audio")))

        with pytest.raises(TranscriptionError):
            asyncio.run(pipeline.process_job("a2"))

        assert store.jobs["a2"]["status"] == "failed"
        assert store.jobs["a2"]["error"] == "bad audio"

    def test_empty_text_fails(self, store: FakeJobStore, fake_qdrant: FakeQdrant, fake_embedder: FakeEmbedder) -> None:
        store.add_job("t2", storage_path="u1/empty.txt")
        store.files["u1/empty.txt"] = b"   "

        with pytest.raises(ValueError, match="No text"):
            asyncio.run(_pipeline(store, fake_qdrant, fake_embedder).process_job("t2"))
        assert store.jobs["t2"]["status"] == "failed"

    def test_missing_job(self, store: FakeJobStore, fake_qdrant: FakeQdrant, fake_embedder: FakeEmbedder) -> None:
        with pytest.raises(JobNotFoundError):
            asyncio.run(_pipeline(store, fake_qdrant, fake_embedder).process_job("nope"))


class TestIngestionWorker:
    def test_processes_queue_and_survives_failures(
        self, store: FakeJobStore, fake_qdrant: FakeQdrant, fake_embedder: FakeEmbedder
    ) -> None:
        store.add_job("t1", storage_path="u1/a.txt")
        store.files["u1/a.txt"] = b"First note about the budget."
        store.add_job("t2", storage_path="u1/b.txt")
        store.files["u1/b.txt"] = b"Second note about hiring."

        async def scenario() -> IngestionWorker:
            worker = IngestionWorker(_pipeline(store, fake_qdrant, fake_embedder))
            worker.start()
            worker.enqueue("t1")
            worker.enqueue("missing")
            worker.enqueue("t2")
            await worker.join()
            await worker.stop()
            return worker

        worker = asyncio.run(scenario())

        assert worker.pending == 0
        assert store.jobs["t1"]["status"] == "completed"
        assert store.jobs["t2"]["status"] == "completed"
        assert len(_payloads(fake_qdrant)) == 2

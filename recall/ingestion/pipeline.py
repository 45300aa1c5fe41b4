"""End-to-end ingestion pipeline: download -> extract -> segment -> index."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from recall.ingestion.chunking import MAX_CHUNK_TOKENS, MIN_CHUNK_TOKENS, segment
from recall.ingestion.indexer import Indexer
from recall.ingestion.metadata import extract_generic_metadata, extract_metadata
from recall.ingestion.models import IngestionJob, SourceMetadata, TranscriptSegment
from recall.ingestion.parsers import decode_text, extract_document_text, labeled_share, parse_plain_text
from recall.ingestion.speakers import SpeakerAttributor
from recall.ingestion.storage import JobStore
from recall.ingestion.transcription import AssemblyAITranscriber
from recall.llm import AnthropicCompleter
from recall.pipeline_config import JobStatus, Modality

logger = logging.getLogger(__name__)

# Share of "Name: text" lines above which plain text is treated as a transcript
TRANSCRIPT_LABELED_SHARE = 0.6


class JobNotFoundError(LookupError):
    """No ingestion job exists with the requested ID."""


@dataclass
class ExtractedSource:
    """Text and context recovered from a job's source, before segmenting."""

    text: str
    metadata: SourceMetadata
    segments: list[TranscriptSegment] = field(default_factory=list)
    source_date: datetime | None = None
    duration: float | None = None


def _known_speakers(metadata: SourceMetadata) -> list[str]:
    names: list[str] = []
    for name in [*metadata.speakers, *metadata.participants]:
        if name and name.strip() and name.strip() not in names:
            names.append(name.strip())
    return names


class IngestionPipeline:
    """Processes one ingestion job from its uploaded source to indexed chunks."""

    def __init__(
        self,
        store: JobStore,
        transcriber: AssemblyAITranscriber,
        completer: AnthropicCompleter,
        attributor: SpeakerAttributor,
        indexer: Indexer,
        min_tokens: int = MIN_CHUNK_TOKENS,
        max_tokens: int = MAX_CHUNK_TOKENS,
    ) -> None:
        self._store = store
        self._transcriber = transcriber
        self._completer = completer
        self._attributor = attributor
        self._indexer = indexer
        self._min_tokens = min_tokens
        self._max_tokens = max_tokens

    async def _download(self, job: IngestionJob) -> bytes:
        if not job.storage_path:
            raise ValueError(f"Job {job.id} has no storage_path")
        return await asyncio.to_thread(self._store.download, job.storage_path)

    async def _extract_audio(self, job: IngestionJob) -> ExtractedSource:
        audio = await self._download(job)
        transcription = await self._transcriber.transcribe(audio, job.source_name or job.storage_path or job.id)
        metadata = await extract_metadata(self._completer, transcription.text, transcription.duration)

        segments = transcription.segments
        if segments:
            await self._attributor.attribute(segments, _known_speakers(metadata))
            detected = [s.speaker for s in segments if s.speaker]
            for name in detected:
                if name not in metadata.speakers:
                    metadata.speakers.append(name)

        return ExtractedSource(
            text=transcription.text,
            metadata=metadata,
            segments=segments,
            duration=transcription.duration,
        )

    async def _extract_document(self, job: IngestionJob) -> ExtractedSource:
        raw = await self._download(job)
        filename = job.source_name or job.storage_path or ""
        document = extract_document_text(raw, filename)
        metadata = await extract_generic_metadata(self._completer, document.text, document.document_type)
        if document.title and not metadata.extra.get("title"):
            metadata.extra["title"] = document.title
        return ExtractedSource(
            text=document.text,
            metadata=metadata,
            segments=document.segments,
            source_date=document.created,
        )

    async def _extract_text(self, job: IngestionJob) -> ExtractedSource:
        raw = await self._download(job)
        text = decode_text(raw)
        metadata = await extract_generic_metadata(self._completer, text, "plain text")

        # Notes pasted from a chat or meeting ("Alice: ...") keep their speakers.
        segments = parse_plain_text(text)
        if len(segments) < 2 or labeled_share(segments) < TRANSCRIPT_LABELED_SHARE:
            segments = []
        for name in dict.fromkeys(s.speaker for s in segments if s.speaker):
            if name not in metadata.speakers:
                metadata.speakers.append(name)
        return ExtractedSource(text=text, metadata=metadata, segments=segments)

    async def extract(self, job: IngestionJob) -> ExtractedSource:
        """Recover text, metadata and optional segments for *job*'s modality."""
        modality = Modality.parse(job.modality)
        if modality is Modality.AUDIO:
            return await self._extract_audio(job)
        if modality is Modality.DOCUMENT:
            return await self._extract_document(job)
        return await self._extract_text(job)

    async def process_job(self, job_id: str) -> dict[str, Any]:
        """Run the full pipeline for *job_id* and return the stored job metadata.

        The job row moves through ``processing`` to ``completed``. Any failure
        marks it ``failed`` with the error message and is re-raised.

        Raises:
            JobNotFoundError: The job does not exist.
        """
        job = await asyncio.to_thread(self._store.get_job, job_id)
        if job is None:
            raise JobNotFoundError(job_id)

        logger.info("Processing job %s (%s, user %s)", job.id, job.modality, job.user_id)
        await asyncio.to_thread(self._store.update_job, job.id, status=JobStatus.PROCESSING.value)

        try:
            modality = Modality.parse(job.modality)
            source = await self.extract(job)
            if not source.text.strip():
                raise ValueError(f"No text could be extracted for job {job.id}")

            # An explicit date on the job wins over one found in the source.
            source_date = job.source_date or source.source_date

            chunks = segment(
                source.text,
                source.segments or None,
                min_tokens=self._min_tokens,
                max_tokens=self._max_tokens,
            )
            count = await self._indexer.index(
                chunks,
                job_id=job.id,
                user_id=job.user_id,
                modality=modality.value,
                metadata=source.metadata,
                source_name=job.source_name,
                source_date=source_date,
            )

            result_metadata: dict[str, Any] = {
                **job.metadata,
                "text_length": len(source.text),
                "chunks_count": count,
                "keywords": source.metadata.keywords,
                "summary": source.metadata.summary,
                "topics": source.metadata.topics,
                "speakers": source.metadata.speakers,
                "source_date": source_date.isoformat() if source_date else None,
                "duration": source.duration,
            }
            if source.metadata.extra:
                result_metadata["extra"] = source.metadata.extra

            await asyncio.to_thread(
                self._store.update_job,
                job.id,
                status=JobStatus.COMPLETED.value,
                metadata=result_metadata,
            )
        except Exception as exc:
            logger.exception("Job %s failed", job.id)
            await asyncio.to_thread(
                self._store.update_job,
                job.id,
                status=JobStatus.FAILED.value,
                error=str(exc),
            )
            raise

        logger.info("Job %s completed: %d chunks indexed", job.id, count)
        return result_metadata

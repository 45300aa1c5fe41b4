"""Audio transcription via the AssemblyAI SDK."""

from __future__ import annotations

import asyncio
import logging

import assemblyai as aai  # type: ignore[import-untyped]

from recall.ingestion.models import TranscriptionResult, TranscriptSegment

logger = logging.getLogger(__name__)


class TranscriptionError(RuntimeError):
    """The audio could not be transcribed."""


class AssemblyAITranscriber:
    """Transcribes audio bytes into text plus timed sentence segments.

    Speaker labels are left off: speaker identity is inferred later from the
    transcript content, so segments come back without a speaker.
    """

    def __init__(self, api_key: str, timeout: float = 600.0) -> None:
        aai.settings.api_key = api_key
        self._timeout = timeout

    def _transcribe_sync(self, audio: bytes, filename: str) -> TranscriptionResult:
        transcriber = aai.Transcriber()
        config = aai.TranscriptionConfig(speech_models=["universal-3-pro"], speaker_labels=False)
        transcript = transcriber.transcribe(audio, config=config)
        if transcript.status == aai.TranscriptStatus.error:
            raise TranscriptionError(f"Transcription of {filename} failed: {transcript.error}")

        segments = [
            TranscriptSegment(
                text=sentence.text,
                start=sentence.start / 1000 if sentence.start is not None else None,
                end=sentence.end / 1000 if sentence.end is not None else None,
            )
            for sentence in transcript.get_sentences()
        ]
        duration = float(transcript.audio_duration) if transcript.audio_duration else None
        return TranscriptionResult(text=transcript.text or "", duration=duration, segments=segments)

    async def transcribe(self, audio: bytes, filename: str) -> TranscriptionResult:
        """Transcribe *audio*; the blocking SDK call runs in a worker thread."""
        logger.info("Transcribing %s (%d bytes)", filename, len(audio))
        try:
            result = await asyncio.wait_for(
                asyncio.to_thread(self._transcribe_sync, audio, filename),
                timeout=self._timeout,
            )
        except TranscriptionError:
            raise
        except Exception as exc:
            raise TranscriptionError(f"Transcription service unavailable: {exc}") from exc

        logger.info(
            "Transcribed %s: %d chars, %d segments, duration %s",
            filename,
            len(result.text),
            len(result.segments),
            f"{result.duration:.0f}s" if result.duration else "unknown",
        )
        return result

"""Sentence-aligned chunking of extracted source text."""

from __future__ import annotations

import logging
import math
import re
from collections.abc import Sequence
from dataclasses import dataclass

from recall.ingestion.models import Chunk, TranscriptSegment

logger = logging.getLogger(__name__)

MIN_CHUNK_TOKENS = 300
MAX_CHUNK_TOKENS = 400

# Approximate: 1 token ≈ 4 characters of English text
TOKEN_CHAR_RATIO = 4

# Speaker segments are located in the text by the first N characters of their text
SPEAKER_MATCH_KEY_CHARS = 50

_SENTENCE_END_RE = re.compile(r"[.!?]\s+")


@dataclass
class _Sentence:
    text: str
    start: int
    end: int


def estimate_tokens(text: str) -> int:
    """Rough token estimate: one token per four characters, rounded up."""
    return math.ceil(len(text) / TOKEN_CHAR_RATIO)


def split_sentences(text: str) -> list[_Sentence]:
    """Split *text* on ``.``, ``!`` or ``?`` followed by whitespace.

    Any trailing fragment after the last boundary becomes a final sentence.
    Offsets refer to the untrimmed span in *text*.
    """
    sentences: list[_Sentence] = []
    last_end = 0
    for match in _SENTENCE_END_RE.finditer(text):
        end = match.start() + 1
        sentence = text[last_end:end].strip()
        if sentence:
            sentences.append(_Sentence(sentence, last_end, end))
        last_end = match.end()

    if last_end < len(text):
        remaining = text[last_end:].strip()
        if remaining:
            sentences.append(_Sentence(remaining, last_end, len(text)))

    return sentences


def _speaker_keys(segments: Sequence[TranscriptSegment] | None) -> list[tuple[str, str]]:
    """Return ``(match_key, speaker)`` pairs for segments that carry a speaker."""
    if not segments:
        return []
    keys: list[tuple[str, str]] = []
    for seg in segments:
        key = seg.text.strip().lower()[:SPEAKER_MATCH_KEY_CHARS]
        if seg.speaker and key:
            keys.append((key, seg.speaker))
    return keys


def _speakers_in_range(
    text_lower: str,
    start: int,
    end: int,
    keys: list[tuple[str, str]],
) -> list[str]:
    range_text = text_lower[start:end]
    found: list[str] = []
    for key, speaker in keys:
        if key in range_text and speaker not in found:
            found.append(speaker)
    return found


def _make_chunk(
    parts: list[str],
    start: int,
    end: int,
    speakers: list[str],
) -> Chunk:
    text = " ".join(parts).strip()
    return Chunk(
        text=text,
        token_estimate=estimate_tokens(text),
        start_offset=start,
        end_offset=end,
        speaker=speakers[0] if len(speakers) == 1 else None,
        speakers=list(speakers) or None,
    )


def segment(
    text: str,
    speaker_segments: Sequence[TranscriptSegment] | None = None,
    min_tokens: int = MIN_CHUNK_TOKENS,
    max_tokens: int = MAX_CHUNK_TOKENS,
) -> list[Chunk]:
    """Split text into sentence-aligned chunks of roughly *min*–*max* tokens.

    Sentences are accumulated greedily. When the next sentence would push the
    buffer over *max_tokens* the chunk is closed, but only if it has already
    reached *min_tokens*; otherwise the sentence is appended anyway. Sentences
    are never split, so a single oversized sentence becomes its own chunk.

    Args:
        text: Extracted source text.
        speaker_segments: Optional attributed transcript segments. Each
            segment's speaker is credited to every chunk containing a sentence
            in which the segment's opening text appears.
        min_tokens: Minimum estimated tokens for every chunk but the last.
        max_tokens: Soft maximum estimated tokens per chunk.

    Returns:
        Chunks in source order.
    """
    sentences = split_sentences(text)
    if not sentences:
        return []

    keys = _speaker_keys(speaker_segments)
    text_lower = text.lower() if keys else ""

    chunks: list[Chunk] = []
    parts: list[str] = []
    current_start = 0
    chunk_speakers: list[str] = []

    for sentence in sentences:
        current_tokens = estimate_tokens(" ".join(parts))
        candidate_tokens = estimate_tokens(" ".join([*parts, sentence.text]))

        if parts and candidate_tokens > max_tokens and current_tokens >= min_tokens:
            chunks.append(_make_chunk(parts, current_start, sentence.start, chunk_speakers))
            parts = []
            chunk_speakers = []

        if not parts:
            current_start = sentence.start
        parts.append(sentence.text)

        if keys:
            for speaker in _speakers_in_range(text_lower, sentence.start, sentence.end, keys):
                if speaker not in chunk_speakers:
                    chunk_speakers.append(speaker)

    chunks.append(_make_chunk(parts, current_start, len(text), chunk_speakers))

    logger.info(
        "Chunked %d chars into %d chunks (%d sentences, %d attributed)",
        len(text),
        len(chunks),
        len(sentences),
        sum(1 for c in chunks if c.speaker),
    )
    return chunks

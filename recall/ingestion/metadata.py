"""Claude-powered metadata extraction (keywords, summary, topics, speakers)."""

from __future__ import annotations

import logging
from collections import Counter
from typing import Any

from recall.ingestion.models import SourceMetadata
from recall.llm import AnthropicCompleter

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = "You are a metadata extraction assistant. Extract structured metadata from the content provided."

# Generic content is truncated before it is sent for extraction
GENERIC_CONTENT_CHARS = 8000

_STRING_LIST = {"type": "array", "items": {"type": "string"}}

AUDIO_METADATA_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "keywords": {**_STRING_LIST, "description": "5-10 most important keywords."},
        "speakers": {**_STRING_LIST, "description": "Speaker names or identifiers mentioned or detected."},
        "summary": {"type": "string", "description": "Brief 1-2 sentence summary."},
        "topics": {**_STRING_LIST, "description": "Main topics discussed."},
        "action_items": {**_STRING_LIST, "description": "Tasks that need to be done."},
        "decisions": {**_STRING_LIST, "description": "Key decisions made."},
        "meeting_title": {"type": "string", "description": "Meeting title or subject, if identifiable."},
        "participants": {**_STRING_LIST, "description": "Participants mentioned."},
    },
    "required": ["keywords", "summary", "topics"],
}

GENERIC_METADATA_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "keywords": {**_STRING_LIST, "description": "5-10 most important keywords."},
        "summary": {"type": "string", "description": "Brief 1-2 sentence summary."},
        "topics": {**_STRING_LIST, "description": "Main topics discussed."},
    },
    "required": ["keywords", "summary", "topics"],
}


def fallback_metadata(text: str) -> SourceMetadata:
    """Frequency-based keywords and a truncated summary, used when the LLM fails."""
    words = [w for w in text.lower().split() if len(w) > 4]
    keywords = [word for word, _ in Counter(words).most_common(10)]
    return SourceMetadata(keywords=keywords, summary=text[:200] + "...")


async def extract_metadata(
    completer: AnthropicCompleter,
    transcript: str,
    duration: float | None = None,
) -> SourceMetadata:
    """Extract audio/meeting metadata from a transcript."""
    prompt = (
        "Analyze the following audio transcription and extract structured metadata. "
        "This appears to be a meeting, conversation, or audio recording.\n"
        f"Duration: {f'{duration:.0f}s' if duration else 'unknown'}\n\n"
        f"Transcription:\n{transcript}"
    )
    try:
        data = await completer.complete_json(SYSTEM_PROMPT, prompt, AUDIO_METADATA_SCHEMA, temperature=0.3)
        metadata = SourceMetadata.from_payload(data)
    except Exception:
        logger.exception("Metadata extraction failed; falling back to keyword frequency")
        return fallback_metadata(transcript)

    logger.info(
        "Extracted metadata: %d keywords, %d speakers, %d topics",
        len(metadata.keywords),
        len(metadata.speakers),
        len(metadata.topics),
    )
    return metadata


async def extract_generic_metadata(
    completer: AnthropicCompleter,
    text: str,
    content_type: str = "text",
) -> SourceMetadata:
    """Extract keywords, summary and topics from document or plain-text content."""
    excerpt = text[:GENERIC_CONTENT_CHARS] + ("..." if len(text) > GENERIC_CONTENT_CHARS else "")
    prompt = f"Analyze the following {content_type} content and extract structured metadata.\n\nContent:\n{excerpt}"
    try:
        data = await completer.complete_json(SYSTEM_PROMPT, prompt, GENERIC_METADATA_SCHEMA, temperature=0.3)
        metadata = SourceMetadata.from_payload(data)
    except Exception:
        logger.exception("Metadata extraction failed; falling back to keyword frequency")
        return fallback_metadata(text)

    logger.info("Extracted metadata: %d keywords, %d topics", len(metadata.keywords), len(metadata.topics))
    return metadata

"""Data models for the ingestion pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator


@dataclass
class TranscriptSegment:
    """Uniform representation of a transcript segment."""

    text: str
    start: float | None = None
    end: float | None = None
    speaker: str | None = None


@dataclass
class TranscriptionResult:
    """Output of the transcription service."""

    text: str
    duration: float | None = None
    segments: list[TranscriptSegment] = field(default_factory=list)


@dataclass
class Chunk:
    """A sentence-aligned span of source text, ready for embedding."""

    text: str
    token_estimate: int
    start_offset: int
    end_offset: int
    speaker: str | None = None
    speakers: list[str] | None = None


class SourceMetadata(BaseModel):
    """Metadata extracted from a source.

    Known fields are typed; anything else the extractor returns is kept in
    ``extra`` so it can still be persisted with the job.
    """

    keywords: list[str] = Field(default_factory=list)
    summary: str | None = None
    topics: list[str] = Field(default_factory=list)
    speakers: list[str] = Field(default_factory=list)
    language: str | None = None
    action_items: list[str] = Field(default_factory=list)
    decisions: list[str] = Field(default_factory=list)
    meeting_title: str | None = None
    participants: list[str] = Field(default_factory=list)
    extra: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> SourceMetadata:
        """Build from a loosely-typed dict, moving unknown keys into ``extra``.

        ``null`` values for list fields are treated as empty lists.
        """
        known = set(cls.model_fields) - {"extra"}
        values: dict[str, Any] = {}
        extra: dict[str, Any] = dict(data.get("extra") or {})
        for key, value in data.items():
            if key == "extra":
                continue
            if key in known:
                if value is None:
                    continue
                values[key] = value
            else:
                extra[key] = value
        return cls(**values, extra=extra)


class IngestionJob(BaseModel):
    """A row of the ``ingestion_jobs`` table."""

    id: str
    user_id: str
    modality: str
    status: str = "pending"
    source_name: str | None = None
    storage_path: str | None = None
    source_date: datetime | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("source_date", mode="before")
    @classmethod
    def _drop_bad_date(cls, value: Any) -> Any:
        # Unparseable dates are dropped rather than failing the whole job.
        return coerce_datetime(value)

    @field_validator("metadata", mode="before")
    @classmethod
    def _null_metadata(cls, value: Any) -> Any:
        return value or {}


def coerce_datetime(value: Any) -> datetime | None:
    """Return *value* as a datetime, or None if it cannot be parsed."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    return None

"""Pipeline configuration: modality/status enums and RetrievalConfig dataclass."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import tzinfo
from enum import StrEnum
from zoneinfo import ZoneInfo

from recall.config import Settings


class Modality(StrEnum):
    """Kinds of content an ingestion job can carry."""

    AUDIO = "audio"
    DOCUMENT = "document"
    TEXT = "text"

    @classmethod
    def parse(cls, value: str) -> Modality:
        """Accept the legacy ``"plain text"`` / ``"plain_text"`` spellings."""
        normalized = value.strip().lower().replace("_", " ")
        if normalized == "plain text":
            return cls.TEXT
        return cls(normalized)


class JobStatus(StrEnum):
    """Lifecycle states of an ingestion job."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class RetrievalConfig:
    """Immutable knobs for hybrid search and reranking.

    Defaults mirror the tuned production values (30/70 keyword/vector fusion,
    20 candidates reranked down to 7).
    """

    keyword_weight: float = 0.3
    vector_weight: float = 0.7
    top_k: int = 20
    rerank_top_n: int = 7
    rerank_batch_size: int = 5
    rerank_passage_chars: int = 800
    tz: tzinfo | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> RetrievalConfig:
        return cls(
            keyword_weight=settings.keyword_weight,
            vector_weight=settings.vector_weight,
            top_k=settings.search_top_k,
            rerank_top_n=settings.rerank_top_n,
            rerank_batch_size=settings.rerank_batch_size,
            rerank_passage_chars=settings.rerank_passage_chars,
            tz=ZoneInfo(settings.timezone) if settings.timezone else None,
        )

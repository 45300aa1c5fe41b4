"""Pydantic request/response schemas for the Recall API."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator

from recall.pipeline_config import Modality


class CreateJobRequest(BaseModel):
    """Request body for POST /api/jobs."""

    user_id: str = Field(min_length=1)
    modality: Modality
    source_name: str | None = None
    storage_path: str
    source_date: datetime | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("modality", mode="before")
    @classmethod
    def _parse_modality(cls, value: Any) -> Any:
        if isinstance(value, str):
            return Modality.parse(value)
        return value


class JobAccepted(BaseModel):
    job_id: str
    status: str


class JobResponse(BaseModel):
    """Status and metadata of an ingestion job."""

    id: str
    user_id: str
    modality: str
    status: str
    source_name: str | None = None
    source_date: datetime | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class SearchRequest(BaseModel):
    """Request body for POST /api/search."""

    user_id: str = Field(min_length=1)
    query: str = Field(min_length=1)
    top_k: int | None = Field(default=None, ge=1, le=100)
    rerank: bool = True
    rerank_top_n: int | None = Field(default=None, ge=0)


class TemporalRangeModel(BaseModel):
    start_date: datetime
    end_date: datetime
    relative_text: str | None = None


class SearchHit(BaseModel):
    """A single retrieved chunk with its score and payload fields."""

    id: int | str
    score: float
    text: str
    source_name: str | None = None
    source_date: str | None = None
    modality: str | None = None
    speaker: str | None = None
    speakers: list[str] = Field(default_factory=list)
    job_id: str | None = None
    chunk_index: int | None = None


class SearchResponse(BaseModel):
    results: list[SearchHit]
    query: str
    temporal_range: TemporalRangeModel | None = None


class ChatRequest(BaseModel):
    """Request body for POST /api/chat."""

    user_id: str = Field(min_length=1)
    question: str = Field(min_length=1)


class ChatResponse(BaseModel):
    answer: str
    sources: list[SearchHit]
    temporal_range: TemporalRangeModel | None = None
    model: str | None = None
    usage: dict[str, Any] | None = None

"""Supabase storage helpers for ingestion jobs and uploaded sources."""

from __future__ import annotations

from datetime import datetime
from typing import Any, cast

from supabase import Client, create_client

from recall.ingestion.models import IngestionJob


def get_supabase_client(url: str, key: str) -> Client:
    """Create and return a Supabase client."""
    return create_client(url, key)


class JobStore:
    """CRUD access to the ``ingestion_jobs`` table and the uploads bucket.

    The Supabase client is synchronous; callers on the event loop wrap these
    methods in :func:`asyncio.to_thread`.
    """

    def __init__(self, client: Client, table: str = "ingestion_jobs", bucket: str = "uploads") -> None:
        self._client = client
        self._table = table
        self._bucket = bucket

    def create_job(
        self,
        user_id: str,
        modality: str,
        source_name: str | None = None,
        storage_path: str | None = None,
        source_date: datetime | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> IngestionJob:
        """Insert a pending job and return it."""
        result = (
            self._client.table(self._table)
            .insert(
                {
                    "user_id": user_id,
                    "modality": modality,
                    "source_name": source_name,
                    "storage_path": storage_path,
                    "source_date": source_date.isoformat() if source_date else None,
                    "metadata": metadata or {},
                    "status": "pending",
                }
            )
            .execute()
        )
        rows = cast(list[dict[str, Any]], result.data)
        return IngestionJob.model_validate(rows[0])

    def get_job(self, job_id: str) -> IngestionJob | None:
        result = self._client.table(self._table).select("*").eq("id", job_id).execute()
        rows = cast(list[dict[str, Any]], result.data)
        if not rows:
            return None
        return IngestionJob.model_validate(rows[0])

    def update_job(self, job_id: str, **fields: Any) -> None:
        """Update columns of a job (e.g. ``status``, ``metadata``)."""
        self._client.table(self._table).update(fields).eq("id", job_id).execute()

    def download(self, storage_path: str) -> bytes:
        """Download an uploaded source file."""
        return self._client.storage.from_(self._bucket).download(storage_path)

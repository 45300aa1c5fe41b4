"""Ingestion job endpoints: create, enqueue and inspect jobs."""

from __future__ import annotations

import asyncio
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status

from recall.api.models import CreateJobRequest, JobAccepted, JobResponse
from recall.pipeline_config import JobStatus
from recall.services import Services, get_services

router = APIRouter()

ServicesDep = Annotated[Services, Depends(get_services)]


@router.post("/api/jobs", response_model=JobAccepted, status_code=status.HTTP_202_ACCEPTED)
async def create_job(request: CreateJobRequest, services: ServicesDep) -> JobAccepted:
    """Record a new ingestion job for an uploaded source and queue it."""
    job = await asyncio.to_thread(
        services.store.create_job,
        request.user_id,
        request.modality.value,
        source_name=request.source_name,
        storage_path=request.storage_path,
        source_date=request.source_date,
        metadata=request.metadata,
    )
    services.worker.enqueue(job.id)
    return JobAccepted(job_id=job.id, status=JobStatus.PENDING.value)


@router.post("/api/jobs/{job_id}/process", response_model=JobAccepted, status_code=status.HTTP_202_ACCEPTED)
async def process_job(job_id: str, services: ServicesDep) -> JobAccepted:
    """Queue an existing job (again), e.g. after a failure."""
    job = await asyncio.to_thread(services.store.get_job, job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    services.worker.enqueue(job.id)
    return JobAccepted(job_id=job.id, status=job.status)


@router.get("/api/jobs/{job_id}", response_model=JobResponse)
async def get_job(job_id: str, services: ServicesDep) -> JobResponse:
    job = await asyncio.to_thread(services.store.get_job, job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return JobResponse(
        id=job.id,
        user_id=job.user_id,
        modality=job.modality,
        status=job.status,
        source_name=job.source_name,
        source_date=job.source_date,
        metadata=job.metadata,
    )

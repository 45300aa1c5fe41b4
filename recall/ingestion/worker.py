"""Background worker that drains a queue of ingestion job IDs."""

from __future__ import annotations

import asyncio
import contextlib
import logging

from recall.ingestion.pipeline import IngestionPipeline

logger = logging.getLogger(__name__)


class IngestionWorker:
    """Processes queued jobs one at a time on the running event loop.

    A failed job is logged and skipped; there is no retry.
    """

    def __init__(self, pipeline: IngestionPipeline) -> None:
        self._pipeline = pipeline
        self._queue: asyncio.Queue[str] = asyncio.Queue()
        self._task: asyncio.Task[None] | None = None

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def enqueue(self, job_id: str) -> None:
        self._queue.put_nowait(job_id)
        logger.info("Queued job %s (%d pending)", job_id, self._queue.qsize())

    async def process_next(self) -> None:
        """Take one job off the queue and run it."""
        job_id = await self._queue.get()
        try:
            await self._pipeline.process_job(job_id)
        except Exception:
            logger.exception("Ingestion of job %s failed", job_id)
        finally:
            self._queue.task_done()

    async def run(self) -> None:
        while True:
            await self.process_next()

    async def join(self) -> None:
        """Wait until every queued job has been processed."""
        await self._queue.join()

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run(), name="ingestion-worker")
            logger.info("Ingestion worker started")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info("Ingestion worker stopped")

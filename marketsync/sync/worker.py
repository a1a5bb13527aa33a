"""
Sync job worker.

Polls the sync_jobs table, runs the matching handler and records the outcome.
Failed jobs are requeued with a growing delay until JOB_MAX_ATTEMPTS, then
marked failed. Several workers can run side by side (SKIP LOCKED fetch).
"""

import asyncio
import logging
import signal
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from marketsync.core.config import get_settings
from marketsync.database import async_session
from marketsync.models.sync_job import SyncJob
from marketsync.services.job_queue import (
    fetch_next_queued_job,
    mark_job_completed,
    mark_job_failed,
    mark_job_in_progress,
)
from marketsync.sync.handlers import JOB_HANDLERS

logger = logging.getLogger(__name__)

_shutdown_requested = False


def _handle_signal(*_: Any) -> None:
    global _shutdown_requested
    if _shutdown_requested:
        logger.warning("Forced shutdown requested")
        raise SystemExit(1)
    _shutdown_requested = True
    logger.info("Shutdown requested - will exit after current job completes")


async def process_job(session: AsyncSession, job: SyncJob) -> Dict[str, Any]:
    handler = JOB_HANDLERS.get(job.job_type)
    if handler is None:
        raise ValueError(f"No handler for job type {job.job_type}")
    logger.info(f"Processing job {job.id} ({job.job_type}, marketplace={job.marketplace})")
    return await handler(session, job)


async def process_next_job(session_factory=async_session) -> bool:
    """
    Run one due job.

    Returns:
        True if a job was taken from the queue
    """
    settings = get_settings()
    async with session_factory() as session:
        job = await fetch_next_queued_job(session)
        if not job:
            return False

        try:
            await mark_job_in_progress(session, job)
            await session.commit()
        except Exception as exc:
            await session.rollback()
            logger.error("Failed to mark job %s in progress: %s", job.id, exc, exc_info=True)
            return False

        job_id = job.id
        try:
            result = await process_job(session, job)
            await session.refresh(job)
            await mark_job_completed(session, job, result)
            await session.commit()
            logger.info(f"Job {job_id} completed: {result}")
        except Exception as exc:
            await session.rollback()
            error_message = str(exc) or exc.__class__.__name__
            try:
                await session.refresh(job)
                requeued = await mark_job_failed(session, job, error_message, max_attempts=settings.JOB_MAX_ATTEMPTS)
                await session.commit()
            except Exception as inner_exc:
                await session.rollback()
                logger.exception("Failed to record failure for job %s (%s): %s", job_id, error_message, inner_exc)
            else:
                if requeued:
                    logger.warning(f"Job {job_id} failed, requeued: {error_message}")
                else:
                    logger.error(f"Job {job_id} failed permanently: {error_message}")
        return True


async def run_worker(poll_interval: Optional[float] = None, once: bool = False) -> None:
    global _shutdown_requested
    _shutdown_requested = False
    interval = poll_interval if poll_interval is not None else get_settings().JOB_POLL_INTERVAL

    if not once:
        for sig in (signal.SIGINT, signal.SIGTERM):
            signal.signal(sig, _handle_signal)

    logger.info(f"Starting sync worker (poll={interval}s)")
    while not _shutdown_requested:
        processed = await process_next_job()
        if once:
            break
        if not processed:
            await asyncio.sleep(interval)
    logger.info("Sync worker stopped")

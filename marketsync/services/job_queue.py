"""Helpers for enqueuing and managing sync jobs."""

from datetime import timedelta
from typing import Any, Dict, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from marketsync.core.enums import JobStatus
from marketsync.database import utcnow
from marketsync.models.sync_job import SyncJob


async def enqueue_job(
    db: AsyncSession,
    *,
    job_type: str,
    payload: Dict[str, Any],
    marketplace: Optional[str] = None,
    user_id: Optional[int] = None,
    delay_seconds: int = 0,
) -> SyncJob:
    """Create a queued job; `delay_seconds` postpones its first run."""
    job = SyncJob(
        job_type=job_type,
        marketplace=marketplace,
        user_id=user_id,
        payload=payload,
        status=JobStatus.QUEUED.value,
        attempts=0,
        available_at=utcnow() + timedelta(seconds=delay_seconds),
    )
    db.add(job)
    await db.flush()
    return job


async def fetch_next_queued_job(db: AsyncSession) -> Optional[SyncJob]:
    """Fetch the next due job (using SKIP LOCKED to avoid contention between workers)."""
    stmt = (
        select(SyncJob)
        .where(
            SyncJob.status == JobStatus.QUEUED.value,
            SyncJob.available_at <= utcnow(),
        )
        .order_by(SyncJob.available_at.asc(), SyncJob.id.asc())
        .limit(1)
        .with_for_update(skip_locked=True)
    )
    result = await db.execute(stmt)
    return result.scalars().first()


async def mark_job_in_progress(db: AsyncSession, job: SyncJob) -> None:
    job.status = JobStatus.IN_PROGRESS.value
    job.last_attempt_at = utcnow()
    job.attempts += 1
    await db.flush()


async def mark_job_completed(db: AsyncSession, job: SyncJob, result: Optional[Dict[str, Any]] = None) -> None:
    job.status = JobStatus.COMPLETED.value
    job.error_message = None
    if result is not None:
        job.payload = {**(job.payload or {}), "result": result}
    await db.flush()


async def mark_job_failed(db: AsyncSession, job: SyncJob, error_message: str, max_attempts: int = 1, retry_delay: int = 60) -> bool:
    """
    Record a failed run.

    The job goes back to the queue while attempts remain.

    Returns:
        True if the job was requeued, False if it failed permanently
    """
    job.error_message = error_message[:2000]
    if job.attempts < max_attempts:
        job.status = JobStatus.QUEUED.value
        job.available_at = utcnow() + timedelta(seconds=retry_delay * job.attempts)
        requeued = True
    else:
        job.status = JobStatus.FAILED.value
        requeued = False
    await db.flush()
    return requeued


async def peek_queue_count(db: AsyncSession, job_type: Optional[str] = None) -> int:
    """Check how many jobs are still queued (without locking)."""
    stmt = select(func.count(SyncJob.id)).where(SyncJob.status == JobStatus.QUEUED.value)
    if job_type:
        stmt = stmt.where(SyncJob.job_type == job_type)
    result = await db.execute(stmt)
    return result.scalar() or 0

# tests/unit/services/test_job_queue.py
import pytest

from marketsync.core.enums import JobStatus, JobType
from marketsync.services.job_queue import (
    enqueue_job,
    fetch_next_queued_job,
    mark_job_completed,
    mark_job_failed,
    mark_job_in_progress,
    peek_queue_count,
)


@pytest.mark.asyncio
async def test_jobs_are_fetched_in_due_order(db_session):
    first = await enqueue_job(db_session, job_type=JobType.SYNC_USER_ORDERS.value, payload={"user_id": 1})
    await enqueue_job(db_session, job_type=JobType.SYNC_SUPPLIES.value, payload={"user_id": 1})

    job = await fetch_next_queued_job(db_session)

    assert job.id == first.id
    assert job.status == JobStatus.QUEUED.value
    assert job.attempts == 0


@pytest.mark.asyncio
async def test_delayed_job_is_not_due(db_session):
    await enqueue_job(db_session, job_type=JobType.PRODUCTS_STATUS.value, payload={}, delay_seconds=600)

    assert await fetch_next_queued_job(db_session) is None
    assert await peek_queue_count(db_session) == 1


@pytest.mark.asyncio
async def test_lifecycle_to_completed(db_session):
    job = await enqueue_job(db_session, job_type=JobType.EXPORT_PRODUCTS.value, payload={"product_ids": [1]})

    await mark_job_in_progress(db_session, job)
    assert job.status == JobStatus.IN_PROGRESS.value
    assert job.attempts == 1
    assert job.last_attempt_at is not None

    await mark_job_completed(db_session, job, result={"created": 1})
    assert job.status == JobStatus.COMPLETED.value
    assert job.payload == {"product_ids": [1], "result": {"created": 1}}
    assert await peek_queue_count(db_session) == 0


@pytest.mark.asyncio
async def test_failed_job_is_requeued_until_attempts_run_out(db_session):
    job = await enqueue_job(db_session, job_type=JobType.SYNC_WAREHOUSES.value, payload={})

    await mark_job_in_progress(db_session, job)
    requeued = await mark_job_failed(db_session, job, "timeout", max_attempts=2, retry_delay=30)
    assert requeued is True
    assert job.status == JobStatus.QUEUED.value
    assert await fetch_next_queued_job(db_session) is None

    await mark_job_in_progress(db_session, job)
    requeued = await mark_job_failed(db_session, job, "x" * 5000, max_attempts=2)
    assert requeued is False
    assert job.status == JobStatus.FAILED.value
    assert len(job.error_message) == 2000


@pytest.mark.asyncio
async def test_peek_queue_count_by_type(db_session):
    await enqueue_job(db_session, job_type=JobType.SYNC_USER_ORDERS.value, payload={})
    await enqueue_job(db_session, job_type=JobType.SYNC_USER_ORDERS.value, payload={})
    await enqueue_job(db_session, job_type=JobType.SYNC_SUPPLIES.value, payload={})

    assert await peek_queue_count(db_session) == 3
    assert await peek_queue_count(db_session, JobType.SYNC_USER_ORDERS.value) == 2

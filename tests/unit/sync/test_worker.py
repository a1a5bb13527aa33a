# tests/unit/sync/test_worker.py
import pytest

from marketsync.core.config import clear_settings_cache
from marketsync.core.enums import JobStatus
from marketsync.models.sync_job import SyncJob
from marketsync.services.job_queue import enqueue_job
from marketsync.sync import worker


async def queued_job(session_factory, job_type="test_job"):
    async with session_factory() as session:
        job = await enqueue_job(session, job_type=job_type, payload={"user_id": 1})
        await session.commit()
        return job.id


async def load(session_factory, job_id):
    async with session_factory() as session:
        return await session.get(SyncJob, job_id)


@pytest.mark.asyncio
async def test_empty_queue(session_factory):
    assert await worker.process_next_job(session_factory) is False


@pytest.mark.asyncio
async def test_job_completes_with_handler_result(session_factory, mocker):
    handler = mocker.AsyncMock(return_value={"processed": 2})
    mocker.patch.dict(worker.JOB_HANDLERS, {"test_job": handler})
    job_id = await queued_job(session_factory)

    assert await worker.process_next_job(session_factory) is True

    job = await load(session_factory, job_id)
    assert job.status == JobStatus.COMPLETED.value
    assert job.attempts == 1
    assert job.payload == {"user_id": 1, "result": {"processed": 2}}
    handler.assert_awaited_once()


@pytest.mark.asyncio
async def test_failed_job_is_requeued(session_factory, mocker):
    mocker.patch.dict(worker.JOB_HANDLERS, {"test_job": mocker.AsyncMock(side_effect=RuntimeError("marketplace down"))})
    job_id = await queued_job(session_factory)

    await worker.process_next_job(session_factory)

    job = await load(session_factory, job_id)
    assert job.status == JobStatus.QUEUED.value
    assert job.error_message == "marketplace down"
    # retry is delayed, so the queue looks empty right now
    assert await worker.process_next_job(session_factory) is False


@pytest.mark.asyncio
async def test_job_fails_after_last_attempt(session_factory, monkeypatch):
    monkeypatch.setenv("JOB_MAX_ATTEMPTS", "1")
    clear_settings_cache()
    job_id = await queued_job(session_factory, job_type="no_such_job")

    await worker.process_next_job(session_factory)

    job = await load(session_factory, job_id)
    assert job.status == JobStatus.FAILED.value
    assert job.error_message == "No handler for job type no_such_job"


@pytest.mark.asyncio
async def test_run_worker_once(mocker):
    process = mocker.patch.object(worker, "process_next_job", return_value=False)
    sleep = mocker.patch("marketsync.sync.worker.asyncio.sleep")

    await worker.run_worker(poll_interval=0, once=True)

    process.assert_awaited_once()
    sleep.assert_not_awaited()

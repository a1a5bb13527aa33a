# tests/unit/sync/test_orchestrator.py
import pytest
from sqlalchemy import select

from marketsync.core.enums import ImportStatus, JobType
from marketsync.core.exceptions import BusinessError
from marketsync.models.import_task import ImportTask
from marketsync.models.sync_job import SyncJob
from marketsync.sync.orchestrator import collect_credentials, dispatch_category_sync, dispatch_import, dispatch_sync

ORDERS_ON = {"import": {"orders": {"import_status": "1"}}}


@pytest.fixture
async def wb_users(make_user, make_integration):
    """Four Wildberries users, one of them fully eligible for order sync."""
    eligible = await make_user()
    await make_integration(eligible, settings={"api_token": "wb-1", **ORDERS_ON})
    no_orders = await make_user()
    await make_integration(no_orders, settings={"api_token": "wb-2"})
    no_token = await make_user()
    await make_integration(no_token, settings=ORDERS_ON)
    inactive = await make_user()
    await make_integration(inactive, settings={"api_token": "wb-4", **ORDERS_ON}, active=False)
    return eligible, no_orders


@pytest.mark.asyncio
async def test_collect_credentials_for_order_jobs(db_session, wb_users):
    eligible, _ = wb_users

    credentials = await collect_credentials(db_session, "wildberries")

    assert [c.user_id for c in credentials] == [eligible.id]
    assert credentials[0].api_token == "wb-1"
    assert credentials[0].client_id is None


@pytest.mark.asyncio
async def test_collect_credentials_without_order_gate(db_session, wb_users):
    eligible, no_orders = wb_users

    credentials = await collect_credentials(db_session, "wildberries", orders_only=False)

    assert [c.user_id for c in credentials] == [eligible.id, no_orders.id]


@pytest.mark.asyncio
async def test_ozon_credentials_need_client_id(db_session, make_user, make_integration):
    complete = await make_user()
    await make_integration(complete, marketplace="ozon", settings={"api_token": "key", "client_id": " 42 ", **ORDERS_ON})
    partial = await make_user()
    await make_integration(partial, marketplace="ozon", settings={"api_token": "key", **ORDERS_ON})

    credentials = await collect_credentials(db_session, "ozon")

    assert len(credentials) == 1
    assert credentials[0].client_id == "42"


@pytest.mark.asyncio
async def test_dispatch_sync_queues_one_job_for_all_users(db_session, wb_users):
    eligible, no_orders = wb_users

    job = await dispatch_sync(db_session, JobType.SYNC_WAREHOUSES.value, "wildberries")

    assert job.marketplace == "wildberries"
    assert [c["user_id"] for c in job.payload["credentials"]] == [eligible.id, no_orders.id]
    jobs = (await db_session.execute(select(SyncJob))).scalars().all()
    assert len(jobs) == 1


@pytest.mark.asyncio
async def test_dispatch_sync_without_users_queues_nothing(db_session):
    assert await dispatch_sync(db_session, JobType.SYNC_USER_ORDERS.value, "ozon") is None
    assert (await db_session.execute(select(SyncJob))).scalars().first() is None


@pytest.mark.asyncio
async def test_dispatch_category_sync(db_session):
    job = await dispatch_category_sync(db_session, "ozon")

    assert job.job_type == JobType.SYNC_CATEGORIES.value
    assert job.payload == {}


@pytest.mark.asyncio
async def test_dispatch_import_refuses_second_import(db_session, user, make_integration):
    integration = await make_integration(user, settings={"api_token": "wb"})

    job = await dispatch_import(db_session, integration)
    assert job.payload == {"integration_id": integration.id}

    with pytest.raises(BusinessError) as exc_info:
        await dispatch_import(db_session, integration)
    assert exc_info.value.user_message == "A product import is already in progress"


@pytest.mark.asyncio
async def test_dispatch_import_refused_while_task_runs(db_session, user, make_integration):
    integration = await make_integration(user, settings={"api_token": "wb"})
    db_session.add(ImportTask(
        user_id=user.id, integration_id=integration.id, marketplace="wildberries", status=ImportStatus.PROCESSING.value,
    ))
    await db_session.flush()

    with pytest.raises(BusinessError):
        await dispatch_import(db_session, integration)

# tests/unit/sync/test_handlers.py
import pytest
from sqlalchemy import select

from marketsync.core.enums import ImportStatus, JobType
from marketsync.core.exceptions import BusinessError, TokenRequiredError
from marketsync.integrations.platforms.ozon import OzonProvider
from marketsync.integrations.platforms.wildberries import WildberriesProvider
from marketsync.models.import_task import ImportTask
from marketsync.models.sync_job import SyncJob
from marketsync.models.user import UserNotification
from marketsync.models.warehouse import Warehouse
from marketsync.schemas.marketplace import ExportBatchResult, WarehouseDTO
from marketsync.sync.handlers import (
    JOB_HANDLERS,
    export_products,
    for_each_user,
    import_products,
    product_status_changed,
    sync_user_orders,
    sync_warehouses,
)


def fan_out_job(job_type, credentials, marketplace="wildberries"):
    return SyncJob(id=1, job_type=job_type, marketplace=marketplace, payload={"credentials": credentials})


def test_every_job_type_has_a_handler():
    assert set(JOB_HANDLERS) == {job_type.value for job_type in JobType}


@pytest.mark.asyncio
async def test_fan_out_continues_after_rejected_token(db_session, mocker):
    get_last_orders = mocker.patch.object(
        WildberriesProvider, "get_last_orders",
        side_effect=[TokenRequiredError(), RuntimeError("boom"), {"created": 1, "updated": 0}],
    )
    job = fan_out_job(JobType.SYNC_USER_ORDERS.value, [
        {"user_id": 1, "marketplace": "wildberries", "api_token": "a"},
        {"user_id": 2, "marketplace": "wildberries", "api_token": "b"},
        {"user_id": 3, "marketplace": "wildberries", "api_token": "c"},
    ])

    result = await sync_user_orders(db_session, job)

    assert result == {"processed": 1, "failed": 2}
    assert [c.args[0].user_id for c in get_last_orders.await_args_list] == [1, 2, 3]


@pytest.mark.asyncio
async def test_fan_out_with_empty_payload(db_session):
    job = SyncJob(id=1, job_type=JobType.SYNC_SUPPLIES.value, marketplace="ozon", payload={})

    async def action(provider, credentials):
        raise AssertionError("must not be called")

    assert await for_each_user(db_session, job, action) == {"processed": 0, "failed": 0}


@pytest.mark.asyncio
async def test_sync_warehouses_uses_active_integration(db_session, user, make_integration, mocker):
    await make_integration(user, marketplace="ozon", settings={"api_token": "k", "client_id": "1"})
    mocker.patch.object(OzonProvider, "get_warehouses", return_value=[WarehouseDTO(external_id="22000001", name="Main")])
    job = fan_out_job(
        JobType.SYNC_WAREHOUSES.value,
        [{"user_id": user.id, "marketplace": "ozon", "api_token": "k", "client_id": "1"}],
        marketplace="ozon",
    )

    result = await sync_warehouses(db_session, job)

    assert result == {"processed": 1, "failed": 0}
    names = (await db_session.execute(select(Warehouse.external_id))).scalars().all()
    assert names == ["22000001"]


@pytest.mark.asyncio
async def test_import_failure_alerts_user(db_session, user, make_integration, mocker):
    integration = await make_integration(user, settings={"api_token": "wb"})
    failed_task = ImportTask(id=99, status=ImportStatus.ERROR.value, error_message="Token rejected")
    mocker.patch.object(WildberriesProvider, "import_products", return_value=failed_task)
    save = mocker.patch.object(WildberriesProvider, "save_imported_products")
    job = SyncJob(id=1, job_type=JobType.IMPORT_PRODUCTS.value, marketplace="wildberries", payload={"integration_id": integration.id})

    result = await import_products(db_session, job)

    assert result == {"task_id": 99, "status": ImportStatus.ERROR.value}
    save.assert_not_awaited()
    notification = (await db_session.execute(select(UserNotification))).scalars().one()
    assert notification.level == "danger"
    assert notification.message == "Token rejected"


@pytest.mark.asyncio
async def test_import_without_integration(db_session):
    job = SyncJob(id=7, job_type=JobType.IMPORT_PRODUCTS.value, marketplace="wildberries", user_id=123, payload={})

    with pytest.raises(BusinessError):
        await import_products(db_session, job)


@pytest.mark.asyncio
async def test_export_schedules_delayed_status_check(db_session, user, make_integration, mocker):
    integration = await make_integration(user, settings={"api_token": "wb"})
    mocker.patch.object(WildberriesProvider, "export_products", return_value=ExportBatchResult(created=2))
    job = SyncJob(id=1, job_type=JobType.EXPORT_PRODUCTS.value, marketplace="wildberries",
                  payload={"integration_id": integration.id, "product_ids": [1, 2]})

    result = await export_products(db_session, job)

    assert result["created"] == 2
    follow_up = (await db_session.execute(select(SyncJob))).scalars().one()
    assert follow_up.job_type == JobType.PRODUCTS_STATUS.value
    assert follow_up.payload == {"integration_id": integration.id, "product_ids": [1, 2]}
    assert follow_up.available_at > follow_up.created_at


@pytest.mark.asyncio
async def test_export_without_changes_schedules_nothing(db_session, user, make_integration, mocker):
    integration = await make_integration(user, settings={"api_token": "wb"})
    mocker.patch.object(WildberriesProvider, "export_products", return_value=ExportBatchResult(failed=1))
    job = SyncJob(id=1, job_type=JobType.EXPORT_PRODUCTS.value, marketplace="wildberries",
                  payload={"integration_id": integration.id, "product_ids": [1]})

    await export_products(db_session, job)

    assert (await db_session.execute(select(SyncJob))).scalars().first() is None


@pytest.mark.asyncio
async def test_unpublish_propagates_to_remote_marketplaces(db_session, user, make_integration, mocker):
    await make_integration(user, settings={"api_token": "wb"})
    await make_integration(user, marketplace="ozon", settings={"api_token": "k", "client_id": "1"})
    await make_integration(user, marketplace="api")
    mocker.patch.object(WildberriesProvider, "products_unpublished", return_value=2)
    mocker.patch.object(OzonProvider, "products_unpublished", side_effect=TokenRequiredError())
    job = SyncJob(id=1, job_type=JobType.PRODUCT_STATUS_CHANGED.value,
                  payload={"user_id": user.id, "product_ids": [5], "status": "unpublished"})

    result = await product_status_changed(db_session, job)

    assert result == {"wildberries": 2}


@pytest.mark.asyncio
async def test_publish_needs_stock_export(db_session, user, make_integration, mocker):
    await make_integration(user, settings={"api_token": "wb"})
    push = mocker.patch.object(WildberriesProvider, "products_update_prices_and_stocks", return_value=3)
    job = SyncJob(id=1, job_type=JobType.PRODUCT_STATUS_CHANGED.value,
                  payload={"user_id": user.id, "product_ids": [5], "status": "published"})

    result = await product_status_changed(db_session, job)

    assert result == {"wildberries": 0}
    push.assert_not_awaited()

# tests/unit/services/reconciliation/test_price_reconciler.py
import pytest
from sqlalchemy import select

from marketsync.core.enums import ItemType, JobType
from marketsync.core.exceptions import BusinessError
from marketsync.models.price import Price, Stock
from marketsync.models.sync_job import SyncJob
from marketsync.services.reconciliation import PriceReconciler

BOTH = {"import": {"update_prices": True, "update_stocks": True}}
VARIATION_UUID = "00000000-0000-4000-8000-000000000001"
ITEM_UUID = "00000000-0000-4000-9000-000001000000"


@pytest.mark.asyncio
async def test_prices_and_stocks_written_per_level(db_session, user, make_integration, make_product, make_warehouse):
    integration = await make_integration(user, settings=BOTH, with_price_list=True)
    product = await make_product(user, external_id="1001")
    warehouse = await make_warehouse(user)

    record = {
        "external_id": 1001,
        "prices": {"default": {"base": 1000, "presale": 1200}},
        "stocks": {str(warehouse.id): 4},
        "variations": [{
            "uuid": VARIATION_UUID,
            "prices": {"wildberries": {"base": 950}},
            "items": [{"uuid": ITEM_UUID, "stocks": {str(warehouse.id): 2}}],
        }],
    }
    result = await PriceReconciler(db_session, user.id, integration=integration).reconcile([record])

    assert result.updated == 1
    prices = (await db_session.execute(select(Price).order_by(Price.id))).scalars().all()
    assert [(p.item_type, p.price_type, p.base) for p in prices] == [
        (ItemType.PRODUCT.value, "default", 1000),
        (ItemType.VARIATION.value, "wildberries", 950),
    ]
    assert prices[0].presale == 1200
    stocks = (await db_session.execute(select(Stock).order_by(Stock.id))).scalars().all()
    assert [(s.item_type, s.quantity) for s in stocks] == [
        (ItemType.PRODUCT.value, 4),
        (ItemType.VARIATION_ITEM.value, 2),
    ]

    job = (await db_session.execute(select(SyncJob))).scalars().one()
    assert job.job_type == JobType.UPDATE_PRICES_STOCKS.value
    assert job.payload == {"user_id": user.id, "product_ids": [product.id]}


@pytest.mark.asyncio
async def test_second_identical_batch_reports_no_update(db_session, user, make_integration, make_product):
    integration = await make_integration(user, settings=BOTH, with_price_list=True)
    await make_product(user, external_id="1001")
    record = {"external_id": "1001", "prices": {"default": {"base": 500}}}

    await PriceReconciler(db_session, user.id, integration=integration).reconcile([record])
    result = await PriceReconciler(db_session, user.id, integration=integration).reconcile([record])

    assert result.updated == 0


@pytest.mark.asyncio
async def test_stocks_skipped_when_only_prices_enabled(db_session, user, make_integration, make_product, make_warehouse):
    integration = await make_integration(user, settings={"import": {"update_prices": "1"}}, with_price_list=True)
    await make_product(user, external_id="1001")
    warehouse = await make_warehouse(user)

    await PriceReconciler(db_session, user.id, integration=integration).reconcile([
        {"external_id": "1001", "prices": {"default": {"base": 10}}, "stocks": {warehouse.id: 3}}
    ])

    assert (await db_session.execute(select(Stock))).scalars().all() == []
    assert len((await db_session.execute(select(Price))).scalars().all()) == 1


@pytest.mark.asyncio
async def test_disabled_import_settings_refuse_batch(db_session, user, make_integration):
    integration = await make_integration(user, with_price_list=True)

    with pytest.raises(BusinessError) as exc_info:
        await PriceReconciler(db_session, user.id, integration=integration).reconcile([{"external_id": "1"}])

    assert "disabled" in exc_info.value.user_message


@pytest.mark.asyncio
async def test_record_level_errors(db_session, make_user, make_integration, make_product, make_warehouse):
    user = await make_user()
    other = await make_user()
    integration = await make_integration(user, settings=BOTH, with_price_list=True)
    await make_product(user, external_id="1001")
    foreign_warehouse = await make_warehouse(other)

    records = [
        {"external_id": "missing", "prices": {"default": {"base": 1}}},
        {"external_id": "1001", "prices": {"yandex": {"base": 1}}},
        {"external_id": "1001", "stocks": {foreign_warehouse.id: 1}},
        {"external_id": "1001", "variations": [{"uuid": "00000000-0000-4000-8000-999999999999"}]},
        {"external_id": "1001", "prices": {"default": {"base": -5}}},
    ]
    result = await PriceReconciler(db_session, user.id, integration=integration).reconcile(records)

    assert result.updated == 0
    errors = {info.index: info.field_errors for info in result.additional_info}
    assert errors[0] == {"record": ["Product missing not found"]}
    assert "prices" in errors[1]
    assert errors[2] == {"record": [f"Warehouse {foreign_warehouse.id} not found"]}
    assert errors[3] == {"record": ["Variation 00000000-0000-4000-8000-999999999999 not found"]}
    assert "prices.default.base" in errors[4]
    assert (await db_session.execute(select(SyncJob))).scalars().all() == []

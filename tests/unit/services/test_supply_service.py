# tests/unit/services/test_supply_service.py
import pytest
from sqlalchemy import select

from marketsync.core.enums import OrderStatus, SupplyStatus
from marketsync.core.exceptions import ApiError, BusinessError, ResponseError
from marketsync.integrations.platforms.ozon import OzonProvider
from marketsync.integrations.platforms.wildberries import WildberriesProvider
from marketsync.models.order import Order, Supply
from marketsync.schemas.marketplace import SupplyData
from marketsync.services.supply_service import SupplyService


async def make_order(db_session, user, external_id, marketplace="wildberries", status=OrderStatus.CONFIRM.value):
    order = Order(user_id=user.id, marketplace=marketplace, external_id=external_id, status=status)
    db_session.add(order)
    await db_session.flush()
    return order


@pytest.fixture
def wb_remote(mocker):
    mocker.patch.object(WildberriesProvider, "open_supply", return_value="WB-GI-1")
    mocker.patch.object(WildberriesProvider, "add_order_to_supply", return_value=True)
    mocker.patch.object(WildberriesProvider, "close_supply", return_value=True)


@pytest.mark.asyncio
async def test_open_supply_reuses_open_one(db_session, user, wb_remote):
    service = SupplyService(db_session)

    first = await service.open_supply(user.id, "wildberries")
    second = await service.open_supply(user.id, "wildberries")

    assert first.id == second.id
    assert first.external_id == "WB-GI-1"
    assert first.status == SupplyStatus.OPEN.value
    WildberriesProvider.open_supply.assert_awaited_once()


@pytest.mark.asyncio
async def test_ozon_supply_is_local(db_session, user, mocker):
    mocker.patch.object(OzonProvider, "open_supply", return_value=None)

    supply = await SupplyService(db_session).open_supply(user.id, "ozon")

    assert supply.id is not None
    assert supply.external_id is None


@pytest.mark.asyncio
async def test_attach_orders(db_session, user, wb_remote):
    service = SupplyService(db_session)
    supply = await service.open_supply(user.id, "wildberries")
    first = await make_order(db_session, user, "1")
    second = await make_order(db_session, user, "2")

    attached = await service.attach_orders(supply, [first.id, second.id, first.id])

    assert [order.id for order in attached] == [first.id, second.id]
    assert [order.id for order in await service.supply_orders(supply)] == [first.id, second.id]
    assert WildberriesProvider.add_order_to_supply.await_count == 2

    again = await service.attach_orders(supply, [first.id])
    assert again == []


@pytest.mark.asyncio
async def test_attach_validates_all_orders_first(db_session, make_user, wb_remote):
    user = await make_user()
    other = await make_user()
    service = SupplyService(db_session)
    supply = await service.open_supply(user.id, "wildberries")
    good = await make_order(db_session, user, "1")
    ozon = await make_order(db_session, user, "2", marketplace="ozon")
    done = await make_order(db_session, user, "3", status=OrderStatus.SOLD.value)
    foreign = await make_order(db_session, other, "4")

    for bad, message in ((ozon, "belongs to ozon"), (done, "already sold"), (foreign, "not found")):
        with pytest.raises(BusinessError) as exc_info:
            await service.attach_orders(supply, [good.id, bad.id])
        assert message in exc_info.value.user_message

    WildberriesProvider.add_order_to_supply.assert_not_awaited()
    assert good.supply_id is None


@pytest.mark.asyncio
async def test_attach_stops_when_marketplace_refuses(db_session, user, wb_remote):
    WildberriesProvider.add_order_to_supply.return_value = False
    service = SupplyService(db_session)
    supply = await service.open_supply(user.id, "wildberries")
    order = await make_order(db_session, user, "1")

    with pytest.raises(ResponseError):
        await service.attach_orders(supply, [order.id])

    assert order.supply_id is None


@pytest.mark.asyncio
async def test_close_supply_sets_shipment_date(db_session, user, wb_remote):
    service = SupplyService(db_session)
    supply = await service.open_supply(user.id, "wildberries")
    order = await make_order(db_session, user, "1")
    await service.attach_orders(supply, [order.id])

    await service.close_supply(supply)

    assert supply.status == SupplyStatus.CLOSED.value
    assert supply.closed_at is not None
    shipment_date = (await db_session.execute(select(Order.shipment_date).where(Order.id == order.id))).scalar()
    assert shipment_date is not None

    with pytest.raises(BusinessError):
        await service.close_supply(supply)
    with pytest.raises(BusinessError):
        await service.attach_orders(supply, [order.id])


@pytest.mark.asyncio
async def test_closed_supply_takes_no_new_orders(db_session, user, wb_remote):
    service = SupplyService(db_session)
    supply = await service.open_supply(user.id, "wildberries")
    await service.close_supply(supply)
    late = await make_order(db_session, user, "9")

    with pytest.raises(BusinessError) as exc_info:
        await service.attach_orders(supply, [late.id])

    assert exc_info.value.user_message == f"Supply {supply.id} is closed"
    assert late.supply_id is None
    WildberriesProvider.add_order_to_supply.assert_not_awaited()


@pytest.mark.asyncio
async def test_close_refused_by_marketplace_keeps_supply_open(db_session, user, wb_remote):
    WildberriesProvider.close_supply.return_value = False
    service = SupplyService(db_session)
    supply = await service.open_supply(user.id, "wildberries")

    with pytest.raises(ResponseError):
        await service.close_supply(supply)

    assert supply.is_open


@pytest.mark.asyncio
async def test_save_supplies_from_marketplace(db_session, user):
    service = SupplyService(db_session)
    order = await make_order(db_session, user, "777")

    count = await service.save_supplies(user.id, "wildberries", [
        SupplyData(external_id="WB-GI-9", name="Morning", order_ids=["777"]),
        SupplyData(external_id="WB-GI-8", closed=True),
    ])

    assert count == 2
    supplies = {s.external_id: s for s in (await db_session.execute(select(Supply))).scalars().all()}
    assert supplies["WB-GI-9"].is_open
    assert supplies["WB-GI-8"].status == SupplyStatus.CLOSED.value
    assert supplies["WB-GI-8"].closed_at is not None
    supply_id = (await db_session.execute(select(Order.supply_id).where(Order.id == order.id))).scalar()
    assert supply_id == supplies["WB-GI-9"].id

    await service.save_supplies(user.id, "wildberries", [SupplyData(external_id="WB-GI-9", closed=True)])
    assert supplies["WB-GI-9"].status == SupplyStatus.CLOSED.value


@pytest.mark.asyncio
async def test_get_owned_supply(db_session, make_user, wb_remote):
    owner = await make_user()
    other = await make_user()
    supply = await SupplyService(db_session).open_supply(owner.id, "wildberries")

    with pytest.raises(ApiError):
        await SupplyService(db_session).get_owned(other.id, supply.id)

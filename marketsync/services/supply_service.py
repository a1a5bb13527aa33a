import logging
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from marketsync.core.enums import OrderType, SupplyStatus
from marketsync.core.exceptions import ApiError, BusinessError, ResponseError
from marketsync.models.order import Order, Supply
from marketsync.schemas.marketplace import SupplyData
from marketsync.services.order_service import is_terminal

logger = logging.getLogger(__name__)


class SupplyService:
    """
    Shipment containers grouping orders for hand-over.

    At most one supply is open per (user, marketplace, order type); opening
    again returns it. Closing is final.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    def _provider(self, marketplace: str):
        from marketsync.integrations.selector import get_provider

        return get_provider(marketplace, self.db)

    async def get_open(self, user_id: int, marketplace: str, order_type: str = OrderType.FBS.value) -> Optional[Supply]:
        result = await self.db.execute(
            select(Supply)
            .where(
                Supply.user_id == user_id,
                Supply.marketplace == marketplace,
                Supply.order_type == order_type,
                Supply.status == SupplyStatus.OPEN.value,
            )
            .order_by(Supply.id)
        )
        return result.scalars().first()

    async def get_owned(self, user_id: int, supply_id: int) -> Supply:
        supply = await self.db.get(Supply, supply_id)
        if not supply or supply.user_id != user_id:
            raise ApiError(f"Supply {supply_id} is not available")
        return supply

    async def open_supply(self, user_id: int, marketplace: str, order_type: str = OrderType.FBS.value) -> Supply:
        supply = await self.get_open(user_id, marketplace, order_type)
        if supply:
            return supply

        external_id = await self._provider(marketplace).open_supply(user_id)
        now = datetime.now(timezone.utc)
        supply = Supply(
            user_id=user_id,
            marketplace=marketplace,
            order_type=order_type,
            external_id=external_id,
            name=f"Supply {now:%Y-%m-%d %H:%M}",
            status=SupplyStatus.OPEN.value,
        )
        self.db.add(supply)
        await self.db.flush()
        logger.info(f"Opened {marketplace} supply {supply.id} (remote {external_id}) for user {user_id}")
        return supply

    async def supply_orders(self, supply: Supply) -> List[Order]:
        result = await self.db.execute(select(Order).where(Order.supply_id == supply.id).order_by(Order.id))
        return list(result.scalars().all())

    async def attach_orders(self, supply: Supply, order_ids: Iterable[int]) -> List[Order]:
        """
        Raises:
            BusinessError: If the supply is closed or an order is foreign, finished or of another marketplace
        """
        if not supply.is_open:
            raise BusinessError(f"Supply {supply.id} is closed")

        order_ids = list(dict.fromkeys(order_ids))
        result = await self.db.execute(select(Order).where(Order.id.in_(order_ids)))
        orders = {order.id: order for order in result.scalars().all()}

        for order_id in order_ids:
            order = orders.get(order_id)
            if not order or order.user_id != supply.user_id:
                raise BusinessError(f"Order {order_id} not found")
            if order.marketplace != supply.marketplace:
                raise BusinessError(f"Order {order_id} belongs to {order.marketplace}, not {supply.marketplace}")
            if is_terminal(order.status):
                raise BusinessError(f"Order {order_id} is already {order.status}")

        provider = self._provider(supply.marketplace)
        attached = []
        for order_id in order_ids:
            order = orders[order_id]
            if order.supply_id == supply.id:
                continue
            if not await provider.add_order_to_supply(supply, order):
                raise ResponseError(f"Order {order.external_id} was not added to supply {supply.external_id or supply.id}")
            order.supply_id = supply.id
            attached.append(order)

        await self.db.flush()
        return attached

    async def close_supply(self, supply: Supply) -> Supply:
        if not supply.is_open:
            raise BusinessError(f"Supply {supply.id} is already closed")

        if not await self._provider(supply.marketplace).close_supply(supply):
            raise ResponseError(f"Supply {supply.external_id or supply.id} was not closed")

        now = datetime.now(timezone.utc)
        supply.status = SupplyStatus.CLOSED.value
        supply.closed_at = now
        await self.db.execute(
            update(Order)
            .where(Order.supply_id == supply.id, Order.shipment_date.is_(None))
            .values(shipment_date=now)
        )
        await self.db.flush()
        logger.info(f"Closed {supply.marketplace} supply {supply.id}")
        return supply

    async def save_supply_with_orders(self, user_id: int, marketplace: str, data: SupplyData) -> Supply:
        result = await self.db.execute(
            select(Supply).where(
                Supply.user_id == user_id,
                Supply.marketplace == marketplace,
                Supply.external_id == data.external_id,
            )
        )
        supply = result.scalars().first()
        status = SupplyStatus.CLOSED.value if data.closed else SupplyStatus.OPEN.value

        if not supply:
            supply = Supply(
                user_id=user_id,
                marketplace=marketplace,
                order_type=data.order_type,
                external_id=data.external_id,
                name=data.name or data.external_id,
                status=status,
                data=data.data,
            )
            self.db.add(supply)
        elif supply.is_open:
            supply.name = data.name or supply.name
            supply.status = status
            supply.data = {**(supply.data or {}), **data.data}
        if data.closed and not supply.closed_at:
            supply.closed_at = datetime.now(timezone.utc)
        await self.db.flush()

        if data.order_ids:
            await self.db.execute(
                update(Order)
                .where(
                    Order.user_id == user_id,
                    Order.marketplace == marketplace,
                    Order.external_id.in_(data.order_ids),
                )
                .values(supply_id=supply.id)
            )
        return supply

    async def save_supplies(self, user_id: int, marketplace: str, supplies: Iterable[SupplyData]) -> int:
        count = 0
        for data in supplies:
            await self.save_supply_with_orders(user_id, marketplace, data)
            count += 1
        await self.db.flush()
        return count

import logging
from typing import Dict, Iterable, List, Optional

from sqlalchemy import insert, select
from sqlalchemy.ext.asyncio import AsyncSession

from marketsync.core.enums import DEFAULT_PRICE_TYPE
from marketsync.models.price import Price, PriceList, Stock, price_list_products

logger = logging.getLogger(__name__)


class PriceService:
    """Price list membership, price and stock lookups for one session."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_or_create_price_list(self, user_id: int, name: str = "Default") -> PriceList:
        result = await self.db.execute(
            select(PriceList).where(PriceList.user_id == user_id).order_by(PriceList.id)
        )
        price_list = result.scalars().first()
        if price_list:
            return price_list

        price_list = PriceList(user_id=user_id, name=name)
        self.db.add(price_list)
        await self.db.flush()
        logger.info(f"Created price list {price_list.id} for user {user_id}")
        return price_list

    async def sync_without_detaching(self, price_list_id: int, product_ids: Iterable[int]) -> int:
        """
        Attach products to a price list, keeping existing memberships.

        Returns:
            Number of newly attached products
        """
        wanted = set(product_ids)
        if not wanted:
            return 0

        result = await self.db.execute(
            select(price_list_products.c.product_id).where(
                price_list_products.c.price_list_id == price_list_id,
                price_list_products.c.product_id.in_(wanted),
            )
        )
        missing = wanted - set(result.scalars().all())
        if missing:
            await self.db.execute(
                insert(price_list_products),
                [{"price_list_id": price_list_id, "product_id": product_id} for product_id in sorted(missing)],
            )
        return len(missing)

    async def get_price(self, price_list_id: int, item_type: str, item_id: int, price_type: str) -> Optional[Price]:
        result = await self.db.execute(
            select(Price).where(
                Price.price_list_id == price_list_id,
                Price.item_type == item_type,
                Price.item_id == item_id,
                Price.price_type == price_type,
            )
        )
        return result.scalars().first()

    async def price_for(
        self,
        price_list_id: Optional[int],
        item_type: str,
        item_id: int,
        marketplace: str,
        key: str = "base",
    ) -> float:
        """Marketplace price if set, otherwise the default one, otherwise 0."""
        if not price_list_id:
            return 0
        for price_type in (marketplace, DEFAULT_PRICE_TYPE):
            price = await self.get_price(price_list_id, item_type, item_id, price_type)
            value = getattr(price, key, None) if price else None
            if value is not None:
                return value
        return 0

    async def stock_for(self, price_list_id: Optional[int], item_type: str, item_id: int, warehouse_id: int) -> int:
        if not price_list_id:
            return 0
        result = await self.db.execute(
            select(Stock.quantity).where(
                Stock.price_list_id == price_list_id,
                Stock.item_type == item_type,
                Stock.item_id == item_id,
                Stock.warehouse_id == warehouse_id,
            )
        )
        return result.scalar() or 0

    async def stocks_for(self, price_list_id: Optional[int], item_type: str, item_ids: List[int]) -> Dict[int, Dict[int, int]]:
        """item_id -> {warehouse_id: quantity}"""
        if not price_list_id or not item_ids:
            return {}
        result = await self.db.execute(
            select(Stock).where(
                Stock.price_list_id == price_list_id,
                Stock.item_type == item_type,
                Stock.item_id.in_(item_ids),
            )
        )
        stocks: Dict[int, Dict[int, int]] = {}
        for stock in result.scalars().all():
            stocks.setdefault(stock.item_id, {})[stock.warehouse_id] = stock.quantity
        return stocks

    async def set_price(
        self,
        price_list_id: int,
        item_type: str,
        item_id: int,
        price_type: str,
        values: Dict[str, Optional[float]],
    ) -> bool:
        """
        Upsert one price row with the supplied keys.

        Returns:
            True when a row was created or a value changed
        """
        price = await self.get_price(price_list_id, item_type, item_id, price_type)
        if not price:
            price = Price(price_list_id=price_list_id, item_type=item_type, item_id=item_id, price_type=price_type)
            self.db.add(price)
            changed = True
        else:
            changed = False

        for key, value in values.items():
            if value is not None and getattr(price, key) != value:
                setattr(price, key, value)
                changed = True
        return changed

    async def set_stock(self, price_list_id: int, item_type: str, item_id: int, warehouse_id: int, quantity: int) -> bool:
        result = await self.db.execute(
            select(Stock).where(
                Stock.price_list_id == price_list_id,
                Stock.item_type == item_type,
                Stock.item_id == item_id,
                Stock.warehouse_id == warehouse_id,
            )
        )
        stock = result.scalars().first()
        if not stock:
            self.db.add(Stock(
                price_list_id=price_list_id,
                item_type=item_type,
                item_id=item_id,
                warehouse_id=warehouse_id,
                quantity=quantity,
            ))
            return True
        if stock.quantity != quantity:
            stock.quantity = quantity
            return True
        return False

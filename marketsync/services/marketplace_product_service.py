from typing import Any, Dict, Iterable, Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from marketsync.core.enums import MarketplaceProductStatus
from marketsync.models.marketplace_product import MarketplaceProduct


class MarketplaceProductService:
    """Publication state of catalog objects on marketplaces."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, user_id: int, marketplace: str, item_type: str, item_id: int) -> Optional[MarketplaceProduct]:
        result = await self.db.execute(
            select(MarketplaceProduct).where(
                MarketplaceProduct.user_id == user_id,
                MarketplaceProduct.marketplace == marketplace,
                MarketplaceProduct.item_type == item_type,
                MarketplaceProduct.item_id == item_id,
            )
        )
        return result.scalars().first()

    async def get_many(
        self,
        user_id: int,
        marketplace: str,
        item_type: str,
        item_ids: Iterable[int],
        status: Optional[str] = MarketplaceProductStatus.SUCCESS.value,
    ) -> Dict[int, MarketplaceProduct]:
        """item_id -> record; only successfully exported ones unless `status` is None."""
        ids = list(item_ids)
        if not ids:
            return {}
        stmt = select(MarketplaceProduct).where(
            MarketplaceProduct.user_id == user_id,
            MarketplaceProduct.marketplace == marketplace,
            MarketplaceProduct.item_type == item_type,
            MarketplaceProduct.item_id.in_(ids),
        )
        if status:
            stmt = stmt.where(MarketplaceProduct.status == status)
        result = await self.db.execute(stmt)
        return {record.item_id: record for record in result.scalars().all()}

    async def find_by_data(self, user_id: int, marketplace: str, item_type: str, key: str, value: Any) -> Optional[MarketplaceProduct]:
        """Look a record up by a marketplace identifier stored in `data` (nmID, chrtID, offer_id)."""
        result = await self.db.execute(
            select(MarketplaceProduct).where(
                MarketplaceProduct.user_id == user_id,
                MarketplaceProduct.marketplace == marketplace,
                MarketplaceProduct.item_type == item_type,
            )
        )
        for record in result.scalars().all():
            if str((record.data or {}).get(key)) == str(value):
                return record
        return None

    async def set(
        self,
        user_id: int,
        marketplace: str,
        item_type: str,
        item_id: int,
        barcode: Optional[str] = None,
        data: Optional[Dict[str, Any]] = None,
        status: str = MarketplaceProductStatus.SUCCESS.value,
    ) -> MarketplaceProduct:
        record = await self.get(user_id, marketplace, item_type, item_id)
        if not record:
            record = MarketplaceProduct(
                user_id=user_id,
                marketplace=marketplace,
                item_type=item_type,
                item_id=item_id,
            )
            self.db.add(record)

        record.status = status
        if barcode is not None:
            record.barcode = barcode
        if data is not None:
            record.data = data
        await self.db.flush()
        return record

    async def merge_data(self, record: MarketplaceProduct, values: Dict[str, Any]) -> None:
        # reassign so the JSON column is marked dirty
        record.data = {**(record.data or {}), **values}
        await self.db.flush()

    async def delete_for(self, item_type: str, item_ids: Iterable[int]) -> int:
        ids = list(item_ids)
        if not ids:
            return 0
        result = await self.db.execute(
            delete(MarketplaceProduct).where(
                MarketplaceProduct.item_type == item_type,
                MarketplaceProduct.item_id.in_(ids),
            )
        )
        return result.rowcount or 0

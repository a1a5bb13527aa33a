import logging
from typing import Iterable, List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from marketsync.models.warehouse import Warehouse
from marketsync.schemas.marketplace import WarehouseDTO

logger = logging.getLogger(__name__)


class WarehouseService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def for_user(self, user_id: int, marketplace: str, active_only: bool = True) -> List[Warehouse]:
        stmt = select(Warehouse).where(Warehouse.user_id == user_id, Warehouse.marketplace == marketplace)
        if active_only:
            stmt = stmt.where(Warehouse.is_active.is_(True))
        result = await self.db.execute(stmt.order_by(Warehouse.id))
        return list(result.scalars().all())

    async def sync(self, user_id: int, marketplace: str, warehouses: Iterable[WarehouseDTO]) -> List[Warehouse]:
        """
        Mirror the marketplace's warehouse list.

        Warehouses missing from the list are deactivated, not deleted, since
        stock rows reference them.
        """
        existing = {w.external_id: w for w in await self.for_user(user_id, marketplace, active_only=False)}
        seen = set()
        synced = []

        for dto in warehouses:
            seen.add(dto.external_id)
            warehouse = existing.get(dto.external_id)
            if warehouse:
                warehouse.name = dto.name
                warehouse.data = dto.data
                warehouse.is_active = True
            else:
                warehouse = Warehouse(
                    user_id=user_id,
                    marketplace=marketplace,
                    external_id=dto.external_id,
                    name=dto.name,
                    data=dto.data,
                    is_active=True,
                )
                self.db.add(warehouse)
            synced.append(warehouse)

        for external_id, warehouse in existing.items():
            if external_id not in seen and warehouse.is_active:
                warehouse.is_active = False
                logger.info(f"Warehouse {external_id} ({marketplace}) is gone for user {user_id}, deactivated")

        await self.db.flush()
        return synced

    async def resolve(self, user_id: int, marketplace: str, external_ids: Iterable[str]) -> List[Warehouse]:
        """Local rows for the given marketplace warehouse ids, in the given order."""
        by_external = {w.external_id: w for w in await self.for_user(user_id, marketplace)}
        return [by_external[str(eid)] for eid in external_ids if str(eid) in by_external]

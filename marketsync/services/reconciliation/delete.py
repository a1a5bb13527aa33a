from typing import Optional

from sqlalchemy import select

from marketsync.core.exceptions import BusinessError
from marketsync.models.category import Category
from marketsync.models.product import Product
from marketsync.schemas.product import DeletePayload
from marketsync.services.catalog_service import CatalogService
from marketsync.services.reconciliation.base import DELETED, BaseReconciler


class DeleteReconciler(BaseReconciler):
    """
    Batch deletion of products or categories by id or external id.

    Records that match nothing the caller owns are reported, not fatal.
    """

    schema = DeletePayload

    def __init__(self, db, user_id, model=Product, integration=None):
        if model not in (Product, Category):
            raise ValueError(f"Cannot batch delete {model.__name__}")
        super().__init__(db, user_id, integration)
        self.model = model
        self.catalog = CatalogService(db)

    async def _resolve(self, payload: DeletePayload) -> Optional[int]:
        stmt = select(self.model.id).where(self.model.user_id == self.user_id)
        if payload.id is not None:
            stmt = stmt.where(self.model.id == payload.id)
        else:
            stmt = stmt.where(self.model.external_id == payload.external_id)
        result = await self.db.execute(stmt.order_by(self.model.id))
        return result.scalars().first()

    async def apply(self, payload: DeletePayload) -> Optional[str]:
        object_id = await self._resolve(payload)
        if object_id is None:
            raise BusinessError(f"{self.model.__name__} {payload.id or payload.external_id} not found")

        if self.model is Product:
            deleted = await self.catalog.delete_products(self.user_id, [object_id])
        else:
            deleted = await self.catalog.delete_categories(self.user_id, [object_id])
        return DELETED if deleted else None

import logging
from typing import List, Optional, Tuple

from sqlalchemy import select

from marketsync.models.category import Category, SystemCategory
from marketsync.schemas.product import CategoryPayload
from marketsync.services.dictionary_service import DictionaryService
from marketsync.services.reconciliation.base import CREATED, UPDATED, BaseReconciler

logger = logging.getLogger(__name__)


class CategoryReconciler(BaseReconciler):
    """
    Upserts user categories by external id.

    A parent is resolved by its external id; a parent that appears later in
    the same batch is bound in the second pass.
    """

    schema = CategoryPayload

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.dictionaries = DictionaryService(self.db)
        self._unresolved_parents: List[Tuple[Category, str]] = []

    async def find_by_external_id(self, external_id: str) -> Optional[Category]:
        result = await self.db.execute(
            select(Category)
            .where(Category.user_id == self.user_id, Category.external_id == external_id)
            .order_by(Category.id)
        )
        return result.scalars().first()

    async def apply(self, payload: CategoryPayload) -> Optional[str]:
        system_category_id = None
        if payload.system_category_id is not None:
            system_category = await self.db.get(SystemCategory, payload.system_category_id)
            system_category_id = system_category.id if system_category else None

        parent = None
        if payload.parent_id and payload.parent_id != payload.external_id:
            parent = await self.find_by_external_id(payload.parent_id)

        category = await self.find_by_external_id(payload.external_id)
        values = {
            "title": payload.title,
            "status": payload.status.value,
        }
        if parent:
            values["parent_id"] = parent.id
        elif not payload.parent_id:
            values["parent_id"] = None
        if system_category_id:
            values["system_category_id"] = system_category_id

        if category:
            changed = False
            for field, value in values.items():
                if getattr(category, field) != value:
                    setattr(category, field, value)
                    changed = True
            outcome = UPDATED if changed else None
        else:
            category = Category(user_id=self.user_id, external_id=payload.external_id, **values)
            self.db.add(category)
            outcome = CREATED
        await self.db.flush()

        if payload.parent_id and not parent and payload.parent_id != payload.external_id:
            self._unresolved_parents.append((category, payload.parent_id))

        if outcome or not category.system_category_id:
            await self.dictionaries.auto_sync_category(category)
        return outcome

    async def finalize(self) -> None:
        for category, parent_external_id in self._unresolved_parents:
            parent = await self.find_by_external_id(parent_external_id)
            if parent and parent.id != category.id:
                category.parent_id = parent.id
            else:
                logger.warning(f"Parent category {parent_external_id} not found for category {category.external_id}")
        self._unresolved_parents.clear()
        await self.db.flush()

"""
Marketplace reference data and the category mapper.

Marketplace taxonomies (categories, attributes, enumerable values) are mirrored
into the `dictionaries` table. User categories are linked to marketplace
categories either directly or through a shared SystemCategory.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from marketsync.core.config import get_settings
from marketsync.core.enums import DictionaryType
from marketsync.core.exceptions import BusinessError, MarketplaceAPIError, TokenRequiredError
from marketsync.models.category import Category, MarketplaceProductCategory, SystemCategory
from marketsync.models.dictionary import Dictionary, MarketplaceAttributeValue

logger = logging.getLogger(__name__)


class DictionaryService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def find(
        self,
        marketplace: str,
        type: str,
        external_id: Optional[str] = None,
        title: Optional[str] = None,
        parent_id: Optional[int] = None,
    ) -> Optional[Dictionary]:
        stmt = select(Dictionary).where(Dictionary.marketplace == marketplace, Dictionary.type == type)
        if external_id is not None:
            stmt = stmt.where(Dictionary.external_id == str(external_id))
        elif title is not None:
            stmt = stmt.where(Dictionary.title == title)
            if parent_id is not None:
                stmt = stmt.where(Dictionary.parent_id == parent_id)
        else:
            return None
        result = await self.db.execute(stmt.order_by(Dictionary.id))
        return result.scalars().first()

    async def get_or_create(
        self,
        marketplace: str,
        type: str,
        title: str,
        external_id: Optional[str] = None,
        parent_id: Optional[int] = None,
        settings: Optional[Dict[str, Any]] = None,
    ) -> Dictionary:
        """
        Find an entry by external id, or by title when the marketplace only
        names it (e.g. Wildberries parent categories), creating it if missing.
        """
        entry = await self.find(marketplace, type, external_id=external_id, title=None if external_id else title)
        if entry:
            return entry

        entry = Dictionary(
            marketplace=marketplace,
            type=type,
            external_id=str(external_id) if external_id is not None else None,
            parent_id=parent_id,
            title=title,
            settings=settings or {},
        )
        self.db.add(entry)
        await self.db.flush()
        return entry

    async def upsert(
        self,
        marketplace: str,
        type: str,
        external_id: str,
        title: str,
        parent_id: Optional[int] = None,
        settings: Optional[Dict[str, Any]] = None,
    ) -> Dictionary:
        """Create or refresh an entry keyed by (marketplace, type, external_id)."""
        entry = await self.find(marketplace, type, external_id=external_id)
        if not entry:
            return await self.get_or_create(marketplace, type, title, external_id, parent_id, settings)

        entry.title = title
        if parent_id is not None:
            entry.parent_id = parent_id
        if settings is not None:
            entry.settings = {**(entry.settings or {}), **settings}
        await self.db.flush()
        return entry

    async def get_by_ids(self, ids: Sequence[int], marketplace: str, type: str) -> List[Dictionary]:
        if not ids:
            return []
        result = await self.db.execute(
            select(Dictionary).where(
                Dictionary.id.in_(list(ids)),
                Dictionary.marketplace == marketplace,
                Dictionary.type == type,
            ).order_by(Dictionary.id)
        )
        return list(result.scalars().all())

    async def save_attribute_values(self, marketplace: str, dictionary: str, values: Iterable[Dict[str, Any]]) -> List[MarketplaceAttributeValue]:
        """
        First-or-create enumerable values of one marketplace dictionary.

        Args:
            values: [{"external_id", "value", "data"}]; entries without a value are skipped
        """
        saved: List[MarketplaceAttributeValue] = []
        for item in values:
            value = item.get('value')
            if not value:
                continue
            external_id = str(item.get('external_id') or value)

            result = await self.db.execute(
                select(MarketplaceAttributeValue).where(
                    MarketplaceAttributeValue.marketplace == marketplace,
                    MarketplaceAttributeValue.dictionary == dictionary,
                    MarketplaceAttributeValue.external_id == external_id,
                )
            )
            attribute_value = result.scalars().first()
            if not attribute_value:
                attribute_value = MarketplaceAttributeValue(
                    marketplace=marketplace,
                    dictionary=dictionary,
                    external_id=external_id,
                    value=value,
                    data=item.get('data') or {},
                )
                self.db.add(attribute_value)
            saved.append(attribute_value)

        await self.db.flush()
        return saved

    async def crawl(self, items: Sequence[Any], fetch: Callable[[Any], Awaitable[None]]) -> int:
        """
        Run `fetch` for every item with the marketplace pacing applied.

        Items are processed in chunks; a short pause follows every item and a
        longer one every chunk. A failing item is logged and skipped, except
        for rejected credentials which stop the crawl.

        Returns:
            Number of items fetched successfully
        """
        settings = get_settings()
        chunk_size = max(settings.CATEGORY_SYNC_CHUNK_SIZE, 1)
        done = 0

        for start in range(0, len(items), chunk_size):
            for item in items[start:start + chunk_size]:
                try:
                    await fetch(item)
                    done += 1
                except TokenRequiredError:
                    raise
                except (BusinessError, MarketplaceAPIError) as e:
                    logger.warning(f"Skipping {item!r} during taxonomy crawl: {e}")
                await asyncio.sleep(settings.CATEGORY_SYNC_ITEM_PAUSE)

            await self.db.commit()
            await asyncio.sleep(settings.CATEGORY_SYNC_CHUNK_PAUSE)

        return done

    async def marketplace_categories(self, marketplace: str) -> List[Dictionary]:
        result = await self.db.execute(
            select(Dictionary).where(
                Dictionary.marketplace == marketplace,
                Dictionary.type == DictionaryType.CATEGORY.value,
            ).order_by(Dictionary.id)
        )
        return list(result.scalars().all())

    async def categories_to_marketplace(self, user_id: int, marketplace: str) -> Dict[int, Dictionary]:
        """Map of local category id -> linked marketplace category."""
        result = await self.db.execute(
            select(MarketplaceProductCategory.category_id, Dictionary)
            .join(Dictionary, Dictionary.id == MarketplaceProductCategory.dictionary_id)
            .where(
                MarketplaceProductCategory.user_id == user_id,
                MarketplaceProductCategory.marketplace == marketplace,
            )
        )
        return {category_id: dictionary for category_id, dictionary in result.all()}

    async def link_category(self, category: Category, marketplace: str, dictionary: Dictionary) -> MarketplaceProductCategory:
        """Link a local category to a marketplace category, replacing any previous link."""
        if dictionary.type != DictionaryType.CATEGORY.value or dictionary.marketplace != marketplace:
            raise BusinessError(f"{dictionary.title} is not a {marketplace} category")

        result = await self.db.execute(
            select(MarketplaceProductCategory).where(
                MarketplaceProductCategory.category_id == category.id,
                MarketplaceProductCategory.marketplace == marketplace,
            )
        )
        link = result.scalars().first()
        if link:
            link.dictionary_id = dictionary.id
        else:
            link = MarketplaceProductCategory(
                user_id=category.user_id,
                category_id=category.id,
                marketplace=marketplace,
                dictionary_id=dictionary.id,
            )
            self.db.add(link)
        await self.db.flush()
        return link

    async def find_system_category(self, title: str) -> Optional[SystemCategory]:
        result = await self.db.execute(select(SystemCategory).where(SystemCategory.title == title).order_by(SystemCategory.id))
        system_category = result.scalars().first()
        if system_category:
            return system_category

        result = await self.db.execute(
            select(SystemCategory)
            .where(func.lower(SystemCategory.title) == title.strip().lower())
            .order_by(SystemCategory.id)
        )
        return result.scalars().first()

    async def auto_sync_category(self, category: Category) -> int:
        """
        Map a user category onto marketplace categories through the system taxonomy.

        Returns:
            Number of marketplace links created or refreshed
        """
        if not category.system_category_id:
            system_category = await self.find_system_category(category.title)
            if not system_category:
                return 0
            category.system_category_id = system_category.id
            await self.db.flush()

        result = await self.db.execute(
            select(Dictionary).where(
                Dictionary.type == DictionaryType.CATEGORY.value,
                Dictionary.system_category_id == category.system_category_id,
            ).order_by(Dictionary.id)
        )
        linked = 0
        seen_marketplaces = set()
        for dictionary in result.scalars().all():
            if dictionary.marketplace in seen_marketplaces:
                continue
            seen_marketplaces.add(dictionary.marketplace)
            await self.link_category(category, dictionary.marketplace, dictionary)
            linked += 1

        if linked:
            logger.info(f"Category {category.id} linked to {linked} marketplace categories")
        return linked

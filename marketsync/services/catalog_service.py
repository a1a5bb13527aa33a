"""
Purpose: Lifecycle of the product hierarchy (product -> variation -> item) and categories.

Deletes are explicit cascades. Rows that reference catalog objects without a
foreign key (marketplace records, prices, stocks, stored images) are removed
here in dependency order, never left to the database.
"""

import logging
import uuid
from typing import Dict, Iterable, List, Optional, Sequence

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from marketsync.core.enums import ItemType, JobType, PublishStatus
from marketsync.core.exceptions import ApiError
from marketsync.models.category import Category, MarketplaceProductCategory
from marketsync.models.price import Price, Stock, price_list_products
from marketsync.models.product import Product, ProductImage, ProductVariation, ProductVariationItem
from marketsync.services.job_queue import enqueue_job
from marketsync.services.marketplace_product_service import MarketplaceProductService
from marketsync.services.media_service import Storage, get_storage

logger = logging.getLogger(__name__)


class CatalogService:
    def __init__(self, db: AsyncSession, storage: Optional[Storage] = None):
        self.db = db
        self.storage = storage

    # Lookups

    async def get_products(self, user_id: int, product_ids: Iterable[int]) -> List[Product]:
        ids = list(product_ids)
        if not ids:
            return []
        result = await self.db.execute(
            select(Product).where(Product.user_id == user_id, Product.id.in_(ids)).order_by(Product.id)
        )
        return list(result.scalars().all())

    async def get_owned_product(self, user_id: int, product_id: int) -> Product:
        """
        Raises:
            ApiError: If the product does not exist or belongs to another user
        """
        result = await self.db.execute(select(Product).where(Product.id == product_id))
        product = result.scalars().first()
        if not product or product.user_id != user_id:
            raise ApiError(f"Product {product_id} is not available")
        return product

    async def find_product(
        self,
        user_id: int,
        product_id: Optional[int] = None,
        external_id: Optional[str] = None,
        sku: Optional[str] = None,
    ) -> Optional[Product]:
        """Match by owned id first, then external id, then SKU."""
        if product_id is not None:
            return await self.get_owned_product(user_id, product_id)

        for column, value in ((Product.external_id, external_id), (Product.sku, sku)):
            if not value:
                continue
            result = await self.db.execute(
                select(Product).where(Product.user_id == user_id, column == value).order_by(Product.id)
            )
            product = result.scalars().first()
            if product:
                return product
        return None

    async def get_variations(self, product_ids: Iterable[int], active_only: bool = False) -> List[ProductVariation]:
        ids = list(product_ids)
        if not ids:
            return []
        stmt = select(ProductVariation).where(ProductVariation.product_id.in_(ids))
        if active_only:
            stmt = stmt.where(ProductVariation.status == PublishStatus.PUBLISHED.value)
        result = await self.db.execute(stmt.order_by(ProductVariation.product_id, ProductVariation.id))
        return list(result.scalars().all())

    async def get_user_variations(self, user_id: int, variation_ids: Iterable[int]) -> List[ProductVariation]:
        ids = list(variation_ids)
        if not ids:
            return []
        result = await self.db.execute(
            select(ProductVariation)
            .join(Product, Product.id == ProductVariation.product_id)
            .where(Product.user_id == user_id, ProductVariation.id.in_(ids))
            .order_by(ProductVariation.id)
        )
        return list(result.scalars().all())

    async def get_items(self, variation_ids: Iterable[int]) -> List[ProductVariationItem]:
        ids = list(variation_ids)
        if not ids:
            return []
        result = await self.db.execute(
            select(ProductVariationItem)
            .where(ProductVariationItem.variation_id.in_(ids))
            .order_by(ProductVariationItem.variation_id, ProductVariationItem.id)
        )
        return list(result.scalars().all())

    async def get_user_items(self, user_id: int, item_ids: Iterable[int]) -> List[ProductVariationItem]:
        ids = list(item_ids)
        if not ids:
            return []
        result = await self.db.execute(
            select(ProductVariationItem)
            .join(ProductVariation, ProductVariation.id == ProductVariationItem.variation_id)
            .join(Product, Product.id == ProductVariation.product_id)
            .where(Product.user_id == user_id, ProductVariationItem.id.in_(ids))
            .order_by(ProductVariationItem.id)
        )
        return list(result.scalars().all())

    async def group_items(self, variation_ids: Iterable[int]) -> Dict[int, List[ProductVariationItem]]:
        grouped: Dict[int, List[ProductVariationItem]] = {}
        for item in await self.get_items(variation_ids):
            grouped.setdefault(item.variation_id, []).append(item)
        return grouped

    async def get_images(self, product_id: int) -> List[ProductImage]:
        result = await self.db.execute(
            select(ProductImage).where(ProductImage.product_id == product_id).order_by(ProductImage.position, ProductImage.id)
        )
        return list(result.scalars().all())

    async def image_urls(self, user_id: int, product_ids: Iterable[int]) -> Dict[str, List[str]]:
        """Public image urls per variation vendor code; variations without own images get the product's."""
        products = await self.get_products(user_id, product_ids)
        if not products:
            return {}
        ids = [product.id for product in products]
        storage = self.storage or get_storage()

        result = await self.db.execute(
            select(ProductImage).where(ProductImage.product_id.in_(ids)).order_by(ProductImage.position, ProductImage.id)
        )
        by_product: Dict[int, List[ProductImage]] = {}
        by_variation: Dict[int, List[ProductImage]] = {}
        for image in result.scalars().all():
            if image.variation_id:
                by_variation.setdefault(image.variation_id, []).append(image)
            else:
                by_product.setdefault(image.product_id, []).append(image)

        def url(path: str) -> str:
            return path if path.startswith(("http://", "https://")) else storage.url(path)

        urls: Dict[str, List[str]] = {}
        for variation in await self.get_variations(ids):
            images = by_variation.get(variation.id) or by_product.get(variation.product_id) or []
            if images:
                urls[variation.vendor_code] = [url(image.path) for image in images]
        return urls

    # Variations

    async def ensure_default_variation(self, product: Product) -> ProductVariation:
        """Every product owns at least one variation; synthesize it from the product."""
        result = await self.db.execute(
            select(ProductVariation).where(ProductVariation.product_id == product.id).order_by(ProductVariation.id)
        )
        variation = result.scalars().first()
        if variation:
            return variation

        variation = ProductVariation(
            product_id=product.id,
            uuid=str(uuid.uuid4()),
            vendor_code=product.sku,
            title=product.title,
            barcode=product.barcode,
            status=PublishStatus.PUBLISHED.value,
            is_main=True,
        )
        self.db.add(variation)
        await self.db.flush()
        return variation

    # Status

    async def change_status(self, user_id: int, product_ids: Sequence[int], status: str) -> List[Product]:
        """
        Set the publication status and queue propagation to marketplaces.

        Raises:
            ApiError: If any product belongs to another user
        """
        products = await self.get_products(user_id, product_ids)
        if len(products) != len(set(product_ids)):
            raise ApiError("Some products are not available")

        changed = [product for product in products if product.status != status]
        for product in changed:
            product.status = status

        if changed:
            await enqueue_job(
                self.db,
                job_type=JobType.PRODUCT_STATUS_CHANGED.value,
                user_id=user_id,
                payload={"user_id": user_id, "product_ids": [p.id for p in changed], "status": status},
            )
        await self.db.flush()
        logger.info(f"User {user_id}: {len(changed)} products set to {status}")
        return products

    async def set_external_ids(self, user_id: int, mapping: Dict[int, str]) -> int:
        products = await self.get_products(user_id, mapping.keys())
        if len(products) != len(mapping):
            raise ApiError("Some products are not available")
        updated = 0
        for product in products:
            if product.external_id != mapping[product.id]:
                product.external_id = mapping[product.id]
                updated += 1
        await self.db.flush()
        return updated

    # Deletes

    async def delete_products(self, user_id: int, product_ids: Iterable[int]) -> int:
        """
        Delete products with everything hanging off them.

        Returns:
            Number of products deleted
        """
        products = await self.get_products(user_id, product_ids)
        if not products:
            return 0
        ids = [product.id for product in products]

        variations = await self.get_variations(ids)
        variation_ids = [variation.id for variation in variations]
        item_ids = [item.id for item in await self.get_items(variation_ids)]

        marketplace_products = MarketplaceProductService(self.db)
        for item_type, object_ids in (
            (ItemType.VARIATION_ITEM.value, item_ids),
            (ItemType.VARIATION.value, variation_ids),
            (ItemType.PRODUCT.value, ids),
        ):
            if not object_ids:
                continue
            await marketplace_products.delete_for(item_type, object_ids)
            await self.db.execute(delete(Price).where(Price.item_type == item_type, Price.item_id.in_(object_ids)))
            await self.db.execute(delete(Stock).where(Stock.item_type == item_type, Stock.item_id.in_(object_ids)))

        await self.db.execute(delete(price_list_products).where(price_list_products.c.product_id.in_(ids)))

        result = await self.db.execute(select(ProductImage).where(ProductImage.product_id.in_(ids)))
        storage = self.storage or get_storage()
        for image in result.scalars().all():
            if not image.path.startswith(("http://", "https://")):
                try:
                    storage.delete(image.path)
                except OSError as e:
                    logger.error(f"Failed to delete image file {image.path}: {e}")
        await self.db.execute(delete(ProductImage).where(ProductImage.product_id.in_(ids)))

        if item_ids:
            await self.db.execute(delete(ProductVariationItem).where(ProductVariationItem.id.in_(item_ids)))
        if variation_ids:
            await self.db.execute(delete(ProductVariation).where(ProductVariation.id.in_(variation_ids)))
        await self.db.execute(delete(Product).where(Product.id.in_(ids)))
        await self.db.flush()

        logger.info(f"User {user_id}: deleted {len(ids)} products")
        return len(ids)

    async def delete_categories(self, user_id: int, category_ids: Iterable[int]) -> int:
        ids = list(category_ids)
        if not ids:
            return 0
        result = await self.db.execute(select(Category.id).where(Category.user_id == user_id, Category.id.in_(ids)))
        owned = list(result.scalars().all())
        if not owned:
            return 0

        await self.db.execute(delete(MarketplaceProductCategory).where(MarketplaceProductCategory.category_id.in_(owned)))
        await self.db.execute(update(Category).where(Category.parent_id.in_(owned)).values(parent_id=None))
        await self.db.execute(update(Product).where(Product.category_id.in_(owned)).values(category_id=None))
        await self.db.execute(delete(Category).where(Category.id.in_(owned)))
        await self.db.flush()

        logger.info(f"User {user_id}: deleted {len(owned)} categories")
        return len(owned)

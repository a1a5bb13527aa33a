import logging
import uuid
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import delete, select

from marketsync.core.config import get_settings
from marketsync.core.enums import PublishStatus
from marketsync.core.exceptions import BusinessError, ConflictError
from marketsync.models.category import Category
from marketsync.models.product import Product, ProductImage, ProductVariation, ProductVariationItem
from marketsync.schemas.product import ProductPayload, VariationItemPayload, VariationPayload
from marketsync.schemas.reconciliation import ReconciliationResult
from marketsync.services.catalog_service import CatalogService
from marketsync.services.dictionary_service import DictionaryService
from marketsync.services.media_service import MediaService
from marketsync.services.price_service import PriceService
from marketsync.services.reconciliation.base import CREATED, UPDATED, BaseReconciler

logger = logging.getLogger(__name__)

PRODUCT_FIELDS = (
    "external_id", "sku", "title", "description", "status", "barcode", "country",
    "weight", "length", "width", "height", "attributes",
)


def _plain(value: Any) -> Any:
    return value.value if isinstance(value, PublishStatus) else value


def _assign(target: Any, values: Dict[str, Any]) -> bool:
    changed = False
    for field, value in values.items():
        if getattr(target, field) != value:
            setattr(target, field, value)
            changed = True
    return changed


class ProductReconciler(BaseReconciler):
    """
    Create-or-update of products with their variations, items and images.

    Records sharing a SKU are merged into one before validation. Existing
    products are only touched when the integration allows updates, and only
    the fields present in the record are written. Touched products join the
    integration's price list in one statement after the loop.
    """

    schema = ProductPayload

    def __init__(self, db, user_id, integration=None, media=None, max_products: Optional[int] = None):
        super().__init__(db, user_id, integration, media or MediaService(db, user_id))
        self.max_products = max_products
        self.catalog = CatalogService(db)
        self.prices = PriceService(db)
        self.dictionaries = DictionaryService(db)
        self._touched: List[int] = []

    async def reconcile(self, records) -> ReconciliationResult:
        limit = self.max_products or get_settings().IMPORT_MAX_PRODUCTS
        if len(records) > limit:
            raise BusinessError(f"Too many products in one request, the limit is {limit}")
        return await super().reconcile(records)

    def prepare(self, records: List[Tuple[int, Any]]) -> List[Tuple[int, Any]]:
        merged: Dict[str, Tuple[int, Dict[str, Any]]] = {}
        ordered: List[Any] = []
        for index, raw in records:
            sku = raw.get("sku") if isinstance(raw, dict) else None
            if not sku:
                ordered.append((index, raw))
                continue

            key = str(sku)
            if key not in merged:
                merged[key] = (index, dict(raw))
                ordered.append(key)
                continue

            first = merged[key][1]
            variations = list(first.get("variations") or [])
            for variation in raw.get("variations") or []:
                if variation not in variations:
                    variations.append(variation)
            first["variations"] = variations

        return [merged[item] if isinstance(item, str) else item for item in ordered]

    def conflict_error(self, payload: ProductPayload) -> ConflictError:
        return ConflictError(f'Product "{payload.title}" with SKU "{payload.sku}" is not unique')

    async def _category(self, external_id: str) -> Category:
        result = await self.db.execute(
            select(Category)
            .where(Category.user_id == self.user_id, Category.external_id == external_id)
            .order_by(Category.id)
        )
        category = result.scalars().first()
        if not category:
            raise BusinessError(f"Category {external_id} not found")
        return category

    async def _check_uuids(self, payload: ProductPayload, product: Optional[Product]) -> None:
        """Variation and item uuids are global; refuse ones owned by another product."""
        product_id = product.id if product else None

        variation_uuids = [v.uuid for v in payload.variations if v.uuid]
        if variation_uuids:
            result = await self.db.execute(
                select(ProductVariation.uuid, ProductVariation.product_id).where(ProductVariation.uuid.in_(variation_uuids))
            )
            foreign = [row_uuid for row_uuid, owner in result.all() if owner != product_id]
            if foreign:
                raise BusinessError(f"Variation {foreign[0]} belongs to another product")

        item_uuids = [item.uuid for v in payload.variations for item in v.items if item.uuid]
        if item_uuids:
            result = await self.db.execute(
                select(ProductVariationItem.uuid, ProductVariation.product_id)
                .join(ProductVariation, ProductVariation.id == ProductVariationItem.variation_id)
                .where(ProductVariationItem.uuid.in_(item_uuids))
            )
            foreign = [row_uuid for row_uuid, owner in result.all() if owner != product_id]
            if foreign:
                raise BusinessError(f"Variation item {foreign[0]} belongs to another product")

    async def apply(self, payload: ProductPayload) -> Optional[str]:
        product = await self.catalog.find_product(
            self.user_id,
            product_id=payload.product_id,
            external_id=payload.external_id,
            sku=payload.sku,
        )
        if product and not self.settings.import_.update_exists_products:
            return None

        # everything that can reject the record is resolved before writing
        fields = payload.model_fields_set
        values = {field: _plain(getattr(payload, field)) for field in PRODUCT_FIELDS if field in fields}
        category = await self._category(payload.category_id) if payload.category_id else None
        if category:
            values["category_id"] = category.id
        if payload.primary_image:
            values["primary_image"] = await self.media.resolve(payload.primary_image)
        images = [await self.media.resolve(ref) for ref in payload.images]
        variation_images = [[await self.media.resolve(ref) for ref in v.images] for v in payload.variations]
        await self._check_uuids(payload, product)

        if product:
            changed = _assign(product, values)
            outcome = UPDATED
        else:
            product = Product(user_id=self.user_id, **values)
            self.db.add(product)
            changed = True
            outcome = CREATED
        await self.db.flush()

        if "images" in fields or "primary_image" in fields:
            changed |= await self._sync_images(product.id, None, images)

        if payload.variations:
            for position, variation_payload in enumerate(payload.variations):
                changed |= await self._upsert_variation(product, position, variation_payload, variation_images[position])
        else:
            result = await self.db.execute(select(ProductVariation.id).where(ProductVariation.product_id == product.id).limit(1))
            if result.first() is None:
                await self.catalog.ensure_default_variation(product)
                changed = True

        if category and not category.system_category_id:
            await self.dictionaries.auto_sync_category(category)

        self._touched.append(product.id)
        if outcome == UPDATED and not changed:
            return None
        return outcome

    async def _sync_images(self, product_id: int, variation_id: Optional[int], paths: List[str]) -> bool:
        stmt = select(ProductImage).where(ProductImage.product_id == product_id)
        if variation_id:
            stmt = stmt.where(ProductImage.variation_id == variation_id)
        else:
            stmt = stmt.where(ProductImage.variation_id.is_(None))
        result = await self.db.execute(stmt.order_by(ProductImage.position, ProductImage.id))
        existing = list(result.scalars().all())
        if [image.path for image in existing] == paths:
            return False

        if existing:
            await self.db.execute(delete(ProductImage).where(ProductImage.id.in_([image.id for image in existing])))
        for position, path in enumerate(paths):
            self.db.add(ProductImage(product_id=product_id, variation_id=variation_id, path=path, position=position))
        await self.db.flush()
        return True

    async def _upsert_variation(self, product: Product, position: int, payload: VariationPayload, images: List[str]) -> bool:
        variation = None
        if payload.uuid:
            result = await self.db.execute(
                select(ProductVariation).where(ProductVariation.uuid == payload.uuid, ProductVariation.product_id == product.id)
            )
            variation = result.scalars().first()
        if not variation and payload.vendor_code:
            result = await self.db.execute(
                select(ProductVariation)
                .where(ProductVariation.product_id == product.id, ProductVariation.vendor_code == payload.vendor_code)
                .order_by(ProductVariation.id)
            )
            variation = result.scalars().first()

        fields = payload.model_fields_set
        values = {
            field: _plain(getattr(payload, field))
            for field in ("vendor_code", "title", "barcode", "status", "is_main", "data")
            if field in fields
        }

        if variation:
            changed = _assign(variation, values)
        else:
            values.setdefault("vendor_code", product.sku if position == 0 else f"{product.sku}-{position + 1}")
            values.setdefault("status", PublishStatus.PUBLISHED.value)
            values.setdefault("is_main", position == 0)
            variation = ProductVariation(product_id=product.id, uuid=payload.uuid or str(uuid.uuid4()), **values)
            self.db.add(variation)
            changed = True
        await self.db.flush()

        if "images" in fields:
            changed |= await self._sync_images(product.id, variation.id, images)
        for item_payload in payload.items:
            changed |= await self._upsert_item(variation, item_payload)
        return changed

    async def _upsert_item(self, variation: ProductVariation, payload: VariationItemPayload) -> bool:
        item = None
        if payload.uuid:
            result = await self.db.execute(
                select(ProductVariationItem).where(
                    ProductVariationItem.uuid == payload.uuid,
                    ProductVariationItem.variation_id == variation.id,
                )
            )
            item = result.scalars().first()
        if not item and payload.barcode:
            result = await self.db.execute(
                select(ProductVariationItem)
                .where(ProductVariationItem.variation_id == variation.id, ProductVariationItem.barcode == payload.barcode)
                .order_by(ProductVariationItem.id)
            )
            item = result.scalars().first()

        values = {field: getattr(payload, field) for field in ("barcode", "title", "data") if field in payload.model_fields_set}
        if item:
            changed = _assign(item, values)
        else:
            self.db.add(ProductVariationItem(variation_id=variation.id, uuid=payload.uuid or str(uuid.uuid4()), **values))
            changed = True
        await self.db.flush()
        return changed

    async def finalize(self) -> None:
        if not self._touched or not self.integration:
            return

        if not self.integration.price_list_id:
            price_list = await self.prices.get_or_create_price_list(self.user_id)
            self.integration.price_list_id = price_list.id

        attached = await self.prices.sync_without_detaching(self.integration.price_list_id, self._touched)
        logger.debug(f"Attached {attached} products to price list {self.integration.price_list_id}")
        self._touched.clear()

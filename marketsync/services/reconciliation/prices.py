import logging
from typing import Dict, List, Optional

from sqlalchemy import select

from marketsync.core.enums import ItemType, JobType
from marketsync.core.exceptions import BusinessError
from marketsync.models.product import ProductVariation, ProductVariationItem
from marketsync.models.warehouse import Warehouse
from marketsync.schemas.price import PriceTargetPayload, ProductPricePayload
from marketsync.schemas.reconciliation import ReconciliationResult
from marketsync.services.catalog_service import CatalogService
from marketsync.services.job_queue import enqueue_job
from marketsync.services.price_service import PriceService
from marketsync.services.reconciliation.base import UPDATED, BaseReconciler

logger = logging.getLogger(__name__)


class PriceReconciler(BaseReconciler):
    """
    Batch price/stock update for products, variations and items.

    Prices are keyed by price type (marketplace key or "default") and stocks
    by local warehouse id. The integration import settings decide which of
    the two are written; records only ever update, never create catalog rows.
    """

    schema = ProductPricePayload

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.catalog = CatalogService(self.db)
        self.prices = PriceService(self.db)
        self._warehouse_ids: Optional[set] = None
        self._touched: List[int] = []

    async def reconcile(self, records) -> ReconciliationResult:
        import_settings = self.settings.import_
        if not import_settings.update_prices and not import_settings.update_stocks:
            raise BusinessError("Price and stock updates are disabled in the integration import settings")
        if not self.integration or not self.integration.price_list_id:
            raise BusinessError("No price list is bound to the integration")
        return await super().reconcile(records)

    async def _user_warehouses(self) -> set:
        if self._warehouse_ids is None:
            result = await self.db.execute(select(Warehouse.id).where(Warehouse.user_id == self.user_id))
            self._warehouse_ids = set(result.scalars().all())
        return self._warehouse_ids

    async def apply(self, payload: ProductPricePayload) -> Optional[str]:
        product = await self.catalog.find_product(self.user_id, product_id=payload.product_id, external_id=payload.external_id)
        if not product:
            raise BusinessError(f"Product {payload.external_id} not found")

        # resolve the whole record before writing any of it
        variations: Dict[str, ProductVariation] = {}
        items: Dict[str, ProductVariationItem] = {}
        if payload.variations:
            result = await self.db.execute(
                select(ProductVariation).where(
                    ProductVariation.product_id == product.id,
                    ProductVariation.uuid.in_([v.uuid for v in payload.variations]),
                )
            )
            variations = {v.uuid: v for v in result.scalars().all()}
            missing = [v.uuid for v in payload.variations if v.uuid not in variations]
            if missing:
                raise BusinessError(f"Variation {missing[0]} not found")

            item_uuids = [item.uuid for v in payload.variations for item in v.items]
            if item_uuids:
                result = await self.db.execute(
                    select(ProductVariationItem).where(
                        ProductVariationItem.variation_id.in_([v.id for v in variations.values()]),
                        ProductVariationItem.uuid.in_(item_uuids),
                    )
                )
                items = {item.uuid: item for item in result.scalars().all()}
                missing = [u for u in item_uuids if u not in items]
                if missing:
                    raise BusinessError(f"Variation item {missing[0]} not found")

        warehouses = await self._user_warehouses()
        for target in [payload] + list(payload.variations) + [i for v in payload.variations for i in v.items]:
            foreign = [warehouse_id for warehouse_id in target.stocks if warehouse_id not in warehouses]
            if foreign:
                raise BusinessError(f"Warehouse {foreign[0]} not found")

        changed = await self._write(ItemType.PRODUCT.value, product.id, payload)
        for variation_payload in payload.variations:
            variation = variations[variation_payload.uuid]
            changed |= await self._write(ItemType.VARIATION.value, variation.id, variation_payload)
            for item_payload in variation_payload.items:
                changed |= await self._write(ItemType.VARIATION_ITEM.value, items[item_payload.uuid].id, item_payload)

        await self.db.flush()
        self._touched.append(product.id)
        return UPDATED if changed else None

    async def _write(self, item_type: str, item_id: int, target: PriceTargetPayload) -> bool:
        price_list_id = self.integration.price_list_id
        changed = False

        if self.settings.import_.update_prices:
            for price_type, values in target.prices.items():
                changed |= await self.prices.set_price(price_list_id, item_type, item_id, price_type, values.model_dump())

        if self.settings.import_.update_stocks:
            for warehouse_id, quantity in target.stocks.items():
                changed |= await self.prices.set_stock(price_list_id, item_type, item_id, warehouse_id, quantity)

        return changed

    async def finalize(self) -> None:
        if self._touched:
            await self.prices.sync_without_detaching(self.integration.price_list_id, self._touched)
            product_ids = sorted(set(self._touched))
            await enqueue_job(
                self.db,
                job_type=JobType.UPDATE_PRICES_STOCKS.value,
                user_id=self.user_id,
                payload={"user_id": self.user_id, "product_ids": product_ids},
            )
            self._touched.clear()

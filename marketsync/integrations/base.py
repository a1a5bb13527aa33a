"""
Purpose: The contract every marketplace provider implements.

A provider translates core operations (export, price/stock push, order and
supply sync, taxonomy crawl) into one marketplace's API. Providers are
constructed with a database session; credentials come from the integration
or credential record passed to each call.

Failure policy: batch operations catch errors per chunk or per item, log them
and write an IntegrationLog row, and carry on. Rejected credentials
(TokenRequiredError) always propagate.
"""

import logging
from abc import ABC, abstractmethod
from collections import OrderedDict
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence

import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from marketsync.core.enums import ImportStatus, LogLevel, Marketplace, MarketplaceProductStatus
from marketsync.core.exceptions import BusinessError, MarketplaceAPIError
from marketsync.models.category import Category
from marketsync.models.import_task import ImportProduct, ImportTask
from marketsync.models.integration import ExportInfo, Integration
from marketsync.models.order import Order, Supply
from marketsync.models.product import Product, ProductVariation, ProductVariationItem
from marketsync.schemas.marketplace import (
    AttributeSchema,
    DictValue,
    ExportBatchResult,
    ExportInfoDTO,
    UserCredentials,
    WarehouseDTO,
)
from marketsync.schemas.reconciliation import ReconciliationResult
from marketsync.schemas.settings import IntegrationSettings
from marketsync.services.integration_service import IntegrationService
from marketsync.services.marketplace_product_service import MarketplaceProductService
from marketsync.services.reconciliation import ProductReconciler

logger = logging.getLogger(__name__)


def chunked(items: Sequence[Any], size: int) -> Iterator[Sequence[Any]]:
    size = max(size, 1)
    for start in range(0, len(items), size):
        yield items[start:start + size]


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse marketplace timestamps ("2023-05-01T10:00:00Z"); naive values are UTC."""
    if not value:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class MarketplaceProvider(ABC):
    marketplace: str = ""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.integrations = IntegrationService(db)
        self.marketplace_products = MarketplaceProductService(db)

    # Shared helpers

    @staticmethod
    def integration_settings(integration: Integration) -> IntegrationSettings:
        return IntegrationService.settings(integration)

    async def add_integration_log(
        self,
        integration: Integration,
        message: str,
        level: str = LogLevel.ERROR.value,
        data: Optional[Dict[str, Any]] = None,
    ) -> None:
        await self.integrations.add_log(integration, level, message, data)

    async def integration_for_user(self, user_id: int) -> Integration:
        integration = await self.integrations.get_for_user(user_id, self.marketplace, active_only=True)
        if not integration:
            raise BusinessError(f"{self.marketplace.capitalize()} integration is not active")
        return integration

    async def set_marketplace_product(
        self,
        user_id: int,
        item_type: str,
        item_id: int,
        data: Optional[Dict[str, Any]] = None,
        status: str = MarketplaceProductStatus.SUCCESS.value,
        barcode: Optional[str] = None,
    ):
        return await self.marketplace_products.set(
            user_id, self.marketplace, item_type, item_id, barcode=barcode, data=data, status=status
        )

    async def user_variations(self, user_id: int, product_ids: Iterable[int]) -> List[ProductVariation]:
        result = await self.db.execute(
            select(ProductVariation)
            .join(Product, Product.id == ProductVariation.product_id)
            .where(Product.user_id == user_id, ProductVariation.product_id.in_(list(product_ids)))
            .order_by(ProductVariation.product_id, ProductVariation.id)
        )
        return list(result.scalars().all())

    async def create_import_task(self, integration: Integration) -> ImportTask:
        task = ImportTask(
            user_id=integration.user_id,
            integration_id=integration.id,
            marketplace=self.marketplace,
            status=ImportStatus.PENDING.value,
        )
        self.db.add(task)
        await self.db.flush()
        return task

    async def import_data_from_url(self, url: str, user_id: int) -> ReconciliationResult:
        """
        Pull a JSON product feed and reconcile it as an inbound product batch.

        The feed is either a list of product records or {"products": [...]}.
        """
        try:
            async with httpx.AsyncClient(timeout=30.0) as client:
                response = await client.get(url)
        except httpx.TimeoutException:
            raise MarketplaceAPIError(f"Timed out fetching {url}")
        except httpx.RequestError as e:
            raise MarketplaceAPIError(f"Could not fetch {url}: {e}")

        if response.status_code >= 400:
            raise BusinessError(f"Product feed returned HTTP {response.status_code}")
        try:
            body = response.json()
        except ValueError:
            raise BusinessError("Product feed is not valid JSON")

        records = body.get("products") if isinstance(body, dict) else body
        if not isinstance(records, list):
            raise BusinessError("Product feed must contain a list of products")

        integration = await self.integrations.get_or_create(user_id, Marketplace.API.value)
        return await ProductReconciler(self.db, user_id, integration=integration).reconcile(records)

    async def save_imported_products(self, task_id: int) -> ReconciliationResult:
        """
        Turn staged ImportProduct rows into catalog products.

        Rows sharing a group key become one product; each distinct uid becomes
        a variation and each barcode an item. After the batch commits, the
        marketplace identifiers carried in the staged data are recorded as
        MarketplaceProduct rows so prices and stocks can be pushed back.
        """
        task = await self.db.get(ImportTask, task_id)
        if not task:
            raise BusinessError(f"Import task {task_id} not found")
        integration = await self.db.get(Integration, task.integration_id)

        result = await self.db.execute(
            select(ImportProduct)
            .where(ImportProduct.task_id == task.id, ImportProduct.status == ImportStatus.PENDING.value)
            .order_by(ImportProduct.id)
        )
        staged = list(result.scalars().all())

        groups: "OrderedDict[str, List[ImportProduct]]" = OrderedDict()
        for row in staged:
            groups.setdefault(row.group_key or row.uid, []).append(row)

        records = [self._staged_record(group_key, rows) for group_key, rows in groups.items()]
        try:
            outcome = await ProductReconciler(self.db, task.user_id, integration=integration).reconcile(records)
            await self._bind_imported(task.user_id, staged)
        except BusinessError as e:
            await self.db.rollback()
            task.status = ImportStatus.ERROR.value
            task.error_message = e.user_message
            await self.db.commit()
            raise

        for row in staged:
            row.status = ImportStatus.SUCCESS.value
        task.status = ImportStatus.SUCCESS.value
        task.result = outcome.model_dump(by_alias=True)
        await self.db.commit()
        logger.info(f"Import task {task.id} ({self.marketplace}) saved: {outcome.created} created, {outcome.updated} updated")
        return outcome

    def _staged_record(self, group_key: str, rows: List[ImportProduct]) -> Dict[str, Any]:
        first = rows[0].data or {}
        variations: "OrderedDict[str, Dict[str, Any]]" = OrderedDict()
        for row in rows:
            data = row.data or {}
            variation = variations.setdefault(row.uid, {
                "vendor_code": row.uid,
                "title": data.get("title"),
                "barcode": row.barcode,
                "images": data.get("images") or [],
                "items": [],
            })
            if row.barcode:
                variation["items"].append({"barcode": row.barcode, "title": data.get("item_title")})

        return {
            "external_id": f"{self.marketplace}-{group_key}",
            "sku": rows[0].uid,
            "title": first.get("title") or rows[0].uid,
            "description": first.get("description"),
            "images": first.get("images") or [],
            "variations": list(variations.values()),
        }

    async def _bind_imported(self, user_id: int, staged: List[ImportProduct]) -> None:
        for row in staged:
            data = row.data or {}
            result = await self.db.execute(
                select(ProductVariation)
                .join(Product, Product.id == ProductVariation.product_id)
                .where(Product.user_id == user_id, ProductVariation.vendor_code == row.uid)
                .order_by(ProductVariation.id)
            )
            variation = result.scalars().first()
            if not variation:
                continue
            if data.get("variation_data"):
                await self.set_marketplace_product(user_id, ProductVariation.item_type.value, variation.id, data["variation_data"])

            if row.barcode and data.get("item_data"):
                result = await self.db.execute(
                    select(ProductVariationItem.id).where(
                        ProductVariationItem.variation_id == variation.id,
                        ProductVariationItem.barcode == row.barcode,
                    )
                )
                item_id = result.scalar()
                if item_id:
                    await self.set_marketplace_product(
                        user_id, ProductVariationItem.item_type.value, item_id, data["item_data"], barcode=row.barcode
                    )
        await self.db.commit()

    # Marketplace operations

    @abstractmethod
    async def get_category_attributes(self, category: Category) -> List[AttributeSchema]:
        """Attributes of the marketplace category linked to `category`; empty when unmapped"""

    @abstractmethod
    async def get_dictionary_values(self, args: Dict[str, Any]) -> List[DictValue]:
        """Enumerable values of one marketplace dictionary"""

    @abstractmethod
    async def export_products(self, product_ids: Sequence[int], integration: Integration) -> ExportBatchResult:
        """Create or update product cards; idempotent by vendor code / offer id"""

    @abstractmethod
    async def export_stat(self, export_info: ExportInfo) -> ExportInfoDTO:
        """Status of an asynchronous marketplace export task"""

    @abstractmethod
    async def products_status(self, product_ids: Sequence[int], integration: Integration) -> int:
        """Refresh marketplace publication state of the products' variations"""

    @abstractmethod
    async def products_unpublished(self, product_ids: Sequence[int], integration: Integration) -> int:
        pass

    @abstractmethod
    async def product_variations_unpublished(self, variation_ids: Sequence[int], integration: Integration) -> int:
        pass

    @abstractmethod
    async def products_update_prices_and_stocks(self, product_ids: Sequence[int], integration: Integration) -> int:
        pass

    @abstractmethod
    async def product_variations_update_prices_and_stocks(self, variation_ids: Sequence[int], integration: Integration) -> int:
        pass

    @abstractmethod
    async def products_update_prices(self, item_ids: Sequence[int], item_type: str, integration: Integration) -> int:
        pass

    @abstractmethod
    async def products_update_stocks(self, item_ids: Sequence[int], item_type: str, integration: Integration) -> int:
        pass

    @abstractmethod
    async def get_warehouses(self, integration: Integration) -> List[WarehouseDTO]:
        pass

    @abstractmethod
    async def check_connection(self, integration: Integration) -> int:
        """
        Returns:
            Number of products the marketplace reports for the seller

        Raises:
            TokenRequiredError: If the credentials are empty or rejected
        """

    @abstractmethod
    async def import_products(self, integration: Integration) -> ImportTask:
        """Stage the seller's marketplace catalog as ImportProduct rows"""

    @abstractmethod
    async def import_marketplace_attributes(self) -> int:
        """Crawl the marketplace taxonomy into dictionaries; returns categories crawled"""

    @abstractmethod
    async def get_last_orders(self, credentials: UserCredentials) -> Dict[str, int]:
        pass

    @abstractmethod
    async def open_supply(self, user_id: int) -> Optional[str]:
        """Open a remote supply; returns its id, or None where supplies are local only"""

    @abstractmethod
    async def close_supply(self, supply: Supply) -> bool:
        pass

    @abstractmethod
    async def get_supplies(self, credentials: UserCredentials) -> int:
        pass

    @abstractmethod
    async def update_order_statuses(self, credentials: UserCredentials) -> int:
        pass

    @abstractmethod
    async def export_product_images(self, images_data: Dict[str, List[str]], integration: Integration) -> int:
        """Push image urls keyed by vendor code / offer id"""

    @abstractmethod
    async def cancel_order(self, order: Order, integration: Integration, reason: Optional[str] = None) -> bool:
        pass

    @abstractmethod
    async def change_order_status(self, order: Order, status: str, integration: Integration) -> bool:
        pass

    @abstractmethod
    async def add_order_to_supply(self, supply: Supply, order: Order) -> bool:
        pass

"""
Purpose: Ozon implementation of the marketplace provider contract.

On Ozon every variation is an offer (offer_id = vendor code) with its own
Ozon product_id. Product creation is asynchronous: export_products stores
the import task id in ExportInfo and export_stat polls it. FBS orders are
postings; there is no remote supply container, so supplies stay local and
adding a posting to one ships it.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import select

from marketsync.core.config import get_settings
from marketsync.core.enums import (
    DictionaryType,
    ImportStatus,
    ItemType,
    LogLevel,
    Marketplace,
    MarketplaceProductStatus,
    OrderStatus,
    PublishStatus,
)
from marketsync.core.exceptions import BusinessError, MarketplaceAPIError, TokenRequiredError
from marketsync.integrations.base import MarketplaceProvider, chunked, parse_datetime
from marketsync.models.category import Category
from marketsync.models.dictionary import Dictionary
from marketsync.models.import_task import ImportProduct, ImportTask
from marketsync.models.integration import ExportInfo, Integration
from marketsync.models.order import Order, Supply
from marketsync.schemas.marketplace import (
    AttributeSchema,
    DictValue,
    ExportBatchResult,
    ExportInfoDTO,
    OrderData,
    OrderLineData,
    UserCredentials,
    WarehouseDTO,
)
from marketsync.services.catalog_service import CatalogService
from marketsync.services.dictionary_service import DictionaryService
from marketsync.services.order_service import OrderService
from marketsync.services.price_service import PriceService
from marketsync.services.warehouse_service import WarehouseService
from marketsync.services.ozon.client import OzonClient

logger = logging.getLogger(__name__)

STOCK_CHUNK_SIZE = 100
INFO_CHUNK_SIZE = 1000
CANCELED_STATUSES = (OrderStatus.CANCEL.value, OrderStatus.CANCELED.value, OrderStatus.CANCELLED.value)


def _money(value: Any) -> str:
    return str(int(value)) if float(value).is_integer() else f"{float(value):.2f}"


class OzonProvider(MarketplaceProvider):
    marketplace = Marketplace.OZON.value

    def __init__(self, db):
        super().__init__(db)
        self.catalog = CatalogService(db)
        self.dictionaries = DictionaryService(db)
        self.prices = PriceService(db)
        self.orders = OrderService(db)
        self.warehouses = WarehouseService(db)

    def client_for(self, integration: Integration) -> OzonClient:
        settings = self.integration_settings(integration)
        return OzonClient(settings.client_id, settings.api_token)

    def client_from_credentials(self, credentials: UserCredentials) -> OzonClient:
        return OzonClient(credentials.client_id, credentials.api_token)

    def system_client(self) -> OzonClient:
        settings = get_settings()
        return OzonClient(settings.OZON_SYSTEM_CLIENT_ID, settings.OZON_SYSTEM_API_KEY)

    # Taxonomy

    async def get_category_attributes(self, category: Category) -> List[AttributeSchema]:
        dictionary = (await self.dictionaries.categories_to_marketplace(category.user_id, self.marketplace)).get(category.id)
        if not dictionary:
            return []

        result = await self.db.execute(
            select(Dictionary).where(
                Dictionary.marketplace == self.marketplace,
                Dictionary.type == DictionaryType.ATTRIBUTE.value,
                Dictionary.parent_id == dictionary.id,
            ).order_by(Dictionary.id)
        )
        return [
            AttributeSchema(
                id=attribute.id,
                external_id=attribute.external_id,
                title=attribute.title,
                required=bool((attribute.settings or {}).get("required")),
                type=(attribute.settings or {}).get("type"),
                max_count=(attribute.settings or {}).get("max_count"),
                dictionary=(attribute.settings or {}).get("dictionary"),
            )
            for attribute in result.scalars().all()
        ]

    async def get_dictionary_values(self, args: Dict[str, Any]) -> List[DictValue]:
        """
        Args:
            args: {"attribute_id", "description_category_id", "type_id"}
        """
        try:
            attribute_id = int(args["attribute_id"])
            description_category_id = int(args["description_category_id"])
            type_id = int(args["type_id"])
        except (KeyError, TypeError, ValueError):
            raise BusinessError("attribute_id, description_category_id and type_id are required")

        client = self.system_client()
        values: List[Dict[str, Any]] = []
        last_value_id = 0
        while True:
            page = await client.get_attribute_values(attribute_id, description_category_id, type_id, last_value_id)
            rows = page.get("result") or []
            values.extend(
                {"external_id": row.get("id"), "value": row.get("value"), "data": {"info": row.get("info"), "picture": row.get("picture")}}
                for row in rows
            )
            if not page.get("has_next") or not rows:
                break
            last_value_id = rows[-1].get("id") or 0

        saved = await self.dictionaries.save_attribute_values(self.marketplace, str(attribute_id), values)
        await self.db.commit()
        return [
            DictValue(id=value.id, external_id=value.external_id, value=value.value, data=value.data or {})
            for value in saved
        ]

    async def import_marketplace_attributes(self) -> int:
        """
        Mirror the Ozon description category tree, then crawl attributes for
        every leaf type (description category + type id pair).
        """
        client = self.system_client()
        leaves: List[Dictionary] = []

        async def walk(nodes: List[Dict[str, Any]], parent: Optional[Dictionary], category_id: Optional[int]) -> None:
            for node in nodes:
                if node.get("disabled"):
                    continue
                if node.get("type_id"):
                    leaf = await self.dictionaries.upsert(
                        self.marketplace,
                        DictionaryType.CATEGORY.value,
                        external_id=f"{category_id}:{node['type_id']}",
                        title=node.get("type_name") or str(node["type_id"]),
                        parent_id=parent.id if parent else None,
                        settings={"description_category_id": category_id, "type_id": node["type_id"]},
                    )
                    leaves.append(leaf)
                    continue

                entry = await self.dictionaries.upsert(
                    self.marketplace,
                    DictionaryType.CATEGORY.value,
                    external_id=str(node.get("description_category_id")),
                    title=node.get("category_name") or str(node.get("description_category_id")),
                    parent_id=parent.id if parent else None,
                    settings={"description_category_id": node.get("description_category_id")},
                )
                await walk(node.get("children") or [], entry, node.get("description_category_id"))

        await walk(await client.get_category_tree(), None, None)
        await self.db.commit()
        logger.info(f"Ozon taxonomy: {len(leaves)} leaf types, crawling attributes")

        async def fetch(leaf: Dictionary) -> None:
            settings = leaf.settings or {}
            attributes = await client.get_category_attributes(settings["description_category_id"], settings["type_id"])
            required = []
            for attribute in attributes:
                if attribute.get("is_required"):
                    required.append(attribute.get("name"))
                await self.dictionaries.upsert(
                    self.marketplace,
                    DictionaryType.ATTRIBUTE.value,
                    external_id=f"{leaf.external_id}:{attribute.get('id')}",
                    title=attribute.get("name") or str(attribute.get("id")),
                    parent_id=leaf.id,
                    settings={
                        "attribute_id": attribute.get("id"),
                        "required": bool(attribute.get("is_required")),
                        "type": attribute.get("type"),
                        "max_count": None if attribute.get("is_collection") else 1,
                        "dictionary": str(attribute.get("id")) if attribute.get("dictionary_id") else None,
                    },
                )
            leaf.settings = {**settings, "attributes": [a.get("name") for a in attributes], "required_attributes": required}
            await self.db.flush()

        return await self.dictionaries.crawl(leaves, fetch)

    # Catalog export

    async def export_products(self, product_ids: Sequence[int], integration: Integration) -> ExportBatchResult:
        """
        Send products to /v3/product/import; Ozon upserts by offer_id.

        The returned task id is kept in ExportInfo for export_stat.
        """
        client = self.client_for(integration)
        outcome = ExportBatchResult()
        categories = await self.dictionaries.categories_to_marketplace(integration.user_id, self.marketplace)
        offers: List[Dict[str, Any]] = []
        exported: List[int] = []

        for product in await self.catalog.get_products(integration.user_id, product_ids):
            dictionary = categories.get(product.category_id)
            if not dictionary or not (dictionary.settings or {}).get("type_id"):
                outcome.failed += 1
                message = f'Product "{product.sku}" has no Ozon category'
                outcome.errors.append(message)
                await self.add_integration_log(integration, message)
                continue

            images = [image.path for image in await self.catalog.get_images(product.id) if image.path.startswith("http")]
            for variation in await self.catalog.get_variations([product.id], active_only=True):
                price = await self.prices.price_for(integration.price_list_id, ItemType.VARIATION.value, variation.id, self.marketplace)
                offers.append({
                    "offer_id": variation.vendor_code,
                    "name": variation.title or product.title,
                    "description_category_id": dictionary.settings["description_category_id"],
                    "type_id": dictionary.settings["type_id"],
                    "price": _money(price),
                    "vat": "0",
                    "barcode": variation.barcode or product.barcode or "",
                    "images": images,
                    "depth": product.length or 0,
                    "width": product.width or 0,
                    "height": product.height or 0,
                    "dimension_unit": "mm",
                    "weight": product.weight or 0,
                    "weight_unit": "g",
                    "attributes": [],
                })
                exported.append(variation.id)

        exported_codes = set()
        for chunk in chunked(offers, get_settings().CARD_EXPORT_CHUNK_SIZE):
            try:
                task_id = await client.import_products(list(chunk))
            except TokenRequiredError:
                raise
            except (BusinessError, MarketplaceAPIError) as e:
                message = getattr(e, "user_message", str(e))
                outcome.failed += len(chunk)
                outcome.errors.append(message)
                await self.add_integration_log(integration, f"Product export failed: {message}")
                continue
            self.db.add(ExportInfo(
                integration_id=integration.id,
                user_id=integration.user_id,
                marketplace=self.marketplace,
                task_id=task_id,
                details={"offer_ids": [offer["offer_id"] for offer in chunk]},
            ))
            outcome.created += len(chunk)
            exported_codes.update(offer["offer_id"] for offer in chunk)

        for variation in await self.catalog.get_user_variations(integration.user_id, exported):
            if variation.vendor_code not in exported_codes:
                continue
            record = await self.marketplace_products.get(integration.user_id, self.marketplace, ItemType.VARIATION.value, variation.id)
            if not record or record.status != MarketplaceProductStatus.SUCCESS.value:
                await self.set_marketplace_product(
                    integration.user_id, ItemType.VARIATION.value, variation.id,
                    data={"offer_id": variation.vendor_code}, status=MarketplaceProductStatus.PENDING.value,
                )

        await self.db.commit()
        return outcome

    async def export_stat(self, export_info: ExportInfo) -> ExportInfoDTO:
        integration = await self.db.get(Integration, export_info.integration_id)
        if not export_info.task_id:
            return ExportInfoDTO(marketplace=self.marketplace, created_at=export_info.created_at)

        result = await self.client_for(integration).get_import_info(export_info.task_id)
        items = result.get("items") or []
        log = [{"offer_id": item.get("offer_id"), "errors": item.get("errors")} for item in items if item.get("errors")]

        export_info.has_error = bool(log)
        export_info.log = log
        export_info.result = items
        export_info.message = f"{len(log)} of {len(items)} offers rejected" if log else None
        await self.db.flush()
        return ExportInfoDTO(
            has_error=export_info.has_error,
            message=export_info.message,
            created_at=export_info.created_at,
            log=log,
            result=items,
            marketplace=self.marketplace,
            details=export_info.details or {},
        )

    async def products_status(self, product_ids: Sequence[int], integration: Integration) -> int:
        client = self.client_for(integration)
        variations = await self.user_variations(integration.user_id, product_ids)
        by_offer = {variation.vendor_code: variation for variation in variations}
        updated = 0

        for chunk in chunked(list(by_offer), INFO_CHUNK_SIZE):
            for info in await client.get_products_info(list(chunk)):
                variation = by_offer.get(info.get("offer_id"))
                if not variation:
                    continue
                errors = [error.get("message") or error.get("code") for error in info.get("errors") or [] if isinstance(error, dict)]
                barcodes = info.get("barcodes") or ([info["barcode"]] if info.get("barcode") else [])
                data = {"product_id": info.get("id"), "offer_id": info.get("offer_id"), "sku": info.get("sku"), "barcodes": barcodes}
                if errors:
                    await self.set_marketplace_product(
                        integration.user_id, ItemType.VARIATION.value, variation.id,
                        data={**data, "errors": errors}, status=MarketplaceProductStatus.ERROR.value,
                    )
                    await self.add_integration_log(integration, f"Offer {variation.vendor_code} was rejected: {'; '.join(map(str, errors))}")
                else:
                    await self.set_marketplace_product(integration.user_id, ItemType.VARIATION.value, variation.id, data=data)
                updated += 1

        await self.db.commit()
        return updated

    # Prices and stocks

    async def products_update_prices(self, item_ids: Sequence[int], item_type: str, integration: Integration) -> int:
        if item_type != ItemType.VARIATION.value or not self.integration_settings(integration).export.update_prices:
            return 0

        records = await self.marketplace_products.get_many(integration.user_id, self.marketplace, item_type, item_ids)
        prices = []
        for variation_id, record in records.items():
            offer_id = (record.data or {}).get("offer_id")
            if not offer_id:
                continue
            base = await self.prices.price_for(integration.price_list_id, item_type, variation_id, self.marketplace)
            presale = await self.prices.price_for(integration.price_list_id, item_type, variation_id, self.marketplace, key="presale")
            prices.append({"offer_id": offer_id, "price": _money(base), "old_price": _money(presale)})

        client = self.client_for(integration)
        return await self._push_chunks(integration, prices, client.update_prices, "prices", get_settings().PRICE_EXPORT_CHUNK_SIZE)

    async def _variation_stock(self, integration: Integration, variation_id: int, warehouse_id: int) -> int:
        """Variation stock, or the sum of its items' stock when none is set at variation level."""
        stocks = await self.prices.stocks_for(integration.price_list_id, ItemType.VARIATION.value, [variation_id])
        if warehouse_id in stocks.get(variation_id, {}):
            return stocks[variation_id][warehouse_id]
        item_ids = [item.id for item in await self.catalog.get_items([variation_id])]
        item_stocks = await self.prices.stocks_for(integration.price_list_id, ItemType.VARIATION_ITEM.value, item_ids)
        return sum(per_warehouse.get(warehouse_id, 0) for per_warehouse in item_stocks.values())

    async def products_update_stocks(self, item_ids: Sequence[int], item_type: str, integration: Integration, amount: Optional[int] = None) -> int:
        """Push offer stocks to every export warehouse; Ozon stocks live on variations."""
        settings = self.integration_settings(integration)
        if item_type != ItemType.VARIATION.value or not settings.export.update_stocks:
            return 0

        warehouses = await self.warehouses.resolve(integration.user_id, self.marketplace, settings.export.warehouses)
        if not warehouses:
            await self.add_integration_log(integration, "No export warehouses configured for stock updates", LogLevel.INFO.value)
            return 0

        records = await self.marketplace_products.get_many(integration.user_id, self.marketplace, item_type, item_ids)
        stocks = []
        for variation_id, record in records.items():
            offer_id = (record.data or {}).get("offer_id")
            if not offer_id:
                continue
            for warehouse in warehouses:
                quantity = amount if amount is not None else await self._variation_stock(integration, variation_id, warehouse.id)
                stocks.append({"offer_id": offer_id, "stock": quantity, "warehouse_id": int(warehouse.external_id)})

        client = self.client_for(integration)
        return await self._push_chunks(integration, stocks, client.update_stocks, "stocks", STOCK_CHUNK_SIZE)

    async def _push_chunks(self, integration: Integration, payload: List[Dict[str, Any]], send, what: str, chunk_size: int) -> int:
        pause = get_settings().PRICE_EXPORT_PAUSE
        pushed = 0
        for chunk in chunked(payload, chunk_size):
            pushed += await self._send(integration, send, list(chunk), what)
            await asyncio.sleep(pause)
        return pushed

    async def _send(self, integration: Integration, send, chunk: List[Dict[str, Any]], what: str) -> int:
        try:
            result = await send(chunk)
        except TokenRequiredError:
            raise
        except (BusinessError, MarketplaceAPIError) as e:
            await self.add_integration_log(integration, f"Failed to update {what}: {getattr(e, 'user_message', str(e))}")
            return 0

        rejected = [row for row in result or [] if row.get("errors")]
        for row in rejected:
            await self.add_integration_log(
                integration, f"Offer {row.get('offer_id')} {what} rejected", data={"errors": row.get("errors")}
            )
        return len(chunk) - len(rejected)

    async def _mark_variations(self, integration: Integration, variation_ids: Sequence[int], status: str) -> None:
        records = await self.marketplace_products.get_many(integration.user_id, self.marketplace, ItemType.VARIATION.value, variation_ids)
        for record in records.values():
            await self.marketplace_products.merge_data(record, {"status": status})

    async def product_variations_update_prices_and_stocks(self, variation_ids: Sequence[int], integration: Integration) -> int:
        pushed = await self.products_update_prices(variation_ids, ItemType.VARIATION.value, integration)
        pushed += await self.products_update_stocks(variation_ids, ItemType.VARIATION.value, integration)
        await self._mark_variations(integration, variation_ids, PublishStatus.PUBLISHED.value)
        await self.db.commit()
        return pushed

    async def products_update_prices_and_stocks(self, product_ids: Sequence[int], integration: Integration) -> int:
        variations = await self.user_variations(integration.user_id, product_ids)
        return await self.product_variations_update_prices_and_stocks([v.id for v in variations], integration)

    async def product_variations_unpublished(self, variation_ids: Sequence[int], integration: Integration) -> int:
        if not self.integration_settings(integration).export.update_stocks:
            return 0
        pushed = await self.products_update_stocks(variation_ids, ItemType.VARIATION.value, integration, amount=0)
        await self._mark_variations(integration, variation_ids, PublishStatus.UNPUBLISHED.value)
        await self.db.commit()
        return pushed

    async def products_unpublished(self, product_ids: Sequence[int], integration: Integration) -> int:
        if not self.integration_settings(integration).export.update_stocks:
            return 0
        variations = await self.user_variations(integration.user_id, product_ids)
        return await self.product_variations_unpublished([v.id for v in variations], integration)

    async def get_warehouses(self, integration: Integration) -> List[WarehouseDTO]:
        return [
            WarehouseDTO(
                external_id=str(warehouse.get("warehouse_id")),
                name=warehouse.get("name") or str(warehouse.get("warehouse_id")),
                data={"status": warehouse.get("status"), "is_rfbs": warehouse.get("is_rfbs")},
            )
            for warehouse in await self.client_for(integration).get_warehouses()
            if warehouse.get("warehouse_id") is not None
        ]

    async def check_connection(self, integration: Integration) -> int:
        try:
            return await self.client_for(integration).get_products_total_count()
        except BusinessError as e:
            await self.add_integration_log(integration, f"Connection check failed: {e.user_message}")
            raise

    async def import_products(self, integration: Integration) -> ImportTask:
        """Stage every Ozon offer as an ImportProduct (uid and group key = offer_id)."""
        task = await self.create_import_task(integration)
        try:
            client = self.client_for(integration)
            await self.warehouses.sync(integration.user_id, self.marketplace, await self.get_warehouses(integration))

            offer_ids = [item.get("offer_id") for item in await client.get_all_product_ids() if item.get("offer_id")]
            staged = 0
            for chunk in chunked(offer_ids, INFO_CHUNK_SIZE):
                for info in await client.get_products_info(list(chunk)):
                    barcodes = info.get("barcodes") or ([info["barcode"]] if info.get("barcode") else [])
                    marketplace_data = {
                        "product_id": info.get("id"),
                        "offer_id": info.get("offer_id"),
                        "sku": info.get("sku"),
                        "barcodes": barcodes,
                    }
                    self.db.add(ImportProduct(
                        task_id=task.id,
                        uid=info.get("offer_id"),
                        barcode=barcodes[0] if barcodes else None,
                        group_key=info.get("offer_id"),
                        status=ImportStatus.PENDING.value,
                        data={
                            "title": info.get("name") or info.get("offer_id"),
                            "images": [image for image in info.get("images") or [] if isinstance(image, str)],
                            "variation_data": marketplace_data,
                            "item_data": marketplace_data,
                        },
                    ))
                    staged += 1

            task.total = staged
            task.status = ImportStatus.PROCESSING.value if staged else ImportStatus.SUCCESS.value
        except TokenRequiredError as e:
            task.status = ImportStatus.ERROR.value
            task.error_message = e.user_message
            await self.add_integration_log(integration, f"Import failed: {e.user_message}")
        except (BusinessError, MarketplaceAPIError) as e:
            task.status = ImportStatus.ERROR.value
            task.error_message = str(e)
            logger.critical(f"Ozon import for user {integration.user_id} failed: {e}")

        await self.db.commit()
        return task

    # Orders and supplies

    def _order_data(self, posting: Dict[str, Any]) -> OrderData:
        products = posting.get("products") or []
        lines = [
            OrderLineData(
                sku=product.get("offer_id"),
                name=product.get("name"),
                quantity=int(product.get("quantity") or 1),
                price=float(product.get("price") or 0),
            )
            for product in products
        ]
        return OrderData(
            external_id=posting["posting_number"],
            status=posting.get("status") or OrderStatus.NEW.value,
            marketplace_status=posting.get("substatus") or posting.get("status"),
            order_type="fbs",
            total=sum(line.price * line.quantity for line in lines),
            order_created=parse_datetime(posting.get("in_process_at")),
            shipment_date=parse_datetime(posting.get("shipment_date")),
            delivery={"delivery_method": posting.get("delivery_method"), "customer": posting.get("customer")},
            additional_data={
                "posting_number": posting["posting_number"],
                "order_id": posting.get("order_id"),
                "order_number": posting.get("order_number"),
                "substatus": posting.get("substatus"),
                "products": [{"sku": product.get("sku"), "quantity": product.get("quantity") or 1} for product in products],
                "order_type": "fbs",
            },
            products=lines,
        )

    async def get_last_orders(self, credentials: UserCredentials) -> Dict[str, int]:
        client = self.client_from_credentials(credentials)
        now = datetime.now(timezone.utc)
        postings = await client.get_fbs_postings(now - timedelta(days=get_settings().ORDERS_LOOKBACK_DAYS), now)
        orders = [self._order_data(posting) for posting in postings if posting.get("posting_number") and posting.get("status")]
        counts = await self.orders.save_orders(credentials.user_id, self.marketplace, orders)
        await self.db.commit()
        return counts

    async def update_order_statuses(self, credentials: UserCredentials) -> int:
        open_orders = await self.orders.open_orders(credentials.user_id, self.marketplace)
        if not open_orders:
            return 0

        now = datetime.now(timezone.utc)
        since = now - timedelta(days=get_settings().ORDERS_LOOKBACK_DAYS)
        for order in open_orders:
            created = parse_datetime(order.order_created)
            if created and created < since:
                since = created

        wanted = {order.external_id for order in open_orders}
        postings = await self.client_from_credentials(credentials).get_fbs_postings(since, now)
        changed = await self.orders.apply_statuses(
            credentials.user_id,
            self.marketplace,
            {
                posting["posting_number"]: (posting.get("status"), posting.get("substatus") or posting.get("status"))
                for posting in postings
                if posting.get("posting_number") in wanted
            },
        )
        await self.db.commit()
        return changed

    async def get_supplies(self, credentials: UserCredentials) -> int:
        return 0

    async def open_supply(self, user_id: int) -> Optional[str]:
        return None

    async def close_supply(self, supply: Supply) -> bool:
        return True

    async def _ship(self, order: Order, integration: Integration) -> bool:
        products = [
            {"product_id": product["sku"], "quantity": product.get("quantity") or 1}
            for product in (order.additional_data or {}).get("products") or []
            if product.get("sku")
        ]
        if not products:
            raise BusinessError(f"Posting {order.posting_number} has no products to ship")
        await self.client_for(integration).ship_posting(order.posting_number, products)
        return True

    async def add_order_to_supply(self, supply: Supply, order: Order) -> bool:
        if not order.posting_number:
            raise BusinessError(f"Order {order.id} has no posting number")
        return await self._ship(order, await self.integration_for_user(supply.user_id))

    async def cancel_order(self, order: Order, integration: Integration, reason: Optional[str] = None) -> bool:
        return await self.client_for(integration).cancel_posting(order.posting_number, message=reason or "")

    async def change_order_status(self, order: Order, status: str, integration: Integration) -> bool:
        if status in CANCELED_STATUSES:
            return await self.cancel_order(order, integration)
        if status == OrderStatus.AWAITING_DELIVER.value:
            return await self._ship(order, integration)
        raise BusinessError(f"Ozon postings cannot be moved to {status}")

    async def export_product_images(self, images_data: Dict[str, List[str]], integration: Integration) -> int:
        client = self.client_for(integration)
        exported = 0
        for offer_id, urls in images_data.items():
            record = await self.marketplace_products.find_by_data(
                integration.user_id, self.marketplace, ItemType.VARIATION.value, "offer_id", offer_id
            )
            product_id = (record.data or {}).get("product_id") if record else None
            if not product_id or not urls:
                continue
            try:
                await client.import_pictures(int(product_id), urls)
                exported += 1
            except TokenRequiredError:
                raise
            except (BusinessError, MarketplaceAPIError) as e:
                await self.add_integration_log(integration, f"Images for {offer_id} were not saved: {getattr(e, 'user_message', str(e))}")
        return exported

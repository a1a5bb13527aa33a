"""
Purpose: Wildberries implementation of the marketplace provider contract.

Catalog model on Wildberries: a card (imtID) groups nomenclatures (nmID, one
per vendor code = our variation), each with sizes (chrtID + barcodes = our
variation items). Prices are set per nmID, stocks per barcode and seller
warehouse. Orders are FBS assembly tasks grouped into supplies.
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
from marketsync.models.dictionary import Dictionary, MarketplaceAttributeValue
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
    SupplyData,
    UserCredentials,
    WarehouseDTO,
)
from marketsync.services.catalog_service import CatalogService
from marketsync.services.dictionary_service import DictionaryService
from marketsync.services.order_service import OrderService
from marketsync.services.price_service import PriceService
from marketsync.services.supply_service import SupplyService
from marketsync.services.warehouse_service import WarehouseService
from marketsync.services.wildberries.client import WildberriesClient

logger = logging.getLogger(__name__)


def prepare_marketplace_product_data(card: Dict[str, Any], size: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """The subset of a Wildberries card kept on MarketplaceProduct rows."""
    size = size or ((card.get("sizes") or [{}])[0])
    return {
        "id": card.get("nmID"),
        "title": card.get("title") or card.get("vendorCode"),
        "sku": card.get("vendorCode"),
        "barcodes": size.get("skus") or [],
        "imtID": card.get("imtID"),
        "nmID": card.get("nmID"),
        "chrtID": size.get("chrtID"),
        "wbSize": size.get("wbSize"),
        "techSize": size.get("techSize"),
    }


class WildberriesProvider(MarketplaceProvider):
    marketplace = Marketplace.WILDBERRIES.value

    def __init__(self, db):
        super().__init__(db)
        self.catalog = CatalogService(db)
        self.dictionaries = DictionaryService(db)
        self.prices = PriceService(db)
        self.orders = OrderService(db)
        self.warehouses = WarehouseService(db)

    def client_for(self, integration: Integration) -> WildberriesClient:
        return WildberriesClient(self.integration_settings(integration).api_token)

    def client_from_credentials(self, credentials: UserCredentials) -> WildberriesClient:
        return WildberriesClient(credentials.api_token)

    def system_client(self) -> WildberriesClient:
        return WildberriesClient(get_settings().WB_SYSTEM_TOKEN)

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
        attributes = []
        for attribute in result.scalars().all():
            settings = attribute.settings or {}
            attributes.append(AttributeSchema(
                id=attribute.id,
                external_id=attribute.external_id,
                title=attribute.title,
                required=bool(settings.get("required")),
                type=settings.get("type"),
                unit=settings.get("unit"),
                max_count=settings.get("max_count"),
                dictionary=settings.get("dictionary"),
            ))
        return attributes

    async def get_dictionary_values(self, args: Dict[str, Any]) -> List[DictValue]:
        """
        Args:
            args: {"dictionary": "/colors", "pattern": optional filter}
        """
        dictionary = str(args.get("dictionary") or "").strip()
        if not dictionary:
            raise BusinessError("Dictionary name is required")

        result = await self.db.execute(
            select(MarketplaceAttributeValue).where(
                MarketplaceAttributeValue.marketplace == self.marketplace,
                MarketplaceAttributeValue.dictionary == dictionary,
            ).order_by(MarketplaceAttributeValue.id)
        )
        saved = list(result.scalars().all())
        if not saved:
            raw = await self.system_client().get_dictionary(dictionary, pattern=args.get("pattern"))
            values = []
            for entry in raw:
                if isinstance(entry, dict):
                    value = entry.get("name") or entry.get("title") or entry.get("fullName")
                    values.append({"external_id": entry.get("id") or value, "value": value, "data": entry})
                else:
                    values.append({"external_id": entry, "value": str(entry), "data": {}})
            saved = await self.dictionaries.save_attribute_values(self.marketplace, dictionary, values)
            await self.db.commit()

        return [
            DictValue(id=value.id, external_id=value.external_id, value=value.value, data=value.data or {})
            for value in saved
        ]

    async def import_marketplace_attributes(self) -> int:
        """
        Mirror the Wildberries subject list and each subject's characteristics.

        Parent categories are only named by Wildberries, so they are matched
        by title. Characteristic requests are paced by DictionaryService.crawl.
        """
        client = self.system_client()
        subjects = await client.get_all_categories(limit=get_settings().WB_CATEGORIES_LIMIT)

        categories: List[Dictionary] = []
        for subject in subjects:
            if not subject.get("isVisible", True):
                continue
            parent = None
            if subject.get("parentName"):
                parent = await self.dictionaries.get_or_create(
                    self.marketplace, DictionaryType.CATEGORY.value, subject["parentName"],
                    external_id=None, settings={"parent_external_id": subject.get("parentID")},
                )
            category = await self.dictionaries.upsert(
                self.marketplace,
                DictionaryType.CATEGORY.value,
                external_id=str(subject.get("objectID")),
                title=subject.get("objectName") or str(subject.get("objectID")),
                parent_id=parent.id if parent else None,
                settings={"name": subject.get("objectName")},
            )
            categories.append(category)
        await self.db.commit()
        logger.info(f"Wildberries taxonomy: {len(categories)} categories, crawling characteristics")

        async def fetch(category: Dictionary) -> None:
            characteristics = await client.get_category_characteristics((category.settings or {}).get("name") or category.title)
            names, required = [], []
            for characteristic in characteristics:
                name = characteristic.get("name")
                if not name:
                    continue
                names.append(name)
                if characteristic.get("required"):
                    required.append(name)
                await self.dictionaries.upsert(
                    self.marketplace,
                    DictionaryType.ATTRIBUTE.value,
                    external_id=f"{category.external_id}:{name}",
                    title=name,
                    parent_id=category.id,
                    settings={
                        "required": bool(characteristic.get("required")),
                        "unit": characteristic.get("unitName") or None,
                        "max_count": characteristic.get("maxCount"),
                        "type": characteristic.get("charcType"),
                        "dictionary": characteristic.get("dictionary"),
                    },
                )
            category.settings = {**(category.settings or {}), "attributes": names, "required_attributes": required}
            await self.db.flush()

        return await self.dictionaries.crawl(categories, fetch)

    # Catalog export

    async def export_products(self, product_ids: Sequence[int], integration: Integration) -> ExportBatchResult:
        """
        Create cards for new vendor codes and update existing ones.

        Vendor codes already known to Wildberries are always updated, never
        created again, so re-exporting a product is safe.
        """
        client = self.client_for(integration)
        outcome = ExportBatchResult()
        categories = await self.dictionaries.categories_to_marketplace(integration.user_id, self.marketplace)

        for product in await self.catalog.get_products(integration.user_id, product_ids):
            try:
                dictionary = categories.get(product.category_id)
                if not dictionary:
                    raise BusinessError(f'Product "{product.sku}" has no Wildberries category')

                variations = await self.catalog.get_variations([product.id], active_only=True)
                if not variations:
                    continue
                items = await self.catalog.group_items([v.id for v in variations])
                remote = {card.get("vendorCode"): card for card in await client.get_cards_by_vendor_codes([v.vendor_code for v in variations])}

                new_cards, updated_cards = [], []
                for variation in variations:
                    card = await self._card(client, product, variation, items.get(variation.id, []), dictionary, integration.price_list_id)
                    existing = remote.get(variation.vendor_code)
                    if existing:
                        card.update({"imtID": existing.get("imtID"), "nmID": existing.get("nmID")})
                        updated_cards.append(card)
                    else:
                        new_cards.append(card)

                if new_cards:
                    await client.create_cards([new_cards])
                    outcome.created += len(new_cards)
                if updated_cards:
                    await client.update_cards(updated_cards)
                    outcome.updated += len(updated_cards)

                for variation in variations:
                    record = await self.marketplace_products.get(integration.user_id, self.marketplace, ItemType.VARIATION.value, variation.id)
                    if not record or record.status != MarketplaceProductStatus.SUCCESS.value:
                        await self.set_marketplace_product(
                            integration.user_id, ItemType.VARIATION.value, variation.id,
                            data={"sku": variation.vendor_code}, status=MarketplaceProductStatus.PENDING.value,
                        )

            except TokenRequiredError:
                raise
            except (BusinessError, MarketplaceAPIError) as e:
                outcome.failed += 1
                message = getattr(e, "user_message", str(e))
                outcome.errors.append(message)
                await self.add_integration_log(integration, f"Export of product {product.sku} failed: {message}")

        await self.db.commit()
        return outcome

    async def _card(self, client, product, variation, items, dictionary: Dictionary, price_list_id) -> Dict[str, Any]:
        price = await self.prices.price_for(price_list_id, ItemType.VARIATION.value, variation.id, self.marketplace)
        sizes = []
        for item in items or [None]:
            barcode = item.barcode if item else variation.barcode
            if not barcode:
                barcode = (await client.generate_barcodes(1) or [None])[0]
            sizes.append({
                "techSize": (item.title if item else None) or "0",
                "wbSize": "",
                "price": int(price),
                "skus": [barcode] if barcode else [],
            })

        characteristics = [
            {"Предмет": (dictionary.settings or {}).get("name") or dictionary.title},
            {"Наименование": variation.title or product.title},
        ]
        if product.description:
            characteristics.append({"Описание": product.description})
        for name, value in (product.attributes or {}).items():
            characteristics.append({name: value})

        return {"vendorCode": variation.vendor_code, "characteristics": characteristics, "sizes": sizes}

    async def export_stat(self, export_info: ExportInfo) -> ExportInfoDTO:
        """Wildberries imports synchronously; moderation errors are the only async outcome."""
        integration = await self.db.get(Integration, export_info.integration_id)
        errors = await self.client_for(integration).get_card_errors()
        log = [{"vendor_code": vendor_code, "errors": messages} for vendor_code, messages in errors.items()]

        export_info.has_error = bool(log)
        export_info.log = log
        export_info.message = f"{len(log)} cards rejected" if log else None
        await self.db.flush()
        return ExportInfoDTO(
            has_error=export_info.has_error,
            message=export_info.message,
            created_at=export_info.created_at,
            log=log,
            marketplace=self.marketplace,
        )

    async def products_status(self, product_ids: Sequence[int], integration: Integration) -> int:
        client = self.client_for(integration)
        variations = await self.user_variations(integration.user_id, product_ids)
        if not variations:
            return 0

        cards = {card.get("vendorCode"): card for card in await client.get_cards_by_vendor_codes([v.vendor_code for v in variations])}
        errors = await client.get_card_errors()
        items = await self.catalog.group_items([v.id for v in variations])
        updated = 0

        for variation in variations:
            if variation.vendor_code in errors:
                message = "; ".join(errors[variation.vendor_code]) or "rejected"
                await self.set_marketplace_product(
                    integration.user_id, ItemType.VARIATION.value, variation.id,
                    data={"sku": variation.vendor_code, "errors": errors[variation.vendor_code]},
                    status=MarketplaceProductStatus.ERROR.value,
                )
                await self.add_integration_log(integration, f"Card {variation.vendor_code} was rejected: {message}")
                updated += 1
                continue

            card = cards.get(variation.vendor_code)
            if not card:
                continue
            await self.set_marketplace_product(
                integration.user_id, ItemType.VARIATION.value, variation.id, data=prepare_marketplace_product_data(card)
            )
            updated += 1

            for item in items.get(variation.id, []):
                size = next((s for s in card.get("sizes") or [] if item.barcode and item.barcode in (s.get("skus") or [])), None)
                if size:
                    await self.set_marketplace_product(
                        integration.user_id, ItemType.VARIATION_ITEM.value, item.id,
                        data=prepare_marketplace_product_data(card, size), barcode=item.barcode,
                    )

        await self.db.commit()
        return updated

    # Prices and stocks

    async def products_update_prices(self, item_ids: Sequence[int], item_type: str, integration: Integration) -> int:
        """Push base prices by nmID for exported variations."""
        if item_type != ItemType.VARIATION.value or not self.integration_settings(integration).export.update_prices:
            return 0

        records = await self.marketplace_products.get_many(integration.user_id, self.marketplace, item_type, item_ids)
        prices = []
        for variation_id, record in records.items():
            nm_id = (record.data or {}).get("nmID")
            if not nm_id:
                continue
            price = await self.prices.price_for(integration.price_list_id, item_type, variation_id, self.marketplace)
            prices.append({"nmId": int(nm_id), "price": int(price)})

        return await self._push_chunks(integration, prices, lambda chunk: self.client_for(integration).update_prices(chunk), "prices")

    async def products_update_stocks(self, item_ids: Sequence[int], item_type: str, integration: Integration, amount: Optional[int] = None) -> int:
        """
        Push item stocks by first barcode to every export warehouse.

        Args:
            amount: Fixed quantity to send instead of the price list stock (0 to unpublish)
        """
        settings = self.integration_settings(integration)
        if item_type != ItemType.VARIATION_ITEM.value or not settings.export.update_stocks:
            return 0

        warehouses = await self.warehouses.resolve(integration.user_id, self.marketplace, settings.export.warehouses)
        if not warehouses:
            await self.add_integration_log(integration, "No export warehouses configured for stock updates", LogLevel.INFO.value)
            return 0

        records = await self.marketplace_products.get_many(integration.user_id, self.marketplace, item_type, item_ids)
        barcodes = {
            item_id: ((record.data or {}).get("barcodes") or [record.barcode])[0]
            for item_id, record in records.items()
        }
        stocks = {} if amount is not None else await self.prices.stocks_for(integration.price_list_id, item_type, list(barcodes))

        client = self.client_for(integration)
        pushed = 0
        for warehouse in warehouses:
            payload = [
                {"sku": barcode, "amount": amount if amount is not None else stocks.get(item_id, {}).get(warehouse.id, 0)}
                for item_id, barcode in barcodes.items()
                if barcode
            ]
            pushed += await self._push_chunks(
                integration, payload,
                lambda chunk, warehouse_id=warehouse.external_id: client.update_stocks(warehouse_id, chunk),
                f"stocks for warehouse {warehouse.external_id}",
            )
        return pushed

    async def _push_chunks(self, integration: Integration, payload: List[Dict[str, Any]], send, what: str) -> int:
        settings = get_settings()
        pushed = 0
        for chunk in chunked(payload, settings.PRICE_EXPORT_CHUNK_SIZE):
            try:
                await send(chunk)
                pushed += len(chunk)
            except TokenRequiredError:
                raise
            except (BusinessError, MarketplaceAPIError) as e:
                await self.add_integration_log(integration, f"Failed to update {what}: {getattr(e, 'user_message', str(e))}")
            await asyncio.sleep(settings.PRICE_EXPORT_PAUSE)
        return pushed

    async def _mark_variations(self, integration: Integration, variation_ids: Sequence[int], status: str) -> None:
        records = await self.marketplace_products.get_many(integration.user_id, self.marketplace, ItemType.VARIATION.value, variation_ids)
        for record in records.values():
            await self.marketplace_products.merge_data(record, {"status": status})

    async def product_variations_update_prices_and_stocks(self, variation_ids: Sequence[int], integration: Integration) -> int:
        pushed = await self.products_update_prices(variation_ids, ItemType.VARIATION.value, integration)
        item_ids = [item.id for item in await self.catalog.get_items(variation_ids)]
        pushed += await self.products_update_stocks(item_ids, ItemType.VARIATION_ITEM.value, integration)
        await self._mark_variations(integration, variation_ids, PublishStatus.PUBLISHED.value)
        await self.db.commit()
        return pushed

    async def products_update_prices_and_stocks(self, product_ids: Sequence[int], integration: Integration) -> int:
        variations = await self.user_variations(integration.user_id, product_ids)
        return await self.product_variations_update_prices_and_stocks([v.id for v in variations], integration)

    async def product_variations_unpublished(self, variation_ids: Sequence[int], integration: Integration) -> int:
        """Zero the stock of exported variations; nothing happens for ones never exported."""
        if not self.integration_settings(integration).export.update_stocks:
            return 0
        item_ids = [item.id for item in await self.catalog.get_items(variation_ids)]
        pushed = await self.products_update_stocks(item_ids, ItemType.VARIATION_ITEM.value, integration, amount=0)
        await self._mark_variations(integration, variation_ids, PublishStatus.UNPUBLISHED.value)
        await self.db.commit()
        return pushed

    async def products_unpublished(self, product_ids: Sequence[int], integration: Integration) -> int:
        if not self.integration_settings(integration).export.update_stocks:
            return 0
        variations = await self.user_variations(integration.user_id, product_ids)
        return await self.product_variations_unpublished([v.id for v in variations], integration)

    async def get_warehouses(self, integration: Integration) -> List[WarehouseDTO]:
        warehouses = await self.client_for(integration).get_warehouses()
        return [
            WarehouseDTO(
                external_id=str(warehouse.get("id")),
                name=warehouse.get("name") or str(warehouse.get("id")),
                data={"officeId": warehouse.get("officeId"), "cargoType": warehouse.get("cargoType")},
            )
            for warehouse in warehouses
            if warehouse.get("id") is not None
        ]

    async def check_connection(self, integration: Integration) -> int:
        try:
            return await self.client_for(integration).get_products_total_count()
        except BusinessError as e:
            await self.add_integration_log(integration, f"Connection check failed: {e.user_message}")
            raise

    async def import_products(self, integration: Integration) -> ImportTask:
        """
        Stage every card size as an ImportProduct.

        uid is the vendor code, barcode the first size barcode and the group
        key the card's imtID, so sizes of one card become one product.
        """
        task = await self.create_import_task(integration)
        try:
            client = self.client_for(integration)
            await self.warehouses.sync(integration.user_id, self.marketplace, await self.get_warehouses(integration))

            staged = 0
            for card in await client.get_all_cards():
                images = [media if isinstance(media, str) else media.get("big") for media in card.get("mediaFiles") or card.get("photos") or []]
                for size in card.get("sizes") or []:
                    skus = size.get("skus") or []
                    self.db.add(ImportProduct(
                        task_id=task.id,
                        uid=card.get("vendorCode"),
                        barcode=skus[0] if skus else None,
                        group_key=str(card.get("imtID") or card.get("vendorCode")),
                        status=ImportStatus.PENDING.value,
                        data={
                            "title": card.get("title") or card.get("vendorCode"),
                            "description": card.get("description"),
                            "images": [image for image in images if image],
                            "item_title": size.get("techSize"),
                            "variation_data": prepare_marketplace_product_data(card, size),
                            "item_data": prepare_marketplace_product_data(card, size),
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
            logger.critical(f"Wildberries import for user {integration.user_id} failed: {e}")

        await self.db.commit()
        return task

    # Orders and supplies

    def _order_data(self, raw: Dict[str, Any], status_row: Dict[str, Any]) -> OrderData:
        total = (raw.get("price") or 0) / 100
        skus = raw.get("skus") or []
        return OrderData(
            external_id=str(raw["id"]),
            status=status_row.get("supplierStatus") or OrderStatus.NEW.value,
            marketplace_status=status_row.get("wbStatus") or "waiting",
            order_type=raw.get("deliveryType") or "fbs",
            total=total,
            order_created=parse_datetime(raw.get("createdAt")),
            delivery={
                "user": raw.get("user"),
                "deliveryType": raw.get("deliveryType"),
                "address": raw.get("address"),
                "offices": raw.get("offices"),
                "prioritySc": raw.get("prioritySc"),
            },
            additional_data={
                "wbStatus": status_row.get("wbStatus"),
                "convertedPrice": raw.get("convertedPrice"),
                "warehouseId": raw.get("warehouseId"),
                "supplyId": raw.get("supplyId"),
                "chrtId": raw.get("chrtId"),
                "nmId": raw.get("nmId"),
                "skus": skus,
                "article": raw.get("article"),
                "rid": raw.get("rid"),
                "orderUid": raw.get("orderUid"),
                "order_type": raw.get("deliveryType") or "fbs",
            },
            products=[OrderLineData(
                sku=raw.get("article"),
                barcode=skus[0] if skus else None,
                name=raw.get("article"),
                quantity=1,
                price=total,
            )],
        )

    async def _statuses(self, client: WildberriesClient, order_ids: List[int], chunk_size: int) -> Dict[str, Dict[str, Any]]:
        statuses: Dict[str, Dict[str, Any]] = {}
        for chunk in chunked(sorted(order_ids), chunk_size):
            for row in await client.get_order_statuses(list(chunk)):
                statuses[str(row.get("id"))] = row
        return statuses

    async def get_last_orders(self, credentials: UserCredentials) -> Dict[str, int]:
        settings = get_settings()
        client = self.client_from_credentials(credentials)
        since = datetime.now(timezone.utc) - timedelta(days=settings.ORDERS_LOOKBACK_DAYS)

        raw_orders = [order for order in await client.get_orders(since) if order.get("id")]
        statuses = await self._statuses(client, [int(order["id"]) for order in raw_orders], settings.NEW_ORDER_STATUS_CHUNK_SIZE)
        orders = [
            self._order_data(order, statuses[str(order["id"])])
            for order in raw_orders
            if str(order["id"]) in statuses
        ]
        counts = await self.orders.save_orders(credentials.user_id, self.marketplace, orders)
        await self.db.commit()
        return counts

    async def update_order_statuses(self, credentials: UserCredentials) -> int:
        client = self.client_from_credentials(credentials)
        open_orders = await self.orders.open_orders(credentials.user_id, self.marketplace)
        order_ids = [int(order.external_id) for order in open_orders if order.external_id.isdigit()]
        if not order_ids:
            return 0

        statuses = await self._statuses(client, order_ids, get_settings().ORDER_STATUS_CHUNK_SIZE)
        changed = await self.orders.apply_statuses(
            credentials.user_id,
            self.marketplace,
            {
                external_id: (row.get("supplierStatus"), row.get("wbStatus"))
                for external_id, row in statuses.items()
            },
        )
        await self.db.commit()
        return changed

    async def get_supplies(self, credentials: UserCredentials) -> int:
        """Mirror supplies from the last SUPPLY_MAX_AGE_DAYS together with their orders."""
        client = self.client_from_credentials(credentials)
        supplies = SupplyService(self.db)
        cutoff = datetime.now(timezone.utc) - timedelta(days=get_settings().SUPPLY_MAX_AGE_DAYS)
        saved = 0

        for raw in await client.get_supplies():
            created_at = parse_datetime(raw.get("createdAt"))
            if not raw.get("id") or (created_at and created_at < cutoff):
                continue

            raw_orders = [order for order in await client.get_supply_orders(raw["id"]) if order.get("id")]
            if raw_orders:
                statuses = await self._statuses(client, [int(order["id"]) for order in raw_orders], get_settings().ORDER_STATUS_CHUNK_SIZE)
                await self.orders.save_orders(
                    credentials.user_id,
                    self.marketplace,
                    [self._order_data(order, statuses.get(str(order["id"]), {})) for order in raw_orders],
                )

            await supplies.save_supply_with_orders(credentials.user_id, self.marketplace, SupplyData(
                external_id=str(raw["id"]),
                name=raw.get("name"),
                closed=bool(raw.get("done")),
                created_at=created_at,
                order_ids=[str(order["id"]) for order in raw_orders],
                data={"scanDt": raw.get("scanDt"), "cargoType": raw.get("cargoType")},
            ))
            saved += 1

        await self.db.commit()
        return saved

    async def open_supply(self, user_id: int) -> Optional[str]:
        integration = await self.integration_for_user(user_id)
        name = f"Supply {datetime.now(timezone.utc):%Y-%m-%d %H:%M}"
        return await self.client_for(integration).open_supply(name)

    async def close_supply(self, supply: Supply) -> bool:
        """Deliver a supply holding orders; an empty one is deleted instead."""
        if not supply.external_id:
            return True
        client = self.client_for(await self.integration_for_user(supply.user_id))
        if await client.get_supply_orders(supply.external_id):
            return await client.deliver_supply(supply.external_id)
        return await client.delete_supply(supply.external_id)

    async def add_order_to_supply(self, supply: Supply, order: Order) -> bool:
        if not supply.external_id:
            return True
        client = self.client_for(await self.integration_for_user(supply.user_id))
        return await client.add_order_to_supply(supply.external_id, int(order.external_id))

    async def cancel_order(self, order: Order, integration: Integration, reason: Optional[str] = None) -> bool:
        return await self.client_for(integration).cancel_order(int(order.external_id))

    async def change_order_status(self, order: Order, status: str, integration: Integration) -> bool:
        if status in (OrderStatus.CANCEL.value, OrderStatus.CANCELED.value, OrderStatus.CANCELLED.value):
            return await self.cancel_order(order, integration)
        raise BusinessError("Wildberries orders change status through supplies")

    async def export_product_images(self, images_data: Dict[str, List[str]], integration: Integration) -> int:
        client = self.client_for(integration)
        exported = 0
        for vendor_code, urls in images_data.items():
            if not urls:
                continue
            try:
                await client.media_save(vendor_code, urls)
                exported += 1
            except TokenRequiredError:
                raise
            except (BusinessError, MarketplaceAPIError) as e:
                await self.add_integration_log(integration, f"Images for {vendor_code} were not saved: {getattr(e, 'user_message', str(e))}")
        return exported

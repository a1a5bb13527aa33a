import logging
from typing import Any, Dict, List, Optional, Sequence

from marketsync.core.enums import ImportStatus
from marketsync.integrations.base import MarketplaceProvider
from marketsync.models.category import Category
from marketsync.models.import_task import ImportTask
from marketsync.models.integration import ExportInfo, Integration
from marketsync.models.order import Order, Supply
from marketsync.schemas.marketplace import (
    AttributeSchema,
    DictValue,
    ExportBatchResult,
    ExportInfoDTO,
    UserCredentials,
    WarehouseDTO,
)

logger = logging.getLogger(__name__)


class DefaultMarketplaceProvider(MarketplaceProvider):
    """
    Provider for unknown or empty marketplace keys.

    Every operation succeeds with a neutral result so callers never have to
    special-case a missing integration.
    """

    marketplace = ""

    async def get_category_attributes(self, category: Category) -> List[AttributeSchema]:
        return []

    async def get_dictionary_values(self, args: Dict[str, Any]) -> List[DictValue]:
        return []

    async def export_products(self, product_ids: Sequence[int], integration: Integration) -> ExportBatchResult:
        return ExportBatchResult()

    async def export_stat(self, export_info: ExportInfo) -> ExportInfoDTO:
        return ExportInfoDTO()

    async def products_status(self, product_ids: Sequence[int], integration: Integration) -> int:
        return 0

    async def products_unpublished(self, product_ids: Sequence[int], integration: Integration) -> int:
        return 0

    async def product_variations_unpublished(self, variation_ids: Sequence[int], integration: Integration) -> int:
        return 0

    async def products_update_prices_and_stocks(self, product_ids: Sequence[int], integration: Integration) -> int:
        return 0

    async def product_variations_update_prices_and_stocks(self, variation_ids: Sequence[int], integration: Integration) -> int:
        return 0

    async def products_update_prices(self, item_ids: Sequence[int], item_type: str, integration: Integration) -> int:
        return 0

    async def products_update_stocks(self, item_ids: Sequence[int], item_type: str, integration: Integration) -> int:
        return 0

    async def get_warehouses(self, integration: Integration) -> List[WarehouseDTO]:
        return []

    async def check_connection(self, integration: Integration) -> int:
        return 0

    async def import_products(self, integration: Integration) -> ImportTask:
        task = await self.create_import_task(integration)
        task.status = ImportStatus.SUCCESS.value
        await self.db.flush()
        return task

    async def import_marketplace_attributes(self) -> int:
        return 0

    async def get_last_orders(self, credentials: UserCredentials) -> Dict[str, int]:
        return {"created": 0, "updated": 0}

    async def open_supply(self, user_id: int) -> Optional[str]:
        return None

    async def close_supply(self, supply: Supply) -> bool:
        return True

    async def get_supplies(self, credentials: UserCredentials) -> int:
        return 0

    async def update_order_statuses(self, credentials: UserCredentials) -> int:
        return 0

    async def export_product_images(self, images_data: Dict[str, List[str]], integration: Integration) -> int:
        return 0

    async def cancel_order(self, order: Order, integration: Integration, reason: Optional[str] = None) -> bool:
        return True

    async def change_order_status(self, order: Order, status: str, integration: Integration) -> bool:
        return True

    async def add_order_to_supply(self, supply: Supply, order: Order) -> bool:
        return True

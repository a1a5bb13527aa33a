import logging
from typing import Any, Dict

from fastapi import APIRouter, Body, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from marketsync.core.enums import Marketplace
from marketsync.core.security import get_current_user
from marketsync.dependencies import get_db
from marketsync.models.integration import Integration
from marketsync.models.user import User
from marketsync.routes.api import batch_records, result_data
from marketsync.schemas.base import success_response
from marketsync.services.integration_service import IntegrationService
from marketsync.services.price_service import PriceService
from marketsync.services.reconciliation import PriceReconciler

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/prices", tags=["prices"])


async def ensure_price_list(db: AsyncSession, integration: Integration) -> int:
    if not integration.price_list_id:
        price_list = await PriceService(db).get_or_create_price_list(integration.user_id)
        integration.price_list_id = price_list.id
        await db.flush()
        logger.info(f"Bound price list {price_list.id} to integration {integration.id}")
    return integration.price_list_id


@router.post("")
async def store_prices(
    body: Dict[str, Any] = Body(...),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Batch price/stock update.

    Which of the two is written follows the api integration's import settings.
    Marketplaces are updated afterwards by a queued job.
    """
    records = batch_records(body, "products")
    integration = await IntegrationService(db).get_or_create(user.id, Marketplace.API.value)
    await ensure_price_list(db, integration)
    result = await PriceReconciler(db, user.id, integration=integration).reconcile(records)
    return success_response(result_data(result))

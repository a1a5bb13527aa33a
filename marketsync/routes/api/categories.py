from typing import Any, Dict

from fastapi import APIRouter, Body, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from marketsync.core.enums import Marketplace
from marketsync.core.security import get_current_user
from marketsync.dependencies import get_db
from marketsync.models.category import Category
from marketsync.models.user import User
from marketsync.routes.api import batch_records, result_data
from marketsync.schemas.base import success_response
from marketsync.services.integration_service import IntegrationService
from marketsync.services.reconciliation import CategoryReconciler, DeleteReconciler

router = APIRouter(prefix="/api/categories", tags=["categories"])


@router.post("")
async def store_categories(
    body: Dict[str, Any] = Body(...),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    records = batch_records(body, "categories")
    integration = await IntegrationService(db).get_or_create(user.id, Marketplace.API.value)
    result = await CategoryReconciler(db, user.id, integration=integration).reconcile(records)
    return success_response(result_data(result))


@router.delete("")
async def delete_categories(
    body: Dict[str, Any] = Body(...),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Delete categories; products and child categories are detached, not deleted."""
    records = batch_records(body, "categories")
    result = await DeleteReconciler(db, user.id, model=Category).reconcile(records)
    return success_response(result_data(result))

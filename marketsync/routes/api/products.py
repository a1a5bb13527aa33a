"""Inbound catalog API: product batches, deletes, external ids and status."""

import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Body, Depends, Query
from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from marketsync.core.enums import Marketplace
from marketsync.core.exceptions import BusinessError
from marketsync.core.security import get_current_user
from marketsync.dependencies import get_db
from marketsync.models.product import Product
from marketsync.models.user import User
from marketsync.routes.api import batch_records, result_data
from marketsync.schemas.base import success_response
from marketsync.schemas.product import ExternalIdPayload, ProductRead, ProductStatusPayload
from marketsync.services.catalog_service import CatalogService
from marketsync.services.integration_service import IntegrationService
from marketsync.services.reconciliation import DeleteReconciler, ProductReconciler, field_errors

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/products", tags=["products"])


@router.get("")
async def list_products(
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(
        select(Product).where(Product.user_id == user.id).order_by(Product.id).offset(offset).limit(limit)
    )
    products = [ProductRead.from_orm_model(product).model_dump() for product in result.scalars().all()]
    return success_response(products)


@router.post("")
async def store_products(
    body: Dict[str, Any] = Body(...),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Create or update a batch of products; rejected records come back in additionalInfo."""
    records = batch_records(body, "products")
    integration = await IntegrationService(db).get_or_create(user.id, Marketplace.API.value)
    reconciler = ProductReconciler(db, user.id, integration=integration, max_products=user.max_products)
    result = await reconciler.reconcile(records)
    return success_response(result_data(result))


@router.delete("")
async def delete_products(
    body: Dict[str, Any] = Body(...),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    records = batch_records(body, "products")
    result = await DeleteReconciler(db, user.id, model=Product).reconcile(records)
    return success_response(result_data(result))


@router.post("/sync")
async def sync_external_ids(
    body: Dict[str, Any] = Body(...),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Bind external ids to products created elsewhere (by product id)."""
    mapping: Dict[int, str] = {}
    errors: Dict[str, List[str]] = {}
    for index, raw in enumerate(batch_records(body, "products")):
        try:
            payload = ExternalIdPayload.model_validate(raw)
        except ValidationError as e:
            for field, messages in field_errors(e).items():
                errors[f"products.{index}.{field}"] = messages
            continue
        mapping[payload.product_id] = payload.external_id

    if errors:
        raise BusinessError("Some records are invalid", errors=errors)

    updated = await CatalogService(db).set_external_ids(user.id, mapping)
    await db.commit()
    return success_response({"updated": updated})


@router.post("/status")
async def change_status(
    payload: ProductStatusPayload,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Publish or unpublish products locally; marketplaces are updated by a queued job."""
    products = await CatalogService(db).change_status(user.id, payload.product_ids, payload.status.value)
    await db.commit()
    return success_response(
        [{"id": product.id, "status": product.status} for product in products],
        message=f"Status changed to {payload.status.value}",
    )

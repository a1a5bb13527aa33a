"""
Marketplace integration endpoints: settings, connection check, product
import/export and warehouses.

Long-running work (import, export) is queued for the sync worker; these
endpoints only validate and enqueue.
"""

import logging

from fastapi import APIRouter, Depends
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from marketsync.core.config import get_settings
from marketsync.core.enums import JobType, Marketplace
from marketsync.core.exceptions import BusinessError
from marketsync.core.security import get_current_user
from marketsync.dependencies import get_db
from marketsync.integrations.selector import get_provider
from marketsync.models.integration import Integration
from marketsync.models.user import User
from marketsync.schemas.base import success_response
from marketsync.schemas.settings import ExportRequest, IntegrationUpdate
from marketsync.services.catalog_service import CatalogService
from marketsync.services.integration_service import IntegrationService
from marketsync.services.job_queue import enqueue_job
from marketsync.services.reconciliation import field_errors
from marketsync.services.warehouse_service import WarehouseService
from marketsync.sync.orchestrator import dispatch_import

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/integrations", tags=["integrations"])


async def active_integration(db: AsyncSession, user: User, marketplace: Marketplace) -> Integration:
    integration = await IntegrationService(db).get_for_user(user.id, marketplace.value, active_only=True)
    if not integration:
        raise BusinessError(f"{marketplace.value.capitalize()} integration is not active")
    return integration


@router.put("/{marketplace}")
async def update_integration(
    marketplace: Marketplace,
    payload: IntegrationUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    service = IntegrationService(db)
    integration = await service.get_or_create(user.id, marketplace.value)
    try:
        await service.update_settings(integration, payload.settings)
    except ValidationError as e:
        raise BusinessError("Integration settings are invalid", errors=field_errors(e))
    if payload.status is not None:
        integration.status = payload.status.value
    await db.commit()
    return success_response({"id": integration.id, "type": integration.type, "status": integration.status})


@router.post("/{marketplace}/check")
async def check_connection(
    marketplace: Marketplace,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Returns the number of cards the marketplace reports for the account."""
    integration = await IntegrationService(db).get_for_user(user.id, marketplace.value)
    if not integration:
        raise BusinessError(f"{marketplace.value.capitalize()} integration is not configured")

    try:
        total = await get_provider(marketplace.value, db).check_connection(integration)
    except BusinessError:
        # keep the integration log written by the provider
        await db.commit()
        raise
    await db.commit()
    return success_response({"products_count": total}, message="Connection is OK")


@router.post("/{marketplace}/import")
async def import_products(
    marketplace: Marketplace,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    integration = await active_integration(db, user, marketplace)
    job = await dispatch_import(db, integration)
    return success_response({"job_id": job.id}, message="Product import queued")


@router.post("/{marketplace}/export")
async def export_products(
    marketplace: Marketplace,
    payload: ExportRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    integration = await active_integration(db, user, marketplace)
    if not IntegrationService.settings(integration).export.export_status:
        raise BusinessError("Product export is disabled in the integration settings")

    product_ids = sorted(set(payload.product_ids))
    found = await CatalogService(db).get_products(user.id, product_ids)
    if len(found) != len(product_ids):
        raise BusinessError("Some products are not available")

    job = await enqueue_job(
        db,
        job_type=JobType.EXPORT_PRODUCTS.value,
        marketplace=marketplace.value,
        user_id=user.id,
        payload={"integration_id": integration.id, "product_ids": product_ids},
    )
    jobs = {"export_job_id": job.id}

    if payload.with_images:
        images = await CatalogService(db).image_urls(user.id, product_ids)
        if images:
            # cards must exist before media can be attached
            images_job = await enqueue_job(
                db,
                job_type=JobType.EXPORT_IMAGES.value,
                marketplace=marketplace.value,
                user_id=user.id,
                payload={"integration_id": integration.id, "images": images},
                delay_seconds=get_settings().EXPORT_STATUS_DELAY,
            )
            jobs["images_job_id"] = images_job.id

    await db.commit()
    logger.info(f"Queued {marketplace.value} export of {len(product_ids)} products for user {user.id}")
    return success_response(jobs, message="Product export queued")


@router.get("/{marketplace}/warehouses")
async def list_warehouses(
    marketplace: Marketplace,
    refresh: bool = False,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    warehouses = WarehouseService(db)
    if refresh:
        integration = await active_integration(db, user, marketplace)
        await warehouses.sync(user.id, marketplace.value, await get_provider(marketplace.value, db).get_warehouses(integration))
        await db.commit()

    return success_response([
        {"id": warehouse.id, "external_id": warehouse.external_id, "name": warehouse.name}
        for warehouse in await warehouses.for_user(user.id, marketplace.value)
    ])

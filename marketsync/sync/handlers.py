"""
Job handlers run by the worker, keyed by JobType.

Fan-out handlers walk the credential list carried by the job one user at a
time. A failing user is rolled back and logged; the rest still run. Every
handler is safe to run twice for the same job.
"""

import logging
from typing import Any, Awaitable, Callable, Dict, List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from marketsync.core.config import get_settings
from marketsync.core.enums import ImportStatus, JobType, Marketplace, PublishStatus
from marketsync.core.exceptions import BusinessError, TokenRequiredError
from marketsync.integrations.base import MarketplaceProvider
from marketsync.integrations.selector import get_provider
from marketsync.models.integration import ExportInfo, Integration
from marketsync.models.sync_job import SyncJob
from marketsync.schemas.marketplace import UserCredentials
from marketsync.services.integration_service import IntegrationService
from marketsync.services.job_queue import enqueue_job
from marketsync.services.notification_service import NotificationService
from marketsync.services.warehouse_service import WarehouseService

logger = logging.getLogger(__name__)

REMOTE_MARKETPLACES = (Marketplace.WILDBERRIES.value, Marketplace.OZON.value)


async def for_each_user(
    db: AsyncSession,
    job: SyncJob,
    action: Callable[[MarketplaceProvider, UserCredentials], Awaitable[Any]],
) -> Dict[str, int]:
    # rollbacks expire the job row, so read it once up front
    job_type, marketplace = job.job_type, job.marketplace
    credential_list = list((job.payload or {}).get("credentials") or [])
    provider = get_provider(marketplace, db)
    processed = failed = 0

    for raw in credential_list:
        credentials = UserCredentials.model_validate(raw)
        try:
            await action(provider, credentials)
            processed += 1
        except TokenRequiredError as e:
            await db.rollback()
            failed += 1
            logger.critical(f"{job_type} ({marketplace}) user {credentials.user_id}: {e.user_message}")
        except Exception as e:
            await db.rollback()
            failed += 1
            logger.exception(f"{job_type} ({marketplace}) user {credentials.user_id} failed: {e}")

    logger.info(f"{job_type} ({marketplace}): {processed} users processed, {failed} failed")
    return {"processed": processed, "failed": failed}


async def sync_user_orders(db: AsyncSession, job: SyncJob) -> Dict[str, Any]:
    return await for_each_user(db, job, lambda provider, credentials: provider.get_last_orders(credentials))


async def sync_order_statuses(db: AsyncSession, job: SyncJob) -> Dict[str, Any]:
    return await for_each_user(db, job, lambda provider, credentials: provider.update_order_statuses(credentials))


async def sync_supplies(db: AsyncSession, job: SyncJob) -> Dict[str, Any]:
    return await for_each_user(db, job, lambda provider, credentials: provider.get_supplies(credentials))


async def sync_warehouses(db: AsyncSession, job: SyncJob) -> Dict[str, Any]:
    integrations = IntegrationService(db)
    warehouses = WarehouseService(db)

    async def action(provider: MarketplaceProvider, credentials: UserCredentials) -> None:
        integration = await integrations.get_for_user(credentials.user_id, provider.marketplace, active_only=True)
        if not integration:
            return
        await warehouses.sync(credentials.user_id, provider.marketplace, await provider.get_warehouses(integration))
        await db.commit()

    return await for_each_user(db, job, action)


async def sync_categories(db: AsyncSession, job: SyncJob) -> Dict[str, Any]:
    crawled = await get_provider(job.marketplace, db).import_marketplace_attributes()
    return {"categories": crawled}


async def _integration(db: AsyncSession, job: SyncJob) -> Integration:
    payload = job.payload or {}
    if payload.get("integration_id"):
        integration = await db.get(Integration, payload["integration_id"])
    else:
        integration = await IntegrationService(db).get_for_user(payload.get("user_id") or job.user_id, job.marketplace, active_only=True)
    if not integration:
        raise BusinessError(f"No active {job.marketplace} integration for job {job.id}")
    return integration


async def import_products(db: AsyncSession, job: SyncJob) -> Dict[str, Any]:
    integration = await _integration(db, job)
    provider = get_provider(integration.type, db)
    notifications = NotificationService(db)

    task = await provider.import_products(integration)
    if task.status == ImportStatus.ERROR.value:
        await notifications.alert_error(integration.user_id, "Product import failed", task.error_message or "")
        await db.commit()
        return {"task_id": task.id, "status": task.status}

    if task.status == ImportStatus.PROCESSING.value:
        result = await provider.save_imported_products(task.id)
        await notifications.notify(
            integration.user_id,
            "Product import finished",
            f"{result.created} created, {result.updated} updated, {len(result.additional_info)} rejected",
        )
        await db.commit()
        return {"task_id": task.id, "status": ImportStatus.SUCCESS.value, **result.model_dump(exclude={"additional_info"})}

    return {"task_id": task.id, "status": task.status}


async def export_products(db: AsyncSession, job: SyncJob) -> Dict[str, Any]:
    """Push products, then schedule a delayed status check since marketplaces moderate asynchronously."""
    integration = await _integration(db, job)
    product_ids = (job.payload or {}).get("product_ids") or []
    outcome = await get_provider(integration.type, db).export_products(product_ids, integration)

    if outcome.created or outcome.updated:
        await enqueue_job(
            db,
            job_type=JobType.PRODUCTS_STATUS.value,
            marketplace=integration.type,
            user_id=integration.user_id,
            payload={"integration_id": integration.id, "product_ids": product_ids},
            delay_seconds=get_settings().EXPORT_STATUS_DELAY,
        )
        await db.commit()
    return outcome.model_dump()


async def products_status(db: AsyncSession, job: SyncJob) -> Dict[str, Any]:
    integration = await _integration(db, job)
    provider = get_provider(integration.type, db)
    product_ids = (job.payload or {}).get("product_ids") or []

    result = await db.execute(
        select(ExportInfo).where(
            ExportInfo.integration_id == integration.id,
            ExportInfo.task_id.is_not(None),
            ExportInfo.result.is_(None),
        ).order_by(ExportInfo.id)
    )
    rejected = 0
    for export_info in result.scalars().all():
        stat = await provider.export_stat(export_info)
        rejected += len(stat.log)
    await db.commit()

    updated = await provider.products_status(product_ids, integration)
    pushed = await provider.products_update_prices_and_stocks(product_ids, integration)
    return {"updated": updated, "rejected": rejected, "pushed": pushed}


async def _each_integration(
    db: AsyncSession,
    user_id: int,
    action: Callable[[MarketplaceProvider, Integration], Awaitable[int]],
) -> Dict[str, int]:
    results: Dict[str, int] = {}
    targets = [
        (integration.id, integration.type)
        for integration in await IntegrationService(db).active_integrations(user_id=user_id)
        if integration.type in REMOTE_MARKETPLACES
    ]
    for integration_id, marketplace in targets:
        try:
            integration = await db.get(Integration, integration_id)
            results[marketplace] = await action(get_provider(marketplace, db), integration)
        except TokenRequiredError as e:
            await db.rollback()
            logger.critical(f"{marketplace} user {user_id}: {e.user_message}")
        except Exception as e:
            await db.rollback()
            logger.exception(f"{marketplace} propagation for user {user_id} failed: {e}")
    return results


async def product_status_changed(db: AsyncSession, job: SyncJob) -> Dict[str, Any]:
    """
    Propagate a local publish/unpublish to every marketplace.

    Unpublishing zeroes stock everywhere the products were exported;
    publishing pushes current prices and stocks where stock export is on.
    """
    payload = job.payload or {}
    product_ids: List[int] = payload.get("product_ids") or []

    async def action(provider: MarketplaceProvider, integration: Integration) -> int:
        if payload.get("status") == PublishStatus.UNPUBLISHED.value:
            return await provider.products_unpublished(product_ids, integration)
        if not IntegrationService.settings(integration).export.update_stocks:
            return 0
        return await provider.products_update_prices_and_stocks(product_ids, integration)

    return await _each_integration(db, payload.get("user_id") or job.user_id, action)


async def update_prices_stocks(db: AsyncSession, job: SyncJob) -> Dict[str, Any]:
    payload = job.payload or {}
    product_ids = payload.get("product_ids") or []
    return await _each_integration(
        db,
        payload.get("user_id") or job.user_id,
        lambda provider, integration: provider.products_update_prices_and_stocks(product_ids, integration),
    )


async def export_images(db: AsyncSession, job: SyncJob) -> Dict[str, Any]:
    integration = await _integration(db, job)
    images = (job.payload or {}).get("images") or {}
    exported = await get_provider(integration.type, db).export_product_images(images, integration)
    await db.commit()
    return {"exported": exported}


JOB_HANDLERS: Dict[str, Callable[[AsyncSession, SyncJob], Awaitable[Dict[str, Any]]]] = {
    JobType.SYNC_USER_ORDERS.value: sync_user_orders,
    JobType.SYNC_ORDER_STATUSES.value: sync_order_statuses,
    JobType.SYNC_SUPPLIES.value: sync_supplies,
    JobType.SYNC_WAREHOUSES.value: sync_warehouses,
    JobType.SYNC_CATEGORIES.value: sync_categories,
    JobType.IMPORT_PRODUCTS.value: import_products,
    JobType.EXPORT_PRODUCTS.value: export_products,
    JobType.PRODUCTS_STATUS.value: products_status,
    JobType.PRODUCT_STATUS_CHANGED.value: product_status_changed,
    JobType.UPDATE_PRICES_STOCKS.value: update_prices_stocks,
    JobType.EXPORT_IMAGES.value: export_images,
}

"""
Purpose: Scheduled fan-out of marketplace sync work.

Each tick collects the credentials of every user with an active integration
and enqueues a single job carrying the whole list. The job handler walks the
list sequentially, so one tick costs one queue message no matter how many
users there are.
"""

import logging
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from marketsync.core.enums import ImportStatus, JobStatus, JobType
from marketsync.core.exceptions import BusinessError
from marketsync.models.import_task import ImportTask
from marketsync.models.integration import Integration
from marketsync.models.sync_job import SyncJob
from marketsync.schemas.marketplace import UserCredentials
from marketsync.services.integration_service import IntegrationService
from marketsync.services.job_queue import enqueue_job

logger = logging.getLogger(__name__)

# jobs whose users must have order import switched on
ORDER_JOBS = (
    JobType.SYNC_USER_ORDERS.value,
    JobType.SYNC_ORDER_STATUSES.value,
    JobType.SYNC_SUPPLIES.value,
)


async def collect_credentials(db: AsyncSession, marketplace: str, orders_only: bool = True) -> List[UserCredentials]:
    """
    Credentials of every active integration for a marketplace.

    Only the fields the marketplace needs are extracted; integrations with
    incomplete credentials are skipped.

    Args:
        orders_only: Keep only integrations with order import switched on
    """
    service = IntegrationService(db)
    credentials = []
    for integration in await service.active_integrations(marketplace):
        settings = service.settings(integration)
        if orders_only and not settings.import_.orders.import_status:
            continue
        record = settings.credentials_for(integration.user_id, marketplace)
        if record is None:
            logger.debug(f"Integration {integration.id} ({marketplace}) has incomplete credentials, skipped")
            continue
        credentials.append(record)
    return credentials


async def dispatch_sync(db: AsyncSession, job_type: str, marketplace: str) -> Optional[SyncJob]:
    """
    Enqueue one job for all users of a marketplace.

    Returns:
        The queued job, or None when no user qualifies
    """
    credentials = await collect_credentials(db, marketplace, orders_only=job_type in ORDER_JOBS)
    if not credentials:
        logger.info(f"{job_type} ({marketplace}): no users to sync")
        return None

    job = await enqueue_job(
        db,
        job_type=job_type,
        marketplace=marketplace,
        payload={"credentials": [record.model_dump() for record in credentials]},
    )
    await db.commit()
    logger.info(f"Queued {job_type} ({marketplace}) job {job.id} for {len(credentials)} users")
    return job


async def dispatch_category_sync(db: AsyncSession, marketplace: str) -> SyncJob:
    job = await enqueue_job(db, job_type=JobType.SYNC_CATEGORIES.value, marketplace=marketplace, payload={})
    await db.commit()
    logger.info(f"Queued taxonomy crawl for {marketplace} (job {job.id})")
    return job


async def dispatch_import(db: AsyncSession, integration: Integration) -> SyncJob:
    """
    Raises:
        BusinessError: If an import for the user is still pending or running
    """
    running = await db.execute(
        select(func.count(ImportTask.id)).where(
            ImportTask.user_id == integration.user_id,
            ImportTask.status.in_([ImportStatus.PENDING.value, ImportStatus.PROCESSING.value]),
        )
    )
    queued = await db.execute(
        select(func.count(SyncJob.id)).where(
            SyncJob.user_id == integration.user_id,
            SyncJob.job_type == JobType.IMPORT_PRODUCTS.value,
            SyncJob.status.in_([JobStatus.QUEUED.value, JobStatus.IN_PROGRESS.value]),
        )
    )
    if (running.scalar() or 0) or (queued.scalar() or 0):
        raise BusinessError("A product import is already in progress")

    job = await enqueue_job(
        db,
        job_type=JobType.IMPORT_PRODUCTS.value,
        marketplace=integration.type,
        user_id=integration.user_id,
        payload={"integration_id": integration.id},
    )
    await db.commit()
    return job

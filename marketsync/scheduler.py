"""
Scheduled sync ticks.

Each tick only enqueues work (see marketsync.sync.orchestrator); the worker
does the marketplace calls. Disabled unless SYNC_SCHEDULE_ENABLED is set.
"""

import logging
from datetime import datetime
from typing import Optional

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from marketsync.core.config import get_settings
from marketsync.core.enums import JobType, Marketplace
from marketsync.database import async_session
from marketsync.sync.orchestrator import dispatch_category_sync, dispatch_sync

logger = logging.getLogger(__name__)

scheduler: Optional[AsyncIOScheduler] = None

ALL_MARKETPLACES = (Marketplace.WILDBERRIES.value, Marketplace.OZON.value)


async def sync_tick(job_type: str, marketplaces=ALL_MARKETPLACES):
    async with async_session() as db:
        for marketplace in marketplaces:
            try:
                await dispatch_sync(db, job_type, marketplace)
            except Exception as e:
                await db.rollback()
                logger.exception(f"Error dispatching {job_type} for {marketplace}: {e}")


async def categories_tick():
    async with async_session() as db:
        for marketplace in ALL_MARKETPLACES:
            try:
                await dispatch_category_sync(db, marketplace)
            except Exception as e:
                await db.rollback()
                logger.exception(f"Error dispatching category sync for {marketplace}: {e}")


def job_listener(event):
    if event.exception:
        logger.error(f"Job {event.job_id} crashed: {event.exception}")
    else:
        logger.info(f"Job {event.job_id} executed successfully at {datetime.now()}")


def create_scheduler() -> AsyncIOScheduler:
    global scheduler

    if scheduler is not None:
        return scheduler

    settings = get_settings()
    scheduler = AsyncIOScheduler()
    scheduler.add_listener(job_listener, EVENT_JOB_EXECUTED | EVENT_JOB_ERROR)

    if not settings.SYNC_SCHEDULE_ENABLED:
        logger.info("Scheduled sync is disabled. Set SYNC_SCHEDULE_ENABLED=true to enable")
        return scheduler

    ticks = [
        ("sync_user_orders", settings.USER_ORDERS_SCHEDULE, sync_tick, [JobType.SYNC_USER_ORDERS.value]),
        ("sync_order_statuses", settings.ORDER_STATUSES_SCHEDULE, sync_tick, [JobType.SYNC_ORDER_STATUSES.value]),
        ("sync_supplies", settings.SUPPLIES_SCHEDULE, sync_tick, [JobType.SYNC_SUPPLIES.value, (Marketplace.WILDBERRIES.value,)]),
        ("sync_warehouses", settings.WAREHOUSES_SCHEDULE, sync_tick, [JobType.SYNC_WAREHOUSES.value]),
        ("sync_categories", settings.CATEGORIES_SCHEDULE, categories_tick, []),
    ]
    for job_id, crontab, func, args in ticks:
        scheduler.add_job(
            func,
            CronTrigger.from_crontab(crontab),
            args=args,
            id=job_id,
            name=job_id.replace("_", " ").capitalize(),
            replace_existing=True,
            max_instances=1,
            misfire_grace_time=600,
        )
        logger.info(f"Scheduled {job_id} with schedule: {crontab}")

    return scheduler


async def start_scheduler():
    global scheduler

    if scheduler is None:
        scheduler = create_scheduler()

    if not scheduler.running:
        scheduler.start()
        logger.info(f"Scheduler started with {len(scheduler.get_jobs())} jobs")


async def stop_scheduler():
    global scheduler

    if scheduler and scheduler.running:
        scheduler.shutdown(wait=True)
        logger.info("Scheduler stopped successfully")


async def get_scheduler_status():
    """Get current scheduler status and job information"""
    global scheduler

    if scheduler is None:
        return {"status": "not_initialized", "jobs": []}

    jobs_info = []
    for job in scheduler.get_jobs():
        jobs_info.append({
            "id": job.id,
            "name": job.name,
            "next_run": job.next_run_time.isoformat() if job.next_run_time else None,
            "trigger": str(job.trigger)
        })

    return {
        "status": "running" if scheduler.running else "stopped",
        "jobs": jobs_info
    }

# marketsync/cli/sync.py
"""
Manual triggers for the scheduled sync ticks, plus the queue worker.

    marketsync-sync sync-user-orders wildberries
    marketsync-sync sync-categories ozon
    marketsync-sync worker --once
"""
import asyncio
import sys

import click

from marketsync.core.enums import JobType, Marketplace
from marketsync.core.logging_config import configure_logging
from marketsync.database import async_session
from marketsync.sync.orchestrator import dispatch_category_sync, dispatch_sync
from marketsync.sync.worker import run_worker

MARKETPLACES = click.Choice([Marketplace.WILDBERRIES.value, Marketplace.OZON.value], case_sensitive=False)


def _dispatch(job_type: str, marketplace: str):
    async def _run():
        async with async_session() as session:
            return await dispatch_sync(session, job_type, marketplace.lower())

    job = asyncio.run(_run())
    if job is None:
        click.echo(f"No {marketplace} users to sync, nothing queued")
    else:
        click.echo(f"Queued {job_type} job {job.id} for {marketplace}")


@click.group()
def cli():
    """Marketplace sync commands"""
    configure_logging()


@cli.command("sync-user-orders")
@click.argument("marketplace", type=MARKETPLACES)
def sync_user_orders(marketplace):
    """Pull new orders for every user with order import on"""
    _dispatch(JobType.SYNC_USER_ORDERS.value, marketplace)


@cli.command("sync-orders-statuses")
@click.argument("marketplace", type=MARKETPLACES)
def sync_orders_statuses(marketplace):
    """Refresh statuses of open orders"""
    _dispatch(JobType.SYNC_ORDER_STATUSES.value, marketplace)


@cli.command("sync-supplies")
@click.argument("marketplace", type=MARKETPLACES, default=Marketplace.WILDBERRIES.value)
def sync_supplies(marketplace):
    _dispatch(JobType.SYNC_SUPPLIES.value, marketplace)


@cli.command("sync-warehouses")
@click.argument("marketplace", type=MARKETPLACES)
def sync_warehouses(marketplace):
    _dispatch(JobType.SYNC_WAREHOUSES.value, marketplace)


@cli.command("sync-categories")
@click.argument("marketplace", type=MARKETPLACES)
def sync_categories(marketplace):
    """Crawl the marketplace category tree and attributes"""
    async def _run():
        async with async_session() as session:
            return await dispatch_category_sync(session, marketplace.lower())

    job = asyncio.run(_run())
    click.echo(f"Queued category sync job {job.id} for {marketplace}")


@cli.command("worker")
@click.option("--poll-interval", type=float, default=None, help="Seconds to wait when the queue is empty")
@click.option("--once", is_flag=True, help="Process at most one job and exit")
def worker(poll_interval, once):
    """Run the sync job worker"""
    asyncio.run(run_worker(poll_interval=poll_interval, once=once))


def worker_main():
    """Entry point for marketsync-worker"""
    cli.main(args=["worker"] + sys.argv[1:], prog_name="marketsync-worker")


if __name__ == "__main__":
    cli()

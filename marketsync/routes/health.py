from fastapi import APIRouter
from sqlalchemy import text

from marketsync.database import async_session
from marketsync.scheduler import get_scheduler_status
from marketsync.services.job_queue import peek_queue_count

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check():
    """Basic health check"""
    return {"status": "healthy", "service": "marketsync"}


@router.get("/health/db")
async def database_health():
    """Check database connectivity and the sync queue backlog"""
    try:
        async with async_session() as session:
            await session.execute(text("SELECT 1"))
            queued = await peek_queue_count(session)
        return {
            "status": "healthy",
            "database": "connected",
            "queued_jobs": queued,
        }
    except Exception as e:
        return {
            "status": "unhealthy",
            "database": "error",
            "error": str(e)
        }


@router.get("/health/scheduler")
async def scheduler_health():
    return await get_scheduler_status()

"""
FastAPI dependencies: database sessions and the shared pipeline scheduler
"""

from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from core.database import async_session_maker
from pipeline.factory import build_pipeline
from pipeline.scheduler import PipelineScheduler

_scheduler: Optional[PipelineScheduler] = None


async def get_db() -> AsyncSession:
    """Get database session"""
    async with async_session_maker() as session:
        yield session


def get_scheduler() -> PipelineScheduler:
    """Process-wide scheduler, built from settings on first use"""
    global _scheduler
    if _scheduler is None:
        _scheduler = build_pipeline(async_session_maker)
    return _scheduler

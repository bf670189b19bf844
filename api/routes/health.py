"""
Health check endpoint with database and pipeline status
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import text
from api.dependencies import get_db, get_scheduler
from schemas.api import HealthCheckResponse, overall_status
from models import Archive, FileEntry
from models.base import ArchiveStatus, FileStatus
from pipeline.scheduler import PipelineScheduler
from datetime import datetime
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthCheckResponse)
async def health_check(
    db: AsyncSession = Depends(get_db),
    scheduler: PipelineScheduler = Depends(get_scheduler)
):
    """
    Health check endpoint.
    
    Returns:
    - Database connectivity status
    - Archive and file counts per status
    - Whether the pipeline scheduler is ticking
    """
    db_connected = False
    
    try:
        await db.execute(text("SELECT 1"))
        db_connected = True
    except Exception as e:
        logger.error(f"Database connection failed: {str(e)}")
    
    archives_by_status = {}
    files_by_status = {}
    
    if db_connected:
        try:
            archives_by_status = await scheduler.repository.status_counts(Archive)
            files_by_status = await scheduler.repository.status_counts(FileEntry)
        except Exception as e:
            logger.error(f"Failed to count pipeline rows: {str(e)}")
    
    failed_archives = sum(
        count for status, count in archives_by_status.items() if ArchiveStatus(status).is_failure
    )
    failed_files = sum(
        count for status, count in files_by_status.items() if FileStatus(status).is_failure
    )
    
    return HealthCheckResponse(
        status=overall_status(db_connected, failed_archives, failed_files),
        timestamp=datetime.utcnow(),
        database_connected=db_connected,
        pipeline_running=scheduler.is_running(),
        archives_by_status=archives_by_status,
        files_by_status=files_by_status,
        failed_archives=failed_archives,
        failed_files=failed_files
    )

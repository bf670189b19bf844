"""
Read endpoints over archives, extracted files and media records, plus the
remote folder sync
"""

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from api.dependencies import get_db, get_scheduler
from schemas.api import (
    ArchiveResponse,
    ArchiveListResponse,
    FileEntryResponse,
    FileEntryListResponse,
    MediaRecordResponse,
    MediaRecordListResponse,
    PaginationMetadata,
    SyncResponse,
)
from models import Archive, FileEntry, MediaRecord
from models.base import ArchiveStatus, FileKind, FileStatus
from core.config import settings
from core.exceptions import TransportError
from pipeline.remote import register_remote_archives
from pipeline.scheduler import PipelineScheduler
from typing import Optional
import math
import uuid
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Archives"])


async def _paginate(db: AsyncSession, query, page: int, page_size: int):
    """Run `query` for one page and build its pagination metadata."""
    total_items = (await db.execute(
        select(func.count()).select_from(query.order_by(None).subquery())
    )).scalar()
    rows = (await db.execute(query.offset((page - 1) * page_size).limit(page_size))).scalars().all()
    
    total_pages = math.ceil(total_items / page_size) if total_items else 0
    pagination = PaginationMetadata(
        total_items=total_items,
        total_pages=total_pages,
        current_page=page,
        page_size=page_size,
        has_next=page < total_pages,
        has_previous=page > 1
    )
    return rows, pagination


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", f"req_{uuid.uuid4().hex[:12]}")


@router.get("/archives", response_model=ArchiveListResponse)
async def list_archives(
    request: Request,
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(50, ge=1, le=1000, description="Items per page"),
    status: Optional[ArchiveStatus] = Query(None, description="Filter by status"),
    db: AsyncSession = Depends(get_db)
):
    """List archives, oldest first."""
    logger.info(f"[{_request_id(request)}] GET /archives - page={page}, status={status}")
    
    query = select(Archive).order_by(Archive.id)
    if status:
        query = query.where(Archive.status == status)
    
    rows, pagination = await _paginate(db, query, page, page_size)
    return ArchiveListResponse(
        items=[ArchiveResponse.model_validate(row) for row in rows],
        pagination=pagination
    )


@router.get("/archives/{archive_id}", response_model=ArchiveResponse)
async def get_archive(archive_id: int, db: AsyncSession = Depends(get_db)):
    archive = await db.get(Archive, archive_id)
    if archive is None:
        raise HTTPException(status_code=404, detail=f"Archive {archive_id} not found")
    return ArchiveResponse.model_validate(archive)


@router.get("/archives/{archive_id}/files", response_model=FileEntryListResponse)
async def list_archive_files(
    request: Request,
    archive_id: int,
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(50, ge=1, le=1000, description="Items per page"),
    status: Optional[FileStatus] = Query(None, description="Filter by status"),
    kind: Optional[FileKind] = Query(None, description="Filter by kind"),
    db: AsyncSession = Depends(get_db)
):
    """List the files extracted from one archive."""
    if await db.get(Archive, archive_id) is None:
        raise HTTPException(status_code=404, detail=f"Archive {archive_id} not found")
    return await list_files(request, page, page_size, status, kind, archive_id, db)


@router.get("/files", response_model=FileEntryListResponse)
async def list_files(
    request: Request,
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(50, ge=1, le=1000, description="Items per page"),
    status: Optional[FileStatus] = Query(None, description="Filter by status"),
    kind: Optional[FileKind] = Query(None, description="Filter by kind"),
    archive_id: Optional[int] = Query(None, description="Filter by archive"),
    db: AsyncSession = Depends(get_db)
):
    """List extracted files with optional filters."""
    logger.info(
        f"[{_request_id(request)}] GET /files - page={page}, "
        f"filters: status={status}, kind={kind}, archive_id={archive_id}"
    )
    
    query = select(FileEntry).order_by(FileEntry.id)
    filters_applied = {}
    
    if status:
        query = query.where(FileEntry.status == status)
        filters_applied["status"] = status.value
    if kind:
        query = query.where(FileEntry.kind == kind)
        filters_applied["kind"] = kind.value
    if archive_id is not None:
        query = query.where(FileEntry.archive_id == archive_id)
        filters_applied["archive_id"] = archive_id
    
    rows, pagination = await _paginate(db, query, page, page_size)
    return FileEntryListResponse(
        items=[FileEntryResponse.model_validate(row) for row in rows],
        pagination=pagination,
        filters_applied=filters_applied
    )


@router.get("/media-records", response_model=MediaRecordListResponse)
async def list_media_records(
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(50, ge=1, le=1000, description="Items per page"),
    db: AsyncSession = Depends(get_db)
):
    """List filed media pairs, most recent first."""
    query = select(MediaRecord).order_by(MediaRecord.id.desc())
    rows, pagination = await _paginate(db, query, page, page_size)
    return MediaRecordListResponse(
        items=[MediaRecordResponse.model_validate(row) for row in rows],
        pagination=pagination
    )


@router.post("/archives/sync", response_model=SyncResponse)
async def sync_archives(
    request: Request,
    folder_id: Optional[str] = Query(None, description="Remote folder, defaults to TAKEOUT_FOLDER_ID"),
    scheduler: PipelineScheduler = Depends(get_scheduler)
):
    """Register a New archive for every file in the remote Takeout folder."""
    folder_id = folder_id or settings.TAKEOUT_FOLDER_ID
    if not folder_id:
        raise HTTPException(status_code=400, detail="No folder_id given and TAKEOUT_FOLDER_ID is not set")
    
    remote = scheduler.processors.remote
    if remote is None:
        raise HTTPException(status_code=503, detail="No remote storage configured")
    
    logger.info(f"[{_request_id(request)}] POST /archives/sync - folder_id={folder_id}")
    try:
        created = await register_remote_archives(remote, scheduler.repository, folder_id)
    except TransportError as e:
        logger.error(f"Remote sync failed: {e}")
        raise HTTPException(status_code=502, detail=e.message)
    
    return SyncResponse(
        folder_id=folder_id,
        registered=len(created),
        archives=[ArchiveResponse.model_validate(archive) for archive in created]
    )

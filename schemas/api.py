"""
Pydantic schemas for API request/response models
"""

from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from datetime import datetime
from models.base import ArchiveStatus, FileKind, FileStatus


# ============================================================================
# Health Check Schemas
# ============================================================================

class HealthCheckResponse(BaseModel):
    """Health check response model"""
    status: str = Field(..., description="Overall system status: healthy, degraded, unhealthy")
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    database_connected: bool
    pipeline_running: bool = False
    archives_by_status: Dict[str, int] = Field(default_factory=dict)
    files_by_status: Dict[str, int] = Field(default_factory=dict)
    failed_archives: int = 0
    failed_files: int = 0

    class Config:
        json_schema_extra = {
            "example": {
                "status": "degraded",
                "timestamp": "2024-01-15T10:30:00Z",
                "database_connected": True,
                "pipeline_running": True,
                "archives_by_status": {"ProcessedZip": 3, "ExtractionFailed": 1},
                "files_by_status": {"Processed": 1420, "NoPair": 12},
                "failed_archives": 1,
                "failed_files": 0
            }
        }


def overall_status(database_connected: bool, failed_archives: int, failed_files: int) -> str:
    """unhealthy without a database, degraded with any failed row, healthy otherwise"""
    if not database_connected:
        return "unhealthy"
    if failed_archives or failed_files:
        return "degraded"
    return "healthy"


# ============================================================================
# Entity Schemas
# ============================================================================

class ArchiveResponse(BaseModel):
    """Response model for one archive"""
    id: int
    external_id: str
    display_name: str
    local_staging_path: str
    status: ArchiveStatus
    status_reason: Optional[str] = None
    status_label: str
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
        use_enum_values = True


class FileEntryResponse(BaseModel):
    """Response model for one extracted file"""
    id: int
    archive_id: int
    name: str
    path: str
    kind: FileKind
    pairing_key: str
    status: FileStatus
    status_reason: Optional[str] = None
    status_label: str
    related_entry_id: Optional[int] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
        use_enum_values = True


class MediaRecordResponse(BaseModel):
    """Response model for one filed media pair"""
    id: int
    media_entry_id: int
    file_name: str
    final_path: str
    raw_metadata: Dict[str, Any]
    created_at: datetime

    class Config:
        from_attributes = True


class PaginationMetadata(BaseModel):
    """Pagination metadata"""
    total_items: int
    total_pages: int
    current_page: int
    page_size: int
    has_next: bool
    has_previous: bool


class ArchiveListResponse(BaseModel):
    items: List[ArchiveResponse]
    pagination: PaginationMetadata


class FileEntryListResponse(BaseModel):
    items: List[FileEntryResponse]
    pagination: PaginationMetadata
    filters_applied: Dict[str, Any] = Field(default_factory=dict)


class MediaRecordListResponse(BaseModel):
    items: List[MediaRecordResponse]
    pagination: PaginationMetadata


class SyncResponse(BaseModel):
    """Result of registering the remote folder's archives"""
    folder_id: str
    registered: int
    archives: List[ArchiveResponse] = Field(default_factory=list)


# ============================================================================
# Pipeline Control Schemas
# ============================================================================

class StageState(BaseModel):
    stage: str
    limit: int
    in_flight: int


class PipelineStateResponse(BaseModel):
    """Scheduler state"""
    running: bool
    tick_interval_ms: int
    max_downloaded_archives: int
    units_in_flight: int
    stages: List[StageState]


class StageLimitRequest(BaseModel):
    limit: int = Field(..., ge=0, description="Maximum concurrent units for the stage")


class ProgressItem(BaseModel):
    key: str
    stage_label: str
    fraction: float = Field(..., ge=0, le=1)
    updated_at: datetime


class ProgressResponse(BaseModel):
    items: List[ProgressItem]


# ============================================================================
# Error Response Schema
# ============================================================================

class ErrorResponse(BaseModel):
    """Standard error response"""
    error: str
    detail: Optional[str] = None
    timestamp: datetime = Field(default_factory=datetime.utcnow)

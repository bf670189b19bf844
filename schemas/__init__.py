"""
Pydantic schemas for data validation and serialization.

Schemas:
    sidecar: Takeout metadata sidecar payload (capture time)
    remote: Remote storage listing items
    api: API endpoint request/response schemas

Usage:
    from schemas.sidecar import SidecarMetadata
    from schemas.remote import RemoteItem
    from schemas.api import ArchiveResponse, PipelineStateResponse

Example:
    metadata = SidecarMetadata.model_validate_json(
        '{"photoTakenTime": {"timestamp": "1000000000"}}'
    )
    assert metadata.capture_time().year == 2001
"""

__all__ = [
    "SidecarMetadata",
    "TakeoutTimestamp",
    "RemoteItem",
    "ArchiveResponse",
    "FileEntryResponse",
    "MediaRecordResponse",
    "HealthCheckResponse",
    "PipelineStateResponse",
    "ProgressResponse",
]

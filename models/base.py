from sqlalchemy import JSON
from sqlalchemy.orm import declarative_base
from sqlalchemy.dialects.postgresql import JSONB
import enum

Base = declarative_base()

# JSONB on PostgreSQL, plain JSON everywhere else (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


# ============================================================================
# ENUMS
# ============================================================================

class ArchiveStatus(str, enum.Enum):
    """Lifecycle of one remote compressed export"""
    NEW = "New"
    DOWNLOADING = "Downloading"
    DOWNLOADED = "Downloaded"
    DOWNLOAD_FAILED = "DownloadFailed"
    EXAMINING_ZIP = "ExaminingZip"
    PROCESSED_ZIP = "ProcessedZip"
    EXTRACTION_FAILED = "ExtractionFailed"

    @property
    def is_failure(self) -> bool:
        return self in ARCHIVE_FAILURE_STATUSES


class FileStatus(str, enum.Enum):
    """Lifecycle of one file unpacked from an archive"""
    UNASSOCIATED = "Unassociated"
    ASSOCIATED = "Associated"
    PROCESSING = "Processing"
    PROCESSED = "Processed"
    NO_DATE = "NoDate"
    NO_PAIR = "NoPair"
    FAILED = "Failed"

    @property
    def is_failure(self) -> bool:
        return self is FileStatus.FAILED


class FileKind(str, enum.Enum):
    """Role of an extracted file"""
    MEDIA = "Media"
    SIDECAR = "Sidecar"

    @property
    def opposite(self) -> "FileKind":
        return FileKind.SIDECAR if self is FileKind.MEDIA else FileKind.MEDIA


ARCHIVE_FAILURE_STATUSES = frozenset({
    ArchiveStatus.DOWNLOAD_FAILED,
    ArchiveStatus.EXTRACTION_FAILED,
})


class StatusMixin:
    """
    Status column pair shared by archives and file entries.

    Failure statuses carry their diagnostic in `status_reason`; every other
    status leaves it empty.
    """

    @property
    def status_label(self) -> str:
        if self.status_reason:
            return f"{self.status.value}: {self.status_reason}"
        return self.status.value

"""
SQLAlchemy ORM models for database tables.

Models:
    base: Base declarative class and shared enums (ArchiveStatus, FileStatus, FileKind)
    archive: One remote compressed export and its download/extraction state
    file_entry: One file unpacked from an archive, media or sidecar
    media_record: Durable output row for a filed media/sidecar pair

Usage:
    from models import Archive, FileEntry, MediaRecord
    from models.base import ArchiveStatus, FileStatus, FileKind

Example:
    archive = Archive(
        external_id="1AbC",
        display_name="takeout-001.tgz",
        status=ArchiveStatus.NEW,
    )
    session.add(archive)
    await session.commit()

Relationships:
    - Archive → FileEntry (one-to-many, cascade)
    - FileEntry ↔ FileEntry (peer link between a media file and its sidecar)
    - FileEntry → MediaRecord (one-to-one for filed media)
"""

from models.base import Base, ArchiveStatus, FileStatus, FileKind
from models.archive import Archive
from models.file_entry import FileEntry
from models.media_record import MediaRecord

__all__ = [
    "Base",
    "ArchiveStatus",
    "FileStatus",
    "FileKind",
    "Archive",
    "FileEntry",
    "MediaRecord",
]

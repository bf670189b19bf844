from sqlalchemy import Column, Integer, String, Enum, DateTime, Text, Index
from sqlalchemy.orm import relationship
from datetime import datetime
from models.base import Base, ArchiveStatus, StatusMixin


class Archive(StatusMixin, Base):
    """
    One compressed export listed in remote storage.
    
    Purpose:
    - Drives the download and extraction stages through `status`
    - Audit trail: rows are never deleted, only the staged file is
    
    Design:
    - external_id is the remote file id; registration is idempotent on it
    - local_staging_path is empty until downloaded and cleared again once
      extraction finishes (successfully or not)
    """
    __tablename__ = "archives"
    
    id = Column(Integer, primary_key=True, autoincrement=True)
    external_id = Column(String(255), nullable=False, unique=True)
    display_name = Column(String(500), nullable=False)
    local_staging_path = Column(String(1024), nullable=False, default="")
    
    status = Column(Enum(ArchiveStatus), nullable=False, default=ArchiveStatus.NEW, index=True)
    status_reason = Column(Text, nullable=True)
    
    # Timestamps
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)
    
    # Relationships
    file_entries = relationship(
        "FileEntry",
        back_populates="archive",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    
    __table_args__ = (
        Index("idx_archive_status_created", "status", "created_at"),
    )
    
    def __repr__(self) -> str:
        return f"<Archive id={self.id} name={self.display_name!r} status={self.status_label}>"

from sqlalchemy import Column, Integer, String, Enum, DateTime, Text, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import relationship
from datetime import datetime
from models.base import Base, FileKind, FileStatus, StatusMixin


class FileEntry(StatusMixin, Base):
    """
    One regular file unpacked from an Archive.
    
    Design Decisions:
    - related_entry_id is a peer reference to the opposite-kind entry, not
      ownership; both sides are written independently and readers verify
      that the link points back before trusting it
    - pairing_key is derived from the name at creation time so the pair
      lookup is a single indexed query
    - path is rewritten in place when the file is moved to its final folder
    """
    __tablename__ = "file_entries"
    
    id = Column(Integer, primary_key=True, autoincrement=True)
    archive_id = Column(Integer, ForeignKey("archives.id", ondelete="CASCADE"), nullable=False, index=True)
    
    name = Column(String(500), nullable=False)
    path = Column(String(2048), nullable=False)
    kind = Column(Enum(FileKind), nullable=False)
    pairing_key = Column(String(500), nullable=False)
    
    status = Column(Enum(FileStatus), nullable=False, default=FileStatus.UNASSOCIATED, index=True)
    status_reason = Column(Text, nullable=True)
    
    related_entry_id = Column(Integer, ForeignKey("file_entries.id", ondelete="SET NULL"), nullable=True)
    
    # Timestamps
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)
    
    # Relationships
    archive = relationship("Archive", back_populates="file_entries")
    
    __table_args__ = (
        UniqueConstraint("archive_id", "path", name="uq_file_entry_archive_path"),
        Index("idx_file_entry_pairing", "archive_id", "kind", "pairing_key"),
        Index("idx_file_entry_kind_status", "kind", "status"),
    )
    
    def __repr__(self) -> str:
        return f"<FileEntry id={self.id} name={self.name!r} kind={self.kind.value} status={self.status_label}>"

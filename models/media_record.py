from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from datetime import datetime
from models.base import Base, JSONType


class MediaRecord(Base):
    """
    Durable artifact for a fully processed media/sidecar pair.
    
    Created once, after both files reached their final folder; never
    updated afterwards. media_entry_id is unique so a repeated filing of
    the same pair cannot produce a second record.
    """
    __tablename__ = "media_records"
    
    id = Column(Integer, primary_key=True, autoincrement=True)
    media_entry_id = Column(Integer, ForeignKey("file_entries.id"), nullable=False, unique=True)
    
    file_name = Column(String(500), nullable=False)
    final_path = Column(String(2048), nullable=False)
    raw_metadata = Column(JSONType, nullable=False)  # parsed sidecar payload
    
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    
    def __repr__(self) -> str:
        return f"<MediaRecord id={self.id} file_name={self.file_name!r}>"

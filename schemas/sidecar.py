"""
Pydantic schemas for Google Takeout metadata sidecars
"""

from pydantic import BaseModel, Field
from typing import Optional, Union
from datetime import datetime, timezone


class TakeoutTimestamp(BaseModel):
    """Epoch-seconds timestamp as written by Takeout ("1000000000")"""
    timestamp: Union[str, int]
    formatted: Optional[str] = None
    
    def to_datetime(self) -> Optional[datetime]:
        """Convert to an aware UTC datetime, None if the value is not an integer"""
        try:
            seconds = int(str(self.timestamp).strip())
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (ValueError, OverflowError, OSError):
            return None


class SidecarMetadata(BaseModel):
    """
    Fields of a `<media>.json` sidecar that the pipeline reads.
    
    The full payload is stored untouched on the MediaRecord; only the
    capture time is interpreted here.
    """
    title: Optional[str] = None
    photo_taken_time: Optional[TakeoutTimestamp] = Field(None, alias="photoTakenTime")
    creation_time: Optional[TakeoutTimestamp] = Field(None, alias="creationTime")
    
    class Config:
        populate_by_name = True
        extra = "ignore"
    
    def capture_time(self) -> Optional[datetime]:
        """Capture time in UTC, None when the sidecar does not carry one"""
        if self.photo_taken_time is None:
            return None
        return self.photo_taken_time.to_datetime()

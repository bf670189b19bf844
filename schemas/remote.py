"""
Pydantic schemas for remote storage listings
"""

from pydantic import BaseModel, Field

FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"


class RemoteItem(BaseModel):
    """One entry of a remote folder listing"""
    id: str = Field(..., min_length=1)
    name: str
    is_folder: bool = False
    
    @classmethod
    def from_drive_file(cls, payload: dict) -> "RemoteItem":
        """Build from a Drive v3 `files` resource"""
        return cls(
            id=payload["id"],
            name=payload.get("name", ""),
            is_folder=payload.get("mimeType") == FOLDER_MIME_TYPE,
        )

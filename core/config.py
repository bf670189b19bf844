"""
Application configuration using Pydantic Settings
"""

from pathlib import Path
from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """Application settings with environment variable support"""
    
    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./data/takeout.db"
    
    # API
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000
    
    # Environment
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"
    
    # Filesystem layout
    STAGING_DIR: Path = Path("data/staging")      # downloaded archives
    EXTRACT_DIR: Path = Path("data/extracted")    # unpacked archive entries
    ARCHIVE_ROOT: Path = Path("data/archive")     # final year/month/day tree
    REMOVE_ARCHIVES_AFTER_EXTRACTION: bool = True
    
    # Remote storage (Google Drive v3)
    TAKEOUT_FOLDER_ID: Optional[str] = None
    DRIVE_API_URL: str = "https://www.googleapis.com/drive/v3"
    DRIVE_ACCESS_TOKEN: Optional[str] = None
    HTTP_TIMEOUT: float = 60.0
    
    # Pipeline scheduling
    DOWNLOAD_LIMIT: int = 5
    EXAMINE_LIMIT: int = 5
    MEDIA_PROCESS_LIMIT: int = 10
    SIDECAR_PROCESS_LIMIT: int = 10
    MAX_DOWNLOADED_ARCHIVES: int = 10
    TICK_INTERVAL_MS: int = 100
    AUTOSTART_PIPELINE: bool = False
    
    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"


settings = Settings()

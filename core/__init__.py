"""
Core utilities and configuration for the takeout pipeline.

This package provides foundational components used throughout the pipeline:

Modules:
    config: Application configuration and environment variable management
    database: Async engine and session factory construction
    exceptions: Custom exception hierarchy for error handling
    logging: Logging configuration and utilities

Usage:
    from core.config import settings
    from core.database import build_engine, build_session_maker
    from core.exceptions import TransportError, ArchiveFormatError
    from core.logging import setup_logging

Example:
    # Initialize logging
    setup_logging()

    # Get database session
    async with async_session_maker() as session:
        # Perform database operations
        pass
"""

__all__ = [
    "settings",
    "build_engine",
    "build_session_maker",
    "setup_logging",
    # Exceptions
    "TakeoutError",
    "TransportError",
    "AuthenticationError",
    "RemoteNotFoundError",
    "ArchiveFormatError",
    "StorageIOError",
    "AssociationInconsistency",
    "MetadataError",
    "short_diagnostic",
]

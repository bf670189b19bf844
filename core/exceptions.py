"""
Custom exceptions for the takeout pipeline with structured error context.

Every error raised inside a unit of work is caught at the unit boundary,
rendered with `short_diagnostic()` and written into the owning entity's
failure status. Exceptions never reach the scheduler loop.

Exception Hierarchy:
    TakeoutError (base)
    ├── TransportError
    │   ├── AuthenticationError
    │   └── RemoteNotFoundError
    ├── ArchiveFormatError
    ├── StorageIOError
    ├── AssociationInconsistency
    └── MetadataError

Not every unhappy outcome is an exception: a media file without a capture
date (NoDate) or a sidecar without its media (NoPair) are valid parked
states and are expressed through status values only.
"""

from typing import Optional, Dict, Any
from datetime import datetime

MAX_DIAGNOSTIC_LENGTH = 500


class TakeoutError(Exception):
    """
    Base exception for all pipeline errors.

    Attributes:
        message: Human-readable error message
        context: Additional context information (archive id, path, etc.)
        original_exception: The original exception that was caught (if any)
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None
    ):
        self.message = message
        self.context = context or {}
        self.original_exception = original_exception
        self.timestamp = datetime.utcnow()

        # Add timestamp to context
        self.context["error_timestamp"] = self.timestamp.isoformat()

        # Chain original exception if provided
        super().__init__(message)
        if original_exception:
            self.__cause__ = original_exception

    def __str__(self) -> str:
        """Format error message with context."""
        base_msg = f"{self.__class__.__name__}: {self.message}"

        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            base_msg += f" | Context: {context_str}"

        if self.original_exception:
            base_msg += f" | Caused by: {type(self.original_exception).__name__}: {str(self.original_exception)}"

        return base_msg

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/storage."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "original_error": str(self.original_exception) if self.original_exception else None
        }


# ============================================================================
# Remote Transport Errors
# ============================================================================

class TransportError(TakeoutError):
    """
    Raised when listing or downloading from remote storage fails.

    Context should include:
        - url: The endpoint that failed
        - status_code: HTTP status code (if applicable)
        - file_id: Remote file identifier (if applicable)
    """
    pass


class AuthenticationError(TransportError):
    """Remote storage rejected the access token (HTTP 401, 403)."""
    pass


class RemoteNotFoundError(TransportError):
    """Remote file or folder does not exist (HTTP 404)."""
    pass


# ============================================================================
# Archive and Filesystem Errors
# ============================================================================

class ArchiveFormatError(TakeoutError):
    """
    Raised when an archive is corrupt, unsupported, or contains an unsafe entry.

    Context should include:
        - archive_path: Path to the staged archive
        - entry_name: Name of the offending entry (if applicable)
    """
    pass


class StorageIOError(TakeoutError):
    """
    Raised when a filesystem operation fails (write, rename, delete).

    Context should include:
        - path: The path being operated on
        - operation: write / move / remove / read
    """
    pass


# ============================================================================
# Association and Metadata Errors
# ============================================================================

class AssociationInconsistency(TakeoutError):
    """
    A pairing link points one way only, or at an entry that is not the pair.

    Readers log this and re-derive the pair from the pairing key; it only
    escapes a unit of work when the key lookup cannot repair the link.

    Context should include:
        - entry_id: Entry holding the stale link
        - related_entry_id: Target of the stale link
    """
    pass


class MetadataError(TakeoutError):
    """
    Raised when a sidecar payload cannot be parsed.

    Context should include:
        - path: Path to the sidecar file
    """
    pass


def short_diagnostic(exc: BaseException) -> str:
    """Render an exception as the short reason stored in a failure status."""
    if isinstance(exc, TakeoutError):
        text = f"{type(exc).__name__}: {exc.message}"
        if exc.original_exception:
            text += f" ({type(exc.original_exception).__name__}: {exc.original_exception})"
    else:
        text = f"{type(exc).__name__}: {exc}"
    if len(text) > MAX_DIAGNOSTIC_LENGTH:
        text = text[:MAX_DIAGNOSTIC_LENGTH - 3] + "..."
    return text

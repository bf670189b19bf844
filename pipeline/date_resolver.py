"""
Capture date resolution.

Precedence:
1. Capture time embedded in the media bytes (EXIF)
2. `photoTakenTime.timestamp` of the paired sidecar
3. No date

EXIF times carry no zone and are taken as UTC, the same zone Takeout writes
its epoch timestamps in.
"""

from typing import Any, Dict, Optional, Protocol
from datetime import datetime, timezone
from pathlib import Path
import asyncio
import json
import exifread
from pydantic import ValidationError
from core.exceptions import MetadataError, StorageIOError
from models import FileEntry
from schemas.sidecar import SidecarMetadata
import logging

logger = logging.getLogger(__name__)

EXIF_DATE_TAGS = (
    "EXIF DateTimeOriginal",
    "EXIF DateTimeDigitized",
    "Image DateTime",
)
EXIF_DATE_FORMAT = "%Y:%m:%d %H:%M:%S"


class MetadataReader(Protocol):
    """Capability that extracts an embedded capture time from a media file"""

    async def try_get_capture_date(self, path: Path) -> Optional[datetime]:
        ...


def parse_exif_datetime(value: Any) -> Optional[datetime]:
    """`"2001:09:09 01:46:40"` -> aware UTC datetime, None for blank or zeroed values"""
    try:
        parsed = datetime.strptime(str(value).strip(), EXIF_DATE_FORMAT)
    except ValueError:
        return None
    return parsed.replace(tzinfo=timezone.utc)


class ExifMetadataReader:
    """MetadataReader backed by exifread; reads run in a worker thread."""

    async def try_get_capture_date(self, path: Path) -> Optional[datetime]:
        return await asyncio.to_thread(self._read_capture_date, Path(path))

    def _read_capture_date(self, path: Path) -> Optional[datetime]:
        try:
            with open(path, "rb") as handle:
                tags = exifread.process_file(handle, details=False)
        except Exception as e:
            # exifread raises a variety of errors on non-image input
            logger.debug(f"EXIF read failed for {path}: {e}")
            return None

        for tag in EXIF_DATE_TAGS:
            if tag in tags:
                parsed = parse_exif_datetime(tags[tag])
                if parsed is not None:
                    return parsed

        return None


async def load_sidecar_payload(path: Path) -> Dict[str, Any]:
    """
    Read and parse a sidecar file.

    Raises:
        StorageIOError: The file cannot be read
        MetadataError: The file is not a JSON object
    """
    try:
        text = await asyncio.to_thread(Path(path).read_text, encoding="utf-8")
    except OSError as e:
        raise StorageIOError(
            "Reading sidecar failed",
            context={"path": str(path), "operation": "read"},
            original_exception=e
        )

    try:
        payload = json.loads(text)
    except ValueError as e:
        raise MetadataError("Sidecar is not valid JSON", context={"path": str(path)}, original_exception=e)

    if not isinstance(payload, dict):
        raise MetadataError("Sidecar is not a JSON object", context={"path": str(path)})
    return payload


def parse_sidecar(payload: Dict[str, Any], path: Optional[Path] = None) -> SidecarMetadata:
    try:
        return SidecarMetadata.model_validate(payload)
    except ValidationError as e:
        raise MetadataError(
            "Sidecar has an unexpected shape",
            context={"path": str(path) if path else None},
            original_exception=e
        )


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class DateResolver:
    """Decides the capture date of a media file."""

    def __init__(self, metadata_reader: Optional[MetadataReader] = None):
        self.metadata_reader = metadata_reader or ExifMetadataReader()

    async def resolve(self, media: FileEntry, sidecar: Optional[FileEntry] = None) -> Optional[datetime]:
        """
        Capture date of `media` in UTC, or None when nothing provides one.

        The sidecar is only read when the media carries no embedded date.

        Raises:
            MetadataError: The sidecar had to be read and is malformed
            StorageIOError: The sidecar had to be read and is unreadable
        """
        embedded = await self.metadata_reader.try_get_capture_date(Path(media.path))
        if embedded is not None:
            return _as_utc(embedded)

        if sidecar is None:
            return None

        metadata = parse_sidecar(await load_sidecar_payload(Path(sidecar.path)), Path(sidecar.path))
        captured = metadata.capture_time()
        if captured is None:
            logger.debug(f"Sidecar {sidecar.name} carries no photoTakenTime")
        return captured

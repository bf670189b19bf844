"""
Relocation of dated files into the archive tree and MediaRecord creation.

Layout: `<archive root>/<year>/<full English month name>/<day>/<file name>`,
e.g. `2001/September/9/a.jpg`. A name already taken in the target folder
gets a ` (n)` suffix before its extension.
"""

from typing import Any, Dict, Optional, Tuple
from datetime import datetime
from pathlib import Path
import asyncio
import calendar
import shutil
from core.exceptions import StorageIOError
from models import FileEntry, MediaRecord
from models.base import FileStatus
from pipeline.date_resolver import load_sidecar_payload
from pipeline.repository import Repository
import logging

logger = logging.getLogger(__name__)


def target_folder(root: Path, when: datetime) -> Path:
    return Path(root) / str(when.year) / calendar.month_name[when.month] / str(when.day)


def unique_destination(folder: Path, name: str) -> Path:
    """First free `name`, `stem (1).ext`, `stem (2).ext`, ... in `folder`"""
    candidate = folder / name
    counter = 1
    while candidate.exists():
        path = Path(name)
        candidate = folder / f"{path.stem} ({counter}){path.suffix}"
        counter += 1
    return candidate


def _move_into(source: Path, folder: Path, name: str) -> Path:
    folder.mkdir(parents=True, exist_ok=True)
    if source.parent == folder and source.name == name:
        return source
    destination = unique_destination(folder, name)
    shutil.move(str(source), str(destination))
    return destination


class Filer:
    """
    Moves processed files to their final folder.

    Each filing ends with the terminal transition Processing -> Processed of
    the moved entry, carrying its new path.
    """

    def __init__(self, repository: Repository, archive_root: Path):
        self.repository = repository
        self.archive_root = Path(archive_root)
        # Free-name lookup and move must not interleave between units
        self._move_lock = asyncio.Lock()

    async def file_pair(
        self,
        media: FileEntry,
        sidecar: Optional[FileEntry],
        when: datetime
    ) -> Tuple[FileEntry, Optional[FileEntry], Optional[MediaRecord]]:
        """
        File a claimed media entry and, when given, its claimed sidecar.

        Both entries must be in Processing. The sidecar payload is parsed
        before anything moves, so a malformed sidecar leaves both files in
        place.

        Returns:
            (media, sidecar, media record), the last two None without a sidecar
        """
        payload = await load_sidecar_payload(Path(sidecar.path)) if sidecar is not None else None
        folder = target_folder(self.archive_root, when)

        destination = await self._move(Path(media.path), folder, media.name)
        media = await self._mark_processed(media, destination)

        if sidecar is None:
            logger.info(f"Filed {media.name} into {folder}")
            return media, None, None

        sidecar = await self._file_sidecar_next_to(media, sidecar)
        record = await self._create_record(media, payload)
        logger.info(f"Filed {media.name} with its sidecar into {folder}")
        return media, sidecar, record

    async def file_sidecar(self, media: FileEntry, sidecar: FileEntry) -> Tuple[FileEntry, MediaRecord]:
        """
        File a claimed sidecar whose media is already Processed.

        The sidecar moves next to the media's final path.
        """
        payload = await load_sidecar_payload(Path(sidecar.path))
        sidecar = await self._file_sidecar_next_to(media, sidecar)
        record = await self._create_record(media, payload)
        logger.info(f"Filed sidecar {sidecar.name} next to {media.path}")
        return sidecar, record

    async def _file_sidecar_next_to(self, media: FileEntry, sidecar: FileEntry) -> FileEntry:
        destination = await self._move(Path(sidecar.path), Path(media.path).parent, sidecar.name)
        return await self._mark_processed(sidecar, destination)

    async def _mark_processed(self, entry: FileEntry, destination: Path) -> FileEntry:
        updated = await self.repository.transition(
            FileEntry, entry.id, FileStatus.PROCESSING, FileStatus.PROCESSED, path=str(destination)
        )
        if updated is None:
            # Moved on disk but the row left Processing under us; keep the path in sync
            logger.warning(f"{entry.name} was not in Processing when filed")
            updated = await self.repository.update_fields(FileEntry, entry.id, path=str(destination))
        return updated

    async def _create_record(self, media: FileEntry, payload: Dict[str, Any]) -> MediaRecord:
        record, created = await self.repository.insert_media_record_once(MediaRecord(
            media_entry_id=media.id,
            file_name=media.name,
            final_path=media.path,
            raw_metadata=payload,
        ))
        if not created:
            logger.info(f"Media record for {media.name} already exists")
        return record

    async def _move(self, source: Path, folder: Path, name: str) -> Path:
        try:
            async with self._move_lock:
                return await asyncio.to_thread(_move_into, source, folder, name)
        except OSError as e:
            raise StorageIOError(
                "Moving file into the archive failed",
                context={"path": str(source), "target": str(folder), "operation": "move"},
                original_exception=e
            )

"""
Archive extraction into FileEntry rows.

Two passes over the staged archive:
1. Count regular entries (directories, links and devices are skipped)
2. Re-open, write each regular entry below the extraction directory and
   register one FileEntry, reporting progress after every entry

Tarballs are read in stream mode ("r|*"), so gzip, bzip2 and xz archives
are never fully decompressed in memory or seeked. Zip archives are read
through zipfile.

Blocking reads and writes run in worker threads; the entry iterator is
advanced one step per thread hop and never concurrently.
"""

from typing import IO, Callable, Iterator, Set, Tuple
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
import asyncio
import gzip
import lzma
import shutil
import tarfile
import zipfile
import zlib
from core.exceptions import ArchiveFormatError, StorageIOError
from models import Archive, FileEntry
from models.base import FileStatus
from pipeline.pairing import kind_for_name, scoped_pairing_key
from pipeline.progress import ProgressSink, clamp_fraction, discard_progress
from pipeline.repository import Repository
import logging

logger = logging.getLogger(__name__)

COPY_BUFFER_SIZE = 1024 * 1024

# What the decompressors raise on corrupt or truncated input
FORMAT_ERRORS = (
    tarfile.TarError, zipfile.BadZipFile, gzip.BadGzipFile, EOFError, zlib.error, lzma.LZMAError
)


@dataclass
class ArchiveMember:
    """One regular entry of an archive; `open` is only valid until the iterator advances"""
    name: str
    open: Callable[[], IO[bytes]]


def iter_regular_members(path: Path) -> Iterator[ArchiveMember]:
    """Yield the regular entries of a zip or tar archive in stored order."""
    if zipfile.is_zipfile(path):
        with zipfile.ZipFile(path) as archive:
            for info in archive.infolist():
                if info.is_dir():
                    continue
                yield ArchiveMember(info.filename, lambda info=info: archive.open(info))
        return

    with tarfile.open(path, mode="r|*") as archive:
        for member in archive:
            if not member.isreg():
                continue
            yield ArchiveMember(member.name, lambda member=member: archive.extractfile(member))


def _entry_parts(entry_name: str) -> Tuple[str, ...]:
    return PurePosixPath(entry_name.replace("\\", "/")).parts


def count_regular_members(path: Path) -> int:
    """Number of distinct entry paths; a path stored twice is one file once extracted"""
    return len({_entry_parts(member.name) for member in iter_regular_members(path)})


def safe_destination(root: Path, entry_name: str) -> Path:
    """
    Destination of an entry below `root`.

    Raises:
        ArchiveFormatError: For absolute names or names escaping `root`
    """
    relative = PurePosixPath(entry_name.replace("\\", "/"))
    if relative.is_absolute() or ".." in relative.parts or not relative.parts:
        raise ArchiveFormatError(
            "Archive entry has an unsafe path",
            context={"entry_name": entry_name}
        )
    return root.joinpath(*relative.parts)


def _write_member(member: ArchiveMember, destination: Path) -> None:
    destination.parent.mkdir(parents=True, exist_ok=True)
    source = member.open()
    if source is None:
        raise ArchiveFormatError("Archive entry has no data", context={"entry_name": member.name})
    with source, open(destination, "wb") as target:
        shutil.copyfileobj(source, target, COPY_BUFFER_SIZE)


class ArchiveExtractor:
    """
    Unpack staged archives and register their files.

    Args:
        repository: Persistence gateway
        extract_root: Base directory; each archive gets `archive-<id>/` below it
            so that equally named album folders of different parts never collide
        progress: Sink receiving (display name, "extracting", count / total)
        remove_staged: Delete the staged archive after a successful extraction
    """

    def __init__(
        self,
        repository: Repository,
        extract_root: Path,
        progress: ProgressSink = discard_progress,
        remove_staged: bool = True
    ):
        self.repository = repository
        self.extract_root = Path(extract_root)
        self.progress = progress
        self.remove_staged = remove_staged

    def target_dir(self, archive: Archive) -> Path:
        return self.extract_root / f"archive-{archive.id}"

    async def extract(self, archive: Archive) -> int:
        """
        Extract a claimed (ExaminingZip) archive.

        FileEntries created before a failure stay in place; a later run over
        the same archive reuses rows whose (archive, path) already exists.

        Returns:
            Number of distinct regular entry paths in the archive

        Raises:
            ArchiveFormatError: Corrupt or unsupported archive, unsafe entry
            StorageIOError: Reading the staged file or writing an entry failed
        """
        staged = Path(archive.local_staging_path)
        target_dir = self.target_dir(archive)

        total = await self._guarded(count_regular_members, staged)
        logger.info(f"Extracting {total} entries from {archive.display_name}")

        count = 0
        seen: Set[Path] = set()
        members = iter_regular_members(staged)
        try:
            while True:
                member = await self._guarded(next, members, None)
                if member is None:
                    break

                destination = safe_destination(target_dir, member.name)
                await self._guarded(_write_member, member, destination)
                if destination in seen:
                    # A later copy of the same path replaces the file; the row stays
                    logger.info(f"{member.name} stored more than once in {archive.display_name}")
                    continue
                seen.add(destination)
                await self._register(archive, member.name, destination)

                count += 1
                self.progress(archive.display_name, "extracting", clamp_fraction(count / total) if total else 0.0)
        finally:
            await asyncio.to_thread(members.close)

        if total == 0:
            self.progress(archive.display_name, "extracting", 0.0)

        if self.remove_staged:
            await self._guarded(staged.unlink)

        logger.info(f"Extracted {count} files from {archive.display_name} into {target_dir}")
        return total

    async def _register(self, archive: Archive, entry_name: str, destination: Path) -> FileEntry:
        existing = await self.repository.find_entry_by_path(archive.id, str(destination))
        if existing is not None:
            return existing

        kind = kind_for_name(destination.name)
        entry = FileEntry(
            archive_id=archive.id,
            name=destination.name,
            path=str(destination),
            kind=kind,
            pairing_key=scoped_pairing_key(entry_name, kind),
            status=FileStatus.UNASSOCIATED,
        )
        return await self.repository.insert(entry)

    async def _guarded(self, func, *args):
        """Run blocking archive I/O in a thread, translating its errors."""
        try:
            return await asyncio.to_thread(func, *args)
        except FORMAT_ERRORS as e:
            raise ArchiveFormatError(
                "Archive is corrupt or unsupported",
                context={"operation": getattr(func, "__name__", str(func))},
                original_exception=e
            )
        except OSError as e:
            raise StorageIOError(
                "Archive file operation failed",
                context={"operation": getattr(func, "__name__", str(func)), "path": getattr(e, "filename", None)},
                original_exception=e
            )

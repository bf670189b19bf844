"""
Units of work, one per pipeline stage.

Each unit receives an entity already claimed by the scheduler (in its
in-flight status) and ends with exactly one terminal status write for it.
Exceptions escape to the scheduler, which records them through
record_failure().

Writes to an entity the unit did not claim are conditional transitions, so
a unit never overwrites a status some other unit has moved on.
"""

from typing import Optional
from pathlib import Path
from core.exceptions import short_diagnostic
from models import Archive, FileEntry
from models.base import ArchiveStatus, FileStatus
from pipeline.associator import Associator
from pipeline.date_resolver import DateResolver
from pipeline.downloader import download_archive
from pipeline.extractor import ArchiveExtractor
from pipeline.filer import Filer
from pipeline.progress import ProgressSink, discard_progress
from pipeline.remote import RemoteStorage
from pipeline.repository import Repository
import enum
import logging

logger = logging.getLogger(__name__)


class Stage(str, enum.Enum):
    """Pipeline stage, each with its own concurrency limit"""
    DOWNLOAD = "download"
    EXAMINE = "examine"
    MEDIA_PROCESS = "media_process"
    SIDECAR_PROCESS = "sidecar_process"


# Media waiting for a (better) pair; a sidecar arrival makes them eligible again
MEDIA_WAITING_STATUSES = (
    FileStatus.UNASSOCIATED,
    FileStatus.ASSOCIATED,
    FileStatus.NO_DATE,
    FileStatus.NO_PAIR,
)

# Sidecars a media unit may take along
SIDECAR_CLAIMABLE_STATUSES = (
    FileStatus.UNASSOCIATED,
    FileStatus.ASSOCIATED,
    FileStatus.NO_PAIR,
)

MEDIA_FAILED_REASON = "media file already failed"


class StageProcessors:
    """The four units of work, sharing one set of collaborators."""

    def __init__(
        self,
        repository: Repository,
        remote: Optional[RemoteStorage],
        extractor: ArchiveExtractor,
        associator: Associator,
        resolver: DateResolver,
        filer: Filer,
        staging_dir: Path,
        progress: ProgressSink = discard_progress
    ):
        self.repository = repository
        self.remote = remote
        self.extractor = extractor
        self.associator = associator
        self.resolver = resolver
        self.filer = filer
        self.staging_dir = Path(staging_dir)
        self.progress = progress

    # ========================================================================
    # Archives
    # ========================================================================

    async def download(self, archive: Archive) -> Optional[Archive]:
        """Downloading -> Downloaded with the staged file path."""
        if self.remote is None:
            raise RuntimeError("No remote storage configured")

        staged = await download_archive(archive, self.remote, self.staging_dir, self.progress)
        return await self._finish(
            Archive, archive, ArchiveStatus.DOWNLOADING, ArchiveStatus.DOWNLOADED,
            local_staging_path=str(staged)
        )

    async def examine(self, archive: Archive) -> Optional[Archive]:
        """ExaminingZip -> ProcessedZip once every entry is registered."""
        await self.extractor.extract(archive)
        return await self._finish(
            Archive, archive, ArchiveStatus.EXAMINING_ZIP, ArchiveStatus.PROCESSED_ZIP,
            local_staging_path=""
        )

    # ========================================================================
    # File entries
    # ========================================================================

    async def process_media(self, media: FileEntry) -> Optional[FileEntry]:
        """
        Pair, date and file a claimed media entry.

        Outcomes:
        - date found: media (and a sidecar it could claim) Processed
        - no date, sidecar exists: NoDate, the sidecar goes back to Associated
        - no date, no sidecar: NoPair
        - media filed but the sidecar move failed: sidecar back to Unassociated
        """
        self.progress(media.name, "pairing", 0.1)
        sidecar = await self.associator.find_pair(media)
        claimed_sidecar = None

        if sidecar is not None:
            media, sidecar = await self.associator.associate(media, sidecar)
            claimed_sidecar = await self.repository.transition(
                FileEntry, sidecar.id, SIDECAR_CLAIMABLE_STATUSES, FileStatus.PROCESSING
            )
            if claimed_sidecar is not None:
                sidecar = claimed_sidecar

        try:
            self.progress(media.name, "resolving date", 0.3)
            when = await self.resolver.resolve(media, sidecar)

            if when is None:
                if claimed_sidecar is not None:
                    await self.repository.transition(
                        FileEntry, claimed_sidecar.id, FileStatus.PROCESSING, FileStatus.ASSOCIATED
                    )
                outcome = FileStatus.NO_DATE if sidecar is not None else FileStatus.NO_PAIR
                result = await self._finish(FileEntry, media, FileStatus.PROCESSING, outcome)
            else:
                self.progress(media.name, "filing", 0.6)
                result, _, _ = await self.filer.file_pair(media, claimed_sidecar, when)
        except Exception as exc:
            if claimed_sidecar is None:
                raise
            filed = await self.repository.get(FileEntry, media.id)
            if filed is None or filed.status is not FileStatus.PROCESSED:
                await self.repository.transition(
                    FileEntry, claimed_sidecar.id, FileStatus.PROCESSING, FileStatus.FAILED,
                    reason=f"paired media failed: {short_diagnostic(exc)}"
                )
                raise
            # Media is already in its folder; the sidecar stage files the sidecar next to it
            logger.warning(
                f"Filing sidecar {claimed_sidecar.name} with {media.name} failed, "
                f"releasing it: {short_diagnostic(exc)}"
            )
            await self._release(claimed_sidecar)
            result = filed

        self.progress(media.name, result.status.value if result else "done", 1.0)
        return result

    async def process_sidecar(self, sidecar: FileEntry) -> Optional[FileEntry]:
        """
        Route a claimed sidecar according to its media's status.

        - no media: NoPair
        - media waiting: media made eligible again, sidecar parked Associated
        - media Processing: sidecar back to Unassociated for a later tick
        - media Processed: sidecar filed next to it, MediaRecord created
        - media Failed: sidecar Failed
        """
        media = await self.associator.find_pair(sidecar)
        if media is None:
            result = await self._finish(FileEntry, sidecar, FileStatus.PROCESSING, FileStatus.NO_PAIR)
            self.progress(sidecar.name, "no pair", 1.0)
            return result

        media, sidecar = await self.associator.associate(media, sidecar)

        if media.status in MEDIA_WAITING_STATUSES:
            woken = await self.repository.transition(
                FileEntry, media.id, MEDIA_WAITING_STATUSES, FileStatus.ASSOCIATED
            )
            if woken is None:
                # Media was claimed in between; look again later
                result = await self._release(sidecar)
            else:
                result = await self._finish(FileEntry, sidecar, FileStatus.PROCESSING, FileStatus.ASSOCIATED)
        elif media.status is FileStatus.PROCESSING:
            result = await self._release(sidecar)
        elif media.status is FileStatus.PROCESSED:
            result, _ = await self.filer.file_sidecar(media, sidecar)
        else:
            result = await self._finish(
                FileEntry, sidecar, FileStatus.PROCESSING, FileStatus.FAILED, reason=MEDIA_FAILED_REASON
            )

        self.progress(sidecar.name, result.status.value if result else "done", 1.0)
        return result

    # ========================================================================
    # Failure recording
    # ========================================================================

    async def record_failure(self, stage: Stage, entity, exc: BaseException):
        """Write the failure status for a unit that raised."""
        reason = short_diagnostic(exc)

        if stage is Stage.DOWNLOAD:
            result = await self.repository.transition(
                Archive, entity.id, ArchiveStatus.DOWNLOADING, ArchiveStatus.DOWNLOAD_FAILED,
                reason=reason, local_staging_path=""
            )
        elif stage is Stage.EXAMINE:
            if entity.local_staging_path:
                logger.warning(f"Staged file of failed archive {entity.display_name} kept at {entity.local_staging_path}")
            result = await self.repository.transition(
                Archive, entity.id, ArchiveStatus.EXAMINING_ZIP, ArchiveStatus.EXTRACTION_FAILED,
                reason=reason, local_staging_path=""
            )
        else:
            result = await self.repository.transition(
                FileEntry, entity.id, FileStatus.PROCESSING, FileStatus.FAILED, reason=reason
            )

        key = entity.display_name if isinstance(entity, Archive) else entity.name
        self.progress(key, "failed", 1.0)
        return result

    # ========================================================================
    # Helpers
    # ========================================================================

    async def _release(self, sidecar: FileEntry) -> Optional[FileEntry]:
        return await self._finish(FileEntry, sidecar, FileStatus.PROCESSING, FileStatus.UNASSOCIATED)

    async def _finish(self, entity_cls, entity, from_status, to_status, reason: Optional[str] = None, **values):
        result = await self.repository.transition(entity_cls, entity.id, from_status, to_status, reason=reason, **values)
        if result is None:
            logger.warning(f"{entity_cls.__name__} {entity.id} left {from_status.value} before reaching {to_status.value}")
        return result

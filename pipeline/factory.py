"""
Wiring of the pipeline from settings.
"""

from typing import Dict, Optional
from pathlib import Path
from sqlalchemy.ext.asyncio import async_sessionmaker
from core.config import Settings, settings as default_settings
from pipeline.associator import Associator
from pipeline.date_resolver import DateResolver, MetadataReader
from pipeline.extractor import ArchiveExtractor
from pipeline.filer import Filer
from pipeline.processors import Stage, StageProcessors
from pipeline.progress import ProgressBoard, ProgressSink
from pipeline.remote import DriveStorage, RemoteStorage
from pipeline.repository import Repository
from pipeline.scheduler import PipelineScheduler


def build_pipeline(
    session_maker: async_sessionmaker,
    config: Optional[Settings] = None,
    remote: Optional[RemoteStorage] = None,
    metadata_reader: Optional[MetadataReader] = None,
    progress: Optional[ProgressSink] = None,
    limits: Optional[Dict[Stage, int]] = None
) -> PipelineScheduler:
    """
    Build a scheduler with all of its collaborators.

    Without an explicit remote, a Drive client is created from the config.
    The default progress sink is a ProgressBoard, reachable as
    `scheduler.progress`.
    """
    config = config or default_settings
    progress = progress if progress is not None else ProgressBoard()
    repository = Repository(session_maker)

    if remote is None:
        remote = DriveStorage(
            access_token=config.DRIVE_ACCESS_TOKEN,
            base_url=config.DRIVE_API_URL,
            timeout=config.HTTP_TIMEOUT,
        )

    processors = StageProcessors(
        repository=repository,
        remote=remote,
        extractor=ArchiveExtractor(
            repository,
            Path(config.EXTRACT_DIR),
            progress=progress,
            remove_staged=config.REMOVE_ARCHIVES_AFTER_EXTRACTION,
        ),
        associator=Associator(repository),
        resolver=DateResolver(metadata_reader),
        filer=Filer(repository, Path(config.ARCHIVE_ROOT)),
        staging_dir=Path(config.STAGING_DIR),
        progress=progress,
    )

    stage_limits = {
        Stage.DOWNLOAD: config.DOWNLOAD_LIMIT,
        Stage.EXAMINE: config.EXAMINE_LIMIT,
        Stage.MEDIA_PROCESS: config.MEDIA_PROCESS_LIMIT,
        Stage.SIDECAR_PROCESS: config.SIDECAR_PROCESS_LIMIT,
        **(limits or {}),
    }
    return PipelineScheduler(
        repository,
        processors,
        limits=stage_limits,
        tick_interval_ms=config.TICK_INTERVAL_MS,
        max_downloaded_archives=config.MAX_DOWNLOADED_ARCHIVES,
    )

"""
Bounded-concurrency scheduler driving the pipeline.

A single APScheduler interval job ticks every TICK_INTERVAL_MS. Each tick
tries one claim per stage that has spare budget; a successful claim spawns
an asyncio task for the unit of work, which releases the budget when it
finishes. Budgets only gate new claims; exclusivity comes from the
conditional update behind every claim.
"""

from typing import Awaitable, Callable, Dict, Optional, Set
from sqlalchemy import select
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
import asyncio
from core.config import settings
from core.exceptions import short_diagnostic
from models import Archive, FileEntry
from models.base import ArchiveStatus, FileKind, FileStatus
from pipeline.processors import Stage, StageProcessors
from pipeline.repository import Repository
import logging

logger = logging.getLogger(__name__)

TICK_JOB_ID = "pipeline_tick"

# Archives holding or about to hold a staged file count against MAX_DOWNLOADED_ARCHIVES
DOWNLOAD_CAP_STATUSES = (
    ArchiveStatus.DOWNLOADING,
    ArchiveStatus.DOWNLOADED,
    ArchiveStatus.EXAMINING_ZIP,
)


def default_stage_limits() -> Dict[Stage, int]:
    return {
        Stage.DOWNLOAD: settings.DOWNLOAD_LIMIT,
        Stage.EXAMINE: settings.EXAMINE_LIMIT,
        Stage.MEDIA_PROCESS: settings.MEDIA_PROCESS_LIMIT,
        Stage.SIDECAR_PROCESS: settings.SIDECAR_PROCESS_LIMIT,
    }


def _extracted_archive_entries():
    """FileEntries become eligible only once their archive is fully extracted."""
    return FileEntry.archive_id.in_(
        select(Archive.id).where(Archive.status == ArchiveStatus.PROCESSED_ZIP)
    )


class StageBudget:
    """In-flight counter for one stage."""

    def __init__(self, limit: int):
        self.limit = limit
        self.in_flight = 0

    @property
    def spare(self) -> int:
        return max(self.limit - self.in_flight, 0)

    def try_acquire(self) -> bool:
        if self.in_flight >= self.limit:
            return False
        self.in_flight += 1
        return True

    def release(self) -> None:
        self.in_flight = max(self.in_flight - 1, 0)


class PipelineScheduler:
    """
    Drives Archive and FileEntry rows through their lifecycles.

    Surface:
    - start() / stop() / is_running(): the periodic tick
    - set_stage_limit(stage, n): takes effect on the next tick
    - tick(): one scheduling round, also usable without start()
    - wait_idle(): await every in-flight unit
    - drain(): tick until nothing is in flight and nothing can be claimed
    """

    def __init__(
        self,
        repository: Repository,
        processors: StageProcessors,
        limits: Optional[Dict[Stage, int]] = None,
        tick_interval_ms: Optional[int] = None,
        max_downloaded_archives: Optional[int] = None
    ):
        self.repository = repository
        self.processors = processors
        self.tick_interval_ms = tick_interval_ms or settings.TICK_INTERVAL_MS
        self.max_downloaded_archives = (
            max_downloaded_archives if max_downloaded_archives is not None else settings.MAX_DOWNLOADED_ARCHIVES
        )

        stage_limits = {**default_stage_limits(), **(limits or {})}
        self.budgets: Dict[Stage, StageBudget] = {
            stage: StageBudget(limit) for stage, limit in stage_limits.items()
        }

        self._handlers: Dict[Stage, Callable[..., Awaitable]] = {
            Stage.DOWNLOAD: processors.download,
            Stage.EXAMINE: processors.examine,
            Stage.MEDIA_PROCESS: processors.process_media,
            Stage.SIDECAR_PROCESS: processors.process_sidecar,
        }
        self._tasks: Set[asyncio.Task] = set()
        self._running = False
        self._scheduler: Optional[AsyncIOScheduler] = None

    @property
    def progress(self):
        return self.processors.progress

    # ========================================================================
    # Configuration surface
    # ========================================================================

    def set_stage_limit(self, stage: Stage, limit: int) -> None:
        """Change a stage's concurrency limit; in-flight units are not affected."""
        if limit < 0:
            raise ValueError(f"Stage limit must be >= 0, got {limit}")
        self.budgets[Stage(stage)].limit = limit
        logger.info(f"Stage limit for {Stage(stage).value} set to {limit}")

    def in_flight(self) -> int:
        return len(self._tasks)

    def is_running(self) -> bool:
        return self._running

    # ========================================================================
    # Lifecycle
    # ========================================================================

    async def start(self) -> None:
        """Recover rows stranded by a previous process and start ticking."""
        if self._running:
            return

        await self.repository.recover_interrupted()

        self._scheduler = AsyncIOScheduler()
        self._scheduler.add_job(
            self._scheduled_tick,
            trigger=IntervalTrigger(seconds=self.tick_interval_ms / 1000),
            id=TICK_JOB_ID,
            max_instances=1,
            coalesce=True,
            replace_existing=True
        )
        self._running = True
        self._scheduler.start()
        logger.info(f"Pipeline scheduler started (tick every {self.tick_interval_ms} ms)")

    def stop(self) -> None:
        """Stop ticking. Units already in flight run to completion."""
        if not self._running:
            return

        self._running = False
        if self._scheduler is not None:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None
        logger.info(f"Pipeline scheduler stopped ({self.in_flight()} units still in flight)")

    async def wait_idle(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ========================================================================
    # Scheduling
    # ========================================================================

    async def _scheduled_tick(self) -> None:
        if not self._running:
            return
        try:
            await self.tick()
        except Exception as e:
            logger.error(f"Pipeline tick failed: {e}")

    async def tick(self) -> int:
        """
        One scheduling round.

        Returns:
            Number of units of work started
        """
        started = 0
        for stage in Stage:
            if await self._dispatch(stage):
                started += 1
        return started

    async def drain(self, max_ticks: int = 100000) -> int:
        """
        Tick until the pipeline is idle.

        Returns:
            Number of ticks run
        """
        for tick_number in range(1, max_ticks + 1):
            started = await self.tick()
            if started:
                continue
            if not self._tasks:
                return tick_number
            await asyncio.wait(set(self._tasks), return_when=asyncio.FIRST_COMPLETED)

        raise RuntimeError(f"Pipeline still busy after {max_ticks} ticks")

    async def _dispatch(self, stage: Stage) -> bool:
        budget = self.budgets[stage]
        if not budget.try_acquire():
            return False

        try:
            entity = await self._claim(stage)
        except Exception as e:
            budget.release()
            logger.error(f"Claim for {stage.value} failed: {e}")
            return False

        if entity is None:
            budget.release()
            return False

        task = asyncio.create_task(self._run_unit(stage, entity), name=f"{stage.value}-{entity.id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return True

    async def _claim(self, stage: Stage):
        if stage is Stage.DOWNLOAD:
            return await self.repository.claim_next(
                Archive, ArchiveStatus.NEW, ArchiveStatus.DOWNLOADING,
                cap=(DOWNLOAD_CAP_STATUSES, self.max_downloaded_archives)
            )
        if stage is Stage.EXAMINE:
            return await self.repository.claim_next(
                Archive, ArchiveStatus.DOWNLOADED, ArchiveStatus.EXAMINING_ZIP
            )
        if stage is Stage.MEDIA_PROCESS:
            return await self.repository.claim_next(
                FileEntry, (FileStatus.UNASSOCIATED, FileStatus.ASSOCIATED), FileStatus.PROCESSING,
                extra_predicate=(FileEntry.kind == FileKind.MEDIA) & _extracted_archive_entries()
            )
        return await self.repository.claim_next(
            FileEntry, FileStatus.UNASSOCIATED, FileStatus.PROCESSING,
            extra_predicate=(FileEntry.kind == FileKind.SIDECAR) & _extracted_archive_entries()
        )

    async def _run_unit(self, stage: Stage, entity) -> None:
        """Run one unit of work; failures end up in the entity's status, never here."""
        try:
            await self._handlers[stage](entity)
        except Exception as exc:
            logger.error(f"{stage.value} failed for {entity!r}: {short_diagnostic(exc)}")
            try:
                await self.processors.record_failure(stage, entity, exc)
            except Exception as e:
                logger.error(f"Could not record {stage.value} failure for {entity!r}: {e}")
        finally:
            self.budgets[stage].release()

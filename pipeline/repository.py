"""
Persistence gateway for the pipeline.

Every operation opens its own AsyncSession and commits before returning, so
no session is ever shared between concurrently running units of work.

Claims are conditional single-row updates (`UPDATE ... WHERE id = :id AND
status IN (:from)`): of several concurrent claimants exactly one sees a
rowcount of 1, the others move on to the next candidate.
"""

from typing import Dict, Iterable, List, Optional, Tuple, Type, TypeVar, Union
from sqlalchemy import select, update, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlalchemy.orm import aliased
from models import Archive, FileEntry, MediaRecord
from models.base import ArchiveStatus, FileKind, FileStatus
import enum
import logging

logger = logging.getLogger(__name__)

EntityT = TypeVar("EntityT", Archive, FileEntry)
StatusArg = Union[enum.Enum, Iterable[enum.Enum]]

# How many candidates a claim tries before giving up for this tick
CLAIM_CANDIDATES = 5


def _as_tuple(statuses: StatusArg) -> Tuple[enum.Enum, ...]:
    if isinstance(statuses, enum.Enum):
        return (statuses,)
    return tuple(statuses)


class Repository:
    """
    Async repository over Archive, FileEntry and MediaRecord rows.

    Write styles:
    - transition(): conditional status change, the only way statuses move
    - update_fields(): column-targeted write that never touches status
    - update(): full-record merge, last writer wins
    """

    def __init__(self, session_maker: async_sessionmaker):
        self.session_maker = session_maker

    # ========================================================================
    # Generic access
    # ========================================================================

    async def insert(self, entity):
        """Persist a new row and return it with its store-assigned id."""
        async with self.session_maker() as session:
            session.add(entity)
            await session.commit()
        return entity

    async def get(self, entity_cls: Type[EntityT], entity_id: int) -> Optional[EntityT]:
        async with self.session_maker() as session:
            return await session.get(entity_cls, entity_id)

    async def update(self, entity):
        """Write every column of `entity` back (last writer wins)."""
        async with self.session_maker() as session:
            merged = await session.merge(entity)
            await session.commit()
        return merged

    async def update_fields(self, entity_cls: Type[EntityT], entity_id: int, **values) -> Optional[EntityT]:
        """Write only the named columns of one row and return the fresh row."""
        if "status" in values:
            raise ValueError("status changes go through transition()")

        async with self.session_maker() as session:
            stmt = (
                update(entity_cls)
                .where(entity_cls.id == entity_id)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            await session.execute(stmt)
            await session.commit()
            return await session.get(entity_cls, entity_id)

    # ========================================================================
    # Status transitions
    # ========================================================================

    async def transition(
        self,
        entity_cls: Type[EntityT],
        entity_id: int,
        from_statuses: StatusArg,
        to_status: enum.Enum,
        reason: Optional[str] = None,
        guard=None,
        **values
    ) -> Optional[EntityT]:
        """
        Move one row to `to_status` if it is currently in one of `from_statuses`.

        `reason` lands in status_reason; a non-failure transition clears it.
        `guard` is an extra SQL condition evaluated by the same UPDATE.
        Extra keyword arguments are written in the same statement.

        Returns:
            The updated row, or None when the row was not in an expected status
        """
        from_tuple = _as_tuple(from_statuses)

        async with self.session_maker() as session:
            stmt = (
                update(entity_cls)
                .where(entity_cls.id == entity_id, entity_cls.status.in_(from_tuple))
                .values(status=to_status, status_reason=reason, **values)
                .execution_options(synchronize_session=False)
            )
            if guard is not None:
                stmt = stmt.where(guard)
            result = await session.execute(stmt)
            await session.commit()

            if result.rowcount != 1:
                return None
            return await session.get(entity_cls, entity_id)

    async def claim_next(
        self,
        entity_cls: Type[EntityT],
        from_status: StatusArg,
        to_status: enum.Enum,
        extra_predicate=None,
        cap: Optional[Tuple[StatusArg, int]] = None
    ) -> Optional[EntityT]:
        """
        Atomically move the oldest eligible row into `to_status`.

        Args:
            entity_cls: Archive or FileEntry
            from_status: Eligible status (or statuses)
            to_status: In-flight status written by the claim
            extra_predicate: Additional SQL condition on eligible rows
            cap: (statuses, limit) - no claim while `limit` rows already sit
                in `statuses`. The count is re-checked inside the claiming
                UPDATE; on PostgreSQL under READ COMMITTED two claimants in
                different processes can still both pass it at the same instant

        Returns:
            The claimed row, or None when nothing is eligible
        """
        from_tuple = _as_tuple(from_status)
        guard = None

        if cap is not None:
            cap_statuses, limit = cap
            if await self.count_in_status(entity_cls, cap_statuses) >= limit:
                return None
            capped = aliased(entity_cls)
            guard = (
                select(func.count(capped.id))
                .where(capped.status.in_(_as_tuple(cap_statuses)))
                .scalar_subquery()
            ) < limit

        async with self.session_maker() as session:
            query = (
                select(entity_cls.id)
                .where(entity_cls.status.in_(from_tuple))
                .order_by(entity_cls.id)
                .limit(CLAIM_CANDIDATES)
            )
            if extra_predicate is not None:
                query = query.where(extra_predicate)
            candidate_ids = (await session.execute(query)).scalars().all()

        for candidate_id in candidate_ids:
            claimed = await self.transition(entity_cls, candidate_id, from_tuple, to_status, guard=guard)
            if claimed is not None:
                return claimed

        return None

    async def count_in_status(self, entity_cls: Type[EntityT], statuses: StatusArg) -> int:
        async with self.session_maker() as session:
            query = select(func.count(entity_cls.id)).where(entity_cls.status.in_(_as_tuple(statuses)))
            return (await session.execute(query)).scalar_one()

    async def status_counts(self, entity_cls: Type[EntityT]) -> Dict[str, int]:
        """Number of rows per status value, for health reporting."""
        async with self.session_maker() as session:
            query = select(entity_cls.status, func.count(entity_cls.id)).group_by(entity_cls.status)
            rows = (await session.execute(query)).all()
        return {status.value: count for status, count in rows}

    async def recover_interrupted(self) -> Dict[str, int]:
        """
        Return rows stranded in an in-flight status by a dead process.

        Only call this before any unit of work runs; it cannot tell a crashed
        claim from a live one.
        """
        recoveries = [
            (Archive, ArchiveStatus.DOWNLOADING, ArchiveStatus.NEW, {"local_staging_path": ""}),
            (Archive, ArchiveStatus.EXAMINING_ZIP, ArchiveStatus.DOWNLOADED, {}),
            (FileEntry, FileStatus.PROCESSING, FileStatus.UNASSOCIATED, {}),
        ]
        counts = {}

        async with self.session_maker() as session:
            for entity_cls, stranded, eligible, values in recoveries:
                stmt = (
                    update(entity_cls)
                    .where(entity_cls.status == stranded)
                    .values(status=eligible, status_reason=None, **values)
                    .execution_options(synchronize_session=False)
                )
                result = await session.execute(stmt)
                counts[f"{entity_cls.__name__}.{stranded.value}"] = result.rowcount
            await session.commit()

        recovered = sum(counts.values())
        if recovered:
            logger.warning(f"Recovered {recovered} interrupted rows: {counts}")
        return counts

    # ========================================================================
    # Archives
    # ========================================================================

    async def register_archive(self, external_id: str, display_name: str) -> Tuple[Archive, bool]:
        """
        Insert a New archive unless one with `external_id` exists.

        Returns:
            (archive, created)
        """
        async with self.session_maker() as session:
            existing = (await session.execute(
                select(Archive).where(Archive.external_id == external_id)
            )).scalar_one_or_none()
            if existing is not None:
                return existing, False

            archive = Archive(
                external_id=external_id,
                display_name=display_name,
                local_staging_path="",
                status=ArchiveStatus.NEW,
            )
            session.add(archive)
            try:
                await session.commit()
            except IntegrityError:
                # Registered concurrently under the same external id
                await session.rollback()
                existing = (await session.execute(
                    select(Archive).where(Archive.external_id == external_id)
                )).scalar_one()
                return existing, False

        return archive, True

    # ========================================================================
    # File entries
    # ========================================================================

    async def find_by_pairing_key(self, archive_id: int, key: str, kind: FileKind) -> Optional[FileEntry]:
        """Oldest entry of `kind` in the archive whose pairing key is `key`."""
        async with self.session_maker() as session:
            query = (
                select(FileEntry)
                .where(
                    FileEntry.archive_id == archive_id,
                    FileEntry.kind == kind,
                    FileEntry.pairing_key == key,
                )
                .order_by(FileEntry.id)
                .limit(1)
            )
            return (await session.execute(query)).scalar_one_or_none()

    async def find_entry_by_path(self, archive_id: int, path: str) -> Optional[FileEntry]:
        async with self.session_maker() as session:
            query = select(FileEntry).where(FileEntry.archive_id == archive_id, FileEntry.path == path)
            return (await session.execute(query)).scalar_one_or_none()

    async def list_entries(self, archive_id: int) -> List[FileEntry]:
        async with self.session_maker() as session:
            query = select(FileEntry).where(FileEntry.archive_id == archive_id).order_by(FileEntry.id)
            return list((await session.execute(query)).scalars().all())

    # ========================================================================
    # Media records
    # ========================================================================

    async def get_media_record_for(self, media_entry_id: int) -> Optional[MediaRecord]:
        async with self.session_maker() as session:
            query = select(MediaRecord).where(MediaRecord.media_entry_id == media_entry_id)
            return (await session.execute(query)).scalar_one_or_none()

    async def insert_media_record_once(self, record: MediaRecord) -> Tuple[MediaRecord, bool]:
        """
        Insert `record` unless its media entry already has one.

        Returns:
            (stored record, created)
        """
        existing = await self.get_media_record_for(record.media_entry_id)
        if existing is not None:
            return existing, False

        try:
            await self.insert(record)
        except IntegrityError:
            existing = await self.get_media_record_for(record.media_entry_id)
            if existing is None:
                raise
            return existing, False

        return record, True

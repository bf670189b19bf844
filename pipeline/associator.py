"""
Media/sidecar pairing.

A pair link is two independent writes (A->B, then B->A), so a reader can
observe a half-written link. find_pair() therefore only trusts a link whose
target points back and otherwise falls back to the pairing key, which is
the source of truth the links are derived from.
"""

from typing import Optional, Tuple
from core.exceptions import AssociationInconsistency
from models import FileEntry
from pipeline.repository import Repository
import logging

logger = logging.getLogger(__name__)


def is_confirmed_link(entry: FileEntry, linked: Optional[FileEntry]) -> bool:
    """True when `linked` is the opposite-kind peer of `entry` and points back."""
    return (
        linked is not None
        and linked.id != entry.id
        and linked.archive_id == entry.archive_id
        and linked.kind == entry.kind.opposite
        and linked.related_entry_id == entry.id
    )


class Associator:
    """Finds and records the pair of a media file or sidecar."""
    
    def __init__(self, repository: Repository):
        self.repository = repository
    
    async def find_pair(self, entry: FileEntry) -> Optional[FileEntry]:
        """
        The opposite-kind entry paired with `entry`, if any.
        
        A confirmed reciprocal link is trusted as is. A missing link is
        looked up by pairing key; a one-sided or mismatched link is logged
        and looked up the same way.
        """
        if entry.related_entry_id is not None:
            linked = await self.repository.get(FileEntry, entry.related_entry_id)
            if is_confirmed_link(entry, linked):
                return linked
            
            inconsistency = AssociationInconsistency(
                "Pair link is not reciprocal, re-deriving from pairing key",
                context={"entry_id": entry.id, "related_entry_id": entry.related_entry_id}
            )
            logger.warning(str(inconsistency))
        
        return await self.repository.find_by_pairing_key(
            entry.archive_id, entry.pairing_key, entry.kind.opposite
        )
    
    async def associate(self, a: FileEntry, b: FileEntry) -> Tuple[FileEntry, FileEntry]:
        """
        Link `a` and `b` to each other.
        
        Writes a->b, then b->a. Linking an already linked pair writes
        nothing.
        
        Returns:
            Fresh (a, b)
        
        Raises:
            AssociationInconsistency: The entries cannot form a pair
        """
        if a.id == b.id or a.kind == b.kind or a.archive_id != b.archive_id:
            raise AssociationInconsistency(
                "Entries cannot be paired",
                context={"entry_id": a.id, "related_entry_id": b.id}
            )
        
        if a.related_entry_id == b.id and b.related_entry_id == a.id:
            return a, b
        
        if a.related_entry_id != b.id:
            a = await self.repository.update_fields(FileEntry, a.id, related_entry_id=b.id)
        if b.related_entry_id != a.id:
            b = await self.repository.update_fields(FileEntry, b.id, related_entry_id=a.id)
        
        logger.debug(f"Paired {a.name} with {b.name}")
        return a, b

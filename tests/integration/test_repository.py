"""
Integration tests for the repository against SQLite
"""

import asyncio
import pytest
from models import Archive, FileEntry, MediaRecord
from models.base import ArchiveStatus, FileKind, FileStatus
from pipeline.scheduler import DOWNLOAD_CAP_STATUSES


async def _archive(repository, external_id: str, status=ArchiveStatus.NEW, staged: str = "") -> Archive:
    return await repository.insert(Archive(
        external_id=external_id,
        display_name=f"{external_id}.tgz",
        local_staging_path=staged,
        status=status,
    ))


async def _entry(repository, archive: Archive, name: str, kind: FileKind, status=FileStatus.UNASSOCIATED) -> FileEntry:
    return await repository.insert(FileEntry(
        archive_id=archive.id,
        name=name,
        path=f"/extracted/{name}",
        kind=kind,
        pairing_key=name,
        status=status,
    ))


@pytest.mark.asyncio
async def test_insert_assigns_ids(repository):
    archive = await _archive(repository, "f1")
    
    assert archive.id is not None
    assert (await repository.get(Archive, archive.id)).status is ArchiveStatus.NEW


@pytest.mark.asyncio
async def test_concurrent_claims_yield_at_most_one_winner(repository):
    archive = await _archive(repository, "f1")
    
    results = await asyncio.gather(*[
        repository.claim_next(Archive, ArchiveStatus.NEW, ArchiveStatus.DOWNLOADING)
        for _ in range(8)
    ])
    winners = [result for result in results if result is not None]
    
    assert len(winners) == 1
    assert winners[0].id == archive.id
    assert winners[0].status is ArchiveStatus.DOWNLOADING


@pytest.mark.asyncio
async def test_claim_takes_oldest_eligible(repository):
    await _archive(repository, "done", status=ArchiveStatus.PROCESSED_ZIP)
    first = await _archive(repository, "f1")
    await _archive(repository, "f2")
    
    claimed = await repository.claim_next(Archive, ArchiveStatus.NEW, ArchiveStatus.DOWNLOADING)
    
    assert claimed.id == first.id


@pytest.mark.asyncio
async def test_claim_respects_cap(repository):
    await _archive(repository, "s1", status=ArchiveStatus.DOWNLOADED, staged="/staging/s1")
    await _archive(repository, "s2", status=ArchiveStatus.EXAMINING_ZIP, staged="/staging/s2")
    await _archive(repository, "f3")
    
    capped = await repository.claim_next(
        Archive, ArchiveStatus.NEW, ArchiveStatus.DOWNLOADING, cap=(DOWNLOAD_CAP_STATUSES, 2)
    )
    uncapped = await repository.claim_next(
        Archive, ArchiveStatus.NEW, ArchiveStatus.DOWNLOADING, cap=(DOWNLOAD_CAP_STATUSES, 3)
    )
    
    assert capped is None
    assert uncapped is not None


@pytest.mark.asyncio
async def test_cap_is_enforced_by_the_claiming_update(repository, monkeypatch):
    await _archive(repository, "s1", status=ArchiveStatus.DOWNLOADED, staged="/staging/s1")
    pending = await _archive(repository, "f2")
    
    async def stale_count(entity_cls, statuses):
        return 0
    
    # Another process filled the cap after this one counted
    monkeypatch.setattr(repository, "count_in_status", stale_count)
    claimed = await repository.claim_next(
        Archive, ArchiveStatus.NEW, ArchiveStatus.DOWNLOADING, cap=(DOWNLOAD_CAP_STATUSES, 1)
    )
    
    assert claimed is None
    assert (await repository.get(Archive, pending.id)).status is ArchiveStatus.NEW


@pytest.mark.asyncio
async def test_claim_with_extra_predicate(repository):
    archive = await _archive(repository, "f1", status=ArchiveStatus.PROCESSED_ZIP)
    await _entry(repository, archive, "a.jpg.json", FileKind.SIDECAR)
    media = await _entry(repository, archive, "a.jpg", FileKind.MEDIA)
    
    claimed = await repository.claim_next(
        FileEntry, FileStatus.UNASSOCIATED, FileStatus.PROCESSING,
        extra_predicate=FileEntry.kind == FileKind.MEDIA
    )
    
    assert claimed.id == media.id


@pytest.mark.asyncio
async def test_transition_is_conditional(repository):
    archive = await _archive(repository, "f1")
    
    wrong = await repository.transition(Archive, archive.id, ArchiveStatus.DOWNLOADED, ArchiveStatus.EXAMINING_ZIP)
    right = await repository.transition(
        Archive, archive.id, ArchiveStatus.NEW, ArchiveStatus.DOWNLOAD_FAILED, reason="TransportError: boom"
    )
    
    assert wrong is None
    assert right.status is ArchiveStatus.DOWNLOAD_FAILED
    assert right.status_label == "DownloadFailed: TransportError: boom"


@pytest.mark.asyncio
async def test_non_failure_transition_clears_reason(repository):
    archive = await _archive(repository, "f1", status=ArchiveStatus.DOWNLOAD_FAILED)
    await repository.update_fields(Archive, archive.id, status_reason="old")
    
    updated = await repository.transition(Archive, archive.id, ArchiveStatus.DOWNLOAD_FAILED, ArchiveStatus.NEW)
    
    assert updated.status_reason is None


@pytest.mark.asyncio
async def test_update_fields_never_touches_status(repository):
    archive = await _archive(repository, "f1")
    
    updated = await repository.update_fields(Archive, archive.id, display_name="renamed.tgz")
    
    assert updated.display_name == "renamed.tgz"
    assert updated.status is ArchiveStatus.NEW
    with pytest.raises(ValueError):
        await repository.update_fields(Archive, archive.id, status=ArchiveStatus.DOWNLOADED)


@pytest.mark.asyncio
async def test_update_merges_full_record(repository):
    archive = await _archive(repository, "f1")
    archive.display_name = "merged.tgz"
    
    await repository.update(archive)
    
    assert (await repository.get(Archive, archive.id)).display_name == "merged.tgz"


@pytest.mark.asyncio
async def test_find_by_pairing_key_is_scoped_to_archive_and_kind(repository):
    first = await _archive(repository, "f1", status=ArchiveStatus.PROCESSED_ZIP)
    second = await _archive(repository, "f2", status=ArchiveStatus.PROCESSED_ZIP)
    media = await _entry(repository, first, "a.jpg", FileKind.MEDIA)
    await _entry(repository, second, "a.jpg", FileKind.MEDIA)
    
    assert (await repository.find_by_pairing_key(first.id, "a.jpg", FileKind.MEDIA)).id == media.id
    assert await repository.find_by_pairing_key(first.id, "a.jpg", FileKind.SIDECAR) is None


@pytest.mark.asyncio
async def test_register_archive_is_idempotent(repository):
    archive, created = await repository.register_archive("f1", "takeout-001.tgz")
    again, created_again = await repository.register_archive("f1", "takeout-001.tgz")
    
    assert created and not created_again
    assert again.id == archive.id
    assert archive.status is ArchiveStatus.NEW
    assert archive.local_staging_path == ""


@pytest.mark.asyncio
async def test_media_record_created_once(repository):
    archive = await _archive(repository, "f1", status=ArchiveStatus.PROCESSED_ZIP)
    media = await _entry(repository, archive, "a.jpg", FileKind.MEDIA, status=FileStatus.PROCESSED)
    
    record, created = await repository.insert_media_record_once(MediaRecord(
        media_entry_id=media.id, file_name="a.jpg", final_path="/archive/a.jpg", raw_metadata={"title": "a"}
    ))
    duplicate, created_again = await repository.insert_media_record_once(MediaRecord(
        media_entry_id=media.id, file_name="a.jpg", final_path="/archive/a.jpg", raw_metadata={}
    ))
    
    assert created and not created_again
    assert duplicate.id == record.id
    assert (await repository.get_media_record_for(media.id)).raw_metadata == {"title": "a"}


@pytest.mark.asyncio
async def test_recover_interrupted_returns_rows_to_eligible_statuses(repository):
    downloading = await _archive(repository, "f1", status=ArchiveStatus.DOWNLOADING)
    examining = await _archive(repository, "f2", status=ArchiveStatus.EXAMINING_ZIP, staged="/staging/f2")
    processed = await _archive(repository, "f3", status=ArchiveStatus.PROCESSED_ZIP)
    entry = await _entry(repository, processed, "a.jpg", FileKind.MEDIA, status=FileStatus.PROCESSING)
    
    counts = await repository.recover_interrupted()
    
    assert sum(counts.values()) == 3
    assert (await repository.get(Archive, downloading.id)).status is ArchiveStatus.NEW
    recovered = await repository.get(Archive, examining.id)
    assert recovered.status is ArchiveStatus.DOWNLOADED
    assert recovered.local_staging_path == "/staging/f2"
    assert (await repository.get(FileEntry, entry.id)).status is FileStatus.UNASSOCIATED


@pytest.mark.asyncio
async def test_status_counts(repository):
    await _archive(repository, "f1")
    await _archive(repository, "f2")
    await _archive(repository, "f3", status=ArchiveStatus.DOWNLOAD_FAILED)
    
    assert await repository.status_counts(Archive) == {"New": 2, "DownloadFailed": 1}

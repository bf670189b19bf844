"""
End-to-end pipeline runs: remote listing -> download -> extraction -> filing
"""

from datetime import datetime, timezone
from pathlib import Path
import pytest
from sqlalchemy import select
from models import Archive, MediaRecord
from models.base import ArchiveStatus, FileStatus
from pipeline.processors import MEDIA_FAILED_REASON
from pipeline.remote import register_remote_archives
from tests.helpers import tarball_bytes, SIDECAR_2001

TRIP = "Takeout/Google Photos/Trip"


async def _entries_by_name(repository, archive_id: int):
    return {entry.name: entry for entry in await repository.list_entries(archive_id)}


async def _media_records(session_maker):
    async with session_maker() as session:
        return (await session.execute(select(MediaRecord))).scalars().all()


async def _run(pipeline, fake_remote, files, file_id="f1", name="takeout-001.tgz"):
    fake_remote.add(file_id, name, tarball_bytes(files))
    await register_remote_archives(fake_remote, pipeline.repository, "takeout-folder")
    await pipeline.drain()
    archive, _ = await pipeline.repository.register_archive(file_id, name)
    return archive


@pytest.mark.asyncio
async def test_pair_is_filed_and_lonely_media_parked(pipeline, fake_remote, repository, session_maker, test_settings):
    archive = await _run(pipeline, fake_remote, {
        f"{TRIP}/a.jpg": b"jpeg bytes",
        f"{TRIP}/a.jpg.json": SIDECAR_2001,
        f"{TRIP}/b.mp4": b"video bytes",
    })
    entries = await _entries_by_name(repository, archive.id)
    records = await _media_records(session_maker)
    
    assert archive.status is ArchiveStatus.PROCESSED_ZIP
    assert archive.local_staging_path == ""
    
    target = Path(test_settings.ARCHIVE_ROOT) / "2001" / "September" / "9"
    assert entries["a.jpg"].status is FileStatus.PROCESSED
    assert entries["a.jpg.json"].status is FileStatus.PROCESSED
    assert Path(entries["a.jpg"].path) == target / "a.jpg"
    assert Path(entries["a.jpg.json"].path) == target / "a.jpg.json"
    assert (target / "a.jpg").read_bytes() == b"jpeg bytes"
    
    assert entries["b.mp4"].status is FileStatus.NO_PAIR
    assert Path(entries["b.mp4"].path).exists()
    
    assert len(records) == 1
    assert records[0].media_entry_id == entries["a.jpg"].id
    assert records[0].final_path == str(target / "a.jpg")
    assert records[0].raw_metadata["photoTakenTime"]["timestamp"] == "1000000000"


@pytest.mark.asyncio
async def test_pair_links_are_reciprocal_after_run(pipeline, fake_remote, repository):
    archive = await _run(pipeline, fake_remote, {
        f"{TRIP}/a.jpg": b"jpeg bytes",
        f"{TRIP}/a.jpg.json": SIDECAR_2001,
    })
    entries = await _entries_by_name(repository, archive.id)
    
    assert entries["a.jpg"].related_entry_id == entries["a.jpg.json"].id
    assert entries["a.jpg.json"].related_entry_id == entries["a.jpg"].id


@pytest.mark.asyncio
async def test_embedded_date_beats_sidecar_date(pipeline, fake_remote, repository, metadata_reader, test_settings):
    metadata_reader.dates["a.jpg"] = datetime(2015, 3, 14, 9, 26, tzinfo=timezone.utc)
    
    archive = await _run(pipeline, fake_remote, {
        f"{TRIP}/a.jpg": b"jpeg bytes",
        f"{TRIP}/a.jpg.json": SIDECAR_2001,
    })
    entries = await _entries_by_name(repository, archive.id)
    
    target = Path(test_settings.ARCHIVE_ROOT) / "2015" / "March" / "14"
    assert Path(entries["a.jpg"].path) == target / "a.jpg"
    assert Path(entries["a.jpg.json"].path) == target / "a.jpg.json"


@pytest.mark.asyncio
async def test_sidecar_without_date_parks_media_no_date(pipeline, fake_remote, repository, session_maker):
    archive = await _run(pipeline, fake_remote, {
        f"{TRIP}/a.jpg": b"jpeg bytes",
        f"{TRIP}/a.jpg.json": b'{"title": "a.jpg"}',
    })
    entries = await _entries_by_name(repository, archive.id)
    
    assert entries["a.jpg"].status is FileStatus.NO_DATE
    assert entries["a.jpg.json"].status is FileStatus.ASSOCIATED
    assert await _media_records(session_maker) == []


@pytest.mark.asyncio
async def test_embedded_date_without_sidecar_files_media_only(pipeline, fake_remote, repository, metadata_reader, session_maker):
    metadata_reader.dates["b.mp4"] = datetime(2020, 1, 31, tzinfo=timezone.utc)
    
    archive = await _run(pipeline, fake_remote, {f"{TRIP}/b.mp4": b"video bytes"})
    entries = await _entries_by_name(repository, archive.id)
    
    assert entries["b.mp4"].status is FileStatus.PROCESSED
    assert entries["b.mp4"].path.endswith(str(Path("2020") / "January" / "31" / "b.mp4"))
    assert await _media_records(session_maker) == []


@pytest.mark.asyncio
async def test_lonely_sidecar_is_no_pair(pipeline, fake_remote, repository):
    archive = await _run(pipeline, fake_remote, {f"{TRIP}/ghost.jpg.json": SIDECAR_2001})
    entries = await _entries_by_name(repository, archive.id)
    
    assert entries["ghost.jpg.json"].status is FileStatus.NO_PAIR


@pytest.mark.asyncio
async def test_malformed_sidecar_fails_both_files(pipeline, fake_remote, repository):
    archive = await _run(pipeline, fake_remote, {
        f"{TRIP}/a.jpg": b"jpeg bytes",
        f"{TRIP}/a.jpg.json": b"{broken",
    })
    entries = await _entries_by_name(repository, archive.id)
    
    assert entries["a.jpg"].status is FileStatus.FAILED
    assert entries["a.jpg"].status_reason.startswith("MetadataError")
    assert entries["a.jpg.json"].status is FileStatus.FAILED
    sidecar_reason = entries["a.jpg.json"].status_reason
    assert sidecar_reason == MEDIA_FAILED_REASON or sidecar_reason.startswith("paired media failed")


@pytest.mark.asyncio
async def test_name_collision_gets_counter(pipeline, fake_remote, repository, test_settings):
    archive = await _run(pipeline, fake_remote, {
        "Takeout/Google Photos/Album A/a.jpg": b"first",
        "Takeout/Google Photos/Album A/a.jpg.json": SIDECAR_2001,
        "Takeout/Google Photos/Album B/a.jpg": b"second",
        "Takeout/Google Photos/Album B/a.jpg.json": SIDECAR_2001,
    })
    target = Path(test_settings.ARCHIVE_ROOT) / "2001" / "September" / "9"
    
    assert sorted(path.name for path in target.iterdir()) == ["a (1).jpg", "a.jpg", "a.jpg (1).json", "a.jpg.json"]
    assert {(target / "a.jpg").read_bytes(), (target / "a (1).jpg").read_bytes()} == {b"first", b"second"}
    assert len(await repository.list_entries(archive.id)) == 4


@pytest.mark.asyncio
async def test_download_failure_marks_archive(pipeline, repository):
    await repository.register_archive("missing", "takeout-404.tgz")
    
    await pipeline.drain()
    
    archive, _ = await repository.register_archive("missing", "takeout-404.tgz")
    assert archive.status is ArchiveStatus.DOWNLOAD_FAILED
    assert archive.status_reason.startswith("RemoteNotFoundError")
    assert archive.local_staging_path == ""


@pytest.mark.asyncio
async def test_download_cap_limits_staged_archives(pipeline, fake_remote, repository):
    pipeline.max_downloaded_archives = 1
    pipeline.set_stage_limit("examine", 0)
    for index in range(3):
        fake_remote.add(f"f{index}", f"takeout-00{index}.tgz", tarball_bytes({f"Takeout/{index}.jpg": b"x"}))
    await register_remote_archives(fake_remote, repository, "takeout-folder")
    
    await pipeline.drain()
    
    assert await repository.status_counts(Archive) == {"Downloaded": 1, "New": 2}


@pytest.mark.asyncio
async def test_rerun_after_completion_is_a_no_op(pipeline, fake_remote, repository, session_maker):
    await _run(pipeline, fake_remote, {
        f"{TRIP}/a.jpg": b"jpeg bytes",
        f"{TRIP}/a.jpg.json": SIDECAR_2001,
    })
    await register_remote_archives(fake_remote, repository, "takeout-folder")
    
    await pipeline.drain()
    
    assert fake_remote.downloads == ["f1"]
    assert len(await _media_records(session_maker)) == 1

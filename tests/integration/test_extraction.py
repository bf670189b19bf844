"""
Integration tests for archive extraction
"""

from pathlib import Path
import pytest
from core.exceptions import ArchiveFormatError
from models import Archive
from models.base import ArchiveStatus, FileKind, FileStatus
from pipeline.extractor import ArchiveExtractor
from pipeline.processors import Stage
from tests.helpers import tarball_bytes, tarball_from_members, zip_bytes, SIDECAR_2001

PHOTOS = {
    "Takeout/Google Photos/Trip/a.jpg": b"jpeg bytes",
    "Takeout/Google Photos/Trip/a.jpg.json": SIDECAR_2001,
    "Takeout/Google Photos/Trip/b.mp4": b"video bytes",
}


@pytest.fixture
def extractor(repository, test_settings, progress_sink):
    return ArchiveExtractor(repository, test_settings.EXTRACT_DIR, progress=progress_sink)


@pytest.mark.asyncio
async def test_extraction_registers_every_regular_entry(extractor, repository, stage_archive):
    content = tarball_bytes(PHOTOS, directories=("Takeout", "Takeout/Google Photos"))
    archive = await stage_archive(content)
    
    total = await extractor.extract(archive)
    entries = await repository.list_entries(archive.id)
    
    assert total == 3
    assert len(entries) == total
    assert {entry.name: entry.kind for entry in entries} == {
        "a.jpg": FileKind.MEDIA,
        "a.jpg.json": FileKind.SIDECAR,
        "b.mp4": FileKind.MEDIA,
    }
    assert all(entry.status is FileStatus.UNASSOCIATED for entry in entries)
    assert {entry.pairing_key for entry in entries} == {
        "Takeout/Google Photos/Trip/a.jpg",
        "Takeout/Google Photos/Trip/b.mp4",
    }
    for entry in entries:
        assert Path(entry.path).read_bytes() == PHOTOS[f"Takeout/Google Photos/Trip/{entry.name}"]


@pytest.mark.asyncio
async def test_path_stored_twice_counts_once(extractor, repository, stage_archive, progress_sink):
    content = tarball_from_members([
        ("Takeout/Google Photos/Trip/a.jpg", b"old bytes"),
        ("Takeout/Google Photos/Trip/a.jpg.json", SIDECAR_2001),
        ("Takeout/Google Photos/Trip/a.jpg", b"new bytes"),
    ])
    archive = await stage_archive(content)
    
    total = await extractor.extract(archive)
    entries = await repository.list_entries(archive.id)
    
    assert total == 2
    assert len(entries) == total
    media = next(entry for entry in entries if entry.name == "a.jpg")
    assert Path(media.path).read_bytes() == b"new bytes"
    assert progress_sink.fractions(archive.display_name, "extracting") == [0.5, 1.0]


@pytest.mark.asyncio
async def test_progress_is_monotonic_and_ends_at_one(extractor, stage_archive, progress_sink):
    archive = await stage_archive(tarball_bytes(PHOTOS))
    
    await extractor.extract(archive)
    fractions = progress_sink.fractions(archive.display_name, "extracting")
    
    assert fractions == sorted(fractions)
    assert all(0.0 <= fraction <= 1.0 for fraction in fractions)
    assert fractions[-1] == 1.0


@pytest.mark.asyncio
async def test_empty_archive_reports_zero(extractor, repository, stage_archive, progress_sink):
    archive = await stage_archive(tarball_bytes({}, directories=("Takeout",)))
    
    total = await extractor.extract(archive)
    
    assert total == 0
    assert await repository.list_entries(archive.id) == []
    assert progress_sink.fractions(archive.display_name, "extracting")[-1] == 0.0


@pytest.mark.asyncio
async def test_staged_file_removed_after_extraction(extractor, stage_archive):
    archive = await stage_archive(tarball_bytes(PHOTOS))
    
    await extractor.extract(archive)
    
    assert not Path(archive.local_staging_path).exists()


@pytest.mark.asyncio
async def test_zip_archives_are_supported(extractor, repository, stage_archive):
    archive = await stage_archive(zip_bytes(PHOTOS), name="takeout-001.zip")
    
    assert await extractor.extract(archive) == 3
    assert len(await repository.list_entries(archive.id)) == 3


@pytest.mark.asyncio
@pytest.mark.parametrize("mode", ["w:bz2", "w:xz", "w"])
async def test_other_tar_compressions(extractor, stage_archive, mode):
    archive = await stage_archive(tarball_bytes(PHOTOS, mode=mode), name="takeout.tar")
    
    assert await extractor.extract(archive) == 3


@pytest.mark.asyncio
async def test_re_extraction_does_not_duplicate_entries(repository, test_settings, stage_archive):
    extractor = ArchiveExtractor(repository, test_settings.EXTRACT_DIR, remove_staged=False)
    archive = await stage_archive(tarball_bytes(PHOTOS))
    
    await extractor.extract(archive)
    await extractor.extract(archive)
    
    assert len(await repository.list_entries(archive.id)) == 3


@pytest.mark.asyncio
async def test_corrupt_archive_raises_format_error(extractor, stage_archive):
    archive = await stage_archive(b"this is not a gzip stream at all")
    
    with pytest.raises(ArchiveFormatError):
        await extractor.extract(archive)


@pytest.mark.asyncio
async def test_truncated_archive_raises_format_error(extractor, stage_archive):
    content = tarball_bytes({f"Takeout/{index}.jpg": bytes(4096) for index in range(20)}, mode="w")
    archive = await stage_archive(content[: len(content) // 2], name="truncated.tar")
    
    with pytest.raises(ArchiveFormatError):
        await extractor.extract(archive)


@pytest.mark.asyncio
async def test_unsafe_entry_path_rejected(extractor, stage_archive, test_settings):
    archive = await stage_archive(tarball_bytes({"../escape.jpg": b"x"}))
    
    with pytest.raises(ArchiveFormatError):
        await extractor.extract(archive)
    
    assert not (Path(test_settings.EXTRACT_DIR) / "escape.jpg").exists()


@pytest.mark.asyncio
async def test_failed_examination_marks_archive_extraction_failed(pipeline, repository, stage_archive):
    archive = await stage_archive(b"garbage")
    
    with pytest.raises(ArchiveFormatError) as exc_info:
        await pipeline.processors.examine(archive)
    await pipeline.processors.record_failure(Stage.EXAMINE, archive, exc_info.value)
    
    failed = await repository.get(Archive, archive.id)
    assert failed.status is ArchiveStatus.EXTRACTION_FAILED
    assert failed.status_reason.startswith("ArchiveFormatError")
    assert failed.local_staging_path == ""


@pytest.mark.asyncio
async def test_successful_examination_clears_staging_path(pipeline, repository, stage_archive):
    archive = await stage_archive(tarball_bytes(PHOTOS))
    
    await pipeline.processors.examine(archive)
    
    examined = await repository.get(Archive, archive.id)
    assert examined.status is ArchiveStatus.PROCESSED_ZIP
    assert examined.local_staging_path == ""
    assert len(await repository.list_entries(archive.id)) == 3

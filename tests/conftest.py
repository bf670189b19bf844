"""
Pytest configuration and fixtures
"""

import pytest
import pytest_asyncio
from core.config import Settings
from core.database import build_engine, build_session_maker
from models import Archive, Base
from models.base import ArchiveStatus
from pipeline.factory import build_pipeline
from pipeline.repository import Repository
from tests.helpers import FakeRemoteStorage, RecordingSink, StubMetadataReader


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def test_settings(tmp_path) -> Settings:
    """Settings pointing every directory and the database into tmp_path"""
    return Settings(
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'takeout-test.db'}",
        STAGING_DIR=tmp_path / "staging",
        EXTRACT_DIR=tmp_path / "extracted",
        ARCHIVE_ROOT=tmp_path / "archive",
        DRIVE_ACCESS_TOKEN="test-token",
        TAKEOUT_FOLDER_ID="takeout-folder",
        TICK_INTERVAL_MS=10,
    )


@pytest_asyncio.fixture(scope="function")
async def test_engine(test_settings):
    """Create test database engine"""
    engine = build_engine(test_settings.DATABASE_URL)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_maker(test_engine):
    return build_session_maker(test_engine)


@pytest.fixture
def repository(session_maker) -> Repository:
    return Repository(session_maker)


@pytest.fixture
def fake_remote() -> FakeRemoteStorage:
    return FakeRemoteStorage()


@pytest.fixture
def metadata_reader() -> StubMetadataReader:
    return StubMetadataReader()


@pytest.fixture
def progress_sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def pipeline(session_maker, test_settings, fake_remote, metadata_reader):
    """Fully wired scheduler over the test database and the fake remote"""
    return build_pipeline(
        session_maker,
        test_settings,
        remote=fake_remote,
        metadata_reader=metadata_reader,
    )


@pytest.fixture
def stage_archive(repository, tmp_path):
    """Factory: write archive bytes to disk and register them as a claimed (ExaminingZip) archive"""

    async def _stage(content: bytes, name: str = "takeout-001.tgz", status=ArchiveStatus.EXAMINING_ZIP) -> Archive:
        staged = tmp_path / "staging" / name
        staged.parent.mkdir(parents=True, exist_ok=True)
        staged.write_bytes(content)
        return await repository.insert(Archive(
            external_id=f"remote-{name}",
            display_name=name,
            local_staging_path=str(staged),
            status=status,
        ))

    return _stage

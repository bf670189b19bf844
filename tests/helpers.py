"""
Test doubles and archive builders shared by the test suites
"""

import io
import tarfile
import zipfile
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Dict, List, Optional

from core.exceptions import RemoteNotFoundError
from pipeline.remote import RemoteStream
from schemas.remote import RemoteItem


# ============================================================================
# Test doubles
# ============================================================================

class FakeRemoteStorage:
    """In-memory remote folder: file id -> (name, bytes)"""

    def __init__(self, chunk_size: int = 7):
        self.files: Dict[str, tuple] = {}
        self.folders: List[RemoteItem] = []
        self.chunk_size = chunk_size
        self.downloads: List[str] = []

    def add(self, file_id: str, name: str, content: bytes) -> None:
        self.files[file_id] = (name, content)

    async def list(self, folder_id: str) -> List[RemoteItem]:
        items = [RemoteItem(id=file_id, name=name) for file_id, (name, _) in self.files.items()]
        return items + self.folders

    @asynccontextmanager
    async def download(self, file_id: str) -> AsyncIterator[RemoteStream]:
        if file_id not in self.files:
            raise RemoteNotFoundError("Remote resource not found", context={"file_id": file_id})
        self.downloads.append(file_id)
        content = self.files[file_id][1]

        async def chunks():
            for start in range(0, len(content), self.chunk_size):
                yield content[start:start + self.chunk_size]

        yield RemoteStream(length=len(content), chunks=chunks())


class StubMetadataReader:
    """Embedded capture dates keyed by file name; everything else has none"""

    def __init__(self, dates: Optional[Dict] = None):
        self.dates = dates or {}
        self.calls: List[Path] = []

    async def try_get_capture_date(self, path):
        self.calls.append(Path(path))
        return self.dates.get(Path(path).name)


class RecordingSink:
    """Progress sink remembering every report"""

    def __init__(self):
        self.reports: List[tuple] = []

    def __call__(self, entity_key: str, stage_label: str, fraction: float) -> None:
        self.reports.append((entity_key, stage_label, fraction))

    def fractions(self, entity_key: str, stage_label: Optional[str] = None) -> List[float]:
        return [
            fraction for key, label, fraction in self.reports
            if key == entity_key and (stage_label is None or label == stage_label)
        ]


# ============================================================================
# Archive builders
# ============================================================================

def tarball_bytes(files: Dict[str, bytes], mode: str = "w:gz", directories: tuple = ()) -> bytes:
    """Build a tarball in memory; `directories` adds explicit directory entries"""
    return tarball_from_members(list(files.items()), mode, directories)


def tarball_from_members(members: List[tuple], mode: str = "w:gz", directories: tuple = ()) -> bytes:
    """Like tarball_bytes, but from (name, content) pairs in stored order, repeats allowed"""
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode=mode) as archive:
        for name in directories:
            info = tarfile.TarInfo(name)
            info.type = tarfile.DIRTYPE
            info.mode = 0o755
            archive.addfile(info)
        for name, content in members:
            info = tarfile.TarInfo(name)
            info.size = len(content)
            archive.addfile(info, io.BytesIO(content))
    return buffer.getvalue()


def zip_bytes(files: Dict[str, bytes]) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        for name, content in files.items():
            archive.writestr(name, content)
    return buffer.getvalue()


SIDECAR_2001 = b'{"title": "a.jpg", "photoTakenTime": {"timestamp": "1000000000", "formatted": "Sep 9, 2001"}}'


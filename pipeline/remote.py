"""
Remote storage client for the Takeout export folder.

Google Drive v3 over httpx:
- list(folder_id): every file in a folder, following `nextPageToken`
- download(file_id): async context manager yielding the content length and
  a chunk iterator, so archives of several GB stream straight to disk

HTTP and network failures surface as TransportError subclasses. There is no
retry here; a failed download marks its archive DownloadFailed.
"""

from typing import AsyncIterator, Dict, List, Optional, Protocol
from contextlib import asynccontextmanager
from dataclasses import dataclass
import httpx
from core.config import settings
from core.exceptions import TransportError, AuthenticationError, RemoteNotFoundError
from schemas.remote import RemoteItem
from pipeline.repository import Repository
from models import Archive
import logging

logger = logging.getLogger(__name__)

LIST_PAGE_SIZE = 1000
DOWNLOAD_CHUNK_SIZE = 1024 * 1024


@dataclass
class RemoteStream:
    """Body of a download: known length (None if the server did not send one) and chunks"""
    length: Optional[int]
    chunks: AsyncIterator[bytes]


class RemoteStorage(Protocol):
    """What the pipeline needs from a remote store"""

    async def list(self, folder_id: str) -> List[RemoteItem]:
        ...

    def download(self, file_id: str):
        """Async context manager yielding a RemoteStream"""
        ...


def _raise_for_status(response: httpx.Response, context: Dict) -> None:
    """Map an HTTP error status to the transport exception hierarchy."""
    status = response.status_code
    if status < 400:
        return

    context = {**context, "status_code": status}
    if status in (401, 403):
        raise AuthenticationError("Remote storage rejected the access token", context=context)
    if status == 404:
        raise RemoteNotFoundError("Remote resource not found", context=context)
    raise TransportError(f"Remote storage returned HTTP {status}", context=context)


class DriveStorage:
    """
    Google Drive v3 client.

    Args:
        access_token: OAuth bearer token (defaults to settings.DRIVE_ACCESS_TOKEN)
        base_url: API root (defaults to settings.DRIVE_API_URL)
        timeout: Per-request timeout in seconds
        transport: Optional httpx transport, e.g. httpx.MockTransport in tests
    """

    def __init__(
        self,
        access_token: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.access_token = access_token if access_token is not None else settings.DRIVE_ACCESS_TOKEN
        self.base_url = (base_url or settings.DRIVE_API_URL).rstrip("/")
        self.timeout = timeout or settings.HTTP_TIMEOUT
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        headers = {}
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=self.timeout,
            transport=self.transport,
            follow_redirects=True,
        )

    async def list(self, folder_id: str) -> List[RemoteItem]:
        """
        List the direct children of a folder.

        Raises:
            TransportError: On HTTP or network failure
        """
        items: List[RemoteItem] = []
        params = {
            "q": f"'{folder_id}' in parents and trashed = false",
            "fields": "nextPageToken, files(id, name, mimeType)",
            "pageSize": LIST_PAGE_SIZE,
        }

        async with self._client() as client:
            while True:
                try:
                    response = await client.get("/files", params=params)
                except httpx.HTTPError as e:
                    raise TransportError(
                        "Listing remote folder failed",
                        context={"folder_id": folder_id},
                        original_exception=e
                    )
                _raise_for_status(response, {"folder_id": folder_id})

                payload = response.json()
                items.extend(RemoteItem.from_drive_file(file) for file in payload.get("files", []))

                page_token = payload.get("nextPageToken")
                if not page_token:
                    break
                params["pageToken"] = page_token

        logger.info(f"Listed {len(items)} items in remote folder {folder_id}")
        return items

    @asynccontextmanager
    async def download(self, file_id: str) -> AsyncIterator[RemoteStream]:
        """
        Stream one file's content.

        Usage:
            async with storage.download(file_id) as stream:
                async for chunk in stream.chunks:
                    ...
        """
        async with self._client() as client:
            try:
                async with client.stream("GET", f"/files/{file_id}", params={"alt": "media"}) as response:
                    _raise_for_status(response, {"file_id": file_id})

                    length = response.headers.get("content-length")
                    yield RemoteStream(
                        length=int(length) if length else None,
                        chunks=response.aiter_bytes(DOWNLOAD_CHUNK_SIZE),
                    )
            except httpx.HTTPError as e:
                raise TransportError(
                    "Downloading remote file failed",
                    context={"file_id": file_id},
                    original_exception=e
                )


async def register_remote_archives(
    remote: RemoteStorage,
    repository: Repository,
    folder_id: str
) -> List[Archive]:
    """
    Insert a New archive for every file in the remote folder.

    Idempotent by external id: files registered on an earlier run are
    skipped, whatever their status.

    Returns:
        The archives created by this call
    """
    created: List[Archive] = []

    for item in await remote.list(folder_id):
        if item.is_folder:
            continue
        archive, is_new = await repository.register_archive(item.id, item.name)
        if is_new:
            created.append(archive)

    logger.info(f"Registered {len(created)} new archives from folder {folder_id}")
    return created

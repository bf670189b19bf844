"""
Stream a remote archive into the staging directory.
"""

from pathlib import Path
import asyncio
import re
from core.exceptions import StorageIOError, TransportError
from models import Archive
from pipeline.progress import ProgressSink, discard_progress
from pipeline.remote import RemoteStorage
import logging

logger = logging.getLogger(__name__)

_UNSAFE_NAME_CHARS = re.compile(r"[^\w.\-() ]")


def staging_path_for(archive: Archive, staging_dir: Path) -> Path:
    """`<staging_dir>/<id>_<display name>`, the id prefix keeps equal names apart"""
    safe_name = _UNSAFE_NAME_CHARS.sub("_", archive.display_name) or "archive"
    return Path(staging_dir) / f"{archive.id}_{safe_name}"


def _remove_partial(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning(f"Could not remove partial download {path}: {e}")


async def download_archive(
    archive: Archive,
    remote: RemoteStorage,
    staging_dir: Path,
    progress: ProgressSink = discard_progress
) -> Path:
    """
    Download `archive` to the staging directory.

    Progress is reported as bytes written / content length when the length
    is known. A partial file is removed on failure.

    Returns:
        Path of the staged file

    Raises:
        TransportError: Remote listing or transfer failed
        StorageIOError: Writing the staged file failed
    """
    target = staging_path_for(archive, staging_dir)
    written = 0

    try:
        await asyncio.to_thread(target.parent.mkdir, parents=True, exist_ok=True)
        async with remote.download(archive.external_id) as stream:
            progress(archive.display_name, "downloading", 0.0)
            with open(target, "wb") as handle:
                async for chunk in stream.chunks:
                    await asyncio.to_thread(handle.write, chunk)
                    written += len(chunk)
                    if stream.length:
                        progress(archive.display_name, "downloading", written / stream.length)
    except TransportError:
        await asyncio.to_thread(_remove_partial, target)
        raise
    except OSError as e:
        await asyncio.to_thread(_remove_partial, target)
        raise StorageIOError(
            "Writing staged archive failed",
            context={"path": str(target), "operation": "write"},
            original_exception=e
        )

    progress(archive.display_name, "downloaded", 1.0)
    logger.info(f"Downloaded {archive.display_name} ({written} bytes) to {target}")
    return target

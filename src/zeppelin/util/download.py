"""File downloading utilities used when rehosting attachments."""

import asyncio
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

import requests

from zeppelin.util.logger import get_logger

logger = get_logger("download")

DOWNLOAD_TIMEOUT_SECONDS = 10
RETRY_DELAY_SECONDS = 1.0


@dataclass
class DownloadedFile:
    """A file downloaded to a temporary location.

    Attributes:
        path (Path): Location of the downloaded file on disk.
        delete_fn (Callable[[], None]): Removes the temporary file.
    """
    path: Path
    delete_fn: Callable[[], None]


def _download_to_temp_file(url: str) -> Path:
    """Download ``url`` into a new temporary file. Blocks; run it in a thread."""
    response = requests.get(url, timeout=DOWNLOAD_TIMEOUT_SECONDS, stream=True)
    response.raise_for_status()

    fd, name = tempfile.mkstemp(prefix="zeppelin-")
    try:
        with os.fdopen(fd, "wb") as handle:
            for chunk in response.iter_content(chunk_size=64 * 1024):
                handle.write(chunk)
    except OSError:
        Path(name).unlink(missing_ok=True)
        raise

    return Path(name)


async def download_file(url: str, tries: int = 3) -> DownloadedFile:
    """
    Download a file to a temporary path, retrying on failure.

    Args:
        url (str): URL of the file.
        tries (int): Total number of attempts before giving up.

    Returns:
        DownloadedFile: The downloaded file and a callback that deletes it.

    Raises:
        requests.RequestException: If every attempt fails.
    """
    last_error: Exception | None = None

    for attempt in range(1, tries + 1):
        try:
            path = await asyncio.to_thread(_download_to_temp_file, url)
            logger.debug("[DOWNLOAD] Downloaded %s to %s", url, path)
            return DownloadedFile(path=path, delete_fn=lambda: path.unlink(missing_ok=True))
        except (requests.RequestException, OSError) as exc:
            last_error = exc
            logger.warning("[DOWNLOAD] Attempt %d/%d for %s failed: %s", attempt, tries, url, exc)
            if attempt < tries:
                await asyncio.sleep(RETRY_DELAY_SECONDS)

    raise requests.RequestException(f"Failed to download {url} after {tries} tries") from last_error

"""
Download manager

Hash verified downloads. Content is streamed to a `.part` file next to the
destination and only moved into place after its size and SHA-1 check out.
"""

import asyncio
import os
from dataclasses import dataclass
from typing import Callable, Dict, Optional

import aiofiles
from loguru import logger

from craftlaunch.download.fetcher import FetchClient
from craftlaunch.download.verifier import FileVerifier
from craftlaunch.exceptions import IntegrityError


PART_SUFFIX = ".part"

# (bytes of the current file so far, total bytes of the file or None)
FileProgressHandler = Callable[[int, Optional[int]], None]


@dataclass
class DownloadTask:
    """A single file to fetch"""

    url: str
    destination: str
    expected_sha1: Optional[str] = None
    expected_size: Optional[int] = None

    @property
    def filename(self) -> str:
        return os.path.basename(self.destination)


@dataclass
class DownloadStats:
    """Download statistics"""

    completed: int = 0
    failed: int = 0
    skipped: int = 0
    bytes_downloaded: int = 0


def _remove_quietly(path: str):
    try:
        os.remove(path)
    except FileNotFoundError:
        pass


class DownloadManager:
    """Downloads files through a FetchClient and verifies them"""

    def __init__(self, fetcher: FetchClient):
        self.fetcher = fetcher
        self.verifier = FileVerifier()
        self.stats = DownloadStats()
        # one writer per destination, they share the same .part path
        self._locks: Dict[str, asyncio.Lock] = {}

    async def download(
        self,
        task: DownloadTask,
        on_progress: Optional[FileProgressHandler] = None,
        trust_existing: bool = False,
    ) -> int:
        """
        Download one file.

        Args:
            task: what to fetch and where to put it
            on_progress: called after every chunk
            trust_existing: skip an existing destination without verifying it

        Returns:
            bytes downloaded, 0 when the file was skipped

        Raises:
            IntegrityError: size or SHA-1 mismatch, the partial file is deleted
            TransientNetworkError: retries exhausted
        """
        key = os.path.abspath(task.destination)
        lock = self._locks.setdefault(key, asyncio.Lock())
        async with lock:
            return await self._download(task, on_progress, trust_existing)

    async def _download(
        self,
        task: DownloadTask,
        on_progress: Optional[FileProgressHandler],
        trust_existing: bool,
    ) -> int:
        destination = task.destination
        if os.path.isfile(destination) and (
            trust_existing
            or await self.verifier.is_valid(
                destination, task.expected_sha1, task.expected_size
            )
        ):
            self.stats.skipped += 1
            logger.debug(f"[skip] '{task.filename}' already present")
            return 0

        os.makedirs(os.path.dirname(destination) or ".", exist_ok=True)
        part_path = destination + PART_SUFFIX
        handle = None

        async def reset():
            nonlocal handle
            if handle is not None:
                await handle.close()
            handle = await aiofiles.open(part_path, "wb")

        async def write(chunk: bytes):
            await handle.write(chunk)

        def progress(downloaded: int, total: Optional[int], _percent):
            if on_progress is not None:
                on_progress(downloaded, total)

        logger.debug(f"[download] {task.url} -> {destination}")
        try:
            try:
                size = await self.fetcher.fetch_streaming(
                    task.url, write, on_progress=progress, on_attempt=reset
                )
            finally:
                if handle is not None:
                    await handle.close()
            await self._verify(task, part_path)
        except Exception:
            self.stats.failed += 1
            _remove_quietly(part_path)
            raise

        os.replace(part_path, destination)
        self.stats.completed += 1
        self.stats.bytes_downloaded += size
        logger.debug(f"[done] '{task.filename}' ({size} bytes)")
        return size

    async def _verify(self, task: DownloadTask, path: str):
        if not self.verifier.verify_size(path, task.expected_size):
            actual = self.verifier.get_size(path)
            logger.error(
                f"[error] size mismatch for '{task.filename}': "
                f"expected {task.expected_size}, got {actual}"
            )
            raise IntegrityError(
                f"Size mismatch: {task.filename}",
                context={
                    "file": task.filename,
                    "expected": task.expected_size,
                    "actual": actual,
                },
            )
        if not await self.verifier.verify_sha1(path, task.expected_sha1):
            actual = await self.verifier.calc_sha1(path)
            logger.error(
                f"[error] SHA-1 mismatch for '{task.filename}': "
                f"expected {task.expected_sha1}, got {actual}"
            )
            raise IntegrityError(
                f"SHA-1 mismatch: {task.filename}",
                context={
                    "file": task.filename,
                    "expected": task.expected_sha1,
                    "actual": actual,
                },
            )

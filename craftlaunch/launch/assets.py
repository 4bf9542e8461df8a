"""
Asset resolution

Installs only download the asset index; the objects it lists are fetched
right before launch, for whichever of them are missing on disk.
"""

import asyncio
import json
from typing import Dict, Optional

import aiofiles
from loguru import logger

from craftlaunch.download.manager import DownloadManager, DownloadTask
from craftlaunch.models import LauncherPaths


class AssetResolver:
    """Downloads missing asset objects of an asset index"""

    def __init__(
        self,
        paths: LauncherPaths,
        downloader: DownloadManager,
        objects_url: str,
        max_concurrent: int = 8,
    ):
        self.paths = paths
        self.downloader = downloader
        self.objects_url = objects_url.rstrip("/")
        self.max_concurrent = max_concurrent

    async def resolve(self, index_id: Optional[str]) -> int:
        """
        Download every missing object of an asset index.

        Returns:
            number of objects downloaded
        """
        if not index_id:
            return 0
        index_path = self.paths.asset_indexes_dir / f"{index_id}.json"
        if not index_path.is_file():
            logger.warning(f"[assets] index {index_id} not found, skipping assets")
            return 0

        async with aiofiles.open(index_path, "r", encoding="utf-8") as f:
            index = json.loads(await f.read())

        # several names can share one object
        missing: Dict[str, DownloadTask] = {}
        for obj in (index.get("objects") or {}).values():
            digest = obj["hash"]
            if digest in missing:
                continue
            destination = self.paths.asset_objects_dir / digest[:2] / digest
            if not destination.is_file():
                missing[digest] = DownloadTask(
                    url=f"{self.objects_url}/{digest[:2]}/{digest}",
                    destination=str(destination),
                    expected_sha1=digest,
                    expected_size=obj.get("size"),
                )

        if not missing:
            return 0

        logger.info(f"[assets] downloading {len(missing)} missing object(s)")
        semaphore = asyncio.Semaphore(self.max_concurrent)

        async def fetch(task: DownloadTask):
            async with semaphore:
                await self.downloader.download(task)

        results = await asyncio.gather(
            *(fetch(task) for task in missing.values()), return_exceptions=True
        )
        for result in results:
            if isinstance(result, BaseException):
                raise result
        logger.success(f"[done] {len(missing)} asset object(s) downloaded")
        return len(missing)

"""
Mod loader installer

Fabric and Quilt publish a ready to use launcher profile per (game version,
loader version) on their meta servers. The profile is stored as its own
version directory and its maven libraries go to the shared library store.
"""

import json
import os
from typing import Callable, List, Optional

import aiofiles
from loguru import logger

from craftlaunch.download.fetcher import FetchClient
from craftlaunch.download.manager import DownloadManager, DownloadTask
from craftlaunch.exceptions import APIError, LoaderNotSupportedError, NotFoundError
from craftlaunch.models import LauncherConfig, LoaderKind, VersionDetail


# (bytes downloaded by this call so far)
BytesHandler = Callable[[int], None]


def loader_version_id(kind: LoaderKind, loader_version: str, game_version: str) -> str:
    """Directory name of an installed loader profile"""
    return f"{kind.value}-loader-{loader_version}-{game_version}"


class LoaderInstaller:
    """Installs Fabric-like loaders from their meta servers"""

    def __init__(
        self,
        config: LauncherConfig,
        fetcher: FetchClient,
        downloader: Optional[DownloadManager] = None,
    ):
        self.config = config
        self.paths = config.paths
        self.fetcher = fetcher
        self.downloader = downloader or DownloadManager(fetcher)

    def _meta_url(self, kind: LoaderKind) -> str:
        if kind is LoaderKind.FABRIC:
            return self.config.endpoints.fabric_meta
        if kind is LoaderKind.QUILT:
            return self.config.endpoints.quilt_meta
        raise LoaderNotSupportedError(
            f"{kind.value} cannot be installed by this launcher",
            context={"loader": kind.value},
        )

    async def list_loader_versions(
        self, kind: LoaderKind, game_version: str
    ) -> List[str]:
        """Loader versions available for a game version, newest first"""
        base = self._meta_url(kind)
        try:
            entries = await self.fetcher.fetch_json(
                f"{base}/versions/loader/{game_version}"
            )
        except NotFoundError:
            return []
        return [entry["loader"]["version"] for entry in entries or []]

    async def install(
        self,
        game_version: str,
        kind: LoaderKind,
        loader_version: Optional[str] = None,
        on_bytes: Optional[BytesHandler] = None,
    ) -> str:
        """
        Install a loader on top of a game version.

        Installing the same (game version, loader, loader version) again is a
        no-op.

        Args:
            game_version: vanilla version id
            kind: loader kind
            loader_version: loader version, the newest one when omitted
            on_bytes: receives the running byte count of library downloads

        Returns:
            the installed loader version, its profile is stored under
            `loader_version_id(kind, loader_version, game_version)`
        """
        base = self._meta_url(kind)

        if loader_version is None:
            versions = await self.list_loader_versions(kind, game_version)
            if not versions:
                raise NotFoundError(
                    f"No {kind.value} loader for {game_version}",
                    context={"loader": kind.value, "game_version": game_version},
                )
            loader_version = versions[0]

        profile_id = loader_version_id(kind, loader_version, game_version)
        profile_path = self.paths.version_json(profile_id)
        if profile_path.is_file():
            logger.info(f"[skip] loader {profile_id} already installed")
            return loader_version

        logger.info(f"[loader] installing {kind.value} {loader_version} for {game_version}")
        data = await self.fetcher.fetch_json(
            f"{base}/versions/loader/{game_version}/{loader_version}/profile/json"
        )
        try:
            profile = VersionDetail.from_dict(data)
        except ValueError as e:
            raise APIError(
                f"Invalid {kind.value} profile", context={"error": str(e)}
            )

        downloaded = 0
        for library in profile.libraries:
            base_bytes = downloaded

            def progress(current: int, _total, base_bytes=base_bytes):
                if on_bytes is not None:
                    on_bytes(base_bytes + current)

            downloaded += await self.downloader.download(
                DownloadTask(
                    url=library.url,
                    destination=str(self.paths.libraries_dir / library.artifact_path),
                    expected_sha1=library.sha1,
                    expected_size=library.size,
                ),
                on_progress=progress,
                trust_existing=True,
            )

        os.makedirs(profile_path.parent, exist_ok=True)
        tmp_path = f"{profile_path}.tmp"
        async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
            await f.write(json.dumps(data, indent=2))
        os.replace(tmp_path, profile_path)

        logger.success(f"[done] loader {profile_id} installed")
        return loader_version

    async def load_profile(
        self, game_version: str, kind: LoaderKind, loader_version: str
    ) -> Optional[VersionDetail]:
        """Read an installed loader profile, None if it is not installed"""
        path = self.paths.version_json(
            loader_version_id(kind, loader_version, game_version)
        )
        if not path.is_file():
            return None
        async with aiofiles.open(path, "r", encoding="utf-8") as f:
            return VersionDetail.from_dict(json.loads(await f.read()))

"""
Version resolver and installer

Turns a game version id into a local install: client jar, libraries and
asset index, all hash verified. The version JSON is written last, through a
temp file, so a present `<id>.json` always describes a complete install.
"""

import asyncio
import hashlib
import json
import os
import shutil
from typing import Callable, List, Optional

import aiofiles
from loguru import logger

from craftlaunch.download.fetcher import FetchClient
from craftlaunch.download.manager import DownloadManager, DownloadTask
from craftlaunch.exceptions import APIError, IntegrityError, NotFoundError
from craftlaunch.models import (
    DownloadProgress,
    InstallResult,
    LauncherConfig,
    LoaderKind,
    VersionDescriptor,
    VersionDetail,
    VersionManifest,
)
from craftlaunch.services.loader_installer import LoaderInstaller
from craftlaunch.services.rules import HostPlatform, evaluate_rules


ProgressCallback = Callable[[DownloadProgress], None]


class _ProgressTracker:
    """Monotonic byte counter shared by every download of one install"""

    def __init__(self, total_bytes: int, callback: Optional[ProgressCallback]):
        self.progress = DownloadProgress(total_bytes=total_bytes)
        self.callback = callback
        self._committed = 0

    def status(self, text: str, current_file: Optional[str] = None):
        self.progress.status = text
        self.progress.current_file = current_file
        self._emit()

    def update(self, current: int):
        value = self._committed + current
        if value > self.progress.downloaded_bytes:
            self.progress.downloaded_bytes = value
            self._emit()

    def commit(self, size: int):
        self._committed += size
        self.update(0)

    def finish(self):
        self.progress.is_complete = True
        self.status("Completed")

    def fail(self, message: str):
        self.progress.is_failed = True
        self.progress.error_message = message
        self._emit()

    def _emit(self):
        if self.callback is not None:
            self.callback(self.progress)


class VersionManager:
    """Resolves, installs and removes game versions"""

    def __init__(
        self,
        config: LauncherConfig,
        fetcher: FetchClient,
        downloader: Optional[DownloadManager] = None,
        loader_installer: Optional[LoaderInstaller] = None,
        host: Optional[HostPlatform] = None,
    ):
        self.config = config
        self.paths = config.paths
        self.fetcher = fetcher
        self.downloader = downloader or DownloadManager(fetcher)
        self.loader_installer = loader_installer or LoaderInstaller(
            config, fetcher, self.downloader
        )
        self.host = host
        self._manifest: Optional[VersionManifest] = None

    async def get_manifest(self, refresh: bool = False) -> VersionManifest:
        """Fetch the upstream manifest once and keep it in memory"""
        if self._manifest is None or refresh:
            data = await self.fetcher.fetch_json(self.config.endpoints.version_manifest)
            self._manifest = VersionManifest.from_dict(data)
            logger.debug(
                f"[versions] manifest loaded, {len(self._manifest.versions)} versions"
            )
        return self._manifest

    async def list_versions(self) -> List[VersionDescriptor]:
        manifest = await self.get_manifest()
        for descriptor in manifest.versions:
            descriptor.installed = self.validate_version(descriptor.id)
        return manifest.versions

    def list_installed(self) -> List[str]:
        """Ids of every locally complete version"""
        if not self.paths.versions_dir.is_dir():
            return []
        return sorted(
            entry.name
            for entry in self.paths.versions_dir.iterdir()
            if entry.is_dir() and self.validate_version(entry.name)
        )

    def validate_version(self, version_id: str) -> bool:
        """True if both the version JSON and the client jar exist"""
        return (
            self.paths.version_json(version_id).is_file()
            and self.paths.version_jar(version_id).is_file()
        )

    async def delete_version(self, version_id: str) -> bool:
        """Remove a version directory, False if it did not exist"""
        version_dir = self.paths.version_dir(version_id)
        if not version_dir.is_dir():
            return False
        await asyncio.to_thread(shutil.rmtree, version_dir)
        logger.info(f"[versions] deleted {version_id}")
        return True

    async def load_detail(self, version_id: str) -> VersionDetail:
        """
        Read the cached version JSON.

        Raises:
            NotFoundError: the version is not installed
            ValueError: the cached JSON is invalid
        """
        path = self.paths.version_json(version_id)
        if not path.is_file():
            raise NotFoundError(
                f"Version {version_id} is not installed",
                context={"version": version_id},
            )
        async with aiofiles.open(path, "r", encoding="utf-8") as f:
            content = await f.read()
        return VersionDetail.from_dict(json.loads(content))

    async def _fetch_detail(self, descriptor: VersionDescriptor) -> VersionDetail:
        body = await self.fetcher.fetch(descriptor.manifest_url)
        if descriptor.content_hash:
            actual = hashlib.sha1(body).hexdigest()
            if actual != descriptor.content_hash.lower():
                raise IntegrityError(
                    f"SHA-1 mismatch: {descriptor.id}.json",
                    context={"expected": descriptor.content_hash, "actual": actual},
                )
        try:
            return VersionDetail.from_dict(json.loads(body))
        except ValueError as e:
            raise APIError(
                f"Invalid version JSON for {descriptor.id}",
                context={"version": descriptor.id, "error": str(e)},
            )

    async def install_version(
        self,
        version_id: str,
        loader_kind: Optional[LoaderKind] = None,
        loader_version: Optional[str] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> InstallResult:
        """
        Install a version and optionally a loader on top of it.

        Args:
            version_id: game version id
            loader_kind: loader to install
            loader_version: loader version, newest when omitted
            on_progress: receives the shared DownloadProgress after every change

        Returns:
            InstallResult of the install

        Raises:
            NotFoundError: unknown version
            IntegrityError: a downloaded file does not match its declared hash
            TransientNetworkError: retries exhausted
        """
        tracker = _ProgressTracker(0, on_progress)
        try:
            return await self._install(version_id, loader_kind, loader_version, tracker)
        except Exception as e:
            logger.error(f"[error] install of {version_id} failed: {e}")
            tracker.fail(str(e))
            raise

    async def _install(
        self,
        version_id: str,
        loader_kind: Optional[LoaderKind],
        loader_version: Optional[str],
        tracker: _ProgressTracker,
    ) -> InstallResult:
        tracker.status("Resolving version")
        manifest = await self.get_manifest()
        descriptor = manifest.get(version_id)
        if descriptor is None:
            raise NotFoundError(
                f"Version {version_id} not found in manifest",
                context={"version": version_id},
            )

        tracker.status("Fetching version details")
        detail = await self._fetch_detail(descriptor)
        client = detail.client
        if client is None:
            raise NotFoundError(
                f"Version {version_id} has no client download",
                context={"version": version_id},
            )

        libraries = [
            library
            for library in detail.libraries
            if evaluate_rules(library.platform_rules, self.host)
        ]
        tracker.progress.total_bytes = (
            (client.size or 0)
            + sum(library.size or 0 for library in libraries)
            + ((detail.asset_index.size or 0) if detail.asset_index else 0)
        )

        logger.info(f"[install] {version_id}: client + {len(libraries)} libraries")

        # client jar
        jar_path = self.paths.version_jar(version_id)
        tracker.status("Downloading client", jar_path.name)
        size = await self.downloader.download(
            DownloadTask(client.url, str(jar_path), client.sha1, client.size),
            on_progress=lambda current, _total: tracker.update(current),
        )
        tracker.commit(size)

        # libraries
        for index, library in enumerate(libraries, 1):
            destination = self.paths.libraries_dir / library.artifact_path
            tracker.status(
                f"Downloading libraries ({index}/{len(libraries)})", destination.name
            )
            size = await self.downloader.download(
                DownloadTask(library.url, str(destination), library.sha1, library.size),
                on_progress=lambda current, _total: tracker.update(current),
                trust_existing=True,
            )
            tracker.commit(size)

        # asset index only, objects are resolved at launch
        if detail.asset_index is not None:
            index_ref = detail.asset_index
            index_path = self.paths.asset_indexes_dir / f"{index_ref.id}.json"
            tracker.status("Downloading asset index", index_path.name)
            size = await self.downloader.download(
                DownloadTask(index_ref.url, str(index_path), index_ref.sha1, index_ref.size),
                on_progress=lambda current, _total: tracker.update(current),
            )
            tracker.commit(size)

        if loader_kind is not None:
            tracker.status(f"Installing {loader_kind.value} loader")
            await self.loader_installer.install(
                version_id,
                loader_kind,
                loader_version,
                on_bytes=tracker.update,
            )

        tracker.status("Saving version")
        json_path = self.paths.version_json(version_id)
        tmp_path = f"{json_path}.tmp"
        async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
            await f.write(json.dumps(detail.raw, indent=2))
        os.replace(tmp_path, json_path)

        tracker.finish()
        logger.success(f"[done] version {version_id} installed")
        return InstallResult.successful(
            str(self.paths.version_dir(version_id)),
            tracker.progress.downloaded_bytes,
        )

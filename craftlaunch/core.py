"""
Launcher core

Wires the configuration, entity store and every service together.
"""

import asyncio
import shutil
from typing import List, Optional

from loguru import logger

from craftlaunch.auth import AccountManager, DeviceCodeLogin, FederationChain, InteractiveLogin
from craftlaunch.download import DownloadManager, FetchClient
from craftlaunch.exceptions import NotFoundError
from craftlaunch.launch import AssetResolver, LaunchOrchestrator
from craftlaunch.models import LauncherConfig, LoaderKind, ModPlatform, Profile
from craftlaunch.services import (
    HostPlatform,
    LoaderInstaller,
    ModManager,
    ModrinthClient,
    VersionManager,
)
from craftlaunch.store import EntityStore, JsonEntityStore


class CraftLaunch:
    """Launcher facade"""

    def __init__(
        self,
        config: Optional[LauncherConfig] = None,
        store: Optional[EntityStore] = None,
        login: Optional[InteractiveLogin] = None,
        host: Optional[HostPlatform] = None,
    ):
        self.config = config or LauncherConfig()
        paths = self.config.paths
        endpoints = self.config.endpoints

        self.store = store or JsonEntityStore(paths.store_file)
        self.fetcher = FetchClient.from_config(self.config)
        self.downloader = DownloadManager(self.fetcher)

        self.loaders = LoaderInstaller(self.config, self.fetcher, self.downloader)
        self.versions = VersionManager(
            self.config, self.fetcher, self.downloader, self.loaders, host
        )
        self.registry = ModrinthClient(self.fetcher, endpoints.registry)
        self.mods = ModManager(
            self.config,
            self.store,
            {ModPlatform.MODRINTH: self.registry},
            self.downloader,
        )

        login = login or DeviceCodeLogin(
            self.config, self.fetcher, cache_path=paths.token_cache_file
        )
        self.accounts = AccountManager(
            self.store, FederationChain(endpoints, self.fetcher, login)
        )

        assets = AssetResolver(paths, self.downloader, endpoints.asset_objects)
        self.launcher = LaunchOrchestrator(
            self.config, self.store, self.versions, assets, host
        )

    # profiles

    async def create_profile(
        self,
        name: str,
        version_id: str,
        loader_kind: Optional[LoaderKind] = None,
        loader_version: Optional[str] = None,
        **settings,
    ) -> Profile:
        profile = Profile(
            name=name,
            version_id=version_id,
            loader_kind=loader_kind,
            loader_version=loader_version,
            **settings,
        )
        await self.store.save_profile(profile)
        logger.info(f"[profiles] created {name} ({version_id})")
        return profile

    async def list_profiles(self) -> List[Profile]:
        return await self.store.list_profiles()

    async def get_profile(self, profile_id: str) -> Profile:
        profile = await self.store.get_profile(profile_id)
        if profile is None:
            raise NotFoundError(
                f"Profile {profile_id} not found", context={"profile": profile_id}
            )
        return profile

    async def delete_profile(self, profile_id: str, delete_files: bool = False) -> bool:
        """Delete a profile with its mod records, and its directory if asked"""
        deleted = await self.store.delete_profile(profile_id)
        instance_dir = self.config.paths.instance_dir(profile_id)
        if deleted and delete_files and instance_dir.is_dir():
            await asyncio.to_thread(shutil.rmtree, instance_dir)
        return deleted

    async def close(self):
        await self.fetcher.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

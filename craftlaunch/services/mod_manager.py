"""
Mod manager

Installs, removes, toggles and updates registry mods inside a profile's
`mods/` directory and keeps the installed mod records in the entity store.
"""

import os
from pathlib import Path
from typing import Callable, Dict, List, Optional

from loguru import logger

from craftlaunch.download.manager import DownloadManager, DownloadTask
from craftlaunch.exceptions import (
    CraftLaunchError,
    NoCompatibleVersionError,
    NotFoundError,
    PlatformNotSupportedError,
)
from craftlaunch.models import (
    CompatibilityResult,
    DownloadProgress,
    InstalledMod,
    LauncherConfig,
    ModPlatform,
    ModUpdateInfo,
    Profile,
    SearchResult,
    VersionInfo,
)
from craftlaunch.services.api_client import RegistryClient
from craftlaunch.store import EntityStore


DISABLED_SUFFIX = ".disabled"

ProgressCallback = Callable[[DownloadProgress], None]


def newest_for_game_version(
    versions: List[VersionInfo], game_version: str
) -> Optional[VersionInfo]:
    """The most recently published version supporting `game_version`"""
    candidates = [v for v in versions if game_version in v.game_versions]
    if not candidates:
        return None
    return max(candidates, key=lambda v: v.published_at)


class ModManager:
    """Mod manager"""

    def __init__(
        self,
        config: LauncherConfig,
        store: EntityStore,
        registries: Dict[ModPlatform, RegistryClient],
        downloader: DownloadManager,
    ):
        self.paths = config.paths
        self.store = store
        self.registries = registries
        self.downloader = downloader

    def _registry(self, platform: ModPlatform) -> RegistryClient:
        registry = self.registries.get(platform)
        if registry is None:
            raise PlatformNotSupportedError(
                f"Platform {platform.value} is not supported",
                context={"platform": platform.value},
            )
        return registry

    async def _require_profile(self, profile_id: str) -> Profile:
        profile = await self.store.get_profile(profile_id)
        if profile is None:
            raise NotFoundError(
                f"Profile {profile_id} not found", context={"profile": profile_id}
            )
        return profile

    def mod_path(self, mod: InstalledMod) -> Path:
        """Path of the mod file while it is enabled"""
        return self.paths.mods_dir(mod.profile_id) / mod.file_name

    async def search(
        self,
        query: str,
        platform: ModPlatform = ModPlatform.MODRINTH,
        game_version: Optional[str] = None,
        loader: Optional[str] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> SearchResult:
        """
        Search a registry.

        Raises:
            PlatformNotSupportedError: the platform has no registry client
        """
        registry = self._registry(platform)
        logger.info(f"[mods] searching '{query}' on {platform.value}")
        result = await registry.search(query, game_version, loader, limit, offset)
        logger.info(f"[mods] {len(result.hits)} of {result.total_hits} results")
        return result

    async def list_installed(self, profile_id: str) -> List[InstalledMod]:
        return await self.store.list_mods(profile_id)

    async def install(
        self,
        profile_id: str,
        mod_id: str,
        file_version_id: str,
        platform: ModPlatform = ModPlatform.MODRINTH,
        on_progress: Optional[ProgressCallback] = None,
    ) -> InstalledMod:
        """
        Install one registry version of a mod into a profile.

        Args:
            profile_id: target profile
            mod_id: registry project id or slug
            file_version_id: registry version id
            platform: registry platform
            on_progress: receives a DownloadProgress after every change

        Returns:
            the persisted InstalledMod

        Raises:
            NotFoundError: profile, mod or version does not exist
            IntegrityError: the downloaded file does not match its hash
        """
        progress = DownloadProgress(status="Fetching mod information")

        def report():
            if on_progress is not None:
                on_progress(progress)

        report()
        try:
            mod = await self._install(
                profile_id, mod_id, file_version_id, platform, progress, report
            )
        except Exception as e:
            logger.error(f"[error] failed to install mod {mod_id}: {e}")
            progress.is_failed = True
            progress.error_message = str(e)
            report()
            raise

        progress.status = "Installation complete"
        progress.is_complete = True
        report()
        logger.success(f"[done] installed {mod.name} {mod.version}")
        return mod

    async def _install(
        self,
        profile_id: str,
        mod_id: str,
        file_version_id: str,
        platform: ModPlatform,
        progress: DownloadProgress,
        report: Callable[[], None],
    ) -> InstalledMod:
        profile = await self._require_profile(profile_id)
        registry = self._registry(platform)

        project = await registry.get_project(mod_id)
        if project is None:
            raise NotFoundError(f"Mod {mod_id} not found", context={"mod": mod_id})

        version = await registry.get_version(file_version_id)
        if version is None or version.project_id not in (project.id, ""):
            raise NotFoundError(
                f"Version {file_version_id} of mod {mod_id} not found",
                context={"mod": mod_id, "version": file_version_id},
            )
        file = version.primary_file
        if file is None:
            raise NotFoundError(
                f"Version {file_version_id} has no files",
                context={"mod": mod_id, "version": file_version_id},
            )

        if await self.store.find_mod(profile.id, project.id) is not None:
            raise CraftLaunchError(
                f"{project.title} is already installed in {profile.name}",
                code="MOD_ALREADY_INSTALLED",
                context={"profile": profile.id, "mod": project.id},
            )

        destination = self.paths.mods_dir(profile.id) / file.filename
        progress.status = f"Downloading {file.filename}"
        progress.current_file = file.filename
        progress.total_bytes = file.size
        report()

        def on_bytes(current: int, total: Optional[int]):
            progress.downloaded_bytes = current
            if total:
                progress.total_bytes = total
            report()

        await self.downloader.download(
            DownloadTask(file.url, str(destination), file.sha1, file.size or None),
            on_progress=on_bytes,
        )

        installed = InstalledMod(
            profile_id=profile.id,
            registry_mod_id=project.id,
            name=project.title,
            version=version.version,
            file_name=file.filename,
            platform=platform,
            file_version_id=version.id,
            latest_version=version.version,
        )
        try:
            return await self.store.save_mod(installed)
        except ValueError:
            destination.unlink(missing_ok=True)
            raise

    async def uninstall(self, installed_mod_id: str) -> bool:
        """
        Delete the mod file, its disabled variant and the record.

        Returns:
            False if no such installed mod exists
        """
        mod = await self.store.get_mod(installed_mod_id)
        if mod is None:
            return False

        path = self.mod_path(mod)
        for candidate in (path, Path(f"{path}{DISABLED_SUFFIX}")):
            if candidate.exists():
                candidate.unlink()

        await self.store.delete_mod(mod.id)
        logger.info(f"[mods] uninstalled {mod.name}")
        return True

    async def toggle(self, installed_mod_id: str, enabled: bool) -> bool:
        """
        Enable or disable a mod by renaming its file.

        Returns:
            False if no such installed mod exists
        """
        mod = await self.store.get_mod(installed_mod_id)
        if mod is None:
            return False

        path = self.mod_path(mod)
        disabled_path = Path(f"{path}{DISABLED_SUFFIX}")
        if enabled and disabled_path.exists() and not path.exists():
            os.rename(disabled_path, path)
        elif not enabled and path.exists() and not disabled_path.exists():
            os.rename(path, disabled_path)

        mod.enabled = enabled
        await self.store.save_mod(mod)
        logger.info(f"[mods] {'enabled' if enabled else 'disabled'} {mod.name}")
        return True

    async def check_for_updates(self, profile_id: str) -> List[ModUpdateInfo]:
        """
        Look for newer registry versions of every mod of a profile.

        The discovered latest version and update flag are saved on each mod
        record. A failing mod is logged and skipped.
        """
        profile = await self._require_profile(profile_id)
        updates = []

        for mod in await self.store.list_mods(profile.id):
            registry = self.registries.get(mod.platform)
            if registry is None:
                logger.debug(f"[update] skipping {mod.name}, {mod.platform.value} unsupported")
                continue
            try:
                versions = await registry.get_project_versions(
                    mod.registry_mod_id, game_versions=[profile.version_id]
                )
                latest = newest_for_game_version(versions, profile.version_id)
                if latest is None:
                    continue

                has_update = latest.version != mod.version
                if has_update:
                    updates.append(
                        ModUpdateInfo(
                            installed_mod_id=mod.id,
                            mod_name=mod.name,
                            current_version=mod.version,
                            latest_version=latest.version,
                            latest_version_id=latest.id,
                            release_date=latest.published_at,
                        )
                    )
                if mod.latest_version != latest.version or mod.has_update != has_update:
                    mod.latest_version = latest.version
                    mod.has_update = has_update
                    await self.store.save_mod(mod)
            except Exception as e:
                logger.warning(f"[update] failed to check {mod.name}: {e}")

        logger.info(f"[update] {len(updates)} update(s) for {profile.name}")
        return updates

    async def update(
        self, installed_mod_id: str, on_progress: Optional[ProgressCallback] = None
    ) -> InstalledMod:
        """
        Replace an installed mod with its newest compatible version.

        Raises:
            NotFoundError: the installed mod or its profile does not exist
            NoCompatibleVersionError: nothing to update to, the mod is kept
        """
        mod = await self.store.get_mod(installed_mod_id)
        if mod is None:
            raise NotFoundError(
                f"Installed mod {installed_mod_id} not found",
                context={"mod": installed_mod_id},
            )
        profile = await self._require_profile(mod.profile_id)
        registry = self._registry(mod.platform)

        versions = await registry.get_project_versions(
            mod.registry_mod_id, game_versions=[profile.version_id]
        )
        latest = newest_for_game_version(versions, profile.version_id)
        if latest is None or latest.primary_file is None:
            raise NoCompatibleVersionError(
                f"No version of {mod.name} for {profile.version_id}",
                context={"mod": mod.registry_mod_id, "game_version": profile.version_id},
            )

        await self.uninstall(mod.id)
        updated = await self.install(
            profile.id, mod.registry_mod_id, latest.id, mod.platform, on_progress
        )
        logger.info(f"[update] {mod.name}: {mod.version} -> {updated.version}")
        return updated

    async def check_compatibility(
        self,
        profile_id: str,
        mod_id: str,
        platform: ModPlatform = ModPlatform.MODRINTH,
    ) -> CompatibilityResult:
        """
        Collect every reason a mod cannot be installed into a profile.
        """
        result = CompatibilityResult()

        profile = await self.store.get_profile(profile_id)
        if profile is None:
            result.add_issue("Profile not found")
            return result

        registry = self.registries.get(platform)
        if registry is None:
            result.add_issue(f"Platform {platform.value} is not supported")
            return result

        project = await registry.get_project(mod_id)
        if project is None:
            result.add_issue("Mod not found")
            return result

        versions = await registry.get_project_versions(
            mod_id, game_versions=[profile.version_id]
        )
        candidate = newest_for_game_version(versions, profile.version_id)
        if candidate is None:
            result.add_issue(f"No version compatible with {profile.version_id}")

        if profile.loader_kind is not None:
            supported = candidate.loaders if candidate else project.loaders
            if profile.loader_kind.value not in [s.lower() for s in supported]:
                result.add_issue(
                    f"Mod requires a different loader. Supported: {', '.join(supported)}"
                )

        if candidate is not None:
            for dep in candidate.dependencies:
                if not dep.project_id:
                    continue
                installed = await self.store.find_mod(profile.id, dep.project_id)
                if dep.dependency_type == "required" and installed is None:
                    result.missing_dependencies.append(dep)
                    result.add_issue(f"Missing required dependency {dep.project_id}")
                elif dep.dependency_type == "incompatible" and installed is not None:
                    result.conflicts.append(installed.name)
                    result.add_issue(f"Incompatible with installed mod {installed.name}")

        logger.info(
            f"[mods] compatibility of {mod_id}: {result.is_compatible}, "
            f"{len(result.issues)} issue(s)"
        )
        return result

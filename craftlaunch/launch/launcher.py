"""
Launch orchestrator

Resolves a profile and the active account, makes sure the version, assets
and loader are present, assembles the classpath and arguments, spawns the
game and keeps a LaunchSession per process.
"""

import asyncio
from typing import Callable, List, Optional

from loguru import logger

from craftlaunch.exceptions import CraftLaunchError, LaunchError, NotFoundError
from craftlaunch.launch.arguments import (
    build_classpath,
    enabled_mod_files,
    game_arguments,
    jvm_arguments,
)
from craftlaunch.launch.assets import AssetResolver
from craftlaunch.launch.monitor import CrashClassifier, OutputPump, SessionLog, watch
from craftlaunch.launch.session import LaunchSession, SessionRegistry
from craftlaunch.launch.state import LaunchState, LaunchStateMachine
from craftlaunch.models import (
    LauncherConfig,
    LaunchProgress,
    Profile,
    VersionDetail,
)
from craftlaunch.models.entities import utcnow
from craftlaunch.services.rules import HostPlatform
from craftlaunch.services.version_manager import VersionManager
from craftlaunch.store import EntityStore


INSTANCE_DIRS = ("saves", "resourcepacks", "shaderpacks", "screenshots", "mods")
TOTAL_STEPS = 7
# StreamReader line limit for game output
OUTPUT_LIMIT = 1024 * 1024

ProgressCallback = Callable[[LaunchProgress], None]
StateCallback = Callable[[LaunchState], None]


class LaunchOrchestrator:
    """Launches profiles and tracks the running games"""

    def __init__(
        self,
        config: LauncherConfig,
        store: EntityStore,
        versions: VersionManager,
        assets: Optional[AssetResolver] = None,
        host: Optional[HostPlatform] = None,
    ):
        self.config = config
        self.paths = config.paths
        self.store = store
        self.versions = versions
        self.assets = assets
        self.host = host
        self.sessions = SessionRegistry()

    async def launch(
        self,
        profile_id: str,
        on_progress: Optional[ProgressCallback] = None,
        on_state: Optional[StateCallback] = None,
    ) -> LaunchSession:
        """
        Launch a profile.

        Args:
            profile_id: profile to launch
            on_progress: receives LaunchProgress after every step
            on_state: receives every state transition of this attempt

        Returns:
            the session of the spawned process

        Raises:
            LaunchError: the attempt failed, `code` tells why; unexpected
                errors are wrapped with code PREPARATION_FAILED
            CraftLaunchError: a download or install needed for the launch failed
        """
        machine = LaunchStateMachine(on_state)
        progress = LaunchProgress(total_steps=TOTAL_STEPS)

        def step(number: int, status: str):
            progress.step = number
            progress.status = status
            logger.info(f"[launch] ({number}/{TOTAL_STEPS}) {status}")
            if on_progress is not None:
                on_progress(progress)

        try:
            session = await self._launch(profile_id, machine, step)
        except Exception as e:
            error = e
            if not isinstance(e, CraftLaunchError):
                error = LaunchError(
                    LaunchError.PREPARATION_FAILED,
                    f"Launch preparation failed: {e!r}",
                    context={"profile": profile_id},
                )
            if machine.state is not LaunchState.RUNNING:
                machine.fail(error.message)
            progress.is_failed = True
            progress.error_message = error.message
            if on_progress is not None:
                on_progress(progress)
            logger.error(f"[launch] failed: {error}")
            if error is e:
                raise
            raise error from e

        progress.is_complete = True
        step(TOTAL_STEPS, "Game started")
        return session

    async def _launch(
        self,
        profile_id: str,
        machine: LaunchStateMachine,
        step: Callable[[int, str], None],
    ) -> LaunchSession:
        machine.advance(LaunchState.PREPARING)
        step(1, "Loading profile")
        profile = await self.store.get_profile(profile_id)
        if profile is None:
            raise LaunchError(
                LaunchError.INSTANCE_NOT_FOUND,
                f"Profile {profile_id} not found",
                context={"profile": profile_id},
            )

        step(2, "Loading account")
        account = await self.store.get_active_account()
        if account is None:
            raise LaunchError(LaunchError.NO_ACCOUNT, "No active account")

        step(3, "Preparing game files")
        game_dir = self.paths.instance_dir(profile.id)
        for name in INSTANCE_DIRS:
            (game_dir / name).mkdir(parents=True, exist_ok=True)
        natives_dir = self.paths.natives_dir(profile.version_id)

        machine.advance(LaunchState.DOWNLOADING)
        if not self.paths.version_json(profile.version_id).is_file():
            try:
                await self.versions.install_version(profile.version_id)
            except NotFoundError as e:
                raise LaunchError(
                    LaunchError.VERSION_NOT_FOUND,
                    f"Version {profile.version_id} not found",
                    context={"version": profile.version_id},
                ) from e
        detail = await self._load_detail(profile.version_id)
        natives_dir.mkdir(parents=True, exist_ok=True)
        if self.assets is not None and self.config.resolve_assets:
            await self.assets.resolve(detail.asset_index.id if detail.asset_index else None)

        machine.advance(LaunchState.INSTALLING)
        loader_profile = await self._ensure_loader(profile)

        machine.advance(LaunchState.LAUNCHING)
        step(4, "Building class path")
        mods = await self.store.list_enabled_mods(profile.id)
        classpath = build_classpath(
            detail,
            self.paths.libraries_dir,
            self.paths.version_jar(profile.version_id),
            enabled_mod_files(mods, self.paths.mods_dir(profile.id)),
            loader_profile,
            self.host,
        )

        step(5, "Generating launch arguments")
        main_class = loader_profile.main_class if loader_profile else detail.main_class
        args = jvm_arguments(profile, natives_dir, classpath, main_class)
        args += game_arguments(
            profile, account, detail, game_dir, self.paths.assets_dir, self.config
        )

        step(6, "Starting game process")
        session = await self._spawn(profile, args, game_dir, machine)

        profile.last_played = utcnow()
        await self.store.save_profile(profile)
        return session

    async def _load_detail(self, version_id: str) -> VersionDetail:
        try:
            return await self.versions.load_detail(version_id)
        except NotFoundError as e:
            raise LaunchError(
                LaunchError.VERSION_NOT_FOUND,
                f"Version {version_id} is not installed",
                context={"version": version_id},
            ) from e
        except ValueError as e:
            raise LaunchError(
                LaunchError.INVALID_VERSION_JSON,
                f"Invalid version JSON for {version_id}: {e}",
                context={"version": version_id},
            ) from e

    async def _ensure_loader(self, profile: Profile) -> Optional[VersionDetail]:
        if profile.loader_kind is None:
            return None
        installer = self.versions.loader_installer
        if profile.loader_version:
            loaded = await installer.load_profile(
                profile.version_id, profile.loader_kind, profile.loader_version
            )
            if loaded is not None:
                return loaded

        profile.loader_version = await installer.install(
            profile.version_id, profile.loader_kind, profile.loader_version
        )
        return await installer.load_profile(
            profile.version_id, profile.loader_kind, profile.loader_version
        )

    async def _spawn(
        self,
        profile: Profile,
        args: List[str],
        game_dir,
        machine: LaunchStateMachine,
    ) -> LaunchSession:
        java = self.config.java_path
        logger.debug(f"[launch] {java} {' '.join(args)}")
        try:
            process = await asyncio.create_subprocess_exec(
                java,
                *args,
                cwd=str(game_dir),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                limit=OUTPUT_LIMIT,
            )
        except OSError as e:
            raise LaunchError(
                LaunchError.PROCESS_START_FAILED,
                f"Failed to start {java}: {e}",
                context={"java": java},
            ) from e

        session = LaunchSession(pid=process.pid, profile_id=profile.id, process=process)
        pump = OutputPump()
        classifier = CrashClassifier(session)
        pump.subscribe(SessionLog(session).on_line)
        pump.subscribe(classifier.on_line)

        session.watcher = asyncio.create_task(
            watch(process, session, pump, classifier, lambda _s: machine.finish()),
            name=f"game-{process.pid}",
        )
        self.sessions.add(session)
        machine.advance(LaunchState.RUNNING)
        logger.success(f"[launch] game started, pid {process.pid}")
        return session

    def get_running(self) -> List[LaunchSession]:
        return self.sessions.running()

    def get_session(self, pid: int) -> Optional[LaunchSession]:
        return self.sessions.get(pid)

    async def wait(self, pid: int) -> Optional[int]:
        """Wait for a game to exit, None if the pid is unknown"""
        session = self.sessions.get(pid)
        if session is None:
            return None
        return await session.wait()

    async def terminate(self, pid: int) -> bool:
        """Kill a game and wait for it, False if the pid is unknown"""
        session = self.sessions.get(pid)
        if session is None:
            return False
        if session.is_running and session.process is not None:
            try:
                session.process.kill()
            except ProcessLookupError:
                pass
            await session.wait()
        logger.info(f"[launch] terminated game {pid}")
        return True

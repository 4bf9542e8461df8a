"""
Launch arguments

Classpath assembly and the JVM / game argument vectors.
"""

import os
from pathlib import Path
from typing import List, Optional

from loguru import logger

from craftlaunch.exceptions import LaunchError
from craftlaunch.models import (
    Account,
    InstalledMod,
    LauncherConfig,
    Library,
    Profile,
    VersionDetail,
)
from craftlaunch.services.rules import HostPlatform, evaluate_rules


GC_FLAGS = [
    "-XX:+UseG1GC",
    "-XX:+UnlockExperimentalVMOptions",
    "-XX:G1NewSizePercent=20",
    "-XX:G1ReservePercent=20",
    "-XX:MaxGCPauseMillis=50",
    "-XX:G1HeapRegionSize=32M",
]


def _library_key(library: Library) -> str:
    """group:artifact[:classifier], the maven name without its version"""
    parts = library.maven_name.split(":")
    if len(parts) < 3:
        return library.artifact_path
    return ":".join(parts[:2] + parts[3:])


def build_classpath(
    detail: VersionDetail,
    libraries_dir: Path,
    client_jar: Path,
    mod_files: List[Path],
    loader_profile: Optional[VersionDetail] = None,
    host: Optional[HostPlatform] = None,
) -> List[str]:
    """
    Classpath entries in launch order.

    Libraries come first (loader libraries before vanilla ones, the first of
    two versions of the same artifact wins), then the client jar, then the
    mod files. Libraries missing on disk are skipped, a missing client jar is
    an error.

    Raises:
        LaunchError: CLIENT_JAR_NOT_FOUND
    """
    libraries = list(loader_profile.libraries) if loader_profile else []
    libraries.extend(detail.libraries)

    entries: List[str] = []
    seen = set()
    for library in libraries:
        key = _library_key(library)
        if key in seen or not evaluate_rules(library.platform_rules, host):
            continue
        path = libraries_dir / library.artifact_path
        if not path.is_file():
            logger.debug(f"[launch] library not on disk, skipped: {library.maven_name}")
            continue
        seen.add(key)
        entries.append(str(path))

    if not client_jar.is_file():
        raise LaunchError(
            LaunchError.CLIENT_JAR_NOT_FOUND,
            f"Client jar not found: {client_jar}",
            context={"path": str(client_jar)},
        )
    entries.append(str(client_jar))

    for mod_file in mod_files:
        if mod_file.is_file():
            entries.append(str(mod_file))
        else:
            logger.warning(f"[launch] mod file missing, skipped: {mod_file.name}")

    return entries


def enabled_mod_files(mods: List[InstalledMod], mods_dir: Path) -> List[Path]:
    return [mods_dir / mod.file_name for mod in mods if mod.enabled]


def jvm_arguments(
    profile: Profile,
    natives_dir: Path,
    classpath: List[str],
    main_class: str,
) -> List[str]:
    args = [
        f"-Xmx{profile.memory_max}M",
        f"-Xms{profile.memory_min}M",
        f"-Djava.library.path={natives_dir}",
    ]
    args.extend(GC_FLAGS)
    args.extend(profile.custom_jvm_args)
    args.extend(["-cp", os.pathsep.join(classpath), main_class])
    return args


def game_arguments(
    profile: Profile,
    account: Account,
    detail: VersionDetail,
    game_dir: Path,
    assets_dir: Path,
    config: LauncherConfig,
) -> List[str]:
    asset_index = detail.asset_index.id if detail.asset_index else detail.id
    args = [
        "--username", account.username,
        "--version", profile.version_id,
        "--gameDir", str(game_dir),
        "--assetsDir", str(assets_dir),
        "--assetIndex", asset_index,
        "--uuid", account.game_uuid,
        "--accessToken", account.access_token or "0",
        "--userType", account.account_kind.user_type,
        "--versionType", detail.release_type,
    ]

    fullscreen = profile.fullscreen if profile.fullscreen is not None else config.fullscreen
    if fullscreen:
        args.append("--fullscreen")
    else:
        args.extend([
            "--width", str(profile.window_width or config.window_width),
            "--height", str(profile.window_height or config.window_height),
        ])

    args.extend(profile.custom_game_args)
    return args

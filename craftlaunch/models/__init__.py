"""
craftlaunch data models

Configuration, version, entity and registry model definitions.
"""

from craftlaunch.models.config import (
    EndpointsConfig,
    LauncherConfig,
    LauncherPaths,
)
from craftlaunch.models.entities import (
    Account,
    AccountKind,
    DownloadProgress,
    InstallResult,
    InstalledMod,
    LaunchProgress,
    LoaderKind,
    ModPlatform,
    Profile,
)
from craftlaunch.models.registry import (
    CompatibilityResult,
    DependencyInfo,
    FileInfo,
    ModSummary,
    ModUpdateInfo,
    ProjectInfo,
    ProjectType,
    SearchResult,
    VersionInfo,
)
from craftlaunch.models.version import (
    Artifact,
    AssetIndexRef,
    Library,
    OsConstraint,
    PlatformRule,
    RuleAction,
    VersionDescriptor,
    VersionDetail,
    VersionManifest,
    maven_path,
)

__all__ = [
    # configuration
    "EndpointsConfig",
    "LauncherConfig",
    "LauncherPaths",
    # entities
    "Account",
    "AccountKind",
    "DownloadProgress",
    "InstallResult",
    "InstalledMod",
    "LaunchProgress",
    "LoaderKind",
    "ModPlatform",
    "Profile",
    # registry
    "CompatibilityResult",
    "DependencyInfo",
    "FileInfo",
    "ModSummary",
    "ModUpdateInfo",
    "ProjectInfo",
    "ProjectType",
    "SearchResult",
    "VersionInfo",
    # versions
    "Artifact",
    "AssetIndexRef",
    "Library",
    "OsConstraint",
    "PlatformRule",
    "RuleAction",
    "VersionDescriptor",
    "VersionDetail",
    "VersionManifest",
    "maven_path",
]

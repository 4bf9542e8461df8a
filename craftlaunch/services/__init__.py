"""
craftlaunch services

Business logic: registry client, version installer, loader installer, mod
manager and platform rules.
"""

from craftlaunch.services.api_client import ModrinthClient, RegistryClient
from craftlaunch.services.loader_installer import LoaderInstaller, loader_version_id
from craftlaunch.services.mod_manager import DISABLED_SUFFIX, ModManager
from craftlaunch.services.rules import HostPlatform, evaluate_rules
from craftlaunch.services.version_manager import VersionManager

__all__ = [
    "ModrinthClient",
    "RegistryClient",
    "LoaderInstaller",
    "loader_version_id",
    "DISABLED_SUFFIX",
    "ModManager",
    "HostPlatform",
    "evaluate_rules",
    "VersionManager",
]

"""
craftlaunch

Minecraft launcher core: version installation, Microsoft account federation,
Modrinth mod management and game process supervision.
"""

from craftlaunch.core import CraftLaunch
from craftlaunch.exceptions import CraftLaunchError
from craftlaunch.models import LauncherConfig

__version__ = "0.1.0"

__all__ = [
    "CraftLaunch",
    "CraftLaunchError",
    "LauncherConfig",
    "__version__",
]

"""
Configuration models

Launcher configuration loaded from TOML, JSON or YAML files.
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import toml
import yaml

from craftlaunch.exceptions import ConfigError, ConfigParseError


DEFAULT_BASE_DIR = Path.home() / ".craftlaunch"
DEFAULT_USER_AGENT = "craftlaunch/0.1.0 (+https://github.com/craftlaunch/craftlaunch)"
# Public client id registered for the device-code flow.
DEFAULT_CLIENT_ID = "00000000402b5328"


@dataclass
class EndpointsConfig:
    """Every upstream URL used by the launcher"""

    version_manifest: str = (
        "https://launchermeta.mojang.com/mc/game/version_manifest.json"
    )
    asset_objects: str = "https://resources.download.minecraft.net"
    registry: str = "https://api.modrinth.com/v2"
    fabric_meta: str = "https://meta.fabricmc.net/v2"
    quilt_meta: str = "https://meta.quiltmc.org/v3"
    oauth_device_code: str = (
        "https://login.microsoftonline.com/consumers/oauth2/v2.0/devicecode"
    )
    oauth_token: str = "https://login.microsoftonline.com/consumers/oauth2/v2.0/token"
    xbox_user_auth: str = "https://user.auth.xboxlive.com/user/authenticate"
    xsts_authorize: str = "https://xsts.auth.xboxlive.com/xsts/authorize"
    game_login: str = (
        "https://api.minecraftservices.com/authentication/login_with_xbox"
    )
    game_profile: str = "https://api.minecraftservices.com/minecraft/profile"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EndpointsConfig":
        known = set(cls.__dataclass_fields__)
        unknown = set(data) - known
        if unknown:
            raise ConfigError(
                f"Unknown endpoints: {', '.join(sorted(unknown))}",
                context={"keys": sorted(unknown)},
            )
        return cls(**{k: str(v).rstrip("/") for k, v in data.items()})


@dataclass
class LauncherPaths:
    """On-disk layout rooted at the launcher base directory"""

    base_dir: Path

    @property
    def versions_dir(self) -> Path:
        return self.base_dir / "versions"

    @property
    def libraries_dir(self) -> Path:
        return self.base_dir / "libraries"

    @property
    def assets_dir(self) -> Path:
        return self.base_dir / "assets"

    @property
    def asset_indexes_dir(self) -> Path:
        return self.assets_dir / "indexes"

    @property
    def asset_objects_dir(self) -> Path:
        return self.assets_dir / "objects"

    @property
    def instances_dir(self) -> Path:
        return self.base_dir / "instances"

    @property
    def store_file(self) -> Path:
        return self.base_dir / "store.json"

    @property
    def token_cache_file(self) -> Path:
        return self.base_dir / "token_cache.json"

    def version_dir(self, version_id: str) -> Path:
        return self.versions_dir / version_id

    def version_json(self, version_id: str) -> Path:
        return self.version_dir(version_id) / f"{version_id}.json"

    def version_jar(self, version_id: str) -> Path:
        return self.version_dir(version_id) / f"{version_id}.jar"

    def natives_dir(self, version_id: str) -> Path:
        return self.version_dir(version_id) / "natives"

    def instance_dir(self, profile_id: str) -> Path:
        return self.instances_dir / profile_id

    def mods_dir(self, profile_id: str) -> Path:
        return self.instance_dir(profile_id) / "mods"


@dataclass
class LauncherConfig:
    """Launcher configuration"""

    base_dir: Path = DEFAULT_BASE_DIR
    java_path: str = "java"
    max_retries: int = 3
    retry_delay: float = 1.0
    user_agent: str = DEFAULT_USER_AGENT
    client_id: str = DEFAULT_CLIENT_ID
    window_width: int = 854
    window_height: int = 480
    fullscreen: bool = False
    resolve_assets: bool = True
    endpoints: EndpointsConfig = field(default_factory=EndpointsConfig)

    @property
    def paths(self) -> LauncherPaths:
        return LauncherPaths(Path(self.base_dir))

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "LauncherConfig":
        """
        Build a configuration from a plain dict.

        Args:
            data: parsed configuration, usually the `[launcher]` table

        Raises:
            ConfigError: a value has the wrong type or range
        """
        data = dict(data or {})
        data = dict(data.get("launcher", data))

        endpoints = EndpointsConfig.from_dict(data.pop("endpoints", {}) or {})

        known = set(cls.__dataclass_fields__) - {"endpoints"}
        unknown = set(data) - known
        if unknown:
            raise ConfigError(
                f"Unknown configuration keys: {', '.join(sorted(unknown))}",
                context={"keys": sorted(unknown)},
            )

        config = cls(endpoints=endpoints, **data)
        config.base_dir = Path(config.base_dir).expanduser()
        config.validate()
        return config

    @classmethod
    def load(cls, config_path: str) -> "LauncherConfig":
        """Load the configuration file, the format is chosen by suffix"""
        path = Path(config_path)
        if not path.exists():
            raise ConfigError(f"Config file does not exist: {config_path}")

        suffix = path.suffix.lower()
        try:
            if suffix == ".toml":
                data = toml.load(str(path))
            elif suffix == ".json":
                data = json.loads(path.read_text(encoding="utf-8"))
            elif suffix in (".yaml", ".yml"):
                data = yaml.safe_load(path.read_text(encoding="utf-8"))
            else:
                raise ConfigParseError(f"Unsupported config format: {suffix}")
        except (toml.TomlDecodeError, json.JSONDecodeError, yaml.YAMLError) as e:
            raise ConfigParseError(
                f"Failed to parse {config_path}", context={"error": str(e)}
            )

        return cls.from_dict(data)

    def validate(self):
        if not isinstance(self.max_retries, int) or self.max_retries < 0:
            raise ConfigError("max_retries must be a non-negative integer")
        if not isinstance(self.retry_delay, (int, float)) or self.retry_delay < 0:
            raise ConfigError("retry_delay must not be negative")
        sizes = (self.window_width, self.window_height)
        if not all(isinstance(s, int) and s > 0 for s in sizes):
            raise ConfigError("window size must be positive")
        if not self.java_path:
            raise ConfigError("java_path must not be empty")

"""
Persisted entities and progress records

Profiles, installed mods and accounts as stored by the entity store, plus
the ephemeral progress/result records reported to callers.
"""

import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


def _new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _dt_to_str(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _dt_from_str(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class LoaderKind(Enum):
    """Mod loader"""

    FABRIC = "fabric"
    QUILT = "quilt"
    FORGE = "forge"
    NEOFORGE = "neoforge"


class ModPlatform(Enum):
    """Mod registry platform"""

    MODRINTH = "modrinth"
    CURSEFORGE = "curseforge"


class AccountKind(Enum):
    """Account type"""

    MICROSOFT = "microsoft"
    OFFLINE = "offline"

    @property
    def user_type(self) -> str:
        """Value of the game's `--userType` argument"""
        return "msa" if self is AccountKind.MICROSOFT else "legacy"


@dataclass
class Profile:
    """A user configured game instance"""

    name: str
    version_id: str
    loader_kind: Optional[LoaderKind] = None
    loader_version: Optional[str] = None
    memory_min: int = 512
    memory_max: int = 2048
    custom_jvm_args: List[str] = field(default_factory=list)
    custom_game_args: List[str] = field(default_factory=list)
    window_width: Optional[int] = None
    window_height: Optional[int] = None
    fullscreen: Optional[bool] = None
    last_played: Optional[datetime] = None
    created_at: datetime = field(default_factory=utcnow)
    id: str = field(default_factory=_new_id)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["loader_kind"] = self.loader_kind.value if self.loader_kind else None
        data["last_played"] = _dt_to_str(self.last_played)
        data["created_at"] = _dt_to_str(self.created_at)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Profile":
        data = dict(data)
        if data.get("loader_kind"):
            data["loader_kind"] = LoaderKind(data["loader_kind"])
        data["last_played"] = _dt_from_str(data.get("last_played"))
        data["created_at"] = _dt_from_str(data.get("created_at")) or utcnow()
        return cls(**data)


@dataclass
class InstalledMod:
    """A mod file installed into a profile"""

    profile_id: str
    registry_mod_id: str
    name: str
    version: str
    file_name: str
    platform: ModPlatform = ModPlatform.MODRINTH
    enabled: bool = True
    file_version_id: Optional[str] = None
    latest_version: Optional[str] = None
    has_update: bool = False
    installed_at: datetime = field(default_factory=utcnow)
    id: str = field(default_factory=_new_id)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["platform"] = self.platform.value
        data["installed_at"] = _dt_to_str(self.installed_at)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "InstalledMod":
        data = dict(data)
        data["platform"] = ModPlatform(data.get("platform", "modrinth"))
        data["installed_at"] = _dt_from_str(data.get("installed_at")) or utcnow()
        return cls(**data)


@dataclass
class Account:
    """A game account"""

    username: str
    game_uuid: str
    account_kind: AccountKind = AccountKind.MICROSOFT
    email: str = ""
    access_token: str = ""
    refresh_handle: Optional[str] = None
    token_expiry: Optional[datetime] = None
    is_active: bool = False
    created_at: datetime = field(default_factory=utcnow)
    id: str = field(default_factory=_new_id)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["account_kind"] = self.account_kind.value
        data["token_expiry"] = _dt_to_str(self.token_expiry)
        data["created_at"] = _dt_to_str(self.created_at)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Account":
        data = dict(data)
        data["account_kind"] = AccountKind(data.get("account_kind", "microsoft"))
        data["token_expiry"] = _dt_from_str(data.get("token_expiry"))
        data["created_at"] = _dt_from_str(data.get("created_at")) or utcnow()
        return cls(**data)


@dataclass
class DownloadProgress:
    """Progress snapshot of an install operation"""

    downloaded_bytes: int = 0
    total_bytes: int = 0
    current_file: Optional[str] = None
    status: Optional[str] = None
    is_complete: bool = False
    is_failed: bool = False
    error_message: Optional[str] = None

    @property
    def percentage(self) -> float:
        if self.total_bytes > 0:
            return self.downloaded_bytes / self.total_bytes * 100
        return 0.0


@dataclass
class InstallResult:
    """Outcome of a successful version install, failures raise"""

    success: bool
    version_dir: Optional[str] = None
    bytes_downloaded: int = 0

    @classmethod
    def successful(cls, version_dir: str, bytes_downloaded: int) -> "InstallResult":
        return cls(True, version_dir=version_dir, bytes_downloaded=bytes_downloaded)


@dataclass
class LaunchProgress:
    """Progress snapshot of a launch"""

    status: str = ""
    step: int = 0
    total_steps: int = 0
    is_complete: bool = False
    is_failed: bool = False
    error_message: Optional[str] = None

    @property
    def percentage(self) -> float:
        if self.total_steps > 0:
            return self.step / self.total_steps * 100
        return 0.0

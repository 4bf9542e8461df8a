"""
Mod registry data models

Project, version and file records returned by the registry client, plus the
mod manager's update/compatibility reports.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from craftlaunch.models.entities import ModPlatform


class ProjectType(Enum):
    """Project type"""

    MOD = "mod"
    MODPACK = "modpack"
    RESOURCE_PACK = "resourcepack"
    SHADER = "shader"
    DATAPACK = "datapack"
    PLUGIN = "plugin"


def parse_timestamp(value: Optional[str]) -> datetime:
    """Parse a registry timestamp, unparseable values sort first"""
    if not value:
        return datetime.min
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return datetime.min
    return parsed.replace(tzinfo=None)


@dataclass
class ModSummary:
    """One search hit"""

    id: str
    slug: str
    title: str
    description: str
    author: str
    downloads: int = 0
    icon_url: Optional[str] = None
    game_versions: List[str] = field(default_factory=list)
    categories: List[str] = field(default_factory=list)
    platform: ModPlatform = ModPlatform.MODRINTH
    date_modified: Optional[str] = None

    @property
    def project_url(self) -> str:
        return f"https://modrinth.com/mod/{self.slug}"

    @classmethod
    def from_modrinth(cls, hit: dict) -> "ModSummary":
        return cls(
            id=hit.get("project_id", ""),
            slug=hit.get("slug", ""),
            title=hit.get("title", ""),
            description=hit.get("description", ""),
            author=hit.get("author", ""),
            downloads=hit.get("downloads", 0),
            icon_url=hit.get("icon_url"),
            game_versions=hit.get("versions", []),
            categories=hit.get("categories", []),
            date_modified=hit.get("date_modified"),
        )


@dataclass
class SearchResult:
    """Paginated search envelope"""

    hits: List[ModSummary]
    offset: int
    limit: int
    total_hits: int


@dataclass
class ProjectInfo:
    """
    Mod project information.
    """

    id: str
    slug: str
    title: str
    description: str
    project_type: str
    versions: List[str]
    game_versions: List[str] = field(default_factory=list)
    loaders: List[str] = field(default_factory=list)

    @classmethod
    def from_modrinth(cls, data: dict) -> "ProjectInfo":
        return cls(
            id=data["id"],
            slug=data.get("slug", ""),
            title=data.get("title", ""),
            description=data.get("description", ""),
            project_type=data.get("project_type", ProjectType.MOD.value),
            versions=data.get("versions", []),
            game_versions=data.get("game_versions", []),
            loaders=data.get("loaders", []),
        )


@dataclass
class FileInfo:
    """A downloadable file of a registry version"""

    url: str
    filename: str
    size: int
    primary: bool = False
    hashes: Optional[Dict[str, str]] = None

    @property
    def sha1(self) -> Optional[str]:
        return (self.hashes or {}).get("sha1")


@dataclass
class DependencyInfo:
    """Dependency declared by a registry version"""

    project_id: str
    dependency_type: str  # required, optional, incompatible, embedded
    version_id: Optional[str] = None


@dataclass
class VersionInfo:
    """
    A registry version (one release of a mod, holding one or more files).
    """

    id: str
    project_id: str
    name: str
    version: str
    loaders: List[str]
    game_versions: List[str]
    files: List[FileInfo]
    dependencies: List[DependencyInfo]
    date_published: Optional[str] = None

    @property
    def published_at(self) -> datetime:
        return parse_timestamp(self.date_published)

    @property
    def primary_file(self) -> Optional[FileInfo]:
        """The file flagged primary, falling back to the first file"""
        if not self.files:
            return None
        for file in self.files:
            if file.primary:
                return file
        return self.files[0]

    @classmethod
    def from_modrinth(cls, data: dict) -> "VersionInfo":
        """
        Convert a Modrinth version object into a VersionInfo.
        """
        files = [
            FileInfo(
                url=file["url"],
                filename=file["filename"],
                size=file.get("size", 0),
                primary=file.get("primary", False),
                hashes=file.get("hashes"),
            )
            for file in data.get("files", [])
        ]

        dependencies = [
            DependencyInfo(
                project_id=dep.get("project_id") or "",
                dependency_type=dep.get("dependency_type", "required"),
                version_id=dep.get("version_id"),
            )
            for dep in data.get("dependencies", [])
        ]

        return cls(
            id=data.get("id", ""),
            project_id=data.get("project_id", ""),
            name=data.get("name", ""),
            version=data.get("version_number", ""),
            files=files,
            loaders=[loader.lower() for loader in data.get("loaders", [])],
            game_versions=data.get("game_versions", []),
            dependencies=dependencies,
            date_published=data.get("date_published"),
        )


@dataclass
class ModUpdateInfo:
    """An available update of an installed mod"""

    installed_mod_id: str
    mod_name: str
    current_version: str
    latest_version: str
    latest_version_id: str
    release_date: datetime


@dataclass
class CompatibilityResult:
    """Every blocking reason found for installing a mod into a profile"""

    is_compatible: bool = True
    issues: List[str] = field(default_factory=list)
    missing_dependencies: List[DependencyInfo] = field(default_factory=list)
    conflicts: List[str] = field(default_factory=list)

    def add_issue(self, issue: str):
        self.is_compatible = False
        self.issues.append(issue)

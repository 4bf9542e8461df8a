"""
Game version models

Typed views over the upstream version manifest and per-version detail JSON.
The raw upstream document is kept so the cached `<id>.json` stays identical
to what the official launcher writes.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


DEFAULT_MAIN_CLASS = "net.minecraft.client.main.Main"


class RuleAction(Enum):
    """Platform rule action"""

    ALLOW = "allow"
    DENY = "deny"


@dataclass(frozen=True)
class OsConstraint:
    """OS part of a platform rule; every present field must match"""

    name: Optional[str] = None
    arch: Optional[str] = None
    version: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OsConstraint":
        return cls(
            name=data.get("name"),
            arch=data.get("arch"),
            version=data.get("version"),
        )


@dataclass(frozen=True)
class PlatformRule:
    """One entry of a library `rules` list"""

    action: RuleAction
    os: Optional[OsConstraint] = None
    features: Optional[Dict[str, bool]] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PlatformRule":
        try:
            action = RuleAction(data.get("action", "allow"))
        except ValueError:
            raise ValueError(f"Invalid rule action: {data.get('action')!r}")
        rule_os = data.get("os")
        return cls(
            action=action,
            os=OsConstraint.from_dict(rule_os) if rule_os is not None else None,
            features=data.get("features"),
        )


@dataclass
class Artifact:
    """A single downloadable file"""

    url: str
    sha1: Optional[str] = None
    size: Optional[int] = None
    path: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Artifact":
        return cls(
            url=data.get("url", ""),
            sha1=data.get("sha1"),
            size=data.get("size"),
            path=data.get("path"),
        )


def maven_path(name: str) -> str:
    """
    Turn a maven specifier into its repository relative path.

    `com.foo.bar:artifact:version[:classifier]` gives
    `com/foo/bar/artifact/version/artifact-version[-classifier].jar`.
    The separator is always '/' so the path is usable in URLs too.
    """
    parts = name.split(":", 3)
    if len(parts) < 3:
        raise ValueError(f"Invalid maven specifier: {name!r}")
    group, artifact, version = parts[0], parts[1], parts[2]
    classifier = parts[3] if len(parts) == 4 else None

    ext = "jar"
    if "@" in version:
        version, ext = version.split("@", 1)
    if classifier is not None and "@" in classifier:
        classifier, ext = classifier.split("@", 1)

    file_name = f"{artifact}-{version}" + (f"-{classifier}" if classifier else "")
    return "/".join([*group.split("."), artifact, version, f"{file_name}.{ext}"])


@dataclass
class Library:
    """A classpath library, stored by maven path in the shared library store"""

    maven_name: str
    artifact_path: str
    url: str
    sha1: Optional[str] = None
    size: Optional[int] = None
    platform_rules: List[PlatformRule] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Optional["Library"]:
        """
        Parse a library entry.

        Vanilla entries carry `downloads.artifact`; loader entries only carry a
        maven `name` and a repository `url`. Native-only entries without an
        artifact return None.
        """
        name = data.get("name", "")
        rules = [PlatformRule.from_dict(r) for r in data.get("rules", []) or []]

        downloads = data.get("downloads")
        if downloads is not None:
            artifact = downloads.get("artifact")
            if artifact is None:
                return None
            art = Artifact.from_dict(artifact)
            return cls(
                maven_name=name,
                artifact_path=art.path or maven_path(name),
                url=art.url,
                sha1=art.sha1,
                size=art.size,
                platform_rules=rules,
            )

        if not name:
            return None
        path = maven_path(name)
        repo = data.get("url") or "https://libraries.minecraft.net/"
        if not repo.endswith("/"):
            repo += "/"
        return cls(
            maven_name=name,
            artifact_path=path,
            url=repo + path,
            sha1=data.get("sha1"),
            size=data.get("size"),
            platform_rules=rules,
        )


@dataclass
class AssetIndexRef:
    """Reference to the asset index JSON of a version"""

    id: str
    url: str
    sha1: Optional[str] = None
    size: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AssetIndexRef":
        return cls(
            id=data["id"],
            url=data["url"],
            sha1=data.get("sha1"),
            size=data.get("size"),
        )


@dataclass
class VersionDescriptor:
    """One entry of the upstream version manifest"""

    id: str
    release_type: str
    release_time: str
    manifest_url: str
    content_hash: Optional[str] = None
    installed: bool = False

    @classmethod
    def from_manifest(cls, data: Dict[str, Any]) -> "VersionDescriptor":
        return cls(
            id=data["id"],
            release_type=data.get("type", "release"),
            release_time=data.get("releaseTime", ""),
            manifest_url=data["url"],
            content_hash=data.get("sha1"),
        )


@dataclass
class VersionManifest:
    """Parsed version manifest"""

    latest_release: Optional[str]
    latest_snapshot: Optional[str]
    versions: List[VersionDescriptor]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VersionManifest":
        latest = data.get("latest", {})
        return cls(
            latest_release=latest.get("release"),
            latest_snapshot=latest.get("snapshot"),
            versions=[VersionDescriptor.from_manifest(v) for v in data.get("versions", [])],
        )

    def get(self, version_id: str) -> Optional[VersionDescriptor]:
        for version in self.versions:
            if version.id == version_id:
                return version
        return None


@dataclass
class VersionDetail:
    """Resolved per-version manifest body"""

    id: str
    libraries: List[Library]
    downloads: Dict[str, Artifact]
    asset_index: Optional[AssetIndexRef]
    main_class: str
    release_type: str = "release"
    java_major_version: Optional[int] = None
    inherits_from: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @property
    def client(self) -> Optional[Artifact]:
        return self.downloads.get("client")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VersionDetail":
        """
        Parse a version JSON document.

        Raises:
            ValueError: the document is structurally invalid
        """
        if not isinstance(data, dict) or "id" not in data:
            raise ValueError("version JSON must be an object with an 'id'")

        libraries = []
        for idx, entry in enumerate(data.get("libraries", []) or []):
            if not isinstance(entry, dict):
                raise ValueError(f"libraries/{idx} must be an object")
            library = Library.from_dict(entry)
            if library is not None:
                libraries.append(library)

        asset_index = data.get("assetIndex")
        java_version = data.get("javaVersion") or {}

        return cls(
            id=data["id"],
            libraries=libraries,
            downloads={
                key: Artifact.from_dict(value)
                for key, value in (data.get("downloads") or {}).items()
            },
            asset_index=AssetIndexRef.from_dict(asset_index) if asset_index else None,
            main_class=data.get("mainClass") or DEFAULT_MAIN_CLASS,
            release_type=data.get("type", "release"),
            java_major_version=java_version.get("majorVersion"),
            inherits_from=data.get("inheritsFrom"),
            raw=data,
        )

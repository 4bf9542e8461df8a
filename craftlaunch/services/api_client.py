"""
Mod registry clients

Search, project and version listing against a mod registry. Only Modrinth is
implemented; other platforms are future RegistryClient subclasses.
"""

import json
from abc import ABC, abstractmethod
from typing import List, Optional

from loguru import logger

from craftlaunch.download.fetcher import FetchClient
from craftlaunch.exceptions import NotFoundError
from craftlaunch.models import (
    ModPlatform,
    ModSummary,
    ProjectInfo,
    SearchResult,
    VersionInfo,
)


MODRINTH_BASE_URL = "https://api.modrinth.com/v2"


class RegistryClient(ABC):
    """A mod registry"""

    platform: ModPlatform

    @abstractmethod
    async def search(
        self,
        query: str,
        game_version: Optional[str] = None,
        loader: Optional[str] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> SearchResult:
        """Search projects"""

    @abstractmethod
    async def get_project(self, idx: str) -> Optional[ProjectInfo]:
        """Get a project by id or slug, None if it does not exist"""

    @abstractmethod
    async def get_project_versions(
        self,
        idx: str,
        game_versions: Optional[List[str]] = None,
        loaders: Optional[List[str]] = None,
    ) -> List[VersionInfo]:
        """List the versions of a project, newest first"""

    @abstractmethod
    async def get_version(self, version_id: str) -> Optional[VersionInfo]:
        """Get one version by id, None if it does not exist"""


class ModrinthClient(RegistryClient):
    """Modrinth API client"""

    platform = ModPlatform.MODRINTH

    def __init__(self, fetcher: FetchClient, base_url: str = MODRINTH_BASE_URL):
        self.fetcher = fetcher
        self.base_url = base_url.rstrip("/")

    async def _request(self, endpoint: str, params: Optional[dict] = None):
        """Send an API request, None on 404"""
        try:
            return await self.fetcher.fetch_json(
                f"{self.base_url}{endpoint}", params=params
            )
        except NotFoundError:
            return None

    async def search(
        self,
        query: str,
        game_version: Optional[str] = None,
        loader: Optional[str] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> SearchResult:
        facets = [["project_type:mod"]]
        if game_version:
            facets.append([f"versions:{game_version}"])
        if loader:
            facets.append([f"categories:{loader.lower()}"])

        params = {
            "query": query,
            "facets": json.dumps(facets),
            "limit": str(limit),
            "offset": str(offset),
        }
        logger.debug(f"[registry] search '{query}' facets={facets}")
        response = await self._request("/search", params) or {}
        return SearchResult(
            hits=[ModSummary.from_modrinth(hit) for hit in response.get("hits", [])],
            offset=response.get("offset", offset),
            limit=response.get("limit", limit),
            total_hits=response.get("total_hits", 0),
        )

    async def get_project(self, idx: str) -> Optional[ProjectInfo]:
        response = await self._request(f"/project/{idx}")
        if response is None:
            return None
        return ProjectInfo.from_modrinth(response)

    async def get_project_versions(
        self,
        idx: str,
        game_versions: Optional[List[str]] = None,
        loaders: Optional[List[str]] = None,
    ) -> List[VersionInfo]:
        params = {}
        if game_versions:
            params["game_versions"] = json.dumps(game_versions)
        if loaders:
            params["loaders"] = json.dumps([loader.lower() for loader in loaders])

        response = await self._request(f"/project/{idx}/version", params or None)
        if not response:
            return []
        return [VersionInfo.from_modrinth(version) for version in response]

    async def get_version(self, version_id: str) -> Optional[VersionInfo]:
        response = await self._request(f"/version/{version_id}")
        if response is None:
            return None
        return VersionInfo.from_modrinth(response)

"""
Entity store

Persistence for profiles, installed mods and accounts. The launcher core only
depends on the EntityStore interface; JsonEntityStore keeps everything in a
single JSON document.
"""

import asyncio
import json
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import aiofiles
from loguru import logger

from craftlaunch.models import Account, InstalledMod, Profile


class EntityStore(ABC):
    """CRUD and lookups over the persisted entities"""

    # profiles

    @abstractmethod
    async def get_profile(self, profile_id: str) -> Optional[Profile]:
        pass

    @abstractmethod
    async def list_profiles(self) -> List[Profile]:
        pass

    @abstractmethod
    async def save_profile(self, profile: Profile) -> Profile:
        pass

    @abstractmethod
    async def delete_profile(self, profile_id: str) -> bool:
        """Delete a profile and every mod record it owns"""

    # installed mods

    @abstractmethod
    async def get_mod(self, mod_id: str) -> Optional[InstalledMod]:
        pass

    @abstractmethod
    async def list_mods(self, profile_id: str) -> List[InstalledMod]:
        pass

    @abstractmethod
    async def list_mods_with_update(self) -> List[InstalledMod]:
        pass

    @abstractmethod
    async def find_mod(
        self, profile_id: str, registry_mod_id: str
    ) -> Optional[InstalledMod]:
        pass

    @abstractmethod
    async def save_mod(self, mod: InstalledMod) -> InstalledMod:
        """
        Insert or update a mod record.

        Raises:
            ValueError: another record has the same (profile, registry mod)
        """

    @abstractmethod
    async def delete_mod(self, mod_id: str) -> bool:
        pass

    # accounts

    @abstractmethod
    async def get_account(self, account_id: str) -> Optional[Account]:
        pass

    @abstractmethod
    async def list_accounts(self) -> List[Account]:
        pass

    @abstractmethod
    async def get_active_account(self) -> Optional[Account]:
        pass

    @abstractmethod
    async def save_account(self, account: Account) -> Account:
        pass

    @abstractmethod
    async def delete_account(self, account_id: str) -> bool:
        pass

    @abstractmethod
    async def set_active_account(self, account_id: Optional[str]):
        """Make one account active and every other inactive"""

    async def list_enabled_mods(self, profile_id: str) -> List[InstalledMod]:
        return [mod for mod in await self.list_mods(profile_id) if mod.enabled]


class JsonEntityStore(EntityStore):
    """
    JSON document store.

    With `path=None` the store only lives in memory. Otherwise the whole
    document is rewritten through a temp file on every mutation.
    """

    def __init__(self, path: Optional[Union[str, Path]] = None):
        self.path = Path(path) if path is not None else None
        self._data: Optional[Dict[str, Dict[str, Dict[str, Any]]]] = None
        self._lock = asyncio.Lock()

    async def _load(self) -> Dict[str, Dict[str, Dict[str, Any]]]:
        if self._data is None:
            data: Dict[str, Any] = {}
            if self.path is not None and self.path.is_file():
                async with aiofiles.open(self.path, "r", encoding="utf-8") as f:
                    data = json.loads(await f.read() or "{}")
                logger.debug(f"[store] loaded {self.path}")
            self._data = {
                "profiles": data.get("profiles", {}),
                "mods": data.get("mods", {}),
                "accounts": data.get("accounts", {}),
            }
        return self._data

    async def _flush(self):
        if self.path is None:
            return
        os.makedirs(self.path.parent, exist_ok=True)
        tmp_path = f"{self.path}.tmp"
        async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
            await f.write(json.dumps(self._data, indent=2, ensure_ascii=False))
        os.replace(tmp_path, self.path)

    # profiles

    async def get_profile(self, profile_id: str) -> Optional[Profile]:
        data = await self._load()
        record = data["profiles"].get(profile_id)
        return Profile.from_dict(record) if record else None

    async def list_profiles(self) -> List[Profile]:
        data = await self._load()
        return [Profile.from_dict(record) for record in data["profiles"].values()]

    async def save_profile(self, profile: Profile) -> Profile:
        async with self._lock:
            data = await self._load()
            data["profiles"][profile.id] = profile.to_dict()
            await self._flush()
        return profile

    async def delete_profile(self, profile_id: str) -> bool:
        async with self._lock:
            data = await self._load()
            if data["profiles"].pop(profile_id, None) is None:
                return False
            data["mods"] = {
                mod_id: record
                for mod_id, record in data["mods"].items()
                if record["profile_id"] != profile_id
            }
            await self._flush()
        return True

    # installed mods

    async def get_mod(self, mod_id: str) -> Optional[InstalledMod]:
        data = await self._load()
        record = data["mods"].get(mod_id)
        return InstalledMod.from_dict(record) if record else None

    async def list_mods(self, profile_id: str) -> List[InstalledMod]:
        data = await self._load()
        return [
            InstalledMod.from_dict(record)
            for record in data["mods"].values()
            if record["profile_id"] == profile_id
        ]

    async def list_mods_with_update(self) -> List[InstalledMod]:
        data = await self._load()
        return [
            InstalledMod.from_dict(record)
            for record in data["mods"].values()
            if record.get("has_update")
        ]

    async def find_mod(
        self, profile_id: str, registry_mod_id: str
    ) -> Optional[InstalledMod]:
        data = await self._load()
        for record in data["mods"].values():
            if (
                record["profile_id"] == profile_id
                and record["registry_mod_id"] == registry_mod_id
            ):
                return InstalledMod.from_dict(record)
        return None

    async def save_mod(self, mod: InstalledMod) -> InstalledMod:
        async with self._lock:
            data = await self._load()
            for mod_id, record in data["mods"].items():
                if (
                    mod_id != mod.id
                    and record["profile_id"] == mod.profile_id
                    and record["registry_mod_id"] == mod.registry_mod_id
                ):
                    raise ValueError(
                        f"Mod {mod.registry_mod_id} is already installed "
                        f"in profile {mod.profile_id}"
                    )
            data["mods"][mod.id] = mod.to_dict()
            await self._flush()
        return mod

    async def delete_mod(self, mod_id: str) -> bool:
        async with self._lock:
            data = await self._load()
            if data["mods"].pop(mod_id, None) is None:
                return False
            await self._flush()
        return True

    # accounts

    async def get_account(self, account_id: str) -> Optional[Account]:
        data = await self._load()
        record = data["accounts"].get(account_id)
        return Account.from_dict(record) if record else None

    async def list_accounts(self) -> List[Account]:
        data = await self._load()
        return [Account.from_dict(record) for record in data["accounts"].values()]

    async def get_active_account(self) -> Optional[Account]:
        data = await self._load()
        for record in data["accounts"].values():
            if record.get("is_active"):
                return Account.from_dict(record)
        return None

    async def save_account(self, account: Account) -> Account:
        async with self._lock:
            data = await self._load()
            if account.is_active:
                for record in data["accounts"].values():
                    record["is_active"] = False
            data["accounts"][account.id] = account.to_dict()
            await self._flush()
        return account

    async def delete_account(self, account_id: str) -> bool:
        async with self._lock:
            data = await self._load()
            if data["accounts"].pop(account_id, None) is None:
                return False
            await self._flush()
        return True

    async def set_active_account(self, account_id: Optional[str]):
        async with self._lock:
            data = await self._load()
            if account_id is not None and account_id not in data["accounts"]:
                raise KeyError(account_id)
            for record_id, record in data["accounts"].items():
                record["is_active"] = record_id == account_id
            await self._flush()

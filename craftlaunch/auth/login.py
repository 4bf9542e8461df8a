"""
Interactive login

The first hop of the identity chain: a user facing OAuth login yielding an
identity token. `DeviceCodeLogin` implements it with the OAuth 2.0 device
authorization grant and keeps refresh tokens in a small JSON cache keyed by
an opaque account handle.
"""

import asyncio
import json
import os
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import aiofiles
from loguru import logger

from craftlaunch.download.fetcher import FetchClient
from craftlaunch.exceptions import APIError, AuthenticationError
from craftlaunch.models import LauncherConfig


SCOPE = "XboxLive.signin offline_access"
DEVICE_CODE_GRANT = "urn:ietf:params:oauth:grant-type:device_code"


@dataclass
class LoginResult:
    """Identity token returned by an interactive or silent login"""

    access_token: str
    account_handle: str
    expires_at: datetime


@dataclass
class DeviceCodePrompt:
    """What the user must do to finish a device code login"""

    user_code: str
    verification_uri: str
    message: str


class InteractiveLogin(ABC):
    """User facing login collaborator"""

    @abstractmethod
    async def acquire_interactive(self) -> LoginResult:
        """Run a full interactive login"""

    @abstractmethod
    async def acquire_silent(self, account_handle: str) -> Optional[LoginResult]:
        """Log in again from a stored handle, None if it cannot be resolved"""

    @abstractmethod
    async def remove(self, account_handle: str):
        """Forget the stored session of a handle"""


def _default_prompt(prompt: DeviceCodePrompt):
    logger.info(f"[auth] {prompt.message}")


class DeviceCodeLogin(InteractiveLogin):
    """OAuth 2.0 device code login"""

    def __init__(
        self,
        config: LauncherConfig,
        fetcher: FetchClient,
        prompt: Callable[[DeviceCodePrompt], None] = _default_prompt,
        cache_path: Optional[Path] = None,
    ):
        self.client_id = config.client_id
        self.endpoints = config.endpoints
        self.fetcher = fetcher
        self.prompt = prompt
        self.cache_path = cache_path
        self._cache: Optional[Dict[str, Dict[str, Any]]] = None

    async def _load_cache(self) -> Dict[str, Dict[str, Any]]:
        if self._cache is None:
            self._cache = {}
            if self.cache_path is not None and self.cache_path.is_file():
                async with aiofiles.open(self.cache_path, "r", encoding="utf-8") as f:
                    self._cache = json.loads(await f.read() or "{}")
        return self._cache

    async def _save_cache(self):
        if self.cache_path is None:
            return
        os.makedirs(self.cache_path.parent, exist_ok=True)
        tmp_path = f"{self.cache_path}.tmp"
        async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
            await f.write(json.dumps(self._cache, indent=2))
        os.replace(tmp_path, self.cache_path)

    async def _store_tokens(self, handle: str, tokens: Dict[str, Any]) -> LoginResult:
        cache = await self._load_cache()
        if tokens.get("refresh_token"):
            cache[handle] = {"refresh_token": tokens["refresh_token"]}
            await self._save_cache()
        expires_in = int(tokens.get("expires_in", 3600))
        return LoginResult(
            access_token=tokens["access_token"],
            account_handle=handle,
            expires_at=datetime.now(timezone.utc) + timedelta(seconds=expires_in),
        )

    async def acquire_interactive(self) -> LoginResult:
        data = await self.fetcher.fetch_json(
            self.endpoints.oauth_device_code,
            method="POST",
            data={"client_id": self.client_id, "scope": SCOPE},
        )
        try:
            device_code = data["device_code"]
            prompt = DeviceCodePrompt(
                user_code=data["user_code"],
                verification_uri=data["verification_uri"],
                message=data.get("message")
                or f"Open {data['verification_uri']} and enter {data['user_code']}",
            )
        except KeyError as e:
            raise AuthenticationError(f"Malformed device code response, missing {e}")

        self.prompt(prompt)
        interval = float(data.get("interval", 5))
        deadline = asyncio.get_running_loop().time() + float(data.get("expires_in", 900))

        while True:
            try:
                tokens = await self.fetcher.fetch_json(
                    self.endpoints.oauth_token,
                    method="POST",
                    data={
                        "grant_type": DEVICE_CODE_GRANT,
                        "client_id": self.client_id,
                        "device_code": device_code,
                    },
                )
            except APIError as e:
                error = e.body_json().get("error")
                if error == "authorization_pending":
                    pass
                elif error == "slow_down":
                    interval += 5
                else:
                    raise AuthenticationError(
                        f"Device code login failed: {error or e.message}"
                    ) from e
            else:
                if "access_token" not in tokens:
                    raise AuthenticationError("Token response has no access_token")
                return await self._store_tokens(str(uuid.uuid4()), tokens)

            if asyncio.get_running_loop().time() >= deadline:
                raise AuthenticationError("Device code expired before login completed")
            await asyncio.sleep(interval)

    async def acquire_silent(self, account_handle: str) -> Optional[LoginResult]:
        cache = await self._load_cache()
        entry = cache.get(account_handle)
        if entry is None:
            logger.debug(f"[auth] no cached session for handle {account_handle}")
            return None

        try:
            tokens = await self.fetcher.fetch_json(
                self.endpoints.oauth_token,
                method="POST",
                data={
                    "grant_type": "refresh_token",
                    "client_id": self.client_id,
                    "refresh_token": entry["refresh_token"],
                    "scope": SCOPE,
                },
            )
        except APIError as e:
            logger.warning(f"[auth] silent login rejected: {e}")
            await self.remove(account_handle)
            return None

        if "access_token" not in tokens:
            return None
        return await self._store_tokens(account_handle, tokens)

    async def remove(self, account_handle: str):
        cache = await self._load_cache()
        if cache.pop(account_handle, None) is not None:
            await self._save_cache()

"""
Identity federation chain

Interactive login -> Xbox Live user token -> XSTS token -> game service
token -> game profile. Every stage consumes the previous stage's token, so a
failure anywhere ends the attempt and the whole chain has to be run again.
The chain tracks its current stage explicitly; a failure records the stage
it happened in.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from loguru import logger

from craftlaunch.auth.login import InteractiveLogin, LoginResult
from craftlaunch.download.fetcher import FetchClient
from craftlaunch.exceptions import (
    APIError,
    AuthenticationError,
    CraftLaunchError,
    EntitlementError,
    NotFoundError,
)
from craftlaunch.models import EndpointsConfig


# XSTS error codes
XERR_MESSAGES = {
    2148916227: "The account is banned from Xbox",
    2148916233: "The account has no Xbox profile",
    2148916235: "Xbox Live is not available in the account's country",
    2148916236: "The account needs adult verification",
    2148916237: "The account needs adult verification",
    2148916238: "The account is a child account and must be added to a family",
}


class AuthStage(Enum):
    """Stages of the federation chain"""

    IDLE = "idle"
    INTERACTIVE_LOGIN = "interactive_login"
    XBOX_LIVE = "xbox_live"
    XSTS = "xsts"
    GAME_LOGIN = "game_login"
    PROFILE_FETCH = "profile_fetch"
    AUTHENTICATED = "authenticated"
    FAILED = "failed"


@dataclass
class ChainState:
    """Current stage, plus the stage and reason of a failure"""

    stage: AuthStage = AuthStage.IDLE
    failed_stage: Optional[AuthStage] = None
    reason: Optional[str] = None
    history: List[AuthStage] = field(default_factory=list)


@dataclass
class FederatedIdentity:
    """Result of a successful chain run"""

    access_token: str
    expires_at: datetime
    game_uuid: str
    username: str
    account_handle: str


class FederationChain:
    """Runs the token exchanges, one attempt at a time"""

    def __init__(
        self,
        endpoints: EndpointsConfig,
        fetcher: FetchClient,
        login: InteractiveLogin,
    ):
        self.endpoints = endpoints
        self.fetcher = fetcher
        self.login = login
        self.state = ChainState()

    def _enter(self, stage: AuthStage):
        self.state.stage = stage
        self.state.history.append(stage)
        logger.debug(f"[auth] stage {stage.value}")

    def _fail(self, reason: str) -> AuthStage:
        failed = self.state.stage
        self.state.failed_stage = failed
        self.state.reason = reason
        self._enter(AuthStage.FAILED)
        return failed

    async def run(self, account_handle: Optional[str] = None) -> FederatedIdentity:
        """
        Run the chain once.

        Args:
            account_handle: re-enter from a stored login handle instead of
                an interactive login

        Raises:
            AuthenticationError: a stage failed, `stage` names which one
            EntitlementError: the account does not own the game
        """
        self.state = ChainState()
        self._enter(AuthStage.IDLE)
        try:
            return await self._run(account_handle)
        except AuthenticationError as e:
            failed = self._fail(e.message)
            if e.stage is None:
                e.stage = failed.value
                e.context["stage"] = failed.value
            logger.error(f"[auth] {failed.value} failed: {e.message}")
            raise
        except CraftLaunchError as e:
            failed = self._fail(e.message)
            logger.error(f"[auth] {failed.value} failed: {e}")
            raise AuthenticationError(
                f"{failed.value} failed: {e.message}",
                stage=failed.value,
                context={"cause": e.to_dict()},
            ) from e

    async def _run(self, account_handle: Optional[str]) -> FederatedIdentity:
        self._enter(AuthStage.INTERACTIVE_LOGIN)
        if account_handle is None:
            login = await self.login.acquire_interactive()
        else:
            resolved = await self.login.acquire_silent(account_handle)
            if resolved is None:
                raise AuthenticationError(
                    "Stored login could not be resolved, sign in again"
                )
            login = resolved

        self._enter(AuthStage.XBOX_LIVE)
        xbl_token = await self._xbox_live(login)

        self._enter(AuthStage.XSTS)
        xsts_token, user_hash = await self._xsts(xbl_token)

        self._enter(AuthStage.GAME_LOGIN)
        game_token, expires_at = await self._game_login(xsts_token, user_hash, login)

        self._enter(AuthStage.PROFILE_FETCH)
        game_uuid, username = await self._profile(game_token)

        self._enter(AuthStage.AUTHENTICATED)
        logger.success(f"[auth] authenticated as {username}")
        return FederatedIdentity(
            access_token=game_token,
            expires_at=expires_at,
            game_uuid=game_uuid,
            username=username,
            account_handle=login.account_handle,
        )

    async def _post(self, url: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        data = await self.fetcher.fetch_json(
            url,
            method="POST",
            json=payload,
            headers={"Accept": "application/json"},
        )
        if not isinstance(data, dict):
            raise AuthenticationError("Response is not a JSON object")
        return data

    async def _xbox_live(self, login: LoginResult) -> str:
        data = await self._post(
            self.endpoints.xbox_user_auth,
            {
                "Properties": {
                    "AuthMethod": "RPS",
                    "SiteName": "user.auth.xboxlive.com",
                    "RpsTicket": f"d={login.access_token}",
                },
                "RelyingParty": "http://auth.xboxlive.com",
                "TokenType": "JWT",
            },
        )
        token = data.get("Token")
        if not token:
            raise AuthenticationError("Xbox Live response has no token")
        return token

    async def _xsts(self, xbl_token: str):
        try:
            data = await self._post(
                self.endpoints.xsts_authorize,
                {
                    "Properties": {"SandboxId": "RETAIL", "UserTokens": [xbl_token]},
                    "RelyingParty": "rp://api.minecraftservices.com/",
                    "TokenType": "JWT",
                },
            )
        except APIError as e:
            xerr = e.body_json().get("XErr")
            if xerr in XERR_MESSAGES:
                raise AuthenticationError(
                    XERR_MESSAGES[xerr], context={"xerr": xerr}
                ) from e
            raise

        token = data.get("Token")
        claims = (data.get("DisplayClaims") or {}).get("xui") or []
        user_hash = claims[0].get("uhs") if claims else None
        if not token or not user_hash:
            raise AuthenticationError("XSTS response has no token or user hash")
        return token, user_hash

    async def _game_login(self, xsts_token: str, user_hash: str, login: LoginResult):
        data = await self._post(
            self.endpoints.game_login,
            {"identityToken": f"XBL3.0 x={user_hash};{xsts_token}"},
        )
        token = data.get("access_token")
        if not token:
            raise AuthenticationError("Game service response has no access token")
        if data.get("expires_in"):
            expires_at = datetime.now(timezone.utc) + timedelta(
                seconds=int(data["expires_in"])
            )
        else:
            expires_at = login.expires_at
        return token, expires_at

    async def _profile(self, game_token: str):
        try:
            body = await self.fetcher.fetch(
                self.endpoints.game_profile,
                headers={"Authorization": f"Bearer {game_token}"},
            )
        except NotFoundError as e:
            raise EntitlementError(
                "The account does not own the game",
                stage=AuthStage.PROFILE_FETCH.value,
            ) from e

        try:
            data = json.loads(body) if body.strip() else None
        except ValueError:
            data = None
        if not isinstance(data, dict) or not data.get("id") or not data.get("name"):
            raise EntitlementError(
                "The account does not own the game",
                stage=AuthStage.PROFILE_FETCH.value,
            )
        return data["id"], data["name"]

"""
Account manager

Creates, refreshes and signs out accounts on top of the federation chain and
the entity store.
"""

import re
import uuid
from typing import List, Optional

from loguru import logger

from craftlaunch.auth.federation import FederatedIdentity, FederationChain
from craftlaunch.exceptions import AuthenticationError, CraftLaunchError, NotFoundError
from craftlaunch.models import Account, AccountKind
from craftlaunch.store import EntityStore


OFFLINE_NAMESPACE = uuid.UUID("8df5a464-38de-11ec-aa66-3fd636ee2ed7")
USERNAME_PATTERN = re.compile(r"^[A-Za-z0-9_]{1,16}$")


def offline_uuid(username: str) -> str:
    """Stable UUID derived from an offline username"""
    return uuid.uuid5(OFFLINE_NAMESPACE, username).hex


class AccountManager:
    """Account manager"""

    def __init__(self, store: EntityStore, chain: FederationChain):
        self.store = store
        self.chain = chain
        self.is_authenticated = False

    async def authenticate(self) -> Account:
        """
        Run an interactive login and store the account as the active one.

        Nothing is stored when any stage fails.

        Raises:
            AuthenticationError: a stage of the chain failed
        """
        identity = await self.chain.run()
        account = await self._find_by_uuid(identity.game_uuid)
        if account is None:
            account = Account(username=identity.username, game_uuid=identity.game_uuid)
        self._apply(account, identity)
        account.is_active = True
        await self.store.save_account(account)

        self.is_authenticated = True
        logger.info(f"[auth] account {account.username} is now active")
        return account

    async def refresh(self, account: Account) -> Account:
        """
        Refresh the game token of an account without user interaction.

        Raises:
            AuthenticationError: the stored login is gone, run authenticate()
        """
        if account.account_kind is AccountKind.OFFLINE:
            return account
        if not account.refresh_handle:
            raise AuthenticationError(
                f"Account {account.username} has no stored login",
                stage="interactive_login",
            )

        identity = await self.chain.run(account.refresh_handle)
        self._apply(account, identity)
        await self.store.save_account(account)

        self.is_authenticated = True
        logger.info(f"[auth] refreshed token of {account.username}")
        return account

    async def sign_out(self, account: Account):
        """Forget the stored login and deactivate the account, tokens are not revoked"""
        if account.refresh_handle:
            await self.chain.login.remove(account.refresh_handle)
            account.refresh_handle = None
        account.is_active = False
        await self.store.save_account(account)

        self.is_authenticated = False
        logger.info(f"[auth] signed out {account.username}")

    async def create_offline(self, username: str, activate: bool = True) -> Account:
        """Create an offline account with a name derived UUID"""
        if not USERNAME_PATTERN.match(username):
            raise CraftLaunchError(
                f"Invalid username: {username!r}",
                code="INVALID_USERNAME",
                context={"username": username},
            )
        game_uuid = offline_uuid(username)
        account = await self._find_by_uuid(game_uuid)
        if account is None:
            account = Account(
                username=username,
                game_uuid=game_uuid,
                account_kind=AccountKind.OFFLINE,
            )
        account.is_active = activate
        await self.store.save_account(account)
        logger.info(f"[auth] offline account {username} saved")
        return account

    async def list_accounts(self) -> List[Account]:
        return await self.store.list_accounts()

    async def get_active_account(self) -> Optional[Account]:
        return await self.store.get_active_account()

    async def set_active(self, account_id: str) -> Account:
        account = await self.store.get_account(account_id)
        if account is None:
            raise NotFoundError(
                f"Account {account_id} not found", context={"account": account_id}
            )
        await self.store.set_active_account(account.id)
        account.is_active = True
        return account

    async def remove(self, account_id: str) -> bool:
        account = await self.store.get_account(account_id)
        if account is None:
            return False
        if account.refresh_handle:
            await self.chain.login.remove(account.refresh_handle)
        return await self.store.delete_account(account.id)

    async def _find_by_uuid(self, game_uuid: str) -> Optional[Account]:
        for account in await self.store.list_accounts():
            if account.game_uuid == game_uuid:
                return account
        return None

    @staticmethod
    def _apply(account: Account, identity: FederatedIdentity):
        account.username = identity.username
        account.access_token = identity.access_token
        account.token_expiry = identity.expires_at
        account.refresh_handle = identity.account_handle
        account.account_kind = AccountKind.MICROSOFT

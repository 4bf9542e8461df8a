"""
Authentication

Interactive login, the identity federation chain and account bookkeeping.
"""

from craftlaunch.auth.federation import (
    AuthStage,
    ChainState,
    FederatedIdentity,
    FederationChain,
)
from craftlaunch.auth.login import (
    DeviceCodeLogin,
    DeviceCodePrompt,
    InteractiveLogin,
    LoginResult,
)
from craftlaunch.auth.manager import AccountManager, offline_uuid

__all__ = [
    "AuthStage",
    "ChainState",
    "FederatedIdentity",
    "FederationChain",
    "DeviceCodeLogin",
    "DeviceCodePrompt",
    "InteractiveLogin",
    "LoginResult",
    "AccountManager",
    "offline_uuid",
]

"""
craftlaunch exception hierarchy

Layered exceptions carrying a stable error code, context data and a
JSON-friendly representation.
"""

import json
from typing import Any, Dict, Optional

import aiohttp


class CraftLaunchError(Exception):
    """Base class for every craftlaunch error"""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self._get_default_code()
        self.context = context or {}

    def _get_default_code(self) -> str:
        """Default error code of the class"""
        return "E000"

    def to_dict(self) -> Dict[str, Any]:
        """Convert the error to a dict"""
        return {
            "error": True,
            "code": self.code,
            "message": self.message,
            "context": self.context,
            "type": self.__class__.__name__,
        }

    def __str__(self) -> str:
        if self.code:
            return f"[{self.code}] {self.message}"
        return self.message


class ConfigError(CraftLaunchError):
    """Invalid configuration"""

    def _get_default_code(self) -> str:
        return "E100"


class ConfigParseError(ConfigError):
    """Configuration file could not be parsed"""

    def _get_default_code(self) -> str:
        return "E101"


class NotFoundError(CraftLaunchError):
    """Profile, version, mod or file is absent upstream or locally"""

    def _get_default_code(self) -> str:
        return "E404"


class APIError(CraftLaunchError):
    """Upstream answered with a non-retryable failure"""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        response: Optional[aiohttp.ClientResponse] = None,
        body: Optional[str] = None,
    ):
        super().__init__(message, code, context)
        self.response = response
        self.body = body
        if response is not None:
            self.context["status_code"] = response.status
            self.context["url"] = str(response.url)

    @property
    def status(self) -> Optional[int]:
        return self.context.get("status_code")

    def body_json(self) -> Dict[str, Any]:
        """The response body decoded as a JSON object, empty if it is not one"""
        try:
            data = json.loads(self.body or "")
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}

    def _get_default_code(self) -> str:
        return "E200"


class DownloadError(CraftLaunchError):
    """Download failure"""

    def _get_default_code(self) -> str:
        return "E300"


class TransientNetworkError(DownloadError):
    """Network failure that persisted after every retry"""

    def _get_default_code(self) -> str:
        return "E301"


class IntegrityError(DownloadError):
    """Content hash or size mismatch; never retried automatically"""

    def _get_default_code(self) -> str:
        return "E302"


class PlatformNotSupportedError(CraftLaunchError):
    """Mod platform has no registry client"""

    def _get_default_code(self) -> str:
        return "E501"


class LoaderNotSupportedError(CraftLaunchError):
    """Mod loader cannot be installed by this launcher"""

    def _get_default_code(self) -> str:
        return "E502"


class NoCompatibleVersionError(CraftLaunchError):
    """No registry file matches the profile's game version"""

    def _get_default_code(self) -> str:
        return "NO_COMPATIBLE_VERSION"


class AuthenticationError(CraftLaunchError):
    """
    A stage of the identity federation chain failed.

    The failed stage is kept on the error so callers can tell which exchange
    broke; the chain itself is always restarted from the beginning.
    """

    def __init__(
        self,
        message: str,
        stage: Optional[str] = None,
        code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, code, context)
        self.stage = stage
        if stage is not None:
            self.context["stage"] = stage

    def _get_default_code(self) -> str:
        return "AUTH_ERROR"


class EntitlementError(AuthenticationError):
    """Account is authenticated but does not own the game"""

    def _get_default_code(self) -> str:
        return "NO_ENTITLEMENT"


class LaunchError(CraftLaunchError):
    """Launch preparation or process spawn failed"""

    INSTANCE_NOT_FOUND = "INSTANCE_NOT_FOUND"
    NO_ACCOUNT = "NO_ACCOUNT"
    VERSION_NOT_FOUND = "VERSION_NOT_FOUND"
    INVALID_VERSION_JSON = "INVALID_VERSION_JSON"
    CLIENT_JAR_NOT_FOUND = "CLIENT_JAR_NOT_FOUND"
    PROCESS_START_FAILED = "PROCESS_START_FAILED"
    PREPARATION_FAILED = "PREPARATION_FAILED"

    def __init__(
        self,
        code: str,
        message: str,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, code, context)

    def _get_default_code(self) -> str:
        return "LAUNCH_ERROR"


__all__ = [
    "CraftLaunchError",
    "ConfigError",
    "ConfigParseError",
    "NotFoundError",
    "APIError",
    "DownloadError",
    "TransientNetworkError",
    "IntegrityError",
    "PlatformNotSupportedError",
    "LoaderNotSupportedError",
    "NoCompatibleVersionError",
    "AuthenticationError",
    "EntitlementError",
    "LaunchError",
]

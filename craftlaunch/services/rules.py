"""
Platform rule evaluation

Libraries of a version JSON carry an ordered list of allow/deny rules, each
optionally constrained to an OS name, architecture or OS version pattern.
Rules are evaluated in order and the last matching rule wins; a list where
no rule matches allows the library.
"""

import platform
import re
from dataclasses import dataclass
from typing import Dict, List, Optional

from craftlaunch.models.version import OsConstraint, PlatformRule, RuleAction


_OS_NAMES = {
    "Linux": "linux",
    "Windows": "windows",
    "Darwin": "osx",
    "FreeBSD": "freebsd",
}

_ARCH_NAMES = {
    "i386": "x86",
    "i686": "x86",
    "x86": "x86",
    "x86_64": "x86_64",
    "amd64": "x86_64",
    "arm64": "arm64",
    "aarch64": "arm64",
    "armv7l": "arm32",
    "armv6l": "arm32",
}


def current_os() -> str:
    """OS identifier used in rules: linux, windows, osx or freebsd"""
    return _OS_NAMES.get(platform.system(), "")


def current_arch() -> str:
    """Architecture identifier used in rules: x86, x86_64, arm64 or arm32"""
    return _ARCH_NAMES.get(platform.machine().lower(), "")


@dataclass(frozen=True)
class HostPlatform:
    """The platform rules are evaluated against"""

    os_name: str
    arch: str
    os_version: str = ""

    @classmethod
    def current(cls) -> "HostPlatform":
        return cls(current_os(), current_arch(), platform.version())


def os_matches(constraint: OsConstraint, host: HostPlatform) -> bool:
    if constraint.name is not None and constraint.name != host.os_name:
        return False
    if constraint.arch is not None and constraint.arch != host.arch:
        return False
    if constraint.version is not None:
        try:
            return re.search(constraint.version, host.os_version) is not None
        except re.error:
            return False
    return True


def rule_matches(
    rule: PlatformRule, host: HostPlatform, features: Dict[str, bool]
) -> bool:
    if rule.os is not None and not os_matches(rule.os, host):
        return False
    if rule.features:
        for name, expected in rule.features.items():
            if features.get(name, False) != expected:
                return False
    return True


def evaluate_rules(
    rules: List[PlatformRule],
    host: Optional[HostPlatform] = None,
    features: Optional[Dict[str, bool]] = None,
) -> bool:
    """
    Evaluate a rule list.

    Args:
        rules: ordered rules of a library
        host: platform to evaluate for, the running host by default
        features: enabled launcher features

    Returns:
        True if the library applies to the host
    """
    host = host or HostPlatform.current()
    features = features or {}
    allowed = True
    for rule in rules:
        if rule_matches(rule, host, features):
            allowed = rule.action is RuleAction.ALLOW
    return allowed

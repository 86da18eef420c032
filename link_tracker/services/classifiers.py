"""
Visitor Classification

Coarse browser / OS / device / address classification used to enrich visits
when statistics are read. Each classifier is an ordered list of
(label, predicate) rules evaluated first-match-wins with case-sensitive
substring checks, so the order matters: Chrome user agents also contain
"Safari" and must be caught first.
"""

from enum import Enum
from typing import Callable, Optional, Sequence, Tuple

from link_tracker.services.ip_resolver import LOOPBACK_ADDRESS, PUBLIC_IP_ANNOTATION

Rule = Tuple[str, Callable[[str], bool]]


class IPType(str, Enum):
    """Address categories reported as `ipType`."""
    unknown = "Unknown"
    local = "Local/Self"
    private = "Local network"
    ipv6 = "IPv6"
    public = "Public IP"


BROWSER_RULES: Sequence[Rule] = (
    ("Chrome", lambda ua: "Chrome" in ua),
    ("Firefox", lambda ua: "Firefox" in ua),
    ("Safari", lambda ua: "Safari" in ua and "Chrome" not in ua),
    ("Edge", lambda ua: "Edge" in ua),
    ("Opera", lambda ua: "Opera" in ua),
)

OS_RULES: Sequence[Rule] = (
    ("Windows", lambda ua: "Windows" in ua),
    ("macOS", lambda ua: "Mac OS" in ua),
    ("Linux", lambda ua: "Linux" in ua),
    ("Android", lambda ua: "Android" in ua),
    ("iOS", lambda ua: "iOS" in ua or "iPhone" in ua),
)

DEVICE_RULES: Sequence[Rule] = (
    ("Mobile", lambda ua: "Mobile" in ua),
    ("Tablet", lambda ua: "Tablet" in ua),
)


def _first_match(rules: Sequence[Rule], user_agent: Optional[str], default: str) -> str:
    user_agent = user_agent or ""
    for label, predicate in rules:
        if predicate(user_agent):
            return label
    return default


def get_browser_name(user_agent: Optional[str]) -> str:
    return _first_match(BROWSER_RULES, user_agent, "Other")


def get_os_name(user_agent: Optional[str]) -> str:
    return _first_match(OS_RULES, user_agent, "Unknown OS")


def get_device_type(user_agent: Optional[str]) -> str:
    return _first_match(DEVICE_RULES, user_agent, "Desktop")


def _is_private_172(ip: str) -> bool:
    # 172.16.0.0/12: second octet between 16 and 31
    parts = ip.split(".")
    if len(parts) < 2:
        return False
    try:
        second = int(parts[1])
    except ValueError:
        return False
    return 16 <= second <= 31


def get_ip_type(ip: Optional[str]) -> IPType:
    """
    Classify a recorded visitor address.

    Private ranges are checked before the IPv6 test, mirroring how the
    resolver's annotated and port-stripped values look.
    """
    if not ip:
        return IPType.unknown

    if ip == LOOPBACK_ADDRESS or PUBLIC_IP_ANNOTATION in ip:
        return IPType.local

    if ip.startswith("192.168.") or ip.startswith("10.") or (
        ip.startswith("172.") and _is_private_172(ip)
    ):
        return IPType.private

    if ":" in ip:
        return IPType.ipv6

    return IPType.public

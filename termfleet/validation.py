"""Input validation for workstation registration."""

from __future__ import annotations

import re

_NAME_RE = re.compile(r"[a-z0-9]([a-z0-9-]*[a-z0-9])?", re.IGNORECASE | re.ASCII)
_IPV4_RE = re.compile(r"(\d{1,3})\.(\d{1,3})\.(\d{1,3})\.(\d{1,3})", re.ASCII)


class InvalidInput(ValueError):
    """Raised for malformed names, addresses, or query parameters."""


def validate_workstation_name(name: object) -> str:
    """Return *name* if it is a usable DNS label (3–63 chars), else raise."""
    if not name or not isinstance(name, str):
        raise InvalidInput("Name is required and must be a string")
    if len(name) < 3 or len(name) > 63:
        raise InvalidInput("Name must be between 3 and 63 characters")
    if not _NAME_RE.fullmatch(name):
        raise InvalidInput(
            "Name must start and end with alphanumeric characters and can contain hyphens"
        )
    return name


def validate_ipv4(ip: object) -> str:
    """Return *ip* if it is a dotted-decimal IPv4 address, else raise."""
    if not ip or not isinstance(ip, str):
        raise InvalidInput("IP address is required and must be a string")
    match = _IPV4_RE.fullmatch(ip)
    if not match:
        raise InvalidInput("Invalid IPv4 address format")
    if any(int(octet) > 255 for octet in match.groups()):
        raise InvalidInput("IPv4 address octets must be between 0 and 255")
    return ip


def validate_registration(name: object, ip: object) -> tuple[str, str]:
    return validate_workstation_name(name), validate_ipv4(ip)

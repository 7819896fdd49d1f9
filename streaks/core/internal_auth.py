from __future__ import annotations

import ipaddress
import secrets
from enum import Enum
from functools import lru_cache

from fastapi import Request

IpNetwork = ipaddress.IPv4Network | ipaddress.IPv6Network
INTERNAL_TOKEN_HEADER = "X-Internal-Token"


class InternalAccessDenial(str, Enum):
    INVALID_TOKEN = "invalid_token"
    IP_NOT_ALLOWED = "ip_not_allowed"


def is_valid_internal_token(*, expected_token: str, received_token: str | None) -> bool:
    if not expected_token or not received_token:
        return False
    return secrets.compare_digest(expected_token, received_token)


@lru_cache(maxsize=32)
def _parse_allowlist(allowlist: str) -> tuple[IpNetwork, ...]:
    networks: list[IpNetwork] = []
    for raw_entry in allowlist.split(","):
        entry = raw_entry.strip()
        if not entry:
            continue
        try:
            networks.append(ipaddress.ip_network(entry, strict=False))
        except ValueError:
            continue
    return tuple(networks)


def _parse_ip(value: str | None) -> str | None:
    if value is None or not value.strip():
        return None
    try:
        return str(ipaddress.ip_address(value.strip()))
    except ValueError:
        return None


def is_client_ip_allowed(*, client_ip: str | None, allowlist: str) -> bool:
    parsed_ip = _parse_ip(client_ip)
    if parsed_ip is None:
        return False
    address = ipaddress.ip_address(parsed_ip)
    return any(address in network for network in _parse_allowlist(allowlist))


def extract_client_ip(request: Request, *, trusted_proxies: str = "") -> str | None:
    client_host = _parse_ip(request.client.host if request.client is not None else None)
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for and is_client_ip_allowed(client_ip=client_host, allowlist=trusted_proxies):
        return _parse_ip(forwarded_for.split(",", maxsplit=1)[0])
    return client_host


def internal_access_denial(
    *,
    expected_token: str,
    received_token: str | None,
    client_ip: str | None,
    allowlist: str,
) -> InternalAccessDenial | None:
    """Return the first failed check, token before address, or None when access is granted."""
    if not is_valid_internal_token(expected_token=expected_token, received_token=received_token):
        return InternalAccessDenial.INVALID_TOKEN
    if not is_client_ip_allowed(client_ip=client_ip, allowlist=allowlist):
        return InternalAccessDenial.IP_NOT_ALLOWED
    return None

"""Shared helpers for building outbound configuration dictionaries."""

from __future__ import annotations

import ipaddress
from typing import Any


class ShareError(ValueError):
    """A share link, share text or outbound could not be converted."""


_TRANSPORTS = {
    "raw": "tcp",
    "tcp": "tcp",
    "xhttp": "splithttp",
    "splithttp": "splithttp",
    "kcp": "mkcp",
    "mkcp": "mkcp",
    "grpc": "grpc",
    "gun": "grpc",
    "ws": "websocket",
    "websocket": "websocket",
    "httpupgrade": "httpupgrade",
}

_REMOVED_TRANSPORTS = {"h2", "h3", "http", "quic"}


def set_outbound_name(outbound: dict[str, Any], name: str) -> None:
    """Store the display name of an outbound in its ``sendThrough`` field."""
    outbound["sendThrough"] = name


def get_outbound_name(outbound: dict[str, Any]) -> str:
    """Return the display name stored by :func:`set_outbound_name`, or ``""``."""
    name = outbound.get("sendThrough")
    return name if isinstance(name, str) else ""


def parse_address(addr: str) -> str:
    """Normalise a host into the form used in configs.

    IPv4 addresses are written plainly, IPv6 addresses in brackets, IPv4-mapped
    IPv6 addresses as IPv4; anything else is kept as a domain name.
    """
    if len(addr) >= 2 and addr[0] == "[" and addr[-1] == "]":
        addr = addr[1:-1]
    addr = addr.strip()
    if "%" not in addr:
        try:
            ip = ipaddress.ip_address(addr)
        except ValueError:
            return addr
        if isinstance(ip, ipaddress.IPv6Address):
            if ip.ipv4_mapped is not None:
                return str(ip.ipv4_mapped)
            return f"[{ip}]"
        return str(ip)
    return addr


def transport_name(network: str) -> str:
    """Return the canonical transport name for a network setting."""
    key = network.lower()
    if key in _REMOVED_TRANSPORTS:
        raise ShareError(f"transport {network} has been removed")
    try:
        return _TRANSPORTS[key]
    except KeyError:
        raise ShareError(f"Config: unknown transport protocol: {network}") from None


def raw_settings_header(header_type: str, path: str, host: str) -> dict[str, Any]:
    """Build an HTTP-obfuscation header for raw/tcp transport settings.

    ``path`` and ``host`` are comma separated lists; empty ones are left out.
    """
    request: dict[str, Any] = {}
    if path:
        request["path"] = path.split(",")
    if host:
        request["headers"] = {"Host": host.split(",")}
    header: dict[str, Any] = {}
    if header_type:
        header["type"] = header_type
    header["request"] = request
    return header


def fake_header(header_type: str) -> dict[str, Any]:
    """Build a packet header setting such as the one used by mKCP."""
    return {"type": header_type} if header_type else {}
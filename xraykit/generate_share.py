"""Turning outbound configurations back into share links."""

from __future__ import annotations

import base64
import json
from dataclasses import dataclass
from typing import Any, Callable
from urllib.parse import quote, quote_plus

from xraykit.outbound import ShareError, get_outbound_name, parse_address

_USER_SAFE = "$&+,;="
_HOST_SAFE = "!$&'()*+,;=:[]<>\""
_FRAGMENT_SAFE = "$&+,/:;=?@!()*"


@dataclass
class _ShareUrl:
    scheme: str = ""
    user: str | None = None
    host: str = ""
    query: str = ""
    fragment: str = ""

    def __str__(self) -> str:
        parts: list[str] = []
        if self.scheme:
            parts.append(f"{self.scheme}:")
        if self.scheme or self.host or self.user is not None:
            if self.host or self.user is not None:
                parts.append("//")
            if self.user is not None:
                parts.append(quote(self.user, safe=_USER_SAFE) + "@")
            if self.host:
                parts.append(quote(self.host, safe=_HOST_SAFE))
        if self.query:
            parts.append("?" + self.query)
        if self.fragment:
            parts.append("#" + quote(self.fragment, safe=_FRAGMENT_SAFE))
        return "".join(parts)


def _mapping(value: Any, what: str) -> dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ShareError(f"{what} must be a JSON object")
    return value


def _text(mapping: dict[str, Any], key: str) -> str:
    value = mapping.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ShareError(f"field {key!r} must be a string")
    return value


def _flag(mapping: dict[str, Any], key: str) -> bool:
    value = mapping.get(key)
    if value is None:
        return False
    if not isinstance(value, bool):
        raise ShareError(f"field {key!r} must be a boolean")
    return value


def _string_list(value: Any, key: str) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return value.split(",")
    if isinstance(value, list) and all(isinstance(item, str) for item in value):
        return list(value)
    raise ShareError(f"field {key!r} must be a list of strings")


def _first_object(mapping: dict[str, Any], key: str) -> dict[str, Any] | None:
    entries = mapping.get(key)
    if entries is None:
        return None
    if not isinstance(entries, list):
        raise ShareError(f"field {key!r} must be a list")
    if not entries:
        return None
    first = entries[0]
    if not isinstance(first, dict):
        raise ShareError(f"first entry of {key!r} must be a JSON object")
    return first


def _settings(outbound: dict[str, Any]) -> dict[str, Any]:
    if "settings" not in outbound:
        raise ShareError("outbound has no settings")
    return _mapping(outbound["settings"], "settings")


def _host(server: dict[str, Any]) -> str:
    address = parse_address(_text(server, "address"))
    port = server.get("port", 0)
    if port is None:
        port = 0
    if isinstance(port, bool) or not isinstance(port, int) or not 0 <= port <= 0xFFFF:
        raise ShareError(f"invalid port: {port!r}")
    return f"{address}:{port}"


def _encode_pair(first: str, second: str) -> str:
    return base64.b64encode(f"{first}:{second}".encode("utf-8")).decode("ascii")


def _shadowsocks_link(outbound: dict[str, Any], link: _ShareUrl) -> None:
    settings = _settings(outbound)
    link.fragment = get_outbound_name(outbound)
    link.scheme = "ss"
    server = _first_object(settings, "servers")
    if server is not None:
        link.host = _host(server)
        link.user = _encode_pair(_text(server, "method"), _text(server, "password"))


def _vmess_link(outbound: dict[str, Any], link: _ShareUrl) -> None:
    settings = _settings(outbound)
    link.fragment = get_outbound_name(outbound)
    link.scheme = "vmess"
    target = _first_object(settings, "vnext")
    if target is not None:
        link.host = _host(target)
        account = _first_object(target, "users")
        if account is not None:
            link.user = _text(account, "id")
            link.query = add_query(link.query, "encryption", _text(account, "security"))


def _vless_link(outbound: dict[str, Any], link: _ShareUrl) -> None:
    settings = _settings(outbound)
    link.fragment = get_outbound_name(outbound)
    link.scheme = "vless"
    target = _first_object(settings, "vnext")
    if target is not None:
        link.host = _host(target)
        account = _first_object(target, "users")
        if account is not None:
            link.user = _text(account, "id")
            flow = _text(account, "flow")
            if flow:
                link.query = add_query(link.query, "flow", flow)


def _socks_link(outbound: dict[str, Any], link: _ShareUrl) -> None:
    settings = _settings(outbound)
    link.fragment = get_outbound_name(outbound)
    link.scheme = "socks"
    server = _first_object(settings, "servers")
    if server is not None:
        link.host = _host(server)
        account = _first_object(server, "users")
        if account is None:
            link.user = _encode_pair("", "")
        else:
            link.user = _encode_pair(_text(account, "user"), _text(account, "pass"))


def _trojan_link(outbound: dict[str, Any], link: _ShareUrl) -> None:
    settings = _settings(outbound)
    link.fragment = get_outbound_name(outbound)
    link.scheme = "trojan"
    server = _first_object(settings, "servers")
    if server is not None:
        link.host = _host(server)
        link.user = _text(server, "password")


_BUILDERS: dict[str, Callable[[dict[str, Any], _ShareUrl], None]] = {
    "shadowsocks": _shadowsocks_link,
    "vmess": _vmess_link,
    "vless": _vless_link,
    "socks": _socks_link,
    "trojan": _trojan_link,
}


def share_link(outbound: dict[str, Any]) -> str:
    """Build the share link of one outbound.

    Outbounds of other protocols give a link holding only their stream query.
    """
    if not isinstance(outbound, dict):
        raise ShareError("outbound must be a JSON object")
    link = _ShareUrl()
    builder = _BUILDERS.get(_text(outbound, "protocol"))
    if builder is not None:
        builder(outbound, link)
    link.query = stream_settings_query(outbound, link.query)
    return str(link)


def _raw_header(header: Any) -> tuple[str, list[str], list[str]]:
    header = _mapping(header, "header")
    header_type = _text(header, "type")
    request = _mapping(header.get("request"), "request")
    paths = request.get("path")
    if paths is not None and not (
        isinstance(paths, list) and all(isinstance(item, str) for item in paths)
    ):
        raise ShareError("header path must be a list of strings")
    headers = _mapping(request.get("headers"), "headers")
    hosts = headers.get("Host")
    if hosts is not None and not (
        isinstance(hosts, list) and all(isinstance(item, str) for item in hosts)
    ):
        raise ShareError("header Host must be a list of strings")
    return header_type, list(paths or []), list(hosts or [])


def _raw_query(stream: dict[str, Any], query: str) -> str:
    raw = stream.get("rawSettings")
    if raw is None:
        return query
    header = _mapping(raw, "rawSettings").get("header")
    if header is None:
        return query
    try:
        header_type, paths, hosts = _raw_header(header)
    except ShareError:
        return query
    if header_type:
        query = add_query(query, "headerType", header_type)
        if paths:
            query = add_query(query, "path", ",".join(paths))
        if hosts:
            query = add_query(query, "host", ",".join(hosts))
    return query


def _kcp_query(stream: dict[str, Any], query: str) -> str:
    kcp = stream.get("kcpSettings")
    if kcp is None:
        return query
    kcp = _mapping(kcp, "kcpSettings")
    seed = _text(kcp, "seed")
    if seed:
        query = add_query(query, "seed", seed)
    header = kcp.get("header")
    if header is None:
        return query
    if not isinstance(header, dict) or not isinstance(header.get("type", ""), (str, type(None))):
        return query
    header_type = header.get("type") or ""
    if header_type:
        query = add_query(query, "headerType", header_type)
    return query


def _ws_query(stream: dict[str, Any], query: str) -> str:
    ws = stream.get("wsSettings")
    if ws is None:
        return query
    ws = _mapping(ws, "wsSettings")
    for key in ("path", "host"):
        value = _text(ws, key)
        if value:
            query = add_query(query, key, value)
    return query


def _grpc_query(stream: dict[str, Any], query: str) -> str:
    grpc = stream.get("grpcSettings")
    if grpc is None:
        return query
    grpc = _mapping(grpc, "grpcSettings")
    query = add_query(query, "mode", "multi" if _flag(grpc, "multiMode") else "gun")
    for key in ("serviceName", "authority"):
        value = _text(grpc, key)
        if value:
            query = add_query(query, key, value)
    return query


def _httpupgrade_query(stream: dict[str, Any], query: str) -> str:
    settings = stream.get("httpupgradeSettings")
    if settings is None:
        return query
    settings = _mapping(settings, "httpupgradeSettings")
    for key in ("host", "path"):
        value = _text(settings, key)
        if value:
            query = add_query(query, key, value)
    return query


def _xhttp_query(stream: dict[str, Any], query: str) -> str:
    settings = stream.get("xhttpSettings")
    if settings is None:
        return query
    settings = _mapping(settings, "xhttpSettings")
    for key in ("host", "path", "mode"):
        value = _text(settings, key)
        if value:
            query = add_query(query, key, value)
    if "extra" in settings:
        extra = json.dumps(settings["extra"], separators=(",", ":"), ensure_ascii=False)
        query = add_query(query, "extra", extra)
    return query


_NETWORK_QUERIES: dict[str, Callable[[dict[str, Any], str], str]] = {
    "raw": _raw_query,
    "kcp": _kcp_query,
    "ws": _ws_query,
    "grpc": _grpc_query,
    "httpupgrade": _httpupgrade_query,
    "xhttp": _xhttp_query,
}


def _tls_query(stream: dict[str, Any], query: str) -> str:
    tls = stream.get("tlsSettings")
    if tls is None:
        return query
    tls = _mapping(tls, "tlsSettings")
    fingerprint = _text(tls, "fingerprint")
    if fingerprint:
        query = add_query(query, "fp", fingerprint)
    server_name = _text(tls, "serverName")
    if server_name:
        query = add_query(query, "sni", server_name)
    alpn = _string_list(tls.get("alpn"), "alpn")
    if alpn:
        query = add_query(query, "alpn", ",".join(alpn))
    if _flag(tls, "allowInsecure"):
        query = add_query(query, "allowInsecure", "1")
    return query


def _reality_query(stream: dict[str, Any], query: str) -> str:
    reality = stream.get("realitySettings")
    if reality is None:
        return query
    reality = _mapping(reality, "realitySettings")
    for key, name in (
        ("fingerprint", "fp"),
        ("serverName", "sni"),
        ("publicKey", "pbk"),
        ("shortId", "sid"),
        ("spiderX", "spx"),
    ):
        value = _text(reality, key)
        if value:
            query = add_query(query, name, value)
    return query


_SECURITY_QUERIES: dict[str, Callable[[dict[str, Any], str], str]] = {
    "tls": _tls_query,
    "reality": _reality_query,
}


def stream_settings_query(outbound: dict[str, Any], query: str) -> str:
    """Append the transport and security parameters of ``outbound`` to ``query``."""
    stream = outbound.get("streamSettings")
    if stream is None:
        return query
    stream = _mapping(stream, "streamSettings")

    network = "raw" if stream.get("network") is None else _text(stream, "network")
    query = add_query(query, "type", network)
    security = _text(stream, "security") or "none"
    query = add_query(query, "security", security)

    network_query = _NETWORK_QUERIES.get(network)
    if network_query is not None:
        query = network_query(stream, query)
    security_query = _SECURITY_QUERIES.get(security)
    if security_query is not None:
        query = security_query(stream, query)
    return query


def add_query(query: str, key: str, value: str) -> str:
    """Append ``key=value`` to a raw query string, escaping the value."""
    pair = f"{key}={quote_plus(value, safe='')}"
    return f"{query}&{pair}" if query else pair


def convert_xray_json_to_share_links(xray_bytes: bytes | str) -> str:
    """Convert a JSON configuration into newline separated share links.

    Outbounds that cannot be converted are skipped; if none is left, or the
    configuration has no outbounds, ShareError is raised.
    """
    try:
        config = json.loads(xray_bytes)
    except ValueError as exc:
        raise ShareError(f"invalid JSON config: {exc}") from exc
    if not isinstance(config, dict):
        raise ShareError("config is not a JSON object")
    outbounds = config.get("outbounds")
    if outbounds is None:
        outbounds = []
    if not isinstance(outbounds, list):
        raise ShareError("config field 'outbounds' must be a list")
    if not outbounds:
        raise ShareError("no valid outbounds")

    links: list[str] = []
    for outbound in outbounds:
        if not isinstance(outbound, dict):
            raise ShareError("outbound must be a JSON object")
        try:
            links.append(share_link(outbound))
        except ShareError:
            continue
    if not links:
        raise ShareError("no valid outbounds")
    return "\n".join(links)
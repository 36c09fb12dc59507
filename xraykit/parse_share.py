"""Turning share links and subscription text into outbound configurations."""

from __future__ import annotations

import base64
import binascii
import json
import logging
import re
import string
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import quote, unquote

from xraykit.clash import parse_clash_yaml
from xraykit.outbound import (
    ShareError,
    fake_header,
    parse_address,
    raw_settings_header,
    set_outbound_name,
    transport_name,
)
from xraykit.vmess import parse_vmess_qrcode

_log = logging.getLogger(__name__)

_SHARE_PREFIXES = ("vless://", "vmess://", "socks://", "ss://", "trojan://")

_ALNUM = frozenset(string.ascii_letters + string.digits)
_USERINFO_CHARS = _ALNUM | frozenset("-._:~!$&'()*+,;=%@")
_HOST_CHARS = _ALNUM | frozenset("-_.~!$&'()*+,;=:[]<>\"%")
_USERINFO_SAFE = "-_.~$&+,;="
_BAD_ESCAPE = re.compile(r"%(?![0-9A-Fa-f]{2})")
_MAX_INT64 = 2**63 - 1
_COLON = ":"


def _unescape(text: str, *, plus: bool = False) -> str:
    """Percent-decode ``text``; with ``plus`` a ``+`` stands for a space."""
    match = _BAD_ESCAPE.search(text)
    if match:
        raise ShareError(f"invalid URL escape {text[match.start():match.start() + 3]!r}")
    if plus:
        text = text.replace("+", " ")
    return unquote(text, errors="replace")


def _escape_userinfo(text: str) -> str:
    return quote(text, safe=_USERINFO_SAFE)


def _valid_optional_port(port: str) -> bool:
    if not port:
        return True
    return port[0] == ":" and all(char in string.digits for char in port[1:])


def _split_scheme(text: str) -> tuple[str, str]:
    for index, char in enumerate(text):
        if char.isascii() and char.isalpha():
            continue
        if char.isascii() and (char.isdigit() or char in "+-."):
            if index == 0:
                return "", text
            continue
        if char == ":":
            if index == 0:
                raise ShareError("missing protocol scheme")
            return text[:index], text[index + 1:]
        return "", text
    return "", text


def _parse_host(host: str) -> str:
    if host.startswith("["):
        end = host.rfind("]")
        if end < 0:
            raise ShareError("missing ']' in host")
        if not _valid_optional_port(host[end + 1:]):
            raise ShareError(f"invalid port {host[end + 1:]!r} after host")
    else:
        colon = host.rfind(":")
        if colon != -1 and not _valid_optional_port(host[colon:]):
            raise ShareError(f"invalid port {host[colon:]!r} after host")
    if any(char.isascii() and char not in _HOST_CHARS for char in host):
        raise ShareError(f"invalid character in host name: {host!r}")
    return _unescape(host)


def _split_host_port(host: str) -> tuple[str, str]:
    colon = host.rfind(":")
    if colon != -1 and _valid_optional_port(host[colon:]):
        name, port = host[:colon], host[colon + 1:]
    else:
        name, port = host, ""
    if name.startswith("[") and name.endswith("]"):
        name = name[1:-1]
    return name, port


def _parse_query(raw: str) -> dict[str, str]:
    """Parse a query string keeping the first value of every key."""
    values: dict[str, str] = {}
    for part in raw.split("&"):
        if not part or ";" in part:
            continue
        key, _, value = part.partition("=")
        try:
            key = _unescape(key, plus=True)
            value = _unescape(value, plus=True)
        except ShareError:
            continue
        values.setdefault(key, value)
    return values


def _std_b64decode(text: str) -> str:
    cleaned = text.replace("\r", "").replace("\n", "")
    try:
        return base64.b64decode(cleaned, validate=True).decode("utf-8", errors="replace")
    except (binascii.Error, ValueError) as exc:
        raise ShareError(f"illegal base64 data: {exc}") from exc


@dataclass
class ShareLink:
    """One share link such as ``vless://id@host:port?query#name``.

    The text is parsed on construction; a malformed URL raises ShareError.
    """

    raw_text: str
    scheme: str = field(init=False, default="")
    user: str = field(init=False, default="")
    hostname: str = field(init=False, default="")
    port: str = field(init=False, default="")
    query: dict[str, str] = field(init=False, default_factory=dict)
    fragment: str = field(init=False, default="")

    def __post_init__(self) -> None:
        text = self.raw_text
        if any(ord(char) < 0x20 or ord(char) == 0x7F for char in text):
            raise ShareError("invalid control character in URL")
        rest, hash_sign, fragment = text.partition("#")
        self.fragment = _unescape(fragment) if hash_sign else ""
        scheme, rest = _split_scheme(rest)
        self.scheme = scheme.lower()
        rest, _, raw_query = rest.partition("?")
        self.query = _parse_query(raw_query)

        if not rest.startswith("//") or (not scheme and rest.startswith("///")):
            return
        authority = rest[2:].split("/", 1)[0]
        userinfo, at_sign, host = authority.rpartition("@")
        self.hostname, self.port = _split_host_port(_parse_host(host))
        if at_sign:
            if any(char not in _USERINFO_CHARS for char in userinfo):
                raise ShareError("invalid userinfo")
            name, colon, tail = userinfo.partition(_COLON)
            parts = [name, tail] if colon else [name]
            self.user = _COLON.join(_escape_userinfo(_unescape(part)) for part in parts)

    def outbound(self) -> dict[str, Any]:
        """Convert to an outbound configuration; unsupported links raise ShareError."""
        builders = {
            "ss": self._shadowsocks_outbound,
            "vmess": self._vmess_outbound,
            "vless": self._vless_outbound,
            "socks": self._socks_outbound,
            "trojan": self._trojan_outbound,
        }
        builder = builders.get(self.scheme)
        if builder is None:
            raise ShareError(f"unsupport link: {self.raw_text}")
        return builder()

    def _new_outbound(self, protocol: str) -> dict[str, Any]:
        outbound: dict[str, Any] = {"protocol": protocol}
        set_outbound_name(outbound, self.fragment)
        return outbound

    def _port_number(self) -> int:
        if not self.port:
            raise ShareError('invalid port ""')
        number = int(self.port)
        if number > _MAX_INT64:
            raise ShareError(f"port out of range: {self.port}")
        return number & 0xFFFF

    def _attach_stream(self, outbound: dict[str, Any]) -> dict[str, Any]:
        stream = self.stream_settings()
        if stream is not None:
            outbound["streamSettings"] = stream
        return outbound

    def _shadowsocks_outbound(self) -> dict[str, Any]:
        outbound = self._new_outbound("shadowsocks")
        address = parse_address(self.hostname)
        port = self._port_number()
        password_text = decode_base64_text(self.user)
        method, sep, password = password_text.partition(_COLON)
        if not sep:
            raise ShareError(f"unsupport link shadowsocks password: {password_text}")
        server = {
            "address": address,
            "port": port,
            "method": method,
            "password": password,
        }
        outbound["settings"] = {"servers": [server]}
        return self._attach_stream(outbound)

    def _vmess_outbound(self) -> dict[str, Any]:
        try:
            decoded = decode_base64_text(self.raw_text.replace("vmess://", ""))
        except ShareError:
            pass
        else:
            return parse_vmess_qrcode(decoded)

        outbound = self._new_outbound("vmess")
        user = {"id": _unescape(self.user, plus=True), "security": self.query.get("encryption", "")}
        target = {
            "address": parse_address(self.hostname),
            "port": self._port_number(),
            "users": [user],
        }
        outbound["settings"] = {"vnext": [target]}
        return self._attach_stream(outbound)

    def _vless_outbound(self) -> dict[str, Any]:
        outbound = self._new_outbound("vless")
        user: dict[str, Any] = {"id": _unescape(self.user, plus=True)}
        flow = self.query.get("flow", "")
        if flow:
            user["flow"] = flow
        user["encryption"] = self.query.get("encryption", "") or "none"
        target = {
            "address": parse_address(self.hostname),
            "port": self._port_number(),
            "users": [user],
        }
        outbound["settings"] = {"vnext": [target]}
        return self._attach_stream(outbound)

    def _socks_outbound(self) -> dict[str, Any]:
        outbound = self._new_outbound("socks")
        users: list[dict[str, Any]] = []
        if self.user:
            password_text = decode_base64_text(self.user)
            username, sep, password = password_text.partition(_COLON)
            if not sep:
                raise ShareError(f"unsupport link socks user password: {password_text}")
            users.append({"user": username, "pass": password})
        server = {
            "address": parse_address(self.hostname),
            "port": self._port_number(),
            "users": users,
        }
        outbound["settings"] = {"servers": [server]}
        return self._attach_stream(outbound)

    def _trojan_outbound(self) -> dict[str, Any]:
        outbound = self._new_outbound("trojan")
        address = parse_address(self.hostname)
        port = self._port_number()
        password = _unescape(self.user, plus=True)
        server = {
            "address": address,
            "port": port,
            "password": password,
        }
        outbound["settings"] = {"servers": [server]}
        return self._attach_stream(outbound)

    def stream_settings(self) -> dict[str, Any] | None:
        """Build transport and security settings, or None when the link has no query."""
        query = self.query
        if not query:
            return None
        network = query.get("type", "") or "raw"
        stream: dict[str, Any] = {"network": network}

        if network in ("raw", "tcp"):
            header_type = query.get("headerType", "")
            if header_type == "http":
                header = raw_settings_header(header_type, query.get("path", ""), query.get("host", ""))
                stream["rawSettings"] = {"header": header}
        elif network in ("kcp", "mkcp"):
            kcp: dict[str, Any] = {}
            header_type = query.get("headerType", "")
            if header_type:
                kcp["header"] = fake_header(header_type)
            kcp["seed"] = query.get("seed", "")
            stream["kcpSettings"] = kcp
        elif network in ("ws", "websocket"):
            stream["wsSettings"] = {"path": query.get("path", ""), "host": query.get("host", "")}
        elif network in ("grpc", "gun"):
            stream["grpcSettings"] = {
                "authority": query.get("authority", ""),
                "serviceName": query.get("serviceName", ""),
                "multiMode": query.get("mode", "") == "multi",
            }
        elif network == "httpupgrade":
            stream["httpupgradeSettings"] = {"host": query.get("host", ""), "path": query.get("path", "")}
        elif network in ("xhttp", "splithttp"):
            xhttp: dict[str, Any] = {
                "host": query.get("host", ""),
                "path": query.get("path", ""),
                "mode": query.get("mode", ""),
            }
            extra = query.get("extra", "")
            if extra:
                try:
                    extra_config = json.loads(extra)
                except ValueError as exc:
                    raise ShareError(f"invalid xhttp extra: {exc}") from exc
                if extra_config is None:
                    extra_config = {}
                if not isinstance(extra_config, dict):
                    raise ShareError("xhttp extra must be a JSON object")
                xhttp["extra"] = extra_config
            stream["xhttpSettings"] = xhttp

        self._apply_security(stream)
        return stream

    def _apply_security(self, stream: dict[str, Any]) -> None:
        query = self.query
        fingerprint = query.get("fp", "")
        sni = query.get("sni", "")
        tls: dict[str, Any] = {"fingerprint": fingerprint, "serverName": sni}
        reality: dict[str, Any] = {"fingerprint": fingerprint, "serverName": sni}

        alpn = query.get("alpn", "")
        if alpn:
            tls["alpn"] = alpn.split(",")
        if query.get("allowInsecure", "") in ("true", "1"):
            tls["allowInsecure"] = True

        reality["publicKey"] = query.get("pbk", "")
        reality["shortId"] = query.get("sid", "")
        reality["spiderX"] = query.get("spx", "")

        security = query.get("security", "") or "none"
        if self.scheme == "trojan" and security == "none":
            security = "tls"
        stream["security"] = security

        if transport_name(stream["network"]) == "websocket" and not tls["serverName"]:
            host = stream.get("wsSettings", {}).get("host", "")
            if host:
                tls["serverName"] = host

        if security == "tls":
            stream["tlsSettings"] = tls
        elif security == "reality":
            stream["realitySettings"] = reality


def fix_windows_return(text: str) -> str:
    """Replace CRLF line endings with LF."""
    return text.replace("\r\n", "\n")


def decode_base64_text(text: str) -> str:
    """Decode standard base64, falling back to URL-safe or unpadded forms."""
    try:
        return _std_b64decode(text)
    except ShareError:
        pass
    text = text.replace("-", "+").replace("_", "/")
    missing = len(text) % 4
    if missing:
        text += "=" * (4 - missing)
    return _std_b64decode(text)


def parse_plain_share_text(text: str) -> dict[str, Any]:
    """Convert newline separated share links into a configuration.

    Links that cannot be converted are skipped; if none is left ShareError is raised.
    """
    outbounds: list[dict[str, Any]] = []
    for line in text.split("\n"):
        try:
            link = ShareLink(line)
        except ShareError:
            continue
        try:
            outbounds.append(link.outbound())
        except ShareError as exc:
            _log.warning("%s", exc)
    if not outbounds:
        raise ShareError("no valid outbound found")
    return {"outbounds": outbounds}


def convert_share_links_to_xray_json(links: str) -> dict[str, Any]:
    """Convert share text into a configuration.

    Accepts a JSON configuration, plain share links, base64 encoded share
    links, or Clash.Meta YAML.
    """
    text = links.strip()
    if text.startswith("{"):
        try:
            config = json.loads(text)
        except ValueError as exc:
            raise ShareError(f"invalid JSON config: {exc}") from exc
        if not isinstance(config, dict):
            raise ShareError("config is not a JSON object")
        outbounds = config.get("outbounds")
        if outbounds is not None and not isinstance(outbounds, list):
            raise ShareError("config field 'outbounds' must be a list")
        if not outbounds:
            raise ShareError("no valid outbounds")
        return config

    text = fix_windows_return(text)
    if text.startswith(_SHARE_PREFIXES):
        return parse_plain_share_text(text)
    try:
        decoded = decode_base64_text(text)
    except ShareError:
        return parse_clash_yaml(text)
    return parse_plain_share_text(fix_windows_return(decoded))
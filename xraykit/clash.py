"""Reading proxies from Clash.Meta style YAML into outbound configurations."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field, fields
from typing import Any, TypeVar

import yaml

from xraykit.outbound import ShareError, parse_address, set_outbound_name

_log = logging.getLogger(__name__)

_T = TypeVar("_T")


def _to_str(value: Any, key: str) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (str, int, float)):
        return str(value)
    raise ShareError(f"clash field {key!r} must be a scalar")


def _to_bool(value: Any, key: str) -> bool:
    if isinstance(value, bool):
        return value
    raise ShareError(f"clash field {key!r} must be a boolean")


def _to_int(value: Any, key: str) -> int:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    raise ShareError(f"clash field {key!r} must be an integer")


def _to_port(value: Any, key: str) -> int:
    number = _to_int(value, key)
    if not 0 <= number <= 0xFFFF:
        raise ShareError(f"clash field {key!r} is out of range: {number}")
    return number


def _to_str_list(value: Any, key: str) -> list[str]:
    if not isinstance(value, list):
        raise ShareError(f"clash field {key!r} must be a list")
    return [_to_str(item, key) for item in value if item is not None]


def _nested(cls: type[_T]) -> Callable[[Any, str], _T]:
    def convert(value: Any, key: str) -> _T:
        return _load(cls, value, key)

    return convert


def _opt(
    key: str | None, convert: Callable[[Any, str], Any], default: Any = None, **kwargs: Any
) -> Any:
    """Declare a field read from YAML ``key``; without a key the field name is hyphenated."""
    metadata = {"key": key, "convert": convert}
    if "default_factory" in kwargs:
        return field(default_factory=kwargs["default_factory"], metadata=metadata)
    return field(default=default, metadata=metadata)


def _text_field(key: str | None = None) -> Any:
    """Declare a text field defaulting to the empty string."""
    return _opt(key, _to_str, "")


def _yaml_key(item: Any) -> str:
    return item.metadata["key"] or item.name.replace("_", "-")


def _load(cls: type[_T], data: Any, what: str) -> _T:
    """Fill a dataclass from a YAML mapping; missing and null keys keep defaults."""
    if data is None:
        return cls()
    if not isinstance(data, Mapping):
        raise ShareError(f"clash {what} must be a mapping")
    values: dict[str, Any] = {}
    for item in fields(cls):  # type: ignore[arg-type]
        key = _yaml_key(item)
        raw = data.get(key)
        if raw is None:
            continue
        values[item.name] = item.metadata["convert"](raw, key)
    return cls(**values)


@dataclass
class _RealityOpts:
    public_key: str = _opt("public-key", _to_str, "")
    short_id: str = _opt("short-id", _to_str, "")


@dataclass
class _PluginOpts:
    mode: str = _opt("mode", _to_str, "")
    tls: bool = _opt("tls", _to_bool, False)
    fingerprint: str = _opt("fingerprint", _to_str, "")
    skip_cert_verify: bool = _opt("skip-cert-verify", _to_bool, False)
    host: str = _opt("host", _to_str, "")
    path: str = _opt("path", _to_str, "")
    mux: bool = _opt("mux", _to_bool, False)


@dataclass
class _WsHeaders:
    host: str = _opt("Host", _to_str, "")


@dataclass
class _WsOpts:
    path: str = _opt("path", _to_str, "")
    headers: _WsHeaders | None = _opt("headers", _nested(_WsHeaders))


@dataclass
class _GrpcOpts:
    grpc_service_name: str = _opt("grpc-service-name", _to_str, "")


@dataclass
class _SsOpts:
    enabled: bool = _opt("enabled", _to_bool, False)
    method: str = _opt("method", _to_str, "")
    password: str = _text_field()


@dataclass
class ClashProxy:
    """One entry of the ``proxies`` list of a Clash.Meta configuration."""

    name: str = _opt("name", _to_str, "")
    type: str = _opt("type", _to_str, "")
    server: str = _opt("server", _to_str, "")
    port: int = _opt("port", _to_port, 0)
    uuid: str = _opt("uuid", _to_str, "")
    cipher: str = _opt("cipher", _to_str, "")
    username: str = _opt("username", _to_str, "")
    password: str = _text_field()

    udp: bool = _opt("udp", _to_bool, False)

    tls: bool = _opt("tls", _to_bool, False)
    skip_cert_verify: bool = _opt("skip-cert-verify", _to_bool, False)
    servername: str = _opt("servername", _to_str, "")
    sni: str = _opt("sni", _to_str, "")
    alpn: list[str] = _opt("alpn", _to_str_list, default_factory=list)

    fingerprint: str = _opt("fingerprint", _to_str, "")
    client_fingerprint: str = _opt("client-fingerprint", _to_str, "")
    flow: str = _opt("flow", _to_str, "")
    reality_opts: _RealityOpts | None = _opt("reality-opts", _nested(_RealityOpts))

    network: str = _opt("network", _to_str, "")
    plugin: str = _opt("plugin", _to_str, "")
    plugin_opts: _PluginOpts | None = _opt("plugin-opts", _nested(_PluginOpts))
    ws_opts: _WsOpts | None = _opt("ws-opts", _nested(_WsOpts))
    grpc_opts: _GrpcOpts | None = _opt("grpc-opts", _nested(_GrpcOpts))
    ss_opts: _SsOpts | None = _opt("ss-opts", _nested(_SsOpts))

    # Hysteria2 fields: kept when read, not used for outbounds.
    ports: str = _opt("ports", _to_str, "")
    hop_interval: int = _opt("hop-interval", _to_int, 0)
    up: str = _opt("up", _to_str, "")
    down: str = _opt("down", _to_str, "")
    obfs: str = _opt("obfs", _to_str, "")
    obfs_password: str = _text_field()

    @classmethod
    def from_mapping(cls, data: Any) -> ClashProxy:
        """Build from a decoded YAML mapping; unknown keys are ignored."""
        return _load(cls, data, "proxy")

    def outbound(self) -> dict[str, Any]:
        """Convert to an outbound configuration; unsupported types raise ShareError."""
        builders = {
            "ss": self._shadowsocks_outbound,
            "vmess": self._vmess_outbound,
            "vless": self._vless_outbound,
            "socks5": self._socks_outbound,
            "trojan": self._trojan_outbound,
        }
        builder = builders.get(self.type)
        if builder is None:
            raise ShareError(f"unsupport proxy type: {self.type}")
        return builder()

    def _new_outbound(self, protocol: str) -> dict[str, Any]:
        outbound: dict[str, Any] = {"protocol": protocol}
        set_outbound_name(outbound, self.name)
        return outbound

    def _shadowsocks_outbound(self) -> dict[str, Any]:
        outbound = self._new_outbound("shadowsocks")
        server = {
            "address": parse_address(self.server),
            "port": self.port,
            "method": self.cipher,
            "password": self.password,
        }
        outbound["settings"] = {"servers": [server]}

        if self.plugin:
            if self.plugin != "v2ray-plugin":
                raise ShareError("unsupport ss plugin: obfs")
            opts = self.plugin_opts
            if opts is None:
                raise ShareError("unsupport ss plugin-opts: nil")
            if opts.mode != "websocket":
                raise ShareError(f"unsupport ss plugin-opts mode: {opts.mode}")
            ws: dict[str, Any] = {}
            if opts.host:
                ws["host"] = opts.host
            if opts.path:
                ws["path"] = opts.path
            stream: dict[str, Any] = {"network": "websocket", "wsSettings": ws}
            if opts.tls:
                stream["tlsSettings"] = {
                    "fingerprint": opts.fingerprint,
                    "allowInsecure": opts.skip_cert_verify,
                }
            outbound["streamSettings"] = stream
        return outbound

    def _vmess_outbound(self) -> dict[str, Any]:
        outbound = self._new_outbound("vmess")
        user = {"id": self.uuid, "security": self.cipher}
        target = {
            "address": parse_address(self.server),
            "port": self.port,
            "users": [user],
        }
        outbound["settings"] = {"vnext": [target]}
        outbound["streamSettings"] = self.stream_settings(outbound["protocol"])
        return outbound

    def _vless_outbound(self) -> dict[str, Any]:
        outbound = self._new_outbound("vless")
        user: dict[str, Any] = {"id": self.uuid}
        if self.flow:
            user["flow"] = self.flow
        target = {
            "address": parse_address(self.server),
            "port": self.port,
            "users": [user],
        }
        outbound["settings"] = {"vnext": [target]}
        outbound["streamSettings"] = self.stream_settings(outbound["protocol"])
        return outbound

    def _socks_outbound(self) -> dict[str, Any]:
        outbound = self._new_outbound("socks")
        user = {"user": self.username, "pass": self.password}
        server = {
            "address": parse_address(self.server),
            "port": self.port,
            "users": [user],
        }
        outbound["settings"] = {"servers": [server]}
        outbound["streamSettings"] = self.stream_settings(outbound["protocol"])
        return outbound

    def _trojan_outbound(self) -> dict[str, Any]:
        outbound = self._new_outbound("trojan")
        server = {
            "address": parse_address(self.server),
            "port": self.port,
            "password": self.password,
        }
        outbound["settings"] = {"servers": [server]}
        outbound["streamSettings"] = self.stream_settings(outbound["protocol"])
        return outbound

    def stream_settings(self, protocol: str) -> dict[str, Any]:
        """Build transport and security settings for an outbound of ``protocol``."""
        network = self.network or "raw"
        stream: dict[str, Any] = {"network": network}
        if network == "ws" and self.ws_opts is not None:
            ws: dict[str, Any] = {}
            if self.ws_opts.headers is not None:
                ws["host"] = self.ws_opts.headers.host
            ws["path"] = self.ws_opts.path
            stream["wsSettings"] = ws
        elif network == "grpc" and self.grpc_opts is not None:
            stream["grpcSettings"] = {"serviceName": self.grpc_opts.grpc_service_name}
        self._apply_security(stream, protocol)
        return stream

    def _apply_security(self, stream: dict[str, Any], protocol: str) -> None:
        tls: dict[str, Any] = {}
        reality: dict[str, Any] = {}
        security = ""

        if self.tls:
            security = "tls"
        if self.skip_cert_verify:
            tls["allowInsecure"] = True
        if self.reality_opts is not None:
            security = "reality"
            reality["publicKey"] = self.reality_opts.public_key
            reality["shortId"] = self.reality_opts.short_id
        for server_name in (self.servername, self.sni):
            if server_name:
                tls["serverName"] = server_name
                reality["serverName"] = server_name
        if self.alpn:
            tls["alpn"] = list(self.alpn)
        for fingerprint in (self.fingerprint, self.client_fingerprint):
            if fingerprint:
                tls["fingerprint"] = fingerprint
                reality["fingerprint"] = fingerprint

        if protocol == "trojan" and not security:
            security = "tls"

        if security:
            stream["security"] = security
        if security == "tls":
            stream["tlsSettings"] = tls
        elif security == "reality":
            stream["realitySettings"] = reality


def parse_clash_yaml(text: str) -> dict[str, Any]:
    """Parse Clash.Meta YAML into a configuration holding its supported outbounds.

    Malformed YAML or fields of the wrong type raise :class:`ShareError`;
    proxies of unsupported kinds are skipped.
    """
    try:
        document = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ShareError(f"invalid clash yaml: {exc}") from exc
    if document is None:
        document = {}
    if not isinstance(document, Mapping):
        raise ShareError("clash yaml is not a mapping")
    entries = document.get("proxies")
    if entries is None:
        entries = []
    if not isinstance(entries, list):
        raise ShareError("clash field 'proxies' must be a list")

    proxies = [ClashProxy.from_mapping(entry) for entry in entries]
    outbounds: list[dict[str, Any]] = []
    for proxy in proxies:
        try:
            outbounds.append(proxy.outbound())
        except ShareError as exc:
            _log.warning("%s", exc)
    return {"outbounds": outbounds}
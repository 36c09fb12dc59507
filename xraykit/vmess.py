"""VMess share links in the JSON "QR code" format."""

from __future__ import annotations

import json
import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from xraykit.outbound import (
    ShareError,
    fake_header,
    parse_address,
    raw_settings_header,
    set_outbound_name,
    transport_name,
)

_TEXT_FIELDS = (
    "ps", "add", "id", "scy", "net", "type", "host", "path", "tls", "sni", "alpn", "fp",
)

_PORT_TEXT = re.compile(r"[+-]?[0-9]+")


def _port_number(value: Any) -> int:
    """Interpret the ``port`` field, which may be a number or a string."""
    if isinstance(value, bool) or value is None:
        raise ShareError(f"invalid vmess port: {value!r}")
    if isinstance(value, int):
        number = value
    elif isinstance(value, float) and value.is_integer():
        number = int(value)
    elif isinstance(value, str) and _PORT_TEXT.fullmatch(value):
        number = int(value)
    else:
        raise ShareError(f"invalid vmess port: {value!r}")
    return number & 0xFFFF


@dataclass
class VMessQrCode:
    """The fields of a VMess QR-code JSON document."""

    ps: str = ""
    add: str = ""
    port: Any = None
    id: str = ""
    scy: str = ""
    net: str = ""
    type: str = ""
    host: str = ""
    path: str = ""
    tls: str = ""
    sni: str = ""
    alpn: str = ""
    fp: str = ""

    @classmethod
    def from_mapping(cls, data: Any) -> VMessQrCode:
        """Build from decoded JSON; unknown keys are ignored."""
        if data is None:
            return cls()
        if not isinstance(data, Mapping):
            raise ShareError("vmess QR code is not a JSON object")
        values: dict[str, Any] = {"port": data.get("port")}
        for name in _TEXT_FIELDS:
            value = data.get(name)
            if value is None:
                continue
            if not isinstance(value, str):
                raise ShareError(f"vmess field {name!r} must be a string")
            values[name] = value
        return cls(**values)

    def outbound(self) -> dict[str, Any]:
        """Convert to a VMess outbound configuration."""
        outbound: dict[str, Any] = {"protocol": "vmess"}
        set_outbound_name(outbound, self.ps)
        user = {"id": self.id, "security": self.scy}
        target = {
            "address": parse_address(self.add),
            "port": _port_number(self.port),
            "users": [user],
        }
        outbound["settings"] = {"vnext": [target]}
        outbound["streamSettings"] = self.stream_settings()
        return outbound

    def stream_settings(self) -> dict[str, Any]:
        """Build the transport and security settings."""
        network = self.net or "raw"
        stream: dict[str, Any] = {"network": network}
        if network in ("raw", "tcp"):
            if self.type == "http":
                header = raw_settings_header(self.type, self.path, self.host)
                stream["rawSettings"] = {"header": header}
        elif network in ("kcp", "mkcp"):
            kcp: dict[str, Any] = {}
            if self.type:
                kcp["header"] = fake_header(self.type)
            kcp["seed"] = self.path
            stream["kcpSettings"] = kcp
        elif network in ("ws", "websocket"):
            stream["wsSettings"] = {"path": self.path, "host": self.host}
        elif network in ("grpc", "gun"):
            stream["grpcSettings"] = {
                "serviceName": self.path,
                "multiMode": self.type == "multi",
            }
        self._apply_security(stream)
        return stream

    def _apply_security(self, stream: dict[str, Any]) -> None:
        tls: dict[str, Any] = {"fingerprint": self.fp, "serverName": self.sni}
        if self.alpn:
            tls["alpn"] = self.alpn.split(",")
        stream["security"] = self.tls or "none"

        if transport_name(stream["network"]) == "websocket" and not tls["serverName"]:
            host = stream.get("wsSettings", {}).get("host", "")
            if host:
                tls["serverName"] = host

        if stream["security"] == "tls":
            stream["tlsSettings"] = tls


def parse_vmess_qrcode(text: str | bytes) -> dict[str, Any]:
    """Parse a VMess QR-code JSON document into an outbound configuration."""
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ShareError(f"invalid vmess JSON: {exc}") from exc
    return VMessQrCode.from_mapping(data).outbound()
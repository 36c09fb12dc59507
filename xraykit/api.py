"""Entry points that take and return base64 text wrapping JSON."""

from __future__ import annotations

import base64
import json
from typing import Any

from xraykit import generate_share, geo, parse_share, ports, stats
from xraykit.outbound import ShareError
from xraykit.response import encode_response

_JSON_ESCAPES = {
    "<": "\\u003c",
    ">": "\\u003e",
    "&": "\\u0026",
    "\u2028": "\\u2028",
    "\u2029": "\\u2029",
}


def _decode_request(text: str) -> bytes:
    """Decode standard base64, ignoring line breaks; raise ValueError if malformed."""
    cleaned = text.replace("\r", "").replace("\n", "")
    return base64.b64decode(cleaned, validate=True)


def _encode_request(payload: dict[str, Any]) -> str:
    """Serialise ``payload`` as compact, HTML-safe JSON and base64 encode it."""
    text = json.dumps(payload, separators=(",", ":"), ensure_ascii=False)
    for char, escape in _JSON_ESCAPES.items():
        text = text.replace(char, escape)
    return base64.b64encode(text.encode("utf-8")).decode("ascii")


def _without_empty(**fields: Any) -> dict[str, Any]:
    return {key: value for key, value in fields.items() if value}


def get_free_ports(count: int) -> str:
    """Ask for ``count`` free TCP ports; the envelope holds ``{"ports": [...]}``."""
    try:
        found = ports.get_free_ports(count)
    except OSError as exc:
        return encode_response(None, exc)
    return encode_response(_without_empty(ports=found), None)


def convert_share_links_to_xray_json(base64_text: str) -> str:
    """Convert base64 encoded share text into a configuration envelope.

    Accepts a JSON configuration, plain or base64 share links, or Clash.Meta YAML.
    """
    try:
        links = _decode_request(base64_text)
    except ValueError as exc:
        return encode_response(None, exc)
    try:
        config = parse_share.convert_share_links_to_xray_json(
            links.decode("utf-8", errors="replace")
        )
    except ShareError as exc:
        return encode_response(None, exc)
    return encode_response(config, None)


def convert_xray_json_to_share_links(base64_text: str) -> str:
    """Convert a base64 encoded JSON configuration into share links."""
    try:
        config = _decode_request(base64_text)
    except ValueError as exc:
        return encode_response("", exc)
    try:
        links = generate_share.convert_xray_json_to_share_links(config)
    except ShareError as exc:
        return encode_response("", exc)
    return encode_response(links, None)


def read_geo_files(base64_text: str) -> str:
    """List the geo data files a base64 encoded configuration refers to."""
    try:
        config = _decode_request(base64_text)
    except ValueError as exc:
        return encode_response(None, exc)
    domain, ip = geo.read_geo_files(config)
    return encode_response(_without_empty(domain=domain, ip=ip), None)


def query_stats(base64_text: str) -> str:
    """Fetch the statistics served at a base64 encoded metrics address."""
    try:
        server = _decode_request(base64_text).decode("utf-8", errors="replace")
    except ValueError as exc:
        return encode_response("", exc)
    try:
        body = stats.query_stats(server)
    except (OSError, ValueError) as exc:
        return encode_response("", exc)
    return encode_response(body, None)


def new_xray_run_request(dat_dir: str, config_path: str) -> str:
    """Build the base64 request for running an instance from a config file."""
    return _encode_request(_without_empty(datDir=dat_dir, configPath=config_path))


def new_xray_run_from_json_request(dat_dir: str, config_json: str) -> str:
    """Build the base64 request for running an instance from JSON text."""
    return _encode_request(_without_empty(datDir=dat_dir, configJSON=config_json))
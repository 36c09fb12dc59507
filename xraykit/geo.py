"""Finding which geo data files and codes a configuration refers to."""

from __future__ import annotations

import json
from typing import Any


def _string_list(value: Any) -> list[str]:
    """Read a list of strings given either as an array or a comma separated string."""
    if value is None:
        return []
    if isinstance(value, list) and all(isinstance(item, str) for item in value):
        return list(value)
    if isinstance(value, str):
        return value.split(",")
    raise ValueError(f"unknown format of a string list: {value!r}")


def _strings(value: Any) -> list[str]:
    if isinstance(value, list):
        return [item for item in value if isinstance(item, str)]
    return []


def load_xray_config(config_bytes: bytes | str) -> tuple[list[str], list[str]]:
    """Collect the domain and IP rules of a configuration's routing and DNS.

    An unreadable configuration yields two empty lists.
    """
    try:
        config = json.loads(config_bytes)
    except (ValueError, UnicodeDecodeError):
        return [], []
    if not isinstance(config, dict):
        return [], []

    routing_domain, routing_ip = filter_routing(config)
    dns_domain, dns_ip = filter_dns(config)
    return routing_domain + dns_domain, routing_ip + dns_ip


def filter_routing(config: dict[str, Any]) -> tuple[list[str], list[str]]:
    """Return the ``domain`` and ``ip`` entries of all routing rules.

    A rule whose lists cannot be read is skipped entirely.
    """
    domain: list[str] = []
    ip: list[str] = []
    routing = config.get("routing")
    if not isinstance(routing, dict):
        return domain, ip
    rules = routing.get("rules")
    if not isinstance(rules, list):
        return domain, ip

    for rule in rules:
        if not isinstance(rule, dict):
            continue
        try:
            rule_domain = _string_list(rule.get("domain"))
            rule_ip = _string_list(rule.get("ip"))
        except ValueError:
            continue
        domain.extend(rule_domain)
        ip.extend(rule_ip)
    return domain, ip


def filter_dns(config: dict[str, Any]) -> tuple[list[str], list[str]]:
    """Return the ``domains`` and ``expectIPs`` entries of all DNS servers."""
    domain: list[str] = []
    ip: list[str] = []
    dns = config.get("dns")
    if not isinstance(dns, dict):
        return domain, ip
    servers = dns.get("servers")
    if not isinstance(servers, list):
        return domain, ip

    for server in servers:
        if not isinstance(server, dict):
            continue
        domain.extend(_strings(server.get("domains")))
        ip.extend(_strings(server.get("expectIPs")))
    return domain, ip


def filter_and_strip(rules: list[str], retain: str) -> dict[str, list[str]]:
    """Group geo rules by data file name.

    ``<retain>:code`` goes under ``<retain>.dat`` and ``ext:file:code`` under
    ``file``; other rules, and ``ext:`` rules without a code, are ignored.
    """
    grouped: dict[str, list[str]] = {}
    prefix = f"{retain}:"
    retain_file = f"{retain}.dat"
    for rule in rules:
        if rule.startswith(prefix):
            grouped.setdefault(retain_file, []).append(rule.split(":", 1)[1])
        elif rule.startswith("ext:"):
            parts = rule.split(":", 2)
            if len(parts) == 3:
                grouped.setdefault(parts[1], []).append(parts[2])
    return grouped


def contains_country_code(codes: list[str], element: str) -> bool:
    """Tell whether ``element`` is among ``codes``, ignoring case and ``@attr`` suffixes."""
    for code in codes:
        upper = code.upper()
        if upper.split("@", 1)[0] == element:
            return True
    return False


def read_geo_files(xray_bytes: bytes | str) -> tuple[list[str], list[str]]:
    """Return the geosite and geoip data file names a configuration needs."""
    domain, ip = load_xray_config(xray_bytes)
    domain_files = list(filter_and_strip(domain, "geosite"))
    ip_files = list(filter_and_strip(ip, "geoip"))
    return domain_files, ip_files
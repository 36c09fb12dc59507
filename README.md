# xraykit

Tools for working with Xray proxy configurations:

- turn share links (`vmess://`, `vless://`, `trojan://`, `ss://`, `socks://`),
  base64 subscription text, Xray JSON or Clash.Meta YAML into an Xray JSON
  configuration (a Python `dict`);
- turn the outbounds of an Xray JSON configuration back into share links;
- find which geosite/geoip data files and codes a configuration refers to;
- pick free local TCP ports, measure HTTP delay through a proxy, and read a
  metrics endpoint.

## Installation

```
pip install xraykit
```

## Converting share links

```python
import json

from xraykit.parse_share import convert_share_links_to_xray_json
from xraykit.generate_share import convert_xray_json_to_share_links

config = convert_share_links_to_xray_json(
    "trojan://password@example.com:443?sni=example.com#my-server"
)
print(config["outbounds"][0]["protocol"])  # trojan

links = convert_xray_json_to_share_links(json.dumps(config))
print(links)
```

`convert_share_links_to_xray_json` accepts:

- Xray JSON (text starting with `{`), returned as it is if it has outbounds;
- plain share links, one per line (CRLF line endings are accepted);
- the same links encoded in standard, URL-safe or unpadded base64;
- anything else is read as Clash.Meta YAML.

Lines that cannot be converted are skipped and logged; if no outbound is left,
or the input is malformed, `xraykit.outbound.ShareError` (a `ValueError`) is
raised. A VMess link whose body is base64 JSON (the "QR code" form) is handled
by `xraykit.vmess.parse_vmess_qrcode`.

`convert_xray_json_to_share_links` takes JSON as `bytes` or `str` and returns
the links joined by newlines. VMess outbounds become `vmess://id@host:port`
links with query parameters, not QR-code JSON. Single outbounds can be turned
into links with `xraykit.generate_share.share_link(outbound)`.

Lower-level pieces are available too: `xraykit.parse_share.ShareLink` parses a
single link (`ShareLink(text).outbound()`), `decode_base64_text` and
`fix_windows_return` are the decoding helpers, and
`xraykit.generate_share.add_query` / `stream_settings_query` build the query
string of a link.

## Clash.Meta YAML

```python
from xraykit.clash import parse_clash_yaml

config = parse_clash_yaml(yaml_text)
```

Proxies of type `ss`, `vmess`, `vless`, `socks5` and `trojan` become outbounds;
other types are skipped and logged. For `ss`, only the `v2ray-plugin` plugin in
`websocket` mode is supported. `xraykit.clash.ClashProxy.from_mapping` builds a
single proxy from an already parsed mapping.

## Geo data references

```python
from xraykit.geo import read_geo_files

domain_files, ip_files = read_geo_files(config_bytes)
```

`read_geo_files` lists the `.dat` files that the routing rules and DNS servers
of a configuration use, e.g. `geosite.dat` for `geosite:cn` and `my.dat` for
`ext:my.dat:tag`. An unreadable configuration gives two empty lists.
`filter_and_strip(rules, retain)` groups the codes by file, and
`contains_country_code(codes, element)` checks a code list case-insensitively,
ignoring `@attribute` suffixes.

## Base64 call interface

`xraykit.api` wraps the functions above for callers that exchange base64-encoded
JSON. Each call returns a base64 string of
`{"success": ..., "data": ..., "error": ...}` (`data` and `error` are left out
when empty), which `xraykit.response.decode_response` turns back into a
dictionary. Errors never raise; they are reported in the envelope.

```python
import base64
from xraykit import api
from xraykit.response import decode_response

text = base64.b64encode(b"vless://id@example.com:443?security=tls").decode()
result = decode_response(api.convert_share_links_to_xray_json(text))
print(result["success"], result["data"]["outbounds"])

print(decode_response(api.get_free_ports(2))["data"]["ports"])
```

The calls are `get_free_ports`, `convert_share_links_to_xray_json`,
`convert_xray_json_to_share_links`, `read_geo_files` (data
`{"domain": [...], "ip": [...]}`) and `query_stats`.
`new_xray_run_request(dat_dir, config_path)` and
`new_xray_run_from_json_request(dat_dir, config_json)` build base64 request
texts of the form `{"datDir": ..., "configPath": ...}` /
`{"datDir": ..., "configJSON": ...}`.

## Utilities

- `xraykit.ports.get_free_ports(count)`: ports the system reports as free on localhost.
- `xraykit.measure.measure_delay(timeout, url, proxy)`: delay of a `HEAD`
  request in milliseconds; `timeout` is in seconds and `proxy` is a proxy URL
  or `""`. On failure `xraykit.measure.PingError` is raised, whose `delay` is
  `PING_DELAY_TIMEOUT` (11000) when the failure came at the timeout and
  `PING_DELAY_ERROR` (10000) otherwise.
- `xraykit.stats.query_stats(server)`: body of a metrics endpoint such as
  `http://[::1]:49227/debug/vars`.
- `xraykit.files.write_bytes(data, path)` / `write_text(text, path)`: create or
  truncate a file and write it.

## What this package does not do

xraykit only reads and writes configurations. It does not contain a proxy
core: it cannot start, stop, test or ping an Xray instance, and the run
requests built by `xraykit.api` must be handled by something else. It does not
read, count or trim the contents of `geosite.dat`/`geoip.dat` files, download
them, change the system DNS resolver, or set up routes or TUN devices. It
provides no command-line tool.
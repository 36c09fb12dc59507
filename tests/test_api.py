import base64
import json
import socket
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import pytest

from xraykit import api
from xraykit.response import decode_response


def _b64(text: str) -> str:
    return base64.b64encode(text.encode("utf-8")).decode("ascii")


def _request_json(encoded: str) -> dict:
    return json.loads(base64.b64decode(encoded))


TROJAN_CONFIG = {
    "outbounds": [
        {
            "protocol": "trojan",
            "sendThrough": "demo",
            "settings": {
                "servers": [
                    {"address": "example.com", "port": 443, "password": "password"}
                ]
            },
        }
    ]
}


def test_new_xray_run_request_round_trip():
    encoded = api.new_xray_run_request("/tmp/dat", "/tmp/config.json")
    assert _request_json(encoded) == {
        "datDir": "/tmp/dat",
        "configPath": "/tmp/config.json",
    }


def test_new_xray_run_request_omits_empty_fields():
    encoded = api.new_xray_run_request("", "/tmp/config.json")
    assert _request_json(encoded) == {"configPath": "/tmp/config.json"}


def test_new_xray_run_from_json_request_round_trip():
    config_json = json.dumps({"log": {"loglevel": "debug"}})
    encoded = api.new_xray_run_from_json_request("dat", config_json)
    assert _request_json(encoded) == {"datDir": "dat", "configJSON": config_json}


def test_new_xray_run_from_json_request_escapes_html():
    encoded = api.new_xray_run_from_json_request("d", "<a&b>")
    raw = base64.b64decode(encoded).decode("ascii")
    assert "<" not in raw and ">" not in raw and "&" not in raw
    assert "\\u003c" in raw
    assert _request_json(encoded)["configJSON"] == "<a&b>"


def test_get_free_ports_returns_requested_count():
    response = decode_response(api.get_free_ports(3))
    assert response["success"] is True
    found = response["data"]["ports"]
    assert len(found) == 3
    assert all(0 < port < 65536 for port in found)


def test_get_free_ports_zero_has_no_ports():
    response = decode_response(api.get_free_ports(0))
    assert response["success"] is True
    assert response.get("data", {}).get("ports") is None


def test_convert_share_links_bad_base64():
    response = decode_response(api.convert_share_links_to_xray_json("!!not base64!!"))
    assert response["success"] is False
    assert response["error"]


def test_convert_share_links_trojan():
    link = "trojan://password@example.com:443#demo"
    response = decode_response(api.convert_share_links_to_xray_json(_b64(link)))
    assert response["success"] is True
    outbound = response["data"]["outbounds"][0]
    assert outbound["protocol"] == "trojan"
    assert outbound["sendThrough"] == "demo"
    server = outbound["settings"]["servers"][0]
    assert server["address"] == "example.com"
    assert server["port"] == 443
    assert server["password"] == "password"


def test_convert_share_links_unusable_text():
    response = decode_response(api.convert_share_links_to_xray_json(_b64("not a link")))
    assert response["success"] is False
    assert "data" not in response


def test_convert_xray_json_to_share_links():
    encoded = _b64(json.dumps(TROJAN_CONFIG))
    response = decode_response(api.convert_xray_json_to_share_links(encoded))
    assert response["success"] is True
    assert response["data"] == "trojan://password@example.com:443#demo"


def test_share_links_round_trip():
    encoded = _b64(json.dumps(TROJAN_CONFIG))
    links = decode_response(api.convert_xray_json_to_share_links(encoded))["data"]
    back = decode_response(api.convert_share_links_to_xray_json(_b64(links)))
    assert back["success"] is True
    assert back["data"]["outbounds"][0]["settings"] == TROJAN_CONFIG["outbounds"][0]["settings"]


def test_convert_xray_json_without_outbounds():
    response = decode_response(api.convert_xray_json_to_share_links(_b64("{}")))
    assert response["success"] is False
    assert response["error"] == "no valid outbounds"


def test_convert_xray_json_bad_base64():
    response = decode_response(api.convert_xray_json_to_share_links("%%%"))
    assert response["success"] is False
    assert "error" in response


def test_read_geo_files():
    config = {
        "routing": {
            "rules": [
                {"domain": ["geosite:cn", "ext:custom.dat:ads"], "ip": ["geoip:private"]}
            ]
        }
    }
    response = decode_response(api.read_geo_files(_b64(json.dumps(config))))
    assert response["success"] is True
    assert sorted(response["data"]["domain"]) == ["custom.dat", "geosite.dat"]
    assert response["data"]["ip"] == ["geoip.dat"]


def test_read_geo_files_unreadable_config():
    response = decode_response(api.read_geo_files(_b64("not json")))
    assert response["success"] is True
    assert response.get("data", {}) == {}


def test_read_geo_files_bad_base64():
    response = decode_response(api.read_geo_files("@@@"))
    assert response["success"] is False


@pytest.fixture
def stats_server():
    body = b'{"stats":{"inbound":1}}'

    class Handler(BaseHTTPRequestHandler):
        def do_GET(self):
            self.send_response(200)
            self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            self.wfile.write(body)

        def log_message(self, *args):
            pass

    server = ThreadingHTTPServer(("127.0.0.1", 0), Handler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        yield f"http://127.0.0.1:{server.server_address[1]}/debug/vars", body
    finally:
        server.shutdown()
        server.server_close()


def test_query_stats(stats_server):
    url, body = stats_server
    response = decode_response(api.query_stats(_b64(url)))
    assert response["success"] is True
    assert response["data"] == body.decode("utf-8")


def test_query_stats_connection_refused():
    with socket.socket() as sock:
        sock.bind(("127.0.0.1", 0))
        port = sock.getsockname()[1]
    response = decode_response(api.query_stats(_b64(f"http://127.0.0.1:{port}/")))
    assert response["success"] is False
    assert response["error"]


def test_query_stats_invalid_url():
    response = decode_response(api.query_stats(_b64("not a url")))
    assert response["success"] is False
    assert "data" not in response
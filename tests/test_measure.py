import http.server
import socket
import threading

import pytest

from xraykit.measure import (
    PING_DELAY_ERROR,
    PING_DELAY_TIMEOUT,
    PingError,
    build_opener,
    measure_delay,
    ping_http_request,
)


class _Handler(http.server.BaseHTTPRequestHandler):
    def do_HEAD(self):
        self.server.paths.append(self.path)
        self.send_response(self.server.status)
        self.send_header("Content-Length", "0")
        self.end_headers()

    def log_message(self, *args):
        pass


@pytest.fixture
def server():
    httpd = http.server.ThreadingHTTPServer(("127.0.0.1", 0), _Handler)
    httpd.paths = []
    httpd.status = 200
    thread = threading.Thread(target=httpd.serve_forever, daemon=True)
    thread.start()
    yield httpd
    httpd.shutdown()
    httpd.server_close()


def _url(httpd):
    return f"http://127.0.0.1:{httpd.server_address[1]}/probe"


def test_successful_ping_returns_small_delay(server):
    delay = ping_http_request(build_opener(""), _url(server), 5)
    assert 0 <= delay < 5000
    assert server.paths == ["/probe"]


def test_error_status_still_counts_as_answer(server):
    server.status = 404
    delay = measure_delay(5, _url(server), "")
    assert 0 <= delay < 5000


def test_request_goes_through_proxy(server):
    proxy = f"http://127.0.0.1:{server.server_address[1]}"
    delay = measure_delay(5, "http://example.invalid/", proxy)
    assert delay >= 0
    assert server.paths == ["http://example.invalid/"]


def test_no_proxy_ignores_environment(server, monkeypatch):
    monkeypatch.setenv("http_proxy", "http://127.0.0.1:9")
    monkeypatch.setenv("HTTP_PROXY", "http://127.0.0.1:9")
    delay = measure_delay(5, _url(server), "")
    assert delay >= 0
    assert server.paths == ["/probe"]


def test_refused_connection_reports_error_delay():
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        port = sock.getsockname()[1]
    with pytest.raises(PingError) as info:
        ping_http_request(build_opener(""), f"http://127.0.0.1:{port}/", 5)
    assert info.value.delay == PING_DELAY_ERROR


def test_invalid_url_reports_error_delay():
    with pytest.raises(PingError) as info:
        measure_delay(5, "not a url", "")
    assert info.value.delay == PING_DELAY_ERROR


def test_silent_server_reports_timeout_delay():
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as listener:
        listener.bind(("127.0.0.1", 0))
        listener.listen(4)
        port = listener.getsockname()[1]
        with pytest.raises(PingError) as info:
            measure_delay(1, f"http://127.0.0.1:{port}/", "")
    assert info.value.delay == PING_DELAY_TIMEOUT
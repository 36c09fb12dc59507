"""Measuring the delay of an HTTP request, optionally through a proxy."""

from __future__ import annotations

import http.client
import time
import urllib.error
import urllib.request

PING_DELAY_TIMEOUT = 11000
PING_DELAY_ERROR = 10000


class PingError(Exception):
    """A delay measurement failed; ``delay`` holds the sentinel delay code."""

    def __init__(self, delay: int, message: str) -> None:
        super().__init__(message)
        self.delay = delay


def measure_delay(timeout: int, url: str, proxy: str = "") -> int:
    """Return the delay in milliseconds of a HEAD request to ``url``.

    ``timeout`` is in seconds; ``proxy`` is a proxy URL or empty for none.
    """
    opener = build_opener(proxy)
    return ping_http_request(opener, url, timeout)


def build_opener(proxy: str) -> urllib.request.OpenerDirector:
    """Build an opener that uses ``proxy`` if given and no proxy otherwise."""
    proxies = {"http": proxy, "https": proxy} if proxy else {}
    return urllib.request.build_opener(urllib.request.ProxyHandler(proxies))


def ping_http_request(
    opener: urllib.request.OpenerDirector, url: str, timeout: int
) -> int:
    """Send a HEAD request and return how long it took in milliseconds.

    Any HTTP status counts as an answer. On failure a :class:`PingError` is
    raised whose delay is ``PING_DELAY_TIMEOUT`` when the failure came within
    50 ms of the timeout and ``PING_DELAY_ERROR`` otherwise.
    """
    start = time.monotonic()
    try:
        request = urllib.request.Request(url, method="HEAD")
        with opener.open(request, timeout=timeout if timeout > 0 else None):
            pass
    except urllib.error.HTTPError as exc:
        exc.close()
    except (OSError, ValueError, http.client.HTTPException) as exc:
        elapsed = int((time.monotonic() - start) * 1000)
        precision = elapsed - timeout * 1000
        code = PING_DELAY_TIMEOUT if abs(precision) < 50 else PING_DELAY_ERROR
        raise PingError(code, str(exc)) from exc
    return int((time.monotonic() - start) * 1000)
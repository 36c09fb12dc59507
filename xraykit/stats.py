"""Fetching the statistics exposed by a running instance."""

from __future__ import annotations

import urllib.error
import urllib.request


def query_stats(server: str) -> str:
    """Return the body served at the metrics address ``server``.

    The body is returned whatever the HTTP status; network failures raise
    ``OSError`` and malformed addresses ``ValueError``.
    """
    try:
        with urllib.request.urlopen(server) as response:
            body = response.read()
    except urllib.error.HTTPError as exc:
        try:
            body = exc.read()
        finally:
            exc.close()
    return body.decode("utf-8", errors="replace")
"""Base64-wrapped JSON envelopes returned by the public API calls."""

from __future__ import annotations

import base64
import json
from typing import Any


def _is_empty(value: Any) -> bool:
    """Tell whether a value would be dropped by an ``omitempty`` field."""
    if value is None:
        return True
    if isinstance(value, (bool, int, float, str, bytes, list, tuple, dict)):
        return not value
    return False


def encode_response(data: Any = None, error: BaseException | str | None = None) -> str:
    """Wrap ``data`` and an optional error into a base64-encoded JSON envelope.

    The envelope holds ``success``, then ``data`` when it is not empty, then
    ``error`` when an error with a message was given. An empty string is
    returned when the payload cannot be serialised.
    """
    payload: dict[str, Any] = {"success": error is None}
    if not _is_empty(data):
        payload["data"] = data
    if error is not None:
        message = str(error)
        if message:
            payload["error"] = message
    try:
        text = json.dumps(payload, separators=(",", ":"), ensure_ascii=False)
    except (TypeError, ValueError):
        return ""
    return base64.b64encode(text.encode("utf-8")).decode("ascii")


def decode_response(text: str) -> dict[str, Any]:
    """Decode an envelope made by :func:`encode_response` back into a dict.

    Raises ``ValueError`` when the text is not valid base64 or not JSON.
    """
    raw = base64.b64decode(text, validate=True)
    decoded = json.loads(raw)
    if not isinstance(decoded, dict):
        raise ValueError("response is not a JSON object")
    return decoded
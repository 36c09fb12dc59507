"""Small helpers for writing whole files."""

from __future__ import annotations

import os


def write_bytes(data: bytes, path: str | os.PathLike[str]) -> None:
    """Create or truncate ``path`` and write ``data`` to it."""
    flags = os.O_CREAT | os.O_WRONLY | os.O_TRUNC | getattr(os, "O_BINARY", 0)
    fd = os.open(path, flags, 0o664)
    with os.fdopen(fd, "wb") as handle:
        handle.write(data)


def write_text(text: str, path: str | os.PathLike[str]) -> None:
    """Create or truncate ``path`` and write ``text`` to it as UTF-8."""
    write_bytes(text.encode("utf-8"), path)
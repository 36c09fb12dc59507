"""Asking the operating system for free TCP ports."""

from __future__ import annotations

import socket


def get_free_ports(count: int) -> list[int]:
    """Return ``count`` TCP ports on localhost that were free when checked."""
    ports: list[int] = []
    for _ in range(count):
        with socket.create_server(("localhost", 0)) as listener:
            ports.append(listener.getsockname()[1])
    return ports
"""
Shared pytest fixtures for peer_socket tests.

Connections run over loopback. Everything a test opens is released at teardown.
"""

from __future__ import annotations

import socket
from collections.abc import Iterator

import pytest

from peer_socket.socket import Listener, Socket, SocketAddress

LOOPBACK = "127.0.0.1"


@pytest.fixture
def listener() -> Iterator[Listener]:
    """Listener on an ephemeral loopback port."""
    with Listener(SocketAddress(ip=LOOPBACK, port=0)) as listener:
        yield listener


@pytest.fixture
def socket_pair(listener: Listener) -> Iterator[tuple[Socket, Socket]]:
    """Connected (client, server) pair of Sockets."""
    client = Socket.connect(listener.address)
    server = listener.accept()
    with client, server:
        yield client, server


@pytest.fixture
def closed_port_address() -> SocketAddress:
    """Loopback address that nothing is listening on."""
    with Listener(SocketAddress(ip=LOOPBACK, port=0)) as listener:
        address = listener.address
    return address


@pytest.fixture
def short_default_timeout() -> Iterator[float]:
    """Set a short process-wide socket timeout for the duration of a test."""
    previous = socket.getdefaulttimeout()
    socket.setdefaulttimeout(0.1)
    yield 0.1
    socket.setdefaulttimeout(previous)

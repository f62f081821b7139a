"""peer-socket: a minimal blocking TCP connection for peer-to-peer messaging."""

from .socket import (
    Listener,
    Socket,
    SocketAddress,
    SocketConfig,
    SocketError,
)

__all__ = [
    "Listener",
    "Socket",
    "SocketAddress",
    "SocketConfig",
    "SocketError",
]

"""
Blocking TCP connections with whole-message send and receive.

Components:
    - address: IPv4 SocketAddress value type and parsers
    - socket: the Socket connection object
    - listener: accept loop collaborator producing adopted Sockets
    - exceptions: error taxonomy, all deriving from SocketError
"""

from .address import SocketAddress
from .config import LISTEN_BACKLOG, RECV_BUF_SIZE, SocketConfig
from .exceptions import (
    AddressParseError,
    ClosedConnectionError,
    CloseError,
    PeerAddressError,
    PeerClosedError,
    ReceiveError,
    SendError,
    SocketConnectionError,
    SocketError,
)
from .listener import Listener
from .socket import Socket

__all__ = [
    # Connection
    "Socket",
    "Listener",
    "SocketAddress",
    # Configuration
    "SocketConfig",
    "RECV_BUF_SIZE",
    "LISTEN_BACKLOG",
    # Exceptions
    "SocketError",
    "AddressParseError",
    "SocketConnectionError",
    "ClosedConnectionError",
    "SendError",
    "ReceiveError",
    "PeerClosedError",
    "CloseError",
    "PeerAddressError",
]

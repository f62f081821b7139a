"""
Socket configuration.

Constants and runtime options for the TCP connection layer.
"""

from typing import Final

from pydantic import Field

from peer_socket.config import PEER_SOCKET_ENV
from peer_socket.types import StrictBaseModel

RECV_BUF_SIZE: Final = 64 if PEER_SOCKET_ENV == "test" else 4096
"""
Capacity of a single read in `Socket.receive()`, in bytes.

A read that fills the buffer completely triggers a queued-byte query to decide
whether the message continues. The test environment uses a small value so
multi-chunk messages are cheap to produce.
"""

LISTEN_BACKLOG: Final = 5
"""Pending-connection queue length passed to listen()."""


class SocketConfig(StrictBaseModel):
    """Runtime configuration for a single connection."""

    recv_buf_size: int = Field(default=RECV_BUF_SIZE, gt=0)
    """Chunk size used by receive()."""

    retry_partial_sends: bool = False
    """
    Keep writing until the whole message is sent.

    Off by default: a short write raises SendError so callers see exactly
    what the OS accepted in one call.
    """

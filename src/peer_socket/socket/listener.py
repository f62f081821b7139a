"""
Accepting inbound connections.

The Listener binds an IPv4 address, listens, and turns each accepted
connection into a Socket via Socket.adopt().
"""

from __future__ import annotations

import logging
import socket
from types import TracebackType

from .address import SocketAddress
from .config import LISTEN_BACKLOG, SocketConfig
from .exceptions import SocketConnectionError, os_reason
from .socket import Socket

logger = logging.getLogger(__name__)


class Listener:
    """A listening TCP socket producing adopted Socket objects."""

    def __init__(
        self,
        address: SocketAddress,
        *,
        backlog: int = LISTEN_BACKLOG,
        config: SocketConfig | None = None,
    ) -> None:
        """
        Bind and listen.

        Args:
            address: Local address. Port 0 picks a free port; see `address`.
            backlog: Pending-connection queue length.
            config: Configuration handed to every accepted Socket.

        Raises:
            SocketConnectionError: If the address cannot be bound.
        """
        self._config = config if config is not None else SocketConfig()
        try:
            self._sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        except OSError as e:
            raise SocketConnectionError(address, os_reason(e)) from e

        # accept() blocks until a peer arrives, whatever socket.getdefaulttimeout() says.
        self._sock.settimeout(None)

        try:
            self._sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            self._sock.bind(address.as_tuple())
            self._sock.listen(backlog)
        except OSError as e:
            self._sock.close()
            raise SocketConnectionError(address, os_reason(e)) from e

        ip, port = self._sock.getsockname()
        self._address = SocketAddress(ip=ip, port=port)
        logger.debug("Listening on %s", self._address)

    @property
    def address(self) -> SocketAddress:
        """The bound local address, with the actual port."""
        return self._address

    @property
    def is_open(self) -> bool:
        """Whether the listener still accepts connections."""
        return self._sock.fileno() != -1

    def accept(self) -> Socket:
        """
        Wait for the next inbound connection.

        Returns:
            An open Socket owning the accepted handle.

        Raises:
            SocketConnectionError: If accept fails (including after close()).
        """
        try:
            conn, _ = self._sock.accept()
        except OSError as e:
            raise SocketConnectionError(self._address, os_reason(e)) from e
        return Socket.adopt(conn, self._config)

    def close(self) -> None:
        """Stop listening. Safe to call more than once."""
        if self.is_open:
            self._sock.close()
            logger.debug("Stopped listening on %s", self._address)

    def __enter__(self) -> Listener:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._address})"

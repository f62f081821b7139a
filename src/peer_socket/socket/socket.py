"""
A blocking TCP connection that sends and receives whole messages.

The Socket owns exactly one OS stream socket and a snapshot of the remote
address. It is created in one of two ways:

    Socket.connect(address)   open a new outbound connection
    Socket.adopt(handle)      take ownership of an already-accepted connection

Message boundaries
------------------

There is no length prefix or delimiter. A "message" is whatever burst of bytes
is available when the receiver drains the socket:

    1. Block until the first chunk arrives (up to recv_buf_size bytes).
    2. A short chunk means the kernel buffer is now empty: done.
    3. A full chunk may have emptied the buffer by coincidence, so ask the
       kernel how many bytes are still queued (FIONREAD). Zero means done;
       otherwise read at most that many and go back to step 2.

Only the first read may block. Later reads are bounded by what is already
queued, so receive() never waits for data the peer has not sent.

The scheme works when each send() on one side is drained by a receive() on
the other before the next burst arrives. Back-to-back sends may be coalesced
into one received message.

Ownership
---------

The handle is released exactly once: by close(), by leaving a `with` block,
or when the Socket is garbage collected. Copying or pickling a Socket is
refused, since two owners would close the same descriptor.

Not thread safe. One Socket belongs to one logical flow.

Queued-byte queries use fcntl/termios, so this module is POSIX only.
"""

from __future__ import annotations

import fcntl
import logging
import socket
import struct
import termios
from types import TracebackType
from typing import Final, NoReturn

from .address import SocketAddress
from .config import SocketConfig
from .exceptions import (
    ClosedConnectionError,
    CloseError,
    PeerAddressError,
    PeerClosedError,
    ReceiveError,
    SendError,
    SocketConnectionError,
    os_reason,
)

logger = logging.getLogger(__name__)

_FIONREAD_FORMAT: Final = "i"
"""C int, as written by ioctl(FIONREAD)."""


class Socket:
    """A single TCP connection with whole-message send and receive."""

    __slots__ = ("_sock", "_address", "_config", "_is_open")

    def __init__(
        self,
        sock: socket.socket,
        address: SocketAddress,
        config: SocketConfig,
        *,
        is_open: bool,
    ) -> None:
        """
        Wrap an owned handle.

        Prefer connect() or adopt(); they establish the invariants this
        constructor assumes.

        Args:
            sock: Connected stream socket. Ownership passes to this object.
            address: Remote address of the connection.
            config: Chunking and send policy.
            is_open: Whether sock is live and connected.
        """
        self._sock = sock
        self._address = address
        self._config = config
        self._is_open = is_open

    @classmethod
    def connect(cls, address: SocketAddress, config: SocketConfig | None = None) -> Socket:
        """
        Open an outbound connection.

        Blocks until the TCP handshake completes or fails.

        Args:
            address: Remote IPv4 address and port.
            config: Optional runtime configuration.

        Returns:
            An open Socket.

        Raises:
            SocketConnectionError: If the OS refuses or fails the connection.
                The handle has been released by the time this is raised.
        """
        try:
            sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        except OSError as e:
            raise SocketConnectionError(address, os_reason(e)) from e

        # New sockets inherit socket.getdefaulttimeout().
        sock.settimeout(None)

        try:
            sock.connect(address.as_tuple())
        except OSError as e:
            sock.close()
            raise SocketConnectionError(address, os_reason(e)) from e

        logger.debug("Connected to %s (fd=%d)", address, sock.fileno())
        return cls(sock, address, config if config is not None else SocketConfig(), is_open=True)

    @classmethod
    def adopt(cls, handle: socket.socket | int, config: SocketConfig | None = None) -> Socket:
        """
        Take ownership of an already-connected handle.

        The caller must not use the handle afterwards.

        Args:
            handle: Connected IPv4 stream socket, or its file descriptor.
            config: Optional runtime configuration.

        Returns:
            An open Socket whose remote address comes from getpeername().

        Raises:
            PeerAddressError: If the handle is not a connected IPv4 stream
                socket. The handle has been released by the time this is raised.
        """
        if isinstance(handle, socket.socket):
            sock = handle
        else:
            try:
                sock = socket.socket(fileno=handle)
            except OSError as e:
                raise PeerAddressError(handle, os_reason(e)) from e
        fd = sock.fileno()

        if sock.family != socket.AF_INET:
            sock.close()
            raise PeerAddressError(fd, f"not an IPv4 socket (family={sock.family!r})")
        if sock.type != socket.SOCK_STREAM:
            sock.close()
            raise PeerAddressError(fd, f"not a stream socket (type={sock.type!r})")

        try:
            ip, port = sock.getpeername()
        except OSError as e:
            sock.close()
            raise PeerAddressError(fd, os_reason(e)) from e

        # Reads and writes are blocking with no timeout, whatever the issuer configured.
        sock.settimeout(None)

        address = SocketAddress(ip=ip, port=port)
        logger.debug("Adopted connection from %s (fd=%d)", address, fd)
        return cls(sock, address, config if config is not None else SocketConfig(), is_open=True)

    @property
    def is_open(self) -> bool:
        """Whether the connection is live."""
        return self._is_open

    @property
    def remote_address(self) -> SocketAddress:
        """Address of the remote peer. Available after close()."""
        return self._address

    @property
    def config(self) -> SocketConfig:
        """Runtime configuration of this connection."""
        return self._config

    def get_address(self) -> SocketAddress:
        """Return the address of the remote peer."""
        return self._address

    def fileno(self) -> int:
        """File descriptor of the handle, or -1 once released."""
        return self._sock.fileno()

    def send(self, message: bytes | bytearray | memoryview) -> None:
        """
        Send a complete message.

        The whole message is handed to the OS in one send call. Returns once
        the OS has accepted the data, not when the peer has read it.

        Args:
            message: Bytes-like object to send. May be empty.

        Raises:
            ClosedConnectionError: If the socket is not open.
            SendError: If the OS reports an error or accepts fewer bytes
                than the message holds.
        """
        self._check_is_open()
        # Byte count, not item count: a memoryview over wider items has len() < nbytes.
        expected = memoryview(message).nbytes

        if self._config.retry_partial_sends:
            try:
                self._sock.sendall(message)
            except OSError as e:
                raise SendError(expected, 0, os_reason(e)) from e
            sent = expected
        else:
            try:
                sent = self._sock.send(message)
            except OSError as e:
                raise SendError(expected, 0, os_reason(e)) from e

            # A short write is a failure even without an OS error.
            if sent != expected:
                raise SendError(expected, sent)

        logger.debug("Sent %d bytes to %s", sent, self._address)

    def receive(self) -> bytes:
        """
        Receive the next complete message.

        Blocks until at least one byte arrives, then drains everything the
        kernel has queued. See the module docstring for the boundary rule.

        Returns:
            The message bytes. Never empty.

        Raises:
            ClosedConnectionError: If the socket is not open.
            PeerClosedError: If the peer closed the connection.
            ReceiveError: If the OS reports a read error.
        """
        self._check_is_open()
        buf_size = self._config.recv_buf_size
        received = bytearray()

        # The first read blocks. It turns receive() into "wait for the next message".
        chunk = self._read(buf_size)
        if not chunk:
            raise PeerClosedError()

        while True:
            received += chunk

            if len(chunk) < buf_size:
                break

            # A full buffer may be a coincidence. Only continue if more is queued.
            pending = self._pending_bytes()
            if pending == 0:
                break

            # Bounded by what is queued, so this read returns without waiting.
            chunk = self._read(min(buf_size, pending))

        logger.debug("Received %d bytes from %s", len(received), self._address)
        return bytes(received)

    def close(self) -> None:
        """
        Close the connection.

        Calling close() on a socket that is not open is a programming error.

        Raises:
            CloseError: If the OS fails to close the handle. The socket is
                still considered open in that case.
        """
        assert self._is_open, "close() called on a socket that is not open"

        try:
            self._sock.close()
        except OSError as e:
            raise CloseError(os_reason(e)) from e

        self._is_open = False
        logger.debug("Closed connection to %s", self._address)

    def __enter__(self) -> Socket:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self._release()

    def __del__(self) -> None:
        # __init__ may not have run if construction failed.
        if getattr(self, "_is_open", False):
            self._release()

    def __reduce_ex__(self, protocol: object) -> NoReturn:
        raise TypeError(f"{type(self).__name__} owns its handle and cannot be copied or pickled")

    def __repr__(self) -> str:
        state = "open" if self._is_open else "closed"
        return f"{type(self).__name__}({self._address}, {state})"

    def _release(self) -> None:
        """Close the handle if still open. Errors are logged, never raised."""
        if not self._is_open:
            return
        self._is_open = False
        try:
            self._sock.close()
        except OSError as e:
            logger.warning("Ignoring error while releasing socket to %s: %s", self._address, e)

    def _check_is_open(self) -> None:
        if not self._is_open:
            raise ClosedConnectionError()

    def _read(self, size: int) -> bytes:
        try:
            return self._sock.recv(size)
        except OSError as e:
            raise ReceiveError(self._sock.fileno(), os_reason(e)) from e

    def _pending_bytes(self) -> int:
        """Number of bytes queued in the kernel and not yet read."""
        buf = bytes(struct.calcsize(_FIONREAD_FORMAT))
        try:
            result = fcntl.ioctl(self._sock.fileno(), termios.FIONREAD, buf)
        except OSError as e:
            raise ReceiveError(self._sock.fileno(), os_reason(e)) from e
        return struct.unpack(_FIONREAD_FORMAT, result)[0]

"""Exception hierarchy for the connection layer."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .address import SocketAddress


class SocketError(Exception):
    """
    Base exception for all connection errors.

    Attributes:
        message: Human-readable error description.
    """

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r})"


class AddressParseError(SocketError):
    """
    Raised when an address string cannot be parsed.

    Attributes:
        value: The text that failed to parse.
        detail: Description of what went wrong.
    """

    def __init__(self, value: str, detail: str) -> None:
        self.value = value
        self.detail = detail
        super().__init__(f"Invalid address {value!r}: {detail}")


class SocketConnectionError(SocketError):
    """
    Raised when establishing a connection fails at the OS level.

    Attributes:
        address: The address we tried to connect to (or bind).
        reason: OS error text.
    """

    def __init__(self, address: SocketAddress, reason: str) -> None:
        self.address = address
        self.reason = reason
        super().__init__(f"Failed to connect to {address}. Reason: {reason}")


class ClosedConnectionError(SocketError):
    """Raised when sending or receiving on a closed socket."""

    def __init__(self) -> None:
        super().__init__("Socket is closed")


class SendError(SocketError):
    """
    Raised when the OS did not accept the whole message.

    Attributes:
        expected: Length of the message.
        actual: Number of bytes the OS reported as written.
        reason: OS error text, if the OS reported an error.
    """

    def __init__(self, expected: int, actual: int, reason: str | None = None) -> None:
        self.expected = expected
        self.actual = actual
        self.reason = reason

        msg = f"Unexpected data send length. Expected: {expected}, actual: {actual}"
        if reason:
            msg = f"{msg}. Reason: {reason}"

        super().__init__(msg)


class ReceiveError(SocketError):
    """
    Raised when reading from the socket fails.

    Attributes:
        fd: File descriptor of the failing socket.
        reason: OS error text.
    """

    def __init__(self, fd: int, reason: str) -> None:
        self.fd = fd
        self.reason = reason
        super().__init__(f"receive failed (fd={fd}): {reason}")


class PeerClosedError(SocketError):
    """Raised when the peer closed the connection before sending anything."""

    def __init__(self) -> None:
        super().__init__("receive failed: Peer closed connection")


class CloseError(SocketError):
    """
    Raised when the OS fails to close the socket.

    Attributes:
        reason: OS error text.
    """

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Failed to close socket. Reason: {reason}")


class PeerAddressError(SocketError):
    """
    Raised when the peer of an adopted socket cannot be identified.

    Attributes:
        fd: File descriptor of the adopted socket.
        reason: OS error text or description of the unusable address.
    """

    def __init__(self, fd: int, reason: str) -> None:
        self.fd = fd
        self.reason = reason
        super().__init__(f"Failed to query peer address (fd={fd}): {reason}")


def os_reason(error: OSError) -> str:
    """OS error text for an exception, falling back to its string form."""
    return error.strerror or str(error)

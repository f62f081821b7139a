"""
IPv4 socket addresses.

A SocketAddress is the (ip, port) pair used both as the target of an outbound
connection and as the answer to "who is on the other end?".

Two textual forms are accepted:

    1.2.3.4:9000              host:port
    /ip4/1.2.3.4/tcp/9000     multiaddr (an optional /p2p/<peer id> suffix is ignored)

Only IPv4 literals are accepted. Host names are not resolved.
"""

from __future__ import annotations

import ipaddress

from pydantic import Field, ValidationError, field_validator

from peer_socket.types import StrictBaseModel

from .exceptions import AddressParseError

MAX_PORT = 65535
"""Largest valid TCP port number."""


class SocketAddress(StrictBaseModel):
    """An immutable IPv4 address and TCP port."""

    ip: str
    """IPv4 address in dotted-decimal form."""

    port: int = Field(ge=0, le=MAX_PORT)
    """TCP port number."""

    @field_validator("ip")
    @classmethod
    def _validate_ip(cls, value: str) -> str:
        """Reject anything that is not an IPv4 dotted-decimal literal."""
        return str(ipaddress.IPv4Address(value))

    @classmethod
    def parse(cls, text: str) -> SocketAddress:
        """
        Parse an address from "host:port" or multiaddr form.

        Args:
            text: Address string.

        Returns:
            The parsed address.

        Raises:
            AddressParseError: If the text is not a valid IPv4 address and port.
        """
        if text.startswith("/"):
            ip, port = _split_multiaddr(text)
        else:
            ip, sep, port = text.rpartition(":")
            if not sep or not ip:
                raise AddressParseError(text, "expected HOST:PORT")

        if not (port.isascii() and port.isdigit()):
            raise AddressParseError(text, f"port {port!r} is not a number")

        return cls._build(text, ip, int(port))

    @classmethod
    def from_packed(cls, packed: bytes, port: int) -> SocketAddress:
        """
        Build an address from a 4-byte network-order IPv4 address.

        Raises:
            AddressParseError: If packed is not 4 bytes or port is out of range.
        """
        if len(packed) != 4:
            raise AddressParseError(packed.hex(), f"expected 4 bytes, got {len(packed)}")
        return cls._build(packed.hex(), str(ipaddress.IPv4Address(packed)), port)

    @classmethod
    def _build(cls, text: str, ip: str, port: int) -> SocketAddress:
        try:
            return cls(ip=ip, port=port)
        except ValidationError as e:
            raise AddressParseError(text, e.errors()[0]["msg"]) from e

    @property
    def packed(self) -> bytes:
        """The IP address as 4 bytes in network order."""
        return ipaddress.IPv4Address(self.ip).packed

    def as_tuple(self) -> tuple[str, int]:
        """(ip, port) in the form the socket module expects."""
        return (self.ip, self.port)

    def to_multiaddr(self) -> str:
        """Render as "/ip4/<ip>/tcp/<port>"."""
        return f"/ip4/{self.ip}/tcp/{self.port}"

    def __str__(self) -> str:
        return f"{self.ip}:{self.port}"


def _split_multiaddr(multiaddr: str) -> tuple[str, str]:
    """
    Extract the ip4 and tcp components of a multiaddr.

    Multiaddrs are a sequence of protocol/value pairs, so
    "/ip4/127.0.0.1/tcp/9000" becomes ["ip4", "127.0.0.1", "tcp", "9000"].
    """
    parts = multiaddr.strip("/").split("/")

    host = None
    port = None

    i = 0
    while i + 1 < len(parts):
        protocol, value = parts[i], parts[i + 1]
        if protocol == "ip4":
            host = value
        elif protocol == "tcp":
            port = value
        elif protocol != "p2p":
            raise AddressParseError(multiaddr, f"unsupported protocol {protocol!r}")
        i += 2

    if i != len(parts):
        raise AddressParseError(multiaddr, f"dangling component {parts[-1]!r}")
    if host is None:
        raise AddressParseError(multiaddr, "no ip4 component")
    if port is None:
        raise AddressParseError(multiaddr, "no tcp component")

    return host, port

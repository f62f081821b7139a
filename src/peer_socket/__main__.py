"""
peer-socket CLI entry point.

Exchange whole messages with a TCP peer from the command line.

Usage::

    python -m peer_socket echo 127.0.0.1:9000
    python -m peer_socket echo /ip4/0.0.0.0/tcp/9000 --once
    python -m peer_socket send 127.0.0.1:9000 "hello"
    python -m peer_socket send /ip4/127.0.0.1/tcp/9000 "hello" --no-reply

Commands:
    echo    Listen on ADDRESS and send every received message back
    send    Connect to ADDRESS, send MESSAGE, and print the reply

Options:
    -v, --verbose   Enable debug logging
    --no-color      Disable colored logging output
"""

from __future__ import annotations

import argparse
import logging
import sys

from peer_socket.socket import (
    Listener,
    PeerAddressError,
    PeerClosedError,
    ReceiveError,
    SendError,
    Socket,
    SocketAddress,
    SocketError,
)

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class ColoredFormatter(logging.Formatter):
    """Formatter that highlights the level name of each record."""

    RESET = "\x1b[0m"

    # 256-color ANSI codes. Unlisted levels are left plain.
    LEVEL_COLORS = {
        logging.DEBUG: "\x1b[38;5;244m",
        logging.INFO: "\x1b[38;5;40m",
        logging.WARNING: "\x1b[38;5;220m",
        logging.ERROR: "\x1b[38;5;196m",
    }

    def format(self, record: logging.LogRecord) -> str:
        text = super().format(record)
        color = self.LEVEL_COLORS.get(record.levelno)
        if color is None:
            return text
        return text.replace(record.levelname, f"{color}{record.levelname}{self.RESET}", 1)


def setup_logging(verbose: bool = False, no_color: bool = False) -> None:
    """Send log records to stderr, DEBUG and up with verbose, INFO and up otherwise."""
    level = logging.DEBUG if verbose else logging.INFO
    formatter_class = logging.Formatter if no_color else ColoredFormatter

    handler = logging.StreamHandler()
    handler.setLevel(level)
    handler.setFormatter(formatter_class(LOG_FORMAT, datefmt=DATE_FORMAT))

    root = logging.getLogger()
    root.setLevel(level)
    root.addHandler(handler)


def run_send(address: SocketAddress, message: str, expect_reply: bool = True) -> bytes | None:
    """
    Send one message and optionally wait for the reply.

    Args:
        address: Peer to connect to.
        message: Text to send, encoded as UTF-8.
        expect_reply: Whether to block for a response.

    Returns:
        The reply bytes, or None when no reply was requested.
    """
    payload = message.encode()
    with Socket.connect(address) as sock:
        sock.send(payload)
        logger.info("Sent %d bytes to %s", len(payload), address)
        if not expect_reply:
            return None
        return sock.receive()


def serve_echo(sock: Socket) -> int:
    """
    Echo messages on one connection until the peer hangs up.

    Returns:
        Number of messages echoed.
    """
    count = 0
    with sock:
        while True:
            try:
                message = sock.receive()
            except PeerClosedError:
                logger.info("Peer %s closed the connection", sock.get_address())
                return count
            sock.send(message)
            count += 1


def run_echo(address: SocketAddress, once: bool = False) -> None:
    """
    Listen on address and echo every message back to its sender.

    Connections are served one at a time.

    Args:
        address: Local address to bind.
        once: Stop after the first connection ends.
    """
    with Listener(address) as listener:
        logger.info("Echo server listening on %s", listener.address)
        serve_connections(listener, once=once)


def serve_connections(listener: Listener, once: bool = False) -> None:
    """
    Accept connections on listener and echo each one in turn.

    A connection that fails is logged and dropped. Errors from the listener
    itself propagate.

    Args:
        listener: Open listener to accept from.
        once: Stop after the first connection ends.
    """
    while True:
        try:
            sock = listener.accept()
        except PeerAddressError as e:
            logger.warning("Dropped inbound connection: %s", e)
        else:
            logger.info("Accepted connection from %s", sock.get_address())
            try:
                echoed = serve_echo(sock)
            except (ReceiveError, SendError) as e:
                logger.warning("Connection from %s failed: %s", sock.get_address(), e)
            else:
                logger.info("Echoed %d messages", echoed)
        if once:
            return


def _address(text: str) -> SocketAddress:
    """argparse type for addresses."""
    try:
        return SocketAddress.parse(text)
    except SocketError as e:
        raise argparse.ArgumentTypeError(e.message) from e


def main(argv: list[str] | None = None) -> int:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="peer_socket",
        description="Exchange whole messages with a TCP peer",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--no-color",
        action="store_true",
        help="Disable colored logging output",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    send = commands.add_parser("send", help="Send a message and print the reply")
    send.add_argument("address", type=_address, help="Peer address (HOST:PORT or multiaddr)")
    send.add_argument("message", help="Message text (sent as UTF-8)")
    send.add_argument(
        "--no-reply",
        action="store_true",
        help="Do not wait for a reply",
    )

    echo = commands.add_parser("echo", help="Echo received messages back")
    echo.add_argument("address", type=_address, help="Local address (HOST:PORT or multiaddr)")
    echo.add_argument(
        "--once",
        action="store_true",
        help="Exit after the first connection closes",
    )

    args = parser.parse_args(argv)

    setup_logging(args.verbose, args.no_color)

    try:
        if args.command == "send":
            reply = run_send(args.address, args.message, expect_reply=not args.no_reply)
            if reply is not None:
                sys.stdout.write(reply.decode(errors="replace") + "\n")
        else:
            run_echo(args.address, once=args.once)
    except SocketError as e:
        logger.error("%s", e)
        return 1
    except KeyboardInterrupt:
        logger.info("Shutting down...")

    return 0


if __name__ == "__main__":
    sys.exit(main())

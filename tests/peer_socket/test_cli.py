"""
Tests for the command line tool.

Echo servers run in a background thread. Every thread is joined before the
test ends.
"""

from __future__ import annotations

import logging
import socket
import struct
import threading
import time
from collections.abc import Iterator
from unittest.mock import patch

import pytest

from peer_socket.__main__ import (
    LOG_FORMAT,
    ColoredFormatter,
    main,
    run_send,
    serve_connections,
    serve_echo,
    setup_logging,
)
from peer_socket.socket import (
    Listener,
    Socket,
    SocketAddress,
    SocketConnectionError,
    SocketError,
)


@pytest.fixture(autouse=True)
def restore_root_logger() -> Iterator[None]:
    """Undo handlers and level changes made by setup_logging."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


def _echo_in_background(listener: Listener) -> tuple[threading.Thread, list[int]]:
    """Accept one connection on listener and echo it in a thread."""
    results: list[int] = []

    def serve() -> None:
        results.append(serve_echo(listener.accept()))

    thread = threading.Thread(target=serve, daemon=True)
    thread.start()
    return thread, results


def _receive_in_background(listener: Listener) -> tuple[threading.Thread, list[bytes]]:
    """Accept one connection on listener and record the first message."""
    received: list[bytes] = []

    def serve() -> None:
        with listener.accept() as sock:
            received.append(sock.receive())

    thread = threading.Thread(target=serve, daemon=True)
    thread.start()
    return thread, received


class TestServeEcho:
    """Tests for the echo loop."""

    def test_echoes_until_peer_closes(self, listener: Listener) -> None:
        """Every message comes back, and the loop ends when the client hangs up."""
        thread, results = _echo_in_background(listener)

        with Socket.connect(listener.address) as client:
            for message in (b"one", b"two", b"three"):
                client.send(message)
                assert client.receive() == message

        thread.join(timeout=5)
        assert not thread.is_alive()
        assert results == [3]

    def test_reset_connection_does_not_stop_server(self, listener: Listener) -> None:
        """A client that resets is dropped and the next client is still served."""
        stop = threading.Event()
        real_accept = listener.accept

        def accept() -> Socket:
            sock = real_accept()
            if stop.is_set():
                sock.close()
                raise SocketConnectionError(listener.address, "stopped")
            return sock

        errors: list[SocketConnectionError] = []

        def serve() -> None:
            try:
                serve_connections(listener)
            except SocketConnectionError as e:
                errors.append(e)

        with patch.object(listener, "accept", side_effect=accept):
            thread = threading.Thread(target=serve, daemon=True)
            thread.start()

            _reset_connection(listener.address)
            with Socket.connect(listener.address) as client:
                client.send(b"still serving")
                assert client.receive() == b"still serving"

            # Wake the blocked accept so the loop can stop.
            stop.set()
            with socket.create_connection(listener.address.as_tuple()):
                thread.join(timeout=5)

        assert not thread.is_alive()
        assert [e.reason for e in errors] == ["stopped"]

    def test_once_returns_after_reset_connection(self, listener: Listener) -> None:
        """With once, a reset connection ends serving without an error."""
        errors: list[SocketError] = []

        def serve() -> None:
            try:
                serve_connections(listener, once=True)
            except SocketError as e:
                errors.append(e)

        thread = threading.Thread(target=serve, daemon=True)
        thread.start()

        _reset_connection(listener.address)

        thread.join(timeout=5)
        assert not thread.is_alive()
        assert errors == []


class TestRunSend:
    """Tests for the send command."""

    def test_returns_reply(self, listener: Listener) -> None:
        """The reply from the peer is returned."""
        thread, _ = _echo_in_background(listener)

        assert run_send(listener.address, "hello") == b"hello"

        thread.join(timeout=5)

    def test_no_reply(self, listener: Listener) -> None:
        """Without a reply, nothing is read."""
        thread, received = _receive_in_background(listener)

        assert run_send(listener.address, "hello", expect_reply=False) is None

        thread.join(timeout=5)
        assert received == [b"hello"]

    def test_refused(self, closed_port_address: SocketAddress) -> None:
        """Connection errors propagate."""
        with pytest.raises(SocketConnectionError):
            run_send(closed_port_address, "hello")


class TestMain:
    """Tests for argument handling and exit codes."""

    def test_send_prints_reply(
        self,
        listener: Listener,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        """send prints the echoed reply and exits 0."""
        thread, _ = _echo_in_background(listener)

        assert main(["--no-color", "send", str(listener.address), "hi there"]) == 0

        thread.join(timeout=5)
        assert capsys.readouterr().out == "hi there\n"

    def test_send_accepts_multiaddr(
        self,
        listener: Listener,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        """Addresses may be given in multiaddr form."""
        thread, _ = _echo_in_background(listener)

        assert main(["--no-color", "send", listener.address.to_multiaddr(), "multi"]) == 0

        thread.join(timeout=5)
        assert capsys.readouterr().out == "multi\n"

    def test_send_no_reply(
        self,
        listener: Listener,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        """--no-reply prints nothing."""
        thread, received = _receive_in_background(listener)

        assert main(["--no-color", "send", str(listener.address), "quiet", "--no-reply"]) == 0

        thread.join(timeout=5)
        assert received == [b"quiet"]
        assert capsys.readouterr().out == ""

    def test_connection_failure_exits_1(self, closed_port_address: SocketAddress) -> None:
        """Socket errors are logged and reported with exit status 1."""
        assert main(["--no-color", "send", str(closed_port_address), "hello"]) == 1

    def test_bad_address_is_usage_error(self, capsys: pytest.CaptureFixture[str]) -> None:
        """An unparseable address is rejected by argparse."""
        with pytest.raises(SystemExit) as exc_info:
            main(["send", "not-an-address", "hello"])

        assert exc_info.value.code == 2
        assert "expected HOST:PORT" in capsys.readouterr().err

    def test_command_required(self) -> None:
        """A subcommand must be given."""
        with pytest.raises(SystemExit):
            main([])

    def test_echo_once(self) -> None:
        """echo --once serves a single connection and returns 0."""
        with Listener(SocketAddress(ip="127.0.0.1", port=0)) as reserved:
            address = reserved.address

        exit_codes: list[int] = []
        thread = threading.Thread(
            target=lambda: exit_codes.append(main(["--no-color", "echo", str(address), "--once"])),
            daemon=True,
        )
        thread.start()

        client = _connect_with_retry(address)
        with client:
            client.send(b"ping")
            assert client.receive() == b"ping"

        thread.join(timeout=5)
        assert exit_codes == [0]


class TestLogging:
    """Tests for logging setup."""

    def test_setup_logging_levels(self) -> None:
        """Verbose enables DEBUG, otherwise INFO."""
        setup_logging(verbose=True, no_color=True)
        assert logging.getLogger().level == logging.DEBUG

        setup_logging(verbose=False, no_color=True)
        assert logging.getLogger().level == logging.INFO

    def test_setup_logging_formatter_choice(self) -> None:
        """Colors are on by default and off with no_color."""
        setup_logging(no_color=False)
        assert isinstance(logging.getLogger().handlers[-1].formatter, ColoredFormatter)

        setup_logging(no_color=True)
        assert not isinstance(logging.getLogger().handlers[-1].formatter, ColoredFormatter)

    def test_colored_formatter(self) -> None:
        """Formatted records contain the level, logger name, and message."""
        record = logging.LogRecord(
            name="peer_socket.socket",
            level=logging.WARNING,
            pathname=__file__,
            lineno=1,
            msg="sent %d bytes",
            args=(5,),
            exc_info=None,
        )
        output = ColoredFormatter(LOG_FORMAT).format(record)

        assert "peer_socket.socket" in output
        assert output.endswith("sent 5 bytes")
        yellow = ColoredFormatter.LEVEL_COLORS[logging.WARNING]
        assert f"{yellow}WARNING{ColoredFormatter.RESET}" in output

    def test_colored_formatter_leaves_unknown_levels_plain(self) -> None:
        """Levels without a color are formatted as usual."""
        record = logging.LogRecord(
            name="peer_socket",
            level=logging.CRITICAL,
            pathname=__file__,
            lineno=1,
            msg="stopping",
            args=(),
            exc_info=None,
        )

        plain = logging.Formatter(LOG_FORMAT).format(record)
        assert ColoredFormatter(LOG_FORMAT).format(record) == plain


def _reset_connection(address: SocketAddress) -> None:
    """Connect, then abort with RST instead of an orderly FIN."""
    raw = socket.create_connection(address.as_tuple())
    raw.setsockopt(socket.SOL_SOCKET, socket.SO_LINGER, struct.pack("ii", 1, 0))
    raw.close()


def _connect_with_retry(address: SocketAddress, attempts: int = 50) -> Socket:
    """Connect once the server thread is listening."""
    for _ in range(attempts):
        try:
            return Socket.connect(address)
        except SocketConnectionError:
            time.sleep(0.05)
    return Socket.connect(address)

"""
Process-wide settings read from the environment at import time.

PEER_SOCKET_ENV selects defaults that differ between production and the test
suite, such as the receive chunk size.
"""

import os

_ENVIRONMENTS: tuple[str, ...] = ("prod", "test")


def _read_env() -> str:
    value = os.environ.get("PEER_SOCKET_ENV", "prod").lower()
    if value not in _ENVIRONMENTS:
        raise ValueError(
            f"Invalid PEER_SOCKET_ENV environment variable: '{value}'. "
            f"Expected one of: {', '.join(_ENVIRONMENTS)}"
        )
    return value


PEER_SOCKET_ENV = _read_env()
"""Either 'prod' (the default) or 'test'. Case-insensitive."""

"""Error types for the autosocket WebSocket client."""

from __future__ import annotations


class AutoSocketError(Exception):
    """Base error for autosocket client failures."""


class ConfigError(AutoSocketError, ValueError):
    """Client options or configuration file are invalid."""


class InvalidURLError(ConfigError):
    """WebSocket URL cannot be parsed or lacks a host."""

    def __init__(self, url: str, message: str) -> None:
        super().__init__(f"Invalid WebSocket URL {url!r}: {message}")
        self.url = url


class TransportError(AutoSocketError):
    """Network connect, read or write failed."""


class ConnectTimeoutError(TransportError):
    """Connecting or negotiating with the server timed out."""


class IncompleteReadError(TransportError):
    """Stream ended before the expected number of bytes arrived."""

    def __init__(self, expected: int, partial: bytes) -> None:
        super().__init__(
            f"Expected {expected} bytes, stream ended after {len(partial)}"
        )
        self.expected = expected
        self.partial = partial


class HandshakeError(AutoSocketError):
    """WebSocket upgrade handshake failed."""

    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class FrameError(AutoSocketError):
    """Base error for frame encoding and decoding failures."""


class UnsupportedFrameError(FrameError):
    """Inbound frame uses a feature this client does not implement."""

    def __init__(self, message: str, *, close_code: int = 1011) -> None:
        super().__init__(message)
        self.close_code = close_code


class FrameTooLargeError(FrameError):
    """Outbound payload does not fit the supported length encodings."""


class SendWhileClosedError(AutoSocketError):
    """A message was sent while the connection is not open."""

"""HTTP/1.1 upgrade handshake (RFC 6455 section 4)."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Generator
from typing import TYPE_CHECKING, TypeVar

from websockets.datastructures import Headers
from websockets.exceptions import SecurityError
from websockets.http11 import parse_headers, parse_line
from websockets.streams import StreamReader
from websockets.utils import accept_key, generate_key

from .errors import ConnectTimeoutError, HandshakeError

if TYPE_CHECKING:
    from .config import ClientConfig
    from .transport import Transport

_LOGGER = logging.getLogger(__name__)

_HEADER_TERMINATOR = b"\r\n\r\n"

T = TypeVar("T")


def _complete(parser: Generator[None, None, T]) -> T:
    """Run a websockets parser over data that is already fully buffered."""
    try:
        next(parser)
    except StopIteration as done:
        return done.value
    raise EOFError("Response ended early")


def build_request(host: str, port: int, resource_name: str, key: str) -> bytes:
    """Build the upgrade request sent right after the stream opens."""
    if ":" in host:
        host = f"[{host}]"
    lines = [
        f"GET {resource_name} HTTP/1.1",
        f"Host: {host}:{port}",
        "Upgrade: websocket",
        "Connection: Upgrade",
        f"Sec-WebSocket-Key: {key}",
        "Sec-WebSocket-Version: 13",
        "",
        "",
    ]
    return "\r\n".join(lines).encode("ascii")


def validate_response(
    response: bytes, key: str, *, verify_accept: bool = True
) -> Headers:
    """Check the server's reply to the upgrade request.

    Args:
        response: Raw response bytes up to and including the blank line.
        key: The Sec-WebSocket-Key that was sent.
        verify_accept: Also require ``Upgrade: websocket`` and a matching
            Sec-WebSocket-Accept header.

    Returns:
        Parsed response headers.

    Raises:
        HandshakeError: On a non-101 status or malformed response.
    """
    reader = StreamReader()
    reader.feed_data(response)
    reader.feed_eof()

    try:
        raw_status = _complete(parse_line(reader.read_line))
    except (EOFError, SecurityError) as err:
        raise HandshakeError(f"Malformed status line: {err}") from err

    status_line = raw_status.decode("latin-1")
    parts = status_line.split(" ", 2)
    if len(parts) < 2 or not parts[0].startswith("HTTP/") or not parts[1].isdigit():
        raise HandshakeError(f"Malformed status line: {status_line!r}")
    status = int(parts[1])
    if status != 101:
        raise HandshakeError(f"Handshake failed: {status_line}", status=status)

    try:
        headers = _complete(parse_headers(reader.read_line))
    except (EOFError, SecurityError, ValueError) as err:
        raise HandshakeError(f"Malformed header block: {err}", status=status) from err

    if verify_accept:
        upgrade = [value.lower() for value in headers.get_all("Upgrade")]
        if upgrade != ["websocket"]:
            raise HandshakeError(f"Invalid Upgrade header: {upgrade!r}", status=status)
        if headers.get_all("Sec-WebSocket-Accept") != [accept_key(key)]:
            raise HandshakeError("Invalid Sec-WebSocket-Accept header", status=status)

    return headers


async def perform_handshake(
    transport: Transport, config: ClientConfig, *, key: str | None = None
) -> Headers:
    """Send the upgrade request and validate the response.

    A fresh nonce is generated per call unless ``key`` is given. Bytes the
    server sends after the response headers stay buffered in the transport.

    Raises:
        HandshakeError: If the server rejects the upgrade.
        TransportError: If the request cannot be sent or the reply read.
        ConnectTimeoutError: If the exchange exceeds ``connect_timeout``.
    """
    if key is None:
        key = generate_key()
    options = config.options
    request = build_request(config.host, config.port, config.resource_name, key)

    async def exchange() -> bytes:
        await transport.write(request)
        return await transport.read_until(
            _HEADER_TERMINATOR, options.max_handshake_size
        )

    try:
        response = await asyncio.wait_for(exchange(), timeout=options.connect_timeout)
    except TimeoutError as err:
        raise ConnectTimeoutError("Handshake timed out") from err

    _LOGGER.debug("Handshake response received (%d bytes)", len(response))
    return validate_response(response, key, verify_accept=options.verify_accept)

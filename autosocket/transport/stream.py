"""Byte-stream transport for the WebSocket client."""

from __future__ import annotations

import asyncio
import logging
from typing import Protocol

from ..errors import ConnectTimeoutError, TransportError

_LOGGER = logging.getLogger(__name__)

DEFAULT_READ_LIMIT = 2**16


class Transport(Protocol):
    """Asynchronous byte stream the client drives.

    ``read`` returns exactly ``n`` bytes unless the stream ends first, in which
    case it returns what arrived. ``limit`` passed to ``connect`` caps how much
    ``read_until`` buffers while looking for its separator. Failures surface as
    ``TransportError``.
    """

    async def connect(
        self,
        host: str,
        port: int,
        *,
        secure: bool = False,
        timeout: float = 15.0,
        limit: int = DEFAULT_READ_LIMIT,
    ) -> None: ...

    async def read(self, n: int) -> bytes: ...

    async def read_until(self, separator: bytes, limit: int) -> bytes: ...

    async def write(self, data: bytes) -> None: ...

    def close(self) -> None: ...


class StreamTransport:
    """Transport backed by ``asyncio.open_connection``.

    ``wss`` connections use the default TLS context.
    """

    def __init__(self) -> None:
        self._reader: asyncio.StreamReader | None = None
        self._writer: asyncio.StreamWriter | None = None

    @property
    def is_connected(self) -> bool:
        return self._writer is not None and not self._writer.is_closing()

    async def connect(
        self,
        host: str,
        port: int,
        *,
        secure: bool = False,
        timeout: float = 15.0,
        limit: int = DEFAULT_READ_LIMIT,
    ) -> None:
        """Open the TCP (or TLS) stream.

        ``limit`` bounds the bytes ``read_until`` buffers without finding its
        separator.

        Raises:
            ConnectTimeoutError: If the connection is not established in time.
            TransportError: If the connection fails.
        """
        try:
            self._reader, self._writer = await asyncio.wait_for(
                asyncio.open_connection(
                    host, port, ssl=True if secure else None, limit=limit
                ),
                timeout=timeout,
            )
        except TimeoutError as err:
            raise ConnectTimeoutError(f"Connection to {host}:{port} timed out") from err
        except OSError as err:
            raise TransportError(f"{host}:{port}: {err}") from err

    async def read(self, n: int) -> bytes:
        reader = self._require_reader()
        try:
            return await reader.readexactly(n)
        except asyncio.IncompleteReadError as err:
            return err.partial
        except OSError as err:
            raise TransportError(f"Read failed: {err}") from err

    async def read_until(self, separator: bytes, limit: int) -> bytes:
        """Read up to and including ``separator``.

        Raises:
            TransportError: If the stream ends first or more than ``limit``
                bytes arrive without the separator.
        """
        reader = self._require_reader()
        try:
            data = await reader.readuntil(separator)
        except asyncio.IncompleteReadError as err:
            raise TransportError(
                f"Stream ended after {len(err.partial)} bytes"
            ) from err
        except asyncio.LimitOverrunError as err:
            raise TransportError(f"No separator within {limit} bytes") from err
        except OSError as err:
            raise TransportError(f"Read failed: {err}") from err
        if len(data) > limit:
            raise TransportError(f"No separator within {limit} bytes")
        return data

    async def write(self, data: bytes) -> None:
        writer = self._writer
        if writer is None or writer.is_closing():
            raise TransportError("Transport is not connected")
        try:
            writer.write(data)
            await writer.drain()
        except OSError as err:
            raise TransportError(f"Write failed: {err}") from err

    def close(self) -> None:
        """Close the stream. Pending reads complete with end-of-stream."""
        writer, self._writer = self._writer, None
        if writer is not None and not writer.is_closing():
            writer.close()
            _LOGGER.debug("Stream closed")

    def _require_reader(self) -> asyncio.StreamReader:
        if self._reader is None:
            raise TransportError("Transport is not connected")
        return self._reader

"""Pytest configuration and fixtures for autosocket tests."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable
from typing import Any

import pytest
from websockets.utils import accept_key

from autosocket.errors import TransportError
from autosocket.frames import Frame, Opcode, encode_frame, read_frame

URL = "ws://localhost:5010/ws"
SWITCHING_PROTOCOLS = "HTTP/1.1 101 Switching Protocols"


def server_frame(opcode: Opcode, payload: bytes = b"") -> bytes:
    """Encode an unmasked server-to-client frame."""
    return encode_frame(opcode, payload, mask=False)


def request_key(request: bytes) -> str:
    """Extract Sec-WebSocket-Key from a raw upgrade request."""
    for line in request.decode("ascii").split("\r\n"):
        name, _, value = line.partition(":")
        if name.strip().lower() == "sec-websocket-key":
            return value.strip()
    raise AssertionError("Upgrade request has no Sec-WebSocket-Key")


def handshake_response(
    key: str,
    *,
    status_line: str = SWITCHING_PROTOCOLS,
    accept: str | None = None,
) -> bytes:
    """Build the server's reply to an upgrade request."""
    lines = [
        status_line,
        "Upgrade: websocket",
        "Connection: Upgrade",
        f"Sec-WebSocket-Accept: {accept if accept is not None else accept_key(key)}",
        "",
        "",
    ]
    return "\r\n".join(lines).encode("ascii")


class BytesReader:
    """``read(n)`` over a fixed buffer, recording every request size."""

    def __init__(self, data: bytes) -> None:
        self._data = data
        self._pos = 0
        self.requests: list[int] = []

    @property
    def remaining(self) -> int:
        return len(self._data) - self._pos

    async def read(self, n: int) -> bytes:
        self.requests.append(n)
        chunk = self._data[self._pos : self._pos + n]
        self._pos += len(chunk)
        return chunk


async def decode_all(data: bytes) -> list[Frame]:
    """Decode every frame in a buffer."""
    reader = BytesReader(data)
    frames = []
    while reader.remaining:
        frames.append(await read_frame(reader.read))
    return frames


class FakeTransport:
    """In-memory transport acting as a scripted WebSocket server.

    When the upgrade request is written it answers with ``status_line``
    followed by ``frames``. With ``eof`` the stream ends after the frames,
    otherwise reads block until ``close()``.
    """

    def __init__(
        self,
        *,
        status_line: str = SWITCHING_PROTOCOLS,
        frames: Iterable[bytes] = (),
        eof: bool = False,
        connect_error: Exception | None = None,
        write_error: Exception | None = None,
    ) -> None:
        self.status_line = status_line
        self.frames = list(frames)
        self.eof_after_frames = eof
        self.connect_error = connect_error
        self.write_error = write_error

        self.connected_to: tuple[str, int, bool] | None = None
        self.limit: int | None = None
        self.writes: list[bytes] = []
        self.close_calls = 0
        self._buffer = bytearray()
        self._eof = False
        self._handshaken = False
        self._event = asyncio.Event()

    @property
    def closed(self) -> bool:
        return self.close_calls > 0

    async def connect(
        self,
        host: str,
        port: int,
        *,
        secure: bool = False,
        timeout: float = 15.0,
        limit: int = 2**16,
    ) -> None:
        self.connected_to = (host, port, secure)
        self.limit = limit
        if self.connect_error is not None:
            raise self.connect_error

    async def write(self, data: bytes) -> None:
        if self.closed:
            raise TransportError("Transport is not connected")
        if self._handshaken and self.write_error is not None:
            raise self.write_error
        self.writes.append(data)
        if not self._handshaken:
            self._handshaken = True
            self.feed(
                handshake_response(request_key(data), status_line=self.status_line)
            )
            for frame in self.frames:
                self.feed(frame)
            if self.eof_after_frames:
                self.feed_eof()

    def feed(self, data: bytes) -> None:
        self._buffer.extend(data)
        self._event.set()

    def feed_eof(self) -> None:
        self._eof = True
        self._event.set()

    async def _wait_until(self, ready: Callable[[], bool]) -> None:
        while not ready() and not self._eof and not self.closed:
            self._event.clear()
            await self._event.wait()

    async def read(self, n: int) -> bytes:
        await self._wait_until(lambda: len(self._buffer) >= n)
        if self.closed:
            return b""
        data = bytes(self._buffer[:n])
        del self._buffer[:n]
        return data

    async def read_until(self, separator: bytes, limit: int) -> bytes:
        await self._wait_until(lambda: separator in self._buffer)
        index = self._buffer.find(separator)
        if index < 0:
            raise TransportError("Stream ended before separator")
        end = index + len(separator)
        if end > limit:
            raise TransportError(f"No separator within {limit} bytes")
        data = bytes(self._buffer[:end])
        del self._buffer[:end]
        return data

    def close(self) -> None:
        self.close_calls += 1
        self._event.set()

    async def sent_frames(self) -> list[Frame]:
        """Frames the client wrote after the upgrade request."""
        return await decode_all(b"".join(self.writes[1:]))


class HangingTransport(FakeTransport):
    """Transport whose connect waits until ``release`` is set."""

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def connect(
        self,
        host: str,
        port: int,
        *,
        secure: bool = False,
        timeout: float = 15.0,
        limit: int = 2**16,
    ) -> None:
        self.started.set()
        await self.release.wait()
        await super().connect(host, port, secure=secure, timeout=timeout, limit=limit)


class RecordingLoop:
    """Event loop proxy recording ``call_later`` delays.

    With ``fire`` the callback runs on the next loop iteration instead of
    after the delay.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop, *, fire: bool = True) -> None:
        self._loop = loop
        self.fire = fire
        self.delays: list[float] = []

    def call_later(
        self, delay: float, callback: Callable[..., Any], *args: Any
    ) -> asyncio.Handle:
        self.delays.append(delay)
        if self.fire:
            return self._loop.call_soon(callback, *args)
        return self._loop.call_later(delay, callback, *args)

    def __getattr__(self, name: str) -> Any:
        return getattr(self._loop, name)


@pytest.fixture
def fake_transport() -> FakeTransport:
    """A transport that completes the handshake and then idles."""
    return FakeTransport()

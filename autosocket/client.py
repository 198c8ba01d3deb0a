"""Auto-reconnecting WebSocket client.

The client owns one connection attempt at a time and walks it through:

    DISCONNECTED → CONNECTING → HANDSHAKE → OPEN → DISCONNECTED → ...

Any failure returns to DISCONNECTED and arms the reconnect timer. Only
``close()`` leaves the loop, through CLOSING into PERMANENTLY_CLOSED.

Usage:
    client = WebSocketClient("ws://localhost:5010/ws")
    client.on_open = lambda: client.send("hello")
    client.on_message = print
    client.start()  # blocks until client.close()
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine
from enum import Enum
from typing import Any

from .config import ClientConfig, ClientOptions
from .errors import (
    FrameTooLargeError,
    HandshakeError,
    SendWhileClosedError,
    TransportError,
    UnsupportedFrameError,
)
from .events import EventDispatcher, EventHandlers
from .frames import Opcode, encode_close, encode_text, parse_close_payload, read_frame
from .handshake import perform_handshake
from .reconnect import ReconnectScheduler
from .transport import StreamTransport, Transport

_LOGGER = logging.getLogger(__name__)

TransportFactory = Callable[[], Transport]

MAX_CLOSE_REASON_BYTES = 123


class ConnectionState(Enum):
    """Lifecycle states of the client."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    HANDSHAKE = "handshake"
    OPEN = "open"
    CLOSING = "closing"
    PERMANENTLY_CLOSED = "permanently_closed"


class WebSocketClient:
    """WebSocket client with automatic reconnection.

    Handlers are assigned as attributes (``on_open``, ``on_message``,
    ``on_error``, ``on_close``) and default to no-ops.
    """

    def __init__(
        self,
        url: str,
        options: ClientOptions | None = None,
        *,
        loop: asyncio.AbstractEventLoop | None = None,
        transport_factory: TransportFactory = StreamTransport,
        name: str | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            url: ``ws://`` or ``wss://`` URL to connect to.
            options: Client options (retry interval, timeouts, masking).
            loop: Caller-owned event loop. When omitted ``start()`` runs a
                fresh loop and timers use the running loop.
            transport_factory: Builds a new transport per connection attempt.
            name: Label used in log messages, defaults to ``host:port``.

        Raises:
            InvalidURLError: If the URL cannot be parsed or lacks a host.
        """
        self.config = ClientConfig.from_url(url, options)
        self.name = name or f"{self.config.host}:{self.config.port}"

        self._loop = loop
        self._transport_factory = transport_factory

        # Connection state
        self._state = ConnectionState.DISCONNECTED
        self._transport: Transport | None = None
        self._should_reconnect = True
        self._reconnect = ReconnectScheduler(
            self.config.retry_interval,
            self._on_reconnect_timer,
            loop=loop,
            name=self.name,
        )

        self._events = EventDispatcher(name=self.name)
        self._tasks: set[asyncio.Task[None]] = set()
        self._done: asyncio.Event | None = None

    # -------------------------------------------------------------------------
    # Public API: State
    # -------------------------------------------------------------------------

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state is ConnectionState.OPEN

    @property
    def should_reconnect(self) -> bool:
        return self._should_reconnect

    @property
    def handlers(self) -> EventHandlers:
        return self._events.handlers

    # -------------------------------------------------------------------------
    # Public API: Handlers
    # -------------------------------------------------------------------------

    @property
    def on_open(self) -> Callable[[], Any]:
        return self.handlers.on_open

    @on_open.setter
    def on_open(self, handler: Callable[[], Any]) -> None:
        self.handlers.on_open = handler

    @property
    def on_message(self) -> Callable[[str], Any]:
        return self.handlers.on_message

    @on_message.setter
    def on_message(self, handler: Callable[[str], Any]) -> None:
        self.handlers.on_message = handler

    @property
    def on_error(self) -> Callable[[str], Any]:
        return self.handlers.on_error

    @on_error.setter
    def on_error(self, handler: Callable[[str], Any]) -> None:
        self.handlers.on_error = handler

    @property
    def on_close(self) -> Callable[[bool, int, str], Any]:
        return self.handlers.on_close

    @on_close.setter
    def on_close(self, handler: Callable[[bool, int, str], Any]) -> None:
        self.handlers.on_close = handler

    # -------------------------------------------------------------------------
    # Public API: Lifecycle
    # -------------------------------------------------------------------------

    def start(self) -> None:
        """Connect and run the event loop until ``close()`` is called."""
        if self._loop is None:
            asyncio.run(self.run())
        else:
            self._loop.run_until_complete(self.run())

    async def run(self) -> None:
        """Connect, reconnect on failure, and return once permanently closed."""
        if self._state is ConnectionState.PERMANENTLY_CLOSED:
            return
        if self._done is not None:
            _LOGGER.warning("[%s] Client is already running", self.name)
            return

        self._done = asyncio.Event()
        try:
            self._connect()
            await self._done.wait()
        finally:
            if self._state is not ConnectionState.PERMANENTLY_CLOSED:
                self._terminate()
            await self._cancel_tasks()
            await self._events.join()
            self._done = None
            _LOGGER.info("[%s] Client terminated", self.name)

    def send(self, text: str) -> None:
        """Send a Text frame.

        When the connection is not open the message is dropped and reported
        through ``on_error``.
        """
        transport = self._transport
        if self._state is not ConnectionState.OPEN or transport is None:
            err = SendWhileClosedError("Cannot send data: not connected")
            _LOGGER.warning("[%s] %s", self.name, err)
            self._events.error(str(err))
            return

        try:
            frame = encode_text(text, mask=self.config.options.mask_frames)
        except FrameTooLargeError as err:
            _LOGGER.warning("[%s] Cannot send data: %s", self.name, err)
            self._events.error(f"Cannot send data: {err}")
            return

        self._spawn(self._write(transport, frame))

    def close(self, code: int = 1000, reason: str = "") -> None:
        """Close the connection permanently; no further reconnects happen.

        Args:
            code: Close status code sent to the server.
            reason: UTF-8 reason, at most 123 bytes once encoded.

        Raises:
            ValueError: If the code or reason cannot be encoded.
        """
        if not 0 <= code <= 0xFFFF:
            raise ValueError(f"Close code must fit in 16 bits, got {code}")
        if len(reason.encode("utf-8")) > MAX_CLOSE_REASON_BYTES:
            raise ValueError(
                f"Close reason must encode to at most {MAX_CLOSE_REASON_BYTES} bytes"
            )
        if self._state in (ConnectionState.CLOSING, ConnectionState.PERMANENTLY_CLOSED):
            return

        _LOGGER.info("[%s] Closing connection (%d %s)", self.name, code, reason)
        self._should_reconnect = False
        self._reconnect.cancel()

        transport = self._transport
        if self._state is ConnectionState.OPEN and transport is not None:
            self._set_state(ConnectionState.CLOSING)
            frame = encode_close(code, reason, mask=self.config.options.mask_frames)
            self._spawn(self._send_close(transport, frame, code, reason))
        else:
            self._terminate()

    # -------------------------------------------------------------------------
    # Internal: Connection State Machine
    # -------------------------------------------------------------------------

    def _set_state(self, state: ConnectionState) -> None:
        if self._state is not state:
            _LOGGER.debug(
                "[%s] State: %s → %s", self.name, self._state.value, state.value
            )
            self._state = state

    def _is_current(self, transport: Transport) -> bool:
        return self._transport is transport

    def _connect(self) -> None:
        if not self._should_reconnect or self._state is not ConnectionState.DISCONNECTED:
            _LOGGER.debug(
                "[%s] Connect skipped in state %s", self.name, self._state.value
            )
            return

        self._set_state(ConnectionState.CONNECTING)
        transport = self._transport_factory()
        self._transport = transport
        _LOGGER.info("[%s] Connecting to %s", self.name, self.config.url)
        self._spawn(self._run_connection(transport))

    async def _run_connection(self, transport: Transport) -> None:
        """Drive one attempt: connect, handshake, then read frames."""
        options = self.config.options
        try:
            await transport.connect(
                self.config.host,
                self.config.port,
                secure=self.config.secure,
                timeout=options.connect_timeout,
                limit=options.max_handshake_size,
            )
        except (TransportError, OSError) as err:
            self._fail_attempt(transport, f"Failed to connect to host: {err}")
            return

        if not self._is_current(transport):
            # close() ran while the connect was in flight
            transport.close()
            return

        self._set_state(ConnectionState.HANDSHAKE)
        try:
            await perform_handshake(transport, self.config)
        except HandshakeError as err:
            self._fail_attempt(transport, str(err), level=logging.ERROR)
            return
        except TransportError as err:
            self._fail_attempt(transport, f"Handshake not completed: {err}")
            return

        if not self._is_current(transport):
            return

        self._set_state(ConnectionState.OPEN)
        _LOGGER.info("[%s] WebSocket connection established", self.name)
        self._events.open()
        await self._read_frames(transport)

    async def _read_frames(self, transport: Transport) -> None:
        """Read frames one at a time until the connection ends."""
        while self._is_current(transport):
            try:
                frame = await read_frame(transport.read)
            except UnsupportedFrameError as err:
                if not self._is_current(transport) or self._state is not ConnectionState.OPEN:
                    return
                _LOGGER.warning("[%s] %s", self.name, err)
                self._handle_close(False, err.close_code, str(err))
                return
            except TransportError as err:
                if not self._is_current(transport) or self._state is not ConnectionState.OPEN:
                    return
                _LOGGER.warning("[%s] Connection lost: %s", self.name, err)
                self._handle_close(False, 1006, "Abnormal closure")
                return

            if not self._is_current(transport):
                return
            if self._state is not ConnectionState.OPEN:
                # Closing: our Close frame is in flight, drop what arrives
                continue

            if frame.opcode is Opcode.TEXT:
                try:
                    text = frame.payload.decode("utf-8")
                except UnicodeDecodeError:
                    _LOGGER.warning("[%s] Invalid UTF-8 in text frame", self.name)
                    self._handle_close(False, 1007, "Invalid UTF-8 payload")
                    return
                self._events.message(text)
            elif frame.opcode is Opcode.CLOSE:
                code, reason = parse_close_payload(frame.payload)
                _LOGGER.info(
                    "[%s] Connection closed by server (%d %s)", self.name, code, reason
                )
                self._handle_close(True, 1000, "Normal closure")
                return
            else:
                _LOGGER.debug(
                    "[%s] Ignoring %s frame (%d bytes)",
                    self.name,
                    frame.opcode.name,
                    frame.payload_length,
                )

    async def _write(self, transport: Transport, frame: bytes) -> None:
        try:
            await transport.write(frame)
        except TransportError as err:
            if not self._is_current(transport) or self._state is not ConnectionState.OPEN:
                return
            message = f"Failed to send data: {err}"
            _LOGGER.warning("[%s] %s", self.name, message)
            self._events.error(message)
            # the error handler may have called close()
            if self._is_current(transport) and self._state is ConnectionState.OPEN:
                self._handle_close(False, 1006, message)

    async def _send_close(
        self, transport: Transport, frame: bytes, code: int, reason: str
    ) -> None:
        try:
            await transport.write(frame)
        except TransportError as err:
            _LOGGER.warning("[%s] Failed to send close frame: %s", self.name, err)
        if self._is_current(transport):
            self._handle_close(True, code, reason)

    def _handle_close(self, was_clean: bool, code: int, reason: str) -> None:
        """Tear down the open connection and fire on_close once."""
        was_open = self._state in (ConnectionState.OPEN, ConnectionState.CLOSING)
        self._release_transport()
        self._set_state(
            ConnectionState.DISCONNECTED
            if self._should_reconnect
            else ConnectionState.PERMANENTLY_CLOSED
        )
        if was_open:
            _LOGGER.info("[%s] Connection closed (%d %s)", self.name, code, reason)
            self._events.close(was_clean, code, reason)
        self._after_disconnect()

    def _fail_attempt(
        self, transport: Transport, message: str, *, level: int = logging.WARNING
    ) -> None:
        """Abandon a connection attempt that never reached OPEN."""
        if not self._is_current(transport):
            transport.close()
            return
        _LOGGER.log(level, "[%s] %s", self.name, message)
        self._release_transport()
        self._set_state(ConnectionState.DISCONNECTED)
        self._events.error(message)
        self._after_disconnect()

    def _after_disconnect(self) -> None:
        # handlers run before this and may have called close()
        if self._should_reconnect:
            self._reconnect.schedule()
        elif self._done is not None:
            self._done.set()

    def _terminate(self) -> None:
        """Enter PERMANENTLY_CLOSED without a closing handshake."""
        self._should_reconnect = False
        self._reconnect.cancel()
        self._release_transport()
        self._set_state(ConnectionState.PERMANENTLY_CLOSED)
        if self._done is not None:
            self._done.set()

    def _release_transport(self) -> None:
        transport, self._transport = self._transport, None
        if transport is not None:
            transport.close()

    def _on_reconnect_timer(self) -> None:
        self._connect()

    # -------------------------------------------------------------------------
    # Internal: Tasks
    # -------------------------------------------------------------------------

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        loop = self._loop or asyncio.get_running_loop()
        task = loop.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task[None]) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            _LOGGER.error(
                "[%s] Unexpected error in client task",
                self.name,
                exc_info=task.exception(),
            )

    async def _cancel_tasks(self) -> None:
        pending = [task for task in self._tasks if not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

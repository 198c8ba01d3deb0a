"""Auto-reconnecting WebSocket client over a raw byte stream."""

__version__ = "0.1.0"

from .client import ConnectionState, WebSocketClient
from .config import ClientConfig, ClientOptions, load_options
from .errors import (
    AutoSocketError,
    ConfigError,
    ConnectTimeoutError,
    FrameError,
    FrameTooLargeError,
    HandshakeError,
    IncompleteReadError,
    InvalidURLError,
    SendWhileClosedError,
    TransportError,
    UnsupportedFrameError,
)
from .events import EventDispatcher, EventHandlers
from .frames import Frame, Opcode, encode_close, encode_frame, encode_text, read_frame
from .handshake import perform_handshake
from .reconnect import ReconnectScheduler
from .transport import StreamTransport, Transport

__all__ = [
    "AutoSocketError",
    "ClientConfig",
    "ClientOptions",
    "ConfigError",
    "ConnectTimeoutError",
    "ConnectionState",
    "EventDispatcher",
    "EventHandlers",
    "Frame",
    "FrameError",
    "FrameTooLargeError",
    "HandshakeError",
    "IncompleteReadError",
    "InvalidURLError",
    "Opcode",
    "ReconnectScheduler",
    "SendWhileClosedError",
    "StreamTransport",
    "Transport",
    "TransportError",
    "UnsupportedFrameError",
    "WebSocketClient",
    "__version__",
    "encode_close",
    "encode_frame",
    "encode_text",
    "load_options",
    "perform_handshake",
    "read_frame",
]

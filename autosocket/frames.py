"""WebSocket frame codec (RFC 6455 section 5.2).

Supported subset: unfragmented messages, 7-bit and 16-bit payload lengths.
Frames declaring the 64-bit length form are rejected, never truncated.
"""

from __future__ import annotations

import secrets
import struct
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import IntEnum

from websockets.utils import apply_mask

from .errors import FrameTooLargeError, IncompleteReadError, UnsupportedFrameError

ReadExactly = Callable[[int], Awaitable[bytes]]

MAX_SHORT_LENGTH = 125
MAX_EXTENDED_LENGTH = 0xFFFF
MAX_CONTROL_PAYLOAD = 125

_LENGTH_16 = 126
_LENGTH_64 = 127

_FIN_BIT = 0x80
_MASK_BIT = 0x80
_OPCODE_MASK = 0x0F
_LENGTH_MASK = 0x7F


class Opcode(IntEnum):
    """Frame opcodes."""

    CONTINUATION = 0x0
    TEXT = 0x1
    BINARY = 0x2
    CLOSE = 0x8
    PING = 0x9
    PONG = 0xA

    @property
    def is_control(self) -> bool:
        return self >= Opcode.CLOSE


@dataclass(frozen=True)
class Frame:
    """A single decoded or to-be-encoded frame."""

    opcode: Opcode
    payload: bytes = b""
    fin: bool = True

    @property
    def payload_length(self) -> int:
        return len(self.payload)


async def _read_exactly(read: ReadExactly, n: int) -> bytes:
    data = await read(n)
    if len(data) < n:
        raise IncompleteReadError(n, data)
    return data


async def read_frame(read: ReadExactly) -> Frame:
    """Read one frame from a byte stream.

    Args:
        read: Coroutine function returning exactly ``n`` bytes, or fewer only
            when the stream has ended.

    Raises:
        UnsupportedFrameError: For 64-bit lengths or reserved opcodes.
        IncompleteReadError: If the stream ends inside the frame.
    """
    header = await _read_exactly(read, 2)
    byte1, byte2 = header[0], header[1]

    fin = bool(byte1 & _FIN_BIT)
    try:
        opcode = Opcode(byte1 & _OPCODE_MASK)
    except ValueError as err:
        raise UnsupportedFrameError(
            f"Reserved opcode {byte1 & _OPCODE_MASK:#x}", close_code=1002
        ) from err

    masked = bool(byte2 & _MASK_BIT)
    length = byte2 & _LENGTH_MASK

    if length == _LENGTH_16:
        (length,) = struct.unpack("!H", await _read_exactly(read, 2))
    elif length == _LENGTH_64:
        raise UnsupportedFrameError("Large frames not supported", close_code=1011)

    mask_key = await _read_exactly(read, 4) if masked else b""
    payload = await _read_exactly(read, length) if length else b""
    if masked and payload:
        payload = apply_mask(payload, mask_key)

    return Frame(opcode=opcode, payload=payload, fin=fin)


def encode_frame(
    opcode: Opcode,
    payload: bytes = b"",
    *,
    mask: bool = True,
    fin: bool = True,
) -> bytes:
    """Serialize a frame.

    Raises:
        FrameTooLargeError: If the payload needs the 64-bit length form, or a
            control frame exceeds 125 bytes.
    """
    length = len(payload)
    if opcode.is_control and length > MAX_CONTROL_PAYLOAD:
        raise FrameTooLargeError(
            f"Control frame payload is {length} bytes, limit is {MAX_CONTROL_PAYLOAD}"
        )

    byte1 = (_FIN_BIT if fin else 0) | opcode
    mask_bit = _MASK_BIT if mask else 0

    if length <= MAX_SHORT_LENGTH:
        header = struct.pack("!BB", byte1, mask_bit | length)
    elif length <= MAX_EXTENDED_LENGTH:
        header = struct.pack("!BBH", byte1, mask_bit | _LENGTH_16, length)
    else:
        raise FrameTooLargeError(
            f"Payload is {length} bytes, limit is {MAX_EXTENDED_LENGTH}"
        )

    if not mask:
        return header + payload

    mask_key = secrets.token_bytes(4)
    return header + mask_key + apply_mask(payload, mask_key)


def encode_text(text: str, *, mask: bool = True) -> bytes:
    return encode_frame(Opcode.TEXT, text.encode("utf-8"), mask=mask)


def encode_close(code: int = 1000, reason: str = "", *, mask: bool = True) -> bytes:
    """Serialize a Close frame carrying a status code and UTF-8 reason."""
    payload = struct.pack("!H", code) + reason.encode("utf-8")
    return encode_frame(Opcode.CLOSE, payload, mask=mask)


def parse_close_payload(payload: bytes) -> tuple[int, str]:
    """Split a Close payload into (code, reason).

    An empty payload maps to 1005 (no status received).
    """
    if len(payload) < 2:
        return 1005, ""
    (code,) = struct.unpack("!H", payload[:2])
    return code, payload[2:].decode("utf-8", errors="replace")

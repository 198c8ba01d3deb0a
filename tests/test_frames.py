"""Tests for the frame codec."""

from __future__ import annotations

import struct

import pytest

from autosocket.errors import (
    FrameTooLargeError,
    IncompleteReadError,
    UnsupportedFrameError,
)
from autosocket.frames import (
    Frame,
    Opcode,
    encode_close,
    encode_frame,
    encode_text,
    parse_close_payload,
    read_frame,
)

from .conftest import BytesReader, decode_all


class TestEncodeFrame:
    """Tests for encode_frame() and its helpers."""

    def test_short_unmasked_text(self):
        """Test a short Text frame uses the 7-bit length form."""
        assert encode_text("hi", mask=False) == b"\x81\x02hi"

    def test_extended_length_header(self):
        """Test payloads of 126 bytes switch to the 16-bit length form."""
        frame = encode_frame(Opcode.TEXT, b"a" * 126, mask=False)
        assert frame[:4] == b"\x81\x7e\x00\x7e"
        assert len(frame) == 4 + 126

    def test_masked_header_and_key(self):
        """Test masked frames set the mask bit and carry a 4-byte key."""
        frame = encode_text("hello")
        assert frame[0] == 0x81
        assert frame[1] == 0x80 | 5
        assert len(frame) == 2 + 4 + 5
        assert frame[6:] != b"hello"

    def test_mask_key_changes_per_frame(self):
        """Test each frame gets its own masking key."""
        keys = {encode_text("same")[2:6] for _ in range(8)}
        assert len(keys) > 1

    def test_close_frame(self):
        """Test a Close frame carries the status code then the reason."""
        assert encode_close(mask=False) == b"\x88\x02\x03\xe8"
        assert encode_close(1001, "bye", mask=False) == b"\x88\x05\x03\xe9bye"

    def test_fin_cleared(self):
        """Test fin=False clears the high bit of the first byte."""
        assert encode_frame(Opcode.TEXT, b"x", mask=False, fin=False)[0] == 0x01

    def test_payload_over_16_bits_rejected(self):
        """Test payloads needing the 64-bit length form are refused."""
        with pytest.raises(FrameTooLargeError):
            encode_frame(Opcode.TEXT, b"a" * 65536)

    def test_largest_extended_payload_accepted(self):
        """Test 65535 bytes still fits the 16-bit form."""
        frame = encode_frame(Opcode.BINARY, b"a" * 65535, mask=False)
        assert frame[1] == 126
        assert struct.unpack("!H", frame[2:4]) == (65535,)

    def test_control_payload_limit(self):
        """Test control frames are limited to 125 bytes of payload."""
        encode_frame(Opcode.PING, b"a" * 125)
        with pytest.raises(FrameTooLargeError):
            encode_frame(Opcode.PING, b"a" * 126)


class TestReadFrame:
    """Tests for read_frame()."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("length", [0, 1, 125, 126, 65535])
    async def test_masked_frames_decode(self, length):
        """Test masked frames decode to the payload that was encoded."""
        payload = bytes(i % 251 for i in range(length))
        frames = await decode_all(encode_frame(Opcode.BINARY, payload))
        assert frames == [Frame(Opcode.BINARY, payload)]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("mask", [False, True])
    @pytest.mark.parametrize("length", [0, 1, 125, 126, 65535])
    async def test_text_frames_decode(self, length, mask):
        """Test Text frames of each length form read back unchanged."""
        text = "".join(chr(ord("a") + i % 26) for i in range(length))
        frame = await read_frame(BytesReader(encode_text(text, mask=mask)).read)
        assert frame.opcode is Opcode.TEXT
        assert frame.payload.decode("utf-8") == text

    @pytest.mark.asyncio
    async def test_unmasked_text(self):
        """Test an unmasked server frame decodes directly."""
        reader = BytesReader(b"\x81\x02hi")
        frame = await read_frame(reader.read)
        assert frame.opcode is Opcode.TEXT
        assert frame.payload == b"hi"
        assert frame.fin is True

    @pytest.mark.asyncio
    async def test_fin_flag_preserved(self):
        """Test a frame without FIN is reported as such."""
        frame = await read_frame(BytesReader(b"\x01\x01x").read)
        assert frame.fin is False

    @pytest.mark.asyncio
    async def test_empty_payload_skips_read(self):
        """Test no payload read is issued for a zero-length frame."""
        reader = BytesReader(b"\x8a\x00")
        frame = await read_frame(reader.read)
        assert frame == Frame(Opcode.PONG)
        assert reader.requests == [2]

    @pytest.mark.asyncio
    async def test_64_bit_length_rejected(self):
        """Test the 64-bit length form fails before reading further."""
        data = b"\x81\x7f" + (70000).to_bytes(8, "big") + b"x" * 16
        reader = BytesReader(data)

        with pytest.raises(UnsupportedFrameError, match="Large frames not supported") as exc:
            await read_frame(reader.read)

        assert exc.value.close_code == 1011
        assert reader.requests == [2]

    @pytest.mark.asyncio
    async def test_reserved_opcode_rejected(self):
        """Test reserved opcodes are a protocol error."""
        with pytest.raises(UnsupportedFrameError) as exc:
            await read_frame(BytesReader(b"\x83\x00").read)
        assert exc.value.close_code == 1002

    @pytest.mark.asyncio
    async def test_stream_ends_in_header(self):
        """Test an empty stream fails as an incomplete read."""
        with pytest.raises(IncompleteReadError) as exc:
            await read_frame(BytesReader(b"").read)
        assert exc.value.expected == 2
        assert exc.value.partial == b""

    @pytest.mark.asyncio
    async def test_stream_ends_in_payload(self):
        """Test a truncated payload fails as an incomplete read."""
        with pytest.raises(IncompleteReadError) as exc:
            await read_frame(BytesReader(b"\x81\x05abc").read)
        assert exc.value.partial == b"abc"

    @pytest.mark.asyncio
    async def test_consecutive_frames(self):
        """Test frames are consumed one at a time from a shared stream."""
        data = encode_text("one", mask=False) + encode_close(mask=False)
        frames = await decode_all(data)
        assert [f.opcode for f in frames] == [Opcode.TEXT, Opcode.CLOSE]


class TestParseClosePayload:
    """Tests for parse_close_payload()."""

    def test_code_and_reason(self):
        assert parse_close_payload(b"\x03\xe9going away") == (1001, "going away")

    def test_empty_payload(self):
        """Test a Close frame without a body maps to 1005."""
        assert parse_close_payload(b"") == (1005, "")


class TestOpcode:
    """Tests for Opcode."""

    def test_control_opcodes(self):
        assert Opcode.CLOSE.is_control
        assert Opcode.PING.is_control
        assert not Opcode.TEXT.is_control
        assert not Opcode.CONTINUATION.is_control

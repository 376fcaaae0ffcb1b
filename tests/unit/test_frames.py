"""
Unit tests for the WebSocket frame codec.
"""

import struct

import pytest

from wsmonitor.protocol.frames import (
    Frame,
    FrameBuffer,
    FrameError,
    IncompleteFrameError,
    InvalidFrameError,
    Opcode,
    apply_mask,
    decode_frame,
    encode_frame,
    encode_masked_frame,
    parse_frame,
)


MASK = b"\x12\x34\x56\x78"


class TestEncodeFrame:
    """Tests for server-side frame encoding."""

    def test_short_payload(self):
        """Payloads up to 125 bytes use the 7-bit length."""
        assert encode_frame(b"hi") == b"\x81\x02hi"

    def test_empty_payload(self):
        assert encode_frame(b"") == b"\x81\x00"

    def test_largest_short_length(self):
        frame = encode_frame(b"x" * 125)
        assert frame[1] == 125
        assert len(frame) == 2 + 125

    @pytest.mark.parametrize("length", [126, 65535])
    def test_16_bit_length(self, length):
        """126..65535 bytes: escape code 126 plus 2-byte big-endian length."""
        frame = encode_frame(b"x" * length)
        assert frame[0] == 0x81
        assert frame[1] == 126
        assert struct.unpack(">H", frame[2:4])[0] == length
        assert len(frame) == 4 + length

    def test_64_bit_length(self):
        """Above 65535: escape code 127, four zero bytes, 4-byte length."""
        frame = encode_frame(b"x" * 65536)
        assert frame[1] == 127
        assert frame[2:6] == b"\x00\x00\x00\x00"
        assert struct.unpack(">I", frame[6:10])[0] == 65536
        assert len(frame) == 10 + 65536

    def test_never_masked(self):
        for length in (0, 125, 126, 65536):
            assert not encode_frame(b"a" * length)[1] & 0x80

    def test_binary_opcode(self):
        assert encode_frame(b"\x00", Opcode.BINARY)[0] == 0x82


class TestApplyMask:
    """Tests for XOR masking."""

    def test_mask_is_involution(self):
        data = b"Hello, observers!"
        assert apply_mask(apply_mask(data, MASK), MASK) == data

    def test_rfc_example(self):
        """The masked "Hello" from RFC 6455 section 5.7."""
        masked = bytes([0x7F, 0x9F, 0x4D, 0x51, 0x58])
        assert apply_mask(masked, b"\x37\xfa\x21\x3d") == b"Hello"

    def test_rejects_bad_key(self):
        with pytest.raises(ValueError):
            apply_mask(b"abc", b"\x00\x01")


class TestParseFrame:
    """Tests for decoding client frames."""

    @pytest.mark.parametrize("length", [0, 1, 125, 126, 127, 65535, 65536])
    def test_masked_client_frame_recovers_payload(self, length):
        payload = bytes(i % 251 for i in range(length))
        data = encode_masked_frame(payload, MASK)

        frame, consumed = parse_frame(data)

        assert frame.payload == payload
        assert frame.payload_length == length
        assert frame.masked
        assert frame.mask_key == MASK
        assert frame.fin
        assert frame.is_text
        assert consumed == len(data)

    def test_rfc_masked_hello(self):
        data = bytes([0x81, 0x85, 0x37, 0xFA, 0x21, 0x3D, 0x7F, 0x9F, 0x4D, 0x51, 0x58])
        assert decode_frame(data) == b"Hello"

    def test_unmasked_frame_taken_as_clear_text(self):
        frame, consumed = parse_frame(b"\x81\x05Hello")
        assert frame.payload == b"Hello"
        assert not frame.masked
        assert frame.mask_key is None
        assert consumed == 7

    def test_consumed_excludes_trailing_bytes(self):
        first = encode_masked_frame(b"one", MASK)
        second = encode_masked_frame(b"two", MASK)

        frame, consumed = parse_frame(first + second)

        assert frame.payload == b"one"
        assert consumed == len(first)

    def test_returns_frame_instance(self):
        frame, _ = parse_frame(encode_frame(b"x"))
        assert isinstance(frame, Frame)
        assert frame.opcode == Opcode.TEXT


class TestIncompleteFrames:
    """A partial frame means "wait for more bytes", never an error."""

    def test_empty_buffer(self):
        with pytest.raises(IncompleteFrameError):
            parse_frame(b"")

    def test_single_header_byte(self):
        with pytest.raises(IncompleteFrameError):
            parse_frame(b"\x81")

    def test_truncated_16_bit_length(self):
        with pytest.raises(IncompleteFrameError):
            parse_frame(b"\x81\xfe\x01")

    def test_truncated_64_bit_length(self):
        with pytest.raises(IncompleteFrameError):
            parse_frame(b"\x81\xff\x00\x00\x00\x00")

    def test_truncated_mask_key(self):
        with pytest.raises(IncompleteFrameError):
            parse_frame(b"\x81\x85\x37\xfa")

    def test_truncated_payload(self):
        data = encode_masked_frame(b"Hello, world", MASK)
        with pytest.raises(IncompleteFrameError) as exc_info:
            parse_frame(data[:-3])
        assert exc_info.value.needed == len(data)

    def test_incomplete_is_a_frame_error(self):
        assert issubclass(IncompleteFrameError, FrameError)


class TestInvalidFrames:
    """Headers that can never become valid."""

    def test_reserved_bits(self):
        with pytest.raises(InvalidFrameError):
            parse_frame(b"\xc1\x00")

    def test_unknown_opcode(self):
        with pytest.raises(InvalidFrameError):
            parse_frame(b"\x83\x00")

    def test_length_above_32_bits(self):
        data = b"\x81\x7f" + struct.pack(">II", 1, 0)
        with pytest.raises(InvalidFrameError):
            parse_frame(data)

    def test_oversized_control_frame(self):
        data = encode_masked_frame(b"x" * 126, MASK, Opcode.PING)
        with pytest.raises(InvalidFrameError):
            parse_frame(data)

    def test_fragmented_control_frame(self):
        with pytest.raises(InvalidFrameError):
            parse_frame(b"\x09\x00")


class TestFrameBuffer:
    """Tests for reassembling frames across reads."""

    def test_single_frame(self):
        buf = FrameBuffer()
        frames = buf.feed(encode_masked_frame(b"hello", MASK))
        assert [f.payload for f in frames] == [b"hello"]
        assert len(buf) == 0

    def test_frame_split_across_chunks(self):
        data = encode_masked_frame(b"x" * 300, MASK)
        buf = FrameBuffer()

        assert buf.feed(data[:1]) == []
        assert buf.feed(data[1:3]) == []
        assert buf.feed(data[3:100]) == []
        frames = buf.feed(data[100:])

        assert len(frames) == 1
        assert frames[0].payload == b"x" * 300

    def test_several_frames_in_one_chunk(self):
        data = b"".join(encode_masked_frame(p, MASK) for p in (b"a", b"bb", b"ccc"))
        frames = FrameBuffer().feed(data)
        assert [f.payload for f in frames] == [b"a", b"bb", b"ccc"]

    def test_keeps_partial_tail(self):
        first = encode_masked_frame(b"first", MASK)
        second = encode_masked_frame(b"second", MASK)
        buf = FrameBuffer()

        frames = buf.feed(first + second[:4])
        assert [f.payload for f in frames] == [b"first"]
        assert len(buf) == 4

        frames = buf.feed(second[4:])
        assert [f.payload for f in frames] == [b"second"]

    def test_invalid_bytes_are_dropped(self):
        buf = FrameBuffer()
        with pytest.raises(InvalidFrameError):
            buf.feed(b"\xc1\x00garbage")
        assert len(buf) == 0

        # The buffer is usable again afterwards
        frames = buf.feed(encode_masked_frame(b"ok", MASK))
        assert [f.payload for f in frames] == [b"ok"]

    def test_oversized_message(self):
        buf = FrameBuffer(max_size=64)
        data = encode_masked_frame(b"x" * 200, MASK)

        with pytest.raises(FrameError) as exc_info:
            buf.feed(data[:100])

        assert not isinstance(exc_info.value, InvalidFrameError)
        assert len(buf) == 0

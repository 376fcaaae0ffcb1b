"""
=============================================================================
WEBSOCKET FRAME CODEC
=============================================================================

Pure functions that turn an application payload into a wire frame and
back again. No sockets, no state: bytes in, bytes out.

=============================================================================
FRAME LAYOUT (RFC 6455, the subset we speak)
=============================================================================

     0                   1                   2                   3
     0 1 2 3 4 5 6 7 8 9 0 1 2 3 4 5 6 7 8 9 0 1 2 3 4 5 6 7 8 9 0 1
    +-+-+-+-+-------+-+-------------+-------------------------------+
    |F|R|R|R| opcode|M| Payload len |    Extended payload length    |
    |I|S|S|S|  (4)  |A|     (7)     |             (16/64)           |
    |N|V|V|V|       |S|             |   (if payload len==126/127)   |
    | |1|2|3|       |K|             |                               |
    +-+-+-+-+-------+-+-------------+ - - - - - - - - - - - - - - - +
    |     Extended payload length continued, if payload len == 127  |
    + - - - - - - - - - - - - - - - +-------------------------------+
    |                               | Masking-key, if MASK set to 1 |
    +-------------------------------+-------------------------------+
    | Masking-key (continued)       |          Payload Data         |
    +-------------------------------- - - - - - - - - - - - - - - - +

THREE LENGTH CLASSES:
─────────────────────

    ┌───────────────────┬──────────────┬──────────────────────────────┐
    │ Payload size      │ 7-bit field  │ Followed by                  │
    ├───────────────────┼──────────────┼──────────────────────────────┤
    │ 0 .. 125          │ the length   │ nothing                      │
    │ 126 .. 65535      │ 126          │ 2-byte big-endian length     │
    │ 65536 .. 2^32-1   │ 127          │ 4 zero bytes + 4-byte length │
    └───────────────────┴──────────────┴──────────────────────────────┘

Only the low 32 bits of the 64-bit length are used. Status payloads are
small JSON documents, so this is never a practical limit.

MASKING:
────────

Client-to-server frames are masked with a 4-byte key:

    clear[i] = masked[i] XOR mask_key[i % 4]

Masking is its own inverse, so the same function masks and unmasks.
Server-to-client frames are never masked.

=============================================================================
DECODE OUTCOMES
=============================================================================

    parse_frame(buffer)
        │
        ├── complete frame     → (Frame, bytes_consumed)
        ├── not enough bytes   → IncompleteFrameError  (keep buffering)
        └── malformed header   → InvalidFrameError     (drop the bytes)

IncompleteFrameError is NOT a failure of the peer. TCP hands us bytes in
arbitrary chunks, so half a frame is perfectly normal.

=============================================================================
"""

import struct
from dataclasses import dataclass
from enum import IntEnum
from typing import List, Optional, Tuple


class Opcode(IntEnum):
    """Frame opcodes defined by RFC 6455."""

    CONTINUATION = 0x0
    TEXT = 0x1
    BINARY = 0x2
    CLOSE = 0x8
    PING = 0x9
    PONG = 0xA


FIN_BIT = 0x80
RSV_BITS = 0x70
OPCODE_BITS = 0x0F
MASK_BIT = 0x80
LENGTH_BITS = 0x7F

LENGTH_16 = 126
LENGTH_64 = 127

MAX_SHORT_LENGTH = 125
MAX_16_LENGTH = 0xFFFF
MAX_32_LENGTH = 0xFFFFFFFF


class FrameError(Exception):
    """Raised when a frame cannot be decoded or encoded."""


class IncompleteFrameError(FrameError):
    """The buffer does not yet hold a complete frame."""

    def __init__(self, message: str, needed: Optional[int] = None):
        super().__init__(message)
        self.needed = needed  # Total bytes required, when known


class InvalidFrameError(FrameError):
    """The bytes can never form a valid frame."""


@dataclass(frozen=True)
class Frame:
    """
    A single decoded frame.

    Frames only live for the duration of an encode or decode call;
    nothing in the server keeps them around.
    """

    opcode: int
    fin: bool
    masked: bool
    payload_length: int
    payload: bytes
    mask_key: Optional[bytes] = None

    @property
    def is_text(self) -> bool:
        return self.opcode == Opcode.TEXT


def apply_mask(data: bytes, mask_key: bytes) -> bytes:
    """XOR every byte with mask_key[i % 4]. Masks and unmasks alike."""
    if len(mask_key) != 4:
        raise ValueError(f"Mask key must be 4 bytes, got {len(mask_key)}")
    return bytes(b ^ mask_key[i % 4] for i, b in enumerate(data))


def _encode_length(length: int, mask_flag: int = 0) -> bytes:
    if length <= MAX_SHORT_LENGTH:
        return bytes([mask_flag | length])
    if length <= MAX_16_LENGTH:
        return bytes([mask_flag | LENGTH_16]) + struct.pack(">H", length)
    if length <= MAX_32_LENGTH:
        return bytes([mask_flag | LENGTH_64]) + struct.pack(">II", 0, length)
    raise FrameError(f"Payload too large: {length} bytes")


def encode_frame(payload: bytes, opcode: int = Opcode.TEXT) -> bytes:
    """
    Encode a payload as a single unmasked, final frame.

    Args:
        payload: Message bytes (UTF-8 JSON for everything we send).
        opcode: Frame opcode. Text unless a caller says otherwise.

    Returns:
        The complete frame, ready for sendall().

    Example:
        >>> encode_frame(b"hi")
        b'\\x81\\x02hi'
    """
    header = bytes([FIN_BIT | (opcode & OPCODE_BITS)])
    return header + _encode_length(len(payload)) + payload


def encode_masked_frame(payload: bytes, mask_key: bytes, opcode: int = Opcode.TEXT) -> bytes:
    """
    Encode a payload the way a browser would send it: masked.

    The server never sends masked frames; this exists for clients,
    diagnostics and tests that need to speak the other side.
    """
    header = bytes([FIN_BIT | (opcode & OPCODE_BITS)])
    return header + _encode_length(len(payload), MASK_BIT) + mask_key + apply_mask(payload, mask_key)


def parse_frame(data: bytes) -> Tuple[Frame, int]:
    """
    Decode the first frame in a buffer.

    =========================================================================
    ALGORITHM
    =========================================================================

    1. Need at least the 2-byte header
    2. Reject reserved bits (no extensions were negotiated)
    3. Read mask bit and the 7-bit length
    4. Extend the length for the 126 / 127 escape codes
    5. Read the 4-byte mask key when masked
    6. Check the whole payload is present
    7. Unmask (or take the payload as-is when the mask bit is clear)

    =========================================================================

    Args:
        data: Bytes received from the peer. May hold less than one frame,
              exactly one, or more than one.

    Returns:
        (frame, consumed) where consumed is the number of bytes the frame
        occupied, so callers can slice off the remainder.

    Raises:
        IncompleteFrameError: More bytes are needed.
        InvalidFrameError: The header can never be valid.
    """
    if len(data) < 2:
        raise IncompleteFrameError("Need at least 2 header bytes", needed=2)

    first, second = data[0], data[1]

    if first & RSV_BITS:
        raise InvalidFrameError("Reserved bits set without a negotiated extension")

    try:
        opcode = Opcode(first & OPCODE_BITS)
    except ValueError:
        raise InvalidFrameError(f"Unknown opcode: {first & OPCODE_BITS:#x}")

    fin = bool(first & FIN_BIT)
    masked = bool(second & MASK_BIT)
    length = second & LENGTH_BITS
    offset = 2

    if length == LENGTH_16:
        if len(data) < offset + 2:
            raise IncompleteFrameError("Incomplete 16-bit length", needed=offset + 2)
        (length,) = struct.unpack(">H", data[offset:offset + 2])
        offset += 2
    elif length == LENGTH_64:
        if len(data) < offset + 8:
            raise IncompleteFrameError("Incomplete 64-bit length", needed=offset + 8)
        high, length = struct.unpack(">II", data[offset:offset + 8])
        if high:
            raise InvalidFrameError("Payload lengths above 32 bits are not supported")
        offset += 8

    if opcode >= Opcode.CLOSE and (length > MAX_SHORT_LENGTH or not fin):
        raise InvalidFrameError("Control frames must be final and at most 125 bytes")

    mask_key = None
    if masked:
        if len(data) < offset + 4:
            raise IncompleteFrameError("Incomplete mask key", needed=offset + 4)
        mask_key = data[offset:offset + 4]
        offset += 4

    end = offset + length
    if len(data) < end:
        raise IncompleteFrameError(
            f"Incomplete payload: expected {length} bytes, got {len(data) - offset}",
            needed=end,
        )

    payload = data[offset:end]
    if mask_key is not None:
        payload = apply_mask(payload, mask_key)

    frame = Frame(
        opcode=opcode,
        fin=fin,
        masked=masked,
        payload_length=length,
        payload=bytes(payload),
        mask_key=bytes(mask_key) if mask_key is not None else None,
    )
    return frame, end


def decode_frame(data: bytes) -> bytes:
    """Decode the first frame in data and return only its payload."""
    frame, _ = parse_frame(data)
    return frame.payload


class FrameBuffer:
    """
    Accumulates bytes from one peer and splits them into frames.

    Partial frames stay in the buffer until the rest arrives. Any bytes
    after a complete frame are kept for the next one.

    Usage:
        buf = FrameBuffer(max_size=1024 * 1024)
        for frame in buf.feed(sock.recv(4096)):
            handle(frame.payload)
    """

    def __init__(self, max_size: int = 1024 * 1024):
        self.max_size = max_size
        self._data = b""

    def __len__(self) -> int:
        return len(self._data)

    def clear(self):
        self._data = b""

    def feed(self, chunk: bytes) -> List[Frame]:
        """
        Append a chunk and return every complete frame now available.

        Raises:
            InvalidFrameError: The buffered bytes are malformed. The buffer
                               is cleared before raising.
            FrameError: The buffer grew past max_size without completing
                        a frame.
        """
        self._data += chunk
        frames: List[Frame] = []

        while self._data:
            try:
                frame, consumed = parse_frame(self._data)
            except IncompleteFrameError:
                break
            except InvalidFrameError:
                self._data = b""
                raise
            frames.append(frame)
            self._data = self._data[consumed:]

        if len(self._data) > self.max_size:
            size = len(self._data)
            self._data = b""
            raise FrameError(f"Buffered message too large: {size} bytes")

        return frames

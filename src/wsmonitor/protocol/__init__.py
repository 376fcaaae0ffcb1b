"""
=============================================================================
PROTOCOL PACKAGE
=============================================================================

Everything that touches bytes on the wire, with no socket I/O:

    frames.py      Frame codec (encode / parse / unmask)
    handshake.py   HTTP/1.1 → WebSocket upgrade negotiation
    messages.py    JSON envelopes carried inside text frames

Keeping these pure makes them trivial to test: feed bytes in, assert on
bytes out.

=============================================================================
"""

from .frames import (
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
from .handshake import (
    HandshakeError,
    UpgradeRequest,
    build_upgrade_response,
    compute_accept_key,
    negotiate,
    parse_upgrade_request,
)
from .messages import (
    FORCE_CHECK,
    encode_message,
    initial_status,
    messages_for_event,
    parse_action,
    server_alert,
    server_recovery,
    server_update,
)

__all__ = [
    # Frames
    "Frame",
    "FrameBuffer",
    "FrameError",
    "IncompleteFrameError",
    "InvalidFrameError",
    "Opcode",
    "apply_mask",
    "decode_frame",
    "encode_frame",
    "encode_masked_frame",
    "parse_frame",

    # Handshake
    "HandshakeError",
    "UpgradeRequest",
    "build_upgrade_response",
    "compute_accept_key",
    "negotiate",
    "parse_upgrade_request",

    # Messages
    "FORCE_CHECK",
    "encode_message",
    "initial_status",
    "messages_for_event",
    "parse_action",
    "server_alert",
    "server_recovery",
    "server_update",
]

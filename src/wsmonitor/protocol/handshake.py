"""
=============================================================================
WEBSOCKET OPENING HANDSHAKE
=============================================================================

Every observer starts life as a plain HTTP/1.1 request. The client asks
the server to switch protocols; the server proves it understood by
hashing the client's key with a fixed GUID.

=============================================================================
THE EXCHANGE
=============================================================================

    Client                                         Server
      │                                               │
      │  GET / HTTP/1.1                               │
      │  Host: monitor:8080                           │
      │  Upgrade: websocket                           │
      │  Connection: Upgrade                          │
      │  Sec-WebSocket-Key: dGhlIHNhbXBsZSBub25jZQ==  │
      │  Sec-WebSocket-Version: 13                    │
      │ ────────────────────────────────────────────► │
      │                                               │
      │  HTTP/1.1 101 Switching Protocols             │
      │  Upgrade: websocket                           │
      │  Connection: Upgrade                          │
      │  Sec-WebSocket-Accept: s3pPLMBiTxaQ9kYGzzhZRbK+xOo=
      │ ◄──────────────────────────────────────────── │
      │                                               │
      │  ═══════ framed messages from here on ═══════ │

ACCEPT TOKEN:
─────────────

    accept = base64( sha1( key + "258EAFA5-E914-47DA-95CA-C5AB0DC85B11" ) )

The GUID is fixed by RFC 6455. Sub-protocols and extensions are never
negotiated, so the response is always the same four lines.

=============================================================================
"""

import base64
import hashlib
import re
from dataclasses import dataclass, field
from typing import Dict


WEBSOCKET_GUID = "258EAFA5-E914-47DA-95CA-C5AB0DC85B11"

HEADER_TERMINATOR = b"\r\n\r\n"


class HandshakeError(Exception):
    """
    Raised when an upgrade request cannot be accepted.

    The caller closes the socket; nothing is sent back and the peer never
    becomes an observer.
    """


@dataclass
class UpgradeRequest:
    """The parts of an upgrade request the negotiator cares about."""

    method: str
    path: str
    version: str
    headers: Dict[str, str] = field(default_factory=dict)  # Lowercase names

    @property
    def key(self) -> str:
        return self.headers.get("sec-websocket-key", "").strip()

    @property
    def wants_websocket(self) -> bool:
        return "websocket" in self.headers.get("upgrade", "").lower()


REQUEST_LINE_PATTERN = re.compile(r"^([A-Z]+) ([^ ]+) (HTTP/\d\.\d)$")
HEADER_PATTERN = re.compile(r"^([^:]+):\s*(.*)$")


def parse_upgrade_request(data: bytes) -> UpgradeRequest:
    """
    Parse the request line and headers of an upgrade request.

    Only the header section is read; anything after the blank line is
    ignored.

    Raises:
        HandshakeError: Malformed request, wrong method, missing Upgrade
                        header or missing Sec-WebSocket-Key.
    """
    header_end = data.find(HEADER_TERMINATOR)
    if header_end == -1:
        raise HandshakeError("Incomplete request: no header terminator")

    text = data[:header_end].decode("latin-1")
    lines = text.split("\r\n")

    match = REQUEST_LINE_PATTERN.match(lines[0].strip())
    if not match:
        raise HandshakeError(f"Invalid request line: {lines[0][:100]!r}")

    method, path, version = match.groups()
    if method != "GET":
        raise HandshakeError(f"Upgrade requires GET, got {method}")

    headers: Dict[str, str] = {}
    for line in lines[1:]:
        header = HEADER_PATTERN.match(line)
        if header:
            headers[header.group(1).strip().lower()] = header.group(2).strip()

    request = UpgradeRequest(method=method, path=path, version=version, headers=headers)

    if not request.wants_websocket:
        raise HandshakeError("Missing 'Upgrade: websocket' header")
    if not request.key:
        raise HandshakeError("Missing Sec-WebSocket-Key header")

    return request


def compute_accept_key(key: str) -> str:
    """
    Compute the Sec-WebSocket-Accept value for a client key.

    >>> compute_accept_key("dGhlIHNhbXBsZSBub25jZQ==")
    's3pPLMBiTxaQ9kYGzzhZRbK+xOo='
    """
    digest = hashlib.sha1((key.strip() + WEBSOCKET_GUID).encode("ascii")).digest()
    return base64.b64encode(digest).decode("ascii")


def build_upgrade_response(accept: str) -> bytes:
    """Build the literal 101 response. Byte-exact; no other headers."""
    return (
        "HTTP/1.1 101 Switching Protocols\r\n"
        "Upgrade: websocket\r\n"
        "Connection: Upgrade\r\n"
        f"Sec-WebSocket-Accept: {accept}\r\n\r\n"
    ).encode("ascii")


def negotiate(data: bytes) -> bytes:
    """
    Turn raw request bytes into the upgrade response bytes.

    Raises:
        HandshakeError: The request is not an acceptable upgrade.
    """
    request = parse_upgrade_request(data)
    try:
        accept = compute_accept_key(request.key)
    except UnicodeEncodeError:
        raise HandshakeError("Sec-WebSocket-Key is not ASCII")
    return build_upgrade_response(accept)

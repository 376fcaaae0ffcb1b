"""
pytest configuration and fixtures.
"""

import json
import os
import socket
from datetime import datetime, timedelta
from typing import Dict, Generator, List, Optional

import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from wsmonitor import HealthTracker, MonitorConfig, MonitorServer, StatusReporter, Target
from wsmonitor.health import ProbeResponse
from wsmonitor.protocol import (
    IncompleteFrameError,
    Opcode,
    encode_masked_frame,
    parse_frame,
)


SAMPLE_KEY = "dGhlIHNhbXBsZSBub25jZQ=="


def up(status: int = 200, elapsed_ms: float = 12.5) -> ProbeResponse:
    return ProbeResponse(completed=True, http_status=status, elapsed_ms=elapsed_ms)


def down(error: str = "ConnectError: connection refused") -> ProbeResponse:
    return ProbeResponse(completed=False, http_status=0, elapsed_ms=5.0, error=error)


class ScriptedProbe:
    """
    Probe stand-in that replays a fixed sequence of responses per URL.

    Once a URL's script runs out, its last response repeats.
    """

    def __init__(self, script: Optional[Dict[str, List[ProbeResponse]]] = None):
        self.script = {url: list(responses) for url, responses in (script or {}).items()}
        self.calls: List[str] = []

    def __call__(self, url: str) -> ProbeResponse:
        self.calls.append(url)
        responses = self.script.get(url) or [up()]
        if len(responses) > 1:
            return responses.pop(0)
        return responses[0]


class FakeClock:
    """Monotonic clock the test advances by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class FixedDatetime:
    """datetime.now replacement that ticks one second per call."""

    def __init__(self, start: datetime = datetime(2024, 1, 15, 9, 30, 0)):
        self.current = start

    def __call__(self) -> datetime:
        value = self.current
        self.current += timedelta(seconds=1)
        return value


class WebSocketClient:
    """
    Minimal blocking client for driving a MonitorServer from tests.

    The server only makes progress when the test calls tick(), so every
    read goes through _fill() which ticks until the bytes arrive.
    """

    def __init__(self, address, key: str = SAMPLE_KEY):
        self.key = key
        self.sock = socket.create_connection(address, timeout=2.0)
        self.buffer = b""

    def send_handshake(self, request: Optional[bytes] = None):
        if request is None:
            request = (
                "GET / HTTP/1.1\r\n"
                "Host: localhost\r\n"
                "Upgrade: websocket\r\n"
                "Connection: Upgrade\r\n"
                f"Sec-WebSocket-Key: {self.key}\r\n"
                "Sec-WebSocket-Version: 13\r\n"
                "\r\n"
            ).encode("ascii")
        self.sock.sendall(request)

    def send_text(self, text: str, mask_key: bytes = b"\x37\xfa\x21\x3d"):
        self.sock.sendall(encode_masked_frame(text.encode("utf-8"), mask_key, Opcode.TEXT))

    def send_raw(self, data: bytes):
        self.sock.sendall(data)

    def _fill(self, server: MonitorServer, ticks: int = 50) -> bool:
        """Tick the server, then try one non-blocking read."""
        for _ in range(ticks):
            server.tick()
            self.sock.setblocking(False)
            try:
                chunk = self.sock.recv(65536)
            except (BlockingIOError, InterruptedError):
                continue
            finally:
                self.sock.settimeout(2.0)
            if not chunk:
                return False
            self.buffer += chunk
            return True
        return True

    def read_handshake_response(self, server: MonitorServer) -> bytes:
        for _ in range(20):
            end = self.buffer.find(b"\r\n\r\n")
            if end != -1:
                response, self.buffer = self.buffer[:end + 4], self.buffer[end + 4:]
                return response
            if not self._fill(server):
                break
        raise AssertionError("No handshake response received")

    def read_message(self, server: MonitorServer) -> dict:
        for _ in range(20):
            try:
                frame, consumed = parse_frame(self.buffer)
            except IncompleteFrameError:
                if not self._fill(server):
                    break
                continue
            self.buffer = self.buffer[consumed:]
            assert frame.opcode == Opcode.TEXT
            assert frame.fin
            assert not frame.masked
            return json.loads(frame.payload.decode("utf-8"))
        raise AssertionError("No message received")

    def is_closed_by_server(self, server: MonitorServer, ticks: int = 50) -> bool:
        for _ in range(ticks):
            server.tick()
            self.sock.setblocking(False)
            try:
                chunk = self.sock.recv(65536)
            except (BlockingIOError, InterruptedError):
                continue
            except ConnectionResetError:
                return True
            finally:
                self.sock.settimeout(2.0)
            if not chunk:
                return True
            self.buffer += chunk
        return False

    def close(self):
        self.sock.close()


def tick_until(server: MonitorServer, predicate, ticks: int = 100) -> bool:
    for _ in range(ticks):
        if predicate():
            return True
        server.tick()
    return predicate()


@pytest.fixture
def targets() -> List[Target]:
    return [
        Target("A", "http://ok.example"),
        Target("B", "http://other.example"),
    ]


@pytest.fixture
def config(targets) -> MonitorConfig:
    """Default test monitor configuration."""
    return MonitorConfig(
        host="127.0.0.1",
        port=0,  # Let OS pick a free port
        select_timeout=0.01,
        targets=targets,
    )


@pytest.fixture
def probe() -> ScriptedProbe:
    return ScriptedProbe()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def free_port() -> int:
    """Get a free port for testing."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(('127.0.0.1', 0))
        return s.getsockname()[1]


@pytest.fixture
def monitor(config, probe, clock) -> Generator[MonitorServer, None, None]:
    """A started server with scripted probes, driven by tick()."""
    tracker = HealthTracker(config.targets, probe=probe, clock=FixedDatetime())
    server = MonitorServer(
        config,
        tracker=tracker,
        reporter=StatusReporter(quiet=True, interval=config.sweep_interval),
        clock=clock,
    )
    server.start()

    yield server

    server.close()


@pytest.fixture
def connect(monitor) -> Generator:
    """Factory: open an upgraded observer and consume its initial_status."""
    clients = []

    def _connect(expect_initial: bool = True) -> WebSocketClient:
        client = WebSocketClient(monitor.address)
        clients.append(client)
        before = len(monitor.registry)
        client.send_handshake()
        client.read_handshake_response(monitor)
        assert tick_until(monitor, lambda: len(monitor.registry) == before + 1)
        if expect_initial:
            client.initial = client.read_message(monitor)
        return client

    yield _connect

    for client in clients:
        client.close()


@pytest.fixture
def clean_env(monkeypatch):
    """Strip MONITOR_* variables so tests see defaults."""
    for name in list(os.environ):
        if name.startswith("MONITOR_"):
            monkeypatch.delenv(name, raising=False)
    return monkeypatch

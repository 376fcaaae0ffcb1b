"""
Unit tests for the readiness waiter.
"""

import socket
import time

import pytest

from wsmonitor.core import SelectorWaiter


@pytest.fixture
def waiter():
    with SelectorWaiter() as w:
        yield w


class TestSelectorWaiter:
    """Tests for SelectorWaiter."""

    def test_readable_socket_returns_token(self, waiter):
        a, b = socket.socketpair()
        try:
            waiter.register(a, "observer-a")
            b.sendall(b"x")

            assert waiter.wait(1.0) == ["observer-a"]
        finally:
            a.close()
            b.close()

    def test_idle_socket_times_out(self, waiter):
        a, b = socket.socketpair()
        try:
            waiter.register(a, "observer-a")
            assert waiter.wait(0.01) == []
        finally:
            a.close()
            b.close()

    def test_empty_wait_sleeps(self, waiter):
        started = time.monotonic()
        assert waiter.wait(0.05) == []
        assert time.monotonic() - started >= 0.04

    def test_unregister(self, waiter):
        a, b = socket.socketpair()
        try:
            waiter.register(a, "observer-a")
            waiter.unregister(a)
            b.sendall(b"x")

            assert len(waiter) == 0
            assert waiter.wait(0.01) == []
        finally:
            a.close()
            b.close()

    def test_unregister_unknown_ignored(self, waiter):
        a, b = socket.socketpair()
        try:
            waiter.unregister(a)
            waiter.unregister(a)
        finally:
            a.close()
            b.close()

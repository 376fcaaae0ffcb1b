"""
Unit tests for the HTTP probe.

All requests go through httpx.MockTransport; nothing touches the network.
"""

import httpx
import pytest

from conftest import FakeClock
from wsmonitor.health import HttpProbe


def make_probe(handler, **kwargs) -> HttpProbe:
    return HttpProbe(transport=httpx.MockTransport(handler), **kwargs)


class TestHttpProbe:
    """Tests for HttpProbe."""

    def test_uses_head(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.method)
            return httpx.Response(200)

        with make_probe(handler) as probe:
            probe("http://ok.example")

        assert seen == ["HEAD"]

    def test_success(self):
        with make_probe(lambda request: httpx.Response(200)) as probe:
            response = probe("http://ok.example")

        assert response.completed
        assert response.http_status == 200
        assert response.elapsed_ms >= 0
        assert response.error is None

    def test_server_error_still_completes(self):
        """A 500 is an HTTP response: completed, just not reachable."""
        with make_probe(lambda request: httpx.Response(500)) as probe:
            response = probe("http://broken.example")

        assert response.completed
        assert response.http_status == 500

    def test_follows_redirects(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/old":
                return httpx.Response(301, headers={"Location": "http://ok.example/new"})
            return httpx.Response(204)

        with make_probe(handler) as probe:
            response = probe("http://ok.example/old")

        assert response.http_status == 204

    def test_redirects_share_one_deadline(self):
        clock = FakeClock(start=0.0)
        hop_timeouts = []

        def handler(request: httpx.Request) -> httpx.Response:
            timeout = request.extensions["timeout"]
            hop_timeouts.append((timeout["connect"], timeout["read"]))
            clock.advance(4.0)
            return httpx.Response(302, headers={"Location": "http://loop.example/again"})

        with make_probe(handler, connect_timeout=5.0, timeout=10.0, clock=clock) as probe:
            response = probe("http://loop.example/")

        assert hop_timeouts == [(5.0, 10.0), (5.0, 6.0), (2.0, 2.0)]
        assert not response.completed
        assert response.error.startswith("TimeoutException")
        assert response.elapsed_ms == 12000.0

    def test_redirect_limit(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request.url.path)
            return httpx.Response(301, headers={"Location": "/again"})

        with make_probe(handler, max_redirects=3) as probe:
            response = probe("http://loop.example/")

        assert len(calls) == 4
        assert not response.completed
        assert response.error.startswith("TooManyRedirects")

    def test_connection_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("Connection refused", request=request)

        with make_probe(handler) as probe:
            response = probe("http://down.example")

        assert not response.completed
        assert response.http_status == 0
        assert response.error == "ConnectError: Connection refused"

    def test_timeout(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        with make_probe(handler) as probe:
            response = probe("http://slow.example")

        assert not response.completed
        assert response.error.startswith("ReadTimeout")

    def test_invalid_url(self):
        with make_probe(lambda request: httpx.Response(200)) as probe:
            response = probe("http://ok.example:notaport/")

        assert not response.completed
        assert response.error

    def test_default_user_agent(self):
        agents = []

        def handler(request: httpx.Request) -> httpx.Response:
            agents.append(request.headers["User-Agent"])
            return httpx.Response(200)

        with make_probe(handler, user_agent="PyWSMonitor/1.0") as probe:
            probe("http://ok.example")
            probe.probe("http://ok.example", user_agent="PyWSMonitor/1.0 (Manual)")

        assert agents == ["PyWSMonitor/1.0", "PyWSMonitor/1.0 (Manual)"]

    @pytest.mark.parametrize("connect,total", [(5.0, 10.0), (1.0, 2.0)])
    def test_timeouts_configured(self, connect, total):
        probe = HttpProbe(connect_timeout=connect, timeout=total)
        try:
            timeout = probe._client.timeout
            assert timeout.connect == connect
            assert timeout.read == total
        finally:
            probe.close()

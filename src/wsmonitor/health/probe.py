"""
=============================================================================
HTTP REACHABILITY PROBE
=============================================================================

A blocking HEAD request with bounded timeouts. The probe only reports
what happened; deciding whether that counts as "up" is the tracker's job.

=============================================================================
PROBE POLICY
=============================================================================

    ┌─────────────────────┬───────────────────────────────────────────────┐
    │ Method              │ HEAD (no body transferred)                    │
    │ Redirects           │ Followed, up to 20 hops                       │
    │ TLS verification    │ Disabled (self-signed targets still count)    │
    │ Connect timeout     │ 5 s                                           │
    │ Overall timeout     │ 10 s, shared by every redirect hop            │
    │ User-Agent          │ PyWSMonitor/1.0                               │
    └─────────────────────┴───────────────────────────────────────────────┘

A failed probe is not an error of the monitor. Timeouts, refused
connections and TLS failures are exactly what the monitor exists to
notice, so they come back as a ProbeResponse, never as an exception.

=============================================================================
"""

import logging
import time
from typing import Callable, Optional

import httpx

from .models import ProbeResponse


logger = logging.getLogger(__name__)


# Anything with this shape can stand in for HttpProbe (tests use lambdas).
Probe = Callable[[str], ProbeResponse]


class HttpProbe:
    """
    Probe client backed by a shared httpx.Client.

    httpx timeouts apply per phase and per hop, so redirects are followed
    here instead of inside httpx, and each hop is limited to whatever is
    left of `timeout`.

    Usage:
        with HttpProbe(connect_timeout=5.0, timeout=10.0) as probe:
            response = probe("https://example.com")
            print(response.completed, response.http_status)
    """

    def __init__(
        self,
        connect_timeout: float = 5.0,
        timeout: float = 10.0,
        user_agent: str = "PyWSMonitor/1.0",
        max_redirects: int = 20,
        transport: Optional[httpx.BaseTransport] = None,
        clock: Callable[[], float] = time.perf_counter,
    ):
        """
        Args:
            connect_timeout: Seconds allowed to establish a connection.
            timeout: Seconds allowed for the whole probe, redirects included.
            user_agent: User-Agent header sent with every probe.
            max_redirects: Redirect hops followed before giving up.
            transport: Custom httpx transport (httpx.MockTransport in tests).
            clock: Time source for the deadline and the latency figure.
        """
        self.connect_timeout = connect_timeout
        self.timeout = timeout
        self.user_agent = user_agent
        self.max_redirects = max_redirects
        self._clock = clock
        self._client = httpx.Client(
            timeout=httpx.Timeout(timeout, connect=connect_timeout),
            follow_redirects=False,
            verify=False,
            headers={"User-Agent": user_agent},
            transport=transport,
        )

    def __call__(self, url: str, user_agent: Optional[str] = None) -> ProbeResponse:
        return self.probe(url, user_agent=user_agent)

    def probe(self, url: str, user_agent: Optional[str] = None) -> ProbeResponse:
        """
        Send one HEAD request and time it.

        Args:
            url: Target URL.
            user_agent: Override the client's User-Agent for this request.

        Returns:
            ProbeResponse with completed=True whenever a final HTTP response
            arrived in time, whatever its status code.
        """
        headers = {"User-Agent": user_agent} if user_agent else None
        started = self._clock()

        try:
            response = self._head(url, headers, deadline=started + self.timeout)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            elapsed_ms = (self._clock() - started) * 1000.0
            logger.debug(f"Probe {url} failed after {elapsed_ms:.2f}ms: {type(e).__name__}: {e}")
            return ProbeResponse(
                completed=False,
                http_status=0,
                elapsed_ms=round(elapsed_ms, 2),
                error=f"{type(e).__name__}: {e}" if str(e) else type(e).__name__,
            )

        elapsed_ms = (self._clock() - started) * 1000.0
        return ProbeResponse(
            completed=True,
            http_status=response.status_code,
            elapsed_ms=round(elapsed_ms, 2),
        )

    def _head(self, url: str, headers: Optional[dict], deadline: float) -> httpx.Response:
        """
        HEAD the URL, following redirects until a final response.

        Raises:
            httpx.TimeoutException: The deadline passed between hops.
            httpx.TooManyRedirects: More than max_redirects hops.
        """
        request = self._client.build_request("HEAD", url, headers=headers)

        for _ in range(self.max_redirects + 1):
            remaining = deadline - self._clock()
            if remaining <= 0:
                raise httpx.TimeoutException(
                    f"no final response within {self.timeout:g}s", request=request
                )
            # Each phase of this hop is capped by what is left overall
            request.extensions["timeout"] = httpx.Timeout(
                remaining, connect=min(self.connect_timeout, remaining)
            ).as_dict()

            response = self._client.send(request)
            if response.next_request is None:
                return response
            request = response.next_request

        raise httpx.TooManyRedirects(
            f"exceeded {self.max_redirects} redirects", request=request
        )

    def close(self):
        self._client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

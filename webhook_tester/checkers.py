"""Health, liveness and readiness checkers."""

from __future__ import annotations

import urllib.error
import urllib.request
from typing import Any, Callable

DEFAULT_HTTP_TIMEOUT = 3.0

HttpClient = Callable[[urllib.request.Request], Any]


def _default_client(timeout: float) -> HttpClient:
    def do(request: urllib.request.Request) -> Any:
        try:
            return urllib.request.urlopen(request, timeout=timeout)  # noqa: S310
        except urllib.error.HTTPError as response:
            return response

    return do


class HealthChecker:
    """Probes a running server's liveness endpoint over HTTP.

    ``http_client`` takes a request and returns a response with ``status``
    and ``close()``.
    """

    def __init__(self, http_client: HttpClient | None = None, timeout: float = DEFAULT_HTTP_TIMEOUT) -> None:
        self._http_client = http_client if http_client is not None else _default_client(timeout)

    def check(self, port: int) -> None:
        """Raise if the live endpoint on the local port does not answer 200."""
        if not 0 <= port <= 0xFFFF:
            raise ValueError(f"wrong TCP port [{port}]")

        request = urllib.request.Request(
            f"http://127.0.0.1:{port}/live",
            method="GET",
            headers={"User-Agent": "HealthChecker/internal"},
        )
        response = self._http_client(request)
        code = response.status
        response.close()

        if code != 200:
            raise RuntimeError(f"wrong status code [{code}] from live endpoint")


class LiveChecker:
    """Liveness checker: the process answering is enough."""

    def check(self) -> bool:
        """Report the application as alive; never raises."""
        return True


class ReadyChecker:
    """Readiness checker: pings redis when a client is configured."""

    def __init__(self, rdb: Any = None) -> None:
        self._rdb = rdb

    def check(self) -> None:
        """Raise if the redis client (when present) cannot be pinged."""
        if self._rdb is not None:
            self._rdb.ping()
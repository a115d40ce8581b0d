"""HTTP middlewares: headers, request logging and error recovery."""

from __future__ import annotations

import ipaddress
import json
import logging
import time
import traceback
from typing import Any, Callable

from werkzeug.http import HTTP_STATUS_CODES
from werkzeug.wrappers import Request, Response

Handler = Callable[..., Response]
Middleware = Callable[[Handler], Handler]

_IP_HEADERS = ("CF-Connecting-IP", "X-Real-IP", "X-Forwarded-For")


def _strip_port(address: str) -> str:
    try:
        ipaddress.ip_address(address)
        return address
    except ValueError:
        pass
    if address.startswith("[") and "]" in address:
        return address[1 : address.index("]")]
    if address.count(":") == 1:
        return address.split(":", 1)[0]
    return address


def remote_address(request: Request) -> str:
    """Best guess of the client address, honouring proxy headers."""
    for name in _IP_HEADERS:
        first = request.headers.get(name, "").split(",", 1)[0].strip()
        if first:
            return first
    return _strip_port(request.remote_addr or "")


def _with_headers(next_handler: Handler, headers: dict[str, str]) -> Handler:
    def handler(request: Request, **kwargs: Any) -> Response:
        response = next_handler(request, **kwargs)
        for name, value in headers.items():
            response.headers[name] = value
        return response

    return handler


def cors(next_handler: Handler) -> Handler:
    """Allow cross-origin requests."""
    return _with_headers(next_handler, {"Access-Control-Allow-Origin": "*"})


def json_content_type(next_handler: Handler) -> Handler:
    """Mark responses as JSON."""
    return _with_headers(next_handler, {"Content-Type": "application/json"})


def no_cache(next_handler: Handler) -> Handler:
    """Disable response caching."""
    return _with_headers(
        next_handler,
        {
            "Cache-Control": "no-cache, no-store, must-revalidate",
            "Pragma": "no-cache",
            "Expires": "0",
        },
    )


def log_requests(log: logging.Logger) -> Middleware:
    """Log every processed request, except health checks."""

    def middleware(next_handler: Handler) -> Handler:
        def handler(request: Request, **kwargs: Any) -> Response:
            started = time.perf_counter()
            response = next_handler(request, **kwargs)
            duration = time.perf_counter() - started

            user_agent = request.headers.get("User-Agent", "")
            if "healthcheck" not in user_agent.lower():
                log.info(
                    "HTTP request processed",
                    extra={
                        "fields": {
                            "remote addr": remote_address(request),
                            "useragent": user_agent,
                            "method": request.method,
                            "url": request.url,
                            "status code": response.status_code,
                            "duration": duration,
                        }
                    },
                )
            return response

        return handler

    return middleware


def recover_panics(log: logging.Logger) -> Middleware:
    """Turn handler exceptions into a logged error and a JSON 500 response."""

    def middleware(next_handler: Handler) -> Handler:
        def handler(request: Request, **kwargs: Any) -> Response:
            try:
                return next_handler(request, **kwargs)
            except Exception as exc:  # noqa: BLE001
                log.error(
                    "HTTP handler panic",
                    extra={"fields": {"error": str(exc), "stacktrace": traceback.format_exc()}},
                )
                body = json.dumps({"message": f"{HTTP_STATUS_CODES[500]}: {exc}", "code": 500}) + "\n"
                return Response(body, status=500, content_type="application/json; charset=utf-8")

        return handler

    return middleware
"""The handler that records incoming webhook requests and answers them."""

from __future__ import annotations

import threading
from datetime import timedelta
from typing import Any, Protocol

from werkzeug.datastructures import Headers
from werkzeug.http import HTTP_STATUS_CODES
from werkzeug.wrappers import Request, Response

from .config import Config
from .middlewares import remote_address
from .models import request_registered_event

_HTML_CONTENT_TYPE = "text/html; charset=utf-8"

# Headers that describe the connection rather than the request itself.
_SKIPPED_HEADERS = frozenset({"HOST"})


class WebhookMetrics(Protocol):
    """Counter of processed webhooks."""

    def increment_processed_webhooks(self) -> None: ...


def _error_page(code: int, message: str) -> str:
    status = HTTP_STATUS_CODES.get(code, "")
    return (
        "<!doctype html>\n"
        "<!--\n"
        f"  WebHook error: {message}\n"
        "-->\n"
        '<html lang="en">\n'
        "<head>\n"
        '    <meta charset="utf-8"/>\n'
        '    <meta http-equiv="X-UA-Compatible" content="IE=edge"/>\n'
        '    <meta name="viewport" content="width=device-width, initial-scale=1"/>\n'
        f"    <title>{status}</title>\n"
        "    <style>\n"
        "        html,body {width:100%; height:100%; margin:0; padding:0; "
        "background-color: #2b2b2b; color: #efeffa}\n"
        "        body {display:flex; justify-content:center; align-items:center; "
        "font-family:sans-serif}\n"
        "        .container {text-align:center}\n"
        "    </style>\n"
        "</head>\n"
        "<body>\n"
        '    <div class="container">\n'
        f"        <h1>WebHook: {status}</h1>\n"
        f"        <h3>{message}</h3>\n"
        "    </div>\n"
        "</body>\n"
        "</html>"
    )


def _error(code: int, message: str) -> Response:
    return Response(_error_page(code, message), status=code, content_type=_HTML_CONTENT_TYPE)


def _request_uri(request: Request) -> str:
    raw = request.environ.get("REQUEST_URI") or request.environ.get("RAW_URI")
    if raw:
        return raw
    return request.full_path if request.query_string else request.path


class WebhookHandler:
    """Stores every incoming request of a session and answers as the session dictates.

    Route variables arrive as keyword arguments: ``session_uuid`` and, optionally,
    ``status_code``. Setting ``done`` aborts pending delayed answers.
    """

    def __init__(
        self,
        cfg: Config,
        storage: Any,
        pub: Any,
        metrics: WebhookMetrics | None = None,
        done: threading.Event | None = None,
    ) -> None:
        self._storage = storage
        self._pub = pub
        self._metrics = metrics
        self._done = done if done is not None else threading.Event()
        self._max_body_size = cfg.max_request_body_size
        self._ignore_header_prefixes = [prefix.strip().upper() for prefix in cfg.ignore_header_prefixes]

    def __call__(self, request: Request, **kwargs: Any) -> Response:
        """Record the request and answer with the session's response settings."""
        session_uuid = kwargs.get("session_uuid")
        if session_uuid is None:
            return _error(500, "cannot extract session UUID")

        try:
            session = self._storage.get_session(session_uuid)
        except Exception as exc:  # noqa: BLE001
            return _error(500, f"session reading failed: {exc}")
        if session is None:
            return _error(404, f"session with UUID {session_uuid} was not found")

        try:
            body = request.get_data()
        except Exception as exc:  # noqa: BLE001
            return _error(500, str(exc))

        if self._max_body_size > 0 and len(body) > self._max_body_size:
            return _error(
                500,
                f"request body is too large (current: {len(body)}, maximal: {self._max_body_size})",
            )

        try:
            request_uuid = self._storage.create_request(
                session_uuid,
                remote_address(request),
                request.method,
                _request_uri(request),
                body,
                self._headers_map(request.headers),
            )
        except Exception as exc:  # noqa: BLE001
            return _error(500, f"request saving in storage failed: {exc}")

        threading.Thread(target=self._announce, args=(session_uuid, request_uuid), daemon=True).start()

        delay = session.delay
        if delay and delay > timedelta(0):
            if self._done.wait(delay.total_seconds()):
                return _error(500, "canceled")

        return Response(
            session.content,
            status=self._required_status_code(kwargs, session),
            content_type=session.content_type,
        )

    def _announce(self, session_uuid: str, request_uuid: str) -> None:
        if self._metrics is not None:
            self._metrics.increment_processed_webhooks()
        try:
            self._pub.publish(session_uuid, request_registered_event(request_uuid))
        except Exception:  # noqa: BLE001 - delivery failures do not affect the answer
            pass

    @staticmethod
    def _required_status_code(kwargs: dict[str, Any], session: Any) -> int:
        requested = kwargs.get("status_code")
        if requested is not None:
            try:
                code = int(requested)
            except (TypeError, ValueError):
                code = 0
            if 100 <= code <= 599:
                return code
        return int(session.code)

    def _headers_map(self, headers: Headers) -> dict[str, str]:
        result: dict[str, str] = {}
        for name in dict.fromkeys(key for key, _ in headers.items()):
            upper_name = name.upper()
            if upper_name in _SKIPPED_HEADERS:
                continue
            if any(upper_name.startswith(prefix) for prefix in self._ignore_header_prefixes):
                continue
            result[name] = "; ".join(headers.getlist(name))
        return result
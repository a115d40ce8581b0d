"""HTTP server: routing, middlewares and lifecycle."""

from __future__ import annotations

import logging
import mimetypes
import re
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable

from werkzeug.serving import make_server
from werkzeug.wrappers import Request, Response

from .api_handlers import (
    all_requests_handler,
    clear_requests_handler,
    delete_request_handler,
    delete_session_handler,
    get_request_handler,
    healthz_handler,
    settings_handler,
    version_handler,
)
from .checkers import LiveChecker, ReadyChecker
from .config import Config
from .fileserver import FileServer, Settings
from .middlewares import cors, json_content_type, log_requests, no_cache, recover_panics
from .session_create import create_session_handler
from .webhook import WebhookHandler

Handler = Callable[..., Response]
Middleware = Callable[[Handler], Handler]

UUID_PATTERN = "[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}"

WEBHOOK_METHODS = ("GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS", "TRACE")

SHUTDOWN_TIMEOUT = 5.0
_POLL_INTERVAL = 0.1

_SESSION = "{session_uuid:" + UUID_PATTERN + "}"
_REQUEST = "{request_uuid:" + UUID_PATTERN + "}"


def _template_regex(template: str, prefix: bool) -> re.Pattern[str]:
    parts: list[str] = []
    pos = 0
    while pos < len(template):
        start = template.find("{", pos)
        if start < 0:
            parts.append(re.escape(template[pos:]))
            break
        parts.append(re.escape(template[pos:start]))
        depth = 0
        end = start
        for end in range(start, len(template)):
            if template[end] == "{":
                depth += 1
            elif template[end] == "}":
                depth -= 1
                if depth == 0:
                    break
        else:
            raise ValueError(f"unbalanced braces in route template {template!r}")
        name, _, pattern = template[start + 1 : end].partition(":")
        parts.append(f"(?P<{name}>{pattern or '[^/]+'})")
        pos = end + 1
    regex = "".join(parts)
    return re.compile(regex if prefix else f"(?:{regex})\\Z")


@dataclass
class Route:
    """A named route: path template, allowed methods and the handler behind it."""

    name: str
    template: str
    methods: tuple[str, ...]
    handler: Handler = field(repr=False)
    prefix: bool = False
    pattern: re.Pattern[str] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self.pattern = _template_regex(self.template, self.prefix)


def _not_found() -> Response:
    return Response("404 page not found\n", status=404, content_type="text/plain; charset=utf-8")


class Server:
    """WSGI application with the webhook, API and service routes."""

    def __init__(self, log: logging.Logger, version: str = "unknown", done: threading.Event | None = None) -> None:
        self._log = log
        self._version = version
        self._done = done if done is not None else threading.Event()
        self._routes: list[Route] = []
        self._app: Handler = self._dispatch
        self._lock = threading.Lock()
        self._stopping = threading.Event()
        self._finished = threading.Event()
        self._httpd: Any = None

    def register(
        self,
        cfg: Config,
        public_dir: str,
        rdb: Any,
        storage: Any,
        pub: Any,
        webhook_metrics: Any,
    ) -> None:
        """Register middlewares and all routes; static files only when ``public_dir`` is set."""
        self._app = log_requests(self._log)(recover_panics(self._log)(self._dispatch))

        self._register_webhook_handlers(cfg, storage, pub, webhook_metrics)
        self._register_api_handlers(cfg, storage, pub)
        self._register_service_handlers(rdb)
        if public_dir:
            self._register_file_server(public_dir)

        mimetypes.add_type("text/html", ".vue")

    def rule(self, name: str) -> Route | None:
        """Return the route registered under the name, if any."""
        return next((route for route in self._routes if route.name == name), None)

    def _add(
        self,
        name: str,
        template: str,
        methods: Iterable[str],
        handler: Handler,
        middlewares: Iterable[Middleware] = (),
        prefix: bool = False,
    ) -> None:
        for middleware in reversed(list(middlewares)):
            handler = middleware(handler)
        self._routes.append(Route(name, template, tuple(methods), handler, prefix))

    def _register_webhook_handlers(self, cfg: Config, storage: Any, pub: Any, webhook_metrics: Any) -> None:
        handler = WebhookHandler(cfg, storage, pub, webhook_metrics, done=self._done)
        middlewares = (cors,)
        self._add("webhook", "/" + _SESSION, WEBHOOK_METHODS, handler, middlewares)
        self._add(
            "webhook_with_status_code",
            "/" + _SESSION + "/{status_code:[1-5][0-9][0-9]}",
            WEBHOOK_METHODS,
            handler,
            middlewares,
        )
        self._add("webhook_any", "/" + _SESSION + "/{any:.*}", WEBHOOK_METHODS, handler, middlewares)

    def _register_api_handlers(self, cfg: Config, storage: Any, pub: Any) -> None:
        middlewares = (no_cache, json_content_type)
        session_path = "/api/session/" + _SESSION
        self._add("api_settings_get", "/api/settings", ["GET"], settings_handler(cfg), middlewares)
        self._add("api_get_version", "/api/version", ["GET"], version_handler(self._version), middlewares)
        self._add("api_session_create", "/api/session", ["POST"], create_session_handler(storage), middlewares)
        self._add("api_session_delete", session_path, ["DELETE"], delete_session_handler(storage), middlewares)
        self._add(
            "api_session_requests_all_get",
            session_path + "/requests",
            ["GET"],
            all_requests_handler(storage),
            middlewares,
        )
        self._add(
            "api_session_request_get",
            session_path + "/requests/" + _REQUEST,
            ["GET"],
            get_request_handler(storage),
            middlewares,
        )
        self._add(
            "api_delete_session_request",
            session_path + "/requests/" + _REQUEST,
            ["DELETE"],
            delete_request_handler(storage, pub),
            middlewares,
        )
        self._add(
            "api_delete_all_session_requests",
            session_path + "/requests",
            ["DELETE"],
            clear_requests_handler(storage, pub),
            middlewares,
        )

    def _register_service_handlers(self, rdb: Any) -> None:
        self._add("ready", "/ready", ["GET", "HEAD"], healthz_handler(ReadyChecker(rdb)))
        self._add("live", "/live", ["GET", "HEAD"], healthz_handler(LiveChecker()))

    def _register_file_server(self, public_dir: str) -> None:
        fs = FileServer(
            Settings(
                files_root=public_dir,
                index_file_name="index.html",
                error_file_name="__error__.html",
                redirect_index_file_to_root=True,
            )
        )

        def serve_static(request: Request, **_kwargs: Any) -> Response:
            return fs(request)

        self._add("static", "/", ["GET", "HEAD"], serve_static, prefix=True)

    def _dispatch(self, request: Request, **_kwargs: Any) -> Response:
        path = request.path
        method_mismatch = False
        for route in self._routes:
            match = route.pattern.match(path)
            if match is None:
                continue
            if request.method not in route.methods:
                method_mismatch = True
                continue
            return route.handler(request, **match.groupdict())
        if method_mismatch:
            return Response(b"", status=405)
        return _not_found()

    def __call__(self, environ: dict[str, Any], start_response: Callable[..., Any]) -> Iterable[bytes]:
        response = self._app(Request(environ))
        return response(environ, start_response)

    def start(self, ip: str, port: int) -> None:
        """Listen and serve until ``stop`` is called; raise OSError if listening fails."""
        with self._lock:
            if self._stopping.is_set():
                return
            httpd = make_server(ip or "0.0.0.0", port, self, threaded=True)
            httpd.timeout = _POLL_INTERVAL
            self._httpd = httpd
        try:
            while not self._stopping.is_set():
                httpd.handle_request()
        finally:
            httpd.server_close()
            self._finished.set()

    def stop(self) -> None:
        """Stop serving and wait (up to the shutdown timeout) for the listener to close."""
        self._stopping.set()
        with self._lock:
            httpd = self._httpd
        if httpd is not None:
            self._finished.wait(SHUTDOWN_TIMEOUT)
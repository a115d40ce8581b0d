import json
import logging
import mimetypes
import socket
import threading
import time
import uuid
from dataclasses import dataclass
from datetime import timedelta

import pytest
from werkzeug.test import Client

from webhook_tester.config import Config
from webhook_tester.server import Server

UUID = "[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}"
ALL = ("GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS", "TRACE")

ROUTES = [
    ("api_settings_get", "/api/settings", ("GET",)),
    ("api_get_version", "/api/version", ("GET",)),
    ("api_session_create", "/api/session", ("POST",)),
    ("api_session_delete", "/api/session/{session_uuid:" + UUID + "}", ("DELETE",)),
    ("api_session_requests_all_get", "/api/session/{session_uuid:" + UUID + "}/requests", ("GET",)),
    (
        "api_session_request_get",
        "/api/session/{session_uuid:" + UUID + "}/requests/{request_uuid:" + UUID + "}",
        ("GET",),
    ),
    (
        "api_delete_session_request",
        "/api/session/{session_uuid:" + UUID + "}/requests/{request_uuid:" + UUID + "}",
        ("DELETE",),
    ),
    ("api_delete_all_session_requests", "/api/session/{session_uuid:" + UUID + "}/requests", ("DELETE",)),
    ("webhook", "/{session_uuid:" + UUID + "}", ALL),
    ("webhook_with_status_code", "/{session_uuid:" + UUID + "}/{status_code:[1-5][0-9][0-9]}", ALL),
    ("webhook_any", "/{session_uuid:" + UUID + "}/{any:.*}", ALL),
    ("ready", "/ready", ("GET", "HEAD")),
    ("live", "/live", ("GET", "HEAD")),
    ("static", "/", ("GET", "HEAD")),
]


@dataclass
class FakeSession:
    content: bytes
    code: int
    content_type: str
    delay: timedelta


class FakeStorage:
    def __init__(self):
        self.sessions = {}
        self.recorded = []

    def add_session(self, content, code, content_type):
        session_uuid = str(uuid.uuid4())
        self.sessions[session_uuid] = FakeSession(content, code, content_type, timedelta(0))
        return session_uuid

    def get_session(self, session_uuid):
        return self.sessions.get(session_uuid)

    def create_request(self, session_uuid, client_addr, method, uri, content, headers):
        self.recorded.append((session_uuid, method, uri, content))
        return str(uuid.uuid4())


class FakePub:
    def publish(self, session_uuid, event):
        pass


class BrokenRedis:
    def ping(self):
        raise ConnectionError("redis is down")


def _logger():
    log = logging.getLogger("webhook-tester-test")
    log.addHandler(logging.NullHandler())
    log.propagate = False
    return log


def _registered(public_dir="", rdb=None, storage=None):
    server = Server(_logger(), version="1.2.3")
    server.register(Config(), public_dir, rdb, storage or FakeStorage(), FakePub(), None)
    return server


def test_register_routes(tmp_path):
    server = Server(_logger())
    for name, _, _ in ROUTES:
        assert server.rule(name) is None

    server.register(Config(), str(tmp_path), None, FakeStorage(), FakePub(), None)

    for name, template, methods in ROUTES:
        route = server.rule(name)
        assert route.template == template
        assert route.methods == methods


def test_register_adds_vue_mime_type(tmp_path):
    server = _registered(str(tmp_path))
    assert server.rule("static").template == "/"
    assert mimetypes.guess_type("page.vue")[0] == "text/html"


def test_register_without_public_dir():
    server = _registered("")
    assert server.rule("static") is None
    assert server.rule("live").template == "/live"


def test_register_with_missing_public_dir(tmp_path):
    server = Server(_logger())
    with pytest.raises(FileNotFoundError):
        server.register(Config(), str(tmp_path / "missing"), None, FakeStorage(), FakePub(), None)


def test_webhook_route_with_status_code():
    storage = FakeStorage()
    session_uuid = storage.add_session(b"hello", 202, "text/plain")
    client = Client(_registered(storage=storage))

    response = client.post(f"/{session_uuid}/201", data=b"payload")

    assert response.status_code == 201
    assert response.get_data() == b"hello"
    assert response.headers["Access-Control-Allow-Origin"] == "*"
    assert storage.recorded == [(session_uuid, "POST", f"/{session_uuid}/201", b"payload")]


def test_webhook_any_route_uses_session_code():
    storage = FakeStorage()
    session_uuid = storage.add_session(b"hello", 202, "text/plain")
    client = Client(_registered(storage=storage))

    response = client.put(f"/{session_uuid}/foo/bar")

    assert response.status_code == 202


def test_api_version_route():
    client = Client(_registered())
    response = client.get("/api/version")
    assert response.status_code == 200
    assert json.loads(response.get_data()) == {"version": "1.2.3"}
    assert response.headers["Content-Type"] == "application/json"
    assert response.headers["Cache-Control"] == "no-cache, no-store, must-revalidate"


def test_health_routes():
    assert Client(_registered()).get("/live").status_code == 200
    assert Client(_registered()).get("/ready").status_code == 200

    response = Client(_registered(rdb=BrokenRedis())).get("/ready")
    assert response.status_code == 503
    assert response.get_data(as_text=True) == "redis is down"


def test_not_found_and_method_not_allowed():
    client = Client(_registered())
    missing = client.get("/nothing/here")
    assert missing.status_code == 404
    assert missing.get_data(as_text=True) == "404 page not found\n"
    assert client.post("/api/version").status_code == 405


def test_static_files(tmp_path):
    (tmp_path / "index.html").write_text("<p>index</p>")
    client = Client(_registered(str(tmp_path)))
    response = client.get("/")
    assert response.status_code == 200
    assert response.get_data(as_text=True) == "<p>index</p>"


def _free_port():
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


def _port_busy(port):
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        try:
            sock.bind(("127.0.0.1", port))
        except OSError:
            return True
    return False


def test_start_and_stop():
    port = _free_port()
    server = Server(_logger())
    assert not _port_busy(port)

    thread = threading.Thread(target=server.start, args=("127.0.0.1", port), daemon=True)
    thread.start()

    deadline = time.monotonic() + 5
    while not _port_busy(port) and time.monotonic() < deadline:
        time.sleep(0.01)

    assert _port_busy(port)
    server.stop()
    thread.join(5)
    assert not thread.is_alive()
    assert not _port_busy(port)


def test_start_on_busy_port_fails():
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        sock.listen()
        port = sock.getsockname()[1]
        with pytest.raises(OSError):
            Server(_logger()).start("127.0.0.1", port)
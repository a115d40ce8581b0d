import base64
import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

import pytest
from werkzeug.test import EnvironBuilder
from werkzeug.wrappers import Request

from webhook_tester.api_handlers import (
    all_requests_handler,
    clear_requests_handler,
    delete_request_handler,
    delete_session_handler,
    get_request_handler,
    healthz_handler,
    settings_handler,
    version_handler,
)
from webhook_tester.config import Config

FIXED_TIME = datetime(2022, 5, 1, 12, 0, 0, tzinfo=timezone.utc)
FIXED_UNIX = int(FIXED_TIME.timestamp())


@dataclass
class Record:
    uuid: str
    client_addr: str
    method: str
    content: bytes
    headers: dict
    uri: str
    created_at: datetime


@dataclass
class FakeStorage:
    max_requests: int = 10
    sessions: dict = field(default_factory=dict)
    requests: dict = field(default_factory=dict)

    def create_session(self, content, code, content_type, delay):
        session_uuid = str(uuid.uuid4())
        self.sessions[session_uuid] = (content, code, content_type, delay)
        return session_uuid

    def get_session(self, session_uuid):
        return self.sessions.get(session_uuid)

    def delete_session(self, session_uuid):
        return self.sessions.pop(session_uuid, None) is not None

    def create_request(self, session_uuid, client_addr, method, uri, content, headers):
        record = Record(str(uuid.uuid4()), client_addr, method, content, headers, uri, FIXED_TIME)
        items = self.requests.setdefault(session_uuid, [])
        items.append(record)
        del items[: max(0, len(items) - self.max_requests)]
        return record.uuid

    def get_request(self, session_uuid, request_uuid):
        return next((r for r in self.requests.get(session_uuid, []) if r.uuid == request_uuid), None)

    def get_all_requests(self, session_uuid):
        return list(self.requests.get(session_uuid, []))

    def delete_requests(self, session_uuid):
        return bool(self.requests.pop(session_uuid, None))

    def delete_request(self, session_uuid, request_uuid):
        items = self.requests.get(session_uuid, [])
        for record in items:
            if record.uuid == request_uuid:
                items.remove(record)
                return True
        return False


class FakePublisher:
    def __init__(self):
        self.published = []

    def publish(self, session_uuid, event):
        self.published.append((session_uuid, event))


class BrokenStorage:
    def get_session(self, session_uuid):
        raise RuntimeError("boom")

    def delete_requests(self, session_uuid):
        raise RuntimeError("boom")


def make_request(method="GET"):
    return Request(EnvironBuilder(method=method, path="/").get_environ())


def body_json(response):
    return json.loads(response.get_data(as_text=True))


FOOBAR64 = base64.b64encode(b"foobar").decode()


def test_settings_handler():
    cfg = Config(max_requests=123, session_ttl=timedelta(seconds=321), max_request_body_size=222)
    response = settings_handler(cfg)(make_request("POST"))
    assert response.status_code == 200
    assert body_json(response) == {
        "limits": {"max_requests": 123, "session_lifetime_sec": 321, "max_webhook_body_size": 222}
    }


def test_version_handler():
    response = version_handler("1.2.3@foo")(make_request())
    assert response.status_code == 200
    assert body_json(response) == {"version": "1.2.3@foo"}


def test_delete_session_without_uuid():
    response = delete_session_handler(FakeStorage())(make_request("POST"))
    assert response.status_code == 500
    assert body_json(response) == {"code": 500, "success": False, "message": "cannot extract session UUID"}


def test_delete_session_not_found():
    storage = FakeStorage()
    storage.create_session(b"", 201, "", timedelta(0))
    response = delete_session_handler(storage)(make_request("POST"), session_uuid="aa-bb-cc-dd")
    assert response.status_code == 404
    assert body_json(response) == {
        "code": 404,
        "success": False,
        "message": "session with UUID aa-bb-cc-dd was not found",
    }


def test_delete_session_success():
    storage = FakeStorage()
    session_uuid = storage.create_session(b"", 201, "", timedelta(0))
    storage.create_request(session_uuid, "", "", "", b"", None)
    response = delete_session_handler(storage)(make_request("POST"), session_uuid=session_uuid)
    assert response.status_code == 200
    assert body_json(response) == {"success": True}
    assert storage.get_session(session_uuid) is None
    assert storage.get_all_requests(session_uuid) == []


@pytest.mark.parametrize(
    "kwargs, code, expected",
    [
        ({}, 500, {"code": 500, "success": False, "message": "cannot extract session UUID"}),
        (
            {"session_uuid": "aa-bb-cc-dd"},
            404,
            {"code": 404, "success": False, "message": "session with UUID aa-bb-cc-dd was not found"},
        ),
    ],
)
def test_all_requests_errors(kwargs, code, expected):
    response = all_requests_handler(FakeStorage(max_requests=1))(make_request("POST"), **kwargs)
    assert response.status_code == code
    assert body_json(response) == expected


def test_all_requests_storage_error():
    response = all_requests_handler(BrokenStorage())(make_request(), session_uuid="aa")
    assert response.status_code == 500
    assert body_json(response)["message"] == "cannot read session data: boom"


def test_all_requests_single():
    storage = FakeStorage()
    session_uuid = storage.create_session(b"foo", 202, "foo/bar", timedelta(0))
    request_uuid = storage.create_request(
        session_uuid, "1.2.2.1", "PUT", "http://example.com/foo", b"foobar", {"aaa": "bar", "bbb": "foo"}
    )
    response = all_requests_handler(storage)(make_request(), session_uuid=session_uuid)
    assert response.status_code == 200
    assert body_json(response) == [
        {
            "client_address": "1.2.2.1",
            "content_base64": FOOBAR64,
            "created_at_unix": FIXED_UNIX,
            "headers": [{"name": "aaa", "value": "bar"}, {"name": "bbb", "value": "foo"}],
            "method": "PUT",
            "url": "http://example.com/foo",
            "uuid": request_uuid,
        }
    ]


def test_all_requests_multiple_respects_limit_and_order():
    storage = FakeStorage(max_requests=3)
    session_uuid = storage.create_session(b"foo", 202, "foo/bar", timedelta(0))
    storage.create_request(session_uuid, "1.1.1.1", "PUT", "http://example.com/foo1", b"foobar", None)
    r1 = storage.create_request(
        session_uuid, "1.1.1.1", "PUT", "http://example.com/foo1", b"foobar", {"bbb": "foo", "aaa": "bar"}
    )
    r2 = storage.create_request(session_uuid, "2.2.2.2", "PUT", "http://example.com/foo2", b"foobar", None)
    r3 = storage.create_request(
        session_uuid, "3.3.3.3", "PUT", "http://example.com/foo3", b"foobar", {"aaa": "bar"}
    )
    response = all_requests_handler(storage)(make_request(), session_uuid=session_uuid)
    assert body_json(response) == [
        {
            "client_address": "1.1.1.1",
            "content_base64": FOOBAR64,
            "created_at_unix": FIXED_UNIX,
            "headers": [{"name": "aaa", "value": "bar"}, {"name": "bbb", "value": "foo"}],
            "method": "PUT",
            "url": "http://example.com/foo1",
            "uuid": r1,
        },
        {
            "client_address": "2.2.2.2",
            "content_base64": FOOBAR64,
            "created_at_unix": FIXED_UNIX,
            "headers": [],
            "method": "PUT",
            "url": "http://example.com/foo2",
            "uuid": r2,
        },
        {
            "client_address": "3.3.3.3",
            "content_base64": FOOBAR64,
            "created_at_unix": FIXED_UNIX,
            "headers": [{"name": "aaa", "value": "bar"}],
            "method": "PUT",
            "url": "http://example.com/foo3",
            "uuid": r3,
        },
    ]


def test_all_requests_sorted_newest_first():
    storage = FakeStorage()
    session_uuid = storage.create_session(b"", 200, "", timedelta(0))
    old = storage.create_request(session_uuid, "", "GET", "/a", b"", None)
    new = storage.create_request(session_uuid, "", "GET", "/b", b"", None)
    storage.get_request(session_uuid, new).created_at = FIXED_TIME + timedelta(seconds=10)
    response = all_requests_handler(storage)(make_request(), session_uuid=session_uuid)
    assert [item["uuid"] for item in body_json(response)] == [new, old]


@pytest.mark.parametrize(
    "kwargs, code, expected",
    [
        ({}, 500, {"code": 500, "success": False, "message": "cannot extract session UUID"}),
        (
            {"session_uuid": "aa-bb-cc-dd"},
            404,
            {
                "code": 404,
                "success": False,
                "message": "requests for session with UUID aa-bb-cc-dd was not found",
            },
        ),
    ],
)
def test_clear_requests_errors(kwargs, code, expected):
    pub = FakePublisher()
    response = clear_requests_handler(FakeStorage(), pub)(make_request("POST"), **kwargs)
    assert response.status_code == code
    assert body_json(response) == expected
    assert pub.published == []


def test_clear_requests_storage_error():
    response = clear_requests_handler(BrokenStorage(), FakePublisher())(make_request(), session_uuid="aa")
    assert response.status_code == 500
    assert body_json(response) == {"code": 500, "success": False, "message": "boom"}


def test_clear_requests_success():
    storage = FakeStorage()
    pub = FakePublisher()
    session_uuid = storage.create_session(b"foo", 202, "foo/bar", timedelta(0))
    storage.create_request(session_uuid, "", "", "", b"", None)
    assert len(storage.get_all_requests(session_uuid)) == 1

    response = clear_requests_handler(storage, pub)(make_request("POST"), session_uuid=session_uuid)

    assert body_json(response) == {"success": True}
    assert len(pub.published) == 1
    published_session, event = pub.published[0]
    assert published_session == session_uuid
    assert event.name == "requests-deleted"
    assert event.data == b"*"
    assert storage.get_all_requests(session_uuid) == []


@pytest.mark.parametrize(
    "kwargs, code, expected",
    [
        ({}, 500, {"code": 500, "success": False, "message": "cannot extract session UUID"}),
        (
            {"session_uuid": "aa-bb-cc-dd"},
            500,
            {"code": 500, "success": False, "message": "cannot extract request UUID"},
        ),
        (
            {"session_uuid": "aa-bb-cc-dd", "request_uuid": "11-22-33-44"},
            404,
            {"code": 404, "success": False, "message": "request with UUID 11-22-33-44 was not found"},
        ),
    ],
)
def test_delete_request_errors(kwargs, code, expected):
    response = delete_request_handler(FakeStorage(), FakePublisher())(make_request("POST"), **kwargs)
    assert response.status_code == code
    assert body_json(response) == expected


def test_delete_request_success():
    storage = FakeStorage()
    pub = FakePublisher()
    session_uuid = storage.create_session(b"foo", 202, "foo/bar", timedelta(0))
    storage.create_request(session_uuid, "", "", "", b"", None)
    request_uuid = storage.create_request(session_uuid, "", "", "", b"", None)
    assert len(storage.get_all_requests(session_uuid)) == 2

    response = delete_request_handler(storage, pub)(
        make_request("POST"), session_uuid=session_uuid, request_uuid=request_uuid
    )

    assert body_json(response) == {"success": True}
    _, event = pub.published[0]
    assert event.name == "request-deleted"
    assert event.data == request_uuid.encode()
    assert len(storage.get_all_requests(session_uuid)) == 1


@pytest.mark.parametrize(
    "kwargs, code, expected",
    [
        ({}, 500, {"code": 500, "success": False, "message": "cannot extract session UUID"}),
        (
            {"session_uuid": "aa-bb-cc-dd"},
            500,
            {"code": 500, "success": False, "message": "cannot extract request UUID"},
        ),
        (
            {"session_uuid": "aa-bb-cc-dd", "request_uuid": "dd-cc-bb-aa"},
            404,
            {"code": 404, "success": False, "message": "request with UUID dd-cc-bb-aa was not found"},
        ),
    ],
)
def test_get_request_errors(kwargs, code, expected):
    response = get_request_handler(FakeStorage(max_requests=1))(make_request("POST"), **kwargs)
    assert response.status_code == code
    assert body_json(response) == expected


def test_get_request_reading():
    storage = FakeStorage()
    session_uuid = storage.create_session(b"foo", 202, "foo/bar", timedelta(0))
    request_uuid = storage.create_request(
        session_uuid, "1.2.2.1", "PUT", "http://example.com/foo", b"foobar", {"bbb": "foo", "aaa": "bar"}
    )
    response = get_request_handler(storage)(
        make_request(), session_uuid=session_uuid, request_uuid=request_uuid
    )
    assert response.status_code == 200
    assert body_json(response) == {
        "client_address": "1.2.2.1",
        "content_base64": FOOBAR64,
        "created_at_unix": FIXED_UNIX,
        "headers": [{"name": "aaa", "value": "bar"}, {"name": "bbb", "value": "foo"}],
        "method": "PUT",
        "url": "http://example.com/foo",
        "uuid": request_uuid,
    }


class FakeChecker:
    def __init__(self, error=None):
        self.error = error

    def check(self):
        if self.error is not None:
            raise self.error


def test_healthz_no_error():
    response = healthz_handler(FakeChecker())(make_request())
    assert response.status_code == 200
    assert response.get_data() == b""


def test_healthz_error():
    response = healthz_handler(FakeChecker(RuntimeError("foo")))(make_request())
    assert response.status_code == 503
    assert response.get_data(as_text=True) == "foo"
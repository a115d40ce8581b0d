"""HTTP handlers of the JSON API, plus the health probe handler.

Handlers take a request and the route variables as keyword arguments
(``session_uuid``, ``request_uuid``) and return a response.

Storage objects are expected to provide ``get_session``, ``get_all_requests``,
``get_request``, ``delete_session``, ``delete_requests`` and ``delete_request``,
raising on failure. Recorded requests expose ``uuid``, ``client_addr``,
``method``, ``content``, ``headers``, ``uri`` and ``created_at``.
Publishers provide ``publish(session_uuid, event)``.
"""

from __future__ import annotations

import base64
import json
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable

from werkzeug.wrappers import Request, Response

from .config import Config
from .models import (
    Event,
    ServerError,
    SessionRequest,
    SessionRequestHeader,
    SessionRequests,
    request_deleted_event,
    requests_deleted_event,
)
from .responder import json_response

Handler = Callable[..., Response]


@dataclass(frozen=True)
class _Document:
    """A plain JSON document answered with status 200."""

    payload: Any

    def to_json(self) -> bytes:
        return json.dumps(self.payload, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


_SUCCESS = _Document({"success": True})


def _unix(moment: datetime) -> int:
    return math.floor(moment.timestamp())


def _to_session_request(record: Any) -> SessionRequest:
    headers = sorted(
        (SessionRequestHeader(name, value) for name, value in (record.headers or {}).items()),
        key=lambda header: header.name,
    )
    return SessionRequest(
        uuid=record.uuid,
        client_addr=record.client_addr,
        method=record.method,
        content_base64=base64.b64encode(record.content or b"").decode("ascii"),
        headers=headers,
        uri=record.uri,
        created_at_unix=_unix(record.created_at),
    )


def _publish(pub: Any, session_uuid: str, event: Event) -> None:
    try:
        pub.publish(session_uuid, event)
    except Exception:  # noqa: BLE001 - delivery failures do not affect the answer
        pass


def _missing_session() -> Response:
    return json_response(ServerError(500, "cannot extract session UUID"))


def _missing_request() -> Response:
    return json_response(ServerError(500, "cannot extract request UUID"))


def settings_handler(cfg: Config) -> Handler:
    """Answer with the application limits."""
    document = _Document(
        {
            "limits": {
                "max_requests": cfg.max_requests,
                "max_webhook_body_size": cfg.max_request_body_size,
                "session_lifetime_sec": int(cfg.session_ttl.total_seconds()),
            }
        }
    )

    def handler(request: Request, **_kwargs: Any) -> Response:
        return json_response(document)

    return handler


def version_handler(version: str) -> Handler:
    """Answer with the application version."""
    document = _Document({"version": version})

    def handler(request: Request, **_kwargs: Any) -> Response:
        return json_response(document)

    return handler


def delete_session_handler(storage: Any) -> Handler:
    """Delete a session together with its recorded requests."""

    def handler(request: Request, **kwargs: Any) -> Response:
        session_uuid = kwargs.get("session_uuid")
        if session_uuid is None:
            return _missing_session()

        try:
            deleted = storage.delete_session(session_uuid)
        except Exception as exc:  # noqa: BLE001
            return json_response(ServerError(500, str(exc)))
        if not deleted:
            return json_response(ServerError(404, f"session with UUID {session_uuid} was not found"))

        try:
            storage.delete_requests(session_uuid)
        except Exception as exc:  # noqa: BLE001
            return json_response(ServerError(500, str(exc)))

        return json_response(_SUCCESS)

    return handler


def all_requests_handler(storage: Any) -> Handler:
    """List the session's recorded requests, newest first."""

    def handler(request: Request, **kwargs: Any) -> Response:
        session_uuid = kwargs.get("session_uuid")
        if session_uuid is None:
            return _missing_session()

        try:
            session = storage.get_session(session_uuid)
        except Exception as exc:  # noqa: BLE001
            return json_response(ServerError(500, f"cannot read session data: {exc}"))
        if session is None:
            return json_response(ServerError(404, f"session with UUID {session_uuid} was not found"))

        try:
            records = storage.get_all_requests(session_uuid)
        except Exception as exc:  # noqa: BLE001
            return json_response(ServerError(500, f"cannot get requests data: {exc}"))

        result = SessionRequests(_to_session_request(record) for record in records or [])
        result.sort(key=lambda item: item.created_at_unix, reverse=True)

        return json_response(result)

    return handler


def clear_requests_handler(storage: Any, pub: Any) -> Handler:
    """Delete all recorded requests of a session and announce it."""

    def handler(request: Request, **kwargs: Any) -> Response:
        session_uuid = kwargs.get("session_uuid")
        if session_uuid is None:
            return _missing_session()

        try:
            deleted = storage.delete_requests(session_uuid)
        except Exception as exc:  # noqa: BLE001
            return json_response(ServerError(500, str(exc)))
        if not deleted:
            return json_response(
                ServerError(404, f"requests for session with UUID {session_uuid} was not found")
            )

        _publish(pub, session_uuid, requests_deleted_event())

        return json_response(_SUCCESS)

    return handler


def delete_request_handler(storage: Any, pub: Any) -> Handler:
    """Delete one recorded request and announce it."""

    def handler(request: Request, **kwargs: Any) -> Response:
        session_uuid = kwargs.get("session_uuid")
        if session_uuid is None:
            return _missing_session()
        request_uuid = kwargs.get("request_uuid")
        if request_uuid is None:
            return _missing_request()

        try:
            deleted = storage.delete_request(session_uuid, request_uuid)
        except Exception as exc:  # noqa: BLE001
            return json_response(ServerError(500, str(exc)))
        if not deleted:
            return json_response(ServerError(404, f"request with UUID {request_uuid} was not found"))

        _publish(pub, session_uuid, request_deleted_event(request_uuid))

        return json_response(_SUCCESS)

    return handler


def get_request_handler(storage: Any) -> Handler:
    """Answer with the details of one recorded request."""

    def handler(request: Request, **kwargs: Any) -> Response:
        session_uuid = kwargs.get("session_uuid")
        if session_uuid is None:
            return _missing_session()
        request_uuid = kwargs.get("request_uuid")
        if request_uuid is None:
            return _missing_request()

        try:
            record = storage.get_request(session_uuid, request_uuid)
        except Exception as exc:  # noqa: BLE001
            return json_response(ServerError(500, f"cannot read request data: {exc}"))
        if record is None:
            return json_response(ServerError(404, f"request with UUID {request_uuid} was not found"))

        return json_response(_to_session_request(record))

    return handler


def healthz_handler(checker: Any) -> Handler:
    """Answer 200 when ``checker.check()`` passes, 503 with the error text otherwise."""

    def handler(request: Request, **_kwargs: Any) -> Response:
        try:
            checker.check()
        except Exception as exc:  # noqa: BLE001
            return Response(str(exc), status=503)
        return Response(b"", status=200)

    return handler
"""API data models and pub/sub events."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any


def _dumps(value: Any) -> bytes:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


@dataclass
class ServerError:
    """Error answer of the API."""

    code: int
    message: str
    success: bool = False

    @property
    def status_code(self) -> int:
        """HTTP status code for this error."""
        return self.code

    def to_json(self) -> bytes:
        """Encode the error as JSON."""
        return _dumps({"success": self.success, "code": self.code, "message": self.message})


@dataclass
class SessionRequestHeader:
    """One recorded request header."""

    name: str
    value: str


@dataclass
class SessionRequest:
    """A recorded webhook request as shown by the API."""

    uuid: str
    client_addr: str
    method: str
    content_base64: str
    headers: list[SessionRequestHeader] = field(default_factory=list)
    uri: str = ""
    created_at_unix: int = 0

    def as_dict(self) -> dict[str, Any]:
        """Return the JSON-ready representation."""
        return {
            "uuid": self.uuid,
            "client_address": self.client_addr,
            "method": self.method,
            "content_base64": self.content_base64,
            "headers": [{"name": h.name, "value": h.value} for h in self.headers],
            "url": self.uri,
            "created_at_unix": self.created_at_unix,
        }

    def to_json(self) -> bytes:
        """Encode the request as JSON."""
        return _dumps(self.as_dict())


class SessionRequests(list):
    """A list of recorded requests."""

    def to_json(self) -> bytes:
        """Encode all requests as a JSON array."""
        return _dumps([request.as_dict() for request in self])


@dataclass(frozen=True)
class Event:
    """A session event delivered through pub/sub."""

    name: str
    data: bytes


def request_registered_event(request_uuid: str) -> Event:
    """Event for a newly recorded request."""
    return Event("request-registered", request_uuid.encode())


def requests_deleted_event() -> Event:
    """Event for the removal of all session requests."""
    return Event("requests-deleted", b"*")


def request_deleted_event(request_uuid: str) -> Event:
    """Event for the removal of one request."""
    return Event("request-deleted", request_uuid.encode())
"""The API handler that creates new webhook sessions."""

from __future__ import annotations

import base64
import binascii
import json
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from werkzeug.wrappers import Request, Response

from .models import ServerError
from .responder import json_response

# Must stay below the server write timeout.
MAX_RESPONSE_DELAY = timedelta(seconds=30)

MIN_STATUS_CODE = 100
MAX_STATUS_CODE = 530
MAX_CONTENT_TYPE_LENGTH = 32
MAX_RESPONSE_CONTENT_LENGTH = 10240

_PARSE_ERROR = "cannot parse passed json"


def _rune_count(data: bytes) -> int:
    # Every byte that is not part of valid UTF-8 counts as one character.
    return len(data.decode("utf-8", errors="surrogateescape"))


@dataclass
class SessionInput:
    """Validated-to-be settings for a new session."""

    status_code: int = 200
    content_type: str = "text/plain"
    delay: timedelta = timedelta(0)
    response_content: bytes = b""

    def validate(self) -> None:
        """Raise ValueError when a setting is out of the allowed range."""
        if not MIN_STATUS_CODE <= self.status_code <= MAX_STATUS_CODE:
            raise ValueError("wrong status code")
        if len(self.content_type) > MAX_CONTENT_TYPE_LENGTH:
            raise ValueError("content-type value is too large")
        if self.delay > MAX_RESPONSE_DELAY:
            raise ValueError("delay is too much")
        if _rune_count(self.response_content) > MAX_RESPONSE_CONTENT_LENGTH:
            raise ValueError("response content is too large")


def _unsigned(value: Any, bits: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value < 2**bits:
        raise ValueError(_PARSE_ERROR)
    return value


def parse_input(body: bytes) -> SessionInput:
    """Read session settings from a JSON body; absent or null fields keep defaults."""
    try:
        payload = json.loads(body)
    except (ValueError, UnicodeDecodeError):
        raise ValueError(_PARSE_ERROR) from None
    if not isinstance(payload, dict):
        raise ValueError(_PARSE_ERROR)

    result = SessionInput()

    status_code = payload.get("status_code")
    if status_code is not None:
        result.status_code = _unsigned(status_code, 16)

    content_type = payload.get("content_type")
    if content_type is not None:
        if not isinstance(content_type, str):
            raise ValueError(_PARSE_ERROR)
        result.content_type = content_type

    delay = payload.get("response_delay")
    if delay is not None:
        result.delay = timedelta(seconds=_unsigned(delay, 8))

    content = payload.get("response_content_base64")
    if content is not None:
        if not isinstance(content, str):
            raise ValueError(_PARSE_ERROR)
        try:
            result.response_content = base64.b64decode(content, validate=True)
        except (binascii.Error, ValueError):
            raise ValueError("cannot decode response body (wrong base64)") from None

    return result


@dataclass
class SessionOutput:
    """Answer describing a freshly created session."""

    session_uuid: str
    content: bytes
    status_code: int
    content_type: str
    delay: timedelta
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_json(self) -> bytes:
        """Encode the session description as JSON."""
        document = {
            "uuid": self.session_uuid,
            "response": {
                "content_base64": base64.b64encode(self.content).decode("ascii"),
                "content_type": self.content_type,
                "code": self.status_code,
                "delay_sec": int(self.delay.total_seconds()) & 0xFF,
            },
            "created_at_unix": math.floor(self.created_at.timestamp()),
        }
        return json.dumps(document, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def create_session_handler(storage: Any) -> Callable[..., Response]:
    """Create a session from the JSON body via ``storage.create_session``."""

    def handler(request: Request, **_kwargs: Any) -> Response:
        try:
            body = request.get_data()
        except Exception as exc:  # noqa: BLE001
            return json_response(ServerError(500, str(exc)))
        if not body:
            return json_response(ServerError(400, "empty request body"))

        try:
            payload = parse_input(body)
        except ValueError as exc:
            return json_response(ServerError(400, str(exc)))

        try:
            payload.validate()
        except ValueError as exc:
            return json_response(ServerError(400, f"wrong request: {exc}"))

        try:
            session_uuid = storage.create_session(
                payload.response_content,
                payload.status_code,
                payload.content_type,
                payload.delay,
            )
        except Exception as exc:  # noqa: BLE001
            return json_response(ServerError(500, str(exc)))

        return json_response(
            SessionOutput(
                session_uuid=session_uuid,
                content=payload.response_content,
                status_code=payload.status_code,
                content_type=payload.content_type,
                delay=payload.delay,
            )
        )

    return handler
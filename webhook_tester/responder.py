"""Building JSON API responses from models."""

from __future__ import annotations

import json
from typing import Protocol

from werkzeug.wrappers import Response

JSON_CONTENT_TYPE = "application/json; charset=utf-8"


class JSONModel(Protocol):
    """Anything that can encode itself as JSON; may also carry ``status_code``."""

    def to_json(self) -> bytes: ...


def json_response(model: JSONModel) -> Response:
    """Return the model's JSON with its status code (200 when it has none).

    If the model cannot be encoded, a 500 response describing the error is returned.
    """
    try:
        content = model.to_json()
    except Exception as exc:  # noqa: BLE001
        fallback = json.dumps({"success": False, "message": str(exc)}, separators=(",", ":"))
        return Response(fallback, status=500, content_type=JSON_CONTENT_TYPE)

    code = getattr(model, "status_code", 0) or 200
    return Response(content, status=code, content_type=JSON_CONTENT_TYPE)
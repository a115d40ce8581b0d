"""Static files server with pluggable error pages."""

from __future__ import annotations

import dataclasses
import json
import mimetypes
import os
import posixpath
import stat
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from werkzeug.exceptions import RequestedRangeNotSatisfiable
from werkzeug.http import HTTP_STATUS_CODES
from werkzeug.utils import redirect
from werkzeug.wrappers import Request, Response

DEFAULT_FALLBACK_ERROR_CONTENT = (
    "<html><body><h1>Error {{ code }}</h1><h2>{{ message }}</h2></body></html>"
)
DEFAULT_INDEX_FILE_NAME = "index.html"

_HTML_CONTENT_TYPE = "text/html; charset=utf-8"
_JSON_CONTENT_TYPE = "application/json; charset=utf-8"


class ErrorPageTemplate(str):
    """Error page text that may contain ``{{ code }}`` and ``{{ message }}`` patterns."""

    def build(self, error_code: int) -> str:
        """Return the page with the patterns replaced for the given status code."""
        out = str(self)
        replacements = {
            "code": str(error_code),
            "message": HTTP_STATUS_CODES.get(error_code, ""),
        }
        for key, value in replacements.items():
            out = out.replace("{{ %s }}" % key, value)
        return out


# An error handler returns a response to stop processing, or None to let the next one try.
ErrorHandler = Callable[[Request, "FileServer", int], Optional[Response]]


def json_error_handler() -> ErrorHandler:
    """Answer with a small JSON document when the client accepts JSON."""

    def handle(request: Request, fs: FileServer, error_code: int) -> Response | None:
        if "json" not in request.headers.get("Accept", ""):
            return None
        body = json.dumps({"code": error_code, "message": HTTP_STATUS_CODES.get(error_code, "")}) + "\n"
        return Response(body, status=error_code, content_type=_JSON_CONTENT_TYPE)

    return handle


def static_html_page_error_handler() -> ErrorHandler:
    """Render the configured error file from the files root as the error page."""

    def handle(request: Request, fs: FileServer, error_code: int) -> Response | None:
        name = fs.settings.error_file_name
        if not name:
            return None
        path = os.path.join(fs.settings.files_root, name.lstrip("/"))
        try:
            with open(path, "rb") as fh:
                data = fh.read()
        except OSError:
            return None
        page = ErrorPageTemplate(data.decode("utf-8", errors="replace")).build(error_code)
        return Response(page, status=error_code, content_type=_HTML_CONTENT_TYPE)

    return handle


@dataclass
class Settings:
    """File server options."""

    files_root: str = ""
    index_file_name: str = ""
    error_file_name: str = ""
    redirect_index_file_to_root: bool = False


def _sniff_mimetype(data: bytes) -> str:
    if b"\x00" in data[:512]:
        return "application/octet-stream"
    try:
        data.decode("utf-8")
    except UnicodeDecodeError:
        return "application/octet-stream"
    return "text/plain"


class FileServer:
    """Serves regular files below a root directory."""

    def __init__(self, settings: Settings) -> None:
        root = settings.files_root
        try:
            info = os.stat(root)
        except FileNotFoundError:
            raise FileNotFoundError(f'directory "{root}" does not exists') from None
        if not stat.S_ISDIR(info.st_mode):
            raise NotADirectoryError(f'"{root}" is not directory')

        if not settings.index_file_name:
            settings = dataclasses.replace(settings, index_file_name=DEFAULT_INDEX_FILE_NAME)

        self.settings = settings
        self.fallback_error_content = DEFAULT_FALLBACK_ERROR_CONTENT
        self.error_handlers: list[ErrorHandler] = [
            json_error_handler(),
            static_html_page_error_handler(),
        ]

    def _handle_error(self, request: Request, error_code: int) -> Response:
        for handler in self.error_handlers:
            response = handler(request, self, error_code)
            if response is not None:
                return response
        page = ErrorPageTemplate(self.fallback_error_content).build(error_code)
        return Response(page, status=error_code, content_type=_HTML_CONTENT_TYPE)

    def __call__(self, request: Request) -> Response:
        """Respond to a request with a file, a redirect or an error page."""
        if request.method != "GET":
            return self._handle_error(request, 405)

        index = self.settings.index_file_name
        url_path = request.path

        if self.settings.redirect_index_file_to_root and index and url_path.endswith("/" + index):
            return redirect(url_path[: len(url_path) - len(index)], code=301)

        if not url_path.startswith("/"):
            url_path = "/" + url_path
        if index and url_path.endswith("/"):
            url_path += index

        parts = [part for part in posixpath.normpath(url_path).split("/") if part]
        file_path = os.path.join(self.settings.files_root, *parts)

        try:
            info = os.stat(file_path)
        except OSError:
            return self._handle_error(request, 404)
        if not stat.S_ISREG(info.st_mode):
            return self._handle_error(request, 404)

        try:
            with open(file_path, "rb") as fh:
                data = fh.read()
        except OSError:
            return self._handle_error(request, 500)

        mimetype = mimetypes.guess_type(os.path.basename(file_path))[0] or _sniff_mimetype(data)
        response = Response(data, mimetype=mimetype)
        response.last_modified = datetime.fromtimestamp(info.st_mtime, tz=timezone.utc)
        try:
            response.make_conditional(request, accept_ranges=True, complete_length=len(data))
        except RequestedRangeNotSatisfiable as exc:
            return exc.get_response(request.environ)
        return response
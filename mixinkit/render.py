"""JSON responses of the RPC server and the CORS wrapper around it."""

from __future__ import annotations

import dataclasses
import datetime
import enum
import json
import time
from dataclasses import dataclass, field
from decimal import Decimal
from http import HTTPStatus
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

DEFAULT_TEXT_PLAIN_TYPE = "text/plain; charset=utf-8"
DEFAULT_JSON_TYPE = "application/json; charset=utf-8"

Header = Tuple[str, str]
WSGIApp = Callable[[Dict[str, Any], Callable[..., Any]], Iterable[bytes]]


@dataclass
class Response:
    """A finished HTTP response; it can be served as a WSGI application."""

    status: int
    headers: List[Header] = field(default_factory=list)
    body: bytes = b""

    def header(self, name: str) -> Optional[str]:
        """The value of the header ``name``, or None."""
        wanted = name.lower()
        for key, value in self.headers:
            if key.lower() == wanted:
                return value
        return None

    def json(self) -> Any:
        return json.loads(self.body)

    def __call__(self, environ: Dict[str, Any], start_response: Callable[..., Any]) -> List[bytes]:
        phrase = HTTPStatus(self.status).phrase
        headers = list(self.headers) + [("Content-Length", str(len(self.body)))]
        start_response(f"{self.status} {phrase}", headers)
        return [self.body]


def _json_default(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).hex()
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime.datetime, datetime.date)):
        return value.isoformat()
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, (set, frozenset)):
        return list(value)
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    raise TypeError(f"cannot encode {type(value).__name__} as JSON")


@dataclass
class Render:
    """Renders a call's result or error as the JSON envelope of the server.

    ``id`` is echoed back when set; when ``start`` is set the elapsed
    seconds since then are reported as ``runtime``.
    """

    id: str = ""
    start: Optional[float] = None
    clock: Callable[[], float] = time.monotonic

    def render_data(self, data: Any) -> Response:
        return self._render({"data": data})

    def render_error(self, error: Any) -> Response:
        return self._render({"error": str(error)})

    def _render(self, body: Dict[str, Any]) -> Response:
        if self.id:
            body["id"] = self.id
        if self.start is not None:
            body["runtime"] = str(self.clock() - self.start)
        payload = json.dumps(body, default=_json_default, separators=(",", ":")).encode()
        return Response(200, [("Content-Type", DEFAULT_JSON_TYPE)], payload)


def _merge_headers(base: List[Header], override: Iterable[Header]) -> List[Header]:
    override = list(override)
    names = {name.lower() for name, _ in override}
    return [h for h in base if h[0].lower() not in names] + override


def cors_middleware(app: WSGIApp) -> WSGIApp:
    """Wrap a WSGI application with the server's CORS handling.

    Requests with an Origin are allowed from that origin; OPTIONS requests
    with an Origin are answered directly with an empty JSON object.
    """

    def middleware(environ: Dict[str, Any], start_response: Callable[..., Any]) -> Iterable[bytes]:
        extra: List[Header] = [("Vary", "Origin")]
        origin = environ.get("HTTP_ORIGIN", "")

        def wrapped(status: str, headers: List[Header], exc_info: Any = None) -> Any:
            return start_response(status, _merge_headers(extra, headers), exc_info)

        if not origin:
            return app(environ, wrapped)
        extra += [
            ("Access-Control-Allow-Origin", origin),
            ("Access-Control-Allow-Headers", "Content-Type,Authorization,Mixin-Conversation-ID"),
            ("Access-Control-Allow-Methods", "OPTIONS,GET,POST,DELETE"),
            ("Access-Control-Max-Age", "600"),
        ]
        if environ.get("REQUEST_METHOD") == "OPTIONS":
            return Render()._render({})(environ, wrapped)
        return app(environ, wrapped)

    return middleware
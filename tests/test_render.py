import json
from decimal import Decimal

from mixinkit.render import DEFAULT_JSON_TYPE, Render, Response, cors_middleware


def _call(app, environ):
    captured = {}

    def start_response(status, headers, exc_info=None):
        captured["status"] = status
        captured["headers"] = dict(headers)

    body = b"".join(app(environ, start_response))
    return captured["status"], captured["headers"], body


def _inner(environ, start_response):
    start_response("200 OK", [("Content-Type", "text/plain")])
    return [b"inner"]


def test_render_data_envelope():
    resp = Render().render_data({"hash": "abc"})
    assert resp.status == 200
    assert resp.header("Content-Type") == DEFAULT_JSON_TYPE
    assert resp.json() == {"data": {"hash": "abc"}}


def test_render_error_envelope():
    resp = Render().render_error(ValueError("invalid params count"))
    assert resp.json() == {"error": "invalid params count"}


def test_render_includes_id():
    resp = Render(id="call-7").render_data(None)
    assert resp.json() == {"data": None, "id": "call-7"}


def test_render_runtime_from_clock():
    resp = Render(start=1.0, clock=lambda: 3.5).render_data([])
    assert resp.json()["runtime"] == "2.5"


def test_render_without_start_has_no_runtime():
    body = Render().render_data(1).json()
    assert "runtime" not in body
    assert "id" not in body


def test_render_encodes_bytes_and_decimals():
    resp = Render().render_data({"key": b"\x01\xff", "amount": Decimal("1.25")})
    assert resp.json()["data"] == {"key": "01ff", "amount": "1.25"}


def test_response_is_wsgi_app():
    resp = Render().render_data("x")
    status, headers, body = _call(resp, {})
    assert status.startswith("200")
    assert json.loads(body) == {"data": "x"}
    assert headers["Content-Length"] == str(len(body))


def test_cors_without_origin_passes_through():
    status, headers, body = _call(cors_middleware(_inner), {"REQUEST_METHOD": "GET"})
    assert body == b"inner"
    assert headers["Vary"] == "Origin"
    assert "Access-Control-Allow-Origin" not in headers


def test_cors_with_origin_adds_headers():
    environ = {"REQUEST_METHOD": "POST", "HTTP_ORIGIN": "https://app.example.com"}
    status, headers, body = _call(cors_middleware(_inner), environ)
    assert body == b"inner"
    assert headers["Access-Control-Allow-Origin"] == "https://app.example.com"
    assert headers["Access-Control-Allow-Methods"] == "OPTIONS,GET,POST,DELETE"
    assert headers["Access-Control-Max-Age"] == "600"
    assert headers["Content-Type"] == "text/plain"


def test_cors_options_answers_directly():
    calls = []

    def app(environ, start_response):
        calls.append(environ)
        return _inner(environ, start_response)

    environ = {"REQUEST_METHOD": "OPTIONS", "HTTP_ORIGIN": "https://app.example.com"}
    status, headers, body = _call(cors_middleware(app), environ)
    assert calls == []
    assert json.loads(body) == {}
    assert headers["Content-Type"] == DEFAULT_JSON_TYPE
    assert headers["Access-Control-Allow-Origin"] == "https://app.example.com"


def test_cors_options_without_origin_goes_to_app():
    status, headers, body = _call(cors_middleware(_inner), {"REQUEST_METHOD": "OPTIONS"})
    assert body == b"inner"


def test_response_header_lookup_is_case_insensitive():
    resp = Response(200, [("X-Thing", "v")], b"")
    assert resp.header("x-thing") == "v"
    assert resp.header("missing") is None
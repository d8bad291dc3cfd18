"""Serving transaction extra data as web objects."""

from __future__ import annotations

import base64
import binascii
import json
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

from .render import DEFAULT_JSON_TYPE, DEFAULT_TEXT_PLAIN_TYPE, Render, Response

XIN_ASSET_ID = bytes.fromhex(
    "a99c2e0e2b1da4d648755ef19bd95139acbbe6564cfb06dec7cd34931ca72cdc"
)
OCTET_STREAM_TYPE = "application/octet-stream"
CACHE_CONTROL = "max-age=31536000, public"

_DATA_SCHEME = "data:"


def _valid_utf8(data: Union[bytes, str]) -> bool:
    if isinstance(data, str):
        try:
            data.encode("utf-8")
        except UnicodeEncodeError:
            return False
        return True
    try:
        bytes(data).decode("utf-8")
    except UnicodeDecodeError:
        return False
    return True


def _decode_base64_prefix(text: str) -> bytes:
    """Decode as much standard base64 as is valid, stopping at the first error."""
    cleaned = text.replace("\r", "").replace("\n", "")
    out: List[bytes] = []
    for start in range(0, len(cleaned), 4):
        chunk = cleaned[start:start + 4]
        if len(chunk) < 4:
            break
        try:
            out.append(base64.b64decode(chunk, validate=True))
        except (binascii.Error, ValueError):
            break
        if chunk.endswith("="):
            break
    return b"".join(out)


def decide_content_type(extra: bytes) -> str:
    """Plain text for valid UTF-8, an octet stream otherwise."""
    return DEFAULT_TEXT_PLAIN_TYPE if _valid_utf8(extra) else OCTET_STREAM_TYPE


def find_charset(params: Sequence[str], data: Union[bytes, str]) -> str:
    """The charset named among the media type parameters, or utf-8 if the data is."""
    for param in params[1:]:
        parts = param.split("=")
        if len(parts) == 2 and parts[0] == "charset":
            return parts[1].lower()
    return "utf-8" if _valid_utf8(data) else ""


def parse_data_uri(value: str) -> Tuple[bytes, str]:
    """Split a ``data:`` URI into its content and media type.

    Anything that is not a data URI is returned as plain text.
    """
    if not value.startswith(_DATA_SCHEME):
        return value.encode(), DEFAULT_TEXT_PLAIN_TYPE
    parts = value.split(",")
    if len(parts) != 2:
        return value.encode(), DEFAULT_TEXT_PLAIN_TYPE
    params = parts[0][len(_DATA_SCHEME):].split(";")
    mime = params[0]
    if params[-1] == "base64":
        data = _decode_base64_prefix(parts[1])
    else:
        data = parts[1].encode("utf-8", "surrogatepass")
    if not mime or not _valid_utf8(mime):
        mime = decide_content_type(data)
    charset = find_charset(params, data)
    if charset:
        mime = f"{mime}; charset={charset}"
    return data, mime


def parse_json(extra: bytes) -> Optional[Dict[str, Any]]:
    """The extra as a JSON object, or None if it is not one."""
    if not extra or extra[:1] not in (b"{", b"["):
        return None
    try:
        value = json.loads(bytes(extra).decode("utf-8", "replace"))
    except ValueError:
        return None
    return value if isinstance(value, dict) else None


def _sprint(value: Any) -> str:
    if value is None:
        return "<nil>"
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if value.is_integer() and abs(value) < 1e21:
            return str(int(value))
        return repr(value)
    if isinstance(value, list):
        return "[" + " ".join(_sprint(v) for v in value) + "]"
    if isinstance(value, dict):
        items = " ".join(f"{k}:{_sprint(value[k])}" for k in sorted(value))
        return f"map[{items}]"
    return str(value)


def object_response(path: str, read_transaction: Callable[[bytes], Any]) -> Response:
    """Answer ``/objects/<hash>[/<field>]`` from a transaction's extra.

    ``read_transaction`` takes a transaction hash and returns None or an
    object with ``asset`` and ``extra`` bytes; only XIN transactions serve.
    """
    rdr = Render()
    parts = path.split("/")
    if len(parts) < 3 or parts[1] != "objects":
        return rdr.render_error(f"bad request {path}")
    try:
        tx_hash = bytes.fromhex(parts[2])
    except ValueError:
        tx_hash = b""
    if len(tx_hash) != 32:
        return rdr.render_error(f"bad request {path}")

    try:
        tx = read_transaction(tx_hash)
    except Exception as err:
        return rdr.render_error(err)
    if tx is None or bytes(tx.asset) != XIN_ASSET_ID:
        return rdr.render_error(f"not found {path}")

    body = bytes(tx.extra)
    if not body:
        content_type = DEFAULT_TEXT_PLAIN_TYPE
    else:
        document = parse_json(body)
        if document is None:
            content_type = decide_content_type(body)
        elif len(parts) < 4:
            content_type = DEFAULT_JSON_TYPE
        else:
            body, content_type = parse_data_uri(_sprint(document.get(parts[3])))
    headers = [("Cache-Control", CACHE_CONTROL), ("Content-Type", content_type)]
    return Response(200, headers, body)
"""Building and parsing of peer network messages."""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, List, Optional, Tuple

from .framing import TRANSPORT_MESSAGE_MAX_SIZE, MessageType

HASH_SIZE = 32
KEY_SIZE = 32
SIGNATURE_SIZE = 64
MAX_COMMITMENTS = 1024

_ZERO_HASH = bytes(HASH_SIZE)
_ZERO_SIGNATURE = bytes(SIGNATURE_SIZE)

_U16 = struct.Struct(">H")
_U32 = struct.Struct(">I")
_U64 = struct.Struct(">Q")

Signer = Callable[[bytes], bytes]


class MessageError(ValueError):
    """A peer message is malformed."""


@dataclass
class SyncPoint:
    """The latest known round of one node."""

    node_id: bytes
    number: int
    hash: bytes
    pool: Any = None


@dataclass
class PeerMessage:
    """A decoded peer message.

    Snapshots and transactions are kept in their encoded form.
    """

    type: int
    version: int = 0
    snapshot: Optional[bytes] = None
    snapshot_hash: bytes = _ZERO_HASH
    transaction: Optional[bytes] = None
    transaction_hash: bytes = _ZERO_HASH
    cosi_signature: bytes = _ZERO_SIGNATURE
    cosi_mask: int = 0
    commitment: bytes = bytes(KEY_SIZE)
    challenge: bytes = bytes(KEY_SIZE)
    response: bytes = bytes(32)
    want_tx: bool = False
    commitments: List[bytes] = field(default_factory=list)
    graph: List[SyncPoint] = field(default_factory=list)
    data: bytes = b""
    unsigned: Optional[bytes] = None
    signature: Optional[bytes] = None


def _fixed(value: bytes, size: int, name: str) -> bytes:
    value = bytes(value)
    if len(value) != size:
        raise ValueError(f"{name} must be {size} bytes, got {len(value)}")
    return value


def _padded(value: bytes, size: int) -> bytes:
    return bytes(value[:size]).ljust(size, b"\0")


def _signed(sign: Signer, data: bytes) -> bytes:
    sig = _fixed(sign(data), SIGNATURE_SIZE, "signature")
    return sig + data


def build_authentication_message(data: bytes) -> bytes:
    return bytes([MessageType.AUTHENTICATION]) + bytes(data)


def build_snapshot_commitment_message(
    sign: Signer, snap: bytes, commitment: bytes, want_tx: bool
) -> bytes:
    data = (
        _fixed(snap, HASH_SIZE, "snapshot hash")
        + _fixed(commitment, KEY_SIZE, "commitment")
        + (b"\x01" if want_tx else b"\x00")
    )
    return bytes([MessageType.SNAPSHOT_COMMITMENT]) + _signed(sign, data)


def build_transaction_challenge_message(
    snap: bytes, signature: bytes, mask: int, tx: Optional[bytes]
) -> bytes:
    data = (
        bytes([MessageType.TRANSACTION_CHALLENGE])
        + _fixed(snap, HASH_SIZE, "snapshot hash")
        + _fixed(signature, SIGNATURE_SIZE, "cosi signature")
        + _U64.pack(mask)
    )
    if tx is not None:
        data += bytes(tx)
    return data


def build_snapshot_response_message(snap: bytes, response: bytes) -> bytes:
    return (
        bytes([MessageType.SNAPSHOT_RESPONSE])
        + _fixed(snap, HASH_SIZE, "snapshot hash")
        + _fixed(response, 32, "response")
    )


def build_snapshot_confirm_message(snap: bytes) -> bytes:
    return bytes([MessageType.SNAPSHOT_CONFIRM]) + _fixed(snap, HASH_SIZE, "snapshot hash")


def build_transaction_request_message(tx: bytes) -> bytes:
    return bytes([MessageType.TRANSACTION_REQUEST]) + _fixed(tx, HASH_SIZE, "transaction hash")


def build_transaction_message(tx: bytes) -> bytes:
    """Wrap an encoded transaction."""
    return bytes([MessageType.TRANSACTION]) + bytes(tx)


def build_commitments_message(sign: Signer, commitments: Iterable[bytes]) -> bytes:
    keys = [_fixed(k, KEY_SIZE, "commitment") for k in commitments]
    if len(keys) > MAX_COMMITMENTS:
        raise ValueError(f"too many commitments {len(keys)}")
    data = _U16.pack(len(keys)) + b"".join(keys)
    return bytes([MessageType.COMMITMENTS]) + _signed(sign, data)


def build_relay_message(sender: bytes, peer_id: bytes, msg: bytes) -> bytes:
    """Wrap ``msg`` for relaying from ``sender`` to ``peer_id``."""
    if len(msg) > TRANSPORT_MESSAGE_MAX_SIZE:
        raise ValueError(f"relay message too large {len(msg)}")
    return (
        bytes([MessageType.RELAY])
        + _fixed(sender, HASH_SIZE, "sender id")
        + _fixed(peer_id, HASH_SIZE, "peer id")
        + bytes(msg)
    )


def build_consumers_message(consumers: Iterable[Tuple[bytes, bytes]]) -> bytes:
    """Announce consumers as (id, authentication data) pairs."""
    parts = [bytes([MessageType.CONSUMERS])]
    for peer_id, auth in consumers:
        parts.append(_fixed(peer_id, HASH_SIZE, "consumer id"))
        parts.append(bytes(auth))
    return b"".join(parts)


_POINT_SIZE = HASH_SIZE + 8 + HASH_SIZE


def _marshal_sync_points(points: Iterable[SyncPoint]) -> bytes:
    points = list(points)
    parts = [_U16.pack(len(points))]
    for p in points:
        parts.append(_fixed(p.node_id, HASH_SIZE, "node id"))
        parts.append(_U64.pack(p.number))
        parts.append(_fixed(p.hash, HASH_SIZE, "round hash"))
    return b"".join(parts)


def _build_graph_message(sign: Signer, points: Iterable[SyncPoint]) -> bytes:
    return bytes([MessageType.GRAPH]) + _signed(sign, _marshal_sync_points(points))


def _unmarshal_sync_points(data: bytes) -> List[SyncPoint]:
    if len(data) < _U16.size:
        raise MessageError("invalid sync points data")
    (count,) = _U16.unpack_from(data)
    body = data[_U16.size:]
    if len(body) < count * _POINT_SIZE:
        raise MessageError(f"truncated sync points {count} {len(body)}")
    points = []
    for i in range(count):
        chunk = body[i * _POINT_SIZE:(i + 1) * _POINT_SIZE]
        (number,) = _U64.unpack_from(chunk, HASH_SIZE)
        points.append(
            SyncPoint(node_id=chunk[:HASH_SIZE], number=number, hash=chunk[HASH_SIZE + 8:])
        )
    return points


def _parse_commitments(msg: PeerMessage, data: bytes) -> None:
    if len(data) < 80:
        raise MessageError(f"invalid commitments message size {len(data)}")
    (count,) = _U16.unpack_from(data, 65)
    if count > MAX_COMMITMENTS:
        raise MessageError(f"too much commitments {count}")
    body = data[67:]
    if len(body) != count * KEY_SIZE:
        raise MessageError(f"malformed commitments message {count} {len(body)}")
    msg.commitments = [body[i:i + KEY_SIZE] for i in range(0, len(body), KEY_SIZE)]
    msg.signature = data[1:65]
    msg.unsigned = data[65:]


def _parse_graph(msg: PeerMessage, data: bytes) -> None:
    if len(data) < 1 + SIGNATURE_SIZE:
        raise MessageError(f"invalid graph message size {len(data)}")
    msg.graph = _unmarshal_sync_points(data[65:])
    msg.signature = data[1:65]
    msg.unsigned = data[65:]


def _parse_announcement(msg: PeerMessage, data: bytes) -> None:
    if len(data) - 1 <= 99:
        raise MessageError(f"invalid announcement message size {len(data) - 1}")
    msg.signature = data[1:65]
    msg.commitment = data[65:97]
    msg.snapshot = data[97:]


def _parse_commitment(msg: PeerMessage, data: bytes) -> None:
    if len(data) - 1 != 129:
        raise MessageError(f"invalid commitment message size {len(data) - 1}")
    msg.signature = data[1:65]
    msg.snapshot_hash = data[65:97]
    msg.commitment = data[97:129]
    msg.want_tx = data[129] == 1
    msg.unsigned = data[65:]


def _parse_full_challenge(msg: PeerMessage, data: bytes) -> None:
    if len(data) - 1 < 256:
        raise MessageError(f"invalid full challenge message size {len(data) - 1}")
    offset = 1 + 4
    (size,) = _U32.unpack_from(data, 1)
    if len(data) - offset < size:
        raise MessageError(
            f"invalid full challenge snapshot size {len(data) - offset} {size}"
        )
    if size == 0:
        raise MessageError("invalid full challenge snapshot")
    msg.snapshot = data[offset:offset + size]
    offset += size
    if len(data) - offset < 256:
        raise MessageError(
            f"invalid full challenge message size {offset} {len(data) - offset}"
        )
    msg.commitment = data[offset:offset + 32]
    offset += 32
    msg.challenge = data[offset:offset + 32]
    offset += 32
    (size,) = _U32.unpack_from(data, offset)
    offset += 4
    if len(data) - offset < size:
        raise MessageError(
            f"invalid full challenge transaction size {len(data) - offset} {size}"
        )
    if size == 0:
        raise MessageError("invalid full challenge transaction")
    msg.transaction = data[offset:offset + size]


def _parse_transaction_challenge(msg: PeerMessage, data: bytes) -> None:
    if len(data) - 1 < 104:
        raise MessageError(f"invalid transaction challenge message size {len(data) - 1}")
    msg.snapshot_hash = data[1:33]
    msg.cosi_signature = data[33:97]
    (msg.cosi_mask,) = _U64.unpack_from(data, 97)
    if len(data) - 1 > 104:
        msg.transaction = data[105:]


def _parse_response(msg: PeerMessage, data: bytes) -> None:
    if len(data) - 1 != 64:
        raise MessageError(f"invalid response message size {len(data) - 1}")
    msg.snapshot_hash = data[1:33]
    msg.response = data[33:65]


def _parse_payload(kind: str) -> Callable[[PeerMessage, bytes], None]:
    def parse(msg: PeerMessage, data: bytes) -> None:
        body = data[1:]
        if not body:
            raise MessageError(f"invalid {kind} message data")
        setattr(msg, kind, body)

    return parse


def _parse_hash(attr: str) -> Callable[[PeerMessage, bytes], None]:
    def parse(msg: PeerMessage, data: bytes) -> None:
        setattr(msg, attr, _padded(data[1:], HASH_SIZE))

    return parse


def _parse_data(msg: PeerMessage, data: bytes) -> None:
    msg.data = data[1:]


def _parse_relay(msg: PeerMessage, data: bytes) -> None:
    msg.data = data


_PARSERS = {
    MessageType.PING: lambda msg, data: None,
    MessageType.AUTHENTICATION: _parse_data,
    MessageType.GRAPH: _parse_graph,
    MessageType.SNAPSHOT_CONFIRM: _parse_hash("snapshot_hash"),
    MessageType.TRANSACTION_REQUEST: _parse_hash("transaction_hash"),
    MessageType.TRANSACTION: _parse_payload("transaction"),
    MessageType.SNAPSHOT_ANNOUNCEMENT: _parse_announcement,
    MessageType.SNAPSHOT_COMMITMENT: _parse_commitment,
    MessageType.TRANSACTION_CHALLENGE: _parse_transaction_challenge,
    MessageType.SNAPSHOT_RESPONSE: _parse_response,
    MessageType.SNAPSHOT_FINALIZATION: _parse_payload("snapshot"),
    MessageType.COMMITMENTS: _parse_commitments,
    MessageType.FULL_CHALLENGE: _parse_full_challenge,
    MessageType.RELAY: _parse_relay,
    MessageType.CONSUMERS: _parse_data,
}


def parse_network_message(version: int, data: bytes) -> PeerMessage:
    """Decode one peer message; unknown types carry only their type."""
    data = bytes(data)
    if len(data) < 1:
        raise MessageError("invalid message data")
    msg = PeerMessage(type=data[0], version=version)
    parser = _PARSERS.get(data[0])
    if parser is not None:
        parser(msg, data)
    return msg
"""Length-prefixed message framing for peer streams."""

from __future__ import annotations

import socket
import struct
from dataclasses import dataclass
from enum import IntEnum
from typing import BinaryIO, Optional

TRANSPORT_MESSAGE_VERSION = 2
TRANSPORT_MESSAGE_MAX_SIZE = 32 * 1024 * 1024
TRANSPORT_MESSAGE_HEADER_SIZE = 6

MAX_INCOMING_STREAMS = 1024
HANDSHAKE_TIMEOUT = 10.0
IDLE_TIMEOUT = 60.0
WRITE_DEADLINE = 10.0
READ_DEADLINE = 2 * WRITE_DEADLINE

_HEADER = struct.Struct(">BxI")


class MessageType(IntEnum):
    """Peer message type carried in the first byte of a message."""

    PING = 1
    AUTHENTICATION = 3
    GRAPH = 4
    SNAPSHOT_CONFIRM = 5
    TRANSACTION_REQUEST = 6
    TRANSACTION = 7
    SNAPSHOT_ANNOUNCEMENT = 10
    SNAPSHOT_COMMITMENT = 11
    TRANSACTION_CHALLENGE = 12
    SNAPSHOT_RESPONSE = 13
    SNAPSHOT_FINALIZATION = 14
    COMMITMENTS = 15
    FULL_CHALLENGE = 16
    RELAY = 200
    CONSUMERS = 201


class FramingError(Exception):
    """A frame could not be written or read."""


@dataclass
class TransportMessage:
    version: int
    size: int
    data: bytes


def encode_frame(data: bytes) -> bytes:
    """Return ``data`` with the transport header in front of it."""
    size = len(data)
    if size < 1 or size > TRANSPORT_MESSAGE_MAX_SIZE:
        raise FramingError(f"send invalid message size {size}")
    return _HEADER.pack(TRANSPORT_MESSAGE_VERSION, size) + bytes(data)


def _read_exact(stream: BinaryIO, size: int) -> bytes:
    chunks = []
    remaining = size
    while remaining > 0:
        chunk = stream.read(remaining)
        if not chunk:
            raise FramingError(
                f"unexpected end of stream after {size - remaining} of {size} bytes"
            )
        chunks.append(chunk)
        remaining -= len(chunk)
    return b"".join(chunks)


def read_frame(stream: BinaryIO) -> TransportMessage:
    """Read one frame from a binary stream."""
    header = _read_exact(stream, TRANSPORT_MESSAGE_HEADER_SIZE)
    version, size = _HEADER.unpack(header)
    if version != TRANSPORT_MESSAGE_VERSION:
        raise FramingError(f"receive invalid message version {version}")
    if size > TRANSPORT_MESSAGE_MAX_SIZE:
        raise FramingError(f"receive invalid message size {size}")
    return TransportMessage(version=version, size=size, data=_read_exact(stream, size))


def write_frame(stream: BinaryIO, data: bytes) -> None:
    """Write one frame to a binary stream."""
    stream.write(encode_frame(data))


class StreamClient:
    """A framed message channel over a connected socket."""

    def __init__(self, sock: socket.socket) -> None:
        self._sock = sock
        self._reader = sock.makefile("rb")
        self.close_reason: Optional[str] = None
        try:
            self.remote_addr = sock.getpeername()
        except OSError:
            self.remote_addr = None

    def send(self, data: bytes) -> None:
        """Send one message, waiting at most the write deadline."""
        frame = encode_frame(data)
        self._sock.settimeout(WRITE_DEADLINE)
        self._sock.sendall(frame)

    def receive(self) -> TransportMessage:
        """Receive one message, waiting at most the read deadline."""
        self._sock.settimeout(READ_DEADLINE)
        return read_frame(self._reader)

    def close(self, code: str = "") -> None:
        """Close the channel, recording why."""
        if self.close_reason is not None:
            return
        self.close_reason = code
        self._reader.close()
        self._sock.close()

    def __enter__(self) -> "StreamClient":
        return self

    def __exit__(self, *exc) -> None:
        self.close("exit")
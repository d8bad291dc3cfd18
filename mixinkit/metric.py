"""Per-message-type counters for sent and received peer messages."""

from __future__ import annotations

import json
import threading

from .framing import MessageType

_FIELDS = (
    (MessageType.PING, "ping"),
    (MessageType.AUTHENTICATION, "authentication"),
    (MessageType.GRAPH, "graph"),
    (MessageType.SNAPSHOT_CONFIRM, "snapshot-confirm"),
    (MessageType.TRANSACTION_REQUEST, "transaction-request"),
    (MessageType.TRANSACTION, "transaction"),
    (MessageType.SNAPSHOT_ANNOUNCEMENT, "snapshot-announcement"),
    (MessageType.SNAPSHOT_COMMITMENT, "snapshot-commitment"),
    (MessageType.TRANSACTION_CHALLENGE, "transaciton-challenge"),
    (MessageType.SNAPSHOT_RESPONSE, "snapshot-response"),
    (MessageType.SNAPSHOT_FINALIZATION, "snapshot-finalization"),
    (MessageType.COMMITMENTS, "commitments"),
    (MessageType.FULL_CHALLENGE, "full-challenge"),
    (MessageType.RELAY, "relay"),
)


class MetricPool:
    """Counts messages by type when enabled."""

    def __init__(self, enabled: bool = False) -> None:
        self.enabled = enabled
        self._lock = threading.Lock()
        self._counts = {msg_type: 0 for msg_type, _ in _FIELDS}

    def handle(self, msg_type: int) -> None:
        """Count one message of ``msg_type``; untracked types are ignored."""
        if not self.enabled:
            return
        with self._lock:
            if msg_type in self._counts:
                self._counts[msg_type] += 1

    def __getitem__(self, msg_type: int) -> int:
        return self._counts[msg_type]

    def to_json(self) -> str:
        """Return the counters as compact JSON."""
        with self._lock:
            body = {name: self._counts[msg_type] for msg_type, name in _FIELDS}
        return json.dumps(body, separators=(",", ":"))

    def __str__(self) -> str:
        return self.to_json()